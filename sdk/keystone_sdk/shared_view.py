"""Shared view definitions.

A shared view grants another vendor application read access to a set of
properties, on one entity, on every entity of a type, or on dynamic
properties.
"""

from __future__ import annotations

DYNAMIC_PROPERTIES_TYPE = "__dynamic"


class SharedView:
    """Builder for the properties another application may read.

    Example:
        >>> view = SharedView("name", "email").add("ssn", allow_pii=True).for_type("user")
        >>> await actor.share_view(VendorApp(vendor_id="v", app_id="a"), view)
    """

    def __init__(self, *properties: str) -> None:
        self.properties: dict[str, None] = dict.fromkeys(properties)
        self.pii_properties: dict[str, None] = {}
        self.secure_properties: dict[str, None] = {}
        self.comment = ""
        self.entity_id = ""
        self.all_workspaces = False
        self.entity_type = ""

    def for_type(self, entity_type: str) -> SharedView:
        self.entity_type = entity_type
        return self

    def for_dynamic_properties(self) -> SharedView:
        self.entity_type = DYNAMIC_PROPERTIES_TYPE
        return self

    def for_entity(self, entity_id: str) -> SharedView:
        self.entity_id = str(entity_id)
        return self

    def for_all_workspaces(self) -> SharedView:
        self.all_workspaces = True
        return self

    def add(self, prop: str, allow_pii: bool = False, allow_secure: bool = False) -> SharedView:
        self.properties[prop] = None
        if allow_pii:
            self.pii_properties[prop] = None
        if allow_secure:
            self.secure_properties[prop] = None
        return self

    def with_comment(self, comment: str) -> SharedView:
        self.comment = comment
        return self
