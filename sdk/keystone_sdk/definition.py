"""
Field tags and property definitions.

Record fields carry optional tag metadata in the form ``"name,opt1,opt2"``:
- The first token overrides the canonical name ("-" suppresses the field)
- The remaining tokens are schema flags or data classifications

Example:
    >>> @dataclass
    ... class User:
    ...     email: str = keystone_field("email,unique,pii", default="")
    ...     nickname: str = keystone_field(",omitempty", default="")
    ...     secret: str = keystone_field("-", default="")
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from .property import snake_case
from .wire import ExtendedType, PropertyDefinition, PropertyOption, PropertyType

TAG_KEY = "keystone"

_OPTION_FLAGS: dict[str, PropertyOption] = {
    "unique": PropertyOption.UNIQUE,
    "primary": PropertyOption.PRIMARY,
    "indexed": PropertyOption.INDEXED,
    "query": PropertyOption.INDEXED,
    "searchable": PropertyOption.SEARCHABLE,
    "search": PropertyOption.SEARCHABLE,
    "immutable": PropertyOption.IMMUTABLE,
    "deprecated": PropertyOption.DEPRECATED,
    "required": PropertyOption.REQUIRED,
    "req": PropertyOption.REQUIRED,
    "lookup": PropertyOption.REVERSE_LOOKUP,
    "metric": PropertyOption.METRIC,
    "metricFilter": PropertyOption.METRIC_FILTER,
    "no-snapshot": PropertyOption.NO_SNAPSHOT,
    "skip-snapshot": PropertyOption.NO_SNAPSHOT,
}

_PERSONAL_FLAGS = frozenset({"pii", "personal", "gdpr"})


@dataclass(frozen=True)
class FieldOptions:
    """Parsed tag metadata for a single field.

    Attributes:
        name: Canonical property name ("" when suppressed)
        suppressed: Field is excluded from the property bag
        omitempty: Skip the field on marshal when its value is zero
        options: Schema option flags in declaration order
        verify_only: Field is a write-only secret probe
        personal_data: Field holds personal data
        user_input: Field holds raw user input
    """

    name: str = ""
    suppressed: bool = False
    omitempty: bool = False
    options: tuple[PropertyOption, ...] = ()
    verify_only: bool = False
    personal_data: bool = False
    user_input: bool = False

    def definition(self) -> PropertyDefinition:
        """Return the property definition implied by the tag alone."""
        data_type = PropertyType.UNMANAGED
        extended = ExtendedType.NONE
        if self.personal_data:
            extended = ExtendedType.PERSONAL
        elif self.user_input:
            extended = ExtendedType.USER_INPUT
        elif self.verify_only:
            data_type = PropertyType.VERIFY_TEXT
        return PropertyDefinition(
            name=self.name,
            data_type=data_type,
            extended_type=extended,
            options=list(self.options),
        )


def parse_tag(tag: str, field_name: str) -> FieldOptions:
    """Parse a keystone tag for the given field.

    Args:
        tag: Tag string, may be empty
        field_name: Attribute name used when the tag has no explicit name

    Returns:
        Parsed FieldOptions
    """
    parts = [p.strip() for p in tag.split(",")] if tag else [""]
    head = parts[0]
    if head == "-":
        return FieldOptions(suppressed=True)

    name = head.lower() if head else snake_case(field_name)

    omitempty = False
    verify_only = False
    personal = False
    user_input = False
    options: list[PropertyOption] = []

    for part in parts[1:]:
        if part == "omitempty":
            omitempty = True
        elif part == "verify":
            verify_only = True
        elif part in _PERSONAL_FLAGS:
            personal = True
        elif part == "user":
            user_input = True
        elif part in _OPTION_FLAGS:
            opt = _OPTION_FLAGS[part]
            if opt not in options:
                options.append(opt)

    return FieldOptions(
        name=name,
        omitempty=omitempty,
        options=tuple(options),
        verify_only=verify_only,
        personal_data=personal,
        user_input=user_input,
    )


def field_options(f: dataclasses.Field) -> FieldOptions:
    """Return the parsed tag options for a dataclass field."""
    return parse_tag(f.metadata.get(TAG_KEY, ""), f.name)


def keystone_field(tag: str = "", **kwargs: Any) -> Any:
    """Declare a dataclass field with keystone tag metadata.

    Accepts the same keyword arguments as dataclasses.field.
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[TAG_KEY] = tag
    return dataclasses.field(metadata=metadata, **kwargs)


def merge_definitions(a: PropertyDefinition, b: PropertyDefinition) -> PropertyDefinition:
    """Merge two definitions, keeping the stronger type and all options."""
    options = list(a.options)
    for opt in b.options:
        if opt not in options:
            options.append(opt)
    return PropertyDefinition(
        name=a.name or b.name,
        data_type=max(a.data_type, b.data_type),
        extended_type=max(a.extended_type, b.extended_type),
        options=options,
    )


def definition(
    data_type: PropertyType,
    extended_type: ExtendedType = ExtendedType.NONE,
    *options: PropertyOption,
) -> PropertyDefinition:
    """Shorthand for building a PropertyDefinition."""
    return PropertyDefinition(data_type=data_type, extended_type=extended_type, options=list(options))
