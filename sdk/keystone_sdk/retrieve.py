"""
Retrievers and retrieve options.

A retriever identifies the single entity a get targets; retrieve options
shape the EntityView that decides what comes back.

Some options also touch the enclosing EntityRequest (lock acquisition,
verified property probes) through ``apply_request``, and some observe the
response once it arrives through ``observe_retrieve`` (documents, child
loaders).

Example:
    >>> await actor.get(
    ...     by_entity_id(User, "abc"),
    ...     user,
    ...     with_properties("name", "email"),
    ...     with_labels(),
    ... )
"""

from __future__ import annotations

from typing import Any, TypeVar

from .property import type_name
from .traits import Document, set_child_data
from .values.ids import hash_id
from .wire import (
    ChildRequest,
    EntityChild,
    EntityProperty,
    EntityRequest,
    EntityResponse,
    EntityView,
    IDLookup,
    Key,
    PropertyRequest,
    Value,
    VendorApp,
)

T = TypeVar("T")


def _entity_type(entity_type: Any) -> str:
    if isinstance(entity_type, str):
        return entity_type
    return type_name(entity_type)


# ---------------------------------------------------------------------------
# Retrievers
# ---------------------------------------------------------------------------


class Retriever:
    """Identifies a single entity for get."""

    entity_type: str = ""

    def base_request(self) -> EntityRequest:
        raise NotImplementedError


class ByEntityID(Retriever):
    def __init__(self, entity_type: Any, entity_id: str) -> None:
        self.entity_type = _entity_type(entity_type)
        self.entity_id = str(entity_id)

    def base_request(self) -> EntityRequest:
        return EntityRequest(entity_id=self.entity_id, view=EntityView())


class ByUniqueProperty(Retriever):
    def __init__(self, entity_type: Any, unique_id: str, prop: str) -> None:
        self.entity_type = _entity_type(entity_type)
        self.unique_id = unique_id
        self.property = prop

    def base_request(self) -> EntityRequest:
        return EntityRequest(
            view=EntityView(),
            unique_id=IDLookup(schema_id=self.entity_type, property=self.property, unique_id=self.unique_id),
        )


def by_entity_id(entity_type: Any, entity_id: str) -> ByEntityID:
    return ByEntityID(entity_type, entity_id)


def by_hash_id(entity_type: Any, raw_id: str) -> ByEntityID:
    """Retrieve an entity by the key its id was hashed from.

    Raises:
        ValidationError: If raw_id contains '#'
    """
    return ByEntityID(entity_type, hash_id(raw_id))


def by_unique_property(entity_type: Any, unique_id: str, prop: str) -> ByUniqueProperty:
    return ByUniqueProperty(entity_type, unique_id, prop)


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class RetrieveOption:
    """Base class for view options."""

    def apply(self, view: EntityView) -> None:
        raise NotImplementedError


def apply_retrieve_options(request: EntityRequest, options: tuple[RetrieveOption | None, ...]) -> None:
    """Apply view options, plus request options where supported."""
    if request.view is None:
        request.view = EntityView()
    for opt in options:
        if opt is None:
            continue
        opt.apply(request.view)
        apply_request = getattr(opt, "apply_request", None)
        if callable(apply_request):
            apply_request(request)


class RetrieveOptions(RetrieveOption):
    """Several options behaving as one."""

    def __init__(self, *options: RetrieveOption | None) -> None:
        self.options = [o for o in options if o is not None]

    def apply(self, view: EntityView) -> None:
        for opt in self.options:
            opt.apply(view)

    def apply_request(self, request: EntityRequest) -> None:
        for opt in self.options:
            fn = getattr(opt, "apply_request", None)
            if callable(fn):
                fn(request)

    def observe_retrieve(self, response: EntityResponse) -> None:
        for opt in self.options:
            fn = getattr(opt, "observe_retrieve", None)
            if callable(fn):
                fn(response)


def retrieve_options(*options: RetrieveOption | None) -> RetrieveOptions:
    return RetrieveOptions(*options)


class PropertyLoader(RetrieveOption):
    def __init__(self, properties: tuple[str, ...], decrypt: bool = False) -> None:
        self.properties = list(properties)
        self.decrypt = decrypt

    def apply(self, view: EntityView) -> None:
        view.properties.append(PropertyRequest(properties=list(self.properties), decrypt=self.decrypt))


def with_properties(*properties: str) -> PropertyLoader:
    return PropertyLoader(properties)


def with_decrypted_properties(*properties: str) -> PropertyLoader:
    return PropertyLoader(properties, decrypt=True)


def with_property(decrypt: bool, *properties: str) -> PropertyLoader:
    return PropertyLoader(properties, decrypt=decrypt)


class _RelationshipsLoader(RetrieveOption):
    def __init__(self, keys: tuple[str, ...]) -> None:
        self.keys = keys

    def apply(self, view: EntityView) -> None:
        view.relationship_by_type.extend(Key(key=k) for k in self.keys)


def with_relationships(*keys: str) -> RetrieveOption:
    return _RelationshipsLoader(keys)


class _Flag(RetrieveOption):
    """Sets a single boolean or string attribute on the view."""

    def __init__(self, attr: str, value: Any = True) -> None:
        self.attr = attr
        self.value = value

    def apply(self, view: EntityView) -> None:
        setattr(view, self.attr, self.value)


def with_labels() -> RetrieveOption:
    return _Flag("labels")


def with_summary() -> RetrieveOption:
    return _Flag("summary")


def with_view(name: str) -> RetrieveOption:
    return _Flag("name", name)


def with_child_summary() -> RetrieveOption:
    return _Flag("child_summary")


def with_document_revision_list() -> RetrieveOption:
    return _Flag("document_revisions")


def with_total_relationship_count() -> RetrieveOption:
    return _Flag("relationship_count")


class _RelationshipTypeCount(RetrieveOption):
    def __init__(self, relation_type: str, app_id: str = "", vendor_id: str = "") -> None:
        self.key = Key(key=relation_type, source=VendorApp(vendor_id=vendor_id, app_id=app_id))

    def apply(self, view: EntityView) -> None:
        view.relationship_count_type.append(self.key)


def with_relationship_count(relation_type: str = "", app_id: str = "", vendor_id: str = "") -> RetrieveOption:
    """Count relationships, in total when no type is given."""
    if not relation_type and not app_id and not vendor_id:
        return with_total_relationship_count()
    return _RelationshipTypeCount(relation_type, app_id, vendor_id)


def with_sibling_relationship_count(relation_type: str) -> RetrieveOption:
    return _RelationshipTypeCount(relation_type)


class _DescendantTypeCount(RetrieveOption):
    def __init__(self, entity_type: str, app_id: str = "", vendor_id: str = "") -> None:
        self.key = Key(key=entity_type, source=VendorApp(vendor_id=vendor_id, app_id=app_id))

    def apply(self, view: EntityView) -> None:
        view.descendant_count_type.append(self.key)


def with_descendant_count(entity_type: str) -> RetrieveOption | None:
    if not entity_type:
        return None
    return _DescendantTypeCount(entity_type)


class DocumentLoader(RetrieveOption):
    """Loads the latest document, or one revision, into a Document."""

    def __init__(self, document: Document | None = None, revision_id: str = "") -> None:
        self.document = document
        self.revision_id = revision_id

    def apply(self, view: EntityView) -> None:
        view.latest_document = self.revision_id == ""
        view.document_revision = self.revision_id

    def observe_retrieve(self, response: EntityResponse) -> None:
        if self.document is None:
            return
        for doc in response.documents:
            if doc.revision_id and self.revision_id and doc.revision_id != self.revision_id:
                continue
            self.document.hydrate(doc)


def with_document(document: Document | None = None) -> DocumentLoader:
    return DocumentLoader(document)


def with_document_revision(revision_id: str, document: Document | None = None) -> DocumentLoader:
    return DocumentLoader(document, revision_id)


class _WithObjects(RetrieveOption):
    def __init__(self, paths: tuple[str, ...]) -> None:
        self.paths = list(paths)

    def apply(self, view: EntityView) -> None:
        if self.paths:
            view.object_paths = list(self.paths)
        else:
            view.list_objects = True


def with_objects(*paths: str) -> RetrieveOption:
    """Load stored objects; all of them when no paths are given."""
    return _WithObjects(paths)


class _WithLock(RetrieveOption):
    def __init__(self, message: str, ttl_seconds: int) -> None:
        self.message = message
        self.ttl_seconds = ttl_seconds

    def apply(self, view: EntityView) -> None:
        return None

    def apply_request(self, request: EntityRequest) -> None:
        request.request_lock = True
        request.lock_ttl_seconds = self.ttl_seconds
        request.lock_message = self.message


def with_lock(message: str, ttl_seconds: int) -> RetrieveOption:
    """Acquire a lock on the entity while reading it."""
    return _WithLock(message, ttl_seconds)


class _VerifiedProperty(RetrieveOption):
    def __init__(self, prop: str, compare: str) -> None:
        self.property = prop
        self.compare = compare

    def apply(self, view: EntityView) -> None:
        view.properties.append(PropertyRequest(properties=[self.property]))

    def apply_request(self, request: EntityRequest) -> None:
        request.verify_properties.append(
            EntityProperty(property=self.property, value=Value(secure_text=self.compare))
        )


def with_verified_property(prop: str, compare: str) -> RetrieveOption:
    """Ask the server whether a verify-only property matches compare."""
    return _VerifiedProperty(prop, compare)


class ChildLoader(RetrieveOption):
    """Requests nested children of one type and keeps the matching ones."""

    def __init__(self, child_type: str, *ids: str) -> None:
        self.child_type = child_type
        self.ids: dict[str, bool] = {cid: False for cid in ids}
        self.loaded: list[EntityChild] = []

    def apply(self, view: EntityView) -> None:
        view.children.append(ChildRequest(type=Key(key=self.child_type), cid=list(self.ids)))

    def observe_retrieve(self, response: EntityResponse) -> None:
        for child in response.children:
            if child.type is None or child.type.key != self.child_type:
                continue
            if not self.ids:
                self.loaded.append(child)
            elif child.cid in self.ids:
                self.loaded.append(child)
                self.ids[child.cid] = True

    def missing(self) -> list[str]:
        """Requested child ids the server did not return."""
        return [cid for cid, found in self.ids.items() if not found]


def with_children(child_type: Any, *ids: str) -> ChildLoader:
    return ChildLoader(_entity_type(child_type), *ids)


def children_from_loader(cls: type[T], loader: ChildLoader) -> list[T]:
    """Build one child record per loaded child."""
    result = []
    for child in loader.loaded:
        entity = cls()
        set_child_data(entity, child.cid, child.value, child.data)
        result.append(entity)
    return result
