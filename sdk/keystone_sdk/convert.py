"""
Entity response conversion.

Turns an EntityResponse into the property bag the unmarshaler understands
and applies it to a record, together with the entity level state carried
outside the property list (entity id, relationships, objects, details,
lock).

Besides the stored properties, every response yields a set of hydration
only properties a record can opt into with a leading underscore tag:

- ``_entity_id``, ``_child_id``, ``_schema_id``
- ``_created``, ``_state_change``, ``_state``, ``_last_update``
- ``_count_relation``, ``_count_descendant`` and the child summary
  figures ``_child_count``, ``_child_sum``, ``_child_min``, ``_child_max``,
  ``_child_avg``; typed counts are addressable as ``name:key``,
  ``name:app:key`` and ``name:vendor:app:key``

Example:
    >>> @dataclass
    ... class User(BaseEntity):
    ...     name: str = ""
    ...     created: datetime | None = keystone_field("_created", default=None)
    >>> user = unmarshal(response, User())
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from datetime import datetime
from typing import Any, TypeVar

from .codecs import value_from_any, value_from_int, value_from_string
from .errors import UnmarshalError
from .marshal import MUST_PASS_RECORD, unmarshal_properties
from .property import Property
from .traits import (
    EntityDetail,
    EntityProvider,
    Locker,
    LockInfo,
    ObjectProvider,
    RelationshipProvider,
    SettableWatchedEntity,
    WatchedEntity,
)
from .values.amount import Amount
from .values.ids import ID
from .values.secure import SecureString
from .watcher import new_defaults_watcher
from .wire import EntityResponse, Key, Value

ENTITY_ID_MISSING = "entity ID missing"

T = TypeVar("T")

_CHILD_SUMMARY_FIELDS = ("count", "sum", "min", "max", "avg")


def _count_variants(name: str, key: Key | None) -> list[str]:
    if key is None or not key.key:
        return [name]
    vendor = key.source.vendor_id if key.source else ""
    app = key.source.app_id if key.source else ""
    return [
        f"{name}:{vendor}:{app}:{key.key}",
        f"{name}:{app}:{key.key}",
        f"{name}:{key.key}",
    ]


def keystone_properties(response: EntityResponse) -> dict[Property, Value]:
    """Hydration only properties derived from entity metadata and counts."""
    props: dict[Property, Value] = {}

    entity = response.entity
    if entity is not None:
        eid = ID(entity.entity_id)
        props[Property("_entity_id")] = value_from_string(eid.parent_id)
        if eid.child_id:
            props[Property("_child_id")] = value_from_string(eid.child_id)
        props[Property("_schema_id")] = value_from_string(entity.schema_id)
        for name, raw in (
            ("_created", entity.created),
            ("_state_change", entity.state_change),
            ("_state", entity.state),
            ("_last_update", entity.last_update),
        ):
            value = value_from_any(raw)
            if value is not None:
                props[Property(name)] = value

    counts: dict[str, int] = {}
    for rc in response.relationship_counts:
        for variant in _count_variants("_count_relation", rc.type):
            counts[variant] = rc.count
    for dc in response.descendant_counts:
        for variant in _count_variants("_count_descendant", dc.type):
            counts[variant] = dc.count
    for summary in response.child_summary:
        for field_name in _CHILD_SUMMARY_FIELDS:
            for variant in _count_variants(f"_child_{field_name}", summary.type):
                counts[variant] = getattr(summary, field_name)

    for variant, count in counts.items():
        props[Property(variant)] = value_from_int(count)
    return props


def response_properties(response: EntityResponse) -> dict[Property, Value]:
    """Full property bag for a response, stored properties included."""
    props = keystone_properties(response)
    for ep in response.properties:
        if ep.value is None:
            continue
        props[Property.parse(ep.property)] = ep.value
    return props


def unmarshal(response: EntityResponse | None, record: T) -> T:
    """Apply an entity response to a record.

    Sets the entity id, relationships, objects, entity details and lock
    result when the record supports them, hydrates or attaches its watcher,
    then unmarshals the property bag onto the record fields.

    Returns:
        The record passed in

    Raises:
        UnmarshalError: If record is a class or a primitive
    """
    if response is None or record is None:
        return record
    if isinstance(record, dict):
        unmarshal_generic(response, record)
        return record

    data = response_properties(response)

    if isinstance(record, EntityProvider) and response.entity is not None:
        record.set_keystone_id(response.entity.entity_id)
    if isinstance(record, RelationshipProvider) and response.relationships:
        record.set_relationships(response.relationships)
    if isinstance(record, ObjectProvider):
        for obj in response.objects:
            record.add_object(obj)
    if isinstance(record, EntityDetail) and response.entity is not None:
        record.set_entity_detail(response.entity)
    if isinstance(record, Locker) and response.lock is not None:
        record.set_lock_result(
            LockInfo(
                id=response.lock.lock_id,
                locked_until=response.lock.locked_until,
                message=response.lock.message,
                lock_acquired=response.lock.lock_acquired,
            )
        )

    if isinstance(record, WatchedEntity) and record.has_watcher():
        record.watcher().append_known_values(data)
    elif isinstance(record, SettableWatchedEntity):
        watcher = new_defaults_watcher(record)
        watcher.append_known_values(data)
        record.set_watcher(watcher)

    unmarshal_properties(data, record)
    return record


def _new_record(cls: type[T]) -> T:
    if not isinstance(cls, type) or not dataclasses.is_dataclass(cls):
        raise UnmarshalError(MUST_PASS_RECORD)
    return cls()


def _require_id(response: EntityResponse) -> str:
    if response.entity is None or not response.entity.entity_id:
        raise UnmarshalError(ENTITY_ID_MISSING)
    return response.entity.entity_id


def unmarshal_to_list(cls: type[T], responses: Iterable[EntityResponse]) -> list[T]:
    """Build one record per response, ordered by entity id.

    Raises:
        UnmarshalError: If cls is not a record type or a response has no id
    """
    responses = list(responses)
    for response in responses:
        _require_id(response)
    ordered = sorted(responses, key=lambda r: r.entity.entity_id)
    return [unmarshal(r, _new_record(cls)) for r in ordered]


def unmarshal_to_dict(cls: type[T], responses: Iterable[EntityResponse]) -> dict[str, T]:
    """Build one record per response keyed by entity id."""
    result: dict[str, T] = {}
    for response in responses:
        eid = _require_id(response)
        result[eid] = unmarshal(response, _new_record(cls))
    return result


def generic_value(value: Value) -> Any:
    """Best effort Python value for an untyped wire value.

    Later slots win: time over key values over int lists over strings over
    raw bytes over float over bool over amounts and secure strings over int
    over text.
    """
    result: Any = None
    if value.text:
        result = value.text
    if value.secure_text:
        result = value.secure_text
    if value.int_value != 0:
        result = value.int_value
    if value.text and value.int_value > 0:
        result = Amount(value.text, value.int_value)
    if value.secure_text and value.text:
        result = SecureString(value.secure_text, value.text)
    if value.bool_value:
        result = value.bool_value
    if value.float_value != 0:
        result = value.float_value
    if value.raw:
        result = value.raw
    array = value.array
    if array is not None:
        if array.strings:
            result = list(array.strings)
        if array.ints:
            result = list(array.ints)
        if array.key_value:
            result = dict(array.key_value)
    if isinstance(value.time, datetime):
        result = value.time
    return result


def unmarshal_generic(response: EntityResponse, dst: dict[str, Any]) -> dict[str, Any]:
    """Fill a plain dict with the stored properties of a response."""
    for ep in response.properties:
        if ep.value is None:
            continue
        result = generic_value(ep.value)
        if result is not None:
            dst[ep.property] = result
    return dst
