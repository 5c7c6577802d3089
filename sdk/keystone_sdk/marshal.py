"""
Record marshaling for Keystone.

Converts dataclass records into the flat property bag sent on the wire and
applies property bags back onto records.

Key functions:
- marshal: record -> {Property: Value}
- marshal_value: single Python value -> Value
- unmarshal_properties: {Property: Value} -> record fields

Nested dataclass fields are flattened with a dotted prefix, so a field
``address`` holding a record with ``city`` produces the property
``address.city``.

Invariants:
    - Hydration only properties (leading "_") are never emitted
    - Missing properties leave record fields untouched
    - Records implementing marshal_keystone / unmarshal_keystone bypass
      field reflection entirely

Example:
    >>> @dataclass
    ... class Address:
    ...     city: str = ""
    >>> @dataclass
    ... class User:
    ...     name: str = ""
    ...     address: Address = field(default_factory=Address)
    >>> sorted(str(p) for p in marshal(User("Ann", Address("Leeds"))))
    ['address.city', 'name']
"""

from __future__ import annotations

import dataclasses
from typing import Any

from .codecs import codec_for_value
from .errors import MarshalError, UnmarshalError
from .plan import plan_for
from .property import Property
from .wire import PropertyType, Value

CANNOT_MARSHAL_NIL = "cannot marshal nil"
CANNOT_MARSHAL_PRIMITIVES = "cannot marshal primitive type"
CANNOT_MARSHAL_VALUE = "cannot marshal value"
MUST_PASS_RECORD = "you must pass a record instance"


def _is_record(obj: Any) -> bool:
    return dataclasses.is_dataclass(obj) and not isinstance(obj, type)


def marshal(record: Any) -> dict[Property, Value]:
    """Marshal a record into its property bag.

    Args:
        record: Dataclass instance, or any object with marshal_keystone()

    Returns:
        Mapping of property to wire value

    Raises:
        MarshalError: If record is None or not a record
        UnsupportedTypeError: If a field type has no codec
    """
    if record is None:
        raise MarshalError(CANNOT_MARSHAL_NIL)

    custom = getattr(record, "marshal_keystone", None)
    if callable(custom) and not isinstance(record, type):
        return custom()

    if not _is_record(record):
        raise MarshalError(CANNOT_MARSHAL_PRIMITIVES)

    properties: dict[Property, Value] = {}
    for fp in plan_for(type(record)):
        if fp.hydrate_only:
            continue
        current = getattr(record, fp.attr, None)

        if fp.codec is not None:
            if current is None:
                continue
            if fp.options.omitempty and fp.codec.is_zero(current):
                continue
            if fp.codec.elides_zero and fp.codec.is_zero(current):
                continue
            encoded = fp.codec.encode(current)
            if encoded is None:
                continue
            if fp.definition is not None and fp.definition.data_type != PropertyType.UNMANAGED:
                encoded.known_type = fp.definition.data_type
            properties[fp.prop] = encoded
            continue

        if current is None:
            continue
        for sub, value in marshal(current).items():
            properties[sub.with_prefix(fp.prop.name)] = value

    return properties


def marshal_value(value: Any) -> Value:
    """Marshal a single value using the codec for its runtime type."""
    if value is None:
        raise MarshalError(CANNOT_MARSHAL_NIL)
    if isinstance(value, Value):
        return value
    codec = codec_for_value(value)
    if codec is None:
        raise MarshalError(CANNOT_MARSHAL_VALUE)
    encoded = codec.encode(value)
    if encoded is None:
        raise MarshalError(CANNOT_MARSHAL_VALUE)
    return encoded


def unmarshal_properties(data: dict[Property, Value], record: Any) -> None:
    """Apply a property bag to a record in place.

    Properties are grouped by prefix. Leaf fields are decoded through their
    codec, nested composites are created on demand and filled recursively.

    Raises:
        UnmarshalError: If record is a class or not a record
    """
    if record is None or not data:
        return

    custom = getattr(record, "unmarshal_keystone", None)
    if callable(custom) and not isinstance(record, type):
        custom(data)
        return

    if not _is_record(record):
        raise UnmarshalError(MUST_PASS_RECORD)

    prefixed: dict[str, dict[Property, Value]] = {}
    for prop, value in data.items():
        if prop.prefix:
            prefixed.setdefault(prop.prefix, {})[Property.parse(prop.name)] = value

    for fp in plan_for(type(record)):
        direct = data.get(fp.prop)
        sub = prefixed.get(fp.prop.name)
        if direct is None and not sub:
            continue

        current = getattr(record, fp.attr, None)
        if fp.codec is not None:
            if direct is None:
                continue
            setattr(record, fp.attr, fp.codec.decode(direct, current))
        elif sub:
            if current is None:
                current = fp.nested()
                setattr(record, fp.attr, current)
            unmarshal_properties(sub, current)


class MarshaledEntity:
    """Hand-built property bag for records that marshal themselves."""

    def __init__(self) -> None:
        self.properties: dict[Property, Value] = {}

    def append(self, name: str, value: Any) -> None:
        self.properties[Property.of(name)] = marshal_value(value)
