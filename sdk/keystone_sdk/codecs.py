"""
Per-type codecs for Keystone property values.

A codec converts a Python field value into a wire Value and back. Codecs are
selected from a field's annotated type in this order:

1. Value marshalers (types implementing marshal_value / unmarshal_value)
2. Exact types (datetime)
3. Scalars (bool, int, str, float, Float32) including user subclasses
4. String keyed maps of str, int, bytes or bool
5. bytes and lists of str or int
6. Otherwise no codec; nested dataclasses are handled by the marshaler

Invariants:
    - Integers always travel in the 64-bit int slot
    - Float32 values round-trip through a 6 fractional digit decimal
    - Booleans inside maps serialize as "1" / "0"
    - Decoding reconstructs the annotated type (IntEnum, str subclasses)
"""

from __future__ import annotations

import dataclasses
import struct
import types
import typing
from datetime import datetime
from typing import Any, Union

from .definition import merge_definitions
from .errors import UnmarshalError
from .wire import (
    EntityResponse,
    ExtendedType,
    MutateResponse,
    PropertyDefinition,
    PropertyType,
    RepeatedValue,
    Value,
)


class Float32(float):
    """A float stored with single precision semantics."""


def float32_normalize(value: float) -> float:
    """Drop single precision noise by rounding through a decimal string."""
    single = struct.unpack("<f", struct.pack("<f", value))[0]
    return float(format(single, ".6f"))


class ValueMarshaler:
    """Capability for self-describing domain value types.

    Subclasses provide their own wire mapping, schema definition and zero
    predicate. Types that also define ``observe_mutation`` merge pending
    changes once a mutation succeeds.
    """

    def marshal_value(self) -> Value | None:
        raise NotImplementedError

    def unmarshal_value(self, value: Value) -> None:
        raise NotImplementedError

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=PropertyType.UNMANAGED)

    def is_zero(self) -> bool:
        return self.marshal_value() is None


def is_value_marshaler(tp: Any) -> bool:
    return isinstance(tp, type) and callable(getattr(tp, "marshal_value", None)) and callable(
        getattr(tp, "unmarshal_value", None)
    )


def is_mutation_observer(obj: Any) -> bool:
    return callable(getattr(obj, "observe_mutation", None))


def is_retrieve_observer(obj: Any) -> bool:
    return callable(getattr(obj, "observe_retrieve", None))


class Codec:
    """Encoder / decoder pair for one field type."""

    data_type = PropertyType.UNMANAGED
    extended_type = ExtendedType.NONE
    # value marshalers elide their own zero values without omitempty
    elides_zero = False

    def definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=self.data_type, extended_type=self.extended_type)

    def encode(self, value: Any) -> Value | None:
        raise NotImplementedError

    def decode(self, value: Value, current: Any = None) -> Any:
        raise NotImplementedError

    def is_zero(self, value: Any) -> bool:
        return value is None or value == self.zero()

    def zero(self) -> Any:
        return None


class StringCodec(Codec):
    data_type = PropertyType.TEXT

    def __init__(self, tp: type = str) -> None:
        self.tp = tp
        # classified text types (PII, URL, ...) declare their extended type
        self.extended_type = getattr(tp, "extended_type", ExtendedType.NONE)

    def encode(self, value: Any) -> Value | None:
        return Value(text=str.__str__(value), known_type=PropertyType.TEXT)

    def decode(self, value: Value, current: Any = None) -> Any:
        return _construct(self.tp, value.text)

    def zero(self) -> Any:
        return ""


class BoolCodec(Codec):
    data_type = PropertyType.BOOLEAN

    def encode(self, value: Any) -> Value | None:
        return Value(bool_value=bool(value), known_type=PropertyType.BOOLEAN)

    def decode(self, value: Value, current: Any = None) -> Any:
        return value.bool_value

    def zero(self) -> Any:
        return False


class IntCodec(Codec):
    data_type = PropertyType.NUMBER

    def __init__(self, tp: type = int) -> None:
        self.tp = tp

    def encode(self, value: Any) -> Value | None:
        return Value(int_value=int(value), known_type=PropertyType.NUMBER)

    def decode(self, value: Value, current: Any = None) -> Any:
        return _construct(self.tp, value.int_value)

    def zero(self) -> Any:
        return 0


class FloatCodec(Codec):
    data_type = PropertyType.FLOAT

    def __init__(self, single: bool = False) -> None:
        self.single = single

    def encode(self, value: Any) -> Value | None:
        f = float(value)
        if self.single:
            f = float32_normalize(f)
        return Value(float_value=f, known_type=PropertyType.FLOAT)

    def decode(self, value: Value, current: Any = None) -> Any:
        if self.single:
            return Float32(float32_normalize(value.float_value))
        return value.float_value

    def zero(self) -> Any:
        return 0.0


class TimeCodec(Codec):
    data_type = PropertyType.TIME

    def encode(self, value: Any) -> Value | None:
        if value is None:
            return None
        return Value(time=value, known_type=PropertyType.TIME)

    def decode(self, value: Value, current: Any = None) -> Any:
        return value.time


class BytesCodec(Codec):
    data_type = PropertyType.BYTES

    def encode(self, value: Any) -> Value | None:
        return Value(raw=bytes(value), known_type=PropertyType.BYTES)

    def decode(self, value: Value, current: Any = None) -> Any:
        return value.raw

    def zero(self) -> Any:
        return b""


class MapCodec(Codec):
    """Codec for dict[str, X] stored in the key_value repeated group."""

    data_type = PropertyType.KEY_VALUE

    def __init__(self, item: type) -> None:
        self.item = item

    def _to_bytes(self, v: Any) -> bytes:
        if self.item is bytes:
            return bytes(v)
        if self.item is bool:
            return b"1" if v else b"0"
        return str(v).encode("utf-8")

    def _from_bytes(self, raw: bytes) -> Any:
        if self.item is bytes:
            return raw
        if self.item is bool:
            return raw == b"1"
        if self.item is int:
            return int(raw.decode("utf-8") or 0)
        return raw.decode("utf-8")

    def encode(self, value: Any) -> Value | None:
        kv = {str(k): self._to_bytes(v) for k, v in (value or {}).items()}
        return Value(array=RepeatedValue(key_value=kv), known_type=PropertyType.KEY_VALUE)

    def decode(self, value: Value, current: Any = None) -> Any:
        kv = value.array.key_value if value.array else {}
        return {k: self._from_bytes(v) for k, v in kv.items()}

    def is_zero(self, value: Any) -> bool:
        return not value

    def zero(self) -> Any:
        return {}


class StringListCodec(Codec):
    data_type = PropertyType.STRINGS

    def encode(self, value: Any) -> Value | None:
        return Value(array=RepeatedValue(strings=[str(v) for v in value or []]), known_type=PropertyType.STRINGS)

    def decode(self, value: Value, current: Any = None) -> Any:
        return list(value.array.strings) if value.array else []

    def is_zero(self, value: Any) -> bool:
        return not value

    def zero(self) -> Any:
        return []


class IntListCodec(Codec):
    data_type = PropertyType.INTS

    def __init__(self, item: type = int) -> None:
        self.item = item

    def encode(self, value: Any) -> Value | None:
        return Value(array=RepeatedValue(ints=[int(v) for v in value or []]), known_type=PropertyType.INTS)

    def decode(self, value: Value, current: Any = None) -> Any:
        ints = value.array.ints if value.array else []
        return [_construct(self.item, i) for i in ints]

    def is_zero(self, value: Any) -> bool:
        return not value

    def zero(self) -> Any:
        return []


class ValueMarshalerCodec(Codec):
    """Adapter exposing a ValueMarshaler type as a codec."""

    elides_zero = True

    def __init__(self, tp: type) -> None:
        self.tp = tp

    def definition(self) -> PropertyDefinition:
        return self.tp().property_definition()

    def encode(self, value: Any) -> Value | None:
        if value is None:
            return None
        encoded = value.marshal_value()
        if encoded is None:
            return None
        defn = value.property_definition()
        if encoded.known_type == PropertyType.UNMANAGED:
            encoded.known_type = defn.data_type
        return encoded

    def decode(self, value: Value, current: Any = None) -> Any:
        target = current if isinstance(current, self.tp) else self.tp()
        target.unmarshal_value(value)
        return target

    def is_zero(self, value: Any) -> bool:
        if value is None:
            return True
        check = getattr(value, "is_zero", None)
        return bool(check()) if callable(check) else False

    def zero(self) -> Any:
        return self.tp()


def _construct(tp: type, raw: Any) -> Any:
    if tp is type(raw):
        return raw
    try:
        return tp(raw)
    except (TypeError, ValueError) as e:
        raise UnmarshalError(f"cannot convert {raw!r} to {tp.__name__}") from e


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """Strip None from Optional / union annotations."""
    origin = typing.get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return tp, False


def _is_nested_child(tp: Any) -> bool:
    return isinstance(tp, type) and callable(getattr(tp, "set_child_id", None))


_SIMPLE_CODECS: dict[type, Codec] = {
    bool: BoolCodec(),
    int: IntCodec(),
    str: StringCodec(),
    float: FloatCodec(),
    Float32: FloatCodec(single=True),
    datetime: TimeCodec(),
    bytes: BytesCodec(),
    bytearray: BytesCodec(),
}


def codec_for(tp: Any) -> Codec | None:
    """Select the codec for an annotated field type."""
    tp, _ = unwrap_optional(tp)

    if is_value_marshaler(tp):
        return ValueMarshalerCodec(tp)

    if tp in _SIMPLE_CODECS:
        return _SIMPLE_CODECS[tp]

    if isinstance(tp, type):
        if issubclass(tp, bool):
            return _SIMPLE_CODECS[bool]
        if issubclass(tp, int):
            return IntCodec(tp)
        if issubclass(tp, str):
            return StringCodec(tp)
        if issubclass(tp, Float32):
            return _SIMPLE_CODECS[Float32]
        if issubclass(tp, float):
            return _SIMPLE_CODECS[float]
        if issubclass(tp, datetime):
            return _SIMPLE_CODECS[datetime]

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin is dict and len(args) == 2 and args[0] is str:
        item = args[1]
        if item in (str, int, bytes, bool):
            return MapCodec(item)

    if origin is list and len(args) == 1:
        item = args[0]
        if _is_nested_child(item):
            return None
        if isinstance(item, type) and issubclass(item, str):
            return _STRING_LIST
        if isinstance(item, type) and issubclass(item, int) and not issubclass(item, bool):
            return IntListCodec(item)

    return None


_STRING_LIST = StringListCodec()


def codec_for_value(value: Any) -> Codec | None:
    """Select a codec from a runtime value rather than an annotation."""
    if value is None:
        return None
    if isinstance(value, list):
        if all(isinstance(v, str) for v in value):
            return _STRING_LIST
        if all(isinstance(v, int) and not isinstance(v, bool) for v in value):
            return IntListCodec()
        return None
    if isinstance(value, dict):
        items = list(value.values())
        for item in (bool, int, bytes, str):
            if items and all(type(v) is item for v in items):
                return MapCodec(item)
        return MapCodec(str) if not items else None
    return codec_for(type(value))


def value_from_any(value: Any) -> Value | None:
    """Encode an arbitrary Python value, or return None when unsupported."""
    if isinstance(value, Value):
        return value
    codec = codec_for_value(value)
    if codec is None:
        return None
    return codec.encode(value)


def value_from_string(value: str) -> Value:
    return Value(text=value, known_type=PropertyType.TEXT)


def value_from_int(value: int) -> Value:
    return Value(int_value=value, known_type=PropertyType.NUMBER)


def field_definition(codec: Codec, tag_definition: PropertyDefinition) -> PropertyDefinition:
    """Merge a tag-derived definition with the codec's own definition."""
    return merge_definitions(tag_definition, codec.definition())


def observe_mutation(obj: Any, response: MutateResponse) -> None:
    """Dispatch a successful mutation to every observer inside a record."""
    if obj is None or not dataclasses.is_dataclass(obj) or isinstance(obj, type):
        return
    for f in dataclasses.fields(obj):
        current = getattr(obj, f.name, None)
        if current is None:
            continue
        if is_mutation_observer(current):
            current.observe_mutation(response)
        elif dataclasses.is_dataclass(current):
            observe_mutation(current, response)


def observe_retrieve(obj: Any, response: EntityResponse) -> None:
    if is_retrieve_observer(obj):
        obj.observe_retrieve(response)
