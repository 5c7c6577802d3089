"""
Unit tests for value codecs.

Tests cover:
- Codec selection by annotated type
- Scalar, map and list encoding
- Float32 normalization
- Value marshaler adapters
"""

from datetime import datetime, timezone
from enum import IntEnum
from typing import Optional

import pytest

from sdk.keystone_sdk.codecs import (
    BoolCodec,
    Float32,
    FloatCodec,
    IntCodec,
    IntListCodec,
    MapCodec,
    StringCodec,
    StringListCodec,
    TimeCodec,
    ValueMarshalerCodec,
    codec_for,
    codec_for_value,
    float32_normalize,
    value_from_any,
)
from sdk.keystone_sdk.errors import UnmarshalError
from sdk.keystone_sdk.values import PII, Amount, StringSet
from sdk.keystone_sdk.wire import ExtendedType, PropertyType, RepeatedValue, Value


class Priority(IntEnum):
    LOW = 1
    HIGH = 2


class Slug(str):
    pass


class TestCodecSelection:
    """Tests for codec_for."""

    @pytest.mark.parametrize(
        "tp,codec_type",
        [
            (str, StringCodec),
            (bool, BoolCodec),
            (int, IntCodec),
            (float, FloatCodec),
            (datetime, TimeCodec),
            (Optional[str], StringCodec),
            (int | None, IntCodec),
            (dict[str, str], MapCodec),
            (dict[str, bool], MapCodec),
            (list[str], StringListCodec),
            (list[int], IntListCodec),
        ],
    )
    def test_builtin_types(self, tp, codec_type):
        """Builtin annotations select the matching codec."""
        assert isinstance(codec_for(tp), codec_type)

    def test_value_marshaler_first(self):
        """Value marshalers win over every other rule."""
        codec = codec_for(Amount)
        assert isinstance(codec, ValueMarshalerCodec)
        assert codec.definition().data_type == PropertyType.AMOUNT

    def test_subclasses(self):
        """User subclasses of scalars keep their own type."""
        assert codec_for(Priority).tp is Priority
        assert codec_for(Slug).tp is Slug

    def test_unsupported(self):
        """Types without a codec return None."""
        assert codec_for(dict[int, str]) is None
        assert codec_for(list[float]) is None
        assert codec_for(object) is None

    def test_classified_text(self):
        """Classified text declares its extended type."""
        codec = codec_for(PII)
        assert codec.definition().extended_type == ExtendedType.PERSONAL


class TestScalarCodecs:
    """Tests for scalar encode and decode."""

    def test_int_widening(self):
        """Integers travel in the int slot and decode to their type."""
        codec = codec_for(Priority)
        encoded = codec.encode(Priority.HIGH)
        assert encoded.int_value == 2
        assert encoded.known_type == PropertyType.NUMBER
        decoded = codec.decode(encoded)
        assert decoded is Priority.HIGH

    def test_int_decode_failure(self):
        """A value the target type rejects raises UnmarshalError."""
        codec = codec_for(Priority)
        with pytest.raises(UnmarshalError):
            codec.decode(Value(int_value=9))

    def test_string_subclass(self):
        """String subclasses decode back to the subclass."""
        codec = codec_for(Slug)
        decoded = codec.decode(codec.encode(Slug("a-b")))
        assert isinstance(decoded, Slug)
        assert decoded == "a-b"

    def test_float32_normalized(self):
        """Float32 values drop single precision noise."""
        assert float32_normalize(0.1) == 0.1
        codec = codec_for(Float32)
        encoded = codec.encode(Float32(1.1))
        assert encoded.float_value == 1.1
        assert isinstance(codec.decode(encoded), Float32)

    def test_time(self):
        """Times travel in the time slot."""
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        codec = codec_for(datetime)
        assert codec.encode(now).time == now
        assert codec.encode(None) is None

    def test_zero_values(self):
        """Each codec knows its zero."""
        assert codec_for(str).is_zero("")
        assert codec_for(int).is_zero(0)
        assert not codec_for(int).is_zero(5)
        assert codec_for(list[str]).is_zero([])


class TestCollectionCodecs:
    """Tests for map and list codecs."""

    def test_bool_map(self):
        """Booleans in maps serialize as 1 and 0."""
        codec = codec_for(dict[str, bool])
        encoded = codec.encode({"a": True, "b": False})
        assert encoded.array.key_value == {"a": b"1", "b": b"0"}
        assert codec.decode(encoded) == {"a": True, "b": False}

    def test_int_map(self):
        """Integer maps round-trip through text."""
        codec = codec_for(dict[str, int])
        assert codec.decode(codec.encode({"n": 42})) == {"n": 42}

    def test_string_list(self):
        """String lists use the strings group."""
        codec = codec_for(list[str])
        encoded = codec.encode(["a", "b"])
        assert encoded.array.strings == ["a", "b"]
        assert codec.decode(encoded) == ["a", "b"]

    def test_int_list_missing_array(self):
        """A value without an array decodes to an empty list."""
        assert codec_for(list[int]).decode(Value()) == []

    def test_value_marshaler_decode_reuses_current(self):
        """Decoding into an existing value marshaler updates it in place."""
        codec = codec_for(StringSet)
        current = StringSet("x")
        decoded = codec.decode(Value(array=RepeatedValue(strings=["a"])), current)
        assert decoded is current
        assert decoded.values() == ["a"]


class TestRuntimeValues:
    """Tests for codec_for_value and value_from_any."""

    def test_runtime_selection(self):
        """Runtime values select codecs by their contents."""
        assert isinstance(codec_for_value(["a"]), StringListCodec)
        assert isinstance(codec_for_value([1, 2]), IntListCodec)
        assert codec_for_value([1, "a"]) is None
        assert codec_for_value(None) is None
        assert isinstance(codec_for_value({"a": True}), MapCodec)

    def test_value_from_any(self):
        """Arbitrary values encode, unsupported ones return None."""
        assert value_from_any("x").text == "x"
        assert value_from_any(3).int_value == 3
        assert value_from_any(True).bool_value is True
        assert value_from_any(object()) is None
        existing = Value(text="y")
        assert value_from_any(existing) is existing
