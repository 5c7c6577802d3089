"""Heterogeneous scalar values."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..codecs import ValueMarshaler
from ..wire import PropertyDefinition, PropertyType, Value


def _millis(t: datetime | None) -> int:
    if t is None:
        return 0
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    return int(t.timestamp() * 1000)


class Mixed(ValueMarshaler):
    """A scalar holding any subset of text, int, bool, float, time and raw.

    Example:
        >>> m = Mixed(42)
        >>> m.int_value, m.to_string()
        (42, '42')
    """

    def __init__(self, value: Any = None) -> None:
        self.text = ""
        self.int_value = 0
        self.bool_value = False
        self.float_value = 0.0
        self.time: datetime | None = None
        self.raw = b""
        self.set_value(value)

    def set_value(self, value: Any) -> None:
        """Store value in the slot matching its type; unknown types are ignored."""
        if value is None:
            return
        if isinstance(value, bool):
            self.bool_value = value
        elif isinstance(value, int):
            self.int_value = value
        elif isinstance(value, float):
            self.float_value = value
        elif isinstance(value, str):
            self.text = value
        elif isinstance(value, datetime):
            self.time = value
        elif isinstance(value, (bytes, bytearray)):
            self.raw = bytes(value)

    def to_string(self) -> str:
        if self.text:
            return self.text
        if self.int_value:
            return str(self.int_value)
        if self.bool_value:
            return "true"
        if self.float_value:
            return repr(self.float_value)
        if self.time is not None:
            return self.time.isoformat()
        if self.raw:
            return self.raw.decode("utf-8", errors="replace")
        return ""

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"Mixed({self.to_string()!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mixed):
            return NotImplemented
        return self.matches(other)

    def matches(self, other: Mixed | None) -> bool:
        if other is None:
            return False
        return (
            self.text == other.text
            and self.int_value == other.int_value
            and self.bool_value == other.bool_value
            and self.float_value == other.float_value
            and _millis(self.time) == _millis(other.time)
            and self.raw == other.raw
        )

    def is_zero(self) -> bool:
        return not (self.text or self.int_value or self.bool_value or self.float_value or self.time is not None or self.raw)

    def marshal_value(self) -> Value | None:
        t = self.time
        if t is not None and t.tzinfo is not None:
            t = t.astimezone(timezone.utc)
        return Value(
            text=self.text,
            int_value=self.int_value,
            bool_value=self.bool_value,
            float_value=self.float_value,
            time=t,
            raw=self.raw,
            known_type=PropertyType.MIXED,
        )

    def unmarshal_value(self, value: Value) -> None:
        if value is None:
            return
        self.text = value.text
        self.int_value = value.int_value
        self.bool_value = value.bool_value
        self.float_value = value.float_value
        if value.time is not None:
            self.time = value.time
        self.raw = value.raw

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=PropertyType.MIXED)
