"""
Intervals such as "1 month" or "5 days".

Ordering between intervals of different units normalizes both sides to
seconds, treating a month as 30 days and a year as 365 days. An indefinite
interval is greater than any finite one; "none" is zero.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from ..codecs import ValueMarshaler
from ..wire import ExtendedType, PropertyDefinition, PropertyType, Value


class IntervalType(str, Enum):
    NONE = "none"
    SECOND = "sec"
    MINUTE = "min"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    INDEFINITE = "indefinite"


_SECONDS = {
    IntervalType.SECOND: 1,
    IntervalType.MINUTE: 60,
    IntervalType.HOUR: 3600,
    IntervalType.DAY: 86400,
    IntervalType.WEEK: 604800,
    IntervalType.MONTH: 2592000,
    IntervalType.YEAR: 31536000,
}

_COUNTLESS = (IntervalType.NONE, IntervalType.INDEFINITE)


def _parse_type(raw: str) -> IntervalType | str:
    try:
        return IntervalType(raw)
    except ValueError:
        return raw


def seconds_per_interval(interval_type: IntervalType | str) -> float:
    """Seconds in one unit; 0 for none, infinity for indefinite."""
    if interval_type == IntervalType.NONE:
        return 0
    if interval_type == IntervalType.INDEFINITE:
        return math.inf
    return _SECONDS.get(interval_type, 0)


@dataclass
class Interval(ValueMarshaler):
    """A typed duration count.

    Attributes:
        type: Unit of the interval ("" when unset)
        count: Number of units, forced to 0 for none and indefinite
    """

    type: IntervalType | str = ""
    count: int = 0

    def __post_init__(self) -> None:
        if self.type in _COUNTLESS:
            self.count = 0

    def __str__(self) -> str:
        t = self.type.value if isinstance(self.type, IntervalType) else self.type
        if self.type in _COUNTLESS:
            return t.title()
        if self.count in (1, -1):
            return f"{self.count} {t}"
        if t and not t.endswith("s"):
            t += "s"
        return f"{self.count} {t}"

    def is_zero(self) -> bool:
        return self.count == 0 and self.type == ""

    def equals(self, other: Interval | None) -> bool:
        if other is None:
            return False
        return self.type == other.type and self.count == other.count

    def approximate_seconds(self) -> float:
        per = seconds_per_interval(self.type)
        if per == math.inf:
            return per
        return self.count * per

    def greater_than(self, other: Interval | None) -> bool:
        if other is None:
            return True
        if self.type == other.type:
            return self.count > other.count
        return self.approximate_seconds() > other.approximate_seconds()

    def less_than(self, other: Interval | None) -> bool:
        if other is None:
            return False
        if self.type == other.type:
            return self.count < other.count
        return self.approximate_seconds() < other.approximate_seconds()

    def to_timedelta(self) -> timedelta:
        """Convert to a timedelta; indefinite maps to timedelta.max."""
        per = seconds_per_interval(self.type)
        if per == math.inf:
            return timedelta.max
        return timedelta(seconds=self.count * per)

    def diff(self, other: Interval | None) -> Interval | None:
        if other is None or self.type != other.type:
            return None
        return Interval(self.type, self.count - other.count)

    def marshal_value(self) -> Value | None:
        if self.is_zero():
            return None
        t = self.type.value if isinstance(self.type, IntervalType) else self.type
        return Value(text=t, int_value=self.count, known_type=PropertyType.INTERVAL)

    def unmarshal_value(self, value: Value) -> None:
        if value is None:
            return
        self.type = _parse_type(value.text)
        self.count = 0 if self.type in _COUNTLESS else value.int_value

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=PropertyType.INTERVAL, extended_type=ExtendedType.INTERVAL)
