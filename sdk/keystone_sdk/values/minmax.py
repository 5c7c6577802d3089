"""Sorted integer pairs."""

from __future__ import annotations

from dataclasses import dataclass

from ..codecs import ValueMarshaler
from ..wire import PropertyDefinition, PropertyType, RepeatedValue, Value


@dataclass
class MinMax(ValueMarshaler):
    """A lower and upper bound stored as a two element int array.

    Decoding sorts whatever ints arrive and keeps the endpoints, so the
    order and length of the stored array do not matter.
    """

    min: int = 0
    max: int = 0

    def update(self, low: int, high: int) -> None:
        self.min = low
        self.max = high

    def is_zero(self) -> bool:
        return False

    def marshal_value(self) -> Value | None:
        return Value(array=RepeatedValue(ints=[self.min, self.max]), known_type=PropertyType.INTS)

    def unmarshal_value(self, value: Value) -> None:
        if value is None or value.array is None or not value.array.ints:
            return
        ints = sorted(value.array.ints)
        self.min = ints[0]
        self.max = ints[-1]

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=PropertyType.INTS)
