"""Money values."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ..codecs import ValueMarshaler
from ..wire import PropertyDefinition, PropertyType, Value

CURRENCY_MIXED = "mixed"


@dataclass
class Amount(ValueMarshaler):
    """A currency code and an integer number of minor units.

    Attributes:
        currency: ISO currency code, or "mixed" for heterogeneous sums
        units: Amount in minor units (cents, pence, ...)
    """

    currency: str = ""
    units: int = 0

    def is_zero(self) -> bool:
        return self.units == 0 and self.currency == ""

    def equals(self, other: Amount | None) -> bool:
        if other is None:
            return False
        return self.currency == other.currency and self.units == other.units

    def greater_than(self, other: Amount | None) -> bool:
        return self.units > (other.units if other else 0)

    def less_than(self, other: Amount | None) -> bool:
        return self.units < (other.units if other else 0)

    def marshal_value(self) -> Value | None:
        if self.is_zero():
            return None
        return Value(text=self.currency, int_value=self.units, known_type=PropertyType.AMOUNT)

    def unmarshal_value(self, value: Value) -> None:
        if value is not None:
            self.currency = value.text
            self.units = value.int_value

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=PropertyType.AMOUNT)


def sum_amounts(amounts: Iterable[Amount | None]) -> Amount | None:
    """Sum amounts, collapsing differing currencies into "mixed".

    Returns None for an empty input or a zero total.
    """
    items = list(amounts)
    if not items:
        return None
    if len(items) == 1:
        return items[0]

    total = Amount()
    for amt in items:
        if amt is None:
            continue
        total.units += amt.units
        if total.currency == "":
            total.currency = amt.currency
        elif total.currency != amt.currency:
            total.currency = CURRENCY_MIXED

    if total.is_zero():
        return None
    return total


def max_amount(amounts: Iterable[Amount]) -> Amount | None:
    result = None
    for amt in amounts:
        if result is None or amt.units > result.units:
            result = amt
    return result


def min_amount(amounts: Iterable[Amount]) -> Amount | None:
    result = None
    for amt in amounts:
        if result is None or amt.units < result.units:
            result = amt
    return result
