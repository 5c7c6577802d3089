"""
String and integer sets with incremental add / remove.

A set carries three buckets:
- values: the baseline as last known from the server
- to_add: members added since the baseline
- to_remove: members removed since the baseline

The wire form places each bucket in its own repeated group (array,
array_append, array_reduce). After a successful mutation the pending buckets
are folded into the baseline.

Example:
    >>> s = StringSet("a", "b")
    >>> s.add("c")
    >>> s.remove("a")
    >>> sorted(s.values())
    ['b', 'c']
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from ..codecs import ValueMarshaler
from ..wire import MutateResponse, PropertyDefinition, PropertyType, RepeatedValue, Value

T = TypeVar("T")


class _Set(ValueMarshaler, Generic[T]):
    data_type = PropertyType.UNMANAGED
    slot = ""

    def __init__(self, *values: T) -> None:
        self._values: dict[T, None] = {}
        self._to_add: dict[T, None] = {}
        self._to_remove: dict[T, None] = {}
        self._replace_existing = False
        self._apply(values)

    def _convert(self, value: Any) -> T:
        return value

    def _apply(self, values: Any) -> None:
        for v in values:
            self._values[self._convert(v)] = None

    def clear(self) -> None:
        self._values = {}
        self._to_add = {}
        self._to_remove = {}

    def add(self, value: T) -> None:
        value = self._convert(value)
        self._to_add[value] = None
        self._to_remove.pop(value, None)

    def append(self, *values: T) -> None:
        for v in values:
            self.add(v)

    def remove(self, value: T) -> None:
        value = self._convert(value)
        self._to_remove[value] = None
        self._to_add.pop(value, None)

    def reduce(self, *values: T) -> None:
        for v in values:
            self.remove(v)

    def replace_with(self, *values: T) -> None:
        """Discard everything and use values as the new baseline."""
        self.clear()
        self._replace_existing = True
        self._apply(values)

    def current_values(self) -> list[T]:
        return list(self._values)

    def values(self) -> list[T]:
        """Baseline minus pending removes plus pending adds."""
        result = [v for v in self._values if v not in self._to_remove]
        result.extend(v for v in self._to_add if v not in self._values or v in self._to_remove)
        return result

    def to_add(self) -> list[T]:
        return list(self._to_add)

    def to_remove(self) -> list[T]:
        return list(self._to_remove)

    @property
    def replace_existing(self) -> bool:
        return self._replace_existing

    def has(self, value: T) -> bool:
        return self._convert(value) in self._values

    def __contains__(self, value: object) -> bool:
        return value in self.values()

    def __len__(self) -> int:
        return len(self.values())

    def __iter__(self):
        return iter(self.values())

    def is_empty(self) -> bool:
        return not self._values

    def is_zero(self) -> bool:
        return not (self._values or self._to_add or self._to_remove)

    def diff(self, *values: T) -> list[T]:
        """Members present on exactly one side of values and the baseline."""
        check = {self._convert(v): self.has(v) for v in values}
        result = [v for v in self._values if v not in check]
        result.extend(v for v, matched in check.items() if not matched)
        return result

    def merge(self) -> None:
        merged = self.values()
        self.clear()
        self._replace_existing = False
        self._apply(merged)

    def observe_mutation(self, response: MutateResponse) -> None:
        if response is not None and response.success:
            self.merge()

    def _group(self, items: list[T]) -> RepeatedValue:
        return RepeatedValue(**{self.slot: items})

    def marshal_value(self) -> Value | None:
        value = Value(array=self._group(list(self._values)), known_type=self.data_type)
        if self._to_add:
            value.array_append = self._group(list(self._to_add))
        if self._to_remove:
            value.array_reduce = self._group(list(self._to_remove))
        return value

    def unmarshal_value(self, value: Value) -> None:
        if value is None:
            return
        if value.array is not None:
            self.clear()
            self._apply(getattr(value.array, self.slot))
        if value.array_append is not None:
            self.append(*getattr(value.array_append, self.slot))
        if value.array_reduce is not None:
            self.reduce(*getattr(value.array_reduce, self.slot))

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=self.data_type)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        return set(self.values()) == set(other.values())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(repr(v) for v in self.values())})"


class StringSet(_Set[str]):
    data_type = PropertyType.STRING_SET
    slot = "strings"

    def _convert(self, value: Any) -> str:
        return str(value)


class IntSet(_Set[int]):
    data_type = PropertyType.INT_SET
    slot = "ints"

    def _convert(self, value: Any) -> int:
        return int(value)
