"""
Keyed collections with incremental set / remove.

KeyedBuckets is the shared three-bucket map: a baseline, pending adds and
pending removes. Keyed stores arbitrary JSON serializable values in the
key_value group of the wire value.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from ..codecs import ValueMarshaler
from ..wire import MutateResponse, PropertyDefinition, PropertyType, RepeatedValue, Value

T = TypeVar("T")


class KeyedBuckets(ValueMarshaler, Generic[T]):
    """Baseline map plus pending adds and removes."""

    data_type = PropertyType.KEY_VALUE

    def __init__(self, values: Mapping[str, T] | None = None) -> None:
        self._values: dict[str, T] = dict(values or {})
        self._to_add: dict[str, T] = {}
        self._to_remove: dict[str, None] = {}
        self._replace_existing = False

    def clear(self) -> None:
        self._values = {}
        self._to_add = {}
        self._to_remove = {}

    def set(self, key: str, value: T) -> None:
        """Write straight into the baseline."""
        self._values[key] = value
        self._to_remove.pop(key, None)

    def append(self, key: str, value: T) -> None:
        """Queue an add for the next mutation."""
        self._to_add[key] = value
        self._to_remove.pop(key, None)

    def remove(self, key: str) -> None:
        self._to_remove[key] = None
        self._to_add.pop(key, None)

    def replace(self, values: Mapping[str, T]) -> None:
        self.clear()
        self._replace_existing = True
        self._values = dict(values)

    def get(self, key: str, default: T | None = None) -> T | None:
        if key in self._to_add:
            return self._to_add[key]
        if key in self._to_remove:
            return default
        return self._values.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._values

    def values(self) -> dict[str, T]:
        result = {k: v for k, v in self._values.items() if k not in self._to_remove}
        result.update(self._to_add)
        return result

    def to_add(self) -> dict[str, T]:
        return dict(self._to_add)

    def to_remove(self) -> list[str]:
        return list(self._to_remove)

    @property
    def replace_existing(self) -> bool:
        return self._replace_existing

    def is_empty(self) -> bool:
        return not self._values

    def is_zero(self) -> bool:
        return not (self._values or self._to_add or self._to_remove)

    def merge(self) -> None:
        merged = self.values()
        self.clear()
        self._replace_existing = False
        self._values = merged

    def observe_mutation(self, response: MutateResponse) -> None:
        if response is not None and response.success:
            self.merge()

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=self.data_type)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.values() == other.values()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.values()!r})"

    # subclasses choose how entries travel in a repeated group

    def _encode_group(self, items: Mapping[str, T]) -> RepeatedValue:
        raise NotImplementedError

    def _decode_group(self, group: RepeatedValue) -> dict[str, T]:
        raise NotImplementedError

    def _removal_group(self) -> RepeatedValue:
        return RepeatedValue(key_value={k: b"" for k in self._to_remove})

    def _removed_keys(self, group: RepeatedValue) -> list[str]:
        return list(group.key_value)

    def marshal_value(self) -> Value | None:
        value = Value(array=self._encode_group(self._values), known_type=self.data_type)
        if self._to_add:
            value.array_append = self._encode_group(self._to_add)
        if self._to_remove:
            value.array_reduce = self._removal_group()
        return value

    def unmarshal_value(self, value: Value) -> None:
        if value is None:
            return
        if value.array is not None:
            self._values = self._decode_group(value.array)
        if value.array_append is not None:
            for k, v in self._decode_group(value.array_append).items():
                self.set(k, v)
        if value.array_reduce is not None:
            for k in self._removed_keys(value.array_reduce):
                self.remove(k)


class Keyed(KeyedBuckets[Any]):
    """Map of JSON serializable values.

    Example:
        >>> k = Keyed({"plan": {"seats": 5}})
        >>> k.append("trial", True)
        >>> k.values()
        {'plan': {'seats': 5}, 'trial': True}
    """

    def _encode_group(self, items: Mapping[str, Any]) -> RepeatedValue:
        return RepeatedValue(key_value={k: json.dumps(v).encode("utf-8") for k, v in items.items()})

    def _decode_group(self, group: RepeatedValue) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for k, raw in group.key_value.items():
            try:
                result[k] = json.loads(raw)
            except ValueError:
                continue
        return result
