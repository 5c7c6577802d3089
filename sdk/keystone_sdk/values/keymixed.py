"""Maps of Mixed scalars."""

from __future__ import annotations

from collections.abc import Mapping

from ..wire import PropertyType, RepeatedValue
from .keyed import KeyedBuckets
from .mixed import Mixed


class KeyMixed(KeyedBuckets[Mixed]):
    """Map of string keys to Mixed values, carried in the mixed group."""

    data_type = PropertyType.KEY_MIXED

    def _encode_group(self, items: Mapping[str, Mixed]) -> RepeatedValue:
        return RepeatedValue(mixed={k: v.marshal_value() for k, v in items.items()})

    def _decode_group(self, group: RepeatedValue) -> dict[str, Mixed]:
        result: dict[str, Mixed] = {}
        for k, raw in group.mixed.items():
            m = Mixed()
            m.unmarshal_value(raw)
            result[k] = m
        return result

    def _removal_group(self) -> RepeatedValue:
        return RepeatedValue(mixed={k: Mixed().marshal_value() for k in self._to_remove})

    def _removed_keys(self, group: RepeatedValue) -> list[str]:
        return list(group.mixed)

    def diff(self, other: Mapping[str, Mixed]) -> dict[str, Mixed]:
        """Entries that are new in other or absent from it; matching entries cancel."""
        result = dict(self._values)
        for k, v in other.items():
            if k not in result:
                result[k] = v
            elif v.matches(result[k]):
                del result[k]
        return result
