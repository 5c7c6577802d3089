"""
Dynamic properties.

Dynamic properties are stored against an entity outside of its schema. They
are written with ``Actor.set_dynamic_properties`` and read back as a
PropertyValueList.
"""

from __future__ import annotations

import logging
from typing import Any

from .codecs import codec_for_value
from .marshal import marshal
from .watcher import match_value
from .wire import EntityProperty, Value

logger = logging.getLogger(__name__)


class PropertyValueList(dict[str, Value]):
    """Dynamic property values keyed by property name, with typed getters."""

    def get_text(self, key: str, default: str = "") -> str:
        value = self.get(key)
        return value.text if value is not None else default

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key)
        return value.int_value if value is not None else default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.get(key)
        return value.float_value if value is not None else default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        return value.bool_value if value is not None else default


def new_dynamic_property(key: str, value: Any) -> EntityProperty | None:
    """Encode one dynamic property, or None if the value has no codec."""
    codec = codec_for_value(value)
    if codec is None:
        logger.debug(f"No codec for dynamic property {key} of type {type(value).__name__}")
        return None
    encoded = codec.encode(value)
    if encoded is None:
        return None
    return EntityProperty(property=key, value=encoded)


def new_dynamic_properties(props: dict[str, Any]) -> list[EntityProperty]:
    """Encode a mapping of values, dropping any that cannot be encoded."""
    result = []
    for key, value in props.items():
        prop = new_dynamic_property(key, value)
        if prop is not None:
            result.append(prop)
    return result


def dynamic_properties_from_record(record: Any, skip_defaults: bool = False) -> list[EntityProperty]:
    """Encode every field of a record as dynamic properties.

    Args:
        record: Dataclass instance
        skip_defaults: Leave out fields still holding their default value

    Raises:
        MarshalError: If record is not a record instance
    """
    values = marshal(record)
    defaults = marshal(type(record)()) if skip_defaults else {}
    result = []
    for prop, value in sorted(values.items(), key=lambda kv: kv[0].full_name):
        default = defaults.get(prop)
        if default is not None and match_value(default, value):
            continue
        result.append(EntityProperty(property=prop.full_name, value=value))
    return result
