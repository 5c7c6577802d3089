"""
Per-language text with optional plural forms.

Singular forms travel in the key_value group keyed by language code. Plural
forms travel alongside under ``<language>#plural``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from ..wire import PropertyType, RepeatedValue
from .keyed import KeyedBuckets

PLURAL_SUFFIX = "#plural"


@dataclass(frozen=True)
class Translation:
    singular: str = ""
    plural: str = ""

    def text(self, count: int = 1) -> str:
        if count != 1 and self.plural:
            return self.plural
        return self.singular


class Translations(KeyedBuckets[Translation]):
    """Language code to Translation map with pending adds and removes.

    Example:
        >>> t = Translations()
        >>> t.add("en", "apple", "apples")
        >>> t.get("en").text(2)
        'apples'
    """

    data_type = PropertyType.KEY_VALUE

    def __init__(self, values: Mapping[str, Translation | str] | None = None) -> None:
        super().__init__({k: _coerce(v) for k, v in (values or {}).items()})

    def add(self, language: str, singular: str, plural: str = "") -> None:
        self.append(language, Translation(singular, plural))

    def replace(self, values: Mapping[str, Translation | str]) -> None:
        super().replace({k: _coerce(v) for k, v in values.items()})

    def all(self) -> dict[str, Translation]:
        return self.values()

    def _encode_group(self, items: Mapping[str, Translation]) -> RepeatedValue:
        kv: dict[str, bytes] = {}
        for lang, tr in items.items():
            kv[lang] = tr.singular.encode("utf-8")
            if tr.plural:
                kv[lang + PLURAL_SUFFIX] = tr.plural.encode("utf-8")
        return RepeatedValue(key_value=kv)

    def _decode_group(self, group: RepeatedValue) -> dict[str, Translation]:
        kv = group.key_value
        result: dict[str, Translation] = {}
        for key, raw in kv.items():
            if key.endswith(PLURAL_SUFFIX):
                continue
            plural = kv.get(key + PLURAL_SUFFIX, b"")
            result[key] = Translation(raw.decode("utf-8"), plural.decode("utf-8"))
        return result

    def _removed_keys(self, group: RepeatedValue) -> list[str]:
        return [k for k in group.key_value if not k.endswith(PLURAL_SUFFIX)]


def _coerce(value: Translation | str) -> Translation:
    if isinstance(value, Translation):
        return value
    return Translation(str(value))
