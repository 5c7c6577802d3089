"""
Property naming for Keystone records.

Field identifiers are converted into stable snake_case property names:
- Case boundaries split words ("camelCase" -> "camel_case")
- Acronym runs stay together ("PIIToken" -> "pii_token", "KeystoneIDs" -> "keystone_ids")
- Digit runs followed by letters become their own word ("With3dsData" -> "with_3_ds_data")
- Trailing digits stay attached ("Last4" -> "last4")

Invariants:
    - snake_case is idempotent
    - Property names are pure functions of the field identifier and its tag
    - A name starting with "_" is hydration only

Example:
    >>> snake_case("HTTP2Test")
    'http_2_test'
    >>> Property("name", prefix="address").full_name
    'address.name'
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]+")


def _split_word(word: str) -> list[str]:
    """Split an alphanumeric run into lowercase tokens."""
    tokens: list[str] = []
    current = ""
    n = len(word)
    for i, ch in enumerate(word):
        if current:
            prev = current[-1]
            split = False
            if ch.isdigit():
                if not prev.isdigit():
                    # letters -> digits only splits when letters follow the digits
                    j = i
                    while j < n and word[j].isdigit():
                        j += 1
                    split = j < n
            elif prev.isdigit():
                split = True
            elif ch.isupper():
                if prev.islower():
                    split = True
                elif i + 1 < n and word[i + 1].islower():
                    # "PIIToken" splits before T, "IDs" keeps its plural s
                    split = not _is_plural_suffix(word, i + 1)
            if split:
                tokens.append(current)
                current = ""
        current += ch
    if current:
        tokens.append(current)
    return [t.lower() for t in tokens]


def _is_plural_suffix(word: str, idx: int) -> bool:
    """True when word[idx] is a lone 's' ending an acronym run."""
    if word[idx] != "s":
        return False
    nxt = idx + 1
    return nxt >= len(word) or not word[nxt].islower()


@lru_cache(maxsize=4096)
def snake_case(identifier: str) -> str:
    """Convert a field identifier into its canonical property name."""
    words = [w for w in _NON_ALNUM.split(identifier) if w]
    tokens: list[str] = []
    for word in words:
        tokens.extend(_split_word(word))
    return "_".join(tokens)


def type_name(value: Any) -> str:
    """Return the kebab-cased schema key for a record, instance or class."""
    cls = value if isinstance(value, type) else type(value)
    return snake_case(cls.__name__).replace("_", "-")


@dataclass(frozen=True)
class Property:
    """A canonical property key, optionally scoped by a dotted prefix.

    Attributes:
        name: Canonical property name
        prefix: Dotted prefix for nested composites ("" when top level)
    """

    name: str
    prefix: str = ""

    @classmethod
    def of(cls, identifier: str, prefix: str = "") -> Property:
        """Build a property from a raw field identifier."""
        return cls(snake_case(identifier), prefix)

    @classmethod
    def parse(cls, full_name: str) -> Property:
        """Split a wire property name on its first dot."""
        prefix, sep, name = full_name.partition(".")
        if not sep:
            return cls(prefix)
        return cls(name, prefix)

    @property
    def full_name(self) -> str:
        if self.prefix:
            return f"{self.prefix}.{self.name}"
        return self.name

    @property
    def hydrate_only(self) -> bool:
        return self.name.startswith("_")

    def with_prefix(self, prefix: str) -> Property:
        """Nest this property under prefix; deeper levels fold into the name."""
        if not prefix:
            return self
        return Property(self.full_name, prefix)

    def __str__(self) -> str:
        return self.full_name
