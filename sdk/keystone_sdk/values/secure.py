"""
Masked and verify-only strings.

SecureString carries the plaintext (only populated on write, or on read when
the caller asked for decryption) and a mask that is always safe to display.
VerifyString is a write-only probe: the server reports whether the stored
secret matches without ever returning it.
"""

from __future__ import annotations

from ..codecs import ValueMarshaler
from ..wire import PropertyDefinition, PropertyType, Value


class SecureString(ValueMarshaler):
    """Sensitive text with a display mask."""

    data_type = PropertyType.SECURE_TEXT

    def __init__(self, original: str = "", masked: str = "") -> None:
        self.original = original
        self.masked = masked

    def __str__(self) -> str:
        return self.original or self.masked

    def __repr__(self) -> str:
        return f"{type(self).__name__}(masked={self.masked!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecureString):
            return NotImplemented
        return self.original == other.original and self.masked == other.masked

    def is_zero(self) -> bool:
        return self.original == ""

    def marshal_value(self) -> Value | None:
        return Value(text=self.masked, secure_text=self.original, known_type=PropertyType.SECURE_TEXT)

    def unmarshal_value(self, value: Value) -> None:
        if value is not None:
            self.original = value.secure_text
            self.masked = value.text

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=PropertyType.SECURE_TEXT)


class VerifyString(ValueMarshaler):
    """A secret sent for server-side comparison.

    After a read, ``verified`` reports the comparison result and
    ``was_checked`` whether the server performed one.
    """

    def __init__(self, original: str = "") -> None:
        self.original = original
        self._verified: bool | None = None

    def __str__(self) -> str:
        return self.original

    @property
    def verified(self) -> bool:
        return self._verified is True

    @property
    def was_checked(self) -> bool:
        return self._verified is not None

    def is_zero(self) -> bool:
        return self.original == ""

    def marshal_value(self) -> Value | None:
        return Value(secure_text=self.original, known_type=PropertyType.VERIFY_TEXT)

    def unmarshal_value(self, value: Value) -> None:
        if value is not None:
            self.original = value.secure_text
            self._verified = value.bool_value

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=PropertyType.VERIFY_TEXT)
