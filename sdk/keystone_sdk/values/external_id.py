"""References to entities owned by other applications."""

from __future__ import annotations

from ..codecs import ValueMarshaler
from ..errors import ValidationError
from ..wire import ExtendedType, Key, PropertyDefinition, PropertyType, Value, VendorApp
from .ids import ID


class ExternalID(ValueMarshaler):
    """A ``vendor/app/type/id`` reference.

    Parsing reads from the right, so ``type/id`` and ``id`` alone are also
    accepted.
    """

    def __init__(self, vendor_id: str = "", app_id: str = "", entity_type: str = "", id: str = "") -> None:
        self.vendor_id = vendor_id
        self.app_id = app_id
        self.entity_type = entity_type
        self.id = ID(id)

    @classmethod
    def parse(cls, text: str) -> ExternalID:
        ext = cls()
        ext._parse(text)
        return ext

    def _parse(self, text: str) -> None:
        parts = text.split("/")
        if len(parts) > 4:
            raise ValidationError("external id format error", field_name="external_id")
        padded = [""] * (4 - len(parts)) + parts
        self.vendor_id, self.app_id, self.entity_type = padded[:3]
        self.id = ID(padded[3])

    def __str__(self) -> str:
        return f"{self.vendor_id}/{self.app_id}/{self.entity_type}/{self.id}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExternalID):
            return NotImplemented
        return str(self) == str(other)

    def source(self) -> Key:
        return Key(key=self.entity_type, source=VendorApp(vendor_id=self.vendor_id, app_id=self.app_id))

    def is_zero(self) -> bool:
        return self.id.parent_id == ""

    def marshal_value(self) -> Value | None:
        return Value(text=str(self), known_type=PropertyType.TEXT)

    def unmarshal_value(self, value: Value) -> None:
        if value is None or not value.text:
            return
        self._parse(value.text)

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=PropertyType.TEXT, extended_type=ExtendedType.EXTERNAL_ID)
