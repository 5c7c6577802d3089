"""
Classified text and personal data types.

Plain classifications are ``str`` subclasses; the codec reads their
``extended_type`` when building the property definition. Secure variants
extend SecureString with a more specific classification.
"""

from __future__ import annotations

import ipaddress

from ..wire import ExtendedType, PropertyDefinition, PropertyType
from .secure import SecureString


class ClassifiedText(str):
    extended_type = ExtendedType.NONE


class PII(ClassifiedText):
    extended_type = ExtendedType.PERSONAL


class UserInput(ClassifiedText):
    extended_type = ExtendedType.USER_INPUT


class IPAddress(ClassifiedText):
    extended_type = ExtendedType.IP


class URL(ClassifiedText):
    extended_type = ExtendedType.URL


class Country(ClassifiedText):
    extended_type = ExtendedType.COUNTRY


class _ClassifiedSecure(SecureString):
    extended_type = ExtendedType.NONE

    def property_definition(self) -> PropertyDefinition:
        return PropertyDefinition(data_type=PropertyType.SECURE_TEXT, extended_type=self.extended_type)


class SecurePII(_ClassifiedSecure):
    extended_type = ExtendedType.PERSONAL


class PersonName(_ClassifiedSecure):
    extended_type = ExtendedType.PERSON_NAME


class Phone(_ClassifiedSecure):
    extended_type = ExtendedType.PHONE


class Email(_ClassifiedSecure):
    extended_type = ExtendedType.EMAIL


class SecureIP(_ClassifiedSecure):
    extended_type = ExtendedType.IP


def new_secure_pii(info: str, masked: str) -> SecurePII:
    return SecurePII(info, masked)


def new_person_name(name: str) -> PersonName:
    return PersonName(name, name)


def new_phone(phone: str) -> Phone:
    return Phone(phone, phone)


def new_email(email: str) -> Email:
    return Email(email, email)


def new_secure_ipv4(ip: str) -> SecureIP:
    """Wrap an IPv4 address, masking the final octet."""
    try:
        network = ipaddress.IPv4Network(f"{ip}/24", strict=False)
        masked = str(network.network_address)
    except ValueError:
        masked = ""
    return SecureIP(ip, masked)
