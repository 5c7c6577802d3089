"""
Domain value types for Keystone records.

Each type maps itself to a wire Value, declares its own property definition
and zero predicate. Bucketed types (sets, keyed maps, translations) also
merge their pending adds and removes once a mutation succeeds.
"""

from .amount import CURRENCY_MIXED, Amount, max_amount, min_amount, sum_amounts
from .external_id import ExternalID
from .ids import ID, hash_id
from .interval import Interval, IntervalType
from .keyed import Keyed, KeyedBuckets
from .keymixed import KeyMixed
from .minmax import MinMax
from .mixed import Mixed
from .pii import (
    PII,
    URL,
    ClassifiedText,
    Country,
    Email,
    IPAddress,
    PersonName,
    Phone,
    SecureIP,
    SecurePII,
    UserInput,
    new_email,
    new_person_name,
    new_phone,
    new_secure_ipv4,
    new_secure_pii,
)
from .secure import SecureString, VerifyString
from .sets import IntSet, StringSet
from .translations import Translation, Translations

__all__ = [
    # Money
    "Amount",
    "CURRENCY_MIXED",
    "sum_amounts",
    "max_amount",
    "min_amount",
    # Scalars
    "Interval",
    "IntervalType",
    "Mixed",
    "MinMax",
    # Bucketed
    "StringSet",
    "IntSet",
    "Keyed",
    "KeyedBuckets",
    "KeyMixed",
    "Translation",
    "Translations",
    # Secrets and classifications
    "SecureString",
    "VerifyString",
    "ClassifiedText",
    "PII",
    "UserInput",
    "IPAddress",
    "URL",
    "Country",
    "SecurePII",
    "PersonName",
    "Phone",
    "Email",
    "SecureIP",
    "new_secure_pii",
    "new_person_name",
    "new_phone",
    "new_email",
    "new_secure_ipv4",
    # Identifiers
    "ID",
    "hash_id",
    "ExternalID",
]
