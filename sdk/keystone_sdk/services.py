"""
Service helpers that sit beside the entity store.

- akv / akv_raw: values for the application key-value store
- IncrementingID: server side counters grouped under an entity id
- RateLimit / RateLimitResult: sliding window rate limits
- PiiRegulation: regulation names accepted when issuing PII tokens
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .codecs import codec_for_value
from .wire import AKVProperty, AKVPropertyDefinition, IIDCreateRequest, IIDResponse, PropertyType, RateLimitRequest, Value

if TYPE_CHECKING:
    from .actor import Actor


class PiiRegulation(str, Enum):
    GDPR = "GDPR"
    CCPA = "CCPA"

    def __str__(self) -> str:
        return self.value.strip().upper()


def akv_raw(key: str, value: Value) -> AKVProperty:
    """An unmanaged key-value entry carrying an already encoded value."""
    return AKVProperty(
        property=AKVPropertyDefinition(name=key, data_type=PropertyType.UNMANAGED),
        value=value,
    )


def akv(key: str, value: Any) -> AKVProperty:
    """A key-value entry typed from the Python value.

    Values without a codec are sent without a value, leaving the server to
    reject or ignore them.
    """
    prop = AKVProperty(property=AKVPropertyDefinition(name=key))
    codec = codec_for_value(value)
    if codec is None:
        return prop
    definition = codec.definition()
    prop.property.data_type = definition.data_type
    prop.property.extended_type = definition.extended_type
    prop.property.options = list(definition.options)
    prop.value = codec.encode(value)
    return prop


class IncrementingID:
    """A set of counters bumped together under one entity id.

    Example:
        >>> iid = IncrementingID(order_id, "invoice").with_read("credit_note")
        >>> resp = await iid.commit(actor)
        >>> resp.ids["invoice"]
        42
    """

    def __init__(self, eid: str, *increment_keys: str) -> None:
        self.eid = str(eid)
        self.keys = list(increment_keys)
        self.include_keys: list[str] = []
        self.meta: dict[str, str] = {}

    def with_read(self, *keys: str) -> IncrementingID:
        """Also return the current value of these counters without bumping them."""
        self.include_keys = list(keys)
        return self

    def with_meta(self, meta: dict[str, str]) -> IncrementingID:
        self.meta = dict(meta)
        return self

    def to_request(self, actor: Actor) -> IIDCreateRequest:
        incr = {key: True for key in self.keys}
        incr.update({key: False for key in self.include_keys})
        return IIDCreateRequest(authorization=actor.authorization(), eid=self.eid, incr=incr, meta=dict(self.meta))

    async def commit(self, actor: Actor) -> IIDResponse:
        return await actor.incrementing_id(self)


@dataclass(frozen=True)
class RateLimitResult:
    current_count: int = 0
    hit_limit: bool = False
    percent: float = 0.0


@dataclass
class RateLimit:
    """A rate limit on a key over a window of minutes.

    Attributes:
        key: The key to rate limit on
        hard_limit: Requests allowed in the window
        limit_minutes: Length of the window in minutes
        read_distinct: Count distinct transaction ids only
        historical: Keep a history of every trigger
    """

    actor: Actor
    key: str
    hard_limit: int
    limit_minutes: int
    read_distinct: bool = True
    historical: bool = False

    def to_request(self, transaction_id: str) -> RateLimitRequest:
        return RateLimitRequest(
            authorization=self.actor.authorization(),
            key=self.key,
            hard_limit=self.hard_limit,
            rate_minutes=self.limit_minutes,
            transaction_id=transaction_id,
            read_distinct=self.read_distinct,
            store_historical=self.historical,
        )

    async def trigger(self, transaction_id: str = "") -> RateLimitResult:
        """Record a hit and report the current usage."""
        resp = await self.actor.connection_or_raise().invoke(
            "RateLimit", self.to_request(transaction_id), f"key={self.key}"
        )
        if resp is None:
            return RateLimitResult()
        percent = resp.current_count / self.hard_limit if self.hard_limit else 0.0
        return RateLimitResult(current_count=resp.current_count, hit_limit=resp.over_limit, percent=percent)
