"""
Unit tests for record marshaling.

Tests cover:
- Field plans
- Marshal of leaves and nested composites
- Unmarshal onto records
- Error handling
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import pytest

from sdk.keystone_sdk.definition import keystone_field
from sdk.keystone_sdk.errors import MarshalError, UnmarshalError, UnsupportedTypeError
from sdk.keystone_sdk.marshal import MarshaledEntity, marshal, marshal_value, unmarshal_properties
from sdk.keystone_sdk.plan import clear_plans, plan_for
from sdk.keystone_sdk.property import Property
from sdk.keystone_sdk.traits import Child
from sdk.keystone_sdk.values import Amount, StringSet
from sdk.keystone_sdk.wire import PropertyType, Value


@dataclass
class Address:
    line_one: str = ""
    city: str = ""


@dataclass
class Customer:
    name: str = ""
    age: int = 0
    vip: bool = False
    nick: str = keystone_field(",omitempty", default="")
    hidden: str = keystone_field("-", default="")
    created: Optional[datetime] = keystone_field("_created", default=None)
    balance: Amount = field(default_factory=Amount)
    tags: StringSet = field(default_factory=StringSet)
    address: Address = field(default_factory=Address)
    _internal: str = ""


@dataclass
class Line(Child):
    sku: str = ""


@dataclass
class Order:
    ref: str = ""
    lines: list[Line] = field(default_factory=list)


@dataclass
class Broken:
    handler: object = None


class SelfMarshaled:
    def marshal_keystone(self):
        entity = MarshaledEntity()
        entity.append("Custom", "yes")
        return entity.properties


class TestPlan:
    """Tests for compiled field plans."""

    def test_plan_excludes_private_and_suppressed(self):
        """Private and suppressed fields are not planned."""
        attrs = [fp.attr for fp in plan_for(Customer)]
        assert "hidden" not in attrs
        assert "_internal" not in attrs
        assert "created" in attrs

    def test_plan_cached(self):
        """Plans are compiled once per type."""
        assert plan_for(Customer) is plan_for(Customer)
        clear_plans()
        assert plan_for(Customer) == plan_for(Customer)

    def test_nested_and_children(self):
        """Nested records are planned, child lists are not."""
        plans = {fp.attr: fp for fp in plan_for(Customer)}
        assert plans["address"].nested is Address
        assert [fp.attr for fp in plan_for(Order)] == ["ref"]

    def test_unsupported_type(self):
        """A field with no codec that is not a record fails."""
        with pytest.raises(UnsupportedTypeError, match="handler"):
            plan_for(Broken)


class TestMarshal:
    """Tests for marshal."""

    def test_leaf_values(self):
        """Leaves are encoded through their codecs."""
        props = marshal(Customer(name="Ann", age=30, vip=True))
        assert props[Property("name")].text == "Ann"
        assert props[Property("age")].int_value == 30
        assert props[Property("vip")].bool_value is True
        assert props[Property("name")].known_type == PropertyType.TEXT

    def test_zero_handling(self):
        """Omitempty and self-eliding value types skip zero values."""
        props = marshal(Customer())
        assert Property("nick") not in props
        assert Property("balance") not in props
        assert Property("tags") not in props
        assert Property("name") in props

    def test_hydrate_only_never_sent(self):
        """Hydration only fields are not emitted."""
        props = marshal(Customer(created=datetime.now(timezone.utc)))
        assert Property("_created") not in props

    def test_nested_prefix(self):
        """Nested fields are prefixed with the field name."""
        props = marshal(Customer(address=Address("1 High St", "Leeds")))
        assert props[Property("city", "address")].text == "Leeds"
        assert props[Property("line_one", "address")].text == "1 High St"

    def test_value_types(self):
        """Value marshalers keep their own wire form."""
        props = marshal(Customer(balance=Amount("USD", 100)))
        value = props[Property("balance")]
        assert value.text == "USD"
        assert value.int_value == 100
        assert value.known_type == PropertyType.AMOUNT

    def test_custom_marshaler(self):
        """Records with marshal_keystone bypass reflection."""
        props = marshal(SelfMarshaled())
        assert props == {Property("custom"): Value(text="yes", known_type=PropertyType.TEXT)}

    def test_rejects_nil_and_primitives(self):
        """None and primitives are rejected."""
        with pytest.raises(MarshalError, match="nil"):
            marshal(None)
        with pytest.raises(MarshalError, match="primitive"):
            marshal("text")
        with pytest.raises(MarshalError):
            marshal(Customer)

    def test_marshal_value(self):
        """Single values marshal through their runtime codec."""
        assert marshal_value(5).int_value == 5
        with pytest.raises(MarshalError):
            marshal_value(None)
        with pytest.raises(MarshalError):
            marshal_value(object())


class TestUnmarshal:
    """Tests for unmarshal_properties."""

    def test_round_trip(self):
        """Unmarshal of marshal reproduces the record."""
        original = Customer(name="Ann", age=30, vip=True, nick="a", address=Address("1 High St", "Leeds"))
        original.balance = Amount("GBP", 250)
        original.tags = StringSet("x", "y")

        restored = Customer()
        unmarshal_properties(marshal(original), restored)

        assert restored.name == "Ann"
        assert restored.age == 30
        assert restored.vip is True
        assert restored.address == original.address
        assert restored.balance == original.balance
        assert restored.tags == original.tags

    def test_missing_leaves_untouched(self):
        """Fields without a property keep their value."""
        record = Customer(name="Keep", age=7)
        unmarshal_properties({Property("age"): Value(int_value=8)}, record)
        assert record.name == "Keep"
        assert record.age == 8

    def test_hydrate_only_filled(self):
        """Hydration only fields are populated on read."""
        now = datetime(2024, 1, 2, tzinfo=timezone.utc)
        record = Customer()
        unmarshal_properties({Property("_created"): Value(time=now)}, record)
        assert record.created == now

    def test_nested_created_on_demand(self):
        """Missing nested records are created when a prefixed property arrives."""

        @dataclass
        class Holder:
            address: Optional[Address] = None

        record = Holder()
        unmarshal_properties({Property("city", "address"): Value(text="York")}, record)
        assert record.address == Address(city="York")

    def test_rejects_non_record(self):
        """Unmarshal requires a record instance."""
        with pytest.raises(UnmarshalError):
            unmarshal_properties({Property("a"): Value()}, "text")
