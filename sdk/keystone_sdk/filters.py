"""
Find and list filters for Keystone.

A FilterRequest accumulates everything a query can be narrowed by. Options
are small objects with an ``apply(request)`` method; each constructor
returns ``None`` when its arguments cannot form a predicate, and callers
skip ``None`` options.

Key functions:
- where / where_equals / where_greater_than / ...: property predicates
- and_ / or_: composite predicates built from other predicates
- with_states / only_active / include_archived / all_states: entity state
- sort_by / sort_asc / sort_desc: ordering
- relation_of / relation_to: relationship constraints
- limit / child_of / with_label / with_entity_ids: paging and scoping

Invariants:
    - Applying options in any order yields the same filter tree
    - Entity state is filtered through the reserved "_state" property
    - Invalid and Removed are never legal state filters

Example:
    >>> opts = [
    ...     or_(
    ...         and_(where_equals("status", "active"), where_greater_than("score", 80)),
    ...         and_(where_equals("status", "vip"), where_greater_than("score", 50)),
    ...     )
    ... ]
    >>> request = build_filter(*opts)
    >>> request.filters[0].or_
    True
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .codecs import value_from_any
from .errors import ValidationError
from .wire import (
    EntityLabel,
    EntityState,
    Key,
    Operator,
    PropertyFilter,
    PropertySort,
    RelationOf,
    Value,
    VendorApp,
)

STATE_PROPERTY = "_state"

_INVALID_STATES = frozenset({EntityState.INVALID, EntityState.REMOVED})


@dataclass
class FilterRequest:
    """Accumulated query constraints."""

    filters: list[PropertyFilter] = field(default_factory=list)
    labels: list[EntityLabel] = field(default_factory=list)
    relation_of: RelationOf | None = None
    parent_entity_id: str = ""
    entity_ids: list[str] = field(default_factory=list)
    per_page: int = 0
    page_number: int = 0
    sort: list[PropertySort] = field(default_factory=list)

    def has_state_filter(self) -> bool:
        return any(f.property == STATE_PROPERTY for f in self.filters)


class FindOption:
    """Base class for query options."""

    def apply(self, request: FilterRequest) -> None:
        raise NotImplementedError


def build_filter(*options: FindOption | None) -> FilterRequest:
    request = FilterRequest()
    for opt in options:
        if opt is not None:
            opt.apply(request)
    return request


def _values(*values: Any) -> list[Value]:
    result = []
    for v in values:
        encoded = value_from_any(v)
        result.append(encoded if encoded is not None else Value())
    return result


class PropertyPredicate(FindOption):
    """A single predicate, or a composite of nested predicates."""

    def __init__(
        self,
        key: str = "",
        operator: Operator = Operator.EQUAL,
        values: list[Value] | None = None,
        *,
        or_: bool = False,
        nested: list[FindOption | None] | None = None,
    ) -> None:
        self.key = key
        self.operator = operator
        self.values = values or []
        self.or_ = or_
        self.nested = nested or []

    def to_wire(self) -> PropertyFilter:
        return PropertyFilter(
            property=self.key,
            operator=self.operator,
            values=list(self.values),
            or_=self.or_,
            nested=[n.to_wire() for n in self.nested if isinstance(n, PropertyPredicate)],
        )

    def apply(self, request: FilterRequest) -> None:
        request.filters.append(self.to_wire())

    def __repr__(self) -> str:
        if self.nested:
            kind = "or" if self.or_ else "and"
            return f"PropertyPredicate({kind}, {len(self.nested)} nested)"
        return f"PropertyPredicate({self.key!r}, {self.operator.name})"


def where_equals(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.EQUAL, _values(value))


def where_not_equals(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.NOT_EQUAL, _values(value))


def where_greater_than(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.GREATER_THAN, _values(value))


def where_greater_than_or_equals(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.GREATER_THAN_OR_EQUAL, _values(value))


def where_less_than(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.LESS_THAN, _values(value))


def where_less_than_or_equals(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.LESS_THAN_OR_EQUAL, _values(value))


def where_contains(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.CONTAINS, _values(value))


def where_not_contains(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.NOT_CONTAINS, _values(value))


def where_starts_with(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.STARTS_WITH, _values(value))


def where_ends_with(key: str, value: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.ENDS_WITH, _values(value))


def where_in(key: str, *values: Any) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.IN, _values(*values))


def where_not_in(key: str, *values: Any) -> PropertyPredicate:
    """Exclude a set of values.

    Sent as one NOT_EQUAL predicate carrying every value; the server treats
    it as "not equal to any".
    """
    return PropertyPredicate(key, Operator.NOT_EQUAL, _values(*values))


def where_between(key: str, low: Any, high: Any) -> PropertyPredicate | None:
    if low is None or high is None:
        return None
    return PropertyPredicate(key, Operator.BETWEEN, _values(low, high))


def is_null(key: str) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.IS_NULL)


def is_not_null(key: str) -> PropertyPredicate:
    return PropertyPredicate(key, Operator.IS_NOT_NULL)


def and_(*predicates: FindOption | None) -> PropertyPredicate:
    return PropertyPredicate(nested=list(predicates))


def or_(*predicates: FindOption | None) -> PropertyPredicate:
    return PropertyPredicate(or_=True, nested=list(predicates))


_SINGLE_VALUE_OPS = {
    "eq": where_equals,
    "=": where_equals,
    "neq": where_not_equals,
    "!=": where_not_equals,
    "gt": where_greater_than,
    ">": where_greater_than,
    "gte": where_greater_than_or_equals,
    ">=": where_greater_than_or_equals,
    "lt": where_less_than,
    "<": where_less_than,
    "lte": where_less_than_or_equals,
    "<=": where_less_than_or_equals,
    "contains": where_contains,
    "c": where_contains,
    "notcontains": where_not_contains,
    "nc": where_not_contains,
    "startswith": where_starts_with,
    "sw": where_starts_with,
    "endswith": where_ends_with,
    "ew": where_ends_with,
}


def where(key: str, operator: str, *values: Any) -> PropertyPredicate | None:
    """Build a predicate from a short operator token.

    Returns:
        The predicate, or None for unknown operators or missing values
    """
    if not values:
        return None
    single = _SINGLE_VALUE_OPS.get(operator)
    if single is not None:
        return single(key, values[0])
    if operator == "in":
        return where_in(key, *values)
    if operator == "notin":
        return where_not_in(key, *values)
    if operator in ("between", "btw", "><"):
        if len(values) < 2:
            return None
        return where_between(key, values[0], values[1])
    return None


# Entity state


def with_states(*states: EntityState) -> PropertyPredicate | None:
    """Restrict results to entities in any of the given states.

    Raises:
        ValidationError: If Invalid or Removed is requested
    """
    if not states:
        return None
    for state in states:
        if state in _INVALID_STATES:
            raise ValidationError(f"cannot filter on entity state {EntityState(state).name}", field_name=STATE_PROPERTY)
    values = [Value(int_value=int(s)) for s in states]
    return PropertyPredicate(STATE_PROPERTY, Operator.IN, values)


def with_state(state: EntityState) -> PropertyPredicate | None:
    return with_states(state)


def only_active() -> PropertyPredicate | None:
    return with_states(EntityState.ACTIVE)


def include_archived() -> PropertyPredicate | None:
    return with_states(EntityState.ACTIVE, EntityState.ARCHIVED)


def only_archived() -> PropertyPredicate | None:
    return with_states(EntityState.ARCHIVED)


def include_offline() -> PropertyPredicate | None:
    return with_states(EntityState.ACTIVE, EntityState.OFFLINE)


def only_offline() -> PropertyPredicate | None:
    return with_states(EntityState.OFFLINE)


def include_corrupt() -> PropertyPredicate | None:
    return with_states(EntityState.ACTIVE, EntityState.CORRUPT)


def only_corrupt() -> PropertyPredicate | None:
    return with_states(EntityState.CORRUPT)


def all_states() -> PropertyPredicate | None:
    return with_states(EntityState.ACTIVE, EntityState.OFFLINE, EntityState.CORRUPT, EntityState.ARCHIVED)


# Sorting


class SortBy(FindOption):
    def __init__(self, prop: str, descending: bool = False, nulls_first: bool = False) -> None:
        self.property = prop
        self.descending = descending
        self.nulls_first = nulls_first

    def apply(self, request: FilterRequest) -> None:
        request.sort.append(
            PropertySort(property=self.property, descending=self.descending, nulls_first=self.nulls_first)
        )


def sort_by(prop: str, descending: bool = False) -> SortBy:
    return SortBy(prop, descending)


def sort_asc(prop: str) -> SortBy:
    return SortBy(prop)


def sort_desc(prop: str) -> SortBy:
    return SortBy(prop, descending=True)


def sort_by_null_first(prop: str, descending: bool = False) -> SortBy:
    return SortBy(prop, descending, nulls_first=True)


# Relationships


class RelationConstraint(FindOption):
    def __init__(self, source: str = "", destination: str = "", relationship: Key | None = None) -> None:
        self.source = source
        self.destination = destination
        self.relationship = relationship

    def apply(self, request: FilterRequest) -> None:
        request.relation_of = RelationOf(
            source_id=self.source,
            destination_id=str(self.destination),
            relationship=self.relationship,
        )


def _relation_key(relationship_type: str, vendor: str, app: str) -> Key:
    return Key(key=relationship_type, source=VendorApp(vendor_id=vendor, app_id=app))


def relation_of(entity_id: str, relationship_type: str, vendor: str = "", app: str = "") -> RelationConstraint:
    """Entities that entity_id has a relationship to."""
    return RelationConstraint(source=entity_id, relationship=_relation_key(relationship_type, vendor, app))


def relation_to(entity_id: str, relationship_type: str, vendor: str = "", app: str = "") -> RelationConstraint:
    """Entities that have a relationship pointing at entity_id."""
    return RelationConstraint(destination=entity_id, relationship=_relation_key(relationship_type, vendor, app))


def relation_of_sibling(entity_id: str, relationship_type: str) -> RelationConstraint:
    return relation_of(entity_id, relationship_type)


def relation_to_sibling(entity_id: str, relationship_type: str) -> RelationConstraint:
    return relation_to(entity_id, relationship_type)


# Scoping and paging


class _Limit(FindOption):
    def __init__(self, per_page: int, page_number: int) -> None:
        self.per_page = per_page
        self.page_number = page_number

    def apply(self, request: FilterRequest) -> None:
        request.per_page = self.per_page
        request.page_number = self.page_number


def limit(per_page: int, page_number: int = 0) -> FindOption:
    return _Limit(per_page, page_number)


class _ChildOf(FindOption):
    def __init__(self, parent_id: str) -> None:
        self.parent_id = parent_id

    def apply(self, request: FilterRequest) -> None:
        request.parent_entity_id = self.parent_id


def child_of(parent_id: str) -> FindOption:
    return _ChildOf(parent_id)


class _WithLabel(FindOption):
    def __init__(self, name: str, value: str) -> None:
        self.name = name
        self.value = value

    def apply(self, request: FilterRequest) -> None:
        request.labels.append(EntityLabel(name=self.name, value=self.value))


def with_label(name: str, value: str = "") -> FindOption:
    return _WithLabel(name, value)


class _WithEntityIDs(FindOption):
    def __init__(self, ids: list[str]) -> None:
        self.ids = list(ids)

    def apply(self, request: FilterRequest) -> None:
        request.entity_ids = list(self.ids)


def with_entity_ids(ids: list[str]) -> FindOption:
    return _WithEntityIDs(ids)
