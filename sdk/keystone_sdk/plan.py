"""
Compiled field plans for record types.

A plan is the ordered list of fields the marshaler visits for a record type,
with each field's property key, tag options, codec and schema definition
resolved once. Plans are cached per type for the life of the process.

Invariants:
    - Fields with a leading underscore attribute name are private unless
      they carry an explicit keystone tag
    - Suppressed fields ("-" tag) never appear in a plan
    - Lists of nested child entities are excluded
    - A field with no codec must be a dataclass, otherwise the plan fails
"""

from __future__ import annotations

import dataclasses
import threading
import typing
from dataclasses import dataclass
from typing import Any

from .codecs import Codec, codec_for, field_definition, unwrap_optional
from .definition import TAG_KEY, FieldOptions, field_options
from .errors import UnsupportedTypeError
from .property import Property
from .wire import PropertyDefinition

_plans: dict[type, tuple[FieldPlan, ...]] = {}
_plans_lock = threading.Lock()


@dataclass(frozen=True)
class FieldPlan:
    """Resolved mapping for one record field.

    Attributes:
        attr: Attribute name on the record
        prop: Property key (unprefixed)
        options: Parsed tag options
        codec: Leaf codec, None for nested composites
        nested: Dataclass type for nested composites
        definition: Schema definition for leaf fields
    """

    attr: str
    prop: Property
    options: FieldOptions
    codec: Codec | None = None
    nested: type | None = None
    definition: PropertyDefinition | None = None

    @property
    def hydrate_only(self) -> bool:
        return self.prop.hydrate_only


def _is_list_of_children(tp: Any) -> bool:
    if typing.get_origin(tp) is not list:
        return False
    args = typing.get_args(tp)
    return bool(args) and callable(getattr(args[0], "set_child_id", None))


def _compile(cls: type) -> tuple[FieldPlan, ...]:
    hints = typing.get_type_hints(cls)
    plans: list[FieldPlan] = []
    for f in dataclasses.fields(cls):
        if f.name.startswith("_") and TAG_KEY not in f.metadata:
            continue
        opts = field_options(f)
        if opts.suppressed:
            continue

        tp = hints.get(f.name, Any)
        prop = Property(opts.name)
        codec = codec_for(tp)
        if codec is not None:
            defn = field_definition(codec, opts.definition())
            plans.append(FieldPlan(f.name, prop, opts, codec=codec, definition=defn))
            continue

        inner, _ = unwrap_optional(tp)
        if _is_list_of_children(inner):
            continue
        if isinstance(inner, type) and dataclasses.is_dataclass(inner):
            plans.append(FieldPlan(f.name, prop, opts, nested=inner))
            continue

        raise UnsupportedTypeError(getattr(inner, "__name__", repr(inner)), f.name)
    return tuple(plans)


def plan_for(cls: type) -> tuple[FieldPlan, ...]:
    """Return the cached plan for a dataclass type, compiling it on first use."""
    plan = _plans.get(cls)
    if plan is not None:
        return plan
    with _plans_lock:
        plan = _plans.get(cls)
        if plan is None:
            plan = _compile(cls)
            _plans[cls] = plan
    return plan


def clear_plans() -> None:
    with _plans_lock:
        _plans.clear()
