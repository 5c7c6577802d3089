"""
Schema derivation and registration for Keystone.

This module derives a schema from a record type and registers it with the
server the first time a connection sees the type:
- TypeDefinition: schema metadata plus the flattened property definitions
- quick_define / define / map_properties: derivation from a record type
- SchemaRegistry: per connection registry with a registration barrier

A record can supply its own metadata by implementing
``get_keystone_definition()``; anything it leaves blank is derived from the
class name.

Registration lifecycle per type::

    unseen -> derived -> registering -> registered
                 ^            |
                 +-- failure -+

Invariants:
    - Each type is defined on the server at most once per successful
      registration; failures return the entry to derived and are retried
      by the next barrier
    - Concurrent callers waiting on a type in registration share the same
      in-flight Define call
    - Registry mutations happen under a lock; reads of a registered
      definition are lock free

Example:
    >>> registry = SchemaRegistry(define_rpc)
    >>> definition = await registry.ensure_registered(user)
    >>> definition.id
    'sch-123'
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import SchemaError
from .plan import plan_for
from .property import Property, type_name
from .traits import TSEntity
from .wire import PropertyDefinition, Schema, SchemaOption, SchemaType

logger = logging.getLogger(__name__)

CANNOT_MAP_NIL = "cannot map nil"
CANNOT_MAP_PRIMITIVES = "cannot map primitive type"


@dataclass
class TypeDefinition:
    """Schema metadata for a record type.

    Attributes:
        type: Unique kebab-cased type key, e.g. "library-user"
        name: Friendly name, e.g. "Library User"
        description: Free text description
        singular: Name for one entity
        plural: Name for a collection
        options: Schema options
        keystone_type: Regular entity or time series
        properties: Flattened property definitions
        id: Server assigned schema id, empty until registered
    """

    type: str = ""
    name: str = ""
    description: str = ""
    singular: str = ""
    plural: str = ""
    options: list[SchemaOption] = field(default_factory=list)
    keystone_type: SchemaType = SchemaType.ENTITY
    properties: dict[Property, PropertyDefinition] = field(default_factory=dict)
    id: str = ""

    def has_option(self, option: SchemaOption) -> bool:
        return option in self.options

    def to_schema(self) -> Schema:
        """Build the wire schema sent with Define."""
        props = []
        for prop, defn in sorted(self.properties.items(), key=lambda kv: kv[0].full_name):
            props.append(defn.model_copy(update={"name": prop.full_name}))
        return Schema(
            id=self.id,
            type=self.type,
            name=self.name,
            description=self.description,
            singular=self.singular,
            plural=self.plural,
            kind=self.keystone_type,
            options=list(self.options),
            properties=props,
        )


def _record_class(record: Any) -> type:
    if record is None:
        raise SchemaError(CANNOT_MAP_NIL)
    return record if isinstance(record, type) else type(record)


def quick_define(record: Any) -> TypeDefinition:
    """Derive type metadata without walking properties."""
    cls = _record_class(record)
    definer = getattr(cls, "get_keystone_definition", None)
    if callable(definer):
        instance = record if not isinstance(record, type) else cls()
        definition = dataclasses.replace(instance.get_keystone_definition())
    else:
        definition = TypeDefinition()

    if not definition.type:
        definition.type = type_name(cls)
    if not definition.name:
        definition.name = definition.type.replace("-", " ").title()
    if issubclass(cls, TSEntity):
        definition.keystone_type = SchemaType.TIME_SERIES
    return definition


def define(record: Any) -> TypeDefinition:
    """Derive full type metadata including property definitions."""
    definition = quick_define(record)
    try:
        definition.properties = map_properties(record)
    except SchemaError:
        logger.debug(f"No property map for {definition.type}")
    return definition


def map_properties(record: Any) -> dict[Property, PropertyDefinition]:
    """Flatten a record type into property definitions.

    Raises:
        SchemaError: If record is None or not a record type
    """
    cls = _record_class(record)
    if not dataclasses.is_dataclass(cls):
        raise SchemaError(CANNOT_MAP_PRIMITIVES)

    properties: dict[Property, PropertyDefinition] = {}
    for fp in plan_for(cls):
        if fp.hydrate_only:
            continue
        if fp.codec is not None:
            properties[fp.prop] = fp.definition or fp.codec.definition()
        elif fp.nested is not None:
            for sub, defn in map_properties(fp.nested).items():
                properties[sub.with_prefix(fp.prop.name)] = defn
    return properties


class RegistrationState(str, Enum):
    DERIVED = "derived"
    REGISTERING = "registering"
    REGISTERED = "registered"


class _Entry:
    __slots__ = ("definition", "state", "pending")

    def __init__(self, definition: TypeDefinition) -> None:
        self.definition = definition
        self.state = RegistrationState.DERIVED
        self.pending: asyncio.Future | None = None


DefineFunc = Callable[[Schema], Awaitable[Schema]]


class SchemaRegistry:
    """Per connection map of record types to their schema definitions.

    Args:
        define_rpc: Coroutine function that sends a schema to the server
            and returns the stored schema
    """

    def __init__(self, define_rpc: DefineFunc) -> None:
        self._define_rpc = define_rpc
        self._entries: dict[type, _Entry] = {}
        self._lock = threading.Lock()

    def register_type(self, record: Any) -> tuple[TypeDefinition, bool]:
        """Add a record type to the registry.

        Returns:
            The definition and whether the type was already known
        """
        cls = _record_class(record)
        entry = self._entries.get(cls)
        if entry is not None:
            return entry.definition, True
        with self._lock:
            entry = self._entries.get(cls)
            if entry is not None:
                return entry.definition, True
            entry = _Entry(define(record))
            self._entries[cls] = entry
        return entry.definition, False

    def register_types(self, *records: Any) -> int:
        """Register several types, returning how many were new."""
        return sum(1 for r in records if not self.register_type(r)[1])

    def definition(self, record: Any) -> TypeDefinition | None:
        entry = self._entries.get(_record_class(record))
        return entry.definition if entry else None

    def state(self, record: Any) -> RegistrationState | None:
        entry = self._entries.get(_record_class(record))
        return entry.state if entry else None

    async def ensure_registered(self, record: Any) -> TypeDefinition:
        """Register a type and wait until the server knows it.

        A type that is already registered returns immediately; otherwise the
        caller joins the registration barrier.
        """
        definition, _ = self.register_type(record)
        entry = self._entries[_record_class(record)]
        if entry.state != RegistrationState.REGISTERED:
            await self.sync_schema()
        return definition

    async def sync_schema(self) -> None:
        """Define every unregistered type and wait for in-flight ones.

        Failures are logged; the affected entries stay derived.
        """
        waits: list[asyncio.Future] = []
        with self._lock:
            for entry in self._entries.values():
                if entry.state == RegistrationState.DERIVED:
                    entry.state = RegistrationState.REGISTERING
                    entry.pending = asyncio.ensure_future(self._register(entry))
                if entry.state == RegistrationState.REGISTERING and entry.pending is not None:
                    waits.append(entry.pending)
        if waits:
            # a cancelled caller must not cancel the shared registration
            await asyncio.gather(*(asyncio.shield(w) for w in waits))

    async def _register(self, entry: _Entry) -> None:
        definition = entry.definition
        try:
            resp = await self._define_rpc(definition.to_schema())
        except Exception as e:
            logger.error(f"Failed to define schema {definition.type}: {e}")
            self._revert(entry)
            return
        except BaseException:
            self._revert(entry)
            raise

        with self._lock:
            if resp is not None:
                definition.id = resp.id
                definition.name = resp.name or definition.name
                definition.type = resp.type or definition.type
                definition.singular = resp.singular
                definition.plural = resp.plural
                definition.options = list(resp.options)
            entry.state = RegistrationState.REGISTERED
            entry.pending = None
        logger.debug(f"Registered schema {definition.type} as {definition.id}")

    def _revert(self, entry: _Entry) -> None:
        with self._lock:
            entry.state = RegistrationState.DERIVED
            entry.pending = None
