"""
Entity traits for Keystone records.

Traits are mixin classes that give a record entity-level state which is not
part of its property bag: labels, events, logs, relationships, sensor
readings, child entities, lock state, documents, objects, entity details and
the change watcher. Trait state is stored lazily on the instance under
``_ks_`` prefixed attributes, so traits need no __init__ and never become
dataclass fields.

The actor discovers traits through the runtime checkable protocols below
rather than through the concrete mixins, so a record may implement a
capability directly.

Example:
    >>> @dataclass
    ... class User(BaseEntity):
    ...     name: str = ""
    >>> u = User(name="Ann")
    >>> u.add_label("tier", "gold")
    >>> u.log_info("created", reference="signup")
"""

from __future__ import annotations

import dataclasses
import itertools
import json
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .errors import ValidationError
from .property import type_name
from .values.ids import ID
from .wire import (
    Entity,
    EntityChild,
    EntityDocument,
    EntityEvent,
    EntityLabel,
    EntityLog,
    EntityObject,
    EntityRelationship,
    EntitySensorMeasurement,
    EntityState,
    Key,
    LogLevel,
    MutateResponse,
    ObjectType,
)

if TYPE_CHECKING:
    from .watcher import Watcher


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _state(obj: Any, key: str, factory: Any) -> Any:
    data = obj.__dict__
    if key not in data:
        data[key] = factory()
    return data[key]


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


@runtime_checkable
class EntityProvider(Protocol):
    def get_keystone_id(self) -> str: ...

    def set_keystone_id(self, entity_id: str) -> None: ...


@runtime_checkable
class LabelProvider(Protocol):
    def get_labels(self) -> list[EntityLabel]: ...

    def get_removed_labels(self) -> list[str]: ...

    def clear_labels(self) -> None: ...


@runtime_checkable
class EventProvider(Protocol):
    def get_events(self) -> list[EntityEvent]: ...

    def clear_events(self) -> None: ...


@runtime_checkable
class LogProvider(Protocol):
    def get_logs(self) -> list[EntityLog]: ...

    def clear_logs(self) -> None: ...


@runtime_checkable
class RelationshipProvider(Protocol):
    def get_relationships(self) -> list[EntityRelationship]: ...

    def set_relationships(self, links: list[EntityRelationship]) -> None: ...

    def clear_relationships(self) -> None: ...


@runtime_checkable
class SensorProvider(Protocol):
    def get_sensor_measurements(self) -> list[EntitySensorMeasurement]: ...

    def clear_sensor_measurements(self) -> None: ...


@runtime_checkable
class ChildProvider(Protocol):
    def get_children_to_store(self) -> list[EntityChild]: ...

    def get_children_to_remove(self) -> list[EntityChild]: ...

    def get_children_to_truncate(self) -> list[Key]: ...

    def apply_child_ids(self, child_ids: Mapping[str, str]) -> None: ...

    def clear_children(self) -> None: ...


@runtime_checkable
class ObjectProvider(Protocol):
    def get_objects(self) -> list[EntityObject]: ...

    def get_pending_objects(self) -> list[EntityObject]: ...

    def add_object(self, obj: EntityObject) -> None: ...

    def clear_objects(self) -> None: ...


@runtime_checkable
class DocumentObserver(Protocol):
    def add_documents(self, *documents: EntityDocument) -> None: ...

    def set_revisions(self, revisions: list[str]) -> None: ...


@runtime_checkable
class Locker(Protocol):
    def set_lock_result(self, info: LockInfo) -> None: ...


@runtime_checkable
class EntityDetail(Protocol):
    def set_entity_detail(self, entity: Entity) -> None: ...


@runtime_checkable
class WatchedEntity(Protocol):
    def has_watcher(self) -> bool: ...

    def watcher(self) -> Watcher | None: ...


@runtime_checkable
class SettableWatchedEntity(WatchedEntity, Protocol):
    def set_watcher(self, watcher: Watcher) -> None: ...


@runtime_checkable
class TSEntity(Protocol):
    def get_time_series_input_time(self) -> datetime: ...


@runtime_checkable
class NestedChild(Protocol):
    def child_id(self) -> str: ...

    def set_child_id(self, cid: str) -> None: ...

    def keystone_data(self) -> dict[str, bytes]: ...


# ---------------------------------------------------------------------------
# Byte maps
# ---------------------------------------------------------------------------


def to_byte_map(record: Any) -> dict[str, bytes]:
    """JSON encode each public dataclass field, keyed by attribute name."""
    result: dict[str, bytes] = {}
    for f in dataclasses.fields(record):
        if f.name.startswith("_"):
            continue
        try:
            result[f.name] = json.dumps(getattr(record, f.name), default=str).encode("utf-8")
        except (TypeError, ValueError):
            continue
    return result


def from_byte_map(data: Mapping[str, bytes], record: Any) -> None:
    """Apply a byte map produced by to_byte_map; undecodable entries are skipped."""
    for f in dataclasses.fields(record):
        raw = data.get(f.name)
        if raw is None:
            continue
        try:
            setattr(record, f.name, json.loads(raw))
        except ValueError:
            continue


# ---------------------------------------------------------------------------
# Mixins
# ---------------------------------------------------------------------------


class EmbeddedEntity:
    """Entity id holder."""

    def get_keystone_id(self) -> str:
        return self.__dict__.get("_ks_entity_id", "")

    def set_keystone_id(self, entity_id: str) -> None:
        self.__dict__["_ks_entity_id"] = ID(entity_id)


class Labels:
    def add_label(self, name: str, value: str) -> None:
        _state(self, "_ks_labels", list).append(EntityLabel(name=name, value=value))

    def remove_label(self, name: str) -> None:
        _state(self, "_ks_remove_labels", list).append(name)

    def get_labels(self) -> list[EntityLabel]:
        return list(_state(self, "_ks_labels", list))

    def get_removed_labels(self) -> list[str]:
        return list(_state(self, "_ks_remove_labels", list))

    def clear_labels(self) -> None:
        self.__dict__["_ks_labels"] = []
        self.__dict__["_ks_remove_labels"] = []


class Events:
    def add_event(self, event_type: str, data: Mapping[str, str] | None = None) -> None:
        _state(self, "_ks_events", list).append(
            EntityEvent(type=Key(key=event_type), time=_now(), data=dict(data or {}))
        )

    def get_events(self) -> list[EntityEvent]:
        return list(_state(self, "_ks_events", list))

    def clear_events(self) -> None:
        self.__dict__["_ks_events"] = []


class Logs:
    """Entity log writer.

    Each level helper takes the message plus optional reference, actor,
    trace id and string data.
    """

    def log(
        self,
        level: LogLevel,
        message: str,
        reference: str = "",
        actor: str = "",
        trace_id: str = "",
        log_time: datetime | None = None,
        data: Mapping[str, str] | None = None,
    ) -> None:
        _state(self, "_ks_logs", list).append(
            EntityLog(
                level=level,
                message=message,
                reference=reference,
                actor=actor,
                trace_id=trace_id,
                time=log_time or _now(),
                data=dict(data or {}),
            )
        )

    def log_debug(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.DEBUG, message, **kwargs)

    def log_info(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.INFO, message, **kwargs)

    def log_notice(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.NOTICE, message, **kwargs)

    def log_warn(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.WARN, message, **kwargs)

    def log_error(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.ERROR, message, **kwargs)

    def log_critical(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.CRITICAL, message, **kwargs)

    def log_alert(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.ALERT, message, **kwargs)

    def log_fatal(self, message: str, **kwargs: Any) -> None:
        self.log(LogLevel.FATAL, message, **kwargs)

    def get_logs(self) -> list[EntityLog]:
        return list(_state(self, "_ks_logs", list))

    def clear_logs(self) -> None:
        self.__dict__["_ks_logs"] = []


class Relationships:
    def add_relationship(
        self,
        relationship_type: str,
        target: str,
        data: Mapping[str, str] | None = None,
        since: datetime | None = None,
    ) -> None:
        _state(self, "_ks_relationships", list).append(
            EntityRelationship(
                relationship=Key(key=relationship_type),
                target_id=str(target),
                data=dict(data or {}),
                since=since or _now(),
            )
        )

    def get_relationships(self) -> list[EntityRelationship]:
        return list(_state(self, "_ks_relationships", list))

    def set_relationships(self, links: list[EntityRelationship]) -> None:
        self.__dict__["_ks_relationships"] = list(links)

    def clear_relationships(self) -> None:
        self.__dict__["_ks_relationships"] = []


class Sensors:
    def add_sensor_measurement(self, sensor: str, value: float, data: Mapping[str, str] | None = None) -> None:
        _state(self, "_ks_measurements", list).append(
            EntitySensorMeasurement(sensor=sensor, value=value, at=_now(), data=dict(data or {}))
        )

    def get_sensor_measurements(self) -> list[EntitySensorMeasurement]:
        return list(_state(self, "_ks_measurements", list))

    def clear_sensor_measurements(self) -> None:
        self.__dict__["_ks_measurements"] = []


_write_ref_seq = itertools.count()


def new_write_ref() -> str:
    """Allocate a process unique write reference for a child entity."""
    return f"{time.time_ns()}-{next(_write_ref_seq)}"


class ChildEntities:
    """Nested child writes.

    Children added here are stored with a write reference; once the mutation
    succeeds the server returns the assigned child id for each reference and
    it is written back onto the child object.
    """

    def add_child(self, child: NestedChild) -> str:
        if not isinstance(child, NestedChild):
            raise ValidationError("not a nested child", field_name="child")
        ref = new_write_ref()
        entry = EntityChild(
            type=Key(key=type_name(child)),
            cid=child.child_id(),
            write_ref=ref,
            value=int(getattr(child, "aggregate_value", lambda: 0)()),
            data=child.keystone_data(),
        )
        _state(self, "_ks_children", list).append(entry)
        _state(self, "_ks_child_refs", dict)[ref] = child
        return ref

    def remove_child(self, child_type: str, cid: str) -> None:
        _state(self, "_ks_remove_children", list).append(EntityChild(type=Key(key=child_type), cid=cid))

    def truncate_children(self, child_type: str) -> None:
        _state(self, "_ks_truncate_children", list).append(Key(key=child_type))

    def get_children_to_store(self) -> list[EntityChild]:
        return list(_state(self, "_ks_children", list))

    def get_children_to_remove(self) -> list[EntityChild]:
        return list(_state(self, "_ks_remove_children", list))

    def get_children_to_truncate(self) -> list[Key]:
        return list(_state(self, "_ks_truncate_children", list))

    def apply_child_ids(self, child_ids: Mapping[str, str]) -> None:
        refs = _state(self, "_ks_child_refs", dict)
        for ref, cid in child_ids.items():
            child = refs.get(ref)
            if child is not None:
                child.set_child_id(cid)

    def clear_children(self) -> None:
        for key in ("_ks_children", "_ks_remove_children", "_ks_truncate_children"):
            self.__dict__[key] = []
        self.__dict__["_ks_child_refs"] = {}


class Child:
    """Base for nested child records.

    Dataclass children are serialized field by field with to_byte_map unless
    they override keystone_data / from_keystone_data.
    """

    def child_id(self) -> str:
        return self.__dict__.get("_ks_child_id", "")

    def set_child_id(self, cid: str) -> None:
        self.__dict__["_ks_child_id"] = cid

    def aggregate_value(self) -> int:
        return self.__dict__.get("_ks_aggregate", 0)

    def set_aggregate_value(self, value: int) -> None:
        self.__dict__["_ks_aggregate"] = value

    def keystone_data(self) -> dict[str, bytes]:
        return to_byte_map(self)

    def from_keystone_data(self, data: Mapping[str, bytes]) -> None:
        from_byte_map(data, self)


def set_child_data(child: Any, cid: str, value: int, data: Mapping[str, bytes]) -> None:
    """Hydrate a child record from a retrieved EntityChild."""
    if cid and callable(getattr(child, "set_child_id", None)):
        child.set_child_id(cid)
    if callable(getattr(child, "set_aggregate_value", None)):
        child.set_aggregate_value(value)
    if callable(getattr(child, "from_keystone_data", None)):
        child.from_keystone_data(data)
    else:
        from_byte_map(data, child)


@dataclass
class LockInfo:
    id: str = ""
    locked_until: datetime | None = None
    message: str = ""
    lock_acquired: bool = False


class LockHolder:
    def set_lock_result(self, info: LockInfo) -> None:
        self.__dict__["_ks_lock"] = info

    def lock_data(self) -> LockInfo | None:
        return self.__dict__.get("_ks_lock")

    def acquired_lock(self) -> bool:
        info = self.lock_data()
        return info is not None and info.lock_acquired


class Watched:
    def has_watcher(self) -> bool:
        return self.__dict__.get("_ks_watcher") is not None

    def watcher(self) -> Watcher | None:
        return self.__dict__.get("_ks_watcher")

    def set_watcher(self, watcher: Watcher) -> None:
        self.__dict__["_ks_watcher"] = watcher


class Document:
    """A versioned document attached to an entity.

    Metadata changes made through append_meta / remove_meta are sent as
    deltas; set_meta replaces the whole map.
    """

    def __init__(self, data: bytes = b"", meta: Mapping[str, str] | None = None, revision_id: str = "") -> None:
        self.revision_id = revision_id
        self.data = data
        self.meta: dict[str, str] = dict(meta or {})
        self._append_meta: dict[str, str] = {}
        self._remove_meta: list[str] = []

    @classmethod
    def update(cls, revision_id: str) -> Document:
        return cls(revision_id=revision_id)

    def append_meta(self, key: str, value: str) -> None:
        self._append_meta[key] = value

    def remove_meta(self, key: str) -> None:
        self._remove_meta.append(key)

    def set_meta(self, meta: Mapping[str, str]) -> None:
        self.meta = dict(meta)
        self._append_meta = {}
        self._remove_meta = []

    def to_wire(self) -> EntityDocument:
        return EntityDocument(
            revision_id=self.revision_id,
            data=self.data,
            meta=dict(self.meta),
            append_meta=dict(self._append_meta),
            remove_meta=list(self._remove_meta),
        )

    def hydrate(self, doc: EntityDocument) -> None:
        self.data = doc.data
        self.meta = dict(doc.meta)
        self.revision_id = doc.revision_id

    def observe_mutation(self, response: MutateResponse) -> None:
        if not self.revision_id and response.document_revision_id:
            self.revision_id = response.document_revision_id


class Documents:
    def get_documents(self) -> list[EntityDocument]:
        return list(_state(self, "_ks_documents", list))

    def get_document_revisions(self) -> list[str]:
        return list(_state(self, "_ks_document_revisions", list))

    def clear_document_revisions(self) -> None:
        self.__dict__["_ks_document_revisions"] = []

    def latest_document(self) -> EntityDocument | None:
        docs = self.get_documents()
        if not docs:
            return None
        floor = datetime.min.replace(tzinfo=timezone.utc)
        return max(docs, key=lambda d: d.created or floor)

    def add_documents(self, *documents: EntityDocument) -> None:
        self.__dict__["_ks_documents"] = list(documents)

    def set_revisions(self, revisions: list[str]) -> None:
        self.__dict__["_ks_document_revisions"] = list(revisions)


class Objects:
    """Stored file objects.

    Objects queued with attach_object are uploaded with the next mutation;
    the mutation response carries their upload urls.
    """

    def attach_object(
        self,
        path: str,
        data: bytes = b"",
        *,
        public: bool = False,
        expiry: datetime | None = None,
        metadata: Mapping[str, str] | None = None,
        object_type: ObjectType = ObjectType.STANDARD,
    ) -> None:
        _state(self, "_ks_pending_objects", list).append(
            EntityObject(
                path=path,
                data=data,
                public=public,
                expiry=expiry,
                metadata=dict(metadata or {}),
                type=object_type,
            )
        )

    def get_pending_objects(self) -> list[EntityObject]:
        return list(_state(self, "_ks_pending_objects", list))

    def add_object(self, obj: EntityObject) -> None:
        _state(self, "_ks_objects", list).append(obj)

    def get_objects(self) -> list[EntityObject]:
        return list(_state(self, "_ks_objects", list))

    def get_object(self, path: str) -> EntityObject | None:
        for obj in self.get_objects():
            if obj.path == path:
                return obj
        return None

    def observe_mutation(self, response: MutateResponse) -> None:
        for obj in response.objects:
            self.add_object(obj)

    def clear_objects(self) -> None:
        self.__dict__["_ks_pending_objects"] = []


class EmbeddedDetails:
    def set_entity_detail(self, entity: Entity) -> None:
        if entity is None:
            return
        self.__dict__["_ks_detail"] = entity

    def _detail(self) -> Entity:
        return self.__dict__.get("_ks_detail") or Entity()

    def date_created(self) -> datetime | None:
        return self._detail().created

    def last_updated(self) -> datetime | None:
        return self._detail().last_update

    def state_changed(self) -> datetime | None:
        return self._detail().state_change

    def keystone_state(self) -> EntityState:
        return self._detail().state


class TimeSeriesEntity:
    def set_time_series_input_time(self, t: datetime) -> None:
        self.__dict__["_ks_ts_input_time"] = t

    def get_time_series_input_time(self) -> datetime:
        t = self.__dict__.get("_ks_ts_input_time")
        if t is None:
            t = _now()
            self.__dict__["_ks_ts_input_time"] = t
        return t


class BaseEntity(
    EmbeddedEntity,
    EmbeddedDetails,
    Events,
    Labels,
    LockHolder,
    Logs,
    Relationships,
    Sensors,
):
    """Common trait bundle for top level records."""


class BaseChildEntity(BaseEntity):
    """A full entity keyed under a parent entity."""

    def set_keystone_id(self, entity_id: str) -> None:
        eid = ID(entity_id)
        self.__dict__["_ks_entity_id"] = eid
        self.__dict__["_ks_parent_id"] = eid.parent_id
        self.__dict__["_ks_child_id"] = eid.child_id

    def set_keystone_parent_id(self, entity_id: str) -> None:
        parent = ID(entity_id).parent_id
        self.__dict__["_ks_parent_id"] = parent
        if not self.get_keystone_id():
            child = self.__dict__.get("_ks_child_id", "")
            self.__dict__["_ks_entity_id"] = ID(f"{parent}-{child}" if child else parent)

    def set_keystone_child_id(self, cid: str) -> None:
        self.__dict__["_ks_child_id"] = cid

    def get_keystone_parent_id(self) -> str:
        return self.__dict__.get("_ks_parent_id") or ID(self.get_keystone_id()).parent_id

    def get_keystone_child_id(self) -> str:
        return self.__dict__.get("_ks_child_id") or ID(self.get_keystone_id()).child_id


class Remote(Sensors, Logs, Events):
    """Handle for writing sensors, logs and events to a foreign entity."""

    def __init__(self, entity_id: str) -> None:
        self._ks_entity_id = entity_id

    def get_keystone_id(self) -> str:
        return self._ks_entity_id

    def set_keystone_id(self, entity_id: str) -> None:
        self._ks_entity_id = entity_id


def remote_entity(entity_id: str) -> Remote:
    return Remote(entity_id)
