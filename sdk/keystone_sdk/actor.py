"""
Keystone actor.

An Actor is the identity every request is made under: the connection's
vendor application and token, a workspace, a trace id and the end user.
All entity operations hang off the actor.

Request pipeline for writes (mutate):
    1. Register the record type, waiting on the registration barrier
    2. Diff the record against its watcher (or a defaults watcher)
    3. Collect labels, sensors, relationships, events, logs, children and
       objects from the record's traits
    4. Apply mutate options, then dispatch
    5. On success: back fill child ids, run mutation observers, back fill
       the entity id, clear trait state and commit the watcher

Invariants:
    - A missing connection raises ActorError before anything is dispatched
    - Local validation failures are raised before dispatch
    - Server reported errors become MutationError; transport errors
      propagate unchanged
    - Post success hooks run strictly after the response is received

Example:
    >>> actor = conn.actor("ws-1", user_id="user-7")
    >>> user = User(name="Ann")
    >>> await actor.mutate(user, with_mutation_comment("signup"))
    >>> loaded = User()
    >>> await actor.get_by_id(user.get_keystone_id(), loaded, with_properties("name"))
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .chart import ChartOption
from .codecs import observe_mutation, observe_retrieve
from .convert import unmarshal
from .dynamic import PropertyValueList
from .errors import ActorError, MarshalError, MutationError, RemoteError, ValidationError
from .filters import FindOption, build_filter, only_active
from .marshal import MUST_PASS_RECORD, marshal
from .property import Property, type_name
from .retrieve import ByUniqueProperty, Retriever, RetrieveOption, apply_retrieve_options, by_entity_id, by_hash_id
from .retrieve import by_unique_property
from .schema import quick_define
from .services import IncrementingID, PiiRegulation, RateLimit
from .shared_view import SharedView
from .streams import DEFAULT_LOG_CAPACITY, EventHandler, LogStream, StreamKey, TaskHandler
from .streams import event_stream as _event_stream
from .streams import push_task as _push_task
from .streams import task_stream as _task_stream
from .traits import (
    ChildProvider,
    DocumentObserver,
    EntityProvider,
    EventProvider,
    LabelProvider,
    LogProvider,
    ObjectProvider,
    RelationshipProvider,
    SensorProvider,
    SettableWatchedEntity,
    TSEntity,
    WatchedEntity,
)
from .watcher import Watcher, new_defaults_watcher
from .wire import (
    AKVDelRequest,
    AKVGetRequest,
    AKVProperty,
    AKVPutRequest,
    Authorization,
    ChartSeries,
    ChartTimeSeriesRequest,
    Date,
    DailyEntityRequest,
    DailyEntityResponse,
    DestroyRequest,
    EntityEvent,
    EntityLog,
    EntityProperty,
    EntityReference,
    EntityRequest,
    EntityResponse,
    EntityView,
    EventRequest,
    FindRequest,
    GenericResponse,
    GroupCountRequest,
    GroupCountResult,
    IIDResponse,
    Key,
    ListRequest,
    LogLevel,
    LogsRequest,
    LookupRequest,
    MutateRequest,
    MutateResponse,
    Mutation,
    PageRequest,
    PiiAnonymizeRequest,
    PiiAnonymizeResponse,
    PiiTokenRequest,
    ReportTimeSeriesRequest,
    SchemaOption,
    SchemaStatisticsRequest,
    SchemaStatisticsResponse,
    SharedViewResponse,
    SharedViewsRequest,
    SharedViewsResponse,
    ShareViewRequest,
    SnapshotReportRequest,
    SquidRecoverRequest,
    SquidRequest,
    SquidResponse,
    StatusResponse,
    User,
    Value,
    VendorApp,
    Window,
)

if TYPE_CHECKING:
    from .connection import Connection

logger = logging.getLogger(__name__)

NO_WORKSPACE = "__"

COMMENT_REQUIRED = "you must provide a mutation comment"
INVALID_RETRIEVE_COMBINATION = "invalid retrieveBy and dst combination"
REMOTE_MUTATE_NEEDS_ID = "entityID is required for remote mutations"
NIL_RESPONSE = "nil response"
INVALID_DELETION_REASON = "a valid deletion reason must be provided"
INVALID_EID_HASH = "invalid entity ID hash"
TIME_SERIES_REQUIRED = "you must pass a TimeSeriesEntity as the source"
GENERIC_TYPE_REQUIRED = "entity_type is required for a dict destination"

MIN_DELETION_REASON = 10


def eid_hash(entity_id: str) -> str:
    """Confirmation hash required to permanently destroy an entity."""
    return f"des{entity_id}troy"


def mutate_to_error(resp: MutateResponse | None) -> MutateResponse:
    """Raise for a missing or failed mutate response.

    Raises:
        RemoteError: If there is no response
        MutationError: If the response carries an error code or message
    """
    if resp is None:
        raise RemoteError(NIL_RESPONSE, operation="Mutate")
    if resp.error_code > 0 or resp.error_message:
        raise MutationError(
            resp.error_code,
            resp.error_message,
            extended=list(resp.extended_messages),
            suggestions=list(resp.suggestions),
        )
    return resp


def _sorted_properties(values: Mapping[Property, Value]) -> list[EntityProperty]:
    return [
        EntityProperty(property=prop.full_name, value=value)
        for prop, value in sorted(values.items(), key=lambda kv: kv[0].full_name)
    ]


def _require_record(src: Any) -> None:
    if src is None or isinstance(src, type):
        raise MarshalError(MUST_PASS_RECORD)
    if not dataclasses.is_dataclass(src) and not callable(getattr(src, "marshal_keystone", None)):
        raise MarshalError(MUST_PASS_RECORD)


class Actor:
    """Identity and entry point for every Keystone operation.

    Actors are cheap; create one per request from Connection.actor.
    """

    def __init__(
        self,
        connection: Connection | None,
        workspace_id: str,
        user: User | None = None,
        trace_id: str = "",
    ) -> None:
        self._connection = connection
        self._workspace_id = workspace_id
        self._trace_id = trace_id
        self._user = user

    # -- identity -------------------------------------------------------------

    def clone_without_workspace(self) -> Actor:
        """An actor with the same identity acting across all workspaces."""
        return Actor(self._connection, NO_WORKSPACE, self._user, self._trace_id)

    @property
    def connection(self) -> Connection | None:
        return self._connection

    def replace_connection(self, connection: Connection) -> None:
        self._connection = connection

    def connection_or_raise(self) -> Connection:
        if self._connection is None:
            raise ActorError()
        return self._connection

    @property
    def workspace_id(self) -> str:
        return self._workspace_id

    @property
    def all_workspaces(self) -> bool:
        return self._workspace_id == NO_WORKSPACE

    @property
    def trace_id(self) -> str:
        return self._trace_id

    def set_trace_id(self, trace_id: str) -> None:
        self._trace_id = trace_id

    @property
    def user(self) -> User | None:
        return self._user

    def set_client_name(self, client: str) -> None:
        if self._user is None:
            self._user = User()
        self._user.client = client

    @property
    def vendor_id(self) -> str:
        return self.connection_or_raise().app_id.vendor_id

    @property
    def app_id(self) -> str:
        return self.connection_or_raise().app_id.app_id

    def vendor_app(self) -> VendorApp:
        return self.connection_or_raise().app_id.model_copy()

    def authorization(self) -> Authorization:
        """Authorization block attached to every request.

        Raises:
            ActorError: If the actor has no connection
        """
        conn = self.connection_or_raise()
        return Authorization(
            source=conn.app_id.model_copy(),
            token=conn.token,
            trace_id=self._trace_id,
            workspace_id=self._workspace_id,
            user=self._user.model_copy() if self._user is not None else None,
        )

    def authorize_metadata(self) -> list[tuple[str, str]]:
        """Authorization as call metadata, for streams that carry no request body."""
        auth = self.authorization()
        user = auth.user or User()
        return [
            ("workspace_id", auth.workspace_id),
            ("trace_id", auth.trace_id),
            ("vendor_id", auth.source.vendor_id),
            ("app_id", auth.source.app_id),
            ("access_token", auth.token),
            ("client", user.client),
            ("user_id", user.user_id),
            ("user_agent", user.user_agent),
            ("remote_ip", user.remote_ip),
        ]

    def _schema_key(self, entity_type: str) -> Key:
        return Key(key=entity_type, source=self.vendor_app())

    # -- reads ----------------------------------------------------------------

    async def get(self, retriever: Retriever, dst: Any, *options: RetrieveOption | None) -> Any:
        """Retrieve one entity into dst.

        Args:
            retriever: Identifies the entity (by id, hash id or unique property)
            dst: Record instance to hydrate, or a dict for a generic result
            *options: View options; None entries are ignored

        Returns:
            dst

        Raises:
            ActorError: If the actor has no connection
            ValidationError: For a unique property lookup into a dict
        """
        conn = self.connection_or_raise()
        by_unique = isinstance(retriever, ByUniqueProperty)
        if by_unique and isinstance(dst, dict):
            raise ValidationError(INVALID_RETRIEVE_COMBINATION)

        request = retriever.base_request()
        request.authorization = self.authorization()
        apply_retrieve_options(request, options)

        source = self.vendor_app()
        for prop_request in request.view.properties:
            prop_request.source = source
        for rel in request.view.relationship_by_type:
            rel.source = source

        if isinstance(dst, dict):
            schema_type, schema_id = retriever.entity_type, ""
        else:
            definition = await conn.registry.ensure_registered(dst)
            schema_type, schema_id = definition.type, definition.id

        request.schema_ = Key(key=schema_type, source=source)
        if by_unique:
            request.unique_id.schema_id = schema_id or schema_type

        resp = await conn.invoke("Retrieve", request, f"entity_id={request.entity_id}")
        return self._hydrate(resp, dst, options)

    @staticmethod
    def _retrieve_type(dst: Any, entity_type: str) -> Any:
        if entity_type:
            return entity_type
        if isinstance(dst, dict):
            raise ValidationError(GENERIC_TYPE_REQUIRED, field_name="entity_type")
        return type(dst)

    async def get_by_id(
        self, entity_id: str, dst: Any, *options: RetrieveOption | None, entity_type: str = ""
    ) -> Any:
        """Retrieve by entity id.

        Raises:
            ValidationError: If dst is a dict and entity_type is empty
        """
        return await self.get(by_entity_id(self._retrieve_type(dst, entity_type), entity_id), dst, *options)

    async def get_by_hash_id(
        self, raw_id: str, dst: Any, *options: RetrieveOption | None, entity_type: str = ""
    ) -> Any:
        """Retrieve by the key an entity id was hashed from.

        Raises:
            ValidationError: If raw_id contains '#', or dst is a dict and
                entity_type is empty
        """
        return await self.get(by_hash_id(self._retrieve_type(dst, entity_type), raw_id), dst, *options)

    async def get_by_unique_property(self, unique_id: str, prop: str, dst: Any, *options: RetrieveOption | None) -> Any:
        return await self.get(by_unique_property(type(dst), unique_id, prop), dst, *options)

    async def get_shared_by_id(
        self, owner: VendorApp, entity_id: str, dst: Any, *options: RetrieveOption | None
    ) -> Any:
        """Retrieve an entity another application shared with this one.

        The record type is not registered; the request targets the owner's
        schema for the type.
        """
        conn = self.connection_or_raise()
        request = by_entity_id(type(dst), entity_id).base_request()
        request.authorization = self.authorization()
        apply_retrieve_options(request, options)
        for prop_request in request.view.properties:
            prop_request.source = owner
        request.schema_ = Key(key=quick_define(dst).type, source=owner)

        resp = await conn.invoke("Retrieve", request, f"entity_id={entity_id}")
        return self._hydrate(resp, dst, options)

    async def remote_get(self, entity_id: str, dst: Any, *options: RetrieveOption | None) -> Any:
        """Retrieve an entity without a schema key or registration."""
        conn = self.connection_or_raise()
        request = EntityRequest(authorization=self.authorization(), entity_id=str(entity_id), view=EntityView())
        apply_retrieve_options(request, options)
        resp = await conn.invoke("Retrieve", request, f"entity_id={entity_id}")
        return self._hydrate(resp, dst, options)

    def _hydrate(self, resp: EntityResponse, dst: Any, options: Sequence[RetrieveOption | None]) -> Any:
        if resp is None:
            return dst
        if isinstance(dst, DocumentObserver) and resp.documents:
            dst.add_documents(*resp.documents)
            dst.set_revisions([d.revision_id for d in resp.documents if d.revision_id])

        for opt in options:
            if opt is not None:
                observe_retrieve(opt, resp)
        observe_retrieve(dst, resp)

        return unmarshal(resp, dst)

    # -- writes ---------------------------------------------------------------

    async def mutate(self, src: Any, *options: Any) -> MutateResponse:
        """Write the changes of a record.

        Args:
            src: Record instance
            *options: Mutate options; None entries are ignored

        Returns:
            The server response

        Raises:
            ActorError: If the actor has no connection
            MarshalError: If src is not a record instance
            ValidationError: If the schema requires a comment and none was given
            MutationError: If the server rejected the mutation
        """
        conn = self.connection_or_raise()
        _require_record(src)
        definition = await conn.registry.ensure_registered(src)
        opts = [o for o in options if o is not None]

        watcher: Watcher | None = None
        if isinstance(src, WatchedEntity) and src.has_watcher():
            watcher = src.watcher()
        elif dataclasses.is_dataclass(src):
            try:
                watcher = new_defaults_watcher(src)
            except TypeError:
                logger.debug(f"No default instance for {type_name(src)}, sending every property")

        if watcher is not None:
            for opt in opts:
                prepare = getattr(opt, "prepare", None)
                if callable(prepare):
                    prepare(watcher)
            changes = watcher.changes(src)
        else:
            changes = marshal(src)

        entity_id = src.get_keystone_id() if isinstance(src, EntityProvider) else ""
        mutation = Mutation(
            mutator=self._user.model_copy() if self._user is not None else None,
            properties=_sorted_properties(changes),
        )
        self._collect_traits(src, mutation)

        request = MutateRequest(
            authorization=self.authorization(),
            entity_id=str(entity_id),
            schema_=self._schema_key(definition.type),
            mutation=mutation,
        )
        for opt in opts:
            opt.apply(request)

        if definition.has_option(SchemaOption.STORE_MUTATIONS) and not request.mutation.comment:
            raise ValidationError(COMMENT_REQUIRED, field_name="comment")

        resp = mutate_to_error(await conn.invoke("Mutate", request, f"entity_id={entity_id}"))
        if resp.success:
            self._after_mutation(src, resp, opts, str(entity_id), watcher)
        return resp

    def _collect_traits(self, src: Any, mutation: Mutation) -> None:
        if isinstance(src, LabelProvider):
            mutation.labels = src.get_labels()
            mutation.remove_labels = src.get_removed_labels()
        if isinstance(src, SensorProvider):
            mutation.measurements = src.get_sensor_measurements()
        if isinstance(src, RelationshipProvider):
            mutation.relationships = src.get_relationships()
        if isinstance(src, EventProvider):
            mutation.events = src.get_events()
        if isinstance(src, LogProvider):
            mutation.logs = src.get_logs()
        if isinstance(src, ChildProvider):
            mutation.children = src.get_children_to_store()
            mutation.remove_children = src.get_children_to_remove()
            mutation.truncate_children = src.get_children_to_truncate()
        if isinstance(src, ObjectProvider):
            mutation.objects = src.get_pending_objects()

    def _after_mutation(
        self,
        src: Any,
        resp: MutateResponse,
        options: Iterable[Any],
        entity_id: str,
        watcher: Watcher | None,
    ) -> None:
        if isinstance(src, ChildProvider) and resp.child_ids:
            src.apply_child_ids(resp.child_ids)

        try:
            for opt in options:
                observer = getattr(opt, "observe_mutation", None)
                if callable(observer):
                    observer(resp)
            observe_mutation(src, resp)
            if callable(getattr(src, "observe_mutation", None)):
                src.observe_mutation(resp)
        except Exception as e:
            logger.warning(f"Mutation observer failed for {type_name(src)}: {e}")

        if isinstance(src, EntityProvider) and not entity_id and resp.entity_id:
            src.set_keystone_id(resp.entity_id)

        self._clear_traits(src)

        if watcher is not None:
            watcher.changes(src, commit=True)
            if isinstance(src, SettableWatchedEntity) and not src.has_watcher():
                src.set_watcher(watcher)

    def _clear_traits(self, src: Any) -> None:
        if isinstance(src, LabelProvider):
            src.clear_labels()
        if isinstance(src, SensorProvider):
            src.clear_sensor_measurements()
        if isinstance(src, RelationshipProvider):
            src.clear_relationships()
        if isinstance(src, EventProvider):
            src.clear_events()
        if isinstance(src, LogProvider):
            src.clear_logs()
        if isinstance(src, ChildProvider):
            src.clear_children()
        if isinstance(src, ObjectProvider):
            src.clear_objects()

    async def remote_mutate(self, src: Any, *options: Any) -> MutateResponse:
        """Write sensors, events and logs to an entity owned elsewhere.

        Raises:
            ValidationError: If src carries no entity id
        """
        conn = self.connection_or_raise()
        entity_id = src.get_keystone_id() if isinstance(src, EntityProvider) else ""
        if not entity_id:
            raise ValidationError(REMOTE_MUTATE_NEEDS_ID, field_name="entity_id")

        mutation = Mutation()
        if isinstance(src, SensorProvider):
            mutation.measurements = src.get_sensor_measurements()
        if isinstance(src, EventProvider):
            mutation.events = src.get_events()
        if isinstance(src, LogProvider):
            mutation.logs = src.get_logs()

        request = MutateRequest(authorization=self.authorization(), entity_id=str(entity_id), mutation=mutation)
        for opt in options:
            if opt is not None:
                opt.apply(request)

        resp = mutate_to_error(await conn.invoke("Mutate", request, f"entity_id={entity_id}"))
        if resp.success:
            if isinstance(src, SensorProvider):
                src.clear_sensor_measurements()
            if isinstance(src, EventProvider):
                src.clear_events()
            if isinstance(src, LogProvider):
                src.clear_logs()
        return resp

    async def report_time_series(self, src: Any) -> MutateResponse:
        """Report every property of a time series record at its input time.

        Raises:
            ValidationError: If src is not a time series record
        """
        conn = self.connection_or_raise()
        _require_record(src)
        if not isinstance(src, TSEntity):
            raise ValidationError(TIME_SERIES_REQUIRED)
        definition = await conn.registry.ensure_registered(src)

        entity_id = src.get_keystone_id() if isinstance(src, EntityProvider) else ""
        mutation = Mutation(
            mutator=self._user.model_copy() if self._user is not None else None,
            properties=_sorted_properties(Watcher().changes(src)),
        )
        if isinstance(src, LabelProvider):
            mutation.labels = src.get_labels()

        request = ReportTimeSeriesRequest(
            authorization=self.authorization(),
            entity_id=str(entity_id),
            schema_=self._schema_key(definition.type),
            mutation=mutation,
            timestamp=src.get_time_series_input_time(),
        )
        resp = mutate_to_error(await conn.invoke("ReportTimeSeries", request, f"entity_id={entity_id}"))
        if resp.success and isinstance(src, EntityProvider) and not entity_id and resp.entity_id:
            src.set_keystone_id(resp.entity_id)
        return resp

    async def set_dynamic_properties(
        self,
        entity_id: str,
        set_properties: Sequence[EntityProperty],
        remove_properties: Sequence[str] = (),
        comment: str = "",
    ) -> MutateResponse:
        conn = self.connection_or_raise()
        mutation = Mutation(
            mutator=self._user.model_copy() if self._user is not None else None,
            dynamic_properties=list(set_properties),
            remove_dynamic_properties=list(remove_properties),
            comment=comment,
        )
        request = MutateRequest(authorization=self.authorization(), entity_id=str(entity_id), mutation=mutation)
        return mutate_to_error(await conn.invoke("Mutate", request, f"entity_id={entity_id}"))

    async def get_dynamic_properties(self, entity_id: str, *properties: str) -> PropertyValueList:
        conn = self.connection_or_raise()
        request = EntityRequest(
            authorization=self.authorization(),
            entity_id=str(entity_id),
            view=EntityView(dynamic_properties=list(properties)),
        )
        resp = await conn.invoke("Retrieve", request, f"entity_id={entity_id}")
        result = PropertyValueList()
        for prop in resp.dynamic_properties if resp is not None else []:
            if prop.value is not None:
                result[prop.property] = prop.value
        return result

    # -- queries --------------------------------------------------------------

    async def find(
        self, entity_type: str, retrieve: RetrieveOption | None, *options: FindOption | None
    ) -> list[EntityResponse]:
        """Find entities of a type matching every option.

        Only active entities are returned unless an option filters on state.
        """
        conn = self.connection_or_raise()
        request = FindRequest(
            authorization=self.authorization(),
            schema_=self._schema_key(entity_type),
            view=EntityView(),
        )
        if retrieve is not None:
            retrieve.apply(request.view)

        filt = build_filter(*options)
        if not filt.has_state_filter():
            only_active().apply(filt)

        request.property_filters = filt.filters
        request.label_filters = filt.labels
        request.relation_of = filt.relation_of
        request.parent_entity_id = filt.parent_entity_id
        request.entity_ids = filt.entity_ids

        resp = await conn.invoke("Find", request, f"schema={entity_type}")
        return list(resp.entities) if resp is not None else []

    async def list(
        self, entity_type: str, properties: Sequence[str], *options: FindOption | None
    ) -> list[EntityResponse]:
        """List entities of a type with paging and sorting."""
        conn = self.connection_or_raise()
        filt = build_filter(*options)
        request = ListRequest(
            authorization=self.authorization(),
            schema_=self._schema_key(entity_type),
            properties=list(properties),
            filters=filt.filters,
            entity_ids=filt.entity_ids,
            parent_entity_id=filt.parent_entity_id,
            relation_of=filt.relation_of,
            sort=filt.sort,
            page=PageRequest(per_page=filt.per_page, page_number=filt.page_number),
        )
        resp = await conn.invoke("List", request, f"schema={entity_type}")
        return list(resp.entities) if resp is not None else []

    async def group_count(
        self, entity_type: str, group_by: Sequence[str], *options: FindOption | None
    ) -> list[GroupCountResult]:
        conn = self.connection_or_raise()
        filt = build_filter(*options)
        request = GroupCountRequest(
            authorization=self.authorization(),
            schema_=self._schema_key(entity_type),
            properties=list(group_by),
            filters=filt.filters,
            page=PageRequest(per_page=filt.per_page, page_number=filt.page_number),
        )
        resp = await conn.invoke("GroupCount", request, f"schema={entity_type}")
        return list(resp.results) if resp is not None else []

    async def lookup(self, prop: str, value: str, schema_id: str = "") -> list[EntityReference]:
        """Find entities whose lookup property holds value."""
        conn = self.connection_or_raise()
        request = LookupRequest(authorization=self.authorization(), property=prop, lookup=value, schema_id=schema_id)
        resp = await conn.invoke("Lookup", request, f"property={prop}")
        return list(resp.results) if resp is not None else []

    async def lookup_one(self, prop: str, value: str, schema_id: str = "") -> EntityReference | None:
        results = await self.lookup(prop, value, schema_id)
        return results[0] if results else None

    async def logs(
        self,
        entity_id: str,
        *,
        min_level: LogLevel = LogLevel.DEBUG,
        levels: Sequence[LogLevel] = (),
        window: Window | None = None,
    ) -> list[EntityLog]:
        conn = self.connection_or_raise()
        request = LogsRequest(
            authorization=self.authorization(),
            entity_id=str(entity_id),
            levels=list(levels),
            min_level=min_level,
            window=window,
        )
        resp = await conn.invoke("Logs", request, f"entity_id={entity_id}")
        return list(resp.logs) if resp is not None else []

    async def events(
        self,
        entity_id: str,
        *,
        types: Sequence[Key] = (),
        window: Window | None = None,
    ) -> list[EntityEvent]:
        conn = self.connection_or_raise()
        request = EventRequest(
            authorization=self.authorization(),
            entity_id=str(entity_id),
            event_by_type=list(types),
            events_in_window=window,
        )
        resp = await conn.invoke("Events", request, f"entity_id={entity_id}")
        return list(resp.events) if resp is not None else []

    async def daily_entities(
        self,
        schema_type: str,
        date: Date,
        *,
        after_id: str = "",
        reverse: bool = False,
        limit: int = 0,
    ) -> DailyEntityResponse:
        """Page through the ids of entities created on a day."""
        conn = self.connection_or_raise()
        request = DailyEntityRequest(
            authorization=self.authorization(),
            schema_=self._schema_key(schema_type),
            date=date,
            after_id=after_id,
            reverse_order=reverse,
            limit=limit,
        )
        return await conn.invoke("DailyEntities", request, f"schema={schema_type}")

    async def schema_statistics(
        self,
        schema_type: str,
        *,
        created_from: Date | None = None,
        created_until: Date | None = None,
        include_breakdown: bool = False,
        day_limit: int = 0,
    ) -> SchemaStatisticsResponse:
        conn = self.connection_or_raise()
        request = SchemaStatisticsRequest(
            authorization=self.authorization(),
            schema_=self._schema_key(schema_type),
            created_from=created_from,
            created_until=created_until,
            include_breakdown=include_breakdown,
            day_limit=day_limit,
        )
        return await conn.invoke("SchemaStatistics", request, f"schema={schema_type}")

    async def chart_time_series(self, schema_type: str, *options: ChartOption | None) -> dict[str, ChartSeries]:
        """Aggregate reported time series data into chart series.

        Returns:
            Series keyed by the value of the series property, or a single
            series when none is set
        """
        conn = self.connection_or_raise()
        request = ChartTimeSeriesRequest(
            authorization=self.authorization(),
            schema_=self._schema_key(schema_type),
        )
        for opt in options:
            if opt is not None:
                opt.apply(request)
        resp = await conn.invoke("ChartTimeSeries", request, f"schema={schema_type}")
        return dict(resp.series) if resp is not None else {}

    async def snapshot(self, entity_type: Any, entity_id: str) -> bool:
        """Ask the server to snapshot an entity for reporting."""
        conn = self.connection_or_raise()
        definition, _ = conn.register_type(entity_type)
        request = SnapshotReportRequest(
            authorization=self.authorization(),
            entity_id=str(entity_id),
            schema_=self._schema_key(definition.type),
        )
        resp = await conn.invoke("SnapshotReport", request, f"entity_id={entity_id}")
        return bool(resp is not None and resp.success)

    async def squid(self, sequence_key: str) -> SquidResponse:
        """Take the next id in a sequence.

        The response carries the id and a squat token that recovers it later.
        """
        conn = self.connection_or_raise()
        request = SquidRequest(authorization=self.authorization(), sequence_key=sequence_key)
        return await conn.invoke("SQUID", request, f"sequence={sequence_key}")

    async def squid_retrieve(self, sequence_key: str, squat: str) -> SquidResponse:
        conn = self.connection_or_raise()
        request = SquidRecoverRequest(authorization=self.authorization(), sequence_key=sequence_key, squat=squat)
        return await conn.invoke("SQUIDRecover", request, f"sequence={sequence_key}")

    async def server_status(self) -> StatusResponse:
        conn = self.connection_or_raise()
        return await conn.invoke("Status", self.authorization())

    # -- destroy --------------------------------------------------------------

    async def permanently_destroy_entity(self, schema_type: str, entity_id: str, hash_: str, reason: str) -> bool:
        """Irreversibly remove an entity and its history.

        Args:
            schema_type: Type key of the entity
            entity_id: Entity to destroy
            hash_: Must equal eid_hash(entity_id)
            reason: Why the entity is destroyed, at least 10 characters

        Raises:
            ValidationError: If the reason is too short or the hash is wrong
        """
        conn = self.connection_or_raise()
        if len(reason) < MIN_DELETION_REASON:
            raise ValidationError(INVALID_DELETION_REASON, field_name="reason")
        if hash_ != eid_hash(entity_id):
            raise ValidationError(INVALID_EID_HASH, field_name="eid_hash")

        request = DestroyRequest(
            authorization=self.authorization(),
            schema_=self._schema_key(schema_type),
            eid=str(entity_id),
            reason=reason,
        )
        resp = await conn.invoke("Destroy", request, f"entity_id={entity_id}")
        return bool(resp is not None and resp.destroyed)

    # -- pii ------------------------------------------------------------------

    async def new_pii_token(
        self, country: str, regulation: PiiRegulation | str, expiry: datetime | None = None
    ) -> str:
        """Issue a token grouping personal data for later anonymization.

        Args:
            country: COUNTRY[:STATE[:PROVINCE]]
            regulation: Regulation the data falls under
            expiry: Anonymize automatically after this time
        """
        conn = self.connection_or_raise()
        request = PiiTokenRequest(
            authorization=self.authorization(),
            country=country,
            regulation=str(regulation).strip().upper(),
            auto_expire=expiry,
        )
        resp = await conn.invoke("PiiToken", request, f"app={self.app_id}")
        return resp.token if resp is not None else ""

    async def new_gdpr_token(self, country: str, expiry: datetime | None = None) -> str:
        return await self.new_pii_token(country, PiiRegulation.GDPR, expiry)

    async def new_ccpa_token(self, expiry: datetime | None = None) -> str:
        return await self.new_pii_token("US:CA", PiiRegulation.CCPA, expiry)

    async def anonymize(self, token: str) -> PiiAnonymizeResponse:
        return await self._anonymize(token, rollback=False)

    async def anonymize_rollback(self, token: str) -> PiiAnonymizeResponse:
        return await self._anonymize(token, rollback=True)

    async def _anonymize(self, token: str, rollback: bool) -> PiiAnonymizeResponse:
        conn = self.connection_or_raise()
        request = PiiAnonymizeRequest(authorization=self.authorization(), token=token, rollback=rollback)
        return await conn.invoke("PiiAnonymize", request, f"app={self.app_id}")

    # -- application key value store -------------------------------------------

    async def akv_put(self, *properties: AKVProperty) -> GenericResponse:
        conn = self.connection_or_raise()
        request = AKVPutRequest(authorization=self.authorization(), properties=list(properties))
        return await conn.invoke("AKVPut", request, f"app={self.app_id}")

    async def akv_get(self, *keys: str) -> dict[str, Value]:
        conn = self.connection_or_raise()
        request = AKVGetRequest(authorization=self.authorization(), properties=list(keys))
        resp = await conn.invoke("AKVGet", request, f"app={self.app_id}")
        return dict(resp.properties) if resp is not None else {}

    async def akv_del(self, *keys: str) -> GenericResponse:
        conn = self.connection_or_raise()
        request = AKVDelRequest(authorization=self.authorization(), properties=list(keys))
        return await conn.invoke("AKVDel", request, f"app={self.app_id}")

    # -- counters and rate limits ----------------------------------------------

    async def incrementing_id(self, iid: IncrementingID) -> IIDResponse:
        conn = self.connection_or_raise()
        return await conn.invoke("IID", iid.to_request(self), f"eid={iid.eid}")

    def new_rate_limit(self, key: str, hard_limit: int, limit_minutes: int) -> RateLimit:
        return RateLimit(self, key, hard_limit, limit_minutes, read_distinct=True, historical=False)

    def new_tracked_rate_limit(self, key: str, hard_limit: int, limit_minutes: int) -> RateLimit:
        """A rate limit whose triggers are kept for later reporting."""
        return RateLimit(self, key, hard_limit, limit_minutes, read_distinct=True, historical=True)

    # -- shared views ---------------------------------------------------------

    async def share_view(self, share_with: VendorApp, view: SharedView) -> SharedViewResponse:
        conn = self.connection_or_raise()
        request = ShareViewRequest(
            authorization=self.authorization(),
            entity_id=view.entity_id,
            all_workspaces=view.all_workspaces,
            entity_type=view.entity_type,
            share_with=share_with,
            comment=view.comment,
            allow_properties=list(view.properties),
            allow_pii_properties=list(view.pii_properties),
            allow_secure_properties=list(view.secure_properties),
        )
        return await conn.invoke("ShareView", request, f"entity_id={view.entity_id}")

    async def shared_views(
        self,
        share_with: VendorApp,
        entity_id: str = "",
        entity_type: str = "",
        all_workspaces: bool = False,
    ) -> SharedViewsResponse:
        conn = self.connection_or_raise()
        request = SharedViewsRequest(
            authorization=self.authorization(),
            share_with=share_with,
            entity_id=str(entity_id),
            entity_type=entity_type,
            all_workspaces=all_workspaces,
        )
        return await conn.invoke("SharedViews", request, f"entity_id={entity_id}")

    # -- streams --------------------------------------------------------------

    async def event_stream(self, handler: EventHandler, name: str, event_type: StreamKey | None = None) -> None:
        await _event_stream(self, handler, name, event_type)

    async def task_push(self, task_name: str, task_id: str, data: Mapping[str, str] | None = None) -> None:
        await _push_task(self, task_name, task_id, data)

    async def task_stream(self, task_name: str, handler: TaskHandler) -> None:
        await _task_stream(self, task_name, handler)

    def log_stream(self, capacity: int = DEFAULT_LOG_CAPACITY) -> LogStream:
        return LogStream(self, capacity)
