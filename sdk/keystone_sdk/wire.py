"""
Wire messages for the Keystone RPC API.

Every request and response exchanged with the Keystone server is modelled
here as a pydantic model so that the transport can serialize it to JSON and
back without generated code. Field names are snake_case versions of the
server schema.

Key messages:
- Value / RepeatedValue: the dynamically typed property value
- EntityProperty: a (property name, value) pair
- Authorization: the identity block attached to every request
- EntityRequest / EntityResponse: single entity retrieval
- MutateRequest / MutateResponse: entity writes
- PropertyFilter / PropertySort / PageRequest: query building blocks

Invariants:
    - Every scalar slot on Value is independent; an unset slot is its zero
    - RepeatedValue slots (array, array_append, array_reduce) carry
      replace, add and remove semantics respectively
    - Enum values are stable integers shared with the server
"""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PropertyType(IntEnum):
    """Data type of a property, also used as the known-type hint on values."""

    UNMANAGED = 0
    TEXT = 1
    NUMBER = 2
    BOOLEAN = 3
    FLOAT = 4
    TIME = 5
    BYTES = 6
    STRINGS = 7
    INTS = 8
    KEY_VALUE = 9
    AMOUNT = 10
    INTERVAL = 11
    KEY_MIXED = 12
    INT_SET = 13
    STRING_SET = 14
    MIXED = 15
    SECURE_TEXT = 16
    VERIFY_TEXT = 17


# Values carry the same hint set as property definitions.
KnownType = PropertyType


class ExtendedType(IntEnum):
    """Data classification layered on top of a PropertyType."""

    NONE = 0
    PERSONAL = 1
    USER_INPUT = 2
    EMAIL = 3
    PHONE = 4
    PERSON_NAME = 5
    IP = 6
    COUNTRY = 7
    URL = 8
    EXTERNAL_ID = 9
    INTERVAL = 10


class PropertyOption(IntEnum):
    """Schema flags attached to a property."""

    UNIQUE = 1
    INDEXED = 2
    IMMUTABLE = 3
    DEPRECATED = 4
    REQUIRED = 5
    REVERSE_LOOKUP = 6
    SEARCHABLE = 7
    METRIC = 8
    METRIC_FILTER = 9
    PRIMARY = 10
    NO_SNAPSHOT = 11


class SchemaType(IntEnum):
    ENTITY = 0
    TIME_SERIES = 1


class SchemaOption(IntEnum):
    STORE_MUTATIONS = 1
    HASHED_ID = 2
    IMMUTABLE = 3


class Operator(IntEnum):
    """Comparison operator used by PropertyFilter."""

    EQUAL = 0
    NOT_EQUAL = 1
    GREATER_THAN = 2
    GREATER_THAN_OR_EQUAL = 3
    LESS_THAN = 4
    LESS_THAN_OR_EQUAL = 5
    CONTAINS = 6
    NOT_CONTAINS = 7
    STARTS_WITH = 8
    ENDS_WITH = 9
    IN = 10
    BETWEEN = 11
    IS_NULL = 12
    IS_NOT_NULL = 13


class EntityState(IntEnum):
    INVALID = 0
    ACTIVE = 1
    OFFLINE = 2
    CORRUPT = 3
    ARCHIVED = 4
    REMOVED = 5


class LogLevel(IntEnum):
    DEBUG = 0
    INFO = 1
    NOTICE = 2
    WARN = 3
    ERROR = 4
    CRITICAL = 5
    ALERT = 6
    FATAL = 7


class MutateOption(IntEnum):
    BACKGROUND_INDEX = 1
    ON_CONFLICT_IGNORE = 2


class ObjectType(IntEnum):
    STANDARD = 0
    NEAR_LINE = 1


class WireModel(BaseModel):
    """Base for all wire messages."""

    model_config = ConfigDict(
        populate_by_name=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


class RepeatedValue(WireModel):
    strings: list[str] = Field(default_factory=list)
    ints: list[int] = Field(default_factory=list)
    key_value: dict[str, bytes] = Field(default_factory=dict)
    mixed: dict[str, "Value"] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.strings or self.ints or self.key_value or self.mixed)


class Value(WireModel):
    """A dynamically typed property value.

    Attributes:
        text: Text slot
        secure_text: Plaintext slot of secure values
        int_value: 64-bit integer slot
        bool_value: Boolean slot
        float_value: 64-bit float slot
        time: Timestamp slot
        raw: Raw bytes slot
        array: Full-replace repeated group
        array_append: Incremental add repeated group
        array_reduce: Incremental remove repeated group
        known_type: Hint used by the server to interpret the value
    """

    text: str = ""
    secure_text: str = ""
    int_value: int = 0
    bool_value: bool = False
    float_value: float = 0.0
    time: Optional[datetime] = None
    raw: bytes = b""
    array: Optional[RepeatedValue] = None
    array_append: Optional[RepeatedValue] = None
    array_reduce: Optional[RepeatedValue] = None
    known_type: PropertyType = PropertyType.UNMANAGED


RepeatedValue.model_rebuild()


class VendorApp(WireModel):
    vendor_id: str = ""
    app_id: str = ""


class User(WireModel):
    user_id: str = ""
    user_agent: str = ""
    remote_ip: str = ""
    client: str = ""


class Authorization(WireModel):
    source: Optional[VendorApp] = None
    token: str = ""
    trace_id: str = ""
    workspace_id: str = ""
    user: Optional[User] = None


class Key(WireModel):
    key: str = ""
    source: Optional[VendorApp] = None


class EntityProperty(WireModel):
    property: str = ""
    value: Optional[Value] = None


class Date(WireModel):
    year: int = 0
    month: int = 0
    day: int = 0


class Window(WireModel):
    from_time: Optional[datetime] = None
    until_time: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class PropertyDefinition(WireModel):
    name: str = ""
    data_type: PropertyType = PropertyType.UNMANAGED
    extended_type: ExtendedType = ExtendedType.NONE
    options: list[PropertyOption] = Field(default_factory=list)


class Schema(WireModel):
    id: str = ""
    type: str = ""
    name: str = ""
    description: str = ""
    singular: str = ""
    plural: str = ""
    kind: SchemaType = SchemaType.ENTITY
    options: list[SchemaOption] = Field(default_factory=list)
    properties: list[PropertyDefinition] = Field(default_factory=list)


class SchemaRequest(WireModel):
    authorization: Optional[Authorization] = None
    schema_: Optional[Schema] = Field(default=None, alias="schema")


# ---------------------------------------------------------------------------
# Entity parts
# ---------------------------------------------------------------------------


class EntityLabel(WireModel):
    name: str = ""
    value: str = ""


class EntityRelationship(WireModel):
    relationship: Optional[Key] = None
    target_id: str = ""
    data: dict[str, str] = Field(default_factory=dict)
    since: Optional[datetime] = None


class EntityEvent(WireModel):
    type: Optional[Key] = None
    time: Optional[datetime] = None
    data: dict[str, str] = Field(default_factory=dict)


class EntityLog(WireModel):
    level: LogLevel = LogLevel.DEBUG
    message: str = ""
    reference: str = ""
    actor: str = ""
    trace_id: str = ""
    time: Optional[datetime] = None
    data: dict[str, str] = Field(default_factory=dict)


class EntitySensorMeasurement(WireModel):
    sensor: str = ""
    value: float = 0.0
    at: Optional[datetime] = None
    data: dict[str, str] = Field(default_factory=dict)


class EntityChild(WireModel):
    type: Optional[Key] = None
    cid: str = ""
    write_ref: str = ""
    value: int = 0
    data: dict[str, bytes] = Field(default_factory=dict)


class EntityDocument(WireModel):
    revision_id: str = ""
    created: Optional[datetime] = None
    data: bytes = b""
    meta: dict[str, str] = Field(default_factory=dict)
    append_meta: dict[str, str] = Field(default_factory=dict)
    remove_meta: list[str] = Field(default_factory=list)


class EntityObject(WireModel):
    path: str = ""
    type: ObjectType = ObjectType.STANDARD
    public: bool = False
    expiry: Optional[datetime] = None
    metadata: dict[str, str] = Field(default_factory=dict)
    data: bytes = b""
    url: str = ""
    upload_url: str = ""
    upload_headers: dict[str, str] = Field(default_factory=dict)


class EntityLock(WireModel):
    lock_id: str = ""
    locked_until: Optional[datetime] = None
    message: str = ""
    lock_acquired: bool = False


class Entity(WireModel):
    entity_id: str = ""
    schema_id: str = ""
    created: Optional[datetime] = None
    state_change: Optional[datetime] = None
    state: EntityState = EntityState.INVALID
    last_update: Optional[datetime] = None


class TypeCount(WireModel):
    type: Optional[Key] = None
    count: int = 0


class ChildSummary(WireModel):
    type: Optional[Key] = None
    count: int = 0
    sum: int = 0
    min: int = 0
    max: int = 0
    avg: int = 0


class EntityReference(WireModel):
    entity_id: str = ""
    schema_id: str = ""
    source: Optional[VendorApp] = None


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class PropertyRequest(WireModel):
    properties: list[str] = Field(default_factory=list)
    decrypt: bool = False
    source: Optional[VendorApp] = None


class ChildRequest(WireModel):
    type: Optional[Key] = None
    cid: list[str] = Field(default_factory=list)


class EntityView(WireModel):
    name: str = ""
    properties: list[PropertyRequest] = Field(default_factory=list)
    relationship_by_type: list[Key] = Field(default_factory=list)
    labels: bool = False
    summary: bool = False
    child_summary: bool = False
    children: list[ChildRequest] = Field(default_factory=list)
    descendant_count_type: list[Key] = Field(default_factory=list)
    relationship_count: bool = False
    relationship_count_type: list[Key] = Field(default_factory=list)
    latest_document: bool = False
    document_revision: str = ""
    document_revisions: bool = False
    list_objects: bool = False
    object_paths: list[str] = Field(default_factory=list)
    dynamic_properties: list[str] = Field(default_factory=list)


class IDLookup(WireModel):
    schema_id: str = ""
    property: str = ""
    unique_id: str = ""


class EntityRequest(WireModel):
    authorization: Optional[Authorization] = None
    entity_id: str = ""
    unique_id: Optional[IDLookup] = None
    schema_: Optional[Key] = Field(default=None, alias="schema")
    view: Optional[EntityView] = None
    request_lock: bool = False
    lock_ttl_seconds: int = 0
    lock_message: str = ""
    verify_properties: list[EntityProperty] = Field(default_factory=list)


class EntityResponse(WireModel):
    entity: Optional[Entity] = None
    properties: list[EntityProperty] = Field(default_factory=list)
    relationships: list[EntityRelationship] = Field(default_factory=list)
    labels: list[EntityLabel] = Field(default_factory=list)
    lock: Optional[EntityLock] = None
    documents: list[EntityDocument] = Field(default_factory=list)
    children: list[EntityChild] = Field(default_factory=list)
    child_summary: list[ChildSummary] = Field(default_factory=list)
    descendant_counts: list[TypeCount] = Field(default_factory=list)
    relationship_counts: list[TypeCount] = Field(default_factory=list)
    objects: list[EntityObject] = Field(default_factory=list)
    dynamic_properties: list[EntityProperty] = Field(default_factory=list)
    summary: str = ""


# ---------------------------------------------------------------------------
# Mutation
# ---------------------------------------------------------------------------


class PiiReference(WireModel):
    source: Optional[VendorApp] = None
    key: str = ""


class Mutation(WireModel):
    mutator: Optional[User] = None
    comment: str = ""
    state: EntityState = EntityState.INVALID
    properties: list[EntityProperty] = Field(default_factory=list)
    dynamic_properties: list[EntityProperty] = Field(default_factory=list)
    remove_dynamic_properties: list[str] = Field(default_factory=list)
    labels: list[EntityLabel] = Field(default_factory=list)
    remove_labels: list[str] = Field(default_factory=list)
    relationships: list[EntityRelationship] = Field(default_factory=list)
    events: list[EntityEvent] = Field(default_factory=list)
    logs: list[EntityLog] = Field(default_factory=list)
    measurements: list[EntitySensorMeasurement] = Field(default_factory=list)
    children: list[EntityChild] = Field(default_factory=list)
    remove_children: list[EntityChild] = Field(default_factory=list)
    truncate_children: list[Key] = Field(default_factory=list)
    objects: list[EntityObject] = Field(default_factory=list)
    document: Optional[EntityDocument] = None
    pii_token: str = ""
    pii_reference: Optional[PiiReference] = None


class MutateRequest(WireModel):
    authorization: Optional[Authorization] = None
    entity_id: str = ""
    schema_: Optional[Key] = Field(default=None, alias="schema")
    mutation: Optional[Mutation] = None
    options: list[MutateOption] = Field(default_factory=list)
    conflict_unique_property_acquire: list[str] = Field(default_factory=list)


class MutateResponse(WireModel):
    success: bool = False
    entity_id: str = ""
    error_code: int = 0
    error_message: str = ""
    extended_messages: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    child_ids: dict[str, str] = Field(default_factory=dict)
    document_revision_id: str = ""
    objects: list[EntityObject] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class PropertyFilter(WireModel):
    property: str = ""
    operator: Operator = Operator.EQUAL
    values: list[Value] = Field(default_factory=list)
    or_: bool = Field(default=False, alias="or")
    nested: list["PropertyFilter"] = Field(default_factory=list)


PropertyFilter.model_rebuild()


class PropertySort(WireModel):
    property: str = ""
    descending: bool = False
    nulls_first: bool = False


class PageRequest(WireModel):
    per_page: int = 0
    page_number: int = 0


class RelationOf(WireModel):
    source_id: str = ""
    destination_id: str = ""
    relationship: Optional[Key] = None


class FindRequest(WireModel):
    authorization: Optional[Authorization] = None
    schema_: Optional[Key] = Field(default=None, alias="schema")
    view: Optional[EntityView] = None
    property_filters: list[PropertyFilter] = Field(default_factory=list)
    label_filters: list[EntityLabel] = Field(default_factory=list)
    relation_of: Optional[RelationOf] = None
    parent_entity_id: str = ""
    entity_ids: list[str] = Field(default_factory=list)


class FindResponse(WireModel):
    entities: list[EntityResponse] = Field(default_factory=list)


class ListRequest(WireModel):
    authorization: Optional[Authorization] = None
    schema_: Optional[Key] = Field(default=None, alias="schema")
    properties: list[str] = Field(default_factory=list)
    filters: list[PropertyFilter] = Field(default_factory=list)
    entity_ids: list[str] = Field(default_factory=list)
    parent_entity_id: str = ""
    relation_of: Optional[RelationOf] = None
    sort: list[PropertySort] = Field(default_factory=list)
    page: Optional[PageRequest] = None


class ListResponse(WireModel):
    entities: list[EntityResponse] = Field(default_factory=list)


class GroupCountRequest(WireModel):
    authorization: Optional[Authorization] = None
    schema_: Optional[Key] = Field(default=None, alias="schema")
    properties: list[str] = Field(default_factory=list)
    filters: list[PropertyFilter] = Field(default_factory=list)
    page: Optional[PageRequest] = None


class GroupCountResult(WireModel):
    count: int = 0
    properties: list[EntityProperty] = Field(default_factory=list)


class GroupCountResponse(WireModel):
    results: list[GroupCountResult] = Field(default_factory=list)


class LookupRequest(WireModel):
    authorization: Optional[Authorization] = None
    property: str = ""
    lookup: str = ""
    schema_id: str = ""


class LookupResponse(WireModel):
    results: list[EntityReference] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Logs, events and streams
# ---------------------------------------------------------------------------


class LogsRequest(WireModel):
    authorization: Optional[Authorization] = None
    entity_id: str = ""
    levels: list[LogLevel] = Field(default_factory=list)
    min_level: LogLevel = LogLevel.DEBUG
    window: Optional[Window] = None


class LogsResponse(WireModel):
    logs: list[EntityLog] = Field(default_factory=list)


class EventRequest(WireModel):
    authorization: Optional[Authorization] = None
    entity_id: str = ""
    event_by_type: list[Key] = Field(default_factory=list)
    events_in_window: Optional[Window] = None


class EventsResponse(WireModel):
    events: list[EntityEvent] = Field(default_factory=list)


class LogRequest(WireModel):
    authorization: Optional[Authorization] = None
    entity_id: str = ""
    batch_id: str = ""
    logs: list[EntityLog] = Field(default_factory=list)


class LogResponse(WireModel):
    batch_id: str = ""
    success: bool = False


class EventStreamRequest(WireModel):
    authorization: Optional[Authorization] = None
    stream_name: str = ""
    all_workspaces: bool = False
    event_type: Optional[Key] = None


class EventStreamResponse(WireModel):
    entity_id: str = ""
    workspace_id: str = ""
    schema_: Optional[Key] = Field(default=None, alias="schema")
    event: Optional[EntityEvent] = None


class PushTaskRequest(WireModel):
    authorization: Optional[Authorization] = None
    task_name: str = ""
    task_id: str = ""
    data: dict[str, str] = Field(default_factory=dict)


class TaskAckRequest(WireModel):
    task_id: str = ""
    acked: bool = False


class TaskResponse(WireModel):
    task_id: str = ""
    task_name: str = ""
    workspace_id: str = ""
    data: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


class GenericResponse(WireModel):
    success: bool = False
    error_code: int = 0
    error_message: str = ""


class DestroyRequest(WireModel):
    authorization: Optional[Authorization] = None
    schema_: Optional[Key] = Field(default=None, alias="schema")
    eid: str = ""
    reason: str = ""


class DestroyResponse(WireModel):
    destroyed: bool = False


class PiiTokenRequest(WireModel):
    authorization: Optional[Authorization] = None
    country: str = ""
    regulation: str = ""
    auto_expire: Optional[datetime] = None


class PiiTokenResponse(WireModel):
    token: str = ""


class PiiAnonymizeRequest(WireModel):
    authorization: Optional[Authorization] = None
    token: str = ""
    rollback: bool = False


class PiiAnonymizeResponse(WireModel):
    success: bool = False
    anonymized: int = 0


class AKVPropertyDefinition(WireModel):
    name: str = ""
    data_type: PropertyType = PropertyType.UNMANAGED
    extended_type: ExtendedType = ExtendedType.NONE
    options: list[PropertyOption] = Field(default_factory=list)


class AKVProperty(WireModel):
    property: Optional[AKVPropertyDefinition] = None
    value: Optional[Value] = None


class AKVPutRequest(WireModel):
    authorization: Optional[Authorization] = None
    properties: list[AKVProperty] = Field(default_factory=list)


class AKVGetRequest(WireModel):
    authorization: Optional[Authorization] = None
    properties: list[str] = Field(default_factory=list)


class AKVGetResponse(WireModel):
    properties: dict[str, Value] = Field(default_factory=dict)


class AKVDelRequest(WireModel):
    authorization: Optional[Authorization] = None
    properties: list[str] = Field(default_factory=list)


class IIDCreateRequest(WireModel):
    authorization: Optional[Authorization] = None
    eid: str = ""
    incr: dict[str, bool] = Field(default_factory=dict)
    meta: dict[str, str] = Field(default_factory=dict)


class IIDResponse(WireModel):
    eid: str = ""
    ids: dict[str, int] = Field(default_factory=dict)


class RateLimitRequest(WireModel):
    authorization: Optional[Authorization] = None
    key: str = ""
    hard_limit: int = 0
    rate_minutes: int = 0
    transaction_id: str = ""
    read_distinct: bool = False
    store_historical: bool = False


class RateLimitResponse(WireModel):
    current_count: int = 0
    over_limit: bool = False


class DailyEntityRequest(WireModel):
    authorization: Optional[Authorization] = None
    schema_: Optional[Key] = Field(default=None, alias="schema")
    date: Optional[Date] = None
    after_id: str = ""
    reverse_order: bool = False
    limit: int = 0


class DailyEntityResponse(WireModel):
    entity_ids: list[str] = Field(default_factory=list)
    has_more: bool = False


class ReportTimeSeriesRequest(WireModel):
    authorization: Optional[Authorization] = None
    entity_id: str = ""
    schema_: Optional[Key] = Field(default=None, alias="schema")
    mutation: Optional[Mutation] = None
    timestamp: Optional[datetime] = None


class AggregationType(IntEnum):
    COUNT = 0
    SUM = 1
    AVG = 2
    MIN = 3
    MAX = 4


class PropertyAggregation(WireModel):
    property: str = ""
    type: AggregationType = AggregationType.COUNT
    alias: str = ""


class ChartTimeSeriesRequest(WireModel):
    authorization: Optional[Authorization] = None
    schema_: Optional[Key] = Field(default=None, alias="schema")
    from_: Optional[datetime] = Field(default=None, alias="from")
    until: Optional[datetime] = None
    interval: str = ""
    timezone: str = ""
    series_property: str = ""
    aggregations: list[PropertyAggregation] = Field(default_factory=list)
    property_filters: list[PropertyFilter] = Field(default_factory=list)
    fill_missing: bool = False


class ChartPoint(WireModel):
    time: Optional[datetime] = None
    values: dict[str, float] = Field(default_factory=dict)


class ChartSeries(WireModel):
    name: str = ""
    points: list[ChartPoint] = Field(default_factory=list)


class ChartTimeSeriesResponse(WireModel):
    series: dict[str, ChartSeries] = Field(default_factory=dict)


class SquidRequest(WireModel):
    authorization: Optional[Authorization] = None
    sequence_key: str = ""


class SquidRecoverRequest(WireModel):
    authorization: Optional[Authorization] = None
    sequence_key: str = ""
    squat: str = ""


class SquidResponse(WireModel):
    squid: int = 0
    squat: str = ""


class SnapshotReportRequest(WireModel):
    authorization: Optional[Authorization] = None
    entity_id: str = ""
    schema_: Optional[Key] = Field(default=None, alias="schema")


class ShareViewRequest(WireModel):
    authorization: Optional[Authorization] = None
    entity_id: str = ""
    entity_type: str = ""
    all_workspaces: bool = False
    share_with: Optional[VendorApp] = None
    comment: str = ""
    allow_properties: list[str] = Field(default_factory=list)
    allow_pii_properties: list[str] = Field(default_factory=list)
    allow_secure_properties: list[str] = Field(default_factory=list)


class SharedViewResponse(WireModel):
    success: bool = False
    view_id: str = ""


class SharedViewsRequest(WireModel):
    authorization: Optional[Authorization] = None
    share_with: Optional[VendorApp] = None
    entity_id: str = ""
    entity_type: str = ""
    all_workspaces: bool = False


class SharedViewsResponse(WireModel):
    views: list[ShareViewRequest] = Field(default_factory=list)


class SchemaStatisticsRequest(WireModel):
    authorization: Optional[Authorization] = None
    schema_: Optional[Key] = Field(default=None, alias="schema")
    created_from: Optional[Date] = None
    created_until: Optional[Date] = None
    include_breakdown: bool = False
    day_limit: int = 0


class SchemaStatisticsResponse(WireModel):
    total_entities: int = 0
    daily: dict[str, int] = Field(default_factory=dict)


class StatusResponse(WireModel):
    healthy: bool = False
    version: str = ""
