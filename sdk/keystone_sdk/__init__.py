"""
Keystone Python SDK - Client library for the Keystone entity store.

This SDK maps Python dataclass records to Keystone entities:
- Records with tag driven property definitions (keystone_field)
- Connection and Actor for every server operation
- Watchers that send only what changed
- Find, list and retrieve option builders
- Domain value types (amounts, sets, translations, secure strings, ...)

Example:
    >>> from dataclasses import dataclass
    >>> from sdk.keystone_sdk import BaseEntity, Connection, keystone_field, with_properties
    >>>
    >>> @dataclass
    ... class User(BaseEntity):
    ...     name: str = ""
    ...     email: str = keystone_field("email,unique", default="")
    >>>
    >>> async with Connection.from_settings() as conn:
    ...     actor = conn.actor("ws-1", user_id="user-7")
    ...     user = User(name="Ann", email="ann@example.com")
    ...     await actor.mutate(user)
    ...     loaded = User()
    ...     await actor.get_by_id(user.get_keystone_id(), loaded, with_properties("name"))

Mutate options that share a name with a find or retrieve option
(``with_state``, ``with_document``) are imported from
``sdk.keystone_sdk.mutate_options``.

Version: 0.1.0
"""

__version__ = "0.1.0"

from .actor import NO_WORKSPACE, Actor, eid_hash
from .chart import (
    aggregate,
    chart_aggregations,
    chart_fill_missing,
    chart_filters,
    chart_from,
    chart_interval,
    chart_series_property,
    chart_timezone,
    chart_until,
)
from .config import KeystoneSettings, TimedLogConfig
from .connection import Connection
from .convert import unmarshal, unmarshal_generic, unmarshal_to_dict, unmarshal_to_list
from .definition import keystone_field
from .dynamic import PropertyValueList, dynamic_properties_from_record, new_dynamic_properties
from .errors import (
    ActorError,
    KeystoneError,
    MarshalError,
    MutationError,
    RemoteError,
    SchemaError,
    StreamClosedError,
    UnmarshalError,
    UnsupportedTypeError,
    ValidationError,
)
from .filters import (
    all_states,
    and_,
    child_of,
    include_archived,
    include_corrupt,
    include_offline,
    is_not_null,
    is_null,
    limit,
    only_active,
    only_archived,
    only_corrupt,
    only_offline,
    or_,
    relation_of,
    relation_of_sibling,
    relation_to,
    relation_to_sibling,
    sort_asc,
    sort_by,
    sort_by_null_first,
    sort_desc,
    where,
    where_between,
    where_contains,
    where_ends_with,
    where_equals,
    where_greater_than,
    where_greater_than_or_equals,
    where_in,
    where_less_than,
    where_less_than_or_equals,
    where_not_contains,
    where_not_equals,
    where_not_in,
    where_starts_with,
    with_entity_ids,
    with_label,
    with_state,
    with_states,
)
from .marshal import marshal, marshal_value
from .mutate_options import (
    archive,
    background_index,
    mutate_properties,
    on_conflict_ignore,
    on_conflict_use_id,
    restore,
    with_mutation_comment,
    with_pii_reference,
    with_pii_token,
)
from .property import Property, snake_case, type_name
from .retrieve import (
    by_entity_id,
    by_hash_id,
    by_unique_property,
    children_from_loader,
    with_child_summary,
    with_children,
    with_decrypted_properties,
    with_descendant_count,
    with_document,
    with_document_revision,
    with_document_revision_list,
    with_labels,
    with_lock,
    with_objects,
    with_properties,
    with_property,
    with_relationship_count,
    with_relationships,
    with_sibling_relationship_count,
    with_summary,
    with_total_relationship_count,
    with_verified_property,
    with_view,
)
from .schema import SchemaRegistry, TypeDefinition
from .services import IncrementingID, PiiRegulation, RateLimit, RateLimitResult, akv, akv_raw
from .shared_view import SharedView
from .streams import LogBatch, LogStream, StreamKey, new_key, own_key
from .traits import (
    BaseChildEntity,
    BaseEntity,
    Child,
    ChildEntities,
    Document,
    Documents,
    EmbeddedDetails,
    EmbeddedEntity,
    Events,
    Labels,
    LockHolder,
    LockInfo,
    Logs,
    Objects,
    Relationships,
    Remote,
    Sensors,
    TimeSeriesEntity,
    Watched,
    remote_entity,
)
from .watcher import Watcher, new_defaults_watcher, new_watcher

__all__ = [
    # Version
    "__version__",
    # Connection
    "Connection",
    "Actor",
    "NO_WORKSPACE",
    "KeystoneSettings",
    "TimedLogConfig",
    # Records
    "keystone_field",
    "Property",
    "snake_case",
    "type_name",
    "TypeDefinition",
    "SchemaRegistry",
    "marshal",
    "marshal_value",
    "unmarshal",
    "unmarshal_generic",
    "unmarshal_to_list",
    "unmarshal_to_dict",
    "Watcher",
    "new_watcher",
    "new_defaults_watcher",
    # Traits
    "BaseEntity",
    "BaseChildEntity",
    "EmbeddedEntity",
    "EmbeddedDetails",
    "Labels",
    "Events",
    "Logs",
    "Relationships",
    "Sensors",
    "ChildEntities",
    "Child",
    "LockHolder",
    "LockInfo",
    "Watched",
    "Document",
    "Documents",
    "Objects",
    "TimeSeriesEntity",
    "Remote",
    "remote_entity",
    # Retrieve
    "by_entity_id",
    "by_hash_id",
    "by_unique_property",
    "with_properties",
    "with_decrypted_properties",
    "with_property",
    "with_relationships",
    "with_labels",
    "with_summary",
    "with_view",
    "with_child_summary",
    "with_children",
    "children_from_loader",
    "with_descendant_count",
    "with_relationship_count",
    "with_sibling_relationship_count",
    "with_total_relationship_count",
    "with_document",
    "with_document_revision",
    "with_document_revision_list",
    "with_objects",
    "with_lock",
    "with_verified_property",
    # Chart
    "aggregate",
    "chart_from",
    "chart_until",
    "chart_interval",
    "chart_timezone",
    "chart_series_property",
    "chart_aggregations",
    "chart_filters",
    "chart_fill_missing",
    # Find
    "where",
    "where_equals",
    "where_not_equals",
    "where_greater_than",
    "where_greater_than_or_equals",
    "where_less_than",
    "where_less_than_or_equals",
    "where_contains",
    "where_not_contains",
    "where_starts_with",
    "where_ends_with",
    "where_in",
    "where_not_in",
    "where_between",
    "is_null",
    "is_not_null",
    "and_",
    "or_",
    "with_state",
    "with_states",
    "only_active",
    "include_archived",
    "only_archived",
    "include_offline",
    "only_offline",
    "include_corrupt",
    "only_corrupt",
    "all_states",
    "sort_by",
    "sort_asc",
    "sort_desc",
    "sort_by_null_first",
    "relation_of",
    "relation_to",
    "relation_of_sibling",
    "relation_to_sibling",
    "limit",
    "child_of",
    "with_label",
    "with_entity_ids",
    # Mutate
    "with_mutation_comment",
    "on_conflict_use_id",
    "on_conflict_ignore",
    "background_index",
    "mutate_properties",
    "with_pii_token",
    "with_pii_reference",
    "archive",
    "restore",
    # Services
    "eid_hash",
    "akv",
    "akv_raw",
    "IncrementingID",
    "RateLimit",
    "RateLimitResult",
    "PiiRegulation",
    "SharedView",
    "PropertyValueList",
    "new_dynamic_properties",
    "dynamic_properties_from_record",
    # Streams
    "LogBatch",
    "LogStream",
    "StreamKey",
    "new_key",
    "own_key",
    # Errors
    "KeystoneError",
    "ActorError",
    "MarshalError",
    "UnmarshalError",
    "UnsupportedTypeError",
    "ValidationError",
    "MutationError",
    "RemoteError",
    "StreamClosedError",
    "SchemaError",
]
