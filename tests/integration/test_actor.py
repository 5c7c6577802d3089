"""
Integration tests for the actor against a recording transport.

Tests cover:
- Get requests, hydration and the schema registration barrier
- The mutate pipeline: diffing, trait collection and post success hooks
- Server reported errors and local validation
- Find, list and the other query operations
- Destroy, PII, key-value, counters and shared views
- Time series charts and sequence ids
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest

from sdk.keystone_sdk.actor import Actor, eid_hash
from sdk.keystone_sdk.chart import (
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
from sdk.keystone_sdk.errors import ActorError, MarshalError, MutationError, ValidationError
from sdk.keystone_sdk.filters import STATE_PROPERTY, include_archived, limit, sort_desc, where_equals
from sdk.keystone_sdk.mutate_options import (
    background_index,
    mutate_properties,
    on_conflict_ignore,
    with_mutation_comment,
    with_pii_token,
)
from sdk.keystone_sdk.retrieve import by_entity_id, by_unique_property, with_labels, with_properties
from sdk.keystone_sdk.schema import TypeDefinition
from sdk.keystone_sdk.services import IncrementingID, akv
from sdk.keystone_sdk.shared_view import SharedView
from sdk.keystone_sdk.traits import BaseEntity, Child, ChildEntities, TimeSeriesEntity, Watched, remote_entity
from sdk.keystone_sdk.transport import encode_message
from sdk.keystone_sdk.values import StringSet
from sdk.keystone_sdk.wire import (
    AggregationType,
    ChartPoint,
    ChartSeries,
    ChartTimeSeriesRequest,
    ChartTimeSeriesResponse,
    DestroyResponse,
    Entity,
    EntityProperty,
    EntityReference,
    EntityResponse,
    EntityState,
    FindResponse,
    IIDResponse,
    ListResponse,
    LookupResponse,
    MutateOption,
    MutateResponse,
    Operator,
    PiiTokenResponse,
    SchemaOption,
    SquidResponse,
    Value,
    VendorApp,
)


@dataclass
class RetrieveTestEntity(BaseEntity, Watched):
    name: str = ""
    email: str = ""


@dataclass
class Seat(Child):
    row: str = ""


@dataclass
class Venue(BaseEntity, ChildEntities, Watched):
    name: str = ""
    capacity: int = 0
    tags: StringSet = field(default_factory=StringSet)


class StrictTags(StringSet):
    def observe_mutation(self, response):
        raise RuntimeError("merge rejected")


@dataclass
class Stage(BaseEntity):
    name: str = ""
    tags: StrictTags = field(default_factory=StrictTags)


@dataclass
class AuditedRecord(BaseEntity):
    value: str = ""

    def get_keystone_definition(self):
        return TypeDefinition(options=[SchemaOption.STORE_MUTATIONS])


@dataclass
class Reading(BaseEntity, TimeSeriesEntity):
    celsius: float = 0.0


def found(*ids):
    return FindResponse(entities=[EntityResponse(entity=Entity(entity_id=i)) for i in ids])


class TestGet:
    """Tests for retrieval."""

    @pytest.mark.asyncio
    async def test_basic_get_request(self, actor, transport):
        """get_by_id builds the expected Retrieve request."""
        await actor.get_by_id("retrieve-test-entity-123", RetrieveTestEntity(), with_properties("name", "email"))

        request = transport.requests("Retrieve")[0]
        assert request.entity_id == "retrieve-test-entity-123"
        assert len(request.view.properties) == 1
        prop_request = request.view.properties[0]
        assert prop_request.properties == ["name", "email"]
        assert prop_request.decrypt is False
        assert prop_request.source.vendor_id == "vendor-1"
        assert request.schema_.key == "retrieve-test-entity"
        assert request.schema_.source.app_id == "app-1"
        assert request.authorization.workspace_id == "ws-1"

    @pytest.mark.asyncio
    async def test_get_hydrates(self, actor, transport):
        """The response is unmarshaled onto the record."""
        transport.respond(
            "Retrieve",
            EntityResponse(
                entity=Entity(entity_id="e1", state=EntityState.ACTIVE),
                properties=[EntityProperty(property="name", value=Value(text="Ann"))],
            ),
        )
        record = await actor.get_by_id("e1", RetrieveTestEntity(), with_labels())
        assert record.name == "Ann"
        assert record.get_keystone_id() == "e1"
        assert record.has_watcher()

    @pytest.mark.asyncio
    async def test_registration_barrier(self, actor, transport):
        """Concurrent gets of a new type send one Define before any Retrieve."""
        await asyncio.gather(
            actor.get_by_id("a", RetrieveTestEntity()),
            actor.get_by_id("b", RetrieveTestEntity()),
        )
        assert transport.methods() == ["Define", "Retrieve", "Retrieve"]

    @pytest.mark.asyncio
    async def test_dict_destination(self, actor, transport):
        """Dict destinations skip registration and use the retriever type."""
        transport.respond(
            "Retrieve",
            EntityResponse(properties=[EntityProperty(property="name", value=Value(text="Ann"))]),
        )
        result = await actor.get(by_entity_id("user", "u1"), {})
        assert result == {"name": "Ann"}
        assert transport.methods() == ["Retrieve"]
        assert transport.requests("Retrieve")[0].schema_.key == "user"

    @pytest.mark.asyncio
    async def test_get_by_id_into_dict(self, actor, transport):
        """Shorthand reads into a dict take the entity type explicitly."""
        with pytest.raises(ValidationError, match="entity_type"):
            await actor.get_by_id("u1", {})
        assert transport.calls == []

        await actor.get_by_id("u1", {}, entity_type="user")
        assert transport.requests("Retrieve")[0].schema_.key == "user"
        assert transport.methods() == ["Retrieve"]

    @pytest.mark.asyncio
    async def test_unique_property_into_dict_rejected(self, actor, transport):
        """Unique property lookups need a record destination."""
        with pytest.raises(ValidationError):
            await actor.get(by_unique_property("user", "ann@example.com", "email"), {})
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_unique_property_schema(self, actor, transport):
        """Unique lookups carry the registered schema id."""
        await actor.get_by_unique_property("ann@example.com", "email", RetrieveTestEntity())
        request = transport.requests("Retrieve")[0]
        assert request.unique_id.schema_id == "sch-retrieve-test-entity"

    @pytest.mark.asyncio
    async def test_shared_get_skips_registration(self, actor, transport):
        """Shared gets target the owner's schema without a Define."""
        owner = VendorApp(vendor_id="other", app_id="crm")
        await actor.get_shared_by_id(owner, "e9", RetrieveTestEntity(), with_properties("name"))
        request = transport.requests("Retrieve")[0]
        assert transport.methods() == ["Retrieve"]
        assert request.schema_.source.vendor_id == "other"
        assert request.view.properties[0].source.app_id == "crm"

    @pytest.mark.asyncio
    async def test_actor_without_connection(self):
        """An actor with no connection fails before dispatch."""
        with pytest.raises(ActorError, match="actor or connection is nil"):
            await Actor(None, "ws").get_by_id("e1", RetrieveTestEntity())

    @pytest.mark.asyncio
    async def test_dynamic_properties(self, actor, transport):
        """Dynamic properties are read into a value list."""
        transport.respond(
            "Retrieve",
            EntityResponse(dynamic_properties=[EntityProperty(property="score", value=Value(int_value=7))]),
        )
        values = await actor.get_dynamic_properties("e1", "score")
        assert values.get_int("score") == 7
        assert transport.requests("Retrieve")[0].view.dynamic_properties == ["score"]


class TestMutate:
    """Tests for the mutate pipeline."""

    @pytest.mark.asyncio
    async def test_new_record(self, actor, transport):
        """A new record sends its non default fields and pending traits."""
        transport.respond("Mutate", lambda req: MutateResponse(
            success=True,
            entity_id="venue-1",
            child_ids={c.write_ref: "seat-1" for c in req.mutation.children},
        ))
        venue = Venue(name="Hall", capacity=100)
        venue.add_label("tier", "gold")
        venue.log_info("created")
        venue.tags.add("music")
        seat = Seat("A")
        venue.add_child(seat)

        await actor.mutate(venue)

        request = transport.requests("Mutate")[0]
        assert request.schema_.key == "venue"
        assert request.entity_id == ""
        assert [p.property for p in request.mutation.properties] == ["capacity", "name", "tags"]
        assert request.mutation.labels[0].name == "tier"
        assert request.mutation.logs[0].message == "created"
        assert request.mutation.children[0].type.key == "seat"
        assert request.mutation.mutator.user_id == "user-7"

        assert venue.get_keystone_id() == "venue-1"
        assert seat.child_id() == "seat-1"
        assert venue.get_labels() == []
        assert venue.get_logs() == []
        assert venue.get_children_to_store() == []
        assert venue.tags.to_add() == []
        assert venue.tags.values() == ["music"]
        assert venue.has_watcher()

    @pytest.mark.asyncio
    async def test_second_mutate_sends_only_changes(self, actor, transport):
        """After a commit only edited fields are sent."""
        venue = Venue(name="Hall", capacity=100)
        await actor.mutate(venue)
        venue.capacity = 120
        await actor.mutate(venue)

        second = transport.requests("Mutate")[1]
        assert [p.property for p in second.mutation.properties] == ["capacity"]
        assert second.mutation.properties[0].value.int_value == 120

    @pytest.mark.asyncio
    async def test_observer_failure_is_not_fatal(self, actor, transport, caplog):
        """A value type failing to merge leaves the mutation applied and its buckets pending."""
        transport.respond("Mutate", MutateResponse(success=True, entity_id="stage-1"))
        stage = Stage(name="Main")
        stage.tags.add("outdoor")

        resp = await actor.mutate(stage)

        assert resp.entity_id == "stage-1"
        assert stage.get_keystone_id() == "stage-1"
        assert stage.tags.to_add() == ["outdoor"]
        assert stage.tags.values() == ["outdoor"]
        assert "merge rejected" in caplog.text

    @pytest.mark.asyncio
    async def test_pii_token_and_flags(self, actor, transport):
        """PII token and flag options are carried on the request."""
        await actor.mutate(Venue(name="Hall"), with_pii_token("pii-abc"), background_index(), on_conflict_ignore(), None)
        request = transport.requests("Mutate")[0]
        assert request.mutation.pii_token == "pii-abc"
        assert set(request.options) == {MutateOption.BACKGROUND_INDEX, MutateOption.ON_CONFLICT_IGNORE}

    @pytest.mark.asyncio
    async def test_mutate_properties_forces_write(self, actor, transport):
        """Restricted writes resend the named properties even when unchanged."""
        venue = Venue(name="Hall", capacity=100)
        await actor.mutate(venue)
        await actor.mutate(venue, mutate_properties("name"))
        second = transport.requests("Mutate")[1]
        assert [p.property for p in second.mutation.properties] == ["name"]

    @pytest.mark.asyncio
    async def test_comment_required(self, actor, transport):
        """Schemas storing mutations require a comment."""
        with pytest.raises(ValidationError, match="mutation comment"):
            await actor.mutate(AuditedRecord(value="x"))
        assert "Mutate" not in transport.methods()

        await actor.mutate(AuditedRecord(value="x"), with_mutation_comment("import"))
        assert transport.requests("Mutate")[0].mutation.comment == "import"

    @pytest.mark.asyncio
    async def test_server_error(self, actor, transport):
        """Server errors raise MutationError and keep pending traits."""
        transport.respond(
            "Mutate",
            MutateResponse(error_code=409, error_message="conflict", suggestions=["retry"]),
        )
        venue = Venue(name="Hall")
        venue.add_label("tier", "gold")

        with pytest.raises(MutationError) as exc:
            await actor.mutate(venue)

        assert exc.value.error_code == 409
        assert exc.value.suggestions == ["retry"]
        assert len(venue.get_labels()) == 1
        assert venue.get_keystone_id() == ""

    @pytest.mark.asyncio
    async def test_rejects_non_records(self, actor, transport):
        """Classes and primitives cannot be mutated."""
        with pytest.raises(MarshalError):
            await actor.mutate(Venue)
        with pytest.raises(MarshalError):
            await actor.mutate("text")
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_remote_mutate(self, actor, transport):
        """Remote writes carry logs for the foreign entity and clear them."""
        remote = remote_entity("other-1")
        remote.log_info("ping")
        remote.add_event("touched")

        await actor.remote_mutate(remote)

        request = transport.requests("Mutate")[0]
        assert request.entity_id == "other-1"
        assert request.schema_ is None
        assert len(request.mutation.logs) == 1
        assert len(request.mutation.events) == 1
        assert remote.get_logs() == []

    @pytest.mark.asyncio
    async def test_remote_mutate_needs_id(self, actor):
        """Remote writes need an entity id."""
        with pytest.raises(ValidationError):
            await actor.remote_mutate(remote_entity(""))

    @pytest.mark.asyncio
    async def test_report_time_series(self, actor, transport):
        """Time series reports carry every property and the input time."""
        transport.respond("ReportTimeSeries", MutateResponse(success=True, entity_id="r1"))
        reading = Reading(celsius=21.5)

        await actor.report_time_series(reading)

        request = transport.requests("ReportTimeSeries")[0]
        assert request.timestamp == reading.get_time_series_input_time()
        assert request.mutation.properties[0].value.float_value == 21.5
        assert reading.get_keystone_id() == "r1"

    @pytest.mark.asyncio
    async def test_report_requires_time_series(self, actor):
        """Only time series records can be reported."""
        with pytest.raises(ValidationError):
            await actor.report_time_series(Venue())


class TestQueries:
    """Tests for find, list and lookups."""

    @pytest.mark.asyncio
    async def test_find_defaults_to_active(self, actor, transport):
        """Find adds an active state filter when none is given."""
        transport.respond("Find", found("u1", "u2"))
        results = await actor.find("user", with_properties("name"), where_equals("status", "active"))

        request = transport.requests("Find")[0]
        assert [f.property for f in request.property_filters] == ["status", STATE_PROPERTY]
        assert request.property_filters[1].operator == Operator.IN
        assert request.view.properties[0].properties == ["name"]
        assert request.schema_.key == "user"
        assert [r.entity.entity_id for r in results] == ["u1", "u2"]

    @pytest.mark.asyncio
    async def test_find_with_state_filter(self, actor, transport):
        """An explicit state filter replaces the default."""
        transport.respond("Find", found())
        await actor.find("user", None, include_archived())
        request = transport.requests("Find")[0]
        assert len(request.property_filters) == 1
        assert [v.int_value for v in request.property_filters[0].values] == [1, 4]

    @pytest.mark.asyncio
    async def test_list_paging(self, actor, transport):
        """List carries paging and sorting."""
        transport.respond("List", ListResponse(entities=[EntityResponse(entity=Entity(entity_id="a"))]))
        await actor.list("user", ["name"], limit(10, 3), sort_desc("name"))
        request = transport.requests("List")[0]
        assert (request.page.per_page, request.page.page_number) == (10, 3)
        assert request.sort[0].descending

    @pytest.mark.asyncio
    async def test_lookup_one(self, actor, transport):
        """lookup_one returns the first match or None."""
        transport.respond("Lookup", LookupResponse(results=[EntityReference(entity_id="e1")]))
        ref = await actor.lookup_one("email", "ann@example.com")
        assert ref.entity_id == "e1"
        transport.respond("Lookup", LookupResponse())
        assert await actor.lookup_one("email", "none@example.com") is None


class TestAdministration:
    """Tests for destroy, PII, key-value and other services."""

    @pytest.mark.asyncio
    async def test_destroy_validation(self, actor, transport):
        """Short reasons and wrong hashes are rejected locally."""
        with pytest.raises(ValidationError):
            await actor.permanently_destroy_entity("user", "u1", eid_hash("u1"), "too short")
        with pytest.raises(ValidationError):
            await actor.permanently_destroy_entity("user", "u1", "wrong", "customer requested erasure")
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_destroy(self, actor, transport):
        """A valid destroy request is sent."""
        transport.respond("Destroy", DestroyResponse(destroyed=True))
        assert await actor.permanently_destroy_entity("user", "u1", "desu1troy", "customer requested erasure")
        request = transport.requests("Destroy")[0]
        assert request.eid == "u1"
        assert request.schema_.key == "user"

    @pytest.mark.asyncio
    async def test_gdpr_token(self, actor, transport):
        """GDPR tokens name the regulation."""
        transport.respond("PiiToken", PiiTokenResponse(token="pii-1"))
        assert await actor.new_gdpr_token("GB") == "pii-1"
        request = transport.requests("PiiToken")[0]
        assert request.regulation == "GDPR"
        assert request.country == "GB"

    @pytest.mark.asyncio
    async def test_akv_put(self, actor, transport):
        """Key-value entries are sent under the actor authorization."""
        await actor.akv_put(akv("limit", 5))
        request = transport.requests("AKVPut")[0]
        assert request.properties[0].property.name == "limit"

    @pytest.mark.asyncio
    async def test_incrementing_id(self, actor, transport):
        """Counters commit through the actor."""
        transport.respond("IID", IIDResponse(eid="o1", ids={"invoice": 42}))
        resp = await IncrementingID("o1", "invoice").commit(actor)
        assert resp.ids["invoice"] == 42

    @pytest.mark.asyncio
    async def test_share_view(self, actor, transport):
        """Shared views list their properties and target."""
        view = SharedView("name").add("ssn", allow_pii=True).for_entity("e1")
        await actor.share_view(VendorApp(vendor_id="other", app_id="crm"), view)
        request = transport.requests("ShareView")[0]
        assert request.entity_id == "e1"
        assert request.allow_properties == ["name", "ssn"]
        assert request.allow_pii_properties == ["ssn"]

    @pytest.mark.asyncio
    async def test_snapshot_registers_locally(self, actor, transport):
        """Snapshots use the local type key without a Define."""
        assert await actor.snapshot(Venue, "venue-1")
        request = transport.requests("SnapshotReport")[0]
        assert request.schema_.key == "venue"
        assert "Define" not in transport.methods()

    def test_clone_without_workspace(self, actor):
        """Cloned actors act across all workspaces."""
        clone = actor.clone_without_workspace()
        assert clone.all_workspaces
        assert clone.user.user_id == "user-7"


class TestTimeSeriesCharts:
    """Tests for chart_time_series and sequence ids."""

    @pytest.mark.asyncio
    async def test_chart_request(self, actor, transport):
        """Chart options are carried on the request."""
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        end = datetime(2024, 1, 31, tzinfo=timezone.utc)

        await actor.chart_time_series(
            "reading",
            chart_from(start),
            chart_until(end),
            chart_interval("1h"),
            chart_timezone("Europe/London"),
            chart_series_property("library"),
            chart_aggregations(
                aggregate("amount", AggregationType.SUM, "total_amount"),
                aggregate("amount", AggregationType.COUNT, "readings"),
            ),
            chart_filters(where_equals("country", "GB"), None),
            chart_fill_missing(),
            None,
        )

        request = transport.requests("ChartTimeSeries")[0]
        assert request.schema_.key == "reading"
        assert request.schema_.source.app_id == "app-1"
        assert (request.from_, request.until) == (start, end)
        assert (request.interval, request.timezone, request.series_property) == ("1h", "Europe/London", "library")
        assert [(a.property, a.type, a.alias) for a in request.aggregations] == [
            ("amount", AggregationType.SUM, "total_amount"),
            ("amount", AggregationType.COUNT, "readings"),
        ]
        assert [f.property for f in request.property_filters] == ["country"]
        assert request.fill_missing

    @pytest.mark.asyncio
    async def test_chart_series(self, actor, transport):
        """Series are returned keyed by series value."""
        point = ChartPoint(time=datetime(2024, 1, 1, tzinfo=timezone.utc), values={"total_amount": 12.5})
        transport.respond(
            "ChartTimeSeries",
            ChartTimeSeriesResponse(series={"central": ChartSeries(name="central", points=[point])}),
        )

        series = await actor.chart_time_series("reading")

        assert list(series) == ["central"]
        assert series["central"].points[0].values["total_amount"] == 12.5
        request = transport.requests("ChartTimeSeries")[0]
        assert request.from_ is None
        assert request.aggregations == []
        assert not request.fill_missing

    def test_chart_request_encodes_from(self):
        """The window start is encoded under its wire name."""
        request = ChartTimeSeriesRequest(from_=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert b'"from"' in encode_message(request)

    @pytest.mark.asyncio
    async def test_squid(self, actor, transport):
        """Sequence ids are taken by key and recovered with their squat."""
        transport.respond("SQUID", SquidResponse(squid=7, squat="sq-7"))
        transport.respond("SQUIDRecover", lambda req: SquidResponse(squid=7, squat=req.squat))

        taken = await actor.squid("invoices")
        recovered = await actor.squid_retrieve("invoices", taken.squat)

        assert taken.squid == recovered.squid == 7
        request = transport.requests("SQUID")[0]
        assert request.sequence_key == "invoices"
        assert request.authorization.workspace_id == "ws-1"
        recover = transport.requests("SQUIDRecover")[0]
        assert (recover.sequence_key, recover.squat) == ("invoices", "sq-7")

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        """Charts and sequences need a connected actor."""
        with pytest.raises(ActorError):
            await Actor(None, "ws-1").chart_time_series("reading")
        with pytest.raises(ActorError):
            await Actor(None, "ws-1").squid("invoices")
