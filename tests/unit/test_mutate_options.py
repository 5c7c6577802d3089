"""
Unit tests for mutate options.

Tests cover:
- Request flags and conflict handling
- Property restriction and watcher preparation
- State transitions
- Document writes
"""

import pytest

from sdk.keystone_sdk.errors import ValidationError
from sdk.keystone_sdk.mutate_options import (
    archive,
    background_index,
    mutate_properties,
    on_conflict_ignore,
    on_conflict_use_id,
    restore,
    with_document,
    with_mutation_comment,
    with_pii_reference,
    with_pii_token,
    with_state,
)
from sdk.keystone_sdk.property import Property
from sdk.keystone_sdk.traits import Document
from sdk.keystone_sdk.watcher import Watcher
from sdk.keystone_sdk.wire import (
    EntityProperty,
    EntityState,
    MutateOption,
    MutateRequest,
    MutateResponse,
    Mutation,
    Value,
)


def new_request(*names):
    return MutateRequest(
        mutation=Mutation(properties=[EntityProperty(property=n, value=Value(text=n)) for n in names])
    )


class TestRequestOptions:
    """Tests for options that set request fields."""

    def test_comment(self):
        """The comment lands on the mutation."""
        request = new_request()
        with_mutation_comment("migrated").apply(request)
        assert request.mutation.comment == "migrated"

    def test_flags_deduplicated(self):
        """Flags are added once each."""
        request = new_request()
        for opt in (background_index(), on_conflict_ignore(), background_index()):
            opt.apply(request)
        assert request.options == [MutateOption.BACKGROUND_INDEX, MutateOption.ON_CONFLICT_IGNORE]

    def test_on_conflict_use_id(self):
        """Conflict properties are listed on the request."""
        request = new_request()
        on_conflict_use_id("email", "phone").apply(request)
        assert request.conflict_unique_property_acquire == ["email", "phone"]

    def test_pii(self):
        """PII token and reference are set on the mutation."""
        request = new_request()
        with_pii_token("tok").apply(request)
        with_pii_reference("v", "a", "k1").apply(request)
        assert request.mutation.pii_token == "tok"
        assert request.mutation.pii_reference.key == "k1"
        assert request.mutation.pii_reference.source.vendor_id == "v"


class TestMutateProperties:
    """Tests for mutate_properties."""

    def test_filters_properties(self):
        """Only the named properties stay on the mutation."""
        request = new_request("name", "email", "age")
        mutate_properties("name", "age").apply(request)
        assert [p.property for p in request.mutation.properties] == ["name", "age"]

    def test_prepare_forgets(self):
        """Named properties are dropped from the watcher snapshot."""
        watcher = Watcher({Property("name"): Value(text="a"), Property("age"): Value(int_value=1)})
        mutate_properties("name").prepare(watcher)
        assert list(watcher.known_values) == [Property("age")]


class TestStates:
    """Tests for state options."""

    @pytest.mark.parametrize(
        "state", [EntityState.ACTIVE, EntityState.OFFLINE, EntityState.CORRUPT, EntityState.ARCHIVED]
    )
    def test_settable(self, state):
        """Settable states are written to the mutation."""
        request = new_request()
        with_state(state).apply(request)
        assert request.mutation.state == state

    @pytest.mark.parametrize("state", [EntityState.INVALID, EntityState.REMOVED])
    def test_rejected(self, state):
        """Invalid and Removed cannot be set."""
        with pytest.raises(ValidationError):
            with_state(state)

    def test_archive_restore(self):
        """archive and restore are state shortcuts."""
        request = new_request()
        archive().apply(request)
        assert request.mutation.state == EntityState.ARCHIVED
        restore().apply(request)
        assert request.mutation.state == EntityState.ACTIVE


class TestDocument:
    """Tests for with_document."""

    def test_writes_document(self):
        """The document wire form carries meta deltas."""
        doc = Document(b"body", {"a": "1"})
        doc.append_meta("b", "2")
        doc.remove_meta("c")
        request = new_request()
        with_document(doc).apply(request)
        wire = request.mutation.document
        assert wire.data == b"body"
        assert wire.meta == {"a": "1"}
        assert wire.append_meta == {"b": "2"}
        assert wire.remove_meta == ["c"]

    def test_revision_backfilled(self):
        """A new document takes the revision the server assigned."""
        doc = Document(b"body")
        with_document(doc).observe_mutation(MutateResponse(success=True, document_revision_id="rev-9"))
        assert doc.revision_id == "rev-9"

    def test_existing_revision_kept(self):
        """A document updating a revision keeps its id."""
        doc = Document.update("rev-1")
        with_document(doc).observe_mutation(MutateResponse(success=True, document_revision_id="rev-2"))
        assert doc.revision_id == "rev-1"
