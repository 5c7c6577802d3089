"""
Mutate options.

Each option adjusts the outgoing MutateRequest through ``apply``. Options
that need to influence change detection also implement
``prepare(watcher)``, which runs before the diff is taken, and options
holding client side state can implement ``observe_mutation`` to see the
successful response.
"""

from __future__ import annotations

from .errors import ValidationError
from .property import Property
from .traits import Document
from .watcher import Watcher
from .wire import (
    EntityState,
    MutateOption as MutateFlag,
    MutateRequest,
    MutateResponse,
    PiiReference,
    VendorApp,
)

_SETTABLE_STATES = frozenset({EntityState.ACTIVE, EntityState.OFFLINE, EntityState.CORRUPT, EntityState.ARCHIVED})


class MutateOption:
    """Base class for mutate options."""

    def apply(self, request: MutateRequest) -> None:
        raise NotImplementedError


class _Comment(MutateOption):
    def __init__(self, comment: str) -> None:
        self.comment = comment

    def apply(self, request: MutateRequest) -> None:
        request.mutation.comment = self.comment


def with_mutation_comment(comment: str) -> MutateOption:
    return _Comment(comment)


class _OnConflictUseID(MutateOption):
    def __init__(self, properties: tuple[str, ...]) -> None:
        self.properties = list(properties)

    def apply(self, request: MutateRequest) -> None:
        request.conflict_unique_property_acquire = list(self.properties)


def on_conflict_use_id(*properties: str) -> MutateOption:
    """Name the unique properties that identify an existing entity."""
    return _OnConflictUseID(properties)


class MutateProperties(MutateOption):
    """Only write the named properties.

    The properties are dropped from the watcher snapshot first so their
    current values always make it into the diff.
    """

    def __init__(self, properties: tuple[str, ...]) -> None:
        self.properties = list(properties)

    def prepare(self, watcher: Watcher) -> None:
        watcher.forget(*(Property.parse(p) for p in self.properties))

    def apply(self, request: MutateRequest) -> None:
        keep = set(self.properties)
        request.mutation.properties = [p for p in request.mutation.properties if p.property in keep]


def mutate_properties(*properties: str) -> MutateProperties:
    return MutateProperties(properties)


class _Flag(MutateOption):
    def __init__(self, flag: MutateFlag) -> None:
        self.flag = flag

    def apply(self, request: MutateRequest) -> None:
        if self.flag not in request.options:
            request.options.append(self.flag)


def background_index() -> MutateOption:
    """Let the server index the write asynchronously."""
    return _Flag(MutateFlag.BACKGROUND_INDEX)


def on_conflict_ignore() -> MutateOption:
    return _Flag(MutateFlag.ON_CONFLICT_IGNORE)


class _PiiToken(MutateOption):
    def __init__(self, token: str) -> None:
        self.token = token

    def apply(self, request: MutateRequest) -> None:
        request.mutation.pii_token = self.token


def with_pii_token(token: str) -> MutateOption:
    """Store personal data under a previously issued PII token."""
    return _PiiToken(token)


class _PiiReference(MutateOption):
    def __init__(self, vendor_id: str, app_id: str, key: str) -> None:
        self.reference = PiiReference(source=VendorApp(vendor_id=vendor_id, app_id=app_id), key=key)

    def apply(self, request: MutateRequest) -> None:
        request.mutation.pii_reference = self.reference


def with_pii_reference(vendor_id: str, app_id: str, key: str) -> MutateOption:
    return _PiiReference(vendor_id, app_id, key)


class _State(MutateOption):
    def __init__(self, state: EntityState) -> None:
        self.state = state

    def apply(self, request: MutateRequest) -> None:
        request.mutation.state = self.state


def with_state(state: EntityState) -> MutateOption:
    """Move the entity to a new state.

    Raises:
        ValidationError: For Invalid, Removed or unknown states
    """
    if state not in _SETTABLE_STATES:
        raise ValidationError(f"cannot set entity state {state!r}", field_name="state")
    return _State(EntityState(state))


def archive() -> MutateOption:
    return with_state(EntityState.ARCHIVED)


def restore() -> MutateOption:
    return with_state(EntityState.ACTIVE)


class _WithDocument(MutateOption):
    def __init__(self, document: Document) -> None:
        self.document = document

    def apply(self, request: MutateRequest) -> None:
        request.mutation.document = self.document.to_wire()

    def observe_mutation(self, response: MutateResponse) -> None:
        self.document.observe_mutation(response)


def with_document(document: Document) -> MutateOption:
    """Write a document revision alongside the mutation."""
    return _WithDocument(document)
