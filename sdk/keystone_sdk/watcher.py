"""
Change tracking for records.

A Watcher holds the marshaled form of a record as last seen by the server.
Diffing a record against it yields only the properties whose wire form has
changed, which keeps mutations minimal.

Invariants:
    - A watcher never holds a reference to the record it watches
    - A fresh (empty) watcher reports every property as changed
    - Wire equality compares every scalar slot and every repeated group;
      strings and ints compare as multisets

Example:
    >>> w = new_watcher(user)
    >>> user.name = "Bob"
    >>> w.changes(user)
    {Property(name='name', prefix=''): Value(text='Bob', ...)}
"""

from __future__ import annotations

from collections import Counter
from typing import Any

from .marshal import marshal
from .property import Property
from .wire import RepeatedValue, Value


class Watcher:
    """Snapshot of a record's marshaled properties."""

    def __init__(self, known_values: dict[Property, Value] | None = None) -> None:
        self._known: dict[Property, Value] = dict(known_values or {})

    @property
    def known_values(self) -> dict[Property, Value]:
        return dict(self._known)

    def changes(self, record: Any, commit: bool = False) -> dict[Property, Value]:
        """Return properties that differ from the snapshot.

        Args:
            record: Record to compare
            commit: Replace the snapshot with the record's current form

        Returns:
            Changed properties, or every property when the snapshot is empty
        """
        latest = marshal(record)
        if not self._known:
            if commit:
                self._known = latest
            return dict(latest)

        changed = {
            prop: value
            for prop, value in latest.items()
            if prop not in self._known or not match_value(self._known[prop], value)
        }
        if commit:
            self._known = latest
        return changed

    def append_known_values(self, values: dict[Property, Value]) -> None:
        self._known.update(values)

    def replace_known_values(self, values: dict[Property, Value]) -> None:
        self._known = dict(values)

    def forget(self, *props: Property) -> None:
        """Drop properties from the snapshot so they are always reported."""
        for prop in props:
            self._known.pop(prop, None)


def new_watcher(record: Any) -> Watcher:
    """Create a watcher whose snapshot is the record's current form."""
    return Watcher(marshal(record))


def new_defaults_watcher(record_or_type: Any) -> Watcher:
    """Create a watcher whose snapshot is a default instance of the type."""
    cls = record_or_type if isinstance(record_or_type, type) else type(record_or_type)
    return Watcher(marshal(cls()))


def _match_repeated(a: RepeatedValue | None, b: RepeatedValue | None) -> bool:
    a_empty = a is None or a.is_empty()
    b_empty = b is None or b.is_empty()
    if a_empty or b_empty:
        return a_empty and b_empty
    if Counter(a.strings) != Counter(b.strings):
        return False
    if Counter(a.ints) != Counter(b.ints):
        return False
    if a.key_value != b.key_value:
        return False
    if a.mixed.keys() != b.mixed.keys():
        return False
    return all(match_value(a.mixed[k], b.mixed[k]) for k in a.mixed)


def match_value(a: Value | None, b: Value | None) -> bool:
    """Wire equality of two values across every slot."""
    if a is None or b is None:
        return a is b
    return (
        a.text == b.text
        and a.secure_text == b.secure_text
        and a.int_value == b.int_value
        and a.bool_value == b.bool_value
        and a.float_value == b.float_value
        and a.time == b.time
        and a.raw == b.raw
        and _match_repeated(a.array, b.array)
        and _match_repeated(a.array_append, b.array_append)
        and _match_repeated(a.array_reduce, b.array_reduce)
    )
