"""
Unit tests for change tracking.

Tests cover:
- Fresh and committed watchers
- Minimal change sets
- Wire equality
"""

from dataclasses import dataclass, field

from sdk.keystone_sdk.marshal import marshal
from sdk.keystone_sdk.property import Property
from sdk.keystone_sdk.values import StringSet
from sdk.keystone_sdk.watcher import Watcher, match_value, new_defaults_watcher, new_watcher
from sdk.keystone_sdk.wire import RepeatedValue, Value


@dataclass
class Profile:
    name: str = ""
    score: int = 0
    tags: StringSet = field(default_factory=StringSet)


class TestWatcher:
    """Tests for Watcher."""

    def test_fresh_watcher_reports_everything(self):
        """An empty snapshot reports the full marshaled record."""
        profile = Profile("Ann", 3)
        assert Watcher().changes(profile) == marshal(profile)

    def test_commit_then_no_changes(self):
        """After a commit an unchanged record reports nothing."""
        profile = Profile("Ann", 3)
        watcher = Watcher()
        watcher.changes(profile, commit=True)
        assert watcher.changes(profile) == {}

    def test_single_field_change(self):
        """Only the edited property is reported."""
        profile = Profile("Ann", 3)
        watcher = new_watcher(profile)
        profile.score = 9
        changes = watcher.changes(profile)
        assert list(changes) == [Property("score")]
        assert changes[Property("score")].int_value == 9

    def test_changes_without_commit_keep_snapshot(self):
        """Diffing without commit leaves the snapshot alone."""
        profile = Profile("Ann")
        watcher = new_watcher(profile)
        profile.name = "Bob"
        watcher.changes(profile)
        assert Property("name") in watcher.changes(profile)

    def test_defaults_watcher(self):
        """A defaults watcher reports fields that differ from the zero record."""
        watcher = new_defaults_watcher(Profile)
        changes = watcher.changes(Profile(name="Ann"))
        assert list(changes) == [Property("name")]

    def test_forget_forces_property(self):
        """Forgotten properties are always reported."""
        profile = Profile("Ann", 3)
        watcher = new_watcher(profile)
        watcher.forget(Property("name"))
        assert list(watcher.changes(profile)) == [Property("name")]

    def test_set_changes_detected(self):
        """Pending set operations change the wire form."""
        profile = Profile("Ann", tags=StringSet("a"))
        watcher = new_watcher(profile)
        profile.tags.add("b")
        assert Property("tags") in watcher.changes(profile)

    def test_known_values_copy(self):
        """known_values returns a copy of the snapshot."""
        watcher = new_watcher(Profile("Ann"))
        snapshot = watcher.known_values
        snapshot.clear()
        assert watcher.known_values


class TestMatchValue:
    """Tests for wire equality."""

    def test_scalars(self):
        """Every scalar slot participates."""
        assert match_value(Value(text="a"), Value(text="a"))
        assert not match_value(Value(text="a"), Value(text="a", int_value=1))
        assert not match_value(Value(raw=b"x"), Value(raw=b"y"))

    def test_none(self):
        """None only matches None."""
        assert match_value(None, None)
        assert not match_value(Value(), None)

    def test_repeated_as_multiset(self):
        """Strings and ints compare regardless of order."""
        a = Value(array=RepeatedValue(strings=["a", "b"], ints=[1, 2]))
        b = Value(array=RepeatedValue(strings=["b", "a"], ints=[2, 1]))
        assert match_value(a, b)

    def test_empty_groups_equal_missing(self):
        """An empty group equals an absent one."""
        assert match_value(Value(array=RepeatedValue()), Value())
        assert not match_value(Value(array_append=RepeatedValue(strings=["x"])), Value())

    def test_nested_mixed(self):
        """Mixed groups compare recursively."""
        a = Value(array=RepeatedValue(mixed={"k": Value(int_value=1)}))
        b = Value(array=RepeatedValue(mixed={"k": Value(int_value=2)}))
        assert not match_value(a, b)
