"""
Tests for pending-change tracking.
"""

import pytest

from autosave import BaselineSnapshot, PendingChangeTracker, is_pending, reconcile_pending_field
from nestedpath.paths import deep_equal, get_by_path


@pytest.fixture
def baseline():
    return BaselineSnapshot.create({"name": "Jane", "profile": {"age": 30}, "tags": ["a"]})


class TestIsPending:
    """Test the single-path predicate."""

    @pytest.mark.parametrize("path,value", [
        ("name", "Jane"),
        ("name", "Janet"),
        ("profile.age", 30),
        ("profile.age", 31),
        ("tags", ["a"]),
        ("tags", ["a", "b"]),
        ("missing", None),
        ("missing", 0),
    ])
    def test_pending_iff_not_deep_equal(self, baseline, path, value):
        """Pending exactly when the value differs from the baseline at path."""
        expected = not deep_equal(value, get_by_path(baseline.values, path))
        assert is_pending(path, value, baseline) is expected

    def test_plain_dict_baseline(self):
        assert is_pending("a", 1, {"a": 1}) is False

    def test_custom_equality(self, baseline):
        """Case-insensitive comparison."""
        same = lambda a, b: str(a).lower() == str(b).lower()
        assert is_pending("name", "JANE", baseline, equal=same) is False

    def test_reconcile_adds_and_removes(self, baseline):
        pending = set()
        assert reconcile_pending_field("name", "X", pending, baseline) is True
        assert pending == {"name"}
        assert reconcile_pending_field("name", "Jane", pending, baseline) is False
        assert pending == set()


class TestPendingChangeTracker:
    """Test the owned pending set."""

    def test_edit_back_clears(self, baseline):
        """Pending is recomputed per field, not append-only."""
        tracker = PendingChangeTracker(baseline)
        tracker.reconcile("name", "X")
        assert "name" in tracker and len(tracker) == 1
        tracker.reconcile("name", "Jane")
        assert len(tracker) == 0

    def test_reconcile_all_from_values(self, baseline):
        tracker = PendingChangeTracker(baseline)
        values = {"name": "X", "profile": {"age": 31}, "tags": ["a"]}
        assert tracker.reconcile_all(values, ["name", "profile.age", "tags"]) == {"name", "profile.age"}

    def test_rebase_clears_adopted_paths(self, baseline):
        """Paths matching the new baseline stop being pending."""
        tracker = PendingChangeTracker(baseline)
        tracker.reconcile("name", "X")
        tracker.reconcile("profile.age", 40)

        values = {"name": "X", "profile": {"age": 41}, "tags": ["a"]}
        updated = baseline.merged({"name": "X", "profile.age": 40})

        assert tracker.rebase(updated, values=values) == {"profile.age"}
        assert tracker.baseline is updated

    def test_clear(self, baseline):
        tracker = PendingChangeTracker(baseline)
        tracker.reconcile("name", "X")
        tracker.clear()
        assert tracker.paths == set()


class TestBaselineSnapshot:
    """Test versioned baselines."""

    def test_advance_and_merge(self, baseline):
        merged = baseline.merged({"profile.age": 31})
        assert merged.version == 1
        assert merged.values["profile"]["age"] == 31
        assert baseline.values["profile"]["age"] == 30
        assert merged.id != baseline.id

    def test_values_are_copied(self):
        source = {"a": [1]}
        snapshot = BaselineSnapshot.create(source)
        source["a"].append(2)
        assert snapshot.values == {"a": [1]}

    def test_dict_round_trip(self, baseline):
        assert BaselineSnapshot.from_dict(baseline.to_dict()) == baseline
