"""
Entity State Tracker Tests
==========================

INVARIANTS TESTED:
1. Snapshot chapter numbers never decrease within one history
2. Stored states are isolated from caller mutation
3. Rollback truncates and restores; unreachable rollback changes nothing
"""

import pytest
from hypothesis import given, strategies as st

from narrative_consistency.contracts.base import EntityType
from narrative_consistency.observability import ObservabilityEngine
from narrative_consistency.temporal import EntityStateTracker, SnapshotOrderError, diff_states

from .fixtures import make_character


def track(tracker, chapter_number, **state):
    return tracker.track_change(
        EntityType.CHARACTER, "c_lin", f"ch{chapter_number}", chapter_number, state
    )


class TestTrackChange:

    def test_first_snapshot_records_every_field_as_new(self):
        tracker = EntityStateTracker()
        snapshot = track(tracker, 1, name="Lin Feng", status="Alive")
        assert set(snapshot.changed_fields) == {"name", "status"}
        assert all(c.old_value is None for c in snapshot.changes)

    def test_changes_diffed_against_previous_state(self):
        tracker = EntityStateTracker()
        snapshot = tracker.track_change(
            EntityType.CHARACTER, "c_lin", "ch2", 2,
            {"status": "Injured", "name": "Lin Feng"},
            {"status": "Alive", "name": "Lin Feng"},
        )
        assert snapshot.changed_fields == ("status",)
        assert snapshot.changes[0].old_value == "Alive"

    def test_out_of_order_chapter_raises(self):
        tracker = EntityStateTracker()
        track(tracker, 5, status="Alive")
        with pytest.raises(SnapshotOrderError):
            track(tracker, 3, status="Alive")
        assert tracker.get_current_chapter(EntityType.CHARACTER, "c_lin") == 5

    def test_same_chapter_is_allowed(self):
        tracker = EntityStateTracker()
        track(tracker, 5, status="Alive")
        track(tracker, 5, status="Injured")
        assert len(tracker.get_history(EntityType.CHARACTER, "c_lin")) == 2

    def test_can_track(self):
        tracker = EntityStateTracker()
        assert tracker.can_track(EntityType.CHARACTER, "c_lin", 1)
        track(tracker, 4, status="Alive")
        assert tracker.can_track(EntityType.CHARACTER, "c_lin", 4)
        assert not tracker.can_track(EntityType.CHARACTER, "c_lin", 3)

    def test_stored_state_is_isolated(self):
        tracker = EntityStateTracker()
        state = {"relationships": [{"characterId": "c_mei", "type": "Ally"}]}
        tracker.track_change(EntityType.CHARACTER, "c_lin", "ch1", 1, state)

        state["relationships"][0]["type"] = "Enemy"
        read = tracker.get_current_state(EntityType.CHARACTER, "c_lin")
        assert read["relationships"][0]["type"] == "Ally"

        read["relationships"].clear()
        assert tracker.get_current_state(EntityType.CHARACTER, "c_lin")["relationships"]

    def test_track_character_projects_codex(self):
        tracker = EntityStateTracker()
        tracker.track_character(make_character("c_lin", "Lin Feng"), "ch1", 1)
        state = tracker.get_current_state(EntityType.CHARACTER, "c_lin")
        assert state["currentCultivation"] == "Foundation Building"
        assert state["relationships"] == []

    @given(st.lists(st.integers(min_value=0, max_value=50), min_size=1, max_size=20))
    def test_history_is_monotonic(self, chapters):
        tracker = EntityStateTracker()
        for number in chapters:
            if tracker.can_track(EntityType.CHARACTER, "c_lin", number):
                track(tracker, number, chapter=number)
            else:
                with pytest.raises(SnapshotOrderError):
                    track(tracker, number, chapter=number)

        numbers = [s.chapter_number for s in tracker.get_history(EntityType.CHARACTER, "c_lin")]
        assert numbers == sorted(numbers)


class TestPointInTimeReads:

    def test_state_at_chapter_uses_latest_earlier_snapshot(self):
        tracker = EntityStateTracker()
        track(tracker, 1, status="Alive")
        track(tracker, 3, status="Injured")
        assert tracker.get_state_at_chapter(EntityType.CHARACTER, "c_lin", 2)["status"] == "Alive"
        assert tracker.get_state_at_chapter(EntityType.CHARACTER, "c_lin", 9)["status"] == "Injured"
        assert tracker.get_state_at_chapter(EntityType.CHARACTER, "c_lin", 0) is None

    def test_untracked_reads_are_empty(self):
        tracker = EntityStateTracker()
        assert tracker.get_current_state(EntityType.CHARACTER, "ghost") is None
        assert tracker.get_current_chapter(EntityType.CHARACTER, "ghost") is None
        assert tracker.get_history(EntityType.CHARACTER, "ghost") == []
        assert not tracker.is_tracked(EntityType.CHARACTER, "ghost")

    def test_changes_in_chapter_by_id_or_number(self):
        tracker = EntityStateTracker()
        track(tracker, 2, status="Alive")
        tracker.track_change(EntityType.ITEM, "i_sword", "ch2", 2, {"name": "Sword"})
        tracker.track_change(EntityType.ITEM, "i_sword", "ch3", 3, {"name": "Broken Sword"})

        assert len(tracker.get_changes_in_chapter(chapter_id="ch2")) == 2
        assert len(tracker.get_changes_in_chapter(chapter_number=3)) == 1

    def test_summary_counts_by_type(self):
        tracker = EntityStateTracker()
        track(tracker, 1, status="Alive")
        track(tracker, 2, status="Alive")
        tracker.track_change(EntityType.ITEM, "i_sword", "ch1", 1, {"name": "Sword"})

        summary = tracker.get_summary()
        assert summary.total_entities == 2
        assert summary.total_snapshots == 3
        assert summary.count_for(EntityType.CHARACTER) == 1
        assert summary.to_dict()["entitiesByType"]["item"] == 1


class TestRollback:

    def test_rollback_between_snapshots(self):
        """Snapshots at 1, 3, 5; rollback to 4 keeps 1 and 3."""
        tracker = EntityStateTracker()
        track(tracker, 1, level="Qi Refining")
        track(tracker, 3, level="Foundation Building")
        track(tracker, 5, level="Core Formation")

        restored = tracker.rollback_to_chapter(EntityType.CHARACTER, "c_lin", 4)

        assert restored == {"level": "Foundation Building"}
        history = tracker.get_history(EntityType.CHARACTER, "c_lin")
        assert [s.chapter_number for s in history] == [1, 3]
        assert tracker.get_current_state(EntityType.CHARACTER, "c_lin") == {"level": "Foundation Building"}
        assert tracker.get_current_chapter(EntityType.CHARACTER, "c_lin") == 3

    def test_tracking_resumes_after_rollback(self):
        tracker = EntityStateTracker()
        track(tracker, 1, level="Qi Refining")
        track(tracker, 5, level="Core Formation")
        tracker.rollback_to_chapter(EntityType.CHARACTER, "c_lin", 2)
        assert tracker.can_track(EntityType.CHARACTER, "c_lin", 3)

    def test_unreachable_rollback_changes_nothing(self):
        observability = ObservabilityEngine()
        tracker = EntityStateTracker(observability)
        track(tracker, 3, level="Foundation Building")

        assert tracker.rollback_to_chapter(EntityType.CHARACTER, "c_lin", 2) is None
        assert len(tracker.get_history(EntityType.CHARACTER, "c_lin")) == 1
        assert observability.get_metrics().total("rollbacks_total", {"outcome": "unreachable"}) == 1

    def test_clear(self):
        tracker = EntityStateTracker()
        track(tracker, 1, level="Qi Refining")
        tracker.clear()
        assert tracker.get_summary().total_entities == 0


class TestDiffStates:

    def test_union_of_keys(self):
        changes = diff_states({"a": 1, "b": 2}, {"b": 3, "c": 4})
        assert [c.field for c in changes] == ["a", "b", "c"]

    def test_deep_equality(self):
        assert diff_states({"r": [{"x": 1}]}, {"r": [{"x": 1}]}) == ()

    def test_removed_none_key_is_a_change(self):
        changes = diff_states({"title": None, "status": "Alive"}, {"status": "Alive"})
        assert [(c.field, c.old_value, c.new_value) for c in changes] == [("title", None, None)]

    def test_added_none_key_is_a_change(self):
        changes = diff_states({"status": "Alive"}, {"status": "Alive", "title": None})
        assert [c.field for c in changes] == ["title"]
