"""Tests for the state store and its persistence collaborators."""

import json
import logging

import pytest

from workshop_sim.errors import DependencyMissingError
from workshop_sim.state.event_bus import Topic
from workshop_sim.state.manager import StateStore
from workshop_sim.state.schema import (
    HiddenDebt,
    PhaseHistoryRecord,
    StakeholderRelationship,
    default_state,
)
from workshop_sim.state.store import JsonStatePersistence, MemoryStatePersistence


class BrokenPersistence:
    """Persistence that fails every call."""

    def load(self, key):
        raise OSError("disk gone")

    def save(self, key, data):
        raise OSError("disk full")


class TestConstruction:
    def test_requires_bus(self):
        """A store without a bus can't announce changes."""
        with pytest.raises(DependencyMissingError):
            StateStore(None)

    def test_starts_with_defaults(self, store):
        """Fresh store holds the default tree."""
        assert store.snapshot() == default_state()
        assert store.current_phase == "analysis"
        assert store.resources() == {"budget": 1_000_000, "politicalCapital": 75, "timeRemaining": 6}


class TestGetSet:
    """Test path-addressed access."""

    def test_missing_path_returns_default(self, store):
        """Missing intermediate keys yield the default, not an error."""
        assert store.get("nope.deeper.still", default="fallback") == "fallback"
        assert store.get(["resources", "missing"]) is None

    def test_set_creates_intermediate_nodes(self, store):
        """Intermediate mappings are created as needed."""
        store.set("a.b.c", 3)
        assert store.get("a") == {"b": {"c": 3}}

    def test_set_overwrites_non_mapping_intermediate(self, store):
        """A scalar on the path is replaced by a mapping."""
        store.set("resources.budget.nested", 1)
        assert store.get("resources.budget") == {"nested": 1}

    def test_set_publishes_state_changed(self, store, bus):
        """state-changed carries the path and value, synchronously."""
        seen = []
        bus.subscribe(Topic.STATE_CHANGED, seen.append)

        store.set(("resources", "budget"), 10)

        assert len(seen) == 1
        assert seen[0].payload.path == ("resources", "budget")
        assert seen[0].payload.value == 10

    def test_get_returns_copy(self, store):
        """Mutating a get() result doesn't touch the live tree."""
        resources = store.get("resources")
        resources["budget"] = -1
        assert store.get("resources.budget") == 1_000_000

    def test_set_stores_copy(self, store):
        """The caller's object isn't retained by the tree."""
        value = {"x": [1]}
        store.set("custom", value)
        value["x"].append(2)
        assert store.get("custom") == {"x": [1]}

    def test_empty_path_ignored(self, store, caplog):
        """Writing the root through set() is refused and logged."""
        with caplog.at_level(logging.ERROR):
            store.set("", 1)
        assert store.snapshot() == default_state()

    def test_set_persist_saves(self, store, memory_persistence):
        """persist=True saves the whole tree."""
        store.set("resources.budget", 5, persist=True)
        assert memory_persistence.save_count == 1
        saved = memory_persistence.load(store.storage_key)
        assert saved["resources"]["budget"] == 5


class TestSnapshotResetRestore:
    def test_snapshot_is_independent(self, store):
        """Snapshots share no references with the live tree."""
        snap = store.snapshot()
        snap["resources"]["budget"] = 0
        assert store.resources()["budget"] == 1_000_000

    def test_snapshot_reset_restore_round_trip(self, store):
        """snapshot, reset, restore reproduces the tree."""
        store.record_decision("fundingSource", "international-loan")
        store.set_hidden_debt(HiddenDebt(total=10, sources={"a": 10}))
        snap = store.snapshot()

        store.reset(persist=False)
        assert store.decisions() == {}

        store.restore(snap)
        assert store.snapshot() == snap

    def test_reset_publishes_state_reset(self, store, bus):
        seen = []
        bus.subscribe(Topic.STATE_RESET, seen.append)

        store.reset(persist=False)

        assert len(seen) == 1
        assert seen[0].payload.timestamp > 0

    def test_reset_persists_by_default(self, store, memory_persistence):
        store.reset()
        assert memory_persistence.save_count == 1

    def test_reset_can_preserve_user(self, store):
        """preserve_user keeps the identity sub-tree."""
        store.set("user.name", "Ada")
        store.record_decision("needs", "water")

        store.reset(persist=False, preserve_user=True)

        assert store.get("user.name") == "Ada"
        assert store.decisions() == {}

    def test_reset_drops_user_by_default(self, store):
        store.set("user.name", "Ada")
        store.reset(persist=False)
        assert store.get("user.name") == "Workshop Participant"


class TestPersistence:
    """Test load/save through the persistence collaborator."""

    def test_save_and_load_round_trip(self, bus, memory_persistence):
        """A second store on the same persistence sees the saved tree."""
        first = StateStore(bus, memory_persistence)
        first.record_decision("needs", "water")
        assert first.save() is True

        second = StateStore(bus, memory_persistence)
        assert second.load() is True
        assert second.decisions() == {"needs": "water"}

    def test_save_stamps_last_saved(self, store):
        store.save()
        assert store.get("system.last_saved") is not None

    def test_load_without_saved_state_keeps_defaults(self, store):
        assert store.load() is False
        assert store.snapshot() == default_state()

    def test_save_failure_is_logged_not_raised(self, bus, caplog):
        store = StateStore(bus, BrokenPersistence())
        with caplog.at_level(logging.ERROR):
            assert store.save() is False
        assert "Failed to save" in caplog.text

    def test_load_failure_uses_defaults(self, bus):
        store = StateStore(bus, BrokenPersistence())
        assert store.load() is False
        assert store.snapshot() == default_state()

    def test_set_with_failing_persistence_still_applies(self, bus):
        """Save errors never reach callers of set()."""
        store = StateStore(bus, BrokenPersistence())
        store.set("resources.budget", 1, persist=True)
        assert store.get("resources.budget") == 1

    def test_newer_saved_version_warns(self, bus, memory_persistence, caplog):
        """Versions compare numerically: 1.10.0 is newer than 1.2.0."""
        tree = default_state()
        tree["system"]["version"] = "1.10.0"
        memory_persistence.save("workshop_state", tree)

        store = StateStore(bus, memory_persistence)
        with caplog.at_level(logging.WARNING):
            assert store.load() is True
        assert "newer" in caplog.text

    def test_corrupt_sub_tree_uses_defaults(self, bus, memory_persistence, caplog):
        """A sub-tree of the wrong shape is rejected before it replaces state."""
        memory_persistence.save("workshop_state", {"system": "corrupt", "resources": {}})

        store = StateStore(bus, memory_persistence)
        with caplog.at_level(logging.ERROR):
            assert store.load() is False
        assert "invalid" in caplog.text
        assert store.snapshot() == default_state()

    def test_out_of_range_relationship_rejected(self, bus, memory_persistence):
        """Loaded relationships obey the same bounds as live ones."""
        tree = default_state()
        tree["stakeholder_relationships"] = {"bank": {"strength": 1.5, "type": "allied"}}
        memory_persistence.save("workshop_state", tree)

        store = StateStore(bus, memory_persistence)
        assert store.load() is False
        assert store.relationships() == {}

    def test_missing_sub_trees_filled_from_defaults(self, bus, memory_persistence):
        """An older document without some keys still loads."""
        memory_persistence.save("workshop_state", {"decisions": {"needs": "water"}})

        store = StateStore(bus, memory_persistence)
        assert store.load() is True
        assert store.decisions() == {"needs": "water"}
        assert store.hidden_debt().total == 0
        assert store.current_phase == "analysis"

    def test_no_persistence_configured(self, bus):
        store = StateStore(bus)
        assert store.save() is False
        assert store.load() is False


class TestJsonStatePersistence:
    def test_save_load_and_backup(self, tmp_path):
        """Files land in state_dir; the previous save is kept as .bak."""
        persistence = JsonStatePersistence(tmp_path)
        persistence.save("session", {"v": 1})
        persistence.save("session", {"v": 2})

        assert persistence.load("session") == {"v": 2}
        backup = tmp_path / "session.json.bak"
        assert json.loads(backup.read_text(encoding="utf-8")) == {"v": 1}

    def test_missing_key_loads_none(self, tmp_path):
        assert JsonStatePersistence(tmp_path).load("absent") is None

    def test_non_mapping_document_rejected(self, tmp_path):
        (tmp_path / "bad.json").write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            JsonStatePersistence(tmp_path).load("bad")


class TestTypedAccessors:
    def test_record_decision_overwrites(self, store):
        """Re-deciding replaces the earlier choice."""
        store.record_decision("needs", "water")
        store.record_decision("needs", "roads")
        assert store.decisions() == {"needs": "roads"}

    def test_event_choices_separate_from_decisions(self, store):
        store.record_event_choice("needs", "ok")
        assert store.decisions() == {}
        assert store.event_choices() == {"needs": "ok"}

    def test_mark_event_seen_idempotent(self, store):
        assert store.mark_event_seen("briefing") is True
        assert store.mark_event_seen("briefing") is False
        assert store.seen_events() == ["briefing"]

    def test_relationships_round_trip(self, store):
        store.set_relationships({"bank": StakeholderRelationship(strength=0.9, type="allied")})
        assert store.relationships()["bank"].strength == 0.9
        assert store.get("stakeholder_relationships.bank.type") == "allied"

    def test_phase_history_append(self, store):
        record = PhaseHistoryRecord(phase="analysis", timestamp=1, decisions={"needs": "water"})
        store.append_phase_history(record)
        assert store.phase_history() == [record]

    def test_phase_progress_clamped(self, store):
        store.set_phase_progress("funding", 1.7)
        assert store.phase_progress("funding") == 1
        store.set_phase_progress("funding", -2)
        assert store.phase_progress("funding") == 0
