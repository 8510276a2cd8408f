"""
Authoritative state store for a workshop session.

Owns the single state tree. Everything else reads and writes through
this API; nobody keeps an independent copy and mutates it out of band.
"""

import logging
import time
from copy import deepcopy
from typing import Any, Iterable

from pydantic import ValidationError

from ..errors import DependencyMissingError
from .event_bus import EventBus, StateChanged, StateReset, Topic
from .schema import (
    STATE_VERSION,
    HiddenDebt,
    PhaseHistoryRecord,
    StakeholderRelationship,
    StateTree,
    default_state,
)
from .store import StatePersistence

logger = logging.getLogger(__name__)


DEFAULT_STORAGE_KEY = "workshop_state"

StatePath = str | Iterable[str] | None


def _version_tuple(version: str) -> tuple[int, ...]:
    """Convert version string to tuple for numeric comparison ("1.10.0" > "1.2.0")."""
    try:
        return tuple(int(x) for x in version.split("."))
    except (AttributeError, ValueError):
        return (0, 0, 0)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _normalize(path: StatePath) -> tuple[str, ...]:
    if path is None:
        return ()
    if isinstance(path, str):
        return tuple(key for key in path.split(".") if key)
    return tuple(path)


class StateStore:
    """
    Path-addressed state tree with persistence hooks.

    Paths are either a dot-separated string ("resources.budget") or a
    sequence of keys. Values returned by get() are copies; mutate state
    through set() or the typed accessors below.

    Persistence is delegated to a StatePersistence collaborator. Load
    failures fall back to defaults and save failures are logged; neither
    reaches the caller as an exception.
    """

    def __init__(
        self,
        bus: EventBus,
        persistence: StatePersistence | None = None,
        storage_key: str = DEFAULT_STORAGE_KEY,
    ):
        if bus is None:
            raise DependencyMissingError("StateStore", "an EventBus")
        self._bus = bus
        self._persistence = persistence
        self.storage_key = storage_key
        self._state: dict[str, Any] = default_state()

    # -------------------------------------------------------------------------
    # Generic tree access
    # -------------------------------------------------------------------------

    def get(self, path: StatePath = None, default: Any = None) -> Any:
        """
        Read the value at path.

        Missing keys anywhere along the path yield ``default``.
        """
        value: Any = self._state
        for key in _normalize(path):
            if not isinstance(value, dict) or key not in value:
                return default
            value = value[key]
        return deepcopy(value)

    def set(self, path: StatePath, value: Any, persist: bool = False) -> None:
        """
        Write value at path, creating intermediate mappings as needed.

        Publishes state-changed before returning; saves when persist is set.
        """
        keys = _normalize(path)
        if not keys:
            logger.error("set() requires a non-empty path")
            return

        target = self._state
        for key in keys[:-1]:
            if not isinstance(target.get(key), dict):
                target[key] = {}
            target = target[key]
        target[keys[-1]] = deepcopy(value)

        self._bus.publish(Topic.STATE_CHANGED, StateChanged(path=keys, value=deepcopy(value)))

        if persist:
            self.save()

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the whole tree (shares nothing with the live state)."""
        return deepcopy(self._state)

    def restore(self, tree: dict[str, Any], persist: bool = False) -> None:
        """Replace the whole tree with a copy of ``tree`` (e.g. a snapshot)."""
        self._state = deepcopy(tree)
        self._bus.publish(Topic.STATE_CHANGED, StateChanged(path=(), value=deepcopy(tree)))
        if persist:
            self.save()

    def reset(self, persist: bool = True, preserve_user: bool = False) -> None:
        """
        Replace the tree with fresh defaults.

        Args:
            persist: Save the fresh tree afterwards
            preserve_user: Keep the current ``user`` sub-tree
        """
        user = self._state.get("user")
        self._state = default_state()
        if preserve_user and user is not None:
            self._state["user"] = user

        self._bus.publish(Topic.STATE_RESET, StateReset(timestamp=_now_ms()))

        if persist:
            self.save()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self) -> bool:
        """Persist the whole tree. Returns False (and logs) on failure."""
        if self._persistence is None:
            return False
        self._state.setdefault("system", {})["last_saved"] = _now_ms()
        try:
            self._persistence.save(self.storage_key, self.snapshot())
        except Exception:
            logger.exception("Failed to save state under %s", self.storage_key)
            return False
        logger.debug("State saved under %s", self.storage_key)
        return True

    def load(self) -> bool:
        """
        Replace the tree with the persisted one, if any.

        Returns False when nothing was loaded; the current tree is kept.
        """
        if self._persistence is None:
            return False
        try:
            saved = self._persistence.load(self.storage_key)
        except Exception:
            logger.exception("Failed to load state from %s, using defaults", self.storage_key)
            return False

        if not saved:
            logger.info("No saved state found, using default state")
            return False

        if not isinstance(saved, dict):
            logger.error("Saved state under %s is not a mapping, using defaults", self.storage_key)
            return False

        # Missing sub-trees fall back to their defaults
        tree = {**default_state(), **saved}
        try:
            checked = StateTree.model_validate(tree)
        except ValidationError as e:
            logger.error("Saved state under %s is invalid, using defaults: %s", self.storage_key, e)
            return False

        saved_version = checked.system.version
        if _version_tuple(saved_version) > _version_tuple(STATE_VERSION):
            logger.warning(
                "Saved state version %s is newer than %s", saved_version, STATE_VERSION
            )

        self._state = tree
        logger.info("State loaded from %s", self.storage_key)
        return True

    # -------------------------------------------------------------------------
    # Typed accessors
    # -------------------------------------------------------------------------

    @property
    def current_phase(self) -> str | None:
        return self.get("current_phase")

    def set_current_phase(self, phase: str) -> None:
        self.set("current_phase", phase)

    def resources(self) -> dict[str, float]:
        return self.get("resources", {})

    def set_resources(self, resources: dict[str, float], persist: bool = False) -> None:
        self.set("resources", resources, persist=persist)

    def decisions(self) -> dict[str, str]:
        return self.get("decisions", {})

    def record_decision(self, decision_id: str, choice_id: str) -> None:
        """Re-deciding overwrites the earlier choice."""
        self.set(("decisions", decision_id), choice_id)

    def event_choices(self) -> dict[str, str]:
        return self.get("event_choices", {})

    def record_event_choice(self, event_id: str, choice_id: str) -> None:
        self.set(("event_choices", event_id), choice_id)

    def seen_events(self) -> list[str]:
        return self.get("seen_events", [])

    def mark_event_seen(self, event_id: str) -> bool:
        """Record an event as seen. Returns False if it already was."""
        seen = self.seen_events()
        if event_id in seen:
            return False
        seen.append(event_id)
        self.set("seen_events", seen)
        return True

    def relationships(self) -> dict[str, StakeholderRelationship]:
        raw = self.get("stakeholder_relationships", {})
        return {sid: StakeholderRelationship.model_validate(r) for sid, r in raw.items()}

    def set_relationships(self, relationships: dict[str, StakeholderRelationship]) -> None:
        self.set(
            "stakeholder_relationships",
            {sid: r.model_dump(mode="json") for sid, r in relationships.items()},
        )

    def hidden_debt(self) -> HiddenDebt:
        return HiddenDebt.model_validate(self.get("hidden_debt", {}))

    def set_hidden_debt(self, debt: HiddenDebt, persist: bool = False) -> None:
        self.set("hidden_debt", debt.model_dump(), persist=persist)

    def phase_history(self) -> list[PhaseHistoryRecord]:
        return [PhaseHistoryRecord.model_validate(r) for r in self.get("phase_history", [])]

    def append_phase_history(self, record: PhaseHistoryRecord) -> None:
        history = self.get("phase_history", [])
        history.append(record.model_dump(mode="json"))
        self.set("phase_history", history)

    def phase_progress(self, phase: str) -> float:
        return self.get(("phase_progress", phase), 0)

    def set_phase_progress(self, phase: str, progress: float) -> None:
        """Progress is a fraction, clamped to [0, 1]."""
        self.set(("phase_progress", phase), min(max(progress, 0), 1))
