"""
Phase orchestrator for the workshop simulation.

Sequences the fixed phases:
    analysis → funding → negotiation → outcome

Design principles:
- Forward exits are gated by the rules engine's completion criteria.
- Backward navigation and moving into the final phase are never gated.
- Leaving a phase appends an immutable history snapshot.
- Every successful navigation publishes phase-changed; the event queue,
  timers and UI react to that rather than being called directly.

Failures (unknown phase, criteria not met, out of range) come back as a
NavigationResult, never as an exception.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Callable

from pydantic import BaseModel

from ..errors import DependencyMissingError
from ..state.event_bus import EventBus, PhaseBlocked, PhaseChanged, SimEvent, Topic
from ..state.schema import PHASE_SEQUENCE, PhaseHistoryRecord

if TYPE_CHECKING:
    from ..scenario.catalog import ScenarioCatalog
    from ..state.manager import StateStore
    from .rules import RulesEngine

logger = logging.getLogger(__name__)


class NavigationFailure(str, Enum):
    """Why a navigation request was refused."""
    UNKNOWN_PHASE = "unknown_phase"
    CRITERIA_NOT_MET = "criteria_not_met"
    OUT_OF_RANGE = "out_of_range"
    NO_CURRENT_PHASE = "no_current_phase"


class NavigationResult(BaseModel):
    ok: bool
    previous_phase: str | None = None
    new_phase: str | None = None
    failure: NavigationFailure | None = None
    message: str = ""

    @classmethod
    def refused(cls, failure: NavigationFailure, message: str, previous: str | None = None):
        return cls(ok=False, previous_phase=previous, failure=failure, message=message)


CRITERIA_MESSAGE = "You must complete all required tasks before proceeding to the next phase."


class PhaseOrchestrator:
    """
    Owns phase navigation.

    Responsibilities:
    - Phase sequence and exit gating
    - Phase history snapshots
    - Publishing phase-changed / phase-blocked

    NOT responsible for:
    - Evaluating criteria (RulesEngine)
    - Queueing phase-entry events (EventQueueManager, on phase-changed)
    - Timers and templates (external collaborators, on phase-changed)
    """

    def __init__(
        self,
        store: "StateStore",
        bus: EventBus,
        rules: "RulesEngine",
        catalog: "ScenarioCatalog",
        phase_sequence: tuple[str, ...] = PHASE_SEQUENCE,
    ):
        for name, dep in (
            ("a StateStore", store),
            ("an EventBus", bus),
            ("a RulesEngine", rules),
            ("a ScenarioCatalog", catalog),
        ):
            if dep is None:
                raise DependencyMissingError("PhaseOrchestrator", name)

        self._store = store
        self._bus = bus
        self._rules = rules
        self._catalog = catalog
        self.phase_sequence = tuple(phase_sequence)
        self._subscriptions: list[Callable[[], None]] = [
            bus.subscribe(Topic.STATE_RESET, self._on_state_reset),
        ]

    @property
    def current_phase(self) -> str | None:
        return self._store.current_phase

    @property
    def final_phase(self) -> str:
        return self.phase_sequence[-1]

    @property
    def phase_history(self) -> list[PhaseHistoryRecord]:
        return self._store.phase_history()

    def close(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()

    def is_phase_complete(self, phase: str) -> bool:
        return self._rules.check_phase_completion_criteria(phase)

    def phase_index(self, phase: str | None) -> int:
        """Position in the sequence, -1 if unknown."""
        try:
            return self.phase_sequence.index(phase)
        except ValueError:
            return -1

    def can_exit(self, target: str) -> bool:
        """Whether leaving the current phase for target is allowed right now."""
        current = self.current_phase
        if current is None or current == target:
            return True
        if self.phase_index(target) < self.phase_index(current):
            return True  # backward
        if target == self.final_phase:
            return True  # everyone converges on the outcome
        return self.is_phase_complete(current)

    # ─── Navigation ──────────────────────────────────────────────

    def navigate_to_phase(self, phase: str) -> NavigationResult:
        """
        Move to phase.

        Steps: validate phase, gate the exit, snapshot the outgoing phase,
        set the new phase, publish phase-changed.
        """
        previous = self.current_phase

        if phase not in self.phase_sequence:
            logger.warning("Invalid phase: %s", phase)
            return NavigationResult.refused(
                NavigationFailure.UNKNOWN_PHASE, f"Invalid phase: {phase}", previous
            )

        if not self.can_exit(phase):
            logger.info("Cannot exit %s phase yet - completion criteria not met", previous)
            self._bus.publish(
                Topic.PHASE_BLOCKED,
                PhaseBlocked(phase=previous, reason=NavigationFailure.CRITERIA_NOT_MET.value),
            )
            return NavigationResult.refused(
                NavigationFailure.CRITERIA_NOT_MET, CRITERIA_MESSAGE, previous
            )

        logger.info("Navigating from %s to %s", previous or "none", phase)

        if previous and previous != phase:
            self._record_history(previous)

        self._store.set_current_phase(phase)
        self._bus.publish(Topic.PHASE_CHANGED, PhaseChanged(previous_phase=previous, new_phase=phase))

        return NavigationResult(ok=True, previous_phase=previous, new_phase=phase)

    def navigate_to_next_phase(self) -> NavigationResult:
        current = self.current_phase
        if not current:
            return self.navigate_to_phase(self.phase_sequence[0])

        index = self.phase_index(current)
        if index < 0 or index >= len(self.phase_sequence) - 1:
            logger.info("Already at the last phase or invalid phase")
            return NavigationResult.refused(
                NavigationFailure.OUT_OF_RANGE, "Cannot navigate to next phase", current
            )
        return self.navigate_to_phase(self.phase_sequence[index + 1])

    def navigate_to_previous_phase(self) -> NavigationResult:
        current = self.current_phase
        if not current:
            return NavigationResult.refused(NavigationFailure.NO_CURRENT_PHASE, "No current phase")

        index = self.phase_index(current)
        if index <= 0:
            logger.info("Already at the first phase or invalid phase")
            return NavigationResult.refused(
                NavigationFailure.OUT_OF_RANGE, "Cannot navigate to previous phase", current
            )
        return self.navigate_to_phase(self.phase_sequence[index - 1])

    # ─── Internals ───────────────────────────────────────────────

    def _record_history(self, phase: str) -> None:
        record = PhaseHistoryRecord(
            phase=phase,
            timestamp=int(time.time() * 1000),
            decisions=self._store.decisions(),
            resources=self._store.resources(),
            relationships=self._store.relationships(),
        )
        self._store.append_phase_history(record)
        logger.debug("Added %s to phase history", phase)

    def _on_state_reset(self, event: SimEvent) -> None:
        # Current phase and history live in the store, so a reset already
        # rewound them; only note it.
        logger.info("State reset; back at %s", self.current_phase)
