"""
Rules engine for the workshop simulation.

Applies effect bundles to the state store, evaluates phase completion
criteria and computes the final outcome scores.

Effect application order is fixed: resources, then stakeholder
relationships, then hidden debt. Resource invariants hold after every
application: budget >= 0 and politicalCapital in [0, 100].
"""

from __future__ import annotations

import logging
import math
import random
from typing import TYPE_CHECKING, Any, Callable

from pydantic import ValidationError

from ..errors import DependencyMissingError
from ..scenario.schema import EffectBundle, HiddenDebtDelta, RelationshipDelta
from ..state.event_bus import DecisionProcessed, EventBus, SimEvent, Topic
from ..state.schema import (
    EffectResult,
    HiddenDebt,
    OutcomeSummary,
    StakeholderRelationship,
)

if TYPE_CHECKING:
    from ..scenario.catalog import ScenarioCatalog
    from ..state.manager import StateStore
    from .events import EventQueueManager

logger = logging.getLogger(__name__)


# ─── Configuration ───────────────────────────────────────────

DEFAULT_TIMER_PENALTY = -10

RESOURCE_BOUNDS: dict[str, tuple[float | None, float | None]] = {
    "budget": (0, None),
    "politicalCapital": (0, 100),
}

# Outcome scoring
BUDGET_BONUS = 20
CAPITAL_BONUS = 20
CAPITAL_BONUS_THRESHOLD = 50
RELATIONSHIP_WEIGHT = 0.4
SUCCESS_DEBT_SCALE = 1_000_000
SUCCESS_DEBT_WEIGHT = 20
SUSTAINABILITY_DEBT_SCALE = 500_000
SUSTAINABILITY_DEBT_WEIGHT = 40
LOW_CAPITAL_THRESHOLD = 30
RELATIONSHIP_BASELINE = 50
SUSTAINABILITY_RELATIONSHIP_WEIGHT = 0.5


def _round_half_up(value: float) -> int:
    """Round .5 upwards (2.5 -> 3), unlike round()'s banker's rounding."""
    return int(math.floor(value + 0.5))


def _clamp(value: float, lo: float | None, hi: float | None) -> float:
    if lo is not None:
        value = max(lo, value)
    if hi is not None:
        value = min(hi, value)
    return value


def _apply_delta(current: float, change: float | str) -> float | None:
    """
    New value for one resource delta, or None if the delta is unreadable.

    Numbers add; strings ending in '%' scale the current value.
    """
    if isinstance(change, bool):
        return None
    if isinstance(change, (int, float)):
        return current + change
    if isinstance(change, str):
        text = change.strip()
        try:
            if text.endswith("%"):
                return current * (1 + float(text[:-1]) / 100)
            return current + float(text)
        except ValueError:
            return None
    return None


class RulesEngine:
    """
    Applies decision and event effects and scores the outcome.

    Triggered follow-on events are handed to the event queue registered
    with set_event_queue(); without one they are logged and skipped.
    """

    def __init__(
        self,
        store: "StateStore",
        catalog: "ScenarioCatalog",
        bus: EventBus,
        rng: random.Random | None = None,
        timer_penalty: float = DEFAULT_TIMER_PENALTY,
    ):
        if store is None:
            raise DependencyMissingError("RulesEngine", "a StateStore")
        if catalog is None:
            raise DependencyMissingError("RulesEngine", "a ScenarioCatalog")
        if bus is None:
            raise DependencyMissingError("RulesEngine", "an EventBus")

        self._store = store
        self._catalog = catalog
        self._bus = bus
        self._rng = rng or random.Random()
        self.timer_penalty = timer_penalty
        self._event_queue: "EventQueueManager | None" = None
        self._subscriptions: list[Callable[[], None]] = [
            bus.subscribe(Topic.TIMER_EXPIRED, self._on_timer_expired),
        ]

    def set_event_queue(self, event_queue: "EventQueueManager") -> None:
        """Register the queue that receives triggered events."""
        self._event_queue = event_queue

    def close(self) -> None:
        """Drop bus subscriptions."""
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()

    # ─── Decisions ───────────────────────────────────────────────

    def process_decision(self, decision_id: str, choice_id: str) -> EffectResult | None:
        """
        Record a decision and apply the chosen option's effects.

        Returns:
            EffectResult, or None if the decision or choice is unknown
        """
        decision = self._catalog.get_decision(decision_id)
        if decision is None:
            logger.warning("Decision not found: %s", decision_id)
            return None

        choice = decision.get_choice(choice_id)
        if choice is None:
            logger.warning("Choice not found: %s in decision %s", choice_id, decision_id)
            return None

        logger.info("Processing decision %s -> %s", decision_id, choice_id)

        self._store.record_decision(decision_id, choice_id)
        result = self.apply_effects(choice.effects)
        result.triggered_events = self.queue_triggered_events(choice.triggers_events)

        current_phase = self._store.current_phase
        if current_phase:
            result.phase_complete = self.check_phase_completion_criteria(current_phase)
            self.update_phase_progress(current_phase, complete=result.phase_complete)

        self._bus.publish(
            Topic.DECISION_PROCESSED,
            DecisionProcessed(decision_id=decision_id, choice_id=choice_id, effects=result),
        )
        return result

    def apply_effects(self, effects: EffectBundle | None) -> EffectResult:
        """Apply an effect bundle: resources, relationships, hidden debt, in that order."""
        result = EffectResult()
        if effects is None:
            return result

        if effects.resources:
            result.resources = self.apply_resource_changes(effects.resources)
        if effects.stakeholder_relationships:
            result.stakeholder_relationships = self.update_stakeholder_relationships(
                effects.stakeholder_relationships
            )
        if effects.hidden_debt is not None:
            result.hidden_debt = self.apply_hidden_debt_changes(effects.hidden_debt)
        return result

    def queue_triggered_events(self, event_ids: list[str]) -> list[str]:
        """Queue follow-on events. Returns the ids that were accepted."""
        if not event_ids:
            return []
        if self._event_queue is None:
            logger.warning("No event queue registered; dropping triggered events %s", event_ids)
            return []
        return [eid for eid in event_ids if self._event_queue.queue_event(eid)]

    # ─── Effect application ──────────────────────────────────────

    def apply_resource_changes(self, changes: dict[str, float | str]) -> dict[str, float]:
        """
        Apply resource deltas and clamp to the resource bounds.

        Args:
            changes: resource -> number (absolute) or "N%" (relative to current)

        Returns:
            The updated resources mapping
        """
        resources = self._store.resources()

        for resource, change in changes.items():
            updated = _apply_delta(resources.get(resource, 0) or 0, change)
            if updated is None:
                logger.warning("Ignoring unreadable delta %r for %s", change, resource)
                continue
            resources[resource] = updated

        for resource, (lo, hi) in RESOURCE_BOUNDS.items():
            if resource in resources:
                resources[resource] = _clamp(resources[resource], lo, hi)

        self._store.set_resources(resources)
        return resources

    def update_stakeholder_relationships(
        self, changes: dict[str, RelationshipDelta | dict[str, Any]]
    ) -> dict[str, StakeholderRelationship]:
        """
        Shift relationship strengths (clamped to [0, 1]) and overwrite types.

        Stakeholders without a relationship start at strength 0.5, neutral.
        """
        relationships = self._store.relationships()

        for stakeholder_id, change in changes.items():
            delta = RelationshipDelta.model_validate(change) if isinstance(change, dict) else change
            current = relationships.get(stakeholder_id) or StakeholderRelationship()

            strength = current.strength
            if delta.strength is not None:
                strength = _clamp(strength + delta.strength, 0.0, 1.0)

            relationships[stakeholder_id] = StakeholderRelationship(
                strength=strength,
                type=delta.type or current.type,
            )

        self._store.set_relationships(relationships)
        return relationships

    def apply_hidden_debt_changes(self, change: HiddenDebtDelta | dict[str, Any]) -> HiddenDebt:
        """
        Accrue hidden debt. Always saved immediately: it is audit data.

        Hidden debt never decreases; a negative or unreadable delta is
        logged and the current debt returned unchanged.
        """
        debt = self._store.hidden_debt()
        try:
            delta = HiddenDebtDelta.model_validate(change) if isinstance(change, dict) else change
        except ValidationError as e:
            logger.warning("Ignoring invalid hidden debt change %r: %s", change, e)
            return debt
        if delta.amount < 0:
            logger.warning("Ignoring negative hidden debt change %s", delta.amount)
            return debt

        if delta.amount:
            debt.total += delta.amount
        if delta.source:
            debt.sources[delta.source] = debt.sources.get(delta.source, 0) + delta.amount

        self._store.set_hidden_debt(debt, persist=True)
        return debt

    # ─── Phase criteria ──────────────────────────────────────────

    def check_phase_completion_criteria(self, phase: str) -> bool:
        """
        Whether the phase's completion criteria currently hold.

        No criteria means complete. Unknown phases are never complete.
        Reads state only.
        """
        config = self._catalog.get_phase_config(phase)
        if config is None:
            logger.warning("Unknown phase in completion check: %s", phase)
            return False

        criteria = config.completion_criteria
        if criteria is None:
            return True

        decisions = self._store.decisions()
        for decision_id in criteria.required_decisions:
            if decision_id not in decisions:
                return False

        resources = self._store.resources()
        for resource, threshold in criteria.resource_thresholds.items():
            value = resources.get(resource)
            if value is None or value < threshold:
                return False

        return True

    def update_phase_progress(self, phase: str, complete: bool | None = None) -> float:
        """
        Record how far the participant is through phase.

        1.0 once the completion criteria hold, otherwise the share of
        required decisions already made.
        """
        if complete is None:
            complete = self.check_phase_completion_criteria(phase)

        if complete:
            progress = 1.0
        else:
            config = self._catalog.get_phase_config(phase)
            criteria = config.completion_criteria if config else None
            required = criteria.required_decisions if criteria else []
            decisions = self._store.decisions()
            made = sum(1 for decision_id in required if decision_id in decisions)
            progress = made / len(required) if required else 0.0

        self._store.set_phase_progress(phase, progress)
        return progress

    # ─── Outcomes ────────────────────────────────────────────────

    def calculate_outcomes(self) -> OutcomeSummary:
        """Score the final state. Deterministic for a given state."""
        decisions = self._store.decisions()
        resources = self._store.resources()
        relationships = self._store.relationships()
        debt = self._store.hidden_debt()

        budget = resources.get("budget")
        capital = resources.get("politicalCapital")

        success = 0.0
        if budget is not None and budget > 0:
            success += BUDGET_BONUS
        if capital is not None and capital > CAPITAL_BONUS_THRESHOLD:
            success += CAPITAL_BONUS

        relationship_score = sum(r.strength * 100 for r in relationships.values())
        count = len(relationships)
        average = relationship_score / count if count else 0

        if count:
            success += average * RELATIONSHIP_WEIGHT

        success = max(0, success - debt.total / SUCCESS_DEBT_SCALE * SUCCESS_DEBT_WEIGHT)

        sustainability = 100 - debt.total / SUSTAINABILITY_DEBT_SCALE * SUSTAINABILITY_DEBT_WEIGHT
        if capital is not None and capital < LOW_CAPITAL_THRESHOLD:
            sustainability -= LOW_CAPITAL_THRESHOLD - capital
        sustainability += (average - RELATIONSHIP_BASELINE) * SUSTAINABILITY_RELATIONSHIP_WEIGHT
        sustainability = _clamp(sustainability, 0, 100)

        return OutcomeSummary(
            project_success=_round_half_up(success),
            sustainability=_round_half_up(sustainability),
            hidden_debt_revealed=debt.total,
            stakeholder_satisfaction=_round_half_up(average) if count else 0,
            decisions=len(decisions),
        )

    # ─── Timer expiry ────────────────────────────────────────────

    def handle_timer_expired(self, phase: str) -> EffectResult:
        """
        Apply the time-pressure penalty and queue one time-expired event.
        """
        logger.info("Timer expired for phase: %s", phase)
        result = EffectResult(
            resources=self.apply_resource_changes({"politicalCapital": self.timer_penalty})
        )

        config = self._catalog.get_phase_config(phase)
        if config is not None and config.time_expired_events:
            event_id = self._rng.choice(config.time_expired_events)
            result.triggered_events = self.queue_triggered_events([event_id])
        return result

    def _on_timer_expired(self, event: SimEvent) -> None:
        self.handle_timer_expired(event.payload.phase)
