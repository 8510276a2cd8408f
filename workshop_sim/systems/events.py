"""
Event queue manager for scripted and dynamic scenario events.

State machine:
    IDLE ⇄ EVENT_ACTIVE

At most one event is active (shown to the participant) at a time. Events
queued while one is active wait in a FIFO queue and are dispatched,
oldest first, when the active event is resolved or dismissed.

Queue entries with a pending delay timer are not eligible for FIFO
dispatch until their timer fires. If a timer fires while another event
is active, the entry stays in its queue position and becomes eligible.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from ..errors import DependencyMissingError
from ..scenario.schema import EventConditions, ScenarioEvent
from ..state.event_bus import (
    EventBus,
    EventChoiceProcessed,
    ShowEvent,
    SimEvent,
    Topic,
)
from ..state.schema import EffectResult
from .scheduler import ScheduledTask, Scheduler

if TYPE_CHECKING:
    from ..scenario.catalog import ScenarioCatalog
    from ..state.manager import StateStore
    from .rules import RulesEngine

logger = logging.getLogger(__name__)


DEFAULT_CURVEBALL_PROBABILITY = 0.2
DEFAULT_CURVEBALL_DELAY_MS = 3000
DEFAULT_ENTRY_EVENT_DELAY_MS = 1000


class QueueState(str, Enum):
    IDLE = "idle"
    EVENT_ACTIVE = "event_active"


@dataclass(eq=False)
class QueuedEvent:
    """A pending event; task is the delay timer, None once ready."""
    event_id: str
    event: ScenarioEvent
    task: ScheduledTask | None = None

    @property
    def ready(self) -> bool:
        return self.task is None or not self.task.pending


class EventQueueManager:
    """
    Owns the active event and the pending-event queue.

    Unknown ids and unmet conditions are logged and reported through the
    return value; they never raise and never disturb the queue.
    """

    def __init__(
        self,
        store: "StateStore",
        bus: EventBus,
        rules: "RulesEngine",
        catalog: "ScenarioCatalog",
        scheduler: Scheduler,
        rng: random.Random | None = None,
        curveball_probability: float = DEFAULT_CURVEBALL_PROBABILITY,
        curveball_delay_ms: float = DEFAULT_CURVEBALL_DELAY_MS,
        entry_event_delay_ms: float = DEFAULT_ENTRY_EVENT_DELAY_MS,
        curveballs_on_phase_entry: bool = True,
    ):
        for name, dep in (
            ("a StateStore", store),
            ("an EventBus", bus),
            ("a RulesEngine", rules),
            ("a ScenarioCatalog", catalog),
            ("a Scheduler", scheduler),
        ):
            if dep is None:
                raise DependencyMissingError("EventQueueManager", name)

        self._store = store
        self._bus = bus
        self._rules = rules
        self._catalog = catalog
        self._scheduler = scheduler
        self._rng = rng or random.Random()
        self.curveball_probability = curveball_probability
        self.curveball_delay_ms = curveball_delay_ms
        self.entry_event_delay_ms = entry_event_delay_ms
        self.curveballs_on_phase_entry = curveballs_on_phase_entry

        self._queue: list[QueuedEvent] = []
        self._active: ScenarioEvent | None = None
        self._active_id: str | None = None

        self._subscriptions: list[Callable[[], None]] = [
            bus.subscribe(Topic.PHASE_CHANGED, self._on_phase_changed),
            bus.subscribe(Topic.CHOOSE_EVENT_OPTION, self._on_choose_option),
            bus.subscribe(Topic.DISMISS_EVENT, self._on_dismiss),
            bus.subscribe(Topic.STATE_RESET, self._on_state_reset),
        ]

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> QueueState:
        return QueueState.IDLE if self._active is None else QueueState.EVENT_ACTIVE

    @property
    def active_event_id(self) -> str | None:
        return self._active_id

    @property
    def active_event(self) -> ScenarioEvent | None:
        return self._active

    @property
    def pending_event_ids(self) -> list[str]:
        """Queued event ids, oldest first."""
        return [entry.event_id for entry in self._queue]

    def close(self) -> None:
        """Cancel timers and drop bus subscriptions."""
        self.clear()
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()

    def clear(self) -> None:
        """Cancel all pending timers, empty the queue, drop the active event."""
        for entry in self._queue:
            if entry.task is not None:
                entry.task.cancel()
        self._queue.clear()
        self._active = None
        self._active_id = None

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def queue_event(self, event_id: str, delay_ms: float = 0) -> bool:
        """
        Queue an event, or show it straight away if nothing is active.

        Returns:
            False if the event is unknown or its conditions don't hold
        """
        event = self._catalog.get_event(event_id)
        if event is None:
            logger.warning("Event not found: %s", event_id)
            return False

        if event.conditions and not self.check_event_conditions(event.conditions):
            logger.info("Event conditions not met for %s, skipping", event_id)
            return False

        entry = QueuedEvent(event_id=event_id, event=event)

        if delay_ms > 0:
            logger.debug("Queueing event %s with %sms delay", event_id, delay_ms)
            entry.task = self._scheduler.schedule(delay_ms, lambda: self._on_timer(entry))
            self._queue.append(entry)
            return True

        if self._active is None:
            self.trigger_event(event_id)
            return True

        logger.debug("Event %s queued behind active %s", event_id, self._active_id)
        self._queue.append(entry)
        return True

    def trigger_event(self, event_id: str) -> bool:
        """
        Show an event now.

        If another event is active the request is re-queued instead, so a
        second event is never activated. Any queued entries for the same
        event are removed and their timers cancelled.
        """
        if self._active is not None:
            logger.debug("Event %s already active, queueing %s", self._active_id, event_id)
            return self.queue_event(event_id)

        matching = [entry for entry in self._queue if entry.event_id == event_id]
        if matching:
            event = matching[0].event
        else:
            event = self._catalog.get_event(event_id)
            if event is None:
                logger.warning("Event not found: %s", event_id)
                return False
            if event.conditions and not self.check_event_conditions(event.conditions):
                logger.info("Event conditions not met for %s, skipping", event_id)
                return False

        self._activate(event_id, event)
        return True

    def handle_event_choice(self, event_id: str, choice_id: str) -> EffectResult | None:
        """
        Resolve the active event with one of its choices.

        Returns:
            EffectResult, or None if event_id isn't active or the choice is unknown
        """
        if self._active is None or self._active_id != event_id:
            logger.warning(
                "Cannot handle choice: active event is %s, requested %s",
                self._active_id,
                event_id,
            )
            return None

        choice = self._active.get_choice(choice_id)
        if choice is None:
            logger.warning("Choice not found: %s in event %s", choice_id, event_id)
            return None

        logger.info("Handling event choice %s -> %s", event_id, choice_id)

        result = self._rules.apply_effects(choice.effects)
        self._store.record_event_choice(event_id, choice_id)
        result.triggered_events = [eid for eid in choice.triggers_events if self.queue_event(eid)]

        self._active = None
        self._active_id = None

        self._bus.publish(
            Topic.EVENT_CHOICE_PROCESSED,
            EventChoiceProcessed(event_id=event_id, choice_id=choice_id, effects=result),
        )

        self._process_next()
        return result

    def dismiss_event(self, event_id: str) -> bool:
        """Close the active event without a choice. False if it isn't active."""
        if self._active is None or self._active_id != event_id:
            return False
        self._active = None
        self._active_id = None
        self._process_next()
        return True

    # -------------------------------------------------------------------------
    # Conditions & curveballs
    # -------------------------------------------------------------------------

    def check_event_conditions(self, conditions: EventConditions) -> bool:
        """Whether every condition category present currently holds. Reads state only."""
        if conditions.current_phase and conditions.current_phase != self._store.current_phase:
            return False

        if conditions.resources:
            resources = self._store.resources()
            for resource, bounds in conditions.resources.items():
                value = resources.get(resource, 0) or 0
                if bounds.min is not None and value < bounds.min:
                    return False
                if bounds.max is not None and value > bounds.max:
                    return False

        if conditions.decisions:
            decisions = self._store.decisions()
            for decision_id, required in conditions.decisions.items():
                if decisions.get(decision_id) != required:
                    return False

        if conditions.event_choices:
            choices = self._store.event_choices()
            for event_id, required in conditions.event_choices.items():
                if choices.get(event_id) != required:
                    return False

        return True

    def check_for_curveball(self, phase: str) -> bool:
        """
        Maybe queue a random curveball for phase.

        Returns:
            True if a curveball was queued
        """
        candidates = [
            event
            for event in self._catalog.get_curveball_events(phase)
            if event.conditions is None or self.check_event_conditions(event.conditions)
        ]
        if not candidates:
            return False

        if self._rng.random() >= self.curveball_probability:
            return False

        event = self._rng.choice(candidates)
        logger.info("Curveball selected for %s: %s", phase, event.id)
        return self.queue_event(event.id, self.curveball_delay_ms)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _activate(self, event_id: str, event: ScenarioEvent) -> None:
        for entry in [e for e in self._queue if e.event_id == event_id]:
            if entry.task is not None:
                entry.task.cancel()
            self._queue.remove(entry)

        self._active = event
        self._active_id = event_id
        logger.info("Triggering event: %s", event_id)

        self._bus.publish(Topic.SHOW_EVENT, ShowEvent(event_id=event_id, event=event))
        self._store.mark_event_seen(event_id)

    def _process_next(self) -> None:
        if self._active is not None:
            return
        entry = next((e for e in self._queue if e.ready), None)
        if entry is not None:
            self._activate(entry.event_id, entry.event)

    def _on_timer(self, entry: QueuedEvent) -> None:
        if not any(e is entry for e in self._queue):
            return
        if self._active is not None:
            logger.debug("Timer for %s fired while %s active", entry.event_id, self._active_id)
            return
        self._activate(entry.event_id, entry.event)

    def _on_phase_changed(self, event: SimEvent) -> None:
        phase = event.payload.new_phase
        config = self._catalog.get_phase_config(phase)
        if config is None:
            return
        for event_id in config.entry_events:
            self.queue_event(event_id, self.entry_event_delay_ms)
        if self.curveballs_on_phase_entry:
            self.check_for_curveball(phase)

    def _on_choose_option(self, event: SimEvent) -> None:
        self.handle_event_choice(event.payload.event_id, event.payload.choice_id)

    def _on_dismiss(self, event: SimEvent) -> None:
        self.dismiss_event(event.payload.event_id)

    def _on_state_reset(self, event: SimEvent) -> None:
        self.clear()
