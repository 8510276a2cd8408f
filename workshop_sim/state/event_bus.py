"""
Event bus for workshop simulation state changes.

Provides decoupled communication between the core (state store, rules,
event queue, phase orchestrator) and its collaborators (UI, timers,
analytics). Every topic has exactly one payload type, so handlers read
attributes instead of digging through dicts.

Usage:
    bus = EventBus()

    # Subscribe (typically when a collaborator is wired up)
    unsubscribe = bus.subscribe(Topic.PHASE_CHANGED, my_handler)

    # Publish (in the core when a fact changes)
    bus.publish(Topic.PHASE_CHANGED, PhaseChanged(previous_phase="analysis", new_phase="funding"))

    # Handler receives the event
    def my_handler(event: SimEvent):
        print(f"Now in {event.payload.new_phase}")

Dispatch policy:
    Delivery is synchronous and in subscription order. A handler may publish
    again while a dispatch is running; the nested publish is delivered
    immediately (depth first). Nesting deeper than ``max_depth`` is dropped
    and logged so a handler loop cannot recurse forever.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel

if TYPE_CHECKING:
    from ..scenario.schema import ScenarioEvent
    from .schema import EffectResult

logger = logging.getLogger(__name__)


DEFAULT_MAX_DEPTH = 32


class Topic(str, Enum):
    """Closed set of topics carried by the bus."""

    # Published by the core
    STATE_CHANGED = "state-changed"
    STATE_RESET = "state-reset"
    PHASE_CHANGED = "phase-changed"
    PHASE_BLOCKED = "phase-blocked"
    DECISION_PROCESSED = "decision-processed"
    SHOW_EVENT = "show-event"
    EVENT_CHOICE_PROCESSED = "event-choice-processed"

    # Requests from UI / timer collaborators
    CHOOSE_EVENT_OPTION = "choose-event-option"
    DISMISS_EVENT = "dismiss-event"
    TIMER_EXPIRED = "timer-expired"


# -----------------------------------------------------------------------------
# Payloads
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class StateChanged:
    path: tuple[str, ...]
    value: Any


@dataclass(frozen=True)
class StateReset:
    timestamp: int  # epoch milliseconds


@dataclass(frozen=True)
class PhaseChanged:
    previous_phase: str | None
    new_phase: str


@dataclass(frozen=True)
class PhaseBlocked:
    phase: str
    reason: str


@dataclass(frozen=True)
class DecisionProcessed:
    decision_id: str
    choice_id: str
    effects: "EffectResult"


@dataclass(frozen=True)
class ShowEvent:
    event_id: str
    event: "ScenarioEvent"


@dataclass(frozen=True)
class EventChoiceProcessed:
    event_id: str
    choice_id: str
    effects: "EffectResult"


@dataclass(frozen=True)
class ChooseEventOption:
    event_id: str
    choice_id: str


@dataclass(frozen=True)
class DismissEvent:
    event_id: str


@dataclass(frozen=True)
class TimerExpired:
    phase: str


TOPIC_PAYLOADS: dict[Topic, type] = {
    Topic.STATE_CHANGED: StateChanged,
    Topic.STATE_RESET: StateReset,
    Topic.PHASE_CHANGED: PhaseChanged,
    Topic.PHASE_BLOCKED: PhaseBlocked,
    Topic.DECISION_PROCESSED: DecisionProcessed,
    Topic.SHOW_EVENT: ShowEvent,
    Topic.EVENT_CHOICE_PROCESSED: EventChoiceProcessed,
    Topic.CHOOSE_EVENT_OPTION: ChooseEventOption,
    Topic.DISMISS_EVENT: DismissEvent,
    Topic.TIMER_EXPIRED: TimerExpired,
}


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


@dataclass
class SimEvent:
    """
    Envelope delivered to handlers.

    Attributes:
        topic: The topic the payload was published under
        payload: Topic-specific payload (see TOPIC_PAYLOADS)
        timestamp: When the event was published
    """

    topic: Topic
    payload: Any
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.topic.value}] {self.payload}"

    def payload_dict(self) -> dict:
        """JSON-ready view of the payload (for websocket / headless output)."""
        return {
            f.name: _to_jsonable(getattr(self.payload, f.name))
            for f in fields(self.payload)
        }


# Type alias for event handlers
EventHandler = Callable[[SimEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners are called immediately on publish(), in the order they
    subscribed, before publish() returns.

    Design decisions:
    - Synchronous: the core is single-threaded and cooperative
    - Type-safe: Topic enum plus one payload class per topic
    - Reentrant: nested publishes are delivered depth first, up to max_depth
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH, history_limit: int = 100):
        self._listeners: dict[Topic, list[EventHandler]] = {}
        self._history: list[SimEvent] = []
        self._history_limit = history_limit  # Keep last N events for debugging
        self._max_depth = max_depth
        self._depth = 0

    @property
    def depth(self) -> int:
        """How many dispatches are currently in progress (0 when idle)."""
        return self._depth

    def subscribe(self, topic: Topic, handler: EventHandler) -> Callable[[], None]:
        """
        Subscribe to a topic.

        Args:
            topic: The topic to listen for
            handler: Callback that receives a SimEvent

        Returns:
            A zero-argument function that removes the subscription
        """
        self.on(topic, handler)

        def unsubscribe() -> None:
            self.off(topic, handler)

        return unsubscribe

    def on(self, topic: Topic, handler: EventHandler) -> None:
        """Add a handler; subscribing the same handler twice is a no-op."""
        listeners = self._listeners.setdefault(topic, [])
        if handler not in listeners:
            listeners.append(handler)

    def off(self, topic: Topic, handler: EventHandler) -> None:
        """Remove a handler if it is subscribed."""
        if topic in self._listeners and handler in self._listeners[topic]:
            self._listeners[topic].remove(handler)

    def publish(self, topic: Topic, payload: Any) -> SimEvent:
        """
        Publish a payload to all current subscribers of ``topic``.

        Args:
            topic: The topic
            payload: Instance of the payload class registered for the topic

        Returns:
            The published SimEvent (for chaining/testing)

        Raises:
            TypeError: If the payload type does not belong to the topic
        """
        expected = TOPIC_PAYLOADS[topic]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{topic.value} expects {expected.__name__}, got {type(payload).__name__}"
            )

        event = SimEvent(topic=topic, payload=payload)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        if self._depth >= self._max_depth:
            logger.error(
                "Dropping %s: dispatch depth %d reached", topic.value, self._max_depth
            )
            return event

        # Copy so handlers that (un)subscribe mid-dispatch don't disturb this delivery
        handlers = list(self._listeners.get(topic, []))

        self._depth += 1
        try:
            for handler in handlers:
                try:
                    handler(event)
                except Exception:
                    # One bad listener shouldn't break the others
                    logger.exception("Error in handler for %s", topic.value)
        finally:
            self._depth -= 1

        return event

    def clear(self) -> None:
        """Clear all listeners. Useful for testing."""
        self._listeners.clear()

    def get_history(self, topic: Topic | None = None) -> list[SimEvent]:
        """
        Get recent event history.

        Args:
            topic: Filter by topic, or None for all events
        """
        if topic is None:
            return list(self._history)
        return [e for e in self._history if e.topic == topic]
