"""State management for workshop simulations."""

from .schema import (
    STATE_VERSION,
    PHASE_SEQUENCE,
    RelationshipType,
    StakeholderRelationship,
    HiddenDebt,
    PhaseHistoryRecord,
    UserProfile,
    SystemInfo,
    EffectResult,
    OutcomeSummary,
    default_state,
)
from .manager import StateStore, DEFAULT_STORAGE_KEY
from .store import StatePersistence, JsonStatePersistence, MemoryStatePersistence
from .event_bus import (
    EventBus,
    SimEvent,
    Topic,
    StateChanged,
    StateReset,
    PhaseChanged,
    PhaseBlocked,
    DecisionProcessed,
    ShowEvent,
    EventChoiceProcessed,
    ChooseEventOption,
    DismissEvent,
    TimerExpired,
)

__all__ = [
    # Schema
    "STATE_VERSION",
    "PHASE_SEQUENCE",
    "RelationshipType",
    "StakeholderRelationship",
    "HiddenDebt",
    "PhaseHistoryRecord",
    "UserProfile",
    "SystemInfo",
    "EffectResult",
    "OutcomeSummary",
    "default_state",
    # Store
    "StateStore",
    "DEFAULT_STORAGE_KEY",
    "StatePersistence",
    "JsonStatePersistence",
    "MemoryStatePersistence",
    # Events
    "EventBus",
    "SimEvent",
    "Topic",
    "StateChanged",
    "StateReset",
    "PhaseChanged",
    "PhaseBlocked",
    "DecisionProcessed",
    "ShowEvent",
    "EventChoiceProcessed",
    "ChooseEventOption",
    "DismissEvent",
    "TimerExpired",
]
