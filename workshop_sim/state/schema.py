"""
Pydantic models for workshop simulation state.

The live state is a plain nested dict owned by StateStore (so it
serializes to JSON as-is). These models are the typed views handed out
by the store's accessors and the result objects returned by the systems.
"""

from copy import deepcopy
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


STATE_VERSION = "1.0.0"

# Fixed phase sequence; every scenario must define all four
PHASE_SEQUENCE: tuple[str, ...] = ("analysis", "funding", "negotiation", "outcome")


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class RelationshipType(str, Enum):
    ALLIED = "allied"
    NEUTRAL = "neutral"
    OPPOSED = "opposed"


# -----------------------------------------------------------------------------
# State sub-trees
# -----------------------------------------------------------------------------

class StakeholderRelationship(BaseModel):
    """How a stakeholder currently regards the participant."""
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    type: RelationshipType = RelationshipType.NEUTRAL


class HiddenDebt(BaseModel):
    """
    Liability accrued by choices, revealed only in the outcome.

    Only ever grows; sources maps a debt source to its accumulated amount.
    """
    total: float = 0
    sources: dict[str, float] = Field(default_factory=dict)


class PhaseHistoryRecord(BaseModel):
    """Snapshot of the participant's position when leaving a phase."""
    model_config = {"frozen": True}

    phase: str
    timestamp: int  # epoch milliseconds
    decisions: dict[str, str] = Field(default_factory=dict)
    resources: dict[str, float] = Field(default_factory=dict)
    relationships: dict[str, StakeholderRelationship] = Field(default_factory=dict)


class UserProfile(BaseModel):
    id: str | None = None
    name: str = "Workshop Participant"
    completed_simulations: int = 0
    current_progress: float = 0


class SystemInfo(BaseModel):
    initialized: bool = False
    last_saved: int | None = None
    version: str = STATE_VERSION


class StateTree(BaseModel):
    """
    Shape check for a persisted tree.

    The live tree stays a plain dict; this model only validates a loaded
    document before it replaces the current state. Unknown keys pass.
    """
    model_config = {"extra": "allow"}

    current_phase: str | None = None
    phase_progress: dict[str, float] = Field(default_factory=dict)
    decisions: dict[str, str] = Field(default_factory=dict)
    event_choices: dict[str, str] = Field(default_factory=dict)
    seen_events: list[str] = Field(default_factory=list)
    stakeholder_relationships: dict[str, StakeholderRelationship] = Field(default_factory=dict)
    resources: dict[str, float] = Field(default_factory=dict)
    hidden_debt: HiddenDebt = Field(default_factory=HiddenDebt)
    phase_history: list[PhaseHistoryRecord] = Field(default_factory=list)
    user: UserProfile = Field(default_factory=UserProfile)
    system: SystemInfo = Field(default_factory=SystemInfo)


DEFAULT_STATE: dict[str, Any] = {
    "current_phase": PHASE_SEQUENCE[0],
    "phase_progress": {phase: 0 for phase in PHASE_SEQUENCE},
    "decisions": {},
    "event_choices": {},
    "seen_events": [],
    "stakeholder_relationships": {},
    "resources": {
        "budget": 1_000_000,
        "politicalCapital": 75,
        "timeRemaining": 6,  # months
    },
    "hidden_debt": {"total": 0, "sources": {}},
    "phase_history": [],
    "user": UserProfile().model_dump(),
    "system": SystemInfo().model_dump(),
}


def default_state() -> dict[str, Any]:
    """Fresh, independent copy of the default state tree."""
    return deepcopy(DEFAULT_STATE)


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------

class EffectResult(BaseModel):
    """What applying a choice's effect bundle changed."""
    resources: dict[str, float] | None = None
    stakeholder_relationships: dict[str, StakeholderRelationship] | None = None
    hidden_debt: HiddenDebt | None = None
    triggered_events: list[str] = Field(default_factory=list)
    phase_complete: bool | None = None


class OutcomeSummary(BaseModel):
    """Final scores computed from the end state."""
    project_success: int
    sustainability: int
    hidden_debt_revealed: float
    stakeholder_satisfaction: int
    decisions: int
