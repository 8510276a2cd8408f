"""
Pydantic schemas for the workshop simulation API.

These models define the contract between a workshop frontend and the
simulation backend. The backend stays the source of truth; clients
reconcile against GET /state and the /updates stream.
"""

from typing import Any

from pydantic import BaseModel, Field

from ..state.schema import EffectResult, OutcomeSummary
from ..systems.phases import NavigationResult


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------

class DecisionRequest(BaseModel):
    decision_id: str
    choice_id: str


class EventChoiceRequest(BaseModel):
    choice_id: str


class NavigateRequest(BaseModel):
    phase: str


class TimerExpiredRequest(BaseModel):
    """Phase whose timer ran out; defaults to the current phase."""
    phase: str | None = None


class ResetRequest(BaseModel):
    preserve_user: bool = False


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------

class StateResponse(BaseModel):
    """Full state snapshot plus the event queue view."""
    ok: bool = True
    state: dict[str, Any]
    active_event: str | None = None
    queued_events: list[str] = Field(default_factory=list)
    phase_complete: bool = False


class EffectResponse(BaseModel):
    ok: bool
    effects: EffectResult | None = None
    error: str | None = None


class NavigationResponse(NavigationResult):
    pass


class OutcomeResponse(BaseModel):
    ok: bool = True
    outcomes: OutcomeSummary


class StateUpdateEvent(BaseModel):
    """Message pushed over /updates for every published bus event."""
    type: str = "event"
    topic: str
    payload: dict[str, Any]
    timestamp: str
