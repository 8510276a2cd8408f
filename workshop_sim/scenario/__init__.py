"""Scenario documents: models, loading and lookups."""

from .catalog import ScenarioCatalog, ScenarioValidationError
from .schema import (
    Choice,
    CompletionCriteria,
    Decision,
    EffectBundle,
    EventConditions,
    HiddenDebtDelta,
    PhaseConfig,
    RelationshipDelta,
    ScenarioData,
    ScenarioEvent,
    Stakeholder,
)

__all__ = [
    "ScenarioCatalog",
    "ScenarioValidationError",
    "Choice",
    "CompletionCriteria",
    "Decision",
    "EffectBundle",
    "EventConditions",
    "HiddenDebtDelta",
    "PhaseConfig",
    "RelationshipDelta",
    "ScenarioData",
    "ScenarioEvent",
    "Stakeholder",
]
