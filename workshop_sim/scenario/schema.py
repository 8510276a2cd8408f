"""
Pydantic models for scenario documents.

A scenario document is read-only input authored in camelCase JSON/YAML.
Fields are snake_case in Python and accept either spelling on load.
"""

from typing import Any

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

from ..state.schema import RelationshipType


class ScenarioModel(BaseModel):
    """Base for scenario models: camelCase aliases, immutable after load."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "frozen": True,
    }


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------

class RelationshipDelta(ScenarioModel):
    strength: float | None = None
    type: RelationshipType | None = None


class HiddenDebtDelta(ScenarioModel):
    """Debt only accrues; negative amounts are rejected on load."""
    amount: float = Field(default=0, ge=0)
    source: str | None = None


class EffectBundle(ScenarioModel):
    """
    Deltas attached to a choice.

    Resource deltas are either a number (absolute add) or a string ending
    in '%' (percentage of the current value, e.g. "-10%").
    """
    resources: dict[str, float | str] = Field(default_factory=dict)
    stakeholder_relationships: dict[str, RelationshipDelta] = Field(default_factory=dict)
    hidden_debt: HiddenDebtDelta | None = None


class Choice(ScenarioModel):
    id: str
    text: str = ""
    effects: EffectBundle | None = None
    triggers_events: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Catalog entries
# -----------------------------------------------------------------------------

class Stakeholder(ScenarioModel):
    name: str
    role: str = ""
    influence: float | str | None = None
    interests: list[str] = Field(default_factory=list)
    image: str | None = None


class Decision(ScenarioModel):
    id: str
    phase: str | None = None
    title: str = ""
    description: str = ""
    choices: list[Choice] = Field(default_factory=list)

    def get_choice(self, choice_id: str) -> Choice | None:
        return next((c for c in self.choices if c.id == choice_id), None)


class ResourceRange(ScenarioModel):
    min: float | None = None
    max: float | None = None


class EventConditions(ScenarioModel):
    """All present categories must hold; absent categories are ignored."""
    current_phase: str | None = None
    resources: dict[str, ResourceRange] = Field(default_factory=dict)
    decisions: dict[str, str] = Field(default_factory=dict)
    event_choices: dict[str, str] = Field(default_factory=dict)


class ScenarioEvent(ScenarioModel):
    id: str
    type: str = "scripted"  # scripted, curveball, ...
    phase: str | None = None
    title: str = ""
    description: str = ""
    conditions: EventConditions | None = None
    choices: list[Choice] = Field(default_factory=list)
    triggers_events: list[str] = Field(default_factory=list)

    @property
    def is_curveball(self) -> bool:
        return self.type == "curveball"

    def get_choice(self, choice_id: str) -> Choice | None:
        return next((c for c in self.choices if c.id == choice_id), None)


class CompletionCriteria(ScenarioModel):
    required_decisions: list[str] = Field(default_factory=list)
    resource_thresholds: dict[str, float] = Field(default_factory=dict)


class PhaseConfig(ScenarioModel):
    title: str = ""
    entry_events: list[str] = Field(default_factory=list)
    time_expired_events: list[str] = Field(default_factory=list)
    completion_criteria: CompletionCriteria | None = None
    time_allocation: int = 600  # seconds, read by external timers


class ScenarioMeta(ScenarioModel):
    version: str
    title: str


def _fill_ids(section: Any) -> Any:
    """Entries keyed by id may omit their own id field."""
    if not isinstance(section, dict):
        return section
    filled = {}
    for key, entry in section.items():
        if isinstance(entry, dict) and "id" not in entry:
            entry = {**entry, "id": key}
        filled[key] = entry
    return filled


class ScenarioData(ScenarioModel):
    """The whole scenario document."""
    meta: ScenarioMeta
    stakeholders: dict[str, Stakeholder]
    phases: dict[str, PhaseConfig]
    decisions: dict[str, Decision]
    events: dict[str, ScenarioEvent]

    @model_validator(mode="before")
    @classmethod
    def _ids_from_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for section in ("decisions", "events"):
                if section in data:
                    data[section] = _fill_ids(data[section])
        return data
