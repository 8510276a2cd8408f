"""
Scenario catalog: immutable stakeholder, decision, event and phase definitions.

Loaded once at startup from a JSON or YAML document and only ever
queried afterwards. Loading is the one place a bad document is fatal.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..state.schema import PHASE_SEQUENCE
from .schema import (
    Decision,
    PhaseConfig,
    ScenarioData,
    ScenarioEvent,
    Stakeholder,
)

logger = logging.getLogger(__name__)


REQUIRED_SECTIONS = ("meta", "stakeholders", "phases", "decisions", "events")


class ScenarioValidationError(ValueError):
    """The scenario document is missing data or malformed."""


class ScenarioCatalog:
    """
    Read-only view over a validated scenario document.

    Lookups of unknown ids return None (or an empty mapping) and never raise.
    """

    def __init__(self, data: ScenarioData):
        self._data = data

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: Any) -> "ScenarioCatalog":
        """
        Validate a raw document and build a catalog.

        Raises:
            ScenarioValidationError: On any structural problem
        """
        if not isinstance(raw, dict):
            raise ScenarioValidationError("Scenario data must be a mapping")

        for section in REQUIRED_SECTIONS:
            if not raw.get(section) or not isinstance(raw[section], dict):
                raise ScenarioValidationError(f"Missing or invalid required section: {section}")

        missing = [phase for phase in PHASE_SEQUENCE if phase not in raw["phases"]]
        if missing:
            raise ScenarioValidationError(f"Missing required phase(s): {', '.join(missing)}")

        try:
            data = ScenarioData.model_validate(raw)
        except ValidationError as e:
            raise ScenarioValidationError(f"Invalid scenario data: {e}") from e

        logger.info(
            "Scenario '%s' v%s: %d decisions, %d events",
            data.meta.title,
            data.meta.version,
            len(data.decisions),
            len(data.events),
        )
        return cls(data)

    @classmethod
    def from_file(cls, path: Path | str) -> "ScenarioCatalog":
        """Load a .json, .yaml or .yml scenario document."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ScenarioValidationError(f"Cannot read scenario file {path}: {e}") from e

        try:
            if path.suffix.lower() in (".yaml", ".yml"):
                raw = yaml.safe_load(text)
            else:
                raw = json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ScenarioValidationError(f"Cannot parse scenario file {path}: {e}") from e

        return cls.from_dict(raw)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def data(self) -> ScenarioData:
        return self._data

    @property
    def title(self) -> str:
        return self._data.meta.title

    @property
    def version(self) -> str:
        return self._data.meta.version

    def get_stakeholders(self) -> dict[str, Stakeholder]:
        return dict(self._data.stakeholders)

    def get_stakeholder(self, stakeholder_id: str) -> Stakeholder | None:
        return self._data.stakeholders.get(stakeholder_id)

    def get_decisions(self) -> dict[str, Decision]:
        return dict(self._data.decisions)

    def get_decision(self, decision_id: str) -> Decision | None:
        return self._data.decisions.get(decision_id)

    def get_phase_decisions(self, phase: str) -> dict[str, Decision]:
        return {did: d for did, d in self._data.decisions.items() if d.phase == phase}

    def get_events(self) -> dict[str, ScenarioEvent]:
        return dict(self._data.events)

    def get_event(self, event_id: str) -> ScenarioEvent | None:
        return self._data.events.get(event_id)

    def get_curveball_events(self, phase: str) -> list[ScenarioEvent]:
        """Curveball events tied to phase, in document order."""
        return [e for e in self._data.events.values() if e.is_curveball and e.phase == phase]

    def get_phase_config(self, phase: str) -> PhaseConfig | None:
        return self._data.phases.get(phase)
