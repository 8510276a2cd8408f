"""Tests for scenario loading and catalog queries."""

import json
from pathlib import Path

import pytest
import yaml

from workshop_sim.scenario.catalog import ScenarioCatalog, ScenarioValidationError
from workshop_sim.scenario.schema import RelationshipDelta
from workshop_sim.state.schema import RelationshipType


BUNDLED = Path(__file__).parent.parent / "workshop_sim" / "scenarios" / "aidcraft.yaml"


class TestValidation:
    """Test document validation on load."""

    @pytest.mark.parametrize("section", ["meta", "stakeholders", "phases", "decisions", "events"])
    def test_missing_section_rejected(self, scenario_data, section):
        """All five top-level sections are required."""
        del scenario_data[section]
        with pytest.raises(ScenarioValidationError, match=section):
            ScenarioCatalog.from_dict(scenario_data)

    def test_empty_section_rejected(self, scenario_data):
        scenario_data["stakeholders"] = {}
        with pytest.raises(ScenarioValidationError):
            ScenarioCatalog.from_dict(scenario_data)

    def test_missing_phase_rejected(self, scenario_data):
        """The four named phases must all be present."""
        del scenario_data["phases"]["negotiation"]
        with pytest.raises(ScenarioValidationError, match="negotiation"):
            ScenarioCatalog.from_dict(scenario_data)

    def test_malformed_entry_rejected(self, scenario_data):
        """Pydantic errors surface as ScenarioValidationError."""
        scenario_data["decisions"]["needs"]["choices"] = "not-a-list"
        with pytest.raises(ScenarioValidationError):
            ScenarioCatalog.from_dict(scenario_data)

    def test_negative_hidden_debt_rejected(self, scenario_data):
        """Hidden debt only accrues, so a negative amount is a document error."""
        choice = scenario_data["decisions"]["fundingSource"]["choices"][1]
        choice["effects"]["hiddenDebt"]["amount"] = -10000
        with pytest.raises(ScenarioValidationError):
            ScenarioCatalog.from_dict(scenario_data)

    def test_non_mapping_rejected(self):
        with pytest.raises(ScenarioValidationError):
            ScenarioCatalog.from_dict(["meta"])

    def test_validation_error_is_value_error(self, scenario_data):
        del scenario_data["meta"]
        with pytest.raises(ValueError):
            ScenarioCatalog.from_dict(scenario_data)


class TestLoading:
    def test_camel_case_keys_mapped(self, catalog):
        """Authored camelCase fields become snake_case attributes."""
        funding = catalog.get_phase_config("funding")
        assert funding.completion_criteria.required_decisions == ["fundingSource"]

        choice = catalog.get_decision("fundingSource").get_choice("international-loan")
        assert choice.triggers_events == ["loan-terms"]
        assert choice.effects.hidden_debt.amount == 50000
        assert choice.effects.stakeholder_relationships["bank"] == RelationshipDelta(
            strength=0.3, type=RelationshipType.ALLIED
        )

    def test_ids_filled_from_keys(self, catalog):
        assert catalog.get_decision("needs").id == "needs"
        assert catalog.get_event("briefing").id == "briefing"

    def test_time_allocation_defaults(self, catalog):
        assert catalog.get_phase_config("analysis").time_allocation == 600

    def test_from_json_file(self, tmp_path, scenario_data):
        path = tmp_path / "scenario.json"
        path.write_text(json.dumps(scenario_data), encoding="utf-8")
        assert ScenarioCatalog.from_file(path).title == "Test Workshop"

    def test_from_yaml_file(self, tmp_path, scenario_data):
        path = tmp_path / "scenario.yaml"
        path.write_text(yaml.safe_dump(scenario_data), encoding="utf-8")
        assert ScenarioCatalog.from_file(path).version == "1.0.0"

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ScenarioValidationError):
            ScenarioCatalog.from_file(tmp_path / "missing.yaml")

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ScenarioValidationError):
            ScenarioCatalog.from_file(path)

    def test_bundled_scenario_is_valid(self):
        """The shipped AidCraft scenario loads cleanly."""
        catalog = ScenarioCatalog.from_file(BUNDLED)
        assert catalog.get_decision("fundingSource").get_choice("international-loan") is not None
        assert catalog.get_curveball_events("funding")


class TestQueries:
    """Lookups never raise for unknown ids."""

    def test_unknown_ids_return_none(self, catalog):
        assert catalog.get_decision("nope") is None
        assert catalog.get_event("nope") is None
        assert catalog.get_stakeholder("nope") is None
        assert catalog.get_phase_config("nope") is None

    def test_get_stakeholders(self, catalog):
        assert set(catalog.get_stakeholders()) == {"ministry", "bank"}
        assert catalog.get_stakeholder("bank").role == "Lender"

    def test_phase_decisions(self, catalog):
        assert list(catalog.get_phase_decisions("funding")) == ["fundingSource"]
        assert catalog.get_phase_decisions("outcome") == {}

    def test_curveball_events_by_phase(self, catalog):
        assert [e.id for e in catalog.get_curveball_events("funding")] == ["shock"]
        assert catalog.get_curveball_events("analysis") == []

    def test_returned_mappings_are_copies(self, catalog):
        catalog.get_events().clear()
        assert catalog.get_event("briefing") is not None
