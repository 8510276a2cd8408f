"""
Pytest fixtures for workshop simulation tests.

Provides in-memory persistence, a compact scenario and a fully wired
simulation on a manual clock with a scripted random source.
"""

import random
from copy import deepcopy
from pathlib import Path

import pytest

# Add repo root to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from workshop_sim.engine import WorkshopSimulation
from workshop_sim.scenario.catalog import ScenarioCatalog
from workshop_sim.state.event_bus import EventBus
from workshop_sim.state.manager import StateStore
from workshop_sim.state.store import MemoryStatePersistence
from workshop_sim.systems.scheduler import SimulatedScheduler


SCENARIO = {
    "meta": {"version": "1.0.0", "title": "Test Workshop"},
    "stakeholders": {
        "ministry": {"name": "Ministry", "role": "Government"},
        "bank": {"name": "Bank", "role": "Lender"},
    },
    "phases": {
        "analysis": {
            "title": "Analysis",
            "entryEvents": ["briefing"],
            "timeExpiredEvents": ["rushed"],
            "completionCriteria": {"requiredDecisions": ["needs"]},
        },
        "funding": {
            "title": "Funding",
            "entryEvents": [],
            "timeExpiredEvents": [],
            "completionCriteria": {"requiredDecisions": ["fundingSource"]},
        },
        "negotiation": {
            "title": "Negotiation",
            "completionCriteria": {"resourceThresholds": {"politicalCapital": 50}},
        },
        "outcome": {"title": "Outcome"},
    },
    "decisions": {
        "needs": {
            "phase": "analysis",
            "choices": [
                {"id": "water", "effects": {"resources": {"politicalCapital": -10}}},
                {"id": "roads", "effects": {"resources": {"budget": "-10%"}}},
            ],
        },
        "fundingSource": {
            "phase": "funding",
            "choices": [
                {
                    "id": "international-loan",
                    "effects": {
                        "resources": {"budget": 500000},
                        "stakeholderRelationships": {"bank": {"strength": 0.3, "type": "allied"}},
                        "hiddenDebt": {"amount": 50000, "source": "loan-a"},
                    },
                    "triggersEvents": ["loan-terms"],
                },
                {"id": "bonds", "effects": {"hiddenDebt": {"amount": 10000}}},
            ],
        },
    },
    "events": {
        "briefing": {
            "type": "scripted",
            "phase": "analysis",
            "choices": [{"id": "ok"}],
        },
        "rushed": {
            "type": "scripted",
            "phase": "analysis",
            "choices": [{"id": "ok", "effects": {"resources": {"budget": -1000}}}],
        },
        "loan-terms": {
            "type": "scripted",
            "phase": "funding",
            "conditions": {"decisions": {"fundingSource": "international-loan"}},
            "choices": [
                {"id": "accept", "effects": {"resources": {"politicalCapital": -5}}},
                {"id": "refuse", "triggersEvents": ["audit"]},
            ],
        },
        "audit": {
            "type": "scripted",
            "choices": [{"id": "ok"}],
        },
        "press": {
            "type": "scripted",
            "choices": [{"id": "ok"}],
        },
        "rich-only": {
            "type": "scripted",
            "conditions": {"resources": {"budget": {"min": 2000000}}},
            "choices": [{"id": "ok"}],
        },
        "shock": {
            "type": "curveball",
            "phase": "funding",
            "choices": [{"id": "absorb", "effects": {"hiddenDebt": {"amount": 1000, "source": "fx"}}}],
        },
        "blocked-shock": {
            "type": "curveball",
            "phase": "negotiation",
            "conditions": {"currentPhase": "outcome"},
            "choices": [{"id": "ok"}],
        },
    },
}


class ScriptedRandom(random.Random):
    """Random source whose random() values are fixed in advance."""

    def __init__(self, values=(0.0,), seed=0):
        super().__init__(seed)
        self.values = list(values)

    def random(self):
        if self.values:
            return self.values.pop(0)
        return 0.99


@pytest.fixture
def scenario_data():
    """Raw scenario document (camelCase, as authored)."""
    return deepcopy(SCENARIO)


@pytest.fixture
def catalog(scenario_data):
    return ScenarioCatalog.from_dict(scenario_data)


@pytest.fixture
def memory_persistence():
    """In-memory state persistence for testing."""
    return MemoryStatePersistence()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def store(bus, memory_persistence):
    return StateStore(bus, memory_persistence)


@pytest.fixture
def clock():
    return SimulatedScheduler()


@pytest.fixture
def rng():
    """Random source that never fires curveballs unless a test says so."""
    return ScriptedRandom(values=[])


@pytest.fixture
def sim(catalog, memory_persistence, clock, rng):
    """Fully wired simulation on a manual clock."""
    simulation = WorkshopSimulation(
        catalog,
        persistence=memory_persistence,
        scheduler=clock,
        rng=rng,
    )
    simulation.initialize()
    yield simulation
    simulation.close()


@pytest.fixture
def recorder(sim):
    """Collects every published event on the simulation's bus."""
    events = []
    from workshop_sim.state.event_bus import Topic
    for topic in Topic:
        sim.bus.on(topic, events.append)
    return events
