"""
Simulation wiring.

WorkshopSimulation builds the core components in dependency order and
connects them explicitly:

    EventBus → StateStore → RulesEngine → EventQueueManager → PhaseOrchestrator

Nothing is looked up globally; every collaborator is passed in or created
here, so tests and the outer surfaces (CLI, headless runner, API) can each
own an independent simulation.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import DependencyMissingError
from .scenario.catalog import ScenarioCatalog
from .state.event_bus import DEFAULT_MAX_DEPTH, EventBus, Topic, TimerExpired
from .state.manager import DEFAULT_STORAGE_KEY, StateStore
from .state.schema import OutcomeSummary
from .state.store import JsonStatePersistence, StatePersistence
from .systems.events import (
    DEFAULT_CURVEBALL_DELAY_MS,
    DEFAULT_CURVEBALL_PROBABILITY,
    DEFAULT_ENTRY_EVENT_DELAY_MS,
    EventQueueManager,
)
from .systems.phases import PhaseOrchestrator
from .systems.rules import DEFAULT_TIMER_PENALTY, RulesEngine
from .systems.scheduler import Scheduler, SimulatedScheduler

if TYPE_CHECKING:
    from .interface.config import Config

logger = logging.getLogger(__name__)


BUNDLED_SCENARIO = Path(__file__).parent / "scenarios" / "aidcraft.yaml"


class WorkshopSimulation:
    """
    One participant's simulation: the five core components plus their clock.

    Construction wires everything but touches no storage; call initialize()
    to load any persisted session.
    """

    def __init__(
        self,
        catalog: ScenarioCatalog,
        persistence: StatePersistence | None = None,
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
        storage_key: str = DEFAULT_STORAGE_KEY,
        curveball_probability: float = DEFAULT_CURVEBALL_PROBABILITY,
        curveball_delay_ms: float = DEFAULT_CURVEBALL_DELAY_MS,
        entry_event_delay_ms: float = DEFAULT_ENTRY_EVENT_DELAY_MS,
        timer_penalty: float = DEFAULT_TIMER_PENALTY,
        curveballs_on_phase_entry: bool = True,
        max_dispatch_depth: int = DEFAULT_MAX_DEPTH,
    ):
        if catalog is None:
            raise DependencyMissingError("WorkshopSimulation", "a ScenarioCatalog")

        self.catalog = catalog
        self.scheduler = scheduler or SimulatedScheduler()
        self.rng = rng or random.Random()
        self._initialized = False

        self.bus = EventBus(max_depth=max_dispatch_depth)
        self.store = StateStore(self.bus, persistence, storage_key=storage_key)
        self.rules = RulesEngine(
            self.store,
            catalog,
            self.bus,
            rng=self.rng,
            timer_penalty=timer_penalty,
        )
        self.events = EventQueueManager(
            self.store,
            self.bus,
            self.rules,
            catalog,
            self.scheduler,
            rng=self.rng,
            curveball_probability=curveball_probability,
            curveball_delay_ms=curveball_delay_ms,
            entry_event_delay_ms=entry_event_delay_ms,
            curveballs_on_phase_entry=curveballs_on_phase_entry,
        )
        self.rules.set_event_queue(self.events)
        self.phases = PhaseOrchestrator(self.store, self.bus, self.rules, catalog)

    @classmethod
    def from_config(
        cls,
        config: "Config",
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
    ) -> "WorkshopSimulation":
        """
        Build a simulation from user configuration.

        Raises:
            ScenarioValidationError: If the configured scenario can't be loaded
        """
        scenario_path = config.get("scenario_path") or BUNDLED_SCENARIO
        catalog = ScenarioCatalog.from_file(scenario_path)
        persistence = JsonStatePersistence(config.get("state_dir", "state"))

        return cls(
            catalog,
            persistence=persistence,
            scheduler=scheduler,
            rng=rng,
            storage_key=config.get("storage_key", DEFAULT_STORAGE_KEY),
            curveball_probability=config.get("curveball_probability", DEFAULT_CURVEBALL_PROBABILITY),
            curveball_delay_ms=config.get("curveball_delay_ms", DEFAULT_CURVEBALL_DELAY_MS),
            entry_event_delay_ms=config.get("entry_event_delay_ms", DEFAULT_ENTRY_EVENT_DELAY_MS),
            timer_penalty=config.get("timer_penalty", DEFAULT_TIMER_PENALTY),
            curveballs_on_phase_entry=config.get("curveballs_on_phase_entry", True),
            max_dispatch_depth=config.get("max_dispatch_depth", DEFAULT_MAX_DEPTH),
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> bool:
        """
        Load persisted state (if any) and mark the session initialized.

        Safe to call more than once; later calls do nothing.

        Returns:
            True if a saved session was loaded
        """
        if self._initialized:
            return False

        loaded = self.store.load()
        self.store.set("system.initialized", True)
        self._initialized = True
        logger.info(
            "Simulation initialized (%s, phase %s)",
            "resumed" if loaded else "fresh",
            self.store.current_phase,
        )
        return loaded

    def close(self) -> None:
        """Cancel pending timers and detach every component from the bus."""
        self.phases.close()
        self.events.close()
        self.rules.close()
        self.bus.clear()

    # ─── Convenience ─────────────────────────────────────────────

    def start(self):
        """Enter the current phase, firing its entry events."""
        return self.phases.navigate_to_phase(self.store.current_phase or self.phases.phase_sequence[0])

    def expire_timer(self, phase: str | None = None) -> None:
        """Publish timer-expired for phase (default: the current one)."""
        self.bus.publish(Topic.TIMER_EXPIRED, TimerExpired(phase=phase or self.store.current_phase))

    def outcomes(self) -> OutcomeSummary:
        return self.rules.calculate_outcomes()

    def reset(self, preserve_user: bool = False) -> None:
        self.store.reset(persist=True, preserve_user=preserve_user)

    def status(self) -> dict[str, Any]:
        """Compact summary of the session for displays."""
        phase = self.store.current_phase
        return {
            "scenario": self.catalog.title,
            "phase": phase,
            "phase_complete": self.rules.check_phase_completion_criteria(phase) if phase else False,
            "phase_progress": self.store.phase_progress(phase) if phase else 0,
            "resources": self.store.resources(),
            "decisions": self.store.decisions(),
            "hidden_debt": self.store.hidden_debt().total,
            "active_event": self.events.active_event_id,
            "queued_events": self.events.pending_event_ids,
        }
