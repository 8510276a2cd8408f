"""
Simulation systems.

Each system reads and writes the shared StateStore and talks to the
others through the EventBus; WorkshopSimulation wires them together.
"""

from .rules import RulesEngine
from .events import EventQueueManager, QueueState, QueuedEvent
from .phases import PhaseOrchestrator, NavigationResult, NavigationFailure
from .scheduler import Scheduler, ScheduledTask, SimulatedScheduler, AsyncioScheduler

__all__ = [
    "RulesEngine",
    "EventQueueManager",
    "QueueState",
    "QueuedEvent",
    "PhaseOrchestrator",
    "NavigationResult",
    "NavigationFailure",
    # Timing
    "Scheduler",
    "ScheduledTask",
    "SimulatedScheduler",
    "AsyncioScheduler",
]
