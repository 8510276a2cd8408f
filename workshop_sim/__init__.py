"""AidCraft workshop simulation core."""

from .engine import WorkshopSimulation
from .errors import DependencyMissingError, SimulationInitError

__version__ = "1.0.0"

__all__ = [
    "WorkshopSimulation",
    "DependencyMissingError",
    "SimulationInitError",
]
