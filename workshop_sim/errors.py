"""Exceptions that escape the simulation core.

Steady-state operations report failure through return values; only
startup problems are raised.
"""


class SimulationInitError(Exception):
    """The simulation could not be started."""


class DependencyMissingError(SimulationInitError):
    """A required collaborator was not provided."""

    def __init__(self, component: str, dependency: str):
        self.component = component
        self.dependency = dependency
        super().__init__(f"{component} requires {dependency}")
