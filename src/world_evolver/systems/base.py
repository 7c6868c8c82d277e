"""Base class for tick-driven systems."""

import random
from abc import ABC, abstractmethod

from ..graph.store import GraphStore
from ..models.results import SystemResult


class SimulationSystem(ABC):
    """A system inspects the store once per tick and reports what should change.

    ``apply`` must not write to the store; the caller commits the returned
    result. ``modifier`` is the current era's scaling for this system.
    """

    id: str = "system"
    name: str = "System"

    @abstractmethod
    def apply(self, store: GraphStore, rng: random.Random, modifier: float = 1.0) -> SystemResult:
        """Compute this tick's changes."""

    def _result(self, description: str, **kwargs) -> SystemResult:
        return SystemResult(description=description, system_id=self.id, **kwargs)
