"""Tick-driven systems."""

from .base import SimulationSystem
from .connection_evolution import (
    ComponentSizeLimit,
    ConnectionEvolutionConfig,
    ConnectionEvolutionSystem,
    EvolutionRule,
    SubtypeBonus,
)
from .era_transition import EraTransition, EraTransitionConfig
from .loader import SYSTEM_TYPES, load_system, load_systems
from .maintenance import MaintenanceConfig, RelationshipMaintenance

__all__ = [
    "ComponentSizeLimit",
    "ConnectionEvolutionConfig",
    "ConnectionEvolutionSystem",
    "EraTransition",
    "EraTransitionConfig",
    "EvolutionRule",
    "MaintenanceConfig",
    "RelationshipMaintenance",
    "SYSTEM_TYPES",
    "SimulationSystem",
    "SubtypeBonus",
    "load_system",
    "load_systems",
]
