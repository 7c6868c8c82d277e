"""Build systems from configuration dictionaries tagged by ``type``."""

import logging
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from ..errors import SystemConfigError
from .base import SimulationSystem
from .connection_evolution import ConnectionEvolutionConfig, ConnectionEvolutionSystem
from .era_transition import EraTransition, EraTransitionConfig
from .maintenance import MaintenanceConfig, RelationshipMaintenance

logger = logging.getLogger(__name__)

SYSTEM_TYPES: dict[str, tuple[type[BaseModel], Callable[[Any], SimulationSystem]]] = {
    "connection_evolution": (ConnectionEvolutionConfig, ConnectionEvolutionSystem),
    "relationship_maintenance": (MaintenanceConfig, RelationshipMaintenance),
    "era_transition": (EraTransitionConfig, EraTransition),
}


def load_system(raw: dict[str, Any]) -> SimulationSystem:
    """Validate one system definition and build the system it describes."""
    data = dict(raw)
    system_type = data.pop("type", None)
    system_id = data.get("id")
    if not system_type:
        raise SystemConfigError("missing 'type'", system_id)
    if system_type not in SYSTEM_TYPES:
        known = ", ".join(sorted(SYSTEM_TYPES))
        raise SystemConfigError(f"unknown system type '{system_type}' (known: {known})", system_id)

    config_model, factory = SYSTEM_TYPES[system_type]
    try:
        config = config_model.model_validate(data)
    except ValidationError as e:
        raise SystemConfigError(f"invalid {system_type} configuration: {e}", system_id) from e

    system = factory(config)
    logger.debug("Loaded %s system %s", system_type, system.id)
    return system


def load_systems(raw_systems: list[dict[str, Any]]) -> list[SimulationSystem]:
    systems = [load_system(raw) for raw in raw_systems]
    seen: set[str] = set()
    for system in systems:
        if system.id in seen:
            raise SystemConfigError("duplicate system id", system.id)
        seen.add(system.id)
    return systems
