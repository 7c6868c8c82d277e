"""Data models for World Evolver."""

from .domain import (
    ACTIVE_DURING,
    SUPERSEDES,
    DomainConfig,
    EntityKindDef,
    EraDefinition,
    RelationshipKindDef,
    load_domain,
)
from .entities import (
    ERA_KIND,
    Catalyst,
    Coordinates,
    Entity,
    EraStatus,
    Prominence,
    Temporal,
    prominence_index,
)
from .relationships import DecayRate, Direction, Relationship, RelationshipStatus
from .results import (
    ActionResult,
    EntityModification,
    FailureReason,
    MutationResult,
    ProtectedViolation,
    RelationshipAdjustment,
    StrengthUpdate,
    SystemResult,
)

__all__ = [
    "ACTIVE_DURING",
    "ActionResult",
    "Catalyst",
    "Coordinates",
    "DecayRate",
    "Direction",
    "DomainConfig",
    "ERA_KIND",
    "Entity",
    "EntityKindDef",
    "EntityModification",
    "EraDefinition",
    "EraStatus",
    "FailureReason",
    "MutationResult",
    "Prominence",
    "ProtectedViolation",
    "Relationship",
    "RelationshipAdjustment",
    "RelationshipKindDef",
    "RelationshipStatus",
    "StrengthUpdate",
    "SUPERSEDES",
    "SystemResult",
    "Temporal",
    "load_domain",
    "prominence_index",
]
