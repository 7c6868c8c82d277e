"""Result records produced by mutations, actions and systems.

None of these touch the store. The store's ``commit`` applies them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from .relationships import Relationship

if TYPE_CHECKING:
    from .entities import Entity


@dataclass
class EntityModification:
    """Field changes for one entity.

    ``changes`` may hold ``status``, ``prominence``, ``tags`` (merged into the
    entity's tags), ``remove_tags`` (list of keys) and any other entity field
    name (assigned as-is).
    """

    id: str
    changes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "changes": dict(self.changes)}


@dataclass
class RelationshipAdjustment:
    """Strength delta for an existing relationship, clamped to [0, 1] on commit."""

    kind: str
    src: str
    dst: str
    delta: float

    def to_dict(self) -> dict:
        return {"kind": self.kind, "src": self.src, "dst": self.dst, "delta": self.delta}


@dataclass
class StrengthUpdate:
    """Absolute strength for a specific relationship object."""

    relationship: Relationship
    strength: float


@dataclass
class ProtectedViolation:
    """A protected or immutable relationship that fell below the cull threshold."""

    kind: str
    src: str
    dst: str
    strength: float
    tick: int

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "src": self.src,
            "dst": self.dst,
            "strength": self.strength,
            "tick": self.tick,
        }


@dataclass
class MutationResult:
    applied: bool = True
    diagnostic: str = ""
    entity_modifications: list[EntityModification] = field(default_factory=list)
    relationships_created: list[Relationship] = field(default_factory=list)
    relationships_adjusted: list[RelationshipAdjustment] = field(default_factory=list)
    relationships_archived: list[Relationship] = field(default_factory=list)
    pressure_changes: dict[str, float] = field(default_factory=dict)

    @classmethod
    def failure(cls, diagnostic: str) -> "MutationResult":
        return cls(applied=False, diagnostic=diagnostic)

    def extend(self, other: "MutationResult") -> None:
        """Fold another (applied) result into this one."""
        self.entity_modifications.extend(other.entity_modifications)
        self.relationships_created.extend(other.relationships_created)
        self.relationships_adjusted.extend(other.relationships_adjusted)
        self.relationships_archived.extend(other.relationships_archived)
        for pressure, delta in other.pressure_changes.items():
            self.pressure_changes[pressure] = self.pressure_changes.get(pressure, 0.0) + delta
        if other.diagnostic:
            self.diagnostic = "; ".join(d for d in (self.diagnostic, other.diagnostic) if d)

    @property
    def is_empty(self) -> bool:
        return not (
            self.entity_modifications
            or self.relationships_created
            or self.relationships_adjusted
            or self.relationships_archived
            or self.pressure_changes
        )


class FailureReason(str, Enum):
    NO_INSTIGATOR = "no_instigator"
    NO_TARGET = "no_target"
    ACTOR_CONDITIONS = "actor_conditions"
    MUTATION_FAILED = "mutation_failed"


@dataclass
class SystemResult:
    """What one system run (or one committed action) did to the graph."""

    description: str = ""
    entities_added: list["Entity"] = field(default_factory=list)
    relationships_added: list[Relationship] = field(default_factory=list)
    relationships_adjusted: list[RelationshipAdjustment] = field(default_factory=list)
    relationships_removed: list[Relationship] = field(default_factory=list)
    relationships_archived: list[Relationship] = field(default_factory=list)
    strength_updates: list[StrengthUpdate] = field(default_factory=list)
    entities_modified: list[EntityModification] = field(default_factory=list)
    pressure_changes: dict[str, float] = field(default_factory=dict)
    violations: list[ProtectedViolation] = field(default_factory=list)
    system_id: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mutation(cls, result: MutationResult, description: str = "") -> "SystemResult":
        return cls(
            description=description or result.diagnostic,
            relationships_added=list(result.relationships_created),
            relationships_adjusted=list(result.relationships_adjusted),
            relationships_archived=list(result.relationships_archived),
            entities_modified=list(result.entity_modifications),
            pressure_changes=dict(result.pressure_changes),
        )

    @property
    def changed_graph(self) -> bool:
        return bool(
            self.entities_added
            or self.relationships_added
            or self.relationships_adjusted
            or self.relationships_removed
            or self.relationships_archived
            or self.strength_updates
            or self.entities_modified
            or self.pressure_changes
        )

    def to_dict(self) -> dict:
        return {
            "system_id": self.system_id,
            "description": self.description,
            "entities_added": [e.id for e in self.entities_added],
            "relationships_added": [r.model_dump(mode="json") for r in self.relationships_added],
            "relationships_adjusted": [a.to_dict() for a in self.relationships_adjusted],
            "relationships_removed": [r.model_dump(mode="json") for r in self.relationships_removed],
            "entities_modified": [m.to_dict() for m in self.entities_modified],
            "pressure_changes": dict(self.pressure_changes),
            "violations": [v.to_dict() for v in self.violations],
        }


@dataclass
class ActionResult:
    success: bool
    description: str = ""
    failure_reason: FailureReason | None = None
    diagnostic: str = ""
    action_id: str = ""
    actor_id: str | None = None
    instigator_id: str | None = None
    target_ids: list[str] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    relationships_adjusted: list[RelationshipAdjustment] = field(default_factory=list)
    relationships_archived: list[Relationship] = field(default_factory=list)
    entities_modified: list[EntityModification] = field(default_factory=list)
    pressure_changes: dict[str, float] = field(default_factory=dict)

    @classmethod
    def failed(
        cls, reason: FailureReason, description: str, diagnostic: str = "", **kwargs: Any
    ) -> "ActionResult":
        return cls(
            success=False,
            failure_reason=reason,
            description=description,
            diagnostic=diagnostic or description,
            **kwargs,
        )

    def to_system_result(self) -> SystemResult:
        """Changes of a successful action, in the shape the store commits."""
        if not self.success:
            return SystemResult(description=self.description, system_id=self.action_id)
        return SystemResult(
            description=self.description,
            relationships_added=list(self.relationships),
            relationships_adjusted=list(self.relationships_adjusted),
            relationships_archived=list(self.relationships_archived),
            entities_modified=list(self.entities_modified),
            pressure_changes=dict(self.pressure_changes),
            system_id=self.action_id,
        )

    def to_dict(self) -> dict:
        return {
            "action_id": self.action_id,
            "success": self.success,
            "description": self.description,
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "diagnostic": self.diagnostic,
            "actor_id": self.actor_id,
            "instigator_id": self.instigator_id,
            "target_ids": list(self.target_ids),
            "relationships": [r.model_dump(mode="json") for r in self.relationships],
        }
