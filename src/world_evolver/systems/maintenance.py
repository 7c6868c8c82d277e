"""Relationship lifecycle: decay, proximity reinforcement and culling.

Every ``maintenance_frequency`` ticks each relationship is aged. Young
relationships (younger than the grace period, measured from the younger
endpoint) are left alone. Older ones decay by their kind's tier, are
reinforced when the endpoints live close together, and are culled once
they fall below the threshold, unless their kind is protected, immutable
or not cullable. Relationships whose endpoint no longer exists are always
removed.
"""

import logging
import random

from pydantic import BaseModel, Field

from ..config import get_settings
from ..graph.store import GraphStore
from ..models.entities import Entity
from ..models.relationships import Direction, Relationship
from ..models.results import ProtectedViolation, StrengthUpdate, SystemResult
from .base import SimulationSystem

logger = logging.getLogger(__name__)


def _settings_default(name: str):
    return lambda: getattr(get_settings(), name)


class MaintenanceConfig(BaseModel):
    id: str = "relationship_maintenance"
    name: str = "Relationship Maintenance"
    maintenance_frequency: int = Field(default_factory=_settings_default("maintenance_frequency"), ge=1)
    cull_threshold: float = Field(default_factory=_settings_default("cull_threshold"))
    grace_period: int = Field(default_factory=_settings_default("grace_period"), ge=0)
    reinforcement_bonus: float = Field(default_factory=_settings_default("reinforcement_bonus"))
    max_strength: float = Field(default_factory=_settings_default("max_strength"))


class RelationshipMaintenance(SimulationSystem):
    """Periodic sweep over every relationship in the store."""

    def __init__(self, config: MaintenanceConfig | None = None):
        self.config = config or MaintenanceConfig()
        self.id = self.config.id
        self.name = self.config.name

    def apply(self, store: GraphStore, rng: random.Random, modifier: float = 1.0) -> SystemResult:
        config = self.config
        if store.tick % config.maintenance_frequency != 0:
            return self._result("Relationship maintenance dormant")

        domain = store.domain
        removed: list[Relationship] = []
        updates: list[StrengthUpdate] = []
        violations: list[ProtectedViolation] = []
        decayed = reinforced = orphaned = 0

        for rel in store.relationships():
            src = store.get_entity(rel.src)
            dst = store.get_entity(rel.dst)
            if src is None or dst is None:
                removed.append(rel)
                orphaned += 1
                continue

            age = min(store.tick - src.created_at, store.tick - dst.created_at)
            if age < config.grace_period:
                continue

            original = rel.effective_strength
            strength = original

            decay = domain.decay_rate(rel.kind).amount * modifier
            if decay > 0:
                strength = max(0.0, strength - decay)
                decayed += 1

            if self._in_proximity(src, dst, store):
                strength = min(config.max_strength, strength + config.reinforcement_bonus)
                reinforced += 1

            if strength < config.cull_threshold:
                if domain.is_protected(rel.kind):
                    violations.append(
                        ProtectedViolation(rel.kind, rel.src, rel.dst, strength, store.tick)
                    )
                elif domain.is_cullable(rel.kind):
                    removed.append(rel)
                    continue

            if strength != original:
                updates.append(StrengthUpdate(rel, strength))

        culled = len(removed)
        total = store.relationship_count
        if culled:
            description = (
                f"Relationship maintenance: {culled} relationships fade "
                f"({decayed} decayed, {reinforced} reinforced, {orphaned} orphaned)"
            )
            logger.info("Tick %s: culled %s of %s relationships", store.tick, culled, total)
        else:
            description = (
                f"Relationship maintenance: all {total} relationships above threshold "
                f"({decayed} decayed, {reinforced} reinforced)"
            )
        if violations:
            logger.info("Tick %s: %s weak protected relationships kept", store.tick, len(violations))

        return self._result(
            description,
            relationships_removed=removed,
            strength_updates=updates,
            violations=violations,
            details={
                "decayed": decayed,
                "reinforced": reinforced,
                "culled": culled,
                "orphaned": orphaned,
                "violations": len(violations),
            },
        )

    def _in_proximity(self, a: Entity, b: Entity, store: GraphStore) -> bool:
        """Same location, or a shared faction through a membership kind."""
        location_a = store.get_location(a.id)
        if location_a is not None:
            location_b = store.get_location(b.id)
            if location_b is not None and location_a.id == location_b.id:
                return True

        groups_a = self._groups(a, store)
        return bool(groups_a) and not groups_a.isdisjoint(self._groups(b, store))

    @staticmethod
    def _groups(entity: Entity, store: GraphStore) -> set[str]:
        return {
            link.dst
            for kind in store.domain.membership_relationship_kinds
            for link in store.get_relationships(entity.id, kind, Direction.SRC)
        }
