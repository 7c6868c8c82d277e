"""In-memory graph store.

The store owns every entity, the canonical ordered relationship list, the
tick counter, pressures, the current era and relationship cooldowns. Each
relationship object lives once in the canonical list and is mirrored (the
same object) into the ``links`` of both endpoints; only the methods here
add or remove relationships, so the two views never drift apart.
"""

import logging
from collections import defaultdict
from typing import Any

from ..errors import GraphStoreError
from ..models.domain import DomainConfig, EraDefinition
from ..models.entities import ERA_KIND, Entity, EraStatus, Prominence
from ..models.relationships import Direction, Relationship, RelationshipStatus
from ..models.results import (
    MutationResult,
    ProtectedViolation,
    SystemResult,
)

logger = logging.getLogger(__name__)


class GraphStore:
    """Single owner of the world state for one run."""

    def __init__(self, domain: DomainConfig | None = None, tick: int = 0):
        self.domain = domain or DomainConfig()
        self.tick = tick
        self.pressures: dict[str, float] = dict(self.domain.initial_pressures)
        self.current_era: EraDefinition | None = None
        self.relationship_cooldowns: dict[str, dict[str, int]] = defaultdict(dict)
        self.protected_violations: list[ProtectedViolation] = []
        self._entities: dict[str, Entity] = {}
        self._relationships: list[Relationship] = []

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def add_entity(self, entity: Entity) -> Entity:
        if entity.id in self._entities:
            raise GraphStoreError(f"Duplicate entity id: {entity.id}")
        if entity.links:
            raise GraphStoreError(
                f"Entity {entity.id} arrived with links; add relationships through the store"
            )
        self._entities[entity.id] = entity
        if entity.is_era and entity.status == EraStatus.CURRENT.value:
            self.set_current_era(entity.subtype)
        return entity

    def get_entity(self, entity_id: str) -> Entity | None:
        return self._entities.get(entity_id)

    def has_entity(self, entity_id: str) -> bool:
        return entity_id in self._entities

    def entities(self) -> list[Entity]:
        """All entities in insertion order."""
        return list(self._entities.values())

    def find_entities(
        self,
        kind: str | None = None,
        subtype: str | None = None,
        status: str | None = None,
    ) -> list[Entity]:
        return [
            e
            for e in self._entities.values()
            if (kind is None or e.kind == kind)
            and (subtype is None or e.subtype == subtype)
            and (status is None or e.status == status)
        ]

    @property
    def entity_count(self) -> int:
        return len(self._entities)

    def remove_entity(self, entity_id: str, cascade: bool = True) -> Entity | None:
        """Remove an entity.

        With ``cascade`` its relationships go too. Without it they stay in
        the canonical list as dangling references until maintenance
        removes them.
        """
        entity = self._entities.pop(entity_id, None)
        if entity is None:
            return None
        if cascade:
            for rel in list(entity.links):
                self.remove_relationship(rel)
        return entity

    def update_entity(self, entity_id: str, changes: dict[str, Any]) -> bool:
        entity = self._entities.get(entity_id)
        if entity is None:
            logger.debug("Skipping update of missing entity %s", entity_id)
            return False

        for key, value in changes.items():
            if key == "tags":
                entity.tags.update(value)
            elif key == "remove_tags":
                for tag in value:
                    entity.tags.pop(tag, None)
            elif key == "prominence":
                entity.prominence = Prominence(value)
            elif key in ("id", "links"):
                raise GraphStoreError(f"Cannot change '{key}' of entity {entity_id}")
            elif key in Entity.model_fields:
                setattr(entity, key, value)
            else:
                logger.debug("Ignoring unknown entity field %s on %s", key, entity_id)

        entity.updated_at = self.tick
        if entity.is_era and changes.get("status") == EraStatus.CURRENT.value:
            self.set_current_era(entity.subtype)
        return True

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def relationships(self) -> list[Relationship]:
        """Snapshot of the canonical relationship list."""
        return list(self._relationships)

    @property
    def relationship_count(self) -> int:
        return len(self._relationships)

    def add_relationship(self, relationship: Relationship) -> Relationship:
        src = self._entities.get(relationship.src)
        dst = self._entities.get(relationship.dst)
        if src is None or dst is None:
            missing = relationship.src if src is None else relationship.dst
            raise GraphStoreError(
                f"Cannot add {relationship.describe()}: entity {missing} does not exist"
            )
        if relationship.created_at is None:
            relationship.created_at = self.tick

        self._relationships.append(relationship)
        src.links.append(relationship)
        if dst is not src:
            dst.links.append(relationship)
        src.updated_at = self.tick
        dst.updated_at = self.tick
        return relationship

    def create_relationship(
        self,
        kind: str,
        src: str,
        dst: str,
        strength: float | None = None,
        distance: float | None = None,
        category: str | None = None,
    ) -> Relationship:
        return self.add_relationship(
            Relationship(
                kind=kind,
                src=src,
                dst=dst,
                strength=strength,
                distance=distance,
                category=category,
            )
        )

    def remove_relationship(self, relationship: Relationship) -> bool:
        """Remove one relationship object from the canonical list and both mirrors."""
        for i, existing in enumerate(self._relationships):
            if existing is relationship:
                del self._relationships[i]
                break
        else:
            return False

        for endpoint_id in {relationship.src, relationship.dst}:
            endpoint = self._entities.get(endpoint_id)
            if endpoint is None:
                continue
            endpoint.links = [link for link in endpoint.links if link is not relationship]
            endpoint.updated_at = self.tick
        return True

    def find_relationships(
        self,
        kind: str | None = None,
        src: str | None = None,
        dst: str | None = None,
        min_strength: float | None = None,
    ) -> list[Relationship]:
        return [
            r
            for r in self._relationships
            if (kind is None or r.kind == kind)
            and (src is None or r.src == src)
            and (dst is None or r.dst == dst)
            and (min_strength is None or r.effective_strength >= min_strength)
        ]

    def get_relationships(
        self,
        entity_id: str,
        kind: str | None = None,
        direction: Direction = Direction.BOTH,
    ) -> list[Relationship]:
        entity = self._entities.get(entity_id)
        if entity is None:
            return []
        return entity.links_of(kind, direction)

    def get_related_entities(
        self,
        entity_id: str,
        kind: str | None = None,
        direction: Direction = Direction.BOTH,
    ) -> list[Entity]:
        """Counterparts of an entity's relationships, deduplicated, in link order."""
        related: list[Entity] = []
        seen: set[str] = set()
        for link in self.get_relationships(entity_id, kind, direction):
            other_id = link.other(entity_id)
            if other_id in seen:
                continue
            other = self._entities.get(other_id)
            if other is not None:
                seen.add(other_id)
                related.append(other)
        return related

    def get_relationship(self, src: str, dst: str, kind: str) -> Relationship | None:
        for link in self.get_relationships(src, kind, Direction.SRC):
            if link.dst == dst:
                return link
        return None

    def has_relationship(
        self, src: str, dst: str, kind: str | None = None, any_direction: bool = False
    ) -> bool:
        for link in self.get_relationships(src, kind):
            if link.src == src and link.dst == dst:
                return True
            if any_direction and link.src == dst and link.dst == src:
                return True
        return False

    def adjust_relationship_strength(
        self,
        kind: str,
        src: str,
        dst: str,
        delta: float,
        floor: float = 0.0,
        ceiling: float = 1.0,
    ) -> bool:
        relationship = self.get_relationship(src, dst, kind)
        if relationship is None:
            return False
        new_strength = relationship.effective_strength + delta
        relationship.strength = max(floor, min(ceiling, new_strength))
        return True

    def set_relationship_strength(self, relationship: Relationship, strength: float) -> None:
        relationship.strength = strength

    def archive_relationship(self, relationship: Relationship) -> None:
        relationship.status = RelationshipStatus.HISTORICAL

    def get_location(self, entity_id: str) -> Entity | None:
        """First location the entity points at through a location kind."""
        for kind in self.domain.location_relationship_kinds:
            for link in self.get_relationships(entity_id, kind, Direction.SRC):
                location = self._entities.get(link.dst)
                if location is not None:
                    return location
        return None

    # ------------------------------------------------------------------
    # Pressures, cooldowns, eras
    # ------------------------------------------------------------------

    def get_pressure(self, pressure_id: str) -> float:
        return self.pressures.get(pressure_id, 0.0)

    def modify_pressure(self, pressure_id: str, delta: float) -> float:
        self.pressures[pressure_id] = self.get_pressure(pressure_id) + delta
        return self.pressures[pressure_id]

    def record_relationship_formation(self, entity_id: str, kind: str) -> None:
        self.relationship_cooldowns[entity_id][kind] = self.tick

    def can_form_relationship(self, entity_id: str, kind: str, cooldown_ticks: int) -> bool:
        last = self.relationship_cooldowns.get(entity_id, {}).get(kind)
        return last is None or self.tick - last >= cooldown_ticks

    def era_entities(self) -> list[Entity]:
        return self.find_entities(kind=ERA_KIND)

    def current_era_entity(self) -> Entity | None:
        for era in self.era_entities():
            if era.status == EraStatus.CURRENT.value:
                return era
        return None

    def set_current_era(self, era_id: str | None) -> None:
        self.current_era = self.domain.era(era_id) if era_id else None

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self, result: SystemResult) -> None:
        """Apply a result record computed against this store.

        Removals and strength updates are by object identity and are
        idempotent.
        """
        for entity in result.entities_added:
            self.add_entity(entity)

        for relationship in result.relationships_removed:
            self.remove_relationship(relationship)

        for update in result.strength_updates:
            self.set_relationship_strength(update.relationship, update.strength)

        for modification in result.entities_modified:
            self.update_entity(modification.id, modification.changes)

        for relationship in result.relationships_added:
            self.add_relationship(relationship)
            self.record_relationship_formation(relationship.src, relationship.kind)

        for adjustment in result.relationships_adjusted:
            if not self.adjust_relationship_strength(
                adjustment.kind, adjustment.src, adjustment.dst, adjustment.delta
            ):
                logger.debug(
                    "No %s relationship %s -> %s to adjust",
                    adjustment.kind,
                    adjustment.src,
                    adjustment.dst,
                )

        for relationship in result.relationships_archived:
            self.archive_relationship(relationship)

        for pressure_id, delta in result.pressure_changes.items():
            self.modify_pressure(pressure_id, delta)

        self.protected_violations.extend(result.violations)

    def commit_mutation(self, result: MutationResult) -> None:
        if not result.applied:
            raise GraphStoreError(f"Refusing to commit a failed mutation: {result.diagnostic}")
        self.commit(SystemResult.from_mutation(result))

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def check_integrity(self) -> list[str]:
        """Describe any disagreement between the canonical list and the mirrors."""
        problems: list[str] = []
        canonical = {id(r) for r in self._relationships}

        for rel in self._relationships:
            for endpoint_id in (rel.src, rel.dst):
                endpoint = self._entities.get(endpoint_id)
                if endpoint is None:
                    problems.append(f"{rel.describe()}: endpoint {endpoint_id} missing")
                elif not any(link is rel for link in endpoint.links):
                    problems.append(f"{rel.describe()}: not mirrored on {endpoint_id}")

        for entity in self._entities.values():
            for link in entity.links:
                if id(link) not in canonical:
                    problems.append(f"{entity.id}: stale link {link.describe()}")
        return problems

    def summary(self) -> dict[str, Any]:
        kinds: dict[str, int] = defaultdict(int)
        for entity in self._entities.values():
            kinds[entity.kind] += 1
        rel_kinds: dict[str, int] = defaultdict(int)
        for rel in self._relationships:
            rel_kinds[rel.kind] += 1
        return {
            "tick": self.tick,
            "entities": self.entity_count,
            "relationships": self.relationship_count,
            "entity_kinds": dict(kinds),
            "relationship_kinds": dict(rel_kinds),
            "pressures": dict(self.pressures),
            "era": self.current_era.name if self.current_era else None,
            "protected_violations": len(self.protected_violations),
        }
