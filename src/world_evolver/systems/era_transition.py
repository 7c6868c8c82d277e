"""Era progression.

Eras are entities of the reserved ``era`` kind whose subtype is the era's
id in the domain configuration. They move ``future -> current ->
superseded`` and never back. Era entities are spawned lazily: the first
one when no era is current, each following one when its predecessor ends.
"""

import logging
import random

from pydantic import BaseModel, Field

from ..graph.store import GraphStore
from ..models.domain import (
    ACTIVE_DURING,
    SUPERSEDES,
    EntityCountTransition,
    EraDefinition,
    PressureTransition,
    TimeTransition,
)
from ..models.entities import ERA_KIND, Entity, EraStatus, Prominence, Temporal
from ..models.relationships import Relationship
from ..models.results import EntityModification, SystemResult
from .base import SimulationSystem

logger = logging.getLogger(__name__)


class EraTransitionConfig(BaseModel):
    id: str = "era_transition"
    name: str = "Era Progression"
    min_era_length: int = Field(default=50, ge=0)
    transition_cooldown: int = Field(default=10, ge=0)
    max_linked_entities: int = Field(default=10, ge=0)


def era_entity_id(era_id: str) -> str:
    return f"era:{era_id}"


def build_era_entity(definition: EraDefinition, tick: int, status: EraStatus) -> Entity:
    return Entity(
        id=era_entity_id(definition.id),
        kind=ERA_KIND,
        subtype=definition.id,
        name=definition.name,
        description=definition.description,
        status=status.value,
        prominence=Prominence.MYTHIC,
        created_at=tick,
        updated_at=tick,
        temporal=Temporal(start_tick=tick) if status == EraStatus.CURRENT else None,
    )


class EraTransition(SimulationSystem):
    def __init__(self, config: EraTransitionConfig | None = None):
        self.config = config or EraTransitionConfig()
        self.id = self.config.id
        self.name = self.config.name

    def apply(self, store: GraphStore, rng: random.Random, modifier: float = 1.0) -> SystemResult:
        config = self.config
        current = store.current_era_entity()
        if current is None:
            return self._activate_first(store)

        age = store.tick - current.created_at
        if age < config.min_era_length:
            return self._result(f"{current.name} continues ({age}/{config.min_era_length} ticks)")

        start = self._start_tick(current)
        if store.tick - start < config.transition_cooldown:
            return self._result(f"{current.name} stabilizing")

        definition = store.domain.era(current.subtype)
        if not self._should_transition(current, definition, store):
            return self._result(f"{current.name} persists")

        next_entity, spawned = self._next_era(current, store)
        if next_entity is None:
            return self._result(f"{current.name} endures (final era)")

        tick = store.tick
        modifications = [
            EntityModification(
                current.id,
                {
                    "status": EraStatus.SUPERSEDED.value,
                    "temporal": Temporal(start_tick=start, end_tick=tick),
                },
            )
        ]
        if not spawned:
            modifications.append(
                EntityModification(
                    next_entity.id,
                    {"status": EraStatus.CURRENT.value, "temporal": Temporal(start_tick=tick)},
                )
            )

        relationships = [
            Relationship(
                kind=SUPERSEDES,
                src=next_entity.id,
                dst=current.id,
                strength=1.0,
                distance=self._distance(current, next_entity, store),
            )
        ]
        prominent = [
            e
            for e in store.entities()
            if not e.is_era
            and e.prominence.index >= Prominence.RECOGNIZED.index
            and start <= e.created_at < tick
        ]
        linked = prominent[: config.max_linked_entities]
        for entity in linked:
            relationships.append(
                Relationship(kind=ACTIVE_DURING, src=entity.id, dst=current.id, strength=1.0)
            )

        pressure_changes: dict[str, float] = {}
        next_definition = store.domain.era(next_entity.subtype)
        for effects in (
            definition.transition_effects if definition else {},
            next_definition.entry_effects if next_definition else {},
        ):
            for pressure_id, delta in effects.items():
                pressure_changes[pressure_id] = pressure_changes.get(pressure_id, 0.0) + delta

        logger.info("Tick %s: era %s ends, %s begins", tick, current.name, next_entity.name)
        return self._result(
            f"Era transition: {current.name} → {next_entity.name} "
            f"({len(linked)} entities linked)",
            entities_added=[next_entity] if spawned else [],
            entities_modified=modifications,
            relationships_added=relationships,
            pressure_changes=pressure_changes,
        )

    def _activate_first(self, store: GraphStore) -> SystemResult:
        tick = store.tick
        future = store.find_entities(kind=ERA_KIND, status=EraStatus.FUTURE.value)
        if future:
            era = future[0]
            definition = store.domain.era(era.subtype)
            return self._result(
                f"{era.name} begins",
                entities_modified=[
                    EntityModification(
                        era.id,
                        {"status": EraStatus.CURRENT.value, "temporal": Temporal(start_tick=tick)},
                    )
                ],
                pressure_changes=dict(definition.entry_effects) if definition else {},
            )

        if store.era_entities() or not store.domain.eras:
            return self._result("No eras to activate")

        definition = store.domain.eras[0]
        era = build_era_entity(definition, tick, EraStatus.CURRENT)
        logger.info("Tick %s: first era %s begins", tick, definition.name)
        return self._result(
            f"{era.name} begins",
            entities_added=[era],
            pressure_changes=dict(definition.entry_effects),
        )

    @staticmethod
    def _start_tick(era: Entity) -> int:
        if era.temporal is not None and era.temporal.start_tick is not None:
            return era.temporal.start_tick
        return era.created_at

    def _should_transition(
        self, era: Entity, definition: EraDefinition | None, store: GraphStore
    ) -> bool:
        elapsed = store.tick - self._start_tick(era)
        conditions = definition.transition_conditions if definition else None
        if conditions is None:
            return elapsed > self.config.min_era_length * 2

        for condition in conditions:
            if isinstance(condition, PressureTransition):
                pressure = store.get_pressure(condition.pressure_id)
                met = (
                    pressure > condition.threshold
                    if condition.operator == "above"
                    else pressure < condition.threshold
                )
            elif isinstance(condition, EntityCountTransition):
                count = len(
                    store.find_entities(condition.entity_kind, condition.subtype, condition.status)
                )
                met = (
                    count > condition.threshold
                    if condition.operator == "above"
                    else count < condition.threshold
                )
            elif isinstance(condition, TimeTransition):
                met = elapsed > condition.min_ticks
            else:
                logger.warning("Unknown era transition condition '%s' passes", condition.type)
                met = True
            if not met:
                return False
        return True

    @staticmethod
    def _next_era(current: Entity, store: GraphStore) -> tuple[Entity | None, bool]:
        """Next era entity and whether it still has to be added to the store."""
        future = store.find_entities(kind=ERA_KIND, status=EraStatus.FUTURE.value)
        if future:
            return future[0], False

        order = [e.id for e in store.domain.eras]
        if current.subtype not in order:
            return None, False
        position = order.index(current.subtype)
        for definition in store.domain.eras[position + 1 :]:
            if not store.has_entity(era_entity_id(definition.id)):
                return build_era_entity(definition, store.tick, EraStatus.CURRENT), True
        return None, False

    @staticmethod
    def _distance(older: Entity, newer: Entity, store: GraphStore) -> float:
        """Gap between two eras as a fraction of the whole era sequence."""
        order = [e.id for e in store.domain.eras]
        if older.subtype not in order or newer.subtype not in order or len(order) < 2:
            return 1.0
        gap = abs(order.index(newer.subtype) - order.index(older.subtype))
        return gap / (len(order) - 1)
