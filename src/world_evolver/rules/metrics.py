"""Topology metrics computed for a single entity."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import Field

from ..graph.store import GraphStore
from ..models.entities import Entity
from ..models.relationships import Direction
from .base import RuleModel

logger = logging.getLogger(__name__)


class MetricType(str, Enum):
    CONNECTION_COUNT = "connection_count"
    RELATIONSHIP_COUNT = "relationship_count"
    SHARED_RELATIONSHIP = "shared_relationship"
    CATALYZED_EVENTS = "catalyzed_events"


class MetricConfig(RuleModel):
    type: MetricType
    relationship_kinds: list[str] = Field(default_factory=list)
    direction: Direction = Direction.BOTH
    min_strength: float | None = None
    # shared_relationship
    shared_relationship_kind: str | None = None
    shared_direction: Direction = Direction.SRC


@dataclass
class MetricResult:
    value: float
    diagnostic: str = ""
    details: dict[str, Any] = field(default_factory=dict)


def _strong_enough(strength: float, minimum: float | None) -> bool:
    return minimum is None or strength >= minimum


def _connection_count(entity: Entity, config: MetricConfig, store: GraphStore) -> MetricResult:
    kinds = set(config.relationship_kinds)
    links = [
        link
        for link in store.get_relationships(entity.id)
        if (not kinds or link.kind in kinds)
        and _strong_enough(link.effective_strength, config.min_strength)
    ]
    return MetricResult(
        value=len(links),
        diagnostic=f"{len(links)} connections",
        details={"kinds": sorted(kinds)},
    )


def _relationship_count(entity: Entity, config: MetricConfig, store: GraphStore) -> MetricResult:
    kinds = set(config.relationship_kinds)
    links = [
        link
        for link in store.get_relationships(entity.id, direction=config.direction)
        if (not kinds or link.kind in kinds)
        and _strong_enough(link.effective_strength, config.min_strength)
    ]
    return MetricResult(
        value=len(links),
        diagnostic=f"{len(links)} {'/'.join(sorted(kinds)) or 'any'} relationships ({config.direction.value})",
        details={"kinds": sorted(kinds), "direction": config.direction.value},
    )


def _hop(
    entity_id: str, kind: str, direction: Direction, min_strength: float | None, store: GraphStore
) -> set[str]:
    return {
        link.other(entity_id)
        for link in store.get_relationships(entity_id, kind, direction)
        if _strong_enough(link.effective_strength, min_strength)
    }


def _shared_relationship(entity: Entity, config: MetricConfig, store: GraphStore) -> MetricResult:
    kind = config.shared_relationship_kind
    if not kind:
        return MetricResult(value=0, diagnostic="no shared_relationship_kind configured")

    # One hop out to the shared destinations, then back to everyone else there.
    destinations = _hop(entity.id, kind, config.shared_direction, config.min_strength, store)
    back = {
        Direction.SRC: Direction.DST,
        Direction.DST: Direction.SRC,
        Direction.BOTH: Direction.BOTH,
    }[config.shared_direction]
    sharers: set[str] = set()
    for destination in destinations:
        sharers |= _hop(destination, kind, back, config.min_strength, store)
    sharers.discard(entity.id)

    return MetricResult(
        value=len(sharers),
        diagnostic=f"{len(sharers)} entities share {kind} with {entity.id}",
        details={"destinations": sorted(destinations), "sharers": sorted(sharers)},
    )


def _catalyzed_events(entity: Entity, config: MetricConfig, store: GraphStore) -> MetricResult:
    events = entity.catalyst.catalyzed_events if entity.catalyst else []
    return MetricResult(value=len(events), diagnostic=f"{len(events)} catalyzed events")


_METRICS = {
    MetricType.CONNECTION_COUNT: _connection_count,
    MetricType.RELATIONSHIP_COUNT: _relationship_count,
    MetricType.SHARED_RELATIONSHIP: _shared_relationship,
    MetricType.CATALYZED_EVENTS: _catalyzed_events,
}


def calculate_metric(entity: Entity, config: MetricConfig, store: GraphStore) -> MetricResult:
    result = _METRICS[config.type](entity, config, store)
    logger.debug("%s %s = %s", entity.id, config.type.value, result.value)
    return result
