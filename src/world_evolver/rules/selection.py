"""Selection rules: from a rule to an ordered list of entities.

Candidates are gathered by kind, narrowed by subtype and status
constraints, run through the filter chain, optionally narrowed by
preference filters and saturation limits, then picked.
"""

import logging
import random
from dataclasses import dataclass, field
from enum import Enum

from pydantic import Field

from ..models.entities import Entity
from ..models.relationships import Direction
from .base import RuleModel
from .filters import SelectionFilter, apply_selection_filter, apply_selection_filters, describe_filter
from .metrics import MetricConfig, calculate_metric
from .resolver import EntityResolver

logger = logging.getLogger(__name__)

ANY_KIND = "any"


class PickStrategy(str, Enum):
    ALL = "all"
    RANDOM = "random"
    FIRST = "first"
    WEIGHTED = "weighted"
    TOP_N = "top_n"


class SaturationLimit(RuleModel):
    """Drop entities already holding ``max_count`` relationships of a kind."""

    relationship_kind: str
    max_count: int
    direction: Direction = Direction.BOTH
    from_kind: str | None = None


class SelectionRule(RuleModel):
    kind: str | None = None
    kinds: list[str] = Field(default_factory=list)
    subtypes: list[str] = Field(default_factory=list)
    exclude_subtypes: list[str] = Field(default_factory=list)
    status: str | None = None
    statuses: list[str] = Field(default_factory=list)
    not_status: str | None = None
    filters: list[SelectionFilter] = Field(default_factory=list)
    prefer_filters: list[SelectionFilter] = Field(default_factory=list)
    saturation_limits: list[SaturationLimit] = Field(default_factory=list)
    pick_strategy: PickStrategy = PickStrategy.ALL
    max_results: int | None = Field(default=None, ge=0)
    rank_by: MetricConfig | None = None

    def candidate_kinds(self) -> list[str]:
        kinds = list(self.kinds)
        if self.kind:
            kinds.insert(0, self.kind)
        return kinds


@dataclass
class SelectionTraceStep:
    description: str
    remaining: int


@dataclass
class SelectionTrace:
    """Remaining-candidate counts after each selection step."""

    steps: list[SelectionTraceStep] = field(default_factory=list)

    def record(self, description: str, remaining: int) -> None:
        self.steps.append(SelectionTraceStep(description, remaining))

    def summary(self) -> str:
        return " -> ".join(f"{s.description}: {s.remaining}" for s in self.steps)


def _gather_candidates(rule: SelectionRule, resolver: EntityResolver) -> list[Entity]:
    kinds = rule.candidate_kinds()
    entities = resolver.store.entities()
    if not kinds or ANY_KIND in kinds:
        return entities
    wanted = set(kinds)
    return [e for e in entities if e.kind in wanted]


def _saturated(entity: Entity, limit: SaturationLimit, resolver: EntityResolver) -> bool:
    store = resolver.store
    count = 0
    for link in store.get_relationships(entity.id, limit.relationship_kind, limit.direction):
        if limit.from_kind:
            other = store.get_entity(link.other(entity.id))
            if other is None or other.kind != limit.from_kind:
                continue
        count += 1
    return count >= limit.max_count


def apply_pick_strategy(
    entities: list[Entity],
    strategy: PickStrategy,
    rng: random.Random,
    max_results: int | None = None,
    rank_by: MetricConfig | None = None,
    resolver: EntityResolver | None = None,
) -> list[Entity]:
    if not entities:
        return []

    if strategy == PickStrategy.RANDOM:
        count = min(max_results or 1, len(entities))
        return rng.sample(entities, count)

    if strategy == PickStrategy.FIRST:
        return entities[: max_results or 1]

    if strategy == PickStrategy.WEIGHTED:
        # Prominence-weighted sampling without replacement.
        pool = list(entities)
        picked: list[Entity] = []
        for _ in range(min(max_results or 1, len(pool))):
            weights = [e.prominence.index + 1 for e in pool]
            choice = rng.choices(range(len(pool)), weights=weights, k=1)[0]
            picked.append(pool.pop(choice))
        return picked

    if strategy == PickStrategy.TOP_N:
        if rank_by is None or resolver is None:
            logger.warning("top_n pick without rank_by metric; keeping store order")
            ranked = list(entities)
        else:
            scores = {e.id: calculate_metric(e, rank_by, resolver.store).value for e in entities}
            ranked = sorted(entities, key=lambda e: scores[e.id], reverse=True)
        return ranked[:max_results] if max_results else ranked

    if max_results:
        return entities[:max_results]
    return list(entities)


def select_entities(
    rule: SelectionRule,
    resolver: EntityResolver,
    rng: random.Random,
    trace: SelectionTrace | None = None,
) -> list[Entity]:
    """Resolve a selection rule to entities; an impossible rule yields []."""
    trace = trace if trace is not None else SelectionTrace()

    entities = _gather_candidates(rule, resolver)
    trace.record(f"kinds {rule.candidate_kinds() or ['any']}", len(entities))

    if rule.subtypes:
        entities = [e for e in entities if e.subtype in rule.subtypes]
        trace.record(f"subtypes {rule.subtypes}", len(entities))
    if rule.exclude_subtypes:
        entities = [e for e in entities if e.subtype not in rule.exclude_subtypes]
        trace.record(f"exclude subtypes {rule.exclude_subtypes}", len(entities))
    if rule.status:
        entities = [e for e in entities if e.status == rule.status]
        trace.record(f"status {rule.status}", len(entities))
    if rule.statuses:
        entities = [e for e in entities if e.status in rule.statuses]
        trace.record(f"statuses {rule.statuses}", len(entities))
    if rule.not_status:
        entities = [e for e in entities if e.status != rule.not_status]
        trace.record(f"not status {rule.not_status}", len(entities))

    for selection_filter in rule.filters:
        entities = apply_selection_filter(entities, selection_filter, resolver)
        trace.record(describe_filter(selection_filter), len(entities))

    if rule.prefer_filters and entities:
        preferred = apply_selection_filters(entities, rule.prefer_filters, resolver)
        if preferred:
            entities = preferred
        trace.record("prefer filters", len(entities))

    for limit in rule.saturation_limits:
        entities = [e for e in entities if not _saturated(e, limit, resolver)]
        trace.record(f"saturation {limit.relationship_kind} < {limit.max_count}", len(entities))

    picked = apply_pick_strategy(
        entities, rule.pick_strategy, rng, rule.max_results, rule.rank_by, resolver
    )
    trace.record(f"pick {rule.pick_strategy.value}", len(picked))
    logger.debug("Selection: %s", trace.summary())
    return picked
