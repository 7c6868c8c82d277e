"""Connection evolution: systems built from ``{selection, metric, rules}``.

Each run selects candidates, scores them with a metric (plus any subtype
bonus) and evaluates every rule in declared order. A rule whose threshold
passes and whose probability roll succeeds either mutates the entity
itself, or, for ``between_matching`` rules, enrolls the entity in a pool
that is paired up after scoring. Pairs already related, pairs joined by an
excluded kind and pairs that would merge into an oversized component are
skipped.
"""

import logging
import random
from itertools import combinations
from typing import Sequence

import networkx as nx
from pydantic import Field, model_validator

from ..graph.store import GraphStore
from ..models.entities import Entity
from ..models.relationships import Relationship
from ..models.results import MutationResult, SystemResult
from ..rules.base import RuleModel
from ..rules.conditions import MetricThreshold, check_threshold
from ..rules.context import RuleContext
from ..rules.metrics import MetricConfig, calculate_metric
from ..rules.mutations import CreateRelationshipMutation, Mutation, prepare_mutation, prepare_mutations
from ..rules.probability import roll_probability
from ..rules.resolver import LiteralEntityResolver
from ..rules.selection import SelectionRule, select_entities
from .base import SimulationSystem

logger = logging.getLogger(__name__)


class SubtypeBonus(RuleModel):
    subtype: str
    bonus: float


class ComponentSizeLimit(RuleModel):
    """Cap on the connected-component size pairwise creation may produce.

    Components are measured over ``relationship_kinds``; when empty, over
    the kind the rule creates.
    """

    max: int = Field(ge=1)
    relationship_kinds: list[str] = Field(default_factory=list)


class EvolutionRule(RuleModel):
    condition: MetricThreshold
    probability: float = Field(default=1.0, ge=0.0, le=1.0)
    action: Mutation
    between_matching: bool = False

    @model_validator(mode="after")
    def _pairwise_creates(self) -> "EvolutionRule":
        if self.between_matching and not isinstance(self.action, CreateRelationshipMutation):
            raise ValueError("between_matching rules must use a create_relationship action")
        return self


class ConnectionEvolutionConfig(RuleModel):
    id: str
    name: str = ""
    description: str = ""
    selection: SelectionRule
    metric: MetricConfig
    rules: list[EvolutionRule]
    subtype_bonuses: list[SubtypeBonus] = Field(default_factory=list)
    pair_exclude_relationships: list[str] = Field(default_factory=list)
    pair_component_size_limit: ComponentSizeLimit | None = None
    throttle_chance: float = Field(default=1.0, ge=0.0, le=1.0)
    pressure_changes: dict[str, float] = Field(default_factory=dict)


class ComponentIndex:
    """Kind-filtered adjacency over the store, grown as pairs are accepted."""

    def __init__(
        self, store: GraphStore, kinds: frozenset[str], pending: Sequence[Relationship] = ()
    ):
        self.graph = nx.Graph()
        for rel in [*store.relationships(), *pending]:
            if rel.kind in kinds:
                self.graph.add_edge(rel.src, rel.dst)

    def component_size(self, node: str) -> int:
        if node not in self.graph:
            return 1
        return len(nx.node_connected_component(self.graph, node))

    def merged_size(self, a: str, b: str) -> int:
        if a in self.graph and b in self.graph and nx.has_path(self.graph, a, b):
            return self.component_size(a)
        return self.component_size(a) + self.component_size(b)

    def connect(self, a: str, b: str) -> None:
        self.graph.add_edge(a, b)


class ConnectionEvolutionSystem(SimulationSystem):
    def __init__(self, config: ConnectionEvolutionConfig):
        self.config = config
        self.id = config.id
        self.name = config.name or config.id

    def apply(self, store: GraphStore, rng: random.Random, modifier: float = 1.0) -> SystemResult:
        config = self.config
        if config.throttle_chance < 1.0 and rng.random() >= config.throttle_chance:
            return self._result(f"{self.name}: throttled")

        resolver = LiteralEntityResolver(store)
        candidates = select_entities(config.selection, resolver, rng)

        accepted_units = MutationResult()
        pools: dict[int, list[Entity]] = {}

        for entity in candidates:
            value = calculate_metric(entity, config.metric, store).value
            value += self._subtype_bonus(entity)
            ctx = RuleContext(store=store, rng=rng, resolver=resolver, self_entity=entity)

            # Every non-pairwise action for this entity commits or none does.
            unit = MutationResult()
            failed = False
            for index, rule in enumerate(config.rules):
                if not check_threshold(value, rule.condition, entity).passed:
                    continue
                if not roll_probability(rule.probability, rng, modifier):
                    continue
                if rule.between_matching:
                    pools.setdefault(index, []).append(entity)
                    continue
                result = prepare_mutation(rule.action, ctx)
                if not result.applied:
                    logger.debug("%s: %s dropped: %s", self.id, entity.id, result.diagnostic)
                    failed = True
                    break
                unit.extend(result)
            if not failed:
                accepted_units.extend(unit)

        relationships = accepted_units.relationships_created + self._form_pairs(
            store, rng, resolver, pools, accepted_units.relationships_created
        )
        modifications = accepted_units.entity_modifications
        modified_ids = {m.id for m in modifications}

        pressure_changes = dict(accepted_units.pressure_changes)
        if modifications or relationships or accepted_units.relationships_adjusted:
            for pressure_id, delta in config.pressure_changes.items():
                pressure_changes[pressure_id] = pressure_changes.get(pressure_id, 0.0) + delta

        return self._result(
            f"{self.name}: {len(modified_ids)} modified, {len(relationships)} relationships",
            entities_modified=modifications,
            relationships_added=relationships,
            relationships_adjusted=accepted_units.relationships_adjusted,
            relationships_archived=accepted_units.relationships_archived,
            pressure_changes=pressure_changes,
            details={"candidates": len(candidates)},
        )

    def _subtype_bonus(self, entity: Entity) -> float:
        return sum(b.bonus for b in self.config.subtype_bonuses if b.subtype == entity.subtype)

    @staticmethod
    def _linked(store: GraphStore, staged: list[Relationship], a: str, b: str, kind: str) -> bool:
        """Whether ``kind`` joins a and b in the store or among this run's staged edges."""
        if store.has_relationship(a, b, kind, any_direction=True):
            return True
        return any(r.kind == kind and r.connects(a, b) for r in staged)

    def _excluded(self, store: GraphStore, staged: list[Relationship], a: str, b: str) -> bool:
        return any(
            self._linked(store, staged, a, b, kind) for kind in self.config.pair_exclude_relationships
        )

    def _form_pairs(
        self,
        store: GraphStore,
        rng: random.Random,
        resolver: LiteralEntityResolver,
        pools: dict[int, list[Entity]],
        pending: list[Relationship],
    ) -> list[Relationship]:
        created: list[Relationship] = []
        indexes: dict[frozenset[str], ComponentIndex] = {}
        limit = self.config.pair_component_size_limit

        for index, members in pools.items():
            action: CreateRelationshipMutation = self.config.rules[index].action
            pairwise = action.model_copy(update={"src": "$member", "dst": "$member2"})
            component_index = None
            if limit is not None:
                kinds = frozenset(limit.relationship_kinds or [action.kind])
                component_index = indexes.get(kinds)
                if component_index is None:
                    component_index = indexes[kinds] = ComponentIndex(store, kinds, pending + created)

            for a, b in combinations(members, 2):
                staged = pending + created
                if self._linked(store, staged, a.id, b.id, action.kind):
                    continue
                if self._excluded(store, staged, a.id, b.id):
                    continue
                if component_index is not None and component_index.merged_size(a.id, b.id) > limit.max:
                    logger.debug("%s: %s-%s would exceed component limit", self.id, a.id, b.id)
                    continue

                ctx = RuleContext(
                    store=store,
                    rng=rng,
                    resolver=resolver,
                    self_entity=a,
                    bindings={"member": a, "member2": b},
                )
                result = prepare_mutations([pairwise], ctx)
                if not result.applied:
                    continue
                created.extend(result.relationships_created)
                if component_index is not None:
                    component_index.connect(a.id, b.id)
                    # Other indexes tracking this kind see the new edge too.
                    for kinds, other in indexes.items():
                        if other is not component_index and action.kind in kinds:
                            other.connect(a.id, b.id)
        return created
