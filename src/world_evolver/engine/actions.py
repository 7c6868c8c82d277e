"""Declarative actions performed by catalyst entities.

An action runs in four stages: find the instigator, check the actor's
conditions, pick targets, then prepare the outcome mutations as a single
batch. Any failing stage produces a failed ``ActionResult`` with a reason
and nothing is committed.
"""

import logging
import random
import re
from typing import Any, Literal

from pydantic import Field, ValidationError

from ..errors import ActionConfigError
from ..graph.store import GraphStore
from ..models.entities import Entity
from ..models.relationships import Direction
from ..models.results import ActionResult, FailureReason
from ..rules.base import RuleModel
from ..rules.conditions import Condition, evaluate_conditions
from ..rules.context import RuleContext
from ..rules.filters import ExcludeFilter, SelectionFilter, apply_selection_filters
from ..rules.mutations import CreateRelationshipMutation, Mutation, prepare_mutations
from ..rules.resolver import ActionEntityResolver
from ..rules.selection import PickStrategy, SelectionRule, select_entities

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"\{(\w+)\.(\w+)\}")


class PressureBand(RuleModel):
    pressure: str
    min: float | None = None
    max: float | None = None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


class InstigatorConfig(RuleModel):
    """Entity reached from the actor through ``relationship_kind``."""

    relationship_kind: str
    direction: Literal["in", "out"] = "out"
    kinds: list[str] = Field(default_factory=list)
    subtypes: list[str] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
    filters: list[SelectionFilter] = Field(default_factory=list)
    required: bool = False


class ActorConfig(RuleModel):
    kinds: list[str] = Field(default_factory=list)
    subtypes: list[str] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
    required_pressures: list[PressureBand] = Field(default_factory=list)
    conditions: list[Condition] = Field(default_factory=list)
    instigator: InstigatorConfig | None = None


class TargetingConfig(SelectionRule):
    pick_strategy: PickStrategy = PickStrategy.RANDOM
    exclude_self: bool = True
    select_two: bool = False

    @property
    def required_count(self) -> int:
        required = max(1, self.max_results or 0)
        return max(required, 2) if self.select_two else required


class ActionOutcome(RuleModel):
    mutations: list[Mutation] = Field(default_factory=list)
    description: str = "{actor.name} acts on {target.name}"


class PressureWeight(RuleModel):
    pressure: str
    multiplier: float


class ActionProbability(RuleModel):
    base_success_chance: float = Field(default=1.0, ge=0.0, le=1.0)
    base_weight: float = Field(default=1.0, ge=0.0)
    pressure_modifiers: list[PressureWeight] = Field(default_factory=list)


class ActionDefinition(RuleModel):
    id: str
    name: str = ""
    description: str = ""
    enabled: bool = True
    actor: ActorConfig = Field(default_factory=ActorConfig)
    targeting: TargetingConfig = Field(default_factory=TargetingConfig)
    outcome: ActionOutcome = Field(default_factory=ActionOutcome)
    probability: ActionProbability = Field(default_factory=ActionProbability)
    cooldown_ticks: int | None = None


def render_description(template: str, bindings: dict[str, Entity | None]) -> str:
    """Replace ``{slot.field}`` tokens; unknown slots or fields render empty."""

    def replace(match: re.Match) -> str:
        entity = bindings.get(match.group(1))
        if entity is None:
            return ""
        value = getattr(entity, match.group(2), None)
        if value is None or match.group(2) not in type(entity).model_fields:
            return ""
        return value.value if hasattr(value, "value") else str(value)

    return _TOKEN.sub(replace, template)


class ActionInterpreter:
    """Runs one action definition for a given actor."""

    def __init__(self, action: ActionDefinition):
        self.action = action

    @property
    def id(self) -> str:
        return self.action.id

    def weight(self, store: GraphStore) -> float:
        probability = self.action.probability
        weight = probability.base_weight
        for modifier in probability.pressure_modifiers:
            weight *= 1.0 + modifier.multiplier * store.get_pressure(modifier.pressure) / 100.0
        return max(0.0, weight)

    def can_act(self, actor: Entity, store: GraphStore) -> bool:
        """Cheap eligibility check on kind, subtype, status, pressures and cooldown."""
        config = self.action.actor
        if not self.action.enabled:
            return False
        if config.kinds and actor.kind not in config.kinds:
            return False
        if config.subtypes and actor.subtype not in config.subtypes:
            return False
        if config.statuses and actor.status not in config.statuses:
            return False
        for band in config.required_pressures:
            if not band.contains(store.get_pressure(band.pressure)):
                return False
        return not self._cooling_down(actor, store)

    def _cooling_down(self, actor: Entity, store: GraphStore) -> bool:
        cooldown = self.action.cooldown_ticks
        if not cooldown:
            return False
        for mutation in self.action.outcome.mutations:
            if isinstance(mutation, CreateRelationshipMutation):
                if not store.can_form_relationship(actor.id, mutation.kind, cooldown):
                    return True
        return False

    def find_instigator(self, actor: Entity, store: GraphStore) -> Entity | None:
        config = self.action.actor.instigator
        if config is None:
            return None
        direction = Direction.SRC if config.direction == "out" else Direction.DST
        candidates = [
            entity
            for entity in store.get_related_entities(actor.id, config.relationship_kind, direction)
            if (not config.kinds or entity.kind in config.kinds)
            and (not config.subtypes or entity.subtype in config.subtypes)
            and (not config.statuses or entity.status in config.statuses)
        ]
        if config.filters:
            resolver = ActionEntityResolver(store, actor=actor)
            candidates = apply_selection_filters(candidates, config.filters, resolver)
        return candidates[0] if candidates else None

    def execute(self, store: GraphStore, actor: Entity, rng: random.Random) -> ActionResult:
        action = self.action
        label = actor.label()
        common: dict[str, Any] = {"action_id": action.id, "actor_id": actor.id}

        instigator = self.find_instigator(actor, store)
        if action.actor.instigator and action.actor.instigator.required and instigator is None:
            return ActionResult.failed(
                FailureReason.NO_INSTIGATOR,
                f"{label} has no instigator to perform the action",
                **common,
            )
        common["instigator_id"] = instigator.id if instigator else None

        bindings: dict[str, Entity] = {"actor": actor, "self": actor}
        if instigator is not None:
            bindings["instigator"] = instigator
        ctx = RuleContext.for_action(store, rng, bindings)

        if not self.can_act(actor, store):
            return ActionResult.failed(
                FailureReason.ACTOR_CONDITIONS,
                f"{label} is not eligible for {action.name or action.id}",
                **common,
            )
        checked = evaluate_conditions(action.actor.conditions, ctx)
        if not checked.passed:
            return ActionResult.failed(
                FailureReason.ACTOR_CONDITIONS,
                f"{label} does not meet the conditions for {action.name or action.id}",
                diagnostic=checked.diagnostic,
                **common,
            )

        targets = self._select_targets(ctx, rng)
        kind_label = "/".join(action.targeting.candidate_kinds()) or "any"
        if len(targets) < action.targeting.required_count:
            return ActionResult.failed(
                FailureReason.NO_TARGET,
                f"{label} found no valid {kind_label} targets",
                diagnostic=f"needed {action.targeting.required_count}, found {len(targets)}",
                **common,
            )

        bindings["target"] = targets[0]
        if action.targeting.select_two:
            bindings["target2"] = targets[1]
        ctx = RuleContext.for_action(store, rng, bindings)
        common["target_ids"] = [t.id for t in targets]

        prepared = prepare_mutations(action.outcome.mutations, ctx)
        if not prepared.applied:
            return ActionResult.failed(
                FailureReason.MUTATION_FAILED,
                f"{label} could not complete {action.name or action.id}",
                diagnostic=prepared.diagnostic,
                **common,
            )

        description = render_description(action.outcome.description, bindings)
        logger.debug("Action %s by %s: %s", action.id, actor.id, description)
        return ActionResult(
            success=True,
            description=description,
            relationships=prepared.relationships_created,
            relationships_adjusted=prepared.relationships_adjusted,
            relationships_archived=prepared.relationships_archived,
            entities_modified=prepared.entity_modifications,
            pressure_changes=prepared.pressure_changes,
            diagnostic=prepared.diagnostic,
            **common,
        )

    def _select_targets(self, ctx: RuleContext, rng: random.Random) -> list[Entity]:
        targeting = self.action.targeting
        update: dict[str, Any] = {"max_results": targeting.required_count}
        if targeting.exclude_self:
            exclude = ExcludeFilter(type="exclude", entities=["$actor", "$instigator"])
            update["filters"] = [exclude, *targeting.filters]
        rule = targeting.model_copy(update=update)
        return select_entities(rule, ctx.resolver, rng)


def load_actions(raw_actions: list[dict[str, Any]]) -> list[ActionDefinition]:
    actions = []
    for raw in raw_actions:
        try:
            actions.append(ActionDefinition.model_validate(raw))
        except ValidationError as e:
            raise ActionConfigError(f"{raw.get('id', '?')}: invalid action: {e}") from e
    return actions
