"""Condition evaluation.

Two layers live here. ``MetricThreshold`` compares a metric value against a
literal or prominence-scaled threshold; the connection-evolution factory
uses it for its rules. The ``Condition`` union is the general condition
language used by action actors and compound mutations. Every evaluation
returns a ``ConditionResult``; an unrecognised condition type passes.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import Discriminator, Field, Tag, field_validator

from ..config import get_settings
from ..models.entities import Entity, TagValue, prominence_index
from ..models.relationships import Direction
from .base import RuleModel, UnknownVariant, variant_tag
from .context import RuleContext
from .graph_path import GraphPathAssertion, evaluate_graph_path
from .metrics import MetricConfig, calculate_metric

logger = logging.getLogger(__name__)

PROMINENCE_SCALED = "prominence_scaled"


@dataclass
class ConditionResult:
    passed: bool
    diagnostic: str = ""
    details: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Operators and thresholds
# ---------------------------------------------------------------------------


class ComparisonOperator(str, Enum):
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


_OPERATOR_ALIASES = {
    "=": "==",
    "eq": "==",
    "ne": "!=",
    "≠": "!=",
    "lt": "<",
    "le": "<=",
    "≤": "<=",
    "gt": ">",
    "ge": ">=",
    "≥": ">=",
}


def normalize_operator(value: Any) -> Any:
    if isinstance(value, str):
        return _OPERATOR_ALIASES.get(value.strip(), value.strip())
    return value


def compare(value: float, operator: ComparisonOperator, threshold: float) -> bool:
    if operator == ComparisonOperator.EQ:
        return value == threshold
    if operator == ComparisonOperator.NE:
        return value != threshold
    if operator == ComparisonOperator.LT:
        return value < threshold
    if operator == ComparisonOperator.LE:
        return value <= threshold
    if operator == ComparisonOperator.GT:
        return value > threshold
    return value >= threshold


def _default_multiplier() -> float:
    return get_settings().prominence_multiplier


class MetricThreshold(RuleModel):
    """``value <operator> threshold``; threshold may be ``prominence_scaled``."""

    operator: ComparisonOperator
    threshold: float | Literal["prominence_scaled"]
    multiplier: float = Field(default_factory=_default_multiplier)

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> Any:
        return normalize_operator(value)


def resolve_threshold(
    threshold: float | str, entity: Entity | None, multiplier: float
) -> float:
    """Literal thresholds pass through; scaled ones become (index + 1) * multiplier."""
    if threshold == PROMINENCE_SCALED:
        index = entity.prominence.index if entity is not None else 0
        return (index + 1) * multiplier
    return float(threshold)


def check_threshold(value: float, condition: MetricThreshold, entity: Entity | None) -> ConditionResult:
    threshold = resolve_threshold(condition.threshold, entity, condition.multiplier)
    passed = compare(value, condition.operator, threshold)
    return ConditionResult(
        passed=passed,
        diagnostic=f"{value} {condition.operator.value} {threshold}",
        details={"value": value, "threshold": threshold},
    )


# ---------------------------------------------------------------------------
# General conditions
# ---------------------------------------------------------------------------


class PressureCondition(RuleModel):
    type: Literal["pressure"]
    pressure_id: str
    min: float | None = None
    max: float | None = None


class PressureCompareCondition(RuleModel):
    type: Literal["pressure_compare"]
    pressure_a: str
    pressure_b: str
    operator: Literal[">", "<"] = ">"


class EntityCountCondition(RuleModel):
    type: Literal["entity_count"]
    kind: str
    subtype: str | None = None
    status: str | None = None
    min: int | None = None
    max: int | None = None
    overshoot_factor: float = 1.5


class RelationshipCountCondition(RuleModel):
    type: Literal["relationship_count"]
    entity: str = "$self"
    relationship_kind: str | None = None
    direction: Direction = Direction.BOTH
    min: int | None = None
    max: int | None = None


class RelationshipExistsCondition(RuleModel):
    type: Literal["relationship_exists"]
    entity: str = "$self"
    relationship_kind: str
    direction: Direction = Direction.BOTH
    target_kind: str | None = None
    target_subtype: str | None = None
    target_status: str | None = None


class TagExistsCondition(RuleModel):
    type: Literal["tag_exists"]
    entity: str = "$self"
    tag: str
    value: TagValue | None = None


class TagAbsentCondition(RuleModel):
    type: Literal["tag_absent"]
    entity: str = "$self"
    tag: str


class StatusCondition(RuleModel):
    type: Literal["status"]
    entity: str = "$self"
    status: str
    not_: bool = Field(default=False, alias="not")


class ProminenceCondition(RuleModel):
    type: Literal["prominence"]
    entity: str = "$self"
    min: str | None = None
    max: str | None = None


class TimeElapsedCondition(RuleModel):
    type: Literal["time_elapsed"]
    entity: str = "$self"
    min_ticks: int
    since: Literal["created", "updated"] = "created"


class EraMatchCondition(RuleModel):
    type: Literal["era_match"]
    eras: list[str]


class RandomChanceCondition(RuleModel):
    type: Literal["random_chance"]
    chance: float


class GraphPathCondition(RuleModel):
    type: Literal["graph_path"]
    entity: str = "$self"
    assert_: GraphPathAssertion = Field(alias="assert")


class EntityExistsCondition(RuleModel):
    type: Literal["entity_exists"]
    entity: str


class MetricCondition(RuleModel):
    type: Literal["metric"]
    entity: str = "$self"
    metric: MetricConfig
    operator: ComparisonOperator
    threshold: float | Literal["prominence_scaled"]
    multiplier: float = Field(default_factory=_default_multiplier)

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> Any:
        return normalize_operator(value)


class AndCondition(RuleModel):
    type: Literal["and"]
    conditions: list["Condition"]


class OrCondition(RuleModel):
    type: Literal["or"]
    conditions: list["Condition"]


class AlwaysCondition(RuleModel):
    type: Literal["always"]


_CONDITION_TYPES = {
    "pressure",
    "pressure_compare",
    "entity_count",
    "relationship_count",
    "relationship_exists",
    "tag_exists",
    "tag_absent",
    "status",
    "prominence",
    "time_elapsed",
    "era_match",
    "random_chance",
    "graph_path",
    "entity_exists",
    "metric",
    "and",
    "or",
    "always",
}

Condition = Annotated[
    Union[
        Annotated[PressureCondition, Tag("pressure")],
        Annotated[PressureCompareCondition, Tag("pressure_compare")],
        Annotated[EntityCountCondition, Tag("entity_count")],
        Annotated[RelationshipCountCondition, Tag("relationship_count")],
        Annotated[RelationshipExistsCondition, Tag("relationship_exists")],
        Annotated[TagExistsCondition, Tag("tag_exists")],
        Annotated[TagAbsentCondition, Tag("tag_absent")],
        Annotated[StatusCondition, Tag("status")],
        Annotated[ProminenceCondition, Tag("prominence")],
        Annotated[TimeElapsedCondition, Tag("time_elapsed")],
        Annotated[EraMatchCondition, Tag("era_match")],
        Annotated[RandomChanceCondition, Tag("random_chance")],
        Annotated[GraphPathCondition, Tag("graph_path")],
        Annotated[EntityExistsCondition, Tag("entity_exists")],
        Annotated[MetricCondition, Tag("metric")],
        Annotated[AndCondition, Tag("and")],
        Annotated[OrCondition, Tag("or")],
        Annotated[AlwaysCondition, Tag("always")],
        Annotated[UnknownVariant, Tag("unknown")],
    ],
    Discriminator(variant_tag(_CONDITION_TYPES)),
]

AndCondition.model_rebuild()
OrCondition.model_rebuild()


def _in_range(value: float, low: float | None, high: float | None) -> bool:
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def _missing(ref: str) -> ConditionResult:
    return ConditionResult(False, f"entity '{ref}' not found")


def evaluate_condition(condition, ctx: RuleContext) -> ConditionResult:
    """Evaluate one condition against the context's store and bindings."""
    store = ctx.store

    if isinstance(condition, PressureCondition):
        value = store.get_pressure(condition.pressure_id)
        passed = _in_range(value, condition.min, condition.max)
        return ConditionResult(passed, f"pressure {condition.pressure_id} = {value}", {"value": value})

    if isinstance(condition, PressureCompareCondition):
        a = store.get_pressure(condition.pressure_a)
        b = store.get_pressure(condition.pressure_b)
        passed = a > b if condition.operator == ">" else a < b
        return ConditionResult(passed, f"{condition.pressure_a}={a} {condition.operator} {condition.pressure_b}={b}")

    if isinstance(condition, EntityCountCondition):
        count = len(store.find_entities(condition.kind, condition.subtype, condition.status))
        if condition.min is not None and count < condition.min:
            return ConditionResult(False, f"{count} {condition.kind} < min {condition.min}")
        if condition.max is not None:
            ceiling = int(condition.max * condition.overshoot_factor)
            if count >= ceiling:
                return ConditionResult(False, f"{count} {condition.kind} >= {ceiling} (max with overshoot)")
        return ConditionResult(True, f"{count} {condition.kind}", {"count": count})

    if isinstance(condition, RelationshipCountCondition):
        entity = ctx.resolve(condition.entity)
        if entity is None:
            return _missing(condition.entity)
        count = len(store.get_relationships(entity.id, condition.relationship_kind, condition.direction))
        passed = _in_range(count, condition.min, condition.max)
        return ConditionResult(passed, f"{entity.id} has {count} relationships", {"count": count})

    if isinstance(condition, RelationshipExistsCondition):
        entity = ctx.resolve(condition.entity)
        if entity is None:
            return _missing(condition.entity)
        for other in store.get_related_entities(entity.id, condition.relationship_kind, condition.direction):
            if condition.target_kind and other.kind != condition.target_kind:
                continue
            if condition.target_subtype and other.subtype != condition.target_subtype:
                continue
            if condition.target_status and other.status != condition.target_status:
                continue
            return ConditionResult(True, f"{entity.id} -[{condition.relationship_kind}]- {other.id}")
        return ConditionResult(False, f"{entity.id} has no matching {condition.relationship_kind}")

    if isinstance(condition, TagExistsCondition):
        entity = ctx.resolve(condition.entity)
        if entity is None:
            return _missing(condition.entity)
        return ConditionResult(entity.has_tag(condition.tag, condition.value), f"tag {condition.tag} on {entity.id}")

    if isinstance(condition, TagAbsentCondition):
        entity = ctx.resolve(condition.entity)
        if entity is None:
            return ConditionResult(True, f"entity '{condition.entity}' not found; tag absent")
        return ConditionResult(condition.tag not in entity.tags, f"tag {condition.tag} absent on {entity.id}")

    if isinstance(condition, StatusCondition):
        entity = ctx.resolve(condition.entity)
        if entity is None:
            return _missing(condition.entity)
        matches = entity.status == condition.status
        return ConditionResult(matches != condition.not_, f"{entity.id} status {entity.status}")

    if isinstance(condition, ProminenceCondition):
        entity = ctx.resolve(condition.entity)
        if entity is None:
            return _missing(condition.entity)
        index = entity.prominence.index
        low = prominence_index(condition.min)
        high = prominence_index(condition.max)
        passed = _in_range(index, low, high)
        return ConditionResult(passed, f"{entity.id} prominence {entity.prominence.value}")

    if isinstance(condition, TimeElapsedCondition):
        entity = ctx.resolve(condition.entity)
        if entity is None:
            return _missing(condition.entity)
        since = entity.created_at if condition.since == "created" else entity.updated_at
        elapsed = store.tick - since
        return ConditionResult(elapsed >= condition.min_ticks, f"{elapsed} ticks since {condition.since}")

    if isinstance(condition, EraMatchCondition):
        era = store.current_era
        passed = era is not None and era.id in condition.eras
        return ConditionResult(passed, f"current era {era.id if era else None}")

    if isinstance(condition, RandomChanceCondition):
        roll = ctx.rng.random()
        return ConditionResult(roll < condition.chance, f"rolled {roll:.3f} vs {condition.chance}")

    if isinstance(condition, GraphPathCondition):
        entity = ctx.resolve(condition.entity)
        if entity is None:
            return _missing(condition.entity)
        passed = evaluate_graph_path(entity, condition.assert_, ctx.resolver)
        return ConditionResult(passed, f"graph path {condition.assert_.check} from {entity.id}")

    if isinstance(condition, EntityExistsCondition):
        entity = ctx.resolve(condition.entity)
        return ConditionResult(entity is not None, f"entity '{condition.entity}'")

    if isinstance(condition, MetricCondition):
        entity = ctx.resolve(condition.entity)
        if entity is None:
            return _missing(condition.entity)
        metric = calculate_metric(entity, condition.metric, store)
        threshold = MetricThreshold(
            operator=condition.operator,
            threshold=condition.threshold,
            multiplier=condition.multiplier,
        )
        result = check_threshold(metric.value, threshold, entity)
        result.details["metric"] = metric.diagnostic
        return result

    if isinstance(condition, AndCondition):
        for sub in condition.conditions:
            result = evaluate_condition(sub, ctx)
            if not result.passed:
                return ConditionResult(False, f"and: {result.diagnostic}")
        return ConditionResult(True, "and: all passed")

    if isinstance(condition, OrCondition):
        diagnostics = []
        for sub in condition.conditions:
            result = evaluate_condition(sub, ctx)
            if result.passed:
                return ConditionResult(True, f"or: {result.diagnostic}")
            diagnostics.append(result.diagnostic)
        return ConditionResult(False, "or: none passed (" + "; ".join(diagnostics) + ")")

    if isinstance(condition, AlwaysCondition):
        return ConditionResult(True, "always")

    logger.warning("Unknown condition type '%s' passes", getattr(condition, "type", condition))
    return ConditionResult(True, f"unknown condition type '{getattr(condition, 'type', '?')}'")


def evaluate_conditions(conditions: list, ctx: RuleContext) -> ConditionResult:
    """AND a list of conditions; reports the first failure."""
    for condition in conditions:
        result = evaluate_condition(condition, ctx)
        if not result.passed:
            return result
    return ConditionResult(True, "all conditions passed")
