"""Declarative rule evaluation: selection, metrics, conditions and mutations."""

from .conditions import (
    Condition,
    ConditionResult,
    MetricThreshold,
    check_threshold,
    evaluate_condition,
    evaluate_conditions,
    resolve_threshold,
)
from .context import RuleContext
from .filters import SelectionFilter, apply_selection_filters
from .graph_path import GraphPathAssertion, evaluate_graph_path
from .metrics import MetricConfig, MetricResult, MetricType, calculate_metric
from .mutations import Mutation, prepare_mutation, prepare_mutations
from .probability import roll_probability, scale_probability
from .resolver import ActionEntityResolver, EntityResolver, LiteralEntityResolver
from .selection import PickStrategy, SelectionRule, SelectionTrace, select_entities

__all__ = [
    "ActionEntityResolver",
    "Condition",
    "ConditionResult",
    "EntityResolver",
    "GraphPathAssertion",
    "LiteralEntityResolver",
    "MetricConfig",
    "MetricResult",
    "MetricThreshold",
    "MetricType",
    "Mutation",
    "PickStrategy",
    "RuleContext",
    "SelectionFilter",
    "SelectionRule",
    "SelectionTrace",
    "apply_selection_filters",
    "calculate_metric",
    "check_threshold",
    "evaluate_condition",
    "evaluate_conditions",
    "evaluate_graph_path",
    "prepare_mutation",
    "prepare_mutations",
    "resolve_threshold",
    "roll_probability",
    "scale_probability",
    "select_entities",
]
