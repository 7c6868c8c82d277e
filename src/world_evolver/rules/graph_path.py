"""Multi-hop graph path assertions.

A path walks from a start entity through a chain of steps. Each step
follows one relationship kind in a direction, optionally narrowing the
reached entities by kind, subtype or status, and may name the reached set
(``as``) so later ``where`` constraints can refer to it.
"""

import logging
from typing import Annotated, Literal, Union

from pydantic import Discriminator, Field, Tag

from ..models.entities import Entity
from ..models.relationships import Direction
from .base import RuleModel, UnknownVariant, variant_tag
from .resolver import EntityResolver

logger = logging.getLogger(__name__)

ANY = "any"


class PathStep(RuleModel):
    via: str
    direction: Literal["out", "in", "any"] = "out"
    target_kind: str | None = None
    target_subtype: str | None = None
    target_status: str | None = None
    as_: str | None = Field(default=None, alias="as")


class NotInConstraint(RuleModel):
    type: Literal["not_in"]
    set: str


class InConstraint(RuleModel):
    type: Literal["in"]
    set: str


class NotSelfConstraint(RuleModel):
    type: Literal["not_self"]


class LacksRelationshipConstraint(RuleModel):
    type: Literal["lacks_relationship"]
    kind: str
    with_: str = Field(default="$self", alias="with")
    direction: Direction = Direction.BOTH


class HasRelationshipConstraint(RuleModel):
    type: Literal["has_relationship"]
    kind: str
    with_: str = Field(default="$self", alias="with")
    direction: Direction = Direction.BOTH


class KindEqualsConstraint(RuleModel):
    type: Literal["kind_equals"]
    kind: str


class SubtypeEqualsConstraint(RuleModel):
    type: Literal["subtype_equals"]
    subtype: str


PathConstraint = Annotated[
    Union[
        Annotated[NotInConstraint, Tag("not_in")],
        Annotated[InConstraint, Tag("in")],
        Annotated[NotSelfConstraint, Tag("not_self")],
        Annotated[LacksRelationshipConstraint, Tag("lacks_relationship")],
        Annotated[HasRelationshipConstraint, Tag("has_relationship")],
        Annotated[KindEqualsConstraint, Tag("kind_equals")],
        Annotated[SubtypeEqualsConstraint, Tag("subtype_equals")],
        Annotated[UnknownVariant, Tag("unknown")],
    ],
    Discriminator(
        variant_tag(
            {
                "not_in",
                "in",
                "not_self",
                "lacks_relationship",
                "has_relationship",
                "kind_equals",
                "subtype_equals",
            }
        )
    ),
]


class GraphPathAssertion(RuleModel):
    """``check`` the number of entities reached at the end of ``path``.

    ``count`` defaults to 1 for ``count_min`` and 0 for ``count_max``.
    """

    check: Literal["exists", "not_exists", "count_min", "count_max"] = "exists"
    path: list[PathStep]
    count: int | None = None
    where: list[PathConstraint] = Field(default_factory=list)


def _step_matches(entity: Entity, step: PathStep) -> bool:
    if step.target_kind and step.target_kind != ANY and entity.kind != step.target_kind:
        return False
    if step.target_subtype and step.target_subtype != ANY and entity.subtype != step.target_subtype:
        return False
    if step.target_status and step.target_status != ANY and entity.status != step.target_status:
        return False
    return True


def _set_name(name: str) -> str:
    return name[1:] if name.startswith("$") else name


def _resolve_with(
    ref: str, start: Entity, resolver: EntityResolver
) -> Entity | None:
    if ref == "$self":
        return start
    return resolver.resolve_entity(ref)


def _passes(
    entity: Entity,
    constraint,
    start: Entity,
    named: dict[str, set[str]],
    resolver: EntityResolver,
) -> bool:
    store = resolver.store
    if isinstance(constraint, NotInConstraint):
        return entity.id not in named.get(_set_name(constraint.set), set())
    if isinstance(constraint, InConstraint):
        return entity.id in named.get(_set_name(constraint.set), set())
    if isinstance(constraint, NotSelfConstraint):
        return entity.id != start.id
    if isinstance(constraint, (LacksRelationshipConstraint, HasRelationshipConstraint)):
        other = _resolve_with(constraint.with_, start, resolver)
        connected = other is not None and any(
            link.other(entity.id) == other.id
            for link in store.get_relationships(entity.id, constraint.kind, constraint.direction)
        )
        if isinstance(constraint, HasRelationshipConstraint):
            return connected
        return not connected
    if isinstance(constraint, KindEqualsConstraint):
        return entity.kind == constraint.kind
    if isinstance(constraint, SubtypeEqualsConstraint):
        return entity.subtype == constraint.subtype

    logger.warning("Unknown graph path constraint '%s' ignored", constraint.type)
    return True


def traverse(start: Entity, assertion: GraphPathAssertion, resolver: EntityResolver) -> list[Entity]:
    """Entities reached at the end of the path, deduplicated, in walk order."""
    store = resolver.store
    named: dict[str, set[str]] = {}
    frontier = [start]

    for step in assertion.path:
        direction = Direction.coerce(step.direction)
        reached: list[Entity] = []
        seen: set[str] = set()
        for entity in frontier:
            for related in store.get_related_entities(entity.id, step.via, direction):
                if related.id in seen or not _step_matches(related, step):
                    continue
                seen.add(related.id)
                reached.append(related)
        if step.as_:
            named[_set_name(step.as_)] = seen
        frontier = reached
        if not frontier:
            break

    return [
        entity
        for entity in frontier
        if all(_passes(entity, c, start, named, resolver) for c in assertion.where)
    ]


def evaluate_graph_path(
    start: Entity, assertion: GraphPathAssertion, resolver: EntityResolver
) -> bool:
    count = len(traverse(start, assertion, resolver))
    if assertion.check == "exists":
        return count > 0
    if assertion.check == "not_exists":
        return count == 0
    if assertion.check == "count_min":
        return count >= (1 if assertion.count is None else assertion.count)
    return count <= (0 if assertion.count is None else assertion.count)
