"""Mutation primitives.

``prepare_mutation`` computes what a mutation would do against the current
store state and returns a ``MutationResult``; it never writes. The caller
commits results through ``GraphStore.commit_mutation`` once every mutation
of its unit has been prepared, so a batch whose member fails can simply be
dropped.
"""

import logging
from typing import Annotated, Literal, Union

from pydantic import Discriminator, Field, Tag

from ..models.relationships import Direction, Relationship
from ..models.results import EntityModification, MutationResult, RelationshipAdjustment
from .base import RuleModel, UnknownVariant, variant_tag
from .conditions import Condition, evaluate_condition
from .context import RuleContext

logger = logging.getLogger(__name__)

PROMINENCE_LOCKED = "prominence_locked"


class SetTagMutation(RuleModel):
    type: Literal["set_tag", "add_tag"]
    entity: str = "$self"
    tag: str
    value: bool | str = True
    # Copy the value of this tag from another entity instead of ``value``.
    value_from: str | None = None


class RemoveTagMutation(RuleModel):
    type: Literal["remove_tag"]
    entity: str = "$self"
    tag: str


class CreateRelationshipMutation(RuleModel):
    type: Literal["create_relationship"]
    kind: str
    src: str = "$self"
    dst: str
    strength: float | None = None
    distance: float | None = None
    category: str | None = None
    bidirectional: bool = False


class AdjustRelationshipStrengthMutation(RuleModel):
    type: Literal["adjust_relationship_strength"]
    kind: str
    src: str = "$self"
    dst: str
    delta: float
    bidirectional: bool = False


class ArchiveRelationshipMutation(RuleModel):
    type: Literal["archive_relationship"]
    entity: str = "$self"
    relationship_kind: str
    with_: str | None = Field(default=None, alias="with")
    direction: Direction = Direction.BOTH


class ChangeStatusMutation(RuleModel):
    type: Literal["change_status"]
    entity: str = "$self"
    new_status: str


class AdjustProminenceMutation(RuleModel):
    type: Literal["adjust_prominence"]
    entity: str = "$self"
    direction: Literal["up", "down"]


class ModifyPressureMutation(RuleModel):
    type: Literal["modify_pressure"]
    pressure_id: str
    delta: float


class ForEachRelatedMutation(RuleModel):
    """Run ``actions`` once per related entity, bound as ``$related``."""

    type: Literal["for_each_related"]
    entity: str = "$self"
    relationship: str
    direction: Direction = Direction.BOTH
    target_kind: str | None = None
    target_subtype: str | None = None
    actions: list["Mutation"]


class ConditionalMutation(RuleModel):
    type: Literal["conditional"]
    condition: Condition
    then_actions: list["Mutation"] = Field(default_factory=list, alias="then")
    else_actions: list["Mutation"] = Field(default_factory=list, alias="else")


_MUTATION_TYPES = {
    "set_tag",
    "add_tag",
    "remove_tag",
    "create_relationship",
    "adjust_relationship_strength",
    "archive_relationship",
    "change_status",
    "adjust_prominence",
    "modify_pressure",
    "for_each_related",
    "conditional",
}


def _mutation_tag(value) -> str:
    tag = variant_tag(_MUTATION_TYPES)(value)
    return "set_tag" if tag == "add_tag" else tag


Mutation = Annotated[
    Union[
        Annotated[SetTagMutation, Tag("set_tag")],
        Annotated[RemoveTagMutation, Tag("remove_tag")],
        Annotated[CreateRelationshipMutation, Tag("create_relationship")],
        Annotated[AdjustRelationshipStrengthMutation, Tag("adjust_relationship_strength")],
        Annotated[ArchiveRelationshipMutation, Tag("archive_relationship")],
        Annotated[ChangeStatusMutation, Tag("change_status")],
        Annotated[AdjustProminenceMutation, Tag("adjust_prominence")],
        Annotated[ModifyPressureMutation, Tag("modify_pressure")],
        Annotated[ForEachRelatedMutation, Tag("for_each_related")],
        Annotated[ConditionalMutation, Tag("conditional")],
        Annotated[UnknownVariant, Tag("unknown")],
    ],
    Discriminator(_mutation_tag),
]

ForEachRelatedMutation.model_rebuild()
ConditionalMutation.model_rebuild()


def _unresolved(ref: str, what: str) -> MutationResult:
    return MutationResult.failure(f"{what}: could not resolve entity '{ref}'")


def _set_tag(mutation: SetTagMutation, ctx: RuleContext) -> MutationResult:
    if not mutation.tag:
        return MutationResult.failure("set_tag: empty tag")
    entity = ctx.resolve(mutation.entity)
    if entity is None:
        return _unresolved(mutation.entity, "set_tag")

    value = mutation.value
    if mutation.value_from:
        source = ctx.resolve(mutation.value_from)
        if source is None or mutation.tag not in source.tags:
            return MutationResult.failure(
                f"set_tag: no '{mutation.tag}' to copy from '{mutation.value_from}'"
            )
        value = source.tags[mutation.tag]

    return MutationResult(
        entity_modifications=[EntityModification(entity.id, {"tags": {mutation.tag: value}})],
        diagnostic=f"tag {mutation.tag}={value} on {entity.id}",
    )


def _remove_tag(mutation: RemoveTagMutation, ctx: RuleContext) -> MutationResult:
    entity = ctx.resolve(mutation.entity)
    if entity is None:
        return _unresolved(mutation.entity, "remove_tag")
    if mutation.tag not in entity.tags:
        return MutationResult(diagnostic=f"{entity.id} has no tag {mutation.tag}")
    return MutationResult(
        entity_modifications=[EntityModification(entity.id, {"remove_tags": [mutation.tag]})],
        diagnostic=f"removed tag {mutation.tag} from {entity.id}",
    )


def _create_relationship(mutation: CreateRelationshipMutation, ctx: RuleContext) -> MutationResult:
    src = ctx.resolve(mutation.src)
    dst = ctx.resolve(mutation.dst)
    if src is None:
        return _unresolved(mutation.src, "create_relationship")
    if dst is None:
        return _unresolved(mutation.dst, "create_relationship")
    if src.id == dst.id:
        return MutationResult.failure(f"create_relationship: {src.id} cannot relate to itself")

    def build(a: str, b: str) -> Relationship:
        return Relationship(
            kind=mutation.kind,
            src=a,
            dst=b,
            strength=mutation.strength,
            distance=mutation.distance,
            category=mutation.category,
        )

    created = [build(src.id, dst.id)]
    if mutation.bidirectional:
        created.append(build(dst.id, src.id))
    return MutationResult(
        relationships_created=created,
        diagnostic=f"{src.id} -[{mutation.kind}]-> {dst.id}",
    )


def _adjust_strength(
    mutation: AdjustRelationshipStrengthMutation, ctx: RuleContext
) -> MutationResult:
    src = ctx.resolve(mutation.src)
    dst = ctx.resolve(mutation.dst)
    if src is None:
        return _unresolved(mutation.src, "adjust_relationship_strength")
    if dst is None:
        return _unresolved(mutation.dst, "adjust_relationship_strength")

    adjusted = [RelationshipAdjustment(mutation.kind, src.id, dst.id, mutation.delta)]
    if mutation.bidirectional:
        adjusted.append(RelationshipAdjustment(mutation.kind, dst.id, src.id, mutation.delta))
    return MutationResult(
        relationships_adjusted=adjusted,
        diagnostic=f"{mutation.kind} {src.id}->{dst.id} {mutation.delta:+}",
    )


def _archive_relationship(mutation: ArchiveRelationshipMutation, ctx: RuleContext) -> MutationResult:
    entity = ctx.resolve(mutation.entity)
    if entity is None:
        return _unresolved(mutation.entity, "archive_relationship")
    other = ctx.resolve(mutation.with_) if mutation.with_ else None
    if mutation.with_ and other is None:
        return _unresolved(mutation.with_, "archive_relationship")

    archived = [
        link
        for link in ctx.store.get_relationships(entity.id, mutation.relationship_kind, mutation.direction)
        if not link.is_historical and (other is None or link.other(entity.id) == other.id)
    ]
    return MutationResult(
        relationships_archived=archived,
        diagnostic=f"archived {len(archived)} {mutation.relationship_kind} on {entity.id}",
    )


def _change_status(mutation: ChangeStatusMutation, ctx: RuleContext) -> MutationResult:
    entity = ctx.resolve(mutation.entity)
    if entity is None:
        return _unresolved(mutation.entity, "change_status")
    return MutationResult(
        entity_modifications=[EntityModification(entity.id, {"status": mutation.new_status})],
        diagnostic=f"{entity.id} status {entity.status} -> {mutation.new_status}",
    )


def _adjust_prominence(mutation: AdjustProminenceMutation, ctx: RuleContext) -> MutationResult:
    entity = ctx.resolve(mutation.entity)
    if entity is None:
        return _unresolved(mutation.entity, "adjust_prominence")
    if entity.has_tag(PROMINENCE_LOCKED):
        return MutationResult(diagnostic=f"{entity.id} prominence is locked")

    step = 1 if mutation.direction == "up" else -1
    new = entity.prominence.step(step)
    if new == entity.prominence:
        edge = "maximum" if step > 0 else "minimum"
        return MutationResult(diagnostic=f"{entity.id} already at {edge} prominence")
    return MutationResult(
        entity_modifications=[EntityModification(entity.id, {"prominence": new.value})],
        diagnostic=f"{entity.id} prominence {entity.prominence.value} -> {new.value}",
    )


def _modify_pressure(mutation: ModifyPressureMutation, ctx: RuleContext) -> MutationResult:
    return MutationResult(
        pressure_changes={mutation.pressure_id: mutation.delta},
        diagnostic=f"pressure {mutation.pressure_id} {mutation.delta:+}",
    )


def _for_each_related(mutation: ForEachRelatedMutation, ctx: RuleContext) -> MutationResult:
    entity = ctx.resolve(mutation.entity)
    if entity is None:
        return _unresolved(mutation.entity, "for_each_related")

    combined = MutationResult()
    for related in ctx.store.get_related_entities(entity.id, mutation.relationship, mutation.direction):
        if mutation.target_kind and related.kind != mutation.target_kind:
            continue
        if mutation.target_subtype and related.subtype != mutation.target_subtype:
            continue
        result = prepare_mutations(mutation.actions, ctx.with_binding("related", related))
        if not result.applied:
            return result
        combined.extend(result)
    return combined


def _conditional(mutation: ConditionalMutation, ctx: RuleContext) -> MutationResult:
    outcome = evaluate_condition(mutation.condition, ctx)
    branch = mutation.then_actions if outcome.passed else mutation.else_actions
    return prepare_mutations(branch, ctx)


_HANDLERS = {
    SetTagMutation: _set_tag,
    RemoveTagMutation: _remove_tag,
    CreateRelationshipMutation: _create_relationship,
    AdjustRelationshipStrengthMutation: _adjust_strength,
    ArchiveRelationshipMutation: _archive_relationship,
    ChangeStatusMutation: _change_status,
    AdjustProminenceMutation: _adjust_prominence,
    ModifyPressureMutation: _modify_pressure,
    ForEachRelatedMutation: _for_each_related,
    ConditionalMutation: _conditional,
}


def prepare_mutation(mutation, ctx: RuleContext) -> MutationResult:
    """Compute one mutation against the current store without writing to it."""
    handler = _HANDLERS.get(type(mutation))
    if handler is None:
        logger.warning("Unknown mutation type '%s' ignored", getattr(mutation, "type", mutation))
        return MutationResult(diagnostic=f"unknown mutation type '{getattr(mutation, 'type', '?')}' ignored")
    result = handler(mutation, ctx)
    logger.debug("%s: applied=%s %s", mutation.type, result.applied, result.diagnostic)
    return result


def prepare_mutations(mutations: list, ctx: RuleContext) -> MutationResult:
    """Prepare a batch as one unit: the first failure discards everything."""
    combined = MutationResult()
    for mutation in mutations:
        result = prepare_mutation(mutation, ctx)
        if not result.applied:
            return result
        combined.extend(result)
    return combined
