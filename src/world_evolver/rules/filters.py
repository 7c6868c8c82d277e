"""Selection filters.

Filters are AND-ed across a chain; each one scans the entities handed to it
and returns the survivors in their original order. A filter type the
engine does not recognise passes everything through.
"""

import logging
from typing import Annotated, Callable, Literal, Union

from pydantic import Discriminator, Field, Tag

from ..models.entities import Entity, TagValue, prominence_index
from ..models.relationships import Direction
from .base import RuleModel, UnknownVariant, variant_tag
from .graph_path import GraphPathAssertion, evaluate_graph_path
from .resolver import EntityResolver

logger = logging.getLogger(__name__)


class ExcludeFilter(RuleModel):
    type: Literal["exclude"]
    entities: list[str]


class HasRelationshipFilter(RuleModel):
    type: Literal["has_relationship"]
    kind: str
    with_: str | None = Field(default=None, alias="with")
    direction: Direction = Direction.BOTH


class LacksRelationshipFilter(RuleModel):
    type: Literal["lacks_relationship"]
    kind: str
    with_: str | None = Field(default=None, alias="with")
    direction: Direction = Direction.BOTH


class HasTagFilter(RuleModel):
    type: Literal["has_tag"]
    tag: str
    value: TagValue | None = None


class HasTagsFilter(RuleModel):
    type: Literal["has_tags"]
    tags: list[str]


class HasAnyTagFilter(RuleModel):
    type: Literal["has_any_tag"]
    tags: list[str]


class LacksTagFilter(RuleModel):
    type: Literal["lacks_tag"]
    tag: str
    value: TagValue | None = None


class LacksAnyTagFilter(RuleModel):
    type: Literal["lacks_any_tag"]
    tags: list[str]


class HasCultureFilter(RuleModel):
    type: Literal["has_culture"]
    culture: str


class MatchesCultureFilter(RuleModel):
    type: Literal["matches_culture"]
    with_: str = Field(alias="with")


class NotMatchesCultureFilter(RuleModel):
    type: Literal["not_matches_culture"]
    with_: str = Field(alias="with")


class HasStatusFilter(RuleModel):
    type: Literal["has_status"]
    status: str


class HasProminenceFilter(RuleModel):
    type: Literal["has_prominence"]
    min_prominence: str


class SharesRelatedFilter(RuleModel):
    type: Literal["shares_related"]
    relationship_kind: str
    with_: str = Field(alias="with")
    direction: Direction = Direction.SRC


class GraphPathFilter(RuleModel):
    type: Literal["graph_path"]
    assert_: GraphPathAssertion = Field(alias="assert")


_FILTER_TYPES = {
    "exclude",
    "has_relationship",
    "lacks_relationship",
    "has_tag",
    "has_tags",
    "has_any_tag",
    "lacks_tag",
    "lacks_any_tag",
    "has_culture",
    "matches_culture",
    "not_matches_culture",
    "has_status",
    "has_prominence",
    "shares_related",
    "graph_path",
}

SelectionFilter = Annotated[
    Union[
        Annotated[ExcludeFilter, Tag("exclude")],
        Annotated[HasRelationshipFilter, Tag("has_relationship")],
        Annotated[LacksRelationshipFilter, Tag("lacks_relationship")],
        Annotated[HasTagFilter, Tag("has_tag")],
        Annotated[HasTagsFilter, Tag("has_tags")],
        Annotated[HasAnyTagFilter, Tag("has_any_tag")],
        Annotated[LacksTagFilter, Tag("lacks_tag")],
        Annotated[LacksAnyTagFilter, Tag("lacks_any_tag")],
        Annotated[HasCultureFilter, Tag("has_culture")],
        Annotated[MatchesCultureFilter, Tag("matches_culture")],
        Annotated[NotMatchesCultureFilter, Tag("not_matches_culture")],
        Annotated[HasStatusFilter, Tag("has_status")],
        Annotated[HasProminenceFilter, Tag("has_prominence")],
        Annotated[SharesRelatedFilter, Tag("shares_related")],
        Annotated[GraphPathFilter, Tag("graph_path")],
        Annotated[UnknownVariant, Tag("unknown")],
    ],
    Discriminator(variant_tag(_FILTER_TYPES)),
]


def _connected(
    entity: Entity, kind: str, direction: Direction, other_id: str | None
) -> bool:
    for link in entity.links_of(kind, direction):
        if other_id is None or link.other(entity.id) == other_id:
            return True
    return False


def _exclude(entities, f: ExcludeFilter, resolver):
    excluded = {e.id for e in resolver.resolve_many(f.entities)}
    return [e for e in entities if e.id not in excluded]


def _has_relationship(entities, f: HasRelationshipFilter, resolver):
    other = resolver.resolve_entity(f.with_) if f.with_ else None
    if f.with_ and other is None:
        return []
    other_id = other.id if other else None
    return [e for e in entities if _connected(e, f.kind, f.direction, other_id)]


def _lacks_relationship(entities, f: LacksRelationshipFilter, resolver):
    other = resolver.resolve_entity(f.with_) if f.with_ else None
    if f.with_ and other is None:
        return list(entities)
    other_id = other.id if other else None
    return [e for e in entities if not _connected(e, f.kind, f.direction, other_id)]


def _has_tag(entities, f: HasTagFilter, resolver):
    return [e for e in entities if e.has_tag(f.tag, f.value)]


def _has_tags(entities, f: HasTagsFilter, resolver):
    return [e for e in entities if all(tag in e.tags for tag in f.tags)]


def _has_any_tag(entities, f: HasAnyTagFilter, resolver):
    if not f.tags:
        return list(entities)
    return [e for e in entities if any(tag in e.tags for tag in f.tags)]


def _lacks_tag(entities, f: LacksTagFilter, resolver):
    return [e for e in entities if not e.has_tag(f.tag, f.value)]


def _lacks_any_tag(entities, f: LacksAnyTagFilter, resolver):
    return [e for e in entities if not any(tag in e.tags for tag in f.tags)]


def _has_culture(entities, f: HasCultureFilter, resolver):
    return [e for e in entities if e.culture == f.culture]


def _matches_culture(entities, f: MatchesCultureFilter, resolver):
    reference = resolver.resolve_entity(f.with_)
    if reference is None or reference.culture is None:
        return list(entities)
    return [e for e in entities if e.culture == reference.culture]


def _not_matches_culture(entities, f: NotMatchesCultureFilter, resolver):
    reference = resolver.resolve_entity(f.with_)
    if reference is None or reference.culture is None:
        return list(entities)
    return [e for e in entities if e.culture != reference.culture]


def _has_status(entities, f: HasStatusFilter, resolver):
    return [e for e in entities if e.status == f.status]


def _has_prominence(entities, f: HasProminenceFilter, resolver):
    minimum = prominence_index(f.min_prominence)
    if minimum is None:
        logger.warning("Unknown prominence '%s' in has_prominence filter", f.min_prominence)
        return list(entities)
    return [e for e in entities if e.prominence.index >= minimum]


def _shares_related(entities, f: SharesRelatedFilter, resolver):
    reference = resolver.resolve_entity(f.with_)
    if reference is None:
        return list(entities)
    store = resolver.store
    reference_related = {
        e.id for e in store.get_related_entities(reference.id, f.relationship_kind, f.direction)
    }
    if not reference_related:
        return []
    return [
        e
        for e in entities
        if any(
            r.id in reference_related
            for r in store.get_related_entities(e.id, f.relationship_kind, f.direction)
        )
    ]


def _graph_path(entities, f: GraphPathFilter, resolver):
    return [e for e in entities if evaluate_graph_path(e, f.assert_, resolver)]


_HANDLERS: dict[type, Callable] = {
    ExcludeFilter: _exclude,
    HasRelationshipFilter: _has_relationship,
    LacksRelationshipFilter: _lacks_relationship,
    HasTagFilter: _has_tag,
    HasTagsFilter: _has_tags,
    HasAnyTagFilter: _has_any_tag,
    LacksTagFilter: _lacks_tag,
    LacksAnyTagFilter: _lacks_any_tag,
    HasCultureFilter: _has_culture,
    MatchesCultureFilter: _matches_culture,
    NotMatchesCultureFilter: _not_matches_culture,
    HasStatusFilter: _has_status,
    HasProminenceFilter: _has_prominence,
    SharesRelatedFilter: _shares_related,
    GraphPathFilter: _graph_path,
}


def apply_selection_filter(
    entities: list[Entity], selection_filter, resolver: EntityResolver
) -> list[Entity]:
    handler = _HANDLERS.get(type(selection_filter))
    if handler is None:
        logger.warning("Unknown selection filter '%s' passes everything", selection_filter.type)
        return list(entities)
    return handler(entities, selection_filter, resolver)


def apply_selection_filters(
    entities: list[Entity], filters: list, resolver: EntityResolver
) -> list[Entity]:
    result = list(entities)
    for selection_filter in filters:
        result = apply_selection_filter(result, selection_filter, resolver)
        if not result:
            break
    return result


def describe_filter(selection_filter) -> str:
    """Short human-readable label for traces."""
    if isinstance(selection_filter, ExcludeFilter):
        return f"exclude {', '.join(selection_filter.entities)}"
    if isinstance(selection_filter, (HasRelationshipFilter, LacksRelationshipFilter)):
        target = f" with {selection_filter.with_}" if selection_filter.with_ else ""
        return f"{selection_filter.type} '{selection_filter.kind}'{target}"
    if isinstance(selection_filter, (HasTagFilter, LacksTagFilter)):
        return f"{selection_filter.type} '{selection_filter.tag}'"
    if isinstance(selection_filter, (HasTagsFilter, HasAnyTagFilter, LacksAnyTagFilter)):
        return f"{selection_filter.type} [{', '.join(selection_filter.tags)}]"
    if isinstance(selection_filter, HasProminenceFilter):
        return f"prominence >= {selection_filter.min_prominence}"
    return selection_filter.type
