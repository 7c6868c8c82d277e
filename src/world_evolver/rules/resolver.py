"""Entity resolvers.

A resolver turns a reference string from configuration into an entity.
Action contexts bind ``$actor``, ``$resolved_actor``, ``$instigator`` and,
once chosen, ``$target``; system contexts only understand literal ids.
"""

from abc import ABC, abstractmethod

from ..graph.store import GraphStore
from ..models.entities import Entity


class EntityResolver(ABC):
    """Resolves references against a store."""

    def __init__(self, store: GraphStore):
        self.store = store

    @abstractmethod
    def resolve_entity(self, ref: str) -> Entity | None:
        """Return the entity a reference points at, or None."""

    def resolve_many(self, refs: list[str]) -> list[Entity]:
        resolved = (self.resolve_entity(ref) for ref in refs)
        return [entity for entity in resolved if entity is not None]


class LiteralEntityResolver(EntityResolver):
    """Resolver for system contexts: only literal entity ids resolve."""

    def resolve_entity(self, ref: str) -> Entity | None:
        if not ref or ref.startswith("$"):
            return None
        return self.store.get_entity(ref)


class ActionEntityResolver(EntityResolver):
    """Resolver for action contexts with named bindings."""

    def __init__(
        self,
        store: GraphStore,
        actor: Entity | None = None,
        instigator: Entity | None = None,
        bindings: dict[str, Entity] | None = None,
    ):
        super().__init__(store)
        self.bindings: dict[str, Entity] = dict(bindings or {})
        if actor is not None:
            self.bindings["actor"] = actor
            self.bindings.setdefault("resolved_actor", actor)
        if instigator is not None:
            self.bindings["instigator"] = instigator

    def bind(self, name: str, entity: Entity | None) -> None:
        if entity is None:
            self.bindings.pop(name, None)
        else:
            self.bindings[name] = entity

    def resolve_entity(self, ref: str) -> Entity | None:
        if not ref:
            return None
        if ref.startswith("$"):
            return self.bindings.get(ref[1:])
        return self.store.get_entity(ref)
