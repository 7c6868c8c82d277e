"""Binding context shared by condition and mutation evaluation."""

import random
from dataclasses import dataclass, field

from ..graph.store import GraphStore
from ..models.entities import Entity
from .resolver import ActionEntityResolver, EntityResolver, LiteralEntityResolver


@dataclass
class RuleContext:
    """Everything a rule needs: the store, a resolver, the run's RNG and bindings.

    ``bindings`` maps slot names (actor, instigator, target, target2,
    member, member2, related...) to entities; ``$name`` references resolve
    against it before falling back to the resolver.
    """

    store: GraphStore
    rng: random.Random
    resolver: EntityResolver | None = None
    self_entity: Entity | None = None
    bindings: dict[str, Entity] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.resolver is None:
            self.resolver = LiteralEntityResolver(self.store)

    def resolve(self, ref: str | None) -> Entity | None:
        if not ref:
            return None
        if ref == "$self":
            return self.self_entity
        if ref.startswith("$") and ref[1:] in self.bindings:
            return self.bindings[ref[1:]]
        return self.resolver.resolve_entity(ref)

    def with_self(self, entity: Entity | None) -> "RuleContext":
        return RuleContext(
            store=self.store,
            rng=self.rng,
            resolver=self.resolver,
            self_entity=entity,
            bindings=dict(self.bindings),
        )

    def with_binding(self, name: str, entity: Entity) -> "RuleContext":
        ctx = self.with_self(self.self_entity)
        ctx.bindings[name] = entity
        return ctx

    @classmethod
    def for_action(
        cls,
        store: GraphStore,
        rng: random.Random,
        bindings: dict[str, Entity],
    ) -> "RuleContext":
        actor = bindings.get("actor")
        resolver = ActionEntityResolver(
            store, actor=actor, instigator=bindings.get("instigator"), bindings=bindings
        )
        return cls(store=store, rng=rng, resolver=resolver, self_entity=actor, bindings=bindings)
