"""Relationship models for the world graph."""

from enum import Enum

from pydantic import BaseModel

from ..config import get_settings


class Direction(str, Enum):
    """Which end of a relationship an entity must sit on."""

    SRC = "src"
    DST = "dst"
    BOTH = "both"

    @classmethod
    def coerce(
        cls, value: "str | Direction | None", default: "Direction | None" = None
    ) -> "Direction":
        """Accept the path-step spellings (out/in/any) as well."""
        if value is None:
            return default or cls.BOTH
        if isinstance(value, Direction):
            return value
        return cls(_DIRECTION_ALIASES.get(value, value))


_DIRECTION_ALIASES = {"out": "src", "in": "dst", "any": "both"}


class DecayRate(str, Enum):
    """Decay tiers for relationship strength."""

    NONE = "none"
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"

    @property
    def amount(self) -> float:
        return DECAY_AMOUNTS[self]


DECAY_AMOUNTS = {
    DecayRate.NONE: 0.0,
    DecayRate.SLOW: 0.01,
    DecayRate.MEDIUM: 0.03,
    DecayRate.FAST: 0.06,
}


class RelationshipStatus(str, Enum):
    ACTIVE = "active"
    HISTORICAL = "historical"


class Relationship(BaseModel):
    """A typed, directed edge between two entities.

    ``strength`` may be absent; every comparison then treats it as the
    configured default (0.5 unless overridden).
    """

    kind: str
    src: str
    dst: str
    strength: float | None = None
    distance: float | None = None
    status: RelationshipStatus | None = None
    category: str | None = None
    created_at: int | None = None

    @property
    def effective_strength(self) -> float:
        if self.strength is None:
            return get_settings().default_strength
        return self.strength

    @property
    def is_historical(self) -> bool:
        return self.status == RelationshipStatus.HISTORICAL

    def involves(self, entity_id: str) -> bool:
        return self.src == entity_id or self.dst == entity_id

    def other(self, entity_id: str) -> str:
        """Return the endpoint that is not ``entity_id``."""
        return self.dst if self.src == entity_id else self.src

    def connects(self, a: str, b: str) -> bool:
        """True if this edge joins ``a`` and ``b`` in either direction."""
        return (self.src == a and self.dst == b) or (self.src == b and self.dst == a)

    def matches_direction(self, entity_id: str, direction: Direction) -> bool:
        if direction == Direction.SRC:
            return self.src == entity_id
        if direction == Direction.DST:
            return self.dst == entity_id
        return self.involves(entity_id)

    def describe(self) -> str:
        return f"{self.src} -[{self.kind}]-> {self.dst}"
