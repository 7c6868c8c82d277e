"""Entity models for the world graph."""

from enum import Enum

from pydantic import BaseModel, Field

from .relationships import Direction, Relationship


class Prominence(str, Enum):
    """Fixed five-step prominence ladder, lowest first."""

    FORGOTTEN = "forgotten"
    MARGINAL = "marginal"
    RECOGNIZED = "recognized"
    RENOWNED = "renowned"
    MYTHIC = "mythic"

    @property
    def index(self) -> int:
        return PROMINENCE_LADDER.index(self)

    @classmethod
    def from_index(cls, index: int) -> "Prominence":
        index = max(0, min(len(PROMINENCE_LADDER) - 1, index))
        return PROMINENCE_LADDER[index]

    def step(self, delta: int) -> "Prominence":
        """Move ``delta`` rungs along the ladder, clamping at both ends."""
        return Prominence.from_index(self.index + delta)


PROMINENCE_LADDER = list(Prominence)


def prominence_index(value: "str | Prominence | None") -> int | None:
    """Ladder index for a prominence literal, or None if it is not on the ladder."""
    if value is None:
        return None
    try:
        return Prominence(value).index
    except ValueError:
        return None


ERA_KIND = "era"


class EraStatus(str, Enum):
    """Era lifecycle. Transitions only move forward."""

    FUTURE = "future"
    CURRENT = "current"
    SUPERSEDED = "superseded"


class Coordinates(BaseModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class Temporal(BaseModel):
    """Tick span of an era entity."""

    start_tick: int | None = None
    end_tick: int | None = None


class Catalyst(BaseModel):
    """Marks an entity that can instigate actions."""

    can_act: bool = True
    action_ids: list[str] = Field(default_factory=list)
    catalyzed_events: list[str] = Field(default_factory=list)


TagValue = bool | str


class Entity(BaseModel):
    """A node in the world graph.

    ``links`` mirrors every relationship touching this entity. It holds the
    same objects as the store's canonical list and is only maintained by
    the store.
    """

    id: str
    kind: str
    subtype: str = ""
    name: str = ""
    description: str = ""
    status: str = "active"
    prominence: Prominence = Prominence.MARGINAL
    culture: str | None = None
    tags: dict[str, TagValue] = Field(default_factory=dict)
    links: list[Relationship] = Field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0
    coordinates: Coordinates | None = None
    catalyst: Catalyst | None = None
    temporal: Temporal | None = None

    def has_tag(self, key: str, value: TagValue | None = None) -> bool:
        """True if the tag is present (and equals ``value`` when one is given)."""
        if key not in self.tags:
            return False
        if value is None:
            return True
        return self.tags[key] == value

    def links_of(
        self, kind: str | None = None, direction: Direction = Direction.BOTH
    ) -> list[Relationship]:
        return [
            link
            for link in self.links
            if (kind is None or link.kind == kind) and link.matches_direction(self.id, direction)
        ]

    @property
    def is_era(self) -> bool:
        return self.kind == ERA_KIND

    def label(self) -> str:
        return self.name or self.id
