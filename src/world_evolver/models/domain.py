"""Domain configuration consumed by the engine.

The engine is domain-agnostic. Everything it needs to know about a world's
vocabulary (relationship kinds and how they age, which kinds are protected,
the ordered list of eras) arrives here.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, ValidationError, model_validator

from ..errors import DomainConfigError
from .relationships import DecayRate

# Kinds the engine itself creates for era lineage; they never decay or cull.
SUPERSEDES = "supersedes"
ACTIVE_DURING = "active_during"
FRAMEWORK_IMMUTABLE_KINDS = frozenset({SUPERSEDES, ACTIVE_DURING})


class EntityKindDef(BaseModel):
    kind: str
    description: str = ""
    subtypes: list[str] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)


class RelationshipKindDef(BaseModel):
    kind: str
    description: str = ""
    decay_rate: DecayRate = DecayRate.MEDIUM
    cullable: bool = True
    mutability: Literal["mutable", "immutable"] = "mutable"
    protected: bool = False


# --- era transition conditions -------------------------------------------


class PressureTransition(BaseModel):
    type: Literal["pressure"]
    pressure_id: str
    operator: Literal["above", "below"] = "above"
    threshold: float


class EntityCountTransition(BaseModel):
    type: Literal["entity_count"]
    entity_kind: str
    subtype: str | None = None
    status: str | None = None
    operator: Literal["above", "below"] = "above"
    threshold: int


class TimeTransition(BaseModel):
    type: Literal["time"]
    min_ticks: int


class UnknownTransition(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str


_TRANSITION_TYPES = {"pressure", "entity_count", "time"}


def _transition_tag(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return kind if kind in _TRANSITION_TYPES else "unknown"


TransitionCondition = Annotated[
    Union[
        Annotated[PressureTransition, Tag("pressure")],
        Annotated[EntityCountTransition, Tag("entity_count")],
        Annotated[TimeTransition, Tag("time")],
        Annotated[UnknownTransition, Tag("unknown")],
    ],
    Discriminator(_transition_tag),
]


class EraDefinition(BaseModel):
    """One entry of the domain's ordered era list.

    ``transition_conditions`` of None means "end after twice the minimum
    era length"; an empty list means "end as soon as the minimum length
    has passed".
    """

    id: str
    name: str
    description: str = ""
    transition_conditions: list[TransitionCondition] | None = None
    entry_effects: dict[str, float] = Field(default_factory=dict)
    transition_effects: dict[str, float] = Field(default_factory=dict)
    system_modifiers: dict[str, float] = Field(default_factory=dict)


class DomainConfig(BaseModel):
    """Everything domain-specific the engine consumes."""

    entity_kinds: list[EntityKindDef] = Field(default_factory=list)
    relationship_kinds: list[RelationshipKindDef] = Field(default_factory=list)
    protected_relationship_kinds: list[str] = Field(default_factory=list)
    immutable_relationship_kinds: list[str] = Field(default_factory=list)
    location_relationship_kinds: list[str] = Field(
        default_factory=lambda: ["resident_of", "located_at"]
    )
    membership_relationship_kinds: list[str] = Field(
        default_factory=lambda: ["member_of", "leader_of"]
    )
    eras: list[EraDefinition] = Field(default_factory=list)
    initial_pressures: dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_references(self) -> "DomainConfig":
        _reject_duplicates("entity kind", [k.kind for k in self.entity_kinds])
        _reject_duplicates("relationship kind", [k.kind for k in self.relationship_kinds])
        _reject_duplicates("era", [e.id for e in self.eras])

        # Kind sets may only name registered kinds once a registry is given.
        if self.relationship_kinds:
            known = {k.kind for k in self.relationship_kinds} | FRAMEWORK_IMMUTABLE_KINDS
            for field_name in ("protected_relationship_kinds", "immutable_relationship_kinds"):
                unknown = sorted(set(getattr(self, field_name)) - known)
                if unknown:
                    raise ValueError(f"{field_name} names unknown kinds: {', '.join(unknown)}")
        return self

    def relationship_kind(self, kind: str) -> RelationshipKindDef | None:
        for definition in self.relationship_kinds:
            if definition.kind == kind:
                return definition
        return None

    def decay_rate(self, kind: str) -> DecayRate:
        if kind in FRAMEWORK_IMMUTABLE_KINDS:
            return DecayRate.NONE
        definition = self.relationship_kind(kind)
        return definition.decay_rate if definition else DecayRate.MEDIUM

    def is_cullable(self, kind: str) -> bool:
        definition = self.relationship_kind(kind)
        return definition.cullable if definition else True

    @property
    def protected_kinds(self) -> set[str]:
        protected = set(self.protected_relationship_kinds)
        protected.update(k.kind for k in self.relationship_kinds if k.protected)
        return protected

    @property
    def immutable_kinds(self) -> set[str]:
        immutable = set(self.immutable_relationship_kinds) | FRAMEWORK_IMMUTABLE_KINDS
        immutable.update(k.kind for k in self.relationship_kinds if k.mutability == "immutable")
        return immutable

    def is_protected(self, kind: str) -> bool:
        """Protected or immutable kinds are never removed by maintenance."""
        return kind in self.protected_kinds or kind in self.immutable_kinds

    def era(self, era_id: str) -> EraDefinition | None:
        for era in self.eras:
            if era.id == era_id:
                return era
        return None


def _reject_duplicates(label: str, values: list[str]) -> None:
    seen: set[str] = set()
    for value in values:
        if value in seen:
            raise ValueError(f"duplicate {label}: {value}")
        seen.add(value)


def load_domain(data: dict[str, Any]) -> DomainConfig:
    """Validate raw domain configuration, raising DomainConfigError on failure."""
    try:
        return DomainConfig.model_validate(data)
    except ValidationError as e:
        raise DomainConfigError(f"Invalid domain configuration: {e}") from e
