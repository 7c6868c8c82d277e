"""The tick loop.

Each tick runs every system in order, committing each result before the
next system looks at the graph, then gives every catalyst entity one chance
to perform an action. The tick counter advances at the end.
"""

import json
import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..config import Settings, get_settings
from ..errors import ConfigurationError, GraphStoreError
from ..graph.store import GraphStore
from ..models.domain import DomainConfig, load_domain
from ..models.entities import Entity
from ..models.relationships import Relationship
from ..models.results import ActionResult, SystemResult
from ..rules.probability import roll_probability
from ..systems.base import SimulationSystem
from ..systems.loader import load_systems
from .actions import ActionDefinition, ActionInterpreter, load_actions

logger = logging.getLogger(__name__)


@dataclass
class TickRecord:
    tick: int
    system_results: list[SystemResult] = field(default_factory=list)
    action_results: list[ActionResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "tick": self.tick,
            "systems": [r.to_dict() for r in self.system_results],
            "actions": [r.to_dict() for r in self.action_results],
        }


class WorldEngine:
    """Owns the store, the RNG, the systems and the actions of one run."""

    def __init__(
        self,
        store: GraphStore,
        systems: list[SimulationSystem],
        actions: list[ActionDefinition] | None = None,
        seed: int | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.systems = list(systems)
        self.interpreters = [ActionInterpreter(a) for a in actions or []]
        self.seed = settings.seed if seed is None else seed
        self.rng = random.Random(self.seed)
        self.history: list[TickRecord] = []

    def step(self) -> TickRecord:
        store = self.store
        record = TickRecord(tick=store.tick)
        modifiers = store.current_era.system_modifiers if store.current_era else {}

        for system in self.systems:
            result = system.apply(store, self.rng, modifiers.get(system.id, 1.0))
            store.commit(result)
            record.system_results.append(result)

        record.action_results.extend(self._run_catalysts())

        self.history.append(record)
        store.tick += 1
        return record

    def run(self, ticks: int) -> list[TickRecord]:
        return [self.step() for _ in range(ticks)]

    def _run_catalysts(self) -> list[ActionResult]:
        results: list[ActionResult] = []
        if not self.interpreters:
            return results

        store = self.store
        for actor in store.entities():
            catalyst = actor.catalyst
            if catalyst is None or not catalyst.can_act or not store.has_entity(actor.id):
                continue
            eligible = [
                interpreter
                for interpreter in self.interpreters
                if (not catalyst.action_ids or interpreter.id in catalyst.action_ids)
                and interpreter.can_act(actor, store)
            ]
            weights = [interpreter.weight(store) for interpreter in eligible]
            if not eligible or sum(weights) <= 0:
                continue

            interpreter = self.rng.choices(eligible, weights=weights, k=1)[0]
            if not roll_probability(interpreter.action.probability.base_success_chance, self.rng):
                continue

            result = interpreter.execute(store, actor, self.rng)
            results.append(result)
            if result.success:
                store.commit(result.to_system_result())
                catalyst.catalyzed_events.append(f"{interpreter.id}@{store.tick}")
            else:
                logger.debug("%s: %s", result.failure_reason.value, result.diagnostic)
        return results


class WorldDefinition(BaseModel):
    """Everything needed to start a run, as read from a JSON world file."""

    domain: dict[str, Any] = Field(default_factory=dict)
    entities: list[Entity] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    systems: list[dict[str, Any]] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    seed: int | None = None
    start_tick: int = 0


def build_engine(definition: WorldDefinition, seed: int | None = None) -> WorldEngine:
    domain: DomainConfig = load_domain(definition.domain)
    store = GraphStore(domain, tick=definition.start_tick)
    for entity in definition.entities:
        store.add_entity(entity)
    for relationship in definition.relationships:
        store.add_relationship(relationship)

    return WorldEngine(
        store,
        load_systems(definition.systems),
        load_actions(definition.actions),
        seed=seed if seed is not None else definition.seed,
    )


def load_world(path: Path, seed: int | None = None) -> WorldEngine:
    """Read a JSON world file and build an engine ready to run."""
    with open(path, encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{path}: not valid JSON: {e}") from e
    try:
        definition = WorldDefinition.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"{path}: invalid world file: {e}") from e
    try:
        return build_engine(definition, seed)
    except GraphStoreError as e:
        raise ConfigurationError(f"{path}: {e}") from e
