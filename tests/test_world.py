"""Tests for the tick loop, world files and the CLI."""

import json
import random

import pytest
from click.testing import CliRunner

from world_evolver import __version__
from world_evolver.cli import main
from world_evolver.engine import WorldDefinition, WorldEngine, build_engine, load_world
from world_evolver.errors import ConfigurationError, SystemConfigError
from world_evolver.graph import GraphStore
from world_evolver.models import DomainConfig, EraDefinition, SystemResult
from world_evolver.systems import SimulationSystem


def _world_data(**overrides) -> dict:
    data = {
        "seed": 7,
        "domain": {
            "eras": [
                {
                    "id": "dawn",
                    "name": "Dawn",
                    "transition_conditions": [],
                    "system_modifiers": {"relationship_maintenance": 0.5},
                },
                {"id": "noon", "name": "Noon"},
            ],
            "initial_pressures": {"unrest": 10},
        },
        "entities": [
            {"id": "ada", "kind": "npc", "name": "Ada", "catalyst": {"can_act": True}},
            {"id": "bram", "kind": "npc", "name": "Bram"},
            {"id": "cole", "kind": "npc", "name": "Cole"},
        ],
        "relationships": [{"kind": "knows", "src": "ada", "dst": "bram", "strength": 0.9}],
        "systems": [
            {"type": "era_transition", "min_era_length": 5, "transition_cooldown": 0},
            {"type": "relationship_maintenance", "grace_period": 0},
        ],
        "actions": [
            {
                "id": "befriend",
                "targeting": {"kind": "npc"},
                "outcome": {
                    "mutations": [{"type": "create_relationship", "kind": "friend_of", "dst": "$target"}],
                    "description": "{actor.name} befriends {target.name}",
                },
            }
        ],
    }
    data.update(overrides)
    return data


def _engine(**overrides) -> WorldEngine:
    return build_engine(WorldDefinition.model_validate(_world_data(**overrides)))


class RecordingSystem(SimulationSystem):
    id = "recorder"
    name = "Recorder"

    def __init__(self):
        self.calls: list[tuple[int, float]] = []

    def apply(self, store, rng, modifier=1.0):
        self.calls.append((store.tick, modifier))
        return self._result("recorded")


class TestEngine:
    def test_ticks_advance(self):
        engine = _engine()
        records = engine.run(3)
        assert [r.tick for r in records] == [0, 1, 2]
        assert engine.store.tick == 3
        assert len(engine.history) == 3

    def test_same_seed_same_history(self):
        first = [r.to_dict() for r in _engine().run(20)]
        second = [r.to_dict() for r in _engine().run(20)]
        assert first == second

    def test_systems_see_era_modifier(self):
        domain = DomainConfig(eras=[EraDefinition(id="dawn", name="Dawn", system_modifiers={"recorder": 0.25})])
        store = GraphStore(domain)
        recorder = RecordingSystem()
        engine = WorldEngine(store, [recorder], seed=1)
        engine.step()
        store.set_current_era("dawn")
        engine.step()
        assert recorder.calls == [(0, 1.0), (1, 0.25)]

    def test_results_committed_between_systems(self):
        engine = _engine()
        record = engine.step()
        assert record.system_results[0].description == "Dawn begins"
        assert engine.store.current_era.id == "dawn"
        # Maintenance ran after the era was committed.
        assert "Relationship maintenance" in record.system_results[1].description

    def test_catalyst_acts(self):
        engine = _engine()
        record = engine.step()
        assert len(record.action_results) == 1
        result = record.action_results[0]
        assert result.success
        assert result.actor_id == "ada"
        assert engine.store.find_relationships(kind="friend_of", src="ada")
        assert engine.store.get_entity("ada").catalyst.catalyzed_events == ["befriend@0"]

    def test_catalyst_restricted_to_its_actions(self):
        data = _world_data()
        data["entities"][0]["catalyst"] = {"can_act": True, "action_ids": ["trade"]}
        engine = build_engine(WorldDefinition.model_validate(data))
        assert engine.step().action_results == []

    def test_zero_success_chance_never_acts(self):
        data = _world_data()
        data["actions"][0]["probability"] = {"base_success_chance": 0.0}
        engine = build_engine(WorldDefinition.model_validate(data))
        records = engine.run(5)
        assert all(r.action_results == [] for r in records)

    def test_seed_defaults_from_settings(self):
        engine = WorldEngine(GraphStore(), [])
        assert engine.seed == 42
        assert isinstance(engine.rng, random.Random)


class TestLoadWorld:
    def test_load(self, tmp_path):
        path = tmp_path / "world.json"
        path.write_text(json.dumps(_world_data()))
        engine = load_world(path)
        assert engine.seed == 7
        assert engine.store.entity_count == 3
        assert engine.store.get_pressure("unrest") == 10
        assert [s.id for s in engine.systems] == ["era_transition", "relationship_maintenance"]

    def test_seed_override(self, tmp_path):
        path = tmp_path / "world.json"
        path.write_text(json.dumps(_world_data()))
        assert load_world(path, seed=99).seed == 99

    def test_dangling_relationship(self, tmp_path):
        path = tmp_path / "world.json"
        path.write_text(json.dumps(_world_data(relationships=[{"kind": "knows", "src": "ada", "dst": "ghost"}])))
        with pytest.raises(ConfigurationError, match="ghost"):
            load_world(path)

    def test_unknown_system(self, tmp_path):
        path = tmp_path / "world.json"
        path.write_text(json.dumps(_world_data(systems=[{"type": "weather"}])))
        with pytest.raises(SystemConfigError):
            load_world(path)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "world.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="not valid JSON"):
            load_world(path)


class TestCli:
    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_status(self):
        result = CliRunner().invoke(main, ["status"])
        assert result.exit_code == 0
        assert "cull_threshold" in result.output

    def test_simulate(self, tmp_path):
        path = tmp_path / "world.json"
        path.write_text(json.dumps(_world_data()))
        result = CliRunner().invoke(main, ["simulate", str(path), "--ticks", "12"])
        assert result.exit_code == 0, result.output
        assert "Ran 12 ticks" in result.output
        assert "Final World" in result.output

    def test_simulate_bad_config(self, tmp_path):
        path = tmp_path / "world.json"
        path.write_text(json.dumps(_world_data(systems=[{"type": "weather"}])))
        result = CliRunner().invoke(main, ["simulate", str(path)])
        assert result.exit_code == 1
        assert "unknown system type" in result.output


def test_system_result_changed_graph():
    assert not SystemResult().changed_graph
    assert SystemResult(pressure_changes={"x": 1}).changed_graph
