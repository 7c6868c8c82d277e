"""Tests for the connection evolution system."""

import random

import pytest
from pydantic import ValidationError

from world_evolver.graph import GraphStore
from world_evolver.models import DomainConfig
from world_evolver.systems import ConnectionEvolutionConfig, ConnectionEvolutionSystem


def _system(**overrides) -> ConnectionEvolutionSystem:
    raw = {
        "id": "alliances",
        "name": "Alliances",
        "selection": {"kind": "npc"},
        "metric": {"type": "connection_count", "relationship_kinds": ["ally_of"]},
        "rules": [
            {
                "condition": {"operator": ">=", "threshold": 0},
                "probability": 1.0,
                "action": {"type": "create_relationship", "kind": "ally_of", "dst": "$member2", "strength": 0.4},
                "between_matching": True,
            }
        ],
    }
    raw.update(overrides)
    return ConnectionEvolutionSystem(ConnectionEvolutionConfig.model_validate(raw))


@pytest.fixture
def heroes(make_entity):
    """Three heroes of rising prominence, each with six allies."""
    store = GraphStore(DomainConfig())
    for hero_id, prominence in [("f", "forgotten"), ("m", "marginal"), ("r", "recognized")]:
        store.add_entity(make_entity(hero_id, kind="hero", prominence=prominence))
        for i in range(6):
            ally_id = f"{hero_id}{i}"
            store.add_entity(make_entity(ally_id))
            store.create_relationship("ally_of", hero_id, ally_id)
    return store


class TestThresholds:
    def test_prominence_scaled_threshold(self, heroes, rng):
        system = _system(
            selection={"kind": "hero"},
            rules=[
                {
                    "condition": {"operator": ">=", "threshold": "prominence_scaled", "multiplier": 6},
                    "action": {"type": "set_tag", "tag": "well_connected"},
                }
            ],
        )
        result = system.apply(heroes, rng)
        assert [m.id for m in result.entities_modified] == ["f"]
        assert result.description == "Alliances: 1 modified, 0 relationships"

        heroes.commit(result)
        assert heroes.get_entity("f").has_tag("well_connected")
        assert not heroes.get_entity("m").has_tag("well_connected")
        assert not heroes.get_entity("r").has_tag("well_connected")

    def test_subtype_bonus(self, world, rng):
        system = _system(
            subtype_bonuses=[{"subtype": "smith", "bonus": 10}],
            rules=[{"condition": {"operator": ">=", "threshold": 5}, "action": {"type": "set_tag", "tag": "master"}}],
        )
        result = system.apply(world, rng)
        assert [m.id for m in result.entities_modified] == ["ada"]

    def test_zero_probability_never_fires(self, world, rng):
        system = _system(
            rules=[
                {
                    "condition": {"operator": ">=", "threshold": 0},
                    "probability": 0.0,
                    "action": {"type": "set_tag", "tag": "x"},
                }
            ]
        )
        assert not system.apply(world, rng).changed_graph


class TestThrottle:
    @pytest.mark.parametrize("seed", [0, 1, 42, 999])
    def test_zero_throttle_never_modifies(self, world, seed):
        result = _system(throttle_chance=0.0).apply(world, random.Random(seed))
        assert "throttled" in result.description
        assert not result.changed_graph

    def test_full_throttle_always_runs(self, world, rng):
        result = _system(throttle_chance=1.0).apply(world, rng)
        assert "throttled" not in result.description


class TestPairwise:
    def test_pairs_every_matching_entity(self, world, rng):
        result = _system().apply(world, rng)
        pairs = [(r.src, r.dst) for r in result.relationships_added]
        assert pairs == [("ada", "bram"), ("ada", "cole"), ("bram", "cole")]
        assert all(r.strength == 0.4 for r in result.relationships_added)
        assert result.description == "Alliances: 0 modified, 3 relationships"

    def test_existing_relationship_skipped(self, world, rng):
        world.create_relationship("ally_of", "bram", "ada")
        pairs = [(r.src, r.dst) for r in _system().apply(world, rng).relationships_added]
        assert ("ada", "bram") not in pairs
        assert len(pairs) == 2

    def test_excluded_kind_skipped(self, world, rng):
        world.create_relationship("enemy_of", "ada", "cole")
        system = _system(pair_exclude_relationships=["enemy_of"])
        pairs = [(r.src, r.dst) for r in system.apply(world, rng).relationships_added]
        assert pairs == [("ada", "bram"), ("bram", "cole")]

    def test_component_size_limit(self, world, rng):
        system = _system(pair_component_size_limit={"max": 2})
        result = system.apply(world, rng)
        assert [(r.src, r.dst) for r in result.relationships_added] == [("ada", "bram")]

    def test_component_limit_counts_existing_edges(self, world, rng):
        # ada and bram already share a component of three through the guild.
        system = _system(pair_component_size_limit={"max": 3, "relationship_kinds": ["member_of", "ally_of"]})
        result = system.apply(world, rng)
        assert [(r.src, r.dst) for r in result.relationships_added] == [("ada", "bram")]

    def test_exclusion_sees_pairs_formed_this_run(self, world, rng):
        pairwise = {"condition": {"operator": ">=", "threshold": 0}, "between_matching": True}
        system = _system(
            pair_exclude_relationships=["enemy_of"],
            rules=[
                {**pairwise, "action": {"type": "create_relationship", "kind": "enemy_of", "dst": "$member2"}},
                {**pairwise, "action": {"type": "create_relationship", "kind": "ally_of", "dst": "$member2"}},
            ],
        )
        result = system.apply(world, rng)
        assert [r.kind for r in result.relationships_added] == ["enemy_of"] * 3

    def test_pairs_skip_edges_staged_by_entity_rules(self, world, rng):
        # Only bram, the farmer, clears the first rule.
        system = _system(
            subtype_bonuses=[{"subtype": "farmer", "bonus": 1}],
            rules=[
                {
                    "condition": {"operator": ">=", "threshold": 1},
                    "action": {"type": "create_relationship", "kind": "ally_of", "dst": "ada"},
                },
                {
                    "condition": {"operator": ">=", "threshold": 0},
                    "action": {"type": "create_relationship", "kind": "ally_of", "dst": "$member2"},
                    "between_matching": True,
                },
            ]
        )
        result = system.apply(world, rng)
        pairs = [(r.src, r.dst) for r in result.relationships_added]
        assert pairs == [("bram", "ada"), ("ada", "cole"), ("bram", "cole")]

    def test_commit_creates_relationships(self, world, rng):
        world.commit(_system().apply(world, rng))
        assert world.has_relationship("ada", "bram", "ally_of")
        assert world.check_integrity() == []

    def test_between_matching_requires_create_relationship(self):
        with pytest.raises(ValidationError):
            _system(
                rules=[
                    {
                        "condition": {"operator": ">=", "threshold": 0},
                        "action": {"type": "set_tag", "tag": "x"},
                        "between_matching": True,
                    }
                ]
            )


class TestUnits:
    def test_failed_action_drops_the_whole_entity_unit(self, world, rng):
        system = _system(
            selection={"kind": "npc", "subtypes": ["smith"]},
            rules=[
                {"condition": {"operator": ">=", "threshold": 0}, "action": {"type": "set_tag", "tag": "busy"}},
                {
                    "condition": {"operator": ">=", "threshold": 0},
                    "action": {"type": "create_relationship", "kind": "ally_of", "dst": "nobody"},
                },
            ],
        )
        result = system.apply(world, rng)
        assert result.entities_modified == []
        assert result.relationships_added == []

    def test_units_are_independent(self, world, rng):
        system = _system(
            rules=[
                {"condition": {"operator": ">=", "threshold": 0}, "action": {"type": "set_tag", "tag": "busy"}},
                {
                    "condition": {"operator": ">=", "threshold": 0},
                    "action": {"type": "create_relationship", "kind": "ally_of", "dst": "ada"},
                },
            ],
        )
        result = system.apply(world, rng)
        # ada cannot ally with itself, so only bram and cole act.
        assert sorted(m.id for m in result.entities_modified) == ["bram", "cole"]
        assert sorted(r.src for r in result.relationships_added) == ["bram", "cole"]

    def test_pressure_changes_only_when_something_changed(self, world, rng):
        changed = _system(pressure_changes={"tension": 1.5}).apply(world, rng)
        assert changed.pressure_changes == {"tension": 1.5}
        idle = _system(pressure_changes={"tension": 1.5}, selection={"kind": "dragon"}).apply(world, rng)
        assert idle.pressure_changes == {}
