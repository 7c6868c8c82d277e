"""Tests for relationship maintenance."""

import pytest

from world_evolver.graph import GraphStore
from world_evolver.models import DomainConfig, Relationship, RelationshipKindDef
from world_evolver.systems import MaintenanceConfig, RelationshipMaintenance


@pytest.fixture
def maintenance():
    return RelationshipMaintenance(
        MaintenanceConfig(
            maintenance_frequency=5,
            cull_threshold=0.15,
            grace_period=20,
            reinforcement_bonus=0.02,
            max_strength=1.0,
        )
    )


@pytest.fixture
def square(make_entity):
    """A, B, C and D with the four weighted edges of the culling scenario."""
    store = GraphStore(DomainConfig())
    for entity_id in "ABCD":
        store.add_entity(make_entity(entity_id))
    store.create_relationship("ally_of", "A", "B", strength=0.8)
    store.create_relationship("ally_of", "A", "C", strength=0.1)
    store.create_relationship("ally_of", "B", "C", strength=0.3)
    store.create_relationship("ally_of", "C", "D", strength=0.05)
    store.tick = 50
    return store


def _pairs(store):
    return {(r.src, r.dst) for r in store.relationships()}


class TestCulling:
    def test_weak_relationships_are_culled(self, square, maintenance, rng):
        result = maintenance.apply(square, rng)
        assert _pairs(square) == {("A", "B"), ("A", "C"), ("B", "C"), ("C", "D")}

        square.commit(result)
        assert _pairs(square) == {("A", "B"), ("B", "C")}
        assert {r.dst for r in square.get_entity("A").links} == {"B"}
        assert {r.src for r in square.get_entity("D").links} == set()
        assert square.check_integrity() == []
        assert "2 relationships fade" in result.description

    def test_survivors_decay(self, square, maintenance, rng):
        square.commit(maintenance.apply(square, rng))
        assert square.get_relationship("A", "B", "ally_of").strength == pytest.approx(0.77)
        assert square.get_relationship("B", "C", "ally_of").strength == pytest.approx(0.27)

    def test_modifier_scales_decay(self, square, maintenance, rng):
        square.commit(maintenance.apply(square, rng, modifier=2.0))
        assert square.get_relationship("A", "B", "ally_of").strength == pytest.approx(0.74)

    def test_dormant_between_cycles(self, square, maintenance, rng):
        square.tick = 51
        result = maintenance.apply(square, rng)
        assert result.description == "Relationship maintenance dormant"
        assert not result.changed_graph

    def test_grace_period_protects_young_relationships(self, square, maintenance, rng):
        square.tick = 15
        result = maintenance.apply(square, rng)
        assert not result.changed_graph
        assert "all 4 relationships above threshold" in result.description

    def test_grace_measured_from_younger_endpoint(self, square, maintenance, rng, make_entity):
        square.add_entity(make_entity("E", created_at=40))
        square.create_relationship("ally_of", "A", "E", strength=0.01)
        square.commit(maintenance.apply(square, rng))
        assert ("A", "E") in _pairs(square)

    def test_tick_zero_runs_but_nothing_is_old_enough(self, world, maintenance, rng):
        result = maintenance.apply(world, rng)
        assert "all 4 relationships above threshold" in result.description
        assert result.strength_updates == []

    def test_missing_strength_decays_from_default(self, world, maintenance, rng):
        world.tick = 50
        world.domain = DomainConfig(membership_relationship_kinds=[], location_relationship_kinds=[])
        world.commit(maintenance.apply(world, rng))
        assert world.get_relationship("ada", "guild", "member_of").strength == pytest.approx(0.47)


class TestProtection:
    def test_protected_kind_is_kept_and_reported(self, make_entity, maintenance, rng):
        store = GraphStore(DomainConfig(protected_relationship_kinds=["sworn_to"]))
        store.add_entity(make_entity("a"))
        store.add_entity(make_entity("b"))
        store.create_relationship("sworn_to", "a", "b", strength=0.05)
        store.tick = 50

        result = maintenance.apply(store, rng)
        store.commit(result)
        assert store.relationship_count == 1
        assert len(result.violations) == 1
        assert result.violations[0].kind == "sworn_to"
        assert result.violations[0].tick == 50
        assert len(store.protected_violations) == 1

    def test_negative_strength_protected(self, make_entity, maintenance, rng):
        store = GraphStore(DomainConfig(protected_relationship_kinds=["sworn_to"]))
        store.add_entity(make_entity("a"))
        store.add_entity(make_entity("b"))
        store.create_relationship("sworn_to", "a", "b", strength=-0.4)
        store.tick = 50

        store.commit(maintenance.apply(store, rng))
        assert store.relationship_count == 1
        assert store.relationships()[0].strength == 0.0

    def test_immutable_kinds_are_never_culled(self, make_entity, maintenance, rng):
        domain = DomainConfig(
            relationship_kinds=[RelationshipKindDef(kind="born_in", decay_rate="fast", mutability="immutable")]
        )
        store = GraphStore(domain)
        store.add_entity(make_entity("a"))
        store.add_entity(make_entity("b"))
        store.create_relationship("born_in", "a", "b", strength=0.01)
        store.create_relationship("supersedes", "a", "b", strength=0.01)
        store.tick = 50

        result = maintenance.apply(store, rng)
        store.commit(result)
        assert store.relationship_count == 2
        assert len(result.violations) == 2
        supersedes = store.get_relationship("a", "b", "supersedes")
        assert supersedes.strength == 0.01

    def test_non_cullable_kind_survives(self, make_entity, maintenance, rng):
        domain = DomainConfig(relationship_kinds=[RelationshipKindDef(kind="kin_of", cullable=False)])
        store = GraphStore(domain)
        store.add_entity(make_entity("a"))
        store.add_entity(make_entity("b"))
        store.create_relationship("kin_of", "a", "b", strength=0.05)
        store.tick = 50

        result = maintenance.apply(store, rng)
        store.commit(result)
        assert store.relationship_count == 1
        assert result.violations == []

    def test_orphaned_relationships_are_removed(self, world, maintenance, rng):
        world.remove_entity("guild", cascade=False)
        world.tick = 50
        result = maintenance.apply(world, rng)
        assert result.details["orphaned"] == 2
        world.commit(result)
        assert world.find_relationships(kind="member_of") == []
        assert world.get_entity("ada").links_of("member_of") == []


class TestReinforcement:
    def test_shared_location(self, world, maintenance, rng):
        world.add_relationship(Relationship(kind="knows", src="ada", dst="cole", strength=0.5))
        world.tick = 50
        world.commit(maintenance.apply(world, rng))
        assert world.get_relationship("ada", "cole", "knows").strength == pytest.approx(0.49)

    def test_shared_faction(self, world, maintenance, rng):
        world.add_relationship(Relationship(kind="knows", src="ada", dst="bram", strength=0.5))
        world.add_relationship(Relationship(kind="knows", src="bram", dst="cole", strength=0.5))
        world.tick = 50
        world.commit(maintenance.apply(world, rng))
        assert world.get_relationship("ada", "bram", "knows").strength == pytest.approx(0.49)
        assert world.get_relationship("bram", "cole", "knows").strength == pytest.approx(0.47)

    def test_capped_at_max_strength(self, world, maintenance, rng):
        world.domain = DomainConfig(relationship_kinds=[RelationshipKindDef(kind="knows", decay_rate="none")])
        world.add_relationship(Relationship(kind="knows", src="ada", dst="cole", strength=0.99))
        world.tick = 50
        world.commit(maintenance.apply(world, rng))
        assert world.get_relationship("ada", "cole", "knows").strength == 1.0
