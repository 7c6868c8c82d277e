"""Shared fixtures for building small worlds."""

import random

import pytest

from world_evolver.graph import GraphStore
from world_evolver.models import DomainConfig, Entity, Relationship


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_entity():
    def _make(entity_id: str, kind: str = "npc", **kwargs) -> Entity:
        kwargs.setdefault("name", entity_id.title())
        return Entity(id=entity_id, kind=kind, **kwargs)

    return _make


@pytest.fixture
def world(make_entity):
    """Three NPCs, a faction and a location.

    ada (elf, recognized, tags brave/role=smith) and bram (elf) are members
    of the guild; ada and cole (dwarf, forgotten) live in the town.
    """
    store = GraphStore(DomainConfig())
    store.add_entity(
        make_entity(
            "ada",
            culture="elf",
            prominence="recognized",
            tags={"brave": True, "role": "smith"},
            subtype="smith",
        )
    )
    store.add_entity(make_entity("bram", culture="elf", subtype="farmer"))
    store.add_entity(
        make_entity("cole", culture="dwarf", prominence="forgotten", subtype="miner", status="exiled")
    )
    store.add_entity(make_entity("guild", kind="faction"))
    store.add_entity(make_entity("town", kind="location"))

    store.add_relationship(Relationship(kind="member_of", src="ada", dst="guild"))
    store.add_relationship(Relationship(kind="member_of", src="bram", dst="guild"))
    store.add_relationship(Relationship(kind="resident_of", src="ada", dst="town"))
    store.add_relationship(Relationship(kind="resident_of", src="cole", dst="town"))
    return store
