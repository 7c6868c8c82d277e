"""Tests for selection rules, filters and graph paths."""

import random

import pytest
from pydantic import ValidationError

from world_evolver.rules import (
    ActionEntityResolver,
    LiteralEntityResolver,
    SelectionRule,
    SelectionTrace,
    select_entities,
)
from world_evolver.rules.graph_path import GraphPathAssertion, evaluate_graph_path, traverse


def _select(world, rng, resolver=None, **rule):
    resolver = resolver or LiteralEntityResolver(world)
    return [e.id for e in select_entities(SelectionRule.model_validate(rule), resolver, rng)]


class TestCandidates:
    def test_kind_any_selects_everything(self, world, rng):
        assert _select(world, rng, kind="any") == ["ada", "bram", "cole", "guild", "town"]

    def test_no_kind_selects_everything(self, world, rng):
        assert len(_select(world, rng)) == 5

    def test_kinds_and_status(self, world, rng):
        assert _select(world, rng, kinds=["npc", "faction"], not_status="exiled") == [
            "ada",
            "bram",
            "guild",
        ]

    def test_subtypes(self, world, rng):
        assert _select(world, rng, kind="npc", subtypes=["smith", "miner"]) == ["ada", "cole"]
        assert _select(world, rng, kind="npc", exclude_subtypes=["smith"]) == ["bram", "cole"]

    def test_impossible_rule_is_empty(self, world, rng):
        assert _select(world, rng, kind="dragon") == []


class TestFilters:
    def test_has_relationship_with_entity(self, world, rng):
        rule = {"type": "has_relationship", "kind": "resident_of", "with": "town"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada", "cole"]

    def test_has_relationship_unresolved_with_is_empty(self, world, rng):
        rule = {"type": "has_relationship", "kind": "member_of", "with": "$actor"}
        assert _select(world, rng, kind="npc", filters=[rule]) == []

    def test_lacks_relationship_unresolved_with_passes_all(self, world, rng):
        rule = {"type": "lacks_relationship", "kind": "member_of", "with": "$actor"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada", "bram", "cole"]

    def test_lacks_relationship(self, world, rng):
        rule = {"type": "lacks_relationship", "kind": "member_of"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["cole"]

    def test_relationship_direction(self, world, rng):
        outgoing = {"type": "has_relationship", "kind": "member_of", "direction": "src"}
        incoming = {"type": "has_relationship", "kind": "member_of", "direction": "dst"}
        assert _select(world, rng, filters=[outgoing]) == ["ada", "bram"]
        assert _select(world, rng, filters=[incoming]) == ["guild"]

    def test_exclude(self, world, rng):
        rule = {"type": "exclude", "entities": ["ada", "missing"]}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["bram", "cole"]

    def test_tags(self, world, rng):
        assert _select(world, rng, filters=[{"type": "has_tag", "tag": "brave"}]) == ["ada"]
        assert _select(world, rng, filters=[{"type": "has_tag", "tag": "role", "value": "baker"}]) == []
        assert _select(world, rng, kind="npc", filters=[{"type": "lacks_tag", "tag": "brave"}]) == [
            "bram",
            "cole",
        ]
        assert _select(world, rng, filters=[{"type": "has_tags", "tags": ["brave", "role"]}]) == ["ada"]
        assert _select(world, rng, kind="npc", filters=[{"type": "lacks_any_tag", "tags": ["role"]}]) == [
            "bram",
            "cole",
        ]

    def test_has_any_tag_empty_list_passes_all(self, world, rng):
        assert _select(world, rng, kind="npc", filters=[{"type": "has_any_tag", "tags": []}]) == [
            "ada",
            "bram",
            "cole",
        ]

    def test_culture(self, world, rng):
        assert _select(world, rng, filters=[{"type": "has_culture", "culture": "dwarf"}]) == ["cole"]
        assert _select(world, rng, kind="npc", filters=[{"type": "matches_culture", "with": "ada"}]) == [
            "ada",
            "bram",
        ]
        assert _select(
            world, rng, kind="npc", filters=[{"type": "not_matches_culture", "with": "ada"}]
        ) == ["cole"]

    def test_culture_reference_without_culture_passes_all(self, world, rng):
        rule = {"type": "matches_culture", "with": "guild"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada", "bram", "cole"]

    def test_status_and_prominence(self, world, rng):
        assert _select(world, rng, filters=[{"type": "has_status", "status": "exiled"}]) == ["cole"]
        rule = {"type": "has_prominence", "min_prominence": "recognized"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada"]

    def test_unknown_prominence_passes_all(self, world, rng):
        rule = {"type": "has_prominence", "min_prominence": "legendary"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada", "bram", "cole"]

    def test_shares_related(self, world, rng):
        rule = {"type": "shares_related", "relationship_kind": "member_of", "with": "ada"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada", "bram"]

    def test_shares_related_reference_with_nothing_related(self, world, rng):
        rule = {"type": "shares_related", "relationship_kind": "member_of", "with": "cole"}
        assert _select(world, rng, kind="npc", filters=[rule]) == []

    def test_shares_related_ignores_incoming_edges(self, world, rng):
        world.create_relationship("rivals", "ada", "town")
        world.create_relationship("rivals", "town", "cole")
        rule = {"type": "shares_related", "relationship_kind": "rivals", "with": "ada"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada"]

    def test_shares_related_can_follow_incoming_edges(self, world, rng):
        world.create_relationship("rivals", "town", "ada")
        world.create_relationship("rivals", "town", "cole")
        rule = {"type": "shares_related", "relationship_kind": "rivals", "with": "ada", "direction": "dst"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada", "cole"]

    def test_unknown_filter_passes_everything(self, world, rng):
        rule = {"type": "phase_of_moon", "phase": "full"}
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada", "bram", "cole"]

    def test_filters_are_anded(self, world, rng):
        filters = [
            {"type": "has_culture", "culture": "elf"},
            {"type": "has_relationship", "kind": "resident_of"},
        ]
        assert _select(world, rng, kind="npc", filters=filters) == ["ada"]

    def test_action_bindings(self, world, rng):
        resolver = ActionEntityResolver(world, actor=world.get_entity("ada"))
        rule = {"type": "exclude", "entities": ["$actor"]}
        assert _select(world, rng, resolver=resolver, kind="npc", filters=[rule]) == ["bram", "cole"]


class TestPreferenceAndSaturation:
    def test_prefer_filters_narrow_when_possible(self, world, rng):
        prefer = [{"type": "has_culture", "culture": "dwarf"}]
        assert _select(world, rng, kind="npc", prefer_filters=prefer) == ["cole"]

    def test_prefer_filters_fall_back(self, world, rng):
        prefer = [{"type": "has_culture", "culture": "orc"}]
        assert _select(world, rng, kind="npc", prefer_filters=prefer) == ["ada", "bram", "cole"]

    def test_saturation_limit(self, world, rng):
        limits = [{"relationship_kind": "member_of", "max_count": 1}]
        assert _select(world, rng, kind="npc", saturation_limits=limits) == ["cole"]

    def test_saturation_limit_from_kind(self, world, rng):
        limits = [{"relationship_kind": "member_of", "max_count": 1, "from_kind": "location"}]
        assert _select(world, rng, kind="npc", saturation_limits=limits) == ["ada", "bram", "cole"]


class TestPickStrategies:
    def test_first(self, world, rng):
        assert _select(world, rng, kind="npc", pick_strategy="first", max_results=2) == ["ada", "bram"]

    def test_random_defaults_to_one(self, world, rng):
        picked = _select(world, rng, kind="npc", pick_strategy="random")
        assert len(picked) == 1
        assert picked[0] in {"ada", "bram", "cole"}

    def test_random_is_deterministic_for_seed(self, world):
        first = _select(world, random.Random(5), kind="npc", pick_strategy="random", max_results=2)
        second = _select(world, random.Random(5), kind="npc", pick_strategy="random", max_results=2)
        assert first == second

    def test_weighted_without_replacement(self, world, rng):
        picked = _select(world, rng, kind="npc", pick_strategy="weighted", max_results=3)
        assert sorted(picked) == ["ada", "bram", "cole"]

    def test_top_n_by_metric(self, world, rng):
        picked = _select(
            world,
            rng,
            kind="npc",
            pick_strategy="top_n",
            max_results=1,
            rank_by={"type": "connection_count"},
        )
        assert picked == ["ada"]

    def test_all_with_max_results(self, world, rng):
        assert _select(world, rng, kind="npc", max_results=2) == ["ada", "bram"]

    def test_negative_max_results_rejected(self):
        with pytest.raises(ValidationError):
            SelectionRule.model_validate({"kind": "npc", "pick_strategy": "random", "max_results": -1})

    def test_trace_records_steps(self, world, rng):
        trace = SelectionTrace()
        rule = SelectionRule.model_validate(
            {"kind": "npc", "filters": [{"type": "has_culture", "culture": "elf"}]}
        )
        select_entities(rule, LiteralEntityResolver(world), rng, trace)
        assert [s.remaining for s in trace.steps] == [3, 2, 2]
        assert "pick all: 2" in trace.summary()


class TestGraphPath:
    def test_fellow_members(self, world):
        assertion = GraphPathAssertion.model_validate(
            {
                "check": "exists",
                "path": [
                    {"via": "member_of", "direction": "out", "target_kind": "faction"},
                    {"via": "member_of", "direction": "in", "target_kind": "npc"},
                ],
                "where": [{"type": "not_self"}],
            }
        )
        resolver = LiteralEntityResolver(world)
        ada = world.get_entity("ada")
        assert [e.id for e in traverse(ada, assertion, resolver)] == ["bram"]
        assert evaluate_graph_path(ada, assertion, resolver)
        assert not evaluate_graph_path(world.get_entity("cole"), assertion, resolver)

    def test_reached_entities_are_deduplicated(self, world):
        world.create_relationship("member_of", "cole", "guild")
        assertion = GraphPathAssertion.model_validate(
            {
                "check": "count_max",
                "count": 1,
                "path": [
                    {"via": "member_of", "direction": "any"},
                    {"via": "member_of", "direction": "any", "target_kind": "faction"},
                ],
            }
        )
        guild = world.get_entity("guild")
        # guild -> {ada, bram, cole} -> guild, counted once
        assert evaluate_graph_path(guild, assertion, LiteralEntityResolver(world))

    def test_named_sets(self, world):
        assertion = GraphPathAssertion.model_validate(
            {
                "check": "count_min",
                "count": 1,
                "path": [
                    {"via": "resident_of", "direction": "out", "as": "$homes"},
                    {"via": "resident_of", "direction": "in"},
                ],
                "where": [{"type": "not_self"}, {"type": "not_in", "set": "$homes"}],
            }
        )
        resolver = LiteralEntityResolver(world)
        assert [e.id for e in traverse(world.get_entity("ada"), assertion, resolver)] == ["cole"]

    def test_lacks_relationship_constraint(self, world):
        assertion = GraphPathAssertion.model_validate(
            {
                "check": "not_exists",
                "path": [{"via": "resident_of", "direction": "out"}, {"via": "resident_of", "direction": "in"}],
                "where": [{"type": "not_self"}, {"type": "lacks_relationship", "kind": "knows"}],
            }
        )
        resolver = LiteralEntityResolver(world)
        ada = world.get_entity("ada")
        assert not evaluate_graph_path(ada, assertion, resolver)
        world.create_relationship("knows", "cole", "ada")
        assert evaluate_graph_path(ada, assertion, resolver)

    def test_graph_path_filter(self, world, rng):
        rule = {
            "type": "graph_path",
            "assert": {"check": "exists", "path": [{"via": "resident_of", "target_kind": "location"}]},
        }
        assert _select(world, rng, kind="npc", filters=[rule]) == ["ada", "cole"]

    def test_unknown_constraint_is_ignored(self, world):
        assertion = GraphPathAssertion.model_validate(
            {"path": [{"via": "member_of"}], "where": [{"type": "sunlit"}]}
        )
        assert evaluate_graph_path(world.get_entity("ada"), assertion, LiteralEntityResolver(world))

    @pytest.mark.parametrize("check,count,expected", [("count_min", None, True), ("count_max", None, False)])
    def test_count_defaults(self, world, check, count, expected):
        assertion = GraphPathAssertion.model_validate(
            {"check": check, "count": count, "path": [{"via": "member_of"}]}
        )
        assert evaluate_graph_path(world.get_entity("ada"), assertion, LiteralEntityResolver(world)) is expected
