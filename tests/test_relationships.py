"""
Relationship Consistency Tests
==============================

INVARIANTS TESTED:
1. Findings are advisory: never critical
2. Types outside the transition table accept any change
3. The checker never writes to the graph
"""

import pytest

from narrative_consistency.contracts.validation import IssueKind, Severity
from narrative_consistency.graph import KnowledgeGraph
from narrative_consistency.observability import ObservabilityEngine
from narrative_consistency.power import PowerLevelSystem
from narrative_consistency.validation import RelationshipConsistencyChecker, check_transition

from .fixtures import make_character, make_novel, protagonist_novel, relationship


def build_checker(novel, observability=None):
    graph = KnowledgeGraph()
    graph.initialize_graph(novel)
    return RelationshipConsistencyChecker(graph, PowerLevelSystem(), observability=observability), graph


def pair_novel(own_level, other_level, rel_type, mutual=True):
    back = [relationship("c_lin", rel_type)] if mutual else []
    return make_novel([
        make_character("c_lin", "Lin Feng", level=own_level,
                       relationships=[relationship("c_wu", rel_type)]),
        make_character("c_wu", "Elder Wu", level=other_level, relationships=back),
    ])


class TestCheckTransition:

    @pytest.mark.parametrize("current,new", [
        ("Enemy", "Rival"),
        ("Enemy", "Ally"),
        ("Ally", "Enemy"),
        ("Neutral", "Rival"),
        ("Mentor", "Enemy"),
        (None, "Enemy"),
        ("Ally", "Ally"),
    ])
    def test_plausible(self, current, new):
        assert check_transition(current, new) is None

    @pytest.mark.parametrize("current,new", [
        ("Rival", "Enemy"),
        ("Neutral", "Enemy"),
        ("Enemy", "Lover"),
    ])
    def test_abrupt(self, current, new):
        message = check_transition(current, new)
        assert message == (
            f"Relationship change may be too abrupt: {current} → {new}. Consider intermediate steps."
        )


class TestCheckRelationship:

    def test_abrupt_change_warns(self):
        checker, _ = build_checker(pair_novel("Core Formation", "Core Formation", "Rival"))
        issues = checker.check_relationship("c_lin", "c_wu", "Enemy", 6)

        assert [i.kind for i in issues] == [IssueKind.ABRUPT_RELATIONSHIP_TRANSITION]
        assert issues[0].severity == Severity.WARNING
        assert issues[0].confidence == 0.7

    def test_missing_reverse_is_info(self):
        checker, graph = build_checker(pair_novel("Core Formation", "Core Formation", "Ally", mutual=False))
        issues = checker.check_relationship("c_lin", "c_wu", "Rival")

        assert [i.kind for i in issues] == [IssueKind.MISSING_RELATIONSHIP]
        assert issues[0].severity == Severity.INFO
        assert issues[0].suggestion == "Consider adding bidirectional relationship for consistency"
        assert graph.get_relationship("c_wu", "c_lin") is None

    def test_plausible_change_between_mutual_characters_is_clean(self):
        checker, _ = build_checker(protagonist_novel())
        assert checker.check_relationship("c_mei", "c_lin", "Enemy") == []

    def test_first_relationship_is_never_abrupt(self):
        checker, _ = build_checker(make_novel([
            make_character("c_lin", "Lin Feng"), make_character("c_wu", "Elder Wu"),
        ]))
        issues = checker.check_relationship("c_lin", "c_wu", "Enemy")
        assert [i.kind for i in issues] == [IssueKind.MISSING_RELATIONSHIP]


class TestCrossEntityConsistency:

    def test_much_weaker_than_enemy_warns(self):
        checker, _ = build_checker(pair_novel("Foundation Building", "Soul Transformation", "Enemy"))
        issues = checker.check_cross_entity_consistency("c_lin")

        assert len(issues) == 1
        assert issues[0].severity == Severity.WARNING
        assert issues[0].message == (
            "Lin Feng is significantly weaker than enemy Elder Wu. Ensure conflict is realistic."
        )
        assert issues[0].evidence == ("Stage gap: 3",)

    def test_stronger_than_enemy_is_fine(self):
        checker, _ = build_checker(pair_novel("Foundation Building", "Soul Transformation", "Enemy"))
        assert checker.check_cross_entity_consistency("c_wu") == []

    def test_close_enemy_is_fine(self):
        checker, _ = build_checker(pair_novel("Foundation Building", "Nascent Soul", "Enemy"))
        assert checker.check_cross_entity_consistency("c_lin") == []

    def test_large_ally_gap_is_info_both_ways(self):
        checker, _ = build_checker(pair_novel("Qi Refining", "Void Refinement", "Ally"))
        for character_id in ("c_lin", "c_wu"):
            issues = checker.check_cross_entity_consistency(character_id)
            assert issues[0].severity == Severity.INFO
            assert "Large power gap between allies" in issues[0].message

    def test_unknown_levels_are_skipped(self):
        checker, _ = build_checker(pair_novel("", "Void Refinement", "Enemy"))
        assert checker.check_cross_entity_consistency("c_lin") == []
        assert checker.check_cross_entity_consistency("c_ghost") == []


class TestAudit:

    def test_reverse_edge_audit(self):
        checker, _ = build_checker(pair_novel("Core Formation", "Core Formation", "Ally", mutual=False))
        issues = checker.audit_reverse_edges()

        assert len(issues) == 1
        assert issues[0].entity_id == "c_wu"
        assert issues[0].message == (
            "Lin Feng regards Elder Wu as Ally, but Elder Wu has no relationship back."
        )

    def test_full_audit_never_blocks(self):
        observability = ObservabilityEngine()
        novel = pair_novel("Foundation Building", "Soul Transformation", "Enemy", mutual=False)
        checker, _ = build_checker(novel, observability)
        report = checker.audit(novel)

        assert report.valid
        assert report.summary.warnings == 1
        assert report.summary.info == 1
        assert observability.get_layer_log("validation", action="relationships_validation")
