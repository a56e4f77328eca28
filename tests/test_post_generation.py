"""
Post-Generation Checker Tests
=============================

INVARIANTS TESTED:
1. Baselines are the state in force before the chapter
2. Narrative cues soften regressions and resurrections to warnings
3. The verdict does not depend on whether the update already ran
"""

from narrative_consistency.contracts.base import EntityType
from narrative_consistency.contracts.extraction import WorldEntryUpsert
from narrative_consistency.contracts.novel import WorldEntry
from narrative_consistency.contracts.validation import IssueKind, Severity
from narrative_consistency.graph import KnowledgeGraph, KnowledgeGraphUpdater
from narrative_consistency.observability import ObservabilityEngine
from narrative_consistency.power import PowerLevelSystem
from narrative_consistency.temporal import EntityStateTracker
from narrative_consistency.validation import PostGenerationChecker, PostGenerationConfig

from .fixtures import (
    make_chapter, make_character, make_extraction, make_novel, make_upsert, protagonist_novel
)


def build_checker(novel, config=None, observability=None):
    graph = KnowledgeGraph()
    graph.initialize_graph(novel)
    tracker = EntityStateTracker()
    checker = PostGenerationChecker(
        graph, tracker, PowerLevelSystem(), config, observability=observability
    )
    return checker, graph, tracker


def check(novel, content, *upserts, config=None, world_entries=()):
    checker, _, _ = build_checker(novel, config)
    return checker.check(
        novel, make_chapter(6, content=content),
        make_extraction(*upserts, world_entries=world_entries)
    )


# =============================================================================
# POWER
# =============================================================================

class TestPowerChecks:

    def test_justified_breakthrough_is_clean(self):
        report = check(
            protagonist_novel(), "Lin Feng achieved a breakthrough.",
            make_upsert("Lin Feng", level="Core Formation"),
        )
        assert report.valid
        assert report.issues == ()

    def test_advance_without_breakthrough_is_critical(self):
        report = check(
            protagonist_novel(), "Lin Feng trained quietly.",
            make_upsert("Lin Feng", level="Core Formation"),
        )
        jump = report.issues_of(IssueKind.POWER_JUMP)
        assert jump[0].severity == Severity.CRITICAL
        assert jump[0].confidence == 0.85
        assert "Breakthrough cues: none found" in jump[0].evidence

    def test_multi_stage_jump_in_one_chapter(self):
        report = check(
            protagonist_novel(), "A breakthrough shook the sect.",
            make_upsert("Lin Feng", level="Nascent Soul"),
        )
        assert not report.valid
        assert any("Jumped 2 stage(s)" in i.message for i in report.issues)

    def test_unjustified_regression_is_critical(self):
        report = check(
            protagonist_novel(level="Core Formation"), "Lin Feng meditated.",
            make_upsert("Lin Feng", level="Qi Refining"),
        )
        regression = report.issues_of(IssueKind.POWER_REGRESSION)[0]
        assert regression.severity == Severity.CRITICAL
        assert regression.confidence == 0.9
        assert regression.message == (
            "Power level regression detected: Lin Feng went from Core Formation to Qi Refining."
        )

    def test_regression_with_cue_is_a_warning(self):
        report = check(
            protagonist_novel(level="Core Formation"), "Lin Feng was gravely injured.",
            make_upsert("Lin Feng", level="Qi Refining"),
        )
        regression = report.issues_of(IssueKind.POWER_REGRESSION)[0]
        assert report.valid
        assert regression.severity == Severity.WARNING
        assert regression.confidence == 0.7
        assert "Justification: injured" in regression.evidence

    def test_unknown_baseline_is_skipped(self):
        novel = make_novel([make_character("c_lin", "Lin Feng", level="")])
        report = check(novel, "", make_upsert("Lin Feng", level="Nascent Soul"))
        assert report.issues == ()

    def test_unresolved_names_are_ignored(self):
        report = check(protagonist_novel(), "", make_upsert("Stranger Zhao", level="Qi Refining"))
        assert report.issues == ()

    def test_same_verdict_before_and_after_update(self):
        novel = protagonist_novel(level="Core Formation")
        checker, graph, tracker = build_checker(novel)
        updater = KnowledgeGraphUpdater(graph, tracker, PowerLevelSystem())
        chapter = make_chapter(6, content="Lin Feng meditated.")
        extraction = make_extraction(make_upsert("Lin Feng", level="Qi Refining", status="Injured"))

        before = checker.check(novel, chapter, extraction)
        updater.update_graph(novel, chapter, extraction)
        after = checker.check(novel, chapter, extraction)

        assert [i.to_dict() for i in before.issues] == [i.to_dict() for i in after.issues]


# =============================================================================
# STATUS
# =============================================================================

class TestStatusChecks:

    def test_deceased_reappearing_is_critical(self):
        report = check(
            protagonist_novel(status="Deceased"), "Mei Ling smiled.",
            make_upsert("Mei Ling", status="Alive"),
        )
        status = report.issues_of(IssueKind.STATUS_INCONSISTENCY)
        assert len(status) == 1
        assert status[0].severity == Severity.CRITICAL
        assert status[0].confidence == 0.95
        assert status[0].message == "Deceased character Mei Ling appears as Alive."

    def test_resurrection_cue_softens(self):
        report = check(
            protagonist_novel(status="Deceased"), "Mei Ling was revived by the elixir.",
            make_upsert("Mei Ling", status="Alive"),
        )
        status = report.issues_of(IssueKind.STATUS_INCONSISTENCY)[0]
        assert status.severity == Severity.WARNING
        assert status.confidence == 0.7

    def test_staying_deceased_is_fine(self):
        report = check(
            protagonist_novel(status="Deceased"), "",
            make_upsert("Mei Ling", status="Deceased"),
        )
        assert report.issues == ()

    def test_tracked_history_overrides_codex(self):
        novel = protagonist_novel()
        checker, _, tracker = build_checker(novel)
        tracker.track_change(EntityType.CHARACTER, "c_mei", "ch3", 3, {"status": "Deceased"})

        report = checker.check(
            novel, make_chapter(6), make_extraction(make_upsert("Mei Ling", status="Alive"))
        )
        assert report.issues_of(IssueKind.STATUS_INCONSISTENCY)[0].severity == Severity.CRITICAL


# =============================================================================
# RELATIONSHIPS AND WORLD RULES
# =============================================================================

class TestRelationshipAndWorldChecks:

    def test_changed_relationship_type_warns(self):
        report = check(
            protagonist_novel(), "",
            make_upsert("Lin Feng", relationships=[("Mei Ling", "Rival")]),
        )
        change = report.issues_of(IssueKind.RELATIONSHIP_CHANGE)[0]
        assert change.severity == Severity.WARNING
        assert change.confidence == 0.8
        assert "from Ally to Rival" in change.message

    def test_relationship_check_can_be_disabled(self):
        report = check(
            protagonist_novel(), "",
            make_upsert("Lin Feng", relationships=[("Mei Ling", "Rival")]),
            config=PostGenerationConfig(check_relationships=False),
        )
        assert report.issues == ()

    def test_new_relationship_is_not_a_change(self):
        report = check(
            protagonist_novel(), "",
            make_upsert("Mei Ling", relationships=[("Lin Feng", "Ally")]),
        )
        assert report.issues == ()

    def test_world_rule_contradiction(self):
        novel = make_novel(
            protagonist_novel().characters,
            world_bible=[WorldEntry(id="w_qi", title="Qi Law", category="Cultivation",
                                    content="Qi can flow through sealed meridians.")],
        )
        report = check(
            novel, "", world_entries=[WorldEntryUpsert(
                title="qi law", category="Cultivation",
                content="Qi cannot flow through sealed meridians.",
            )],
        )
        violation = report.issues_of(IssueKind.WORLD_RULE_VIOLATION)[0]
        assert violation.severity == Severity.WARNING
        assert violation.entity_id == "w_qi"
        assert violation.message == 'World entry "Qi Law" may contradict existing rules.'

    def test_world_rule_in_other_category_is_ignored(self):
        novel = make_novel(
            protagonist_novel().characters,
            world_bible=[WorldEntry(id="w_qi", title="Qi Law", category="Cultivation",
                                    content="Qi can flow.")],
        )
        report = check(
            novel, "", world_entries=[WorldEntryUpsert(
                title="Qi Law", category="Geography", content="Qi cannot flow.",
            )],
        )
        assert report.issues == ()

    def test_check_is_audited_per_chapter(self):
        observability = ObservabilityEngine()
        novel = protagonist_novel()
        checker, _, _ = build_checker(novel, observability=observability)
        checker.check(novel, make_chapter(6), make_extraction())

        entries = observability.get_layer_log("validation", action="post_generation_validation")
        assert entries[0].entity_id == "ch6"
