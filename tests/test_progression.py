"""
Power Progression Validator Tests
=================================

INVARIANTS TESTED:
1. Every recorded transition is re-checked from the baseline forward
2. A character counts once: critical, else warned, else validated
3. Hints are info and never make a report invalid
"""

from narrative_consistency.contracts.graph import ProgressionType
from narrative_consistency.contracts.validation import IssueKind, Severity
from narrative_consistency.graph import KnowledgeGraph
from narrative_consistency.observability import ObservabilityEngine
from narrative_consistency.power import PowerLevelSystem
from narrative_consistency.validation import PowerProgressionValidator

from .fixtures import make_chapter, make_character, make_novel, protagonist_novel


def build_validator(novel, observability=None):
    graph = KnowledgeGraph()
    graph.initialize_graph(novel)
    return PowerProgressionValidator(graph, PowerLevelSystem(), observability), graph


class TestValidate:

    def test_untouched_timelines_are_valid(self):
        validator, _ = build_validator(protagonist_novel())
        report = validator.validate(protagonist_novel())

        assert report.valid
        assert report.total_characters == 2
        assert report.validated == 2
        assert report.recommendations == ("All power progressions are valid. Ready for generation.",)

    def test_overpaced_breakthrough_is_critical(self):
        novel = protagonist_novel()
        validator, graph = build_validator(novel)
        graph.update_power_level("c_lin", "Nascent Soul", "ch6", 6, ProgressionType.BREAKTHROUGH)

        report = validator.validate(novel, ["c_lin"], 7)

        assert not report.valid
        assert report.with_critical_issues == 1
        finding = report.findings[0]
        assert finding.current_level == "Nascent Soul"
        assert finding.issues[0].severity == Severity.CRITICAL
        assert finding.issues[0].chapter_number == 6
        assert "Jumped 2 stage(s)" in finding.issues[0].message
        assert report.recommendations == (
            "Fix 1 critical power progression issue(s) before generating.",
        )

    def test_recorded_gradual_advance_is_only_a_warning(self):
        """A cue-less one-stage step was judged in its own chapter; it must not block later ones."""
        novel = protagonist_novel()
        validator, graph = build_validator(novel)
        graph.update_power_level("c_lin", "Core Formation", "ch6", 6, ProgressionType.GRADUAL)

        report = validator.validate(novel, ["c_lin"], 7)

        assert report.valid
        assert report.with_warnings == 1
        issue = report.findings[0].issues[0]
        assert issue.severity == Severity.WARNING
        assert "breakthrough event" in issue.message
        assert report.recommendations == ("Review 1 power progression warning(s).",)

    def test_breakthrough_advance_is_valid(self):
        novel = protagonist_novel()
        validator, graph = build_validator(novel)
        graph.update_power_level("c_lin", "Core Formation", "ch6", 6, ProgressionType.BREAKTHROUGH)

        report = validator.validate(novel, ["c_lin"], 7)
        assert report.valid
        assert report.findings[0].issues == ()

    def test_whole_timeline_is_replayed(self):
        """A bad early transition is still reported after later good ones."""
        novel = protagonist_novel()
        validator, graph = build_validator(novel)
        graph.update_power_level("c_lin", "Nascent Soul", "ch6", 6, ProgressionType.BREAKTHROUGH)
        graph.update_power_level("c_lin", "Soul Transformation", "ch9", 9, ProgressionType.BREAKTHROUGH)

        issues = validator.validate(novel, ["c_lin"], 10).findings[0].issues
        assert [i.chapter_number for i in issues if i.severity == Severity.CRITICAL] == [6]

    def test_recorded_regression_is_a_warning(self):
        novel = protagonist_novel()
        validator, graph = build_validator(novel)
        graph.update_power_level("c_lin", "Qi Refining", "ch6", 6, ProgressionType.REGRESSION)

        report = validator.validate(novel, ["c_lin"], 7)
        assert report.valid
        assert report.with_warnings == 1
        assert report.recommendations == ("Review 1 power progression warning(s).",)

    def test_missing_level_is_a_warning(self):
        novel = make_novel([make_character("c_lin", "Lin Feng", level="")])
        validator, _ = build_validator(novel)
        finding = validator.validate(novel).findings[0]

        assert finding.current_level == "Unknown"
        assert finding.issues[0].kind == IssueKind.MISSING_POWER_LEVEL

    def test_progression_hint_after_a_long_stay(self):
        novel = protagonist_novel()
        validator, graph = build_validator(novel)
        graph.update_power_level("c_lin", "Core Formation", "ch6", 6, ProgressionType.BREAKTHROUGH)

        report = validator.validate(novel, ["c_lin"], 12)
        hint = report.findings[0].issues[0]
        assert hint.kind == IssueKind.PROGRESSION_HINT
        assert hint.severity == Severity.INFO
        assert hint.message == (
            "Lin Feng has been at Core Formation for 6 chapters. Consider progression to Nascent Soul."
        )
        assert report.validated == 1

    def test_no_hint_after_stable_event(self):
        novel = protagonist_novel()
        validator, graph = build_validator(novel)
        graph.update_power_level("c_lin", "Foundation Building Late", "ch6", 6, ProgressionType.STABLE)
        assert validator.validate(novel, ["c_lin"], 20).findings[0].issues == ()

    def test_unknown_ids_are_skipped(self):
        validator, _ = build_validator(protagonist_novel())
        assert validator.validate(protagonist_novel(), ["c_ghost"]).total_characters == 0

    def test_run_is_audited(self):
        observability = ObservabilityEngine()
        validator, _ = build_validator(protagonist_novel(), observability)
        validator.validate(protagonist_novel())
        assert len(observability.get_layer_log("validation", action="validate_progression")) == 1


class TestLevelAppropriateness:

    def test_hint_after_eight_chapters(self):
        validator, _ = build_validator(protagonist_novel())
        assert validator.check_level_appropriateness("c_lin", 13) is None

        hint = validator.check_level_appropriateness("c_lin", 14)
        assert hint.severity == Severity.INFO
        assert hint.message == "Lin Feng has been at Foundation Building for 9 chapters."
        assert hint.suggestion == "Consider advancing to Core Formation."

    def test_top_stage_suggests_growth_within_it(self):
        validator, _ = build_validator(protagonist_novel(level="Immortal Ascension"))
        hint = validator.check_level_appropriateness("c_lin", 20)
        assert hint.suggestion == "Consider showing growth within the current stage."

    def test_unknown_character_or_level(self):
        validator, _ = build_validator(make_novel([make_character("c_lin", "Lin Feng", level="")]))
        assert validator.check_level_appropriateness("c_lin", 50) is None
        assert validator.check_level_appropriateness("c_ghost", 50) is None


class TestMentionedLevel:

    def test_sub_stage_regression(self):
        validator, _ = build_validator(protagonist_novel(level="Core Formation Mid"))
        check = validator.validate_mentioned_level("c_lin", "Core Formation Early", make_chapter(6))
        assert not check.valid
        assert check.confidence == 0.2

    def test_mention_is_judged_against_level_before_chapter(self):
        novel = protagonist_novel()
        validator, graph = build_validator(novel)
        graph.update_power_level("c_lin", "Core Formation", "ch6", 6, ProgressionType.BREAKTHROUGH)

        assert validator.validate_mentioned_level(
            "c_lin", "Core Formation", make_chapter(7)
        ).valid
        assert not validator.validate_mentioned_level(
            "c_lin", "Foundation Building", make_chapter(7, content="He sat calmly.")
        ).valid

    def test_unknown_character_is_soft_pass(self):
        validator, _ = build_validator(protagonist_novel())
        check = validator.validate_mentioned_level("c_ghost", "Core Formation", make_chapter(6))
        assert check.valid
        assert check.confidence == 0.5
