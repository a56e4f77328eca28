"""
Power Level System Tests
========================

INVARIANTS TESTED:
1. compare is antisymmetric and its strict order is transitive
2. Unparseable text never raises and compares as 0
3. Progression rules: no silent regression, breakthrough gating, pacing
"""

import pytest
from hypothesis import given, strategies as st
from hypothesis.strategies import composite

from narrative_consistency.observability import ObservabilityEngine
from narrative_consistency.power import (
    PowerLevelSystem, PowerLevelHierarchy, PowerLevelStage, ProgressionRules,
    COMBAT, SPIRITUAL,
)
from narrative_consistency.power.hierarchy import CULTIVATION_HIERARCHY


STAGE_NAMES = [s.name for s in CULTIVATION_HIERARCHY.stages]


# =============================================================================
# STRATEGIES
# =============================================================================

@composite
def cultivation_levels(draw):
    """Stage name with an optional sub-stage, in either word order."""
    stage = draw(st.sampled_from(STAGE_NAMES))
    sub_stage = draw(st.sampled_from([None, "Early", "Mid", "Late", "Peak"]))
    if sub_stage is None:
        return stage
    if draw(st.booleans()):
        return f"{sub_stage} {stage}"
    return f"{stage} {sub_stage}"


# =============================================================================
# PARSING
# =============================================================================

class TestParseLevel:

    def test_exact_match_is_case_insensitive(self):
        parsed = PowerLevelSystem().parse_level("core formation")
        assert parsed.stage_name == "Core Formation"
        assert parsed.order == 3
        assert parsed.sub_stage is None

    def test_sub_stage_extracted(self):
        parsed = PowerLevelSystem().parse_level("Mid Core Formation")
        assert parsed.stage_name == "Core Formation"
        assert parsed.sub_stage == "mid"
        assert parsed.sub_stage_rank == 3

    def test_fuzzy_match_handles_punctuation(self):
        parsed = PowerLevelSystem().parse_level("foundation-building stage")
        assert parsed.stage_name == "Foundation Building"

    def test_unknown_text_parses_to_order_zero(self):
        parsed = PowerLevelSystem().parse_level("Heavenly Dao Comprehension")
        assert parsed.order == 0
        assert not parsed.is_known
        assert parsed.stage_name == "Heavenly Dao Comprehension"

    def test_blank_text_is_none(self):
        system = PowerLevelSystem()
        assert system.parse_level("") is None
        assert system.parse_level("   ") is None
        assert system.parse_level(None) is None

    def test_empty_hierarchy_is_none(self):
        """Spiritual has no stages until one is registered."""
        assert PowerLevelSystem().parse_level("Qi Refining", SPIRITUAL) is None

    def test_registered_hierarchy_is_used(self):
        system = PowerLevelSystem()
        system.register_hierarchy(PowerLevelHierarchy(
            category=SPIRITUAL,
            stages=(
                PowerLevelStage("Awakened", 1, SPIRITUAL),
                PowerLevelStage("Enlightened", 2, SPIRITUAL),
            ),
        ))
        assert system.compare("Awakened", "Enlightened", SPIRITUAL) == -1

    def test_combat_hierarchy(self):
        assert PowerLevelSystem().compare("Grandmaster", "Warrior", COMBAT) == 1


class TestHierarchyContracts:

    def test_duplicate_order_rejected(self):
        with pytest.raises(ValueError):
            PowerLevelHierarchy(category="x", stages=(
                PowerLevelStage("A", 1, "x"),
                PowerLevelStage("B", 1, "x"),
            ))

    def test_non_positive_order_rejected(self):
        with pytest.raises(ValueError):
            PowerLevelHierarchy(category="x", stages=(PowerLevelStage("A", 0, "x"),))

    def test_rules_reject_zero_chapters_per_stage(self):
        with pytest.raises(ValueError):
            ProgressionRules(max_chapters_per_stage=0)


# =============================================================================
# COMPARISON
# =============================================================================

class TestCompare:

    def test_stage_order(self):
        system = PowerLevelSystem()
        assert system.compare("Foundation Building", "Core Formation") == -1
        assert system.compare("Nascent Soul", "Qi Refining") == 1

    def test_sub_stage_breaks_ties(self):
        system = PowerLevelSystem()
        assert system.compare("Core Formation Early", "Core Formation Late") == -1
        assert system.compare("Peak Core Formation", "Mid Core Formation") == 1

    def test_missing_sub_stage_cannot_compare(self):
        assert PowerLevelSystem().compare("Core Formation", "Core Formation Late") == 0

    def test_unknown_cannot_compare(self):
        system = PowerLevelSystem()
        assert system.compare("Heavenly Dao", "Core Formation") == 0
        assert system.compare(None, "Core Formation") == 0

    def test_stage_delta(self):
        system = PowerLevelSystem()
        assert system.stage_delta("Qi Refining", "Nascent Soul") == 3
        assert system.stage_delta("Nascent Soul", "Qi Refining") == -3
        assert system.stage_delta("Heavenly Dao", "Qi Refining") is None

    @given(cultivation_levels(), cultivation_levels())
    def test_compare_is_antisymmetric(self, a, b):
        system = PowerLevelSystem()
        assert system.compare(a, b) == -system.compare(b, a)

    @given(cultivation_levels(), cultivation_levels(), cultivation_levels())
    def test_strict_order_is_transitive(self, a, b, c):
        system = PowerLevelSystem()
        if system.compare(a, b) < 0 and system.compare(b, c) < 0:
            assert system.compare(a, c) < 0

    @given(st.text(max_size=40))
    def test_arbitrary_text_never_raises(self, text):
        system = PowerLevelSystem()
        assert system.compare(text, "Core Formation") in (-1, 0, 1)


# =============================================================================
# PROGRESSION RULES
# =============================================================================

class TestValidateProgression:

    def test_regression_is_an_issue(self):
        check = PowerLevelSystem().validate_progression(
            "Core Formation", "Foundation Building", 3, False
        )
        assert not check.valid
        assert "regression" in check.issues[0].lower()

    def test_regression_allowed_becomes_warning(self):
        system = PowerLevelSystem(ProgressionRules(allow_regression=True))
        check = system.validate_progression("Core Formation", "Foundation Building", 3, False)
        assert check.valid
        assert len(check.warnings) == 1

    def test_multi_stage_jump_too_fast(self):
        check = PowerLevelSystem().validate_progression("Qi Refining", "Nascent Soul", 2, True)
        assert not check.valid
        assert any("Jumped 3 stage(s)" in i for i in check.issues)

    def test_multi_stage_jump_with_enough_chapters_warns(self):
        check = PowerLevelSystem().validate_progression("Qi Refining", "Nascent Soul", 6, True)
        assert check.valid
        assert any("Rapid power progression" in w for w in check.warnings)

    def test_advancement_requires_breakthrough(self):
        check = PowerLevelSystem().validate_progression(
            "Foundation Building", "Core Formation", 3, False
        )
        assert not check.valid
        assert any("breakthrough event" in i for i in check.issues)

    def test_breakthrough_single_stage_is_valid(self):
        check = PowerLevelSystem().validate_progression(
            "Foundation Building", "Core Formation", 1, True
        )
        assert check.valid
        assert check.warnings == ()

    def test_slow_progression_warns(self):
        check = PowerLevelSystem().validate_progression(
            "Foundation Building", "Core Formation", 12, True
        )
        assert check.valid
        assert any("Slow power progression" in w for w in check.warnings)

    def test_plateau_warns_only_for_known_levels(self):
        system = PowerLevelSystem()
        plateau = system.validate_progression("Core Formation", "Core Formation", 11, False)
        unknown = system.validate_progression("Heavenly Dao", "Heavenly Dao", 11, False)
        assert any("unchanged" in w for w in plateau.warnings)
        assert unknown.warnings == ()

    def test_rejection_is_audited(self):
        observability = ObservabilityEngine()
        system = PowerLevelSystem(observability=observability)
        system.validate_progression("Core Formation", "Qi Refining", 1, False)
        entries = observability.get_layer_log("power", action="progression_rejected")
        assert len(entries) == 1
        assert entries[0].get("outcome") == "rule_violation"


class TestLevelInContext:

    def test_unset_level_is_soft_pass(self):
        check = PowerLevelSystem().validate_level_in_context(None, "Core Formation")
        assert check.valid
        assert check.confidence == 0.5

    def test_sub_stage_regression(self):
        check = PowerLevelSystem().validate_level_in_context(
            "Core Formation Mid", "Core Formation Early"
        )
        assert not check.valid
        assert check.confidence == 0.2

    def test_sub_stage_skip(self):
        check = PowerLevelSystem().validate_level_in_context(
            "Core Formation Early", "Core Formation Peak"
        )
        assert not check.valid
        assert check.confidence == 0.7

    def test_unjustified_stage_regression(self):
        check = PowerLevelSystem().validate_level_in_context("Nascent Soul", "Core Formation")
        assert not check.valid
        assert check.confidence == 0.1

    def test_justified_stage_regression_keeps_more_confidence(self):
        check = PowerLevelSystem().validate_level_in_context(
            "Nascent Soul", "Core Formation", regression_justified=True
        )
        assert check.confidence == 0.6
        assert check.suggestions


class TestConveniences:

    def test_next_stage(self):
        system = PowerLevelSystem()
        assert system.get_next_stage("Core Formation Late") == "Nascent Soul"
        assert system.get_next_stage("Immortal Ascension") is None
        assert system.get_next_stage("Heavenly Dao") is None

    def test_normalize(self):
        system = PowerLevelSystem()
        assert system.normalize("mid core formation") == "Core Formation mid"
        assert system.normalize("Heavenly Dao") == "Heavenly Dao"

    def test_is_valid(self):
        system = PowerLevelSystem()
        assert system.is_valid("Nascent Soul")
        assert not system.is_valid("Heavenly Dao")
