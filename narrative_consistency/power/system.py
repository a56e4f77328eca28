"""
Power Level System

RESPONSIBILITY: Make free-text power descriptions comparable and judge
whether a transition between two levels is narratively plausible.

DEGRADATION:
============
Free text cannot be parsed with certainty. Unmatched text parses to
order 0 and every comparison involving order 0 is 0 ("cannot compare").
Nothing in this module raises on bad input.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import re

from ..observability import ObservabilityEngine
from .hierarchy import (
    PowerLevelHierarchy, PowerLevelStage, DEFAULT_CATEGORY, default_hierarchies
)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class ProgressionRules:
    """Pacing policy for power progression."""
    max_chapters_per_stage: int = 10
    min_chapters_for_breakthrough: int = 2
    allow_regression: bool = False
    require_breakthrough_event: bool = True

    def __post_init__(self):
        if self.max_chapters_per_stage < 1:
            raise ValueError("max_chapters_per_stage must be at least 1")
        if self.min_chapters_for_breakthrough < 0:
            raise ValueError("min_chapters_for_breakthrough must not be negative")


# =============================================================================
# SUB-STAGES
# =============================================================================

SUB_STAGE_RANKS: Dict[str, int] = {
    'initial': 1,
    'beginner': 1,
    'early': 2,
    'mid': 3,
    'middle': 3,
    'late': 4,
    'advanced': 4,
    'peak': 5,
    'perfected': 5,
    'perfection': 5,
}

# Checked in rank order; the first group present wins
_SUB_STAGE_PATTERNS = tuple(
    re.compile(rf"\b({group})\b", re.IGNORECASE)
    for group in (
        "initial|beginner",
        "early",
        "mid|middle",
        "late|advanced",
        "peak|perfected|perfection",
    )
)

_MIN_FUZZY_TOKEN = 3


def sub_stage_rank(sub_stage: Optional[str]) -> int:
    if not sub_stage:
        return 0
    return SUB_STAGE_RANKS.get(sub_stage.lower(), 0)


def _extract_sub_stage(text: str) -> Optional[str]:
    for pattern in _SUB_STAGE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).lower()
    return None


# =============================================================================
# RESULTS
# =============================================================================

@dataclass(frozen=True)
class ParsedLevel:
    stage_name: str
    order: int
    sub_stage: Optional[str] = None

    @property
    def is_known(self) -> bool:
        return self.order > 0

    @property
    def sub_stage_rank(self) -> int:
        return sub_stage_rank(self.sub_stage)


@dataclass(frozen=True)
class ProgressionCheck:
    """Outcome of validate_progression: issues block, warnings advise."""
    valid: bool
    issues: Tuple[str, ...] = field(default_factory=tuple)
    warnings: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LevelContextCheck:
    """Outcome of checking a mentioned level against the tracked level."""
    valid: bool
    confidence: float
    issues: Tuple[str, ...] = field(default_factory=tuple)
    suggestions: Tuple[str, ...] = field(default_factory=tuple)


# =============================================================================
# POWER LEVEL SYSTEM
# =============================================================================

class PowerLevelSystem:
    """
    Parses, compares and validates power levels against registered
    hierarchies. One instance per engine session.
    """

    def __init__(
        self,
        rules: Optional[ProgressionRules] = None,
        observability: Optional[ObservabilityEngine] = None
    ):
        self._rules = rules or ProgressionRules()
        self._hierarchies: Dict[str, PowerLevelHierarchy] = default_hierarchies()
        self._observability = observability

    @property
    def rules(self) -> ProgressionRules:
        return self._rules

    def get_hierarchy(self, category: str = DEFAULT_CATEGORY) -> Optional[PowerLevelHierarchy]:
        return self._hierarchies.get(category)

    def register_hierarchy(self, hierarchy: PowerLevelHierarchy):
        """Register or replace the hierarchy for its category."""
        self._hierarchies[hierarchy.category] = hierarchy
        if self._observability:
            self._observability.log_audit(
                action="register_hierarchy",
                entity_id=hierarchy.category,
                details=f"{len(hierarchy.stages)} stages",
                layer="power"
            )

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def parse_level(
        self,
        text: Optional[str],
        category: str = DEFAULT_CATEGORY
    ) -> Optional[ParsedLevel]:
        """
        Parse free text into a stage of the category's hierarchy.

        Matching order: exact (case-insensitive), whole-word stage name
        with sub-stage extraction, then all-words-present fuzzy match.
        Text that matches nothing parses to order 0 with the raw text as
        its stage name. Blank text or an unknown/empty category gives None.
        """
        if not text or not text.strip():
            return None

        hierarchy = self.get_hierarchy(category)
        if hierarchy is None or hierarchy.is_empty:
            return None

        normalized = text.strip()
        lowered = normalized.lower()

        for stage in hierarchy.stages:
            if lowered == stage.name.lower():
                return ParsedLevel(stage_name=stage.name, order=stage.order)

            if self._stage_pattern(stage).search(normalized):
                return ParsedLevel(
                    stage_name=stage.name,
                    order=stage.order,
                    sub_stage=_extract_sub_stage(normalized),
                )

        words = lowered.split()
        for stage in hierarchy.stages:
            if self._fuzzy_match(stage, words):
                return ParsedLevel(
                    stage_name=stage.name,
                    order=stage.order,
                    sub_stage=_extract_sub_stage(normalized),
                )

        return ParsedLevel(stage_name=normalized, order=0)

    @staticmethod
    def _stage_pattern(stage: PowerLevelStage):
        words = [re.escape(w) for w in stage.name.lower().split()]
        return re.compile(r"\b" + r"\s+".join(words) + r"\b", re.IGNORECASE)

    @staticmethod
    def _fuzzy_match(stage: PowerLevelStage, words: List[str]) -> bool:
        stage_words = stage.name.lower().split()
        if not stage_words:
            return False
        return all(
            any(
                sw in w or (len(w) >= _MIN_FUZZY_TOKEN and w in sw)
                for w in words
            )
            for sw in stage_words
        )

    # -------------------------------------------------------------------------
    # Comparison
    # -------------------------------------------------------------------------

    def compare(
        self,
        level_a: Optional[str],
        level_b: Optional[str],
        category: str = DEFAULT_CATEGORY
    ) -> int:
        """
        -1 if a < b, 1 if a > b, otherwise 0.

        0 also means "cannot compare": either side unparsed or of unknown
        order, or the same stage with a missing sub-stage.
        """
        parsed_a = self.parse_level(level_a, category)
        parsed_b = self.parse_level(level_b, category)

        if parsed_a is None or parsed_b is None:
            return 0
        if not parsed_a.is_known or not parsed_b.is_known:
            return 0

        if parsed_a.order != parsed_b.order:
            return -1 if parsed_a.order < parsed_b.order else 1

        rank_a = parsed_a.sub_stage_rank
        rank_b = parsed_b.sub_stage_rank
        if rank_a and rank_b and rank_a != rank_b:
            return -1 if rank_a < rank_b else 1

        return 0

    def stage_delta(
        self,
        level_a: Optional[str],
        level_b: Optional[str],
        category: str = DEFAULT_CATEGORY
    ) -> Optional[int]:
        """Stage order of b minus stage order of a; None when either is unknown."""
        parsed_a = self.parse_level(level_a, category)
        parsed_b = self.parse_level(level_b, category)
        if parsed_a is None or parsed_b is None:
            return None
        if not parsed_a.is_known or not parsed_b.is_known:
            return None
        return parsed_b.order - parsed_a.order

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_progression(
        self,
        previous: Optional[str],
        current: Optional[str],
        chapters_elapsed: int,
        has_breakthrough_event: bool,
        category: str = DEFAULT_CATEGORY
    ) -> ProgressionCheck:
        rules = self._rules
        issues: List[str] = []
        warnings: List[str] = []

        comparison = self.compare(previous, current, category)

        if comparison > 0:
            if not rules.allow_regression:
                issues.append(
                    f"Power level regression detected: {previous} → {current}. "
                    f"Regression is not allowed unless explicitly justified."
                )
            else:
                warnings.append(
                    f"Power level regression: {previous} → {current}. "
                    f"Ensure this is intentional and explained."
                )

        if comparison < 0:
            stage_jump = self.stage_delta(previous, current, category) or 0

            if stage_jump > 1:
                required = rules.min_chapters_for_breakthrough * stage_jump
                if chapters_elapsed < required:
                    issues.append(
                        f"Unrealistic power progression: Jumped {stage_jump} stage(s) "
                        f"in {chapters_elapsed} chapter(s). "
                        f"Expected at least {required} chapters for such progression."
                    )
                else:
                    warnings.append(
                        f"Rapid power progression: Jumped {stage_jump} stage(s) "
                        f"in {chapters_elapsed} chapter(s). "
                        f"Ensure this is well-justified in the narrative."
                    )

            if rules.require_breakthrough_event and stage_jump >= 1 and not has_breakthrough_event:
                issues.append(
                    f"Power level advancement requires a breakthrough event. "
                    f"Current: {current}, Previous: {previous}. "
                    f"Add a breakthrough scene or description."
                )

            if chapters_elapsed > rules.max_chapters_per_stage:
                warnings.append(
                    f"Slow power progression: {chapters_elapsed} chapters since last change. "
                    f"Consider advancing the character's power level or adding progression events."
                )

        if comparison == 0 and chapters_elapsed > rules.max_chapters_per_stage:
            if self.is_valid(previous, category) and self.is_valid(current, category):
                warnings.append(
                    f"Power level unchanged at {current} for {chapters_elapsed} chapters. "
                    f"Consider progression events or explain the plateau."
                )

        if self._observability and issues:
            self._observability.log_audit(
                action="progression_rejected",
                outcome="rule_violation",
                details=f"{previous} -> {current} over {chapters_elapsed} chapter(s)",
                layer="power"
            )

        return ProgressionCheck(
            valid=not issues,
            issues=tuple(issues),
            warnings=tuple(warnings),
        )

    def validate_level_in_context(
        self,
        current_level: Optional[str],
        mentioned_level: str,
        chapters_since_change: Optional[int] = None,
        regression_justified: bool = False,
        has_breakthrough_event: bool = False,
        category: str = DEFAULT_CATEGORY
    ) -> LevelContextCheck:
        """
        Check a level mentioned in prose against the tracked level.

        Confidence drops as the evidence against the mention grows.
        `chapters_since_change` is None when the character has no
        recorded progression, in which case forward moves are not re-paced.
        """
        if not current_level or current_level == "Unknown":
            return LevelContextCheck(
                valid=True,
                confidence=0.5,
                suggestions=("Set an initial power level for this character",),
            )

        parsed_current = self.parse_level(current_level, category)
        parsed_mentioned = self.parse_level(mentioned_level, category)
        if parsed_current is None or parsed_mentioned is None:
            return LevelContextCheck(
                valid=False,
                confidence=0.3,
                issues=("Unable to parse power levels for comparison",),
            )

        issues: List[str] = []
        suggestions: List[str] = []
        confidence = 1.0

        if parsed_current.stage_name == parsed_mentioned.stage_name:
            current_rank = parsed_current.sub_stage_rank
            mentioned_rank = parsed_mentioned.sub_stage_rank
            if current_rank and mentioned_rank:
                if mentioned_rank < current_rank:
                    issues.append(
                        f"Sub-stage regression: {parsed_current.sub_stage} → {parsed_mentioned.sub_stage}"
                    )
                    confidence = 0.2
                elif mentioned_rank > current_rank + 1:
                    issues.append(
                        f"Rapid sub-stage progression: {parsed_current.sub_stage} → {parsed_mentioned.sub_stage}"
                    )
                    suggestions.append("Ensure gradual progression is shown")
                    confidence = 0.7
            return LevelContextCheck(
                valid=not issues,
                confidence=confidence,
                issues=tuple(issues),
                suggestions=tuple(suggestions),
            )

        comparison = self.compare(current_level, mentioned_level, category)
        if comparison > 0:
            issues.append(f"Power level regression: {current_level} → {mentioned_level}")
            if regression_justified:
                suggestions.append("Regression is justified but should be explicitly explained")
                confidence = 0.6
            else:
                issues.append("Power regression not justified in chapter text")
                confidence = 0.1
        elif comparison < 0 and chapters_since_change is not None:
            check = self.validate_progression(
                current_level,
                mentioned_level,
                chapters_since_change,
                has_breakthrough_event,
                category
            )
            if not check.valid:
                issues.extend(check.issues)
                confidence = 0.3
            elif check.warnings:
                suggestions.extend(check.warnings)
                confidence = 0.8

        return LevelContextCheck(
            valid=not issues,
            confidence=confidence,
            issues=tuple(issues),
            suggestions=tuple(suggestions),
        )

    # -------------------------------------------------------------------------
    # Conveniences
    # -------------------------------------------------------------------------

    def get_next_stage(
        self,
        level: Optional[str],
        category: str = DEFAULT_CATEGORY
    ) -> Optional[str]:
        parsed = self.parse_level(level, category)
        if parsed is None or not parsed.is_known:
            return None
        next_stage = self.get_hierarchy(category).stage_by_order(parsed.order + 1)
        return next_stage.name if next_stage else None

    def is_valid(self, level: Optional[str], category: str = DEFAULT_CATEGORY) -> bool:
        parsed = self.parse_level(level, category)
        return parsed is not None and parsed.is_known

    def normalize(self, level: Optional[str], category: str = DEFAULT_CATEGORY) -> Optional[str]:
        """Canonical "<Stage> <sub-stage>" form; unparsed text comes back unchanged."""
        parsed = self.parse_level(level, category)
        if parsed is None:
            return level
        if parsed.sub_stage:
            return f"{parsed.stage_name} {parsed.sub_stage}"
        return parsed.stage_name
