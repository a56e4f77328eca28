"""
Power Progression Validator

Batch audit of recorded power timelines, plus contextual checks of levels
mentioned in chapter text.

WHAT THIS VALIDATOR MUST NOT DO:
================================
- Append progression events (KnowledgeGraph.update_power_level does)
- Treat a missing timeline as an error: it is reported, not raised
"""

from __future__ import annotations
from typing import Iterable, List, Optional

from ..contracts.base import EntityType, UNKNOWN_LEVEL
from ..contracts.events import AuditEventType
from ..contracts.graph import PowerProgressionTimeline, ProgressionType
from ..contracts.novel import Chapter, Character, NovelState
from ..contracts.validation import (
    CharacterProgressionFinding, IssueKind, ProgressionReport, Severity, ValidationIssue
)
from ..cues import has_breakthrough_cue, has_regression_cue
from ..graph.knowledge_graph import KnowledgeGraph
from ..observability import ObservabilityEngine
from ..power.system import LevelContextCheck, PowerLevelSystem


PROGRESSION_HINT_AFTER = 5
APPROPRIATENESS_HINT_AFTER = 8


class PowerProgressionValidator:
    """Validates whole timelines against the progression rules."""

    def __init__(
        self,
        graph: KnowledgeGraph,
        power_system: PowerLevelSystem,
        observability: Optional[ObservabilityEngine] = None
    ):
        self._graph = graph
        self._power = power_system
        self._observability = observability

    @property
    def _category(self) -> str:
        return self._graph.config.power_category

    def validate(
        self,
        novel_state: NovelState,
        character_ids: Optional[Iterable[str]] = None,
        next_chapter_number: Optional[int] = None
    ) -> ProgressionReport:
        """
        Audit the timelines of the given characters (all by default).

        A character with any critical issue counts as critical, else one
        with a warning counts as warned, else as validated.
        """
        if not self._graph.is_initialized:
            self._graph.initialize_graph(novel_state)
        if character_ids is None:
            character_ids = [c.id for c in novel_state.characters]
        if next_chapter_number is None:
            next_chapter_number = len(novel_state.chapters) + 1

        findings: List[CharacterProgressionFinding] = []
        for character_id in character_ids:
            character = novel_state.get_character(character_id)
            if character is None:
                continue
            findings.append(self._character_finding(character, next_chapter_number))

        with_critical = sum(1 for f in findings if f.has_critical)
        with_warnings = sum(1 for f in findings if not f.has_critical and f.has_warnings)
        validated = len(findings) - with_critical - with_warnings

        recommendations = []
        if with_critical:
            recommendations.append(
                f"Fix {with_critical} critical power progression issue(s) before generating."
            )
        if with_warnings:
            recommendations.append(f"Review {with_warnings} power progression warning(s).")
        if not with_critical and not with_warnings:
            recommendations.append("All power progressions are valid. Ready for generation.")

        report = ProgressionReport(
            valid=with_critical == 0,
            findings=tuple(findings),
            total_characters=len(findings),
            validated=validated,
            with_warnings=with_warnings,
            with_critical_issues=with_critical,
            recommendations=tuple(recommendations),
        )

        if self._observability:
            self._observability.log_audit(
                action="validate_progression",
                entity_id=novel_state.id,
                outcome="success" if report.valid else "invalid",
                details=(
                    f"{report.total_characters} character(s): {validated} valid, "
                    f"{with_warnings} warned, {with_critical} critical"
                ),
                layer="validation",
                event_type=AuditEventType.VALIDATION
            )

        return report

    def _character_finding(
        self,
        character: Character,
        next_chapter_number: int
    ) -> CharacterProgressionFinding:
        timeline = self._graph.get_power_progression(character.id)
        current_level = (
            self._graph.get_character_power_level(character.id)
            or character.current_cultivation
            or UNKNOWN_LEVEL
        )

        if timeline is None or not timeline.events:
            issues = []
            if current_level == UNKNOWN_LEVEL:
                issues.append(ValidationIssue(
                    kind=IssueKind.MISSING_POWER_LEVEL,
                    severity=Severity.WARNING,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character.id,
                    entity_name=character.name,
                    chapter_number=next_chapter_number,
                    message=f'Character "{character.name}" has no power level set.',
                    suggestion="Set an initial power level for this character.",
                ))
            return CharacterProgressionFinding(
                character_id=character.id,
                character_name=character.name,
                current_level=current_level,
                issues=tuple(issues),
            )

        issues = self._timeline_issues(character, timeline)
        hint = self._progression_hint(character, timeline, next_chapter_number)
        if hint is not None:
            issues.append(hint)

        return CharacterProgressionFinding(
            character_id=character.id,
            character_name=character.name,
            current_level=timeline.current_level,
            issues=tuple(issues),
        )

    def _timeline_issues(
        self,
        character: Character,
        timeline: PowerProgressionTimeline
    ) -> List[ValidationIssue]:
        """
        Every recorded transition re-checked against the rules. Only
        breakthroughs keep critical violations; other recorded transitions
        were judged when their chapter was checked.
        """
        issues = []
        previous_level = timeline.baseline_level
        previous_chapter = timeline.baseline_chapter

        for event in timeline.events:
            check = self._power.validate_progression(
                previous_level,
                event.power_level,
                max(0, event.chapter_number - previous_chapter),
                event.progression_type == ProgressionType.BREAKTHROUGH,
                self._category,
            )
            violation = (
                Severity.CRITICAL if event.progression_type == ProgressionType.BREAKTHROUGH
                else Severity.WARNING
            )
            for message in check.issues:
                issues.append(ValidationIssue(
                    kind=IssueKind.INCONSISTENT_POWER,
                    severity=violation,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character.id,
                    entity_name=character.name,
                    chapter_number=event.chapter_number,
                    message=message,
                    suggestion="Review power level progression and ensure it follows established rules.",
                ))
            for message in check.warnings:
                issues.append(ValidationIssue(
                    kind=IssueKind.INCONSISTENT_POWER,
                    severity=Severity.WARNING,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character.id,
                    entity_name=character.name,
                    chapter_number=event.chapter_number,
                    message=message,
                    suggestion="Consider adjusting power progression or adding justification.",
                ))
            previous_level = event.power_level
            previous_chapter = event.chapter_number

        return issues

    def _progression_hint(
        self,
        character: Character,
        timeline: PowerProgressionTimeline,
        next_chapter_number: int
    ) -> Optional[ValidationIssue]:
        last = timeline.last_event
        if last is not None and last.progression_type == ProgressionType.STABLE:
            return None

        chapters_at_level = next_chapter_number - timeline.current_chapter
        if chapters_at_level <= PROGRESSION_HINT_AFTER:
            return None

        next_stage = self._power.get_next_stage(timeline.current_level, self._category)
        if next_stage is None:
            return None

        return ValidationIssue(
            kind=IssueKind.PROGRESSION_HINT,
            severity=Severity.INFO,
            entity_type=EntityType.CHARACTER,
            entity_id=character.id,
            entity_name=character.name,
            chapter_number=next_chapter_number,
            message=(
                f"{character.name} has been at {timeline.current_level} for "
                f"{chapters_at_level} chapters. Consider progression to {next_stage}."
            ),
            suggestion=f"Plan a breakthrough to {next_stage} in an upcoming chapter.",
        )

    # -------------------------------------------------------------------------
    # Single-character checks
    # -------------------------------------------------------------------------

    def check_level_appropriateness(
        self,
        character_id: str,
        next_chapter_number: int
    ) -> Optional[ValidationIssue]:
        """Info hint when a character has sat on one level for too long."""
        timeline = self._graph.get_power_progression(character_id)
        if timeline is None:
            return None

        level = timeline.current_level
        if level == UNKNOWN_LEVEL:
            return None

        chapters_at_level = next_chapter_number - timeline.current_chapter
        if chapters_at_level <= APPROPRIATENESS_HINT_AFTER:
            return None

        next_stage = self._power.get_next_stage(level, self._category)
        suggestion = (
            f"Consider advancing to {next_stage}." if next_stage
            else "Consider showing growth within the current stage."
        )
        return ValidationIssue(
            kind=IssueKind.PROGRESSION_HINT,
            severity=Severity.INFO,
            entity_type=EntityType.CHARACTER,
            entity_id=character_id,
            entity_name=timeline.character_name,
            chapter_number=next_chapter_number,
            message=f"{timeline.character_name} has been at {level} for {chapters_at_level} chapters.",
            suggestion=suggestion,
        )

    def validate_mentioned_level(
        self,
        character_id: str,
        mentioned_level: str,
        chapter: Chapter
    ) -> LevelContextCheck:
        """Check a level named in chapter text against the graph's level."""
        timeline = self._graph.get_power_progression(character_id)
        current_level = timeline.level_before(chapter.number) if timeline else None
        since = None
        if timeline is not None and timeline.last_event_before(chapter.number) is not None:
            since = chapter.number - timeline.chapter_of_level_before(chapter.number)

        return self._power.validate_level_in_context(
            current_level,
            mentioned_level,
            chapters_since_change=since,
            regression_justified=has_regression_cue(chapter.text),
            has_breakthrough_event=has_breakthrough_cue(chapter.text),
            category=self._category,
        )
