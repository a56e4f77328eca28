"""
Pre-Generation Validator

Checks that the state the next chapter will be written against is
complete and internally consistent.

WHAT THIS VALIDATOR MUST NOT DO:
================================
- Mutate the graph or the tracker
- Block on warnings or info (only critical issues make a report invalid)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..contracts.base import EntityType, UNKNOWN_LEVEL
from ..contracts.graph import ProgressionType
from ..contracts.novel import Character, NovelState
from ..contracts.validation import (
    ContextCompleteness, IssueKind, Severity, ValidationIssue, ValidationReport
)
from ..graph.knowledge_graph import KnowledgeGraph
from ..observability import ObservabilityEngine
from ..power.system import PowerLevelSystem
from ..temporal.state_tracker import EntityStateTracker
from .scoring import ScoringConfig, build_report, record_report


@dataclass
class PreGenerationConfig:
    ending_window_chars: int = 1500
    outdated_after_chapters: int = 10
    check_stagnation: bool = True


def characters_in_text(text: str, characters: Tuple[Character, ...]) -> List[str]:
    """Ids of characters whose name appears in text (case-insensitive)."""
    lowered = (text or "").lower()
    return [c.id for c in characters if c.name and c.name.lower() in lowered]


class PreGenerationValidator:

    def __init__(
        self,
        graph: KnowledgeGraph,
        tracker: EntityStateTracker,
        power_system: PowerLevelSystem,
        config: Optional[PreGenerationConfig] = None,
        scoring: Optional[ScoringConfig] = None,
        observability: Optional[ObservabilityEngine] = None
    ):
        self._graph = graph
        self._tracker = tracker
        self._power = power_system
        self._config = config or PreGenerationConfig()
        self._scoring = scoring
        self._observability = observability

    def candidate_characters(self, novel_state: NovelState) -> List[str]:
        """
        Characters likely to appear next: those named in the tail of the
        previous chapter or its last scene, else every protagonist.
        """
        found: List[str] = []
        previous = novel_state.previous_chapter
        if previous is not None:
            tail = previous.content[-self._config.ending_window_chars:]
            found = characters_in_text(tail, novel_state.characters)
            if previous.scenes:
                last_scene = previous.scenes[-1]
                for cid in characters_in_text(last_scene.content or last_scene.summary, novel_state.characters):
                    if cid not in found:
                        found.append(cid)

        if found:
            return found
        return [c.id for c in novel_state.protagonists]

    def validate(self, novel_state: NovelState, next_chapter_number: int) -> ValidationReport:
        if not self._graph.is_initialized:
            self._graph.initialize_graph(novel_state)

        issues: List[ValidationIssue] = []
        candidates = self.candidate_characters(novel_state)
        characters_ready = 0
        power_levels_ready = 0
        relationships_ready = 0

        for character_id in candidates:
            character = novel_state.get_character(character_id)
            if character is None:
                continue

            if self._tracker.get_current_state(EntityType.CHARACTER, character_id) is None:
                issues.append(ValidationIssue(
                    kind=IssueKind.MISSING_STATE,
                    severity=Severity.CRITICAL,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character_id,
                    entity_name=character.name,
                    chapter_number=next_chapter_number,
                    message=f'Character "{character.name}" has no tracked state. State tracking may be missing.',
                    suggestion="Ensure entity state tracker is initialized and tracking this character.",
                ))
            else:
                characters_ready += 1

            level = self._graph.get_character_power_level(character_id) or character.current_cultivation
            if not level or level == UNKNOWN_LEVEL:
                issues.append(ValidationIssue(
                    kind=IssueKind.MISSING_POWER_LEVEL,
                    severity=Severity.WARNING,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character_id,
                    entity_name=character.name,
                    chapter_number=next_chapter_number,
                    message=f'Character "{character.name}" has no power level set.',
                    suggestion="Set a power level for this character before generating the next chapter.",
                ))
            else:
                power_levels_ready += 1
                issues.extend(self._progression_issues(character, next_chapter_number))

            relationships_ready += len(self._graph.get_character_relationships(character_id))

        if novel_state.current_realm is None:
            issues.append(ValidationIssue(
                kind=IssueKind.MISSING_REALM,
                severity=Severity.CRITICAL,
                entity_type=EntityType.LOCATION,
                chapter_number=next_chapter_number,
                message="No current realm is set. World state may be inconsistent.",
                suggestion="Set a current realm before generating the next chapter.",
            ))

        issues.extend(self._outdated_issues(novel_state, next_chapter_number))

        report = build_report(
            issues,
            self._scoring,
            chapter_number=next_chapter_number,
            context_completeness=ContextCompleteness(
                characters_ready=characters_ready,
                characters_total=len(candidates),
                power_levels_ready=power_levels_ready,
                relationships_ready=relationships_ready,
            ),
        )
        record_report(self._observability, "pre_generation", report, novel_state.id)
        return report

    def _progression_issues(self, character: Character, next_chapter_number: int) -> List[ValidationIssue]:
        """
        Re-validate the last recorded transition, then check for a plateau.

        Non-breakthrough transitions were already judged when their chapter
        was checked, so their rule violations come back as warnings here.
        Only an over-paced breakthrough keeps blocking.
        """
        timeline = self._graph.get_power_progression(character.id)
        if timeline is None:
            return []

        issues: List[ValidationIssue] = []
        last = timeline.last_event
        if last is not None:
            previous_level, previous_chapter = timeline.previous_level()
            check = self._power.validate_progression(
                previous_level,
                last.power_level,
                max(0, last.chapter_number - previous_chapter),
                last.progression_type == ProgressionType.BREAKTHROUGH,
                self._graph.config.power_category,
            )
            violation_severity = (
                Severity.CRITICAL if last.progression_type == ProgressionType.BREAKTHROUGH
                else Severity.WARNING
            )
            for message in check.issues:
                issues.append(self._power_issue(
                    character, next_chapter_number, violation_severity, message,
                    "Review power level progression and ensure it follows established rules.",
                ))
            for message in check.warnings:
                issues.append(self._power_issue(
                    character, next_chapter_number, Severity.WARNING, message,
                    "Consider adjusting power progression or adding justification.",
                ))

        if self._config.check_stagnation:
            since = next_chapter_number - timeline.current_chapter
            if since > self._power.rules.max_chapters_per_stage:
                plateau = self._power.validate_progression(
                    timeline.current_level,
                    timeline.current_level,
                    since,
                    True,
                    self._graph.config.power_category,
                )
                for message in plateau.warnings:
                    issues.append(ValidationIssue(
                        kind=IssueKind.STAGNATION,
                        severity=Severity.WARNING,
                        entity_type=EntityType.CHARACTER,
                        entity_id=character.id,
                        entity_name=character.name,
                        chapter_number=next_chapter_number,
                        message=message,
                        suggestion="Show progress, a setback or an explicit plateau in the next chapter.",
                        confidence=0.7,
                    ))
        return issues

    @staticmethod
    def _power_issue(
        character: Character,
        chapter_number: int,
        severity: Severity,
        message: str,
        suggestion: str
    ) -> ValidationIssue:
        return ValidationIssue(
            kind=IssueKind.INCONSISTENT_POWER,
            severity=severity,
            entity_type=EntityType.CHARACTER,
            entity_id=character.id,
            entity_name=character.name,
            chapter_number=chapter_number,
            message=message,
            suggestion=suggestion,
        )

    def _outdated_issues(self, novel_state: NovelState, next_chapter_number: int) -> List[ValidationIssue]:
        issues = []
        for character in novel_state.characters:
            last_chapter = novel_state.chapter_number_for(character.last_updated_by_chapter_id)
            tracked = self._tracker.get_current_chapter(EntityType.CHARACTER, character.id)
            if tracked is not None and (last_chapter is None or tracked > last_chapter):
                last_chapter = tracked
            if last_chapter is None:
                continue

            behind = next_chapter_number - last_chapter
            if behind > self._config.outdated_after_chapters:
                issues.append(ValidationIssue(
                    kind=IssueKind.OUTDATED_DATA,
                    severity=Severity.INFO,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character.id,
                    entity_name=character.name,
                    chapter_number=next_chapter_number,
                    message=f'Character "{character.name}" hasn\'t been updated in {behind} chapters.',
                    suggestion="Consider updating character state if they appear in the next chapter.",
                ))
        return issues
