"""
Post-Generation Checker

Checks one generated chapter's extraction against the state in force
before that chapter.

ORDER INDEPENDENCE:
===================
Baselines come from the timeline as of the chapter before, the tracker
state at chapter - 1 and the caller's codex. Running the checker before
or after KnowledgeGraphUpdater.update_graph gives the same verdict.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from ..contracts.base import CharacterStatus, EntityType, UNKNOWN_LEVEL
from ..contracts.extraction import ChapterExtraction, CharacterUpsert, WorldEntryUpsert
from ..contracts.novel import Chapter, Character, NovelState
from ..contracts.validation import IssueKind, Severity, ValidationIssue, ValidationReport
from ..cues import (
    BREAKTHROUGH_KEYWORDS, REGRESSION_KEYWORDS, RESURRECTION_KEYWORDS,
    find_cues, find_rule_contradictions
)
from ..graph.knowledge_graph import KnowledgeGraph
from ..graph.resolution import NameResolver
from ..observability import ObservabilityEngine
from ..power.system import PowerLevelSystem
from ..temporal.state_tracker import EntityStateTracker
from .scoring import ScoringConfig, build_report, record_report


@dataclass
class PostGenerationConfig:
    check_relationships: bool = True
    check_world_rules: bool = True


class PostGenerationChecker:

    def __init__(
        self,
        graph: KnowledgeGraph,
        tracker: EntityStateTracker,
        power_system: PowerLevelSystem,
        config: Optional[PostGenerationConfig] = None,
        scoring: Optional[ScoringConfig] = None,
        observability: Optional[ObservabilityEngine] = None
    ):
        self._graph = graph
        self._tracker = tracker
        self._power = power_system
        self._config = config or PostGenerationConfig()
        self._scoring = scoring
        self._resolver = NameResolver(allow_fuzzy=graph.config.fuzzy_name_resolution)
        self._observability = observability

    def check(
        self,
        novel_state: NovelState,
        chapter: Chapter,
        extraction: ChapterExtraction
    ) -> ValidationReport:
        if not self._graph.is_initialized:
            self._graph.initialize_graph(novel_state)

        issues: List[ValidationIssue] = []
        for upsert in extraction.character_upserts:
            resolution = self._resolver.resolve(
                upsert.name, ((c.id, c.name) for c in novel_state.characters)
            )
            if not resolution.is_resolved:
                continue
            character = novel_state.get_character(resolution.entity_id)

            issues.extend(self._power_issues(character, chapter, upsert))
            issues.extend(self._status_issues(character, chapter, upsert))
            if self._config.check_relationships:
                issues.extend(self._relationship_issues(novel_state, character, chapter, upsert))

        if self._config.check_world_rules:
            for entry in extraction.world_entry_upserts:
                issues.extend(self._world_rule_issues(novel_state, chapter, entry))

        report = build_report(issues, self._scoring, chapter_number=chapter.number)
        record_report(self._observability, "post_generation", report, chapter.id)
        return report

    # -------------------------------------------------------------------------
    # Power
    # -------------------------------------------------------------------------

    def _power_issues(
        self,
        character: Character,
        chapter: Chapter,
        upsert: CharacterUpsert
    ) -> List[ValidationIssue]:
        new_level = upsert.new_level
        if not new_level:
            return []

        category = self._graph.config.power_category
        timeline = self._graph.get_power_progression(character.id)
        if timeline is not None:
            previous = timeline.level_before(chapter.number)
            previous_chapter = timeline.chapter_of_level_before(chapter.number)
        else:
            previous = character.current_cultivation
            previous_chapter = chapter.number - 1
        if not previous or previous == UNKNOWN_LEVEL:
            return []

        text = chapter.text
        comparison = self._power.compare(new_level, previous, category)

        if comparison < 0:
            justification = find_cues(text, REGRESSION_KEYWORDS)
            return [ValidationIssue(
                kind=IssueKind.POWER_REGRESSION,
                severity=Severity.WARNING if justification else Severity.CRITICAL,
                entity_type=EntityType.CHARACTER,
                entity_id=character.id,
                entity_name=character.name,
                chapter_number=chapter.number,
                message=(
                    f"Power level regression detected: {character.name} went from "
                    f"{previous} to {new_level}."
                ),
                suggestion=(
                    "Ensure the regression is explained by the injury, curse or seal in the chapter."
                    if justification else
                    "Add an explicit cause (injury, curse, seal) or revert the power level."
                ),
                confidence=0.7 if justification else 0.9,
                evidence=(
                    f"Previous level: {previous}",
                    f"Extracted level: {new_level}",
                    f"Justification: {', '.join(justification) if justification else 'none found'}",
                ),
            )]

        if comparison > 0:
            breakthrough = find_cues(text, BREAKTHROUGH_KEYWORDS)
            check = self._power.validate_progression(
                previous,
                new_level,
                max(0, chapter.number - previous_chapter),
                bool(breakthrough),
                category,
            )
            evidence = (
                f"Previous level: {previous} (chapter {previous_chapter})",
                f"Extracted level: {new_level}",
                f"Breakthrough cues: {', '.join(breakthrough) if breakthrough else 'none found'}",
            )
            issues = [
                ValidationIssue(
                    kind=IssueKind.POWER_JUMP,
                    severity=Severity.CRITICAL,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character.id,
                    entity_name=character.name,
                    chapter_number=chapter.number,
                    message=message,
                    suggestion="Add a breakthrough scene or slow the progression down.",
                    confidence=0.85,
                    evidence=evidence,
                )
                for message in check.issues
            ]
            issues.extend(
                ValidationIssue(
                    kind=IssueKind.POWER_JUMP,
                    severity=Severity.WARNING,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character.id,
                    entity_name=character.name,
                    chapter_number=chapter.number,
                    message=message,
                    suggestion="Consider adjusting power progression or adding justification.",
                    confidence=0.7,
                    evidence=evidence,
                )
                for message in check.warnings
            )
            return issues

        return []

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def _prior_status(self, character: Character, chapter_number: int) -> str:
        state = self._tracker.get_state_at_chapter(
            EntityType.CHARACTER, character.id, chapter_number - 1
        )
        if state and state.get('status'):
            return state['status']
        return character.status

    def _status_issues(
        self,
        character: Character,
        chapter: Chapter,
        upsert: CharacterUpsert
    ) -> List[ValidationIssue]:
        new_status = upsert.new_status
        deceased = CharacterStatus.DECEASED.value
        if not new_status or new_status == deceased:
            return []
        if self._prior_status(character, chapter.number) != deceased:
            return []

        framing = find_cues(chapter.text, RESURRECTION_KEYWORDS)
        return [ValidationIssue(
            kind=IssueKind.STATUS_INCONSISTENCY,
            severity=Severity.WARNING if framing else Severity.CRITICAL,
            entity_type=EntityType.CHARACTER,
            entity_id=character.id,
            entity_name=character.name,
            chapter_number=chapter.number,
            message=f"Deceased character {character.name} appears as {new_status}.",
            suggestion=(
                "Make sure the resurrection is clearly narrated."
                if framing else
                "Add a resurrection or faked-death reveal, or keep the character deceased."
            ),
            confidence=0.7 if framing else 0.95,
            evidence=(
                f"Previous status: {deceased}",
                f"Extracted status: {new_status}",
                f"Resurrection cues: {', '.join(framing) if framing else 'none found'}",
            ),
        )]

    # -------------------------------------------------------------------------
    # Relationships and world rules
    # -------------------------------------------------------------------------

    def _relationship_issues(
        self,
        novel_state: NovelState,
        character: Character,
        chapter: Chapter,
        upsert: CharacterUpsert
    ) -> List[ValidationIssue]:
        issues = []
        for rel in upsert.relationships:
            target = self._resolver.resolve(
                rel.target_name, ((c.id, c.name) for c in novel_state.characters)
            )
            if not target.is_resolved:
                continue
            existing = character.find_relationship(target.entity_id)
            if existing is None or not existing.type or existing.type == rel.type:
                continue
            issues.append(ValidationIssue(
                kind=IssueKind.RELATIONSHIP_CHANGE,
                severity=Severity.WARNING,
                entity_type=EntityType.CHARACTER,
                entity_id=character.id,
                entity_name=character.name,
                chapter_number=chapter.number,
                message=(
                    f"Relationship between {character.name} and {rel.target_name} "
                    f"changed from {existing.type} to {rel.type}."
                ),
                suggestion="Ensure the chapter shows what caused the change.",
                confidence=0.8,
                evidence=(
                    f"Previous type: {existing.type}",
                    f"Extracted type: {rel.type}",
                ),
            ))
        return issues

    def _world_rule_issues(
        self,
        novel_state: NovelState,
        chapter: Chapter,
        entry: WorldEntryUpsert
    ) -> List[ValidationIssue]:
        title = entry.title.strip().lower()
        issues = []
        for existing in novel_state.world_bible:
            if existing.title.strip().lower() != title or existing.category != entry.category:
                continue
            if existing.content == entry.content:
                continue
            contradictions = find_rule_contradictions(existing.content, entry.content)
            if contradictions:
                issues.append(ValidationIssue(
                    kind=IssueKind.WORLD_RULE_VIOLATION,
                    severity=Severity.WARNING,
                    entity_type=EntityType.WORLD_RULE,
                    entity_id=existing.id,
                    entity_name=existing.title,
                    chapter_number=chapter.number,
                    message=f'World entry "{existing.title}" may contradict existing rules.',
                    suggestion="Review the rule change; world rules should stay stable unless revised on purpose.",
                    confidence=0.6,
                    evidence=contradictions,
                ))
        return issues
