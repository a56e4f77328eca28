"""
Engine Orchestration Module

Session object that owns every layer for one novel and runs the
generation cycle through them.

DESIGN PRINCIPLES:
==================
1. Layers communicate ONLY through contracts
2. The engine orchestrates flow without creating coupling
3. Every operation is traceable through observability
4. No module-level state: one engine per novel session

CYCLE:
======
1. load: NovelState -> KnowledgeGraph
2. prepare_generation: pre-generation report, can_proceed
3. (external generation and extraction)
4. process_generated_chapter: updater (graph + tracker), then post-generation report
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .contracts.base import EntityType, Error, ErrorCode, Result
from .contracts.events import AuditEventType
from .contracts.extraction import ChapterExtraction
from .contracts.graph import GraphSnapshot, GraphUpdateResult
from .contracts.novel import Chapter, NovelState
from .contracts.state import TrackerSummary
from .contracts.validation import ProgressionReport, ValidationIssue, ValidationReport
from .graph import GraphConfig, GraphTopology, KnowledgeGraph, KnowledgeGraphUpdater
from .observability import MetricsCollector, ObservabilityConfig, ObservabilityEngine
from .power import PowerLevelSystem, ProgressionRules
from .temporal import EntityStateTracker
from .validation import (
    PostGenerationChecker, PostGenerationConfig, PowerProgressionValidator,
    PreGenerationConfig, PreGenerationValidator, RelationshipConsistencyChecker,
    ScoringConfig, calculate_context_relevance,
)


@dataclass
class EngineConfig:
    """Unified configuration for every layer."""
    progression: ProgressionRules = None
    graph: GraphConfig = None
    pre_generation: PreGenerationConfig = None
    post_generation: PostGenerationConfig = None
    scoring: ScoringConfig = None
    observability: ObservabilityConfig = None

    def __post_init__(self):
        self.progression = self.progression or ProgressionRules()
        self.graph = self.graph or GraphConfig()
        self.pre_generation = self.pre_generation or PreGenerationConfig()
        self.post_generation = self.post_generation or PostGenerationConfig()
        self.scoring = self.scoring or ScoringConfig()
        self.observability = self.observability or ObservabilityConfig()


@dataclass(frozen=True)
class GenerationReadiness:
    report: ValidationReport
    can_proceed: bool

    def to_dict(self) -> dict:
        return {
            'report': self.report.to_dict(),
            'canProceed': self.can_proceed,
        }


@dataclass(frozen=True)
class ChapterProcessingResult:
    update: GraphUpdateResult
    report: ValidationReport
    passed: bool

    def to_dict(self) -> dict:
        return {
            'update': self.update.to_dict(),
            'report': self.report.to_dict(),
            'passed': self.passed,
        }


class ConsistencyEngine:
    """
    Narrative consistency session for one novel.

    LAYER FLOW:
    ===========
    1. Power: free-text levels -> comparable stages
    2. Graph: novel state -> nodes, edges, power timelines
    3. Tracker: chapter-addressed entity snapshots
    4. Validation: graph + tracker -> severity-ranked reports
    5. Observability: records all layer activity
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self._config = config or EngineConfig()
        config = self._config

        self._observability = ObservabilityEngine(config.observability)
        self._power = PowerLevelSystem(config.progression, self._observability)
        self._tracker = EntityStateTracker(self._observability)
        self._graph = KnowledgeGraph(config.graph, self._observability)
        self._updater = KnowledgeGraphUpdater(
            self._graph, self._tracker, self._power, config.graph, self._observability
        )
        self._pre = PreGenerationValidator(
            self._graph, self._tracker, self._power,
            config.pre_generation, config.scoring, self._observability
        )
        self._post = PostGenerationChecker(
            self._graph, self._tracker, self._power,
            config.post_generation, config.scoring, self._observability
        )
        self._progression = PowerProgressionValidator(
            self._graph, self._power, self._observability
        )
        self._relationships = RelationshipConsistencyChecker(
            self._graph, self._power, config.scoring, self._observability
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    # =========================================================================
    # SESSION SETUP
    # =========================================================================

    def load(self, novel_state: NovelState) -> Tuple[Error, ...]:
        """(Re)build the knowledge graph; returns the skipped links."""
        return self._graph.initialize_graph(novel_state)

    def backfill(self, novel_state: NovelState) -> int:
        """
        Seed one snapshot per untracked character from the novel state.

        Each snapshot is placed at the chapter that last updated the
        character, else the chapter that created it, else the latest
        chapter. Returns the number of snapshots recorded.
        """
        latest = novel_state.previous_chapter
        recorded = 0

        for character in novel_state.characters:
            if self._tracker.is_tracked(EntityType.CHARACTER, character.id):
                continue

            chapter_id = character.last_updated_by_chapter_id or character.created_by_chapter_id
            chapter_number = novel_state.chapter_number_for(chapter_id)
            if chapter_number is None:
                chapter_id = latest.id if latest else "initial"
                chapter_number = latest.number if latest else 0

            self._tracker.track_character(character, chapter_id, chapter_number)
            recorded += 1

        self._observability.log_audit(
            action="backfill",
            entity_id=novel_state.id,
            details=f"{recorded} character snapshot(s) seeded",
            layer="engine",
            event_type=AuditEventType.STATE_CHANGE
        )
        return recorded

    # =========================================================================
    # GENERATION CYCLE
    # =========================================================================

    def prepare_generation(
        self,
        novel_state: NovelState,
        next_chapter_number: int
    ) -> GenerationReadiness:
        report = self._pre.validate(novel_state, next_chapter_number)
        return GenerationReadiness(report=report, can_proceed=report.valid)

    def process_generated_chapter(
        self,
        novel_state: NovelState,
        chapter: Chapter,
        extraction: ChapterExtraction
    ) -> ChapterProcessingResult:
        """
        Apply the extraction, then check it.

        The check compares against the state in force before the chapter,
        so running it after the update does not change its verdict.
        """
        update = self._updater.update_graph(novel_state, chapter, extraction)
        report = self._post.check(novel_state, chapter, extraction)

        self._observability.log_audit(
            action="process_generated_chapter",
            entity_id=chapter.id,
            outcome="success" if report.valid else "invalid",
            details=(
                f"chapter {chapter.number}: score {report.summary.overall_score}, "
                f"{len(update.errors)} update error(s)"
            ),
            layer="engine"
        )
        return ChapterProcessingResult(update=update, report=report, passed=report.valid)

    # =========================================================================
    # AUDITS
    # =========================================================================

    def validate_progression(
        self,
        novel_state: NovelState,
        character_ids: Optional[Iterable[str]] = None,
        next_chapter_number: Optional[int] = None
    ) -> ProgressionReport:
        return self._progression.validate(novel_state, character_ids, next_chapter_number)

    def audit_relationships(self, novel_state: NovelState) -> ValidationReport:
        return self._relationships.audit(novel_state)

    def check_relationship(
        self,
        source_id: str,
        target_id: str,
        new_type: str,
        chapter_number: Optional[int] = None
    ) -> List[ValidationIssue]:
        return self._relationships.check_relationship(source_id, target_id, new_type, chapter_number)

    def context_relevance(
        self,
        novel_state: NovelState,
        character_id: str,
        active_plot_threads: Iterable[str] = ()
    ) -> float:
        return calculate_context_relevance(
            novel_state,
            character_id,
            self._tracker,
            active_plot_threads,
            self._config.pre_generation.ending_window_chars,
        )

    def rollback_character(self, character_id: str, chapter_number: int) -> Result:
        """Truncate a character's history; failure when nothing is that old."""
        state = self._tracker.rollback_to_chapter(EntityType.CHARACTER, character_id, chapter_number)
        if state is None:
            return Result.failure(Error.create(
                ErrorCode.ROLLBACK_UNREACHABLE,
                f"No snapshot of character {character_id} at or before chapter {chapter_number}",
                character_id=character_id,
            ))
        return Result.success(state)

    # =========================================================================
    # STATE INTROSPECTION
    # =========================================================================

    def get_snapshot(self) -> Optional[GraphSnapshot]:
        return self._graph.get_snapshot()

    def get_tracker_summary(self) -> TrackerSummary:
        return self._tracker.get_summary()

    def get_topology(self) -> GraphTopology:
        return GraphTopology(self._graph)

    def audit_report(self, since: Optional[datetime] = None) -> Dict:
        return self._observability.generate_audit_report(since)

    def get_metrics(self) -> Optional[MetricsCollector]:
        return self._observability.get_metrics()

    # =========================================================================
    # DIRECT LAYER ACCESS
    # =========================================================================

    @property
    def power_system(self) -> PowerLevelSystem:
        return self._power

    @property
    def graph(self) -> KnowledgeGraph:
        return self._graph

    @property
    def tracker(self) -> EntityStateTracker:
        return self._tracker

    @property
    def updater(self) -> KnowledgeGraphUpdater:
        return self._updater

    @property
    def observability(self) -> ObservabilityEngine:
        return self._observability
