"""
Narrative Consistency Engine

Keeps an externally generated, serialized narrative consistent with its
own past: power levels, statuses, relationships and world rules must not
silently contradict earlier chapters.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Immutable data shared by every layer
   - Outputs: Novel state, extraction, graph, state and validation shapes
   - MUST NOT: Contain behavior beyond construction and self-validation

2. OBSERVABILITY (observability/)
   - Responsibility: Audit log and metrics for every mutating operation
   - MUST NOT: Modify system behavior, filter or interpret events

3. POWER LEVEL SYSTEM (power/)
   - Responsibility: Parse, compare and pace free-text power levels
   - MUST NOT: Raise on unparseable text (order 0 means "cannot compare")

4. ENTITY STATE TRACKER (temporal/)
   - Responsibility: Chapter-addressed snapshots, point-in-time reads, rollback
   - MUST NOT: Reorder history (chapter numbers never decrease)

5. KNOWLEDGE GRAPH (graph/)
   - Responsibility: Entity graph, power timelines, extraction updates
   - MUST NOT: Guess ambiguous names or create detached nodes

6. VALIDATION (validation/)
   - Responsibility: Severity-ranked reports before and after generation
   - MUST NOT: Mutate the graph or the tracker

7. ENGINE (engine.py)
   - Responsibility: One session per novel, owning every layer above

CONSTRAINTS ENFORCED:
=====================
- Single writer, no internal I/O, no module-level state
- Explicit errors: skipped work is reported as Error data
- Inconsistencies are issues, never exceptions
"""

from .engine import (
    ConsistencyEngine, EngineConfig, GenerationReadiness, ChapterProcessingResult,
)
from .contracts.novel import NovelState, Chapter, Character
from .contracts.extraction import ChapterExtraction
from .contracts.validation import ValidationReport, ValidationIssue, Severity, IssueKind

__all__ = [
    'ConsistencyEngine',
    'EngineConfig',
    'GenerationReadiness',
    'ChapterProcessingResult',
    'NovelState',
    'Chapter',
    'Character',
    'ChapterExtraction',
    'ValidationReport',
    'ValidationIssue',
    'Severity',
    'IssueKind',
]
