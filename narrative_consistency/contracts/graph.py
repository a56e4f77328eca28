"""
Graph Contracts

Nodes, edges and power-progression timelines held by the knowledge graph,
plus the outputs of graph updates.

Nodes, edges and timelines are mutable: the graph owns them and updates
them in place. Everything else here is an immutable value.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import copy

from .base import EntityType, RelationshipType, Error, UNKNOWN_LEVEL, utc_now


# =============================================================================
# NODES AND EDGES
# =============================================================================

@dataclass
class GraphNode:
    """
    One tracked story entity.

    `properties` is an open bag; `level` and `status` are typed views over
    the well-known keys.
    """
    node_id: str
    node_type: EntityType
    entity_id: str
    label: str
    properties: Dict[str, Any] = field(default_factory=dict)
    chapter_created: int = 0
    chapter_last_updated: int = 0

    @property
    def level(self) -> str:
        return self.properties.get('currentCultivation') or UNKNOWN_LEVEL

    @level.setter
    def level(self, value: str):
        self.properties['currentCultivation'] = value

    @property
    def status(self) -> Optional[str]:
        return self.properties.get('status')

    @property
    def is_protagonist(self) -> bool:
        return bool(self.properties.get('isProtagonist', False))

    def to_dict(self) -> dict:
        return {
            'id': self.node_id,
            'type': self.node_type.value,
            'entityId': self.entity_id,
            'label': self.label,
            'properties': copy.deepcopy(self.properties),
            'chapterCreated': self.chapter_created,
            'chapterLastUpdated': self.chapter_last_updated,
        }


@dataclass
class GraphEdge:
    """Directed typed relationship between two nodes."""
    edge_id: str
    edge_type: RelationshipType
    source_id: str
    target_id: str
    properties: Dict[str, Any] = field(default_factory=dict)
    chapter_established: Optional[int] = None
    chapter_last_updated: Optional[int] = None

    @property
    def relationship_label(self) -> str:
        """Narrative label such as "Ally" or "Enemy"."""
        return self.properties.get('relationshipType', '')

    def to_dict(self) -> dict:
        return {
            'id': self.edge_id,
            'type': self.edge_type.value,
            'source': self.source_id,
            'target': self.target_id,
            'properties': copy.deepcopy(self.properties),
            'chapterEstablished': self.chapter_established,
            'chapterLastUpdated': self.chapter_last_updated,
        }


# =============================================================================
# POWER PROGRESSION
# =============================================================================

class ProgressionType(Enum):
    BREAKTHROUGH = "breakthrough"
    GRADUAL = "gradual"
    REGRESSION = "regression"
    STABLE = "stable"


@dataclass(frozen=True)
class ProgressionEvent:
    chapter_number: int
    chapter_id: str
    power_level: str
    progression_type: ProgressionType
    justification: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            'chapterNumber': self.chapter_number,
            'chapterId': self.chapter_id,
            'powerLevel': self.power_level,
            'progressionType': self.progression_type.value,
            'justification': self.justification,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class PowerProgressionTimeline:
    """
    Chapter-ordered power history of one character.

    Only KnowledgeGraph.update_power_level appends events.
    """
    character_id: str
    character_name: str
    baseline_level: str
    baseline_chapter: int
    events: List[ProgressionEvent] = field(default_factory=list)

    @property
    def current_level(self) -> str:
        return self.events[-1].power_level if self.events else self.baseline_level

    @property
    def current_chapter(self) -> int:
        return self.events[-1].chapter_number if self.events else self.baseline_chapter

    @property
    def last_event(self) -> Optional[ProgressionEvent]:
        return self.events[-1] if self.events else None

    def last_event_before(self, chapter_number: int) -> Optional[ProgressionEvent]:
        found = None
        for event in self.events:
            if event.chapter_number >= chapter_number:
                break
            found = event
        return found

    def level_before(self, chapter_number: int) -> str:
        """Level in force before `chapter_number` was written."""
        event = self.last_event_before(chapter_number)
        return event.power_level if event else self.baseline_level

    def chapter_of_level_before(self, chapter_number: int) -> int:
        """Chapter at which the level in force before `chapter_number` was set."""
        event = self.last_event_before(chapter_number)
        return event.chapter_number if event else self.baseline_chapter

    def previous_level(self) -> Tuple[str, int]:
        """Level and chapter immediately before the last event."""
        if len(self.events) >= 2:
            prior = self.events[-2]
            return prior.power_level, prior.chapter_number
        return self.baseline_level, self.baseline_chapter

    def to_dict(self) -> dict:
        return {
            'characterId': self.character_id,
            'characterName': self.character_name,
            'baselineLevel': self.baseline_level,
            'baselineChapter': self.baseline_chapter,
            'currentLevel': self.current_level,
            'currentChapter': self.current_chapter,
            'progression': [e.to_dict() for e in self.events],
        }


# =============================================================================
# SNAPSHOTS AND UPDATE RESULTS
# =============================================================================

@dataclass(frozen=True)
class GraphSnapshot:
    """Flattened graph for persistence by the caller."""
    nodes: Tuple[dict, ...]
    edges: Tuple[dict, ...]
    power_progressions: Tuple[dict, ...]
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            'nodes': [copy.deepcopy(n) for n in self.nodes],
            'edges': [copy.deepcopy(e) for e in self.edges],
            'powerProgressions': [copy.deepcopy(p) for p in self.power_progressions],
            'createdAt': self.created_at.isoformat(),
        }


class ConflictType(Enum):
    POWER_REGRESSION = "power_regression"
    RAPID_PROGRESSION = "rapid_progression"
    STATUS_CONFLICT = "status_conflict"


@dataclass(frozen=True)
class GraphConflict:
    """Advisory conflict found while applying an extraction."""
    conflict_type: ConflictType
    entity_id: str
    entity_name: str
    message: str
    confidence: float

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be in [0, 1], got {self.confidence}")

    def to_dict(self) -> dict:
        return {
            'type': self.conflict_type.value,
            'entityId': self.entity_id,
            'entityName': self.entity_name,
            'message': self.message,
            'confidence': self.confidence,
        }


@dataclass(frozen=True)
class GraphUpdateResult:
    entities_added: int = 0
    entities_updated: int = 0
    relationships_created: int = 0
    relationships_updated: int = 0
    power_levels_updated: int = 0
    conflicts: Tuple[GraphConflict, ...] = field(default_factory=tuple)
    errors: Tuple[Error, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            'entitiesAdded': self.entities_added,
            'entitiesUpdated': self.entities_updated,
            'relationshipsCreated': self.relationships_created,
            'relationshipsUpdated': self.relationships_updated,
            'powerLevelsUpdated': self.power_levels_updated,
            'conflicts': [c.to_dict() for c in self.conflicts],
            'errors': [e.to_dict() for e in self.errors],
        }
