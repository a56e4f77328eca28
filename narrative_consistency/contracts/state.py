"""
Entity State Contracts

Snapshots recorded by the entity state tracker.

INVARIANT: `state` is a private deep copy taken at capture time; later
mutation of the caller's object never alters a stored snapshot.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Tuple
import copy

from .base import EntityType, utc_now


@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: Any
    new_value: Any

    def to_dict(self) -> dict:
        return {
            'field': self.field,
            'oldValue': copy.deepcopy(self.old_value),
            'newValue': copy.deepcopy(self.new_value),
        }


@dataclass(frozen=True)
class EntityStateSnapshot:
    """Full state of one entity at one chapter."""
    entity_type: EntityType
    entity_id: str
    chapter_id: str
    chapter_number: int
    state: Dict[str, Any]
    changes: Tuple[FieldChange, ...] = field(default_factory=tuple)
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def changed_fields(self) -> Tuple[str, ...]:
        return tuple(c.field for c in self.changes)

    def to_dict(self) -> dict:
        return {
            'entityType': self.entity_type.value,
            'entityId': self.entity_id,
            'chapterId': self.chapter_id,
            'chapterNumber': self.chapter_number,
            'state': copy.deepcopy(self.state),
            'changes': [c.to_dict() for c in self.changes],
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class TrackerSummary:
    total_entities: int
    total_snapshots: int
    entities_by_type: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)

    def count_for(self, entity_type: EntityType) -> int:
        return dict(self.entities_by_type).get(entity_type.value, 0)

    def to_dict(self) -> dict:
        return {
            'totalEntities': self.total_entities,
            'totalSnapshots': self.total_snapshots,
            'entitiesByType': dict(self.entities_by_type),
        }
