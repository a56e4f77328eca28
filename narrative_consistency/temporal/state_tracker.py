"""
Entity State Tracker
====================

Chapter-addressable state history for every tracked entity.

INVARIANT: Snapshot chapter numbers are non-decreasing within a history.
INVARIANT: Stored states are private deep copies; reads return deep copies.

FAILURE SEMANTICS:
- Lookups on untracked entities return None or empty
- Rollback to an unreachable chapter returns None and changes nothing
- Recording a chapter older than the entity's current chapter raises
  SnapshotOrderError
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import copy

from ..contracts.base import EntityType
from ..contracts.novel import Character
from ..contracts.state import EntityStateSnapshot, FieldChange, TrackerSummary
from ..observability import ObservabilityEngine


class SnapshotOrderError(ValueError):
    """Raised when a snapshot would precede the entity's current chapter."""


@dataclass
class EntityStateHistory:
    """Ordered snapshots of one entity plus its cached current state."""
    entity_type: EntityType
    entity_id: str
    snapshots: List[EntityStateSnapshot] = field(default_factory=list)
    current_state: Optional[Dict[str, Any]] = None
    current_chapter: int = 0

    def state_at(self, chapter_number: int) -> Optional[EntityStateSnapshot]:
        """Latest snapshot with chapter <= chapter_number."""
        found = None
        for snapshot in self.snapshots:
            if snapshot.chapter_number > chapter_number:
                break
            found = snapshot
        return found


def diff_states(
    previous: Optional[Dict[str, Any]],
    current: Dict[str, Any]
) -> Tuple[FieldChange, ...]:
    """
    Field-level diff over the union of keys, by deep equality. A key that
    appears or disappears is a change even when its value is None.

    With no previous state every key of `current` is a new value.
    """
    if previous is None:
        return tuple(
            FieldChange(field=key, old_value=None, new_value=copy.deepcopy(value))
            for key, value in current.items()
        )

    changes = []
    keys = list(previous.keys()) + [k for k in current.keys() if k not in previous]
    for key in keys:
        old_value = previous.get(key)
        new_value = current.get(key)
        if old_value != new_value or (key in previous) != (key in current):
            changes.append(FieldChange(
                field=key,
                old_value=copy.deepcopy(old_value),
                new_value=copy.deepcopy(new_value),
            ))
    return tuple(changes)


class EntityStateTracker:
    """
    Tracks versioned state for every entity of a novel.

    GUARANTEES:
    - Every recorded change produces one snapshot
    - Histories only shrink through rollback_to_chapter
    - Callers never hold references into stored state
    """

    def __init__(self, observability: Optional[ObservabilityEngine] = None):
        self._histories: Dict[str, EntityStateHistory] = {}
        self._observability = observability

    @staticmethod
    def _key(entity_type: EntityType, entity_id: str) -> str:
        return f"{entity_type.value}_{entity_id}"

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def track_change(
        self,
        entity_type: EntityType,
        entity_id: str,
        chapter_id: str,
        chapter_number: int,
        current_state: Dict[str, Any],
        previous_state: Optional[Dict[str, Any]] = None
    ) -> EntityStateSnapshot:
        """
        Record the state of an entity as of a chapter.

        Raises:
            SnapshotOrderError: chapter_number precedes the current chapter
        """
        key = self._key(entity_type, entity_id)
        history = self._histories.get(key)

        if history is not None and history.snapshots and chapter_number < history.current_chapter:
            raise SnapshotOrderError(
                f"Chapter {chapter_number} precedes current chapter "
                f"{history.current_chapter} of {key}"
            )

        state = copy.deepcopy(current_state)
        snapshot = EntityStateSnapshot(
            entity_type=entity_type,
            entity_id=entity_id,
            chapter_id=chapter_id,
            chapter_number=chapter_number,
            state=state,
            changes=diff_states(previous_state, state),
        )

        if history is None:
            history = EntityStateHistory(entity_type=entity_type, entity_id=entity_id)
            self._histories[key] = history

        history.snapshots.append(snapshot)
        history.current_state = copy.deepcopy(state)
        history.current_chapter = chapter_number

        if self._observability:
            self._observability.log_audit(
                action="track_change",
                entity_id=key,
                details=f"chapter {chapter_number}, {len(snapshot.changes)} change(s)",
                layer="tracker"
            )
            self._observability.collect_metric(
                "snapshots_recorded_total", 1, {"entity_type": entity_type.value}
            )

        return snapshot

    def track_character(
        self,
        character: Character,
        chapter_id: str,
        chapter_number: int,
        previous: Optional[Character] = None
    ) -> EntityStateSnapshot:
        return self.track_change(
            EntityType.CHARACTER,
            character.id,
            chapter_id,
            chapter_number,
            character.tracked_state(),
            previous.tracked_state() if previous is not None else None,
        )

    def can_track(self, entity_type: EntityType, entity_id: str, chapter_number: int) -> bool:
        """True when a snapshot at chapter_number would keep the history ordered."""
        history = self._histories.get(self._key(entity_type, entity_id))
        if history is None or not history.snapshots:
            return True
        return chapter_number >= history.current_chapter

    def rollback_to_chapter(
        self,
        entity_type: EntityType,
        entity_id: str,
        chapter_number: int
    ) -> Optional[Dict[str, Any]]:
        """
        Truncate history to chapter_number and restore that state.

        Returns the restored state, or None when no snapshot exists at or
        before the chapter (the history is left untouched).
        """
        key = self._key(entity_type, entity_id)
        history = self._histories.get(key)
        target = history.state_at(chapter_number) if history else None

        if target is None:
            if self._observability:
                self._observability.log_audit(
                    action="rollback",
                    entity_id=key,
                    outcome="unreachable",
                    details=f"no snapshot at or before chapter {chapter_number}",
                    layer="tracker"
                )
                self._observability.collect_metric("rollbacks_total", 1, {"outcome": "unreachable"})
            return None

        history.snapshots = [s for s in history.snapshots if s.chapter_number <= chapter_number]
        history.current_state = copy.deepcopy(target.state)
        history.current_chapter = history.snapshots[-1].chapter_number

        if self._observability:
            self._observability.log_audit(
                action="rollback",
                entity_id=key,
                details=f"restored chapter {target.chapter_number}",
                layer="tracker"
            )
            self._observability.collect_metric("rollbacks_total", 1, {"outcome": "success"})

        return copy.deepcopy(target.state)

    def clear(self):
        self._histories.clear()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_current_state(
        self,
        entity_type: EntityType,
        entity_id: str
    ) -> Optional[Dict[str, Any]]:
        history = self._histories.get(self._key(entity_type, entity_id))
        if history is None or history.current_state is None:
            return None
        return copy.deepcopy(history.current_state)

    def get_current_chapter(self, entity_type: EntityType, entity_id: str) -> Optional[int]:
        history = self._histories.get(self._key(entity_type, entity_id))
        if history is None or not history.snapshots:
            return None
        return history.current_chapter

    def get_state_at_chapter(
        self,
        entity_type: EntityType,
        entity_id: str,
        chapter_number: int
    ) -> Optional[Dict[str, Any]]:
        history = self._histories.get(self._key(entity_type, entity_id))
        if history is None:
            return None
        snapshot = history.state_at(chapter_number)
        return copy.deepcopy(snapshot.state) if snapshot else None

    def get_history(self, entity_type: EntityType, entity_id: str) -> List[EntityStateSnapshot]:
        history = self._histories.get(self._key(entity_type, entity_id))
        if history is None:
            return []
        return [copy.deepcopy(s) for s in history.snapshots]

    def get_changes_in_chapter(
        self,
        chapter_id: Optional[str] = None,
        chapter_number: Optional[int] = None
    ) -> List[EntityStateSnapshot]:
        """All snapshots recorded for a chapter, matched by id or number."""
        matches = []
        for history in self._histories.values():
            for snapshot in history.snapshots:
                if (chapter_id is not None and snapshot.chapter_id == chapter_id) or \
                        (chapter_number is not None and snapshot.chapter_number == chapter_number):
                    matches.append(copy.deepcopy(snapshot))
        return matches

    def is_tracked(self, entity_type: EntityType, entity_id: str) -> bool:
        history = self._histories.get(self._key(entity_type, entity_id))
        return history is not None and bool(history.snapshots)

    def get_summary(self) -> TrackerSummary:
        by_type: Dict[str, int] = {t.value: 0 for t in EntityType}
        total_snapshots = 0
        for history in self._histories.values():
            by_type[history.entity_type.value] += 1
            total_snapshots += len(history.snapshots)

        return TrackerSummary(
            total_entities=len(self._histories),
            total_snapshots=total_snapshots,
            entities_by_type=tuple(sorted(by_type.items())),
        )
