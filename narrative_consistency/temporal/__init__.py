"""
Temporal Layer

Versioned per-entity state history with chapter provenance.

GUARANTEES:
- Snapshots are deep copies taken at capture time
- Chapter numbers never decrease within one entity's history
- Rollback truncates; nothing else removes snapshots

Modules:
- state_tracker: Snapshot recording, point-in-time reads, rollback
"""

from .state_tracker import (
    EntityStateTracker, EntityStateHistory, SnapshotOrderError, diff_states,
)

__all__ = [
    'EntityStateTracker',
    'EntityStateHistory',
    'SnapshotOrderError',
    'diff_states',
]
