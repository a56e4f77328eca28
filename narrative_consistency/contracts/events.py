"""
Audit Event Contracts

Immutable records collected by the observability layer.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class AuditEventType(Enum):
    """Explicit audit event types."""
    GRAPH_BUILD = "graph_build"
    STATE_CHANGE = "state_change"
    VALIDATION = "validation"
    ERROR = "error"
    SYSTEM = "system"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: datetime
    layer: str  # Which layer generated this
    action: str
    entity_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def get(self, key: str) -> Optional[str]:
        return dict(self.metadata).get(key)


@dataclass(frozen=True)
class MetricPoint:
    """Immutable metric data point."""
    metric_name: str
    value: float
    timestamp: datetime
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
