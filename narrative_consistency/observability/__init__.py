"""
Observability & Audit Layer

RESPONSIBILITY: Audit logging and metrics for every mutating operation
ALLOWED INPUTS: Audit calls and metric points from other layers
OUTPUTS: AuditLogEntry lists, MetricPoint series, audit reports

WHAT THIS LAYER MUST NOT DO:
============================
- Modify system behavior
- Filter or interpret events (only record them)
- Make decisions based on logged data
- Raise into the caller's pipeline

BOUNDARY ENFORCEMENT:
=====================
- Entries are immutable once collected
- Provides read-only access to logs and metrics
- Layers receive an engine by injection; None disables recording
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple
import hashlib

# ONLY import from contracts - never from other layers' implementations
from ..contracts.base import utc_now
from ..contracts.events import AuditLogEntry, AuditEventType, MetricPoint


# =============================================================================
# LOG COLLECTORS (One per layer)
# =============================================================================

class LogCollector:
    """
    Append-only audit entries for one layer.
    """

    def __init__(self, layer_name: str):
        self._layer_name = layer_name
        self._entries: List[AuditLogEntry] = []

    def collect(self, entry: AuditLogEntry):
        self._entries.append(entry)

    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None,
        action: Optional[str] = None,
        since: Optional[datetime] = None
    ) -> List[AuditLogEntry]:
        """Get entries, optionally filtered."""
        entries = self._entries

        if since:
            entries = [e for e in entries if e.timestamp >= since]

        if event_type:
            entries = [e for e in entries if e.event_type == event_type]

        if action:
            entries = [e for e in entries if e.action == action]

        return list(entries)

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        return len(self._entries)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class MetricDefinition:
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


class MetricsCollector:
    """
    Append-only metric time series.
    """

    def __init__(self):
        self._metrics: Dict[str, List[MetricPoint]] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._register_default_metrics()

    def _register_default_metrics(self):
        defaults = [
            MetricDefinition(
                name="graph_nodes_total",
                metric_type=MetricType.GAUGE,
                description="Nodes in the knowledge graph after a rebuild"
            ),
            MetricDefinition(
                name="graph_edges_total",
                metric_type=MetricType.GAUGE,
                description="Edges in the knowledge graph after a rebuild"
            ),
            MetricDefinition(
                name="power_levels_updated_total",
                metric_type=MetricType.COUNTER,
                description="Power progression events appended",
                labels=("progression_type",)
            ),
            MetricDefinition(
                name="relationships_upserted_total",
                metric_type=MetricType.COUNTER,
                description="Relationship edges created or overwritten",
                labels=("outcome",)
            ),
            MetricDefinition(
                name="snapshots_recorded_total",
                metric_type=MetricType.COUNTER,
                description="Entity state snapshots recorded",
                labels=("entity_type",)
            ),
            MetricDefinition(
                name="rollbacks_total",
                metric_type=MetricType.COUNTER,
                description="Entity history rollbacks",
                labels=("outcome",)
            ),
            MetricDefinition(
                name="conflicts_detected_total",
                metric_type=MetricType.COUNTER,
                description="Advisory conflicts found while applying extractions",
                labels=("conflict_type",)
            ),
            MetricDefinition(
                name="validation_score",
                metric_type=MetricType.HISTOGRAM,
                description="Overall consistency score per validation run",
                labels=("phase",)
            ),
            MetricDefinition(
                name="validation_issues_total",
                metric_type=MetricType.COUNTER,
                description="Issues emitted by validation runs",
                labels=("phase", "severity")
            ),
        ]

        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        self._definitions[definition.name] = definition
        if definition.name not in self._metrics:
            self._metrics[definition.name] = []

    def get_definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        if metric_name not in self._metrics:
            self._metrics[metric_name] = []

        label_tuple = tuple(sorted(labels.items())) if labels else ()

        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=utc_now(),
            labels=label_tuple
        )
        self._metrics[metric_name].append(point)

    def get_metric(
        self,
        metric_name: str,
        labels: Optional[Dict[str, str]] = None
    ) -> List[MetricPoint]:
        """Get metric data points, optionally filtered by labels."""
        points = self._metrics.get(metric_name, [])

        if labels:
            wanted = set(labels.items())
            points = [p for p in points if wanted.issubset(set(p.labels))]

        return list(points)

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        points = self._metrics.get(metric_name, [])
        return points[-1] if points else None

    def total(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return sum(p.value for p in self.get_metric(metric_name, labels))

    def compute_aggregates(self, metric_name: str) -> Dict[str, float]:
        points = self.get_metric(metric_name)

        if not points:
            return {}

        values = [p.value for p in points]

        return {
            'count': len(values),
            'sum': sum(values),
            'min': min(values),
            'max': max(values),
            'avg': sum(values) / len(values),
        }


# =============================================================================
# OBSERVABILITY ENGINE (Orchestrates all observability)
# =============================================================================

LAYERS: Tuple[str, ...] = ('power', 'tracker', 'graph', 'validation', 'engine')


@dataclass
class ObservabilityConfig:
    """Configuration for observability engine."""
    enable_metrics: bool = True
    layers: Tuple[str, ...] = LAYERS


class ObservabilityEngine:
    """
    Central Observability Engine.

    BOUNDARY ENFORCEMENT:
    - ONLY observes, never modifies
    - Provides read-only access to collected data
    """

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        self._config = config or ObservabilityConfig()
        self._collectors: Dict[str, LogCollector] = {
            name: LogCollector(name) for name in self._config.layers
        }
        self._metrics = MetricsCollector() if self._config.enable_metrics else None
        self._sequence = 0

    def collect_audit(self, entry: AuditLogEntry):
        collector = self._collectors.get(entry.layer)
        if collector:
            collector.collect(entry)

    def log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        outcome: str = "success",
        details: str = "",
        layer: str = "engine",
        event_type: AuditEventType = AuditEventType.SYSTEM
    ) -> AuditLogEntry:
        """Helper to log audit entry directly."""
        self._sequence += 1
        now = utc_now()
        entry_hash = hashlib.sha256(
            f"{layer}_{action}|{self._sequence}|{now.timestamp()}".encode()
        ).hexdigest()[:16]

        entry = AuditLogEntry(
            entry_id=f"audit_{entry_hash}",
            event_type=event_type,
            timestamp=now,
            layer=layer,
            action=action,
            entity_id=entity_id,
            metadata=(
                ("outcome", outcome),
                ("details", details),
            )
        )
        self.collect_audit(entry)
        return entry

    def collect_metric(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        if self._metrics:
            self._metrics.record(metric_name, value, labels)

    def get_unified_log(
        self,
        layers: Optional[List[str]] = None,
        since: Optional[datetime] = None
    ) -> List[AuditLogEntry]:
        """Get unified log from all or specified layers."""
        target_layers = layers or list(self._collectors.keys())

        all_entries = []
        for layer_name in target_layers:
            collector = self._collectors.get(layer_name)
            if collector:
                all_entries.extend(collector.get_entries(since=since))

        all_entries.sort(key=lambda e: e.timestamp)
        return all_entries

    def get_layer_log(
        self,
        layer_name: str,
        action: Optional[str] = None
    ) -> List[AuditLogEntry]:
        collector = self._collectors.get(layer_name)
        if not collector:
            return []
        return collector.get_entries(action=action)

    def get_metrics(self) -> Optional[MetricsCollector]:
        """Get metrics collector (read-only access)."""
        return self._metrics

    def generate_audit_report(self, since: Optional[datetime] = None) -> Dict:
        """Generate audit report grouped by layer, event type and outcome."""
        entries = self.get_unified_log(since=since)

        by_layer: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        failures = 0

        for entry in entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1
            if entry.get("outcome") != "success":
                failures += 1

        return {
            'total_entries': len(entries),
            'failures': failures,
            'by_layer': by_layer,
            'by_event_type': by_type,
            'time_range': {
                'start': entries[0].timestamp.isoformat() if entries else None,
                'end': entries[-1].timestamp.isoformat() if entries else None,
            },
            'generated_at': utc_now().isoformat()
        }
