"""
Relationship Consistency

Checks relationship changes for plausibility and audits the relationship
graph for one-sided links and power gaps that contradict the declared
relationship.

All findings here are advisory: warnings or info, never critical.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Tuple

from ..contracts.base import EntityType, RelationshipType
from ..contracts.novel import NovelState
from ..contracts.validation import IssueKind, Severity, ValidationIssue, ValidationReport
from ..graph.knowledge_graph import KnowledgeGraph
from ..graph.topology import GraphTopology
from ..observability import ObservabilityEngine
from ..power.system import PowerLevelSystem
from .scoring import ScoringConfig, build_report, record_report


# Plausible next steps from each relationship type. Types absent from the
# table accept any transition.
VALID_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    'Enemy': ('Rival', 'Neutral', 'Ally'),
    'Rival': ('Neutral', 'Ally'),
    'Neutral': ('Ally', 'Rival'),
    'Ally': ('Neutral', 'Rival', 'Enemy'),
}

ENEMY_GAP_WARNING = 2
ALLY_GAP_INFO = 3


def check_transition(current_type: Optional[str], new_type: str) -> Optional[str]:
    """Message for an abrupt change, None when the change is plausible."""
    if not current_type or current_type == new_type:
        return None
    allowed = VALID_TRANSITIONS.get(current_type)
    if allowed is None or new_type in allowed:
        return None
    return (
        f"Relationship change may be too abrupt: {current_type} → {new_type}. "
        f"Consider intermediate steps."
    )


class RelationshipConsistencyChecker:

    def __init__(
        self,
        graph: KnowledgeGraph,
        power_system: PowerLevelSystem,
        scoring: Optional[ScoringConfig] = None,
        observability: Optional[ObservabilityEngine] = None
    ):
        self._graph = graph
        self._power = power_system
        self._scoring = scoring
        self._observability = observability

    def check_relationship(
        self,
        source_id: str,
        target_id: str,
        new_type: str,
        chapter_number: Optional[int] = None
    ) -> List[ValidationIssue]:
        """Judge a proposed source -> target relationship against the graph."""
        issues = []
        source = self._graph.get_character_node(source_id)
        target = self._graph.get_character_node(target_id)
        source_name = source.label if source else source_id
        target_name = target.label if target else target_id

        existing = self._graph.get_relationship(source_id, target_id)
        abrupt = check_transition(existing.relationship_label if existing else None, new_type)
        if abrupt:
            issues.append(ValidationIssue(
                kind=IssueKind.ABRUPT_RELATIONSHIP_TRANSITION,
                severity=Severity.WARNING,
                entity_type=EntityType.CHARACTER,
                entity_id=source_id,
                entity_name=source_name,
                chapter_number=chapter_number,
                message=abrupt,
                suggestion=f"Show how {source_name} and {target_name} moved through an intermediate stance.",
                confidence=0.7,
            ))

        if self._graph.get_relationship(target_id, source_id) is None:
            issues.append(ValidationIssue(
                kind=IssueKind.MISSING_RELATIONSHIP,
                severity=Severity.INFO,
                entity_type=EntityType.CHARACTER,
                entity_id=target_id,
                entity_name=target_name,
                chapter_number=chapter_number,
                message=f"{target_name} has no relationship back to {source_name}.",
                suggestion="Consider adding bidirectional relationship for consistency",
            ))

        return issues

    def audit_reverse_edges(self) -> List[ValidationIssue]:
        """One info issue per one-sided character relationship."""
        topology = GraphTopology(self._graph)
        issues = []
        for source_id, target_id in topology.missing_reverse_edges():
            source_name = topology.label(source_id) or source_id
            target_name = topology.label(target_id) or target_id
            issues.append(ValidationIssue(
                kind=IssueKind.MISSING_RELATIONSHIP,
                severity=Severity.INFO,
                entity_type=EntityType.CHARACTER,
                entity_id=target_id,
                entity_name=target_name,
                message=(
                    f"{source_name} regards {target_name} as "
                    f"{topology.relationship_type(source_id, target_id) or 'related'}, "
                    f"but {target_name} has no relationship back."
                ),
                suggestion="Consider adding bidirectional relationship for consistency",
            ))
        return issues

    def check_cross_entity_consistency(self, character_id: str) -> List[ValidationIssue]:
        """Power gaps that sit badly with the character's declared relationships."""
        node = self._graph.get_character_node(character_id)
        if node is None:
            return []

        category = self._graph.config.power_category
        own_level = self._graph.get_character_power_level(character_id)
        issues = []

        for edge in self._graph.get_character_relationships(character_id):
            if edge.edge_type != RelationshipType.CHARACTER_CHARACTER or edge.source_id != node.node_id:
                continue
            other = self._graph.get_node(edge.target_id)
            if other is None:
                continue

            delta = self._power.stage_delta(
                own_level, self._graph.get_character_power_level(other.entity_id), category
            )
            if delta is None:
                continue

            label = edge.relationship_label
            if label == 'Enemy' and delta > ENEMY_GAP_WARNING:
                issues.append(ValidationIssue(
                    kind=IssueKind.POWER_RELATIONSHIP_MISMATCH,
                    severity=Severity.WARNING,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character_id,
                    entity_name=node.label,
                    message=(
                        f"{node.label} is significantly weaker than enemy {other.label}. "
                        f"Ensure conflict is realistic."
                    ),
                    suggestion="Give the weaker side an edge (allies, treasures, terrain) or avoid a direct clash.",
                    confidence=0.7,
                    evidence=(f"Stage gap: {delta}",),
                ))
            elif label == 'Ally' and abs(delta) > ALLY_GAP_INFO:
                issues.append(ValidationIssue(
                    kind=IssueKind.POWER_RELATIONSHIP_MISMATCH,
                    severity=Severity.INFO,
                    entity_type=EntityType.CHARACTER,
                    entity_id=character_id,
                    entity_name=node.label,
                    message=(
                        f"Large power gap between allies {node.label} and {other.label}. "
                        f"Consider implications."
                    ),
                    confidence=0.6,
                    evidence=(f"Stage gap: {delta}",),
                ))

        return issues

    def audit(self, novel_state: NovelState) -> ValidationReport:
        """Reverse-edge audit plus cross-entity checks for every character."""
        if not self._graph.is_initialized:
            self._graph.initialize_graph(novel_state)

        issues = self.audit_reverse_edges()
        for character in novel_state.characters:
            issues.extend(self.check_cross_entity_consistency(character.id))

        report = build_report(issues, self._scoring)
        record_report(self._observability, "relationships", report, novel_state.id)
        return report
