"""
Character Topology
==================

Structural view of the character-to-character relationship graph.

This computes TOPOLOGY (who is linked to whom), not IMPORTANCE.

ALLOWED:
- Missing reverse edges (one-sided relationships)
- Isolated characters
- Weakly connected components
- Density and reciprocity

FORBIDDEN:
- Centrality or influence scores: the engine does not rank characters
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

import networkx as nx

from ..contracts.base import EntityType, RelationshipType
from .knowledge_graph import KnowledgeGraph


@dataclass(frozen=True)
class CharacterGraphMetrics:
    """Immutable structural metrics of the character graph."""
    character_count: int
    relationship_count: int
    density: float
    component_count: int
    isolated_count: int
    reciprocity: float


class GraphTopology:
    """
    Read-only structural analysis over a KnowledgeGraph.

    The character subgraph is rebuilt on construction; create a new
    instance after the knowledge graph changes.
    """

    def __init__(self, graph: KnowledgeGraph):
        self._graph = nx.DiGraph()
        for node in graph.get_entities_by_type(EntityType.CHARACTER):
            self._graph.add_node(node.entity_id, label=node.label)

        for edge in graph.get_edges_by_type(RelationshipType.CHARACTER_CHARACTER):
            source = graph.get_node(edge.source_id)
            target = graph.get_node(edge.target_id)
            if source is None or target is None:
                continue
            self._graph.add_edge(
                source.entity_id,
                target.entity_id,
                relationship_type=edge.relationship_label
            )

    def label(self, character_id: str) -> Optional[str]:
        if character_id not in self._graph:
            return None
        return self._graph.nodes[character_id].get('label')

    def relationship_type(self, source_id: str, target_id: str) -> Optional[str]:
        if not self._graph.has_edge(source_id, target_id):
            return None
        return self._graph.edges[source_id, target_id].get('relationship_type')

    def missing_reverse_edges(self) -> List[Tuple[str, str]]:
        """(source, target) pairs linked one way only, self-links excluded."""
        return sorted(
            (u, v) for u, v in self._graph.edges()
            if u != v and not self._graph.has_edge(v, u)
        )

    def isolated_characters(self) -> List[str]:
        return sorted(nx.isolates(self._graph))

    def connected_components(self) -> List[Set[str]]:
        """
        Weakly connected groups of characters.

        Returned in arbitrary order: no ranking of components.
        """
        if self._graph.number_of_nodes() == 0:
            return []
        return [set(c) for c in nx.weakly_connected_components(self._graph)]

    def compute_metrics(self) -> CharacterGraphMetrics:
        node_count = self._graph.number_of_nodes()
        edge_count = self._graph.number_of_edges()

        if node_count == 0:
            return CharacterGraphMetrics(0, 0, 0.0, 0, 0, 0.0)

        one_sided = len(self.missing_reverse_edges())
        non_loop = edge_count - nx.number_of_selfloops(self._graph)
        reciprocity = (non_loop - one_sided) / non_loop if non_loop else 0.0

        return CharacterGraphMetrics(
            character_count=node_count,
            relationship_count=edge_count,
            density=nx.density(self._graph),
            component_count=nx.number_weakly_connected_components(self._graph),
            isolated_count=nx.number_of_isolates(self._graph),
            reciprocity=reciprocity,
        )
