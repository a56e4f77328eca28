"""
Graph Layer

Temporal property graph of story entities and its maintenance.

Modules:
- knowledge_graph: Node/edge store over networkx, power timelines, queries
- resolution: Name-to-entity resolution (exact, fuzzy, ambiguity report)
- updater: Applies chapter extractions to the graph and the state tracker
- topology: Structural analysis of the character relationship graph
"""

from .knowledge_graph import KnowledgeGraph, GraphConfig, NodeBuilder
from .resolution import NameResolver, NameResolution, ResolutionStatus, normalize_name
from .updater import (
    KnowledgeGraphUpdater, DEFAULT_RELATIONSHIP_HISTORY, DEFAULT_RELATIONSHIP_IMPACT,
)
from .topology import GraphTopology, CharacterGraphMetrics

__all__ = [
    'KnowledgeGraph',
    'GraphConfig',
    'NodeBuilder',
    'NameResolver',
    'NameResolution',
    'ResolutionStatus',
    'normalize_name',
    'KnowledgeGraphUpdater',
    'DEFAULT_RELATIONSHIP_HISTORY',
    'DEFAULT_RELATIONSHIP_IMPACT',
    'GraphTopology',
    'CharacterGraphMetrics',
]
