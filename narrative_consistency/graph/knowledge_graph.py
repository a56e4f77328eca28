"""
Knowledge Graph
===============

Current-state graph of story entities derived from the full novel state,
plus one power-progression timeline per character.

BOUNDARY ENFORCEMENT:
- Consumes NovelState; produces GraphNode/GraphEdge views and GraphSnapshot
- initialize_graph replaces the whole graph, it never merges
- update_power_level is the only path that appends timeline events
- Staleness is the caller's concern: nothing here watches the novel state
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
import copy

import networkx as nx

from ..contracts.base import (
    EntityType, RelationshipType, Error, ErrorCode, Result,
    UNKNOWN_LEVEL, make_node_id, make_edge_id
)
from ..contracts.events import AuditEventType
from ..contracts.graph import (
    GraphNode, GraphEdge, GraphSnapshot, ProgressionEvent, ProgressionType,
    PowerProgressionTimeline
)
from ..contracts.novel import Character, NovelState
from ..observability import ObservabilityEngine
from ..power.hierarchy import DEFAULT_CATEGORY


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class GraphConfig:
    """Configuration for graph construction and extraction updates."""
    include_locations: bool = True
    include_antagonists: bool = True
    include_world_rules: bool = True
    power_category: str = DEFAULT_CATEGORY
    fuzzy_name_resolution: bool = False
    rapid_progression_chapters: int = 2


# =============================================================================
# NODE BUILDERS
# =============================================================================

class NodeBuilder:
    """Build nodes for the knowledge graph from novel-state records."""

    def __init__(self, novel_state: NovelState):
        self._state = novel_state

    def _chapter(self, chapter_id: Optional[str]) -> int:
        return self._state.chapter_number_for(chapter_id) or 0

    def character_node(self, character: Character) -> GraphNode:
        return GraphNode(
            node_id=make_node_id(EntityType.CHARACTER, character.id),
            node_type=EntityType.CHARACTER,
            entity_id=character.id,
            label=character.name,
            properties={
                'name': character.name,
                'age': character.age,
                'personality': character.personality,
                'currentCultivation': character.current_cultivation,
                'status': character.status,
                'isProtagonist': character.is_protagonist,
                'appearance': character.appearance,
                'background': character.background,
                'goals': character.goals,
                'flaws': character.flaws,
                'notes': character.notes,
            },
            chapter_created=self._chapter(character.created_by_chapter_id),
            chapter_last_updated=self._chapter(character.last_updated_by_chapter_id),
        )

    def item_nodes(self) -> Iterable[GraphNode]:
        for item in self._state.items:
            yield GraphNode(
                node_id=make_node_id(EntityType.ITEM, item.id),
                node_type=EntityType.ITEM,
                entity_id=item.id,
                label=item.name,
                properties={
                    'name': item.name,
                    'canonicalName': item.canonical_name,
                    'description': item.description,
                    'category': item.category,
                    'powers': list(item.powers),
                    'history': item.history,
                    'firstAppearedChapter': item.first_appeared_chapter,
                    'lastReferencedChapter': item.last_referenced_chapter,
                },
                chapter_created=item.first_appeared_chapter or 0,
                chapter_last_updated=item.last_referenced_chapter or 0,
            )

    def technique_nodes(self) -> Iterable[GraphNode]:
        for technique in self._state.techniques:
            yield GraphNode(
                node_id=make_node_id(EntityType.TECHNIQUE, technique.id),
                node_type=EntityType.TECHNIQUE,
                entity_id=technique.id,
                label=technique.name,
                properties={
                    'name': technique.name,
                    'canonicalName': technique.canonical_name,
                    'description': technique.description,
                    'category': technique.category,
                    'type': technique.type,
                    'functions': list(technique.functions),
                    'history': technique.history,
                    'firstAppearedChapter': technique.first_appeared_chapter,
                    'lastReferencedChapter': technique.last_referenced_chapter,
                },
                chapter_created=technique.first_appeared_chapter or 0,
                chapter_last_updated=technique.last_referenced_chapter or 0,
            )

    def location_nodes(self) -> Iterable[GraphNode]:
        for territory in self._state.territories:
            yield GraphNode(
                node_id=make_node_id(EntityType.LOCATION, territory.id),
                node_type=EntityType.LOCATION,
                entity_id=territory.id,
                label=territory.name,
                properties={
                    'name': territory.name,
                    'type': territory.type,
                    'description': territory.description,
                    'realmId': territory.realm_id,
                },
                chapter_created=self._chapter(territory.created_by_chapter_id),
            )

    def antagonist_nodes(self) -> Iterable[GraphNode]:
        for antagonist in self._state.antagonists:
            yield GraphNode(
                node_id=make_node_id(EntityType.ANTAGONIST, antagonist.id),
                node_type=EntityType.ANTAGONIST,
                entity_id=antagonist.id,
                label=antagonist.name,
                properties={
                    'name': antagonist.name,
                    'type': antagonist.type,
                    'description': antagonist.description,
                    'motivation': antagonist.motivation,
                    'powerLevel': antagonist.power_level,
                    'status': antagonist.status,
                    'threatLevel': antagonist.threat_level,
                    'durationScope': antagonist.duration_scope,
                    'firstAppearedChapter': antagonist.first_appeared_chapter,
                    'lastAppearedChapter': antagonist.last_appeared_chapter,
                },
                chapter_created=antagonist.first_appeared_chapter or 0,
                chapter_last_updated=antagonist.last_appeared_chapter or 0,
            )

    def world_rule_nodes(self) -> Iterable[GraphNode]:
        for entry in self._state.world_bible:
            yield GraphNode(
                node_id=make_node_id(EntityType.WORLD_RULE, entry.id),
                node_type=EntityType.WORLD_RULE,
                entity_id=entry.id,
                label=entry.title,
                properties={
                    'title': entry.title,
                    'category': entry.category,
                    'content': entry.content,
                    'realmId': entry.realm_id,
                },
            )


# =============================================================================
# KNOWLEDGE GRAPH
# =============================================================================

class KnowledgeGraph:
    """
    Typed property graph over a networkx MultiDiGraph.

    Nodes are keyed by node id and edges by edge id; the GraphNode and
    GraphEdge objects live in the 'node' and 'edge' attributes.
    """

    def __init__(
        self,
        config: Optional[GraphConfig] = None,
        observability: Optional[ObservabilityEngine] = None
    ):
        self._config = config or GraphConfig()
        self._observability = observability
        self._graph = nx.MultiDiGraph()
        self._edges: Dict[str, GraphEdge] = {}
        self._timelines: Dict[str, PowerProgressionTimeline] = {}
        self._build_errors: List[Error] = []
        self._novel_id: Optional[str] = None
        self._initialized = False

    @property
    def config(self) -> GraphConfig:
        return self._config

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def initialize_graph(self, novel_state: NovelState) -> Tuple[Error, ...]:
        """
        Rebuild the graph from the full novel state.

        Returns the build errors: declared links whose endpoint does not
        exist. Those links are skipped.
        """
        self._graph = nx.MultiDiGraph()
        self._edges = {}
        self._timelines = {}
        self._build_errors = []
        self._novel_id = novel_state.id

        builder = NodeBuilder(novel_state)
        baseline_chapter = len(novel_state.chapters)

        for character in novel_state.characters:
            self._add_node(builder.character_node(character))
            self._timelines[character.id] = PowerProgressionTimeline(
                character_id=character.id,
                character_name=character.name,
                baseline_level=character.current_cultivation or UNKNOWN_LEVEL,
                baseline_chapter=baseline_chapter,
            )

        for node in builder.item_nodes():
            self._add_node(node)
        for node in builder.technique_nodes():
            self._add_node(node)
        if self._config.include_locations:
            for node in builder.location_nodes():
                self._add_node(node)
        if self._config.include_antagonists:
            for node in builder.antagonist_nodes():
                self._add_node(node)
        if self._config.include_world_rules:
            for node in builder.world_rule_nodes():
                self._add_node(node)

        for character in novel_state.characters:
            self._link_character(character)

        self._initialized = True

        if self._observability:
            self._observability.log_audit(
                action="initialize_graph",
                entity_id=novel_state.id,
                outcome="success" if not self._build_errors else "partial",
                details=(
                    f"{self.node_count} nodes, {self.edge_count} edges, "
                    f"{len(self._build_errors)} skipped link(s)"
                ),
                layer="graph",
                event_type=AuditEventType.GRAPH_BUILD
            )
            self._observability.collect_metric("graph_nodes_total", self.node_count)
            self._observability.collect_metric("graph_edges_total", self.edge_count)

        return tuple(self._build_errors)

    def _add_node(self, node: GraphNode):
        self._graph.add_node(node.node_id, node=node)

    def _link_character(self, character: Character):
        source = make_node_id(EntityType.CHARACTER, character.id)

        for rel in character.relationships:
            target = make_node_id(EntityType.CHARACTER, rel.character_id)
            if not self._graph.has_node(target):
                self._skip_link(character.id, target, "relationship")
                continue
            self.upsert_edge(
                RelationshipType.CHARACTER_CHARACTER,
                source,
                target,
                {
                    'relationshipType': rel.type,
                    'history': rel.history,
                    'impact': rel.impact,
                },
            )

        for possession in character.item_possessions:
            target = make_node_id(EntityType.ITEM, possession.item_id)
            if not self._graph.has_node(target):
                self._skip_link(character.id, target, "item possession")
                continue
            self.upsert_edge(
                RelationshipType.CHARACTER_ITEM,
                source,
                target,
                {
                    'status': possession.status,
                    'acquiredChapter': possession.acquired_chapter,
                    'archivedChapter': possession.archived_chapter,
                    'notes': possession.notes,
                },
                chapter_number=possession.acquired_chapter,
            )

        for mastery in character.technique_masteries:
            target = make_node_id(EntityType.TECHNIQUE, mastery.technique_id)
            if not self._graph.has_node(target):
                self._skip_link(character.id, target, "technique mastery")
                continue
            self.upsert_edge(
                RelationshipType.CHARACTER_TECHNIQUE,
                source,
                target,
                {
                    'status': mastery.status,
                    'masteryLevel': mastery.mastery_level,
                    'learnedChapter': mastery.learned_chapter,
                    'archivedChapter': mastery.archived_chapter,
                    'notes': mastery.notes,
                },
                chapter_number=mastery.learned_chapter,
            )

    def _skip_link(self, character_id: str, target_node_id: str, kind: str):
        self._build_errors.append(Error.create(
            ErrorCode.DANGLING_RELATIONSHIP,
            f"Skipped {kind} of character {character_id}: {target_node_id} does not exist",
            character_id=character_id,
            target=target_node_id,
        ))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def update_power_level(
        self,
        character_id: str,
        new_level: str,
        chapter_id: str,
        chapter_number: int,
        progression_type: ProgressionType = ProgressionType.GRADUAL,
        justification: Optional[str] = None
    ) -> Result:
        """
        Append a progression event and refresh the character node.

        Fails for an uninitialized graph, an unknown character, or a
        chapter earlier than the timeline's last event.
        """
        if not self._initialized:
            return self._power_failure(Error.create(
                ErrorCode.GRAPH_NOT_INITIALIZED,
                "Knowledge graph has not been initialized",
                character_id=character_id,
            ))

        timeline = self._timelines.get(character_id)
        if timeline is None:
            return self._power_failure(Error.create(
                ErrorCode.ENTITY_NOT_FOUND,
                f"No power timeline for character {character_id}",
                character_id=character_id,
            ))

        last = timeline.last_event
        if last is not None and chapter_number < last.chapter_number:
            return self._power_failure(Error.create(
                ErrorCode.OUT_OF_ORDER_CHAPTER,
                f"Chapter {chapter_number} precedes last progression event "
                f"(chapter {last.chapter_number})",
                character_id=character_id,
            ))

        event = ProgressionEvent(
            chapter_number=chapter_number,
            chapter_id=chapter_id,
            power_level=new_level,
            progression_type=progression_type,
            justification=justification,
        )
        timeline.events.append(event)

        node = self.get_character_node(character_id)
        if node is not None:
            node.level = new_level
            node.chapter_last_updated = chapter_number

        if self._observability:
            self._observability.log_audit(
                action="update_power_level",
                entity_id=character_id,
                details=f"{new_level} ({progression_type.value}) in chapter {chapter_number}",
                layer="graph",
                event_type=AuditEventType.STATE_CHANGE
            )
            self._observability.collect_metric(
                "power_levels_updated_total", 1,
                {"progression_type": progression_type.value}
            )

        return Result.success(event)

    def _power_failure(self, error: Error) -> Result:
        if self._observability:
            self._observability.log_audit(
                action="update_power_level",
                entity_id=dict(error.context).get('character_id'),
                outcome="failure",
                details=error.message,
                layer="graph",
                event_type=AuditEventType.ERROR
            )
        return Result.failure(error)

    def upsert_edge(
        self,
        edge_type: RelationshipType,
        source_node_id: str,
        target_node_id: str,
        properties: Dict[str, Any],
        chapter_number: Optional[int] = None
    ) -> Optional[GraphEdge]:
        """
        Create an edge or overwrite the properties of the existing one.

        Returns None when either endpoint is not a node of the graph.
        """
        if not (self._graph.has_node(source_node_id) and self._graph.has_node(target_node_id)):
            return None

        edge_id = make_edge_id(edge_type, source_node_id, target_node_id)
        edge = self._edges.get(edge_id)

        if edge is not None:
            edge.properties.update(properties)
            if chapter_number:
                edge.chapter_last_updated = chapter_number
            return edge

        edge = GraphEdge(
            edge_id=edge_id,
            edge_type=edge_type,
            source_id=source_node_id,
            target_id=target_node_id,
            properties=dict(properties),
            chapter_established=chapter_number,
        )
        self._edges[edge_id] = edge
        self._graph.add_edge(source_node_id, target_node_id, key=edge_id, edge=edge)
        return edge

    def add_or_update_relationship(
        self,
        source_id: str,
        target_id: str,
        relationship_type: str,
        history: str,
        impact: str,
        chapter_number: Optional[int] = None
    ) -> Optional[GraphEdge]:
        """
        Upsert the directed character-to-character edge source -> target.

        The reverse edge is never created here. Returns None when either
        character is unknown.
        """
        source = make_node_id(EntityType.CHARACTER, source_id)
        target = make_node_id(EntityType.CHARACTER, target_id)
        existed = make_edge_id(RelationshipType.CHARACTER_CHARACTER, source, target) in self._edges

        edge = self.upsert_edge(
            RelationshipType.CHARACTER_CHARACTER,
            source,
            target,
            {
                'relationshipType': relationship_type,
                'history': history,
                'impact': impact,
            },
            chapter_number=chapter_number,
        )

        if self._observability:
            outcome = "skipped" if edge is None else ("updated" if existed else "created")
            self._observability.log_audit(
                action="add_or_update_relationship",
                entity_id=f"{source_id}->{target_id}",
                outcome="success" if edge is not None else "failure",
                details=f"{relationship_type} ({outcome})",
                layer="graph",
                event_type=AuditEventType.STATE_CHANGE
            )
            self._observability.collect_metric(
                "relationships_upserted_total", 1, {"outcome": outcome}
            )

        return edge

    def update_node_properties(
        self,
        node_id: str,
        properties: Dict[str, Any],
        chapter_number: Optional[int] = None
    ) -> Optional[GraphNode]:
        """Merge scalar properties into a node's bag."""
        node = self.get_node(node_id)
        if node is None:
            return None
        node.properties.update(copy.deepcopy(properties))
        if chapter_number:
            node.chapter_last_updated = max(node.chapter_last_updated, chapter_number)
        return node

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def novel_id(self) -> Optional[str]:
        return self._novel_id

    @property
    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    @property
    def build_errors(self) -> Tuple[Error, ...]:
        return tuple(self._build_errors)

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        if not self._graph.has_node(node_id):
            return None
        return self._graph.nodes[node_id]['node']

    def get_character_node(self, character_id: str) -> Optional[GraphNode]:
        return self.get_node(make_node_id(EntityType.CHARACTER, character_id))

    def get_edge(self, edge_id: str) -> Optional[GraphEdge]:
        return self._edges.get(edge_id)

    def get_character_power_level(self, character_id: str) -> Optional[str]:
        timeline = self._timelines.get(character_id)
        if timeline is None:
            return None
        return timeline.current_level or None

    def get_character_relationships(self, character_id: str) -> List[GraphEdge]:
        """Every edge touching the character, outgoing first."""
        node_id = make_node_id(EntityType.CHARACTER, character_id)
        if not self._graph.has_node(node_id):
            return []
        outgoing = [d['edge'] for _, _, d in self._graph.out_edges(node_id, data=True)]
        incoming = [d['edge'] for _, _, d in self._graph.in_edges(node_id, data=True)]
        return outgoing + [e for e in incoming if e.source_id != node_id]

    def get_relationship(self, source_id: str, target_id: str) -> Optional[GraphEdge]:
        """The directed character edge source -> target, if any."""
        return self._edges.get(make_edge_id(
            RelationshipType.CHARACTER_CHARACTER,
            make_node_id(EntityType.CHARACTER, source_id),
            make_node_id(EntityType.CHARACTER, target_id),
        ))

    def get_power_progression(self, character_id: str) -> Optional[PowerProgressionTimeline]:
        """Copy of the character's timeline."""
        timeline = self._timelines.get(character_id)
        return copy.deepcopy(timeline) if timeline is not None else None

    def get_entities_by_type(self, entity_type: EntityType) -> List[GraphNode]:
        return [
            data['node'] for _, data in self._graph.nodes(data=True)
            if data['node'].node_type == entity_type
        ]

    def get_edges_by_type(self, edge_type: RelationshipType) -> List[GraphEdge]:
        return [e for e in self._edges.values() if e.edge_type == edge_type]

    def find_entity_by_name(
        self,
        name: str,
        entity_type: Optional[EntityType] = None
    ) -> Optional[GraphNode]:
        """Case-insensitive exact label match; no fuzzy fallback."""
        wanted = (name or "").strip().lower()
        for _, data in self._graph.nodes(data=True):
            node = data['node']
            if entity_type is not None and node.node_type != entity_type:
                continue
            if node.label.strip().lower() == wanted:
                return node
        return None

    def get_snapshot(self) -> Optional[GraphSnapshot]:
        if not self._initialized:
            return None
        return GraphSnapshot(
            nodes=tuple(data['node'].to_dict() for _, data in self._graph.nodes(data=True)),
            edges=tuple(edge.to_dict() for edge in self._edges.values()),
            power_progressions=tuple(t.to_dict() for t in self._timelines.values()),
        )
