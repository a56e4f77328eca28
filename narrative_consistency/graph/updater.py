"""
Knowledge Graph Updater

Applies one chapter's extraction results to the knowledge graph and the
entity state tracker, and reports advisory conflicts.

BOUNDARY ENFORCEMENT:
- Never creates detached nodes: unknown names are counted as additions
  and appear on the next initialize_graph
- Missing references are skipped and recorded as errors, never raised
- Conflicts are advisory and never block the update
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
import copy

from ..contracts.base import (
    EntityType, RelationshipType, Error, ErrorCode, CharacterStatus,
    UNKNOWN_LEVEL, make_node_id
)
from ..contracts.events import AuditEventType
from ..contracts.extraction import (
    ChapterExtraction, CharacterUpsert, ItemUpdate, TechniqueUpdate,
    WorldEntryUpsert, SCALAR_SET_FIELDS
)
from ..contracts.graph import (
    ConflictType, GraphConflict, GraphUpdateResult, ProgressionType
)
from ..contracts.novel import Chapter, Character, NovelState
from ..cues import has_breakthrough_cue
from ..observability import ObservabilityEngine
from ..power.system import PowerLevelSystem
from ..temporal.state_tracker import EntityStateTracker
from .knowledge_graph import GraphConfig, KnowledgeGraph
from .resolution import NameResolution, NameResolver, ResolutionStatus


DEFAULT_RELATIONSHIP_HISTORY = "Karma link recorded in chronicle."
DEFAULT_RELATIONSHIP_IMPACT = "Fate has shifted."


class _Counters:
    """Mutable tally turned into a GraphUpdateResult at the end of a run."""

    def __init__(self):
        self.entities_added = 0
        self.entities_updated = 0
        self.relationships_created = 0
        self.relationships_updated = 0
        self.power_levels_updated = 0
        self.errors: List[Error] = []

    def result(self, conflicts: Tuple[GraphConflict, ...]) -> GraphUpdateResult:
        return GraphUpdateResult(
            entities_added=self.entities_added,
            entities_updated=self.entities_updated,
            relationships_created=self.relationships_created,
            relationships_updated=self.relationships_updated,
            power_levels_updated=self.power_levels_updated,
            conflicts=conflicts,
            errors=tuple(self.errors),
        )


class KnowledgeGraphUpdater:
    """Reconciles graph and tracker with what a chapter actually contained."""

    def __init__(
        self,
        graph: KnowledgeGraph,
        tracker: EntityStateTracker,
        power_system: PowerLevelSystem,
        config: Optional[GraphConfig] = None,
        observability: Optional[ObservabilityEngine] = None
    ):
        self._graph = graph
        self._tracker = tracker
        self._power = power_system
        self._config = config or graph.config
        self._resolver = NameResolver(allow_fuzzy=self._config.fuzzy_name_resolution)
        self._observability = observability

    # -------------------------------------------------------------------------
    # Name resolution
    # -------------------------------------------------------------------------

    def resolve_character(self, novel_state: NovelState, name: str) -> NameResolution:
        return self._resolver.resolve(name, ((c.id, c.name) for c in novel_state.characters))

    def _resolution_error(self, resolution: NameResolution, role: str) -> Error:
        if resolution.status == ResolutionStatus.AMBIGUOUS:
            return Error.create(
                ErrorCode.AMBIGUOUS_NAME,
                f"{role} name '{resolution.name}' matches several entities",
                name=resolution.name,
                candidates=",".join(resolution.candidates),
            )
        return Error.create(
            ErrorCode.ENTITY_NOT_FOUND,
            f"{role} name '{resolution.name}' does not match any entity",
            name=resolution.name,
        )

    # -------------------------------------------------------------------------
    # Transition classification
    # -------------------------------------------------------------------------

    def classify_transition(
        self,
        current_level: str,
        new_level: str,
        chapter_text: str
    ) -> ProgressionType:
        """
        Regression when new < current; a jump of more than one stage is a
        breakthrough; a single-stage jump is a breakthrough only with a
        breakthrough cue in the text; a sub-stage move is gradual. Anything
        that does not compare (rewording or an unparseable side) is stable.
        """
        category = self._config.power_category
        comparison = self._power.compare(new_level, current_level, category)

        if comparison < 0:
            return ProgressionType.REGRESSION

        delta = self._power.stage_delta(current_level, new_level, category)
        if comparison > 0:
            if delta is not None and delta > 1:
                return ProgressionType.BREAKTHROUGH
            if delta == 1:
                return (
                    ProgressionType.BREAKTHROUGH if has_breakthrough_cue(chapter_text)
                    else ProgressionType.GRADUAL
                )
            return ProgressionType.GRADUAL

        return ProgressionType.STABLE

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update_graph(
        self,
        novel_state: NovelState,
        chapter: Chapter,
        extraction: ChapterExtraction
    ) -> GraphUpdateResult:
        if not self._graph.is_initialized:
            self._graph.initialize_graph(novel_state)

        conflicts = self.detect_conflicts(novel_state, chapter, extraction)
        counters = _Counters()

        for upsert in extraction.character_upserts:
            self._apply_character(novel_state, chapter, upsert, counters)

        for entry in extraction.world_entry_upserts:
            self._apply_world_entry(novel_state, chapter, entry, counters)

        for update in extraction.item_updates:
            self._apply_item(novel_state, chapter, update, counters)

        for update in extraction.technique_updates:
            self._apply_technique(novel_state, chapter, update, counters)

        result = counters.result(conflicts)

        if self._observability:
            self._observability.log_audit(
                action="update_graph",
                entity_id=chapter.id,
                outcome="success" if not result.errors else "partial",
                details=(
                    f"chapter {chapter.number}: +{result.entities_added} "
                    f"~{result.entities_updated} entities, "
                    f"{result.power_levels_updated} power, "
                    f"{len(result.conflicts)} conflict(s), {len(result.errors)} error(s)"
                ),
                layer="graph",
                event_type=AuditEventType.STATE_CHANGE
            )
            for conflict in conflicts:
                self._observability.collect_metric(
                    "conflicts_detected_total", 1,
                    {"conflict_type": conflict.conflict_type.value}
                )

        return result

    def _apply_character(
        self,
        novel_state: NovelState,
        chapter: Chapter,
        upsert: CharacterUpsert,
        counters: _Counters
    ):
        resolution = self.resolve_character(novel_state, upsert.name)
        if resolution.status == ResolutionStatus.AMBIGUOUS:
            counters.errors.append(self._resolution_error(resolution, "Character"))
            return
        if not resolution.is_resolved:
            # Added to the codex by the caller; the node appears on the next rebuild
            counters.entities_added += 1
            return

        character = novel_state.get_character(resolution.entity_id)
        previous_state = (
            self._tracker.get_current_state(EntityType.CHARACTER, character.id)
            or character.tracked_state()
        )

        self._apply_power(character, chapter, upsert, counters)
        relationships = self._apply_relationships(novel_state, character, chapter, upsert, counters)
        self._link_named(novel_state, character, chapter, upsert.add_items, EntityType.ITEM, counters)
        self._link_named(novel_state, character, chapter, upsert.add_skills, EntityType.TECHNIQUE, counters)

        scalar = {k: v for k, v in upsert.fields.items() if k in SCALAR_SET_FIELDS and k != 'currentCultivation'}
        self._graph.update_node_properties(
            make_node_id(EntityType.CHARACTER, character.id), scalar, chapter.number
        )

        new_state = self._merged_state(previous_state, upsert, relationships)
        if self._tracker.can_track(EntityType.CHARACTER, character.id, chapter.number):
            self._tracker.track_change(
                EntityType.CHARACTER,
                character.id,
                chapter.id,
                chapter.number,
                new_state,
                previous_state,
            )
        else:
            counters.errors.append(Error.create(
                ErrorCode.OUT_OF_ORDER_CHAPTER,
                f"Snapshot for {character.name} in chapter {chapter.number} would precede "
                f"chapter {self._tracker.get_current_chapter(EntityType.CHARACTER, character.id)}",
                character_id=character.id,
            ))

        counters.entities_updated += 1

    def _apply_power(
        self,
        character: Character,
        chapter: Chapter,
        upsert: CharacterUpsert,
        counters: _Counters
    ):
        new_level = upsert.new_level
        if not new_level:
            return

        current_level = self._graph.get_character_power_level(character.id) or character.current_cultivation
        if not current_level or current_level == UNKNOWN_LEVEL or new_level == current_level:
            return

        progression_type = self.classify_transition(current_level, new_level, chapter.text)
        result = self._graph.update_power_level(
            character.id,
            new_level,
            chapter.id,
            chapter.number,
            progression_type,
            f"Updated from extraction in Chapter {chapter.number}",
        )
        if result.is_success:
            counters.power_levels_updated += 1
        else:
            counters.errors.append(result.error)

    def _apply_relationships(
        self,
        novel_state: NovelState,
        character: Character,
        chapter: Chapter,
        upsert: CharacterUpsert,
        counters: _Counters
    ) -> List[Dict[str, Any]]:
        """Upsert declared relationships; returns them as tracked-state dicts."""
        applied = []
        for rel in upsert.relationships:
            resolution = self.resolve_character(novel_state, rel.target_name)
            if not resolution.is_resolved:
                counters.errors.append(self._resolution_error(resolution, "Relationship target"))
                continue

            history = rel.history or DEFAULT_RELATIONSHIP_HISTORY
            impact = rel.impact or DEFAULT_RELATIONSHIP_IMPACT
            edge = self._graph.add_or_update_relationship(
                character.id,
                resolution.entity_id,
                rel.type,
                history,
                impact,
                chapter.number,
            )
            if edge is None:
                counters.errors.append(Error.create(
                    ErrorCode.DANGLING_RELATIONSHIP,
                    f"Relationship {character.name} -> {rel.target_name} has no graph node",
                    source=character.id,
                    target=resolution.entity_id,
                ))
                continue

            if character.find_relationship(resolution.entity_id) is not None:
                counters.relationships_updated += 1
            else:
                counters.relationships_created += 1

            applied.append({
                'characterId': resolution.entity_id,
                'type': rel.type,
                'history': history,
                'impact': impact,
            })
        return applied

    def _link_named(
        self,
        novel_state: NovelState,
        character: Character,
        chapter: Chapter,
        names: Tuple[str, ...],
        entity_type: EntityType,
        counters: _Counters
    ):
        """Link a character to named items or techniques that already exist."""
        if not names:
            return
        pool = novel_state.items if entity_type == EntityType.ITEM else novel_state.techniques
        for name in names:
            resolution = self._resolver.resolve(name, ((e.id, e.name) for e in pool))
            if resolution.is_resolved:
                self._link_holder(character.id, entity_type, resolution.entity_id, chapter, counters)

    def _link_holder(
        self,
        character_id: str,
        entity_type: EntityType,
        entity_id: str,
        chapter: Chapter,
        counters: _Counters,
        mastery_level: str = ""
    ):
        if entity_type == EntityType.ITEM:
            edge_type = RelationshipType.CHARACTER_ITEM
            properties = {'status': 'active', 'acquiredChapter': chapter.number}
        else:
            edge_type = RelationshipType.CHARACTER_TECHNIQUE
            properties = {'status': 'active', 'learnedChapter': chapter.number}
            if mastery_level:
                properties['masteryLevel'] = mastery_level

        source = make_node_id(EntityType.CHARACTER, character_id)
        target = make_node_id(entity_type, entity_id)
        existing = [
            e for e in self._graph.get_character_relationships(character_id)
            if e.edge_type == edge_type and e.target_id == target
        ]
        if existing:
            if mastery_level:
                self._graph.upsert_edge(edge_type, source, target, {'masteryLevel': mastery_level}, chapter.number)
                counters.relationships_updated += 1
            return

        if self._graph.upsert_edge(edge_type, source, target, properties, chapter.number) is not None:
            counters.relationships_created += 1

    @staticmethod
    def _merged_state(
        previous_state: Dict[str, Any],
        upsert: CharacterUpsert,
        relationships: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        state = copy.deepcopy(previous_state)
        for key, value in upsert.fields.items():
            if value is not None and value != "":
                state[key] = copy.deepcopy(value)

        if relationships:
            merged = list(state.get('relationships') or [])
            for rel in relationships:
                merged = [r for r in merged if r.get('characterId') != rel['characterId']]
                merged.append(rel)
            state['relationships'] = merged
        return state

    def _apply_world_entry(
        self,
        novel_state: NovelState,
        chapter: Chapter,
        entry: WorldEntryUpsert,
        counters: _Counters
    ):
        resolution = self._resolver.resolve(
            entry.title, ((w.id, w.title) for w in novel_state.world_bible)
        )
        if not resolution.is_resolved:
            counters.entities_added += 1
            return

        properties = {'content': entry.content}
        if entry.category:
            properties['category'] = entry.category
        self._graph.update_node_properties(
            make_node_id(EntityType.WORLD_RULE, resolution.entity_id), properties, chapter.number
        )
        counters.entities_updated += 1

    def _apply_item(
        self,
        novel_state: NovelState,
        chapter: Chapter,
        update: ItemUpdate,
        counters: _Counters
    ):
        item = novel_state.get_item(update.item_id) if update.item_id else None
        if item is None:
            resolution = self._resolver.resolve(update.name, ((i.id, i.name) for i in novel_state.items))
            item = novel_state.get_item(resolution.entity_id) if resolution.is_resolved else None

        if item is None:
            counters.entities_added += 1
            return

        node = self._graph.get_node(make_node_id(EntityType.ITEM, item.id))
        if node is not None:
            properties: Dict[str, Any] = {'lastReferencedChapter': chapter.number}
            if update.description:
                properties['description'] = update.description
            if update.add_powers:
                powers = list(node.properties.get('powers') or [])
                properties['powers'] = powers + [p for p in update.add_powers if p not in powers]
            self._graph.update_node_properties(node.node_id, properties, chapter.number)
            counters.entities_updated += 1

        if update.character_name:
            holder = self.resolve_character(novel_state, update.character_name)
            if holder.is_resolved:
                self._link_holder(holder.entity_id, EntityType.ITEM, item.id, chapter, counters)
            else:
                counters.errors.append(self._resolution_error(holder, "Item holder"))

    def _apply_technique(
        self,
        novel_state: NovelState,
        chapter: Chapter,
        update: TechniqueUpdate,
        counters: _Counters
    ):
        technique = novel_state.get_technique(update.technique_id) if update.technique_id else None
        if technique is None:
            resolution = self._resolver.resolve(
                update.name, ((t.id, t.name) for t in novel_state.techniques)
            )
            technique = novel_state.get_technique(resolution.entity_id) if resolution.is_resolved else None

        if technique is None:
            counters.entities_added += 1
            return

        node = self._graph.get_node(make_node_id(EntityType.TECHNIQUE, technique.id))
        if node is not None:
            properties: Dict[str, Any] = {'lastReferencedChapter': chapter.number}
            if update.description:
                properties['description'] = update.description
            if update.add_functions:
                functions = list(node.properties.get('functions') or [])
                properties['functions'] = functions + [f for f in update.add_functions if f not in functions]
            self._graph.update_node_properties(node.node_id, properties, chapter.number)
            counters.entities_updated += 1

        if update.character_name:
            holder = self.resolve_character(novel_state, update.character_name)
            if holder.is_resolved:
                self._link_holder(
                    holder.entity_id, EntityType.TECHNIQUE, technique.id, chapter, counters,
                    mastery_level=update.mastery_level
                )
            else:
                counters.errors.append(self._resolution_error(holder, "Technique practitioner"))

    # -------------------------------------------------------------------------
    # Conflicts
    # -------------------------------------------------------------------------

    def prior_status(self, character: Character, chapter_number: int) -> str:
        """Status in force before the chapter: tracked history, else the codex."""
        state = self._tracker.get_state_at_chapter(
            EntityType.CHARACTER, character.id, chapter_number - 1
        )
        if state and state.get('status'):
            return state['status']
        return character.status

    def detect_conflicts(
        self,
        novel_state: NovelState,
        chapter: Chapter,
        extraction: ChapterExtraction
    ) -> Tuple[GraphConflict, ...]:
        """
        Advisory conflicts in the extraction, judged against the state in
        force before the chapter. Mutates nothing.
        """
        category = self._config.power_category
        conflicts: List[GraphConflict] = []

        for upsert in extraction.character_upserts:
            resolution = self.resolve_character(novel_state, upsert.name)
            if not resolution.is_resolved:
                continue
            character = novel_state.get_character(resolution.entity_id)

            extracted_level = upsert.new_level
            if extracted_level:
                timeline = self._graph.get_power_progression(character.id)
                baseline = (
                    timeline.level_before(chapter.number) if timeline
                    else character.current_cultivation
                )
                if baseline and baseline != UNKNOWN_LEVEL:
                    comparison = self._power.compare(extracted_level, baseline, category)
                    if comparison < 0:
                        conflicts.append(GraphConflict(
                            conflict_type=ConflictType.POWER_REGRESSION,
                            entity_id=character.id,
                            entity_name=character.name,
                            message=(
                                f"Power level regression: {baseline} → {extracted_level}. "
                                f"This may be intentional (injury, curse) or an error."
                            ),
                            confidence=0.9,
                        ))
                    elif comparison > 0 and timeline is not None:
                        last = timeline.last_event_before(chapter.number)
                        if last is not None:
                            since = chapter.number - last.chapter_number
                            if since < self._config.rapid_progression_chapters:
                                conflicts.append(GraphConflict(
                                    conflict_type=ConflictType.RAPID_PROGRESSION,
                                    entity_id=character.id,
                                    entity_name=character.name,
                                    message=(
                                        f"Rapid power progression: {last.power_level} → "
                                        f"{extracted_level} in {since} chapter(s). "
                                        f"Ensure this is well-justified."
                                    ),
                                    confidence=0.75,
                                ))

            extracted_status = upsert.new_status
            if extracted_status:
                current_status = self.prior_status(character, chapter.number)
                if current_status == CharacterStatus.DECEASED.value and \
                        extracted_status != CharacterStatus.DECEASED.value:
                    conflicts.append(GraphConflict(
                        conflict_type=ConflictType.STATUS_CONFLICT,
                        entity_id=character.id,
                        entity_name=character.name,
                        message=(
                            f"Character was Deceased but extraction shows {extracted_status}. "
                            f"This may be a resurrection scene or an error."
                        ),
                        confidence=0.95,
                    ))

        return tuple(conflicts)
