"""
Novel State Contracts

Immutable view of the full novel state handed to the engine by the
surrounding application. The engine never mutates these objects; it
derives its own graph and state histories from them.

BOUNDARY ENFORCEMENT:
- Pure data, parsed from the collaborator's JSON via from_dict
- Missing optional collections become empty tuples
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .base import CharacterStatus, UNKNOWN_LEVEL, text_field


def _tuple_of(cls, items: Optional[List[dict]]) -> tuple:
    return tuple(cls.from_dict(item) for item in (items or []))


# =============================================================================
# CHARACTER CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class Relationship:
    """Declared character-to-character relationship."""
    character_id: str
    type: str
    history: str = ""
    impact: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Relationship:
        return cls(
            character_id=data['characterId'],
            type=text_field(data, 'type'),
            history=text_field(data, 'history'),
            impact=text_field(data, 'impact'),
        )

    def to_dict(self) -> dict:
        return {
            'characterId': self.character_id,
            'type': self.type,
            'history': self.history,
            'impact': self.impact,
        }


@dataclass(frozen=True)
class ItemPossession:
    item_id: str
    status: str = "active"
    acquired_chapter: Optional[int] = None
    archived_chapter: Optional[int] = None
    notes: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> ItemPossession:
        return cls(
            item_id=data['itemId'],
            status=text_field(data, 'status', 'active'),
            acquired_chapter=data.get('acquiredChapter'),
            archived_chapter=data.get('archivedChapter'),
            notes=text_field(data, 'notes'),
        )

    def to_dict(self) -> dict:
        return {
            'itemId': self.item_id,
            'status': self.status,
            'acquiredChapter': self.acquired_chapter,
            'archivedChapter': self.archived_chapter,
            'notes': self.notes,
        }


@dataclass(frozen=True)
class TechniqueMastery:
    technique_id: str
    status: str = "active"
    mastery_level: str = ""
    learned_chapter: Optional[int] = None
    archived_chapter: Optional[int] = None
    notes: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> TechniqueMastery:
        return cls(
            technique_id=data['techniqueId'],
            status=text_field(data, 'status', 'active'),
            mastery_level=text_field(data, 'masteryLevel'),
            learned_chapter=data.get('learnedChapter'),
            archived_chapter=data.get('archivedChapter'),
            notes=text_field(data, 'notes'),
        )

    def to_dict(self) -> dict:
        return {
            'techniqueId': self.technique_id,
            'status': self.status,
            'masteryLevel': self.mastery_level,
            'learnedChapter': self.learned_chapter,
            'archivedChapter': self.archived_chapter,
            'notes': self.notes,
        }


# Fields recorded in every character snapshot
CHARACTER_TRACKED_FIELDS: Tuple[str, ...] = (
    'name', 'age', 'personality', 'currentCultivation', 'status',
    'isProtagonist', 'appearance', 'background', 'goals', 'flaws', 'notes',
    'relationships', 'itemPossessions', 'techniqueMasteries',
)


@dataclass(frozen=True)
class Character:
    """A character from the novel's codex."""
    id: str
    name: str
    age: str = ""
    personality: str = ""
    current_cultivation: str = ""
    status: str = CharacterStatus.ALIVE.value
    is_protagonist: bool = False
    appearance: str = ""
    background: str = ""
    goals: str = ""
    flaws: str = ""
    notes: str = ""
    relationships: Tuple[Relationship, ...] = field(default_factory=tuple)
    item_possessions: Tuple[ItemPossession, ...] = field(default_factory=tuple)
    technique_masteries: Tuple[TechniqueMastery, ...] = field(default_factory=tuple)
    created_by_chapter_id: Optional[str] = None
    last_updated_by_chapter_id: Optional[str] = None

    @property
    def has_power_level(self) -> bool:
        return bool(self.current_cultivation) and self.current_cultivation != UNKNOWN_LEVEL

    def find_relationship(self, character_id: str) -> Optional[Relationship]:
        for rel in self.relationships:
            if rel.character_id == character_id:
                return rel
        return None

    def tracked_state(self) -> Dict[str, Any]:
        """Project the character onto the snapshot field set."""
        return {
            'name': self.name,
            'age': self.age,
            'personality': self.personality,
            'currentCultivation': self.current_cultivation,
            'status': self.status,
            'isProtagonist': self.is_protagonist,
            'appearance': self.appearance,
            'background': self.background,
            'goals': self.goals,
            'flaws': self.flaws,
            'notes': self.notes,
            'relationships': [r.to_dict() for r in self.relationships],
            'itemPossessions': [p.to_dict() for p in self.item_possessions],
            'techniqueMasteries': [m.to_dict() for m in self.technique_masteries],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Character:
        return cls(
            id=data['id'],
            name=data['name'] or '',
            age=text_field(data, 'age'),
            personality=text_field(data, 'personality'),
            current_cultivation=text_field(data, 'currentCultivation'),
            status=text_field(data, 'status', CharacterStatus.ALIVE.value),
            is_protagonist=bool(data.get('isProtagonist', False)),
            appearance=text_field(data, 'appearance'),
            background=text_field(data, 'background'),
            goals=text_field(data, 'goals'),
            flaws=text_field(data, 'flaws'),
            notes=text_field(data, 'notes'),
            relationships=_tuple_of(Relationship, data.get('relationships')),
            item_possessions=_tuple_of(ItemPossession, data.get('itemPossessions')),
            technique_masteries=_tuple_of(TechniqueMastery, data.get('techniqueMasteries')),
            created_by_chapter_id=data.get('createdByChapterId'),
            last_updated_by_chapter_id=data.get('lastUpdatedByChapterId'),
        )


# =============================================================================
# WORLD CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class NovelItem:
    id: str
    name: str
    canonical_name: str = ""
    description: str = ""
    category: str = ""
    powers: Tuple[str, ...] = field(default_factory=tuple)
    history: str = ""
    first_appeared_chapter: Optional[int] = None
    last_referenced_chapter: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> NovelItem:
        return cls(
            id=data['id'],
            name=data['name'] or '',
            canonical_name=text_field(data, 'canonicalName'),
            description=text_field(data, 'description'),
            category=text_field(data, 'category'),
            powers=tuple(data.get('powers') or ()),
            history=text_field(data, 'history'),
            first_appeared_chapter=data.get('firstAppearedChapter'),
            last_referenced_chapter=data.get('lastReferencedChapter'),
        )


@dataclass(frozen=True)
class NovelTechnique:
    id: str
    name: str
    canonical_name: str = ""
    description: str = ""
    category: str = ""
    type: str = ""
    functions: Tuple[str, ...] = field(default_factory=tuple)
    history: str = ""
    first_appeared_chapter: Optional[int] = None
    last_referenced_chapter: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> NovelTechnique:
        return cls(
            id=data['id'],
            name=data['name'] or '',
            canonical_name=text_field(data, 'canonicalName'),
            description=text_field(data, 'description'),
            category=text_field(data, 'category'),
            type=text_field(data, 'type'),
            functions=tuple(data.get('functions') or ()),
            history=text_field(data, 'history'),
            first_appeared_chapter=data.get('firstAppearedChapter'),
            last_referenced_chapter=data.get('lastReferencedChapter'),
        )


@dataclass(frozen=True)
class Territory:
    id: str
    name: str
    realm_id: str = ""
    type: str = ""
    description: str = ""
    created_by_chapter_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> Territory:
        return cls(
            id=data['id'],
            name=data['name'] or '',
            realm_id=text_field(data, 'realmId'),
            type=text_field(data, 'type'),
            description=text_field(data, 'description'),
            created_by_chapter_id=data.get('createdByChapterId'),
        )


@dataclass(frozen=True)
class Antagonist:
    id: str
    name: str
    type: str = ""
    description: str = ""
    motivation: str = ""
    power_level: str = ""
    status: str = ""
    threat_level: str = ""
    duration_scope: str = ""
    first_appeared_chapter: Optional[int] = None
    last_appeared_chapter: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> Antagonist:
        return cls(
            id=data['id'],
            name=data['name'] or '',
            type=text_field(data, 'type'),
            description=text_field(data, 'description'),
            motivation=text_field(data, 'motivation'),
            power_level=text_field(data, 'powerLevel'),
            status=text_field(data, 'status'),
            threat_level=text_field(data, 'threatLevel'),
            duration_scope=text_field(data, 'durationScope'),
            first_appeared_chapter=data.get('firstAppearedChapter'),
            last_appeared_chapter=data.get('lastAppearedChapter'),
        )


@dataclass(frozen=True)
class WorldEntry:
    id: str
    title: str
    category: str = ""
    content: str = ""
    realm_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> WorldEntry:
        return cls(
            id=data['id'],
            title=data['title'] or '',
            category=text_field(data, 'category'),
            content=text_field(data, 'content'),
            realm_id=text_field(data, 'realmId'),
        )


@dataclass(frozen=True)
class Realm:
    id: str
    name: str
    description: str = ""
    status: str = "current"

    @classmethod
    def from_dict(cls, data: dict) -> Realm:
        return cls(
            id=data['id'],
            name=data['name'] or '',
            description=text_field(data, 'description'),
            status=text_field(data, 'status', 'current'),
        )


# =============================================================================
# CHAPTER CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class Scene:
    id: str
    number: int
    title: str = ""
    content: str = ""
    summary: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Scene:
        return cls(
            id=text_field(data, 'id'),
            number=data.get('number', 0),
            title=text_field(data, 'title'),
            content=text_field(data, 'content'),
            summary=text_field(data, 'summary'),
        )


@dataclass(frozen=True)
class Chapter:
    """A chapter record: provenance plus the text scanned for cues."""
    id: str
    number: int
    title: str = ""
    content: str = ""
    summary: str = ""
    scenes: Tuple[Scene, ...] = field(default_factory=tuple)

    @property
    def text(self) -> str:
        """Text scanned for justification keywords."""
        return self.content or self.summary or ""

    @classmethod
    def from_dict(cls, data: dict) -> Chapter:
        return cls(
            id=data['id'],
            number=data['number'],
            title=text_field(data, 'title'),
            content=text_field(data, 'content'),
            summary=text_field(data, 'summary'),
            scenes=_tuple_of(Scene, data.get('scenes')),
        )


# =============================================================================
# NOVEL STATE
# =============================================================================

@dataclass(frozen=True)
class NovelState:
    """Full novel state as loaded by the surrounding application."""
    id: str
    title: str = ""
    genre: str = ""
    realms: Tuple[Realm, ...] = field(default_factory=tuple)
    current_realm_id: str = ""
    territories: Tuple[Territory, ...] = field(default_factory=tuple)
    world_bible: Tuple[WorldEntry, ...] = field(default_factory=tuple)
    characters: Tuple[Character, ...] = field(default_factory=tuple)
    items: Tuple[NovelItem, ...] = field(default_factory=tuple)
    techniques: Tuple[NovelTechnique, ...] = field(default_factory=tuple)
    antagonists: Tuple[Antagonist, ...] = field(default_factory=tuple)
    chapters: Tuple[Chapter, ...] = field(default_factory=tuple)

    @property
    def previous_chapter(self) -> Optional[Chapter]:
        return self.chapters[-1] if self.chapters else None

    @property
    def current_realm(self) -> Optional[Realm]:
        for realm in self.realms:
            if realm.id == self.current_realm_id:
                return realm
        return None

    @property
    def protagonists(self) -> Tuple[Character, ...]:
        return tuple(c for c in self.characters if c.is_protagonist)

    def get_character(self, character_id: str) -> Optional[Character]:
        for character in self.characters:
            if character.id == character_id:
                return character
        return None

    def get_item(self, item_id: str) -> Optional[NovelItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def get_technique(self, technique_id: str) -> Optional[NovelTechnique]:
        for technique in self.techniques:
            if technique.id == technique_id:
                return technique
        return None

    def chapter_number_for(self, chapter_id: Optional[str]) -> Optional[int]:
        if not chapter_id:
            return None
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter.number
        return None

    @classmethod
    def from_dict(cls, data: dict) -> NovelState:
        return cls(
            id=data['id'],
            title=text_field(data, 'title'),
            genre=text_field(data, 'genre'),
            realms=_tuple_of(Realm, data.get('realms')),
            current_realm_id=text_field(data, 'currentRealmId'),
            territories=_tuple_of(Territory, data.get('territories')),
            world_bible=_tuple_of(WorldEntry, data.get('worldBible')),
            characters=_tuple_of(Character, data.get('characterCodex')),
            items=_tuple_of(NovelItem, data.get('novelItems')),
            techniques=_tuple_of(NovelTechnique, data.get('novelTechniques')),
            antagonists=_tuple_of(Antagonist, data.get('antagonists')),
            chapters=_tuple_of(Chapter, data.get('chapters')),
        )
