"""
Extraction Contracts

Structured record of what an external extractor found in one generated
chapter. The engine consumes these as given; it does not judge whether the
extraction itself is correct.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .base import text_field


# Keys of CharacterUpsert.fields that hold scalar values
SCALAR_SET_FIELDS: Tuple[str, ...] = (
    'age', 'personality', 'currentCultivation', 'notes', 'status',
    'appearance', 'background', 'goals', 'flaws',
)


@dataclass(frozen=True)
class RelationshipUpsert:
    target_name: str
    type: str
    history: str = ""
    impact: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> RelationshipUpsert:
        return cls(
            target_name=data['targetName'] or '',
            type=text_field(data, 'type'),
            history=text_field(data, 'history'),
            impact=text_field(data, 'impact'),
        )


@dataclass(frozen=True)
class CharacterUpsert:
    """
    One character mentioned by the extractor.

    `fields` is the extractor's `set` block: only the keys it reported.
    """
    name: str
    is_new: bool = False
    fields: Dict[str, Any] = field(default_factory=dict)
    add_skills: Tuple[str, ...] = field(default_factory=tuple)
    add_items: Tuple[str, ...] = field(default_factory=tuple)
    relationships: Tuple[RelationshipUpsert, ...] = field(default_factory=tuple)

    @property
    def new_level(self) -> Optional[str]:
        level = self.fields.get('currentCultivation')
        return level if level else None

    @property
    def new_status(self) -> Optional[str]:
        status = self.fields.get('status')
        return status if status else None

    @classmethod
    def from_dict(cls, data: dict) -> CharacterUpsert:
        return cls(
            name=data['name'] or '',
            is_new=bool(data.get('isNew', False)),
            fields=dict(data.get('set') or {}),
            add_skills=tuple(data.get('addSkills') or ()),
            add_items=tuple(data.get('addItems') or ()),
            relationships=tuple(
                RelationshipUpsert.from_dict(r) for r in (data.get('relationships') or [])
            ),
        )


@dataclass(frozen=True)
class WorldEntryUpsert:
    title: str
    category: str = ""
    content: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> WorldEntryUpsert:
        return cls(
            title=data['title'] or '',
            category=text_field(data, 'category'),
            content=text_field(data, 'content'),
        )


@dataclass(frozen=True)
class ItemUpdate:
    """Item mention; `character_name` links it to a holder."""
    name: str
    action: str = "update"
    item_id: Optional[str] = None
    category: str = ""
    description: str = ""
    add_powers: Tuple[str, ...] = field(default_factory=tuple)
    character_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> ItemUpdate:
        return cls(
            name=data['name'] or '',
            action=text_field(data, 'action', 'update'),
            item_id=data.get('existingId'),
            category=text_field(data, 'category'),
            description=text_field(data, 'description'),
            add_powers=tuple(data.get('addPowers') or ()),
            character_name=data.get('characterName'),
        )


@dataclass(frozen=True)
class TechniqueUpdate:
    """Technique mention; `character_name` links it to a practitioner."""
    name: str
    action: str = "update"
    technique_id: Optional[str] = None
    category: str = ""
    type: str = ""
    description: str = ""
    add_functions: Tuple[str, ...] = field(default_factory=tuple)
    character_name: Optional[str] = None
    mastery_level: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> TechniqueUpdate:
        return cls(
            name=data['name'] or '',
            action=text_field(data, 'action', 'update'),
            technique_id=data.get('existingId'),
            category=text_field(data, 'category'),
            type=text_field(data, 'type'),
            description=text_field(data, 'description'),
            add_functions=tuple(data.get('addFunctions') or ()),
            character_name=data.get('characterName'),
            mastery_level=text_field(data, 'masteryLevel'),
        )


@dataclass(frozen=True)
class ChapterExtraction:
    """Everything the extractor reported for one chapter."""
    character_upserts: Tuple[CharacterUpsert, ...] = field(default_factory=tuple)
    world_entry_upserts: Tuple[WorldEntryUpsert, ...] = field(default_factory=tuple)
    item_updates: Tuple[ItemUpdate, ...] = field(default_factory=tuple)
    technique_updates: Tuple[TechniqueUpdate, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict) -> ChapterExtraction:
        return cls(
            character_upserts=tuple(
                CharacterUpsert.from_dict(c) for c in (data.get('characterUpserts') or [])
            ),
            world_entry_upserts=tuple(
                WorldEntryUpsert.from_dict(w) for w in (data.get('worldEntryUpserts') or [])
            ),
            item_updates=tuple(
                ItemUpdate.from_dict(i) for i in (data.get('itemUpdates') or [])
            ),
            technique_updates=tuple(
                TechniqueUpdate.from_dict(t) for t in (data.get('techniqueUpdates') or [])
            ),
        )
