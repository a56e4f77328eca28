"""
Test Fixtures

Explicit novel states, chapters and extractions for deterministic tests.
All fixtures are built by hand - no random generation.
"""

from typing import Optional, Sequence, Tuple

from narrative_consistency.contracts.extraction import (
    ChapterExtraction, CharacterUpsert, RelationshipUpsert, WorldEntryUpsert
)
from narrative_consistency.contracts.novel import (
    Chapter, Character, NovelItem, NovelState, Realm, Relationship, Scene, WorldEntry
)


# =============================================================================
# CHARACTERS
# =============================================================================

def make_character(
    character_id: str,
    name: str,
    level: str = "Foundation Building",
    status: str = "Alive",
    protagonist: bool = False,
    relationships: Sequence[Relationship] = (),
    last_updated_by: Optional[str] = None
) -> Character:
    """Factory for codex characters."""
    return Character(
        id=character_id,
        name=name,
        current_cultivation=level,
        status=status,
        is_protagonist=protagonist,
        relationships=tuple(relationships),
        last_updated_by_chapter_id=last_updated_by,
    )


def relationship(target_id: str, rel_type: str) -> Relationship:
    return Relationship(character_id=target_id, type=rel_type, history="", impact="")


# =============================================================================
# CHAPTERS
# =============================================================================

def make_chapter(
    number: int,
    content: str = "",
    summary: str = "",
    scenes: Sequence[Scene] = ()
) -> Chapter:
    return Chapter(
        id=f"ch{number}",
        number=number,
        title=f"Chapter {number}",
        content=content,
        summary=summary,
        scenes=tuple(scenes),
    )


def make_chapters(count: int, last_content: str = "") -> Tuple[Chapter, ...]:
    """Chapters 1..count; only the last carries content."""
    chapters = [make_chapter(n, content=f"Chapter {n} text.") for n in range(1, count)]
    if count:
        chapters.append(make_chapter(count, content=last_content or f"Chapter {count} text."))
    return tuple(chapters)


# =============================================================================
# NOVEL STATE
# =============================================================================

def make_novel(
    characters: Sequence[Character],
    chapters: Optional[Sequence[Chapter]] = None,
    with_realm: bool = True,
    world_bible: Sequence[WorldEntry] = (),
    items: Sequence[NovelItem] = ()
) -> NovelState:
    """Novel with five chapters and a current realm unless told otherwise."""
    realms = (Realm(id="realm_1", name="Mortal Realm"),) if with_realm else ()
    return NovelState(
        id="novel_1",
        title="Test Novel",
        genre="Xianxia",
        realms=realms,
        current_realm_id="realm_1" if with_realm else "",
        world_bible=tuple(world_bible),
        characters=tuple(characters),
        items=tuple(items),
        chapters=tuple(chapters) if chapters is not None else make_chapters(5),
    )


def protagonist_novel(level: str = "Foundation Building", status: str = "Alive") -> NovelState:
    """Lin Feng (protagonist) and Mei Ling, mutual allies, five chapters."""
    return make_novel([
        make_character("c_lin", "Lin Feng", level=level, protagonist=True,
                       relationships=[relationship("c_mei", "Ally")]),
        make_character("c_mei", "Mei Ling", status=status,
                       relationships=[relationship("c_lin", "Ally")]),
    ])


# =============================================================================
# EXTRACTIONS
# =============================================================================

def make_upsert(
    name: str,
    level: Optional[str] = None,
    status: Optional[str] = None,
    relationships: Sequence[Tuple[str, str]] = (),
    add_items: Sequence[str] = ()
) -> CharacterUpsert:
    fields = {}
    if level:
        fields['currentCultivation'] = level
    if status:
        fields['status'] = status
    return CharacterUpsert(
        name=name,
        fields=fields,
        add_items=tuple(add_items),
        relationships=tuple(
            RelationshipUpsert(target_name=target, type=rel_type)
            for target, rel_type in relationships
        ),
    )


def make_extraction(
    *upserts: CharacterUpsert,
    world_entries: Sequence[WorldEntryUpsert] = ()
) -> ChapterExtraction:
    return ChapterExtraction(
        character_upserts=tuple(upserts),
        world_entry_upserts=tuple(world_entries),
    )
