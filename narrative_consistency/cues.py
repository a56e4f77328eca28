"""
Narrative Cues

Fixed keyword vocabularies scanned in chapter text. Matching is a
case-insensitive substring test; these are lexical heuristics, not
language understanding.
"""

from __future__ import annotations
from typing import Iterable, Optional, Tuple


BREAKTHROUGH_KEYWORDS: Tuple[str, ...] = (
    'breakthrough',
    'ascended',
    'transcended',
    'realm breakthrough',
    'stage breakthrough',
    'level breakthrough',
    'cultivation breakthrough',
)

REGRESSION_KEYWORDS: Tuple[str, ...] = (
    'injured', 'wounded', 'hurt', 'damaged',
    'cursed', 'sealed', 'suppressed',
    'lost', 'depleted', 'exhausted',
    'weakened', 'drained', 'broken',
    'cultivation damage', 'meridian damage', 'dantian damage',
)

RESURRECTION_KEYWORDS: Tuple[str, ...] = (
    'resurrect',
    'revive',
    'revived',
    'reborn',
    'rebirth',
    'returned from death',
    'returned from the dead',
    'brought back to life',
    'came back to life',
    'faked his death',
    'faked her death',
    'faked their death',
    'soul returned',
)

# (positive, negative) lexical pairs for world-rule edits
NEGATION_PAIRS: Tuple[Tuple[str, str], ...] = (
    ('can', 'cannot'),
    ('allows', 'forbids'),
    ('requires', 'prohibits'),
)


def find_cues(text: Optional[str], keywords: Iterable[str]) -> Tuple[str, ...]:
    """Keywords present in text, in vocabulary order."""
    if not text:
        return ()
    lowered = text.lower()
    return tuple(k for k in keywords if k in lowered)


def has_breakthrough_cue(text: Optional[str]) -> bool:
    return bool(find_cues(text, BREAKTHROUGH_KEYWORDS))


def has_regression_cue(text: Optional[str]) -> bool:
    return bool(find_cues(text, REGRESSION_KEYWORDS))


def has_resurrection_cue(text: Optional[str]) -> bool:
    return bool(find_cues(text, RESURRECTION_KEYWORDS))


def find_rule_contradictions(existing: str, updated: str) -> Tuple[str, ...]:
    """
    Shallow contradiction scan between two versions of a world rule.

    Flags a pair when the old text contains the positive word and the new
    text contains its negation. Substring matching means "cannot" also
    satisfies "can"; that false-positive profile is accepted.
    """
    existing_lower = (existing or "").lower()
    updated_lower = (updated or "").lower()
    return tuple(
        f'Contradiction detected: "{positive}" vs "{negative}"'
        for positive, negative in NEGATION_PAIRS
        if positive in existing_lower and negative in updated_lower
    )
