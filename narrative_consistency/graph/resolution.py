"""
Name Resolution

Maps names reported by extraction onto known entity ids.

Resolution order: case-insensitive exact match, then (when enabled) a
fuzzy token match. More than one candidate at either step is reported as
ambiguous rather than guessed.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple
import re


class ResolutionStatus(Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class NameResolution:
    name: str
    status: ResolutionStatus
    entity_id: Optional[str] = None
    candidates: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_resolved(self) -> bool:
        return self.entity_id is not None


_NON_WORD = re.compile(r"[^\w\s]")


def normalize_name(name: Optional[str]) -> str:
    if not name:
        return ""
    return " ".join(_NON_WORD.sub(" ", name.lower()).split())


class NameResolver:
    """
    Resolve names against (entity_id, label) pairs.

    Fuzzy matching is off by default: extraction names are expected to be
    the codex names, and a wrong guess is worse than a skipped update.
    """

    def __init__(self, allow_fuzzy: bool = False):
        self._allow_fuzzy = allow_fuzzy

    def resolve(
        self,
        name: Optional[str],
        candidates: Iterable[Tuple[str, str]]
    ) -> NameResolution:
        wanted = (name or "").strip().lower()
        pool = list(candidates)

        if not wanted:
            return NameResolution(name=name or "", status=ResolutionStatus.NOT_FOUND)

        exact = [eid for eid, label in pool if label.strip().lower() == wanted]
        if len(exact) == 1:
            return NameResolution(name=name, status=ResolutionStatus.EXACT, entity_id=exact[0])
        if len(exact) > 1:
            return NameResolution(
                name=name, status=ResolutionStatus.AMBIGUOUS, candidates=tuple(exact)
            )

        if not self._allow_fuzzy:
            return NameResolution(name=name, status=ResolutionStatus.NOT_FOUND)

        fuzzy = self._fuzzy_candidates(name, pool)
        if len(fuzzy) == 1:
            return NameResolution(name=name, status=ResolutionStatus.FUZZY, entity_id=fuzzy[0])
        if len(fuzzy) > 1:
            return NameResolution(
                name=name, status=ResolutionStatus.AMBIGUOUS, candidates=tuple(fuzzy)
            )
        return NameResolution(name=name, status=ResolutionStatus.NOT_FOUND)

    @staticmethod
    def _fuzzy_candidates(name: str, pool: List[Tuple[str, str]]) -> List[str]:
        """Punctuation-insensitive equality, else one token set containing the other."""
        normalized = normalize_name(name)
        tokens = set(normalized.split())
        if not tokens:
            return []

        same = [eid for eid, label in pool if normalize_name(label) == normalized]
        if same:
            return same

        matches = []
        for eid, label in pool:
            label_tokens = set(normalize_name(label).split())
            if label_tokens and (tokens <= label_tokens or label_tokens <= tokens):
                matches.append(eid)
        return matches
