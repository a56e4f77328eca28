"""
Power Level Hierarchies

Static configuration: ordered stages per power category. Hierarchies are
not derived from novel content.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


CULTIVATION = "cultivation"
COMBAT = "combat"
SPIRITUAL = "spiritual"
BODY_REFINEMENT = "body_refinement"

DEFAULT_CATEGORY = CULTIVATION


@dataclass(frozen=True)
class PowerLevelStage:
    name: str
    order: int  # lower number = lower stage
    category: str
    description: str = ""
    typical_pace: str = ""  # e.g. "3-5 chapters"


@dataclass(frozen=True)
class PowerLevelHierarchy:
    category: str
    stages: Tuple[PowerLevelStage, ...] = field(default_factory=tuple)

    def __post_init__(self):
        orders = [s.order for s in self.stages]
        if len(set(orders)) != len(orders):
            raise ValueError(f"Duplicate stage order in hierarchy '{self.category}'")
        if any(order < 1 for order in orders):
            raise ValueError(f"Stage orders must be positive in hierarchy '{self.category}'")

    def stage_by_order(self, order: int) -> Optional[PowerLevelStage]:
        for stage in self.stages:
            if stage.order == order:
                return stage
        return None

    @property
    def is_empty(self) -> bool:
        return not self.stages


def _ladder(category: str, rows: Tuple[Tuple[str, str, str], ...]) -> PowerLevelHierarchy:
    return PowerLevelHierarchy(
        category=category,
        stages=tuple(
            PowerLevelStage(
                name=name,
                order=index,
                category=category,
                description=description,
                typical_pace=pace,
            )
            for index, (name, description, pace) in enumerate(rows, start=1)
        )
    )


CULTIVATION_HIERARCHY = _ladder(CULTIVATION, (
    ("Qi Refining", "Initial stage of cultivation", "2-3 chapters"),
    ("Foundation Building", "Building foundation for future growth", "3-5 chapters"),
    ("Core Formation", "Forming core within dantian", "5-8 chapters"),
    ("Nascent Soul", "Soul begins to form", "8-12 chapters"),
    ("Soul Transformation", "Soul fully transforms", "10-15 chapters"),
    ("Void Refinement", "Refining void energy", "15-20 chapters"),
    ("Immortal Ascension", "Ascending to immortality", "20+ chapters"),
))

COMBAT_HIERARCHY = _ladder(COMBAT, (
    ("Mortal", "Normal human combat ability", ""),
    ("Warrior", "Trained warrior", ""),
    ("Expert", "Combat expert", ""),
    ("Master", "Master level", ""),
    ("Grandmaster", "Grandmaster level", ""),
    ("Sage", "Sage level combat", ""),
))


def default_hierarchies() -> Dict[str, PowerLevelHierarchy]:
    """Fresh registry; spiritual and body refinement start empty."""
    return {
        CULTIVATION: CULTIVATION_HIERARCHY,
        COMBAT: COMBAT_HIERARCHY,
        SPIRITUAL: PowerLevelHierarchy(category=SPIRITUAL),
        BODY_REFINEMENT: PowerLevelHierarchy(category=BODY_REFINEMENT),
    }
