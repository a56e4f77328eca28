"""
Power Level Layer

Ordered progression hierarchies and the rules for moving between them.

Modules:
- hierarchy: Stage ladders per category (configuration data)
- system: Parsing, comparison and progression validation
"""

from .hierarchy import (
    PowerLevelStage, PowerLevelHierarchy,
    CULTIVATION, COMBAT, SPIRITUAL, BODY_REFINEMENT, DEFAULT_CATEGORY,
)
from .system import (
    PowerLevelSystem, ProgressionRules, ParsedLevel, ProgressionCheck,
    LevelContextCheck, SUB_STAGE_RANKS,
)

__all__ = [
    'PowerLevelStage',
    'PowerLevelHierarchy',
    'CULTIVATION',
    'COMBAT',
    'SPIRITUAL',
    'BODY_REFINEMENT',
    'DEFAULT_CATEGORY',
    'PowerLevelSystem',
    'ProgressionRules',
    'ParsedLevel',
    'ProgressionCheck',
    'LevelContextCheck',
    'SUB_STAGE_RANKS',
]
