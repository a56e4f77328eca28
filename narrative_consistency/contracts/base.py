"""
Base Contracts and Shared Types

Foundational types used across all layers of the consistency engine.
Types here are pure data: no behavior beyond construction helpers and
self-validation.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- Identity helpers are deterministic (same input, same id)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Tuple
from enum import Enum, auto
import hashlib


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for work the engine skipped.
    Errors are reported as data; they never abort a pipeline run.
    """
    # Resolution errors
    ENTITY_NOT_FOUND = auto()
    AMBIGUOUS_NAME = auto()

    # Graph errors
    GRAPH_NOT_INITIALIZED = auto()
    DANGLING_RELATIONSHIP = auto()

    # Temporal errors
    OUT_OF_ORDER_CHAPTER = auto()
    ROLLBACK_UNREACHABLE = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(code: ErrorCode, message: str, **context: Any) -> Error:
        return Error(
            code=code,
            message=message,
            timestamp=datetime.now(timezone.utc),
            context=tuple((k, str(v)) for k, v in sorted(context.items()))
        )

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )

    def to_dict(self) -> dict:
        return {
            'code': self.code.name,
            'message': self.message,
            'timestamp': self.timestamp.isoformat(),
            'context': dict(self.context),
        }


@dataclass(frozen=True)
class Result:
    """
    Generic result type for operations that can fail.
    Either contains a value OR an error, never both.
    """
    value: Optional[object] = None
    error: Optional[Error] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @staticmethod
    def success(value: object) -> Result:
        return Result(value=value, error=None)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(value=None, error=error)


# =============================================================================
# ENTITY CLASSIFICATION
# =============================================================================

class EntityType(Enum):
    """Kinds of tracked story entities."""
    CHARACTER = "character"
    ITEM = "item"
    TECHNIQUE = "technique"
    LOCATION = "location"
    ANTAGONIST = "antagonist"
    WORLD_RULE = "world_rule"


class RelationshipType(Enum):
    """Kinds of graph edges."""
    CHARACTER_CHARACTER = "character_character"
    CHARACTER_ITEM = "character_item"
    CHARACTER_TECHNIQUE = "character_technique"
    CHARACTER_LOCATION = "character_location"
    CHARACTER_ANTAGONIST = "character_antagonist"


class CharacterStatus(Enum):
    """Life status values used by the status consistency rules."""
    ALIVE = "Alive"
    DECEASED = "Deceased"
    UNKNOWN = "Unknown"


UNKNOWN_LEVEL = "Unknown"


# =============================================================================
# IDENTITY (Deterministic)
# =============================================================================

def make_node_id(entity_type: EntityType, entity_id: str) -> str:
    """Node id derived from entity type and source id."""
    return f"{entity_type.value}_{entity_id}"


def make_edge_id(
    edge_type: RelationshipType,
    source_node_id: str,
    target_node_id: str
) -> str:
    """Edge id derived from (type, source, target)."""
    edge_hash = hashlib.sha256(
        f"{edge_type.value}|{source_node_id}|{target_node_id}".encode('utf-8')
    ).hexdigest()[:16]
    return f"edge_{edge_hash}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def text_field(data: dict, key: str, default: str = '') -> str:
    """String value of a JSON field; a missing key or explicit null becomes default."""
    value = data.get(key)
    return default if value is None else value
