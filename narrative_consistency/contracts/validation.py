"""
Validation Contracts

Issue and report shapes shared by every checker.

NO VALIDATION LOGIC HERE - only data definitions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from .base import EntityType, utc_now


# =============================================================================
# ENUMS
# =============================================================================

class Severity(Enum):
    """Critical blocks approval; warning and info are advisory."""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class IssueKind(Enum):
    # Pre-generation
    MISSING_STATE = "missing_state"
    MISSING_POWER_LEVEL = "missing_power_level"
    INCONSISTENT_POWER = "inconsistent_power"
    MISSING_REALM = "missing_realm"
    OUTDATED_DATA = "outdated_data"

    # Post-generation
    POWER_REGRESSION = "power_regression"
    POWER_JUMP = "power_jump"
    STATUS_INCONSISTENCY = "status_inconsistency"
    RELATIONSHIP_CHANGE = "relationship_change"
    WORLD_RULE_VIOLATION = "world_rule_violation"

    # Progression and relationship audits
    STAGNATION = "stagnation"
    PROGRESSION_HINT = "progression_hint"
    MISSING_RELATIONSHIP = "missing_relationship"
    ABRUPT_RELATIONSHIP_TRANSITION = "abrupt_relationship_transition"
    POWER_RELATIONSHIP_MISMATCH = "power_relationship_mismatch"


# =============================================================================
# ISSUES
# =============================================================================

@dataclass(frozen=True)
class ValidationIssue:
    """Universal output unit of every checker."""
    kind: IssueKind
    severity: Severity
    message: str
    suggestion: str = ""
    confidence: float = 1.0
    chapter_number: Optional[int] = None
    entity_type: Optional[EntityType] = None
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    evidence: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be in [0, 1], got {self.confidence}")

    @property
    def is_blocking(self) -> bool:
        return self.severity == Severity.CRITICAL

    def to_dict(self) -> dict:
        return {
            'type': self.kind.value,
            'severity': self.severity.value,
            'entityType': self.entity_type.value if self.entity_type else None,
            'entityId': self.entity_id,
            'entityName': self.entity_name,
            'chapterNumber': self.chapter_number,
            'message': self.message,
            'suggestion': self.suggestion,
            'confidence': self.confidence,
            'evidence': list(self.evidence),
        }


# =============================================================================
# REPORTS
# =============================================================================

@dataclass(frozen=True)
class ReportSummary:
    total: int
    critical: int
    warnings: int
    info: int
    overall_score: int

    def to_dict(self) -> dict:
        return {
            'total': self.total,
            'critical': self.critical,
            'warnings': self.warnings,
            'info': self.info,
            'overallScore': self.overall_score,
        }


@dataclass(frozen=True)
class ContextCompleteness:
    """How much of the upcoming chapter's context is ready."""
    characters_ready: int
    characters_total: int
    power_levels_ready: int
    relationships_ready: int

    def to_dict(self) -> dict:
        return {
            'charactersReady': self.characters_ready,
            'charactersTotal': self.characters_total,
            'powerLevelsReady': self.power_levels_ready,
            'relationshipsReady': self.relationships_ready,
        }


@dataclass(frozen=True)
class ValidationReport:
    """
    Result of one validation run.

    valid is True exactly when summary.critical == 0.
    """
    valid: bool
    issues: Tuple[ValidationIssue, ...]
    summary: ReportSummary
    recommendations: Tuple[str, ...] = field(default_factory=tuple)
    context_completeness: Optional[ContextCompleteness] = None
    chapter_number: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)

    def issues_of(self, kind: IssueKind) -> Tuple[ValidationIssue, ...]:
        return tuple(i for i in self.issues if i.kind == kind)

    def issues_for(self, entity_id: str) -> Tuple[ValidationIssue, ...]:
        return tuple(i for i in self.issues if i.entity_id == entity_id)

    @property
    def critical_issues(self) -> Tuple[ValidationIssue, ...]:
        return tuple(i for i in self.issues if i.severity == Severity.CRITICAL)

    def to_dict(self) -> dict:
        data = {
            'valid': self.valid,
            'chapterNumber': self.chapter_number,
            'issues': [i.to_dict() for i in self.issues],
            'summary': self.summary.to_dict(),
            'recommendations': list(self.recommendations),
        }
        if self.context_completeness is not None:
            data['contextCompleteness'] = self.context_completeness.to_dict()
        return data


@dataclass(frozen=True)
class CharacterProgressionFinding:
    """Batch progression result for one character."""
    character_id: str
    character_name: str
    current_level: str
    issues: Tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def has_critical(self) -> bool:
        return any(i.severity == Severity.CRITICAL for i in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(i.severity == Severity.WARNING for i in self.issues)

    def to_dict(self) -> dict:
        return {
            'characterId': self.character_id,
            'characterName': self.character_name,
            'currentLevel': self.current_level,
            'issues': [i.to_dict() for i in self.issues],
        }


@dataclass(frozen=True)
class ProgressionReport:
    valid: bool
    findings: Tuple[CharacterProgressionFinding, ...]
    total_characters: int
    validated: int
    with_warnings: int
    with_critical_issues: int
    recommendations: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            'valid': self.valid,
            'findings': [f.to_dict() for f in self.findings],
            'summary': {
                'totalCharacters': self.total_characters,
                'validated': self.validated,
                'withWarnings': self.with_warnings,
                'withCriticalIssues': self.with_critical_issues,
            },
            'recommendations': list(self.recommendations),
        }
