"""
Validation Layer

Severity-ranked consistency reports before and after chapter generation.

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate the graph or the tracker
- Raise on inconsistent story data (inconsistencies are issues)

Modules:
- scoring: Shared score formula, recommendations, report assembly
- pre_generation: Readiness of the state the next chapter builds on
- post_generation: Extraction of a generated chapter vs the prior state
- progression: Batch audit of power timelines, mentioned-level checks
- relationships: Transition plausibility, reverse edges, power gaps
- relevance: Per-character relevance for the next chapter
"""

from .scoring import (
    ScoringConfig, build_report, compute_score, count_severities,
    recommendations_for, record_report, summarize,
)
from .pre_generation import PreGenerationConfig, PreGenerationValidator, characters_in_text
from .post_generation import PostGenerationConfig, PostGenerationChecker
from .progression import PowerProgressionValidator
from .relationships import RelationshipConsistencyChecker, VALID_TRANSITIONS, check_transition
from .relevance import calculate_context_relevance

__all__ = [
    'ScoringConfig',
    'build_report',
    'compute_score',
    'count_severities',
    'recommendations_for',
    'record_report',
    'summarize',
    'PreGenerationConfig',
    'PreGenerationValidator',
    'characters_in_text',
    'PostGenerationConfig',
    'PostGenerationChecker',
    'PowerProgressionValidator',
    'RelationshipConsistencyChecker',
    'VALID_TRANSITIONS',
    'check_transition',
    'calculate_context_relevance',
]
