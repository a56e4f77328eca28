"""
Report Scoring

Linear penalty model shared by every checker:

    score = max(0, 100 - 20*critical - 5*warning - 1*info)

Chosen for explainability; thresholds map the score to advice text.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ..contracts.events import AuditEventType
from ..contracts.validation import (
    ContextCompleteness, ReportSummary, Severity, ValidationIssue, ValidationReport
)
from ..observability import ObservabilityEngine


@dataclass
class ScoringConfig:
    critical_penalty: int = 20
    warning_penalty: int = 5
    info_penalty: int = 1
    excellent_threshold: int = 90
    good_threshold: int = 75
    moderate_threshold: int = 60


def count_severities(issues: Iterable[ValidationIssue]) -> Tuple[int, int, int]:
    critical = warnings = info = 0
    for issue in issues:
        if issue.severity == Severity.CRITICAL:
            critical += 1
        elif issue.severity == Severity.WARNING:
            warnings += 1
        else:
            info += 1
    return critical, warnings, info


def compute_score(
    critical: int,
    warnings: int,
    info: int,
    config: Optional[ScoringConfig] = None
) -> int:
    config = config or ScoringConfig()
    return max(
        0,
        100
        - config.critical_penalty * critical
        - config.warning_penalty * warnings
        - config.info_penalty * info
    )


def summarize(
    issues: Iterable[ValidationIssue],
    config: Optional[ScoringConfig] = None
) -> ReportSummary:
    issues = list(issues)
    critical, warnings, info = count_severities(issues)
    return ReportSummary(
        total=len(issues),
        critical=critical,
        warnings=warnings,
        info=info,
        overall_score=compute_score(critical, warnings, info, config),
    )


def recommendations_for(
    summary: ReportSummary,
    config: Optional[ScoringConfig] = None
) -> Tuple[str, ...]:
    config = config or ScoringConfig()
    recommendations: List[str] = []

    if summary.critical > 0:
        recommendations.append(
            f"Address {summary.critical} critical consistency issue(s) immediately."
        )
    if summary.warnings > 0:
        recommendations.append(
            f"Review {summary.warnings} warning(s) to maintain story coherence."
        )

    score = summary.overall_score
    if score >= config.excellent_threshold:
        recommendations.append("Excellent consistency! The chapter maintains good continuity.")
    elif score >= config.good_threshold:
        recommendations.append("Good consistency with minor issues to review.")
    elif score >= config.moderate_threshold:
        recommendations.append("Moderate consistency issues detected. Review recommended.")
    else:
        recommendations.append(
            "Significant consistency issues found. Review and fix before continuing."
        )

    return tuple(recommendations)


def build_report(
    issues: Iterable[ValidationIssue],
    config: Optional[ScoringConfig] = None,
    chapter_number: Optional[int] = None,
    context_completeness: Optional[ContextCompleteness] = None
) -> ValidationReport:
    """Score issues and wrap them in a report; valid means no critical issue."""
    issues = tuple(issues)
    summary = summarize(issues, config)
    return ValidationReport(
        valid=summary.critical == 0,
        issues=issues,
        summary=summary,
        recommendations=recommendations_for(summary, config),
        context_completeness=context_completeness,
        chapter_number=chapter_number,
    )


def record_report(
    observability: Optional[ObservabilityEngine],
    phase: str,
    report: ValidationReport,
    entity_id: Optional[str] = None
):
    """Audit entry and metrics for one validation run."""
    if observability is None:
        return
    summary = report.summary
    observability.log_audit(
        action=f"{phase}_validation",
        entity_id=entity_id,
        outcome="success" if report.valid else "invalid",
        details=(
            f"score {summary.overall_score}: {summary.critical} critical, "
            f"{summary.warnings} warning(s), {summary.info} info"
        ),
        layer="validation",
        event_type=AuditEventType.VALIDATION
    )
    observability.collect_metric("validation_score", summary.overall_score, {"phase": phase})
    for severity, count in (
        (Severity.CRITICAL, summary.critical),
        (Severity.WARNING, summary.warnings),
        (Severity.INFO, summary.info),
    ):
        if count:
            observability.collect_metric(
                "validation_issues_total", count,
                {"phase": phase, "severity": severity.value}
            )
