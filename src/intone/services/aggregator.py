"""
Audit aggregation and finalization.

Score:
    penalty = (10*critical + 5*major + 2*minor + 1*info) / pages
    score = clamp(100 - penalty, 0, 100)

Compliance:
    100 when there are no issues, else clamp(100 - (issues / pages) * 10, 0, 100)

``pages`` is at least 1.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

import structlog

from ..schemas.audit import Audit, AuditIssue, AuditMetrics, AuditStatus
from ..schemas.rules import Severity
from .audit_store import AuditStore

logger = structlog.get_logger(__name__)

SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 10,
    Severity.MAJOR: 5,
    Severity.MINOR: 2,
    Severity.INFO: 1,
}


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def aggregate(issues: Iterable[AuditIssue], total_pages: int) -> AuditMetrics:
    """Count issues by category and severity and compute bounded scores."""
    issues = list(issues)
    pages = max(1, total_pages)

    by_category = Counter(issue.category or "other" for issue in issues)
    by_severity = Counter(issue.severity.value for issue in issues)

    penalty = sum(SEVERITY_WEIGHTS[Severity(sev)] * count for sev, count in by_severity.items()) / pages
    score = _clamp(100 - penalty)
    compliance = 100.0 if not issues else _clamp(100 - (len(issues) / pages) * 10)

    return AuditMetrics(
        total_pages=total_pages,
        total_issues=len(issues),
        issues_by_category=dict(by_category),
        issues_by_severity=dict(by_severity),
        overall_score=round(score, 2),
        compliance_percentage=round(compliance, 2),
    )


async def finalize(audit_id: str, store: AuditStore, total_pages: Optional[int] = None) -> Audit:
    """
    Mark an audit completed with its aggregated metrics. Idempotent.

    Args:
        audit_id: Audit to finalize
        store: Audit store
        total_pages: Page count; defaults to the audit's recorded total

    Returns:
        The finalized audit (unchanged if it was already terminal)
    """
    audit = await store.get_audit(audit_id)
    if audit.status.is_terminal:
        logger.warning("Audit already finalized", audit_id=audit_id, status=audit.status.value)
        return audit

    pages = audit.total_pages if total_pages is None else total_pages
    metrics = aggregate(await store.list_issues(audit_id), pages)
    completed = audit.model_copy(
        update={
            "status": AuditStatus.COMPLETED,
            "total_pages": metrics.total_pages,
            "total_issues": metrics.total_issues,
            "issues_by_category": metrics.issues_by_category,
            "issues_by_severity": metrics.issues_by_severity,
            "overall_score": metrics.overall_score,
            "compliance_percentage": metrics.compliance_percentage,
            "completed_at": datetime.utcnow(),
        }
    )
    await store.save_audit(completed)
    logger.info(
        "Audit completed",
        audit_id=audit_id,
        total_pages=metrics.total_pages,
        total_issues=metrics.total_issues,
        overall_score=metrics.overall_score,
    )
    return completed


async def fail(audit_id: str, store: AuditStore, error_kind: str, error_detail: Optional[str] = None) -> Audit:
    """Mark a non-terminal audit failed."""
    audit = await store.get_audit(audit_id)
    if audit.status.is_terminal:
        logger.warning("Cannot fail a finalized audit", audit_id=audit_id, status=audit.status.value)
        return audit

    failed = audit.model_copy(
        update={
            "status": AuditStatus.FAILED,
            "error_kind": error_kind,
            "error_detail": error_detail,
            "completed_at": datetime.utcnow(),
        }
    )
    await store.save_audit(failed)
    logger.error("Audit failed", audit_id=audit_id, error_kind=error_kind)
    return failed
