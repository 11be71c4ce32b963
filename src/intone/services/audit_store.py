"""
Audit persistence.

The engine only needs create/read/update; any backend implementing
:class:`AuditStore` can be plugged in. :class:`InMemoryAuditStore` ships as the
default.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

import structlog

from ..core.exceptions import NotFoundError, ValidationError
from ..schemas.audit import Audit, AuditIssue, IssueStatus

logger = structlog.get_logger(__name__)


class AuditStore(Protocol):
    async def create_audit(self, audit: Audit) -> Audit:
        ...

    async def get_audit(self, audit_id: str) -> Audit:
        ...

    async def save_audit(self, audit: Audit) -> Audit:
        ...

    async def add_issues(self, audit_id: str, issues: Iterable[AuditIssue]) -> int:
        ...

    async def list_issues(self, audit_id: str) -> List[AuditIssue]:
        ...

    async def update_issue(
        self,
        audit_id: str,
        issue_id: str,
        status: Optional[IssueStatus] = None,
        notes: Optional[str] = None,
    ) -> AuditIssue:
        ...


class InMemoryAuditStore:
    """Process-local audit store."""

    def __init__(self):
        self._audits: Dict[str, Audit] = {}
        self._issues: Dict[str, List[AuditIssue]] = {}

    async def create_audit(self, audit: Audit) -> Audit:
        self._audits[audit.id] = audit
        self._issues[audit.id] = []
        logger.info("Audit created", audit_id=audit.id, source_type=audit.source_type.value)
        return audit

    async def get_audit(self, audit_id: str) -> Audit:
        audit = self._audits.get(audit_id)
        if audit is None:
            raise NotFoundError(f"Audit not found: {audit_id}")
        return audit

    async def save_audit(self, audit: Audit) -> Audit:
        if audit.id not in self._audits:
            raise NotFoundError(f"Audit not found: {audit.id}")
        self._audits[audit.id] = audit
        return audit

    async def add_issues(self, audit_id: str, issues: Iterable[AuditIssue]) -> int:
        if audit_id not in self._issues:
            raise NotFoundError(f"Audit not found: {audit_id}")
        batch = list(issues)
        self._issues[audit_id].extend(batch)
        return len(batch)

    async def list_issues(self, audit_id: str) -> List[AuditIssue]:
        if audit_id not in self._issues:
            raise NotFoundError(f"Audit not found: {audit_id}")
        return list(self._issues[audit_id])

    async def update_issue(
        self,
        audit_id: str,
        issue_id: str,
        status: Optional[IssueStatus] = None,
        notes: Optional[str] = None,
    ) -> AuditIssue:
        """
        Apply an explicit status transition and/or notes to an issue.

        ``reviewed`` stamps reviewed_at, ``fixed`` stamps fixed_at.
        """
        issues = self._issues.get(audit_id)
        if issues is None:
            raise NotFoundError(f"Audit not found: {audit_id}")

        for index, issue in enumerate(issues):
            if issue.id != issue_id:
                continue

            if status is None and notes is None:
                raise ValidationError("Nothing to update")

            changes = {}
            now = datetime.utcnow()
            if status is not None:
                changes["status"] = status
                if status == IssueStatus.REVIEWED:
                    changes["reviewed_at"] = now
                elif status == IssueStatus.FIXED:
                    changes["fixed_at"] = now
            if notes is not None:
                changes["notes"] = notes

            updated = issue.model_copy(update=changes)
            issues[index] = updated
            logger.info(
                "Issue updated",
                audit_id=audit_id,
                issue_id=issue_id,
                status=updated.status.value,
            )
            return updated

        raise NotFoundError(f"Issue not found: {issue_id}")
