"""
Finding and audit schemas.

AuditIssue is a stable persisted contract consumed by the review UI; rename
fields only together with a migration.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .rules import Severity


def _new_id() -> str:
    return str(uuid4())


class Finding(BaseModel):
    """One located rule violation."""

    rule_id: str = Field(..., description="Owning rule identifier")
    rule_key: Optional[str] = Field(None, description="Owning rule key")
    start: int = Field(..., ge=0, description="Absolute start offset in the evaluated text")
    end: int = Field(..., ge=0, description="Absolute end offset (exclusive)")
    severity: Severity = Field(..., description="Finding severity")
    message: str = Field(..., description="Human-readable message")
    suggested_fix: Optional[str] = Field(None, description="Suggested replacement")
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    matched_text: str = Field("", description="Text between start and end")
    source: Literal["pattern", "semantic"] = Field("pattern")


class IssueStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    FIXED = "fixed"
    IGNORED = "ignored"


class AuditStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AuditStatus.COMPLETED, AuditStatus.FAILED)


class AuditSourceType(str, Enum):
    URL = "url"
    FILE_UPLOAD = "file_upload"
    FILE_LINK = "file_link"


class AuditIssue(BaseModel):
    """A finding reconciled to page-absolute coordinates, with review lifecycle."""

    id: str = Field(default_factory=_new_id)
    audit_id: str = Field(..., description="Owning audit")
    rule_id: str = Field(..., description="Rule that triggered the issue")
    rule_key: Optional[str] = Field(None)
    category: str = Field("other", description="Reporting category")
    severity: Severity = Field(..., description="Issue severity")
    status: IssueStatus = Field(IssueStatus.PENDING)
    message: str = Field("", description="Explanation of the issue")
    suggested_fix: Optional[str] = Field(None)

    page_url: str = Field(..., description="Source URL or filename")
    page_number: Optional[int] = Field(None)
    location_start: int = Field(..., ge=0)
    location_end: int = Field(..., ge=0)
    location_exact: bool = Field(True, description="False when the quoted snippet was not found verbatim")
    issue_text: str = Field("", description="Quoted snippet")
    context_before: str = Field("")
    context_after: str = Field("")

    notes: Optional[str] = Field(None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    reviewed_at: Optional[datetime] = Field(None)
    fixed_at: Optional[datetime] = Field(None)


class AuditMetrics(BaseModel):
    """Aggregated counts and bounded scores."""

    total_pages: int = 0
    total_issues: int = 0
    issues_by_category: Dict[str, int] = Field(default_factory=dict)
    issues_by_severity: Dict[str, int] = Field(default_factory=dict)
    overall_score: float = Field(100.0, ge=0.0, le=100.0)
    compliance_percentage: float = Field(100.0, ge=0.0, le=100.0)


class Audit(BaseModel):
    """Aggregate audit run."""

    id: str = Field(default_factory=_new_id)
    brand_id: str = Field(..., description="Audited brand")
    source_type: AuditSourceType = Field(...)
    source_url: Optional[str] = Field(None)
    file_name: Optional[str] = Field(None)
    file_type: Optional[str] = Field(None)
    crawl_depth: Optional[int] = Field(None)
    max_pages: Optional[int] = Field(None)

    status: AuditStatus = Field(AuditStatus.PENDING)
    total_pages: int = Field(0)
    total_issues: int = Field(0)
    issues_by_category: Dict[str, int] = Field(default_factory=dict)
    issues_by_severity: Dict[str, int] = Field(default_factory=dict)
    overall_score: Optional[float] = Field(None)
    compliance_percentage: Optional[float] = Field(None)

    error_kind: Optional[str] = Field(None)
    error_detail: Optional[str] = Field(None)
    pages_failed: List[str] = Field(default_factory=list, description="Sources skipped during evaluation")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = Field(None)
