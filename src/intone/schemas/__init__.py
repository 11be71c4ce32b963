"""Pydantic schemas for rules, content, findings and audits."""

from .audit import (
    Audit,
    AuditIssue,
    AuditMetrics,
    AuditSourceType,
    AuditStatus,
    Finding,
    IssueStatus,
)
from .content import Chunk, Page
from .evaluation import (
    Change,
    ChannelOptions,
    EvaluateOptions,
    EvaluationMode,
    GenerateBrief,
    InstructionPayload,
    LintIssue,
    Location,
    RewriteResult,
    TrimResult,
)
from .rules import (
    Detector,
    DetectorKind,
    EnforcementLevel,
    FilterContext,
    Rule,
    RuleExamples,
    RuleKind,
    RuleScope,
    RuleStatus,
    RuleValue,
    Severity,
    ValueKind,
)

__all__ = [
    "Audit",
    "AuditIssue",
    "AuditMetrics",
    "AuditSourceType",
    "AuditStatus",
    "Change",
    "ChannelOptions",
    "Chunk",
    "Detector",
    "DetectorKind",
    "EnforcementLevel",
    "EvaluateOptions",
    "EvaluationMode",
    "FilterContext",
    "Finding",
    "GenerateBrief",
    "InstructionPayload",
    "IssueStatus",
    "LintIssue",
    "Location",
    "Page",
    "RewriteResult",
    "Rule",
    "RuleExamples",
    "RuleKind",
    "RuleScope",
    "RuleStatus",
    "RuleValue",
    "Severity",
    "TrimResult",
    "ValueKind",
]
