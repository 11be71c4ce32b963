"""
Evaluation request/response schemas.

Covers the compiled instruction payload sent to the semantic evaluator, the
parsed rewrite and lint responses, channel options and length enforcement.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .audit import Finding


class EvaluationMode(str, Enum):
    REWRITE = "rewrite"
    LINT = "lint"
    GENERATE = "generate"


class InstructionPayload(BaseModel):
    """Compiled evaluation request."""

    system: str = Field(..., description="Fixed system message")
    prompt: str = Field(..., description="Rendered instruction text")
    mode: EvaluationMode = Field(...)
    rule_keys: List[str] = Field(default_factory=list, description="Rule keys compiled into the prompt")
    response_schema: Dict[str, Any] = Field(default_factory=dict, description="Required response shape")
    char_limit: Optional[int] = Field(None)
    strict_limit: bool = Field(False)
    variants: int = Field(1, ge=1)


class EvaluateOptions(BaseModel):
    """Per-call evaluator options."""

    api_key: Optional[str] = Field(None, description="Resolved evaluator API key")
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, gt=0)


class Change(BaseModel):
    """One rule-cited change in a rewrite."""

    rule_key: str = Field(..., alias="ruleKey")
    reason: str = ""
    original: str = ""
    revised: str = ""

    model_config = {"populate_by_name": True}


class RewriteResult(BaseModel):
    """Parsed evaluator response for rewrite and generate modes."""

    output: str = ""
    changes: List[Change] = Field(default_factory=list)
    no_changes: bool = False
    no_changes_reason: Optional[str] = None


class LintIssue(BaseModel):
    """One issue reported by the semantic evaluator in lint mode."""

    rule_key: str = Field(..., alias="ruleKey")
    reason: str = ""
    original: str = ""
    suggested: Optional[str] = None
    severity: Literal["error", "warning", "suggestion"] = "warning"

    model_config = {"populate_by_name": True}


class GenerateBrief(BaseModel):
    """Content brief for generate mode."""

    topic: str = Field(..., min_length=1)
    key_points: List[str] = Field(default_factory=list)
    cta: Optional[str] = None
    offer: Optional[str] = None
    links: List[str] = Field(default_factory=list)


class ChannelOptions(BaseModel):
    """Channel-aware generation options."""

    intent: Optional[str] = None
    audience: Optional[str] = None
    formality: Optional[int] = Field(None, ge=1, le=5)
    energy: Optional[int] = Field(None, ge=1, le=5)
    variants: int = Field(1, ge=1, le=5)
    char_limit: Optional[int] = Field(None, gt=0, description="Overrides the channel default")
    strict_limit: Optional[bool] = Field(None, description="Overrides the channel default")


class Location(BaseModel):
    """Resolved snippet location."""

    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    exact: bool = True


class TrimResult(BaseModel):
    """Outcome of fitting text to a character limit."""

    text: str
    was_trimmed: bool = False
    overage: int = Field(0, ge=0)


# ============================================================================
# API request / response models
# ============================================================================


class CompileRequest(BaseModel):
    brand_id: str
    text: str = ""
    mode: str = "rewrite"
    context: Optional[str] = None
    locale: Optional[str] = None
    channel: Optional[str] = None
    brief: Optional[GenerateBrief] = None
    options: ChannelOptions = Field(default_factory=ChannelOptions)


class PatternEvaluationRequest(BaseModel):
    brand_id: str
    text: str
    context: Optional[str] = None
    locale: Optional[str] = None


class PatternEvaluationResponse(BaseModel):
    findings: List[Finding] = Field(default_factory=list)
    total: int = 0


class RewriteRequest(BaseModel):
    brand_id: str
    text: str = ""
    mode: Literal["rewrite", "generate"] = "rewrite"
    context: Optional[str] = None
    locale: Optional[str] = None
    channel: Optional[str] = None
    brief: Optional[GenerateBrief] = None
    options: ChannelOptions = Field(default_factory=ChannelOptions)
    encrypted_api_key: Optional[str] = Field(None, description="User's stored evaluator key")


class RewriteVariant(BaseModel):
    output: str
    changes: List[Change] = Field(default_factory=list)
    no_changes: bool = False
    no_changes_reason: Optional[str] = None
    was_trimmed: bool = False
    overage: int = 0


class RewriteResponse(BaseModel):
    mode: EvaluationMode
    variants: List[RewriteVariant] = Field(default_factory=list)
    rule_keys: List[str] = Field(default_factory=list)
    char_limit: Optional[int] = None
    strict_limit: bool = False


class LintRequest(BaseModel):
    brand_id: str
    text: str = Field(..., min_length=1)
    context: Optional[str] = None
    locale: Optional[str] = None
    encrypted_api_key: Optional[str] = None


class LintResponse(BaseModel):
    issues: List[LintIssue] = Field(default_factory=list)
    findings: List[Finding] = Field(default_factory=list, description="Deterministic pattern findings")
    rule_keys: List[str] = Field(default_factory=list)


class TrimRequest(BaseModel):
    text: str
    channel: Optional[str] = None
    char_limit: Optional[int] = Field(None, gt=0)
    strict: Optional[bool] = None
