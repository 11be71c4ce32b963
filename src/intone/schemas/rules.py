"""
Rule schemas.

A Rule is a named, versioned governance unit. Its configured value is a tagged
variant keyed by ValueKind so renderers can switch on it exhaustively.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, model_validator


class RuleKind(str, Enum):
    TONE_VOICE = "tone_voice"
    GRAMMAR_STYLE = "grammar_style"
    TERMINOLOGY = "terminology"
    FORBIDDEN_WORDS = "forbidden_words"
    FORMATTING = "formatting"
    OTHER = "other"


class RuleStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    DEPRECATED = "deprecated"


class RuleScope(str, Enum):
    GLOBAL = "global"
    SURFACE = "surface"
    CHANNEL = "channel"
    ASSET = "asset"


class Severity(str, Enum):
    INFO = "info"
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class EnforcementLevel(str, Enum):
    SUGGEST = "suggest"
    WARN = "warn"
    BLOCK = "block"


class DetectorKind(str, Enum):
    PATTERN = "pattern"
    DICTIONARY = "dictionary"
    STYLE_HEURISTIC = "style_heuristic"


class ValueKind(str, Enum):
    BOOLEAN = "boolean"
    SCALE = "scale"
    TEXT = "text"
    STRUCTURED = "structured"


class RuleValue(BaseModel):
    """Configured rule value tagged by kind."""

    kind: ValueKind = Field(..., description="Value type tag")
    value: Union[bool, int, float, str, Dict[str, Any]] = Field(..., description="Raw configured value")

    @model_validator(mode="after")
    def _check_kind(self) -> "RuleValue":
        expected = {
            ValueKind.BOOLEAN: (bool,),
            ValueKind.SCALE: (int, float),
            ValueKind.TEXT: (str,),
            ValueKind.STRUCTURED: (dict,),
        }[self.kind]
        if not isinstance(self.value, expected):
            raise ValueError(f"value does not match kind {self.kind.value}")
        if self.kind == ValueKind.SCALE and isinstance(self.value, bool):
            raise ValueError("scale value must be numeric")
        return self

    @classmethod
    def boolean(cls, value: bool) -> "RuleValue":
        return cls(kind=ValueKind.BOOLEAN, value=value)

    @classmethod
    def scale(cls, value: Union[int, float]) -> "RuleValue":
        return cls(kind=ValueKind.SCALE, value=value)

    @classmethod
    def text(cls, value: str) -> "RuleValue":
        return cls(kind=ValueKind.TEXT, value=value)

    @classmethod
    def structured(cls, value: Dict[str, Any]) -> "RuleValue":
        return cls(kind=ValueKind.STRUCTURED, value=value)

    @classmethod
    def infer(cls, raw: Any) -> Optional["RuleValue"]:
        """Tag an untyped store value. Lists are wrapped as structured values."""
        if raw is None:
            return None
        if isinstance(raw, bool):
            return cls.boolean(raw)
        if isinstance(raw, (int, float)):
            return cls.scale(raw)
        if isinstance(raw, str):
            return cls.text(raw)
        if isinstance(raw, dict):
            return cls.structured(raw)
        if isinstance(raw, (list, tuple)):
            return cls.structured({"items": list(raw)})
        raise ValueError(f"Unsupported rule value type: {type(raw).__name__}")


class Detector(BaseModel):
    """Deterministic matcher attached to a rule."""

    kind: DetectorKind = Field(..., description="Matcher type")
    pattern: str = Field("", description="Regex, or '|'-separated terms for dictionaries")
    case_sensitive: bool = Field(False, description="Match case exactly")
    word_boundary: bool = Field(False, description="Require word boundaries around matches")


class RuleExamples(BaseModel):
    do: List[str] = Field(default_factory=list)
    dont: List[str] = Field(default_factory=list)


class Rule(BaseModel):
    """A single brand governance requirement."""

    id: str = Field(..., description="Rule identifier")
    key: str = Field(..., description="Dotted rule slug, e.g. tone.formality")
    name: str = Field(..., description="Human-readable rule name")
    brand_id: Optional[str] = Field(None, description="Owning brand")
    kind: RuleKind = Field(RuleKind.OTHER, description="Rule grouping")
    status: RuleStatus = Field(RuleStatus.DRAFT, description="Lifecycle status")
    scope: RuleScope = Field(RuleScope.GLOBAL, description="Applicability scope")

    surfaces: List[str] = Field(default_factory=list, description="Context tags; empty = all")
    channels: List[str] = Field(default_factory=list, description="Channel ids; empty = all")
    locales: List[str] = Field(default_factory=list, description="Locales; empty = all")

    severity: Severity = Field(Severity.MINOR)
    enforcement: EnforcementLevel = Field(EnforcementLevel.SUGGEST)
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0, description="Confidence for semantic findings")

    description: str = Field("", description="What the rule requires")
    rationale: Optional[str] = Field(None, description="Why the rule exists")
    examples: RuleExamples = Field(default_factory=RuleExamples)
    suggestions: List[str] = Field(default_factory=list, description="Suggested replacements")

    detectors: List[Detector] = Field(default_factory=list)
    finding_template: Optional[str] = Field(None, description="Message template with {match}")
    rewrite_template: Optional[str] = Field(None, description="Fix template with {match}")

    value: Optional[RuleValue] = Field(None, description="Configured value")
    category: Optional[str] = Field(None, description="Reporting category for audits")
    priority: int = Field(0, description="Lower renders first")
    version: int = Field(1)

    @property
    def is_active(self) -> bool:
        return self.status == RuleStatus.ACTIVE

    @property
    def report_category(self) -> str:
        return self.category or self.key.split(".", 1)[0] or "other"


class FilterContext(BaseModel):
    """Explicit applicability context for rule filtering."""

    surface: Optional[str] = None
    channel: Optional[str] = None
    locale: Optional[str] = None
