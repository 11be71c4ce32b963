"""
Rule store abstraction.

The engine only reads rules. Records coming from an external store are mapped
once, at ingress, by :func:`rule_from_record`; nothing downstream inspects raw
dictionaries.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Protocol

import structlog

from ..schemas.rules import (
    Detector,
    DetectorKind,
    EnforcementLevel,
    Rule,
    RuleExamples,
    RuleKind,
    RuleScope,
    RuleStatus,
    RuleValue,
    Severity,
)

logger = structlog.get_logger(__name__)


class RuleStore(Protocol):
    """Read-only source of brand rules."""

    async def list_active_rules(self, brand_id: str) -> List[Rule]:
        ...


# Store-side type names that differ from RuleKind values
_KIND_ALIASES = {
    "tone": RuleKind.TONE_VOICE,
    "grammar": RuleKind.GRAMMAR_STYLE,
    "forbidden": RuleKind.FORBIDDEN_WORDS,
}

_DETECTOR_ALIASES = {
    "regex": DetectorKind.PATTERN,
    "pattern": DetectorKind.PATTERN,
    "dictionary": DetectorKind.DICTIONARY,
    "style_check": DetectorKind.STYLE_HEURISTIC,
    "style_heuristic": DetectorKind.STYLE_HEURISTIC,
}


def _pick(record: Dict[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in record and record[name] is not None:
            return record[name]
    return default


def _enum(enum_cls, raw: Any, default):
    if raw is None:
        return default
    try:
        return enum_cls(str(raw).lower())
    except ValueError:
        return default


def _rule_kind(raw: Any) -> RuleKind:
    if raw is None:
        return RuleKind.OTHER
    lowered = str(raw).lower()
    if lowered in _KIND_ALIASES:
        return _KIND_ALIASES[lowered]
    return _enum(RuleKind, lowered, RuleKind.OTHER)


def _detectors(raw: Optional[Iterable[Dict[str, Any]]], rule_id: str) -> List[Detector]:
    detectors: List[Detector] = []
    for entry in raw or []:
        kind = _DETECTOR_ALIASES.get(str(entry.get("kind", "")).lower())
        if kind is None:
            # Model-backed detector kinds run on the semantic path
            logger.debug("Skipping non-deterministic detector", rule_id=rule_id, kind=entry.get("kind"))
            continue
        detectors.append(
            Detector(
                kind=kind,
                pattern=_pick(entry, "pattern", default=""),
                case_sensitive=bool(_pick(entry, "case_sensitive", "caseSensitivity", default=False)),
                word_boundary=bool(_pick(entry, "word_boundary", "wordBoundary", default=False)),
            )
        )
    return detectors


def rule_from_record(record: Dict[str, Any]) -> Rule:
    """
    Map a loose store record (camelCase or snake_case) to a typed Rule.

    Args:
        record: Raw rule record

    Returns:
        Rule with a tagged value and normalized enums
    """
    rule_id = str(_pick(record, "id", default=""))
    key = _pick(record, "key", default="") or rule_id
    examples = _pick(record, "examples", default={}) or {}

    return Rule(
        id=rule_id,
        key=key,
        name=_pick(record, "name", default=key),
        brand_id=_pick(record, "brand_id", "brandId"),
        kind=_rule_kind(_pick(record, "kind", "type", "category")),
        status=_enum(RuleStatus, _pick(record, "status"), RuleStatus.DRAFT),
        scope=_enum(RuleScope, _pick(record, "scope"), RuleScope.GLOBAL),
        surfaces=list(_pick(record, "surfaces", default=[])),
        channels=list(_pick(record, "channels", default=[])),
        locales=list(_pick(record, "locales", default=[])),
        severity=_enum(Severity, _pick(record, "severity"), Severity.MINOR),
        enforcement=_enum(EnforcementLevel, _pick(record, "enforcement"), EnforcementLevel.SUGGEST),
        confidence=_pick(record, "confidence"),
        description=_pick(record, "description", default=""),
        rationale=_pick(record, "rationale"),
        examples=RuleExamples(do=list(examples.get("do") or []), dont=list(examples.get("dont") or [])),
        suggestions=list(_pick(record, "suggestions", default=[])),
        detectors=_detectors(_pick(record, "detectors"), rule_id),
        finding_template=_pick(record, "finding_template", "findingTemplate"),
        rewrite_template=_pick(record, "rewrite_template", "rewriteTemplate"),
        value=RuleValue.infer(record.get("value")),
        category=_pick(record, "category"),
        priority=int(_pick(record, "priority", default=0)),
        version=int(_pick(record, "version", default=1)),
    )


class InMemoryRuleStore:
    """Dictionary-backed rule store keyed by brand."""

    def __init__(self, rules: Optional[Iterable[Rule]] = None):
        self._rules: Dict[str, List[Rule]] = {}
        for rule in rules or []:
            self.add(rule)

    def add(self, rule: Rule) -> None:
        self._rules.setdefault(rule.brand_id or "", []).append(rule)

    def load_records(self, records: Iterable[Dict[str, Any]]) -> int:
        """Map and add raw records. Returns the number of rules loaded."""
        count = 0
        for record in records:
            self.add(rule_from_record(record))
            count += 1
        logger.info("Loaded rule records", count=count)
        return count

    async def list_active_rules(self, brand_id: str) -> List[Rule]:
        return [rule for rule in self._rules.get(brand_id, []) if rule.is_active]

    async def list_rules(self, brand_id: str) -> List[Rule]:
        return list(self._rules.get(brand_id, []))
