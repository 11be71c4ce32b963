"""
Deterministic pattern detector.

Runs a rule's regex and dictionary detectors over text and reports
offset-exact findings:
- pattern: one finding per accepted regex match, confidence 1.0
- dictionary: '|'-separated literal terms, confidence 0.9
- style_heuristic: always empty, style checks run on the semantic path

A malformed pattern fails closed: it is logged once with the rule id and the
detector yields nothing, so one bad rule never blocks the rest.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Pattern, Tuple

import structlog

from ..core.exceptions import DetectorError
from ..schemas.audit import Finding
from ..schemas.rules import Detector, DetectorKind, FilterContext, Rule
from .rule_filter import applies

logger = structlog.get_logger(__name__)

REGEX_CONFIDENCE = 1.0
DICTIONARY_CONFIDENCE = 0.9

_WORD_CHAR = re.compile(r"\w")


def _compile(pattern: str, case_sensitive: bool, rule: Rule) -> Pattern[str]:
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return re.compile(pattern, flags)
    except re.error as exc:
        raise DetectorError(f"Malformed detector pattern: {exc.msg}", rule_id=rule.id) from exc


def _is_boundary(text: str, start: int, end: int) -> bool:
    before = text[start - 1] if start > 0 else ""
    after = text[end] if end < len(text) else ""
    if before and _WORD_CHAR.match(before):
        return False
    if after and _WORD_CHAR.match(after):
        return False
    return True


def render_message(rule: Rule, match: str) -> str:
    if rule.finding_template and "{match}" in rule.finding_template:
        return rule.finding_template.replace("{match}", match)
    return f'Found "{match}" which violates rule: {rule.name}'


def suggested_fix(rule: Rule, detector: Detector, match: str) -> Optional[str]:
    if rule.suggestions:
        return rule.suggestions[0]
    if detector.kind == DetectorKind.PATTERN and rule.rewrite_template:
        return rule.rewrite_template.replace("{match}", match)
    return None


def _finding(rule: Rule, detector: Detector, text: str, start: int, end: int, confidence: float) -> Finding:
    matched = text[start:end]
    return Finding(
        rule_id=rule.id,
        rule_key=rule.key,
        start=start,
        end=end,
        severity=rule.severity,
        message=render_message(rule, matched),
        suggested_fix=suggested_fix(rule, detector, matched),
        confidence=confidence,
        matched_text=matched,
        source="pattern",
    )


def _match_pattern(detector: Detector, rule: Rule, text: str) -> List[Finding]:
    regex = _compile(detector.pattern, detector.case_sensitive, rule)
    findings: List[Finding] = []
    for match in regex.finditer(text):
        start, end = match.span()
        if start == end:
            continue
        if detector.word_boundary and not _is_boundary(text, start, end):
            continue
        findings.append(_finding(rule, detector, text, start, end, REGEX_CONFIDENCE))
    return findings


def _match_dictionary(detector: Detector, rule: Rule, text: str) -> List[Finding]:
    terms = [term.strip() for term in detector.pattern.split("|")]
    findings: List[Finding] = []
    for term in terms:
        if not term:
            continue
        regex = _compile(re.escape(term), detector.case_sensitive, rule)
        for match in regex.finditer(text):
            start, end = match.span()
            if detector.word_boundary and not _is_boundary(text, start, end):
                continue
            findings.append(_finding(rule, detector, text, start, end, DICTIONARY_CONFIDENCE))
    return findings


def evaluate_detector(detector: Detector, rule: Rule, text: str) -> List[Finding]:
    """
    Evaluate one detector against text.

    Args:
        detector: Detector to run
        rule: Owning rule (message, fix and severity source)
        text: Text to scan

    Returns:
        Findings with offsets into ``text``; empty on malformed patterns
    """
    if not detector.pattern or not text:
        return []

    try:
        if detector.kind == DetectorKind.PATTERN:
            return _match_pattern(detector, rule, text)
        if detector.kind == DetectorKind.DICTIONARY:
            return _match_dictionary(detector, rule, text)
    except DetectorError as exc:
        logger.warning(
            "Detector failed closed",
            rule_id=exc.rule_id,
            detector_kind=detector.kind.value,
            error=exc.detail,
        )
        return []

    # style_heuristic
    return []


def evaluate_rule(rule: Rule, text: str, context: Optional[FilterContext] = None) -> List[Finding]:
    """
    Run every detector of a rule.

    Inactive rules are skipped. With a context, the full applicability filter
    applies; without one only the status check does.
    """
    if context is not None and not applies(rule, context):
        return []
    if not rule.is_active:
        return []

    findings: List[Finding] = []
    for detector in rule.detectors:
        findings.extend(evaluate_detector(detector, rule, text))
    return findings


def _sort_key(finding: Finding) -> Tuple[int, int]:
    return finding.start, finding.end


def evaluate_rules(rules: Iterable[Rule], text: str, context: Optional[FilterContext] = None) -> List[Finding]:
    """Run all applicable rules and return findings ordered by position."""
    findings: List[Finding] = []
    for rule in rules:
        findings.extend(evaluate_rule(rule, text, context))

    findings.sort(key=_sort_key)
    logger.debug("Pattern evaluation completed", text_length=len(text), findings=len(findings))
    return findings
