"""
Evaluator response parsing.

Validates the JSON object returned by the semantic evaluator against the
contract for its mode. Shape errors raise EvaluatorResponseError; the raw
response is never echoed in the error detail.
"""

from typing import Any, Dict, Iterable, List

import structlog
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import EvaluatorResponseError
from ..schemas.evaluation import Change, LintIssue, RewriteResult

logger = structlog.get_logger(__name__)

_LINT_SEVERITIES = {"error", "warning", "suggestion"}


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def parse_rewrite_response(data: Dict[str, Any], rule_keys: Iterable[str] = ()) -> RewriteResult:
    """
    Parse a rewrite/generate response.

    Args:
        data: Decoded evaluator JSON
        rule_keys: Keys compiled into the prompt; changes citing other keys are dropped

    Raises:
        EvaluatorResponseError: output missing or the response does not fit the contract
    """
    if not isinstance(data, dict) or not isinstance(data.get("output"), str):
        raise EvaluatorResponseError("Invalid response: missing output")

    allowed = set(rule_keys)
    changes: List[Change] = []
    dropped = 0
    try:
        for entry in data.get("changes") or []:
            if not isinstance(entry, dict):
                dropped += 1
                continue
            key = entry.get("ruleKey")
            if not isinstance(key, str) or (allowed and key not in allowed):
                dropped += 1
                continue
            changes.append(
                Change(
                    rule_key=key,
                    reason=_as_text(entry.get("reason")),
                    original=_as_text(entry.get("original")),
                    revised=_as_text(entry.get("revised")),
                )
            )

        if dropped:
            logger.warning("Dropped changes citing unknown rule keys", dropped=dropped)

        no_changes = bool(data.get("noChanges", False)) and not changes
        return RewriteResult(
            output=data["output"],
            changes=changes,
            no_changes=no_changes,
            no_changes_reason=_as_text(data.get("noChangesReason")) or None,
        )
    except PydanticValidationError as exc:
        logger.warning("Rewrite response does not fit the contract", error_type=type(exc).__name__)
        raise EvaluatorResponseError("Invalid response: malformed rewrite payload") from exc


def parse_lint_response(data: Dict[str, Any]) -> List[LintIssue]:
    """
    Parse a lint response into issues. Entries without a string ``ruleKey`` are skipped.

    Raises:
        EvaluatorResponseError: issues array missing or an entry does not fit the contract
    """
    if not isinstance(data, dict) or not isinstance(data.get("issues"), list):
        raise EvaluatorResponseError("Invalid response: missing issues array")

    issues = []
    skipped = 0
    try:
        for entry in data["issues"]:
            if not isinstance(entry, dict) or not isinstance(entry.get("ruleKey"), str):
                skipped += 1
                continue
            severity = entry.get("severity")
            issues.append(
                LintIssue(
                    rule_key=entry["ruleKey"],
                    reason=_as_text(entry.get("reason")),
                    original=_as_text(entry.get("original")),
                    suggested=_as_text(entry.get("suggested")) or None,
                    severity=severity if isinstance(severity, str) and severity in _LINT_SEVERITIES else "suggestion",
                )
            )
    except PydanticValidationError as exc:
        logger.warning("Lint response does not fit the contract", error_type=type(exc).__name__)
        raise EvaluatorResponseError("Invalid response: malformed lint payload") from exc

    if skipped:
        logger.warning("Skipped lint issues without a rule key", skipped=skipped)
    return issues
