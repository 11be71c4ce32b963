"""
Channel length constraints.

Strict channels are cut back to the last word boundary within the limit;
guideline channels keep the text and report the overage.
"""

from typing import Optional

import structlog

from ..schemas.evaluation import TrimResult
from .channels import get_channel

logger = structlog.get_logger(__name__)


def validate_length(text: str, limit: Optional[int]) -> bool:
    if limit is None:
        return True
    return len(text) <= limit


def trim_to_fit(text: str, limit: int, strict: bool) -> TrimResult:
    """
    Fit ``text`` to ``limit`` characters without splitting words.

    Args:
        text: Generated output
        limit: Character limit
        strict: Trim (True) or only report the overage (False)

    Returns:
        TrimResult; ``text`` is empty when the first word alone exceeds a strict limit
    """
    if len(text) <= limit:
        return TrimResult(text=text, was_trimmed=False, overage=0)

    if not strict:
        return TrimResult(text=text, was_trimmed=False, overage=len(text) - limit)

    cut = text[:limit]
    if not text[limit].isspace():
        boundary = next((i for i in range(len(cut) - 1, -1, -1) if cut[i].isspace()), -1)
        cut = cut[:boundary] if boundary >= 0 else ""
    return TrimResult(text=cut.rstrip(), was_trimmed=True, overage=0)


def enforce_channel_limit(
    text: str,
    channel_id: Optional[str],
    char_limit: Optional[int] = None,
    strict: Optional[bool] = None,
) -> TrimResult:
    """Apply the effective limit of a channel, honoring explicit overrides."""
    channel = get_channel(channel_id)
    limit = char_limit if char_limit is not None else (channel.char_limit if channel else None)
    if strict is None:
        strict = channel.strict_limit if channel else False

    if limit is None:
        return TrimResult(text=text)

    result = trim_to_fit(text, limit, strict)
    if result.was_trimmed or result.overage:
        logger.info(
            "Channel limit applied",
            channel=channel_id,
            limit=limit,
            strict=strict,
            was_trimmed=result.was_trimmed,
            overage=result.overage,
        )
    return result
