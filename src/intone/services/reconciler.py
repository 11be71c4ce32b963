"""
Location reconciler.

Maps a snippet quoted by the semantic evaluator back to page-absolute
offsets. A snippet that cannot be found falls back to the start of its chunk
with ``exact=False``; the mismatch is logged as a data-quality warning.
"""

import re
from typing import Tuple

import structlog

from ..core.exceptions import ReconciliationMismatch
from ..schemas.content import Chunk
from ..schemas.evaluation import Location

logger = structlog.get_logger(__name__)

CONTEXT_WIDTH = 50


def locate(chunk_text: str, needle: str) -> Location:
    """Case-insensitive search for ``needle`` within ``chunk_text``."""
    if needle:
        match = re.search(re.escape(needle), chunk_text, re.IGNORECASE)
        if match:
            return Location(start=match.start(), end=match.end(), exact=True)
    return Location(start=0, end=len(needle), exact=False)


def reconcile(chunk: Chunk, needle: str) -> Location:
    """
    Locate ``needle`` in a chunk and translate to page coordinates.

    Returns:
        Location offset by ``chunk.start_offset``
    """
    local = locate(chunk.text, needle)
    start = chunk.start_offset + local.start
    end = chunk.start_offset + local.end

    if not local.exact:
        mismatch = ReconciliationMismatch(
            needle_length=len(needle),
            chunk_offset=chunk.start_offset,
            fallback_start=start,
            fallback_end=end,
        )
        logger.warning(
            "Snippet not found in chunk, using fallback location",
            kind=mismatch.kind,
            needle_length=mismatch.needle_length,
            chunk_offset=mismatch.chunk_offset,
            fallback_start=mismatch.fallback_start,
            fallback_end=mismatch.fallback_end,
        )

    return Location(start=start, end=end, exact=local.exact)


def context_window(page_text: str, start: int, end: int, width: int = CONTEXT_WIDTH) -> Tuple[str, str]:
    """Return up to ``width`` characters before ``start`` and after ``end``."""
    return page_text[max(0, start - width):start], page_text[end:end + width]
