"""
File ingestion for audits: direct uploads and linked files.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import List, Optional
from urllib.parse import unquote, urlparse

import httpx
import structlog

from ...core.config import get_settings
from ...core.exceptions import IngestionError
from ...schemas.content import Page
from .crawler import Fetcher
from .parsers import parse_file

logger = structlog.get_logger(__name__)


def _check_size(size: int, source: str) -> None:
    limit = get_settings().max_file_size
    if size > limit:
        logger.warning("File exceeds size limit", source=source, size=size, limit=limit)
        raise IngestionError(f"File exceeds the {limit} byte limit", source=source)


def filename_from_url(url: str) -> str:
    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name or "file"


def ingest_upload(data: bytes, filename: str, content_type: Optional[str] = None) -> List[Page]:
    """Validate and parse an uploaded file."""
    _check_size(len(data), filename)
    return parse_file(data, filename, content_type)


async def ingest_file_link(url: str, fetcher: Fetcher) -> List[Page]:
    """
    Fetch a remote file and parse it.

    Raises:
        IngestionError: unreachable URL, non-success response, or parse failure
    """
    try:
        result = await fetcher.fetch(url)
    except httpx.HTTPError as exc:
        logger.warning("File link unreachable", url=url, error=type(exc).__name__)
        raise IngestionError("File link could not be fetched", source=url) from exc

    if not result.ok:
        logger.warning("File link returned non-success", url=url, status_code=result.status_code)
        raise IngestionError(f"File link returned status {result.status_code}", source=url)

    filename = filename_from_url(url)
    _check_size(len(result.content), filename)
    return parse_file(result.content, filename, result.content_type)
