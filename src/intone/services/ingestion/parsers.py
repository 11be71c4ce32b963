"""
Document parsers.

Format internals are delegated to pypdf and python-docx; this module only
dispatches and normalizes. Any parser failure becomes an IngestionError so a
partially parsed document is never admitted.
"""

from __future__ import annotations

import io
from pathlib import PurePosixPath
from typing import List, Optional

import docx
import structlog
from pypdf import PdfReader

from ...core.exceptions import IngestionError
from ...schemas.content import Page
from .html_text import extract_text

logger = structlog.get_logger(__name__)

WORD_EXTENSIONS = {"docx", "doc"}
TEXT_EXTENSIONS = {"txt", "md"}
HTML_EXTENSIONS = {"html", "htm"}


def parse_pdf(data: bytes) -> List[str]:
    """Extract text per PDF page."""
    reader = PdfReader(io.BytesIO(data))
    return [page.extract_text() or "" for page in reader.pages]


def parse_docx(data: bytes) -> str:
    """Extract paragraph text from a Word document."""
    document = docx.Document(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def _decode(data: bytes) -> str:
    return data.decode("utf-8")


def _extension(filename: str) -> str:
    return PurePosixPath(filename or "").suffix.lower().lstrip(".")


def _detect_format(filename: str, content_type: Optional[str]) -> str:
    extension = _extension(filename)
    content_type = (content_type or "").lower()

    if extension == "pdf" or "pdf" in content_type:
        return "pdf"
    if extension in WORD_EXTENSIONS or "word" in content_type:
        return "word"
    if extension in HTML_EXTENSIONS or (not extension and "html" in content_type):
        return "html"
    return "text"


def parse_file(data: bytes, filename: str, content_type: Optional[str] = None) -> List[Page]:
    """
    Parse file bytes into pages.

    Args:
        data: Raw file bytes
        filename: Original filename (extension drives dispatch)
        content_type: MIME type, used when the extension is inconclusive

    Returns:
        One Page per PDF page, otherwise a single Page

    Raises:
        IngestionError: unsupported, corrupt or undecodable content
    """
    kind = _detect_format(filename, content_type)

    try:
        if kind == "pdf":
            texts = parse_pdf(data)
        elif kind == "word":
            texts = [parse_docx(data)]
        elif kind == "html":
            texts = [extract_text(_decode(data))]
        else:
            texts = [_decode(data)]
    except UnicodeDecodeError as exc:
        logger.warning("File is not valid UTF-8", filename=filename, format=kind)
        raise IngestionError("File could not be decoded as UTF-8 text", source=filename) from exc
    except Exception as exc:
        logger.error("Document parser failed", filename=filename, format=kind, error=type(exc).__name__)
        raise IngestionError(f"Failed to parse {kind} file", source=filename) from exc

    pages = [Page(source=filename, text=text, page_number=index + 1) for index, text in enumerate(texts)]
    logger.info("File parsed", filename=filename, format=kind, pages=len(pages))
    return pages
