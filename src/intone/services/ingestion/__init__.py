"""Content ingestion: website crawl, file uploads and file links."""

from .crawler import FetchResult, Fetcher, Frontier, HttpxFetcher, crawl
from .file_ingest import ingest_file_link, ingest_upload
from .parsers import parse_docx, parse_file, parse_pdf

__all__ = [
    "FetchResult",
    "Fetcher",
    "Frontier",
    "HttpxFetcher",
    "crawl",
    "ingest_file_link",
    "ingest_upload",
    "parse_docx",
    "parse_file",
    "parse_pdf",
]
