"""HTML to plain text, title and same-origin link extraction."""

import html
import re
from typing import List, Optional
from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

_SCRIPT = re.compile(r"<script[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_STYLE = re.compile(r"<style[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_TITLE = re.compile(r"<title[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)
_HREF = re.compile(r"""<a\s[^>]*?href\s*=\s*["']([^"']+)["']""", re.IGNORECASE)


def extract_text(markup: str) -> str:
    """Strip script/style blocks and tags, decode entities, collapse whitespace."""
    text = _SCRIPT.sub("", markup)
    text = _STYLE.sub("", text)
    text = _TAG.sub(" ", text)
    text = html.unescape(text)
    return _WHITESPACE.sub(" ", text).strip()


def extract_title(markup: str) -> Optional[str]:
    match = _TITLE.search(markup)
    if not match:
        return None
    title = _WHITESPACE.sub(" ", html.unescape(match.group(1))).strip()
    return title or None


def normalize_url(url: str) -> str:
    """
    Canonical form used for visited checks.

    Drops the fragment, lower-cases scheme and host, and maps an empty path
    to ``/`` so ``https://example.com`` and ``https://example.com/`` match.
    """
    parts = urlparse(urldefrag(url)[0])
    canonical = parts._replace(scheme=parts.scheme.lower(), netloc=parts.netloc.lower(), path=parts.path or "/")
    return urlunparse(canonical)


def same_origin(url: str, origin_url: str) -> bool:
    candidate = urlparse(url)
    origin = urlparse(origin_url)
    return (candidate.scheme, candidate.netloc.lower()) == (origin.scheme, origin.netloc.lower())


def extract_links(markup: str, page_url: str, origin_url: str) -> List[str]:
    """
    Resolve anchors against ``page_url`` and keep http(s) links on the seed's origin.

    Returns:
        Unique normalized URLs in document order
    """
    links: List[str] = []
    seen = set()
    for raw in _HREF.findall(markup):
        href = html.unescape(raw.strip())
        if not href or href.startswith(("mailto:", "tel:", "javascript:", "#")):
            continue
        url = normalize_url(urljoin(page_url, href))
        if urlparse(url).scheme not in ("http", "https"):
            continue
        if not same_origin(url, origin_url) or url in seen:
            continue
        seen.add(url)
        links.append(url)
    return links
