"""
Bounded breadth-first website crawler.

- Same-origin http(s) links only, fragments stripped
- URLs beyond max_depth or already visited are skipped
- No new URL is enqueued once queued + crawled pages reach max_pages
- Fetch errors and non-2xx responses are logged and skipped

The fetcher is injected; :class:`HttpxFetcher` is the default.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, List, Optional, Protocol, Set, Tuple

import httpx
import structlog

from ...core.config import Settings, get_settings
from ...schemas.content import Page
from .html_text import extract_links, extract_text, extract_title, normalize_url

logger = structlog.get_logger(__name__)

PageCallback = Callable[[Page], Awaitable[None]]


@dataclass
class FetchResult:
    url: str
    status_code: int
    content: bytes = b""
    content_type: str = ""
    encoding: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "utf-8", errors="replace")


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchResult:
        ...


class HttpxFetcher:
    """httpx-backed fetcher with the audit User-Agent."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.crawl_request_timeout),
            follow_redirects=True,
            headers={"User-Agent": settings.crawl_user_agent},
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.client.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def fetch(self, url: str) -> FetchResult:
        response = await self.client.get(url)
        return FetchResult(
            url=str(response.url),
            status_code=response.status_code,
            content=response.content,
            content_type=response.headers.get("content-type", ""),
            encoding=response.encoding,
        )


@dataclass
class Frontier:
    """BFS work queue with a lock-guarded visited set."""

    queue: Deque[Tuple[str, int]] = field(default_factory=deque)
    visited: Set[str] = field(default_factory=set)
    queued: Set[str] = field(default_factory=set)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def __len__(self) -> int:
        return len(self.queue)

    def push(self, url: str, depth: int) -> bool:
        if url in self.visited or url in self.queued:
            return False
        self.queue.append((url, depth))
        self.queued.add(url)
        return True

    def pop(self) -> Tuple[str, int]:
        url, depth = self.queue.popleft()
        self.queued.discard(url)
        return url, depth

    async def claim(self, url: str) -> bool:
        """Mark ``url`` visited before fetching. False if it already was."""
        async with self.lock:
            if url in self.visited:
                return False
            self.visited.add(url)
            return True


async def crawl(
    seed_url: str,
    max_depth: int,
    max_pages: int,
    fetcher: Fetcher,
    on_page: Optional[PageCallback] = None,
) -> List[Page]:
    """
    Crawl from ``seed_url`` and return plain-text pages in BFS order.

    Args:
        seed_url: Starting URL; also defines the allowed origin
        max_depth: Maximum link depth (seed is depth 0)
        max_pages: Page cap
        fetcher: Injected fetcher
        on_page: Optional callback awaited for each page as it is crawled.
            Exceptions raised by the callback propagate.
    """
    seed = normalize_url(seed_url)
    frontier = Frontier()
    frontier.push(seed, 0)
    pages: List[Page] = []

    while len(frontier) and len(pages) < max_pages:
        url, depth = frontier.pop()
        if depth > max_depth:
            continue
        if not await frontier.claim(url):
            continue

        try:
            result = await fetcher.fetch(url)
        except httpx.HTTPError as e:
            logger.warning("Crawl fetch failed, skipping", url=url, error=type(e).__name__)
            continue

        if not result.ok:
            logger.warning("Crawl fetch returned non-success, skipping", url=url, status_code=result.status_code)
            continue

        markup = result.text
        page = Page(source=url, text=extract_text(markup), title=extract_title(markup))
        pages.append(page)
        logger.info("Page crawled", url=url, depth=depth, pages=len(pages), text_length=len(page.text))

        if depth < max_depth:
            for link in extract_links(markup, url, seed):
                if len(frontier) + len(pages) >= max_pages:
                    break
                frontier.push(link, depth + 1)

        if on_page is not None:
            await on_page(page)

    logger.info("Crawl completed", seed=seed, pages=len(pages), visited=len(frontier.visited))
    return pages
