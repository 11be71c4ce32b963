"""
Tests for services/ingestion - crawler, HTML extraction, parsers, file ingest

Coverage:
- HTML text/title/link extraction, same-origin filtering, fragment stripping
- Crawl: self-links visited once, depth limit, max_pages, failures skipped
- HttpxFetcher: User-Agent and decoding via MockTransport
- Parsers: text, HTML, PDF pages, DOCX paragraphs, bad UTF-8, corrupt files
- File ingest: size limit, file links, unreachable links
"""

import io
from typing import Dict

import docx
import httpx
import pytest
from pypdf import PdfWriter

from intone.core.config import Settings, get_settings
from intone.core.exceptions import IngestionError
from intone.services.ingestion import (
    FetchResult,
    HttpxFetcher,
    crawl,
    ingest_file_link,
    ingest_upload,
    parse_docx,
    parse_file,
    parse_pdf,
)
from intone.services.ingestion.file_ingest import filename_from_url
from intone.services.ingestion.html_text import (
    extract_links,
    extract_text,
    extract_title,
    normalize_url,
    same_origin,
)


# ============================================================================
# FIXTURES
# ============================================================================


class FakeFetcher:
    """Serves canned HTML by URL and records every fetch."""

    def __init__(self, pages: Dict[str, str], errors: Dict[str, Exception] = None, status: Dict[str, int] = None):
        self.pages = pages
        self.errors = errors or {}
        self.status = status or {}
        self.fetched = []

    async def fetch(self, url: str) -> FetchResult:
        self.fetched.append(url)
        if url in self.errors:
            raise self.errors[url]
        if url not in self.pages:
            return FetchResult(url=url, status_code=404)
        return FetchResult(
            url=url,
            status_code=self.status.get(url, 200),
            content=self.pages[url].encode("utf-8"),
            content_type="text/html",
        )


def html_page(title: str, body: str, links=()) -> str:
    anchors = "".join(f'<a href="{href}">link</a>' for href in links)
    return f"<html><head><title>{title}</title></head><body><p>{body}</p>{anchors}</body></html>"


def make_pdf(pages: int) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def make_docx(paragraphs) -> bytes:
    document = docx.Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


# ============================================================================
# HTML EXTRACTION
# ============================================================================


class TestHtmlText:
    def test_extract_text_strips_markup_scripts_and_styles(self):
        markup = "<style>p{color:red}</style><p>Hello&nbsp;<b>world</b></p><script>var x = 1;</script>"

        assert extract_text(markup) == "Hello world"

    def test_extract_title(self):
        assert extract_title("<title> Home &amp; Garden </title>") == "Home & Garden"
        assert extract_title("<p>no title</p>") is None

    def test_links_resolved_and_filtered(self):
        markup = (
            '<a href="/about#team">About</a>'
            '<a href="https://example.com/about">Dup</a>'
            '<a href="https://other.com/">Other</a>'
            '<a href="mailto:hi@example.com">Mail</a>'
            '<a href="#top">Top</a>'
            '<a href="ftp://example.com/file">FTP</a>'
        )

        links = extract_links(markup, "https://example.com/index.html", "https://example.com/")

        assert links == ["https://example.com/about"]

    def test_normalize_url(self):
        assert normalize_url("https://Example.COM") == "https://example.com/"
        assert normalize_url("https://example.com/a#top") == "https://example.com/a"
        assert normalize_url("https://example.com/a?q=1") == "https://example.com/a?q=1"

    def test_same_origin(self):
        assert same_origin("https://EXAMPLE.com/a", "https://example.com/")
        assert not same_origin("http://example.com/a", "https://example.com/")
        assert not same_origin("https://sub.example.com/a", "https://example.com/")


# ============================================================================
# CRAWLER
# ============================================================================


class TestCrawl:
    @pytest.mark.asyncio
    async def test_self_link_visited_once(self):
        seed = "https://example.com/a"
        fetcher = FakeFetcher({seed: html_page("A", "Page A", [seed, "/a#section"])})

        pages = await crawl(seed, max_depth=3, max_pages=10, fetcher=fetcher)

        assert len(pages) == 1
        assert fetcher.fetched == [seed]
        assert pages[0].title == "A"
        assert "Page A" in pages[0].text

    @pytest.mark.asyncio
    async def test_root_self_link_without_trailing_slash_visited_once(self):
        fetcher = FakeFetcher({"https://example.com/": html_page("Home", "home", ["/", "https://EXAMPLE.com"])})

        pages = await crawl("https://example.com", max_depth=2, max_pages=5, fetcher=fetcher)

        assert len(pages) == 1
        assert fetcher.fetched == ["https://example.com/"]

    @pytest.mark.asyncio
    async def test_breadth_first_same_origin(self):
        fetcher = FakeFetcher(
            {
                "https://example.com/": html_page("Home", "home", ["/one", "/two", "https://other.com/x"]),
                "https://example.com/one": html_page("One", "one", ["/three"]),
                "https://example.com/two": html_page("Two", "two"),
                "https://example.com/three": html_page("Three", "three"),
            }
        )

        pages = await crawl("https://example.com/", max_depth=2, max_pages=10, fetcher=fetcher)

        assert [p.source for p in pages] == [
            "https://example.com/",
            "https://example.com/one",
            "https://example.com/two",
            "https://example.com/three",
        ]
        assert "https://other.com/x" not in fetcher.fetched

    @pytest.mark.asyncio
    async def test_depth_limit(self):
        fetcher = FakeFetcher(
            {
                "https://example.com/": html_page("Home", "home", ["/one"]),
                "https://example.com/one": html_page("One", "one", ["/two"]),
                "https://example.com/two": html_page("Two", "two"),
            }
        )

        pages = await crawl("https://example.com/", max_depth=1, max_pages=10, fetcher=fetcher)

        assert [p.source for p in pages] == ["https://example.com/", "https://example.com/one"]

    @pytest.mark.asyncio
    async def test_max_pages(self):
        links = [f"/p{i}" for i in range(10)]
        pages_map = {"https://example.com/": html_page("Home", "home", links)}
        pages_map.update({f"https://example.com/p{i}": html_page(f"P{i}", "body") for i in range(10)})
        fetcher = FakeFetcher(pages_map)

        pages = await crawl("https://example.com/", max_depth=2, max_pages=3, fetcher=fetcher)

        assert len(pages) == 3
        assert len(fetcher.fetched) == 3

    @pytest.mark.asyncio
    async def test_failures_are_skipped(self):
        fetcher = FakeFetcher(
            {
                "https://example.com/": html_page("Home", "home", ["/broken", "/missing", "/gone", "/ok"]),
                "https://example.com/gone": html_page("Gone", "gone"),
                "https://example.com/ok": html_page("Ok", "ok"),
            },
            errors={"https://example.com/broken": httpx.ConnectError("refused")},
            status={"https://example.com/gone": 500},
        )

        pages = await crawl("https://example.com/", max_depth=1, max_pages=10, fetcher=fetcher)

        assert [p.source for p in pages] == ["https://example.com/", "https://example.com/ok"]

    @pytest.mark.asyncio
    async def test_on_page_callback(self):
        seen = []

        async def on_page(page):
            seen.append(page.source)

        fetcher = FakeFetcher({"https://example.com/": html_page("Home", "home")})

        await crawl("https://example.com/", max_depth=0, max_pages=5, fetcher=fetcher, on_page=on_page)

        assert seen == ["https://example.com/"]


class TestHttpxFetcher:
    @pytest.mark.asyncio
    async def test_sends_user_agent(self):
        seen = {}

        def handler(request):
            seen["ua"] = request.headers["User-Agent"]
            return httpx.Response(200, html="<p>hi</p>")

        settings = Settings(crawl_user_agent="TestAgent/1.0")
        async with HttpxFetcher(settings, transport=httpx.MockTransport(handler)) as fetcher:
            result = await fetcher.fetch("https://example.com/")

        assert seen["ua"] == "TestAgent/1.0"
        assert result.ok
        assert result.text == "<p>hi</p>"
        assert "text/html" in result.content_type


# ============================================================================
# PARSERS
# ============================================================================


class TestParsers:
    def test_plain_text(self):
        pages = parse_file("Hello, I'm James.".encode("utf-8"), "bio.txt")

        assert len(pages) == 1
        assert pages[0].text == "Hello, I'm James."
        assert pages[0].source == "bio.txt"
        assert pages[0].page_number == 1

    def test_html_by_extension(self):
        pages = parse_file(b"<h1>Title</h1><p>Body</p>", "page.html")

        assert pages[0].text == "Title Body"

    def test_html_by_content_type(self):
        pages = parse_file(b"<p>Body</p>", "download", "text/html; charset=utf-8")

        assert pages[0].text == "Body"

    def test_invalid_utf8_rejected(self):
        with pytest.raises(IngestionError):
            parse_file(b"\xff\xfe\xfa\x80", "notes.txt")

    def test_pdf_one_page_per_page(self):
        data = make_pdf(3)

        assert len(parse_pdf(data)) == 3
        pages = parse_file(data, "deck.pdf")
        assert [p.page_number for p in pages] == [1, 2, 3]

    def test_docx_paragraphs(self):
        data = make_docx(["First paragraph.", "Second paragraph."])

        assert parse_docx(data).strip() == "First paragraph.\nSecond paragraph."
        pages = parse_file(data, "brief.docx")
        assert len(pages) == 1
        assert "Second paragraph." in pages[0].text

    def test_corrupt_pdf_rejected(self):
        with pytest.raises(IngestionError) as exc_info:
            parse_file(b"%PDF-garbage", "broken.pdf")

        assert exc_info.value.source == "broken.pdf"


# ============================================================================
# FILE INGEST
# ============================================================================


class TestFileIngest:
    def test_upload_size_limit(self, monkeypatch):
        monkeypatch.setenv("MAX_FILE_SIZE", "10")
        get_settings.cache_clear()

        with pytest.raises(IngestionError):
            ingest_upload(b"x" * 11, "big.txt")

    def test_upload(self):
        pages = ingest_upload(b"Plain text", "notes.txt", "text/plain")

        assert pages[0].text == "Plain text"

    def test_filename_from_url(self):
        assert filename_from_url("https://cdn.example.com/docs/Brand%20Guide.pdf?v=2") == "Brand Guide.pdf"
        assert filename_from_url("https://example.com/") == "file"

    @pytest.mark.asyncio
    async def test_file_link(self):
        url = "https://cdn.example.com/notes.txt"

        class TextFetcher:
            async def fetch(self, fetch_url):
                return FetchResult(url=fetch_url, status_code=200, content=b"Linked text", content_type="text/plain")

        pages = await ingest_file_link(url, TextFetcher())

        assert pages[0].text == "Linked text"
        assert pages[0].source == "notes.txt"

    @pytest.mark.asyncio
    async def test_file_link_not_found(self):
        with pytest.raises(IngestionError):
            await ingest_file_link("https://cdn.example.com/missing.pdf", FakeFetcher({}))

    @pytest.mark.asyncio
    async def test_file_link_unreachable(self):
        url = "https://cdn.example.com/file.pdf"
        fetcher = FakeFetcher({}, errors={url: httpx.ConnectError("refused")})

        with pytest.raises(IngestionError):
            await ingest_file_link(url, fetcher)
