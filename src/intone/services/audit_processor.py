"""
Audit processor.

Runs an audit as a background asyncio task:
ingest -> chunk -> compile -> evaluate -> reconcile -> persist -> finalize

Failure policy:
- IngestionError is fatal; the audit is marked failed
- An evaluator error on the very first chunk of the first page is fatal
- Later chunk failures are logged and skipped (best effort)
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from ..core.config import Settings, get_settings
from ..core.exceptions import EvaluatorError, GovernanceError, IngestionError, ValidationError
from ..schemas.audit import Audit, AuditIssue, AuditSourceType, AuditStatus, Finding
from ..schemas.content import Chunk, Page
from ..schemas.evaluation import EvaluateOptions, LintIssue
from ..schemas.rules import FilterContext, Rule, Severity
from .aggregator import fail, finalize
from .audit_store import AuditStore
from .chunker import chunk_page
from .credentials import resolve_credential
from .evaluator_client import SemanticEvaluator, evaluate_with_timeout
from .ingestion.crawler import Fetcher, HttpxFetcher, crawl
from .ingestion.file_ingest import ingest_file_link, ingest_upload
from .pattern_detector import evaluate_rules
from .prompt_compiler import compile_prompt
from .reconciler import context_window, reconcile
from .response_parser import parse_lint_response
from .rule_filter import filter_rules
from .rule_store import RuleStore

logger = structlog.get_logger(__name__)

_SEVERITY_MAP = {
    "critical": Severity.CRITICAL,
    "error": Severity.CRITICAL,
    "major": Severity.MAJOR,
    "warning": Severity.MAJOR,
    "minor": Severity.MINOR,
}


def map_severity(value: Optional[str]) -> Severity:
    """Map evaluator severity labels onto issue severities."""
    return _SEVERITY_MAP.get((value or "").lower(), Severity.INFO)


class AuditRequest(BaseModel):
    """Audit start parameters."""

    brand_id: str
    source_type: AuditSourceType
    source_url: Optional[str] = Field(None, description="Seed URL or file link")
    crawl_depth: Optional[int] = Field(None, ge=0, le=5)
    max_pages: Optional[int] = Field(None, ge=1, le=500)
    file_name: Optional[str] = None
    content_type: Optional[str] = None
    locale: Optional[str] = None
    encrypted_api_key: Optional[str] = None


class _AuditRun:
    """Mutable state for one audit execution."""

    def __init__(
        self,
        audit_id: str,
        request: AuditRequest,
        rules: List[Rule],
        processor: "AuditProcessor",
    ):
        self.audit_id = audit_id
        self.request = request
        self.rules = rules
        self.processor = processor
        self.settings = processor.settings
        self.context = FilterContext(surface=self.settings.audit_context, locale=request.locale)
        self.semantic_rules = filter_rules(rules, self.context)
        self.first_unit_pending = True
        self.pages_seen = 0
        self.pages_failed: List[str] = []
        self._options: Optional[EvaluateOptions] = None
        self._semaphore = asyncio.Semaphore(max(1, self.settings.chunk_concurrency))

    def _evaluate_options(self) -> EvaluateOptions:
        if self._options is None:
            credential = resolve_credential(self.request.encrypted_api_key)
            self._options = EvaluateOptions(api_key=credential.api_key)
        return self._options

    async def _evaluate_chunk(self, chunk: Chunk) -> List[LintIssue]:
        payload = compile_prompt(
            self.rules,
            self.settings.audit_context,
            chunk.text,
            "lint",
            self.request.locale,
        )
        data = await evaluate_with_timeout(
            self.processor.evaluator,
            payload,
            self._evaluate_options(),
            self.settings.evaluator_deadline,
        )
        return parse_lint_response(data)

    async def _evaluate_contained(self, page: Page, chunk: Chunk) -> Optional[List[LintIssue]]:
        async with self._semaphore:
            try:
                return await self._evaluate_chunk(chunk)
            except EvaluatorError as e:
                logger.warning(
                    "Chunk evaluation failed, skipping",
                    audit_id=self.audit_id,
                    source=page.source,
                    chunk_index=chunk.index,
                    kind=e.kind,
                )
                if page.source not in self.pages_failed:
                    self.pages_failed.append(page.source)
                return None

    async def _semantic_issues(self, page: Page) -> List[AuditIssue]:
        if not self.semantic_rules or not page.text.strip():
            return []

        chunks = chunk_page(page, self.settings.max_chunk_size)
        results: List[Optional[List[LintIssue]]] = []

        remaining = chunks
        if self.first_unit_pending:
            # Errors on the first unit escalate to the audit
            results.append(await self._evaluate_chunk(chunks[0]))
            self.first_unit_pending = False
            remaining = chunks[1:]

        results.extend(await asyncio.gather(*(self._evaluate_contained(page, c) for c in remaining)))

        issues: List[AuditIssue] = []
        for chunk, lint_issues in zip(chunks, results):
            for lint_issue in lint_issues or []:
                issue = self._issue_from_lint(page, chunk, lint_issue)
                if issue is not None:
                    issues.append(issue)
        return issues

    def _find_rule(self, rule_key: str) -> Optional[Rule]:
        for rule in self.semantic_rules:
            if rule.key == rule_key or rule.name == rule_key:
                return rule
        return None

    def _issue_from_lint(self, page: Page, chunk: Chunk, lint_issue: LintIssue) -> Optional[AuditIssue]:
        rule = self._find_rule(lint_issue.rule_key)
        if rule is None:
            logger.debug("Issue cites unknown rule, dropping", audit_id=self.audit_id)
            return None

        location = reconcile(chunk, lint_issue.original)
        before, after = context_window(page.text, location.start, location.end)
        return AuditIssue(
            audit_id=self.audit_id,
            rule_id=rule.id,
            rule_key=rule.key,
            category=rule.report_category,
            severity=map_severity(lint_issue.severity),
            message=lint_issue.reason,
            suggested_fix=lint_issue.suggested,
            page_url=page.source,
            page_number=page.page_number,
            location_start=location.start,
            location_end=location.end,
            location_exact=location.exact,
            issue_text=lint_issue.original,
            context_before=before,
            context_after=after,
        )

    def _issue_from_finding(self, page: Page, finding: Finding, rule: Rule) -> AuditIssue:
        before, after = context_window(page.text, finding.start, finding.end)
        return AuditIssue(
            audit_id=self.audit_id,
            rule_id=finding.rule_id,
            rule_key=finding.rule_key,
            category=rule.report_category,
            severity=finding.severity,
            message=finding.message,
            suggested_fix=finding.suggested_fix,
            page_url=page.source,
            page_number=page.page_number,
            location_start=finding.start,
            location_end=finding.end,
            issue_text=finding.matched_text,
            context_before=before,
            context_after=after,
        )

    def _pattern_issues(self, page: Page) -> List[AuditIssue]:
        by_id: Dict[str, Rule] = {rule.id: rule for rule in self.rules}
        findings = evaluate_rules(self.rules, page.text, self.context)
        return [self._issue_from_finding(page, f, by_id[f.rule_id]) for f in findings]

    async def process_page(self, page: Page) -> None:
        self.pages_seen += 1
        store = self.processor.audit_store

        audit = await store.get_audit(self.audit_id)
        await store.save_audit(audit.model_copy(update={"total_pages": self.pages_seen}))

        issues = self._pattern_issues(page)
        issues.extend(await self._semantic_issues(page))
        if issues:
            await store.add_issues(self.audit_id, issues)

        logger.info(
            "Page audited",
            audit_id=self.audit_id,
            source=page.source,
            page_number=page.page_number,
            issues=len(issues),
        )


class AuditProcessor:
    """Starts audits in the background and exposes their status."""

    def __init__(
        self,
        rule_store: RuleStore,
        audit_store: AuditStore,
        evaluator: SemanticEvaluator,
        fetcher_factory: Optional[Callable[[], Fetcher]] = None,
        settings: Optional[Settings] = None,
    ):
        self.rule_store = rule_store
        self.audit_store = audit_store
        self.evaluator = evaluator
        self.settings = settings or get_settings()
        self.fetcher_factory = fetcher_factory or (lambda: HttpxFetcher(self.settings))
        self._tasks: Dict[str, asyncio.Task] = {}

    @staticmethod
    def _validate(request: AuditRequest, file_data: Optional[bytes]) -> None:
        if request.source_type in (AuditSourceType.URL, AuditSourceType.FILE_LINK):
            if not request.source_url or not request.source_url.startswith(("http://", "https://")):
                raise ValidationError("An http(s) source_url is required")
        elif file_data is None or not request.file_name:
            raise ValidationError("File uploads require file data and a file name")

    async def start_audit(self, request: AuditRequest, file_data: Optional[bytes] = None) -> Audit:
        """
        Create an audit and process it in the background.

        Returns:
            The pending audit; poll :meth:`get_audit_status` for progress
        """
        self._validate(request, file_data)

        audit = Audit(
            brand_id=request.brand_id,
            source_type=request.source_type,
            source_url=request.source_url,
            file_name=request.file_name,
            file_type=request.content_type,
            crawl_depth=request.crawl_depth,
            max_pages=request.max_pages,
        )
        await self.audit_store.create_audit(audit)

        task = asyncio.create_task(self.run_audit(audit.id, request, file_data), name=f"audit-{audit.id}")
        self._tasks[audit.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(audit.id, None))

        logger.info("Audit started", audit_id=audit.id, source_type=request.source_type.value)
        return audit

    async def get_audit_status(self, audit_id: str) -> Audit:
        return await self.audit_store.get_audit(audit_id)

    async def wait_for(self, audit_id: str) -> Audit:
        """Await a running audit (used by tests and graceful shutdown)."""
        task = self._tasks.get(audit_id)
        if task is not None:
            await task
        return await self.audit_store.get_audit(audit_id)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _ingest(self, run: _AuditRun, request: AuditRequest, file_data: Optional[bytes]) -> int:
        """Ingest and process pages. Returns the number of pages processed."""
        if request.source_type == AuditSourceType.URL:
            fetcher = self.fetcher_factory()
            try:
                pages = await crawl(
                    request.source_url,
                    request.crawl_depth if request.crawl_depth is not None else self.settings.crawl_default_depth,
                    request.max_pages or self.settings.crawl_default_max_pages,
                    fetcher,
                    on_page=run.process_page,
                )
            finally:
                close = getattr(fetcher, "aclose", None)
                if close is not None:
                    await close()
            if not pages:
                raise IngestionError("No pages could be fetched from the source URL", source=request.source_url)
            return len(pages)

        if request.source_type == AuditSourceType.FILE_LINK:
            fetcher = self.fetcher_factory()
            try:
                pages = await ingest_file_link(request.source_url, fetcher)
            finally:
                close = getattr(fetcher, "aclose", None)
                if close is not None:
                    await close()
        else:
            pages = ingest_upload(file_data, request.file_name, request.content_type)

        for page in pages:
            await run.process_page(page)
        return len(pages)

    async def run_audit(self, audit_id: str, request: AuditRequest, file_data: Optional[bytes] = None) -> Audit:
        """Execute an audit to a terminal status. Never raises."""
        store = self.audit_store
        audit = await store.get_audit(audit_id)
        await store.save_audit(audit.model_copy(update={"status": AuditStatus.PROCESSING}))

        try:
            rules = await self.rule_store.list_active_rules(request.brand_id)
            run = _AuditRun(audit_id, request, rules, self)
            total_pages = await self._ingest(run, request, file_data)
        except GovernanceError as e:
            return await fail(audit_id, store, e.kind, e.detail)
        except Exception as e:
            logger.exception("Audit crashed", audit_id=audit_id, error_type=type(e).__name__)
            return await fail(audit_id, store, "internal_error", "Unexpected error while processing audit")

        if run.pages_failed:
            audit = await store.get_audit(audit_id)
            await store.save_audit(audit.model_copy(update={"pages_failed": list(run.pages_failed)}))
        return await finalize(audit_id, store, total_pages)
