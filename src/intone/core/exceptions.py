"""
Error taxonomy and FastAPI exception handlers.

Propagation policy:
- DetectorError and per-chunk EvaluatorError are contained and logged by callers
- EvaluatorError on the first unit of work (first chunk, first variant) escalates
- IngestionError is always fatal to the enclosing audit
- ReconciliationMismatch is a data-quality record, never raised
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class GovernanceError(Exception):
    """Base engine exception."""

    kind = "governance_error"

    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class ValidationError(GovernanceError):
    """Caller-supplied mode or shape is invalid."""

    kind = "validation_error"

    def __init__(self, detail: str = "Invalid request"):
        super().__init__(detail, status.HTTP_400_BAD_REQUEST)


class NotFoundError(GovernanceError):
    """Resource not found."""

    kind = "not_found"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(detail, status.HTTP_404_NOT_FOUND)


class IngestionError(GovernanceError):
    """Unreachable URL, unsupported or corrupt file, parser crash."""

    kind = "ingestion_error"

    def __init__(self, detail: str = "Content ingestion failed", source: Optional[str] = None):
        super().__init__(detail, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.source = source


class DetectorError(GovernanceError):
    """A detector pattern could not be compiled."""

    kind = "detector_error"

    def __init__(self, detail: str = "Malformed detector pattern", rule_id: Optional[str] = None):
        super().__init__(detail, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.rule_id = rule_id


class EvaluatorError(GovernanceError):
    """Base semantic evaluator failure."""

    kind = "evaluator_error"

    def __init__(self, detail: str = "Semantic evaluator failed", status_code: int = status.HTTP_502_BAD_GATEWAY):
        super().__init__(detail, status_code)


class EvaluatorAuthError(EvaluatorError):
    kind = "evaluator_auth"

    def __init__(self, detail: str = "Evaluator rejected the API key"):
        super().__init__(detail, status.HTTP_401_UNAUTHORIZED)


class CredentialError(EvaluatorAuthError):
    kind = "credential_missing"

    def __init__(self, detail: str = "Evaluator API key not configured"):
        super().__init__(detail)


class EvaluatorRateLimitError(EvaluatorError):
    kind = "evaluator_rate_limit"

    def __init__(self, detail: str = "Evaluator rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(detail, status.HTTP_429_TOO_MANY_REQUESTS)
        self.retry_after = retry_after


class EvaluatorResponseError(EvaluatorError):
    kind = "evaluator_malformed_response"

    def __init__(self, detail: str = "Evaluator returned a malformed response"):
        super().__init__(detail, status.HTTP_502_BAD_GATEWAY)


class EvaluatorTimeoutError(EvaluatorError):
    kind = "evaluator_timeout"

    def __init__(self, detail: str = "Evaluator call timed out"):
        super().__init__(detail, status.HTTP_504_GATEWAY_TIMEOUT)


class EvaluatorUnavailableError(EvaluatorError):
    kind = "evaluator_unavailable"

    def __init__(self, detail: str = "Evaluator is unavailable"):
        super().__init__(detail, status.HTTP_503_SERVICE_UNAVAILABLE)


@dataclass
class ReconciliationMismatch:
    """A quoted snippet was not found verbatim in its chunk. Carries no content."""

    needle_length: int
    chunk_offset: int
    fallback_start: int
    fallback_end: int

    kind = "reconciliation_mismatch"


async def governance_exception_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    """Handle engine exceptions without echoing rule values or content."""
    logger.warning(
        "Governance exception",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        error_type=type(exc).__name__,
        kind=exc.kind,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "status_code": exc.status_code,
            "type": exc.kind,
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with a sanitized response."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "type": "internal_error",
        },
    )
