"""
Semantic evaluator client.

Talks to an OpenAI-compatible chat-completions endpoint in JSON mode and maps
transport failures onto the evaluator error taxonomy:
- 401/403 -> EvaluatorAuthError
- 429 -> EvaluatorRateLimitError
- non-JSON or wrong-shape body -> EvaluatorResponseError
- timeouts -> EvaluatorTimeoutError
- 5xx / network errors after retries -> EvaluatorUnavailableError
"""

import asyncio
import json
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog

from ..core.config import Settings, get_settings
from ..core.exceptions import (
    EvaluatorAuthError,
    EvaluatorError,
    EvaluatorRateLimitError,
    EvaluatorResponseError,
    EvaluatorTimeoutError,
    EvaluatorUnavailableError,
)
from ..schemas.evaluation import EvaluateOptions, InstructionPayload

logger = structlog.get_logger(__name__)

CHAT_COMPLETIONS_ENDPOINT = "/v1/chat/completions"


class SemanticEvaluator(Protocol):
    """Model-backed evaluator returning a structured JSON object."""

    async def evaluate(self, payload: InstructionPayload, options: Optional[EvaluateOptions] = None) -> Dict[str, Any]:
        ...


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value else None
    except ValueError:
        return None


class EvaluatorClient:
    """HTTP client for an OpenAI-compatible evaluator"""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.evaluator_base_url
        self.model = self.settings.evaluator_model
        self.timeout = self.settings.evaluator_timeout
        self.max_retries = self.settings.evaluator_max_retries

        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout=self.timeout, connect=10.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            headers={"Content-Type": "application/json", "User-Agent": "Intone-Governance/1.0"},
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.client.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def build_request(self, payload: InstructionPayload, options: EvaluateOptions) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": payload.system},
                {"role": "user", "content": payload.prompt},
            ],
            "temperature": options.temperature
            if options.temperature is not None
            else self.settings.evaluator_temperature,
            "max_tokens": options.max_tokens or self.settings.evaluator_max_tokens,
            "response_format": {"type": "json_object"},
        }

    async def _post(self, body: Dict[str, Any], api_key: str) -> httpx.Response:
        """POST with retry on transient failures. Auth failures are never retried."""
        url = f"{self.base_url.rstrip('/')}{CHAT_COMPLETIONS_ENDPOINT}"
        headers = {"Authorization": f"Bearer {api_key}"}

        for attempt in range(self.max_retries + 1):
            final = attempt >= self.max_retries
            retry_after = None
            try:
                response = await self.client.post(url, json=body, headers=headers)
            except httpx.TimeoutException as e:
                if final:
                    logger.error("Evaluator request timed out after all retries", attempts=attempt + 1)
                    raise EvaluatorTimeoutError() from e
                error = type(e).__name__
            except httpx.HTTPError as e:
                if final:
                    logger.error("Evaluator unreachable after all retries", error=type(e).__name__)
                    raise EvaluatorUnavailableError() from e
                error = type(e).__name__
            else:
                status_code = response.status_code
                if status_code in (401, 403):
                    logger.error("Evaluator rejected credentials", status_code=status_code)
                    raise EvaluatorAuthError()
                if status_code == 429:
                    retry_after = _retry_after(response)
                    if final:
                        raise EvaluatorRateLimitError(retry_after=retry_after)
                    error = "rate_limited"
                elif status_code >= 500:
                    if final:
                        logger.error("Evaluator unavailable after all retries", status_code=status_code)
                        raise EvaluatorUnavailableError()
                    error = f"http_{status_code}"
                elif status_code >= 400:
                    logger.error("Evaluator rejected request", status_code=status_code)
                    raise EvaluatorError(f"Evaluator rejected request with status {status_code}")
                else:
                    return response

            wait_time = retry_after if retry_after is not None else min(2 ** attempt, 10)
            logger.warning("Evaluator request failed, retrying", error=error, attempt=attempt + 1, wait_time=wait_time)
            await asyncio.sleep(wait_time)

        raise EvaluatorUnavailableError()

    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EvaluatorResponseError("Evaluator response missing message content") from e
        if not content:
            raise EvaluatorResponseError("Evaluator returned an empty message")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise EvaluatorResponseError("Evaluator message is not valid JSON") from e
        if not isinstance(data, dict):
            raise EvaluatorResponseError("Evaluator message is not a JSON object")
        return data

    async def evaluate(self, payload: InstructionPayload, options: Optional[EvaluateOptions] = None) -> Dict[str, Any]:
        """
        Send a compiled payload and return the decoded JSON object.

        Args:
            payload: Compiled instruction payload
            options: API key and sampling overrides

        Returns:
            Decoded response object

        Raises:
            EvaluatorError subclasses, see module docstring
        """
        options = options or EvaluateOptions()
        api_key = options.api_key or self.settings.evaluator_api_key
        if not api_key:
            raise EvaluatorAuthError("Evaluator API key not configured")

        body = self.build_request(payload, options)
        response = await self._post(body, api_key)

        data = self._decode(response)
        logger.info("Evaluator call completed", mode=payload.mode.value, rule_keys=len(payload.rule_keys))
        return data


async def evaluate_with_timeout(
    evaluator: SemanticEvaluator,
    payload: InstructionPayload,
    options: Optional[EvaluateOptions],
    timeout: float,
) -> Dict[str, Any]:
    """Call any evaluator under a hard deadline."""
    try:
        return await asyncio.wait_for(evaluator.evaluate(payload, options), timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error("Evaluator call exceeded timeout", timeout=timeout)
        raise EvaluatorTimeoutError() from e


# Singleton instance
_evaluator_client: Optional[EvaluatorClient] = None


def get_evaluator_client() -> EvaluatorClient:
    """Get the shared evaluator client"""
    global _evaluator_client

    if _evaluator_client is None:
        _evaluator_client = EvaluatorClient()
    return _evaluator_client


async def close_evaluator_client() -> None:
    global _evaluator_client

    if _evaluator_client:
        await _evaluator_client.aclose()
        _evaluator_client = None
