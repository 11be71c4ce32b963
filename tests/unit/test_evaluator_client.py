"""
Tests for services/evaluator_client.py - semantic evaluator HTTP client

Coverage:
- Request building: model, messages, JSON mode, temperature overrides
- Success path: content decoding
- Error mapping: 401/403, 429, 5xx, other 4xx, timeouts, network errors
- Retry logic: backoff with capped sleeps, auth failures never retried
- Malformed responses: non-JSON content, non-object JSON, missing choices
- evaluate_with_timeout deadline
- Singleton lifecycle
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from intone.core.config import Settings
from intone.core.exceptions import (
    EvaluatorAuthError,
    EvaluatorError,
    EvaluatorRateLimitError,
    EvaluatorResponseError,
    EvaluatorTimeoutError,
    EvaluatorUnavailableError,
)
from intone.schemas.evaluation import EvaluateOptions, EvaluationMode, InstructionPayload
from intone.services.evaluator_client import (
    EvaluatorClient,
    close_evaluator_client,
    evaluate_with_timeout,
    get_evaluator_client,
)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def settings():
    return Settings(
        evaluator_base_url="https://evaluator.test",
        evaluator_api_key="sk-env-key-123456789",
        evaluator_model="test-model",
        evaluator_timeout=5,
        evaluator_max_retries=2,
    )


@pytest.fixture
def payload():
    return InstructionPayload(
        system="system message",
        prompt="compiled prompt",
        mode=EvaluationMode.LINT,
        rule_keys=["tone.formality"],
    )


@pytest.fixture
def mock_sleep():
    with patch("intone.services.evaluator_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_client(settings, handler):
    return EvaluatorClient(settings=settings, transport=httpx.MockTransport(handler))


# ============================================================================
# REQUEST BUILDING
# ============================================================================


class TestBuildRequest:
    def test_json_mode_and_messages(self, settings, payload):
        client = make_client(settings, lambda request: httpx.Response(200))

        body = client.build_request(payload, EvaluateOptions())

        assert body["model"] == "test-model"
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0] == {"role": "system", "content": "system message"}
        assert body["messages"][1] == {"role": "user", "content": "compiled prompt"}
        assert body["temperature"] == settings.evaluator_temperature
        assert body["max_tokens"] == settings.evaluator_max_tokens

    def test_option_overrides(self, settings, payload):
        client = make_client(settings, lambda request: httpx.Response(200))

        body = client.build_request(payload, EvaluateOptions(temperature=0.0, max_tokens=50))

        assert body["temperature"] == 0.0
        assert body["max_tokens"] == 50


# ============================================================================
# EVALUATE
# ============================================================================


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_success_decodes_content(self, settings, payload):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion(json.dumps({"issues": []})))

        async with make_client(settings, handler) as client:
            data = await client.evaluate(payload, EvaluateOptions(api_key="sk-user-key"))

        assert data == {"issues": []}
        assert seen["url"] == "https://evaluator.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-user-key"
        assert seen["body"]["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_falls_back_to_settings_key(self, settings, payload):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=completion("{}"))

        async with make_client(settings, handler) as client:
            await client.evaluate(payload)

        assert seen["auth"] == "Bearer sk-env-key-123456789"

    @pytest.mark.asyncio
    async def test_missing_key_raises_auth_error(self, payload):
        settings = Settings(evaluator_api_key="")
        client = make_client(settings, lambda request: httpx.Response(200))

        with pytest.raises(EvaluatorAuthError):
            await client.evaluate(payload)
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_errors_not_retried(self, settings, payload, mock_sleep, status_code):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status_code, json={"error": "invalid key"})

        async with make_client(settings, handler) as client:
            with pytest.raises(EvaluatorAuthError):
                await client.evaluate(payload)

        assert len(calls) == 1
        mock_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_rate_limit_after_retries(self, settings, payload, mock_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, headers={"Retry-After": "7"})

        async with make_client(settings, handler) as client:
            with pytest.raises(EvaluatorRateLimitError) as exc_info:
                await client.evaluate(payload)

        assert exc_info.value.retry_after == 7.0
        assert len(calls) == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [7.0, 7.0]

    @pytest.mark.asyncio
    async def test_rate_limit_without_retry_after_uses_backoff(self, settings, payload, mock_sleep):
        async with make_client(settings, lambda request: httpx.Response(429)) as client:
            with pytest.raises(EvaluatorRateLimitError) as exc_info:
                await client.evaluate(payload)

        assert exc_info.value.retry_after is None
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_server_error_retried_then_succeeds(self, settings, payload, mock_sleep):
        responses = [
            httpx.Response(503),
            httpx.Response(200, json=completion('{"output": "ok"}')),
        ]

        async with make_client(settings, lambda request: responses.pop(0)) as client:
            data = await client.evaluate(payload)

        assert data == {"output": "ok"}
        mock_sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self, settings, payload, mock_sleep):
        async with make_client(settings, lambda request: httpx.Response(500)) as client:
            with pytest.raises(EvaluatorUnavailableError):
                await client.evaluate(payload)

        assert mock_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_network_error_maps_to_unavailable(self, settings, payload, mock_sleep):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(settings, handler) as client:
            with pytest.raises(EvaluatorUnavailableError):
                await client.evaluate(payload)

    @pytest.mark.asyncio
    async def test_transport_timeout_maps_to_timeout(self, settings, payload, mock_sleep):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(settings, handler) as client:
            with pytest.raises(EvaluatorTimeoutError):
                await client.evaluate(payload)

    @pytest.mark.asyncio
    async def test_transport_timeout_retried_then_succeeds(self, settings, payload, mock_sleep):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json=completion('{"issues": []}'))

        async with make_client(settings, handler) as client:
            data = await client.evaluate(payload)

        assert data == {"issues": []}
        assert len(attempts) == 2
        mock_sleep.assert_awaited_once_with(1)

    def test_deadline_covers_every_attempt(self, settings):
        assert settings.evaluator_deadline == 5 * 3 + 1 + 2
        assert settings.evaluator_deadline > settings.evaluator_timeout

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, settings, payload, mock_sleep):
        async with make_client(settings, lambda request: httpx.Response(400)) as client:
            with pytest.raises(EvaluatorError) as exc_info:
                await client.evaluate(payload)

        assert type(exc_info.value) is EvaluatorError
        mock_sleep.assert_not_called()


class TestMalformedResponses:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            completion("not json at all"),
            completion("[1, 2, 3]"),
            completion(""),
            {"choices": []},
            {"unexpected": True},
        ],
    )
    async def test_malformed_bodies(self, settings, payload, body):
        async with make_client(settings, lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(EvaluatorResponseError):
                await client.evaluate(payload)

    @pytest.mark.asyncio
    async def test_error_detail_does_not_echo_content(self, settings, payload):
        secret_content = "brand secret rule value"

        async with make_client(settings, lambda request: httpx.Response(200, json=completion(secret_content))) as client:
            with pytest.raises(EvaluatorResponseError) as exc_info:
                await client.evaluate(payload)

        assert secret_content not in exc_info.value.detail


# ============================================================================
# TIMEOUT WRAPPER AND SINGLETON
# ============================================================================


class TestEvaluateWithTimeout:
    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, payload):
        class SlowEvaluator:
            async def evaluate(self, payload, options=None):
                await asyncio.sleep(1)
                return {}

        with pytest.raises(EvaluatorTimeoutError):
            await evaluate_with_timeout(SlowEvaluator(), payload, None, timeout=0.01)

    @pytest.mark.asyncio
    async def test_passes_result_through(self, payload, evaluator_factory):
        evaluator = evaluator_factory([{"issues": []}])

        assert await evaluate_with_timeout(evaluator, payload, None, timeout=1) == {"issues": []}


class TestSingleton:
    @pytest.mark.asyncio
    async def test_get_and_close(self):
        first = get_evaluator_client()

        assert get_evaluator_client() is first

        await close_evaluator_client()
        second = get_evaluator_client()
        assert second is not first
        await close_evaluator_client()
