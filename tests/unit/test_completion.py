"""Unit tests for the Gemini completion service and CompletionClient."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import errors as genai_errors

from sommelier.models.models import CompletionResult, ModelParams
from sommelier.services.completion import (
    CompletionClient,
    GeminiCompletionService,
    map_provider_error,
)
from sommelier.utils.errors import (
    CompletionQuotaExceededError,
    CompletionRateLimitedError,
    CompletionTimeoutError,
    CompletionUnknownError,
    EmptyCompletionError,
)


PARAMS = ModelParams(model="gemini-2.5-flash", temperature=0.5, max_tokens=800)


class FakeAPIError:
    """Carries the attributes map_provider_error reads from a genai APIError."""

    def __init__(self, code, message, details=None):
        self.code = code
        self.message = message
        self.details = details

    def __str__(self):
        return f"{self.code} {self.message}"


def mock_client(response=None, side_effect=None):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=response, side_effect=side_effect)
    return client


class ScriptedService:
    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay

    async def complete(self, system_prompt, user_prompt, params):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class TestMapProviderError:
    """Tests for map_provider_error."""

    def test_rate_limit_with_retry_delay(self):
        """Test that a per-minute 429 is retryable and carries retryDelay."""
        error = FakeAPIError(
            429,
            "Quota exceeded for requests per minute",
            details={"error": {"details": [{"retryDelay": "27s"}]}},
        )

        mapped = map_provider_error(error)

        assert isinstance(mapped, CompletionRateLimitedError)
        assert mapped.retryable is True
        assert mapped.retry_after_seconds == 27.0

    def test_quota_exhausted(self):
        """Test that a billing-style 429 is terminal."""
        mapped = map_provider_error(FakeAPIError(429, "You exceeded your current quota, check billing"))

        assert isinstance(mapped, CompletionQuotaExceededError)
        assert mapped.retryable is False

    @pytest.mark.parametrize("code,message", [(504, "Gateway"), (400, "Request deadline exceeded")])
    def test_timeouts(self, code, message):
        """Test that gateway timeouts and deadline messages map to timeouts."""
        assert isinstance(map_provider_error(FakeAPIError(code, message)), CompletionTimeoutError)

    def test_overloaded_is_rate_limited(self):
        """Test that 503 backs off like a rate limit."""
        assert isinstance(map_provider_error(FakeAPIError(503, "The model is overloaded")), CompletionRateLimitedError)

    def test_unknown_server_and_client_errors(self):
        """Test that other 5xx are retryable unknowns and 4xx are not."""
        server = map_provider_error(FakeAPIError(500, "Internal error"))
        client = map_provider_error(FakeAPIError(400, "Invalid argument"))

        assert isinstance(server, CompletionUnknownError) and server.retryable is True
        assert isinstance(client, CompletionUnknownError) and client.retryable is False


class TestGeminiCompletionService:
    """Tests for GeminiCompletionService."""

    def test_requires_api_key(self):
        """Test that a missing key is rejected at construction."""
        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            GeminiCompletionService(api_key="")

    @pytest.mark.asyncio
    async def test_complete_passes_prompts_and_params(self):
        """Test that prompts and params reach the SDK and usage is reported."""
        response = SimpleNamespace(text="Try a Rioja.", usage_metadata=SimpleNamespace(total_token_count=42))
        client = mock_client(response=response)
        service = GeminiCompletionService(api_key="", client=client)

        result = await service.complete("system", "user", PARAMS)

        assert result == CompletionResult(text="Try a Rioja.", tokens_used=42)
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert kwargs["contents"] == "user"
        assert kwargs["config"].system_instruction == "system"
        assert kwargs["config"].temperature == 0.5
        assert kwargs["config"].max_output_tokens == 800

    @pytest.mark.asyncio
    async def test_missing_usage_means_zero_tokens(self):
        """Test that responses without usage metadata report zero tokens."""
        client = mock_client(response=SimpleNamespace(text="Hello", usage_metadata=None))

        result = await GeminiCompletionService(api_key="k", client=client).complete("s", "u", PARAMS)

        assert result.tokens_used == 0

    @pytest.mark.asyncio
    async def test_api_errors_are_mapped(self):
        """Test that SDK errors surface as typed completion errors."""
        api_error = genai_errors.ClientError(
            429, {"error": {"code": 429, "message": "Resource exhausted per minute", "status": "RESOURCE_EXHAUSTED"}}
        )
        service = GeminiCompletionService(api_key="k", client=mock_client(side_effect=api_error))

        with pytest.raises(CompletionRateLimitedError):
            await service.complete("s", "u", PARAMS)


class TestCompletionClient:
    """Tests for CompletionClient."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        """Test the happy path."""
        client = CompletionClient(ScriptedService(result=CompletionResult(text="Fine", tokens_used=3)))

        assert (await client.complete("s", "u", PARAMS)).text == "Fine"

    @pytest.mark.asyncio
    async def test_blank_text_is_empty_completion(self):
        """Test that whitespace-only bodies are rejected."""
        client = CompletionClient(ScriptedService(result=CompletionResult(text="   ", tokens_used=3)))

        with pytest.raises(EmptyCompletionError):
            await client.complete("s", "u", PARAMS)

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test that a slow provider raises CompletionTimeoutError."""
        service = ScriptedService(result=CompletionResult(text="late"), delay=1.0)
        client = CompletionClient(service, timeout_seconds=0.01)

        with pytest.raises(CompletionTimeoutError):
            await client.complete("s", "u", PARAMS)

    @pytest.mark.asyncio
    async def test_typed_errors_pass_through(self):
        """Test that CompletionError subclasses are not rewrapped."""
        client = CompletionClient(ScriptedService(error=CompletionQuotaExceededError("quota")))

        with pytest.raises(CompletionQuotaExceededError):
            await client.complete("s", "u", PARAMS)

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_wrapped(self):
        """Test that foreign errors become CompletionUnknownError; network ones retryable."""
        network = CompletionClient(ScriptedService(error=ConnectionResetError("reset")))
        other = CompletionClient(ScriptedService(error=KeyError("text")))

        with pytest.raises(CompletionUnknownError) as network_info:
            await network.complete("s", "u", PARAMS)
        with pytest.raises(CompletionUnknownError) as other_info:
            await other.complete("s", "u", PARAMS)

        assert network_info.value.retryable is True
        assert other_info.value.retryable is False
