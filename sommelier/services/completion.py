"""LLM completion client.

`CompletionService` is the provider port; `GeminiCompletionService` implements
it with google-genai and maps provider failures onto the typed
CompletionError hierarchy. `CompletionClient` is what the engine talks to: it
enforces a per-call timeout, rejects empty bodies and guarantees that only
CompletionError subclasses escape.
"""

import asyncio
import re
from typing import Optional, Protocol

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from sommelier.models.models import CompletionResult, ModelParams
from sommelier.utils.errors import (
    CompletionError,
    CompletionQuotaExceededError,
    CompletionRateLimitedError,
    CompletionTimeoutError,
    CompletionUnknownError,
    EmptyCompletionError,
)
from sommelier.utils.logger import logger


QUOTA_MARKERS = ("quota exceeded", "exceeded your current quota", "insufficient_quota", "billing")
TIMEOUT_MARKERS = ("timeout", "timed out", "deadline")
RETRY_DELAY_PATTERN = re.compile(r"retryDelay['\"]?\s*:\s*['\"](\d+(?:\.\d+)?)s")


class CompletionService(Protocol):
    async def complete(self, system_prompt: str, user_prompt: str, params: ModelParams) -> CompletionResult: ...


def _parse_retry_after(error: genai_errors.APIError) -> Optional[float]:
    match = RETRY_DELAY_PATTERN.search(str(getattr(error, "details", "") or ""))
    return float(match.group(1)) if match else None


def map_provider_error(error: genai_errors.APIError) -> CompletionError:
    """Translate a google-genai APIError into the pipeline's error taxonomy.

    Args:
        error: Error raised by the Gemini client.

    Returns:
        CompletionError: RateLimited and Timeout are retryable; everything else is not.
    """
    message = str(error)
    lowered = message.lower()
    code = getattr(error, "code", None)

    if code == 429:
        if any(marker in lowered for marker in QUOTA_MARKERS) and "per minute" not in lowered:
            return CompletionQuotaExceededError(message)
        return CompletionRateLimitedError(message, retry_after_seconds=_parse_retry_after(error))
    if code in (408, 504) or any(marker in lowered for marker in TIMEOUT_MARKERS):
        return CompletionTimeoutError(message)
    if code == 503:
        # Model overloaded; Gemini asks callers to back off
        return CompletionRateLimitedError(message)
    return CompletionUnknownError(message, retryable=isinstance(code, int) and code >= 500)


def _is_network_error(error: Exception) -> bool:
    if isinstance(error, ConnectionError):
        return True
    name = type(error).__name__.lower()
    return "connect" in name or "network" in name or "transport" in name


class GeminiCompletionService:
    """CompletionService backed by the Gemini API (google-genai)."""

    def __init__(self, api_key: str, client: Optional[genai.Client] = None) -> None:
        """Create the Gemini client.

        Args:
            api_key: Gemini API key.
            client: Pre-built client (tests inject a mock).

        Raises:
            ValueError: If api_key is empty and no client is supplied.
        """
        if client is None and not api_key:
            raise ValueError("GEMINI_API_KEY is required")
        self._client = client or genai.Client(api_key=api_key)

    async def complete(self, system_prompt: str, user_prompt: str, params: ModelParams) -> CompletionResult:
        try:
            response = await self._client.aio.models.generate_content(
                model=params.model,
                contents=user_prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=params.temperature,
                    max_output_tokens=params.max_tokens,
                ),
            )
        except genai_errors.APIError as e:
            raise map_provider_error(e) from e

        usage = getattr(response, "usage_metadata", None)
        tokens_used = (getattr(usage, "total_token_count", None) or 0) if usage else 0
        return CompletionResult(text=response.text or "", tokens_used=tokens_used)


class CompletionClient:
    """Single entry point for completions used by the engine.

    Args:
        service: Provider implementation.
        timeout_seconds: Per-call timeout; exceeding it raises CompletionTimeoutError.
    """

    def __init__(self, service: CompletionService, timeout_seconds: Optional[float] = None):
        self._service = service
        self._timeout_seconds = timeout_seconds

    async def complete(self, system_prompt: str, user_prompt: str, params: ModelParams) -> CompletionResult:
        """Request one completion.

        Returns:
            CompletionResult: Non-empty text and token usage.

        Raises:
            CompletionError: Typed failure (rate limit, timeout, quota, empty body, unknown).
        """
        try:
            result = await asyncio.wait_for(
                self._service.complete(system_prompt, user_prompt, params),
                timeout=self._timeout_seconds,
            )
        except CompletionError:
            raise
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise CompletionTimeoutError(f"Completion timed out after {self._timeout_seconds}s") from e
        except Exception as e:
            logger.warning(f"Unexpected completion failure: {type(e).__name__}: {e}")
            raise CompletionUnknownError(str(e) or type(e).__name__, retryable=_is_network_error(e)) from e

        if not result.text or not result.text.strip():
            raise EmptyCompletionError("Completion returned an empty response")

        logger.debug(f"✓ Completion received ({result.tokens_used} tokens)")
        return result
