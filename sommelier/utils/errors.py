"""Exception taxonomy for the recommendation pipeline.

Completion failures are typed so the retry layer can tell transient errors
(rate limits, timeouts) from terminal ones (quota, empty bodies). Retrieval
failures never leave the knowledge retriever; they are listed here so the
retriever and its collaborators share one vocabulary.
"""

from typing import Optional


class SommelierError(Exception):
    """Base class for all pipeline errors."""


class CompletionError(SommelierError):
    """A completion call failed."""

    retryable: bool = False


class CompletionRateLimitedError(CompletionError):
    """The completion provider throttled the request."""

    retryable = True

    def __init__(self, message: str = "Completion rate limit exceeded", retry_after_seconds: Optional[float] = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class CompletionTimeoutError(CompletionError):
    """The completion call (or the overall request deadline) timed out."""

    retryable = True


class CompletionQuotaExceededError(CompletionError):
    """The account quota is exhausted; retrying will not help."""


class CompletionUnknownError(CompletionError):
    """Any provider failure that does not fit a more specific type.

    Network-shaped failures (dropped connections, transport errors) are marked
    retryable on the instance.
    """

    def __init__(self, message: str = "Unknown completion failure", retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class EmptyCompletionError(CompletionError):
    """The provider answered with an empty or malformed body."""


class CircuitOpenError(SommelierError):
    """Raised without calling the wrapped operation while a circuit breaker is open."""

    def __init__(self, name: str = "circuit"):
        super().__init__(f"Circuit '{name}' is open; call rejected")
        self.name = name


class RetrievalError(SommelierError):
    """Embedding or vector search failed."""


def is_retryable_completion_error(error: BaseException) -> bool:
    """Default retry predicate for completion calls.

    Retries network-, timeout- and rate-limit-shaped failures only.

    Args:
        error: Exception raised by the wrapped call.

    Returns:
        True if another attempt may succeed.
    """
    if isinstance(error, CircuitOpenError):
        return False
    if isinstance(error, CompletionError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))
