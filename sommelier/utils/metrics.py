"""Request metrics: cost estimation and the metrics sink port.

The engine reports one AIMetrics record per request. Sinks are fire-and-forget:
the engine logs and drops any exception a sink raises.
"""

from typing import Dict, Optional, Protocol, Tuple

from pydantic import BaseModel

from sommelier.utils.logger import logger


# USD per 1K tokens (input, output)
TOKEN_COSTS: Dict[str, Tuple[float, float]] = {
    "gemini-2.5-pro": (0.00125, 0.01),
    "gemini-2.5-flash": (0.0003, 0.0025),
    "gemini-2.5-flash-lite": (0.0001, 0.0004),
}
DEFAULT_TOKEN_COST = TOKEN_COSTS["gemini-2.5-flash"]

# Completion APIs usually report one total; split it for pricing
INPUT_TOKEN_SHARE = 0.7


def calculate_cost(model: str, tokens_used: int) -> float:
    """Estimate the USD cost of a completion.

    Args:
        model: Model id; unknown models are priced like gemini-2.5-flash.
        tokens_used: Total tokens reported by the provider.

    Returns:
        float: Estimated cost in USD.
    """
    input_cost, output_cost = TOKEN_COSTS.get(model, DEFAULT_TOKEN_COST)
    input_tokens = tokens_used * INPUT_TOKEN_SHARE
    output_tokens = tokens_used - input_tokens
    return (input_tokens / 1000) * input_cost + (output_tokens / 1000) * output_cost


class AIMetrics(BaseModel):
    request_id: str
    user_id: str
    model: str
    tokens_used: int
    response_time_ms: float
    cost_estimate: float
    confidence: float
    validation_score: Optional[int] = None


class MetricsSink(Protocol):
    def record(self, metrics: AIMetrics) -> None: ...


class LoggingMetricsSink:
    """Writes each metrics record to the log as one line."""

    def __init__(self, log=None):
        self._log = log or logger

    def record(self, metrics: AIMetrics) -> None:
        self._log.info(
            f"metrics model={metrics.model} tokens={metrics.tokens_used} "
            f"time_ms={metrics.response_time_ms:.0f} cost=${metrics.cost_estimate:.4f} "
            f"confidence={metrics.confidence:.2f} score={metrics.validation_score}",
            extra={"request_id": metrics.request_id, "user_id": metrics.user_id},
        )
