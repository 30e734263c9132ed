"""Unit tests for cost estimation and the logging metrics sink."""

from unittest.mock import MagicMock

import pytest

from sommelier.utils.metrics import AIMetrics, LoggingMetricsSink, calculate_cost


class TestCalculateCost:
    """Tests for calculate_cost."""

    def test_flash_pricing(self):
        """Test the 70/30 input/output split for gemini-2.5-flash."""
        assert calculate_cost("gemini-2.5-flash", 1000) == pytest.approx(0.7 * 0.0003 + 0.3 * 0.0025)

    def test_unknown_model_priced_as_flash(self):
        """Test that unknown models fall back to flash pricing."""
        assert calculate_cost("my-local-model", 2000) == calculate_cost("gemini-2.5-flash", 2000)

    def test_zero_tokens(self):
        """Test that a fallback response costs nothing."""
        assert calculate_cost("gemini-2.5-pro", 0) == 0.0


class TestLoggingMetricsSink:
    """Tests for LoggingMetricsSink."""

    def test_logs_with_request_context(self):
        """Test that records are logged with request and user ids as extras."""
        log = MagicMock()
        metrics = AIMetrics(
            request_id="req_abc",
            user_id="user-1",
            model="gemini-2.5-flash",
            tokens_used=420,
            response_time_ms=812.4,
            cost_estimate=0.0004,
            confidence=0.86,
            validation_score=100,
        )

        LoggingMetricsSink(log).record(metrics)

        message = log.info.call_args.args[0]
        assert "tokens=420" in message
        assert "confidence=0.86" in message
        assert log.info.call_args.kwargs["extra"] == {"request_id": "req_abc", "user_id": "user-1"}
