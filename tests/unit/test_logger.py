"""Unit tests for logging infrastructure."""

import json
import logging
import sys

from sommelier.utils.logger import JSONFormatter, RichTextFormatter, get_logger


def make_record(level=logging.INFO, msg="Test message", name="test_logger", exc_info=None):
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Test JSONFormatter produces valid JSON output."""

    def test_json_formatter_outputs_valid_json(self):
        """Test that JSONFormatter produces valid JSON."""
        parsed = json.loads(JSONFormatter().format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test_logger"
        assert parsed["message"] == "Test message"
        assert "timestamp" in parsed

    def test_json_formatter_includes_exception_traceback(self):
        """Test that JSONFormatter includes exception traceback when present."""
        try:
            raise ValueError("Test error")
        except ValueError:
            record = make_record(level=logging.ERROR, msg="Error occurred", exc_info=sys.exc_info())

        parsed = json.loads(JSONFormatter().format(record))

        assert "exception" in parsed
        assert "ValueError" in parsed["exception"]

    def test_json_formatter_includes_request_context(self):
        """Test that JSONFormatter includes request_id and user_id when present."""
        record = make_record()
        record.request_id = "req_123"
        record.user_id = "user-456"

        parsed = json.loads(JSONFormatter().format(record))

        assert parsed["request_id"] == "req_123"
        assert parsed["user_id"] == "user-456"

    def test_json_formatter_omits_missing_context(self):
        """Test that absent request context fields are not emitted."""
        parsed = json.loads(JSONFormatter().format(make_record()))

        assert "request_id" not in parsed
        assert "user_id" not in parsed


class TestRichTextFormatter:
    """Test RichTextFormatter produces colored text output."""

    def test_includes_level_logger_and_message(self):
        """Test that the text line carries level, logger name and message."""
        output = RichTextFormatter().format(make_record(msg="Custom message", name="my_logger"))

        assert "INFO" in output
        assert "my_logger" in output
        assert "Custom message" in output

    def test_uses_level_color(self):
        """Test that warnings are wrapped in the yellow ANSI code."""
        output = RichTextFormatter().format(make_record(level=logging.WARNING))

        assert output.startswith(RichTextFormatter.COLORS["WARNING"])
        assert RichTextFormatter.COLORS["RESET"] in output

    def test_appends_request_id(self):
        """Test that request_id is appended to the line when present."""
        record = make_record()
        record.request_id = "req_abc"

        assert "[req_abc]" in RichTextFormatter().format(record)

    def test_includes_exception_traceback(self):
        """Test that RichTextFormatter includes exception traceback."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record(level=logging.ERROR, exc_info=sys.exc_info())

        output = RichTextFormatter().format(record)

        assert "RuntimeError" in output
        assert "boom" in output


class TestGetLogger:
    """Test get_logger function."""

    def test_get_logger_returns_configured_logger(self):
        """Test that get_logger returns a logger with one stdout handler."""
        test_logger = get_logger("sommelier_test_module")

        assert isinstance(test_logger, logging.Logger)
        assert len(test_logger.handlers) == 1

    def test_get_logger_is_idempotent(self):
        """Test that repeated calls do not stack handlers."""
        get_logger("sommelier_test_repeat")
        test_logger = get_logger("sommelier_test_repeat")

        assert len(test_logger.handlers) == 1

    def test_get_logger_respects_env(self, monkeypatch):
        """Test that LOG_LEVEL and LOG_TYPE select level and formatter."""
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LOG_TYPE", "json")

        test_logger = get_logger("sommelier_test_json_debug")

        assert test_logger.level == logging.DEBUG
        assert isinstance(test_logger.handlers[0].formatter, JSONFormatter)

    def test_module_logger_name(self):
        """Test that the module-level logger is named after the package."""
        from sommelier.utils.logger import logger

        assert logger.name == "sommelier"
        assert logger.handlers
