"""Tests for logging functionality."""

from __future__ import annotations

import io
import json
import logging
import sys
from pathlib import Path

import structlog

from mangasync.core.logging import (
    APP_LOG_FILE,
    HTTP_LOG_FILE,
    HTTP_LOGGERS,
    ExcInfo,
    JSONFormatter,
    format_exception_for_json,
    setup_logging,
)


def _capture_json_lines(func) -> list[dict]:
    old_stdout = sys.stdout
    sys.stdout = io.StringIO()
    try:
        func()
        output = sys.stdout.getvalue()
    finally:
        sys.stdout = old_stdout
    return [json.loads(line) for line in output.strip().split("\n") if line.startswith("{")]


def test_format_exception_for_json_with_exception() -> None:
    """Test format_exception_for_json with a real exception."""
    try:
        raise ValueError("Test error message")
    except ValueError:
        exc_info: ExcInfo = sys.exc_info()  # type: ignore[assignment]

    result = format_exception_for_json(exc_info)

    assert result["exception_type"] == "ValueError"
    assert result["exception_message"] == "Test error message"
    assert result["exception_module"] == "builtins"
    assert isinstance(result["traceback_frames"], list)
    assert len(result["traceback_frames"]) > 0

    frame = result["traceback_frames"][0]
    assert isinstance(frame["filename"], str)
    assert isinstance(frame["lineno"], int)
    assert isinstance(frame["function"], str)

    assert "ValueError: Test error message" in result["traceback_text"]


def test_format_exception_for_json_with_none() -> None:
    """Test format_exception_for_json with None."""
    assert format_exception_for_json(None) == {}
    assert format_exception_for_json((None, None, None)) == {}


def test_setup_logging_debug_mode() -> None:
    """Test setup_logging in debug mode."""
    setup_logging(debug=True)

    assert logging.getLogger().level == logging.DEBUG
    structlog.get_logger("test.logger").info("Test message", key="value")


def test_setup_logging_production_mode() -> None:
    """Test setup_logging in production mode emits JSON."""

    def log() -> None:
        setup_logging(debug=False)
        structlog.get_logger("test.logger").info("Test message", key="value")

    lines = _capture_json_lines(log)

    assert logging.getLogger().level == logging.INFO
    assert lines[-1]["event"] == "Test message"
    assert lines[-1]["key"] == "value"
    assert lines[-1]["level"] == "info"
    assert "timestamp" in lines[-1]


def test_exception_logging_in_json() -> None:
    """Test that exceptions are logged in structured JSON format."""

    def log() -> None:
        setup_logging(debug=False)
        logger = structlog.get_logger("test.logger")
        try:
            raise ValueError("Test error")
        except ValueError:
            logger.exception("An error occurred", extra="context")

    log_data = _capture_json_lines(log)[-1]

    exc_details = log_data["exception"]
    assert exc_details["exception_type"] == "ValueError"
    assert exc_details["exception_message"] == "Test error"
    assert "traceback_frames" in exc_details
    assert log_data["exception_summary"] == "ValueError: Test error"


def test_exception_instance_in_exc_info() -> None:
    """Test that exc_info may be an exception instance."""

    def log() -> None:
        setup_logging(debug=False)
        structlog.get_logger("test.logger").warning(
            "Lookup failed", exc_info=RuntimeError("catalog down")
        )

    log_data = _capture_json_lines(log)[-1]

    assert log_data["exception_summary"] == "RuntimeError: catalog down"


def test_logging_with_trace_id() -> None:
    """Test that logging includes trace_id from context."""

    def log() -> None:
        setup_logging(debug=False)
        structlog.contextvars.bind_contextvars(trace_id="test-trace-123")
        structlog.get_logger("test.logger").info("Test message")

    try:
        log_data = _capture_json_lines(log)[-1]
    finally:
        structlog.contextvars.clear_contextvars()

    assert log_data["trace_id"] == "test-trace-123"


def test_file_logging(tmp_path: Path) -> None:
    """Test that file logging writes JSON app logs and routes HTTP client logs."""
    logs_dir = tmp_path / "logs"
    try:
        setup_logging(debug=False, logs_dir=logs_dir)

        structlog.get_logger("test.logger").info("Written to file", entries=3)
        logging.getLogger("httpx").warning("Slow response")

        for handler in logging.getLogger().handlers + logging.getLogger("httpx").handlers:
            handler.flush()

        app_lines = (logs_dir / APP_LOG_FILE).read_text().strip().split("\n")
        events = [json.loads(line)["event"] for line in app_lines]
        assert "Written to file" in events

        http_line = json.loads((logs_dir / HTTP_LOG_FILE).read_text().strip().split("\n")[-1])
        assert http_line["logger"] == "httpx"
        assert http_line["message"] == "Slow response"
        assert http_line["level"] == "WARNING"
    finally:
        setup_logging(debug=False)

    for name in HTTP_LOGGERS:
        assert logging.getLogger(name).propagate is True


def test_json_formatter() -> None:
    """Test JSONFormatter output for standard library records."""
    record = logging.LogRecord(
        name="httpcore",
        level=logging.ERROR,
        pathname=__file__,
        lineno=10,
        msg="Connection %s",
        args=("reset",),
        exc_info=None,
    )

    data = json.loads(JSONFormatter().format(record))

    assert data["logger"] == "httpcore"
    assert data["level"] == "ERROR"
    assert data["message"] == "Connection reset"
    assert data["timestamp"].endswith("Z")
