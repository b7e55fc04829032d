"""
Unit tests for structured logging utilities.
"""

import pytest
import json
import logging
from io import StringIO

from app.utils.logging import (
    JSONFormatter,
    get_logger,
    log_api_call,
    log_error_with_context,
    log_transition,
)


@pytest.fixture
def captured():
    """Logger writing JSON records into a buffer."""
    logger = get_logger("test.structured")
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    logger.logger.addHandler(handler)
    logger.logger.setLevel(logging.DEBUG)

    yield logger, stream

    logger.logger.removeHandler(handler)


def _records(stream: StringIO):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def test_json_formatter_basic():
    """Test JSON formatter produces valid JSON with standard fields."""
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname="test.py",
        lineno=42,
        msg="Test message",
        args=(),
        exc_info=None
    )

    log_data = json.loads(formatter.format(record))

    assert log_data["level"] == "INFO"
    assert log_data["logger"] == "test.logger"
    assert log_data["message"] == "Test message"
    assert log_data["timestamp"].endswith("Z")
    assert log_data["source"]["line"] == 42


def test_json_formatter_promotes_context_fields():
    """Test that known context fields land at the top level."""
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="test.py", lineno=1,
        msg="Tick", args=(), exc_info=None
    )
    record.pr_id = "pr-1"
    record.tick_id = "tick-3"
    record.risk_score = 2

    log_data = json.loads(formatter.format(record))

    assert log_data["pr_id"] == "pr-1"
    assert log_data["tick_id"] == "tick-3"
    assert log_data["context"] == {"risk_score": 2}


def test_adapter_context_and_call_site_extra(captured):
    """Test that call-site extra fields override adapter context."""
    logger, stream = captured
    scoped = logger.with_context(pr_id="pr-1", sink="toast")

    scoped.info("Delivered", extra={"sink": "log"})

    log_data = _records(stream)[0]
    assert log_data["pr_id"] == "pr-1"
    assert log_data["sink"] == "log"


def test_with_context_leaves_parent_untouched():
    """Test creating child loggers."""
    parent = get_logger("test", pr_id="pr-1")
    child = parent.with_context(tick_id="tick-1")

    assert child.extra == {"pr_id": "pr-1", "tick_id": "tick-1"}
    assert parent.extra == {"pr_id": "pr-1"}


def test_log_transition_applied(captured):
    """Test logging of an applied transition."""
    logger, stream = captured

    log_transition(logger, "pr-1", "approved", "reviewing", "approved")

    log_data = _records(stream)[0]
    assert log_data["level"] == "INFO"
    assert log_data["pr_id"] == "pr-1"
    assert log_data["event"] == "approved"
    assert log_data["context"]["new_status"] == "approved"


def test_log_transition_rejected(captured):
    """Test rejected transitions are logged as warnings with a reason."""
    logger, stream = captured

    log_transition(logger, "pr-1", "merged", "assigned", "assigned", applied=False, reason="not approved")

    log_data = _records(stream)[0]
    assert log_data["level"] == "WARNING"
    assert log_data["context"]["reason"] == "not approved"


def test_log_api_call(captured):
    """Test API call logging."""
    logger, stream = captured

    log_api_call(
        logger,
        service="teams_webhook",
        endpoint="https://example.webhook.office.com/hook",
        method="POST",
        status_code=200,
        duration_ms=150.456
    )

    context = _records(stream)[0]["context"]
    assert context["service"] == "teams_webhook"
    assert context["status_code"] == 200
    assert context["duration_ms"] == 150.46


def test_log_api_call_with_error(captured):
    """Test API call logging with error."""
    logger, stream = captured

    log_api_call(logger, service="azure_devops", endpoint="pullrequests", method="GET",
                 error="Connection timeout")

    log_data = _records(stream)[0]
    assert log_data["level"] == "ERROR"
    assert log_data["context"]["error"] == "Connection timeout"


def test_log_error_with_context(captured):
    """Test error logging carries the stack trace."""
    logger, stream = captured

    try:
        raise ValueError("bad snapshot")
    except ValueError as e:
        log_error_with_context(logger, "Failed to process PR pr-1", e, pr_id="pr-1")

    log_data = _records(stream)[0]
    assert log_data["pr_id"] == "pr-1"
    assert log_data["context"]["error_type"] == "ValueError"
    assert log_data["error"]["message"] == "bad snapshot"
    assert "Traceback" in log_data["error"]["stack_trace"]
