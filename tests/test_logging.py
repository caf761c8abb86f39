"""Tests for request context binding and timed operations."""
import pytest
import structlog
from structlog.testing import capture_logs

from finance_analytics.logging import (
    TimedOperation,
    clear_request_context,
    get_logger,
    set_request_context,
)


class TestRequestContext:

    def teardown_method(self):
        clear_request_context()

    def test_request_and_user_bound(self):
        set_request_context("req-1")
        set_request_context("req-1", user_id="user-9")

        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1", "user_id": "user-9"}

    def test_clear(self):
        set_request_context("req-1", user_id="user-9")
        clear_request_context()

        assert structlog.contextvars.get_contextvars() == {}


class TestTimedOperation:

    def test_completed(self):
        with capture_logs() as logs:
            with TimedOperation("credit_analysis", get_logger("test"), user_id="u1") as op:
                pass

        completed = [entry for entry in logs if entry["event"] == "credit_analysis_completed"]
        assert len(completed) == 1
        assert completed[0]["user_id"] == "u1"
        assert op.duration_seconds == pytest.approx(op.duration_ms / 1000)

    def test_failure_logged_with_error_type(self):
        with capture_logs() as logs:
            with pytest.raises(ValueError):
                with TimedOperation("forecast_analysis", get_logger("test")):
                    raise ValueError("bad input")

        failed = [entry for entry in logs if entry["event"] == "forecast_analysis_failed"]
        assert failed[0]["error_type"] == "ValueError"
        assert failed[0]["error"] == "bad input"
