"""
Tests for structured logging and the Prometheus registry.
"""

import io
import json
import logging

import pytest
import structlog

from splunk_mcp.shared.observability import (
    get_correlation_id,
    get_logger,
    get_metrics,
    set_correlation_id,
    setup_logging,
)
from splunk_mcp.shared.observability.metrics import mcp_tool_calls_total


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestCorrelationId:
    def test_set_returns_new_id(self):
        first = set_correlation_id()
        second = set_correlation_id()

        assert first != second
        assert get_correlation_id() == second

    def test_explicit_id(self):
        set_correlation_id("req-123")

        assert get_correlation_id() == "req-123"


class TestSetupLogging:
    def test_json_lines_carry_correlation_id(self, restore_logging):
        stream = io.StringIO()
        setup_logging("INFO", stream=stream)
        set_correlation_id("corr-1")

        get_logger("tests.logging").info("Listed indexes", count=3)

        line = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert line["event"] == "Listed indexes"
        assert line["count"] == 3
        assert line["level"] == "info"
        assert line["correlation_id"] == "corr-1"
        assert line["logger"] == "tests.logging"

    def test_level_filters_lower_levels(self, restore_logging):
        stream = io.StringIO()
        setup_logging("WARNING", stream=stream)

        get_logger("tests.logging").info("hidden")

        assert stream.getvalue() == ""

    def test_noisy_loggers_raised(self, restore_logging):
        setup_logging("DEBUG", stream=io.StringIO())

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING


class TestMetrics:
    def test_exposition_contains_tool_counter(self):
        mcp_tool_calls_total.labels("ping", "success").inc()

        text = get_metrics().decode("utf-8")

        assert "mcp_tool_calls_total" in text
        assert 'tool_name="ping"' in text
