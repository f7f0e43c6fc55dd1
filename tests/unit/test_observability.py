"""Unit tests for log formatting, log context and Prometheus helpers."""

import json
import logging
import sys

import pytest
from prometheus_client import REGISTRY

from tiktok_live_mcp.observability import metrics
from tiktok_live_mcp.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    clear_log_context,
    configure_logging,
    set_log_context,
)


def _record(message="Connected", level=logging.INFO):
    return logging.LogRecord("tiktok_live_mcp.live.manager", level, __file__, 1, message, (), None)


@pytest.fixture(autouse=True)
def _clean_context():
    clear_log_context()
    yield
    clear_log_context()


def test_structured_formatter_includes_context():
    set_log_context(subscription_key="alice", tool_name="tiktok-connect")

    entry = json.loads(StructuredFormatter().format(_record()))

    assert entry["level"] == "INFO"
    assert entry["logger"] == "tiktok_live_mcp.live.manager"
    assert entry["message"] == "Connected"
    assert entry["subscription"] == "alice"
    assert entry["tool"] == "tiktok-connect"


def test_structured_formatter_without_context():
    entry = json.loads(StructuredFormatter().format(_record()))

    assert "subscription" not in entry
    assert "tool" not in entry


def test_structured_formatter_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

    entry = json.loads(StructuredFormatter().format(record))

    assert "RuntimeError: boom" in entry["exception"]


def test_human_readable_formatter():
    set_log_context(subscription_key="alice")

    line = HumanReadableFormatter().format(_record(level=logging.WARNING))

    assert "WARNING" in line
    assert line.endswith("Connected [subscription=alice]")


def test_clear_log_context():
    set_log_context(subscription_key="alice", tool_name="tiktok-info")
    clear_log_context()

    assert "[" not in HumanReadableFormatter().format(_record()).split("Connected")[-1]


def test_configure_logging_uses_stderr():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(environment="production", log_level="DEBUG")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler.formatter, StructuredFormatter)
        assert handler.stream is sys.stderr
        assert logging.getLogger("TikTokLive").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_metric_factory_returns_singletons():
    assert metrics.tool_calls_total() is metrics.tool_calls_total()
    assert metrics.events_total() is metrics.events_total()


def _sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_recorded_values_reach_the_registry():
    tool_labels = {"tool_name": "tiktok-list", "status": "success"}
    before = {
        "tool": _sample("tiktok_live_tool_calls_total", tool_labels),
        "event": _sample("tiktok_live_events_total", {"kind": "chat"}),
        "reconnect": _sample("tiktok_live_reconnect_attempts_total", {"outcome": "failure"}),
        "eviction": _sample("tiktok_live_evictions_total"),
    }

    metrics.record_tool_call("tiktok-list", "success", 0.01)
    metrics.record_event("chat")
    metrics.record_reconnect_attempt("failure")
    metrics.record_eviction()
    metrics.set_active_subscriptions(2)
    metrics.set_media_processes(1)

    assert _sample("tiktok_live_tool_calls_total", tool_labels) == before["tool"] + 1
    assert _sample("tiktok_live_events_total", {"kind": "chat"}) == before["event"] + 1
    assert _sample("tiktok_live_reconnect_attempts_total", {"outcome": "failure"}) == before["reconnect"] + 1
    assert _sample("tiktok_live_evictions_total") == before["eviction"] + 1
    assert _sample("tiktok_live_active_subscriptions") == 2.0
    assert _sample("tiktok_live_media_processes") == 1.0


def test_metrics_text_lists_metric_families():
    metrics.record_tool_call("tiktok-info", "error", 0.01)

    text = metrics.generate_metrics_text()

    assert "# TYPE tiktok_live_tool_calls_total counter" in text
    assert "# TYPE tiktok_live_tool_call_duration_seconds histogram" in text
    assert 'tool_name="tiktok-info"' in text
