"""Prometheus metrics for TikTok Live MCP.

Cardinality rule: subscription keys are NOT labels (unbounded).
Tool names, event kinds and outcomes are labels (bounded).
"""

import logging
from typing import Optional

import prometheus_client

logger = logging.getLogger(__name__)

# --- Metric singletons (created on first access) ---

_metrics = {}


def _metric(name, metric_type, description, labelnames=()):
    """Get or create a Prometheus metric."""
    if name in _metrics:
        return _metrics[name]
    cls = getattr(prometheus_client, metric_type)
    m = cls(name, description, labelnames=labelnames)
    _metrics[name] = m
    return m


def tool_calls_total():
    return _metric(
        "tiktok_live_tool_calls_total",
        "Counter",
        "Total tool calls",
        labelnames=["tool_name", "status"],
    )


def tool_call_duration():
    return _metric(
        "tiktok_live_tool_call_duration_seconds",
        "Histogram",
        "Tool call duration in seconds",
        labelnames=["tool_name", "status"],
    )


def active_subscriptions():
    return _metric(
        "tiktok_live_active_subscriptions",
        "Gauge",
        "Number of live subscriptions in the registry",
    )


def events_total():
    return _metric(
        "tiktok_live_events_total",
        "Counter",
        "Events buffered from live sources",
        labelnames=["kind"],
    )


def reconnect_attempts_total():
    return _metric(
        "tiktok_live_reconnect_attempts_total",
        "Counter",
        "Reconnection attempts by outcome",
        labelnames=["outcome"],
    )


def evictions_total():
    return _metric(
        "tiktok_live_evictions_total",
        "Counter",
        "Subscriptions evicted after exhausting reconnection attempts",
    )


def media_processes():
    return _metric(
        "tiktok_live_media_processes",
        "Gauge",
        "Number of running playback/recording processes",
    )


# --- Helper functions for recording metrics ---

def record_tool_call(tool_name: str, status: str, duration: float):
    tool_calls_total().labels(tool_name=tool_name, status=status).inc()
    tool_call_duration().labels(tool_name=tool_name, status=status).observe(duration)


def record_event(kind: str):
    events_total().labels(kind=kind).inc()


def record_reconnect_attempt(outcome: str):
    reconnect_attempts_total().labels(outcome=outcome).inc()


def record_eviction():
    evictions_total().inc()


def set_active_subscriptions(count: int):
    active_subscriptions().set(count)


def set_media_processes(count: int):
    media_processes().set(count)


def generate_metrics_text() -> str:
    """Render all registered metrics in the Prometheus exposition format."""
    return prometheus_client.generate_latest().decode("utf-8")


def start_metrics_server(port: int, addr: str = "127.0.0.1") -> Optional[object]:
    """Expose metrics over HTTP on ``addr:port``."""
    logger.info("Serving Prometheus metrics on %s:%d", addr, port)
    return prometheus_client.start_http_server(port, addr=addr)
