"""Structured logging configuration for TikTok Live MCP.

Provides JSON-formatted structured logging with contextual fields
(subscription_key, tool_name) via contextvars. Logs go to stderr because
stdout carries the MCP stdio stream.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Optional

# Context variables for per-call / per-task logging fields
_subscription_key: ContextVar[Optional[str]] = ContextVar("subscription_key", default=None)
_tool_name: ContextVar[Optional[str]] = ContextVar("tool_name", default=None)


def set_log_context(
    subscription_key: Optional[str] = None,
    tool_name: Optional[str] = None,
):
    """Set contextual logging fields for the current async context."""
    if subscription_key is not None:
        _subscription_key.set(subscription_key)
    if tool_name is not None:
        _tool_name.set(tool_name)


def clear_log_context():
    """Clear all contextual logging fields."""
    _subscription_key.set(None)
    _tool_name.set(None)


def _context_fields() -> dict:
    fields = {}
    key = _subscription_key.get()
    if key:
        fields["subscription"] = key
    tool = _tool_name.get()
    if tool:
        fields["tool"] = tool
    return fields


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter with context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(_context_fields())

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable log formatter with context fields for development."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"[{self.formatTime(record, self.datefmt)}]",
            f"{record.levelname:8s}",
            f"{record.name}:",
            record.getMessage(),
        ]

        ctx = _context_fields()
        if ctx:
            parts.append("[" + ", ".join(f"{k}={v}" for k, v in ctx.items()) + "]")

        msg = " ".join(parts)

        if record.exc_info and record.exc_info[1]:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


def configure_logging(environment: str = "development", log_level: str = "INFO"):
    """Configure logging for the application.

    Args:
        environment: "production" for JSON output, anything else for human-readable.
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)

    if environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter(datefmt="%Y-%m-%d %H:%M:%S"))

    root_logger.addHandler(handler)

    # Quiet noisy third-party loggers
    for name in ("TikTokLive", "httpx", "httpcore", "websockets"):
        logging.getLogger(name).setLevel(logging.WARNING)
