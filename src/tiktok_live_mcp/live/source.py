"""Event source interface for live broadcast connections.

An ``EventSource`` is one connection to one remote broadcast. The manager
registers handlers per kind (``chat``, ``gift``, ``like``, ``roster``) and per
lifecycle signal (``disconnected``, ``error``); the source calls them on the
event loop thread with a plain payload mapping.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

SIGNAL_DISCONNECTED = "disconnected"
SIGNAL_ERROR = "error"

EventHandler = Callable[[Mapping[str, Any]], None]


@dataclass
class HandshakeResult:
    """Outcome of a successful connect exchange."""
    room_id: str
    viewer_count: int = 0
    stream_endpoint: Optional[Any] = None
    room_info: Optional[Dict[str, Any]] = None


class EventSource(ABC):
    """A live connection to a single broadcast."""

    def __init__(self, key: str, options: Optional[Dict[str, Any]] = None):
        self.key = key
        self.options = dict(options or {})

    @abstractmethod
    async def open(self) -> HandshakeResult:
        """Perform the handshake.

        Raises:
            ConnectError: If the broadcast cannot be joined.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        pass

    @abstractmethod
    def on(self, kind: str, handler: EventHandler) -> None:
        """Register a handler for an event kind or signal."""
        pass

    @abstractmethod
    def off(self, kind: str, handler: EventHandler) -> None:
        """Remove a handler previously registered with ``on``."""
        pass


class BaseEventSource(EventSource):
    """Event source with handler bookkeeping and dispatch."""

    def __init__(self, key: str, options: Optional[Dict[str, Any]] = None):
        super().__init__(key, options)
        self._handlers: Dict[str, List[EventHandler]] = {}

    def on(self, kind: str, handler: EventHandler) -> None:
        self._handlers.setdefault(kind, []).append(handler)

    def off(self, kind: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(kind)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handler_count(self, kind: Optional[str] = None) -> int:
        if kind is not None:
            return len(self._handlers.get(kind, []))
        return sum(len(h) for h in self._handlers.values())

    def emit(self, kind: str, payload: Optional[Mapping[str, Any]] = None) -> None:
        """Deliver ``payload`` to every handler registered for ``kind``.

        A failing handler is logged and does not affect the others.
        """
        for handler in list(self._handlers.get(kind, [])):
            try:
                handler(payload or {})
            except Exception as e:
                logger.error("Handler for %s event on %s failed: %s", kind, self.key, e, exc_info=True)


EventSourceFactory = Callable[[str, Dict[str, Any]], EventSource]
