"""Per-broadcast subscription state."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

from .events import EventKind, EventRecord, utcnow
from .history import DEFAULT_HISTORY_CAPACITY, HistoryBuffer
from .source import EventHandler, EventSource, HandshakeResult


class SubscriptionListing(NamedTuple):
    """One row of ``ConnectionManager.list()``."""
    key: str
    room_id: str
    viewer_count: int


@dataclass
class SubscriptionSummary:
    """Counters and history sizes for one subscription (no payloads)."""
    key: str
    room_id: str
    viewer_count: int
    stream_endpoint: Optional[Any]
    reconnect_attempts: int
    state: str
    connected_at: datetime
    history_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "room_id": self.room_id,
            "viewer_count": self.viewer_count,
            "stream_endpoint": self.stream_endpoint,
            "reconnect_attempts": self.reconnect_attempts,
            "state": self.state,
            "connected_at": self.connected_at.isoformat(),
            "history_counts": dict(self.history_counts),
        }


def _new_histories(capacity: int) -> Dict[EventKind, HistoryBuffer]:
    return {kind: HistoryBuffer(capacity) for kind in EventKind}


@dataclass(eq=False)
class Subscription:
    """State for one monitored broadcast.

    Every mutable field is guarded by ``lock``. The lock is never held across
    an ``await``, so callbacks, the reconnect task and readers can share it
    without suspending.
    """

    key: str
    room_id: str
    viewer_count: int = 0
    stream_endpoint: Optional[Any] = None
    room_info: Optional[Dict[str, Any]] = None
    histories: Dict[EventKind, HistoryBuffer] = field(default_factory=lambda: _new_histories(DEFAULT_HISTORY_CAPACITY))
    reconnect_attempts: int = 0
    connection: Optional[EventSource] = None
    pending_connection: Optional[EventSource] = None
    handlers: Dict[str, EventHandler] = field(default_factory=dict)
    supervisor: Optional[Any] = None
    connected_at: datetime = field(default_factory=utcnow)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def from_handshake(
        cls,
        key: str,
        handshake: HandshakeResult,
        capacity: int = DEFAULT_HISTORY_CAPACITY,
    ) -> "Subscription":
        return cls(
            key=key,
            room_id=str(handshake.room_id),
            viewer_count=int(handshake.viewer_count or 0),
            stream_endpoint=handshake.stream_endpoint,
            room_info=handshake.room_info,
            histories=_new_histories(capacity),
        )

    @property
    def state(self) -> str:
        if self.supervisor is None:
            return "connected"
        return self.supervisor.state.value

    def ingest(self, record: EventRecord, viewer_count: Optional[int] = None) -> None:
        """Append a record to its kind's history and update the viewer gauge."""
        with self.lock:
            self.histories[record.kind].append(record)
            if viewer_count is not None:
                self.viewer_count = viewer_count

    def snapshot(self, kind: EventKind, count: int) -> List[EventRecord]:
        with self.lock:
            return self.histories[kind].snapshot(count)

    def bind(self, source: EventSource) -> None:
        """Make ``source`` the owned connection and install this subscription's handlers."""
        with self.lock:
            self.connection = source
            for kind, handler in self.handlers.items():
                source.on(kind, handler)

    def unbind(self) -> Optional[EventSource]:
        """Detach the owned connection and return it for release.

        Returns None when there is nothing to release, so a dead handle is
        handed out at most once.
        """
        with self.lock:
            source, self.connection = self.connection, None
            if source is not None:
                for kind, handler in self.handlers.items():
                    source.off(kind, handler)
            return source

    def set_pending(self, source: Optional[EventSource]) -> None:
        with self.lock:
            self.pending_connection = source

    def release_all(self) -> List[EventSource]:
        """Detach the owned and any in-flight connection, for teardown."""
        sources = []
        current = self.unbind()
        if current is not None:
            sources.append(current)
        with self.lock:
            pending, self.pending_connection = self.pending_connection, None
        if pending is not None and pending is not current:
            sources.append(pending)
        return sources

    def apply_handshake(self, handshake: HandshakeResult) -> None:
        """Refresh identity and counters after a reconnect; histories are kept."""
        with self.lock:
            self.room_id = str(handshake.room_id)
            self.viewer_count = int(handshake.viewer_count or 0)
            if handshake.stream_endpoint is not None:
                self.stream_endpoint = handshake.stream_endpoint
            if handshake.room_info is not None:
                self.room_info = handshake.room_info
            self.reconnect_attempts = 0

    def record_failed_attempt(self) -> int:
        with self.lock:
            self.reconnect_attempts += 1
            return self.reconnect_attempts

    def listing(self) -> SubscriptionListing:
        with self.lock:
            return SubscriptionListing(self.key, self.room_id, self.viewer_count)

    def summary(self) -> SubscriptionSummary:
        with self.lock:
            return SubscriptionSummary(
                key=self.key,
                room_id=self.room_id,
                viewer_count=self.viewer_count,
                stream_endpoint=self.stream_endpoint,
                reconnect_attempts=self.reconnect_attempts,
                state=self.state,
                connected_at=self.connected_at,
                history_counts={kind.value: buf.size for kind, buf in self.histories.items()},
            )
