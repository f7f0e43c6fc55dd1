"""Multi-session live connection manager.

Owns one ``Subscription`` per remote broadcast, wires each connection's
events into the subscription's histories, and runs a ``ReconnectSupervisor``
per subscription when its connection drops.

Invariants:
- the registry only guards membership; each subscription has its own lock
- connect is serialised per key (asyncio.Lock + double-check), so a key
  owns at most one connection
- a caller's disconnect wins over an in-flight reconnect: the reconnect
  path re-checks registry membership after its handshake and releases the
  new connection if the subscription is gone
"""

import asyncio
import functools
import logging
from typing import Any, Dict, List, Mapping, Optional, Set

from ..observability.metrics import (
    record_event,
    record_eviction,
    record_reconnect_attempt,
    set_active_subscriptions,
)
from .events import EventKind, EventRecord, build_record
from .exceptions import ConnectError, NotConnectedError, ReconnectExhaustedError
from .history import DEFAULT_HISTORY_CAPACITY
from .registry import SubscriptionRegistry
from .source import (
    SIGNAL_DISCONNECTED,
    SIGNAL_ERROR,
    EventSource,
    EventSourceFactory,
    HandshakeResult,
)
from .subscription import Subscription, SubscriptionListing, SubscriptionSummary
from .supervisor import (
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_DELAY_SECONDS,
    ReconnectState,
    ReconnectSupervisor,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_COUNT = 10
DEFAULT_CONNECT_TIMEOUT = 30.0


class ConnectionManager:
    """Registry-backed manager of concurrent live subscriptions."""

    def __init__(
        self,
        source_factory: EventSourceFactory,
        *,
        registry: Optional[SubscriptionRegistry] = None,
        source_options: Optional[Dict[str, Any]] = None,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
        default_history_count: int = DEFAULT_HISTORY_COUNT,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        sleep=asyncio.sleep,
    ):
        self.registry = registry if registry is not None else SubscriptionRegistry()
        self.history_capacity = history_capacity
        self.default_history_count = default_history_count
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self._source_factory = source_factory
        self._source_options = dict(source_options or {})
        self._sleep = sleep
        self._connect_locks: Dict[str, asyncio.Lock] = {}
        self._connect_waiters: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings,
        source_factory: EventSourceFactory,
        registry: Optional[SubscriptionRegistry] = None,
    ) -> "ConnectionManager":
        """Build a manager from application ``Settings``."""
        return cls(
            source_factory,
            registry=registry,
            source_options=settings.get_source_options(),
            history_capacity=settings.history_capacity,
            default_history_count=settings.default_history_count,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            reconnect_delay=settings.reconnect_delay_seconds,
            connect_timeout=settings.connect_timeout_seconds,
        )

    # -- Caller operations -------------------------------------------------

    async def connect(self, key: str) -> SubscriptionSummary:
        """Open a subscription for ``key``, or return the existing one.

        Raises:
            ConnectError: If the handshake fails or times out. No
                subscription is left behind.
        """
        existing = self.registry.get(key)
        if existing is not None:
            logger.debug("Already connected to %s", key)
            return existing.summary()

        lock = self._connect_locks.setdefault(key, asyncio.Lock())
        self._connect_waiters[key] = self._connect_waiters.get(key, 0) + 1
        try:
            async with lock:
                # Double-check after acquiring lock
                existing = self.registry.get(key)
                if existing is not None:
                    return existing.summary()
                return await self._open_subscription(key)
        finally:
            # Drop the lock once no caller holds or waits on it
            self._connect_waiters[key] -= 1
            if self._connect_waiters[key] == 0:
                del self._connect_waiters[key]
                self._connect_locks.pop(key, None)

    async def disconnect(self, key: str) -> SubscriptionSummary:
        """Close and remove the subscription for ``key``.

        Returns the final summary of the removed subscription.

        Raises:
            NotConnectedError: If no subscription exists for ``key``.
        """
        subscription = self.registry.pop(key)
        if subscription is None:
            raise NotConnectedError(key)
        set_active_subscriptions(len(self.registry))

        summary = subscription.summary()
        for source in subscription.release_all():
            await self._close_source(source)

        logger.info("Disconnected from %s's livestream", key)
        return summary

    def list(self) -> List[SubscriptionListing]:
        """Snapshot of (key, room_id, viewer_count) for every subscription."""
        return [sub.listing() for sub in self.registry.snapshot()]

    def info(self, key: str) -> SubscriptionSummary:
        """Counters and history sizes for ``key``.

        Raises:
            NotConnectedError: If no subscription exists for ``key``.
        """
        return self._require(key).summary()

    def history(self, key: str, kind: Any, count: Optional[int] = None) -> List[EventRecord]:
        """Most recent ``count`` records of ``kind`` for ``key``, oldest first.

        ``count`` defaults to ``default_history_count`` and is clamped to be
        non-negative.

        Raises:
            NotConnectedError: If no subscription exists for ``key``.
            InvalidKindError: If ``kind`` is not a recognized event kind.
        """
        subscription = self._require(key)
        event_kind = EventKind.parse(kind)
        if count is None:
            count = self.default_history_count
        return subscription.snapshot(event_kind, max(0, int(count)))

    async def probe(self, key: str) -> HandshakeResult:
        """Handshake once to read room details, then close. Nothing is registered.

        Raises:
            ConnectError: If the handshake fails or times out.
        """
        source, handshake = await self._handshake(key)
        await self._close_source(source)
        return handshake

    async def shutdown(self):
        """Stop all reconnect loops and close every connection."""
        for subscription in self.registry.clear():
            # Release first so an in-flight reconnect handshake is closed too
            for source in subscription.release_all():
                await self._close_source(source)
            if subscription.supervisor is not None:
                await subscription.supervisor.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        set_active_subscriptions(0)

    # -- Internals ---------------------------------------------------------

    def _require(self, key: str) -> Subscription:
        subscription = self.registry.get(key)
        if subscription is None:
            raise NotConnectedError(key)
        return subscription

    async def _open_subscription(self, key: str) -> SubscriptionSummary:
        """Handshake and register a new subscription. Caller holds the key's lock."""
        source, handshake = await self._handshake(key)
        try:
            subscription = Subscription.from_handshake(key, handshake, self.history_capacity)
            subscription.handlers = self._build_handlers(subscription)
            subscription.supervisor = self._build_supervisor(subscription)
            subscription.bind(source)
            self.registry.add(subscription)
        except Exception:
            await self._close_source(source)
            raise
        set_active_subscriptions(len(self.registry))

        logger.info(
            "Connected to %s's livestream (room_id=%s, viewers=%d)",
            key, subscription.room_id, subscription.viewer_count,
        )
        return subscription.summary()

    async def _handshake(self, key: str, subscription: Optional[Subscription] = None):
        """Open a fresh source for ``key`` and await its handshake.

        The source is recorded as the subscription's pending connection while
        the handshake is in flight, so a concurrent disconnect can close it.
        The source is closed on any failure, and a factory failure is
        reported as ``ConnectError`` like any other handshake failure.
        """
        try:
            source = self._source_factory(key, dict(self._source_options))
        except ConnectError:
            raise
        except Exception as e:
            raise ConnectError(f"Failed to connect to {key}'s livestream: {e}", key) from e
        if subscription is not None:
            subscription.set_pending(source)
        try:
            handshake = await asyncio.wait_for(source.open(), timeout=self.connect_timeout)
        except asyncio.TimeoutError as e:
            await self._close_source(source)
            raise ConnectError(
                f"Timed out after {self.connect_timeout:.0f}s connecting to {key}'s livestream", key
            ) from e
        except ConnectError:
            await self._close_source(source)
            raise
        except Exception as e:
            await self._close_source(source)
            raise ConnectError(f"Failed to connect to {key}'s livestream: {e}", key) from e
        finally:
            if subscription is not None:
                subscription.set_pending(None)
        return source, handshake

    async def _close_source(self, source: EventSource):
        try:
            await source.close()
        except Exception as e:
            logger.warning("Error closing connection for %s: %s", source.key, e)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _build_handlers(self, subscription: Subscription):
        handlers = {
            kind.value: functools.partial(self._on_event, subscription, kind)
            for kind in EventKind
        }
        handlers[SIGNAL_DISCONNECTED] = functools.partial(self._on_signal, subscription, SIGNAL_DISCONNECTED)
        handlers[SIGNAL_ERROR] = functools.partial(self._on_signal, subscription, SIGNAL_ERROR)
        return handlers

    def _build_supervisor(self, subscription: Subscription) -> ReconnectSupervisor:
        return ReconnectSupervisor(
            subscription.key,
            reconnect=functools.partial(self._reconnect_once, subscription),
            is_active=functools.partial(self.registry.holds, subscription),
            on_failure=functools.partial(self._on_reconnect_failure, subscription),
            on_exhausted=functools.partial(self._evict, subscription),
            max_attempts=self.max_reconnect_attempts,
            delay=self.reconnect_delay,
            sleep=self._sleep,
        )

    def _on_event(self, subscription: Subscription, kind: EventKind, payload: Mapping[str, Any]):
        """Buffer one upstream event. A removed subscription makes this a no-op."""
        if not self.registry.holds(subscription):
            logger.debug("Dropping late %s event for %s", kind.value, subscription.key)
            return

        record = build_record(kind, payload)
        viewer_count = None
        if kind is EventKind.ROSTER and payload.get("viewer_count") is not None:
            try:
                viewer_count = int(payload["viewer_count"])
            except (TypeError, ValueError):
                viewer_count = None
        subscription.ingest(record, viewer_count=viewer_count)
        record_event(kind.value)

    def _on_signal(self, subscription: Subscription, signal: str, payload: Mapping[str, Any]):
        """Hand a disconnect/error signal to the subscription's supervisor."""
        if not self.registry.holds(subscription):
            return
        supervisor = subscription.supervisor
        if supervisor.state is not ReconnectState.CONNECTED:
            supervisor.notify_disconnect(signal)
            return

        error = payload.get("error") if payload else None
        if error is not None:
            logger.error("Error in %s's livestream connection: %s", subscription.key, error)

        dead = subscription.unbind()
        if dead is not None:
            self._spawn(self._close_source(dead))
        supervisor.notify_disconnect(signal)

    async def _reconnect_once(self, subscription: Subscription) -> bool:
        source, handshake = await self._handshake(subscription.key, subscription)

        if not self.registry.holds(subscription):
            logger.info(
                "Subscription %s was removed while reconnecting; releasing new connection",
                subscription.key,
            )
            await self._close_source(source)
            return False

        subscription.apply_handshake(handshake)
        subscription.bind(source)
        record_reconnect_attempt("success")
        return True

    def _on_reconnect_failure(self, subscription: Subscription, attempt: int, error: BaseException):
        subscription.record_failed_attempt()
        record_reconnect_attempt("failure")

    async def _evict(self, subscription: Subscription):
        if not self.registry.discard(subscription):
            return
        set_active_subscriptions(len(self.registry))
        for source in subscription.release_all():
            await self._close_source(source)
        record_eviction()
        exc = ReconnectExhaustedError(subscription.key, subscription.reconnect_attempts)
        logger.error("Evicted %s: %s", subscription.key, exc)
