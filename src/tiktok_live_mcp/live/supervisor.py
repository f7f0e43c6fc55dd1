"""Bounded-retry reconnection state machine for one subscription.

States:
- CONNECTED: the subscription has a live connection (attempt = 0)
- RECONNECTING: a reconnect loop is running (attempt = 1..max_attempts)
- EXHAUSTED: terminal; the subscription is evicted by ``on_exhausted``

Retries use a fixed delay, not exponential backoff, and do not distinguish
transient failures from a broadcast that has ended; a finished broadcast is
meant to run out of attempts and be evicted.

The supervisor knows nothing about event sources. It is driven through
injected callables so it can be exercised without a live connection.
"""

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional

from ..observability.logging import set_log_context

logger = logging.getLogger(__name__)

MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY_SECONDS = 5.0


class ReconnectState(str, enum.Enum):
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"


class ReconnectSupervisor:
    """Drives reconnection after an unexpected disconnect.

    Args:
        key: Subscription key (for logging).
        reconnect: Performs one handshake attempt. Returns True when the
            subscription was reattached, False when it no longer exists.
            Raises on handshake failure.
        is_active: Whether the subscription is still registered.
        on_failure: Called with (attempt, error) after each failed attempt.
        on_exhausted: Awaited once when attempts run out.
        max_attempts: Handshake attempts before giving up.
        delay: Seconds to wait after each failed attempt.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        key: str,
        *,
        reconnect: Callable[[], Awaitable[bool]],
        is_active: Callable[[], bool],
        on_failure: Optional[Callable[[int, BaseException], None]] = None,
        on_exhausted: Optional[Callable[[], Awaitable[None]]] = None,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        delay: float = RECONNECT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.key = key
        self.max_attempts = max_attempts
        self.delay = delay
        self.state = ReconnectState.CONNECTED
        self.attempt = 0
        self._reconnect = reconnect
        self._is_active = is_active
        self._on_failure = on_failure
        self._on_exhausted = on_exhausted
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def notify_disconnect(self, reason: str = "disconnected") -> bool:
        """Handle a disconnect or error signal.

        Starts the reconnect loop from CONNECTED. While already reconnecting,
        or once exhausted, the signal is ignored so that at most one attempt
        is in flight.

        Returns:
            True if a reconnect loop was started.
        """
        if self.state is not ReconnectState.CONNECTED:
            logger.debug(
                "Ignoring %s signal for %s while %s (attempt %d)",
                reason, self.key, self.state.value, self.attempt,
            )
            return False

        logger.warning("Lost connection to %s's livestream (%s)", self.key, reason)
        self.state = ReconnectState.RECONNECTING
        self.attempt = 1
        self._task = asyncio.create_task(self._run())
        return True

    async def _run(self):
        set_log_context(subscription_key=self.key)
        while self.attempt <= self.max_attempts:
            if not self._is_active():
                logger.debug("Subscription %s is gone; stopping reconnect loop", self.key)
                return

            logger.info(
                "Attempting to reconnect to %s's livestream (attempt %d/%d)",
                self.key, self.attempt, self.max_attempts,
            )
            try:
                reattached = await self._reconnect()
            except Exception as e:
                logger.warning(
                    "Failed to reconnect to %s's livestream (attempt %d/%d): %s",
                    self.key, self.attempt, self.max_attempts, e,
                )
                if self._on_failure is not None:
                    self._on_failure(self.attempt, e)
                await self._sleep(self.delay)
                self.attempt += 1
                continue

            if not reattached:
                logger.debug("Subscription %s was removed during reconnect", self.key)
                return

            self.state = ReconnectState.CONNECTED
            self.attempt = 0
            logger.info("Successfully reconnected to %s's livestream", self.key)
            return

        self.state = ReconnectState.EXHAUSTED
        logger.error(
            "Max reconnection attempts (%d) reached for %s's livestream",
            self.max_attempts, self.key,
        )
        if self._on_exhausted is not None and self._is_active():
            await self._on_exhausted()

    async def join(self):
        """Wait for the current reconnect loop, if any, to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def cancel(self):
        """Cancel the reconnect loop (used on shutdown)."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
