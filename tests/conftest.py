"""Test configuration and fixtures."""

import asyncio
import os
from typing import List, Optional

import pytest

# Set test environment variables BEFORE importing the package
os.environ["ENVIRONMENT"] = "test"

from tiktok_live_mcp.live.exceptions import ConnectError
from tiktok_live_mcp.live.manager import ConnectionManager
from tiktok_live_mcp.live.source import BaseEventSource, HandshakeResult


DEFAULT_HANDSHAKE = HandshakeResult(
    room_id="room-1",
    viewer_count=10,
    stream_endpoint={"flv_pull_url": {"FULL_HD1": "https://pull.example/stream.flv"}},
    room_info={"user_count": 10},
)


class FakeEventSource(BaseEventSource):
    """Scripted event source.

    ``outcome`` is either a ``HandshakeResult`` to return from ``open`` or an
    exception to raise. When ``gate`` is set, ``open`` waits on it first; a
    ``close`` during that wait fails the handshake unless
    ``survive_close`` is set.
    """

    def __init__(self, key, options, outcome, gate: Optional[asyncio.Event] = None, survive_close=False):
        super().__init__(key, options)
        self.outcome = outcome
        self.gate = gate
        self.survive_close = survive_close
        self.open_calls = 0
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def open(self) -> HandshakeResult:
        self.open_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.closed and not self.survive_close:
            raise ConnectError("connection closed during handshake", self.key)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    async def close(self) -> None:
        self.close_calls += 1
        if self.gate is not None:
            self.gate.set()


class FakeSourceFactory:
    """``EventSourceFactory`` handing out ``FakeEventSource`` objects in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.created: List[FakeEventSource] = []
        self._gate: Optional[asyncio.Event] = None
        self._survive_close = False

    def push(self, *outcomes):
        self.outcomes.extend(outcomes)

    def hold_next(self, survive_close: bool = False) -> asyncio.Event:
        """Make the next source's handshake wait until the returned event is set."""
        self._gate = asyncio.Event()
        self._survive_close = survive_close
        return self._gate

    def __call__(self, key, options):
        outcome = self.outcomes.pop(0) if self.outcomes else DEFAULT_HANDSHAKE
        source = FakeEventSource(key, options, outcome, gate=self._gate, survive_close=self._survive_close)
        self._gate = None
        self._survive_close = False
        self.created.append(source)
        return source


@pytest.fixture
def source_factory():
    return FakeSourceFactory()


@pytest.fixture
def manager(source_factory):
    """Manager with no reconnect delay and a short connect timeout."""
    return ConnectionManager(
        source_factory,
        source_options={"fetch_room_info": True},
        history_capacity=100,
        max_reconnect_attempts=5,
        reconnect_delay=0,
        connect_timeout=1.0,
    )
