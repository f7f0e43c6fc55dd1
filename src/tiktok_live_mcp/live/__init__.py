"""Live connection core: subscriptions, histories and reconnection."""

from .events import EventKind, EventRecord, build_record
from .exceptions import (
    ConnectError,
    InvalidKindError,
    LiveError,
    NotConnectedError,
    ProcessError,
    ReconnectExhaustedError,
)
from .history import HistoryBuffer
from .manager import ConnectionManager
from .registry import SubscriptionRegistry
from .source import BaseEventSource, EventSource, HandshakeResult
from .subscription import Subscription, SubscriptionListing, SubscriptionSummary
from .supervisor import ReconnectState, ReconnectSupervisor

__all__ = [
    "BaseEventSource",
    "ConnectError",
    "ConnectionManager",
    "EventKind",
    "EventRecord",
    "EventSource",
    "HandshakeResult",
    "HistoryBuffer",
    "InvalidKindError",
    "LiveError",
    "NotConnectedError",
    "ProcessError",
    "ReconnectExhaustedError",
    "ReconnectState",
    "ReconnectSupervisor",
    "Subscription",
    "SubscriptionListing",
    "SubscriptionRegistry",
    "SubscriptionSummary",
    "build_record",
]
