"""Typed event records buffered per subscription."""

import enum
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Mapping, Optional, Type

from .exceptions import InvalidKindError


class EventKind(str, enum.Enum):
    """Kinds of events kept in a subscription's history."""

    CHAT = "chat"
    GIFT = "gift"
    LIKE = "like"
    ROSTER = "roster"

    @classmethod
    def parse(cls, value: Any) -> "EventKind":
        """Resolve a kind from its name, raising ``InvalidKindError`` if unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidKindError(str(value)) from None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


@dataclass
class EventRecord:
    """Common fields of every buffered event.

    ``timestamp`` is the moment the manager received the event; upstream
    timestamps are not trusted.
    """

    kind: ClassVar[EventKind]

    unique_id: Optional[str]
    user_id: Optional[str]
    nickname: Optional[str]
    timestamp: datetime

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], timestamp: datetime) -> "EventRecord":
        return cls(**cls._identity(payload), timestamp=timestamp)

    @staticmethod
    def _identity(payload: Mapping[str, Any]) -> Dict[str, Optional[str]]:
        return {
            "unique_id": _as_str(payload.get("unique_id")),
            "user_id": _as_str(payload.get("user_id")),
            "nickname": _as_str(payload.get("nickname")),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["timestamp"] = self.timestamp.isoformat()
        return data

    def describe(self) -> str:
        return f"{self.timestamp.isoformat()} - {self.unique_id}"


@dataclass
class ChatRecord(EventRecord):
    kind: ClassVar[EventKind] = EventKind.CHAT

    comment: str = ""

    @classmethod
    def from_payload(cls, payload, timestamp):
        return cls(
            **cls._identity(payload),
            timestamp=timestamp,
            comment=str(payload.get("comment") or ""),
        )

    def describe(self) -> str:
        return f"{super().describe()}: {self.comment}"


@dataclass
class GiftRecord(EventRecord):
    kind: ClassVar[EventKind] = EventKind.GIFT

    gift_id: Optional[str] = None
    gift_name: Optional[str] = None
    diamond_count: int = 0
    repeat_count: int = 1

    @classmethod
    def from_payload(cls, payload, timestamp):
        return cls(
            **cls._identity(payload),
            timestamp=timestamp,
            gift_id=_as_str(payload.get("gift_id")),
            gift_name=_as_str(payload.get("gift_name")),
            diamond_count=_as_int(payload.get("diamond_count")),
            repeat_count=_as_int(payload.get("repeat_count"), default=1),
        )

    def describe(self) -> str:
        return (
            f"{super().describe()}: Gift {self.gift_name} (ID: {self.gift_id}) "
            f"x{self.repeat_count}, Diamond Value: {self.diamond_count}"
        )


@dataclass
class LikeRecord(EventRecord):
    kind: ClassVar[EventKind] = EventKind.LIKE

    like_count: int = 0

    @classmethod
    def from_payload(cls, payload, timestamp):
        return cls(
            **cls._identity(payload),
            timestamp=timestamp,
            like_count=_as_int(payload.get("like_count")),
        )

    def describe(self) -> str:
        return f"{super().describe()}: {self.like_count} like(s)"


@dataclass
class RosterRecord(EventRecord):
    kind: ClassVar[EventKind] = EventKind.ROSTER

    def describe(self) -> str:
        return f"{super().describe()} ({self.nickname})"


RECORD_TYPES: Dict[EventKind, Type[EventRecord]] = {
    EventKind.CHAT: ChatRecord,
    EventKind.GIFT: GiftRecord,
    EventKind.LIKE: LikeRecord,
    EventKind.ROSTER: RosterRecord,
}


def build_record(
    kind: EventKind,
    payload: Mapping[str, Any],
    timestamp: Optional[datetime] = None,
) -> EventRecord:
    """Build the typed record for an upstream payload, stamped at receipt."""
    return RECORD_TYPES[kind].from_payload(payload, timestamp or utcnow())
