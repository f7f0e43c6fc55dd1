"""Tests for event kinds, typed records and the history ring buffer."""

from datetime import datetime, timezone

import pytest

from tiktok_live_mcp.live.events import (
    ChatRecord,
    EventKind,
    GiftRecord,
    LikeRecord,
    RosterRecord,
    build_record,
)
from tiktok_live_mcp.live.exceptions import InvalidKindError
from tiktok_live_mcp.live.history import HistoryBuffer

STAMP = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


class TestEventKind:
    """Test EventKind parsing."""

    def test_parse_names(self):
        assert EventKind.parse("chat") is EventKind.CHAT
        assert EventKind.parse(" Gift ") is EventKind.GIFT
        assert EventKind.parse(EventKind.ROSTER) is EventKind.ROSTER

    def test_parse_unknown(self):
        with pytest.raises(InvalidKindError, match="Unknown history kind: 'follow'"):
            EventKind.parse("follow")


class TestRecords:
    """Test record construction and rendering."""

    def test_build_chat_record(self):
        """Test a chat payload becomes a ChatRecord stamped at receipt."""
        record = build_record(
            EventKind.CHAT,
            {"unique_id": "fan", "user_id": 42, "nickname": "Fan", "comment": "hi"},
            timestamp=STAMP,
        )

        assert isinstance(record, ChatRecord)
        assert record.user_id == "42"
        assert record.timestamp == STAMP
        assert record.describe() == "2024-05-01T12:30:00+00:00 - fan: hi"

    def test_build_gift_record(self):
        """Test gift fields and their rendering."""
        record = build_record(
            EventKind.GIFT,
            {"unique_id": "fan", "gift_id": 5655, "gift_name": "Rose", "diamond_count": 1, "repeat_count": 3},
            timestamp=STAMP,
        )

        assert isinstance(record, GiftRecord)
        assert record.gift_id == "5655"
        assert record.describe().endswith("Gift Rose (ID: 5655) x3, Diamond Value: 1")

    def test_gift_defaults(self):
        """Test missing gift fields fall back to defaults."""
        record = build_record(EventKind.GIFT, {"repeat_count": "n/a"}, timestamp=STAMP)

        assert record.gift_id is None
        assert record.diamond_count == 0
        assert record.repeat_count == 1

    def test_like_and_roster_records(self):
        like = build_record(EventKind.LIKE, {"unique_id": "fan", "like_count": 15}, timestamp=STAMP)
        roster = build_record(EventKind.ROSTER, {"unique_id": "fan", "nickname": "Fan"}, timestamp=STAMP)

        assert isinstance(like, LikeRecord)
        assert like.describe().endswith("fan: 15 like(s)")
        assert isinstance(roster, RosterRecord)
        assert roster.describe().endswith("fan (Fan)")

    def test_timestamp_defaults_to_now(self):
        before = datetime.now(timezone.utc)
        record = build_record(EventKind.CHAT, {"comment": "hi"})

        assert record.timestamp >= before
        assert record.timestamp.tzinfo is not None

    def test_to_dict(self):
        record = build_record(EventKind.LIKE, {"unique_id": "fan", "like_count": 2}, timestamp=STAMP)

        data = record.to_dict()

        assert data["kind"] == "like"
        assert data["like_count"] == 2
        assert data["timestamp"] == "2024-05-01T12:30:00+00:00"


class TestHistoryBuffer:
    """Test the bounded FIFO history."""

    def _chat(self, n):
        return build_record(EventKind.CHAT, {"comment": f"m{n}"}, timestamp=STAMP)

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            HistoryBuffer(0)

    def test_append_evicts_oldest(self):
        """Test appending past capacity keeps the newest records in order."""
        buffer = HistoryBuffer(3)
        for n in range(5):
            buffer.append(self._chat(n))

        assert buffer.size == 3
        assert [r.comment for r in buffer.snapshot(10)] == ["m2", "m3", "m4"]

    def test_snapshot_counts(self):
        """Test snapshot returns the tail and never mutates."""
        buffer = HistoryBuffer(10)
        for n in range(4):
            buffer.append(self._chat(n))

        assert [r.comment for r in buffer.snapshot(2)] == ["m2", "m3"]
        assert buffer.snapshot(0) == []
        assert buffer.snapshot(-1) == []
        assert len(buffer) == 4
        assert buffer.capacity == 10
