"""Tests for the TikTokLive payload mapping and event source wiring.

The client is patched out; no network connection is made.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

pytest.importorskip("TikTokLive")

from tiktok_live_mcp.live import tiktok  # noqa: E402
from tiktok_live_mcp.live.exceptions import ConnectError  # noqa: E402


def _user(unique_id="fan", user_id=7, nickname="Fan"):
    return SimpleNamespace(unique_id=unique_id, id=user_id, nickname=nickname)


class TestPayloads:
    """Test mapping of client events to payload mappings."""

    def test_user_fields(self):
        assert tiktok.user_fields(_user()) == {"unique_id": "fan", "user_id": "7", "nickname": "Fan"}
        assert tiktok.user_fields(None) == {"unique_id": None, "user_id": None, "nickname": None}

    def test_comment_payload(self):
        payload = tiktok.comment_payload(SimpleNamespace(user=_user(), comment="hi"))

        assert payload["comment"] == "hi"
        assert payload["unique_id"] == "fan"

    def test_gift_payload(self):
        event = SimpleNamespace(
            user=_user(),
            gift=SimpleNamespace(id=5655, name="Rose", diamond_count=1),
            repeat_count=4,
        )

        payload = tiktok.gift_payload(event)

        assert payload["gift_id"] == 5655
        assert payload["gift_name"] == "Rose"
        assert payload["diamond_count"] == 1
        assert payload["repeat_count"] == 4

    def test_like_and_join_payloads(self):
        assert tiktok.like_payload(SimpleNamespace(user=_user(), count=15))["like_count"] == 15
        assert tiktok.join_payload(SimpleNamespace(user=_user()))["nickname"] == "Fan"

    def test_viewer_payload(self):
        assert tiktok.viewer_payload(SimpleNamespace(m_total=250))["viewer_count"] == 250
        assert tiktok.viewer_payload(SimpleNamespace(total=12))["viewer_count"] == 12

    def test_stream_endpoint(self):
        room_info = {
            "stream_url": {
                "flv_pull_url": {"FULL_HD1": "https://pull.example/a.flv"},
                "hls_pull_url": "",
                "rtmp_pull_url": "rtmp://pull.example/a",
            }
        }

        assert tiktok.stream_endpoint(room_info) == {
            "flv_pull_url": {"FULL_HD1": "https://pull.example/a.flv"},
            "rtmp_pull_url": "rtmp://pull.example/a",
        }
        assert tiktok.stream_endpoint({}) is None
        assert tiktok.stream_endpoint(None) is None


@pytest.fixture
def client():
    with patch.object(tiktok, "TikTokLiveClient") as MockClient:
        instance = MagicMock()
        instance.connected = True
        instance.disconnect = AsyncMock()
        MockClient.return_value = instance
        yield MockClient


class TestTikTokEventSource:
    """Test the event source over a mocked client."""

    def test_session_id_is_passed_through(self, client):
        tiktok.TikTokEventSource("alice", {"session_id": "abc123", "tt_target_idc": "eu-ttp2"})

        client.assert_called_once_with(unique_id="alice")
        client.return_value.web.set_session.assert_called_once_with("abc123", "eu-ttp2")

    def test_no_session_id(self, client):
        tiktok.TikTokEventSource("alice", {})

        client.return_value.web.set_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_open_returns_handshake(self, client):
        instance = client.return_value
        task = MagicMock()
        instance.start = AsyncMock(return_value=task)
        instance.room_id = 7123
        instance.room_info = {
            "user_count": 321,
            "stream_url": {"hls_pull_url": "https://pull.example/a.m3u8"},
        }
        source = tiktok.TikTokEventSource("alice", {"fetch_room_info": True, "process_initial_data": False})

        handshake = await source.open()

        instance.start.assert_awaited_once_with(fetch_room_info=True, process_connect_events=False)
        task.add_done_callback.assert_called_once()
        assert handshake.room_id == "7123"
        assert handshake.viewer_count == 321
        assert handshake.stream_endpoint == {"hls_pull_url": "https://pull.example/a.m3u8"}

    @pytest.mark.asyncio
    async def test_open_failure_raises_connect_error(self, client):
        client.return_value.start = AsyncMock(side_effect=RuntimeError("user is offline"))
        source = tiktok.TikTokEventSource("alice", {})

        with pytest.raises(ConnectError, match="user is offline"):
            await source.open()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, client):
        source = tiktok.TikTokEventSource("alice", {})

        await source.close()
        await source.close()

        client.return_value.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_events_are_emitted(self, client):
        source = tiktok.TikTokEventSource("alice", {})
        received = []
        source.on("chat", received.append)

        await source._on_comment(SimpleNamespace(user=_user(), comment="hi"))

        assert received[0]["comment"] == "hi"

    @pytest.mark.asyncio
    async def test_disconnect_signal_suppressed_after_close(self, client):
        source = tiktok.TikTokEventSource("alice", {})
        signals = []
        source.on("disconnected", signals.append)

        await source._on_disconnect(SimpleNamespace())
        await source.close()
        await source._on_disconnect(SimpleNamespace())

        assert len(signals) == 1

    def test_task_failure_emits_error(self, client):
        source = tiktok.TikTokEventSource("alice", {})
        errors = []
        source.on("error", errors.append)
        task = MagicMock()
        task.cancelled.return_value = False
        task.exception.return_value = OSError("socket closed")

        source._on_task_done(task)

        assert isinstance(errors[0]["error"], OSError)


class TestRealClient:
    """Test against the installed TikTokLive client class (no network)."""

    @pytest.mark.asyncio
    async def test_session_cookies_are_set(self):
        source = tiktok.TikTokEventSource("someone", {"session_id": "abc123", "tt_target_idc": "eu-ttp2"})

        cookies = source._client.web.cookies
        assert cookies.get("sessionid") == "abc123"
        assert cookies.get("tt-target-idc") == "eu-ttp2"

    @pytest.mark.asyncio
    async def test_session_without_target_idc(self):
        source = tiktok.TikTokEventSource("someone", {"session_id": "abc123"})

        assert source._client.web.cookies.get("sessionid") == "abc123"

    @pytest.mark.asyncio
    async def test_factory_with_session_id(self):
        source = tiktok.tiktok_source_factory("someone", {"session_id": "abc123"})

        assert isinstance(source, tiktok.TikTokEventSource)
        assert source.key == "someone"
