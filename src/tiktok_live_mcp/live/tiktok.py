"""TikTok LIVE event source backed by the ``TikTokLive`` client library.

Maps the client's typed events onto the payload mappings the manager
consumes:

- CommentEvent -> ``chat``
- GiftEvent -> ``gift``
- LikeEvent -> ``like``
- JoinEvent, RoomUserSeqEvent -> ``roster`` (the latter carries the viewer count)
- DisconnectEvent, or the client task finishing -> ``disconnected`` / ``error``
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from TikTokLive import TikTokLiveClient
from TikTokLive.events import (
    CommentEvent,
    DisconnectEvent,
    GiftEvent,
    JoinEvent,
    LikeEvent,
    RoomUserSeqEvent,
)

from .exceptions import ConnectError
from .source import SIGNAL_DISCONNECTED, SIGNAL_ERROR, BaseEventSource, HandshakeResult

logger = logging.getLogger(__name__)

STREAM_URL_FIELDS = ("flv_pull_url", "hls_pull_url", "rtmp_pull_url", "hls_pull_url_map")


def user_fields(user: Any) -> Dict[str, Optional[str]]:
    """Identity fields of a TikTok user object."""
    if user is None:
        return {"unique_id": None, "user_id": None, "nickname": None}
    nickname = getattr(user, "nickname", None) or getattr(user, "nick_name", None)
    user_id = getattr(user, "id", None) or getattr(user, "user_id", None)
    return {
        "unique_id": getattr(user, "unique_id", None),
        "user_id": None if user_id is None else str(user_id),
        "nickname": nickname,
    }


def comment_payload(event: Any) -> Dict[str, Any]:
    return {**user_fields(getattr(event, "user", None)), "comment": getattr(event, "comment", "")}


def gift_payload(event: Any) -> Dict[str, Any]:
    gift = getattr(event, "gift", None)
    return {
        **user_fields(getattr(event, "user", None)),
        "gift_id": getattr(gift, "id", None),
        "gift_name": getattr(gift, "name", None),
        "diamond_count": getattr(gift, "diamond_count", 0),
        "repeat_count": getattr(event, "repeat_count", 1),
    }


def like_payload(event: Any) -> Dict[str, Any]:
    return {**user_fields(getattr(event, "user", None)), "like_count": getattr(event, "count", 0)}


def join_payload(event: Any) -> Dict[str, Any]:
    return user_fields(getattr(event, "user", None))


def viewer_payload(event: Any) -> Dict[str, Any]:
    viewer_count = getattr(event, "m_total", None)
    if viewer_count is None:
        viewer_count = getattr(event, "total", None)
    return {**user_fields(None), "viewer_count": viewer_count}


def stream_endpoint(room_info: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Pull URLs from the room info, or None when the room exposes none."""
    stream_url = (room_info or {}).get("stream_url") or {}
    endpoint = {name: stream_url[name] for name in STREAM_URL_FIELDS if stream_url.get(name)}
    return endpoint or None


class TikTokEventSource(BaseEventSource):
    """One ``TikTokLiveClient`` connection.

    Options:
        fetch_room_info: Fetch room info during the handshake (stream URLs, viewers).
        process_initial_data: Emit the events bundled with the initial payload.
        session_id: TikTok session cookie, passed through unchanged.
        tt_target_idc: Data center holding the session's account (e.g. ``eu-ttp2``).
    """

    def __init__(self, key: str, options: Optional[Dict[str, Any]] = None):
        super().__init__(key, options)
        self._client = TikTokLiveClient(unique_id=key)
        self._task: Optional[asyncio.Task] = None
        self._closed = False

        session_id = self.options.get("session_id")
        if session_id:
            self._client.web.set_session(session_id, self.options.get("tt_target_idc"))

        self._client.add_listener(CommentEvent, self._on_comment)
        self._client.add_listener(GiftEvent, self._on_gift)
        self._client.add_listener(LikeEvent, self._on_like)
        self._client.add_listener(JoinEvent, self._on_join)
        self._client.add_listener(RoomUserSeqEvent, self._on_room_user)
        self._client.add_listener(DisconnectEvent, self._on_disconnect)

    async def open(self) -> HandshakeResult:
        try:
            self._task = await self._client.start(
                fetch_room_info=bool(self.options.get("fetch_room_info", True)),
                process_connect_events=bool(self.options.get("process_initial_data", True)),
            )
        except Exception as e:
            raise ConnectError(f"Failed to connect to {self.key}'s livestream: {e}", self.key) from e

        self._task.add_done_callback(self._on_task_done)
        room_info = self._client.room_info or {}
        return HandshakeResult(
            room_id=str(self._client.room_id),
            viewer_count=int(room_info.get("user_count") or 0),
            stream_endpoint=stream_endpoint(room_info),
            room_info=room_info,
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._client.connected:
            await self._client.disconnect()
        elif self._task is not None and not self._task.done():
            self._task.cancel()

    async def _on_comment(self, event: CommentEvent):
        self.emit("chat", comment_payload(event))

    async def _on_gift(self, event: GiftEvent):
        self.emit("gift", gift_payload(event))

    async def _on_like(self, event: LikeEvent):
        self.emit("like", like_payload(event))

    async def _on_join(self, event: JoinEvent):
        self.emit("roster", join_payload(event))

    async def _on_room_user(self, event: RoomUserSeqEvent):
        self.emit("roster", viewer_payload(event))

    async def _on_disconnect(self, event: DisconnectEvent):
        if not self._closed:
            self.emit(SIGNAL_DISCONNECTED, {"reason": "remote disconnect"})

    def _on_task_done(self, task: asyncio.Task):
        if self._closed or task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.emit(SIGNAL_ERROR, {"error": error})
        else:
            self.emit(SIGNAL_DISCONNECTED, {"reason": "connection closed"})


def tiktok_source_factory(key: str, options: Dict[str, Any]) -> TikTokEventSource:
    """``EventSourceFactory`` for TikTok LIVE."""
    return TikTokEventSource(key, options)
