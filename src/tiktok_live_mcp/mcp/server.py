"""MCP server exposing the live connection manager as tools."""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from mcp import types
from mcp.server import Server
from pydantic import ValidationError

from ..live.events import EventKind
from ..live.exceptions import LiveError, NotConnectedError
from ..live.manager import ConnectionManager
from ..observability.logging import clear_log_context, set_log_context
from ..observability.metrics import record_tool_call
from ..runtime.process_manager import MediaProcessManager
from .tools import TOOL_SPECS, get_tools

logger = logging.getLogger(__name__)

# tool name -> (kind, label used in responses)
HISTORY_TOOLS = {
    "tiktok-messages": (EventKind.CHAT, "messages"),
    "tiktok-gifts": (EventKind.GIFT, "gifts"),
    "tiktok-likes": (EventKind.LIKE, "likes"),
    "tiktok-viewers": (EventKind.ROSTER, "viewers"),
}


@dataclass
class ToolResult:
    """Outcome of one tool call: text for the caller and an error flag."""
    text: str
    is_error: bool = False

    def to_call_tool_result(self) -> types.CallToolResult:
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=self.text)],
            isError=self.is_error,
        )


class LiveMCPServer:
    """Tool front-end over a ``ConnectionManager`` and a ``MediaProcessManager``.

    ``execute_tool`` is the error boundary: it never raises, every failure
    becomes a ``ToolResult`` with ``is_error`` set.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        processes: MediaProcessManager,
        name: str = "tiktok-live",
        version: Optional[str] = None,
    ):
        self.manager = manager
        self.processes = processes
        self.server = Server(
            name,
            version=version,
            instructions="A server for accessing TikTok livestream chat data and events",
        )
        self._handlers = {
            "tiktok-connect": self._connect,
            "tiktok-disconnect": self._disconnect,
            "tiktok-list": self._list,
            "tiktok-info": self._info,
            "tiktok-history": self._history,
            "tiktok-stream-url": self._stream_url,
            "play-video": self._play_video,
            "stop-video": self._stop_video,
            "record-video": self._record_video,
            "stop-record-video": self._stop_record_video,
        }
        for tool_name in HISTORY_TOOLS:
            self._handlers[tool_name] = self._history
        self._setup_handlers()

    def _setup_handlers(self):
        """Set up MCP protocol handlers."""

        @self.server.list_tools()
        async def handle_list_tools() -> List[types.Tool]:
            return get_tools()

        @self.server.call_tool()
        async def handle_call_tool(
            name: str, arguments: Optional[Dict[str, Any]] = None
        ) -> types.CallToolResult:
            result = await self.execute_tool(name, arguments)
            return result.to_call_tool_result()

    async def execute_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Validate arguments, run the tool and convert failures into error results."""
        arguments = arguments or {}
        tool_spec = TOOL_SPECS.get(name)
        if tool_spec is None:
            return ToolResult(f"Unknown tool: {name}", is_error=True)

        _, args_model = tool_spec
        set_log_context(tool_name=name, subscription_key=arguments.get("username"))
        start = time.perf_counter()
        try:
            args = args_model.model_validate(arguments)
            result = await self._handlers[name](name, args)
        except ValidationError as e:
            result = ToolResult(f"Invalid arguments for {name}: {e}", is_error=True)
        except NotConnectedError as e:
            result = ToolResult(f"{e}. Use tiktok-connect first.", is_error=True)
        except LiveError as e:
            result = ToolResult(str(e), is_error=True)
        except Exception as e:
            logger.error("Tool execution failed: %s - %s", name, e, exc_info=True)
            result = ToolResult(f"Error executing tool {name}: {e}", is_error=True)
        finally:
            clear_log_context()

        status = "error" if result.is_error else "success"
        record_tool_call(tool_name=name, status=status, duration=time.perf_counter() - start)
        logger.info("Tool call: %s (%s)", name, status)
        return result

    # -- Live subscriptions -------------------------------------------------

    async def _connect(self, name, args) -> ToolResult:
        username = args.username
        existing = username in self.manager.registry
        summary = await self.manager.connect(username)
        if existing:
            return ToolResult(f"Already connected to {username}'s livestream (Room ID: {summary.room_id})")
        endpoint = summary.stream_endpoint or "No stream url"
        return ToolResult(
            f"Successfully connected to {username}'s livestream (Room ID: {summary.room_id}) "
            f"with info {_json(endpoint)}"
        )

    async def _disconnect(self, name, args) -> ToolResult:
        await self.manager.disconnect(args.username)
        return ToolResult(f"Successfully disconnected from {args.username}'s livestream")

    async def _list(self, name, args) -> ToolResult:
        listings = self.manager.list()
        if not listings:
            return ToolResult("No active connections to any TikTok livestreams")
        lines = [f"{l.key} (Room ID: {l.room_id}, Viewers: {l.viewer_count})" for l in listings]
        return ToolResult("Active TikTok livestream connections:\n\n" + "\n".join(lines))

    async def _info(self, name, args) -> ToolResult:
        summary = self.manager.info(args.username)
        counts = summary.history_counts
        return ToolResult(
            f"Stream information for {args.username}:\n\n"
            f"Room ID: {summary.room_id}\n"
            f"Viewers: {summary.viewer_count}\n"
            f"State: {summary.state}\n"
            f"Reconnect attempts: {summary.reconnect_attempts}\n"
            f"Total Messages: {counts.get(EventKind.CHAT.value, 0)}\n"
            f"Total Gifts: {counts.get(EventKind.GIFT.value, 0)}\n"
            f"Total Likes: {counts.get(EventKind.LIKE.value, 0)}\n"
            f"Total Users: {counts.get(EventKind.ROSTER.value, 0)}\n"
        )

    async def _history(self, name, args) -> ToolResult:
        if name in HISTORY_TOOLS:
            kind, label = HISTORY_TOOLS[name]
        else:
            kind, label = args.kind, None
        records = self.manager.history(args.username, kind, args.count)
        if label is None:
            label = f"{EventKind.parse(kind).value} events"
        if not records:
            return ToolResult(f"No {label} yet in {args.username}'s livestream")
        lines = "\n".join(record.describe() for record in records)
        return ToolResult(f"Recent {label} from {args.username}'s livestream:\n\n{lines}")

    async def _stream_url(self, name, args) -> ToolResult:
        handshake = await self.manager.probe(args.username)
        endpoint = handshake.stream_endpoint or "No stream url"
        return ToolResult(f"Stream url for {args.username} is {_json(endpoint)}")

    # -- Media processes ----------------------------------------------------

    async def _play_video(self, name, args) -> ToolResult:
        handle = await self.processes.play(args.url)
        return ToolResult(f"Video playback started with PID: {handle.pid}")

    async def _stop_video(self, name, args) -> ToolResult:
        await self.processes.terminate(args.pid)
        return ToolResult(f"Stopped process {args.pid}")

    async def _record_video(self, name, args) -> ToolResult:
        handle = await self.processes.record(args.url, args.filename)
        return ToolResult(f"Video recording started with PID: {handle.pid}")

    async def _stop_record_video(self, name, args) -> ToolResult:
        await self.processes.terminate(args.pid)
        return ToolResult(f"Stopped recording process {args.pid}")


def _json(value: Any) -> str:
    return json.dumps(value, default=str)
