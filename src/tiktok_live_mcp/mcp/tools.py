"""Tool definitions and argument models for the TikTok Live MCP server."""

from typing import Dict, List, Optional, Type

from mcp import types
from pydantic import BaseModel, ConfigDict, Field

USERNAME_DESCRIPTION = "TikTok username of someone who is currently live, start with @"


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class NoArgs(ToolArgs):
    pass


class UsernameArgs(ToolArgs):
    username: str = Field(min_length=1, description=USERNAME_DESCRIPTION)


class CountArgs(UsernameArgs):
    count: Optional[int] = Field(
        default=None,
        description="Number of entries to retrieve (default: 10)",
    )


class HistoryArgs(CountArgs):
    kind: str = Field(description="History kind: chat, gift, like or roster")


class PlayArgs(ToolArgs):
    url: str = Field(min_length=1, description="Video URL to play. Use the full url with expire and sign")


class RecordArgs(ToolArgs):
    url: str = Field(min_length=1, description="Video URL to record. Use the full url with expire and sign")
    filename: str = Field(min_length=1, description="Output filename for the recorded video")


class PidArgs(ToolArgs):
    pid: int = Field(description="The pid of the process to stop")


# tool name -> (description, argument model)
TOOL_SPECS: Dict[str, tuple] = {
    "tiktok-connect": (
        "Connect to a TikTok livestream and start buffering its chat, gifts, likes and viewers",
        UsernameArgs,
    ),
    "tiktok-disconnect": ("Disconnect from a TikTok livestream", UsernameArgs),
    "tiktok-list": ("List active TikTok livestream connections", NoArgs),
    "tiktok-info": ("Get stream information and buffered event counts for a connection", UsernameArgs),
    "tiktok-messages": ("Get recent chat messages from a connected livestream", CountArgs),
    "tiktok-gifts": ("Get recent gifts from a connected livestream", CountArgs),
    "tiktok-likes": ("Get recent likes from a connected livestream", CountArgs),
    "tiktok-viewers": ("Get recent viewer roster entries from a connected livestream", CountArgs),
    "tiktok-history": ("Get recent events of any kind from a connected livestream", HistoryArgs),
    "tiktok-stream-url": (
        "Get the stream url for a given username. Do not need to connect first.",
        UsernameArgs,
    ),
    "play-video": ("Play a video from a given url. Use the full url with expire and sign", PlayArgs),
    "stop-video": ("Stop a video player started with play-video", PidArgs),
    "record-video": (
        "Record a video from a given url. Use the full url with expire and sign. Returns the pid of the ffmpeg process",
        RecordArgs,
    ),
    "stop-record-video": ("Stop a recording started with record-video", PidArgs),
}


def _input_schema(model: Type[ToolArgs]) -> dict:
    schema = model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    schema.setdefault("properties", {})
    return schema


def get_tools() -> List[types.Tool]:
    """MCP tool descriptors for every supported tool."""
    return [
        types.Tool(name=name, description=description, inputSchema=_input_schema(model))
        for name, (description, model) in TOOL_SPECS.items()
    ]
