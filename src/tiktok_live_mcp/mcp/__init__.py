"""MCP tool surface for the live connection manager."""

from .server import LiveMCPServer, ToolResult
from .tools import TOOL_SPECS, get_tools

__all__ = ["LiveMCPServer", "TOOL_SPECS", "ToolResult", "get_tools"]
