"""TikTok Live MCP - multi-session live event monitoring over MCP."""

__version__ = "1.0.0"
