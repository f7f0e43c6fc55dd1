"""Entry point: serve the TikTok Live tools over MCP stdio."""

import asyncio
import logging
from typing import Optional

from mcp.server.stdio import stdio_server

from .config import Settings, get_settings
from .live.manager import ConnectionManager
from .live.registry import SubscriptionRegistry
from .mcp.server import LiveMCPServer
from .observability.logging import configure_logging
from .observability.metrics import start_metrics_server
from .runtime.process_manager import MediaProcessManager

logger = logging.getLogger(__name__)


def create_server(settings: Settings, source_factory=None) -> LiveMCPServer:
    """Wire the registry, managers and tool server together."""
    if source_factory is None:
        from .live.tiktok import tiktok_source_factory

        source_factory = tiktok_source_factory

    manager = ConnectionManager.from_settings(
        settings, source_factory, registry=SubscriptionRegistry()
    )
    processes = MediaProcessManager.from_settings(settings)
    return LiveMCPServer(manager, processes, name="tiktok-live", version=settings.app_version)


async def serve(settings: Optional[Settings] = None):
    """Run the MCP server on stdin/stdout until the client goes away."""
    settings = settings or get_settings()

    configure_logging(environment=settings.environment, log_level=settings.effective_log_level)

    if settings.enable_metrics:
        start_metrics_server(settings.metrics_port)

    live_server = create_server(settings)
    logger.info("%s v%s started", settings.app_name, settings.app_version)
    logger.info("Environment: %s", settings.environment)

    try:
        async with stdio_server() as (read_stream, write_stream):
            await live_server.server.run(
                read_stream,
                write_stream,
                live_server.server.create_initialization_options(),
            )
    finally:
        logger.info("Shutting down %s...", settings.app_name)
        await live_server.manager.shutdown()
        await live_server.processes.terminate_all()
        logger.info("%s shutdown complete", settings.app_name)


def main():
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
