# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
MCP Relay - process entry point

Connects to the upstream HTTP/SSE MCP server, mirrors its capabilities and
serves them to a single stdio MCP client (e.g. an editor or CLI agent).
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from mcp.server.stdio import stdio_server

from mcp_relay.capabilities import describe, probe
from mcp_relay.core.config import Settings, get_settings
from mcp_relay.core.errors import UpstreamConnectionError
from mcp_relay.core.logging import configure_logging
from mcp_relay.relay_server import RelayDispatcher
from mcp_relay.upstream_session_manager import UpstreamSessionManager

logger = logging.getLogger("mcp_relay.main")

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def log_configuration(settings: Settings) -> None:
    logger.info("Starting MCP Relay...")
    logger.info(
        "Configuration:\n"
        f"  - Upstream URL: {settings.remote_base_url}\n"
        f"  - SSE Path: {settings.sse_path}\n"
        f"  - Full SSE Endpoint: {settings.endpoint_url}\n"
        f"  - Custom Headers: {'Yes' if settings.has_custom_headers else 'No'}"
    )


async def start_relay(settings: Settings, manager: UpstreamSessionManager) -> RelayDispatcher:
    """Connect, probe and bind handlers; a failed first connect is fatal"""
    session = await manager.connect()

    logger.info("Probing upstream capabilities...")
    capabilities = await probe(session)
    logger.info(f"Upstream capabilities: {describe(capabilities)}")

    return RelayDispatcher(manager, capabilities, settings)


async def serve_stdio(dispatcher: RelayDispatcher) -> None:
    async with stdio_server() as (read_stream, write_stream):
        logger.info("Relay server started successfully")
        logger.info("Waiting for MCP requests from stdio client...")
        await dispatcher.server.run(
            read_stream,
            write_stream,
            dispatcher.initialization_options(),
        )


def install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))


async def run_relay(settings: Settings, stop: Optional[asyncio.Event] = None) -> int:
    """Run the relay until the client leaves or a shutdown signal arrives"""
    stop = stop or asyncio.Event()
    manager = UpstreamSessionManager(settings)

    stop_task = asyncio.create_task(stop.wait())
    start_task = asyncio.create_task(start_relay(settings, manager))
    serve_task: Optional[asyncio.Task] = None
    try:
        await asyncio.wait({start_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if not start_task.done():
            logger.info("Shutting down before startup completed...")
            return 0
        try:
            dispatcher = start_task.result()
        except UpstreamConnectionError as e:
            logger.error(f"Fatal error: {e.message}")
            return 1

        serve_task = asyncio.create_task(serve_stdio(dispatcher))
        done, _ = await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if stop_task in done:
            logger.info("Shutting down...")
        else:
            logger.info("stdio client disconnected, shutting down...")
            if serve_task.exception() is not None:
                logger.error(f"Relay server stopped with error: {serve_task.exception()}")
        return 0
    finally:
        tasks = [task for task in (start_task, serve_task, stop_task) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await manager.close()


async def _main() -> int:
    # Settings loading may already warn (e.g. bad BRIDGE_HEADERS)
    configure_logging(os.getenv("LOG_LEVEL") or "INFO", os.getenv("LOG_FORMAT") or "text")
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    log_configuration(settings)

    stop = asyncio.Event()
    install_signal_handlers(stop)
    return await run_relay(settings, stop)


def main() -> None:
    try:
        exit_code = asyncio.run(_main())
    except KeyboardInterrupt:
        exit_code = 0
    except Exception:
        logger.exception("Fatal error")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
