# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Upstream Session Manager
Owns the single upstream connection, its state and reconnection
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from mcp_relay.backoff import next_delay
from mcp_relay.core.config import Settings
from mcp_relay.core.errors import UpstreamConnectionError, sanitize_error_for_log
from mcp_relay.upstream_session import UpstreamSession

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class UpstreamSessionManager:
    """Manages connect, close handling and backoff reconnects for one upstream"""

    def __init__(
        self,
        settings: Settings,
        session_factory: Optional[Callable[[Settings], UpstreamSession]] = None,
    ):
        self.settings = settings
        self.session_factory = session_factory or UpstreamSession.from_settings

        self.state = ConnectionState.DISCONNECTED
        self.session: Optional[UpstreamSession] = None
        self.reconnect_attempts = 0
        self.reconnect_task: Optional[asyncio.Task] = None

        self._connect_lock = asyncio.Lock()
        self._closed = False

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED and self.session is not None

    @property
    def reconnect_pending(self) -> bool:
        return self.reconnect_task is not None and not self.reconnect_task.done()

    def next_reconnect_delay(self) -> int:
        """Delay in ms for the next attempt; bumps the attempt counter"""
        delay = next_delay(
            self.reconnect_attempts,
            base_ms=self.settings.backoff_base_ms,
            max_ms=self.settings.backoff_max_ms,
        )
        self.reconnect_attempts += 1
        return delay

    async def connect(self) -> UpstreamSession:
        """Open a fresh upstream session and make it current"""
        async with self._connect_lock:
            if self._closed:
                raise UpstreamConnectionError("Relay is shutting down", endpoint=self.settings.endpoint_url)

            logger.info(f"Connecting to upstream server at {self.settings.endpoint_url}...")
            self.state = ConnectionState.CONNECTING
            session = self.session_factory(self.settings)
            session.on_close = self._handle_session_closed

            try:
                await session.open()
            except UpstreamConnectionError as e:
                self.state = ConnectionState.DISCONNECTED
                logger.error(f"Failed to connect to upstream server: {e.message}")
                raise
            except Exception as e:
                self.state = ConnectionState.DISCONNECTED
                reason = sanitize_error_for_log(e)
                logger.error(f"Failed to connect to upstream server: {reason}")
                raise UpstreamConnectionError(
                    f"Failed to connect to {self.settings.endpoint_url}: {reason}",
                    endpoint=self.settings.endpoint_url,
                ) from e
            except BaseException:
                self.state = ConnectionState.DISCONNECTED
                raise

            # The stream may already have dropped while we were resuming
            if not session.is_open:
                self.state = ConnectionState.DISCONNECTED
                raise UpstreamConnectionError(
                    "Upstream closed immediately after handshake",
                    endpoint=self.settings.endpoint_url,
                )

            self.session = session
            self.state = ConnectionState.CONNECTED
            self.reconnect_attempts = 0
            logger.info("Connected to upstream server successfully")
            return session

    def _handle_session_closed(self, session: UpstreamSession) -> None:
        """Close observer registered on every session"""
        if session is not self.session:
            logger.debug("Ignoring close of a superseded upstream session")
            return

        logger.warning("Upstream connection closed, attempting to reconnect...")
        self.state = ConnectionState.DISCONNECTED
        self.session = None
        self.schedule_reconnect()

    def schedule_reconnect(self) -> Optional[asyncio.Task]:
        """Start the reconnect loop unless one is already pending"""
        if self._closed:
            return None
        if self.reconnect_pending or self.state is ConnectionState.CONNECTING:
            logger.debug("Reconnect already in progress")
            return self.reconnect_task

        self.reconnect_task = asyncio.create_task(self._reconnect_loop())
        return self.reconnect_task

    async def _reconnect_loop(self) -> None:
        """Retry with growing delays until connected or closed"""
        while not self._closed:
            delay = self.next_reconnect_delay()
            logger.info(f"Reconnecting in {delay}ms (attempt {self.reconnect_attempts})...")
            await asyncio.sleep(delay / 1000)

            try:
                await self.connect()
            except UpstreamConnectionError as e:
                logger.warning(f"Reconnection failed: {e.message}")
                continue

            logger.info("Reconnected to upstream server")
            return

    async def close(self) -> None:
        """Stop reconnecting and close the current session, ignoring errors"""
        self._closed = True

        task = self.reconnect_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        session = self.session
        self.session = None
        self.state = ConnectionState.DISCONNECTED
        if session is not None:
            try:
                await session.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing upstream session: {e}")
