# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Upstream Session
One live HTTP/SSE connection to the upstream MCP server
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Type, TypeVar

import anyio
from anyio.abc import ObjectReceiveStream, ObjectSendStream
from mcp import ClientSession, types
from mcp.client.sse import sse_client

from mcp_relay.core.config import Settings
from mcp_relay.core.errors import (
    UpstreamConnectionError,
    UpstreamUnavailableError,
    sanitize_error_for_log,
)

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=types.Result)


class UpstreamSession:
    """
    Owns the SSE transport and the MCP client session on top of it.

    The transport contexts are entered and exited inside a single runner
    task. When the SSE stream ends on its own, `on_close` is called once
    with this session; closing it through `close()` does not notify.
    """

    def __init__(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        client_info: Optional[types.Implementation] = None,
        connect_timeout: float = 30.0,
        sse_read_timeout: float = 300.0,
    ):
        self.endpoint = endpoint
        self.headers = headers
        self.client_info = client_info
        self.connect_timeout = connect_timeout
        self.sse_read_timeout = sse_read_timeout

        self.on_close: Optional[Callable[["UpstreamSession"], Any]] = None
        self.server_info: Optional[types.Implementation] = None
        self.server_capabilities: Optional[types.ServerCapabilities] = None
        self.initialized_at: Optional[datetime] = None

        self._client: Optional[ClientSession] = None
        self._runner: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._opened = False
        self._closing = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "UpstreamSession":
        return cls(
            endpoint=settings.endpoint_url,
            headers=settings.extra_headers,
            client_info=types.Implementation(
                name=settings.identity_name,
                version=settings.identity_version,
            ),
            connect_timeout=settings.connect_timeout,
            sse_read_timeout=settings.sse_read_timeout,
        )

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._stop.is_set()

    async def open(self) -> "UpstreamSession":
        """Connect, run the MCP handshake and return once initialized"""
        if self._runner is not None:
            raise RuntimeError("UpstreamSession can only be opened once")

        ready: asyncio.Future = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(self._run(ready))

        try:
            await asyncio.wait_for(asyncio.shield(ready), self.connect_timeout)
        except asyncio.TimeoutError:
            await self._abort()
            raise UpstreamConnectionError(
                f"Timed out connecting to {self.endpoint} after {self.connect_timeout}s",
                endpoint=self.endpoint,
            )
        except asyncio.CancelledError:
            await self._abort()
            raise
        return self

    async def close(self) -> None:
        """Tear down the transport without notifying `on_close`"""
        self._closing = True
        self._stop.set()
        if self._runner is not None:
            await self._runner

    async def forward(self, request: Any, result_type: Type[ResultT]) -> ResultT:
        """Send a client request upstream unchanged and return the typed result"""
        client = self._client
        if client is None or self._stop.is_set():
            raise UpstreamUnavailableError()

        # A closed session never answers, so pending calls end with it
        call = asyncio.ensure_future(client.send_request(types.ClientRequest(request), result_type))
        closed = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({call, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closed.cancel()
            if not call.done():
                call.cancel()

        if call.done() and not call.cancelled():
            return call.result()
        raise UpstreamUnavailableError("Upstream connection closed before the request completed")

    async def _abort(self) -> None:
        self._closing = True
        self._stop.set()
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
            await asyncio.gather(self._runner, return_exceptions=True)

    async def _run(self, ready: asyncio.Future) -> None:
        try:
            async with sse_client(
                self.endpoint,
                headers=self.headers,
                timeout=self.connect_timeout,
                sse_read_timeout=self.sse_read_timeout,
            ) as (read_stream, write_stream):
                relay_send, relay_recv = anyio.create_memory_object_stream(0)
                async with anyio.create_task_group() as tg:
                    tg.start_soon(self._watch, read_stream, relay_send)
                    async with ClientSession(relay_recv, write_stream, client_info=self.client_info) as client:
                        result = await client.initialize()
                        self.server_info = result.serverInfo
                        self.server_capabilities = result.capabilities
                        self.initialized_at = datetime.now()
                        self._client = client
                        self._opened = True
                        if not ready.done():
                            ready.set_result(self)
                        await self._stop.wait()
                    tg.cancel_scope.cancel()
        except Exception as e:
            reason = sanitize_error_for_log(e)
            if not ready.done() and not self._closing:
                ready.set_exception(UpstreamConnectionError(
                    f"Failed to connect to {self.endpoint}: {reason}",
                    endpoint=self.endpoint,
                ))
            elif self._opened:
                logger.warning(f"Upstream transport error: {reason}")
        finally:
            self._client = None
            self._stop.set()
            # nobody is waiting on `ready` once the session is being aborted
            if not ready.done() and not self._closing:
                ready.set_exception(UpstreamConnectionError(
                    f"Upstream closed during handshake with {self.endpoint}",
                    endpoint=self.endpoint,
                ))
            if self._opened and not self._closing:
                self._notify_closed()

    async def _watch(self, source: ObjectReceiveStream, sink: ObjectSendStream) -> None:
        """Pass upstream messages through and flag the end of the stream"""
        async with sink:
            async for message in source:
                await sink.send(message)
        logger.debug(f"SSE stream from {self.endpoint} ended")
        self._stop.set()

    def _notify_closed(self) -> None:
        callback = self.on_close
        if callback is None:
            return
        try:
            callback(self)
        except Exception:
            logger.exception("Upstream close handler failed")
