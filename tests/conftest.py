# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Test Fixtures and Utilities for the relay tests

Provides an in-process fake upstream MCP server so the session manager,
prober and dispatcher can be exercised without a network.
"""

import asyncio
from typing import Any, Iterable, List, Optional

import pytest
from mcp import types
from mcp.shared.exceptions import McpError

from mcp_relay.core.config import Settings
from mcp_relay.core.errors import UpstreamConnectionError, UpstreamUnavailableError
from mcp_relay.upstream_session_manager import UpstreamSessionManager


# ============================================================================
# Fake upstream
# ============================================================================

class FakeUpstreamSession:
    """Stands in for UpstreamSession; one instance per connect attempt"""

    def __init__(self, upstream: "FakeUpstream"):
        self.upstream = upstream
        self.on_close = None
        self.opened = False
        self.closed = False

    @property
    def is_open(self) -> bool:
        return self.opened and not self.closed

    async def open(self):
        self.upstream.connect_attempts += 1
        if self.upstream.open_delay:
            await asyncio.sleep(self.upstream.open_delay)
        if self.upstream.connect_errors:
            raise self.upstream.connect_errors.pop(0)
        self.opened = True
        return self

    async def forward(self, request: Any, result_type):
        if self.closed:
            raise UpstreamUnavailableError()
        self.upstream.requests.append(request)
        if self.upstream.response_delay:
            await asyncio.sleep(self.upstream.response_delay)
        return self.upstream.respond(request)

    async def close(self):
        self.closed = True

    def drop(self):
        """Simulate the remote side closing the stream"""
        self.closed = True
        if self.on_close is not None:
            self.on_close(self)


class FakeUpstream:
    """Upstream server state shared by every session it hands out"""

    def __init__(self, capabilities: Iterable[str] = ("tools",)):
        self.capabilities = set(capabilities)
        self.sessions: List[FakeUpstreamSession] = []
        self.requests: List[Any] = []
        self.connect_attempts = 0
        self.connect_errors: List[Exception] = []
        self.response_delay: float = 0
        self.open_delay: float = 0
        self.overrides = {}

    def session_factory(self, settings: Settings) -> FakeUpstreamSession:
        session = FakeUpstreamSession(self)
        self.sessions.append(session)
        return session

    def fail_next_connects(self, count: int, error: Optional[Exception] = None):
        for _ in range(count):
            self.connect_errors.append(error or UpstreamConnectionError("Connection refused"))

    @property
    def current(self) -> FakeUpstreamSession:
        return self.sessions[-1]

    def _require(self, capability: str):
        if capability not in self.capabilities:
            raise McpError(types.ErrorData(code=types.METHOD_NOT_FOUND, message="Method not found"))

    def respond(self, request: Any):
        if type(request) in self.overrides:
            response = self.overrides[type(request)]
            if isinstance(response, Exception):
                raise response
            return response

        if isinstance(request, types.ListToolsRequest):
            self._require("tools")
            return types.ListToolsResult(tools=[
                types.Tool(
                    name="echo",
                    description="Echo text back",
                    inputSchema={"type": "object", "properties": {"text": {"type": "string"}}},
                )
            ])
        if isinstance(request, types.CallToolRequest):
            self._require("tools")
            arguments = request.params.arguments or {}
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=str(arguments.get("text", "")))]
            )
        if isinstance(request, types.ListResourcesRequest):
            self._require("resources")
            return types.ListResourcesResult(resources=[
                types.Resource(uri="file:///notes.txt", name="notes")
            ])
        if isinstance(request, types.ReadResourceRequest):
            self._require("resources")
            return types.ReadResourceResult(contents=[
                types.TextResourceContents(uri=request.params.uri, text="remember the milk")
            ])
        if isinstance(request, types.ListPromptsRequest):
            self._require("prompts")
            return types.ListPromptsResult(prompts=[types.Prompt(name="greet")])
        if isinstance(request, types.GetPromptRequest):
            self._require("prompts")
            return types.GetPromptResult(messages=[
                types.PromptMessage(role="user", content=types.TextContent(type="text", text="hello"))
            ])
        raise McpError(types.ErrorData(code=types.METHOD_NOT_FOUND, message="Method not found"))


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Fast settings: millisecond backoff, short request timeout"""
    return Settings(
        remote_base_url="http://upstream.test:8082",
        backoff_base_ms=5,
        backoff_max_ms=20,
        request_timeout=1.0,
        connect_timeout=1.0,
    )


@pytest.fixture
def upstream():
    return FakeUpstream(capabilities=("tools",))


@pytest.fixture
async def manager(settings, upstream):
    """Session manager wired to the fake upstream"""
    manager = UpstreamSessionManager(settings, session_factory=upstream.session_factory)
    yield manager
    await manager.close()


@pytest.fixture
async def connected_manager(manager):
    await manager.connect()
    return manager


def call_tool_request(name: str, arguments: dict) -> types.CallToolRequest:
    return types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name=name, arguments=arguments),
    )
