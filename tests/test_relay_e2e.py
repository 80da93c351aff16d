# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
End-to-end tests: a real MCP client session talks to the relay server
over in-memory streams; the upstream side is the fake upstream.
"""

import anyio
import pytest
from mcp import types
from mcp.shared.exceptions import McpError
from mcp.shared.memory import create_connected_server_and_client_session

from mcp_relay.core.config import Settings
from mcp_relay.core.errors import UPSTREAM_UNAVAILABLE
from mcp_relay.main import start_relay
from mcp_relay.upstream_session_manager import UpstreamSessionManager
from conftest import call_tool_request


@pytest.mark.asyncio
async def test_call_tool_round_trip(manager, upstream, settings):
    """Upstream with tools only; echo call is forwarded exactly"""
    dispatcher = await start_relay(settings, manager)

    async with create_connected_server_and_client_session(dispatcher.server) as client:
        result = await client.send_request(
            types.ClientRequest(call_tool_request("echo", {"text": "hi"})),
            types.CallToolResult,
        )

    forwarded = upstream.requests[-1]
    assert isinstance(forwarded, types.CallToolRequest)
    assert forwarded.params.name == "echo"
    assert forwarded.params.arguments == {"text": "hi"}
    assert result.content[0].text == "hi"
    assert result.isError is False


@pytest.mark.asyncio
async def test_list_tools_round_trip(manager, settings):
    dispatcher = await start_relay(settings, manager)

    async with create_connected_server_and_client_session(dispatcher.server) as client:
        result = await client.list_tools()

    assert [tool.name for tool in result.tools] == ["echo"]


@pytest.mark.asyncio
async def test_unsupported_category_is_method_not_found(manager, settings):
    dispatcher = await start_relay(settings, manager)

    async with create_connected_server_and_client_session(dispatcher.server) as client:
        with pytest.raises(McpError) as resources_error:
            await client.list_resources()
        with pytest.raises(McpError) as prompts_error:
            await client.get_prompt("greet")

    assert resources_error.value.error.code == types.METHOD_NOT_FOUND
    assert prompts_error.value.error.code == types.METHOD_NOT_FOUND


@pytest.mark.asyncio
async def test_request_during_backoff_fails_fast(upstream):
    """After an upstream drop the next request errors instead of hanging"""
    slow = Settings(backoff_base_ms=60_000, backoff_max_ms=60_000)
    manager = UpstreamSessionManager(slow, session_factory=upstream.session_factory)
    dispatcher = await start_relay(slow, manager)

    async with create_connected_server_and_client_session(dispatcher.server) as client:
        upstream.current.drop()
        with anyio.fail_after(2):
            with pytest.raises(McpError) as exc_info:
                await client.send_request(
                    types.ClientRequest(call_tool_request("echo", {"text": "hi"})),
                    types.CallToolResult,
                )

    assert exc_info.value.error.code == UPSTREAM_UNAVAILABLE
    assert manager.reconnect_pending
    await manager.close()


@pytest.mark.asyncio
async def test_unexpected_upstream_exception_is_request_level(manager, upstream, settings):
    """A generic upstream failure errors one request and leaves the relay serving"""
    dispatcher = await start_relay(settings, manager)
    upstream.overrides[types.CallToolRequest] = RuntimeError("malformed upstream response")

    async with create_connected_server_and_client_session(dispatcher.server) as client:
        with pytest.raises(McpError) as exc_info:
            await client.send_request(
                types.ClientRequest(call_tool_request("echo", {"text": "hi"})),
                types.CallToolResult,
            )
        tools = await client.list_tools()

    assert "malformed upstream response" in exc_info.value.error.message
    assert [tool.name for tool in tools.tools] == ["echo"]
