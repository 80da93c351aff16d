# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Relay Dispatcher
Local-facing MCP server that forwards each request to the upstream session
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Tuple, Type

from mcp import types
from mcp.server.lowlevel import Server
from mcp.shared.exceptions import McpError

from mcp_relay.capabilities import Capability
from mcp_relay.core.config import Settings
from mcp_relay.core.errors import RelayError, RequestTimeoutError, UpstreamUnavailableError
from mcp_relay.upstream_session_manager import UpstreamSessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    """One local request type and the upstream result it maps to"""
    request_type: Type[Any]
    result_type: Type[types.Result]
    action: str


ROUTES: Dict[Capability, Tuple[Route, Route]] = {
    Capability.TOOLS: (
        Route(types.ListToolsRequest, types.ListToolsResult, "listing tools"),
        Route(types.CallToolRequest, types.CallToolResult, "calling tool"),
    ),
    Capability.RESOURCES: (
        Route(types.ListResourcesRequest, types.ListResourcesResult, "listing resources"),
        Route(types.ReadResourceRequest, types.ReadResourceResult, "reading resource"),
    ),
    Capability.PROMPTS: (
        Route(types.ListPromptsRequest, types.ListPromptsResult, "listing prompts"),
        Route(types.GetPromptRequest, types.GetPromptResult, "getting prompt"),
    ),
}


class RelayDispatcher:
    """Binds forwarding handlers for the discovered capabilities only"""

    def __init__(
        self,
        manager: UpstreamSessionManager,
        capabilities: FrozenSet[Capability],
        settings: Settings,
    ):
        self.manager = manager
        self.capabilities = capabilities
        self.settings = settings
        self.server = Server(settings.identity_name, version=settings.identity_version)
        self._bind()

    @property
    def routes(self) -> List[Route]:
        return [route for capability in Capability if capability in self.capabilities
                for route in ROUTES[capability]]

    def _bind(self) -> None:
        # The low-level server advertises exactly the categories that have handlers
        for route in self.routes:
            self.server.request_handlers[route.request_type] = self._make_handler(route)

    def _make_handler(self, route: Route) -> Callable[[Any], Awaitable[types.ServerResult]]:
        async def handler(request: Any) -> types.ServerResult:
            result = await self.forward(request, route)
            return types.ServerResult(result)

        return handler

    async def forward(self, request: Any, route: Route) -> types.Result:
        """Forward one request to the current upstream session unchanged"""
        session = self.manager.session
        if not self.manager.is_connected or session is None:
            raise self._to_mcp_error(UpstreamUnavailableError())

        timeout = self.settings.request_timeout
        try:
            return await asyncio.wait_for(session.forward(request, route.result_type), timeout)
        except asyncio.TimeoutError:
            error = RequestTimeoutError(request.method, timeout)
            logger.error(f"Error {route.action}: {error.message}")
            raise self._to_mcp_error(error)
        except RelayError as e:
            logger.error(f"Error {route.action}: {e.message}")
            raise self._to_mcp_error(e)
        except McpError as e:
            logger.error(f"Error {route.action}: {e.error.message}")
            raise
        except Exception as e:
            logger.error(f"Error {route.action}: {e}")
            raise

    @staticmethod
    def _to_mcp_error(error: RelayError) -> McpError:
        mcp_error = McpError(error.to_error_data())
        mcp_error.__cause__ = error
        return mcp_error

    def initialization_options(self):
        return self.server.create_initialization_options()

