# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Capability Prober
Finds out which optional MCP categories the upstream server actually serves
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Protocol, Type

from mcp import types

from mcp_relay.core.errors import sanitize_error_for_log

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Optional MCP capability categories"""
    TOOLS = "tools"
    RESOURCES = "resources"
    PROMPTS = "prompts"


class ForwardingSession(Protocol):
    async def forward(self, request: Any, result_type: Type[types.Result]) -> Any:
        ...


@dataclass(frozen=True)
class CapabilityCheck:
    """The list request that proves a category is usable"""
    build_request: Callable[[], Any]
    result_type: Type[types.Result]


@dataclass(frozen=True)
class ProbeResult:
    capability: Capability
    available: bool
    error: Optional[str] = None


CAPABILITY_CHECKS: Dict[Capability, CapabilityCheck] = {
    Capability.TOOLS: CapabilityCheck(
        build_request=lambda: types.ListToolsRequest(method="tools/list"),
        result_type=types.ListToolsResult,
    ),
    Capability.RESOURCES: CapabilityCheck(
        build_request=lambda: types.ListResourcesRequest(method="resources/list"),
        result_type=types.ListResourcesResult,
    ),
    Capability.PROMPTS: CapabilityCheck(
        build_request=lambda: types.ListPromptsRequest(method="prompts/list"),
        result_type=types.ListPromptsResult,
    ),
}


async def check_capability(session: ForwardingSession, capability: Capability) -> ProbeResult:
    """Issue the category's list call; any failure means the category is absent"""
    check = CAPABILITY_CHECKS[capability]
    try:
        await session.forward(check.build_request(), check.result_type)
    except Exception as e:
        reason = sanitize_error_for_log(e)
        logger.debug(f"Capability {capability.value} not available: {reason}")
        return ProbeResult(capability=capability, available=False, error=reason)
    return ProbeResult(capability=capability, available=True)


async def probe(session: ForwardingSession) -> FrozenSet[Capability]:
    """Probe every category in order and return the usable ones"""
    results = [await check_capability(session, capability) for capability in Capability]
    return frozenset(result.capability for result in results if result.available)


def describe(capabilities: FrozenSet[Capability]) -> str:
    """Stable, human-readable listing for logs"""
    names = [capability.value for capability in Capability if capability in capabilities]
    return ", ".join(names) or "none"
