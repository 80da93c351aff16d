# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Core utilities shared by the relay modules.

This package contains:
- config: Settings and loader
- errors: Custom exceptions
- logging: Structured logging to stderr
"""

from mcp_relay.core.config import Settings, get_settings, load_settings
from mcp_relay.core.errors import (
    RelayError,
    ConfigurationError,
    UpstreamConnectionError,
    UpstreamUnavailableError,
    RequestTimeoutError,
)
from mcp_relay.core.logging import configure_logging, get_logger

__all__ = [
    "Settings",
    "get_settings",
    "load_settings",
    "RelayError",
    "ConfigurationError",
    "UpstreamConnectionError",
    "UpstreamUnavailableError",
    "RequestTimeoutError",
    "configure_logging",
    "get_logger",
]
