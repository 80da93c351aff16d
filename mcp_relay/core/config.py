# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Relay Configuration - Single source of truth.
YAML file first, environment variables on top.

The BRIDGE_* environment variables are the primary surface because the
relay is normally spawned by an MCP client that only passes env.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urljoin

import yaml
from dotenv import load_dotenv

from mcp_relay.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://127.0.0.1:8082"
DEFAULT_SSE_PATH = "/sse"
DEFAULT_NAME = "mcp-sse-bridge"
DEFAULT_VERSION = "1.0.0"


# =============================================================================
# CONFIGURATION DATACLASS
# =============================================================================

@dataclass(frozen=True)
class Settings:
    """
    Immutable relay configuration.
    Created once at startup and never mutated.
    """

    # -- Upstream --
    remote_base_url: str = DEFAULT_URL
    sse_path: str = DEFAULT_SSE_PATH
    extra_headers: Optional[Dict[str, str]] = None

    # -- Identity (used on both sides of the relay) --
    identity_name: str = DEFAULT_NAME
    identity_version: str = DEFAULT_VERSION

    # -- Timeouts (seconds) --
    connect_timeout: float = 30.0
    request_timeout: float = 300.0
    sse_read_timeout: float = 300.0

    # -- Reconnect backoff (milliseconds) --
    backoff_base_ms: int = 2000
    backoff_max_ms: int = 30000

    # -- Logging --
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def endpoint_url(self) -> str:
        """SSE path resolved against the base URL"""
        return urljoin(self.remote_base_url, self.sse_path)

    @property
    def has_custom_headers(self) -> bool:
        return bool(self.extra_headers)


# =============================================================================
# PARSERS
# =============================================================================

def parse_headers(headers_json: Optional[str]) -> Optional[Dict[str, str]]:
    """
    Parse the BRIDGE_HEADERS JSON object.

    Raises:
        ConfigurationError: If the value is not a JSON object
    """
    if not headers_json:
        return None
    try:
        parsed = json.loads(headers_json)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Failed to parse BRIDGE_HEADERS: {e}", setting="BRIDGE_HEADERS")
    if not isinstance(parsed, dict):
        raise ConfigurationError("BRIDGE_HEADERS must be a JSON object", setting="BRIDGE_HEADERS")
    return {str(k): str(v) for k, v in parsed.items()}


def parse_headers_lenient(headers_json: Optional[str]) -> Optional[Dict[str, str]]:
    """Parse headers, logging and dropping malformed values"""
    try:
        return parse_headers(headers_json)
    except ConfigurationError as e:
        logger.warning(f"Warning: {e.message}; continuing without custom headers")
        return None


# =============================================================================
# LOADER
# =============================================================================

def load_settings(path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> Settings:
    """
    Load settings from an optional YAML file, then apply environment overrides.
    Returns defaults if neither is present.
    """
    env = os.environ if env is None else env
    y: dict = {}

    if path:
        if Path(path).exists():
            with open(path) as f:
                y = yaml.safe_load(f) or {}
        else:
            logger.info(f"Config not found at {path}, using defaults")

    # Helper to safely navigate nested dicts
    def get(d: dict, *keys, default=None):
        for k in keys:
            if not isinstance(d, dict):
                return default
            d = d.get(k, {})
        return d if d != {} else default

    yaml_headers = get(y, "upstream", "headers")
    if yaml_headers is not None and not isinstance(yaml_headers, dict):
        logger.warning("Warning: upstream.headers must be a mapping; ignoring it")
        yaml_headers = None
    headers = parse_headers_lenient(env.get("BRIDGE_HEADERS"))
    if headers is None and yaml_headers:
        headers = {str(k): str(v) for k, v in yaml_headers.items()}

    return Settings(
        # Upstream
        remote_base_url=env.get("BRIDGE_URL") or get(y, "upstream", "url") or DEFAULT_URL,
        sse_path=env.get("BRIDGE_SSE_PATH") or get(y, "upstream", "sse_path") or DEFAULT_SSE_PATH,
        extra_headers=headers,

        # Identity
        identity_name=env.get("BRIDGE_NAME") or get(y, "identity", "name") or DEFAULT_NAME,
        identity_version=env.get("BRIDGE_VERSION") or str(get(y, "identity", "version") or DEFAULT_VERSION),

        # Timeouts
        connect_timeout=float(get(y, "timeouts", "connect") or 30.0),
        request_timeout=float(get(y, "timeouts", "request") or 300.0),
        sse_read_timeout=float(get(y, "timeouts", "sse_read") or 300.0),

        # Backoff
        backoff_base_ms=int(get(y, "backoff", "base_ms") or 2000),
        backoff_max_ms=int(get(y, "backoff", "max_ms") or 30000),

        # Logging
        log_level=env.get("LOG_LEVEL") or get(y, "logging", "level") or "INFO",
        log_format=env.get("LOG_FORMAT") or get(y, "logging", "format") or "text",
    )


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        # Local development convenience; spawned relays get plain env
        load_dotenv()
        _settings = load_settings(os.getenv("RELAY_CONFIG_PATH"))
    return _settings

