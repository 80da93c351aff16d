# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Custom exceptions for the MCP relay.

All exceptions inherit from RelayError for consistent error handling.
Request-level errors carry a JSON-RPC error code so they can be returned
to the local peer as-is.
"""

from typing import Optional

from mcp.types import ErrorData, INTERNAL_ERROR

# Implementation-defined JSON-RPC server error codes
UPSTREAM_UNAVAILABLE = -32001
REQUEST_TIMEOUT = -32002


class RelayError(Exception):
    """Base exception for all relay errors."""

    def __init__(
        self,
        message: str,
        code: int = INTERNAL_ERROR,
        details: Optional[dict] = None
    ):
        """
        Initialize relay error.

        Args:
            message: Human-readable error message
            code: JSON-RPC error code
            details: Additional error details
        """
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_error_data(self) -> ErrorData:
        """Convert error to a JSON-RPC error payload for the local peer."""
        return ErrorData(
            code=self.code,
            message=self.message,
            data=self.details or None
        )


class ConfigurationError(RelayError):
    """Configuration error."""

    def __init__(self, message: str, setting: Optional[str] = None, details: Optional[dict] = None):
        """
        Initialize configuration error.

        Args:
            message: Configuration error message
            setting: Name of the offending setting
            details: Additional error details
        """
        super().__init__(message, details=details)
        self.setting = setting


class UpstreamConnectionError(RelayError):
    """Connecting to the upstream server failed."""

    def __init__(self, message: str, endpoint: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details=details)
        self.endpoint = endpoint


class UpstreamUnavailableError(RelayError):
    """A request arrived while the upstream connection is down."""

    def __init__(self, message: str = "Upstream server is not available", details: Optional[dict] = None):
        super().__init__(message, code=UPSTREAM_UNAVAILABLE, details=details)


class RequestTimeoutError(RelayError):
    """A forwarded request did not complete in time."""

    def __init__(self, method: str, timeout: float, details: Optional[dict] = None):
        """
        Initialize request timeout error.

        Args:
            method: JSON-RPC method that timed out
            timeout: Timeout that was exceeded, in seconds
            details: Additional error details
        """
        message = f"Upstream request {method} timed out after {timeout}s"
        super().__init__(message, code=REQUEST_TIMEOUT, details=details)
        self.method = method
        self.timeout = timeout


# Error Message Utilities

def sanitize_error_for_log(error: BaseException, include_type: bool = True) -> str:
    """
    Flatten an exception into a single log-friendly line.

    Exception groups raised by the transport's task groups are unwrapped
    to their first leaf so the log shows the actual cause.

    Args:
        error: The exception to sanitize
        include_type: Whether to include exception type

    Returns:
        Short error message without stack trace
    """
    while isinstance(error, BaseExceptionGroup) and error.exceptions:
        error = error.exceptions[0]

    error_msg = str(error).strip() or repr(error)

    # Limit message length
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."

    if include_type:
        return f"{error.__class__.__name__}: {error_msg}"

    return error_msg
