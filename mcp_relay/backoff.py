# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Reconnect backoff
Exponential delay between upstream reconnection attempts, no jitter
"""

DEFAULT_BASE_MS = 2000
DEFAULT_MAX_MS = 30000


def next_delay(attempt: int, base_ms: int = DEFAULT_BASE_MS, max_ms: int = DEFAULT_MAX_MS) -> int:
    """Delay in milliseconds before reconnect attempt number `attempt` (0-based)"""
    if attempt < 0:
        raise ValueError(f"attempt must be non-negative, got {attempt}")
    # Cap the exponent so huge attempt counts don't build huge ints
    if base_ms * 2 ** min(attempt, 64) >= max_ms:
        return max_ms
    return base_ms * 2 ** attempt
