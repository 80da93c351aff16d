# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
MCP Relay
stdio-to-HTTP/SSE bridge for Model Context Protocol servers
"""

__version__ = "1.0.0"
