# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Setup configuration for MCP Relay, a stdio-to-HTTP/SSE bridge for MCP servers
"""

from setuptools import setup, find_packages

setup(
    name="mcp-relay",
    version="1.0.0",
    description="stdio-to-HTTP/SSE bridge for Model Context Protocol servers",
    author="Jason Cafarelli",
    packages=find_packages(include=["mcp_relay", "mcp_relay.*"]),
    python_requires=">=3.11",
    install_requires=[
        "mcp>=1.9.0,<2",
        "anyio>=4.0.0",
        "pyyaml>=6.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "mcp-relay=mcp_relay.main:main",
        ]
    },
)
