"""
MCPGate - multi-server MCP session manager.

Supervises several stdio MCP servers at once and exposes a uniform
tool-invocation surface over them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"
__author__ = "MCPGate Team"

if TYPE_CHECKING:
    from mcpgate.core.app import MCPGateApp as MCPGateApp

__all__ = ["MCPGateApp", "__version__"]


def __getattr__(name: str):
    # Lazy import so `mcpgate.mcp.*` can be used without the web/config stack.
    if name == "MCPGateApp":
        from mcpgate.core.app import MCPGateApp  # local import

        return MCPGateApp
    raise AttributeError(name)
