"""
MCP runtime - supervise MCP server processes and route tool calls to them.
"""

from __future__ import annotations

from mcpgate.mcp.connection import MCPServerConnection, ServerDescriptor, resolve_launch
from mcpgate.mcp.lifecycle import LifecycleCoordinator
from mcpgate.mcp.registry import Session, SessionRegistry, SessionStatus
from mcpgate.mcp.router import ToolRouter
from mcpgate.mcp.supervisor import ConnectionSupervisor, MCPTimeouts

__all__ = [
    "ConnectionSupervisor",
    "LifecycleCoordinator",
    "MCPServerConnection",
    "MCPTimeouts",
    "ServerDescriptor",
    "Session",
    "SessionRegistry",
    "SessionStatus",
    "ToolRouter",
    "resolve_launch",
]
