"""Core application components."""

from mcpgate.core.app import MCPGateApp, create_app

__all__ = ["MCPGateApp", "create_app"]
