"""Configuration loading."""

from mcpgate.config.manager import ConfigError, ConfigManager
from mcpgate.config.models import MCPServerConfig

__all__ = ["ConfigError", "ConfigManager", "MCPServerConfig"]
