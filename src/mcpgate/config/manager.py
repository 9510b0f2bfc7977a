"""
Configuration Manager - settings and the managed server list.

Handles YAML/JSON configuration with environment variable overrides.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError

from mcpgate.config.models import MCPServerConfig
from mcpgate.mcp.connection import ServerDescriptor
from mcpgate.mcp.supervisor import MCPTimeouts


class ConfigError(Exception):
    """The configuration file exists but cannot be used."""


class ConfigManager:
    """
    Configuration manager for MCPGate.

    Features:
    - YAML/JSON configuration files (`mcp_config.json` works as-is)
    - Environment variable overrides (and `.env` files)
    - Default values
    """

    DEFAULT_CONFIG = {
        "server": {
            "host": "127.0.0.1",
            "port": 3000,
        },
        "mcp": {
            "auto_register": True,
            "timeouts": {
                "start_seconds": 10.0,
                "shutdown_seconds": 5.0,
                "request_seconds": None,
            },
        },
        "mcpServers": {},
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file (falls back to
                $MCPGATE_CONFIG, then ./mcp_config.json)
        """
        path = config_path or os.getenv("MCPGATE_CONFIG") or "mcp_config.json"
        self._config_path = Path(path)
        self._config: Dict[str, Any] = self._deep_copy(self.DEFAULT_CONFIG)
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        """Load configuration from file. Raises ConfigError on unreadable files."""
        load_dotenv()
        self._config = self._deep_copy(self.DEFAULT_CONFIG)

        if self._config_path.exists():
            try:
                content = self._config_path.read_text(encoding="utf-8")
                if self._config_path.suffix in [".yaml", ".yml"]:
                    file_config = yaml.safe_load(content) or {}
                else:
                    file_config = json.loads(content) if content.strip() else {}
            except (OSError, ValueError, yaml.YAMLError) as e:
                raise ConfigError(f"Failed to load {self._config_path}: {e}") from e

            if not isinstance(file_config, dict):
                raise ConfigError(f"Failed to load {self._config_path}: top level must be a mapping")

            self._deep_merge(self._config, file_config)
            logger.info(f"Configuration loaded from {self._config_path}")
        else:
            logger.info(f"No configuration file at {self._config_path}, using defaults")

        self._apply_env_overrides()
        self._loaded = True

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Dot-notation key (e.g., "server.port")
            default: Default value if not found

        Returns:
            Configuration value
        """
        parts = key.split(".")
        value = self._config

        for part in parts:
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using a dot-notation key."""
        parts = key.split(".")
        config = self._config

        for part in parts[:-1]:
            if not isinstance(config.get(part), dict):
                config[part] = {}
            config = config[part]

        config[parts[-1]] = value

    def timeouts(self) -> MCPTimeouts:
        request = self.get("mcp.timeouts.request_seconds")
        return MCPTimeouts(
            start_seconds=float(self.get("mcp.timeouts.start_seconds", 10.0)),
            shutdown_seconds=float(self.get("mcp.timeouts.shutdown_seconds", 5.0)),
            request_seconds=float(request) if request is not None else None,
        )

    def server_names(self) -> List[str]:
        servers = self.get("mcpServers") or {}
        return list(servers.keys()) if isinstance(servers, dict) else []

    def server_descriptor(self, name: str) -> ServerDescriptor:
        """
        Build a descriptor for a configured server.

        Raises:
            KeyError: the name is not configured
            ValueError: the entry is malformed
        """
        servers = self.get("mcpServers") or {}
        if not isinstance(servers, dict) or name not in servers:
            raise KeyError(name)
        try:
            entry = MCPServerConfig.model_validate(servers[name] or {})
        except ValidationError as e:
            raise ValueError(f"Invalid configuration for server {name}: {e}") from e
        return entry.to_descriptor(name)

    def server_descriptors(self) -> List[Tuple[str, Optional[ServerDescriptor], Optional[str]]]:
        """Every configured server, in file order, as (name, descriptor, error)."""
        out: List[Tuple[str, Optional[ServerDescriptor], Optional[str]]] = []
        for name in self.server_names():
            try:
                out.append((name, self.server_descriptor(name), None))
            except ValueError as e:
                out.append((name, None, str(e)))
        return out

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        env_mappings = {
            "MCPGATE_HOST": ("server.host", str),
            "PORT": ("server.port", int),
            "MCPGATE_PORT": ("server.port", int),
        }

        for env_var, (config_key, converter) in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                try:
                    self.set(config_key, converter(value))
                    logger.debug(f"Applied env override: {env_var}")
                except Exception as e:
                    logger.warning(f"Failed to apply {env_var}: {e}")

    def _deep_merge(self, base: dict, override: dict) -> None:
        """Deep merge override into base dict."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _deep_copy(self, obj: Any) -> Any:
        """Deep copy a dictionary."""
        if isinstance(obj, dict):
            return {k: self._deep_copy(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [self._deep_copy(item) for item in obj]
        return obj

