"""
Config models (Pydantic).

These models define the `mcpServers` table of the configuration file, the
same shape as the common `mcp_config.json`.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from mcpgate.mcp.connection import ServerDescriptor

DEFAULT_COMMAND = "npx"


class MCPServerConfig(BaseModel):
    command: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    cwd: Optional[str] = None
    # Path to a .py/.js server; the interpreter is picked from the extension.
    script: Optional[str] = None

    @field_validator("env", mode="before")
    @classmethod
    def _stringify_env(cls, v):
        if v is None:
            return {}
        return {str(k): str(val) for k, val in dict(v).items()}

    @field_validator("args", mode="before")
    @classmethod
    def _default_args(cls, v):
        return [] if v is None else v

    @model_validator(mode="after")
    def _default_command(self) -> "MCPServerConfig":
        if not self.command and not self.script:
            self.command = DEFAULT_COMMAND
        return self

    def to_descriptor(self, server_id: str) -> ServerDescriptor:
        return ServerDescriptor(
            identifier=server_id,
            command=self.command,
            args=tuple(self.args),
            env=dict(self.env),
            script_path=self.script,
            cwd=self.cwd,
        )

