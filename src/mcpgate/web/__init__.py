"""HTTP front-end."""

from mcpgate.web.server import WebServer

__all__ = ["WebServer"]
