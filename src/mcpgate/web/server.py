"""
Web Server - FastAPI front-end for the MCPGate session manager.

Thin routing over MCPGateApp: every handler validates the request body,
calls one app operation and maps the structured result to an HTTP status.
"""

import signal
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from mcpgate import __version__
from mcpgate.errors import http_status_for
from mcpgate.mcp.connection import ServerDescriptor

if TYPE_CHECKING:
    from mcpgate.core.app import MCPGateApp


def _required(field_name: str) -> JSONResponse:
    return JSONResponse({"status": "error", "message": f"{field_name} is required"}, status_code=400)


def _respond(result: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(result, status_code=http_status_for(result))


class _GracefulServer(uvicorn.Server):
    """
    uvicorn server whose SIGINT/SIGTERM handling only ends serve().

    Captured signals are not re-raised once serve() returns, so the caller
    can close every MCP session before the process exits.
    """

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        # Signal handlers can only be installed from the main thread.
        if threading.current_thread() is not threading.main_thread():
            yield
            return
        original = {sig: signal.signal(sig, self.handle_exit) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            yield
        finally:
            for sig, handler in original.items():
                signal.signal(sig, handler)


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        data = await request.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class WebServer:
    """
    FastAPI web server for MCPGate.

    Endpoints:
    - GET  /status                     current connection status
    - GET  /list-tools/{server_name}   tools of a registered server
    - GET  /list-resources/{server_name}
    - POST /register                   {"serverName": ...} plus optional inline launch spec
    - POST /disconnect                 {"serverName": ...}
    - POST /call-tool                  {"serverName": ..., "toolName": ..., "args": {...}}
    - POST /read-resource              {"serverName": ..., "uri": ...}
    """

    def __init__(self, app: "MCPGateApp", host: Optional[str] = None, port: Optional[int] = None):
        self._app = app
        self.host = host or app.host
        self.port = port or app.port

        self.fastapi = FastAPI(
            title="MCPGate",
            description="Multi-server MCP session manager",
            version=__version__,
        )
        self._setup_routes()
        self._server: Optional[uvicorn.Server] = None

    def _setup_routes(self):
        """Set up FastAPI routes."""
        app = self._app

        @self.fastapi.get("/status")
        async def status():
            return app.get_status()

        @self.fastapi.post("/register")
        async def register(request: Request):
            data = await _json_body(request)
            server_name = data.get("serverName")
            if not server_name:
                return _required("serverName")

            if data.get("command") or data.get("scriptPath"):
                if not isinstance(data.get("args") or [], list):
                    return JSONResponse({"status": "error", "message": "args must be a list"}, status_code=400)
                if not isinstance(data.get("env") or {}, dict):
                    return JSONResponse({"status": "error", "message": "env must be an object"}, status_code=400)
                descriptor = ServerDescriptor(
                    identifier=str(server_name),
                    command=data.get("command"),
                    args=tuple(str(a) for a in data.get("args") or []),
                    env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
                    script_path=data.get("scriptPath"),
                    cwd=data.get("cwd"),
                )
                return _respond(await app.register_server(descriptor))
            return _respond(await app.register_server(str(server_name)))

        @self.fastapi.post("/disconnect")
        async def disconnect(request: Request):
            data = await _json_body(request)
            server_name = data.get("serverName")
            if not server_name:
                return _required("serverName")
            return _respond(await app.disconnect_server(str(server_name)))

        @self.fastapi.post("/call-tool")
        async def call_tool(request: Request):
            data = await _json_body(request)
            for field_name in ("toolName", "serverName"):
                if not data.get(field_name):
                    return _required(field_name)
            if data.get("args") is None:
                return _required("args")
            result = await app.invoke_tool(str(data["serverName"]), str(data["toolName"]), data["args"])
            return _respond(result)

        @self.fastapi.get("/list-tools/{server_name}")
        async def list_tools(server_name: str):
            return _respond(await app.list_tools(server_name))

        @self.fastapi.get("/list-resources/{server_name}")
        async def list_resources(server_name: str):
            return _respond(await app.list_resources(server_name))

        @self.fastapi.post("/read-resource")
        async def read_resource(request: Request):
            data = await _json_body(request)
            for field_name in ("serverName", "uri"):
                if not data.get(field_name):
                    return _required(field_name)
            return _respond(await app.read_resource(str(data["serverName"]), str(data["uri"])))

    @property
    def started(self) -> bool:
        return bool(self._server and self._server.started)

    async def start(self):
        """Start the web server; returns once uvicorn has been asked to exit."""
        config = uvicorn.Config(
            self.fastapi,
            host=self.host,
            port=self.port,
            log_level="info",
        )
        self._server = _GracefulServer(config)

        logger.info(f"MCPGate service running on http://{self.host}:{self.port}")
        await self._server.serve()
        logger.info("Web server stopped")

    async def stop(self):
        """Ask the web server to exit; start() returns once it has drained."""
        if self._server:
            self._server.should_exit = True
