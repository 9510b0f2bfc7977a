"""
Main application object for MCPGate.

Wires configuration, the session registry and the MCP components together and
exposes the externally visible operations. Every operation returns a
structured result dict; per-request errors never escape as exceptions.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Optional, Union

from loguru import logger

from mcpgate.config.manager import ConfigManager
from mcpgate.errors import ConnectionFailed, MCPGateError, ServerNotFound, error_result, success_result
from mcpgate.mcp.connection import ServerDescriptor
from mcpgate.mcp.lifecycle import LifecycleCoordinator
from mcpgate.mcp.registry import SessionRegistry
from mcpgate.mcp.router import ToolRouter
from mcpgate.mcp.supervisor import ConnectionFactory, ConnectionSupervisor, MCPTimeouts


class MCPGateApp:
    """
    Coordinates the MCP session manager components.

    The registry is owned by the app instance (not process-wide), so several
    independent apps can live in one process.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        *,
        config: Optional[ConfigManager] = None,
        registry: Optional[SessionRegistry] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        base_env: Optional[Mapping[str, str]] = None,
        timeouts: Optional[MCPTimeouts] = None,
    ):
        self.config = config or ConfigManager(config_path)
        self.registry = registry or SessionRegistry()
        self._connection_factory = connection_factory
        self._base_env = base_env
        self._shutdown_lock = asyncio.Lock()
        self._shutdown_results: Optional[List[Dict[str, Any]]] = None
        self._configure(timeouts or MCPTimeouts())

        logger.info("MCPGate application instance created")

    def _configure(self, timeouts: MCPTimeouts) -> None:
        self.supervisor = ConnectionSupervisor(
            self.registry,
            timeouts=timeouts,
            connection_factory=self._connection_factory,
            base_env=self._base_env,
        )
        self.router = ToolRouter(self.registry, request_timeout=timeouts.request_seconds)
        self.lifecycle = LifecycleCoordinator(self.supervisor)

    async def startup(self, *, auto_register: Optional[bool] = None) -> List[Dict[str, Any]]:
        """Load configuration and (optionally) register every configured server."""
        logger.info("Starting MCPGate...")
        if not self.config.is_loaded:
            await self.config.load()
        self._configure(self.config.timeouts())

        if auto_register is None:
            auto_register = bool(self.config.get("mcp.auto_register", True))

        results: List[Dict[str, Any]] = []
        if auto_register:
            results = await self.register_all()
            logger.info(f"Auto-registration results: {results}")
        logger.success("MCPGate started")
        return results

    async def shutdown(self) -> List[Dict[str, Any]]:
        """Close every session. Runs once; later calls return the first outcome."""
        async with self._shutdown_lock:
            if self._shutdown_results is None:
                logger.info("Shutting down MCPGate...")
                self._shutdown_results = await self.shutdown_all()
                logger.success("MCPGate shutdown complete")
        return list(self._shutdown_results)

    async def _guard(self, operation: str, server_id: Optional[str], call: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            return await call
        except MCPGateError as e:
            logger.warning(f"{operation} failed: {e.message}")
            return error_result(e, server_id=server_id)
        except Exception as e:
            logger.exception(f"Unexpected error in {operation}: {e}")
            return error_result(e, server_id=server_id)

    # External operations

    def get_status(self) -> Dict[str, Any]:
        servers: Dict[str, Dict[str, Any]] = {}
        for server_id, status in self.registry.enumerate():
            servers[server_id] = {
                "isConnected": self.registry.lookup(server_id) is not None,
                "identifier": server_id,
                "status": status.value,
            }
        return {"totalServers": len(servers), "servers": servers}

    async def _descriptor_for(self, server: Union[str, ServerDescriptor]) -> ServerDescriptor:
        if isinstance(server, ServerDescriptor):
            return server
        if not self.config.is_loaded:
            await self.config.load()
        try:
            return self.config.server_descriptor(server)
        except KeyError:
            raise ServerNotFound(server, f"Server {server} not found in config") from None
        except ValueError as e:
            raise ConnectionFailed(str(e), server_id=server) from e

    async def register_server(self, server: Union[str, ServerDescriptor]) -> Dict[str, Any]:
        """Register a descriptor, or a server by its name in the configuration."""
        server_id = server.identifier if isinstance(server, ServerDescriptor) else server

        async def _register() -> Dict[str, Any]:
            descriptor = await self._descriptor_for(server)
            await self.supervisor.connect(descriptor)
            return success_result(f"Successfully connected to server: {server_id}", serverId=server_id)

        return await self._guard("register_server", server_id, _register())

    async def disconnect_server(self, server_id: str) -> Dict[str, Any]:
        async def _disconnect() -> Dict[str, Any]:
            await self.supervisor.disconnect(server_id)
            return success_result(f"Successfully disconnected server: {server_id}")

        return await self._guard("disconnect_server", server_id, _disconnect())

    async def invoke_tool(self, server_id: str, tool_name: str, arguments: Any = None) -> Dict[str, Any]:
        return await self._guard("invoke_tool", server_id, self.router.invoke(server_id, tool_name, arguments))

    async def list_tools(self, server_id: str) -> Dict[str, Any]:
        async def _list() -> Dict[str, Any]:
            tools = await self.router.list_tools(server_id)
            return {"status": "success", "server": server_id, "tools": tools}

        return await self._guard("list_tools", server_id, _list())

    async def list_resources(self, server_id: str) -> Dict[str, Any]:
        async def _list() -> Dict[str, Any]:
            resources = await self.router.list_resources(server_id)
            return {"status": "success", "server": server_id, "resources": resources}

        return await self._guard("list_resources", server_id, _list())

    async def read_resource(self, server_id: str, uri: str) -> Dict[str, Any]:
        async def _read() -> Dict[str, Any]:
            contents = await self.router.read_resource(server_id, uri)
            return {"status": "success", "server": server_id, "uri": uri, "contents": contents}

        return await self._guard("read_resource", server_id, _read())

    async def register_all(
        self, descriptors: Optional[Iterable[ServerDescriptor]] = None
    ) -> List[Dict[str, Any]]:
        """Register the given descriptors, or every configured server when None."""
        if descriptors is not None:
            return await self.lifecycle.register_all(descriptors)

        if not self.config.is_loaded:
            await self.config.load()
        entries = self.config.server_descriptors()
        valid = [d for _, d, _ in entries if d is not None]
        outcomes = iter(await self.lifecycle.register_all(valid))

        results: List[Dict[str, Any]] = []
        for name, descriptor, problem in entries:
            if descriptor is not None:
                results.append(next(outcomes))
            else:
                logger.warning(f"Skipping server {name}: {problem}")
                results.append(error_result(ConnectionFailed(problem, server_id=name)))
        return results

    async def shutdown_all(self) -> List[Dict[str, Any]]:
        return await self.lifecycle.shutdown_all()

    @property
    def host(self) -> str:
        return str(self.config.get("server.host", "127.0.0.1"))

    @property
    def port(self) -> int:
        return int(self.config.get("server.port", 3000))


@asynccontextmanager
async def create_app(config_path: Optional[str] = None, **kwargs: Any):
    """Context manager for creating and running the app."""
    app = MCPGateApp(config_path, **kwargs)
    try:
        await app.startup()
        yield app
    finally:
        await app.shutdown()
