"""
ConnectionSupervisor - establishes and tears down server sessions.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from loguru import logger

from mcpgate.errors import (
    ConnectionFailed,
    MCPGateError,
    ScriptNotFound,
    ServerNotFound,
    TransportError,
    describe,
)
from mcpgate.mcp.connection import (
    LaunchSpec,
    MCPServerConnection,
    ServerDescriptor,
    is_not_found_error,
    resolve_launch,
)
from mcpgate.mcp.registry import Session, SessionRegistry, SessionStatus, TransportHandle

ConnectionFactory = Callable[[LaunchSpec, str], TransportHandle]


def _default_factory(launch: LaunchSpec, name: str) -> TransportHandle:
    return MCPServerConnection(launch, name=name)


@dataclass(frozen=True)
class MCPTimeouts:
    start_seconds: float = 10.0
    shutdown_seconds: float = 5.0
    # None: requests only time out where the MCP session itself does.
    request_seconds: Optional[float] = None


class ConnectionSupervisor:
    """
    Connects one server at a time into a registry.

    The identifier is reserved in the registry before anything is awaited, so
    two concurrent connects for the same identifier cannot both spawn.
    Nothing is retried here; retry policy belongs to the caller.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        timeouts: Optional[MCPTimeouts] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        base_env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._registry = registry
        self._timeouts = timeouts or MCPTimeouts()
        self._factory = connection_factory or _default_factory
        self._base_env = base_env

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def timeouts(self) -> MCPTimeouts:
        return self._timeouts

    async def connect(self, descriptor: ServerDescriptor) -> Session:
        server_id = descriptor.identifier
        session = self._registry.reserve(descriptor)
        conn: Optional[TransportHandle] = None
        launch: Optional[LaunchSpec] = None
        try:
            launch = resolve_launch(descriptor, self._base_env)
            conn = self._factory(launch, server_id)
            await asyncio.wait_for(conn.start(), timeout=float(self._timeouts.start_seconds))
            self._registry.commit(session, conn)
        except asyncio.CancelledError:
            await self._abandon(session, conn, reason="cancelled")
            raise
        except MCPGateError:
            await self._abandon(session, conn, reason="rejected")
            raise
        except asyncio.TimeoutError as e:
            await self._abandon(session, conn, reason="handshake timeout")
            raise ConnectionFailed(
                f"Timed out after {self._timeouts.start_seconds}s connecting to server {server_id}",
                server_id=server_id,
                cause=e,
            ) from e
        except Exception as e:
            await self._abandon(session, conn, reason="start error")
            if is_not_found_error(e):
                command = launch.command if launch else descriptor.command
                raise ScriptNotFound(
                    f"Could not launch server {server_id}: {command} not found",
                    server_id=server_id,
                    cause=e,
                ) from e
            raise ConnectionFailed(
                f"Failed to connect to server {server_id}: {describe(e)}",
                server_id=server_id,
                cause=e,
            ) from e

        logger.info(f"Server {server_id} connected")
        return session

    async def _abandon(self, session: Session, conn: Optional[TransportHandle], *, reason: str) -> None:
        session.status = SessionStatus.FAILED
        try:
            if conn is not None:
                await self._close_quietly(conn, session.identifier, reason=reason)
        finally:
            self._registry.release(session)
        logger.warning(f"Connecting server {session.identifier} failed ({reason})")

    async def _close_quietly(self, conn: TransportHandle, server_id: str, *, reason: str) -> None:
        try:
            await asyncio.wait_for(conn.shutdown(), timeout=float(self._timeouts.shutdown_seconds))
        except asyncio.TimeoutError:
            logger.debug(f"MCP shutdown timed out ({server_id}) while handling {reason}")
        except Exception as e:
            logger.debug(f"MCP shutdown failed ({server_id}) while handling {reason}: {e}")

    async def close_session(self, session: Session) -> None:
        """Close a session already detached from the registry."""
        try:
            await asyncio.wait_for(session.close(), timeout=float(self._timeouts.shutdown_seconds))
        except asyncio.TimeoutError as e:
            session.status = SessionStatus.FAILED
            raise TransportError(
                f"Timed out after {self._timeouts.shutdown_seconds}s closing server {session.identifier}",
                server_id=session.identifier,
                cause=e,
            ) from e
        except Exception as e:
            raise TransportError(
                f"Failed to disconnect {session.identifier}: {describe(e)}",
                server_id=session.identifier,
                cause=e,
            ) from e

    async def disconnect(self, server_id: str) -> Session:
        """Remove ``server_id`` from the registry and close its handle."""
        session = self._registry.remove(server_id)
        if session is None:
            raise ServerNotFound(server_id, f"Server {server_id} not found")
        await self.close_session(session)
        logger.info(f"Server {server_id} disconnected")
        return session
