"""
ToolRouter - resolve a server, validate the tool, forward the call.

The tool list is fetched fresh on every invocation, so tools added or removed
by the remote server are seen on the next call. A failed request never evicts
the session; only an explicit disconnect does.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from mcpgate.errors import InvalidArguments, ServerNotFound, ToolNotFound, TransportError, describe
from mcpgate.mcp.registry import Session, SessionRegistry


class ToolRouter:
    def __init__(self, registry: SessionRegistry, *, request_timeout: Optional[float] = None) -> None:
        self._registry = registry
        self._request_timeout = request_timeout

    def _resolve(self, server_id: str) -> Session:
        session = self._registry.lookup(server_id)
        if session is None:
            raise ServerNotFound(server_id)
        return session

    async def _request(self, session: Session, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            if self._request_timeout is None:
                result = await session.request(method, params)
            else:
                result = await asyncio.wait_for(session.request(method, params), timeout=self._request_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"{method} on server {session.identifier} timed out",
                server_id=session.identifier,
                cause=e,
            ) from e
        except Exception as e:
            logger.debug(f"{method} failed on server {session.identifier}: {describe(e)}")
            raise TransportError(
                f"{method} failed on server {session.identifier}: {describe(e)}",
                server_id=session.identifier,
                cause=e,
            ) from e
        if not isinstance(result, dict):
            raise TransportError(
                f"Malformed {method} response from server {session.identifier}",
                server_id=session.identifier,
            )
        return result

    async def _fetch_tools(self, session: Session) -> List[Dict[str, Any]]:
        response = await self._request(session, "tools/list")
        tools = response.get("tools")
        if not isinstance(tools, list) or not all(isinstance(t, dict) and "name" in t for t in tools):
            raise TransportError(
                f"Malformed tools/list response from server {session.identifier}",
                server_id=session.identifier,
            )
        return tools

    async def list_tools(self, server_id: str) -> List[Dict[str, Any]]:
        session = self._resolve(server_id)
        return await self._fetch_tools(session)

    async def invoke(self, server_id: str, tool_name: str, arguments: Any = None) -> Dict[str, Any]:
        session = self._resolve(server_id)
        tools = await self._fetch_tools(session)
        available = [t["name"] for t in tools]
        logger.debug(f"Available tools on {server_id}: {available}")
        if tool_name not in available:
            raise ToolNotFound(server_id, tool_name, available)
        if arguments is None:
            arguments = {}
        elif not isinstance(arguments, Mapping):
            raise InvalidArguments(
                f"Arguments for tool {tool_name} must be an object, got {type(arguments).__name__}",
                server_id=server_id,
            )

        result = await self._request(session, "tools/call", {"name": tool_name, "arguments": dict(arguments)})
        logger.info(f"Called tool {tool_name} on server {server_id}")
        return {
            "status": "success",
            "tool": tool_name,
            "server": server_id,
            "result": result,
        }

    async def list_resources(self, server_id: str) -> List[Dict[str, Any]]:
        session = self._resolve(server_id)
        response = await self._request(session, "resources/list")
        return list(response.get("resources") or [])

    async def read_resource(self, server_id: str, uri: str) -> List[Dict[str, Any]]:
        session = self._resolve(server_id)
        response = await self._request(session, "resources/read", {"uri": uri})
        return list(response.get("contents") or [])
