"""
MCPServerConnection - stdio MCP client connection lifecycle.

Uses the official `mcp` Python client to spawn an MCP server and communicate
over stdin/stdout (stdio transport). Launch resolution (explicit command or
interpreter inferred from a script's extension) lives here too, so that every
check happens before a process is spawned.
"""

from __future__ import annotations

import asyncio
import os
import sys
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from loguru import logger
from mcp import ClientSession, StdioServerParameters, stdio_client
from pydantic import AnyUrl

from mcpgate.errors import ConnectionFailed, ScriptNotFound, UnsupportedScriptType, describe


# Script extension -> interpreter used to launch it.
INTERPRETERS: Dict[str, str] = {
    ".py": sys.executable or "python",
    ".js": "node",
}


@dataclass(frozen=True)
class ServerDescriptor:
    """Identity and launch spec for one managed server."""

    identifier: str
    command: Optional[str] = None
    args: Tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    script_path: Optional[str] = None
    cwd: Optional[str] = None

    @classmethod
    def from_script(
        cls,
        script_path: str,
        *,
        identifier: Optional[str] = None,
        args: Tuple[str, ...] = (),
        env: Optional[Mapping[str, str]] = None,
    ) -> "ServerDescriptor":
        return cls(
            identifier=identifier or script_path,
            args=tuple(args),
            env=dict(env or {}),
            script_path=script_path,
        )


@dataclass(frozen=True)
class LaunchSpec:
    command: str
    args: Tuple[str, ...]
    env: Dict[str, str]
    cwd: Optional[str] = None

    def describe(self) -> str:
        return " ".join([self.command, *self.args])


def resolve_launch(descriptor: ServerDescriptor, base_env: Optional[Mapping[str, str]] = None) -> LaunchSpec:
    """
    Work out how to start a server.

    An explicit command wins; otherwise the interpreter is looked up from the
    script's extension. The descriptor's env is merged over ``base_env``
    (``os.environ`` by default), the descriptor winning on collisions.
    """
    env = dict(os.environ if base_env is None else base_env)
    env.update({str(k): str(v) for k, v in dict(descriptor.env).items()})

    if descriptor.command:
        return LaunchSpec(
            command=descriptor.command,
            args=tuple(str(a) for a in descriptor.args),
            env=env,
            cwd=descriptor.cwd,
        )

    if not descriptor.script_path:
        raise ConnectionFailed(
            f"Server {descriptor.identifier} has neither a command nor a script path",
            server_id=descriptor.identifier,
        )

    script = Path(descriptor.script_path)
    interpreter = INTERPRETERS.get(script.suffix.lower())
    if interpreter is None:
        raise UnsupportedScriptType(
            f"Unsupported script type '{script.suffix or script.name}': "
            f"server script must be one of {', '.join(sorted(INTERPRETERS))}",
            server_id=descriptor.identifier,
        )
    if not script.is_file():
        raise ScriptNotFound(f"Server script not found: {script}", server_id=descriptor.identifier)

    return LaunchSpec(
        command=interpreter,
        args=(str(script), *(str(a) for a in descriptor.args)),
        env=env,
        cwd=descriptor.cwd,
    )


def is_not_found_error(exc: BaseException) -> bool:
    """True when ``exc`` (or anything it wraps) means the executable was not found."""
    seen = set()
    stack = [exc]
    while stack:
        err = stack.pop()
        if err is None or id(err) in seen:
            continue
        seen.add(id(err))
        if isinstance(err, FileNotFoundError):
            return True
        if isinstance(err, BaseExceptionGroup):
            stack.extend(err.exceptions)
        stack.extend([err.__cause__, err.__context__])
    return False


RequestHandler = Callable[[ClientSession, Dict[str, Any]], Awaitable[Any]]

_REQUESTS: Dict[str, RequestHandler] = {
    "tools/list": lambda session, params: session.list_tools(),
    "tools/call": lambda session, params: session.call_tool(
        params["name"], arguments=params.get("arguments") or {}
    ),
    "resources/list": lambda session, params: session.list_resources(),
    "resources/read": lambda session, params: session.read_resource(AnyUrl(str(params["uri"]))),
}


class MCPServerConnection:
    """
    One live subprocess plus the MCP client session running over its stdio.

    The SDK's async context managers must be entered and exited by the same
    task, so a dedicated owner task holds them open between ``start()`` and
    ``shutdown()``. Callers can therefore start and stop the connection from
    different tasks.
    """

    def __init__(self, launch: LaunchSpec, *, name: str = "") -> None:
        self.launch = launch
        self.name = name or launch.command
        self._session: Optional[ClientSession] = None
        self._task: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Future] = None
        self._closing = asyncio.Event()
        self._lock = asyncio.Lock()

    @property
    def is_alive(self) -> bool:
        return self._session is not None and self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"MCP connection {self.name} was already started")

        logger.info(f"Starting MCP server {self.name}: {self.launch.describe()}")
        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._task = loop.create_task(self._serve(), name=f"mcp-connection:{self.name}")
        # Shielded so a caller timeout does not cancel the owner's future.
        await asyncio.shield(self._ready)

    async def _serve(self) -> None:
        ready = self._ready
        params = StdioServerParameters(
            command=self.launch.command,
            args=list(self.launch.args),
            env=dict(self.launch.env),
            cwd=self.launch.cwd,
        )
        try:
            async with AsyncExitStack() as stack:
                read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
                session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
                await session.initialize()
                self._session = session
                if not ready.done():
                    ready.set_result(None)
                await self._closing.wait()
        except asyncio.CancelledError:
            if not ready.done():
                ready.cancel()
            raise
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.warning(f"MCP connection {self.name} ended with error: {describe(e)}")
        finally:
            self._session = None

    async def shutdown(self) -> None:
        """Close the session and terminate the subprocess. Safe to call repeatedly."""
        task = self._task
        if task is None:
            return
        self._closing.set()
        if self._ready is not None and not self._ready.done():
            # Still handshaking: nothing to wind down gracefully.
            task.cancel()
        if not task.done():
            await asyncio.wait({task})
        if self._ready is not None and self._ready.done() and not self._ready.cancelled():
            # Mark a failed handshake as retrieved; start() already raised it.
            self._ready.exception()
        logger.debug(f"MCP connection {self.name} closed")

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        handler = _REQUESTS.get(method)
        if handler is None:
            raise ValueError(f"Unsupported MCP method: {method}")
        async with self._lock:
            session = self._session
            if session is None or not self.is_alive:
                raise RuntimeError(f"MCP session {self.name} is not connected")
            result = await handler(session, dict(params or {}))
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)
