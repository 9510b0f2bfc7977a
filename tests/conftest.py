import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest


def pytest_configure():
    # Ensure `src/` is on sys.path so `import mcpgate` works without an editable install.
    root = Path(__file__).resolve().parent.parent
    src = root / "src"
    if src.exists():
        p = str(src)
        if p not in sys.path:
            sys.path.insert(0, p)


DEFAULT_TOOLS = [
    {"name": "echo", "inputSchema": {"type": "object", "properties": {"text": {"type": "string"}}}},
    {"name": "add", "inputSchema": {"type": "object", "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}}}},
]


class FakeConnection:
    """In-process stand-in for MCPServerConnection."""

    def __init__(
        self,
        launch,
        name: str,
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        start_delay: float = 0.0,
        start_error: Optional[BaseException] = None,
        hang_on_start: bool = False,
        request_error: Optional[BaseException] = None,
        request_delay: float = 0.0,
        close_error: Optional[BaseException] = None,
        raw_tools_response: Optional[Any] = None,
    ) -> None:
        self.launch = launch
        self.name = name
        self.tools = list(DEFAULT_TOOLS if tools is None else tools)
        self.start_delay = start_delay
        self.start_error = start_error
        self.hang_on_start = hang_on_start
        self.request_error = request_error
        self.request_delay = request_delay
        self.close_error = close_error
        self.raw_tools_response = raw_tools_response
        self.started = False
        self.shutdown_calls = 0
        self.requests: List[tuple] = []

    @property
    def is_alive(self) -> bool:
        return self.started and self.shutdown_calls == 0

    async def start(self) -> None:
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.hang_on_start:
            await asyncio.sleep(3600)
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.requests.append((method, dict(params or {})))
        if self.request_delay:
            await asyncio.sleep(self.request_delay)
        if self.request_error is not None:
            raise self.request_error
        if method == "tools/list":
            if self.raw_tools_response is not None:
                return self.raw_tools_response
            return {"tools": [dict(t) for t in self.tools]}
        if method == "tools/call":
            args = params.get("arguments") or {}
            if params["name"] == "add":
                text = str(int(args["a"]) + int(args["b"]))
            else:
                text = str(args.get("text", ""))
            return {"content": [{"type": "text", "text": text}], "isError": False}
        if method == "resources/list":
            return {"resources": [{"uri": "file:///example.txt", "name": "Example Resource"}]}
        if method == "resources/read":
            return {"contents": [{"uri": params["uri"], "mimeType": "text/plain", "text": "example"}]}
        raise ValueError(f"Unsupported MCP method: {method}")

    async def shutdown(self) -> None:
        self.shutdown_calls += 1
        if self.close_error is not None:
            raise self.close_error


class FakeServerFarm:
    """Connection factory handing out FakeConnections; per-server behaviour is configurable."""

    def __init__(self) -> None:
        self.behaviours: Dict[str, Dict[str, Any]] = {}
        self.created: List[FakeConnection] = []

    def configure(self, server_id: str, **behaviour: Any) -> None:
        self.behaviours[server_id] = behaviour

    def __call__(self, launch, name: str) -> FakeConnection:
        conn = FakeConnection(launch, name, **self.behaviours.get(name, {}))
        self.created.append(conn)
        return conn

    def connections_for(self, server_id: str) -> List[FakeConnection]:
        return [c for c in self.created if c.name == server_id]


@pytest.fixture
def farm() -> FakeServerFarm:
    return FakeServerFarm()
