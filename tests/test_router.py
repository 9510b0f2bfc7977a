import pytest

from mcpgate.errors import InvalidArguments, ServerNotFound, ToolNotFound, TransportError
from mcpgate.mcp.connection import ServerDescriptor
from mcpgate.mcp.registry import SessionRegistry, SessionStatus
from mcpgate.mcp.router import ToolRouter
from mcpgate.mcp.supervisor import ConnectionSupervisor


async def _connected(farm, server_id="fs", request_timeout=None):
    registry = SessionRegistry()
    supervisor = ConnectionSupervisor(registry, connection_factory=farm, base_env={})
    await supervisor.connect(ServerDescriptor(server_id, command="node"))
    return registry, ToolRouter(registry, request_timeout=request_timeout), farm.connections_for(server_id)[0]


@pytest.mark.asyncio
async def test_unknown_server_fails_before_any_transport_call(farm):
    registry, router, conn = await _connected(farm)

    with pytest.raises(ServerNotFound) as exc:
        await router.invoke("other", "echo", {"text": "hi"})

    assert "Please register the server first" in exc.value.message
    assert conn.requests == []


@pytest.mark.asyncio
async def test_invoke_wraps_raw_result(farm):
    registry, router, conn = await _connected(farm)

    res = await router.invoke("fs", "add", {"a": 2, "b": 3})

    assert res["status"] == "success"
    assert res["tool"] == "add"
    assert res["server"] == "fs"
    assert res["result"]["content"][0]["text"] == "5"
    assert [m for m, _ in conn.requests] == ["tools/list", "tools/call"]
    assert conn.requests[1][1] == {"name": "add", "arguments": {"a": 2, "b": 3}}


@pytest.mark.asyncio
async def test_unknown_tool_lists_live_tools(farm):
    registry, router, conn = await _connected(farm)

    with pytest.raises(ToolNotFound) as exc:
        await router.invoke("fs", "nope", {})

    assert exc.value.available_tools == ["echo", "add"]
    assert exc.value.to_dict()["availableTools"] == ["echo", "add"]
    assert exc.value.message == "Tool nope not found in server fs. Available tools: echo, add"
    assert [m for m, _ in conn.requests] == ["tools/list"]


@pytest.mark.asyncio
async def test_non_object_arguments_are_rejected_before_forwarding(farm):
    registry, router, conn = await _connected(farm)

    with pytest.raises(InvalidArguments) as exc:
        await router.invoke("fs", "echo", "tool-args")

    assert exc.value.http_status == 400
    assert exc.value.to_dict()["error"] == "invalid_arguments"
    assert [m for m, _ in conn.requests] == ["tools/list"]
    assert registry.lookup("fs") is not None


@pytest.mark.asyncio
async def test_tool_list_is_refetched_on_every_call(farm):
    registry, router, conn = await _connected(farm)

    with pytest.raises(ToolNotFound):
        await router.invoke("fs", "late_tool", {})

    conn.tools.append({"name": "late_tool", "inputSchema": {"type": "object"}})
    res = await router.invoke("fs", "late_tool", {"text": "now"})
    assert res["status"] == "success"

    conn.tools = [t for t in conn.tools if t["name"] != "echo"]
    with pytest.raises(ToolNotFound) as exc:
        await router.invoke("fs", "echo", {"text": "gone"})
    assert "echo" not in exc.value.available_tools


@pytest.mark.asyncio
async def test_transport_failure_does_not_evict_session(farm):
    farm.configure("fs", request_error=ConnectionResetError("server process exited"))
    registry, router, conn = await _connected(farm)

    with pytest.raises(TransportError) as exc:
        await router.invoke("fs", "echo", {"text": "hi"})

    assert isinstance(exc.value.cause, ConnectionResetError)
    session = registry.lookup("fs")
    assert session is not None
    assert session.status == SessionStatus.CONNECTED
    assert conn.shutdown_calls == 0


@pytest.mark.asyncio
async def test_malformed_tool_list_is_transport_error(farm):
    farm.configure("fs", raw_tools_response={"tools": [{"description": "no name"}]})
    registry, router, conn = await _connected(farm)

    with pytest.raises(TransportError):
        await router.list_tools("fs")


@pytest.mark.asyncio
async def test_request_timeout_is_transport_error(farm):
    farm.configure("fs", request_delay=1.0)
    registry, router, conn = await _connected(farm, request_timeout=0.05)

    with pytest.raises(TransportError) as exc:
        await router.list_tools("fs")
    assert "timed out" in exc.value.message


@pytest.mark.asyncio
async def test_list_tools_and_resources(farm):
    registry, router, conn = await _connected(farm)

    tools = await router.list_tools("fs")
    assert [t["name"] for t in tools] == ["echo", "add"]

    resources = await router.list_resources("fs")
    assert resources[0]["uri"] == "file:///example.txt"

    contents = await router.read_resource("fs", "file:///example.txt")
    assert contents[0]["text"] == "example"

    with pytest.raises(ServerNotFound):
        await router.list_tools("missing")
