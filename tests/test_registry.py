import pytest

from mcpgate.errors import AlreadyRegistered, ConnectionFailed
from mcpgate.mcp.connection import ServerDescriptor
from mcpgate.mcp.registry import Session, SessionRegistry, SessionStatus


class _Handle:
    def __init__(self):
        self.closed = 0

    @property
    def is_alive(self):
        return self.closed == 0

    async def start(self):
        return None

    async def request(self, method, params=None):
        return {}

    async def shutdown(self):
        self.closed += 1


def _connected(server_id: str) -> Session:
    return Session(ServerDescriptor(server_id, command="node"), SessionStatus.CONNECTED, _Handle())


def test_placeholder_is_invisible_until_committed():
    registry = SessionRegistry()
    session = registry.reserve(ServerDescriptor("fs", command="node"))

    assert session.status == SessionStatus.CONNECTING
    assert registry.is_pending("fs")
    assert registry.lookup("fs") is None
    assert registry.enumerate() == []
    assert registry.remove("fs") is None

    with pytest.raises(AlreadyRegistered):
        registry.reserve(ServerDescriptor("fs", command="node"))

    handle = _Handle()
    registry.commit(session, handle)
    assert registry.lookup("fs") is session
    assert session.connection is handle
    assert registry.enumerate() == [("fs", SessionStatus.CONNECTED)]
    assert len(registry) == 1


def test_release_then_commit_is_rejected():
    registry = SessionRegistry()
    session = registry.reserve(ServerDescriptor("fs", command="node"))
    registry.release(session)

    assert not registry.is_pending("fs")
    with pytest.raises(ConnectionFailed):
        registry.commit(session, _Handle())
    assert registry.lookup("fs") is None


def test_release_does_not_drop_a_newer_entry():
    registry = SessionRegistry()
    stale = registry.reserve(ServerDescriptor("fs", command="node"))
    registry.clear()
    fresh = registry.reserve(ServerDescriptor("fs", command="node"))

    registry.release(stale)
    assert registry.is_pending("fs")
    registry.commit(fresh, _Handle())
    assert registry.lookup("fs") is fresh


def test_insert_rejects_duplicates_without_side_effects():
    registry = SessionRegistry()
    first = _connected("fs")
    registry.insert("fs", first)

    with pytest.raises(AlreadyRegistered) as exc:
        registry.insert("fs", _connected("fs"))
    assert exc.value.message == "Server fs is already registered"
    assert registry.lookup("fs") is first


def test_insert_requires_connected_session():
    registry = SessionRegistry()
    with pytest.raises(ValueError):
        registry.insert("fs", Session(ServerDescriptor("fs", command="node")))
    assert registry.enumerate() == []


def test_remove_is_idempotent():
    registry = SessionRegistry()
    session = _connected("fs")
    registry.insert("fs", session)

    assert registry.remove("fs") is session
    assert registry.remove("fs") is None
    assert registry.remove("never-registered") is None


def test_clear_returns_connected_sessions_and_drops_placeholders():
    registry = SessionRegistry()
    a = _connected("a")
    registry.insert("a", a)
    registry.reserve(ServerDescriptor("pending", command="node"))

    assert registry.clear() == [a]
    assert registry.enumerate() == []
    assert not registry.is_pending("pending")


@pytest.mark.asyncio
async def test_session_close_runs_once():
    session = _connected("fs")
    handle = session.connection

    await session.close()
    await session.close()

    assert handle.closed == 1
    assert session.status == SessionStatus.DISCONNECTED
    assert session.connection is None
    with pytest.raises(RuntimeError):
        await session.request("tools/list")
