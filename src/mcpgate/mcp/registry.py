"""
SessionRegistry - the authoritative identifier -> session mapping.

Every method is synchronous. Under the single-threaded asyncio scheduler that
makes each call atomic: nothing can interleave between the existence check
and the insertion.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from loguru import logger

from mcpgate.errors import AlreadyRegistered, ConnectionFailed
from mcpgate.mcp.connection import ServerDescriptor


class TransportHandle(Protocol):
    """What a session needs from its underlying connection."""

    @property
    def is_alive(self) -> bool: ...

    async def start(self) -> None: ...

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]: ...

    async def shutdown(self) -> None: ...


class SessionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


@dataclass(eq=False)
class Session:
    """Live state for one server; sole owner of its transport handle."""

    descriptor: ServerDescriptor
    status: SessionStatus = SessionStatus.CONNECTING
    connection: Optional[TransportHandle] = None

    @property
    def identifier(self) -> str:
        return self.descriptor.identifier

    @property
    def is_connected(self) -> bool:
        return self.status == SessionStatus.CONNECTED and self.connection is not None

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.is_connected:
            raise RuntimeError(f"Session {self.identifier} is {self.status.value}")
        return await self.connection.request(method, params)

    async def close(self) -> None:
        """Close the owned handle once; later calls do nothing."""
        if self.status == SessionStatus.DISCONNECTED:
            return
        conn = self.connection
        self.status = SessionStatus.DISCONNECTED
        if conn is None:
            return
        try:
            await conn.shutdown()
        except BaseException:
            self.status = SessionStatus.FAILED
            raise
        finally:
            self.connection = None


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self.enumerate())

    def is_pending(self, identifier: str) -> bool:
        session = self._sessions.get(identifier)
        return session is not None and session.status == SessionStatus.CONNECTING

    # Placeholder discipline used while a connection is being established.

    def reserve(self, descriptor: ServerDescriptor) -> Session:
        """Claim ``descriptor.identifier`` with a Connecting placeholder."""
        identifier = descriptor.identifier
        if identifier in self._sessions:
            raise AlreadyRegistered(identifier)
        session = Session(descriptor=descriptor)
        self._sessions[identifier] = session
        return session

    def commit(self, session: Session, connection: TransportHandle) -> Session:
        """Promote a reserved placeholder to a Connected session."""
        if self._sessions.get(session.identifier) is not session:
            raise ConnectionFailed(
                f"Registration of server {session.identifier} was cancelled while connecting",
                server_id=session.identifier,
            )
        session.connection = connection
        session.status = SessionStatus.CONNECTED
        return session

    def release(self, session: Session) -> None:
        """Drop a placeholder, but only if it is still the stored entry."""
        if self._sessions.get(session.identifier) is session:
            del self._sessions[session.identifier]

    # Public contract.

    def insert(self, identifier: str, session: Session) -> None:
        if identifier in self._sessions:
            raise AlreadyRegistered(identifier)
        if not session.is_connected:
            raise ValueError(f"Only connected sessions can be stored (got {session.status.value})")
        self._sessions[identifier] = session

    def lookup(self, identifier: str) -> Optional[Session]:
        session = self._sessions.get(identifier)
        if session is None or session.status != SessionStatus.CONNECTED:
            return None
        return session

    def remove(self, identifier: str) -> Optional[Session]:
        """Detach a connected session so the caller can close it; no-op when absent."""
        session = self.lookup(identifier)
        if session is None:
            return None
        del self._sessions[identifier]
        logger.debug(f"Removed session {identifier} from registry")
        return session

    def enumerate(self) -> List[Tuple[str, SessionStatus]]:
        return [
            (identifier, session.status)
            for identifier, session in self._sessions.items()
            if session.status == SessionStatus.CONNECTED
        ]

    def clear(self) -> List[Session]:
        """Remove every entry (placeholders included) and return the connected sessions."""
        sessions = [s for s in self._sessions.values() if s.status == SessionStatus.CONNECTED]
        self._sessions.clear()
        return sessions
