"""
Error taxonomy and structured result helpers.

Core components raise these exceptions; the application facade turns them
into ``{"status": "error", ...}`` dictionaries for callers.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class MCPGateError(Exception):
    """Base class for every error surfaced by the session manager."""

    code = "internal_error"
    http_status = 500

    def __init__(
        self,
        message: str,
        *,
        server_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.server_id = server_id
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": "error",
            "error": self.code,
            "message": self.message,
        }
        if self.server_id is not None:
            payload["serverId"] = self.server_id
        return payload


class AlreadyRegistered(MCPGateError):
    code = "already_registered"
    http_status = 409

    def __init__(self, server_id: str) -> None:
        super().__init__(f"Server {server_id} is already registered", server_id=server_id)


class UnsupportedScriptType(MCPGateError):
    code = "unsupported_script_type"
    http_status = 400


class ScriptNotFound(MCPGateError):
    code = "script_not_found"
    http_status = 404


class ConnectionFailed(MCPGateError):
    code = "connection_failed"
    http_status = 502


class ServerNotFound(MCPGateError):
    code = "server_not_found"
    http_status = 404

    def __init__(self, server_id: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Server {server_id} not found. Please register the server first.",
            server_id=server_id,
        )


class ToolNotFound(MCPGateError):
    code = "tool_not_found"
    http_status = 404

    def __init__(self, server_id: str, tool_name: str, available_tools: List[str]) -> None:
        super().__init__(
            f"Tool {tool_name} not found in server {server_id}. "
            f"Available tools: {', '.join(available_tools)}",
            server_id=server_id,
        )
        self.tool_name = tool_name
        self.available_tools = list(available_tools)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["tool"] = self.tool_name
        payload["availableTools"] = list(self.available_tools)
        return payload


class InvalidArguments(MCPGateError):
    code = "invalid_arguments"
    http_status = 400


class TransportError(MCPGateError):
    code = "transport_error"
    http_status = 502


class InternalError(MCPGateError):
    code = "internal_error"
    http_status = 500


def describe(exc: BaseException) -> str:
    """Readable one-line description of an exception (ExceptionGroups included)."""
    if isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        return "; ".join(describe(e) for e in exc.exceptions)
    text = str(exc).strip()
    return text or type(exc).__name__


def success_result(message: str, **extra: Any) -> Dict[str, Any]:
    return {"status": "success", "message": message, **extra}


def error_result(exc: BaseException, *, server_id: Optional[str] = None) -> Dict[str, Any]:
    """Convert any exception into an error result dict."""
    if not isinstance(exc, MCPGateError):
        exc = InternalError(describe(exc), server_id=server_id, cause=exc)
    payload = exc.to_dict()
    if server_id is not None and "serverId" not in payload:
        payload["serverId"] = server_id
    return payload


_HTTP_STATUS = {
    cls.code: cls.http_status
    for cls in (
        AlreadyRegistered,
        UnsupportedScriptType,
        ScriptNotFound,
        ConnectionFailed,
        ServerNotFound,
        ToolNotFound,
        InvalidArguments,
        TransportError,
        InternalError,
    )
}


def http_status_for(result: Dict[str, Any]) -> int:
    """HTTP status code matching a result dict."""
    if result.get("status") != "error":
        return 200
    return _HTTP_STATUS.get(str(result.get("error")), 500)
