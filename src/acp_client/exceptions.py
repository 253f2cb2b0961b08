from __future__ import annotations

from typing import Any, Optional


class AcpError(Exception):
    """Base class for every error raised by the client engine."""


# --- process ---------------------------------------------------------------------

class SpawnError(AcpError):
    """The agent process could not be started."""

    def __init__(self, message: str, command: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.command = list(command or [])


class AgentNotFoundError(SpawnError):
    """No agent command was supplied, or its executable does not exist."""


# --- transport -------------------------------------------------------------------

class TransportError(AcpError):
    pass


class MalformedMessageError(TransportError):
    """A single frame could not be decoded. The stream itself is still usable."""

    def __init__(self, message: str, line: bytes = b"", request_id: Any = None) -> None:
        super().__init__(message)
        self.line = line
        self.request_id = request_id


class TransportClosedError(TransportError):
    pass


# --- JSON-RPC --------------------------------------------------------------------

class RpcError(AcpError):
    pass


class RequestTimeoutError(RpcError):
    def __init__(self, method: str, timeout: float) -> None:
        super().__init__(f"Request {method!r} timed out after {timeout:g}s")
        self.method = method
        self.timeout = timeout


class EngineClosedError(RpcError):
    def __init__(self, message: str = "Connection closed") -> None:
        super().__init__(message)


class StartupTimeoutError(RpcError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Agent did not complete the handshake within {timeout:g}s")
        self.timeout = timeout


class RequestError(RpcError):
    """A JSON-RPC 2.0 error object, sent by the agent or returned to it."""

    def __init__(self, code: int, message: str, data: Optional[Any] = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data

    def __str__(self) -> str:
        base = super().__str__()
        if isinstance(self.data, dict) and self.data.get("details"):
            return f"{base}: {self.data['details']}"
        return base

    @staticmethod
    def parse_error(data: Optional[dict] = None) -> "RequestError":
        return RequestError(-32700, "Parse error", data)

    @staticmethod
    def invalid_request(data: Optional[dict] = None) -> "RequestError":
        return RequestError(-32600, "Invalid request", data)

    @staticmethod
    def method_not_found(method: str) -> "RequestError":
        return RequestError(-32601, "Method not found", {"method": method})

    @staticmethod
    def invalid_params(data: Optional[Any] = None) -> "RequestError":
        return RequestError(-32602, "Invalid params", data)

    @staticmethod
    def internal_error(data: Optional[dict] = None) -> "RequestError":
        return RequestError(-32603, "Internal error", data)

    @staticmethod
    def auth_required(data: Optional[dict] = None) -> "RequestError":
        return RequestError(-32000, "Authentication required", data)

    @classmethod
    def from_error_obj(cls, error: Any) -> "RequestError":
        if not isinstance(error, dict):
            return cls(-32603, "Error", {"details": str(error)})
        return cls(error.get("code", -32603), error.get("message", "Error"), error.get("data"))

    def to_error_obj(self) -> dict:
        obj: dict[str, Any] = {"code": self.code, "message": self.args[0] if self.args else ""}
        if self.data is not None:
            obj["data"] = self.data
        return obj


# --- sessions --------------------------------------------------------------------

class UnknownSessionError(AcpError, KeyError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Unknown session: {session_id}")
        self.session_id = session_id

    def __str__(self) -> str:
        return str(self.args[0])
