"""JSON-RPC 2.0 wire-format models.

Pure data — no I/O, no business logic.  Both the gateway and the client
import these for serialisation only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

JSONRPC_VERSION = "2.0"

# ── Standard error codes (JSON-RPC 2.0 §5.1) ────────────────────────
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# Implementation-defined: callable failed without a more specific code
SERVER_ERROR = -32000

ERROR_KINDS: dict[int, str] = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid Request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
    SERVER_ERROR: "Server error",
}

# ── HTTP statuses (RFC 9110) ─────────────────────────────────────────
HTTP_OK = 200
HTTP_NO_CONTENT = 204
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_INTERNAL_SERVER_ERROR = 500


# ── Exceptions ───────────────────────────────────────────────────────
class RpcException(Exception):
    """A failure that already knows its taxonomy code.

    Callables raise this (or anything with an integer ``code``
    attribute) to report something more specific than ``SERVER_ERROR``.
    """

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)

    @property
    def kind(self) -> str:
        return ERROR_KINDS.get(self.code, type(self).__name__)


class MethodNotFoundError(RpcException):
    """Raised when a method name does not resolve to a callable."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(
            METHOD_NOT_FOUND,
            f"The method {method!r} does not exist / is not available.",
        )


# ── Models ───────────────────────────────────────────────────────────
@dataclass(slots=True)
class JsonRpcError:
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            d["data"] = self.data
        return d


@dataclass(slots=True)
class JsonRpcRequest:
    """Inbound JSON-RPC 2.0 request.

    A request without an ``id`` member is a *notification*.  An explicit
    ``"id": null`` is still a call and gets a response.
    """

    method: str
    params: list[Any] | dict[str, Any] | None = None
    id: str | int | float | None = None
    jsonrpc: str = JSONRPC_VERSION
    notification: bool = False

    # -- Convenience ---------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params is not None:
            d["params"] = self.params
        if not self.notification:
            d["id"] = self.id
        return d

    def args(self) -> tuple[list[Any], dict[str, Any]]:
        """Split ``params`` into positional and keyword arguments."""
        if isinstance(self.params, dict):
            return [], dict(self.params)
        return list(self.params or []), {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "JsonRpcRequest":
        """Build a request from an object that already passed validation."""
        return cls(
            method=raw["method"],
            params=raw.get("params"),
            id=raw.get("id"),
            jsonrpc=raw.get("jsonrpc", JSONRPC_VERSION),
            notification="id" not in raw,
        )


@dataclass(slots=True)
class JsonRpcResponse:
    """Outbound JSON-RPC 2.0 response."""

    id: str | int | float | None = None
    result: Any = None
    error: JsonRpcError | None = None
    notification: bool = False

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
        if not self.notification:
            d["id"] = self.id
        if self.error is not None:
            d["error"] = self.error.to_dict()
        else:
            d["result"] = self.result
        return d

    @property
    def ok(self) -> bool:
        return self.error is None

    # -- Factories -----------------------------------------------------
    @classmethod
    def success(cls, req_id: Any, result: Any) -> "JsonRpcResponse":
        return cls(id=req_id, result=result)

    @classmethod
    def fail(
        cls,
        req_id: Any,
        code: int,
        message: str,
        data: Any = None,
        notification: bool = False,
    ) -> "JsonRpcResponse":
        return cls(
            id=req_id,
            error=JsonRpcError(code=code, message=message, data=data),
            notification=notification,
        )

    @classmethod
    def placeholder(cls) -> "JsonRpcResponse":
        """Empty success entry that holds a notification's batch position."""
        return cls(result={}, notification=True)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "JsonRpcResponse":
        error = raw.get("error")
        return cls(
            id=raw.get("id"),
            result=raw.get("result"),
            error=JsonRpcError(**error) if error is not None else None,
            notification="id" not in raw,
        )
