"""A mounted JSON-RPC endpoint: one path, one method table.

``Endpoint.handle`` is the whole per-request pipeline: parse → coerce
(optional) → validate → dispatch → assemble.  Subclasses override
``invoke`` to adapt a library's own calling convention.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from rpcwire.jsonrpc import (
    HTTP_BAD_REQUEST,
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_NO_CONTENT,
    INVALID_REQUEST,
    PARSE_ERROR,
    SERVER_ERROR,
    JsonRpcRequest,
    JsonRpcResponse,
)
from rpcwire.schema import coerce_loose_requests, split_batch, validate_request_body
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from gateway.dispatcher import (
    Dispatcher,
    HandlerFn,
    as_method_table,
    batch_status,
    invoke_callable,
    resolve_method,
)

log = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────────────


def error_response(code: int, msg: str, status: int, data: Any = None) -> JSONResponse:
    """Build a transport-level JSON-RPC error response (``id`` is null)."""
    resp = JsonRpcResponse.fail(None, code, msg, data)
    return JSONResponse(resp.to_dict(), status_code=status)


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON
    raise ValueError(f"invalid JSON constant {name!r}")


class Endpoint:
    """JSON-RPC 2.0 endpoint bound to *path*.

    Parameters
    ----------
    path : str
        Mount point, e.g. ``/rpc``.
    methods : Any
        A method table, a mapping of name → callable, or any object
        whose public callables become the methods.
    coerce_loose_clients : bool
        Upgrade requests lacking ``jsonrpc`` to JSON-RPC 2.0 before
        validation, assigning an ``id`` when missing.
    """

    def __init__(
        self, path: str, methods: Any, coerce_loose_clients: bool = False
    ) -> None:
        if not path.startswith("/"):
            raise ValueError(f"endpoint path must start with '/': {path!r}")
        self.path = path
        self.methods = as_method_table(methods)
        self.coerce_loose_clients = coerce_loose_clients

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={self.path!r})"

    # -- Invoker interface ---------------------------------------------
    def resolve(self, name: str) -> HandlerFn:
        return resolve_method(self.methods, name)

    async def invoke(self, fn: HandlerFn, request: JsonRpcRequest) -> Any:
        """Execute one resolved call.  Override to adapt conventions."""
        return await invoke_callable(fn, request)

    # -- HTTP ----------------------------------------------------------
    def route(self) -> Route:
        return Route(self.path, self.handle, methods=["POST"])

    async def handle(self, request: Request) -> Response:
        """Handle a JSON-RPC 2.0 POST to this endpoint."""
        try:
            body = await request.body()
            raw = json.loads(body, parse_constant=_reject_constant)
        except ValueError as exc:
            log.info("%s: parse error: %s", self.path, exc)
            return error_response(
                PARSE_ERROR,
                "Parse error: Invalid JSON was received by the server.",
                HTTP_BAD_REQUEST,
                str(exc),
            )

        try:
            return await self._handle_rpc(request, raw)
        except Exception:
            log.exception("%s: unhandled error", self.path)
            return error_response(SERVER_ERROR, "Server error", HTTP_INTERNAL_SERVER_ERROR)

    async def _handle_rpc(self, request: Request, raw: Any) -> Response:
        if self.coerce_loose_clients:
            coerce_loose_requests(raw)

        violations = validate_request_body(raw)
        if violations:
            log.info("%s: invalid request (%d violations)", self.path, len(violations))
            return error_response(
                INVALID_REQUEST,
                "Invalid Request: The JSON sent is not a valid request object.",
                HTTP_BAD_REQUEST,
                violations,
            )

        elements, is_batch = split_batch(raw)
        rpc_requests = [JsonRpcRequest.from_dict(item) for item in elements]
        for r in rpc_requests:
            log.info("rpc ← %s %s(id=%s)", self.path, r.method, r.id)

        dispatcher: Dispatcher = request.app.state.dispatcher
        responses = await dispatcher.dispatch(rpc_requests, self)
        status = batch_status(responses)

        if is_batch:
            return JSONResponse([r.to_dict() for r in responses], status_code=status)
        if rpc_requests[0].notification:
            return Response(status_code=HTTP_NO_CONTENT)
        return JSONResponse(responses[0].to_dict(), status_code=status)
