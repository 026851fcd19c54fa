"""rpcwire — JSON-RPC 2.0 wire-format models and request grammar."""

from rpcwire.jsonrpc import (
    HTTP_BAD_REQUEST,
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_NO_CONTENT,
    HTTP_OK,
    HTTP_UNAUTHORIZED,
    ERROR_KINDS,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SERVER_ERROR,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    MethodNotFoundError,
    RpcException,
)
from rpcwire.schema import (
    REQUEST_SCHEMA,
    coerce_loose_requests,
    split_batch,
    validate_request_body,
)

__all__ = [
    "JSONRPC_VERSION",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "JsonRpcError",
    "RpcException",
    "MethodNotFoundError",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "SERVER_ERROR",
    "ERROR_KINDS",
    "HTTP_OK",
    "HTTP_NO_CONTENT",
    "HTTP_BAD_REQUEST",
    "HTTP_UNAUTHORIZED",
    "HTTP_INTERNAL_SERVER_ERROR",
    "REQUEST_SCHEMA",
    "validate_request_body",
    "coerce_loose_requests",
    "split_batch",
]
