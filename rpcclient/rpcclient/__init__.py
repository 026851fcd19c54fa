"""rpcclient — async HTTP client for the JSON-RPC gateway."""

from rpcclient.client import AuthenticationError, RpcClient, RpcError

__all__ = ["RpcClient", "RpcError", "AuthenticationError"]
