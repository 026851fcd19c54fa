"""Gateway client — thin JSON-RPC 2.0 consumer.

* ``call(method, params)``  → result
* ``notify(method, params)`` → fire-and-forget
* ``batch(calls)``          → responses, in request order

Uses ``httpx.AsyncClient`` with connection pooling.
**Never** imports from ``gateway``.

Run directly for a quick demo against a local server::

    python -m rpcclient.client
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable

import httpx
from rpcwire.jsonrpc import HTTP_UNAUTHORIZED, JsonRpcError, JsonRpcRequest, JsonRpcResponse

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

log = logging.getLogger(__name__)

Params = list[Any] | dict[str, Any] | None


class RpcError(Exception):
    """Raised when the gateway returns a JSON-RPC error."""

    def __init__(self, error: JsonRpcError) -> None:
        self.error = error
        super().__init__(f"[{error.code}] {error.message}")


class AuthenticationError(Exception):
    """Raised when the gateway rejects the API key."""

    def __init__(self, error: str, message: str) -> None:
        self.error = error
        super().__init__(f"{error}: {message}")


class RpcClient:
    """Thin async client that talks JSON-RPC 2.0 over HTTP.

    Parameters
    ----------
    base_url : str
        Gateway origin, e.g. ``http://localhost:1337``.
    path : str
        Endpoint mount point.
    api_key : str | None
        Plaintext API key sent in the ``authorization`` header.
    timeout : float
        Default request timeout in seconds.
    max_retries : int
        Max connection-level retries.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:1337",
        path: str = "/rpc",
        api_key: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.path = path
        self.max_retries = max_retries
        headers = {"authorization": api_key} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers=headers,
            transport=transport,
        )

    # -- Lifecycle -----------------------------------------------------

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Internal helpers ----------------------------------------------

    def _get_retrier(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, max=10),
            retry=retry_if_exception_type((httpx.NetworkError, httpx.TimeoutException)),
            reraise=True,
        )

    async def _post(self, payload: Any) -> httpx.Response:
        async for attempt in self._get_retrier():
            with attempt:
                resp = await self._client.post(self.path, json=payload)

        if resp.status_code == HTTP_UNAUTHORIZED:
            body = resp.json()
            raise AuthenticationError(body.get("error", ""), body.get("message", ""))
        return resp

    @staticmethod
    def _raise_for_error(data: dict[str, Any]) -> None:
        if data.get("error") is not None:
            raise RpcError(JsonRpcError(**data["error"]))

    # -- Unary RPC -----------------------------------------------------

    async def call(self, method: str, params: Params = None) -> Any:
        """Send a single JSON-RPC call and return its result.

        Raises ``RpcError`` if the gateway returns a JSON-RPC error.
        """
        req = JsonRpcRequest(method=method, params=params, id=uuid.uuid4().hex)
        log.debug("rpc → %s %s(id=%s)", self.path, method, req.id)

        resp = await self._post(req.to_dict())
        data = resp.json()
        self._raise_for_error(data)
        return data.get("result")

    async def notify(self, method: str, params: Params = None) -> None:
        """Send a notification; the gateway does not wait for it to run."""
        req = JsonRpcRequest(method=method, params=params, notification=True)
        log.debug("rpc notify → %s %s", self.path, method)

        resp = await self._post(req.to_dict())
        if resp.status_code != httpx.codes.NO_CONTENT:
            self._raise_for_error(resp.json())

    # -- Batch RPC -----------------------------------------------------

    async def batch(
        self, calls: Iterable[tuple[str, Params] | JsonRpcRequest]
    ) -> list[JsonRpcResponse]:
        """Send several requests in one HTTP round trip.

        Items are ``(method, params)`` calls or prepared requests (use
        a ``JsonRpcRequest`` with ``notification=True`` to mix in
        notifications).  Per-call errors are returned, not raised.
        """
        requests = [
            c if isinstance(c, JsonRpcRequest)
            else JsonRpcRequest(method=c[0], params=c[1], id=uuid.uuid4().hex)
            for c in calls
        ]
        resp = await self._post([r.to_dict() for r in requests])
        data = resp.json()
        if isinstance(data, dict):
            # The whole batch was rejected (parse / invalid request)
            self._raise_for_error(data)
        return [JsonRpcResponse.from_dict(item) for item in data]


# ── Demo entrypoint ──────────────────────────────────────────────────


async def _demo() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    async with RpcClient() as client:
        print("── echo ──")
        result = await client.call("echo", {"msg": "hello from client"})
        print(f"  result: {result}")

        print("── add ──")
        result = await client.call("add", [17, 25])
        print(f"  result: {result}")

        print("── batch ──")
        for resp in await client.batch([("sleep", [0.2, "slow"]), ("sleep", [0.01, "fast"])]):
            print(f"  {resp.to_dict()}")

        print("── done ──")


if __name__ == "__main__":
    import anyio

    anyio.run(_demo)
