"""JSON-RPC gateway — endpoint registry and Starlette/uvicorn lifecycle.

One POST route per mounted endpoint.  Batched calls run concurrently;
notifications run on a task group owned by the app lifespan.

Run directly::

    python -m gateway.server --port 1337
"""

from __future__ import annotations

import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Sequence

import anyio
import uvicorn
from dotenv import load_dotenv
from rpcwire.jsonrpc import HTTP_INTERNAL_SERVER_ERROR, SERVER_ERROR
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from gateway.auth import ApiKeyMiddleware, check_auth_config
from gateway.config import ConfigurationError, ServerConfig, load_config
from gateway.dispatcher import Dispatcher, NotificationErrorHook, NotificationRunner
from gateway.endpoint import Endpoint, error_response

log = logging.getLogger(__name__)
access_log = logging.getLogger("gateway.access")


# ── Middleware ───────────────────────────────────────────────────────


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One log line per HTTP request, rendered with a ``%``-style template."""

    def __init__(self, app: ASGIApp, fmt: str) -> None:
        super().__init__(app)
        self.fmt = fmt

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        access_log.info(
            self.fmt,
            {
                "client": request.client.host if request.client else "-",
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": (time.perf_counter() - started) * 1000,
            },
        )
        return response


async def server_error(request: Request, exc: Exception) -> Response:
    """App-wide fallback so faults outside an endpoint still answer JSON."""
    log.error("%s: unhandled error", request.url.path, exc_info=exc)
    return error_response(SERVER_ERROR, "Server error", HTTP_INTERNAL_SERVER_ERROR)


# ── Server ───────────────────────────────────────────────────────────


class RpcServer:
    """Owns the mounted endpoints and the listening socket.

    Parameters
    ----------
    config : ServerConfig | None
        Resolved configuration.  When omitted it is loaded from the
        command line, the environment and *overrides*; passing both is a
        ``TypeError``.
    on_notification_error : callable | None
        Called with ``(request, exc)`` when a notification fails in the
        background.  Defaults to a warning log line.
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        *,
        on_notification_error: NotificationErrorHook | None = None,
        **overrides: Any,
    ) -> None:
        if config is not None and overrides:
            raise TypeError("pass either a ServerConfig or overrides, not both")
        self.config = config or load_config(overrides=overrides)
        log.info(
            "Loading environment variables with prefix: %r",
            self.config.env_prefix.upper(),
        )
        self.runner = NotificationRunner(on_notification_error)
        self._endpoints: dict[str, Endpoint] = {}
        self._server: uvicorn.Server | None = None

    # -- Registry ------------------------------------------------------
    def add_endpoint(
        self,
        path_or_endpoint: str | Endpoint,
        methods: Any = None,
        *,
        coerce_loose_clients: bool = False,
    ) -> Endpoint:
        """Mount a method table at a path, or mount a custom ``Endpoint``."""
        if isinstance(path_or_endpoint, Endpoint):
            if methods is not None:
                raise TypeError("pass either an Endpoint or a path with methods")
            endpoint = path_or_endpoint
        else:
            if methods is None:
                raise TypeError(f"no methods given for {path_or_endpoint!r}")
            endpoint = Endpoint(path_or_endpoint, methods, coerce_loose_clients)

        if endpoint.path in self._endpoints:
            raise ValueError(f"an endpoint is already mounted at {endpoint.path!r}")
        self._endpoints[endpoint.path] = endpoint
        log.debug("mounted %r", endpoint)
        return endpoint

    @property
    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints.values())

    # -- App -----------------------------------------------------------
    @asynccontextmanager
    async def _lifespan(self, app: Starlette) -> AsyncIterator[None]:
        async with self.runner.run():
            yield

    def create_app(self) -> Starlette:
        """Build the ASGI app.

        Raises ``ConfigurationError`` if authentication is enabled
        without an API key hash.
        """
        middleware = []
        if self.config.request_log_format:
            middleware.append(
                Middleware(RequestLogMiddleware, fmt=self.config.request_log_format)
            )
        if check_auth_config(self.config):
            middleware.append(
                Middleware(ApiKeyMiddleware, api_key_hash=self.config.apikeyhash)
            )

        app = Starlette(
            debug=False,
            routes=[endpoint.route() for endpoint in self._endpoints.values()],
            middleware=middleware,
            lifespan=self._lifespan,
            exception_handlers={Exception: server_error},
        )
        app.state.dispatcher = Dispatcher(self.runner)
        for endpoint in self._endpoints.values():
            log.info("Registered RPC endpoint %s", endpoint.path)
        return app

    # -- Lifecycle -----------------------------------------------------
    @property
    def started(self) -> bool:
        return self._server is not None

    async def start(self) -> bool:
        """Serve until ``stop()`` is called.

        Returns ``False`` without binding when the server is disabled.
        """
        if self.config.disabled:
            log.error("Server is disabled, exiting.")
            return False
        if self._server is not None:
            raise RuntimeError("server is already running")

        app = self.create_app()
        self._server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=self.config.host,
                port=self.config.port,
                lifespan="on",
                access_log=False,
                log_config=None,
            )
        )
        log.info("Server listening on %s:%d", self.config.host, self.config.port)
        try:
            await self._server.serve()
        finally:
            self._server = None
        log.info("Server stopped")
        return True

    def stop(self) -> bool:
        """Ask the running server to shut down."""
        if self._server is None:
            log.error("Server is not running, nothing to stop.")
            return False
        self._server.should_exit = True
        return True


# ── Runnable entrypoint ──────────────────────────────────────────────


def main(argv: Sequence[str] | None = None) -> int:
    from gateway.handlers import ShellEndpoint, math_table, registry

    load_dotenv(os.path.join(Path.cwd(), ".env"))
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        server = RpcServer(load_config(argv))
        server.add_endpoint("/rpc", registry)
        server.add_endpoint("/math", math_table, coerce_loose_clients=True)
        server.add_endpoint(ShellEndpoint())
        anyio.run(server.start)
    except ConfigurationError as exc:
        log.error("%s, exiting.", exc)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
