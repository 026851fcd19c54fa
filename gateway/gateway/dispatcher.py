"""Method tables and the batch dispatch engine.

A method table maps flat method names to callables — nothing more.
The ``Dispatcher`` resolves and runs every request of a batch
concurrently, keeps responses in request order, and turns every
failure into an error entry for that request alone.
"""

from __future__ import annotations

import functools
import inspect
import json
import logging
import traceback
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Protocol, Sequence

import anyio
import anyio.to_thread
from anyio.abc import TaskGroup
from rpcwire.jsonrpc import (
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_OK,
    SERVER_ERROR,
    JsonRpcRequest,
    JsonRpcResponse,
    MethodNotFoundError,
    RpcException,
)

log = logging.getLogger(__name__)

# Type alias for an RPC handler: (*args, **kwargs) -> result | awaitable
HandlerFn = Callable[..., Any]
NotificationErrorHook = Callable[[JsonRpcRequest, BaseException], None]


# ── Method tables ────────────────────────────────────────────────────


class MethodTable(Protocol):
    def resolve(self, name: str) -> HandlerFn | None: ...


class Registry:
    """A simple method → handler mapping.

    Usage::

        registry = Registry()

        @registry.handler("echo")
        async def echo(*args, **kwargs):
            return args or kwargs
    """

    def __init__(self) -> None:
        self._handlers: dict[str, HandlerFn] = {}

    # -- Registration --------------------------------------------------
    def handler(self, method: str) -> Callable[[HandlerFn], HandlerFn]:
        """Decorator that registers *fn* under *method*."""

        def decorator(fn: HandlerFn) -> HandlerFn:
            if method in self._handlers:
                log.warning("overwriting handler for %r", method)
            self._handlers[method] = fn
            log.debug("registered handler %r → %s", method, fn.__qualname__)
            return fn

        return decorator

    # -- Lookup --------------------------------------------------------
    def resolve(self, name: str) -> HandlerFn | None:
        return self._handlers.get(name)

    # -- Introspection -------------------------------------------------
    @property
    def methods(self) -> list[str]:
        return list(self._handlers.keys())

    def is_registered(self, method: str) -> bool:
        return method in self._handlers


class DictMethodTable:
    """Method table over a plain mapping of name → callable."""

    def __init__(self, methods: Mapping[str, Any]) -> None:
        self._methods = dict(methods)

    def resolve(self, name: str) -> HandlerFn | None:
        fn = self._methods.get(name)
        return fn if callable(fn) else None

    @property
    def methods(self) -> list[str]:
        return [name for name, fn in self._methods.items() if callable(fn)]


class ModuleMethodTable(DictMethodTable):
    """Snapshot of the public callables of a module or object.

    Names are collected once, at construction; lookups never walk
    attributes of the wrapped object.
    """

    def __init__(self, obj: Any) -> None:
        methods = {}
        for name in dir(obj):
            if name.startswith("_"):
                continue
            value = getattr(obj, name, None)
            if callable(value):
                methods[name] = value
        super().__init__(methods)
        self.source = getattr(obj, "__name__", type(obj).__name__)


def as_method_table(obj: Any) -> MethodTable:
    """Adapt *obj* to the ``MethodTable`` interface."""
    if hasattr(obj, "resolve") and callable(obj.resolve):
        return obj
    if isinstance(obj, Mapping):
        return DictMethodTable(obj)
    return ModuleMethodTable(obj)


def resolve_method(table: MethodTable, name: str) -> HandlerFn:
    """Return the callable bound to *name*.

    Raises ``MethodNotFoundError`` if the name is unknown or not callable.
    """
    fn = table.resolve(name)
    if fn is None or not callable(fn):
        raise MethodNotFoundError(name)
    return fn


async def invoke_callable(fn: HandlerFn, request: JsonRpcRequest) -> Any:
    """Call *fn* with the request's params, awaiting the result if needed.

    Coroutine functions run on the event loop; anything else runs in a
    worker thread so a blocking callable cannot stall other requests.
    """
    args, kwargs = request.args()
    if inspect.iscoroutinefunction(fn):
        return await fn(*args, **kwargs)
    result = await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))
    if inspect.isawaitable(result):
        result = await result
    return result


class Invoker(Protocol):
    def resolve(self, name: str) -> HandlerFn: ...

    async def invoke(self, fn: HandlerFn, request: JsonRpcRequest) -> Any: ...


# ── Error classification ─────────────────────────────────────────────


def error_entry(request: JsonRpcRequest, exc: BaseException) -> JsonRpcResponse:
    """Convert a failure into the error entry for *request*."""
    if isinstance(exc, RpcException):
        code, message, data = exc.code, f"{exc.kind}: {exc.message}", exc.data
    else:
        code = getattr(exc, "code", None)
        if not isinstance(code, int) or isinstance(code, bool):
            code = SERVER_ERROR
        message = f"{type(exc).__name__}: {exc}"
        data = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    try:
        json.dumps(data, allow_nan=False)
    except (TypeError, ValueError):
        data = repr(data)
    return JsonRpcResponse.fail(
        request.id, code, message, data, notification=request.notification
    )


def batch_status(responses: Sequence[JsonRpcResponse]) -> int:
    """``200`` when every entry succeeded, ``500`` if any carries an error."""
    if any(r.error is not None for r in responses):
        return HTTP_INTERNAL_SERVER_ERROR
    return HTTP_OK


# ── Notifications ────────────────────────────────────────────────────


def _log_notification_failure(request: JsonRpcRequest, exc: BaseException) -> None:
    log.warning(
        "notification %s failed: %s: %s",
        request.method,
        type(exc).__name__,
        exc,
        exc_info=exc,
    )


class NotificationRunner:
    """Runs notifications in the background, outside any HTTP request.

    Notifications live on a task group owned by the server lifespan.
    Their outcome never reaches a response; failures are handed to
    ``on_error`` and otherwise dropped.
    """

    def __init__(self, on_error: NotificationErrorHook | None = None) -> None:
        self.on_error = on_error or _log_notification_failure
        self._task_group: TaskGroup | None = None

    @property
    def running(self) -> bool:
        return self._task_group is not None

    @asynccontextmanager
    async def run(self) -> AsyncIterator["NotificationRunner"]:
        """Own the background task group for the duration of the block."""
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                yield self
            finally:
                self._task_group = None

    def start_soon(
        self, request: JsonRpcRequest, invoke: Callable[..., Any], *args: Any
    ) -> None:
        if self._task_group is None:
            raise RuntimeError("notification runner is not running")
        self._task_group.start_soon(
            self._run, request, invoke, *args, name=f"notify:{request.method}"
        )

    async def _run(
        self, request: JsonRpcRequest, invoke: Callable[..., Any], *args: Any
    ) -> None:
        try:
            await invoke(*args)
            log.debug("notification %s done", request.method)
        except Exception as exc:
            try:
                self.on_error(request, exc)
            except Exception:
                log.exception("notification error hook failed for %s", request.method)


# ── Dispatch ─────────────────────────────────────────────────────────


class Dispatcher:
    """Resolve, execute and collect one batch of requests."""

    def __init__(self, runner: NotificationRunner) -> None:
        self.runner = runner

    async def dispatch(
        self, requests: Sequence[JsonRpcRequest], invoker: Invoker
    ) -> list[JsonRpcResponse]:
        """Run all *requests* concurrently; responses keep request order."""
        responses: list[JsonRpcResponse | None] = [None] * len(requests)

        async def _run_one(index: int, request: JsonRpcRequest) -> None:
            responses[index] = await self._dispatch_one(request, invoker)

        async with anyio.create_task_group() as tg:
            for index, request in enumerate(requests):
                tg.start_soon(_run_one, index, request)

        return [r for r in responses if r is not None]

    async def _dispatch_one(
        self, request: JsonRpcRequest, invoker: Invoker
    ) -> JsonRpcResponse:
        try:
            fn = invoker.resolve(request.method)
            if request.notification:
                self.runner.start_soon(request, invoker.invoke, fn, request)
                return JsonRpcResponse.placeholder()
            result = await invoker.invoke(fn, request)
            # must render the way the response will
            json.dumps(result, allow_nan=False)
            return JsonRpcResponse.success(request.id, result)
        except MethodNotFoundError as exc:
            log.info("rpc %s: method not found", request.method)
            return error_entry(request, exc)
        except Exception as exc:
            log.warning(
                "rpc %s(id=%s) failed: %s", request.method, request.id, exc,
                exc_info=not isinstance(exc, RpcException),
            )
            return error_entry(request, exc)
