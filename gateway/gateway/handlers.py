"""Example method tables mounted by the runnable server.

* ``registry``     — hand-written handlers on ``/rpc``
* ``math_table``   — the ``math`` module's functions on ``/math``
* ``ShellEndpoint`` — subprocess execution on ``/shell``, adapting
  ``CompletedProcess`` / ``CalledProcessError`` to plain values
"""

from __future__ import annotations

import logging
import math
from subprocess import CalledProcessError, CompletedProcess
from typing import Any

import anyio
from rpcwire.jsonrpc import SERVER_ERROR, JsonRpcRequest, RpcException

from gateway.dispatcher import HandlerFn, ModuleMethodTable, Registry
from gateway.endpoint import Endpoint

log = logging.getLogger(__name__)

registry = Registry()

# ── /rpc handlers ────────────────────────────────────────────────────


@registry.handler("echo")
async def echo(*args: Any, **kwargs: Any) -> Any:
    """Return params unchanged."""
    return kwargs if kwargs else list(args)


@registry.handler("add")
async def add(a: float = 0, b: float = 0) -> float:
    """Add two numbers."""
    return a + b


@registry.handler("sleep")
async def sleep(seconds: float, value: Any = None) -> Any:
    """Wait *seconds*, then return *value* (or the delay)."""
    await anyio.sleep(seconds)
    return seconds if value is None else value


@registry.handler("fail")
async def fail(message: str = "handler failed") -> None:
    raise RuntimeError(message)


# ── /math ────────────────────────────────────────────────────────────

math_table = ModuleMethodTable(math)


# ── /shell ───────────────────────────────────────────────────────────


async def run(
    command: str | list[str], cwd: str | None = None, check: bool = True
) -> CompletedProcess:
    """Run *command* to completion, capturing its output."""
    log.info("shell: running %r", command)
    return await anyio.run_process(command, cwd=cwd, check=check)


def _decode(output: bytes | None) -> str:
    return (output or b"").decode("utf-8", errors="replace")


def process_result(proc: CompletedProcess | CalledProcessError) -> dict[str, Any]:
    # CalledProcessError.args is the exception's own argument tuple
    command = proc.cmd if isinstance(proc, CalledProcessError) else proc.args
    args = command if isinstance(command, str) else [str(a) for a in command]
    return {
        "args": args,
        "returncode": proc.returncode,
        "stdout": _decode(proc.stdout),
        "stderr": _decode(proc.stderr),
    }


class ShellEndpoint(Endpoint):
    """Shell execution endpoint.

    Handlers return ``CompletedProcess`` and raise ``CalledProcessError``;
    both are translated here so the dispatcher only sees plain values
    and ``RpcException``.
    """

    def __init__(self, path: str = "/shell") -> None:
        super().__init__(path, {"run": run}, coerce_loose_clients=True)

    async def invoke(self, fn: HandlerFn, request: JsonRpcRequest) -> Any:
        try:
            result = await super().invoke(fn, request)
        except CalledProcessError as exc:
            raise RpcException(
                SERVER_ERROR,
                f"command exited with status {exc.returncode}",
                data=process_result(exc),
            ) from exc
        if isinstance(result, CompletedProcess):
            return process_result(result)
        return result
