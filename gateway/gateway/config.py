"""Server configuration.

Values are merged from, highest precedence first: command-line flags,
environment variables carrying the configured prefix, explicit
overrides passed by the embedding code, and defaults.  Resolution
happens once; the server never re-reads it.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Sequence

DEFAULT_ENV_PREFIX = "RPCAPI_"
DEFAULT_REQUEST_LOG_FORMAT = (
    '%(client)s "%(method)s %(path)s" %(status)d %(duration_ms).1fms'
)


class ConfigurationError(Exception):
    """The resolved configuration cannot be served."""


@dataclass(slots=True)
class ServerConfig:
    host: str = "localhost"
    port: int = 1337
    # start() returns immediately when set
    disabled: bool = False
    authentication: bool = False
    # SHA-256 hex digest of the API key
    apikeyhash: str | None = None
    env_prefix: str = DEFAULT_ENV_PREFIX
    # Empty string turns per-request logging off
    request_log_format: str = DEFAULT_REQUEST_LOG_FORMAT


CONFIG_KEYS = tuple(f.name for f in fields(ServerConfig) if f.name != "env_prefix")
# Kept verbatim: a hex digest may look like a number
_STRING_KEYS = frozenset({"host", "apikeyhash", "request_log_format"})


def parse_value(raw: str) -> Any:
    """Parse an environment string into bool, int, None or str."""
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered == "null":
        return None
    try:
        return int(raw)
    except ValueError:
        return raw


def env_values(environ: Mapping[str, str], prefix: str) -> dict[str, Any]:
    """Config values from variables named ``<prefix><KEY>``, case-insensitive."""
    prefix = prefix.lower()
    values: dict[str, Any] = {}
    for key, raw in environ.items():
        if not key.lower().startswith(prefix):
            continue
        name = key[len(prefix):].lower()
        if name in _STRING_KEYS:
            values[name] = raw
        elif name in CONFIG_KEYS:
            values[name] = parse_value(raw)
    return values


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="JSON-RPC 2.0 gateway",
        argument_default=argparse.SUPPRESS,
        allow_abbrev=False,
    )
    parser.add_argument("--host", type=str, help="Interface to bind")
    parser.add_argument("--port", type=int, help="Port to bind")
    parser.add_argument(
        "--disabled",
        action=argparse.BooleanOptionalAction,
        help="Exit immediately instead of serving",
    )
    parser.add_argument(
        "--authentication",
        action=argparse.BooleanOptionalAction,
        help="Require an API key in the 'authorization' header",
    )
    parser.add_argument(
        "--apikeyhash", type=str, help="SHA-256 hex digest of the API key"
    )
    parser.add_argument(
        "--request-log-format",
        dest="request_log_format",
        type=str,
        help="Per-request log line template, empty to disable",
    )
    return parser


def load_config(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
    env_prefix: str | None = None,
) -> ServerConfig:
    """Resolve a ``ServerConfig`` from flags, environment, overrides and defaults."""
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    prefix = env_prefix or overrides.pop("env_prefix", None) or DEFAULT_ENV_PREFIX

    unknown = set(overrides) - set(CONFIG_KEYS)
    if unknown:
        raise ConfigurationError(f"unknown configuration keys: {sorted(unknown)}")

    flags, _ = build_parser().parse_known_args(argv)
    env = env_values(os.environ if environ is None else environ, prefix)

    merged: dict[str, Any] = {}
    merged.update(overrides)
    merged.update(env)
    merged.update(vars(flags))

    config = replace(ServerConfig(env_prefix=prefix), **merged)
    if not isinstance(config.port, int) or isinstance(config.port, bool):
        raise ConfigurationError(f"port must be an integer, got {config.port!r}")
    return config
