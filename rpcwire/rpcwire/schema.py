"""Request grammar: JSON Schema validation and loose-client coercion.

The schema follows the fge sample JSON-RPC 2.0 request schema, applied
to each element so that violations in a batch can be reported per
element instead of as one opaque ``oneOf`` failure.
"""

from __future__ import annotations

import uuid
from typing import Any

from jsonschema import Draft7Validator

from rpcwire.jsonrpc import JSONRPC_VERSION

REQUEST_SCHEMA: dict[str, Any] = {
    "description": "A JSON RPC 2.0 request",
    "type": "object",
    "required": ["jsonrpc", "method"],
    "properties": {
        "jsonrpc": {"enum": [JSONRPC_VERSION]},
        "method": {"type": "string", "minLength": 1},
        "id": {"type": ["string", "number", "null"]},
        "params": {"type": ["array", "object"]},
    },
}

_validator = Draft7Validator(REQUEST_SCHEMA)


def _json_path(prefix: str, parts: Any) -> str:
    path = prefix
    for part in parts:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


def _violations(item: Any, prefix: str) -> list[dict[str, Any]]:
    errors = sorted(
        _validator.iter_errors(item),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    return [
        {
            "path": _json_path(prefix, e.absolute_path),
            "message": e.message,
            "keyword": e.validator,
        }
        for e in errors
    ]


def split_batch(body: Any) -> tuple[list[Any], bool]:
    """Return ``(elements, is_batch)`` for a decoded request body."""
    if isinstance(body, list):
        return body, True
    return [body], False


def validate_request_body(body: Any) -> list[dict[str, Any]]:
    """Collect every grammar violation in *body*.

    An empty list means the body is a valid single request or a valid
    (possibly empty) batch.
    """
    if isinstance(body, list):
        found: list[dict[str, Any]] = []
        for index, item in enumerate(body):
            found.extend(_violations(item, f"$[{index}]"))
        return found
    if isinstance(body, dict):
        return _violations(body, "$")
    return [
        {
            "path": "$",
            "message": "request must be a JSON object or an array of objects",
            "keyword": "type",
        }
    ]


def coerce_loose_requests(body: Any) -> Any:
    """Upgrade requests that omit ``jsonrpc`` to JSON-RPC 2.0, in place.

    A request that also omits ``id`` gets a freshly generated one, so a
    loose client still receives a response instead of having its call
    silently treated as a notification.
    """
    elements, _ = split_batch(body)
    for item in elements:
        if isinstance(item, dict) and "jsonrpc" not in item:
            item["jsonrpc"] = JSONRPC_VERSION
            if "id" not in item:
                item["id"] = uuid.uuid4().hex
    return body
