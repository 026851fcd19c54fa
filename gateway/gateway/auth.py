"""API-key authentication.

Callers send the plaintext key in the ``authorization`` header; the
server only knows its SHA-256 hex digest.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from rpcwire.jsonrpc import HTTP_UNAUTHORIZED
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from gateway.config import ConfigurationError, ServerConfig

log = logging.getLogger(__name__)

AUTH_HEADER = "authorization"
MISSING_APIKEY = "MISSING_APIKEY"
WRONG_APIKEY = "WRONG_APIKEY"


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def _reject(error: str, message: str) -> JSONResponse:
    return JSONResponse({"error": error, "message": message}, status_code=HTTP_UNAUTHORIZED)


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Reject every request whose API key does not hash to *api_key_hash*."""

    def __init__(self, app: ASGIApp, api_key_hash: str) -> None:
        super().__init__(app)
        self.api_key_hash = api_key_hash.lower()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        api_key = request.headers.get(AUTH_HEADER)
        if not api_key:
            log.warning("Unsuccessful authentication attempt (missing API key)")
            return _reject(
                MISSING_APIKEY,
                f"No API key provided via the HTTP '{AUTH_HEADER}' header",
            )

        expected = self.api_key_hash.encode("utf-8")
        if not hmac.compare_digest(hash_api_key(api_key).encode("utf-8"), expected):
            log.warning("Unsuccessful authentication attempt (incorrect API key)")
            return _reject(WRONG_APIKEY, "The provided API key is incorrect")

        return await call_next(request)


def check_auth_config(config: ServerConfig) -> bool:
    """Decide at startup whether requests must be authenticated.

    Raises ``ConfigurationError`` when authentication is enabled but no
    key hash is configured.  A hash without authentication is served
    unauthenticated, with a warning.
    """
    if config.authentication and not config.apikeyhash:
        raise ConfigurationError(
            "Authentication is enabled but no API key hash is given"
        )
    if config.apikeyhash and not config.authentication:
        log.warning(
            "An API key hash was provided but authentication is disabled, "
            "NOT authenticating API requests!"
        )
        return False
    if config.authentication:
        log.info("Authentication enabled")
        return True
    log.info("Authentication disabled")
    return False
