"""Bearer-token auth gate for the resource server.

``create_auth_middleware()`` returns an HTTP middleware function that is
registered with ``app.middleware("http")``. Every non-exempt request must
carry ``Authorization: Bearer <token>``; the token is verified on each
request and its expiry compared against the current time. Failures get a
401 with an RFC 6750 / RFC 9728 ``WWW-Authenticate`` challenge.
"""

from __future__ import annotations

import logging
import time

from fastapi import Request
from fastapi.responses import JSONResponse

from pocketmcp.auth.verifier import (
    AuthResult,
    DevTokenVerifier,
    TokenVerificationError,
    TokenVerifier,
)
from pocketmcp.config import Settings

logger = logging.getLogger(__name__)

_EXEMPT_PREFIXES = ("/.well-known/",)
_EXEMPT_PATHS = frozenset({"/health"})


def extract_bearer_token(header: str | None) -> str | None:
    """Return the token from ``Bearer <token>``, or None if malformed."""
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2:
        return None
    scheme, token = parts
    if scheme.lower() != "bearer" or not token:
        return None
    return token


def base_url(request: Request, settings: Settings) -> str:
    if settings.server_url:
        return settings.server_url.rstrip("/")
    return f"{request.url.scheme}://{request.url.netloc}"


def expected_resource(request: Request, settings: Settings) -> str:
    """Configured audience if set, else this server's own MCP endpoint URL."""
    return settings.jwt_audience or f"{base_url(request, settings)}/mcp"


def resource_metadata_url(request: Request, settings: Settings) -> str:
    return f"{base_url(request, settings)}/.well-known/oauth-protected-resource"


def _unauthorized(
    request: Request,
    settings: Settings,
    error: str,
    message: str | None = None,
) -> JSONResponse:
    challenge_error = "invalid_request" if error == "missing_authorization" else "invalid_token"
    challenge = (
        f'Bearer error="{challenge_error}", '
        f'resource_metadata="{resource_metadata_url(request, settings)}", '
        f'scope="{settings.required_scope}"'
    )
    body = {"error": error}
    if message:
        body["message"] = message
    return JSONResponse(status_code=401, content=body, headers={"WWW-Authenticate": challenge})


def is_exempt(request: Request) -> bool:
    if request.method == "OPTIONS":
        return True
    path = request.url.path
    return path in _EXEMPT_PATHS or path.startswith(_EXEMPT_PREFIXES)


def create_auth_middleware(settings: Settings, verifier: TokenVerifier):
    """Build the auth middleware bound to *settings* and *verifier*."""
    dev_verifier = DevTokenVerifier()

    async def auth_middleware(request: Request, call_next):
        if is_exempt(request):
            return await call_next(request)

        if settings.disable_auth:
            request.state.auth = await dev_verifier.verify("")
            return await call_next(request)

        where = f"{request.method} {request.url.path}"
        token = extract_bearer_token(request.headers.get("authorization"))
        if token is None:
            logger.warning("missing or invalid authorization for %s", where)
            return _unauthorized(request, settings, "missing_authorization")

        try:
            auth: AuthResult = await verifier.verify(token, expected_resource(request, settings))
        except TokenVerificationError as exc:
            logger.warning("invalid_token on %s: %s", where, exc)
            return _unauthorized(request, settings, "invalid_token", str(exc))

        if auth.is_expired(time.time()):
            logger.warning("token expired for client %s", auth.client_id)
            return _unauthorized(request, settings, "token_expired")

        request.state.auth = auth
        return await call_next(request)

    return auth_middleware
