# OAuth2 router: metadata, register, authorize, token, introspect.
# Created: 2026-02-20

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from pocketmcp.api.deps import oauth_server
from pocketmcp.api.schemas import IntrospectionResponse, TokenResponse
from pocketmcp.oauth2.server import OAuthError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth2"])

_NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


async def _read_params(request: Request) -> dict[str, Any]:
    """Read a form-encoded or JSON body into a flat dict."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return {}
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


def _str(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    return "" if value is None else str(value)


def _error_response(error: OAuthError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=_NO_STORE)


@router.get("/.well-known/oauth-authorization-server")
async def authorization_server_metadata(request: Request):
    """RFC 8414 authorization server metadata."""
    return oauth_server(request).metadata()


@router.get("/.well-known/jwks.json")
async def jwks(request: Request):
    """Public signing keys for JWT-format access tokens."""
    return oauth_server(request).jwks()


@router.post("/register", status_code=201)
async def register_client(request: Request):
    """Dynamic client registration (RFC 7591)."""
    try:
        metadata = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        metadata = None
    if not isinstance(metadata, dict):
        return _error_response(OAuthError("invalid_client_metadata", "JSON object body required"))

    result, error = oauth_server(request).register(metadata)
    if error:
        return _error_response(error)
    return JSONResponse(status_code=201, content=result)


@router.api_route("/authorize", methods=["GET", "POST"])
async def authorize(request: Request):
    """Authorization endpoint. Redirects with a code or an OAuth error."""
    if request.method == "POST":
        params = await _read_params(request)
    else:
        params = dict(request.query_params)

    redirect_url, error = oauth_server(request).authorize(
        client_id=_str(params, "client_id"),
        redirect_uri=_str(params, "redirect_uri"),
        response_type=_str(params, "response_type"),
        code_challenge=_str(params, "code_challenge"),
        code_challenge_method=_str(params, "code_challenge_method"),
        scope=_str(params, "scope"),
        state=_str(params, "state") or None,
        resource=_str(params, "resource") or None,
    )
    if error:
        return _error_response(error)
    return RedirectResponse(redirect_url, status_code=302)


@router.post("/token", response_model=TokenResponse)
async def token_exchange(request: Request):
    """Exchange an authorization code + PKCE verifier for an access token."""
    params = await _read_params(request)
    result, error = oauth_server(request).exchange(
        grant_type=_str(params, "grant_type"),
        client_id=_str(params, "client_id"),
        client_secret=_str(params, "client_secret") or None,
        code=_str(params, "code"),
        code_verifier=_str(params, "code_verifier"),
        redirect_uri=_str(params, "redirect_uri") or None,
        resource=_str(params, "resource") or None,
    )
    if error:
        logger.info("Token request rejected: %s", error.error)
        return _error_response(error)
    return JSONResponse(content=result, headers=_NO_STORE)


@router.post(
    "/introspect",
    response_model=IntrospectionResponse,
    response_model_exclude_none=True,
)
async def introspect(request: Request):
    """Token introspection (RFC 7662). Never errors for bad tokens."""
    params = await _read_params(request)
    return oauth_server(request).introspect(_str(params, "token"))
