# Metadata router: protected resource metadata and health.
# Created: 2026-02-21
#
# Both routes are public; the auth gate exempts /.well-known/* and /health.

from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from pocketmcp.api.deps import app_settings, session_manager
from pocketmcp.api.schemas import HealthResponse, ProtectedResourceMetadata
from pocketmcp.auth.middleware import expected_resource

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Metadata"])


def _resource_metadata(request: Request) -> ProtectedResourceMetadata:
    settings = app_settings(request)
    return ProtectedResourceMetadata(
        resource=expected_resource(request, settings),
        authorization_servers=[settings.oauth_server_url],
        scopes_supported=settings.scopes,
        introspection_endpoint=settings.oauth_introspect_url,
    )


@router.get("/.well-known/oauth-protected-resource", response_model=ProtectedResourceMetadata)
async def protected_resource_metadata(request: Request):
    """RFC 9728 protected resource metadata."""
    return _resource_metadata(request)


@router.get(
    "/.well-known/oauth-protected-resource/mcp", response_model=ProtectedResourceMetadata
)
async def protected_resource_metadata_for_mcp(request: Request):
    # Path-suffixed variant some clients probe for the /mcp resource.
    return _resource_metadata(request)


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    settings = app_settings(request)
    if settings.disable_auth:
        auth = "disabled"
    else:
        auth = settings.auth_token_mode
    return HealthResponse(sessions=session_manager(request).active_count, auth=auth)
