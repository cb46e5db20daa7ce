# Shared lookups for the API layer.
# Created: 2026-02-20
#
# App factories pin their collaborators on app.state; routers fall back to
# the process-wide singletons when mounted on a bare app.

from __future__ import annotations

from fastapi import Request

from pocketmcp.config import Settings, get_settings
from pocketmcp.mcp.manager import SessionManager, get_session_manager
from pocketmcp.oauth2.server import AuthorizationServer, get_oauth_server


def app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


def session_manager(request: Request) -> SessionManager:
    manager = getattr(request.app.state, "session_manager", None)
    return manager if manager is not None else get_session_manager()


def oauth_server(request: Request) -> AuthorizationServer:
    server = getattr(request.app.state, "oauth_server", None)
    return server if server is not None else get_oauth_server()
