"""App factories and runners for ``pocketmcp serve`` and ``pocketmcp auth-server``.

The resource server mounts the MCP router behind the bearer-token auth gate,
plus the public protected-resource metadata and health routes. The
authorization server is a separate app with the OAuth2 routers only; the two
talk to each other over HTTP (introspection or JWKS), never in-process.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from pocketmcp import __version__
from pocketmcp.auth.middleware import create_auth_middleware
from pocketmcp.auth.verifier import TokenVerifier, build_token_verifier
from pocketmcp.config import AuthServerSettings, Settings, get_auth_server_settings, get_settings
from pocketmcp.mcp.manager import SessionManager
from pocketmcp.oauth2.server import AuthorizationServer
from pocketmcp.tools.packs import ToolPack, get_tool_pack

logger = logging.getLogger(__name__)

# How often the authorization server drops expired codes and tokens.
STORAGE_CLEANUP_INTERVAL = 60.0


async def _request_logger(request: Request, call_next):
    logger.info(
        "%s %s (auth header: %s, accept: %s)",
        request.method,
        request.url.path,
        "yes" if request.headers.get("authorization") else "no",
        request.headers.get("accept", "-"),
    )
    return await call_next(request)


async def _sweep_idle_sessions(manager: SessionManager, idle_timeout: float) -> None:
    interval = max(1.0, min(idle_timeout / 2, 60.0))
    while True:
        await asyncio.sleep(interval)
        try:
            closed = await manager.sweep_idle(idle_timeout)
            if closed:
                logger.info("Idle sweep closed %d session(s)", closed)
        except Exception:
            logger.exception("Idle session sweep failed")


def create_resource_app(
    settings: Settings | None = None,
    verifier: TokenVerifier | None = None,
    tool_pack: ToolPack | None = None,
) -> FastAPI:
    """Build the MCP resource server application."""
    from pocketmcp.api.mcp import router as mcp_router
    from pocketmcp.api.metadata import router as metadata_router

    settings = settings or get_settings()
    verifier = verifier or build_token_verifier(settings)
    tool_pack = tool_pack or get_tool_pack(settings.tool_pack, settings.count_step_delay)
    manager = SessionManager(tool_pack)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = None
        if settings.session_idle_timeout > 0:
            sweeper = asyncio.create_task(
                _sweep_idle_sessions(manager, settings.session_idle_timeout)
            )
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper
            await manager.close_all()
            await verifier.aclose()

    app = FastAPI(
        title="PocketMCP",
        description="MCP server over Streamable HTTP with OAuth 2.0 bearer auth.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_manager = manager
    app.state.verifier = verifier

    # Middleware runs in reverse registration order: CORS, logging, then auth.
    app.middleware("http")(create_auth_middleware(settings, verifier))
    app.middleware("http")(_request_logger)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Mcp-Session-Id", "WWW-Authenticate"],
    )

    app.include_router(metadata_router)
    app.include_router(mcp_router)

    return app


def create_auth_app(
    settings: AuthServerSettings | None = None,
    server: AuthorizationServer | None = None,
) -> FastAPI:
    """Build the OAuth 2.0 authorization server application."""
    from pocketmcp.api.oauth2 import router as oauth2_router

    settings = settings or get_auth_server_settings()
    server = server or AuthorizationServer(settings=settings)

    async def _cleanup_loop() -> None:
        while True:
            await asyncio.sleep(STORAGE_CLEANUP_INTERVAL)
            try:
                server.storage.cleanup_expired()
            except Exception:
                logger.exception("Expired token cleanup failed")

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        cleaner = asyncio.create_task(_cleanup_loop())
        try:
            yield
        finally:
            cleaner.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleaner

    app = FastAPI(
        title="PocketMCP Authorization Server",
        description="Demo OAuth 2.0 authorization server (authorization code + PKCE).",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.auth_settings = settings
    app.state.oauth_server = server

    app.middleware("http")(_request_logger)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(oauth2_router)

    return app


def run_resource_server(
    host: str | None = None,
    port: int | None = None,
    dev: bool = False,
) -> None:
    """Start the MCP resource server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    print("\n" + "=" * 50)
    print("POCKETMCP SERVER")
    print("=" * 50)
    print(f"\n  MCP endpoint: http://{host}:{port}/mcp")
    print(f"  Tool pack:    {settings.tool_pack}")
    if settings.disable_auth:
        print("  Auth:         DISABLED (development only)\n")
    else:
        print(f"  Auth:         {settings.auth_token_mode} via {settings.oauth_server_url}\n")

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "pocketmcp.api.serve:create_resource_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        app = create_resource_app(settings)
        uvicorn.run(app, host=host, port=port, log_config=None)


def run_auth_server(host: str | None = None, port: int | None = None) -> None:
    """Start the demo authorization server."""
    import uvicorn

    settings = get_auth_server_settings()
    host = host or settings.auth_host
    port = port or settings.auth_port

    print("\n" + "=" * 50)
    print("POCKETMCP AUTHORIZATION SERVER")
    print("=" * 50)
    print(f"\n  Issuer:       {settings.issuer}")
    print(f"  Token format: {settings.token_format}\n")

    app = create_auth_app(settings)
    uvicorn.run(app, host=host, port=port, log_config=None)
