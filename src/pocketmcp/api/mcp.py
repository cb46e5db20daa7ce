# MCP router: Streamable HTTP transport on /mcp.
# Created: 2026-02-21
#
# POST carries JSON-RPC messages, GET opens the session's SSE notification
# stream, DELETE terminates the session. Transport problems (Accept header,
# unknown session, second subscriber) are answered with plain HTTP statuses
# before any session logic runs.

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse

from pocketmcp.api.deps import app_settings, session_manager
from pocketmcp.mcp.jsonrpc import (
    INVALID_REQUEST,
    PARSE_ERROR,
    SERVER_ERROR,
    error_response,
    is_initialize_request,
)
from pocketmcp.mcp.manager import InvalidSessionIdError, SessionConflictError
from pocketmcp.mcp.session import MCPSession, SessionClosedError, StreamItem, SubscriberConflictError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["MCP"])

SESSION_HEADER = "Mcp-Session-Id"
JSON_MEDIA_TYPE = "application/json"
SSE_MEDIA_TYPE = "text/event-stream"

_NO_SESSION = "Bad Request: No valid session ID provided"


def _accepted_media_types(request: Request) -> set[str]:
    """Media types listed in Accept, parameters such as ``;q=`` stripped."""
    accept = request.headers.get("accept", "")
    return {part.split(";", 1)[0].strip().lower() for part in accept.split(",")} - {""}


def _accepts(request: Request, *media_types: str) -> bool:
    return set(media_types) <= _accepted_media_types(request)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def _jsonrpc_error(status_code: int, code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(None, code, message))


def _is_initialize_payload(payload: Any) -> bool:
    if isinstance(payload, list):
        return len(payload) == 1 and is_initialize_request(payload[0])
    return is_initialize_request(payload)


def _format_event(event_id: int, message: dict[str, Any]) -> str:
    return f"event: message\nid: {event_id}\ndata: {json.dumps(message)}\n\n"


@router.post("/mcp")
async def mcp_post(request: Request):
    """Handle client-to-server JSON-RPC messages."""
    if not _accepts(request, JSON_MEDIA_TYPE, SSE_MEDIA_TYPE):
        return _jsonrpc_error(
            406,
            SERVER_ERROR,
            "Not Acceptable: Client must accept both application/json and text/event-stream",
        )

    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(JSON_MEDIA_TYPE):
        return _jsonrpc_error(
            415, SERVER_ERROR, "Unsupported Media Type: Content-Type must be application/json"
        )

    try:
        payload = json.loads(await request.body(), parse_constant=_reject_constant)
    except ValueError:
        return _jsonrpc_error(400, PARSE_ERROR, "Parse error: Invalid JSON")

    manager = session_manager(request)
    settings = app_settings(request)
    session_id = request.headers.get(SESSION_HEADER)
    session = manager.get_session(session_id)
    created = False

    if session is None:
        if not _is_initialize_payload(payload):
            logger.warning("No valid session for POST /mcp (session id: %s)", session_id)
            return _jsonrpc_error(400, INVALID_REQUEST, _NO_SESSION)
        if session_id and not settings.allow_client_session_id:
            logger.warning("Rejected client-suggested session id %s", session_id)
            return _jsonrpc_error(400, INVALID_REQUEST, _NO_SESSION)
        try:
            session = manager.create_session(session_id or None)
        except InvalidSessionIdError as e:
            return _jsonrpc_error(400, INVALID_REQUEST, f"Bad Request: {e}")
        except SessionConflictError:
            return _jsonrpc_error(400, INVALID_REQUEST, "Bad Request: Session ID already in use")
        created = True

    result = await session.handle_message(payload)

    if created and not session.dispatcher.initialized:
        # initialize itself failed; don't keep a half-open session around.
        await session.close()
        return JSONResponse(content=result)

    headers = {SESSION_HEADER: session.session_id}
    if result is None:
        return Response(status_code=202, headers=headers)
    return JSONResponse(content=result, headers=headers)


@router.get("/mcp")
async def mcp_stream(request: Request):
    """Open the session's server-to-client notification stream (SSE)."""
    if not _accepts(request, SSE_MEDIA_TYPE):
        return _jsonrpc_error(406, SERVER_ERROR, "Not Acceptable: Client must accept text/event-stream")

    manager = session_manager(request)
    settings = app_settings(request)
    session = manager.get_session(request.headers.get(SESSION_HEADER))
    if session is None:
        return PlainTextResponse("Invalid or missing session ID", status_code=400)

    try:
        queue = session.subscribe()
    except SubscriberConflictError:
        logger.warning("Second SSE stream refused for session %s", session.session_id)
        return PlainTextResponse(
            "Conflict: Only one SSE stream is allowed per session", status_code=409
        )
    except SessionClosedError:
        return PlainTextResponse("Invalid or missing session ID", status_code=400)

    return StreamingResponse(
        event_stream(
            session,
            queue,
            keepalive=settings.sse_keepalive_interval,
            close_on_disconnect=settings.close_session_on_disconnect,
        ),
        media_type=SSE_MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            SESSION_HEADER: session.session_id,
        },
    )


async def event_stream(
    session: MCPSession,
    queue: asyncio.Queue[StreamItem],
    keepalive: float = 15.0,
    close_on_disconnect: bool = True,
):
    """Yield SSE frames from *queue* until the session closes or the client goes away."""
    try:
        while True:
            try:
                item = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except TimeoutError:
                yield ": keepalive\n\n"
                continue
            if item is None:
                break
            event_id, message = item
            yield _format_event(event_id, message)
    except Exception:
        # Headers are already sent; nothing can be reported to the client.
        logger.exception("SSE stream for session %s failed", session.session_id)
    finally:
        session.unsubscribe(queue)
        if close_on_disconnect and not session.closed:
            await session.close()


@router.delete("/mcp")
async def mcp_delete(request: Request):
    """Terminate a session."""
    manager = session_manager(request)
    session_id = request.headers.get(SESSION_HEADER)
    if not session_id or not await manager.terminate(session_id):
        return PlainTextResponse("Invalid or missing session ID", status_code=400)
    return Response(status_code=200)
