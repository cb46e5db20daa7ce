# MCP session - protocol state plus the optional server-to-client stream.
# Created: 2026-02-21
#
# A session owns its dispatcher and at most one SSE subscriber. Messages
# sent while nobody is subscribed are dropped (no replay buffer). A second
# subscribe() while one is active is refused; the first stream keeps running.

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pocketmcp.mcp.dispatcher import SessionDispatcher
from pocketmcp.mcp.jsonrpc import notification
from pocketmcp.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# Queue items: (event_id, message). None ends the stream.
StreamItem = tuple[int, dict[str, Any]] | None
CloseCallback = Callable[["MCPSession"], Awaitable[None] | None]


class SubscriberConflictError(Exception):
    """Raised when a session already has an active event stream."""


class SessionClosedError(Exception):
    """Raised when subscribing to a session that has been closed."""


class MCPSession:
    def __init__(
        self,
        session_id: str,
        registry: ToolRegistry,
        on_close: CloseCallback | None = None,
    ):
        self.session_id = session_id
        self.registry = registry
        self.dispatcher = SessionDispatcher(self, registry)
        self.last_activity = time.time()
        self._queue: asyncio.Queue[StreamItem] | None = None
        self._closed = False
        self._event_id = 0
        self._on_close: list[CloseCallback] = []
        if on_close is not None:
            self._on_close.append(on_close)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_active_subscriber(self) -> bool:
        return self._queue is not None and not self._closed

    def add_close_callback(self, callback: CloseCallback) -> None:
        self._on_close.append(callback)

    def touch(self) -> None:
        self.last_activity = time.time()

    def subscribe(self) -> asyncio.Queue[StreamItem]:
        """Attach the event stream and return its queue."""
        if self._closed:
            raise SessionClosedError(self.session_id)
        if self._queue is not None:
            raise SubscriberConflictError(self.session_id)
        self._queue = asyncio.Queue()
        self.touch()
        logger.info("SSE stream opened for session %s", self.session_id)
        return self._queue

    def unsubscribe(self, queue: asyncio.Queue[StreamItem]) -> None:
        # Only the current subscriber may detach itself.
        if self._queue is queue:
            self._queue = None
            logger.info("SSE stream closed for session %s", self.session_id)

    async def send_notification(self, method: str, params: dict[str, Any] | None = None) -> bool:
        """Push a notification to the event stream.

        Returns False (and drops the message) when there is no subscriber.
        """
        if self._closed or self._queue is None:
            logger.debug(
                "Dropping %s for session %s: no active stream", method, self.session_id
            )
            return False
        self._event_id += 1
        await self._queue.put((self._event_id, notification(method, params)))
        return True

    async def handle_message(self, payload: Any) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Dispatch an inbound JSON-RPC payload (single message or batch)."""
        self.touch()
        return await self.dispatcher.dispatch(payload)

    async def close(self) -> None:
        """End the stream and run close callbacks. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        if self._queue is not None:
            self._queue.put_nowait(None)
        logger.info("Session %s closed", self.session_id)

        for callback in self._on_close:
            try:
                result = callback(self)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Close callback failed for session %s", self.session_id)
