# Session manager - owns the session table.
# Created: 2026-02-21
#
# Sessions are created by an initialize request, looked up by the
# Mcp-Session-Id header, and evicted from the table whenever they close
# (DELETE, stream disconnect, idle sweep or shutdown).

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod

from pocketmcp.config import get_settings
from pocketmcp.mcp.session import MCPSession
from pocketmcp.tools.packs import ToolPack, get_tool_pack

logger = logging.getLogger(__name__)


class SessionConflictError(Exception):
    """Raised when a requested session id is already live."""


class InvalidSessionIdError(ValueError):
    """Raised for session ids outside visible ASCII."""


def is_valid_session_id(session_id: str) -> bool:
    """Session ids must be non-empty visible ASCII (0x21-0x7E)."""
    return bool(session_id) and all(0x21 <= ord(ch) <= 0x7E for ch in session_id)


class SessionStore(ABC):
    """Storage for live sessions, keyed by session id."""

    @abstractmethod
    def get(self, session_id: str) -> MCPSession | None: ...

    @abstractmethod
    def put_if_absent(self, session: MCPSession) -> bool:
        """Store *session* unless its id is taken. Returns True if stored."""
        ...

    @abstractmethod
    def delete(self, session_id: str) -> MCPSession | None: ...

    @abstractmethod
    def values(self) -> list[MCPSession]: ...

    def __len__(self) -> int:
        return len(self.values())


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: dict[str, MCPSession] = {}

    def get(self, session_id: str) -> MCPSession | None:
        return self._sessions.get(session_id)

    def put_if_absent(self, session: MCPSession) -> bool:
        if session.session_id in self._sessions:
            return False
        self._sessions[session.session_id] = session
        return True

    def delete(self, session_id: str) -> MCPSession | None:
        return self._sessions.pop(session_id, None)

    def values(self) -> list[MCPSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)


class SessionManager:
    """Creates, routes to, and tears down MCP sessions."""

    def __init__(self, tool_pack: ToolPack | None = None, store: SessionStore | None = None):
        self.tool_pack = tool_pack or ToolPack()
        self.store = store or InMemorySessionStore()

    def create_session(self, session_id: str | None = None) -> MCPSession:
        """Create and register a session with a fresh tool registry.

        Raises:
            InvalidSessionIdError: *session_id* is not visible ASCII.
            SessionConflictError: *session_id* belongs to a live session.
        """
        if session_id is None:
            session_id = str(uuid.uuid4())
        elif not is_valid_session_id(session_id):
            raise InvalidSessionIdError(f"Invalid session id: {session_id!r}")

        session = MCPSession(
            session_id,
            self.tool_pack.build_registry(),
            on_close=self._evict,
        )
        if not self.store.put_if_absent(session):
            raise SessionConflictError(session_id)

        logger.info("Session created: %s (%d active)", session_id, len(self.store))
        return session

    def get_session(self, session_id: str | None) -> MCPSession | None:
        if not session_id:
            return None
        session = self.store.get(session_id)
        if session is None or session.closed:
            return None
        return session

    async def terminate(self, session_id: str) -> bool:
        """Close a session. Returns False if it was not live."""
        session = self.get_session(session_id)
        if session is None:
            return False
        await session.close()
        return True

    async def close_all(self) -> None:
        sessions = self.store.values()
        for session in sessions:
            await session.close()
        if sessions:
            logger.info("Closed %d session(s)", len(sessions))

    async def sweep_idle(self, idle_timeout: float, now: float | None = None) -> int:
        """Close sessions idle longer than *idle_timeout* seconds.

        Sessions with an open event stream are never considered idle.
        """
        if now is None:
            now = time.time()
        expired = [
            s
            for s in self.store.values()
            if not s.has_active_subscriber and now - s.last_activity > idle_timeout
        ]
        for session in expired:
            logger.info("Closing idle session %s", session.session_id)
            await session.close()
        return len(expired)

    @property
    def active_count(self) -> int:
        return len(self.store)

    def _evict(self, session: MCPSession) -> None:
        # Only evict if the table still points at this session object.
        if self.store.get(session.session_id) is session:
            self.store.delete(session.session_id)
            logger.debug("Session evicted: %s", session.session_id)


# Singleton
_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get the global session manager, built from the current settings."""
    global _manager
    if _manager is None:
        settings = get_settings()
        _manager = SessionManager(get_tool_pack(settings.tool_pack, settings.count_step_delay))
    return _manager


def reset_session_manager() -> None:
    """Drop the global session manager (used by tests)."""
    global _manager
    _manager = None
