# OAuth2 client, code and token storage.
# Created: 2026-02-20
#
# In-memory only: nothing survives a restart. The abstract base lets a
# database-backed store slot in without touching the authorization server.

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod

from pocketmcp.oauth2.models import AccessToken, AuthorizationCode, OAuthClient

logger = logging.getLogger(__name__)


class OAuthStorage(ABC):
    """Storage contract for the authorization server."""

    @abstractmethod
    def get_client(self, client_id: str) -> OAuthClient | None: ...

    @abstractmethod
    def save_client(self, client: OAuthClient) -> None: ...

    @abstractmethod
    def save_code(self, code: AuthorizationCode) -> None: ...

    @abstractmethod
    def take_code(self, code: str) -> AuthorizationCode | None:
        """Atomically look up and delete a code.

        Of any number of concurrent callers for the same code, at most one
        receives the record; all others get None.
        """

    @abstractmethod
    def save_token(self, token: AccessToken) -> None: ...

    @abstractmethod
    def get_token(self, token: str) -> AccessToken | None: ...

    @abstractmethod
    def cleanup_expired(self, now: float | None = None) -> int:
        """Drop expired codes and tokens. Returns the number removed."""


class InMemoryOAuthStorage(OAuthStorage):
    """Dict-backed storage guarded by a lock."""

    def __init__(self) -> None:
        self._clients: dict[str, OAuthClient] = {}
        self._codes: dict[str, AuthorizationCode] = {}
        self._tokens: dict[str, AccessToken] = {}
        self._lock = threading.Lock()

    def get_client(self, client_id: str) -> OAuthClient | None:
        return self._clients.get(client_id)

    def save_client(self, client: OAuthClient) -> None:
        with self._lock:
            if client.client_id in self._clients:
                raise ValueError(f"client_id already registered: {client.client_id}")
            self._clients[client.client_id] = client

    def save_code(self, code: AuthorizationCode) -> None:
        with self._lock:
            self._codes[code.code] = code

    def take_code(self, code: str) -> AuthorizationCode | None:
        with self._lock:
            return self._codes.pop(code, None)

    def save_token(self, token: AccessToken) -> None:
        with self._lock:
            self._tokens[token.token] = token

    def get_token(self, token: str) -> AccessToken | None:
        return self._tokens.get(token)

    def cleanup_expired(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        with self._lock:
            expired_codes = [k for k, v in self._codes.items() if v.is_expired(now)]
            for k in expired_codes:
                del self._codes[k]
            expired_tokens = [k for k, v in self._tokens.items() if v.is_expired(now)]
            for k in expired_tokens:
                del self._tokens[k]
        removed = len(expired_codes) + len(expired_tokens)
        if removed:
            logger.debug(
                "Removed %d expired codes and %d expired tokens",
                len(expired_codes),
                len(expired_tokens),
            )
        return removed
