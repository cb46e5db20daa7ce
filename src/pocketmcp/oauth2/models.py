# OAuth2 data models.
# Created: 2026-02-20

from __future__ import annotations

import time
from dataclasses import dataclass, field


def _now() -> int:
    return int(time.time())


@dataclass(frozen=True)
class OAuthClient:
    """Dynamically registered OAuth2 client. Immutable once registered."""

    client_id: str
    redirect_uris: list[str]
    scope: str
    token_endpoint_auth_method: str = "none"
    client_secret: str | None = None
    client_name: str | None = None
    client_id_issued_at: int = field(default_factory=_now)

    @property
    def allowed_scopes(self) -> set[str]:
        return set(self.scope.split())


@dataclass
class AuthorizationCode:
    """Short-lived authorization code bound to a PKCE challenge."""

    code: str
    client_id: str
    redirect_uri: str
    code_challenge: str
    scopes: list[str]
    expires_at: float
    resource: str | None = None

    def is_expired(self, now: float | None = None) -> bool:
        return self.expires_at < (time.time() if now is None else now)


@dataclass
class AccessToken:
    """Issued access token (opaque value or compact JWT)."""

    token: str
    client_id: str
    scopes: list[str]
    exp: int
    resource: str | None = None
    issued_at: int = field(default_factory=_now)

    def is_expired(self, now: float | None = None) -> bool:
        return self.exp <= (time.time() if now is None else now)
