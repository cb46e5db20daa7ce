# API response schemas.
# Created: 2026-02-20

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class TokenResponse(BaseModel):
    """OAuth2 token response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str


class IntrospectionResponse(BaseModel):
    """RFC 7662 introspection response. Inactive tokens carry only `active`."""

    model_config = ConfigDict(extra="allow")

    active: bool
    client_id: str | None = None
    scope: str | None = None
    exp: int | None = None
    iat: int | None = None
    token_type: str | None = None
    aud: str | None = None


class ProtectedResourceMetadata(BaseModel):
    """RFC 9728 protected resource metadata."""

    resource: str
    authorization_servers: list[str]
    scopes_supported: list[str]
    bearer_methods_supported: list[str] = ["header"]
    introspection_endpoint: str


class HealthResponse(BaseModel):
    status: str = "ok"
    sessions: int = 0
    auth: str
