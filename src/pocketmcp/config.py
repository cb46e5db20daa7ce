# Environment-sourced configuration for the resource and authorization servers.
# Created: 2026-02-20
#
# Variable names match the deployment docs (PORT, OAUTH_SERVER_URL,
# DISABLE_AUTH, AUTH_TOKEN_MODE, ...) so no prefix is applied.

from __future__ import annotations

import logging
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = "mcp:tools openid profile email"

# Asymmetric signing only; shared-secret HS* algorithms are never accepted.
ASYMMETRIC_ALGORITHMS = frozenset(
    {
        "RS256",
        "RS384",
        "RS512",
        "PS256",
        "PS384",
        "PS512",
        "ES256",
        "ES384",
        "ES512",
        "EdDSA",
    }
)


def _split(value: str) -> list[str]:
    return [part for part in value.replace(",", " ").split() if part]


class Settings(BaseSettings):
    """Resource server (MCP endpoint) settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    host: str = "127.0.0.1"
    port: int = 3000
    # Public base URL, e.g. when running behind a TLS-terminating proxy.
    server_url: str | None = None

    oauth_server_url: str = "http://localhost:3001"
    disable_auth: bool = False
    auth_token_mode: Literal["introspection", "jwt"] = "introspection"
    oauth_introspect_url: str | None = None

    jwt_issuer: str | None = None
    jwt_audience: str | None = None
    jwt_jwks_url: str | None = None
    jwt_algorithms: str = "RS256"
    jwks_cache_ttl: float = 300.0

    scopes_supported: str = DEFAULT_SCOPES
    required_scope: str = "mcp:tools"

    tool_pack: Literal["basic", "widget"] = "basic"
    count_step_delay: float = 1.0

    allow_client_session_id: bool = False
    close_session_on_disconnect: bool = True
    session_idle_timeout: float = 0.0
    sse_keepalive_interval: float = 15.0

    cors_allowed_origins: str = "*"
    log_level: str = "INFO"

    @field_validator("auth_token_mode", mode="before")
    @classmethod
    def _lower_mode(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("jwt_algorithms")
    @classmethod
    def _asymmetric_only(cls, value: str) -> str:
        algorithms = _split(value)
        if not algorithms:
            raise ValueError("at least one JWT algorithm is required")
        rejected = [alg for alg in algorithms if alg not in ASYMMETRIC_ALGORITHMS]
        if rejected:
            raise ValueError(f"unsupported JWT algorithms (asymmetric only): {rejected}")
        return value

    @model_validator(mode="after")
    def _derive_urls(self) -> Settings:
        self.oauth_server_url = self.oauth_server_url.rstrip("/")
        if not self.oauth_introspect_url:
            self.oauth_introspect_url = f"{self.oauth_server_url}/introspect"
        if not self.jwt_jwks_url and self.jwt_issuer:
            self.jwt_jwks_url = f"{self.jwt_issuer.rstrip('/')}/.well-known/jwks.json"
        return self

    @property
    def scopes(self) -> list[str]:
        return _split(self.scopes_supported)

    @property
    def algorithms(self) -> list[str]:
        return _split(self.jwt_algorithms)

    @property
    def cors_origins(self) -> list[str]:
        return _split(self.cors_allowed_origins)


class AuthServerSettings(BaseSettings):
    """Demo OAuth 2.0 authorization server settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    auth_host: str = "127.0.0.1"
    auth_port: int = 3001
    issuer_url: str | None = None

    scopes_supported: str = DEFAULT_SCOPES
    token_format: Literal["opaque", "jwt"] = "opaque"
    access_token_ttl: int = 3600
    code_ttl: int = 300
    jwt_private_key_path: str | None = None

    log_level: str = "INFO"

    @field_validator("token_format", mode="before")
    @classmethod
    def _lower_format(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _derive_issuer(self) -> AuthServerSettings:
        if not self.issuer_url:
            self.issuer_url = f"http://localhost:{self.auth_port}"
        self.issuer_url = self.issuer_url.rstrip("/")
        return self

    @property
    def issuer(self) -> str:
        return self.issuer_url or f"http://localhost:{self.auth_port}"

    @property
    def scopes(self) -> list[str]:
        return _split(self.scopes_supported)


# Singletons
_settings: Settings | None = None
_auth_settings: AuthServerSettings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def get_auth_server_settings() -> AuthServerSettings:
    global _auth_settings
    if _auth_settings is None:
        _auth_settings = AuthServerSettings()
    return _auth_settings


def reset_settings() -> None:
    """Reset singletons (for testing)."""
    global _settings, _auth_settings
    _settings = None
    _auth_settings = None
