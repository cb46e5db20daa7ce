# Bearer token verification: introspection (opaque tokens) or JWT (JWKS).
# Created: 2026-02-21
#
# Both strategies return the same AuthResult shape. Expiry is *not* enforced
# here for JWTs; the auth middleware compares expires_at on every request.

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

import httpx
import jwt

from pocketmcp.auth.jwks import JWKSCache, JWKSError
from pocketmcp.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_LIFETIME = 3600


class TokenVerificationError(Exception):
    """The bearer token was rejected."""


class ConfigurationError(Exception):
    """The configured verification mode is missing required settings."""


@dataclass
class AuthResult:
    """Normalized principal, whichever strategy verified the token."""

    client_id: str
    scopes: list[str] = field(default_factory=list)
    expires_at: int = 0

    def is_expired(self, now: float | None = None) -> bool:
        return self.expires_at < int(time.time() if now is None else now)


def _parse_scopes(value) -> list[str]:
    if isinstance(value, str):
        return value.split()
    if isinstance(value, list):
        return [str(s) for s in value]
    return []


class TokenVerifier:
    """Base class for token verification strategies."""

    async def verify(self, token: str, expected_resource: str | None = None) -> AuthResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class DevTokenVerifier(TokenVerifier):
    """Accepts anything. Local development only (DISABLE_AUTH)."""

    async def verify(self, token: str, expected_resource: str | None = None) -> AuthResult:
        return AuthResult(client_id="dev", scopes=[], expires_at=int(time.time()) + DEFAULT_LIFETIME)


class IntrospectionTokenVerifier(TokenVerifier):
    """Resolves opaque tokens through the authorization server's RFC 7662 endpoint."""

    def __init__(self, introspection_url: str, client: httpx.AsyncClient | None = None):
        self.introspection_url = introspection_url
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)
        return self._client

    async def verify(self, token: str, expected_resource: str | None = None) -> AuthResult:
        try:
            resp = await self._get_client().post(
                self.introspection_url,
                data={"token": token},
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TokenVerificationError(f"Introspection request failed: {exc}") from exc

        if not resp.is_success:
            raise TokenVerificationError(f"Introspection failed: {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise TokenVerificationError("Introspection returned invalid JSON") from exc

        if not isinstance(data, dict) or not data.get("active"):
            raise TokenVerificationError("Token inactive")

        aud = data.get("aud")
        if expected_resource and aud and aud != expected_resource:
            logger.warning('audience mismatch: token.aud="%s" expected="%s"', aud, expected_resource)
            raise TokenVerificationError("Token not intended for this resource")

        exp = data.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            exp = int(time.time()) + DEFAULT_LIFETIME

        return AuthResult(
            client_id=data.get("client_id") or "unknown",
            scopes=_parse_scopes(data.get("scope")),
            expires_at=int(exp),
        )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class JWTTokenVerifier(TokenVerifier):
    """Verifies self-contained JWTs against a remote JWKS."""

    def __init__(
        self,
        jwks: JWKSCache,
        issuer: str | None = None,
        audience: str | None = None,
        algorithms: list[str] | None = None,
    ):
        self.jwks = jwks
        self.issuer = issuer
        self.audience = audience
        self.algorithms = algorithms or ["RS256"]

    async def verify(self, token: str, expected_resource: str | None = None) -> AuthResult:
        try:
            signing_key = await self.jwks.get_signing_key(token)
        except JWKSError as exc:
            raise TokenVerificationError(str(exc)) from exc

        try:
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=self.algorithms,
                issuer=self.issuer,
                audience=self.audience,
                options={
                    "require": ["exp"],
                    "verify_exp": False,
                    "verify_aud": self.audience is not None,
                },
            )
        except jwt.PyJWTError as exc:
            raise TokenVerificationError(f"Invalid token: {exc}") from exc

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise TokenVerificationError("Token missing required exp claim")

        aud = payload.get("aud")
        if expected_resource and aud:
            audiences = aud if isinstance(aud, list) else [aud]
            if expected_resource not in audiences:
                logger.warning(
                    'audience mismatch: token.aud="%s" expected="%s"', aud, expected_resource
                )
                raise TokenVerificationError("Token not intended for this resource")

        return AuthResult(
            client_id=payload.get("client_id") or payload.get("sub") or "unknown",
            scopes=_parse_scopes(payload.get("scope") or payload.get("scp")),
            expires_at=int(exp),
        )

    async def aclose(self) -> None:
        await self.jwks.aclose()


def build_token_verifier(settings: Settings) -> TokenVerifier:
    """Pick the verification strategy from settings."""
    if settings.disable_auth:
        logger.warning("Authentication is DISABLED (DISABLE_AUTH). Do not use in production.")
        return DevTokenVerifier()

    if settings.auth_token_mode == "jwt":
        if not settings.jwt_jwks_url:
            raise ConfigurationError("JWT_JWKS_URL or JWT_ISSUER required for JWT mode")
        logger.info("Validating JWTs with keys from %s", settings.jwt_jwks_url)
        return JWTTokenVerifier(
            JWKSCache(settings.jwt_jwks_url, ttl=settings.jwks_cache_ttl),
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            algorithms=settings.algorithms,
        )

    logger.info("Validating tokens via introspection at %s", settings.oauth_introspect_url)
    return IntrospectionTokenVerifier(settings.oauth_introspect_url or "")
