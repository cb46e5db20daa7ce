# OAuth2 Authorization Server with PKCE support.
# Created: 2026-02-20
#
# Implements dynamic client registration (RFC 7591), the authorization code
# flow with mandatory S256 PKCE (RFC 7636) and token introspection
# (RFC 7662). Demo scope: no refresh tokens, no revocation.

from __future__ import annotations

import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pocketmcp.config import AuthServerSettings, get_auth_server_settings
from pocketmcp.oauth2.models import AccessToken, AuthorizationCode, OAuthClient
from pocketmcp.oauth2.pkce import verify_pkce
from pocketmcp.oauth2.signing import TokenSigner
from pocketmcp.oauth2.storage import InMemoryOAuthStorage, OAuthStorage

logger = logging.getLogger(__name__)

AUTH_METHODS = ("client_secret_post", "none")


@dataclass
class OAuthError:
    """An OAuth error response (RFC 6749 §5.2)."""

    error: str
    error_description: str | None = None
    status_code: int = 400

    def to_dict(self) -> dict[str, str]:
        body = {"error": self.error}
        if self.error_description:
            body["error_description"] = self.error_description
        return body


def build_redirect(redirect_uri: str, params: dict[str, str]) -> str:
    """Append *params* to *redirect_uri*, keeping any query it already has."""
    parts = urlsplit(redirect_uri)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query = [(k, v) for k, v in query if k not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def _error_redirect(redirect_uri: str, error: str, description: str, state: str | None) -> str:
    params = {"error": error, "error_description": description}
    if state:
        params["state"] = state
    return build_redirect(redirect_uri, params)


class AuthorizationServer:
    """OAuth2 authorization server with PKCE."""

    def __init__(
        self,
        storage: OAuthStorage | None = None,
        settings: AuthServerSettings | None = None,
        signer: TokenSigner | None = None,
    ):
        self.storage = storage or InMemoryOAuthStorage()
        self.settings = settings or get_auth_server_settings()
        if signer is None and self.settings.token_format == "jwt":
            if self.settings.jwt_private_key_path:
                signer = TokenSigner.from_pem_file(self.settings.jwt_private_key_path)
            else:
                signer = TokenSigner.generate()
        self.signer = signer

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def metadata(self) -> dict[str, Any]:
        """RFC 8414 authorization server metadata."""
        issuer = self.settings.issuer
        doc: dict[str, Any] = {
            "issuer": issuer,
            "authorization_endpoint": f"{issuer}/authorize",
            "token_endpoint": f"{issuer}/token",
            "registration_endpoint": f"{issuer}/register",
            "introspection_endpoint": f"{issuer}/introspect",
            "response_types_supported": ["code"],
            "grant_types_supported": ["authorization_code"],
            "code_challenge_methods_supported": ["S256"],
            "token_endpoint_auth_methods_supported": list(AUTH_METHODS),
            "scopes_supported": self.settings.scopes,
        }
        if self.signer is not None:
            doc["jwks_uri"] = f"{issuer}/.well-known/jwks.json"
        return doc

    def jwks(self) -> dict[str, Any]:
        if self.signer is None:
            return {"keys": []}
        return self.signer.jwks()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, metadata: dict[str, Any]) -> tuple[dict | None, OAuthError | None]:
        """Register a client. Returns (registration_response, error)."""
        redirect_uris = metadata.get("redirect_uris")
        if (
            not isinstance(redirect_uris, list)
            or not redirect_uris
            or not all(isinstance(u, str) and u for u in redirect_uris)
        ):
            return None, OAuthError("invalid_client_metadata", "redirect_uris required")

        auth_method = metadata.get("token_endpoint_auth_method") or "none"
        if auth_method not in AUTH_METHODS:
            return None, OAuthError(
                "invalid_client_metadata",
                f"unsupported token_endpoint_auth_method: {auth_method}",
            )

        scope = metadata.get("scope")
        if scope is None:
            scope = " ".join(self.settings.scopes)
        elif not isinstance(scope, str):
            return None, OAuthError("invalid_client_metadata", "scope must be a string")

        client_name = metadata.get("client_name")
        client = OAuthClient(
            client_id=str(uuid.uuid4()),
            client_secret=None if auth_method == "none" else secrets.token_hex(32),
            redirect_uris=list(redirect_uris),
            scope=scope,
            token_endpoint_auth_method=auth_method,
            client_name=client_name if isinstance(client_name, str) else None,
        )
        self.storage.save_client(client)
        logger.info("Registered client %s (%s)", client.client_id, auth_method)

        response: dict[str, Any] = {
            "client_id": client.client_id,
            "client_name": client.client_name,
            "redirect_uris": client.redirect_uris,
            "scope": client.scope,
            "token_endpoint_auth_method": client.token_endpoint_auth_method,
            "client_id_issued_at": client.client_id_issued_at,
        }
        if client.client_secret is not None:
            response["client_secret"] = client.client_secret
        return response, None

    # ------------------------------------------------------------------
    # Authorization endpoint
    # ------------------------------------------------------------------

    def authorize(
        self,
        client_id: str,
        redirect_uri: str,
        response_type: str,
        code_challenge: str,
        code_challenge_method: str,
        scope: str = "",
        state: str | None = None,
        resource: str | None = None,
    ) -> tuple[str | None, OAuthError | None]:
        """Validate an authorization request.

        Returns (redirect_url, error). A redirect_url is returned both on
        success and for errors that are safe to send back to the client;
        error is only set when the redirect URI itself can't be trusted.
        """
        client = self.storage.get_client(client_id)
        if client is None:
            return None, OAuthError("invalid_client", "unknown client_id")

        # Exact match only: never redirect to an unregistered URI.
        if not redirect_uri or redirect_uri not in client.redirect_uris:
            logger.warning("redirect_uri mismatch for client %s: %r", client_id, redirect_uri)
            return None, OAuthError("invalid_request", "redirect_uri mismatch")

        if response_type != "code":
            return _error_redirect(
                redirect_uri, "unsupported_response_type", "Only code supported", state
            ), None

        if code_challenge_method != "S256" or not code_challenge:
            return _error_redirect(redirect_uri, "invalid_request", "PKCE S256 required", state), None

        requested = scope.split() if scope else []
        allowed = client.allowed_scopes
        for s in requested:
            if s not in allowed:
                return _error_redirect(
                    redirect_uri, "invalid_scope", f"scope {s} not allowed", state
                ), None

        auth_code = AuthorizationCode(
            code=secrets.token_urlsafe(32),
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            scopes=requested,
            resource=resource or None,
            expires_at=time.time() + self.settings.code_ttl,
        )
        self.storage.save_code(auth_code)
        logger.debug("Issued authorization code for client %s", client_id)

        params = {"code": auth_code.code}
        if state:
            params["state"] = state
        return build_redirect(redirect_uri, params), None

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    def exchange(
        self,
        grant_type: str,
        client_id: str,
        code: str,
        code_verifier: str,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        resource: str | None = None,
    ) -> tuple[dict | None, OAuthError | None]:
        """Exchange an authorization code + verifier for an access token.

        Returns (token_response, error).
        """
        if grant_type != "authorization_code":
            return None, OAuthError("unsupported_grant_type")

        client = self.storage.get_client(client_id)
        if client is None:
            return None, OAuthError("invalid_client")
        if client.client_secret is not None:
            if not client_secret or not secrets.compare_digest(client_secret, client.client_secret):
                return None, OAuthError("invalid_client", status_code=401)

        # From here on the code is consumed, whatever the outcome.
        record = self.storage.take_code(code) if code else None
        if record is None:
            return None, OAuthError("invalid_grant", "invalid code")
        if record.is_expired():
            return None, OAuthError("invalid_grant", "code expired")
        if record.client_id != client_id:
            logger.warning("Code presented by %s was issued to %s", client_id, record.client_id)
            return None, OAuthError("invalid_grant")
        if redirect_uri and redirect_uri != record.redirect_uri:
            return None, OAuthError("invalid_grant")
        if resource and record.resource and resource != record.resource:
            return None, OAuthError("invalid_target")
        if not verify_pkce(code_verifier, record.code_challenge):
            return None, OAuthError("invalid_grant", "code_verifier mismatch")

        token = self._issue_token(client_id, record.scopes, record.resource)
        logger.info("Issued access token for client %s", client_id)
        return {
            "access_token": token.token,
            "token_type": "Bearer",
            "expires_in": token.exp - token.issued_at,
            "scope": " ".join(token.scopes),
        }, None

    def _issue_token(self, client_id: str, scopes: list[str], resource: str | None) -> AccessToken:
        now = int(time.time())
        exp = now + self.settings.access_token_ttl
        if self.signer is not None:
            claims: dict[str, Any] = {
                "iss": self.settings.issuer,
                "sub": client_id,
                "client_id": client_id,
                "scope": " ".join(scopes),
                "iat": now,
                "exp": exp,
                "jti": secrets.token_hex(16),
            }
            if resource:
                claims["aud"] = resource
            value = self.signer.sign(claims)
        else:
            value = secrets.token_urlsafe(32)

        token = AccessToken(
            token=value,
            client_id=client_id,
            scopes=list(scopes),
            resource=resource,
            exp=exp,
            issued_at=now,
        )
        self.storage.save_token(token)
        return token

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def introspect(self, token: str) -> dict[str, Any]:
        """RFC 7662 introspection.

        Unknown, expired and malformed tokens all yield {"active": false}
        so callers can't tell them apart.
        """
        record = self.storage.get_token(token) if token else None
        if record is None or record.is_expired():
            return {"active": False}
        body: dict[str, Any] = {
            "active": True,
            "client_id": record.client_id,
            "scope": " ".join(record.scopes),
            "exp": record.exp,
            "iat": record.issued_at,
            "token_type": "Bearer",
        }
        if record.resource:
            body["aud"] = record.resource
        return body


# Singleton
_server: AuthorizationServer | None = None


def get_oauth_server() -> AuthorizationServer:
    global _server
    if _server is None:
        _server = AuthorizationServer()
    return _server


def reset_oauth_server() -> None:
    global _server
    _server = None
