"""Bearer token verification and the resource server's auth gate."""

from pocketmcp.auth.verifier import (
    AuthResult,
    ConfigurationError,
    TokenVerificationError,
    TokenVerifier,
    build_token_verifier,
)

__all__ = [
    "AuthResult",
    "ConfigurationError",
    "TokenVerificationError",
    "TokenVerifier",
    "build_token_verifier",
]
