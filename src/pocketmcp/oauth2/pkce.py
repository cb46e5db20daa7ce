"""PKCE (RFC 7636) helpers. Only the S256 method is supported."""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

__all__ = ["generate_code_verifier", "s256_challenge", "verify_pkce"]


def generate_code_verifier(nbytes: int = 32) -> str:
    """Return a random verifier (43 chars for the default 32 bytes)."""
    return secrets.token_urlsafe(nbytes)


def s256_challenge(verifier: str) -> str:
    """BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_pkce(verifier: str, challenge: str) -> bool:
    """Return True if *verifier* hashes to *challenge*."""
    if not verifier or not challenge:
        return False
    try:
        computed = s256_challenge(verifier)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(computed, challenge)
