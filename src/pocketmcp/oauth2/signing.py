# RS256 signing key for JWT-format access tokens.
# Created: 2026-02-21
#
# The key is either loaded from a PEM file or generated at start-up.
# A generated key lives only as long as the process.

from __future__ import annotations

import base64
import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"


class TokenSigner:
    """Signs JWT access tokens and publishes the matching JWKS."""

    def __init__(self, private_key: rsa.RSAPrivateKey, kid: str | None = None):
        self._private_key = private_key
        self._public_key = private_key.public_key()
        self.kid = kid or self._thumbprint()

    @classmethod
    def generate(cls) -> TokenSigner:
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        signer = cls(key)
        logger.info("Generated ephemeral RS256 signing key (kid=%s)", signer.kid)
        return signer

    @classmethod
    def from_pem_file(cls, path: str | Path) -> TokenSigner:
        data = Path(path).read_bytes()
        key = serialization.load_pem_private_key(data, password=None)
        if not isinstance(key, rsa.RSAPrivateKey):
            raise ValueError(f"{path} does not contain an RSA private key")
        signer = cls(key)
        logger.info("Loaded RS256 signing key from %s (kid=%s)", path, signer.kid)
        return signer

    def _thumbprint(self) -> str:
        der = self._public_key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        digest = hashlib.sha256(der).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()[:16]

    def sign(self, claims: dict[str, Any]) -> str:
        return jwt.encode(claims, self._private_key, algorithm=ALGORITHM, headers={"kid": self.kid})

    def jwks(self) -> dict[str, Any]:
        jwk = json.loads(RSAAlgorithm.to_jwk(self._public_key))
        jwk.update({"kid": self.kid, "use": "sig", "alg": ALGORITHM})
        return {"keys": [jwk]}
