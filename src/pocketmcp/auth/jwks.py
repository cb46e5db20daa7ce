"""JWKS fetching and caching.

Keys are fetched with httpx and parsed with PyJWT. A fetched key set is
reused until ``ttl`` seconds have passed; a token whose ``kid`` is not in
the cached set triggers at most one early refresh per ``min_refresh_interval``.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx
import jwt
from jwt import PyJWK, PyJWKSet

logger = logging.getLogger(__name__)


class JWKSError(Exception):
    """The key set could not be fetched or contains no usable key."""


class JWKSCache:
    def __init__(
        self,
        jwks_url: str,
        client: httpx.AsyncClient | None = None,
        ttl: float = 300.0,
        min_refresh_interval: float = 10.0,
    ):
        self.jwks_url = jwks_url
        self.ttl = ttl
        self.min_refresh_interval = min_refresh_interval
        self._client = client
        self._owns_client = client is None
        self._keys: PyJWKSet | None = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    async def _fetch(self) -> PyJWKSet:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)
        try:
            resp = await self._client.get(self.jwks_url, headers={"Accept": "application/json"})
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise JWKSError(f"Failed to fetch JWKS from {self.jwks_url}: {exc}") from exc
        try:
            keys = PyJWKSet.from_dict(data)
        except jwt.PyJWTError as exc:
            raise JWKSError(f"Invalid JWKS at {self.jwks_url}: {exc}") from exc
        logger.debug("Fetched %d signing keys from %s", len(keys.keys), self.jwks_url)
        return keys

    async def _get_keys(self, force: bool = False) -> PyJWKSet:
        async with self._lock:
            age = time.monotonic() - self._fetched_at
            stale = self._keys is None or age > self.ttl
            if stale or (force and age >= self.min_refresh_interval):
                self._keys = await self._fetch()
                self._fetched_at = time.monotonic()
            assert self._keys is not None
            return self._keys

    @staticmethod
    def _select(keys: PyJWKSet, kid: str | None) -> PyJWK | None:
        if kid is None:
            return keys.keys[0] if len(keys.keys) == 1 else None
        for key in keys.keys:
            if key.key_id == kid:
                return key
        return None

    async def get_signing_key(self, token: str) -> PyJWK:
        """Return the key matching the token's ``kid`` header."""
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except jwt.PyJWTError as exc:
            raise JWKSError(f"Malformed token header: {exc}") from exc

        key = self._select(await self._get_keys(), kid)
        if key is None:
            # Key rotation: the issuer may have published a new key.
            key = self._select(await self._get_keys(force=True), kid)
        if key is None:
            raise JWKSError(f"No signing key found for kid={kid!r}")
        return key

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
