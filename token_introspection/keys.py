"""
Key sources for local verification.

StaticKeySource: a fixed JWKS given at configuration time (kept as an immutable, ordered key set).
RemoteKeySource: keys fetched by kid from a JWKS endpoint via PyJWKClient, which owns the
JWK set cache (lifespan) and the per-kid key cache (max entries). Fetches are capped by a
sliding-window rate limit. Concurrent callers may race to refresh the same kid; refreshes are
idempotent so no lock is held across the fetch.
"""
import asyncio
import http.client
import json
import logging
import urllib.request
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import cached_property
from typing import Any

import jwt
from jwt import PyJWK, PyJWKClient
from jwt.exceptions import PyJWKClientConnectionError, PyJWKClientError

from token_introspection.config import IntrospectionConfig, load_jwks_file
from token_introspection.errors import KeyNotFoundError
from token_introspection.rate_limit import SlidingWindowLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Key:
    """One candidate verification key (a JWK). kty may be missing; such keys never match any alg."""

    kid: str | None
    kty: str | None
    alg: str | None
    jwk: Mapping[str, Any]

    @classmethod
    def from_jwk(cls, jwk: Mapping[str, Any]) -> "Key":
        return cls(kid=jwk.get("kid"), kty=jwk.get("kty"), alg=jwk.get("alg"), jwk=dict(jwk))

    @cached_property
    def material(self) -> Any:
        """Key usable by jwt.decode (RSA/EC public key object or HMAC bytes). Raises jwt.PyJWTError."""
        try:
            return PyJWK(dict(self.jwk)).key
        except (KeyError, ValueError, TypeError) as e:
            raise jwt.InvalidKeyError(f"Invalid JWK: {e!r}") from e


def build_key_set(jwks_keys: Sequence[Any]) -> tuple[Key, ...]:
    """Ordered, immutable key set; entries that are not JWK objects or repeat a kid are dropped."""
    keys: list[Key] = []
    seen_kids: set[str] = set()
    for entry in jwks_keys:
        if not isinstance(entry, Mapping):
            logger.warning("Ignoring JWKS entry that is not an object")
            continue
        key = Key.from_jwk(entry)
        if key.kid is not None:
            if key.kid in seen_kids:
                logger.warning("Ignoring duplicate key for kid %s", key.kid)
                continue
            seen_kids.add(key.kid)
        keys.append(key)
    return tuple(keys)


class StaticKeySource:
    def __init__(self, jwks: Mapping[str, Any]):
        self.keys = build_key_set(jwks.get("keys") or [])
        logger.info("Configured JWKS with %d static keys", len(self.keys))

    @classmethod
    def from_file(cls, path: str) -> "StaticKeySource":
        return cls(load_jwks_file(path))


class _RateLimitedJWKClient(PyJWKClient):
    """
    PyJWKClient that owns the JWKS fetch: refused once the request-rate ceiling is hit, and
    any transport or decoding failure surfaces as a PyJWKClientError.
    """

    def __init__(self, uri: str, limiter: SlidingWindowLimiter | None, **kwargs):
        super().__init__(uri, **kwargs)
        self._limiter = limiter

    def fetch_data(self) -> Any:
        if self._limiter is not None:
            allowed, retry_after = self._limiter.check_and_consume()
            if not allowed:
                logger.warning("JWKS request rate exceeded for %s; retry after %ss", self.uri, retry_after)
                raise PyJWKClientConnectionError(f"JWKS request rate exceeded, retry after {retry_after}s")

        jwk_set = self._read_jwk_set()
        if not isinstance(jwk_set, dict):
            raise PyJWKClientError("The JWKS endpoint did not return a JSON object")
        if self.jwk_set_cache is not None:
            self.jwk_set_cache.put(jwk_set)
        return jwk_set

    def _read_jwk_set(self) -> Any:
        request = urllib.request.Request(url=self.uri, headers=self.headers)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                return json.load(response)
        except (OSError, http.client.HTTPException, ValueError) as e:
            logger.warning("Could not fetch JWKS from %s: %s", self.uri, e)
            raise PyJWKClientConnectionError(f'Fail to fetch data from the url, err: "{e}"') from e


class RemoteKeySource:
    def __init__(
        self,
        jwks_uri: str,
        *,
        cache_enabled: bool = True,
        cache_ttl: int = 300,
        max_cached_keys: int = 10,
        rate_limit_enabled: bool = True,
        requests_per_minute: int = 60,
        user_agent: str = "token-introspection",
        timeout: float = 10.0,
        jwk_client: PyJWKClient | None = None,
    ):
        self.jwks_uri = jwks_uri
        if jwk_client is None:
            limiter = SlidingWindowLimiter(requests_per_minute) if rate_limit_enabled else None
            jwk_client = _RateLimitedJWKClient(
                jwks_uri,
                limiter,
                cache_keys=cache_enabled,
                max_cached_keys=max_cached_keys,
                cache_jwk_set=cache_enabled,
                lifespan=cache_ttl,
                headers={"User-Agent": user_agent},
                timeout=timeout,
            )
        self._client = jwk_client
        logger.info("Configured JWKS with remote keys from %s", jwks_uri)

    @classmethod
    def from_config(cls, config: IntrospectionConfig) -> "RemoteKeySource":
        return cls(
            config.jwks_uri,
            cache_enabled=config.jwks_cache_enabled,
            cache_ttl=config.jwks_cache_ttl,
            max_cached_keys=config.jwks_cache_max_entries,
            rate_limit_enabled=config.jwks_rate_limit_enabled,
            requests_per_minute=config.jwks_requests_per_minute,
            user_agent=config.user_agent,
            timeout=config.timeout,
        )

    async def get_signing_key(self, kid: str) -> PyJWK:
        """Key for kid from the (cached) remote JWKS. Any fetch or lookup failure is KeyNotFoundError."""
        try:
            # PyJWKClient fetches with urllib; keep the event loop free while it does
            return await asyncio.to_thread(self._client.get_signing_key, kid)
        except (jwt.PyJWTError, ValueError, OSError) as e:
            logger.debug("JWKS key lookup for kid %s failed: %s", kid, e)
            raise KeyNotFoundError(f"Could not find key matching kid: {e}") from e
