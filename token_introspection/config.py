"""
Introspection configuration. One explicit structure for every recognized option, validated once.
Values can come from the caller or from TOKEN_INTROSPECTION_* environment variables (from_env).
No secrets in this file; credentials come from env or the caller.
"""
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from token_introspection.errors import ConfigurationError

ENV_PREFIX = "TOKEN_INTROSPECTION_"

DEFAULT_ALLOWED_ALGORITHMS = ("RS256",)
DEFAULT_USER_AGENT = "token-introspection"

# JWKS client defaults: 5 minute cache, 10 keys, 60 fetches per minute (1 rps)
DEFAULT_JWKS_CACHE_TTL = 300
DEFAULT_JWKS_CACHE_MAX_ENTRIES = 10
DEFAULT_JWKS_REQUESTS_PER_MINUTE = 60

# Outbound HTTP timeout (seconds) for JWKS fetches and the introspection POST
DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class IntrospectionConfig:
    # Strategies, tried in this order: static JWKS -> remote JWKS -> introspection endpoint
    jwks: Mapping[str, Any] | None = None
    jwks_uri: str | None = None
    endpoint: str | None = None

    # Remote JWKS client
    jwks_cache_enabled: bool = True
    jwks_cache_max_entries: int = DEFAULT_JWKS_CACHE_MAX_ENTRIES
    jwks_cache_ttl: int = DEFAULT_JWKS_CACHE_TTL
    jwks_rate_limit_enabled: bool = True
    jwks_requests_per_minute: int = DEFAULT_JWKS_REQUESTS_PER_MINUTE

    # Introspection endpoint authentication: Bearer if access_token is set, else Basic
    client_id: str | None = None
    client_secret: str | None = None
    access_token: str | None = None

    # Local verification
    allowed_algorithms: tuple[str, ...] = DEFAULT_ALLOWED_ALGORITHMS
    audience: str | None = None
    issuer: str | None = None
    leeway: int = 0

    # Outbound HTTP
    user_agent: str = DEFAULT_USER_AGENT
    proxy: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        if not self.jwks and not self.jwks_uri and not self.endpoint:
            raise ConfigurationError(
                "Static JWKS, a JWKS URI or introspection endpoint must be specified in the configuration"
            )
        if self.jwks is not None and (
            not isinstance(self.jwks, Mapping) or not isinstance(self.jwks.get("keys"), list)
        ):
            raise ConfigurationError("Static JWKS must be a mapping with a 'keys' list")
        # Accept a list for convenience; store as an immutable tuple
        object.__setattr__(self, "allowed_algorithms", tuple(self.allowed_algorithms))
        if not self.allowed_algorithms:
            raise ConfigurationError("At least one allowed algorithm is required")
        if self.endpoint and not self.access_token and not self.client_id:
            raise ConfigurationError(
                "Introspection endpoint requires client_id/client_secret or access_token"
            )
        if self.jwks_uri:
            if self.jwks_cache_ttl <= 0 or self.jwks_cache_max_entries <= 0:
                raise ConfigurationError("JWKS cache TTL and max entries must be positive")
            if self.jwks_requests_per_minute <= 0:
                raise ConfigurationError("JWKS requests per minute must be positive")
        if self.timeout <= 0:
            raise ConfigurationError("Timeout must be positive")

    @property
    def uses_bearer_auth(self) -> bool:
        return bool(self.access_token)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "IntrospectionConfig":
        """
        Build config from TOKEN_INTROSPECTION_* variables. Keyword overrides win over the environment.
        TOKEN_INTROSPECTION_JWKS_PATH points at a JSON file holding a static JWKS.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            return (env.get(ENV_PREFIX + name) or "").strip() or None

        values: dict[str, Any] = {
            "endpoint": get("ENDPOINT"),
            "jwks_uri": get("JWKS_URI"),
            "client_id": get("CLIENT_ID"),
            "client_secret": env.get(ENV_PREFIX + "CLIENT_SECRET"),
            "access_token": get("ACCESS_TOKEN"),
            "audience": get("AUDIENCE"),
            "issuer": get("ISSUER"),
            "proxy": get("PROXY"),
            "user_agent": get("USER_AGENT") or DEFAULT_USER_AGENT,
            "leeway": int(get("LEEWAY") or "0"),
            "timeout": float(get("TIMEOUT") or DEFAULT_TIMEOUT),
            "jwks_cache_enabled": _flag(get("JWKS_CACHE_ENABLED"), True),
            "jwks_cache_max_entries": int(get("JWKS_CACHE_MAX_ENTRIES") or DEFAULT_JWKS_CACHE_MAX_ENTRIES),
            "jwks_cache_ttl": int(get("JWKS_CACHE_TTL") or DEFAULT_JWKS_CACHE_TTL),
            "jwks_rate_limit_enabled": _flag(get("JWKS_RATE_LIMIT_ENABLED"), True),
            "jwks_requests_per_minute": int(get("JWKS_REQUESTS_PER_MINUTE") or DEFAULT_JWKS_REQUESTS_PER_MINUTE),
        }
        algs = get("ALLOWED_ALGS")
        if algs:
            values["allowed_algorithms"] = tuple(a.strip() for a in algs.split(",") if a.strip())
        jwks_path = get("JWKS_PATH")
        if jwks_path:
            values["jwks"] = load_jwks_file(jwks_path)
        if values["endpoint"]:
            values["endpoint"] = values["endpoint"].rstrip("/")
        values.update(overrides)
        return cls(**values)


def load_jwks_file(path: str) -> dict:
    """Read a static JWKS document ({"keys": [...]}) from a JSON file."""
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Could not load JWKS from {path}: {e}") from e


def _flag(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")
