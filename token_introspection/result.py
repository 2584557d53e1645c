"""
Introspection results. A strategy reports an Outcome (success or classified failure) so the
fallback chain can decide between "propagate" and "try the next strategy" by looking at the kind.
"""
from dataclasses import dataclass, field
from typing import Any

from token_introspection.errors import IntrospectionError

METHOD_STATIC_JWKS = "static_jwks"
METHOD_REMOTE_JWKS = "remote_jwks"
METHOD_REMOTE_INTROSPECTION = "remote_introspection"


@dataclass(frozen=True)
class IntrospectionResult:
    """
    An active token. claims are the verified JWT payload, or the introspection endpoint's JSON
    body verbatim. method records which strategy produced it.
    """

    claims: dict[str, Any] = field(default_factory=dict)
    method: str = METHOD_STATIC_JWKS

    @property
    def active(self) -> bool:
        return True

    def as_dict(self) -> dict[str, Any]:
        """
        Flat RFC 7662-style view. An endpoint's body is returned as sent; a verified JWT payload
        cannot override active, which is always True here.
        """
        if self.method == METHOD_REMOTE_INTROSPECTION:
            return dict(self.claims)
        return {**self.claims, "active": True}


@dataclass(frozen=True)
class Outcome:
    result: IntrospectionResult | None = None
    error: IntrospectionError | None = None

    @classmethod
    def success(cls, result: IntrospectionResult) -> "Outcome":
        return cls(result=result)

    @classmethod
    def failure(cls, error: IntrospectionError) -> "Outcome":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.result is not None

    @property
    def fatal(self) -> bool:
        return self.error is not None and self.error.kind.fatal
