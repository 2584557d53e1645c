"""
Local introspection: verify a JWT access token against static or remote JWKS keys.
Returns an Outcome; expired / not-yet-valid tokens are reported with fatal kinds so the
caller stops instead of asking the authorization server.
"""
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import jwt
from jwt.api_jwt import decode_complete

from token_introspection.candidates import select_candidates
from token_introspection.errors import (
    IntrospectionError,
    KeyNotFoundError,
    MalformedTokenError,
    NoMatchingKeyError,
    TokenExpiredError,
    TokenNotYetValidError,
    UnsupportedTokenTypeError,
)
from token_introspection.keys import RemoteKeySource, StaticKeySource
from token_introspection.result import (
    METHOD_REMOTE_JWKS,
    METHOD_STATIC_JWKS,
    IntrospectionResult,
    Outcome,
)

logger = logging.getLogger(__name__)

ACCESS_TOKEN = "access_token"


@dataclass(frozen=True)
class VerificationOptions:
    """Claim checks applied on top of the signature. aud is only checked when audience is set."""

    audience: str | None = None
    issuer: str | None = None
    leeway: int = 0


def peek(token: str) -> dict[str, Any] | None:
    """Decode header, payload and signature without verifying anything. None if not a JWT."""
    try:
        return decode_complete(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None


async def local_introspect(
    token: str,
    token_type_hint: str | None,
    key_source: StaticKeySource | RemoteKeySource,
    allowed_algorithms: Sequence[str],
    options: VerificationOptions | None = None,
) -> Outcome:
    """
    Verify token with keys from key_source. Static sources try every candidate key in order;
    remote sources look up the single key named by the header's kid.
    """
    options = options or VerificationOptions()
    try:
        header = _parse_access_token(token, token_type_hint)
        if isinstance(key_source, StaticKeySource):
            claims = _verify_with_candidates(token, header, key_source, allowed_algorithms, options)
            return Outcome.success(IntrospectionResult(claims=claims, method=METHOD_STATIC_JWKS))
        claims = await _verify_with_remote_key(token, header, key_source, allowed_algorithms, options)
        return Outcome.success(IntrospectionResult(claims=claims, method=METHOD_REMOTE_JWKS))
    except IntrospectionError as e:
        logger.debug("Could not locally verify token: %s", e)
        return Outcome.failure(e)


def _parse_access_token(token: str, token_type_hint: str | None) -> dict[str, Any]:
    if token_type_hint and token_type_hint != ACCESS_TOKEN:
        logger.debug("Not an access token, token_type_hint=%s", token_type_hint)
        raise UnsupportedTokenTypeError()
    decoded = peek(token)
    if decoded is None:
        raise MalformedTokenError()
    return decoded["header"]


def _verify_with_candidates(
    token: str,
    header: dict[str, Any],
    key_source: StaticKeySource,
    allowed_algorithms: Sequence[str],
    options: VerificationOptions,
) -> dict[str, Any]:
    for key in select_candidates(header, key_source.keys):
        try:
            return _decode(token, key.material, allowed_algorithms, options)
        except jwt.PyJWTError as e:
            logger.debug("Key %s did not verify token: %s", key.kid or "(no kid)", e)
    raise NoMatchingKeyError()


async def _verify_with_remote_key(
    token: str,
    header: dict[str, Any],
    key_source: RemoteKeySource,
    allowed_algorithms: Sequence[str],
    options: VerificationOptions,
) -> dict[str, Any]:
    kid = header.get("kid")
    if not kid:
        raise KeyNotFoundError("Token does not contain kid in header")
    signing_key = await key_source.get_signing_key(kid)
    try:
        return _decode(token, signing_key.key, allowed_algorithms, options)
    except jwt.PyJWTError as e:
        raise NoMatchingKeyError(f"Could not verify token: {e}") from e


def _decode(token: str, key: Any, allowed_algorithms: Sequence[str], options: VerificationOptions) -> dict:
    """jwt.decode restricted to allowed_algorithms; time-bound failures become typed errors."""
    try:
        return jwt.decode(
            token,
            key,
            algorithms=list(allowed_algorithms),
            audience=options.audience,
            issuer=options.issuer,
            leeway=options.leeway,
            options={"verify_aud": options.audience is not None},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError() from e
    except jwt.ImmatureSignatureError as e:
        raise TokenNotYetValidError() from e
