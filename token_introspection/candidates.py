"""
Candidate key selection: narrow a key set to the keys that could plausibly verify a token,
based on the token header's alg (-> key type) and kid.
"""
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from token_introspection.keys import Key

logger = logging.getLogger(__name__)

# alg prefix -> JWK kty
_ALG_PREFIX_KEY_TYPES = (
    ("HS", "oct"),
    ("RS", "RSA"),
    ("PS", "RSA"),
    ("ES", "EC"),
)


def key_type_for_alg(alg: str | None) -> str | None:
    """Map a JWS alg (e.g. RS256) to the key type able to verify it; None for unknown algs."""
    if not alg:
        return None
    for prefix, kty in _ALG_PREFIX_KEY_TYPES:
        if alg.startswith(prefix):
            return kty
    return None


def select_candidates(header: Mapping[str, Any], keys: Sequence[Key]) -> list[Key]:
    """
    Keys of the right type, in key set order. If the header names a kid, only that key
    (or nothing: a named kid is never guessed across other keys).
    """
    kty = key_type_for_alg(header.get("alg"))
    if kty is None:
        logger.debug("No key type for alg %r", header.get("alg"))
        return []
    filtered = [k for k in keys if k.kty and k.kty == kty]
    logger.debug("Filtered keys for '%s', found %d", header.get("alg"), len(filtered))

    kid = header.get("kid")
    if kid:
        for key in filtered:
            if key.kid == kid:
                logger.debug("Found key for key id %s", kid)
                return [key]
        logger.debug("No key found for key id %s", kid)
        return []
    return filtered
