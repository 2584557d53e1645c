"""
Pytest configuration for token_introspection: RSA keys, JWKs and token builders shared by the tests.
No test touches the network; JWKS fetches and the introspection endpoint are mocked.
"""
import io
import json
import os
import time
import urllib.request

import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from jwt.exceptions import PyJWKClientError

KEY_ID = "test_key_id"


def _int_to_b64url(value: int) -> str:
    """Encode a positive int as base64url (JWK n/e)."""
    length = (value.bit_length() + 7) // 8
    byt = value.to_bytes(length, "big")
    s = jwt.utils.base64url_encode(byt)
    return s.decode("utf-8") if isinstance(s, bytes) else s


def rsa_public_jwk(private_key, kid: str | None = KEY_ID) -> dict:
    pub = private_key.public_key().public_numbers()
    jwk = {"kty": "RSA", "n": _int_to_b64url(pub.n), "e": _int_to_b64url(pub.e)}
    if kid:
        jwk["kid"] = kid
    return jwk


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep developer TOKEN_INTROSPECTION_* settings out of the tests."""
    for name in list(os.environ):
        if name.startswith("TOKEN_INTROSPECTION_"):
            monkeypatch.delenv(name)


@pytest.fixture(scope="session")
def private_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture(scope="session")
def other_private_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture(scope="session")
def public_jwk(private_key):
    return rsa_public_jwk(private_key)


@pytest.fixture(scope="session")
def other_public_jwk(other_private_key):
    return rsa_public_jwk(other_private_key, kid="other_key_id")


@pytest.fixture
def jwks(public_jwk):
    return {"keys": [public_jwk]}


@pytest.fixture
def make_token(private_key):
    """Build a signed JWT. Default claims: sub + exp five minutes ahead; kid test_key_id; RS256."""

    def _make(claims: dict | None = None, *, key=None, algorithm: str = "RS256", kid: str | None = KEY_ID) -> str:
        if claims is None:
            claims = {"sub": "user1", "exp": int(time.time()) + 300}
        headers = {"kid": kid} if kid else None
        return jwt.encode(claims, key if key is not None else private_key, algorithm=algorithm, headers=headers)

    return _make


class StubJWKClient:
    """Stands in for PyJWKClient: kid -> PyJWK, records every lookup."""

    def __init__(self, jwks_by_kid: dict):
        self.keys = {kid: jwt.PyJWK(jwk) for kid, jwk in jwks_by_kid.items()}
        self.calls: list[str] = []

    def get_signing_key(self, kid: str):
        self.calls.append(kid)
        if kid not in self.keys:
            raise PyJWKClientError(f'Unable to find a signing key that matches: "{kid}"')
        return self.keys[kid]


@pytest.fixture
def stub_jwk_client():
    return StubJWKClient


class FakeJWKSEndpoint:
    """Stands in for urllib.request.urlopen: answers every request with a fixed body, records requests."""

    def __init__(self, body):
        self.body = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
        self.requests: list[urllib.request.Request] = []

    def __call__(self, request, timeout=None, context=None):
        self.requests.append(request)
        return io.BytesIO(self.body)


@pytest.fixture
def serve_jwks(monkeypatch):
    """serve_jwks(body) routes JWKS fetches to a FakeJWKSEndpoint returning body (dict or raw bytes)."""

    def _serve(body) -> FakeJWKSEndpoint:
        endpoint = FakeJWKSEndpoint(body)
        monkeypatch.setattr(urllib.request, "urlopen", endpoint)
        return endpoint

    return _serve
