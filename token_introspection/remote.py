"""
Remote token introspection (RFC 7662). POST token (+ token_type_hint) as a form to the
authorization server, authenticated with HTTP Basic (client_id:client_secret) or a Bearer token.
One request per call; retries are the caller's policy.
"""
import base64
import logging

import httpx

from token_introspection.config import IntrospectionConfig
from token_introspection.errors import (
    IntrospectionRequestError,
    IntrospectionServerError,
    TokenNotActiveError,
)
from token_introspection.result import METHOD_REMOTE_INTROSPECTION, IntrospectionResult

logger = logging.getLogger(__name__)


def basic_authorization(client_id: str, client_secret: str) -> str:
    """'Basic <base64(client_id:client_secret)>' per RFC 6749 §2.3.1."""
    encoded = base64.b64encode(f"{client_id}:{client_secret}".encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


def bearer_authorization(access_token: str) -> str:
    return f"Bearer {access_token}"


def is_active(value) -> bool:
    """RFC 7662 active flag. The string "true" is accepted for interop; nothing else counts."""
    return value is True or value == "true"


class RemoteIntrospector:
    def __init__(self, endpoint: str, authorization: str, http_client: httpx.AsyncClient, user_agent: str):
        self.endpoint = endpoint
        self.http_client = http_client
        self._headers = {
            "Authorization": authorization,
            "Accept": "application/json",
            "User-Agent": user_agent,
        }

    @classmethod
    def from_config(cls, config: IntrospectionConfig, http_client: httpx.AsyncClient) -> "RemoteIntrospector":
        if config.uses_bearer_auth:
            authorization = bearer_authorization(config.access_token)
        else:
            authorization = basic_authorization(config.client_id, config.client_secret or "")
        return cls(config.endpoint, authorization, http_client, config.user_agent)

    async def introspect(self, token: str, token_type_hint: str | None = None) -> IntrospectionResult:
        """Ask the endpoint about token. Returns the JSON body as claims when active."""
        data = {"token": token}
        if token_type_hint:
            data["token_type_hint"] = token_type_hint

        try:
            r = await self.http_client.post(self.endpoint, data=data, headers=self._headers)
        except httpx.HTTPError as e:
            logger.debug("Remote token introspection request failed: %s", e)
            raise IntrospectionRequestError() from e

        if not r.is_success:
            logger.warning("Introspection endpoint returned %s", r.status_code)
            raise IntrospectionServerError(r.status_code, r.text)

        try:
            body = r.json()
        except ValueError as e:
            raise IntrospectionServerError(r.status_code, r.text, "Introspection response is not JSON") from e

        if isinstance(body, dict) and is_active(body.get("active")):
            return IntrospectionResult(claims=body, method=METHOD_REMOTE_INTROSPECTION)
        raise TokenNotActiveError()
