"""
Token introspection for resource servers. Verification order:
static JWKS -> remote JWKS -> remote introspection endpoint.

The first strategy that proves the token active wins. An expired or not-yet-valid token found
by a local strategy ends the chain (it must not be reported active by a later strategy); any
other local failure moves on to the next configured strategy.
"""
import logging

import httpx

from token_introspection.config import IntrospectionConfig
from token_introspection.errors import TokenNotActiveError
from token_introspection.keys import RemoteKeySource, StaticKeySource
from token_introspection.local import VerificationOptions, local_introspect, peek
from token_introspection.remote import RemoteIntrospector
from token_introspection.result import IntrospectionResult

__all__ = ["TokenIntrospector", "peek"]


class TokenIntrospector:
    """
    Resolve whether a token is active.

    Collaborators may be injected (tests, shared clients); anything not injected is built from
    config. A None collaborator with no matching config entry means that strategy is off.
    An http_client passed in is not closed by aclose().
    """

    def __init__(
        self,
        config: IntrospectionConfig,
        *,
        static_keys: StaticKeySource | None = None,
        remote_keys: RemoteKeySource | None = None,
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.verification_options = VerificationOptions(
            audience=config.audience, issuer=config.issuer, leeway=config.leeway
        )

        if static_keys is None and config.jwks is not None:
            static_keys = StaticKeySource(config.jwks)
        if remote_keys is None and config.jwks_uri:
            remote_keys = RemoteKeySource.from_config(config)
        self._key_sources = [
            (name, source)
            for name, source in (("static JWKS", static_keys), ("remote JWKS", remote_keys))
            if source is not None
        ]

        self._owns_http_client = False
        self._remote: RemoteIntrospector | None = None
        if config.endpoint:
            if http_client is None:
                http_client = httpx.AsyncClient(timeout=config.timeout, proxy=config.proxy)
                self._owns_http_client = True
            self._remote = RemoteIntrospector.from_config(config, http_client)
        self._http_client = http_client

    async def introspect(self, token: str, token_type_hint: str | None = None) -> IntrospectionResult:
        """
        Return the result for an active token, or raise exactly one IntrospectionError subclass:
        TokenExpiredError / TokenNotYetValidError from local verification, the remote endpoint's
        failure, or TokenNotActiveError when nothing could prove the token active.
        """
        for name, key_source in self._key_sources:
            self.logger.debug("Using %s to introspect token", name)
            outcome = await local_introspect(
                token,
                token_type_hint,
                key_source,
                self.config.allowed_algorithms,
                self.verification_options,
            )
            if outcome.ok:
                return outcome.result
            if outcome.fatal:
                raise outcome.error
            self.logger.debug("%s could not verify token (%s)", name, outcome.error.kind.value)

        if self._remote is not None:
            self.logger.debug("Doing remote introspection")
            return await self._remote.introspect(token, token_type_hint)

        raise TokenNotActiveError()

    async def aclose(self) -> None:
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()

    async def __aenter__(self) -> "TokenIntrospector":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
