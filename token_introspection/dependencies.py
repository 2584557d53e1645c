"""
FastAPI integration for resource servers: Bearer token -> introspected claims.
Only answers "is this token active"; scope and policy checks stay with the application.
"""
import logging
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from token_introspection.errors import (
    IntrospectionError,
    IntrospectionRequestError,
    IntrospectionServerError,
    TokenExpiredError,
    TokenNotYetValidError,
)
from token_introspection.introspect import TokenIntrospector
from token_introspection.local import ACCESS_TOKEN

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _unauthorized(error: str, description: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "error_description": description},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _error_description(error: IntrospectionError) -> str:
    if isinstance(error, TokenExpiredError):
        return "Token expired"
    if isinstance(error, TokenNotYetValidError):
        return "Token not yet valid"
    return "Token is not active"


class ActiveTokenDependency:
    """
    FastAPI dependency returning the claims of an active access token.

    Usage:
        introspector = TokenIntrospector(IntrospectionConfig.from_env())
        require_active_token = ActiveTokenDependency(introspector)

        @app.get("/me")
        async def me(claims: dict = Depends(require_active_token)):
            return {"sub": claims.get("sub")}
    """

    def __init__(self, introspector: TokenIntrospector):
        self.introspector = introspector

    async def __call__(
        self,
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    ) -> dict[str, Any]:
        if credentials is None:
            raise _unauthorized("invalid_request", "Authorization header missing")
        if credentials.scheme.lower() != "bearer":
            raise _unauthorized("invalid_request", "Bearer scheme required")

        try:
            result = await self.introspector.introspect(credentials.credentials, ACCESS_TOKEN)
        except (IntrospectionRequestError, IntrospectionServerError) as e:
            logger.warning("Token introspection unavailable: %s", e.kind.value)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={
                    "error": "temporarily_unavailable",
                    "error_description": "Token introspection unavailable",
                },
            )
        except IntrospectionError as e:
            logger.debug("Token rejected: %s", e.kind.value)
            raise _unauthorized("invalid_token", _error_description(e))
        return result.as_dict()
