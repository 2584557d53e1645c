"""
Typed introspection errors. Every failure carries an ErrorKind so callers (and the
fallback chain) can classify it without matching on exception classes.
"""
from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration_error"
    MALFORMED_TOKEN = "malformed_token"
    UNSUPPORTED_TOKEN_TYPE = "unsupported_token_type"
    KEY_NOT_FOUND = "key_not_found"
    NO_MATCHING_KEY = "no_matching_key"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_NOT_YET_VALID = "token_not_yet_valid"
    INTROSPECTION_REQUEST_FAILED = "introspection_request_failed"
    INTROSPECTION_SERVER_ERROR = "introspection_server_error"
    TOKEN_NOT_ACTIVE = "token_not_active"

    @property
    def fatal(self) -> bool:
        """True if this kind must abort the fallback chain instead of trying the next strategy."""
        return self in _FATAL_KINDS


_FATAL_KINDS = frozenset({ErrorKind.CONFIGURATION, ErrorKind.TOKEN_EXPIRED, ErrorKind.TOKEN_NOT_YET_VALID})


class IntrospectionError(Exception):
    kind = ErrorKind.TOKEN_NOT_ACTIVE
    default_message = "Token introspection failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class ConfigurationError(IntrospectionError):
    kind = ErrorKind.CONFIGURATION
    default_message = "Introspection not properly configured"


class MalformedTokenError(IntrospectionError):
    kind = ErrorKind.MALFORMED_TOKEN
    default_message = "Token is not a JWT"


class UnsupportedTokenTypeError(IntrospectionError):
    kind = ErrorKind.UNSUPPORTED_TOKEN_TYPE
    default_message = "Only access tokens are supported for local introspection"


class KeyNotFoundError(IntrospectionError):
    kind = ErrorKind.KEY_NOT_FOUND
    default_message = "Could not find key matching kid"


class NoMatchingKeyError(IntrospectionError):
    kind = ErrorKind.NO_MATCHING_KEY
    default_message = "Could not verify token with any key"


class TokenNotActiveError(IntrospectionError):
    kind = ErrorKind.TOKEN_NOT_ACTIVE
    default_message = "Token is not active"


class TokenExpiredError(TokenNotActiveError):
    kind = ErrorKind.TOKEN_EXPIRED
    default_message = "Token has expired"


class TokenNotYetValidError(TokenNotActiveError):
    kind = ErrorKind.TOKEN_NOT_YET_VALID
    default_message = "Token is not yet valid"


class IntrospectionRequestError(IntrospectionError):
    kind = ErrorKind.INTROSPECTION_REQUEST_FAILED
    default_message = "Remote introspection request failed"


class IntrospectionServerError(IntrospectionError):
    """Introspection endpoint answered with a non-success status. Keeps status and body for diagnostics."""

    kind = ErrorKind.INTROSPECTION_SERVER_ERROR
    default_message = "Introspection endpoint returned an error"

    def __init__(self, status_code: int, body: str = "", message: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"Server error {status_code}\n{body}")
