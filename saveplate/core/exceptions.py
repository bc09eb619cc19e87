"""
Error taxonomy for the authentication flows.

Every flow-level failure is an AuthError subclass carrying an HTTP status and
a message that is safe to show to the client. Internal causes are logged by
the code that raises, never attached to the response.
"""

from typing import Any, Dict, Optional

from fastapi import status


class AuthError(Exception):
    """Base class for errors rendered to the client."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "message": self.message,
            "error": self.__class__.__name__,
        }


class BadRequestError(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class UnauthorizedError(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class NotFoundError(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(AuthError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class AccountConflictError(ConflictError):
    """A federated identity is already bound to a different account."""
    default_message = "This identity is already linked to another account"


class RateLimitExceededError(AuthError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests"


class ConfigurationError(AuthError):
    """A required secret or credential is missing."""
    default_message = "Service is not configured correctly"


class EmailDeliveryError(AuthError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to send email. Please try again later."


class InvalidTokenError(Exception):
    """Token signature, expiry or structure is invalid."""


class CacheError(Exception):
    """The cache backend failed to serve a request."""


class OAuthProviderError(Exception):
    """The identity provider rejected or failed a request."""
