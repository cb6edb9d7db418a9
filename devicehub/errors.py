"""
Error taxonomy shared by services and API handlers.

Services raise these exceptions; ``devicehub.main`` turns them into JSON
responses. None of them are retried server-side.
"""
from typing import Any, Dict, Optional

from fastapi import status


class DeviceHubError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "error": self.code}
        body.update(self.extra)
        return body


class ValidationError(DeviceHubError):
    """Malformed or missing request fields."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Invalid request body"


class Unauthenticated(DeviceHubError):
    """No credential or identifier was presented."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    default_message = "Authentication required"


class Forbidden(DeviceHubError):
    """A credential or identifier was presented but does not resolve."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Forbidden"


class NotFound(DeviceHubError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class Conflict(DeviceHubError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Conflict"


class Internal(DeviceHubError):
    """Storage or other server-side failure. The message is always generic."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal"
    default_message = "An unexpected error occurred"
