"""Error taxonomy shared by services and blueprints."""
from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base class for errors rendered as JSON at the HTTP boundary."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None, **extra: Any) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        payload = {"message": self.message}
        payload.update(self.extra)
        return payload


class ValidationError(PortalError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(PortalError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(PortalError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFoundError(PortalError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(PortalError):
    status_code = 409
    default_message = "Request conflicts with the current state"


class DependencyError(PortalError):
    """External service failed, timed out, or returned unusable output."""

    status_code = 503
    default_message = "Upstream service unavailable"
