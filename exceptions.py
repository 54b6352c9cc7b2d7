"""
Moderation error taxonomy.

Every error carries a stable machine-readable code and the HTTP status the API
layer should answer with.
"""
from http import HTTPStatus
from typing import Any, Dict, List, Optional


class ModerationError(Exception):
    """Base exception for all moderation errors."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(ModerationError):
    """Missing or malformed input. The caller fixes it and retries."""

    status_code = HTTPStatus.BAD_REQUEST
    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        field_errors: Optional[Dict[str, List[str]]] = None,
    ):
        if field_errors:
            details = details or {}
            details["field_errors"] = field_errors
        super().__init__(message, details)


class NotFoundError(ModerationError):
    status_code = HTTPStatus.NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any = None):
        details = {"resource": resource}
        if resource_id is not None:
            details["id"] = str(resource_id)
        super().__init__(f"{resource} not found", details)


class ConflictError(ModerationError):
    """State changed underneath the caller; re-fetch before retrying."""

    status_code = HTTPStatus.CONFLICT
    code = "CONFLICT"


class ForbiddenError(ModerationError):
    status_code = HTTPStatus.FORBIDDEN
    code = "FORBIDDEN"

    def __init__(self, message: str = "forbidden", reason: Optional[str] = None):
        super().__init__(message, {"reason": reason} if reason else None)


class AuthenticationError(ModerationError):
    status_code = HTTPStatus.UNAUTHORIZED
    code = "AUTHENTICATION_REQUIRED"


class ExternalDependencyError(ModerationError):
    """A collaborator (content service, notification service) failed."""

    status_code = HTTPStatus.BAD_GATEWAY
    code = "EXTERNAL_DEPENDENCY_ERROR"

    def __init__(self, message: str, dependency: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["dependency"] = dependency
        super().__init__(message, details)
