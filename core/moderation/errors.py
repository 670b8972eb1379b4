"""
Moderation Errors

Every failure the pipeline surfaces to a caller is one of these.
Each class carries a stable error code and the HTTP status the web
adapter maps it to.
"""

from __future__ import annotations

from typing import Optional


class ModerationError(Exception):
    """Base class for pipeline failures."""

    error_code: str = "ERROR"
    http_status: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"status": "error", "code": self.error_code, "message": self.message}


class Unauthenticated(ModerationError):
    """No credential, or the credential is invalid or expired."""

    error_code = "UNAUTHENTICATED"
    http_status = 401

    def __init__(self, message: str = "Authentication required. Please log in."):
        super().__init__(message)


class Forbidden(ModerationError):
    """Authenticated, but the caller's role does not allow the operation."""

    error_code = "FORBIDDEN"
    http_status = 403

    def __init__(self, message: str = "You are not allowed to perform this action."):
        super().__init__(message)


class ValidationError(ModerationError):
    """Malformed input; carries field-level messages."""

    error_code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field_errors: Optional[dict[str, list[str]]] = None,
    ):
        self.field_errors = field_errors or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = self.field_errors
        return data


class InvalidArgument(ValidationError):
    """Request shape is wrong before any field is looked at (e.g. empty id list)."""

    error_code = "INVALID_ARGUMENT"


class InvalidTransition(ModerationError):
    """The listing's current status does not allow the requested transition."""

    error_code = "INVALID_TRANSITION"
    http_status = 409


class NotFound(ModerationError):
    """Referenced entity does not exist."""

    error_code = "NOT_FOUND"
    http_status = 404


class DependencyUnavailable(ModerationError):
    """Store, queue or other dependency failed."""

    error_code = "DEPENDENCY_UNAVAILABLE"
    http_status = 503
