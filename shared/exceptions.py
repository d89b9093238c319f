"""
Error hierarchy for the client.

Every failure the client raises derives from SoundspotsError and carries a
user-facing message. Transport failures never carry server text; API errors
carry the message the server sent.
"""

from typing import Any, Dict, Optional

from shared.constants import (
    MSG_ADMIN_AUTH_REQUIRED,
    MSG_INVALID_CREDENTIALS,
    MSG_NETWORK_ERROR,
    MSG_PLAYBACK_FAILED,
)


class SoundspotsError(Exception):
    """Base class for all client exceptions."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NetworkError(SoundspotsError):
    """No response reached the client."""

    def __init__(self, message: str = MSG_NETWORK_ERROR, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, None, details)


class ApiError(SoundspotsError):
    """The server answered with a non-success status."""


class ValidationError(ApiError):
    """Request rejected as invalid (400)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 400, details)


class AuthenticationError(ApiError):
    """Token missing, expired or rejected (401)."""

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 401, details)


class PermissionDeniedError(ApiError):
    """Authenticated but not allowed (403)."""

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 403, details)


class NotFoundError(ApiError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 404, details)


class InvalidCredentialsError(SoundspotsError):
    """Login rejected for the given email and password."""

    def __init__(self, message: str = MSG_INVALID_CREDENTIALS):
        super().__init__(message, 401)


class RoleMismatchError(SoundspotsError):
    """Account role does not match the login path that was used."""

    def __init__(self, message: str, role: Optional[str] = None):
        super().__init__(message, 403, {"role": role})
        self.role = role


class AdminAuthRequiredError(SoundspotsError):
    """Admin-only operation attempted without an admin session."""

    def __init__(self, message: str = MSG_ADMIN_AUTH_REQUIRED):
        super().__init__(message, 403)


class StaleReviewError(SoundspotsError):
    """Review requested for an item that is no longer pending locally."""

    def __init__(self, item_id: str):
        super().__init__(f"Item {item_id} is not pending review", 409, {"id": item_id})
        self.item_id = item_id


class AudioPlaybackError(SoundspotsError):
    """A sound could not be created or controlled."""

    def __init__(self, message: str = MSG_PLAYBACK_FAILED, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, None, details)
