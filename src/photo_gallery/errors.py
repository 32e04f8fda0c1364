"""Structured errors surfaced to callers as ``{error, code}`` pairs."""

from typing import Any, Dict, List, Optional


class GalleryError(Exception):
    """Base class for every error the gallery reports to a caller."""

    status = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class AuthRequiredError(GalleryError):
    status = 401
    code = "AUTH_REQUIRED"


class InvalidTokenError(GalleryError):
    status = 401
    code = "INVALID_TOKEN"


class AccessDeniedError(GalleryError):
    status = 403
    code = "ACCESS_DENIED"


class CollectionNotFoundError(GalleryError):
    status = 404
    code = "COLLECTION_NOT_FOUND"


class PhotoNotFoundError(GalleryError):
    status = 404
    code = "PHOTO_NOT_FOUND"


class InputRejectedError(GalleryError):
    """Rejected before any storage side effect."""
    status = 400
    code = "INVALID_REQUEST"


class MissingFieldError(InputRejectedError):
    code = "INVALID_REQUEST"


class FileTooLargeError(InputRejectedError):
    code = "FILE_TOO_LARGE"


class UnsupportedTypeError(InputRejectedError):
    code = "UNSUPPORTED_TYPE"


class NotRawError(InputRejectedError):
    code = "NOT_RAW"


class InvalidSettingsError(InputRejectedError):
    """One or more adjustment parameters are unknown or out of range."""

    code = "INVALID_SETTINGS"

    def __init__(self, violations: List[str]):
        super().__init__("Invalid processing settings", details=violations)
        self.violations = violations


class PersistenceError(GalleryError):
    """The record store or filesystem could not complete a write."""
    status = 500
    code = "UPLOAD_FAILED"
