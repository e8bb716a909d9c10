"""
Exception types for the storefront service.

Every exception raised on purpose by the service derives from
``StorefrontError`` and carries the HTTP status it maps to, so the
application's exception handler can turn it into a JSON error body.
"""

from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StorefrontError):
    """Missing or malformed required input. Raised before any write."""

    status_code = 400


class UnauthorizedError(StorefrontError):
    """Missing, expired or invalid bearer token."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ForbiddenError(StorefrontError):
    """Valid token without the required role."""

    status_code = 403

    def __init__(self, message: str = "Admin only", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class NotFoundError(StorefrontError):
    """Raised when a keyed record is absent."""

    status_code = 404

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found", {"id": record_id})
        self.kind = kind
        self.record_id = record_id


class PayloadTooLargeError(StorefrontError):
    status_code = 413


class StorageError(StorefrontError):
    """Any failure of the underlying persistence layer."""

    status_code = 500


class UpstreamTimeoutError(StorefrontError):
    """An upstream dependency did not answer in time."""

    status_code = 504


class NotificationError(StorefrontError):
    """Email delivery failed after all attempts. Never leaves the dispatcher."""

    def __init__(self, message: str, attempts: int, status: Optional[int] = None):
        super().__init__(message, {"attempts": attempts, "status": status})
        self.attempts = attempts
        self.status = status
