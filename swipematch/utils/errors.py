"""Custom exceptions for the SwipeMatch engine."""

from typing import Any, Dict, Optional


class SwipeMatchError(Exception):
    """Base exception for all SwipeMatch errors."""

    kind: str = "SwipeMatchError"

    def __init__(self, message: str, status_code: int = 500, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the error with a message and optional details.

        Args:
            message (str): Error message describing what went wrong.
            status_code (int): HTTP status code associated with the error (default 500).
            details (Optional[Dict[str, Any]]): Additional context or debug information.
        """
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(SwipeMatchError):
    """Raised when there's an issue with the application configuration."""

    kind = "ConfigurationError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 500, details)


class ValidationError(SwipeMatchError):
    """Raised when input validation fails before any state is touched."""

    kind = "ValidationError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 400, details)


class InvalidIdentifierError(ValidationError):
    """Raised when an identifier is empty or malformed."""

    kind = "InvalidIdentifier"


class SelfReferenceNotAllowedError(ValidationError):
    """Raised when an operation targets the acting user."""

    kind = "SelfReferenceNotAllowed"


class EmptyContentError(ValidationError):
    """Raised when a message has no content after trimming."""

    kind = "EmptyContent"


class ContentTooLongError(ValidationError):
    """Raised when a message exceeds the maximum length."""

    kind = "ContentTooLong"


class NotFoundError(SwipeMatchError):
    """Raised when a requested resource is not found."""

    kind = "NotFound"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 404, details)


class MatchNotFoundError(NotFoundError):
    """Raised when a match id does not resolve to a match."""

    kind = "MatchNotFound"


class NotAMatchParticipantError(SwipeMatchError):
    """Raised when a user acts on a match they are not part of."""

    kind = "NotAMatchParticipant"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 403, details)


class ProfileOwnershipError(SwipeMatchError):
    """Raised when a user tries to modify someone else's profile."""

    kind = "ProfileOwnership"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 403, details)


class ConflictError(SwipeMatchError):
    """Raised when a concurrent write could not be applied atomically. Safe to retry."""

    kind = "Conflict"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, 409, details)


class StorageUnavailableError(SwipeMatchError):
    """Raised when the storage backend fails. Safe to retry."""

    kind = "StorageUnavailable"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the storage error.

        Args:
            message (str): Error message.
            details (Optional[Dict[str, Any]]): Additional details, usually the driver error.
        """
        super().__init__(message, 503, details)


class MutualLikeRequiredError(ValidationError):
    """Raised when a match is requested for a pair that has not liked each other."""

    kind = "MutualLikeRequired"
