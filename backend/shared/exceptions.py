"""
Base exception classes for the StoryWonder backend.

Each module should define its own exceptions that inherit from these bases.
The API layer maps each base kind to one HTTP status, so a module exception
only has to pick the right parent.
"""

from typing import Optional, Any


class StoryWonderError(Exception):
    """
    Base exception for all StoryWonder errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(StoryWonderError):
    """Resource not found."""

    pass


class ValidationError(StoryWonderError):
    """Input validation failed."""

    pass


class ConflictError(StoryWonderError):
    """Request conflicts with existing state (e.g. a duplicate unique key)."""

    pass


class AuthenticationError(StoryWonderError):
    """Authentication failed (invalid or missing credentials)."""

    pass


class AuthorizationError(StoryWonderError):
    """Authorization failed (insufficient permissions)."""

    pass


class RateLimitError(StoryWonderError):
    """Caller exceeded an allowed request rate."""

    def __init__(
        self,
        message: str,
        retry_after: int,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)
        self.retry_after = retry_after
        self.details["retry_after"] = retry_after


class ExternalServiceError(StoryWonderError):
    """Error communicating with an external service."""

    def __init__(
        self,
        message: str,
        service: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)
        self.service = service
        self.details["service"] = service


class StorageError(StoryWonderError):
    """The persistent store failed or is unreachable. Always internal."""

    pass


class ConfigurationError(StoryWonderError):
    """Required configuration is missing or invalid. Always internal."""

    pass
