"""
Base repository class for database access.

Provides a common abstraction layer for all repositories, encapsulating
Supabase client access and the translation of PostgREST failures into the
shared exception hierarchy.
"""

from typing import TypeVar, Generic, Optional

from postgrest.exceptions import APIError
from supabase import Client

from .exceptions import StorageError


T = TypeVar("T")

# Postgres SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"


class BaseRepository(Generic[T]):
    """
    Base class for all repositories.

    Provides common functionality for database operations:
    - Supabase client access via self._db
    - Generic type parameter for model type hints
    - Helpers for classifying PostgREST errors

    Subclasses should implement domain-specific data access methods
    and handle dict-to-Pydantic model mapping internally.

    Example:
        class SubjectRepository(BaseRepository[Subject]):
            def get_by_id(self, subject_id: str) -> Optional[Subject]:
                result = self._db.table("subjects").select("*").eq("id", subject_id).execute()
                if not result.data:
                    return None
                return Subject(**result.data[0])
    """

    def __init__(self, db: Client) -> None:
        """
        Initialize the repository with a Supabase client.

        Args:
            db: Supabase client instance for database operations.
        """
        self._db = db

    @staticmethod
    def is_unique_violation(error: APIError, constraint: Optional[str] = None) -> bool:
        """Whether a PostgREST error is a unique-index violation (optionally on one constraint)."""
        if error.code != UNIQUE_VIOLATION:
            return False
        if constraint is None:
            return True
        return constraint in (error.message or "") or constraint in str(error.details or "")

    @staticmethod
    def storage_error(error: Exception, operation: str) -> StorageError:
        """Wrap a driver error as an internal StorageError."""
        return StorageError(
            f"Storage operation failed: {operation}",
            code="STORAGE_ERROR",
            details={"operation": operation, "cause": type(error).__name__},
        )
