"""
Custom exception classes and error handling.

Provides consistent error responses across the API. The goal engine raises
these directly so routers, Celery tasks and scripts all see the same
structured errors.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

    def __str__(self) -> str:
        return f"{self.error_code}: {self.detail}"


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class InvalidInputError(APIException):
    """Malformed or out-of-range input, detected before any write."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"INVALID_INPUT_{field.upper()}" if field else "INVALID_INPUT"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class ConflictError(APIException):
    """Resource conflict (e.g., duplicate entry)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


class DatabaseError(APIException):
    """Store-layer failure, carrying the operation that failed."""

    def __init__(self, operation: str, detail: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{operation}: {detail}",
            error_code="DATABASE_ERROR"
        )
        self.operation = operation


class ExternalServiceError(APIException):
    """Upstream collaborator (scraper, judge API) failure."""

    def __init__(self, service: str, detail: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"{service}: {detail}",
            error_code="EXTERNAL_ERROR"
        )


def db_context(operation: str, err: Exception) -> DatabaseError:
    """Wrap a store exception with the operation it interrupted."""
    return DatabaseError(operation, str(err))
