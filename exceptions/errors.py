"""
Custom exception classes for the application.

Every fatal request error is an AppError so routes can turn it into the
standard JSON error body. Per-asset failures (one image, one deleted
object) never raise past their batch and have no class here.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "LIBRARY_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503 unless overridden)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None,
        status_code: int = 503
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=status_code,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# EXCEL ERRORS
# ===================

class ExcelParseError(ValidationError):
    """Workbook unreadable, empty, or without a worksheet."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="EXCEL_PARSE_ERROR",
            message=message,
            details=details
        )


# ===================
# LIBRARY ERRORS
# ===================

class LibraryNotFoundError(NotFoundError):
    """Library record not found."""

    def __init__(self, library_id: str):
        super().__init__(
            resource="Library",
            identifier=library_id,
            code="LIBRARY_NOT_FOUND"
        )


class SelectionError(ValidationError):
    """Two-creator intersection cannot be produced."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="SELECTION_INTERSECTION_FAILED",
            message=message,
            details=details
        )


# ===================
# STORAGE ERRORS
# ===================

class StorageError(ExternalServiceError):
    """Object storage operation failed."""

    def __init__(self, operation: str, message: str, path: Optional[str] = None):
        super().__init__(
            service="storage",
            message=f"Storage {operation} failed: {message}",
            details={"operation": operation, "path": path}
        )


class StorageOwnershipError(AppError):
    """URL does not belong to the configured storage backend (409)."""

    def __init__(self, url: str):
        super().__init__(
            code="STORAGE_OWNERSHIP_MISMATCH",
            message="Asset is not owned by the configured storage backend",
            status_code=409,
            details={"url": url}
        )


# ===================
# ENRICHMENT ERRORS
# ===================

class EnrichmentError(ExternalServiceError):
    """AI enrichment returned nothing usable (502)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="enrichment",
            message=message,
            details=details,
            status_code=502
        )
