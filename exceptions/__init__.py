"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ExternalServiceError,
    DatabaseError,

    # Excel
    ExcelParseError,

    # Libraries
    LibraryNotFoundError,
    SelectionError,

    # Storage
    StorageError,
    StorageOwnershipError,

    # Enrichment
    EnrichmentError,
)

__all__ = [
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "DatabaseError",
    "ExcelParseError",
    "LibraryNotFoundError",
    "SelectionError",
    "StorageError",
    "StorageOwnershipError",
    "EnrichmentError",
]
