"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, SuccessResponse
from models.library import (
    LibraryType,
    LibraryResponse,
    LibraryRename,
    SaveCompletedRequest,
    CombinedLibraryView,
)
from models.export import (
    ColumnSpec,
    ExportRequest,
    CombinedExportRequest,
    LocalizeFinalizeRequest,
)
from models.enrichment import (
    ProductSummary,
    LocalizeBatchRequest,
    LocalizeBatchResponse,
    EnrichmentCheckRequest,
    DebugStep,
    EnrichmentCheckResponse,
)

__all__ = [
    "BaseSchema",
    "SuccessResponse",
    "LibraryType",
    "LibraryResponse",
    "LibraryRename",
    "SaveCompletedRequest",
    "CombinedLibraryView",
    "ColumnSpec",
    "ExportRequest",
    "CombinedExportRequest",
    "LocalizeFinalizeRequest",
    "ProductSummary",
    "LocalizeBatchRequest",
    "LocalizeBatchResponse",
    "EnrichmentCheckRequest",
    "DebugStep",
    "EnrichmentCheckResponse",
]
