"""
Business logic services.

Each service handles one domain area.
"""

from services.storage_service import StorageService, get_storage_service
from services.export_service import ExportService, get_export_service
from services.enrichment_service import EnrichmentService, get_enrichment_service
from services.library_service import LibraryService, get_library_service
from services.import_service import ImportService, get_import_service
from services.selection_service import SelectionService, get_selection_service
from services.localize_service import LocalizeService, get_localize_service

__all__ = [
    "StorageService",
    "get_storage_service",
    "ExportService",
    "get_export_service",
    "EnrichmentService",
    "get_enrichment_service",
    "LibraryService",
    "get_library_service",
    "ImportService",
    "get_import_service",
    "SelectionService",
    "get_selection_service",
    "LocalizeService",
    "get_localize_service",
]
