"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.library import router as library_router
from routes.export import router as export_router
from routes.localize import router as localize_router
from routes.enrichment import router as enrichment_router

__all__ = [
    "library_router",
    "export_router",
    "localize_router",
    "enrichment_router",
]
