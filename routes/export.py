"""
Export API routes - download liked products as .xlsx.
"""

import asyncio
import io
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse
import structlog

from models.export import ExportRequest, CombinedExportRequest
from services.export_service import get_export_service, export_filename
from services.library_service import get_library_service
from services.selection_service import get_selection_service
from services.storage_service import XLSX_CONTENT_TYPE
from exceptions import AppError, ValidationError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/export", tags=["Export"])


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    logger.error("export_unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def xlsx_response(data: bytes, filename: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(data),
        media_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.post("")
async def export_products(request: ExportRequest):
    """
    Export products to a workbook download.

    With library_id the library's original workbook is the template;
    rows, styles and images are copied from it by `_index`. Images that
    cannot be resolved are replaced by a placeholder text.

    Raises:
        422: No products
    """
    try:
        if not request.products:
            raise ValidationError("No products to export")

        template = None
        if request.library_id:
            template = await asyncio.to_thread(
                get_library_service().template_workbook, request.library_id
            )

        data = await get_export_service().export_products(request.products, template_data=template)
        return xlsx_response(data, export_filename(int(time.time() * 1000)))

    except Exception as e:
        return handle_error(e)


@router.post("/combined")
async def export_combined(request: CombinedExportRequest):
    """
    Export the products both creators liked.

    Raises:
        422: A creator has no selection or the selections do not overlap
    """
    try:
        data = await get_selection_service().export_combined(request.original_library_id)
        return xlsx_response(data, "combined_selection.xlsx")
    except Exception as e:
        return handle_error(e)
