"""
Library API routes.

Import catalog workbooks, list/rename/delete libraries, save completed
selections and read the two-creator combined view.
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Query, UploadFile, File, Form
from fastapi.responses import JSONResponse
import structlog

from models.base import SuccessResponse
from models.library import (
    LibraryType,
    LibraryResponse,
    LibraryRename,
    SaveCompletedRequest,
    CombinedLibraryView,
)
from services.import_service import get_import_service
from services.library_service import get_library_service
from services.selection_service import get_selection_service
from exceptions import AppError, ValidationError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.get("", response_model=list[LibraryResponse])
async def list_libraries(
    type: LibraryType = Query(LibraryType.PENDING, description="Library type")
):
    """List libraries of one type, newest first."""
    try:
        return get_library_service().get_all(type)
    except Exception as e:
        return handle_error(e)


@router.get("/combined", response_model=list[CombinedLibraryView])
async def combined_libraries():
    """
    Both creators' progress on every pending library.

    combined_count is the number of products both liked.
    """
    try:
        return get_selection_service().combined_view()
    except Exception as e:
        return handle_error(e)


@router.get("/{library_id}", response_model=LibraryResponse)
async def get_library(library_id: str):
    """
    Get a single library.

    Raises:
        404: Library not found
    """
    try:
        return get_library_service().get_by_id(library_id)
    except Exception as e:
        return handle_error(e)


@router.get("/{library_id}/parsed", response_model=LibraryResponse)
async def get_library_parsed(library_id: str):
    """
    Get a library with each product's embedded image as `_image_url`.

    Raises:
        404: Library not found
        503: Workbook could not be fetched
    """
    try:
        return await asyncio.to_thread(get_library_service().get_with_images, library_id)
    except Exception as e:
        return handle_error(e)


@router.post("", response_model=LibraryResponse, status_code=201)
async def import_library(
    file: UploadFile = File(..., description="Catalog workbook (.xlsx)"),
    type: LibraryType = Form(LibraryType.PENDING),
    created_by: Optional[str] = Form(None),
    enrich: bool = Form(False, description="Add Chinese name and usage scenario"),
    api_key: Optional[str] = Form(None),
    model: Optional[str] = Form(None)
):
    """
    Import a catalog workbook as a new library.

    The workbook is stored as-is; embedded images are uploaded and linked
    to their products.

    Raises:
        422: Workbook unreadable or empty
        502: Enrichment failed
        503: Storage failure
    """
    logger.info(
        "library_upload_started",
        filename=file.filename,
        content_type=file.content_type
    )

    try:
        content = await file.read()
        if not content:
            raise ValidationError("Uploaded file is empty")

        return await get_import_service().import_workbook(
            content,
            filename=file.filename or "workbook.xlsx",
            library_type=type,
            created_by=created_by,
            enrich=enrich,
            api_key=api_key,
            model=model
        )
    except Exception as e:
        return handle_error(e)


@router.post("/completed", response_model=LibraryResponse, status_code=201)
async def save_completed(data: SaveCompletedRequest):
    """
    Save a creator's liked products as a completed library.

    Raises:
        422: No products
    """
    try:
        if not data.products:
            raise ValidationError("No products to save")
        return await asyncio.to_thread(get_library_service().save_completed, data)
    except Exception as e:
        return handle_error(e)


@router.patch("/{library_id}", response_model=LibraryResponse)
async def rename_library(library_id: str, data: LibraryRename):
    """
    Rename a library.

    Raises:
        404: Library not found
    """
    try:
        return get_library_service().rename(library_id, data.name)
    except Exception as e:
        return handle_error(e)


@router.delete("/{library_id}", response_model=SuccessResponse)
async def delete_library(library_id: str):
    """
    Delete a library.

    Deleting a pending library also deletes its completed selections and
    stored assets.

    Raises:
        404: Library not found
    """
    try:
        result = await asyncio.to_thread(get_library_service().delete, library_id)
        return SuccessResponse(
            message=f"Deleted library and {result['children_deleted']} completed selections"
        )
    except Exception as e:
        return handle_error(e)
