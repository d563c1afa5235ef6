"""
Localize API routes.

Streams pipeline progress as newline-delimited JSON events.
"""

import json
from typing import AsyncIterator, Optional

from fastapi import APIRouter, UploadFile, File, Form
from fastapi.responses import JSONResponse, StreamingResponse
import structlog

from models.enrichment import LocalizeBatchRequest, LocalizeBatchResponse
from models.export import LocalizeFinalizeRequest
from services.localize_service import get_localize_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/localize", tags=["Localize"])

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    logger.error("localize_unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


async def ndjson(events: AsyncIterator[dict]) -> AsyncIterator[str]:
    async for event in events:
        yield json.dumps(event, ensure_ascii=False) + "\n"


def event_stream(events: AsyncIterator[dict]) -> StreamingResponse:
    return StreamingResponse(
        ndjson(events),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache"}
    )


@router.post("")
async def localize_workbook(
    file: UploadFile = File(..., description="Catalog workbook (.xlsx)"),
    api_key: Optional[str] = Form(None),
    model: Optional[str] = Form(None)
):
    """
    Enrich titles and re-embed images of an uploaded workbook.

    The last event is either {"type": "file", "data": <base64 xlsx>} or
    {"type": "error", "message": ...}.
    """
    logger.info("localize_upload_started", filename=file.filename)
    content = await file.read()
    return event_stream(get_localize_service().run(content, api_key=api_key, model=model))


@router.post("/batch", response_model=LocalizeBatchResponse)
async def localize_batch(request: LocalizeBatchRequest):
    """
    Summarize one batch of titles.

    Raises:
        502: Enrichment returned nothing
    """
    try:
        summaries = await get_localize_service().summarize(
            request.titles, api_key=request.api_key, model=request.model
        )
        return LocalizeBatchResponse(summaries=summaries)
    except Exception as e:
        return handle_error(e)


@router.post("/finalize")
async def localize_finalize(request: LocalizeFinalizeRequest):
    """Embed images into client-enriched rows and stream the workbook back."""
    return event_stream(
        get_localize_service().finalize(request.data, request.final_columns, request.src_field)
    )
