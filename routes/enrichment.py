"""
Enrichment diagnostics route.
"""

from fastapi import APIRouter
import structlog

from models.enrichment import EnrichmentCheckRequest, EnrichmentCheckResponse
from services.enrichment_service import get_enrichment_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/enrichment", tags=["Enrichment"])


@router.post("/check", response_model=EnrichmentCheckResponse)
async def check_enrichment(request: EnrichmentCheckRequest):
    """
    Send one test title to the model and report every step.

    Always 200; failures show up as an error step.
    """
    success, steps = await get_enrichment_service().check_connection(
        api_key=request.api_key, model=request.model
    )
    logger.info("enrichment_check_completed", success=success, steps=len(steps))
    return EnrichmentCheckResponse(success=success, steps=steps)
