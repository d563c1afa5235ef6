"""
Enrichment (Chinese name + usage scenario) schemas.
"""

from typing import Any, Literal, Optional
from pydantic import BaseModel, Field


class ProductSummary(BaseModel):
    """LLM summary of one product title."""
    name: str = ""
    scenario: str = ""


class LocalizeBatchRequest(BaseModel):
    """Summarize one batch of titles."""
    titles: list[str] = Field(default_factory=list)
    api_key: Optional[str] = None
    model: Optional[str] = None


class LocalizeBatchResponse(BaseModel):
    summaries: list[ProductSummary] = Field(default_factory=list)


class EnrichmentCheckRequest(BaseModel):
    api_key: Optional[str] = None
    model: Optional[str] = None


class DebugStep(BaseModel):
    """One step of an enrichment connectivity check."""
    step: str
    status: Literal["pending", "success", "error"]
    message: str
    data: Optional[Any] = None
    timestamp: int


class EnrichmentCheckResponse(BaseModel):
    success: bool
    steps: list[DebugStep] = Field(default_factory=list)
