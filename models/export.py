"""
Export and localize request schemas.
"""

from typing import Any, Optional
from pydantic import BaseModel, Field

from models.base import BaseSchema


class ColumnSpec(BaseModel):
    """One output column: header text, product key it reads, width."""
    header: str
    key: str
    width: float = 25


class ExportRequest(BaseSchema):
    """
    Export a product list to a workbook.

    With `library_id` the source library's workbook is used as a template
    (cells, styles and images copied by `_index`); without it a flat sheet
    is built from the product fields.
    """
    products: list[dict[str, Any]] = Field(default_factory=list)
    library_id: Optional[str] = None


class CombinedExportRequest(BaseSchema):
    """Export the intersection of the two creators' selections."""
    original_library_id: str = Field(..., min_length=1)


class LocalizeFinalizeRequest(BaseModel):
    """
    Embed images into an already-enriched row set.

    Rows carry the image URL under `_original_image_url_`.
    """
    data: list[dict[str, Any]] = Field(default_factory=list)
    final_columns: list[ColumnSpec] = Field(default_factory=list)
    src_field: str = "主图src"
