"""
Library record schemas.

A library is one imported catalog workbook (pending) or one creator's
liked subset of it (completed).
"""

from typing import Any, Optional
from enum import Enum
from pydantic import Field, field_validator

from models.base import BaseSchema


class LibraryType(str, Enum):
    """Library lifecycle type."""
    PENDING = "pending"
    COMPLETED = "completed"


class LibraryResponse(BaseSchema):
    """
    Full library record as stored in the `libraries` table.

    `timestamp` is epoch milliseconds.
    """
    id: str
    name: str
    type: LibraryType = LibraryType.PENDING
    timestamp: int
    excel_url: Optional[str] = None
    products: list[dict[str, Any]] = Field(default_factory=list)
    original_library_id: Optional[str] = None
    created_by: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> int:
        """Postgres bigint may come back as a string."""
        return int(v)

    @field_validator("products", mode="before")
    @classmethod
    def default_products(cls, v: Any) -> list:
        return v or []

    @property
    def product_count(self) -> int:
        return len(self.products)


class LibraryRename(BaseSchema):
    """Rename a library."""
    name: str = Field(..., min_length=1, max_length=255)


class SaveCompletedRequest(BaseSchema):
    """
    Save a creator's liked products as a completed library.

    Products keep their `_index` so they can be joined back to the mother
    library's workbook rows. Without a name the record is called
    Selection_{timestamp}.
    """
    name: Optional[str] = Field(None, max_length=255)
    products: list[dict[str, Any]] = Field(default_factory=list)
    original_library_id: Optional[str] = None
    created_by: Optional[str] = Field(None, max_length=32)


class CombinedLibraryView(BaseSchema):
    """Progress of the configured creators against one pending library."""
    id: str
    name: str
    timestamp: int
    excel_url: Optional[str] = None
    product_count: int = 0
    creator_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Liked product count of each creator's latest completed selection"
    )
    combined_count: int = 0
    is_both_done: bool = False
