"""
Selection service - two-creator intersection of completed libraries.

Two creators swipe the same mother library independently; the combined
selection is the set of source rows (`_index`) both of them liked, taken
from each creator's most recent completed record.
"""

import asyncio
from typing import Optional
import structlog

from config import settings
from exceptions import SelectionError, AppError
from models.library import LibraryType, LibraryResponse, CombinedLibraryView
from parsers.field_normalizer import Product
from services.export_service import get_export_service
from services.library_service import get_library_service
from services.storage_service import get_storage_service

logger = structlog.get_logger(__name__)


def _same_id(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and str(a).lower() == str(b).lower()


def latest_for_creator(records: list[LibraryResponse], creator: str) -> Optional[LibraryResponse]:
    """Most recent record created by `creator` (case-insensitive)."""
    mine = [r for r in records if (r.created_by or "").lower() == creator.lower()]
    return max(mine, key=lambda r: r.timestamp, default=None)


def selected_indices(record: Optional[LibraryResponse]) -> set:
    """`_index` values of a selection (empty for no record)."""
    if record is None:
        return set()
    return {p.get("_index") for p in record.products if p.get("_index") is not None}


def intersect_selections(
    first: Optional[LibraryResponse],
    second: Optional[LibraryResponse]
) -> set:
    """Indices liked in both selections; empty if either is missing."""
    if first is None or second is None:
        return set()
    return selected_indices(first) & selected_indices(second)


def combined_products(
    first: Optional[LibraryResponse],
    second: Optional[LibraryResponse]
) -> list[Product]:
    """Products of `second` whose `_index` is also in `first`, in `second`'s order."""
    shared = intersect_selections(first, second)
    if second is None:
        return []
    return [p for p in second.products if p.get("_index") in shared]


class SelectionService:
    """Combined (two-creator) views and exports."""

    def __init__(self):
        self.libraries = get_library_service()
        self.storage = get_storage_service()
        self.creators = list(settings.selection_creators)

    def latest_selections(
        self,
        mother_id: str,
        completed: Optional[list[LibraryResponse]] = None
    ) -> dict[str, Optional[LibraryResponse]]:
        """Latest completed record per configured creator for one mother."""
        if completed is None:
            completed = self.libraries.get_all(LibraryType.COMPLETED)
        children = [r for r in completed if _same_id(r.original_library_id, mother_id)]
        return {creator: latest_for_creator(children, creator) for creator in self.creators}

    def combined_view(self) -> list[CombinedLibraryView]:
        """Progress of both creators on every pending library, newest first."""
        pending = self.libraries.get_all(LibraryType.PENDING)
        completed = self.libraries.get_all(LibraryType.COMPLETED)

        views = []
        for library in pending:
            latest = self.latest_selections(library.id, completed)
            first, second = (latest[c] for c in self.creators)
            views.append(CombinedLibraryView(
                id=library.id,
                name=library.name,
                timestamp=library.timestamp,
                excel_url=library.excel_url,
                product_count=library.product_count,
                creator_counts={c: (r.product_count if r else 0) for c, r in latest.items()},
                combined_count=len(intersect_selections(first, second)),
                is_both_done=first is not None and second is not None,
            ))

        views.sort(key=lambda v: v.timestamp, reverse=True)
        return views

    def combined_selection(self, mother_id: str) -> list[Product]:
        """
        Products both creators liked.

        Raises:
            SelectionError: If a creator has no record or nothing overlaps
        """
        latest = self.latest_selections(mother_id)
        missing = [c for c, record in latest.items() if record is None]
        if missing:
            raise SelectionError(
                "Both creators must complete a selection first",
                details={"original_library_id": mother_id, "missing": missing}
            )

        first, second = (latest[c] for c in self.creators)
        products = combined_products(first, second)
        if not products:
            raise SelectionError(
                "The two selections have no products in common",
                details={"original_library_id": mother_id}
            )

        logger.info("combined_selection_built", mother_id=mother_id, count=len(products))
        return products

    async def export_combined(self, mother_id: str) -> bytes:
        """
        Export the combined selection.

        Uses the mother's workbook as template when it can be fetched,
        otherwise a flat workbook.
        """
        products = await asyncio.to_thread(self.combined_selection, mother_id)

        template_data: Optional[bytes] = None
        try:
            mother = await asyncio.to_thread(self.libraries.get_by_id, mother_id)
            if mother.excel_url:
                template_data = await asyncio.to_thread(self.storage.fetch, mother.excel_url)
        except AppError as e:
            logger.warning("combined_template_unavailable", mother_id=mother_id, error=e.message)

        return await get_export_service().export_products(
            products,
            template_data=template_data,
            sheet_title="双人共同选中"
        )


# Singleton instance
_selection_service: Optional[SelectionService] = None


def get_selection_service() -> SelectionService:
    """Get or create SelectionService instance."""
    global _selection_service
    if _selection_service is None:
        _selection_service = SelectionService()
    return _selection_service
