"""
Import service - turn an uploaded catalog workbook into a library.

Steps:
    1. Parse the workbook (table + anchored images)
    2. Store the original workbook under libraries/{id}.xlsx
    3. Upload every anchored image in parallel (a failed image is skipped)
    4. Materialize products and, if asked, enrich their titles
    5. Save the library record
"""

import asyncio
import uuid
from typing import Optional
import structlog

from exceptions import AppError
from models.library import LibraryType, LibraryResponse
from parsers.field_normalizer import (
    Product,
    CHINESE_NAME_FIELD,
    SCENARIO_FIELD,
    get_product_field,
)
from parsers.product_materializer import materialize_products
from parsers.workbook_reader import ImageAsset, read_workbook
from services.enrichment_service import get_enrichment_service
from services.library_service import get_library_service, now_ms
from services.storage_service import get_storage_service

logger = structlog.get_logger(__name__)


class ImportService:
    """Service for importing catalog workbooks."""

    def __init__(self):
        self.storage = get_storage_service()
        self.libraries = get_library_service()
        self.enrichment = get_enrichment_service()

    def _upload_image(
        self,
        library_id: str,
        anchor: tuple[int, int],
        asset: ImageAsset
    ) -> Optional[str]:
        row, col = anchor
        try:
            return self.storage.upload_image(
                library_id, row, col, uuid.uuid4().hex[:8], asset.data, asset.extension
            )
        except AppError as e:
            logger.warning(
                "image_upload_failed",
                library_id=library_id,
                row=row,
                col=col,
                error=e.message
            )
            return None

    async def upload_images(
        self,
        library_id: str,
        images: dict[tuple[int, int], ImageAsset]
    ) -> dict[tuple[int, int], str]:
        """
        Upload all anchored images at once.

        Returns:
            Stored URL per anchor, in anchor (drawing) order, failures omitted
        """
        anchors = list(images)
        urls = await asyncio.gather(*(
            asyncio.to_thread(self._upload_image, library_id, anchor, images[anchor])
            for anchor in anchors
        ))
        return {anchor: url for anchor, url in zip(anchors, urls) if url}

    async def enrich_products(
        self,
        products: list[Product],
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ) -> list[Product]:
        """
        Add 中文商品名 and 场景用途 from each product title.

        Raises:
            EnrichmentError: If a batch comes back empty
        """
        titles = [str(get_product_field(p, "商品标题") or "") for p in products]
        summaries = await self.enrichment.enrich_titles(titles, api_key, model)

        enriched = []
        for product, summary in zip(products, summaries):
            product = dict(product)
            if summary is not None:
                product[CHINESE_NAME_FIELD] = summary.name
                product[SCENARIO_FIELD] = summary.scenario
            enriched.append(product)
        return enriched

    async def import_workbook(
        self,
        data: bytes,
        filename: str,
        library_type: LibraryType = LibraryType.PENDING,
        created_by: Optional[str] = None,
        enrich: bool = False,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ) -> LibraryResponse:
        """
        Import an uploaded workbook as a new library.

        Raises:
            ExcelParseError: Workbook unreadable or empty
            StorageError: Original workbook could not be stored
            EnrichmentError: Enrichment requested and a batch failed
        """
        library_id = str(uuid.uuid4())
        logger.info(
            "importing_workbook",
            library_id=library_id,
            filename=filename,
            size_bytes=len(data),
            enrich=enrich
        )

        contents = await asyncio.to_thread(read_workbook, data)
        excel_url = await asyncio.to_thread(self.storage.upload_workbook, library_id, data)
        image_urls = await self.upload_images(library_id, contents.images)

        products = materialize_products(contents.headers, contents.rows, image_urls)

        if enrich:
            try:
                products = await self.enrich_products(products, api_key, model)
            except AppError:
                await asyncio.to_thread(
                    self.storage.delete_many, [excel_url, *image_urls.values()]
                )
                raise

        library = await asyncio.to_thread(self.libraries.save, {
            "id": library_id,
            "name": filename,
            "type": library_type.value,
            "timestamp": now_ms(),
            "excel_url": excel_url,
            "products": products,
            "created_by": created_by,
        })

        logger.info(
            "library_imported",
            library_id=library_id,
            products=len(products),
            images=len(image_urls),
            images_found=len(contents.images)
        )
        return library


# Singleton instance
_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create ImportService instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
