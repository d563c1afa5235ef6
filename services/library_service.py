"""
Library service for the `libraries` table.

A pending library is an imported catalog; completed libraries are the
liked subsets saved by each creator and point back at their mother through
`original_library_id`.
"""

import base64
import time
import uuid
from typing import Optional
import structlog

from config import get_supabase_client, LIBRARIES_TABLE
from models.library import LibraryType, LibraryResponse, SaveCompletedRequest
from exceptions import LibraryNotFoundError, DatabaseError, AppError
from parsers.workbook_reader import open_workbook, get_worksheet, extract_images, first_per_row
from services.storage_service import get_storage_service
from services.export_service import get_export_service
from utils.rows import index_to_anchor_row

logger = structlog.get_logger(__name__)

# Read-for-display field; never persisted.
DISPLAY_ONLY_FIELDS = ("_image_url",)


def now_ms() -> int:
    """Current epoch time in milliseconds."""
    return int(time.time() * 1000)


def _persistable(products: list[dict]) -> list[dict]:
    return [
        {k: v for k, v in product.items() if k not in DISPLAY_ONLY_FIELDS}
        for product in products
    ]


class LibraryService:
    """
    Library business logic.

    Handles CRUD on library records plus their stored assets.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = LIBRARIES_TABLE
        self.storage = get_storage_service()

    # ===================
    # READ OPERATIONS
    # ===================

    def get_all(self, library_type: LibraryType = LibraryType.PENDING) -> list[LibraryResponse]:
        """
        Get all libraries of one type, newest first.
        """
        logger.info("getting_libraries", library_type=library_type.value)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("type", library_type.value)
                .order("timestamp", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error("get_libraries_failed", error=str(e))
            raise DatabaseError("select", str(e))

        libraries = [LibraryResponse(**row) for row in result.data]
        logger.info("libraries_retrieved", count=len(libraries))
        return libraries

    def get_by_id(self, library_id: str) -> LibraryResponse:
        """
        Get a single library by ID.

        Raises:
            LibraryNotFoundError: If the library doesn't exist
        """
        logger.debug("getting_library", library_id=library_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", library_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_library_failed", library_id=library_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise LibraryNotFoundError(library_id)

        return LibraryResponse(**result.data[0])

    def get_children(self, mother_id: str) -> list[LibraryResponse]:
        """Completed libraries derived from a pending library, newest first."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("type", LibraryType.COMPLETED.value)
                .eq("original_library_id", mother_id)
                .order("timestamp", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error("get_children_failed", mother_id=mother_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [LibraryResponse(**row) for row in result.data]

    def get_with_images(self, library_id: str) -> LibraryResponse:
        """
        Library with `_image_url` data URIs attached for display.

        Each product gets the first image anchored on its source row in the
        stored workbook. Products without one are left as they are.

        Raises:
            LibraryNotFoundError: If the library doesn't exist
            StorageError: If the workbook cannot be fetched
            ExcelParseError: If the workbook cannot be read
        """
        library = self.get_by_id(library_id)
        if not library.excel_url:
            return library

        data = self.storage.fetch(library.excel_url)
        images_by_row = first_per_row(extract_images(get_worksheet(open_workbook(data))))

        products = []
        attached = 0
        for product in library.products:
            product = dict(product)
            try:
                asset = images_by_row.get(index_to_anchor_row(int(product.get("_index"))))
            except (TypeError, ValueError):
                asset = None
            if asset is not None:
                encoded = base64.b64encode(asset.data).decode("ascii")
                product["_image_url"] = f"data:{asset.content_type};base64,{encoded}"
                attached += 1
            products.append(product)

        logger.info("library_images_attached", library_id=library_id, attached=attached)
        return library.model_copy(update={"products": products})

    def template_workbook(self, library_id: str) -> Optional[bytes]:
        """
        Source workbook for a template-mode export, or None.

        `_index` refers to rows of the mother's workbook, so a completed
        library resolves to its mother first and falls back to its own copy.
        Fetch failures are logged and yield None.
        """
        try:
            library = self.get_by_id(library_id)
            urls = []
            if library.original_library_id:
                try:
                    urls.append(self.get_by_id(library.original_library_id).excel_url)
                except LibraryNotFoundError:
                    logger.warning("mother_library_missing", library_id=library_id)
            urls.append(library.excel_url)

            url = next((u for u in urls if u), None)
            if url is None:
                return None
            return self.storage.fetch(url)

        except AppError as e:
            logger.warning("template_workbook_unavailable", library_id=library_id, error=e.message)
            return None

    # ===================
    # WRITE OPERATIONS
    # ===================

    def save(self, record: dict) -> LibraryResponse:
        """
        Insert or replace a library record (upsert on id).
        """
        record = {**record, "products": _persistable(record.get("products") or [])}
        logger.info(
            "saving_library",
            library_id=record.get("id"),
            library_type=record.get("type"),
            product_count=len(record["products"])
        )

        try:
            result = self.db.table(self.table).upsert(record).execute()
        except Exception as e:
            logger.error("save_library_failed", library_id=record.get("id"), error=str(e))
            raise DatabaseError("upsert", str(e))

        return LibraryResponse(**(result.data[0] if result.data else record))

    def rename(self, library_id: str, name: str) -> LibraryResponse:
        """
        Rename a library.

        Raises:
            LibraryNotFoundError: If the library doesn't exist
        """
        logger.info("renaming_library", library_id=library_id)

        try:
            result = (
                self.db.table(self.table)
                .update({"name": name})
                .eq("id", library_id)
                .execute()
            )
        except Exception as e:
            logger.error("rename_library_failed", library_id=library_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise LibraryNotFoundError(library_id)

        return LibraryResponse(**result.data[0])

    def _delete_row(self, library_id: str) -> None:
        try:
            self.db.table(self.table).delete().eq("id", library_id).execute()
        except Exception as e:
            logger.error("delete_library_failed", library_id=library_id, error=str(e))
            raise DatabaseError("delete", str(e))

    @staticmethod
    def asset_urls(library: LibraryResponse) -> list[str]:
        """Workbook URL plus every string product value (image URLs among them)."""
        urls = [library.excel_url] if library.excel_url else []
        for product in library.products:
            urls.extend(v for v in product.values() if isinstance(v, str) and v.startswith("http"))
        return urls

    def delete(self, library_id: str) -> dict:
        """
        Delete a library.

        A pending library takes its completed children with it (one at a
        time; a failing child is logged and the rest still go), then its
        workbook and product images. A completed library only loses its row.

        Returns:
            Summary with children and asset counts

        Raises:
            LibraryNotFoundError: If the library doesn't exist
        """
        library = self.get_by_id(library_id)
        logger.info("deleting_library", library_id=library_id, library_type=library.type.value)

        children_deleted = 0
        assets_deleted = 0

        if library.type == LibraryType.PENDING:
            for child in self.get_children(library_id):
                try:
                    if child.excel_url and child.excel_url != library.excel_url:
                        assets_deleted += int(self.storage.delete(child.excel_url))
                    self._delete_row(child.id)
                    children_deleted += 1
                except AppError as e:
                    logger.warning("child_library_delete_failed", child_id=child.id, error=e.message)

            assets_deleted += self.storage.delete_many(self.asset_urls(library))

        self._delete_row(library_id)

        logger.info(
            "library_deleted",
            library_id=library_id,
            children_deleted=children_deleted,
            assets_deleted=assets_deleted
        )

        return {
            "id": library_id,
            "children_deleted": children_deleted,
            "assets_deleted": assets_deleted,
        }

    def save_completed(self, request: SaveCompletedRequest) -> LibraryResponse:
        """
        Save a creator's liked products as a completed library.

        The mother's workbook is copied byte-for-byte when possible. Without a
        usable mother workbook (none given, since deleted, copy failed) a flat
        workbook is generated from the products instead.
        """
        library_id = str(uuid.uuid4())
        dest_path = self.storage.workbook_path(library_id)
        excel_url: Optional[str] = None

        mother = None
        if request.original_library_id:
            try:
                mother = self.get_by_id(request.original_library_id)
            except LibraryNotFoundError:
                logger.warning("mother_library_missing", mother_id=request.original_library_id)

        if mother is not None and mother.excel_url:
            try:
                excel_url = self.storage.copy(mother.excel_url, dest_path)
            except AppError as e:
                logger.warning(
                    "workbook_copy_failed_regenerating",
                    mother_id=mother.id,
                    error=e.message
                )

        if excel_url is None:
            data = get_export_service().build_flat_workbook(request.products)
            excel_url = self.storage.upload_workbook(library_id, data)

        timestamp = now_ms()
        record = {
            "id": library_id,
            "name": request.name or f"Selection_{timestamp}",
            "type": LibraryType.COMPLETED.value,
            "timestamp": timestamp,
            "excel_url": excel_url,
            "products": request.products,
            "original_library_id": request.original_library_id,
            "created_by": request.created_by,
        }

        library = self.save(record)
        logger.info(
            "completed_library_saved",
            library_id=library_id,
            mother_id=request.original_library_id,
            created_by=request.created_by,
            product_count=len(request.products)
        )
        return library


# Singleton instance
_library_service: Optional[LibraryService] = None


def get_library_service() -> LibraryService:
    """Get or create LibraryService instance."""
    global _library_service
    if _library_service is None:
        _library_service = LibraryService()
    return _library_service
