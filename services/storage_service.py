"""
Object storage service.

Stores library workbooks and extracted product images in the Supabase
Storage bucket and hands back public URLs. Only URLs under the bucket's
public base URL are considered owned; anything else (assets from an older
storage backend, third-party image hosts) is never deleted or copied.
"""

from typing import Optional
from urllib.parse import unquote
import structlog

import httpx

from config import get_supabase_client, settings
from exceptions import StorageError, StorageOwnershipError

logger = structlog.get_logger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
WORKBOOK_PREFIX = "libraries"
IMAGE_PREFIX = "images"


def _strip_scheme(url: str) -> str:
    url = url.strip()
    for scheme in ("https://", "http://"):
        if url.lower().startswith(scheme):
            return url[len(scheme):]
    return url


class StorageService:
    """
    Service for the storage bucket.

    Handles:
    - Uploading workbooks and images under deterministic paths
    - Fetching stored objects (or any public URL) as bytes
    - Ownership-checked delete and copy
    """

    def __init__(self, public_url: Optional[str] = None, bucket: Optional[str] = None):
        self.client = get_supabase_client()
        self.bucket = bucket or settings.storage_bucket
        self.public_url = (public_url or settings.public_storage_url).rstrip("/")
        self._owned_prefix = _strip_scheme(self.public_url).rstrip("/") + "/"

    def _bucket(self):
        return self.client.storage.from_(self.bucket)

    # ===================
    # PATHS & OWNERSHIP
    # ===================

    @staticmethod
    def workbook_path(library_id: str) -> str:
        """libraries/{id}.xlsx"""
        return f"{WORKBOOK_PREFIX}/{library_id}.xlsx"

    @staticmethod
    def image_path(library_id: str, row: int, col: int, image_id: str, extension: str) -> str:
        """images/{library_id}/{row}_{col}_{image_id}.{ext}"""
        return f"{IMAGE_PREFIX}/{library_id}/{row}_{col}_{image_id}.{extension}"

    def public_url_for(self, path: str) -> str:
        return f"{self.public_url}/{path.lstrip('/')}"

    def is_owned_url(self, url: Optional[str]) -> bool:
        """
        True when the URL points into this bucket.

        Scheme and trailing-slash differences are ignored.
        """
        if not url or not isinstance(url, str):
            return False
        return _strip_scheme(url).startswith(self._owned_prefix)

    def path_from_url(self, url: str) -> str:
        """
        Object path for an owned URL.

        Raises:
            StorageOwnershipError: If the URL is not in this bucket
        """
        if not self.is_owned_url(url):
            raise StorageOwnershipError(url)
        path = _strip_scheme(url)[len(self._owned_prefix):]
        return unquote(path.split("?", 1)[0])

    # ===================
    # OPERATIONS
    # ===================

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """
        Upload bytes to the bucket, replacing any existing object.

        Returns:
            Public URL of the stored object

        Raises:
            StorageError: If the backend rejects the upload
        """
        logger.debug("uploading_object", path=path, size_bytes=len(data))

        try:
            self._bucket().upload(
                path=path,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"}
            )
        except Exception as e:
            logger.error("object_upload_failed", path=path, error=str(e))
            raise StorageError("upload", str(e), path=path)

        url = self.public_url_for(path)
        logger.info("object_uploaded", path=path, size_bytes=len(data))
        return url

    def upload_workbook(self, library_id: str, data: bytes) -> str:
        return self.upload(self.workbook_path(library_id), data, XLSX_CONTENT_TYPE)

    def upload_image(
        self,
        library_id: str,
        row: int,
        col: int,
        image_id: str,
        data: bytes,
        extension: str = "png"
    ) -> str:
        """Upload an extracted image under its anchor-derived path."""
        path = self.image_path(library_id, row, col, image_id, extension)
        return self.upload(path, data, f"image/{extension}")

    def fetch(self, url: str) -> bytes:
        """
        Bytes behind a URL.

        Owned URLs are downloaded through the storage API; any other URL is
        fetched with a plain HTTP GET.

        Raises:
            StorageError: If the object cannot be retrieved
        """
        try:
            if self.is_owned_url(url):
                return self._bucket().download(self.path_from_url(url))

            response = httpx.get(
                url,
                timeout=settings.image_fetch_timeout_seconds,
                follow_redirects=True
            )
            response.raise_for_status()
            return response.content

        except Exception as e:
            logger.warning("object_fetch_failed", url=url, error=str(e))
            raise StorageError("fetch", str(e), path=url)

    def delete(self, url: Optional[str]) -> bool:
        """
        Delete the object behind an owned URL.

        Not-owned URLs are skipped; backend errors are logged, not raised.

        Returns:
            True if a delete was issued and succeeded
        """
        if not self.is_owned_url(url):
            logger.debug("delete_skipped_not_owned", url=url)
            return False

        path = self.path_from_url(url)
        try:
            self._bucket().remove([path])
            logger.info("object_deleted", path=path)
            return True
        except Exception as e:
            logger.warning("object_delete_failed", path=path, error=str(e))
            return False

    def delete_many(self, urls) -> int:
        """
        Delete every owned URL in `urls`, one at a time.

        Returns:
            Number of objects deleted
        """
        deleted = 0
        for url in dict.fromkeys(urls):
            if self.delete(url):
                deleted += 1
        return deleted

    def copy(self, source_url: str, dest_path: str) -> str:
        """
        Server-side copy of an owned object.

        Returns:
            Public URL of the copy

        Raises:
            StorageOwnershipError: If the source is not in this bucket
            StorageError: If the backend copy fails
        """
        source_path = self.path_from_url(source_url)

        try:
            self._bucket().copy(source_path, dest_path)
        except Exception as e:
            logger.warning(
                "object_copy_failed",
                source=source_path,
                dest=dest_path,
                error=str(e)
            )
            raise StorageError("copy", str(e), path=dest_path)

        logger.info("object_copied", source=source_path, dest=dest_path)
        return self.public_url_for(dest_path)

    def list_paths(self, prefix: str = "") -> list[str]:
        """
        Every object path under `prefix`, walking folders recursively.

        Supabase lists folders as entries without an id.
        """
        paths: list[str] = []
        entries = self._bucket().list(prefix or None, {"limit": 1000}) or []

        for entry in entries:
            name = entry.get("name")
            if not name or name == ".emptyFolderPlaceholder":
                continue
            full = f"{prefix}/{name}" if prefix else name
            if entry.get("id") is None:
                paths.extend(self.list_paths(full))
            else:
                paths.append(full)

        return paths

    def remove_paths(self, paths: list[str], chunk_size: int = 100) -> int:
        """Remove objects by path in chunks; failed chunks are logged and skipped."""
        removed = 0
        for start in range(0, len(paths), chunk_size):
            chunk = paths[start:start + chunk_size]
            try:
                self._bucket().remove(chunk)
                removed += len(chunk)
            except Exception as e:
                logger.warning("object_chunk_delete_failed", count=len(chunk), error=str(e))
        return removed


# Singleton instance
_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Get or create storage service instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
