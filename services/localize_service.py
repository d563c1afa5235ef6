"""
Localize service - enrich and re-embed an arbitrary catalog workbook.

The pipeline runs as an async generator of events, one JSON object per
line on the wire:

    {"type": "progress", "progress": 42, "message": "..."}
    {"type": "file", "data": "<base64 xlsx>"}     terminal, success
    {"type": "error", "message": "..."}           terminal, failure

Once started it runs to the end or to the first fatal error.
"""

import asyncio
import base64
from typing import Any, AsyncIterator, Optional
import structlog

from config import settings
from exceptions import AppError, EnrichmentError
from models.enrichment import ProductSummary
from models.export import ColumnSpec
from parsers.field_normalizer import PRIMARY_IMAGE_FIELD, CHINESE_NAME_FIELD, SCENARIO_FIELD
from parsers.workbook_reader import read_table
from services.enrichment_service import get_enrichment_service, plan_batches
from services.export_service import (
    get_export_service,
    plan_rows,
    TITLE_HEADERS,
    BLANK_CELL,
    DEFAULT_COLUMN_WIDTH,
    ENRICHED_COLUMN_WIDTH,
)
from utils.text_utils import extract_url

logger = structlog.get_logger(__name__)

IMAGE_HEADERS = (PRIMARY_IMAGE_FIELD, "src", "_original_url_")
ORIGINAL_URL_FIELD = "_original_url_"
ORIGINAL_IMAGE_URL_FIELD = "_original_image_url_"
SHEET_TITLE = "Localized Products"

Event = dict[str, Any]


def progress_event(progress: int, message: str) -> Event:
    return {"type": "progress", "progress": progress, "message": message}


def error_event(message: str) -> Event:
    return {"type": "error", "message": message}


def file_event(data: bytes) -> Event:
    return {"type": "file", "data": base64.b64encode(data).decode("ascii")}


def find_fields(headers: list[str]) -> tuple[Optional[str], Optional[str]]:
    """(image field, title field) of a header row; None where absent."""
    image_field = next((h for h in headers if h in IMAGE_HEADERS), None)
    title_field = next((h for h in headers if h in TITLE_HEADERS), None)
    return image_field, title_field


def localize_columns(headers: list[str], title_field: Optional[str]) -> list[ColumnSpec]:
    """
    Output columns for a localized workbook.

    Every visible header, with the two enrichment columns right after the
    title column and 主图src at the end if the sheet has none.
    """
    columns = []
    for header in headers:
        if not header or header.startswith("_"):
            continue
        columns.append(ColumnSpec(header=header, key=header, width=DEFAULT_COLUMN_WIDTH))
        if header == title_field:
            columns.append(ColumnSpec(header=CHINESE_NAME_FIELD, key=CHINESE_NAME_FIELD, width=ENRICHED_COLUMN_WIDTH))
            columns.append(ColumnSpec(header=SCENARIO_FIELD, key=SCENARIO_FIELD, width=ENRICHED_COLUMN_WIDTH))

    if not any(c.key == PRIMARY_IMAGE_FIELD for c in columns):
        columns.append(ColumnSpec(header=PRIMARY_IMAGE_FIELD, key=PRIMARY_IMAGE_FIELD, width=DEFAULT_COLUMN_WIDTH))
    return columns


def _column_index(columns: list[ColumnSpec], key: str) -> Optional[int]:
    return next((i for i, c in enumerate(columns) if c.key == key), None)


class LocalizeService:
    """Localize-and-enrich pipelines."""

    def __init__(self):
        self.export = get_export_service()
        self.enrichment = get_enrichment_service()

    async def summarize(
        self,
        titles: list[str],
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ) -> list[ProductSummary]:
        """
        One enrichment batch for a client-driven pipeline.

        Raises:
            EnrichmentError: If the batch comes back empty
        """
        summaries = await self.enrichment.summarize_batch(titles, api_key, model)
        if not summaries:
            raise EnrichmentError(
                "Enrichment returned no results; check the API key and network",
                details={"titles": len(titles)}
            )
        return summaries

    async def _enrich(
        self,
        records: list[dict],
        title_field: str,
        api_key: str,
        model: Optional[str]
    ) -> AsyncIterator[Event]:
        titles = [r.get(title_field) for r in records]
        batches = plan_batches(titles, settings.enrichment_batch_size)
        total = len(batches)

        yield progress_event(10, f"Preparing enrichment ({total} batches)")

        for number, batch in enumerate(batches, start=1):
            if not batch:
                continue
            yield progress_event(10 + (number * 70) // total, f"Enriching titles (batch {number}/{total})")

            summaries = await self.enrichment.summarize_batch([t for _, t in batch], api_key, model)
            if not summaries:
                raise EnrichmentError(
                    f"Enrichment failed (batch {number}/{total}): empty result, check the API key and network",
                    details={"batch": number, "total_batches": total}
                )
            for (position, _), summary in zip(batch, summaries):
                records[position][CHINESE_NAME_FIELD] = summary.name
                records[position][SCENARIO_FIELD] = summary.scenario

    async def _embed(
        self,
        records: list[dict],
        urls: list[str],
        columns: list[ColumnSpec],
        image_column: Optional[int],
        start: int,
        span: int
    ) -> AsyncIterator[Event]:
        """Download images with progress from `start` to `start + span`, then write the workbook."""
        downloaded: dict[int, bytes] = {}
        total = len(urls)

        async for offset, batch in self.export.download_batches(urls):
            for i, content in enumerate(batch):
                if content:
                    downloaded[offset + i] = content
            done = offset + len(batch)
            yield progress_event(start + (done * span) // total, f"Processing images ({done}/{total})")

        yield progress_event(98, "Writing workbook")
        workbook = await asyncio.to_thread(
            self.export.render_workbook,
            plan_rows(records, image_urls=urls),
            columns=columns,
            downloaded=downloaded,
            image_column=image_column,
            embed_images=image_column is not None,
            annotate_missing=False,
            sheet_title=SHEET_TITLE
        )

        logger.info("localized_workbook_written", rows=len(records), images=len(downloaded))
        yield progress_event(100, "Done")
        yield file_event(workbook)

    async def run(
        self,
        data: bytes,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ) -> AsyncIterator[Event]:
        """
        Parse, enrich and re-embed an uploaded workbook.

        Enrichment runs only when credentials and a title column exist; one
        failed batch ends the stream with an error event.
        """
        try:
            yield progress_event(5, "Parsing workbook")
            headers, rows = await asyncio.to_thread(read_table, data)
            records = [dict(zip(headers, row)) for row in rows]

            image_field, title_field = find_fields(headers)
            columns = localize_columns(headers, title_field)
            api_key = api_key or settings.anthropic_api_key

            logger.info(
                "localize_started",
                rows=len(records),
                image_field=image_field,
                title_field=title_field,
                enrich=bool(api_key and title_field)
            )

            if api_key and title_field:
                async for event in self._enrich(records, title_field, api_key, model):
                    yield event

            yield progress_event(80, "Downloading images")
            # Without an image header the first column is read but left intact
            url_field = image_field or (headers[0] if headers else None)
            urls = []
            for record in records:
                url = extract_url(record.get(url_field))
                urls.append(url if url.startswith("http") else "")
                if image_field:
                    record[image_field] = BLANK_CELL
                record.pop(ORIGINAL_URL_FIELD, None)

            image_column = _column_index(columns, image_field)
            if image_column is None:
                image_column = _column_index(columns, PRIMARY_IMAGE_FIELD)

            async for event in self._embed(records, urls, columns, image_column, 80, 15):
                yield event

        except AppError as e:
            logger.error("localize_failed", code=e.code, error=e.message)
            yield error_event(e.message)
        except Exception as e:
            logger.error("localize_failed", error=str(e), error_type=type(e).__name__)
            yield error_event(str(e))

    async def finalize(
        self,
        rows: list[dict],
        columns: list[ColumnSpec],
        src_field: str = PRIMARY_IMAGE_FIELD
    ) -> AsyncIterator[Event]:
        """Embed images into rows that were enriched client-side."""
        try:
            yield progress_event(5, "Starting image download")

            records = []
            urls = []
            for row in rows:
                record = dict(row)
                url = str(record.pop(ORIGINAL_IMAGE_URL_FIELD, "") or "")
                urls.append(url if url.startswith("http") else "")
                records.append(record)

            async for event in self._embed(
                records, urls, columns, _column_index(columns, src_field), 5, 90
            ):
                yield event

        except AppError as e:
            logger.error("localize_finalize_failed", code=e.code, error=e.message)
            yield error_event(e.message)
        except Exception as e:
            logger.error("localize_finalize_failed", error=str(e), error_type=type(e).__name__)
            yield error_event(str(e))


# Singleton instance
_localize_service: Optional[LocalizeService] = None


def get_localize_service() -> LocalizeService:
    """Get or create LocalizeService instance."""
    global _localize_service
    if _localize_service is None:
        _localize_service = LocalizeService()
    return _localize_service
