"""
Export service - Generate selection workbooks.

Writes liked products back to .xlsx in one of two modes:
    template  copy each product's source row (values + styles) and its
              anchored image out of the library's original workbook
    flat      build each row from the product fields per a column list

Cell values and images are written in two passes over the same row plan,
so a product's image always lands on the row its cells were copied to.
"""

import asyncio
from copy import copy
from dataclasses import dataclass
from io import BytesIO
from typing import Any, AsyncIterator, Optional

import httpx
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.drawing.image import Image as XLImage
from openpyxl.styles import Font, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
import structlog

from config import settings
from exceptions import ExcelParseError
from models.export import ColumnSpec
from parsers.field_normalizer import (
    Product,
    PRIMARY_IMAGE_FIELD,
    CHINESE_NAME_FIELD,
    SCENARIO_FIELD,
)
from parsers.workbook_reader import (
    ImageAsset,
    open_workbook,
    get_worksheet,
    extract_images,
    first_per_row,
    detect_image_columns,
)
from utils.rows import HEADER_ROW, index_to_anchor_row, target_row_for_position

logger = structlog.get_logger(__name__)

ROW_HEIGHT = 100
HEADER_ROW_HEIGHT = 30
IMAGE_SIZE = 120
DEFAULT_COLUMN_WIDTH = 25
ENRICHED_COLUMN_WIDTH = 30

IMAGE_LOAD_FAILED = "图片加载失败"
NO_IMAGE = "无图片"
BLANK_CELL = " "

TITLE_HEADERS = ("商品标题", "商品名", "title", "name")
ENRICHED_FIELDS = (CHINESE_NAME_FIELD, SCENARIO_FIELD)


def export_filename(timestamp_ms: int) -> str:
    """selection_results_{ms}.xlsx"""
    return f"selection_results_{timestamp_ms}.xlsx"


def product_image_url(product: Product) -> str:
    """Primary image URL of a product (主图src, then src)."""
    url = product.get(PRIMARY_IMAGE_FIELD) or product.get("src") or ""
    return url if isinstance(url, str) else ""


def build_columns(products: list[Product]) -> list[ColumnSpec]:
    """
    Flat-mode columns from the union of product keys.

    Keys starting with "_" are internal and skipped. When a title column
    exists, 中文商品名 and 场景用途 are moved directly after it.
    """
    keys: list[str] = []
    for product in products:
        for key in product:
            if not key.startswith("_") and key not in keys:
                keys.append(key)

    title = next((k for k in keys if k in TITLE_HEADERS), None)
    if title is not None:
        enriched = [k for k in ENRICHED_FIELDS if k in keys]
        keys = [k for k in keys if k not in ENRICHED_FIELDS]
        at = keys.index(title) + 1
        keys[at:at] = enriched

    return [
        ColumnSpec(
            header=key or f"Col {i + 1}",
            key=key,
            width=ENRICHED_COLUMN_WIDTH if key in ENRICHED_FIELDS else DEFAULT_COLUMN_WIDTH
        )
        for i, key in enumerate(keys)
    ]


def _cell_value(value: Any) -> Any:
    """Coerce a product value into something openpyxl can store."""
    if value is None or isinstance(value, (int, float, bool)):
        return value
    if not isinstance(value, str):
        value = str(value)
    return ILLEGAL_CHARACTERS_RE.sub("", value)


def _parse_index(value: Any) -> Optional[int]:
    try:
        index = int(value)
    except (TypeError, ValueError):
        return None
    return index if index > HEADER_ROW else None


@dataclass
class TemplateSheet:
    """Source worksheet used as an export template."""
    worksheet: Worksheet
    headers: list[str]
    widths: list[float]
    images_by_row: dict[int, ImageAsset]

    @classmethod
    def load(cls, data: bytes) -> "TemplateSheet":
        """
        Load the first worksheet of a library workbook.

        Raises:
            ExcelParseError: If the workbook cannot be read
        """
        worksheet = get_worksheet(open_workbook(data))
        headers = [
            "" if cell.value is None else str(cell.value)
            for cell in next(worksheet.iter_rows(min_row=HEADER_ROW, max_row=HEADER_ROW), ())
        ]
        widths = []
        for i in range(len(headers)):
            dimension = worksheet.column_dimensions.get(get_column_letter(i + 1))
            widths.append(dimension.width if dimension is not None and dimension.width else DEFAULT_COLUMN_WIDTH)
        images_by_row = first_per_row(extract_images(worksheet))
        return cls(worksheet=worksheet, headers=headers, widths=widths, images_by_row=images_by_row)

    def image_for_index(self, index: int) -> Optional[ImageAsset]:
        """Image anchored on the source row `index` (1-based Excel row)."""
        return self.images_by_row.get(index_to_anchor_row(index))


@dataclass
class RowPlan:
    """
    Where one product goes.

    Built once per export; the cell pass and the image pass both read it.
    """
    position: int
    target_row: int
    product: Product
    source_row: Optional[int]
    image_url: str


def plan_rows(
    products: list[Product],
    template: Optional[TemplateSheet] = None,
    image_urls: Optional[list[str]] = None
) -> list[RowPlan]:
    """Map each product to its output row and (template mode) source row."""
    plans = []
    for position, product in enumerate(products):
        source_row = _parse_index(product.get("_index")) if template is not None else None
        url = image_urls[position] if image_urls is not None else product_image_url(product)
        plans.append(RowPlan(
            position=position,
            target_row=target_row_for_position(position),
            product=product,
            source_row=source_row,
            image_url=url or "",
        ))
    return plans


def _copy_cell(source, target) -> None:
    target.value = source.value
    if source.has_style:
        target.font = copy(source.font)
        target.border = copy(source.border)
        target.fill = copy(source.fill)
        target.number_format = source.number_format
        target.protection = copy(source.protection)
        target.alignment = copy(source.alignment)


def embed_image(worksheet: Worksheet, data: bytes, row: int, col: int) -> bool:
    """
    Anchor an image at (1-based row, 0-based col), sized as a thumbnail.

    Returns False (and logs) when the bytes are not a readable image.
    """
    try:
        image = XLImage(BytesIO(data))
    except Exception as e:
        logger.warning("image_embed_failed", row=row, col=col, error=str(e))
        return False

    image.width = IMAGE_SIZE
    image.height = IMAGE_SIZE
    worksheet.add_image(image, f"{get_column_letter(col + 1)}{row}")
    return True


class ExportService:
    """Service for generating selection workbooks."""

    def __init__(
        self,
        concurrency: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.concurrency = concurrency or settings.image_fetch_concurrency
        self.timeout = timeout or settings.image_fetch_timeout_seconds
        self.transport = transport

    # ===================
    # IMAGE DOWNLOADS
    # ===================

    async def _download(self, client: httpx.AsyncClient, url: str) -> Optional[bytes]:
        if not url or not url.startswith("http"):
            return None
        try:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("image_download_failed", url=url, error=str(e))
            return None

    async def download_batches(self, urls: list[str]) -> AsyncIterator[tuple[int, list[Optional[bytes]]]]:
        """
        Download URLs in batches of `concurrency`.

        Yields (batch start offset, results) after each batch; a failed
        download is None.
        """
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport
        ) as client:
            for start in range(0, len(urls), self.concurrency):
                batch = urls[start:start + self.concurrency]
                results = await asyncio.gather(*(self._download(client, url) for url in batch))
                yield start, list(results)

    async def download_images(self, urls: list[str]) -> list[Optional[bytes]]:
        """Download every URL with bounded concurrency; order is preserved."""
        results: list[Optional[bytes]] = [None] * len(urls)
        async for start, batch in self.download_batches(urls):
            results[start:start + len(batch)] = batch
            logger.debug("image_download_progress", done=start + len(batch), total=len(urls))
        return results

    # ===================
    # RENDERING
    # ===================

    def _write_header(
        self,
        worksheet: Worksheet,
        columns: list[ColumnSpec],
        template: Optional[TemplateSheet]
    ) -> None:
        for col, column in enumerate(columns, start=1):
            cell = worksheet.cell(row=HEADER_ROW, column=col)
            if template is not None:
                _copy_cell(template.worksheet.cell(row=HEADER_ROW, column=col), cell)
            else:
                cell.value = _cell_value(column.header)
                cell.font = Font(bold=True)
            cell.alignment = Alignment(vertical="center", horizontal="center")
            worksheet.column_dimensions[get_column_letter(col)].width = column.width
        worksheet.row_dimensions[HEADER_ROW].height = HEADER_ROW_HEIGHT

    def _write_cells(
        self,
        worksheet: Worksheet,
        plans: list[RowPlan],
        columns: list[ColumnSpec],
        template: Optional[TemplateSheet]
    ) -> None:
        for plan in plans:
            if template is not None and plan.source_row is not None:
                source = template.worksheet
                for col in range(1, max(source.max_column, len(columns)) + 1):
                    _copy_cell(
                        source.cell(row=plan.source_row, column=col),
                        worksheet.cell(row=plan.target_row, column=col)
                    )
            else:
                for col, column in enumerate(columns, start=1):
                    cell = worksheet.cell(
                        row=plan.target_row,
                        column=col,
                        value=_cell_value(plan.product.get(column.key))
                    )
                    cell.alignment = Alignment(vertical="center", horizontal="center")
            worksheet.row_dimensions[plan.target_row].height = ROW_HEIGHT

    def _write_images(
        self,
        worksheet: Worksheet,
        plans: list[RowPlan],
        image_col: int,
        template: Optional[TemplateSheet],
        downloaded: dict[int, bytes],
        annotate_missing: bool
    ) -> int:
        embedded_count = 0
        for plan in plans:
            embedded = False

            if template is not None and plan.source_row is not None:
                asset = template.image_for_index(plan.source_row)
                if asset is not None:
                    embedded = embed_image(worksheet, asset.data, plan.target_row, image_col)

            if not embedded and plan.position in downloaded:
                embedded = embed_image(
                    worksheet, downloaded[plan.position], plan.target_row, image_col
                )

            cell = worksheet.cell(row=plan.target_row, column=image_col + 1)
            if embedded:
                cell.value = BLANK_CELL
                embedded_count += 1
            elif annotate_missing:
                cell.value = IMAGE_LOAD_FAILED if plan.image_url else NO_IMAGE

        return embedded_count

    def render_workbook(
        self,
        plans: list[RowPlan],
        columns: Optional[list[ColumnSpec]] = None,
        template: Optional[TemplateSheet] = None,
        downloaded: Optional[dict[int, bytes]] = None,
        image_column: Optional[int] = None,
        embed_images: bool = True,
        annotate_missing: bool = True,
        sheet_title: str = "Liked Products"
    ) -> bytes:
        """
        Write planned rows to a new workbook.

        Args:
            plans: Row plan from plan_rows()
            columns: Output columns (flat mode); template headers when omitted
            template: Source sheet for template mode
            downloaded: Fetched image bytes by plan position
            image_column: 0-based column for images; detected from headers when
                omitted (flat output without an image header gets no image pass)
            embed_images: Skip the image pass entirely when False
            annotate_missing: Write a placeholder where no image could be embedded
            sheet_title: Output worksheet title

        Returns:
            .xlsx bytes
        """
        if columns is None:
            if template is not None:
                columns = [
                    ColumnSpec(header=header, key=header, width=width)
                    for header, width in zip(template.headers, template.widths)
                ]
            else:
                columns = build_columns([plan.product for plan in plans])

        if image_column is None:
            detected = detect_image_columns(
                [c.header for c in columns],
                fallback=template is not None
            )
            if detected:
                image_column = detected[0]
            else:
                embed_images = False

        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = sheet_title

        self._write_header(worksheet, columns, template)
        self._write_cells(worksheet, plans, columns, template)

        embedded = 0
        if embed_images:
            embedded = self._write_images(
                worksheet, plans, image_column, template, downloaded or {}, annotate_missing
            )

        output = BytesIO()
        workbook.save(output)

        logger.info(
            "workbook_rendered",
            rows=len(plans),
            columns=len(columns),
            template=template is not None,
            images_embedded=embedded
        )

        return output.getvalue()

    def load_template(self, data: Optional[bytes]) -> Optional[TemplateSheet]:
        """Template sheet, or None (logged) when the workbook is unusable."""
        if not data:
            return None
        try:
            return TemplateSheet.load(data)
        except ExcelParseError as e:
            logger.warning("export_template_unusable", error=e.message)
            return None

    async def export_products(
        self,
        products: list[Product],
        template_data: Optional[bytes] = None,
        sheet_title: str = "Liked Products"
    ) -> bytes:
        """
        Export liked products, re-embedding their images.

        Image per row, first success wins: the image anchored on the
        product's source row in the template, then a download of the
        product's image URL. Rows with neither get a placeholder.

        Args:
            products: Products in output order (carrying `_index`)
            template_data: Source library workbook, if available
            sheet_title: Output worksheet title

        Returns:
            .xlsx bytes
        """
        logger.info(
            "exporting_products",
            product_count=len(products),
            template=bool(template_data)
        )

        template = self.load_template(template_data)
        plans = plan_rows(products, template)

        to_download = [
            plan for plan in plans
            if not (
                template is not None
                and plan.source_row is not None
                and template.image_for_index(plan.source_row) is not None
            )
        ]
        fetched = await self.download_images([plan.image_url for plan in to_download])
        downloaded = {
            plan.position: data
            for plan, data in zip(to_download, fetched)
            if data
        }

        return self.render_workbook(
            plans,
            template=template,
            downloaded=downloaded,
            sheet_title=sheet_title
        )

    def build_flat_workbook(self, products: list[Product], sheet_title: str = "Completed Selection") -> bytes:
        """Flat workbook of product fields, no image fetching."""
        return self.render_workbook(
            plan_rows(products),
            embed_images=False,
            sheet_title=sheet_title
        )


# Singleton instance
_export_service: Optional[ExportService] = None


def get_export_service() -> ExportService:
    """Get or create ExportService instance."""
    global _export_service
    if _export_service is None:
        _export_service = ExportService()
    return _export_service
