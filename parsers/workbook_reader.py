"""
Workbook reader for product catalog uploads.

Extracts two things from the first worksheet of an .xlsx buffer:
    - the cell table (header row + data rows), read with pandas
    - the embedded images keyed by their top-left anchor cell, read with openpyxl

Image extraction is tolerant: an image that cannot be decoded is logged and
skipped, the rest of the workbook still parses.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from io import BytesIO
from typing import Any, Optional, TypeVar
import structlog

import pandas as pd
from openpyxl import load_workbook
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from exceptions import ExcelParseError, NotFoundError
from parsers.field_normalizer import clean_header, PRIMARY_IMAGE_FIELD

logger = structlog.get_logger(__name__)

KNOWN_IMAGE_HEADERS = (PRIMARY_IMAGE_FIELD, "src")

T = TypeVar("T")


@dataclass
class ImageAsset:
    """Embedded image bytes plus the format extension (png, jpeg, gif...)."""
    data: bytes
    extension: str = "png"

    @property
    def content_type(self) -> str:
        return f"image/{self.extension}"


@dataclass
class WorkbookContents:
    """Parsed first worksheet."""
    headers: list[str] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    images: dict[tuple[int, int], ImageAsset] = field(default_factory=dict)


def open_workbook(data: bytes) -> Workbook:
    """
    Load an .xlsx buffer with openpyxl.

    Raises:
        ExcelParseError: If the buffer is not a readable workbook
    """
    try:
        return load_workbook(BytesIO(data))
    except Exception as e:
        logger.error("excel_read_failed", error=str(e), size=len(data or b""))
        raise ExcelParseError(
            message="Failed to read Excel file",
            details={"original_error": str(e)}
        )


def get_worksheet(workbook: Workbook, sheet_name: Optional[str] = None) -> Worksheet:
    """
    First worksheet, or the named one.

    Raises:
        ExcelParseError: If the workbook has no worksheet
        NotFoundError: If a named worksheet is absent
    """
    if sheet_name is not None:
        if sheet_name not in workbook.sheetnames:
            raise NotFoundError(resource="Worksheet", identifier=sheet_name)
        return workbook[sheet_name]

    if not workbook.worksheets:
        raise ExcelParseError(message="No worksheet found")
    return workbook.worksheets[0]


def extract_images(worksheet: Worksheet) -> dict[tuple[int, int], ImageAsset]:
    """
    Embedded images keyed by 0-based (anchor row, anchor column).

    Anchor coordinates are the floor of the native top-left marker. When two
    images share an anchor cell the first one in drawing order is kept.
    """
    images: dict[tuple[int, int], ImageAsset] = {}

    for position, image in enumerate(getattr(worksheet, "_images", [])):
        try:
            marker = image.anchor._from
            anchor = (int(marker.row), int(marker.col))
            data = image._data()
            extension = (getattr(image, "format", None) or "png").lower()
        except Exception as e:
            logger.warning(
                "image_extract_failed",
                sheet=worksheet.title,
                position=position,
                error=str(e)
            )
            continue

        if not data:
            logger.warning("image_extract_empty", sheet=worksheet.title, position=position)
            continue

        if anchor not in images:
            images[anchor] = ImageAsset(data=data, extension=extension)

    logger.debug("images_extracted", sheet=worksheet.title, count=len(images))
    return images


def first_per_row(by_anchor: dict[tuple[int, int], T]) -> dict[int, T]:
    """
    Fold an anchor map down to one entry per row, first entry wins.

    Walks the map in its own order (drawing order for extracted images), so
    extra images anchored on an already-claimed row are dropped.
    """
    by_row: dict[int, T] = {}
    for (row, _col), value in by_anchor.items():
        by_row.setdefault(row, value)
    return by_row


def detect_image_columns(headers: list[str], fallback: bool = True) -> list[int]:
    """
    Indexes of columns likely to hold the main image reference.

    Exact match on a known header, or "src" anywhere in the header
    (case-insensitive). Falls back to the first column unless `fallback`
    is False.
    """
    columns = [
        i for i, header in enumerate(headers)
        if clean_header(header) in KNOWN_IMAGE_HEADERS
        or "src" in clean_header(header).lower()
    ]
    if not columns and headers and fallback:
        columns.append(0)
    return columns


def _clean_value(value: Any) -> Any:
    """Make a cell value JSON-safe."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, float) and value != value:  # NaN
        return ""
    return value


def read_table(data: bytes, sheet_name: Any = 0) -> tuple[list[str], list[list[Any]]]:
    """
    Header row and data rows of a worksheet.

    Empty cells come back as "" and every data row is padded to the header
    width, so row i of the result is Excel row i + 2.

    Raises:
        ExcelParseError: If the sheet cannot be read or has no rows
    """
    try:
        df = pd.read_excel(
            BytesIO(data),
            sheet_name=sheet_name,
            header=None,
            dtype=object,
            keep_default_na=False,
            engine="openpyxl",
        )
    except Exception as e:
        logger.error("excel_table_read_failed", error=str(e))
        raise ExcelParseError(
            message="Failed to read Excel file",
            details={"original_error": str(e)}
        )

    if df.empty:
        raise ExcelParseError(message="Excel is empty")

    records = df.values.tolist()
    headers = [clean_header(h) for h in records[0]]
    width = len(headers)

    rows = []
    for record in records[1:]:
        values = [_clean_value(v) for v in record]
        if len(values) < width:
            values.extend([""] * (width - len(values)))
        rows.append(values)

    return headers, rows


def read_workbook(data: bytes, sheet_name: Optional[str] = None) -> WorkbookContents:
    """
    Parse an uploaded catalog workbook.

    Args:
        data: Raw .xlsx bytes
        sheet_name: Worksheet to read (defaults to the first one)

    Returns:
        WorkbookContents with headers, rows and anchored images

    Raises:
        ExcelParseError: Unreadable buffer, no worksheet, or no rows
        NotFoundError: Named worksheet absent
    """
    logger.info("reading_workbook", size=len(data or b""), sheet=sheet_name)

    workbook = open_workbook(data)
    worksheet = get_worksheet(workbook, sheet_name)
    images = extract_images(worksheet)
    headers, rows = read_table(data, sheet_name=worksheet.title)

    logger.info(
        "workbook_read",
        sheet=worksheet.title,
        columns=len(headers),
        rows=len(rows),
        images=len(images)
    )

    return WorkbookContents(headers=headers, rows=rows, images=images)
