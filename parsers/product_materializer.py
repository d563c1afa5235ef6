"""
Product materializer.

Turns a parsed worksheet (headers + rows) and the stored image URLs keyed by
anchor cell into the ordered product list persisted on a library record.
"""

from typing import Any, Optional

from parsers.field_normalizer import (
    Product,
    PRIMARY_IMAGE_FIELD,
    CATEGORY_FIELD,
    CATEGORY_LEVEL_FIELDS,
    clean_header,
    normalize_header,
)
from parsers.workbook_reader import detect_image_columns, first_per_row
from utils.rows import data_position_to_index, index_to_anchor_row
from utils.text_utils import is_image_reference

BLANK_CELL = " "


def _synthesize_category(product: Product) -> None:
    """Join category levels into 类目 when no explicit category exists."""
    if product.get(CATEGORY_FIELD):
        return
    first, second = product.get(CATEGORY_LEVEL_FIELDS[0]), product.get(CATEGORY_LEVEL_FIELDS[1])
    if not (first or second):
        return
    levels = [product.get(level) for level in CATEGORY_LEVEL_FIELDS]
    product[CATEGORY_FIELD] = " > ".join(str(level) for level in levels if level)


def materialize_row(
    position: int,
    headers: list[str],
    row: list[Any],
    image_urls: dict[tuple[int, int], str],
    row_image_urls: dict[int, str],
    image_columns: list[int],
) -> Product:
    """
    Build one product from a data row.

    Cell text that is only an image reference is blanked; the stored image
    anchored on the same cell (or, for image columns, anywhere on the row)
    replaces it.
    """
    index = data_position_to_index(position)
    anchor_row = index_to_anchor_row(index)
    primary_column = image_columns[0] if image_columns else None

    product: Product = {"_index": index}

    for col, raw_header in enumerate(headers):
        header = clean_header(raw_header)
        value = row[col] if col < len(row) else ""

        product[header] = BLANK_CELL if is_image_reference(value) else value

        canonical = normalize_header(header)
        if canonical is not None:
            product[canonical] = product[header]

        url = image_urls.get((anchor_row, col))
        if not url and col in image_columns:
            url = row_image_urls.get(anchor_row)

        if url:
            product[header] = url
            if header in (PRIMARY_IMAGE_FIELD, "src") or col == primary_column:
                product[PRIMARY_IMAGE_FIELD] = url

    if not product.get(PRIMARY_IMAGE_FIELD) and anchor_row in row_image_urls:
        product[PRIMARY_IMAGE_FIELD] = row_image_urls[anchor_row]

    _synthesize_category(product)
    return product


def materialize_products(
    headers: list[str],
    rows: list[list[Any]],
    image_urls: Optional[dict[tuple[int, int], str]] = None,
    image_columns: Optional[list[int]] = None,
) -> list[Product]:
    """
    Build the ordered product list for a worksheet.

    Args:
        headers: Header row values
        rows: Data rows, in sheet order
        image_urls: Stored image URL per 0-based (anchor row, column)
        image_columns: Main-image columns; detected from headers when omitted

    Returns:
        One product per data row, with `_index` = Excel row number
    """
    image_urls = image_urls or {}
    if image_columns is None:
        image_columns = detect_image_columns(headers)
    row_image_urls = first_per_row(image_urls)

    return [
        materialize_row(position, headers, row, image_urls, row_image_urls, image_columns)
        for position, row in enumerate(rows)
    ]
