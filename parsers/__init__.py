"""
Excel parsers module.

Workbook reading, header normalization and product materialization.
"""

from parsers.field_normalizer import (
    Product,
    PRIMARY_IMAGE_FIELD,
    CATEGORY_FIELD,
    CHINESE_NAME_FIELD,
    SCENARIO_FIELD,
    normalize_header,
    apply_aliases,
    get_product_field,
)
from parsers.workbook_reader import (
    ImageAsset,
    WorkbookContents,
    read_workbook,
    extract_images,
    detect_image_columns,
)
from parsers.product_materializer import materialize_products

__all__ = [
    "Product",
    "PRIMARY_IMAGE_FIELD",
    "CATEGORY_FIELD",
    "CHINESE_NAME_FIELD",
    "SCENARIO_FIELD",
    "normalize_header",
    "apply_aliases",
    "get_product_field",
    "ImageAsset",
    "WorkbookContents",
    "read_workbook",
    "extract_images",
    "detect_image_columns",
    "materialize_products",
]
