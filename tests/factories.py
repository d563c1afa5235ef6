"""
Test data factories.

Builds library records and in-memory .xlsx workbooks (with embedded PNG
images) for tests.
"""

import time
from io import BytesIO
from typing import Any, Optional
from uuid import uuid4

from PIL import Image as PILImage
from openpyxl import Workbook, load_workbook
from openpyxl.drawing.image import Image as XLImage
from openpyxl.utils import get_column_letter


def png_bytes(color: tuple = (255, 0, 0), size: tuple = (4, 4)) -> bytes:
    """Tiny solid-color PNG."""
    buffer = BytesIO()
    PILImage.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


# Distinct colors so images can be told apart after a round trip
COLORS = [
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 255, 0),
    (0, 255, 255),
    (255, 0, 255),
    (128, 128, 128),
    (0, 0, 0),
]


class WorkbookFactory:
    """
    Factory for in-memory catalog workbooks.

    Usage:
        data = WorkbookFactory.create(
            headers=["商品标题", "最低售价", "src"],
            rows=[["Widget", "9.99", "http://img/1.png"]],
            images={(1, 2): png_bytes()},
        )
    """

    @staticmethod
    def create(
        headers: list,
        rows: list[list[Any]],
        images: Optional[dict[tuple[int, int], bytes]] = None,
        widths: Optional[dict[int, float]] = None,
        title: str = "Sheet1"
    ) -> bytes:
        """
        Build a workbook.

        Args:
            headers: Header row values
            rows: Data rows
            images: PNG bytes per 0-based (anchor row, anchor col)
            widths: Column width per 0-based column
            title: Worksheet title

        Returns:
            .xlsx bytes
        """
        wb = Workbook()
        ws = wb.active
        ws.title = title
        ws.append(headers)
        for row in rows:
            ws.append(row)

        for (row, col), data in (images or {}).items():
            ws.add_image(XLImage(BytesIO(data)), f"{get_column_letter(col + 1)}{row + 1}")

        for col, width in (widths or {}).items():
            ws.column_dimensions[get_column_letter(col + 1)].width = width

        output = BytesIO()
        wb.save(output)
        return output.getvalue()

    @classmethod
    def catalog(cls, count: int = 3, with_images: bool = True) -> bytes:
        """Catalog with one image per row on the src column."""
        headers = ["商品标题", "最低售价", "src"]
        rows = [[f"Product {i}", f"{i}.99", f"http://img/{i}.png"] for i in range(1, count + 1)]
        images = {
            (i, 2): png_bytes(COLORS[(i - 1) % len(COLORS)])
            for i in range(1, count + 1)
        } if with_images else None
        return cls.create(headers, rows, images)

    @staticmethod
    def empty() -> bytes:
        output = BytesIO()
        Workbook().save(output)
        return output.getvalue()

    @staticmethod
    def load(data: bytes):
        """First worksheet of a workbook."""
        return load_workbook(BytesIO(data)).worksheets[0]


class LibraryFactory:
    """
    Factory for library table rows.

    Usage:
        mother = LibraryFactory.create()
        child = LibraryFactory.completed(mother["id"], created_by="flz", indices=[2, 3])
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        id: Optional[str] = None,
        name: Optional[str] = None,
        type: str = "pending",
        timestamp: Optional[int] = None,
        excel_url: Optional[str] = None,
        products: Optional[list[dict]] = None,
        original_library_id: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> dict:
        n = cls._next_counter()
        return {
            "id": id or str(uuid4()),
            "name": name or f"catalog_{n}.xlsx",
            "type": type,
            "timestamp": timestamp if timestamp is not None else int(time.time() * 1000) + n,
            "excel_url": excel_url,
            "products": products if products is not None else ProductFactory.create_batch(3),
            "original_library_id": original_library_id,
            "created_by": created_by,
        }

    @classmethod
    def completed(
        cls,
        mother_id: str,
        created_by: str,
        indices: list[int],
        **kwargs
    ) -> dict:
        return cls.create(
            type="completed",
            original_library_id=mother_id,
            created_by=created_by,
            products=[ProductFactory.create(index=i) for i in indices],
            **kwargs
        )


class ProductFactory:
    """Factory for materialized product dicts."""

    @staticmethod
    def create(index: int = 2, **fields) -> dict:
        product = {
            "_index": index,
            "商品标题": f"Product {index}",
            "商品售价": f"{index}.99",
        }
        product.update(fields)
        return product

    @classmethod
    def create_batch(cls, count: int, start: int = 2) -> list[dict]:
        return [cls.create(index=start + i) for i in range(count)]
