"""
Tests for the catalog workbook reader.

Workbooks are built in memory with openpyxl; images are tiny PNGs.
"""

from unittest.mock import patch

import pytest
from openpyxl.drawing.image import Image as XLImage

from exceptions import ExcelParseError, NotFoundError
from parsers.workbook_reader import (
    ImageAsset,
    WorkbookContents,
    open_workbook,
    get_worksheet,
    extract_images,
    first_per_row,
    detect_image_columns,
    read_table,
    read_workbook,
)
from tests.factories import WorkbookFactory, png_bytes, COLORS


class TestReadTable:
    """Tests for the cell table."""

    def test_headers_are_trimmed(self):
        data = WorkbookFactory.create([" 商品标题 ", "src "], [["Widget", "x"]])

        headers, rows = read_table(data)

        assert headers == ["商品标题", "src"]
        assert rows == [["Widget", "x"]]

    def test_empty_cells_become_empty_strings(self):
        data = WorkbookFactory.create(["a", "b", "c"], [["1", None, "3"]])

        _, rows = read_table(data)

        assert rows[0][1] == ""

    def test_row_count_matches_data_rows(self):
        data = WorkbookFactory.catalog(count=5, with_images=False)

        _, rows = read_table(data)

        assert len(rows) == 5

    def test_empty_workbook_raises(self):
        with pytest.raises(ExcelParseError) as exc_info:
            read_table(WorkbookFactory.empty())

        assert exc_info.value.message == "Excel is empty"

    def test_garbage_bytes_raise(self):
        with pytest.raises(ExcelParseError) as exc_info:
            read_table(b"definitely not a zip file")

        assert "Failed to read" in exc_info.value.message


class TestOpenWorkbook:

    def test_garbage_bytes_raise(self):
        with pytest.raises(ExcelParseError):
            open_workbook(b"\x00\x01\x02")

    def test_missing_named_sheet(self):
        workbook = open_workbook(WorkbookFactory.catalog(count=1, with_images=False))

        with pytest.raises(NotFoundError):
            get_worksheet(workbook, "Nope")

    def test_named_sheet(self):
        data = WorkbookFactory.create(["a"], [["1"]], title="Products")
        workbook = open_workbook(data)

        assert get_worksheet(workbook, "Products").title == "Products"


class TestExtractImages:
    """Tests for anchored image extraction."""

    def test_images_keyed_by_anchor(self):
        # Arrange
        data = WorkbookFactory.create(
            ["商品标题", "最低售价", "src"],
            [["A", "1", ""], ["B", "2", ""]],
            images={(1, 2): png_bytes(COLORS[0]), (2, 2): png_bytes(COLORS[1])},
        )
        worksheet = get_worksheet(open_workbook(data))

        # Act
        images = extract_images(worksheet)

        # Assert
        assert set(images) == {(1, 2), (2, 2)}
        assert all(isinstance(i, ImageAsset) for i in images.values())
        assert images[(1, 2)].data != images[(2, 2)].data

    def test_extension_and_content_type(self):
        data = WorkbookFactory.create(["src"], [[""]], images={(1, 0): png_bytes()})

        images = extract_images(get_worksheet(open_workbook(data)))

        assert images[(1, 0)].extension == "png"
        assert images[(1, 0)].content_type == "image/png"

    def test_no_images(self):
        data = WorkbookFactory.catalog(count=2, with_images=False)

        assert extract_images(get_worksheet(open_workbook(data))) == {}

    def test_unreadable_image_is_skipped(self):
        # Arrange
        data = WorkbookFactory.catalog(count=3)
        original = XLImage._data
        calls = []

        def flaky_data(image):
            calls.append(image)
            if len(calls) == 2:
                raise ValueError("corrupt image part")
            return original(image)

        # Act
        with patch.object(XLImage, "_data", autospec=True, side_effect=flaky_data):
            contents = read_workbook(data)

        # Assert
        assert len(contents.images) == 2
        assert len(contents.rows) == 3
        assert contents.rows[1][0] == "Product 2"


class TestFirstPerRow:

    def test_first_entry_wins(self):
        by_anchor = {(1, 3): "a", (1, 0): "b", (2, 1): "c"}

        assert first_per_row(by_anchor) == {1: "a", 2: "c"}

    def test_empty(self):
        assert first_per_row({}) == {}


class TestDetectImageColumns:

    def test_primary_image_header(self):
        assert detect_image_columns(["商品标题", "主图src"]) == [1]

    def test_src_substring_case_insensitive(self):
        assert detect_image_columns(["title", "Image SRC", "src"]) == [1, 2]

    def test_falls_back_to_first_column(self):
        assert detect_image_columns(["图片", "商品标题"]) == [0]

    def test_fallback_disabled(self):
        assert detect_image_columns(["图片", "商品标题"], fallback=False) == []

    def test_no_headers(self):
        assert detect_image_columns([]) == []


class TestReadWorkbook:

    def test_contents(self):
        data = WorkbookFactory.catalog(count=3)

        contents = read_workbook(data)

        assert isinstance(contents, WorkbookContents)
        assert contents.headers == ["商品标题", "最低售价", "src"]
        assert len(contents.rows) == 3
        assert set(contents.images) == {(1, 2), (2, 2), (3, 2)}

    def test_reads_named_sheet(self):
        data = WorkbookFactory.create(["a"], [["1"], ["2"]], title="Data")

        contents = read_workbook(data, sheet_name="Data")

        assert contents.row_count == 2
