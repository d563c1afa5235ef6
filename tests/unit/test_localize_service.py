"""
Tests for the localize (enrich + re-embed) pipeline.
"""

import asyncio
import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx

from config import settings
from models.export import ColumnSpec
from parsers.workbook_reader import extract_images
from services.enrichment_service import EnrichmentService
from services.export_service import ExportService
from services.localize_service import (
    LocalizeService,
    find_fields,
    localize_columns,
    ORIGINAL_IMAGE_URL_FIELD,
)
from tests.factories import WorkbookFactory, png_bytes

IMAGE_URL = "https://img.test/1.png"


def build_service(*replies, images=None) -> LocalizeService:
    """LocalizeService with a fake model client and an in-memory image host."""
    create = AsyncMock(side_effect=[
        SimpleNamespace(content=[SimpleNamespace(text=r)]) for r in replies
    ])
    client = SimpleNamespace(messages=SimpleNamespace(create=create))

    def handler(request: httpx.Request) -> httpx.Response:
        data = (images or {}).get(str(request.url))
        return httpx.Response(200, content=data) if data else httpx.Response(404)

    service = LocalizeService()
    service.enrichment = EnrichmentService(client_factory=lambda api_key: client)
    service.export = ExportService(transport=httpx.MockTransport(handler))
    return service


def collect(stream) -> list[dict]:
    async def run():
        return [event async for event in stream]
    return asyncio.run(run())


def catalog() -> bytes:
    return WorkbookFactory.create(
        ["商品标题", "价格", "主图src"],
        [
            ["Elephant Toy", "9.99", IMAGE_URL],
            ["Stress Ball", "4.50", "https://img.test/missing.png"],
        ],
    )


class TestFindFields:

    def test_known_headers(self):
        assert find_fields(["价格", "商品标题", "src"]) == ("src", "商品标题")

    def test_defaults(self):
        assert find_fields(["a", "b"]) == (None, None)


class TestLocalizeColumns:

    def test_enriched_columns_after_title(self):
        columns = localize_columns(["商品标题", "价格", "主图src"], "商品标题")

        assert [c.key for c in columns] == ["商品标题", "中文商品名", "场景用途", "价格", "主图src"]

    def test_primary_image_column_appended(self):
        columns = localize_columns(["商品标题", "_original_url_"], "商品标题")

        assert [c.key for c in columns][-1] == "主图src"
        assert "_original_url_" not in [c.key for c in columns]


class TestRun:
    """Tests for the streamed pipeline."""

    def test_events_end_with_file(self):
        # Arrange
        reply = json.dumps([
            {"name": "幼儿大象玩具", "scenario": "亲子互动"},
            {"name": "解压捏捏球", "scenario": "办公室解压"},
        ], ensure_ascii=False)
        service = build_service(reply, images={IMAGE_URL: png_bytes()})

        # Act
        events = collect(service.run(catalog(), api_key="key"))

        # Assert
        assert events[-1]["type"] == "file"
        progress = [e["progress"] for e in events if e["type"] == "progress"]
        assert progress == sorted(progress)
        assert progress[-1] == 100

        worksheet = WorkbookFactory.load(base64.b64decode(events[-1]["data"]))
        assert [c.value for c in worksheet[1]] == ["商品标题", "中文商品名", "场景用途", "价格", "主图src"]
        assert worksheet.cell(row=2, column=2).value == "幼儿大象玩具"
        assert worksheet.cell(row=3, column=3).value == "办公室解压"
        assert list(extract_images(worksheet)) == [(1, 4)]

    def test_without_key_skips_enrichment(self):
        service = build_service(images={IMAGE_URL: png_bytes()})

        with patch.object(settings, "anthropic_api_key", None):
            events = collect(service.run(catalog()))

        assert events[-1]["type"] == "file"
        worksheet = WorkbookFactory.load(base64.b64decode(events[-1]["data"]))
        assert worksheet.cell(row=2, column=2).value is None

    def test_first_column_read_when_no_image_header(self):
        # Arrange
        service = build_service(images={IMAGE_URL: png_bytes()})
        data = WorkbookFactory.create(["图片", "商品标题"], [[IMAGE_URL, "Widget"]])

        # Act
        with patch.object(settings, "anthropic_api_key", None):
            events = collect(service.run(data))

        # Assert
        assert events[-1]["type"] == "file"
        worksheet = WorkbookFactory.load(base64.b64decode(events[-1]["data"]))
        assert [c.value for c in worksheet[1]][-1] == "主图src"
        assert list(extract_images(worksheet)) == [(1, 4)]
        assert worksheet.cell(row=2, column=1).value == IMAGE_URL

    def test_enrichment_failure_is_error_event(self):
        service = build_service("not json")

        events = collect(service.run(catalog(), api_key="key"))

        assert events[-1]["type"] == "error"
        assert "batch 1/1" in events[-1]["message"]
        assert not any(e["type"] == "file" for e in events)

    def test_unreadable_upload_is_error_event(self):
        service = build_service()

        events = collect(service.run(b"garbage", api_key="key"))

        assert events[-1] == {"type": "error", "message": "Failed to read Excel file"}


class TestFinalize:

    def test_images_embedded_by_src_column(self):
        service = build_service(images={IMAGE_URL: png_bytes()})
        rows = [
            {"商品标题": "A", "主图src": " ", ORIGINAL_IMAGE_URL_FIELD: IMAGE_URL},
            {"商品标题": "B", "主图src": " ", ORIGINAL_IMAGE_URL_FIELD: ""},
        ]
        columns = [
            ColumnSpec(header="商品标题", key="商品标题"),
            ColumnSpec(header="主图src", key="主图src"),
        ]

        events = collect(service.finalize(rows, columns))

        assert events[0]["progress"] == 5
        assert events[-1]["type"] == "file"
        worksheet = WorkbookFactory.load(base64.b64decode(events[-1]["data"]))
        assert list(extract_images(worksheet)) == [(1, 1)]
        assert worksheet.cell(row=3, column=1).value == "B"
