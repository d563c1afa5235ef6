"""
Shared test fixtures.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

# Required settings must exist before config is imported
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import importlib
import pytest
from collections import defaultdict
from unittest.mock import patch
from typing import Generator

SERVICE_SINGLETONS = {
    "services.storage_service": "_storage_service",
    "services.export_service": "_export_service",
    "services.enrichment_service": "_enrichment_service",
    "services.library_service": "_library_service",
    "services.import_service": "_import_service",
    "services.selection_service": "_selection_service",
    "services.localize_service": "_localize_service",
}


def reset_service_singletons():
    """Drop cached service instances so they pick up the current mocks."""
    for module_name, attr in SERVICE_SINGLETONS.items():
        module = importlib.import_module(module_name)
        setattr(module, attr, None)


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data=None, count: int = None):
        self.data = data if data is not None else []
        self.count = count if count is not None else (len(self.data) if isinstance(self.data, list) else 1)


class MockSupabaseQuery:
    """
    Mock Supabase query builder with chainable methods.

    Filters are applied against the owning table's rows on execute(), so
    writes are visible to later queries.
    """

    def __init__(self, table: "MockSupabaseTable", action: str = "select", payload=None):
        self._table = table
        self._action = action
        self._payload = payload
        self._filters = []
        self._order = None
        self._limit = None
        self._is_single = False

    def select(self, *args, **kwargs):
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def gte(self, column, value):
        self._filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def in_(self, column, values):
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def single(self):
        self._is_single = True
        return self

    def _matches(self, row) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> MockSupabaseResponse:
        table = self._table

        if table.fail_on is not None and self._action in table.fail_on:
            raise RuntimeError(f"simulated {self._action} failure")

        if self._action == "upsert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            for item in items:
                table.rows = [r for r in table.rows if r.get("id") != item.get("id")]
                table.rows.append(dict(item))
            return MockSupabaseResponse([dict(i) for i in items])

        if self._action == "insert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            table.rows.extend(dict(i) for i in items)
            return MockSupabaseResponse([dict(i) for i in items])

        matched = [r for r in table.rows if self._matches(r)]

        if self._action == "update":
            for row in matched:
                row.update(self._payload)
            return MockSupabaseResponse([dict(r) for r in matched])

        if self._action == "delete":
            table.rows = [r for r in table.rows if not self._matches(r)]
            table.deleted_ids.extend(r.get("id") for r in matched)
            return MockSupabaseResponse([dict(r) for r in matched])

        result = [dict(r) for r in matched]
        if self._order is not None:
            column, desc = self._order
            result.sort(key=lambda r: r.get(column) or 0, reverse=desc)
        if self._limit is not None:
            result = result[:self._limit]
        if self._is_single:
            return MockSupabaseResponse(result[0] if result else None)
        return MockSupabaseResponse(result)


class MockSupabaseTable:
    """In-memory table."""

    def __init__(self, rows: list = None):
        self.rows = [dict(r) for r in (rows or [])]
        self.deleted_ids = []
        self.fail_on = None

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self, "select")

    def insert(self, data):
        return MockSupabaseQuery(self, "insert", data)

    def upsert(self, data):
        return MockSupabaseQuery(self, "upsert", data)

    def update(self, data):
        return MockSupabaseQuery(self, "update", data)

    def delete(self):
        return MockSupabaseQuery(self, "delete")


class MockStorageBucket:
    """In-memory storage bucket recording every call."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.fail_paths: set[str] = set()
        self.removed: list[str] = []
        self.copies: list[tuple[str, str]] = []

    def _check(self, path):
        if path in self.fail_paths:
            raise RuntimeError(f"simulated storage failure for {path}")

    def upload(self, path, file, file_options=None):
        self._check(path)
        self.objects[path] = bytes(file)
        return {"Key": path}

    def download(self, path):
        self._check(path)
        if path not in self.objects:
            raise RuntimeError("Object not found")
        return self.objects[path]

    def remove(self, paths):
        for path in paths:
            self._check(path)
        for path in paths:
            self.objects.pop(path, None)
            self.removed.append(path)
        return [{"name": p} for p in paths]

    def copy(self, from_path, to_path):
        self._check(from_path)
        if from_path not in self.objects:
            raise RuntimeError("Object not found")
        self.objects[to_path] = self.objects[from_path]
        self.copies.append((from_path, to_path))
        return {"path": to_path}

    def list(self, path=None, options=None):
        prefix = f"{path}/" if path else ""
        entries = {}
        for key in self.objects:
            if not key.startswith(prefix):
                continue
            head, _, rest = key[len(prefix):].partition("/")
            entries[head] = {"name": head, "id": None} if rest else {"name": head, "id": f"id-{key}"}
        return list(entries.values())


class MockStorage:
    def __init__(self):
        self.buckets = defaultdict(MockStorageBucket)

    def from_(self, name: str) -> MockStorageBucket:
        return self.buckets[name]


class MockSupabaseClient:
    """Mock Supabase client with stateful tables and storage."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}
        self.storage = MockStorage()

    def set_table_data(self, table_name: str, data: list):
        """Configure mock data for a table."""
        self._tables[table_name] = MockSupabaseTable(data)

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        if name not in self._tables:
            self._tables[name] = MockSupabaseTable()
        return self._tables[name]

    def bucket(self, name: str = None) -> MockStorageBucket:
        from config import settings
        return self.storage.from_(name or settings.storage_bucket)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("libraries", [
                {"id": "lib-1", "name": "catalog.xlsx", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("libraries", [...])
            # Now any service created here gets the mock
    """
    reset_service_singletons()
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.library_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.storage_service.get_supabase_client", return_value=mock_supabase):
                yield mock_supabase
    reset_service_singletons()


@pytest.fixture
def public_url() -> str:
    """Public base URL of the test bucket."""
    from config import settings
    return settings.public_storage_url


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            mock_supabase.set_table_data("libraries", [...])
            response = test_client_with_mock_db.get("/api/library")
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app)
