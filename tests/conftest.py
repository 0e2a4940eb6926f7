"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("STORE_API_KEY", "test-anon-key")
os.environ.setdefault("STORE_URL", "http://localhost:54321")

from dairy_ledger.errors import ConflictError, LedgerError, SchemaMismatchError  # noqa: E402
from dairy_ledger.models import Actor, Role  # noqa: E402


def _text(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _matches(row: dict[str, Any], filters: dict[str, Any]) -> bool:
    for column, wanted in filters.items():
        actual = row.get(column)
        if wanted is None:
            if actual is not None:
                return False
        elif isinstance(wanted, (list, tuple, set, frozenset)):
            if _text(actual) not in {_text(w) for w in wanted}:
                return False
        elif _text(actual) != _text(wanted):
            return False
    return True


@dataclass
class FakeStore:
    """In-memory stand-in for the record store.

    ``failures`` maps ``(operation, collection)`` to an error raised on every
    matching call. ``hooks`` maps the same key to a callable run just before
    the operation, which lets a test interleave a concurrent write.
    ``missing_columns`` simulates a store whose schema lacks some columns.
    """

    tables: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    failures: dict[tuple[str, str], LedgerError] = field(default_factory=dict)
    hooks: dict[tuple[str, str], Callable[["FakeStore"], None]] = field(default_factory=dict)
    missing_columns: dict[str, set[str]] = field(default_factory=dict)
    unique_phone: bool = True
    calls: list[tuple[str, str]] = field(default_factory=list)
    next_id: int = 1

    def rows(self, collection: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(collection, [])

    def seed(self, collection: str, *rows: dict[str, Any]) -> list[dict[str, Any]]:
        stored = []
        for row in rows:
            row = dict(row)
            if row.get("id") is None:
                row["id"] = self._new_id()
            self.rows(collection).append(row)
            stored.append(dict(row))
        return stored

    def _new_id(self) -> int:
        self.next_id += 1
        return self.next_id - 1

    def _enter(self, operation: str, collection: str) -> None:
        self.calls.append((operation, collection))
        hook = self.hooks.get((operation, collection))
        if hook is not None:
            hook(self)
        error = self.failures.get((operation, collection))
        if error is not None:
            raise error

    def _project(self, collection: str, rows: list[dict[str, Any]], columns: str) -> list[dict[str, Any]]:
        missing = self.missing_columns.get(collection, set())
        if columns == "*":
            if missing:
                column = sorted(missing)[0]
                raise SchemaMismatchError(
                    f"column {collection}.{column} does not exist",
                    status_code=400,
                    details={"code": "42703"},
                )
            return [dict(r) for r in rows]
        wanted = [c.strip().strip('"') for c in columns.split(",")]
        return [{c: r.get(c) for c in wanted} for r in rows]

    async def fetch_all(
        self, collection: str, order_column: str = "id", columns: str = "*"
    ) -> list[dict[str, Any]]:
        self._enter("fetch_all", collection)
        rows = sorted(self.rows(collection), key=lambda r: _text(r.get(order_column)))
        return self._project(collection, rows, columns)

    async def select(
        self, collection: str, filters: dict[str, Any], columns: str = "*"
    ) -> list[dict[str, Any]]:
        self._enter("select", collection)
        rows = [r for r in self.rows(collection) if _matches(r, filters)]
        return self._project(collection, rows, columns)

    def _check_unique(self, collection: str, row: dict[str, Any], exclude: Any = None) -> None:
        if not (self.unique_phone and collection == "customers" and row.get("phone")):
            return
        for existing in self.rows(collection):
            if existing.get("id") != exclude and existing.get("phone") == row["phone"]:
                raise ConflictError(
                    'duplicate key value violates unique constraint "customers_phone_key"',
                    status_code=409,
                    details={"code": "23505"},
                )

    async def insert(self, collection: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        self._enter("insert", collection)
        written = []
        for row in rows:
            self._check_unique(collection, row)
            written.extend(self.seed(collection, row))
        return written

    async def upsert(
        self, collection: str, rows: list[dict[str, Any]], on_conflict: Any
    ) -> list[dict[str, Any]]:
        self._enter("upsert", collection)
        keys = list(on_conflict)
        written = []
        for row in rows:
            existing = next(
                (
                    r
                    for r in self.rows(collection)
                    if all(_text(r.get(k)) == _text(row.get(k)) for k in keys)
                ),
                None,
            )
            if existing is None:
                written.extend(self.seed(collection, row))
            else:
                existing.update({k: v for k, v in row.items() if k != "id"})
                written.append(dict(existing))
        return written

    async def update(
        self, collection: str, values: dict[str, Any], filters: dict[str, Any]
    ) -> list[dict[str, Any]]:
        self._enter("update", collection)
        written = []
        for row in self.rows(collection):
            if _matches(row, filters):
                self._check_unique(collection, {**row, **values}, exclude=row.get("id"))
                row.update(values)
                written.append(dict(row))
        return written

    async def delete(self, collection: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
        self._enter("delete", collection)
        kept, deleted = [], []
        for row in self.rows(collection):
            (deleted if _matches(row, filters) else kept).append(row)
        self.tables[collection] = kept
        return [dict(r) for r in deleted]


@pytest.fixture
def store():
    """Empty in-memory record store."""
    return FakeStore()


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def staff():
    return Actor(user_id="staff-1", role=Role.STAFF)


def customer_row(**overrides: Any) -> dict[str, Any]:
    """A customers row as the store returns it."""
    row = {
        "name": "Asha Rao",
        "address": "12 Lake Road",
        "phone": "9876500001",
        "milkPrice": 60.0,
        "defaultQuantity": 1.0,
        "status": "active",
        "previousBalance": 0,
        "balanceAsOfDate": None,
        "userId": None,
        "email": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def make_customer_row():
    """Factory for customers rows."""
    return customer_row
