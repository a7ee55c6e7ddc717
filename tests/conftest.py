"""Shared fixtures: an in-memory ``DatabaseClient`` with transactional rollback."""

import asyncio
import copy
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import pytest

from records_backup.adapters.base import Connect, ReferenceNotFoundError


class MemoryDatabase:
    """Dict-of-lists store implementing the ``DatabaseClient`` Protocol.

    ``select_errors`` maps a table to the exception its reads raise.
    ``upsert_errors`` maps ``(table, id)`` to the exception that upsert raises.
    ``upsert_delay`` sleeps before every upsert (for time-budget tests).
    """

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = copy.deepcopy(tables or {})
        self.select_errors: dict[str, Exception] = {}
        self.upsert_errors: dict[tuple[str, Any], Exception] = {}
        self.upsert_delay: float = 0.0
        self.upsert_calls: list[tuple[str, dict[str, Any], dict[str, Any]]] = []
        self.closed = False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def counts(self) -> dict[str, int]:
        return {name: len(rows) for name, rows in self.tables.items()}

    @staticmethod
    def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
        return all(row.get(k) == v for k, v in (filters or {}).items())

    def _resolve(self, data: dict[str, Any]) -> dict[str, Any]:
        resolved = {}
        for key, value in data.items():
            if key.startswith("_"):
                continue
            if isinstance(value, Connect):
                if not any(r.get(value.pk) == value.id for r in self.rows(value.table)):
                    raise ReferenceNotFoundError(value, key)
                value = value.id
            resolved[key] = value
        return resolved

    # ------------------------------------------------------------------
    # DatabaseClient Protocol
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        if table in self.select_errors:
            raise self.select_errors[table]

        matched = [r for r in self.rows(table) if self._matches(r, filters)]

        if columns.lower().startswith("count(*)"):
            return [{"cnt": len(matched)}]

        if order_by:
            column, _, direction = order_by.partition(" ")
            matched.sort(key=lambda r: r.get(column), reverse=direction.upper() == "DESC")

        start = offset or 0
        matched = matched[start:start + limit] if limit is not None else matched[start:]

        if columns == "*":
            return [dict(r) for r in matched]
        wanted = [c.strip() for c in columns.split(",")]
        return [{c: r[c] for c in wanted if c in r} for r in matched]

    async def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        row = self._resolve(data)
        self.rows(table).append(row)
        return dict(row)

    async def update(
        self,
        table: str,
        data: dict[str, Any],
        filters: dict[str, Any],
    ) -> dict[str, Any]:
        matched = [r for r in self.rows(table) if self._matches(r, filters)]
        if not matched:
            raise ValueError(f"No rows in {table} match {filters}")
        changes = self._resolve(data)
        for row in matched:
            row.update(changes)
        return dict(matched[0])

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        self.tables[table] = [r for r in self.rows(table) if not self._matches(r, filters)]

    async def upsert(
        self,
        table: str,
        create: dict[str, Any],
        update: dict[str, Any],
        pk: str = "id",
    ) -> dict[str, Any]:
        if self.upsert_delay:
            await asyncio.sleep(self.upsert_delay)
        self.upsert_calls.append((table, create, update))
        if (table, create.get(pk)) in self.upsert_errors:
            raise self.upsert_errors[(table, create.get(pk))]

        for row in self.rows(table):
            if row.get(pk) == create.get(pk):
                row.update(self._resolve(update))
                return dict(row)
        row = self._resolve(create)
        self.rows(table).append(row)
        return dict(row)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryDatabase"]:
        snapshot = copy.deepcopy(self.tables)
        try:
            yield self
        except BaseException:
            # Cancellation from a time budget must roll back too
            self.tables = snapshot
            raise

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================


CREATED = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def seeded_tables() -> dict[str, list[dict[str, Any]]]:
    """A small, referentially consistent data set in SQL table names."""
    return {
        "users": [
            {
                "id": "u1",
                "email": "a@x.com",
                "name": "Alice",
                "password": "$2b$12$secrethash",
                "role": "ADMIN",
                "created_at": CREATED,
                "updated_at": CREATED,
            },
        ],
        "system_settings": [{"id": "s1", "key": "currency", "value": "KRW"}],
        "pipeline_stages": [{"id": "st1", "name": "Lead", "order": 1}],
        "stage_tasks": [{"id": "t1", "stage_id": "st1", "title": "Call"}],
        "customers": [
            {"id": "c1", "name": "Acme", "user_id": "u1", "deleted_at": None},
            {"id": "c2", "name": "Gone Inc", "user_id": "u1", "deleted_at": CREATED},
        ],
        "leads": [
            {
                "id": "l1",
                "customer_id": "c1",
                "user_id": "u1",
                "stage_id": "st1",
                "title": "Renewal",
                "deleted_at": None,
            },
        ],
        "quotations": [],
        "contracts": [],
        "studies": [],
        "toxicity_tests": [{"id": "tox1", "name": "Acute"}],
        "backups": [],
    }


@pytest.fixture
def memory_db(seeded_tables) -> MemoryDatabase:
    return MemoryDatabase(seeded_tables)


@pytest.fixture
def empty_db() -> MemoryDatabase:
    return MemoryDatabase({"backups": []})
