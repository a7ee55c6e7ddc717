"""Tests for the async PostgreSQL adapter's SQL generation.

Statements are captured from a mocked ``AsyncConnection``; no database is
needed.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest

from records_backup.adapters.base import Connect, ReferenceNotFoundError
from records_backup.adapters.postgres import (
    AsyncPostgresAdapter,
    AsyncPostgresTransaction,
    build_where,
    normalize_url,
)


def _result(rows: list[tuple] | None = None, keys: list[str] | None = None) -> MagicMock:
    rows = rows or []
    result = MagicMock()
    result.keys.return_value = keys or []
    result.fetchall.return_value = rows
    result.fetchone.return_value = rows[0] if rows else None
    return result


def _tx(*results: MagicMock, jsonb_columns: frozenset[str] = frozenset()) -> tuple[AsyncPostgresTransaction, AsyncMock]:
    conn = MagicMock()
    conn.execute = AsyncMock(side_effect=list(results))
    return AsyncPostgresTransaction(conn, jsonb_columns), conn.execute


def _sql(execute: AsyncMock, index: int = -1) -> str:
    return " ".join(str(execute.call_args_list[index].args[0]).split())


def _params(execute: AsyncMock, index: int = -1) -> dict:
    return execute.call_args_list[index].args[1]


# ============================================================================
# URL handling
# ============================================================================


class TestURLRewrite:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ],
    )
    def test_normalize_url(self, url: str, expected: str) -> None:
        assert normalize_url(url) == expected

    def test_adapter_passes_normalized_url(self) -> None:
        with patch("records_backup.adapters.postgres.create_async_engine_pooled") as mock_create:
            mock_create.return_value = MagicMock()
            AsyncPostgresAdapter("postgres://u:p@h/db", jsonb_columns=["items"])

        mock_create.assert_called_once_with("postgresql+asyncpg://u:p@h/db")

    def test_jsonb_columns_frozenset(self) -> None:
        with patch("records_backup.adapters.postgres.create_async_engine_pooled"):
            adapter = AsyncPostgresAdapter("postgresql://u:p@h/db", jsonb_columns=["items", "value"])
        assert adapter._jsonb_columns == frozenset({"items", "value"})


# ============================================================================
# WHERE clauses
# ============================================================================


class TestBuildWhere:
    def test_empty(self) -> None:
        assert build_where(None) == ("", {})

    def test_none_is_null(self) -> None:
        clause, params = build_where({"status": "ACTIVE", "deleted_at": None})
        assert clause == " WHERE status = :p_0 AND deleted_at IS NULL"
        assert params == {"p_0": "ACTIVE"}

    def test_prefix(self) -> None:
        clause, params = build_where({"id": "b1"}, prefix="where")
        assert clause == " WHERE id = :where_0"
        assert params == {"where_0": "b1"}


# ============================================================================
# CRUD
# ============================================================================


class TestSelect:
    async def test_full_query(self) -> None:
        tx, execute = _tx(_result([("c1", "Acme")], ["id", "name"]))

        rows = await tx.select(
            "customers", "id, name", filters={"deleted_at": None}, order_by="id", limit=10, offset=20,
        )

        assert rows == [{"id": "c1", "name": "Acme"}]
        assert _sql(execute) == (
            "SELECT id, name FROM customers WHERE deleted_at IS NULL ORDER BY id LIMIT :_limit OFFSET :_offset"
        )
        assert _params(execute) == {"_limit": 10, "_offset": 20}

    async def test_serializes_uuid_and_datetime(self) -> None:
        uid = UUID("12345678-1234-5678-1234-567812345678")
        created = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
        tx, _ = _tx(_result([(uid, created)], ["id", "created_at"]))

        rows = await tx.select("backups")

        assert rows == [{"id": str(uid), "created_at": "2025-01-15T10:30:00+00:00"}]


class TestWrites:
    async def test_insert_drops_metadata_keys(self) -> None:
        tx, execute = _tx(_result([("b1",)], ["id"]))

        await tx.insert("backups", {"id": "b1", "_count": 3})

        assert "INSERT INTO backups (id) VALUES (:id) RETURNING *" in _sql(execute)
        assert _params(execute) == {"id": "b1"}

    async def test_update_no_match_raises(self) -> None:
        tx, _ = _tx(_result([], ["id"]))

        with pytest.raises(ValueError, match="No rows matched"):
            await tx.update("backups", {"status": "FAILED"}, filters={"id": "b1", "status": "PENDING"})

    async def test_update_sql(self) -> None:
        tx, execute = _tx(_result([("b1", "FAILED")], ["id", "status"]))

        await tx.update("backups", {"status": "FAILED"}, filters={"id": "b1"})

        assert _sql(execute) == "UPDATE backups SET status = :set_0 WHERE id = :where_0 RETURNING *"
        assert _params(execute) == {"set_0": "FAILED", "where_0": "b1"}

    async def test_jsonb_cast(self) -> None:
        tx, execute = _tx(
            _result([("s1",)], ["id"]),
            jsonb_columns=frozenset({"value"}),
        )

        await tx.insert("system_settings", {"id": "s1", "value": {"a": 1}})

        assert "CAST(:value AS jsonb)" in _sql(execute)
        assert _params(execute)["value"] == '{"a": 1}'


class TestUpsert:
    async def test_on_conflict_update(self) -> None:
        tx, execute = _tx(_result([("c1", "Acme")], ["id", "name"]))

        row = await tx.upsert(
            "customers",
            create={"id": "c1", "name": "Acme"},
            update={"name": "Acme"},
        )

        assert row == {"id": "c1", "name": "Acme"}
        assert _sql(execute) == (
            "INSERT INTO customers (id, name) VALUES (:id, :name) "
            "ON CONFLICT (id) DO UPDATE SET name = :set_0 RETURNING *"
        )

    async def test_empty_update_still_returns_row(self) -> None:
        tx, execute = _tx(_result([("s1",)], ["id"]))

        await tx.upsert("system_settings", create={"id": "s1"}, update={})

        assert "DO UPDATE SET id = EXCLUDED.id" in _sql(execute)

    async def test_requires_pk(self) -> None:
        tx, _ = _tx()

        with pytest.raises(ValueError, match="requires 'id'"):
            await tx.upsert("customers", create={"name": "x"}, update={})

    async def test_connect_checks_reference(self) -> None:
        tx, execute = _tx(
            _result([(1,)], ["?column?"]),            # create: reference exists
            _result([(1,)], ["?column?"]),            # update: reference exists
            _result([("l1", "c1")], ["id", "customer_id"]),
        )

        await tx.upsert(
            "leads",
            create={"id": "l1", "customer_id": Connect("customers", "c1")},
            update={"customer_id": Connect("customers", "c1")},
        )

        assert _sql(execute, 0) == "SELECT 1 FROM customers WHERE id = :ref_id"
        assert _params(execute, 0) == {"ref_id": "c1"}
        assert _params(execute)["customer_id"] == "c1"

    async def test_missing_reference_raises(self) -> None:
        tx, execute = _tx(_result([], ["?column?"]))

        with pytest.raises(ReferenceNotFoundError) as exc_info:
            await tx.upsert(
                "leads",
                create={"id": "l1", "customer_id": Connect("customers", "c404")},
                update={},
            )

        assert exc_info.value.column == "customer_id"
        assert execute.await_count == 1


# ============================================================================
# Transactions
# ============================================================================


class TestTransaction:
    async def test_transaction_shares_one_connection(self) -> None:
        conn = MagicMock()
        conn.execute = AsyncMock(return_value=_result([("s1",)], ["id"]))

        begin_ctx = MagicMock()
        begin_ctx.__aenter__ = AsyncMock(return_value=conn)
        begin_ctx.__aexit__ = AsyncMock(return_value=False)
        engine = MagicMock()
        engine.begin.return_value = begin_ctx

        with patch("records_backup.adapters.postgres.create_async_engine_pooled", return_value=engine):
            adapter = AsyncPostgresAdapter("postgresql://u:p@h/db")

        async with adapter.transaction() as tx:
            await tx.upsert("system_settings", create={"id": "s1"}, update={})
            await tx.upsert("system_settings", create={"id": "s2"}, update={})
            async with tx.transaction() as nested:
                assert nested is tx

        engine.begin.assert_called_once()
        assert conn.execute.await_count == 2

    async def test_exception_propagates_to_begin_block(self) -> None:
        begin_ctx = MagicMock()
        begin_ctx.__aenter__ = AsyncMock(return_value=MagicMock())
        begin_ctx.__aexit__ = AsyncMock(return_value=False)
        engine = MagicMock()
        engine.begin.return_value = begin_ctx

        with patch("records_backup.adapters.postgres.create_async_engine_pooled", return_value=engine):
            adapter = AsyncPostgresAdapter("postgresql://u:p@h/db")

        with pytest.raises(RuntimeError):
            async with adapter.transaction():
                raise RuntimeError("boom")

        exc_type = begin_ctx.__aexit__.await_args.args[0]
        assert exc_type is RuntimeError
