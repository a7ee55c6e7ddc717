"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that all adapters must implement.
All methods are ``async def`` -- the library is async-first.

Usage:
    from records_backup.adapters.base import Connect, DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.select("customers", "*", filters={"deleted_at": None})
        async with client.transaction() as tx:
            await tx.upsert(
                "leads",
                create={"id": "l1", "customer_id": Connect("customers", "c1")},
                update={"customer_id": Connect("customers", "c1")},
            )
        await client.close()
"""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class Connect:
    """Reference to an existing row, bound to a foreign-key column by id.

    Adapters resolve a ``Connect`` value by checking that ``table`` holds a
    row whose primary key equals ``id`` before writing the id into the
    column.  A missing row raises ``ReferenceNotFoundError``.
    """

    table: str
    id: Any
    pk: str = "id"


class ReferenceNotFoundError(Exception):
    """Raised when a ``Connect`` reference points at a missing row."""

    def __init__(self, ref: Connect, column: str) -> None:
        self.ref = ref
        self.column = column
        super().__init__(
            f"{column} references {ref.table}.{ref.pk}={ref.id!r}, "
            f"which does not exist"
        )


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    This Protocol ensures type safety and consistent behavior across
    the production adapter and test doubles.

    All methods are async -- callers must ``await`` every operation.
    """

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name.
            columns: Comma-separated column names (e.g., ``"id, name"``).
            filters: Optional dict of field=value filters (all must match via
                AND).  A ``None`` value matches ``IS NULL``.
            order_by: Optional ORDER BY expression (e.g., ``"created_at DESC"``).
            limit: Optional maximum number of rows.
            offset: Optional number of rows to skip.

        Returns:
            List of dicts, one per row.  Empty list if no matches.
        """
        ...

    async def insert(self, table: str, data: dict) -> dict:
        """Insert row into table and return the created row.

        Raises:
            ReferenceNotFoundError: If a ``Connect`` value is dangling.
            Exception: If duplicate key or constraint violation.
        """
        ...

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        """Update rows in table and return the first updated row.

        Raises:
            ValueError: If no rows match filters.
        """
        ...

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete rows matching filters."""
        ...

    async def upsert(
        self,
        table: str,
        create: dict,
        update: dict,
        pk: str = "id",
    ) -> dict:
        """Insert ``create`` or, when a row with the same ``pk`` exists, apply ``update``.

        ``create`` must contain ``pk``.  Calling ``upsert`` twice with the same
        payload leaves the table in the same state as calling it once.

        Returns:
            Dict representing the inserted or updated row.
        """
        ...

    def transaction(self) -> AbstractAsyncContextManager["DatabaseClient"]:
        """Open a transaction scope.

        The yielded client runs every operation on a single connection.  The
        transaction commits when the block exits cleanly and rolls back when
        it exits with an exception (including cancellation).

        Example:
            async with client.transaction() as tx:
                await tx.upsert("customers", create=row, update=changes)
        """
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources."""
        ...
