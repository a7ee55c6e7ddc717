"""Backup lifecycle bookkeeping.

Each backup attempt is one row in the ``backups`` table moving through
``PENDING -> IN_PROGRESS -> COMPLETED | FAILED``.  ``COMPLETED`` and
``FAILED`` are terminal: a failed backup is retried with a new entry.

Usage:
    from records_backup.backup.lifecycle import BackupLifecycle

    lifecycle = BackupLifecycle(adapter)
    entry = await lifecycle.create()
    await lifecycle.mark_in_progress(entry.id)
    await lifecycle.mark_completed(entry.id, size=1024)
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from records_backup.adapters.base import DatabaseClient
from records_backup.backup.errors import BackupNotFoundError, InvalidTransitionError
from records_backup.backup.models import BackupEntry, BackupFilters, BackupStatus, BackupType

logger = logging.getLogger(__name__)

LIFECYCLE_TABLE = "backups"

TRANSITIONS: dict[BackupStatus, frozenset[BackupStatus]] = {
    BackupStatus.PENDING: frozenset({BackupStatus.IN_PROGRESS, BackupStatus.FAILED}),
    BackupStatus.IN_PROGRESS: frozenset({BackupStatus.COMPLETED, BackupStatus.FAILED}),
    BackupStatus.COMPLETED: frozenset(),
    BackupStatus.FAILED: frozenset(),
}


def backup_filename(now: datetime) -> str:
    """``backup_2024-01-15T10-30-00-000Z.json`` style name for a UTC timestamp."""
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    return f"backup_{stamp}-{now.microsecond // 1000:03d}Z.json"


class BackupLifecycle:
    """CRUD and state transitions for lifecycle entries."""

    def __init__(self, adapter: DatabaseClient, table: str = LIFECYCLE_TABLE) -> None:
        self._adapter = adapter
        self._table = table

    async def create(self, backup_type: BackupType = BackupType.MANUAL) -> BackupEntry:
        """Insert a new ``PENDING`` entry."""
        now = datetime.now(timezone.utc)
        row = await self._adapter.insert(
            self._table,
            {
                "id": str(uuid.uuid4()),
                "filename": backup_filename(now),
                "size": 0,
                "status": BackupStatus.PENDING.value,
                "type": BackupType(backup_type).value,
                "created_at": now,
            },
        )
        entry = BackupEntry.model_validate(row)
        logger.info("Created %s backup %s", entry.type, entry.id)
        return entry

    async def get(self, backup_id: str) -> BackupEntry:
        """Fetch one entry.

        Raises:
            BackupNotFoundError: If no entry has this id.
        """
        rows = await self._adapter.select(self._table, "*", filters={"id": backup_id})
        if not rows:
            raise BackupNotFoundError(backup_id)
        return BackupEntry.model_validate(rows[0])

    async def list_entries(self, filters: BackupFilters | None = None) -> tuple[list[BackupEntry], int]:
        """Page through entries, newest first.

        Returns:
            Tuple of (entries on the requested page, total matching entries).
        """
        filters = filters or BackupFilters()
        where: dict[str, Any] = {}
        if filters.type is not None:
            where["type"] = filters.type.value
        if filters.status is not None:
            where["status"] = filters.status.value

        count_rows = await self._adapter.select(self._table, "count(*) AS cnt", filters=where or None)
        total = int(count_rows[0]["cnt"]) if count_rows else 0

        rows = await self._adapter.select(
            self._table,
            "*",
            filters=where or None,
            order_by="created_at DESC",
            limit=filters.limit,
            offset=(filters.page - 1) * filters.limit,
        )
        return [BackupEntry.model_validate(r) for r in rows], total

    async def entries(self, backup_type: BackupType | None = None) -> list[BackupEntry]:
        """Every entry, optionally of one type, newest first."""
        where = {"type": backup_type.value} if backup_type is not None else None
        rows = await self._adapter.select(self._table, "*", filters=where, order_by="created_at DESC")
        return [BackupEntry.model_validate(r) for r in rows]

    async def delete(self, backup_id: str) -> BackupEntry:
        """Delete an entry and return what was deleted.

        Raises:
            BackupNotFoundError: If no entry has this id.
        """
        entry = await self.get(backup_id)
        await self._adapter.delete(self._table, {"id": backup_id})
        logger.info("Deleted backup %s", backup_id)
        return entry

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def mark_in_progress(self, backup_id: str) -> BackupEntry:
        return await self._transition(backup_id, BackupStatus.IN_PROGRESS)

    async def mark_completed(self, backup_id: str, size: int) -> BackupEntry:
        return await self._transition(backup_id, BackupStatus.COMPLETED, {"size": size})

    async def mark_failed(self, backup_id: str) -> BackupEntry:
        return await self._transition(backup_id, BackupStatus.FAILED)

    async def _transition(
        self,
        backup_id: str,
        target: BackupStatus,
        changes: dict[str, Any] | None = None,
    ) -> BackupEntry:
        entry = await self.get(backup_id)
        if target not in TRANSITIONS[entry.status]:
            raise InvalidTransitionError(backup_id, entry.status, target)

        data = {"status": target.value, **(changes or {})}
        # Guarded on the current status so a concurrent transition is not overwritten
        try:
            row = await self._adapter.update(
                self._table,
                data,
                filters={"id": backup_id, "status": entry.status.value},
            )
        except ValueError:
            current = await self.get(backup_id)
            raise InvalidTransitionError(backup_id, current.status, target) from None
        logger.info("Backup %s: %s -> %s", backup_id, entry.status, target)
        return BackupEntry.model_validate(row)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile_stale(self, older_than: timedelta, now: datetime | None = None) -> list[str]:
        """Fail ``PENDING``/``IN_PROGRESS`` entries created before ``now - older_than``.

        Recovers entries left behind when marking a backup ``FAILED`` itself
        failed.

        Returns:
            Ids of the entries that were marked ``FAILED``.
        """
        cutoff = (now or datetime.now(timezone.utc)) - older_than
        failed: list[str] = []
        for status in (BackupStatus.PENDING, BackupStatus.IN_PROGRESS):
            rows = await self._adapter.select(self._table, "*", filters={"status": status.value})
            for row in rows:
                entry = BackupEntry.model_validate(row)
                if as_utc(entry.created_at) >= cutoff:
                    continue
                try:
                    await self.mark_failed(entry.id)
                except InvalidTransitionError:
                    # Finished while we were looking
                    continue
                logger.warning("Marked stale backup %s (%s) as FAILED", entry.id, status)
                failed.append(entry.id)
        return failed


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
