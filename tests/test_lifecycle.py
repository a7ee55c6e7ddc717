"""Tests for backup lifecycle bookkeeping and transitions."""

from datetime import datetime, timedelta, timezone

import pytest

from records_backup.backup.errors import BackupNotFoundError, InvalidTransitionError
from records_backup.backup.lifecycle import BackupLifecycle, backup_filename
from records_backup.backup.models import BackupFilters, BackupStatus, BackupType


def _entry_row(backup_id: str, status: str, backup_type: str, created_at: datetime, size: int = 0) -> dict:
    return {
        "id": backup_id,
        "filename": backup_filename(created_at),
        "size": size,
        "status": status,
        "type": backup_type,
        "created_at": created_at,
    }


# ============================================================================
# Create / get / delete
# ============================================================================


class TestCrud:
    async def test_create_is_pending(self, empty_db) -> None:
        lifecycle = BackupLifecycle(empty_db)

        entry = await lifecycle.create()

        assert entry.status == BackupStatus.PENDING
        assert entry.type == BackupType.MANUAL
        assert entry.size == 0
        assert entry.filename.startswith("backup_") and entry.filename.endswith("Z.json")
        assert empty_db.rows("backups")[0]["id"] == entry.id

    async def test_create_auto(self, empty_db) -> None:
        entry = await BackupLifecycle(empty_db).create(BackupType.AUTO)
        assert entry.type == BackupType.AUTO

    async def test_get_missing_raises(self, empty_db) -> None:
        with pytest.raises(BackupNotFoundError, match="nope"):
            await BackupLifecycle(empty_db).get("nope")

    async def test_delete_returns_entry(self, empty_db) -> None:
        lifecycle = BackupLifecycle(empty_db)
        entry = await lifecycle.create()

        deleted = await lifecycle.delete(entry.id)

        assert deleted.id == entry.id
        assert empty_db.rows("backups") == []

    async def test_delete_missing_raises(self, empty_db) -> None:
        with pytest.raises(BackupNotFoundError):
            await BackupLifecycle(empty_db).delete("nope")


class TestBackupFilename:
    def test_colons_and_dots_replaced(self) -> None:
        now = datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)
        assert backup_filename(now) == "backup_2024-01-15T10-30-00-123Z.json"


# ============================================================================
# Transitions
# ============================================================================


class TestTransitions:
    async def test_happy_path(self, empty_db) -> None:
        lifecycle = BackupLifecycle(empty_db)
        entry = await lifecycle.create()

        in_progress = await lifecycle.mark_in_progress(entry.id)
        completed = await lifecycle.mark_completed(entry.id, size=2048)

        assert in_progress.status == BackupStatus.IN_PROGRESS
        assert completed.status == BackupStatus.COMPLETED
        assert completed.size == 2048

    async def test_pending_can_fail(self, empty_db) -> None:
        lifecycle = BackupLifecycle(empty_db)
        entry = await lifecycle.create()

        failed = await lifecycle.mark_failed(entry.id)

        assert failed.status == BackupStatus.FAILED

    async def test_cannot_complete_from_pending(self, empty_db) -> None:
        lifecycle = BackupLifecycle(empty_db)
        entry = await lifecycle.create()

        with pytest.raises(InvalidTransitionError):
            await lifecycle.mark_completed(entry.id, size=1)

    @pytest.mark.parametrize("terminal", ["COMPLETED", "FAILED"])
    async def test_terminal_states_have_no_exit(self, empty_db, terminal: str) -> None:
        now = datetime.now(timezone.utc)
        empty_db.rows("backups").append(_entry_row("b1", terminal, "MANUAL", now))
        lifecycle = BackupLifecycle(empty_db)

        for mark in (lifecycle.mark_in_progress, lifecycle.mark_failed):
            with pytest.raises(InvalidTransitionError) as exc_info:
                await mark("b1")
            assert exc_info.value.current == terminal
        with pytest.raises(InvalidTransitionError):
            await lifecycle.mark_completed("b1", size=1)

    async def test_lost_race_is_invalid_transition(self, empty_db) -> None:
        """A status change between read and write is reported, not overwritten."""
        lifecycle = BackupLifecycle(empty_db)
        entry = await lifecycle.create()
        await lifecycle.mark_in_progress(entry.id)

        original_update = empty_db.update

        async def racing_update(table, data, filters):
            empty_db.rows("backups")[0]["status"] = "FAILED"
            return await original_update(table, data, filters)

        empty_db.update = racing_update

        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.mark_completed(entry.id, size=10)
        assert exc_info.value.current == BackupStatus.FAILED
        assert empty_db.rows("backups")[0]["status"] == "FAILED"


# ============================================================================
# Listing
# ============================================================================


class TestListEntries:
    @pytest.fixture
    def lifecycle(self, empty_db) -> BackupLifecycle:
        base = datetime(2025, 1, 1, tzinfo=timezone.utc)
        for i in range(5):
            empty_db.rows("backups").append(
                _entry_row(
                    f"b{i}",
                    "COMPLETED" if i % 2 == 0 else "FAILED",
                    "AUTO" if i < 3 else "MANUAL",
                    base + timedelta(hours=i),
                )
            )
        return BackupLifecycle(empty_db)

    async def test_newest_first_with_total(self, lifecycle) -> None:
        entries, total = await lifecycle.list_entries(BackupFilters(page=1, limit=2))

        assert total == 5
        assert [e.id for e in entries] == ["b4", "b3"]

    async def test_last_page(self, lifecycle) -> None:
        entries, total = await lifecycle.list_entries(BackupFilters(page=3, limit=2))

        assert total == 5
        assert [e.id for e in entries] == ["b0"]

    async def test_filters(self, lifecycle) -> None:
        entries, total = await lifecycle.list_entries(
            BackupFilters(type=BackupType.AUTO, status=BackupStatus.COMPLETED)
        )

        assert total == 2
        assert [e.id for e in entries] == ["b2", "b0"]

    async def test_entries_by_type(self, lifecycle) -> None:
        manual = await lifecycle.entries(BackupType.MANUAL)
        assert [e.id for e in manual] == ["b4", "b3"]


# ============================================================================
# Reconciliation
# ============================================================================


class TestReconcileStale:
    async def test_fails_only_old_unfinished_entries(self, empty_db) -> None:
        now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        rows = empty_db.rows("backups")
        rows.append(_entry_row("old-pending", "PENDING", "AUTO", now - timedelta(hours=2)))
        rows.append(_entry_row("old-running", "IN_PROGRESS", "MANUAL", now - timedelta(hours=1)))
        rows.append(_entry_row("fresh-running", "IN_PROGRESS", "MANUAL", now - timedelta(minutes=5)))
        rows.append(_entry_row("old-done", "COMPLETED", "AUTO", now - timedelta(days=1)))

        failed = await BackupLifecycle(empty_db).reconcile_stale(timedelta(minutes=30), now=now)

        assert sorted(failed) == ["old-pending", "old-running"]
        statuses = {r["id"]: r["status"] for r in rows}
        assert statuses == {
            "old-pending": "FAILED",
            "old-running": "FAILED",
            "fresh-running": "IN_PROGRESS",
            "old-done": "COMPLETED",
        }

    async def test_naive_timestamps_treated_as_utc(self, empty_db) -> None:
        now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        empty_db.rows("backups").append(
            _entry_row("naive", "PENDING", "AUTO", datetime(2025, 1, 1, 10, 0))
        )

        failed = await BackupLifecycle(empty_db).reconcile_stale(timedelta(minutes=30), now=now)

        assert failed == ["naive"]
