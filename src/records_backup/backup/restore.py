"""Restore a snapshot document into the live store.

Dry runs and real restores share ``select_restore_tables``.  A real restore
runs every upsert inside one transaction bounded by a time budget: any
failure, or running out of time, rolls the whole invocation back.

Usage:
    from records_backup.backup.restore import restore_snapshot

    result = await restore_snapshot(adapter, document, RestoreOptions(dry_run=True))
    result.record_counts  # {"customers": 12, ...}
"""

import asyncio
import logging

from records_backup.adapters.base import DatabaseClient
from records_backup.backup.errors import RestoreFailedError
from records_backup.backup.models import RestoreOptions, RestoreResult, SnapshotDocument
from records_backup.backup.tables import filter_backup_targets, table_def
from records_backup.backup.upserter import build_upsert, upsert_record

logger = logging.getLogger(__name__)

DEFAULT_RESTORE_TIMEOUT = 60.0


def select_restore_tables(document: SnapshotDocument, options: RestoreOptions) -> list[str]:
    """Tables to restore, in declaration order, that have rows in ``document``.

    Requested names are intersected with the backup targets, so master data
    and unknown tables are never selected even when asked for.
    """
    return [
        name
        for name in filter_backup_targets(options.tables)
        if document.records(name)
    ]


def count_restorable(document: SnapshotDocument, table: str) -> int:
    """Records of ``table`` a real restore would upsert; id-less ones are skipped."""
    definition = table_def(table)
    return sum(1 for record in document.records(table) if build_upsert(definition, record) is not None)


async def _apply(tx: DatabaseClient, document: SnapshotDocument, tables: list[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for table in tables:
        upserted = 0
        for record in document.records(table):
            try:
                if await upsert_record(tx, table, record):
                    upserted += 1
            except Exception as e:
                raise RestoreFailedError(table, record.get("id"), e) from e
        counts[table] = upserted
        logger.info("Restored %d %s records", upserted, table)
    return counts


async def restore_snapshot(
    adapter: DatabaseClient,
    document: SnapshotDocument,
    options: RestoreOptions | None = None,
    timeout: float = DEFAULT_RESTORE_TIMEOUT,
) -> RestoreResult:
    """Restore ``document`` (or preview it with ``dry_run``).

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        document: Snapshot to restore from.
        options: Table subset and dry-run flag.
        timeout: Upper bound in seconds for the restore transaction.

    Returns:
        ``RestoreResult``.  On failure ``success`` is ``False``, ``errors``
        names the failing table, and no tables or counts are reported since
        nothing was committed.
    """
    options = options or RestoreOptions()
    tables = select_restore_tables(document, options)

    if options.dry_run:
        return RestoreResult(
            success=True,
            restored_tables=tables,
            record_counts={name: count_restorable(document, name) for name in tables},
            dry_run=True,
        )

    try:
        async with asyncio.timeout(timeout):
            async with adapter.transaction() as tx:
                counts = await _apply(tx, document, tables)
    except RestoreFailedError as e:
        logger.error("Restore rolled back: %s", e)
        return RestoreResult(
            success=False,
            errors=[str(e), "Restore transaction rolled back; no changes were committed"],
        )
    except TimeoutError:
        logger.error("Restore exceeded %.0fs and was rolled back", timeout)
        return RestoreResult(
            success=False,
            errors=[
                f"Restore exceeded the {timeout:g}s transaction time budget",
                "Restore transaction rolled back; no changes were committed",
            ],
        )
    except Exception as e:
        logger.exception("Restore transaction failed")
        return RestoreResult(
            success=False,
            errors=[f"Restore transaction failed: {e}"],
        )

    restored = [name for name in tables if name in counts]
    return RestoreResult(
        success=True,
        restored_tables=restored,
        record_counts={name: counts[name] for name in restored},
    )
