"""Snapshot collection from the live store.

Collection is best-effort per table: a table whose read fails is logged and
left out of the document, and the remaining tables are still collected.

Usage:
    from records_backup.backup.collector import collect_snapshot

    document = await collect_snapshot(adapter, ["customers", "leads"])
    document.metadata.tables  # ["customers", "leads"]
"""

import logging
from datetime import datetime, timezone
from typing import Any

from records_backup.adapters.base import DatabaseClient
from records_backup.backup.models import DOCUMENT_VERSION, SnapshotDocument, SnapshotMetadata, TableDef
from records_backup.backup.tables import filter_backup_targets, table_def

logger = logging.getLogger(__name__)


async def read_table(adapter: DatabaseClient, definition: TableDef) -> list[dict[str, Any]]:
    """Read every live row of one backup-target table.

    Soft-deleted rows are skipped where the table supports soft deletion,
    and tables with a column allow-list are projected onto it.
    """
    columns = ", ".join(definition.columns) if definition.columns else "*"
    filters: dict[str, Any] | None = {"deleted_at": None} if definition.soft_delete else None
    rows = await adapter.select(
        definition.sql_table,
        columns=columns,
        filters=filters,
        order_by=definition.pk,
    )
    if definition.credential_field:
        # Projection already excludes it; keep the invariant if a column list changes.
        rows = [{k: v for k, v in row.items() if k != definition.credential_field} for row in rows]
    return rows


async def collect_snapshot(
    adapter: DatabaseClient,
    tables: list[str] | None = None,
) -> SnapshotDocument:
    """Collect a snapshot document of the requested backup-target tables.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        tables: Optional table names.  Intersected with the backup targets;
            ``None`` collects all of them.

    Returns:
        ``SnapshotDocument`` whose ``metadata.tables`` lists every table
        attempted, including any whose read failed.
    """
    effective = filter_backup_targets(tables)

    document = SnapshotDocument(
        metadata=SnapshotMetadata(
            created_at=datetime.now(timezone.utc),
            version=DOCUMENT_VERSION,
            tables=effective,
        ),
    )

    for name in effective:
        try:
            document.tables[name] = await read_table(adapter, table_def(name))
        except Exception as e:
            logger.warning("Could not back up table %s: %s", name, e)
            continue
        logger.debug("Collected %d rows from %s", len(document.tables[name]), name)

    return document
