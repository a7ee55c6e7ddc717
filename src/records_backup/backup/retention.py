"""Scheduled backups, retention pruning and the status summary.

Only ``AUTO`` backups are pruned; manual backups are kept until someone
deletes them.

Usage:
    from records_backup.backup.retention import prune_expired_backups, run_scheduled_backup

    await run_scheduled_backup(service)
    deleted = await prune_expired_backups(service, retention_days=7)
"""

import logging
from datetime import datetime, timedelta, timezone

from records_backup.backup.errors import BackupError
from records_backup.backup.lifecycle import as_utc
from records_backup.backup.models import BackupResponse, BackupStatusSummary, BackupType
from records_backup.backup.service import BackupService

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 7
SUMMARY_WINDOW = timedelta(days=7)


async def run_scheduled_backup(service: BackupService) -> BackupResponse:
    """Create an ``AUTO`` backup of every backup-target table."""
    logger.info("Starting scheduled backup")
    backup = await service.create_backup(backup_type=BackupType.AUTO)
    logger.info("Scheduled backup %s completed (%s bytes)", backup.id, backup.size)
    return backup


async def prune_expired_backups(
    service: BackupService,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    now: datetime | None = None,
) -> list[str]:
    """Delete ``AUTO`` backups older than ``retention_days``.

    A failed delete is logged and the remaining entries are still pruned.

    Returns:
        Ids of the deleted backups.
    """
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
    deleted: list[str] = []

    for entry in await service.lifecycle.entries(BackupType.AUTO):
        if as_utc(entry.created_at) >= cutoff:
            continue
        try:
            await service.delete_backup(entry.id)
        except (BackupError, OSError) as e:
            logger.warning("Could not prune backup %s: %s", entry.id, e)
            continue
        deleted.append(entry.id)

    if deleted:
        logger.info("Pruned %d expired backups", len(deleted))
    return deleted


async def backup_status_summary(
    service: BackupService,
    now: datetime | None = None,
) -> BackupStatusSummary:
    """Latest backup, counts and total stored size across all entries."""
    entries = await service.lifecycle.entries()
    window_start = (now or datetime.now(timezone.utc)) - SUMMARY_WINDOW

    return BackupStatusSummary(
        latest=entries[0].to_response() if entries else None,
        total_backups=len(entries),
        last_7_days_backups=sum(1 for e in entries if as_utc(e.created_at) >= window_start),
        total_size_bytes=sum(e.size for e in entries),
    )
