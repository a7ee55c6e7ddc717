"""Backup service: the operations exposed to the routing layer and the CLI.

Ties lifecycle bookkeeping, snapshot collection, the codec and the restore
orchestrator together.

Usage:
    from records_backup.backup.service import BackupService

    service = BackupService(adapter, settings)
    backup = await service.create_backup()
    result = await service.restore_backup(backup.id, RestoreOptions(dry_run=True))
"""

import logging
from pathlib import Path
from typing import Any

from records_backup.adapters.base import DatabaseClient
from records_backup.backup.codec import (
    byte_length,
    read_artifact,
    serialize,
    validate_document,
    write_artifact,
)
from records_backup.backup.collector import collect_snapshot
from records_backup.backup.errors import (
    ArtifactNotFoundError,
    BackupFailedError,
    RestoreNotAllowedError,
)
from records_backup.backup.lifecycle import BackupLifecycle
from records_backup.backup.models import (
    BackupDownload,
    BackupEntry,
    BackupFilters,
    BackupResponse,
    BackupStatus,
    BackupType,
    PaginatedBackups,
    Pagination,
    RestoreOptions,
    RestoreResult,
    SnapshotDocument,
)
from records_backup.backup.restore import restore_snapshot
from records_backup.backup.tables import (
    is_backup_target,
    is_master_data,
    list_backup_targets,
    list_master_data,
)
from records_backup.config.models import BackupSettings

logger = logging.getLogger(__name__)


class BackupService:
    """Create, inspect, download and restore backups.

    Args:
        adapter: Database adapter implementing ``DatabaseClient`` Protocol.
        settings: Backup settings; defaults write artifacts under ``./backups``.
    """

    def __init__(self, adapter: DatabaseClient, settings: BackupSettings | None = None) -> None:
        self._adapter = adapter
        self._settings = settings or BackupSettings()
        self.lifecycle = BackupLifecycle(adapter)

    @property
    def settings(self) -> BackupSettings:
        return self._settings

    # Classification passthroughs
    is_backup_target_table = staticmethod(is_backup_target)
    is_master_data_table = staticmethod(is_master_data)
    list_backup_targets = staticmethod(list_backup_targets)
    list_master_data = staticmethod(list_master_data)

    def artifact_path(self, entry: BackupEntry) -> Path | None:
        """Where the serialized document for ``entry`` lives, if artifacts are enabled."""
        if not self._settings.output_dir:
            return None
        return Path(self._settings.output_dir) / entry.filename

    # ------------------------------------------------------------------
    # Create / list / get / delete
    # ------------------------------------------------------------------

    async def create_backup(
        self,
        tables: list[str] | None = None,
        backup_type: BackupType = BackupType.MANUAL,
    ) -> BackupResponse:
        """Collect, serialize and record a backup.

        Raises:
            BackupFailedError: If collection or serialization failed.  The
                entry is marked ``FAILED`` when possible.
        """
        entry = await self.lifecycle.create(backup_type)

        try:
            await self.lifecycle.mark_in_progress(entry.id)
            document = await collect_snapshot(self._adapter, tables)
            payload = serialize(document)

            path = self.artifact_path(entry)
            if path is not None:
                write_artifact(path, payload)

            completed = await self.lifecycle.mark_completed(entry.id, byte_length(payload))
        except Exception as e:
            logger.error("Backup %s failed: %s", entry.id, e)
            try:
                await self.lifecycle.mark_failed(entry.id)
            except Exception:
                logger.exception("Could not mark backup %s FAILED; it stays IN_PROGRESS", entry.id)
            raise BackupFailedError(entry.id, e) from e

        return completed.to_response()

    async def list_backups(self, filters: BackupFilters | None = None) -> PaginatedBackups:
        filters = filters or BackupFilters()
        entries, total = await self.lifecycle.list_entries(filters)
        return PaginatedBackups(
            data=[e.to_response() for e in entries],
            pagination=Pagination.build(filters.page, filters.limit, total),
        )

    async def get_backup(self, backup_id: str) -> BackupResponse:
        entry = await self.lifecycle.get(backup_id)
        return entry.to_response()

    async def delete_backup(self, backup_id: str) -> None:
        """Delete the entry and its stored artifact, if any."""
        entry = await self.lifecycle.delete(backup_id)
        path = self.artifact_path(entry)
        if path is not None:
            path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Data download
    # ------------------------------------------------------------------

    async def _completed_entry(self, backup_id: str) -> BackupEntry:
        entry = await self.lifecycle.get(backup_id)
        if entry.status != BackupStatus.COMPLETED:
            raise RestoreNotAllowedError(backup_id, entry.status)
        return entry

    async def get_backup_data(self, backup_id: str) -> SnapshotDocument:
        """Re-collect the snapshot for a ``COMPLETED`` backup.

        Raises:
            BackupNotFoundError: If the backup does not exist.
            RestoreNotAllowedError: If the backup is not ``COMPLETED``.
        """
        await self._completed_entry(backup_id)
        return await collect_snapshot(self._adapter)

    async def get_backup_download(self, backup_id: str) -> BackupDownload:
        """Serialized snapshot plus the filename to offer it under."""
        entry = await self._completed_entry(backup_id)
        document = await collect_snapshot(self._adapter)
        return BackupDownload(filename=entry.filename, content=serialize(document))

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    async def restore_backup(
        self,
        backup_id: str,
        options: RestoreOptions | None = None,
    ) -> RestoreResult:
        """Restore from a ``COMPLETED`` backup.

        ``options.source == "live"`` re-collects the data through the same
        path used for backup; ``"artifact"`` replays the stored document.

        Raises:
            BackupNotFoundError: If the backup does not exist.
            RestoreNotAllowedError: If the backup is not ``COMPLETED``.
            ArtifactNotFoundError: If ``"artifact"`` was requested and no
                stored document exists.
        """
        options = options or RestoreOptions()
        entry = await self._completed_entry(backup_id)

        if options.source == "artifact":
            path = self.artifact_path(entry)
            if path is None or not path.exists():
                raise ArtifactNotFoundError(backup_id, str(path) if path else None)
            document = read_artifact(path)
        else:
            document = await collect_snapshot(self._adapter)

        logger.info("Restoring backup %s (source=%s, dry_run=%s)", backup_id, options.source, options.dry_run)
        return await self.restore_document(document, options)

    async def restore_document(
        self,
        document: SnapshotDocument | dict[str, Any],
        options: RestoreOptions | None = None,
    ) -> RestoreResult:
        """Restore a caller-supplied document without lifecycle checks.

        A plain dict (a decoded upload, for instance) is validated first.

        Raises:
            ValueError: If a dict document fails validation.
        """
        if not isinstance(document, SnapshotDocument):
            report = validate_document(document)
            if report["errors"]:
                raise ValueError(f"Invalid backup document: {'; '.join(report['errors'])}")
            document = SnapshotDocument.from_dict(document)
        return await restore_snapshot(
            self._adapter,
            document,
            options,
            timeout=self._settings.restore_timeout_seconds,
        )
