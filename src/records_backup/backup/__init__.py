"""Backup and restore engine for business-record tables.

Usage:
    from records_backup.backup import BackupService, RestoreOptions

    service = BackupService(adapter)
    backup = await service.create_backup()
    result = await service.restore_backup(backup.id, RestoreOptions(dry_run=True))
"""

from records_backup.backup.codec import (
    deserialize,
    load_document,
    serialize,
    validate_document,
)
from records_backup.backup.collector import collect_snapshot
from records_backup.backup.errors import (
    ArtifactNotFoundError,
    BackupError,
    BackupFailedError,
    BackupNotFoundError,
    InvalidTransitionError,
    RestoreFailedError,
    RestoreNotAllowedError,
)
from records_backup.backup.lifecycle import BackupLifecycle
from records_backup.backup.models import (
    BackupDownload,
    BackupFilters,
    BackupResponse,
    BackupStatus,
    BackupStatusSummary,
    BackupType,
    ForeignKey,
    PaginatedBackups,
    RestoreOptions,
    RestoreResult,
    SnapshotDocument,
    TableDef,
)
from records_backup.backup.restore import restore_snapshot
from records_backup.backup.retention import (
    backup_status_summary,
    prune_expired_backups,
    run_scheduled_backup,
)
from records_backup.backup.service import BackupService
from records_backup.backup.tables import (
    filter_backup_targets,
    is_backup_target,
    is_master_data,
    list_backup_targets,
    list_master_data,
)

__all__ = [
    # Service
    "BackupService",
    "BackupLifecycle",
    "collect_snapshot",
    "restore_snapshot",
    "run_scheduled_backup",
    "prune_expired_backups",
    "backup_status_summary",
    # Codec
    "serialize",
    "deserialize",
    "load_document",
    "validate_document",
    # Classification
    "is_backup_target",
    "is_master_data",
    "list_backup_targets",
    "list_master_data",
    "filter_backup_targets",
    # Models
    "BackupDownload",
    "BackupFilters",
    "BackupResponse",
    "BackupStatus",
    "BackupStatusSummary",
    "BackupType",
    "ForeignKey",
    "PaginatedBackups",
    "RestoreOptions",
    "RestoreResult",
    "SnapshotDocument",
    "TableDef",
    # Errors
    "BackupError",
    "BackupNotFoundError",
    "RestoreNotAllowedError",
    "InvalidTransitionError",
    "BackupFailedError",
    "ArtifactNotFoundError",
    "RestoreFailedError",
]
