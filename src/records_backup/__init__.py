"""records-backup: backup and restore of business-record tables.

Snapshots the backup-target tables of a PostgreSQL store into a versioned
JSON document, tracks each backup attempt through a lifecycle, and restores
documents back with idempotent, all-or-nothing upserts.

Usage:
    from records_backup import BackupService, RestoreOptions, get_adapter

    adapter = await get_adapter()
    service = BackupService(adapter)
    backup = await service.create_backup()
"""

__version__ = "0.1.0"

# Adapters
from records_backup.adapters.base import Connect, DatabaseClient, ReferenceNotFoundError
from records_backup.adapters.postgres import AsyncPostgresAdapter

# Config
from records_backup.config.loader import load_db_config
from records_backup.config.models import BackupSettings, DatabaseConfig, DatabaseProfile

# Factory
from records_backup.factory import (
    ProfileNotFoundError,
    connect_and_validate,
    get_adapter,
    resolve_url,
)

# Backup engine
from records_backup.backup.errors import BackupError
from records_backup.backup.models import RestoreOptions, RestoreResult, SnapshotDocument
from records_backup.backup.service import BackupService

__all__ = [
    # Adapters
    "Connect",
    "DatabaseClient",
    "ReferenceNotFoundError",
    "AsyncPostgresAdapter",
    # Config
    "load_db_config",
    "BackupSettings",
    "DatabaseConfig",
    "DatabaseProfile",
    # Factory
    "get_adapter",
    "connect_and_validate",
    "ProfileNotFoundError",
    "resolve_url",
    # Backup engine
    "BackupService",
    "BackupError",
    "RestoreOptions",
    "RestoreResult",
    "SnapshotDocument",
]
