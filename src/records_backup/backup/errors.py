"""Exceptions raised by the backup engine.

Hierarchy:
    BackupError
    ├── BackupNotFoundError      backup id does not exist
    ├── RestoreNotAllowedError   backup is not COMPLETED
    ├── InvalidTransitionError   lifecycle state machine violation
    ├── BackupFailedError        collection or serialization failed
    ├── ArtifactNotFoundError    stored backup file is missing
    └── RestoreFailedError       an upsert failed inside the restore transaction
"""

from typing import Any


class BackupError(Exception):
    """Base class for backup engine errors."""


class BackupNotFoundError(BackupError):
    def __init__(self, backup_id: str) -> None:
        self.backup_id = backup_id
        super().__init__(f"Backup not found: {backup_id}")


class RestoreNotAllowedError(BackupError):
    def __init__(self, backup_id: str, status: str) -> None:
        self.backup_id = backup_id
        self.status = status
        super().__init__(
            f"Backup {backup_id} is {status}; only COMPLETED backups can be "
            f"restored or downloaded"
        )


class InvalidTransitionError(BackupError):
    def __init__(self, backup_id: str, current: str, target: str) -> None:
        self.backup_id = backup_id
        self.current = current
        self.target = target
        super().__init__(f"Backup {backup_id}: cannot move from {current} to {target}")


class BackupFailedError(BackupError):
    def __init__(self, backup_id: str, cause: Exception) -> None:
        self.backup_id = backup_id
        super().__init__(f"Backup {backup_id} failed: {cause}")


class ArtifactNotFoundError(BackupError):
    def __init__(self, backup_id: str, path: str | None) -> None:
        self.backup_id = backup_id
        self.path = path
        super().__init__(f"No stored artifact for backup {backup_id} (expected at {path})")


class RestoreFailedError(BackupError):
    """An upsert failed; the enclosing transaction must roll back."""

    def __init__(self, table: str, record_id: Any, cause: Exception) -> None:
        self.table = table
        self.record_id = record_id
        self.cause = cause
        super().__init__(f"{table}: record {record_id!r} failed: {cause}")
