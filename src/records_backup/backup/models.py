"""Pydantic models for backup documents, restore reports and lifecycle entries.

Usage:
    from records_backup.backup.models import RestoreOptions, SnapshotDocument

    document = SnapshotDocument.from_dict(json.loads(raw))
    options = RestoreOptions(tables=["customers"], dry_run=True)
"""

import math
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

DOCUMENT_VERSION = "1.0"


# ============================================================================
# Table Definitions
# ============================================================================


class ForeignKey(BaseModel):
    """Foreign key column reconnected by id on restore."""

    table: str          # referenced SQL table
    field: str          # FK column in this table


class TableDef(BaseModel):
    """Definition of a backup-target table for collection and upsert."""

    name: str                                       # logical name used in documents
    sql_table: str                                  # table name in the store
    pk: str = "id"                                  # primary key column
    soft_delete: bool = False                       # rows with deleted_at set are skipped
    columns: list[str] | None = None                # projection allow-list (None = all)
    foreign_keys: list[ForeignKey] = Field(default_factory=list)
    relation_fields: list[str] = Field(default_factory=list)  # never part of a scalar upsert
    credential_field: str | None = None             # excluded from backup, placeholder on create
    datetime_fields: list[str] = Field(default_factory=list)  # restored from ISO strings besides *_at
    decimal_fields: list[str] = Field(default_factory=list)  # restored from strings to Decimal


# ============================================================================
# Snapshot Document
# ============================================================================


class SnapshotMetadata(BaseModel):
    """Metadata block of a snapshot document."""

    created_at: datetime | None = None
    version: str = DOCUMENT_VERSION
    tables: list[str] = Field(default_factory=list)


class SnapshotDocument(BaseModel):
    """One collection pass: metadata plus a record list per collected table.

    A table missing from ``tables`` was not collected (not requested or its
    read failed); an empty list means it was collected and had no rows.
    """

    metadata: SnapshotMetadata
    tables: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    def records(self, table: str) -> list[dict[str, Any]]:
        """Records for ``table``, or an empty list when absent."""
        return self.tables.get(table, [])

    def to_dict(self) -> dict[str, Any]:
        """Flatten to the document shape ``{"metadata": ..., <table>: [...]}``."""
        data: dict[str, Any] = {
            "metadata": {
                "createdAt": (
                    self.metadata.created_at.isoformat() if self.metadata.created_at else None
                ),
                "version": self.metadata.version,
                "tables": list(self.metadata.tables),
            },
        }
        data.update(self.tables)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SnapshotDocument":
        """Build from the flat document shape produced by ``to_dict``.

        Keys other than ``metadata`` whose value is a list are treated as
        table record lists.  No type inference is applied to record values.
        """
        raw_meta = data.get("metadata") or {}
        metadata = SnapshotMetadata(
            created_at=raw_meta.get("createdAt") or raw_meta.get("created_at"),
            version=raw_meta.get("version", DOCUMENT_VERSION),
            tables=list(raw_meta.get("tables", [])),
        )
        tables = {
            key: value
            for key, value in data.items()
            if key != "metadata" and isinstance(value, list)
        }
        return cls(metadata=metadata, tables=tables)


# ============================================================================
# Restore
# ============================================================================


class RestoreOptions(BaseModel):
    """Caller options for a restore invocation."""

    tables: list[str] | None = None
    dry_run: bool = False
    source: Literal["live", "artifact"] = "live"


class RestoreResult(BaseModel):
    """Report of a restore invocation.

    ``record_counts`` has exactly one entry per table in ``restored_tables``.
    """

    success: bool
    restored_tables: list[str] = Field(default_factory=list)
    record_counts: dict[str, int] = Field(default_factory=dict)
    errors: list[str] | None = None
    dry_run: bool | None = None


# ============================================================================
# Lifecycle
# ============================================================================


class BackupStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class BackupType(StrEnum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"


class BackupEntry(BaseModel):
    """Persisted bookkeeping record for one backup attempt."""

    id: str
    filename: str
    size: int = 0
    status: BackupStatus
    type: BackupType
    created_at: datetime

    def to_response(self) -> "BackupResponse":
        return BackupResponse(
            id=self.id,
            filename=self.filename,
            size=str(self.size),
            status=self.status,
            type=self.type,
            created_at=self.created_at,
        )


class BackupResponse(BaseModel):
    """Lifecycle entry as exposed to callers (size rendered as a string)."""

    id: str
    filename: str
    size: str
    status: BackupStatus
    type: BackupType
    created_at: datetime


class BackupFilters(BaseModel):
    """Pagination and filters for listing backups."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    type: BackupType | None = None
    status: BackupStatus | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit))


class PaginatedBackups(BaseModel):
    data: list[BackupResponse]
    pagination: Pagination


class BackupDownload(BaseModel):
    """Serialized snapshot ready to be sent as a file download."""

    filename: str
    content: bytes
    content_type: str = "application/json"

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'

    @property
    def content_length(self) -> int:
        return len(self.content)


class BackupStatusSummary(BaseModel):
    """Aggregate view used by schedulers and health checks."""

    latest: BackupResponse | None = None
    total_backups: int = 0
    last_7_days_backups: int = 0
    total_size_bytes: int = 0
