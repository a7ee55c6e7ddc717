"""Database adapters package.

Provides the ``DatabaseClient`` Protocol, the ``Connect`` reference type
and the async PostgreSQL adapter.

Usage:
    from records_backup.adapters import AsyncPostgresAdapter, Connect, DatabaseClient
"""

from records_backup.adapters.base import Connect, DatabaseClient, ReferenceNotFoundError
from records_backup.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "Connect",
    "DatabaseClient",
    "ReferenceNotFoundError",
    "AsyncPostgresAdapter",
]
