"""Map snapshot records onto idempotent upserts.

A record becomes a create payload and an update payload keyed by its id:

- relation collections and ``_``-prefixed computed fields are stripped;
- foreign-key ids become ``Connect`` references, so the store checks that
  the referenced row exists;
- ISO timestamps (``*_at`` columns and declared ``datetime_fields``) and
  stringified decimals are turned back into native values;
- for accounts, the create payload carries a placeholder credential and
  the update payload never touches the stored one.

Records without an id are skipped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from records_backup.adapters.base import Connect, DatabaseClient
from records_backup.backup.models import TableDef
from records_backup.backup.tables import table_def

logger = logging.getLogger(__name__)

# Not a valid password hash: restored accounts must reset their credential.
RESTORED_CREDENTIAL_PLACEHOLDER = "!restored:password-reset-required"


@dataclass(frozen=True)
class UpsertPlan:
    pk: str
    record_id: Any
    create: dict[str, Any]
    update: dict[str, Any]


def _restore_value(definition: TableDef, column: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if column.endswith("_at") or column in definition.datetime_fields:
        return datetime.fromisoformat(value)
    if column in definition.decimal_fields:
        return Decimal(value)
    return value


def build_upsert(definition: TableDef, record: dict[str, Any]) -> UpsertPlan | None:
    """Build the create/update payloads for one record.

    Returns:
        ``UpsertPlan``, or ``None`` when the record has no usable id.
    """
    record_id = record.get(definition.pk)
    if record_id is None or record_id == "":
        return None

    fk_tables = {fk.field: fk.table for fk in definition.foreign_keys}
    relation_fields = set(definition.relation_fields)

    payload: dict[str, Any] = {}
    for column, value in record.items():
        if column.startswith("_") or column in relation_fields:
            continue
        if column == definition.credential_field:
            continue
        if column in fk_tables and value is not None:
            payload[column] = Connect(table=fk_tables[column], id=value)
            continue
        payload[column] = _restore_value(definition, column, value)

    create = dict(payload)
    if definition.credential_field:
        create[definition.credential_field] = RESTORED_CREDENTIAL_PLACEHOLDER

    update = {k: v for k, v in payload.items() if k != definition.pk}

    return UpsertPlan(pk=definition.pk, record_id=record_id, create=create, update=update)


async def upsert_record(tx: DatabaseClient, table: str, record: dict[str, Any]) -> bool:
    """Create or update one record inside the caller's transaction.

    Args:
        tx: Transaction-scoped client from ``DatabaseClient.transaction()``.
        table: Backup-target table name.
        record: Record from a snapshot document.

    Returns:
        ``True`` if the record was upserted, ``False`` if it was skipped.
    """
    definition = table_def(table)
    plan = build_upsert(definition, record)
    if plan is None:
        logger.debug("Skipping %s record without %s", table, definition.pk)
        return False

    await tx.upsert(
        definition.sql_table,
        create=plan.create,
        update=plan.update,
        pk=plan.pk,
    )
    return True
