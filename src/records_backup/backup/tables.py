"""Table classification: backup-target tables versus master data.

The two sets are fixed and disjoint.  Every other component derives its
working table set by intersecting caller input with
``list_backup_targets()``; unknown names and master-data names are dropped,
never rejected.

Declaration order of ``BackupTargetTable`` is the restore order: a table is
declared after every table its foreign keys point at.

Usage:
    from records_backup.backup.tables import filter_backup_targets, table_def

    filter_backup_targets(["customers", "toxicityTests", "nope"])  # ["customers"]
    table_def("users").columns
"""

from enum import StrEnum

from records_backup.backup.models import ForeignKey, TableDef


class BackupTargetTable(StrEnum):
    """Business-record tables included in snapshots."""

    USERS = "users"
    SYSTEM_SETTINGS = "systemSettings"
    PIPELINE_STAGES = "pipelineStages"
    STAGE_TASKS = "stageTasks"
    CUSTOMERS = "customers"
    LEADS = "leads"
    QUOTATIONS = "quotations"
    CONTRACTS = "contracts"
    STUDIES = "studies"


class MasterDataTable(StrEnum):
    """Reference tables deliberately excluded from backup and restore."""

    TOXICITY_TESTS = "toxicityTests"
    EFFICACY_MODELS = "efficacyModels"
    EFFICACY_PRICE_ITEMS = "efficacyPriceItems"
    MODALITIES = "modalities"
    PACKAGE_TEMPLATES = "packageTemplates"
    TOXICITY_CATEGORIES = "toxicityCategories"
    ANIMAL_CLASSES = "animalClasses"
    SPECIES = "species"
    ROUTES = "routes"


BACKUP_TARGET_TABLES: tuple[str, ...] = tuple(t.value for t in BackupTargetTable)
MASTER_DATA_TABLES: tuple[str, ...] = tuple(t.value for t in MasterDataTable)

_BACKUP_TARGET_SET = frozenset(BACKUP_TARGET_TABLES)
_MASTER_DATA_SET = frozenset(MASTER_DATA_TABLES)

if _BACKUP_TARGET_SET & _MASTER_DATA_SET:
    raise RuntimeError("Backup-target and master-data tables overlap")


# Account columns copied into snapshots.  An allow-list, so a new sensitive
# column stays out of backups until it is added here.  Every name must exist
# on the users table: a missing column fails the whole users read.
USER_BACKUP_COLUMNS = [
    "id",
    "email",
    "name",
    "role",
    "status",
    "department",
    "created_at",
    "updated_at",
]

TABLE_DEFS: dict[BackupTargetTable, TableDef] = {
    BackupTargetTable.USERS: TableDef(
        name="users",
        sql_table="users",
        columns=USER_BACKUP_COLUMNS,
        credential_field="password",
        relation_fields=[
            "customers", "leads", "quotations", "contracts",
            "notifications", "activities", "settings",
        ],
    ),
    BackupTargetTable.SYSTEM_SETTINGS: TableDef(
        name="systemSettings",
        sql_table="system_settings",
    ),
    BackupTargetTable.PIPELINE_STAGES: TableDef(
        name="pipelineStages",
        sql_table="pipeline_stages",
        relation_fields=["tasks", "leads"],
    ),
    BackupTargetTable.STAGE_TASKS: TableDef(
        name="stageTasks",
        sql_table="stage_tasks",
        foreign_keys=[ForeignKey(table="pipeline_stages", field="stage_id")],
        relation_fields=["stage"],
    ),
    BackupTargetTable.CUSTOMERS: TableDef(
        name="customers",
        sql_table="customers",
        soft_delete=True,
        foreign_keys=[ForeignKey(table="users", field="user_id")],
        relation_fields=["user", "leads", "quotations", "contracts", "requesters"],
    ),
    BackupTargetTable.LEADS: TableDef(
        name="leads",
        sql_table="leads",
        soft_delete=True,
        foreign_keys=[
            ForeignKey(table="customers", field="customer_id"),
            ForeignKey(table="users", field="user_id"),
            ForeignKey(table="pipeline_stages", field="stage_id"),
        ],
        relation_fields=["customer", "user", "stage", "activities", "quotations"],
        datetime_fields=["expected_date", "expected_close_date"],
    ),
    BackupTargetTable.QUOTATIONS: TableDef(
        name="quotations",
        sql_table="quotations",
        soft_delete=True,
        foreign_keys=[
            ForeignKey(table="customers", field="customer_id"),
            ForeignKey(table="users", field="user_id"),
            ForeignKey(table="leads", field="lead_id"),
        ],
        relation_fields=["customer", "user", "lead", "contract"],
        datetime_fields=["valid_until", "quotation_date"],
        decimal_fields=["subtotal", "discount_amount", "total_amount"],
    ),
    BackupTargetTable.CONTRACTS: TableDef(
        name="contracts",
        sql_table="contracts",
        soft_delete=True,
        foreign_keys=[
            ForeignKey(table="customers", field="customer_id"),
            ForeignKey(table="quotations", field="quotation_id"),
            ForeignKey(table="users", field="user_id"),
        ],
        relation_fields=["customer", "quotation", "user", "studies", "payments", "amendments"],
        datetime_fields=["signed_date", "start_date", "end_date"],
        decimal_fields=["total_amount", "paid_amount"],
    ),
    BackupTargetTable.STUDIES: TableDef(
        name="studies",
        sql_table="studies",
        soft_delete=True,
        foreign_keys=[ForeignKey(table="contracts", field="contract_id")],
        relation_fields=["contract", "documents"],
        datetime_fields=[
            "start_date", "expected_end_date", "received_date",
            "report_draft_date", "report_final_date",
        ],
    ),
}

if set(TABLE_DEFS) != set(BackupTargetTable):
    missing = sorted(set(BackupTargetTable) - set(TABLE_DEFS))
    raise RuntimeError(f"Backup-target tables without a TableDef: {missing}")


# ============================================================================
# Predicates and enumeration
# ============================================================================


def is_backup_target(name: str) -> bool:
    """True if ``name`` is a backup-target table."""
    return name in _BACKUP_TARGET_SET


def is_master_data(name: str) -> bool:
    """True if ``name`` is a master-data table."""
    return name in _MASTER_DATA_SET


def list_backup_targets() -> list[str]:
    """All backup-target tables in declaration (restore) order."""
    return list(BACKUP_TARGET_TABLES)


def list_master_data() -> list[str]:
    """All master-data tables."""
    return list(MASTER_DATA_TABLES)


def filter_backup_targets(requested: list[str] | None) -> list[str]:
    """Intersect ``requested`` with the backup targets, in declaration order.

    ``None`` selects every backup target; an empty list selects none.
    Master-data and unknown names are silently dropped.
    """
    if requested is None:
        return list_backup_targets()
    wanted = set(requested)
    return [name for name in BACKUP_TARGET_TABLES if name in wanted]


def table_def(name: str) -> TableDef:
    """Look up the ``TableDef`` for a backup-target table.

    Raises:
        ValueError: If ``name`` is not a backup-target table.
    """
    return TABLE_DEFS[BackupTargetTable(name)]
