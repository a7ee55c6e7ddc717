"""CLI for creating, inspecting and restoring business-record backups.

Usage:
    DB_PROFILE=local records-backup connect
    records-backup status
    records-backup tables
    records-backup create --table customers --table leads
    records-backup list --type AUTO --status COMPLETED
    records-backup restore <backup-id> --dry-run
    records-backup restore <backup-id> --table customers --yes
    records-backup restore-file backups/backup_2025-01-15T10-30-00-000Z.json --dry-run
    records-backup prune --retention-days 7

Commands:
    connect      - Test the connection for a profile and make it current
    status       - Show current connection status
    profiles     - List available profiles
    tables       - Show backup-target and master-data tables
    create       - Create a MANUAL backup
    list         - List backups (paginated)
    show         - Show one backup
    delete       - Delete a backup and its stored artifact
    download     - Write a backup's document to a file
    restore      - Restore from a COMPLETED backup
    restore-file - Restore from a backup document on disk
    validate     - Validate a backup document on disk
    scheduled    - Create an AUTO backup (for cron / schedulers)
    prune        - Delete AUTO backups past the retention window
    reconcile    - Mark stuck PENDING/IN_PROGRESS backups FAILED
    summary      - Show backup status summary
"""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import AsyncIterator

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm
from rich.table import Table

from records_backup.backup.codec import deserialize, load_document, validate_document
from records_backup.backup.errors import BackupError
from records_backup.backup.models import (
    BackupFilters,
    BackupResponse,
    BackupStatus,
    BackupType,
    RestoreOptions,
    RestoreResult,
)
from records_backup.backup.retention import (
    backup_status_summary,
    prune_expired_backups,
    run_scheduled_backup,
)
from records_backup.backup.service import BackupService
from records_backup.backup.tables import list_backup_targets, list_master_data
from records_backup.config.loader import load_db_config
from records_backup.config.models import BackupSettings
from records_backup.factory import (
    ProfileNotFoundError,
    connect_and_validate,
    get_adapter,
    read_profile_lock,
)

console = Console()

_STATUS_STYLES = {
    BackupStatus.PENDING: "yellow",
    BackupStatus.IN_PROGRESS: "cyan",
    BackupStatus.COMPLETED: "green",
    BackupStatus.FAILED: "red",
}


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    for name in ("sqlalchemy.engine", "sqlalchemy.pool"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _load_settings() -> BackupSettings:
    try:
        return load_db_config().backup
    except FileNotFoundError:
        return BackupSettings()


@asynccontextmanager
async def _backup_service(args: argparse.Namespace) -> AsyncIterator[BackupService]:
    """Service bound to a fresh adapter for the active profile; closed on exit."""
    adapter = await get_adapter(
        env_prefix=getattr(args, "env_prefix", ""),
        database_url=getattr(args, "database_url", None),
    )
    try:
        yield BackupService(adapter, _load_settings())
    finally:
        await adapter.close()


def _styled_status(status: BackupStatus) -> str:
    style = _STATUS_STYLES.get(status, "")
    return f"[{style}]{status}[/{style}]" if style else str(status)


def _print_backup(backup: BackupResponse) -> None:
    table = Table(title=f"Backup {backup.id}", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Filename", backup.filename)
    table.add_row("Status", _styled_status(backup.status))
    table.add_row("Type", backup.type)
    table.add_row("Size", f"{backup.size} bytes")
    table.add_row("Created", backup.created_at.isoformat())
    console.print(table)


def _print_restore_result(result: RestoreResult) -> None:
    if result.restored_tables:
        table = Table(
            title="Dry Run" if result.dry_run else "Restored",
            show_header=True,
            header_style="bold",
        )
        table.add_column("Table")
        table.add_column("Records", justify="right")
        for name in result.restored_tables:
            table.add_row(name, str(result.record_counts[name]))
        console.print(table)

    if result.success:
        if result.dry_run:
            console.print("[bold yellow]DRY RUN[/bold yellow] - No changes made.")
        elif not result.restored_tables:
            console.print("[yellow]Nothing to restore.[/yellow]")
        else:
            console.print("[bold green]v[/bold green] Restore complete.")
    else:
        console.print("[bold red]x[/bold red] Restore failed.")
        for error in result.errors or []:
            console.print(f"  [red]{error}[/red]")


def _confirm_restore(args: argparse.Namespace, source: str) -> bool:
    if args.yes or args.dry_run:
        return True
    tables = ", ".join(args.tables) if args.tables else "all backup-target tables"
    console.print(f"[bold yellow]![/bold yellow] This will upsert records from: {source}")
    console.print(f"  Tables: [dim]{tables}[/dim]")
    console.print("  Existing records with the same id will be overwritten.")
    return Confirm.ask("Continue?", default=False, console=console)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_connect(args: argparse.Namespace) -> int:
    """Async implementation for connect command.

    Returns:
        0 on success, 1 on failure.
    """
    previous_profile = read_profile_lock()

    console.print("Connecting to database...", style="dim")
    result = await connect_and_validate(env_prefix=args.env_prefix)

    if not result.success:
        console.print()
        console.print(f"[bold red]x[/bold red] {result.error}")
        return 1

    console.print()
    console.print(
        f"[bold green]v[/bold green] Connected to profile: "
        f"[bold cyan]{result.profile_name}[/bold cyan]"
    )
    if previous_profile and previous_profile != result.profile_name:
        console.print(
            f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
            f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
        )
    return 0


async def _async_create(args: argparse.Namespace) -> int:
    async with _backup_service(args) as service:
        console.print("Creating backup...", style="dim")
        backup = await service.create_backup(tables=args.tables)

    console.print(f"[bold green]v[/bold green] Backup created: [bold]{backup.id}[/bold]")
    _print_backup(backup)
    return 0


async def _async_list(args: argparse.Namespace) -> int:
    filters = BackupFilters(
        page=args.page,
        limit=args.limit,
        type=args.type,
        status=args.status,
    )
    async with _backup_service(args) as service:
        result = await service.list_backups(filters)

    table = Table(title="Backups", show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Filename")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    for backup in result.data:
        table.add_row(
            backup.id,
            backup.filename,
            backup.type,
            _styled_status(backup.status),
            backup.size,
            backup.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)

    p = result.pagination
    console.print(f"[dim]Page {p.page} of {max(p.total_pages, 1)} ({p.total} total)[/dim]")
    return 0


async def _async_show(args: argparse.Namespace) -> int:
    async with _backup_service(args) as service:
        backup = await service.get_backup(args.backup_id)
    _print_backup(backup)
    return 0


async def _async_delete(args: argparse.Namespace) -> int:
    async with _backup_service(args) as service:
        await service.delete_backup(args.backup_id)
    console.print(f"[bold green]v[/bold green] Deleted backup {args.backup_id}")
    return 0


async def _async_download(args: argparse.Namespace) -> int:
    async with _backup_service(args) as service:
        download = await service.get_backup_download(args.backup_id)

    output = Path(args.output) if args.output else Path(download.filename)
    output.write_bytes(download.content)
    console.print(
        f"[bold green]v[/bold green] Wrote {download.content_length} bytes to "
        f"[cyan]{output}[/cyan]"
    )
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    if not _confirm_restore(args, f"backup {args.backup_id} ({args.source})"):
        console.print("Cancelled.")
        return 0

    options = RestoreOptions(tables=args.tables, dry_run=args.dry_run, source=args.source)
    async with _backup_service(args) as service:
        result = await service.restore_backup(args.backup_id, options)

    _print_restore_result(result)
    return 0 if result.success else 1


async def _async_restore_file(args: argparse.Namespace) -> int:
    try:
        document = load_document(Path(args.path).read_bytes())
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not _confirm_restore(args, args.path):
        console.print("Cancelled.")
        return 0

    options = RestoreOptions(tables=args.tables, dry_run=args.dry_run)
    async with _backup_service(args) as service:
        result = await service.restore_document(document, options)

    _print_restore_result(result)
    return 0 if result.success else 1


async def _async_scheduled(args: argparse.Namespace) -> int:
    async with _backup_service(args) as service:
        backup = await run_scheduled_backup(service)
    console.print(f"[bold green]v[/bold green] Scheduled backup created: [bold]{backup.id}[/bold]")
    return 0


async def _async_prune(args: argparse.Namespace) -> int:
    async with _backup_service(args) as service:
        retention_days = args.retention_days or service.settings.retention_days
        deleted = await prune_expired_backups(service, retention_days=retention_days)

    if deleted:
        console.print(
            f"[bold green]v[/bold green] Pruned {len(deleted)} AUTO backups "
            f"older than {retention_days} days"
        )
        for backup_id in deleted:
            console.print(f"  [dim]{backup_id}[/dim]")
    else:
        console.print("[dim]No expired backups.[/dim]")
    return 0


async def _async_reconcile(args: argparse.Namespace) -> int:
    async with _backup_service(args) as service:
        minutes = args.older_than_minutes or service.settings.stale_after_minutes
        failed = await service.lifecycle.reconcile_stale(timedelta(minutes=minutes))

    if failed:
        console.print(f"[bold yellow]![/bold yellow] Marked {len(failed)} stale backups FAILED")
        for backup_id in failed:
            console.print(f"  [dim]{backup_id}[/dim]")
    else:
        console.print("[dim]No stale backups.[/dim]")
    return 0


async def _async_summary(args: argparse.Namespace) -> int:
    async with _backup_service(args) as service:
        summary = await backup_status_summary(service)

    table = Table(title="Backup Status", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Total backups", str(summary.total_backups))
    table.add_row("Last 7 days", str(summary.last_7_days_backups))
    table.add_row("Total size", f"{summary.total_size_bytes} bytes")
    if summary.latest:
        table.add_row(
            "Latest",
            f"{summary.latest.filename} ({_styled_status(summary.latest.status)})",
        )
    else:
        table.add_row("Latest", "[dim]none[/dim]")
    console.print(table)
    return 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def _run(coro) -> int:
    """Run an async command, turning expected failures into exit code 1."""
    try:
        return asyncio.run(coro)
    except (ProfileNotFoundError, FileNotFoundError, KeyError, ValidationError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except BackupError as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1


def cmd_connect(args: argparse.Namespace) -> int:
    """Test the connection for the active profile and make it current."""
    return asyncio.run(_async_connect(args))


def cmd_status(args: argparse.Namespace) -> int:
    """Show current connection status.

    Reads only local files (lock file and TOML config) -- no database calls.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if profile:
        table = Table(title="Connection Status", show_header=False)
        table.add_column("Key", style="dim")
        table.add_column("Value")

        table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
        table.add_row("Profile source", ".db-profile (validated)")

        try:
            config = load_db_config()
            if profile in config.profiles:
                p = config.profiles[profile]
                table.add_row("Provider", p.provider)
                if p.description:
                    table.add_row("Description", p.description)
            table.add_row("Artifact directory", config.backup.output_dir or "[dim]disabled[/dim]")
        except FileNotFoundError:
            table.add_row("Warning", "[yellow]db.toml not found[/yellow]")

        console.print(table)
    else:
        console.print("[yellow]No validated profile.[/yellow]")
        console.print(
            "[dim]Run:[/dim] [cyan]DB_PROFILE=<name> records-backup connect[/cyan]"
        )

    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = load_db_config()
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = read_profile_lock()

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        table.add_row(
            marker,
            f"[bold cyan]{name}[/bold cyan]" if name == current else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")

    return 0


def cmd_tables(args: argparse.Namespace) -> int:
    """Show which tables are backed up and which are master data."""
    table = Table(title="Tables", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Class")
    for name in list_backup_targets():
        table.add_row(name, "[green]backup target[/green]")
    for name in list_master_data():
        table.add_row(name, "[dim]master data (never backed up)[/dim]")
    console.print(table)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a backup document on disk.

    Returns:
        0 if valid, 1 otherwise.
    """
    try:
        data = deserialize(Path(args.path).read_bytes())
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    report = validate_document(data)
    for warning in report["warnings"]:
        console.print(f"  [yellow]warning:[/yellow] {warning}")
    for error in report["errors"]:
        console.print(f"  [red]error:[/red] {error}")

    if report["valid"]:
        console.print("[bold green]v[/bold green] Backup document is valid")
        return 0
    console.print("[bold red]x[/bold red] Backup document is invalid")
    return 1


def cmd_create(args: argparse.Namespace) -> int:
    return _run(_async_create(args))


def cmd_list(args: argparse.Namespace) -> int:
    return _run(_async_list(args))


def cmd_show(args: argparse.Namespace) -> int:
    return _run(_async_show(args))


def cmd_delete(args: argparse.Namespace) -> int:
    return _run(_async_delete(args))


def cmd_download(args: argparse.Namespace) -> int:
    return _run(_async_download(args))


def cmd_restore(args: argparse.Namespace) -> int:
    return _run(_async_restore(args))


def cmd_restore_file(args: argparse.Namespace) -> int:
    return _run(_async_restore_file(args))


def cmd_scheduled(args: argparse.Namespace) -> int:
    return _run(_async_scheduled(args))


def cmd_prune(args: argparse.Namespace) -> int:
    return _run(_async_prune(args))


def cmd_reconcile(args: argparse.Namespace) -> int:
    return _run(_async_reconcile(args))


def cmd_summary(args: argparse.Namespace) -> int:
    return _run(_async_summary(args))


# ============================================================================
# Main entry point
# ============================================================================


def _add_restore_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--table",
        dest="tables",
        action="append",
        help="Restore only this table (repeatable; default: all backup targets)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be restored without making changes",
    )
    parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Skip the confirmation prompt",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="records-backup",
        description="Backup and restore of business records",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Connect to this URL instead of a db.toml profile",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_connect = subparsers.add_parser("connect", help="Test the connection and make the profile current")
    p_connect.set_defaults(func=cmd_connect)

    p_status = subparsers.add_parser("status", help="Show current connection status")
    p_status.set_defaults(func=cmd_status)

    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    p_tables = subparsers.add_parser("tables", help="Show backup-target and master-data tables")
    p_tables.set_defaults(func=cmd_tables)

    p_create = subparsers.add_parser("create", help="Create a MANUAL backup")
    p_create.add_argument(
        "--table",
        dest="tables",
        action="append",
        help="Back up only this table (repeatable; default: all backup targets)",
    )
    p_create.set_defaults(func=cmd_create)

    p_list = subparsers.add_parser("list", help="List backups")
    p_list.add_argument("--page", type=int, default=1)
    p_list.add_argument("--limit", type=int, default=20)
    p_list.add_argument("--type", type=BackupType, choices=list(BackupType))
    p_list.add_argument("--status", type=BackupStatus, choices=list(BackupStatus))
    p_list.set_defaults(func=cmd_list)

    p_show = subparsers.add_parser("show", help="Show one backup")
    p_show.add_argument("backup_id")
    p_show.set_defaults(func=cmd_show)

    p_delete = subparsers.add_parser("delete", help="Delete a backup and its stored artifact")
    p_delete.add_argument("backup_id")
    p_delete.set_defaults(func=cmd_delete)

    p_download = subparsers.add_parser("download", help="Write a backup's document to a file")
    p_download.add_argument("backup_id")
    p_download.add_argument("--output", "-o", help="Output path (default: the backup filename)")
    p_download.set_defaults(func=cmd_download)

    p_restore = subparsers.add_parser("restore", help="Restore from a COMPLETED backup")
    p_restore.add_argument("backup_id")
    p_restore.add_argument(
        "--source",
        choices=["live", "artifact"],
        default="live",
        help="Re-collect live data (default) or replay the stored artifact",
    )
    _add_restore_arguments(p_restore)
    p_restore.set_defaults(func=cmd_restore)

    p_restore_file = subparsers.add_parser("restore-file", help="Restore from a backup document on disk")
    p_restore_file.add_argument("path")
    _add_restore_arguments(p_restore_file)
    p_restore_file.set_defaults(func=cmd_restore_file)

    p_validate = subparsers.add_parser("validate", help="Validate a backup document on disk")
    p_validate.add_argument("path")
    p_validate.set_defaults(func=cmd_validate)

    p_scheduled = subparsers.add_parser("scheduled", help="Create an AUTO backup")
    p_scheduled.set_defaults(func=cmd_scheduled)

    p_prune = subparsers.add_parser("prune", help="Delete AUTO backups past the retention window")
    p_prune.add_argument("--retention-days", type=int, default=None)
    p_prune.set_defaults(func=cmd_prune)

    p_reconcile = subparsers.add_parser("reconcile", help="Mark stuck backups FAILED")
    p_reconcile.add_argument("--older-than-minutes", type=int, default=None)
    p_reconcile.set_defaults(func=cmd_reconcile)

    p_summary = subparsers.add_parser("summary", help="Show backup status summary")
    p_summary.set_defaults(func=cmd_summary)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
