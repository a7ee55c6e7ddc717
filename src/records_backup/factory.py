"""Database client factory.

Profile mode: ``db.toml`` holds named profiles; the active profile comes from
the ``<PREFIX>DB_PROFILE`` environment variable or, after a successful
``connect``, from the ``.db-profile`` lock file in the working directory.
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from records_backup.adapters.postgres import AsyncPostgresAdapter
from records_backup.config.loader import load_db_config
from records_backup.config.models import ConnectionResult, DatabaseProfile

logger = logging.getLogger(__name__)

_PROFILE_LOCK_FILE = Path.cwd() / ".db-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip()
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful connection test.
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. ``{env_prefix}DB_PROFILE`` env var
    2. .db-profile file (profile from previous connect)
    3. Raise ProfileNotFoundError

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_prefix}DB_PROFILE=<name> records-backup connect"
    )


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with the URL-quoted password substituted
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


# ============================================================================
# Adapter Factory
# ============================================================================


async def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    jsonb_columns: list[str] | None = None,
) -> AsyncPostgresAdapter:
    """Create a new adapter for a direct URL or a configured profile.

    No caching: every call returns a fresh adapter the caller must close.

    Args:
        profile_name: Profile from db.toml.  Defaults to the active profile.
        env_prefix: Prefix for the ``DB_PROFILE`` environment variable.
        database_url: Direct connection URL; takes precedence over profiles.
        jsonb_columns: Columns that receive JSONB casts on write.

    Raises:
        ProfileNotFoundError: If no profile can be resolved.
        KeyError: If the profile is missing from db.toml.
    """
    if database_url is not None:
        return AsyncPostgresAdapter(database_url, jsonb_columns=jsonb_columns)

    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix=env_prefix)

    config = load_db_config()
    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys())
        raise KeyError(f"Profile '{profile_name}' not found. Available: {available}")

    return AsyncPostgresAdapter(
        resolve_url(config.profiles[profile_name]),
        jsonb_columns=jsonb_columns,
    )


async def connect_and_validate(
    profile_name: str | None = None,
    env_prefix: str = "",
) -> ConnectionResult:
    """Test the connection for a profile and persist it as the active one.

    Returns:
        ConnectionResult with success status or error message
    """
    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix=env_prefix)
        except ProfileNotFoundError as e:
            return ConnectionResult(success=False, error=str(e))

    try:
        adapter = await get_adapter(profile_name=profile_name)
    except (FileNotFoundError, KeyError) as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

    try:
        await adapter.test_connection()
    except Exception as e:
        logger.warning("Connection test failed for profile %s: %s", profile_name, e)
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Failed to connect to database: {e}",
        )
    finally:
        await adapter.close()

    write_profile_lock(profile_name)
    return ConnectionResult(success=True, profile_name=profile_name)
