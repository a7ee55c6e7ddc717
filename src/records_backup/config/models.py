"""Pydantic models for database and backup configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"


class BackupSettings(BaseModel):
    """``[backup]`` section of db.toml."""

    output_dir: str | None = "backups"  # None disables artifact files
    restore_timeout_seconds: float = Field(default=60.0, gt=0)
    stale_after_minutes: int = Field(default=30, gt=0)
    retention_days: int = Field(default=7, gt=0)


class DatabaseConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    backup: BackupSettings = Field(default_factory=BackupSettings)


# ============================================================================
# Connection Result
# ============================================================================


class ConnectionResult(BaseModel):
    """Result of connect_and_validate()."""

    success: bool
    profile_name: str | None = None
    error: str | None = None
