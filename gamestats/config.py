"""Configuration for the gameplay statistics cache."""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

JOURNAL_MODES = ("DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF")


def default_storage_dir() -> Path:
    """Per-user data directory following the XDG base directory layout."""
    xdg_data_home = os.environ.get("XDG_DATA_HOME", str(Path.home() / ".local" / "share"))
    return Path(xdg_data_home) / "gameplay-stats"


class StorageSettings(BaseModel):
    """Storage settings with validation."""

    storage_dir: Path = Field(
        default_factory=default_storage_dir,
        description="Root directory holding one database per client and user",
    )
    database_filename: str = Field(
        default="gameplay.db", min_length=1, description="Database file name"
    )

    # Connection pool
    pool_size: int = Field(default=4, ge=1, description="Maximum pooled connections")
    max_lifetime_sec: int = Field(
        default=300, gt=0, description="Rotate pooled connections after this long (sec)"
    )
    acquire_timeout_sec: float = Field(
        default=30.0, gt=0, description="How long to wait for a free connection (sec)"
    )

    # SQLite pragmas
    busy_timeout_ms: int = Field(
        default=30000, ge=0, description="How long to wait on a locked database (ms)"
    )
    journal_mode: str = Field(default="WAL", description="SQLite journal mode")

    model_config = ConfigDict(extra="ignore")

    @field_validator("journal_mode")
    @classmethod
    def validate_journal_mode(cls, v: str) -> str:
        mode = v.upper()
        if mode not in JOURNAL_MODES:
            raise ValueError(
                f"journal_mode must be one of {', '.join(JOURNAL_MODES)}, got {v!r}"
            )
        return mode

    def database_path(self, client_id: str, user_id: str) -> Path:
        """Resolve the database file for one client/user pair.

        Args:
            client_id: Game client identifier
            user_id: Platform user identifier

        Returns:
            Path to <storage_dir>/<client_id>/<user_id>/<database_filename>

        Raises:
            ValueError: If an identifier is empty or not a single path component
        """
        for name, value in (("client_id", client_id), ("user_id", user_id)):
            if not value or value in (".", "..") or Path(value).name != value or "\\" in value:
                raise ValueError(f"Invalid {name}: {value!r}")
        return self.storage_dir / client_id / user_id / self.database_filename
