"""Local cache of per-user gameplay statistics.

Mirrors a remote stats service's statistics into a per-user SQLite
database so they can be read offline and replaced on the next sync.
"""

from .config import StorageSettings
from .database_adapter import (
    DataIntegrityError,
    DatabaseAdapter,
    QueryError,
    StorageConnectionError,
    StorageError,
)
from .models import AvgRateValues, FloatValues, IntValues, Statistic, ValueKind
from .sqlite_adapter import SQLiteAdapter, open_user_database
from .statistics_store import is_synced, load_all, replace_all

__all__ = [
    # Models
    "Statistic",
    "ValueKind",
    "IntValues",
    "FloatValues",
    "AvgRateValues",
    # Storage
    "StorageSettings",
    "DatabaseAdapter",
    "SQLiteAdapter",
    "open_user_database",
    # Statistics
    "load_all",
    "replace_all",
    "is_synced",
    # Errors
    "StorageError",
    "StorageConnectionError",
    "QueryError",
    "DataIntegrityError",
]
