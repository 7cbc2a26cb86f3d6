"""Shared test fixtures for gameplay statistics cache tests."""

import tempfile
from pathlib import Path

import pytest

from gamestats.config import StorageSettings
from gamestats.models import AvgRateValues, FloatValues, IntValues, Statistic
from gamestats.sqlite_adapter import SQLiteAdapter


@pytest.fixture
def temp_dir():
    """Create a temporary directory and clean up afterwards."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db_path(temp_dir):
    """Path of a database file that does not exist yet."""
    return temp_dir / "gameplay.db"


@pytest.fixture
def settings(temp_dir):
    """Storage settings rooted in the temporary directory."""
    return StorageSettings(storage_dir=temp_dir / "storage", acquire_timeout_sec=2.0)


@pytest.fixture
def make_adapter(temp_db_path, settings):
    """Factory for uninitialized adapters on the temporary database.

    Use as ``async with make_adapter() as adapter`` inside the coroutine the
    test runs, so the adapter lives on that event loop.
    """

    def factory(**overrides) -> SQLiteAdapter:
        return SQLiteAdapter(temp_db_path, settings.model_copy(update=overrides))

    return factory


@pytest.fixture
def sample_statistics():
    """One statistic of each value kind."""
    return [
        Statistic(
            stat_id=1,
            key="kills",
            increment_only=True,
            values=IntValues(value=5, default_value=0, min_value=0, max_value=100),
        ),
        Statistic(
            stat_id=2,
            key="accuracy",
            window=30.0,
            values=AvgRateValues(value=0.5, default_value=0.0),
        ),
        Statistic(
            stat_id=3,
            key="distance_walked",
            values=FloatValues(
                value=12.25, default_value=1.5, min_value=0.0, max_change=10.0
            ),
        ),
    ]
