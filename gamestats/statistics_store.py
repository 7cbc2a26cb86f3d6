"""Persistence of cached statistics.

Statistics are stored normalized: one row per statistic in `statistic`
(id, key, type tag, increment_only) plus one child row in `int_statistic`
or `float_statistic` depending on the type tag. FLOAT and AVGRATE share the
float table and differ only in the parent's tag.

The local set is only ever replaced wholesale by replace_all(); there is no
per-statistic create, update or delete.
"""

import logging
from collections.abc import Iterable

import aiosqlite

from gamestats.database_adapter import (
    DataIntegrityError,
    DatabaseAdapter,
    QueryError,
)
from gamestats.database_info import STATS_RETRIEVED, DatabaseInfo
from gamestats.models import (
    AvgRateValues,
    FloatValues,
    IntValues,
    Statistic,
    ValueKind,
)

log = logging.getLogger("gamestats.statistics_store")

_SELECT_INT_STATISTICS = """
    SELECT s.id, s.key, s.increment_only,
           i.value, i.default_value, i.min_value, i.max_value, i.max_change
    FROM int_statistic AS i
    JOIN statistic AS s ON s.id = i.id
"""

_SELECT_FLOAT_STATISTICS = """
    SELECT s.id, s.key, s.type, s.increment_only,
           f.value, f.default_value, f.min_value, f.max_value, f.max_change,
           f."window"
    FROM float_statistic AS f
    JOIN statistic AS s ON s.id = f.id
"""

_FLOAT_KINDS = {
    ValueKind.FLOAT.value: FloatValues,
    ValueKind.AVGRATE.value: AvgRateValues,
}


def _payload_fields(row: aiosqlite.Row) -> dict:
    return {
        "value": row["value"],
        "default_value": row["default_value"],
        "min_value": row["min_value"],
        "max_value": row["max_value"],
        "max_change": row["max_change"],
    }


def _int_statistic_from_row(row: aiosqlite.Row) -> Statistic:
    return Statistic(
        stat_id=row["id"],
        key=row["key"],
        window=None,
        increment_only=row["increment_only"] == 1,
        values=IntValues(**_payload_fields(row)),
    )


def _float_statistic_from_row(row: aiosqlite.Row) -> Statistic:
    kind = row["type"]
    values_class = _FLOAT_KINDS.get(kind)
    if values_class is None:
        raise DataIntegrityError(
            f"Statistic {row['id']} ({row['key']!r}) has unsupported type {kind!r}"
        )

    window = row["window"]
    if kind == ValueKind.FLOAT.value and window is not None:
        log.debug(f"Ignoring window {window} stored for FLOAT statistic {row['key']!r}")
        window = None

    return Statistic(
        stat_id=row["id"],
        key=row["key"],
        window=window,
        increment_only=row["increment_only"] == 1,
        values=values_class(**_payload_fields(row)),
    )


async def load_all(adapter: DatabaseAdapter) -> list[Statistic]:
    """Load every persisted statistic.

    Integer statistics come first, then floating ones; within each group the
    order is whatever storage returns, so callers must not rely on it.

    Args:
        adapter: Initialized database adapter

    Returns:
        List of Statistic models

    Raises:
        StorageError: If a connection cannot be acquired or a query fails
        DataIntegrityError: If a float row carries an unknown type tag
    """
    async with adapter.connection() as conn:
        try:
            async with conn.execute(_SELECT_INT_STATISTICS) as cursor:
                int_rows = await cursor.fetchall()
            async with conn.execute(_SELECT_FLOAT_STATISTICS) as cursor:
                float_rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise QueryError(f"Failed to load statistics: {e}") from e

    stats = [_int_statistic_from_row(row) for row in int_rows]
    stats.extend(_float_statistic_from_row(row) for row in float_rows)
    log.debug(f"Loaded {len(stats)} statistics ({len(int_rows)} int, {len(float_rows)} float)")
    return stats


async def _insert_statistic(conn: aiosqlite.Connection, stat: Statistic) -> None:
    values = stat.values
    await conn.execute(
        "INSERT INTO statistic (id, key, type, increment_only, changed) "
        "VALUES (?, ?, ?, ?, 0)",
        (stat.stat_id, stat.key, stat.value_kind.value, int(stat.increment_only)),
    )

    if isinstance(values, IntValues):
        await conn.execute(
            "INSERT INTO int_statistic "
            "(id, value, default_value, min_value, max_value, max_change) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                stat.stat_id,
                values.value,
                values.default_value if values.default_value is not None else 0,
                values.min_value,
                values.max_value,
                values.max_change,
            ),
        )
    else:
        await conn.execute(
            "INSERT INTO float_statistic "
            '(id, value, default_value, min_value, max_value, max_change, "window") '
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                stat.stat_id,
                values.value,
                values.default_value if values.default_value is not None else 0.0,
                values.min_value,
                values.max_value,
                values.max_change,
                stat.window,
            ),
        )


async def replace_all(adapter: DatabaseAdapter, statistics: Iterable[Statistic]) -> None:
    """Replace the whole persisted statistic set in one transaction.

    Deletes every stored statistic, inserts the given ones in order and
    marks stats as retrieved. Either the full new set is committed or the
    previous set stays untouched. Bounds are stored as given, not checked.

    Args:
        adapter: Initialized database adapter
        statistics: The complete new statistic set

    Raises:
        StorageError: If any delete, insert or the commit fails
    """
    statistics = list(statistics)
    log.info(f"Replacing local statistics with {len(statistics)} entries")

    try:
        async with adapter.transaction() as conn:
            try:
                await conn.execute("DELETE FROM int_statistic")
                await conn.execute("DELETE FROM float_statistic")
                await conn.execute("DELETE FROM statistic")
                for stat in statistics:
                    await _insert_statistic(conn, stat)
            except (aiosqlite.Error, OverflowError) as e:
                raise QueryError(f"Failed to store statistics: {e}") from e

            await DatabaseInfo(conn).set(STATS_RETRIEVED, "1")
    except Exception as e:
        log.error(f"Statistics sync failed, previous set kept: {e}")
        raise

    log.info(f"Statistics sync complete ({len(statistics)} entries)")


async def is_synced(adapter: DatabaseAdapter) -> bool:
    """Check whether a statistics sync has ever completed.

    Never raises: any failure reads as "not synced", so the caller falls
    back to a fresh sync.
    """
    try:
        async with adapter.connection() as conn:
            return await DatabaseInfo(conn).get_bool(STATS_RETRIEVED)
    except Exception as e:
        log.debug(f"Sync flag check failed, treating as not synced: {e}")
        return False
