"""Key/value access to the database_info table."""

import logging

import aiosqlite

log = logging.getLogger("gamestats.database_info")

STATS_RETRIEVED = "stats_retrieved"


class DatabaseInfo:
    """Reads and writes database_info entries on a given connection.

    Values are stored as text. Writes are best-effort: a failed write is
    logged and reported through the return value, never raised, so it can
    run inside a larger transaction without aborting it.
    """

    def __init__(self, conn: aiosqlite.Connection):
        self.conn = conn

    async def get(self, key: str, default: str | None = None) -> str | None:
        """Get a stored value.

        Args:
            key: Entry key
            default: Value returned when the key is absent

        Raises:
            aiosqlite.Error: If the query fails
        """
        async with self.conn.execute(
            "SELECT value FROM database_info WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return default
        return row["value"]

    async def get_bool(self, key: str) -> bool:
        """Interpret a stored integer flag; absent means False.

        Raises:
            aiosqlite.Error: If the query fails
            ValueError: If the stored value is not an integer
        """
        value = await self.get(key)
        if value is None:
            return False
        return int(value) != 0

    async def set(self, key: str, value: str) -> bool:
        """Insert the entry, or update it when the key already exists.

        Returns:
            True if the value was written, False otherwise
        """
        try:
            await self.conn.execute(
                "INSERT INTO database_info (key, value) VALUES (?, ?)", (key, value)
            )
            return True
        except aiosqlite.IntegrityError:
            pass
        except aiosqlite.Error as e:
            log.warning(f"Insert of database_info[{key!r}] failed, trying update: {e}")

        try:
            cursor = await self.conn.execute(
                "UPDATE database_info SET value = ? WHERE key = ?", (value, key)
            )
            updated = cursor.rowcount > 0
            await cursor.close()
        except aiosqlite.Error as e:
            log.warning(f"Could not write database_info[{key!r}]: {e}")
            return False

        if not updated:
            log.warning(f"database_info[{key!r}] was neither inserted nor updated")
        return updated
