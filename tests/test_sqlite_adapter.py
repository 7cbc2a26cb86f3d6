"""Tests for SQLiteAdapter, its connection pool and per-user databases."""

import asyncio

import pytest

from gamestats.database_adapter import QueryError, StorageConnectionError
from gamestats.sqlite_adapter import ConnectionPool, SQLiteAdapter, open_user_database


async def table_names(adapter):
    async with adapter.connection() as conn:
        async with conn.execute("SELECT name FROM sqlite_master WHERE type='table'") as cursor:
            return {row[0] for row in await cursor.fetchall()}


class TestInitialize:
    """Test adapter initialization."""

    def test_creates_database_and_parent_dirs(self, temp_dir):
        """Test initialize creates missing directories and the database file."""
        db_path = temp_dir / "nested" / "deeper" / "gameplay.db"

        async def scenario():
            async with SQLiteAdapter(db_path):
                pass

        asyncio.run(scenario())

        assert db_path.exists()

    def test_connection_before_initialize_fails(self, temp_db_path):
        """Test using an adapter before initialize() raises a connection error."""

        async def scenario():
            adapter = SQLiteAdapter(temp_db_path)
            with pytest.raises(StorageConnectionError):
                async with adapter.connection():
                    pass

        asyncio.run(scenario())

    def test_unwritable_location_fails(self, temp_dir):
        """Test a database path below a regular file cannot be set up."""
        blocker = temp_dir / "not_a_dir"
        blocker.write_text("x")

        async def scenario():
            with pytest.raises(StorageConnectionError):
                await SQLiteAdapter(blocker / "gameplay.db").initialize()

        asyncio.run(scenario())

    def test_pragmas_applied(self, make_adapter):
        """Test connections use the configured journal mode and busy timeout."""

        async def scenario():
            async with make_adapter(journal_mode="DELETE", busy_timeout_ms=1234) as adapter:
                async with adapter.connection() as conn:
                    async with conn.execute("PRAGMA journal_mode") as cursor:
                        mode = (await cursor.fetchone())[0]
                    async with conn.execute("PRAGMA busy_timeout") as cursor:
                        timeout = (await cursor.fetchone())[0]
                    return mode, timeout

        assert asyncio.run(scenario()) == ("delete", 1234)


class TestTransaction:
    """Test explicit write transactions."""

    def test_commit_on_success(self, make_adapter):
        """Test changes made in a transaction are visible afterwards."""

        async def scenario():
            async with make_adapter() as adapter:
                async with adapter.transaction() as conn:
                    await conn.execute("INSERT INTO game_info VALUES (42)")
                async with adapter.connection() as conn:
                    async with conn.execute("SELECT time_played FROM game_info") as cursor:
                        return [row[0] for row in await cursor.fetchall()]

        assert asyncio.run(scenario()) == [42]

    def test_rollback_on_error(self, make_adapter):
        """Test an exception inside the block discards its changes."""

        async def scenario():
            async with make_adapter() as adapter:
                with pytest.raises(ValueError):
                    async with adapter.transaction() as conn:
                        await conn.execute("INSERT INTO game_info VALUES (42)")
                        raise ValueError("abort")
                async with adapter.connection() as conn:
                    assert not conn.in_transaction
                    async with conn.execute("SELECT COUNT(*) FROM game_info") as cursor:
                        return (await cursor.fetchone())[0]

        assert asyncio.run(scenario()) == 0

    def test_rollback_on_cancellation(self, make_adapter):
        """Test a cancelled transaction commits nothing."""

        async def scenario():
            async with make_adapter() as adapter:
                started = asyncio.Event()

                async def slow_write():
                    async with adapter.transaction() as conn:
                        await conn.execute("INSERT INTO game_info VALUES (1)")
                        started.set()
                        await asyncio.sleep(10)

                task = asyncio.create_task(slow_write())
                await started.wait()
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task

                async with adapter.connection() as conn:
                    async with conn.execute("SELECT COUNT(*) FROM game_info") as cursor:
                        return (await cursor.fetchone())[0]

        assert asyncio.run(scenario()) == 0

    def test_begin_failure_raises_query_error(self, make_adapter):
        """Test a writer that cannot take the write lock fails with QueryError."""

        async def scenario():
            async with make_adapter(busy_timeout_ms=0) as first, make_adapter(
                busy_timeout_ms=0
            ) as second:
                async with first.transaction():
                    with pytest.raises(QueryError):
                        async with second.transaction():
                            pass

        asyncio.run(scenario())


class TestConnectionPool:
    """Test ConnectionPool behaviour."""

    def test_reuses_connections(self, temp_db_path):
        """Test a returned connection is handed out again."""

        async def scenario():
            pool = ConnectionPool(temp_db_path, pool_size=2)
            try:
                async with pool.get_connection() as first:
                    pass
                async with pool.get_connection() as second:
                    pass
                return first is second
            finally:
                await pool.close_all()

        assert asyncio.run(scenario()) is True

    def test_acquire_timeout(self, temp_db_path):
        """Test waiting for a connection from an exhausted pool times out."""

        async def scenario():
            pool = ConnectionPool(temp_db_path, pool_size=1, acquire_timeout=0.05)
            try:
                async with pool.get_connection():
                    with pytest.raises(StorageConnectionError):
                        async with pool.get_connection():
                            pass
            finally:
                await pool.close_all()

        asyncio.run(scenario())

    def test_waiter_gets_released_connection(self, temp_db_path):
        """Test a waiting caller receives a connection once one is returned."""

        async def scenario():
            pool = ConnectionPool(temp_db_path, pool_size=1, acquire_timeout=5.0)
            try:
                async with pool.get_connection() as held:

                    async def wait_for_connection():
                        async with pool.get_connection() as conn:
                            return conn

                    waiter = asyncio.create_task(wait_for_connection())
                    await asyncio.sleep(0.01)
                    assert not waiter.done()
                got = await waiter
                return got is held
            finally:
                await pool.close_all()

        assert asyncio.run(scenario()) is True

    def test_stale_connection_rotated(self, temp_db_path):
        """Test connections older than max lifetime are replaced."""

        async def scenario():
            pool = ConnectionPool(temp_db_path, pool_size=1, max_lifetime_sec=0)
            try:
                async with pool.get_connection() as first:
                    pass
                await asyncio.sleep(0.01)
                async with pool.get_connection() as second:
                    pass
                return first is second
            finally:
                await pool.close_all()

        assert asyncio.run(scenario()) is False

    def test_waiter_served_when_connection_discarded(self, temp_db_path):
        """Test a discarded connection is replaced for a caller already waiting."""

        async def scenario():
            pool = ConnectionPool(temp_db_path, pool_size=1, acquire_timeout=5.0)
            try:
                async with pool.get_connection() as held:
                    await held.execute("BEGIN")

                    async def wait_for_connection():
                        async with pool.get_connection() as conn:
                            return conn

                    waiter = asyncio.create_task(wait_for_connection())
                    await asyncio.sleep(0.01)
                    assert not waiter.done()
                got = await asyncio.wait_for(waiter, timeout=1.0)
                return got is not held
            finally:
                await pool.close_all()

        assert asyncio.run(scenario()) is True

    def test_close_all_closes_checked_out_connections(self, temp_db_path):
        """Test a connection in use during close_all is closed on return."""

        async def scenario():
            pool = ConnectionPool(temp_db_path, pool_size=2)
            async with pool.get_connection() as conn:
                await pool.close_all()
                await conn.execute("SELECT 1")
            with pytest.raises(ValueError):
                await conn.execute("SELECT 1")
            with pytest.raises(StorageConnectionError):
                async with pool.get_connection():
                    pass
            return pool._created_connections

        assert asyncio.run(scenario()) == 0

    def test_adapter_close_with_connection_in_use(self, make_adapter):
        """Test closing the adapter while a connection is held still closes it."""

        async def scenario():
            adapter = make_adapter()
            await adapter.initialize()
            async with adapter.connection() as conn:
                await adapter.close()
            with pytest.raises(ValueError):
                await conn.execute("SELECT 1")

        asyncio.run(scenario())


class TestOpenUserDatabase:
    """Test per client/user database provisioning."""

    def test_creates_per_user_database(self, settings):
        """Test the database lands at <storage>/<client>/<user>/gameplay.db."""

        async def scenario():
            adapter = await open_user_database("client-1", "user-42", settings)
            try:
                return adapter.db_path, await table_names(adapter)
            finally:
                await adapter.close()

        db_path, tables = asyncio.run(scenario())

        assert db_path == settings.storage_dir / "client-1" / "user-42" / "gameplay.db"
        assert db_path.exists()
        assert {"statistic", "int_statistic", "float_statistic", "database_info"} <= tables

    def test_users_are_isolated(self, settings):
        """Test two users of the same client get separate databases."""

        async def scenario():
            first = await open_user_database("client", "alice", settings)
            second = await open_user_database("client", "bob", settings)
            try:
                return first.db_path != second.db_path
            finally:
                await first.close()
                await second.close()

        assert asyncio.run(scenario()) is True

    @pytest.mark.parametrize("client_id,user_id", [("", "u"), ("c", ""), ("..", "u"), ("c", "a/b")])
    def test_invalid_ids_rejected(self, settings, client_id, user_id):
        """Test ids that are not single path components are rejected."""
        with pytest.raises(ValueError):
            asyncio.run(open_user_database(client_id, user_id, settings))
