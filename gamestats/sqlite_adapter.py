"""SQLite adapter for the gameplay statistics cache."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from gamestats.config import StorageSettings
from gamestats.database_adapter import (
    DatabaseAdapter,
    QueryError,
    StorageConnectionError,
    StorageError,
)
from gamestats.schema import ensure_schema

log = logging.getLogger("gamestats.sqlite_adapter")


class _PooledConnection:
    """Wrapper for a pooled database connection with metadata."""

    def __init__(self, conn: aiosqlite.Connection, created_at: float):
        self.conn = conn
        self.created_at = created_at


class ConnectionPool:
    """Connection pool for aiosqlite connections on a single database file.

    Connections are opened in autocommit mode so transactions are always
    explicit, and are rotated after max_lifetime_sec.
    """

    def __init__(
        self,
        db_path: Path,
        pool_size: int = 4,
        max_lifetime_sec: int = 300,
        acquire_timeout: float = 30.0,
        busy_timeout_ms: int = 30000,
        journal_mode: str = "WAL",
    ):
        """Initialize connection pool.

        Args:
            db_path: Path to SQLite database file
            pool_size: Maximum number of connections to maintain
            max_lifetime_sec: Rotate connections after this many seconds
            acquire_timeout: Seconds to wait for connection acquisition
            busy_timeout_ms: SQLite busy timeout for locked databases
            journal_mode: SQLite journal mode pragma value
        """
        self._db_path = db_path
        self._pool_size = pool_size
        self._max_lifetime = max_lifetime_sec
        self._acquire_timeout = acquire_timeout
        self._busy_timeout_ms = busy_timeout_ms
        self._journal_mode = journal_mode
        self._pool: asyncio.Queue[_PooledConnection] = asyncio.Queue(maxsize=pool_size)
        self._lock = asyncio.Lock()
        self._created_connections = 0
        self._closed = False

    @asynccontextmanager
    async def get_connection(self):
        """Get a connection from the pool.

        Yields:
            aiosqlite.Connection: A database connection

        Raises:
            StorageConnectionError: If no connection can be opened or acquired in time
        """
        conn_wrapper = await self._acquire()
        try:
            yield conn_wrapper.conn
        finally:
            await self._return(conn_wrapper)

    async def _acquire(self) -> _PooledConnection:
        """Acquire a connection from the pool or create a new one."""
        if self._closed:
            raise StorageConnectionError("Connection pool is closed")

        try:
            conn_wrapper = self._pool.get_nowait()
            if time.monotonic() - conn_wrapper.created_at > self._max_lifetime:
                log.debug("Closing stale connection from pool")
                await self._discard(conn_wrapper)
                return await self._create_connection()
            return conn_wrapper
        except asyncio.QueueEmpty:
            pass

        async with self._lock:
            if self._created_connections < self._pool_size:
                return await self._create_connection()

        try:
            return await asyncio.wait_for(self._pool.get(), timeout=self._acquire_timeout)
        except asyncio.TimeoutError:
            raise StorageConnectionError(
                f"Could not acquire database connection within {self._acquire_timeout} seconds"
            )

    async def _return(self, conn_wrapper: _PooledConnection) -> None:
        """Return a connection to the pool."""
        if self._closed:
            await self._discard(conn_wrapper)
            return
        if conn_wrapper.conn.in_transaction:
            # Never hand out a connection with a half-finished transaction
            log.warning("Discarding connection returned with an open transaction")
            await self._discard(conn_wrapper)
            await self._replenish()
            return
        try:
            self._pool.put_nowait(conn_wrapper)
        except asyncio.QueueFull:
            await self._discard(conn_wrapper)

    async def _discard(self, conn_wrapper: _PooledConnection) -> None:
        try:
            await conn_wrapper.conn.close()
        except aiosqlite.Error as e:
            log.debug(f"Error closing connection: {e}")
        async with self._lock:
            self._created_connections -= 1

    async def _replenish(self) -> None:
        """Refill a freed slot so callers already waiting on the queue are served."""
        async with self._lock:
            if self._closed or self._created_connections >= self._pool_size:
                return
            try:
                conn_wrapper = await self._create_connection()
            except StorageConnectionError as e:
                log.warning(f"Could not replace discarded connection: {e}")
                return
        self._pool.put_nowait(conn_wrapper)

    async def _create_connection(self) -> _PooledConnection:
        """Open a new connection with the standard pragmas applied."""
        try:
            conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        except (aiosqlite.Error, OSError) as e:
            raise StorageConnectionError(f"Cannot open database {self._db_path}: {e}") from e

        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
            await conn.execute(f"PRAGMA journal_mode = {self._journal_mode}")
        except aiosqlite.Error as e:
            await conn.close()
            raise StorageConnectionError(
                f"Cannot configure database {self._db_path}: {e}"
            ) from e

        self._created_connections += 1
        return _PooledConnection(conn, time.monotonic())

    async def close_all(self) -> None:
        """Close all idle connections in the pool.

        Connections still checked out are closed when they are returned.
        """
        self._closed = True
        while not self._pool.empty():
            try:
                conn_wrapper = self._pool.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._discard(conn_wrapper)
        log.debug("All pooled connections closed")


class SQLiteAdapter(DatabaseAdapter):
    """SQLite database adapter implementation."""

    def __init__(self, db_path: Path, settings: StorageSettings | None = None):
        """Initialize SQLite adapter.

        Args:
            db_path: Path to SQLite database file
            settings: Pool and pragma settings (defaults if omitted)
        """
        self.db_path = Path(db_path)
        self.settings = settings or StorageSettings()
        self._connection_pool: ConnectionPool | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create the database file if needed and ensure the schema exists."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageConnectionError(
                f"Cannot create database directory {self.db_path.parent}: {e}"
            ) from e

        self._connection_pool = ConnectionPool(
            db_path=self.db_path,
            pool_size=self.settings.pool_size,
            max_lifetime_sec=self.settings.max_lifetime_sec,
            acquire_timeout=self.settings.acquire_timeout_sec,
            busy_timeout_ms=self.settings.busy_timeout_ms,
            journal_mode=self.settings.journal_mode,
        )

        async with self.connection() as conn:
            try:
                await ensure_schema(conn)
            except aiosqlite.Error as e:
                raise QueryError(f"Schema setup failed for {self.db_path}: {e}") from e

    @asynccontextmanager
    async def connection(self):
        """Get a database connection from the connection pool."""
        if self._connection_pool is None:
            raise StorageConnectionError("Adapter not initialized. Call initialize() first.")
        async with self._connection_pool.get_connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        """Run the enclosed block in one immediate write transaction.

        Writers on this adapter queue on an asyncio lock; writers from other
        processes wait on SQLite's reserved lock for busy_timeout_ms.
        """
        async with self._write_lock:
            async with self.connection() as conn:
                try:
                    await conn.execute("BEGIN IMMEDIATE")
                except aiosqlite.Error as e:
                    raise QueryError(f"Cannot begin transaction: {e}") from e

                try:
                    yield conn
                except BaseException:
                    await self._rollback(conn)
                    raise

                try:
                    await conn.execute("COMMIT")
                except aiosqlite.Error as e:
                    await self._rollback(conn)
                    raise QueryError(f"Commit failed: {e}") from e

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            await conn.execute("ROLLBACK")
        except aiosqlite.Error as e:
            log.error(f"Rollback failed: {e}")

    async def close(self) -> None:
        """Close all database connections and cleanup resources."""
        if self._connection_pool:
            await self._connection_pool.close_all()
            self._connection_pool = None


async def open_user_database(
    client_id: str, user_id: str, settings: StorageSettings | None = None
) -> SQLiteAdapter:
    """Open (creating on demand) the database for one client/user pair.

    Args:
        client_id: Game client identifier
        user_id: Platform user identifier
        settings: Storage settings (defaults if omitted)

    Returns:
        Initialized SQLiteAdapter; the caller owns it and must close() it

    Raises:
        ValueError: If client_id or user_id is not a valid path component
        StorageError: If the database cannot be created or set up
    """
    settings = settings or StorageSettings()
    database_file = settings.database_path(client_id, user_id)
    log.info(f"Setting up database at {database_file}")

    adapter = SQLiteAdapter(database_file, settings)
    try:
        await adapter.initialize()
    except StorageError:
        await adapter.close()
        raise
    return adapter
