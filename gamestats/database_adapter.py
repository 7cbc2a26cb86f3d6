"""Database adapter abstraction layer for the gameplay statistics cache.

Describes the storage contract the statistics reader and writer rely on:
schema setup, connection acquisition and write transactions.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager


class DatabaseAdapter(ABC):
    """Abstract base class for database adapters.

    The statistics store only talks to storage through this interface, so
    a caller can hand in any backend that honours it.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend and make sure all tables exist."""
        pass

    @abstractmethod
    @asynccontextmanager
    async def connection(self):
        """Get a database connection.

        Yields:
            Database connection object (type varies by backend)
        """
        yield

    @abstractmethod
    @asynccontextmanager
    async def transaction(self):
        """Run the enclosed block inside a single write transaction.

        The transaction commits when the block exits normally and rolls
        back when it raises (cancellation included).

        Yields:
            Database connection bound to the open transaction
        """
        yield

    @abstractmethod
    async def close(self) -> None:
        """Close all database connections and cleanup resources."""
        pass

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class StorageConnectionError(StorageError):
    """Exception raised when a database connection cannot be opened or acquired."""

    pass


class QueryError(StorageError):
    """Exception raised when a query, statement or commit fails."""

    pass


class DataIntegrityError(StorageError):
    """Exception raised when persisted rows contradict the schema's invariants."""

    pass
