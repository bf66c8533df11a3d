"""
Async Storage Backend Module

Async facade over the storage backends. Services await these calls so the
event loop stays free while a backend does I/O in a worker thread.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Iterable
from contextlib import asynccontextmanager
import asyncio
import logging

from .config import BankCoreConfig
from .storage import StorageInterface, InMemoryStorage, SQLiteStorage, TableWrite

logger = logging.getLogger(__name__)


class AsyncStorageInterface(ABC):
    """Abstract interface for async storage backends"""

    @abstractmethod
    async def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    async def save_many(self, writes: Iterable[TableWrite]) -> None:
        """Save several records as one all-or-nothing write"""
        pass

    @abstractmethod
    async def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    async def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    async def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete all records matching filters"""
        pass

    @abstractmethod
    async def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    async def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    @abstractmethod
    async def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """First record matching filters, or None"""
        pass

    @abstractmethod
    async def find_page(self, table: str, filters: Dict[str, Any], order_by: str,
                        descending: bool = False, limit: Optional[int] = None,
                        offset: int = 0) -> List[Dict[str, Any]]:
        """Ordered, paginated scan"""
        pass

    @abstractmethod
    async def update_where(self, table: str, filters: Dict[str, Any],
                           changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Update matching records and return them"""
        pass

    @abstractmethod
    async def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    async def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    async def close(self) -> None:
        """Close storage connection (default no-op)"""
        pass

    async def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    async def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    async def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @asynccontextmanager
    async def atomic(self):
        """Context manager for atomic operations"""
        await self.begin_transaction()
        try:
            yield
            await self.commit()
        except BaseException:
            # Cancellation rolls back too
            await self.rollback()
            raise


class AsyncStorageAdapter(AsyncStorageInterface):
    """
    Runs a sync StorageInterface in worker threads.

    Individual calls are serialized by one lock. Units of work opened with
    atomic() are serialized by a second lock held for the whole unit, so two
    read-modify-write sequences never interleave. Units must not be nested.
    """

    def __init__(self, sync_storage: StorageInterface):
        self._sync_storage = sync_storage
        self._lock = asyncio.Lock()
        self._unit_lock = asyncio.Lock()

    @property
    def sync_storage(self) -> StorageInterface:
        return self._sync_storage

    async def _run(self, func, *args):
        async with self._lock:
            return await asyncio.to_thread(func, *args)

    async def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        await self._run(self._sync_storage.save, table, record_id, data)

    async def save_many(self, writes: Iterable[TableWrite]) -> None:
        await self._run(self._sync_storage.save_many, list(writes))

    async def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        return await self._run(self._sync_storage.load, table, record_id)

    async def load_all(self, table: str) -> List[Dict[str, Any]]:
        return await self._run(self._sync_storage.load_all, table)

    async def delete(self, table: str, record_id: str) -> bool:
        return await self._run(self._sync_storage.delete, table, record_id)

    async def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        return await self._run(self._sync_storage.delete_where, table, filters)

    async def exists(self, table: str, record_id: str) -> bool:
        return await self._run(self._sync_storage.exists, table, record_id)

    async def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._run(self._sync_storage.find, table, filters)

    async def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._run(self._sync_storage.find_one, table, filters)

    async def find_page(self, table: str, filters: Dict[str, Any], order_by: str,
                        descending: bool = False, limit: Optional[int] = None,
                        offset: int = 0) -> List[Dict[str, Any]]:
        return await self._run(
            self._sync_storage.find_page, table, filters, order_by, descending, limit, offset
        )

    async def update_where(self, table: str, filters: Dict[str, Any],
                           changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._run(self._sync_storage.update_where, table, filters, changes)

    async def count(self, table: str) -> int:
        return await self._run(self._sync_storage.count, table)

    async def clear_table(self, table: str) -> None:
        await self._run(self._sync_storage.clear_table, table)

    async def close(self) -> None:
        await self._run(self._sync_storage.close)

    async def begin_transaction(self) -> None:
        await self._run(self._sync_storage.begin_transaction)

    async def commit(self) -> None:
        await self._run(self._sync_storage.commit)

    async def rollback(self) -> None:
        # Shielded so a cancelled unit still restores its snapshot
        await asyncio.shield(self._run(self._sync_storage.rollback))

    @asynccontextmanager
    async def atomic(self):
        async with self._unit_lock:
            async with super().atomic():
                yield


class AsyncInMemoryStorage(AsyncStorageAdapter):
    """Async wrapper around InMemoryStorage for tests"""

    def __init__(self):
        super().__init__(InMemoryStorage())


def create_async_storage(config: BankCoreConfig) -> AsyncStorageInterface:
    """
    Build the async storage named by config.database_url.

    Supported URLs: ``memory://`` and ``sqlite:///<path>`` (``sqlite:///:memory:``
    for a throwaway database).
    """
    url = config.database_url

    if url.startswith("memory://"):
        logger.info("Using in-memory storage")
        return AsyncInMemoryStorage()

    if url.startswith("sqlite:///"):
        path = url[len("sqlite:///"):] or ":memory:"
        logger.info("Using SQLite storage at %s", path)
        return AsyncStorageAdapter(SQLiteStorage(path))

    raise ValueError(f"Unsupported database URL: {url}")
