"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing)
and SQLite (persistence). Records are JSON documents keyed by id; all monetary
values are stored as Decimal strings and timestamps as ISO-8601 strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Iterable, Tuple, Union
from decimal import Decimal
from datetime import date, datetime, timezone
import sqlite3
import json
import re
import threading
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from contextlib import contextmanager


# (table, record_id, data)
TableWrite = Tuple[str, str, Dict[str, Any]]

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def _check_identifier(name: str) -> str:
    """Table and field names are interpolated into SQL, so restrict them"""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


def _json_copy(data: Any) -> Any:
    """Deep copy through JSON so stored records never share state with callers"""
    return json.loads(json.dumps(data, default=str))


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for key, value in filters.items():
        if key not in record or record[key] != value:
            return False
    return True


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, Enum):
                result[key] = value.value
        return result


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save (insert or replace) a record"""
        pass

    @abstractmethod
    def save_many(self, writes: Iterable[TableWrite]) -> None:
        """Save several records, possibly across tables, as one all-or-nothing write"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete all records matching filters, returning how many were removed"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters, in insertion order"""
        pass

    @abstractmethod
    def find_page(self, table: str, filters: Dict[str, Any], order_by: str,
                  descending: bool = False, limit: Optional[int] = None,
                  offset: int = 0) -> List[Dict[str, Any]]:
        """Find records matching filters, ordered by a field and sliced"""
        pass

    @abstractmethod
    def update_where(self, table: str, filters: Dict[str, Any],
                     changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Apply changes to every matching record and return the updated records"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """First record matching filters, or None"""
        results = self.find_page(table, filters, order_by="created_at", limit=1)
        return results[0] if results else None

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except BaseException:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    def _ensure_table(self, table: str) -> Dict[str, Dict[str, Any]]:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}
        return self._data[table]

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)[record_id] = _json_copy(data)

    def save_many(self, writes: Iterable[TableWrite]) -> None:
        """Save several records under one lock acquisition"""
        # Serialize everything first so a bad record leaves nothing half-written
        prepared = [(table, record_id, _json_copy(data)) for table, record_id, data in writes]
        with self._lock:
            for table, record_id, data in prepared:
                self._ensure_table(table)[record_id] = data

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            record = self._ensure_table(table).get(record_id)
            if record:
                return _json_copy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            return [_json_copy(record) for record in self._ensure_table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        with self._lock:
            records = self._ensure_table(table)
            if record_id in records:
                del records[record_id]
                return True
            return False

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        with self._lock:
            records = self._ensure_table(table)
            doomed = [rid for rid, record in records.items() if _matches(record, filters)]
            for record_id in doomed:
                del records[record_id]
            return len(doomed)

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            return record_id in self._ensure_table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        with self._lock:
            return [
                _json_copy(record)
                for record in self._ensure_table(table).values()
                if _matches(record, filters)
            ]

    def find_page(self, table: str, filters: Dict[str, Any], order_by: str,
                  descending: bool = False, limit: Optional[int] = None,
                  offset: int = 0) -> List[Dict[str, Any]]:
        with self._lock:
            matches = [r for r in self._ensure_table(table).values() if _matches(r, filters)]
            if descending:
                # Stable sort keeps this order for ties: newest insert first
                matches.reverse()
            matches.sort(key=lambda r: (r.get(order_by) is not None, r.get(order_by) or ""),
                         reverse=descending)
            end = None if limit is None else offset + limit
            return [_json_copy(r) for r in matches[offset:end]]

    def update_where(self, table: str, filters: Dict[str, Any],
                     changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        changes = _json_copy(changes)
        with self._lock:
            updated = []
            for record in self._ensure_table(table).values():
                if _matches(record, filters):
                    record.update(changes)
                    updated.append(_json_copy(record))
            return updated

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            return len(self._ensure_table(table))

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._data[table] = {}

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def begin_transaction(self) -> None:
        """Snapshot all tables so rollback can restore them"""
        with self._lock:
            if self._snapshot is None:
                self._snapshot = _json_copy(self._data)

    def commit(self) -> None:
        with self._lock:
            self._snapshot = None

    def rollback(self) -> None:
        with self._lock:
            if self._snapshot is not None:
                self._data = self._snapshot
                self._snapshot = None


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # Set isolation_level to 'DEFERRED' to enable manual transaction control
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._tables = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        _check_identifier(table)
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            if not self._in_transaction:
                self._connection.commit()
            self._tables.add(table)

    def _maybe_commit(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    @staticmethod
    def _where(filters: Dict[str, Any]) -> Tuple[str, List[Any]]:
        """Build a WHERE clause matching top-level JSON fields"""
        if not filters:
            return "", []
        conditions = []
        params: List[Any] = []
        for key, value in filters.items():
            path = f"$.{_check_identifier(key)}"
            if value is None:
                conditions.append("json_type(data, ?) = 'null'")
                params.append(path)
            else:
                if isinstance(value, bool):
                    value = int(value)
                conditions.append("json_extract(data, ?) = ?")
                params.extend([path, value])
        return "WHERE " + " AND ".join(conditions), params

    def _write(self, table: str, record_id: str, data: Dict[str, Any], now: str) -> None:
        self._ensure_table(table)
        # Replace the data in place so rowid (insertion order) is preserved
        self._connection.execute(f"""
            INSERT INTO {table} (id, data, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                data = excluded.data,
                updated_at = excluded.updated_at
        """, (record_id, json.dumps(data, default=str), now, now))

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        self.save_many([(table, record_id, data)])

    def save_many(self, writes: Iterable[TableWrite]) -> None:
        writes = list(writes)
        with self._lock:
            for table, _, _ in writes:
                self._ensure_table(table)
            now = datetime.now(timezone.utc).isoformat()
            try:
                for table, record_id, data in writes:
                    self._write(table, record_id, data, now)
            except Exception:
                if not self._in_transaction:
                    self._connection.rollback()
                raise
            self._maybe_commit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        return self.find(table, {})

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))
            self._maybe_commit()
            return cursor.rowcount > 0

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        with self._lock:
            self._ensure_table(table)
            where, params = self._where(filters)
            cursor = self._connection.execute(f"DELETE FROM {table} {where}", params)
            self._maybe_commit()
            return cursor.rowcount

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters using JSON1 operators"""
        with self._lock:
            self._ensure_table(table)
            where, params = self._where(filters)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} {where} ORDER BY rowid
            """, params)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def find_page(self, table: str, filters: Dict[str, Any], order_by: str,
                  descending: bool = False, limit: Optional[int] = None,
                  offset: int = 0) -> List[Dict[str, Any]]:
        direction = "DESC" if descending else "ASC"
        with self._lock:
            self._ensure_table(table)
            where, params = self._where(filters)
            params = params + [f"$.{_check_identifier(order_by)}", -1 if limit is None else limit, offset]
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} {where}
                ORDER BY json_extract(data, ?) {direction}, rowid {direction}
                LIMIT ? OFFSET ?
            """, params)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def update_where(self, table: str, filters: Dict[str, Any],
                     changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            where, params = self._where(filters)
            rows = self._connection.execute(
                f"SELECT id, data FROM {table} {where} ORDER BY rowid", params
            ).fetchall()
            now = datetime.now(timezone.utc).isoformat()
            updated = []
            try:
                for row in rows:
                    record = json.loads(row['data'])
                    record.update(_json_copy(changes))
                    self._write(table, row['id'], record, now)
                    updated.append(record)
            except Exception:
                if not self._in_transaction:
                    self._connection.rollback()
                raise
            self._maybe_commit()
            return updated

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")
            self._maybe_commit()

    def begin_transaction(self) -> None:
        """Start a database transaction"""
        with self._lock:
            if not self._in_transaction:
                # SQLite with isolation_level='DEFERRED' starts the transaction on the first write
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.commit()
                self._in_transaction = False

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.rollback()
                self._in_transaction = False
                # DDL issued inside the transaction was undone too
                self._tables.clear()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
