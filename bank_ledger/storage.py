"""
Storage Backend Module

Provides abstract key-value storage interface and implementations for
in-memory (testing) and SQLite (local durable persistence). Records are JSON
documents addressed by (table, record_id).
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import StorageError, CorruptRecordError


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        # Convert datetime objects to ISO strings
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        # Convert Decimal objects to strings
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        data = dict(data)
        # Convert ISO strings back to datetime objects
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage

        Raises:
            CorruptRecordError: If the stored record cannot be decoded
        """
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

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
        """Context manager for atomic operations

        Nested blocks join the outermost one; only the outermost block
        commits or rolls back.
        """
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
        self._depth = 0
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("Storage is closed")

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._check_open()
            self._ensure_table(table)
            try:
                # Deep copy to prevent external mutation
                self._data[table][record_id] = json.loads(json.dumps(data, default=str))
            except (TypeError, ValueError) as e:
                raise StorageError(f"Cannot serialize {table}/{record_id}: {e}") from e

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._check_open()
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record is None:
                return None
            if not isinstance(record, dict):
                raise CorruptRecordError(table, record_id, "not a JSON object")
            # Deep copy to prevent external mutation
            return json.loads(json.dumps(record))

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        with self._lock:
            self._check_open()
            self._ensure_table(table)
            if record_id in self._data[table]:
                del self._data[table][record_id]
                return True
            return False

    def begin_transaction(self) -> None:
        """Snapshot all tables; the lock is held until commit/rollback"""
        self._lock.acquire()
        try:
            self._check_open()
        except StorageError:
            self._lock.release()
            raise
        if self._depth == 0:
            self._snapshot = json.loads(json.dumps(self._data))
        self._depth += 1

    def commit(self) -> None:
        """Drop the snapshot"""
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        """Restore the snapshot taken by the outermost block"""
        self._depth -= 1
        if self._depth == 0:
            if self._snapshot is not None:
                self._data = self._snapshot
            self._snapshot = None
        self._lock.release()

    def close(self) -> None:
        """Close storage; later calls raise StorageError"""
        with self._lock:
            self._closed = True


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for local persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        self._known_tables = set()
        try:
            # isolation_level='DEFERRED' leaves transaction control to commit()/rollback()
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False,
                                               isolation_level='DEFERRED')
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        self._connection.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    @property
    def _in_transaction(self) -> bool:
        return self._depth > 0

    def _conn(self) -> sqlite3.Connection:
        if self._connection is None:
            raise StorageError("Storage is closed")
        return self._connection

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._known_tables:
            return
        with self._lock:
            self._conn().execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            if not self._in_transaction:
                self._conn().commit()
            self._known_tables.add(table)

    def _decode(self, table: str, record_id: str, raw: str) -> Dict[str, Any]:
        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise CorruptRecordError(table, record_id, str(e)) from e
        if not isinstance(decoded, dict):
            raise CorruptRecordError(table, record_id, "not a JSON object")
        return decoded

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock:
            try:
                self._ensure_table(table)
                now = datetime.now(timezone.utc).isoformat()
                data_json = json.dumps(data, default=str)

                # Use INSERT OR REPLACE to handle updates
                self._conn().execute(f"""
                    INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                    VALUES (?, ?,
                        COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                        ?)
                """, (record_id, data_json, record_id, now, now))

                # Only commit if not in transaction
                if not self._in_transaction:
                    self._conn().commit()
            except (sqlite3.Error, TypeError, ValueError) as e:
                raise StorageError(f"Cannot save {table}/{record_id}: {e}") from e

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            try:
                self._ensure_table(table)
                cursor = self._conn().execute(f"""
                    SELECT data FROM {table} WHERE id = ?
                """, (record_id,))
                row = cursor.fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot load {table}/{record_id}: {e}") from e
            if row:
                return self._decode(table, record_id, row['data'])
            return None

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._lock:
            try:
                self._ensure_table(table)
                cursor = self._conn().execute(f"""
                    DELETE FROM {table} WHERE id = ?
                """, (record_id,))

                # Only commit if not in transaction
                if not self._in_transaction:
                    self._conn().commit()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot delete {table}/{record_id}: {e}") from e
            return cursor.rowcount > 0

    def begin_transaction(self) -> None:
        """Start a database transaction; the lock is held until commit/rollback"""
        self._lock.acquire()
        if self._connection is None:
            self._lock.release()
            raise StorageError("Storage is closed")
        self._depth += 1

    def commit(self) -> None:
        """Commit current transaction"""
        try:
            self._depth -= 1
            if self._depth == 0:
                self._conn().commit()
        except sqlite3.Error as e:
            self._connection.rollback()
            raise StorageError(f"Commit failed: {e}") from e
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Rollback current transaction"""
        try:
            self._depth -= 1
            if self._depth == 0 and self._connection is not None:
                self._connection.rollback()
                # Tables created inside the rolled back transaction are gone too
                self._known_tables.clear()
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
