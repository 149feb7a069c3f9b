"""
Tests for storage backends and transaction support
"""

import pytest
import tempfile
import threading
from pathlib import Path

from bank_ledger.storage import InMemoryStorage, SQLiteStorage, StorageInterface
from bank_ledger.errors import StorageError, CorruptRecordError


test_data = {
    "account_id": "acc_001",
    "balance_minor": 100050,
    "currency": "USD"
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestStorageInterface:
    """Behaviour shared by every backend"""

    def test_basic_operations(self, storage: StorageInterface):
        """Test save, load, overwrite and delete"""
        storage.save("balances", "acc_001", test_data)
        assert storage.load("balances", "acc_001") == test_data
        assert storage.load("balances", "missing") is None

        storage.save("balances", "acc_001", {**test_data, "balance_minor": 0})
        assert storage.load("balances", "acc_001")["balance_minor"] == 0

        assert storage.delete("balances", "acc_001")
        assert not storage.delete("balances", "acc_001")
        assert storage.load("balances", "acc_001") is None

    def test_loaded_records_are_copies(self, storage):
        """Test loaded records do not alias stored data"""
        storage.save("balances", "acc_001", test_data)
        loaded = storage.load("balances", "acc_001")
        loaded["balance_minor"] = 0

        assert storage.load("balances", "acc_001")["balance_minor"] == 100050

    def test_atomic_commit(self, storage):
        """Test writes in an atomic block are committed together"""
        with storage.atomic():
            storage.save("balances", "acc_001", test_data)
            storage.save("transaction_logs", "acc_001", {"entries": []})

        assert storage.load("balances", "acc_001") is not None
        assert storage.load("transaction_logs", "acc_001") is not None

    def test_atomic_rollback(self, storage):
        """A failure inside the block leaves no partial writes behind"""
        storage.save("balances", "acc_001", test_data)

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("balances", "acc_001", {**test_data, "balance_minor": 0})
                storage.save("transaction_logs", "acc_001", {"entries": [{"id": "t1"}]})
                raise RuntimeError("crash between writes")

        assert storage.load("balances", "acc_001") == test_data
        assert storage.load("transaction_logs", "acc_001") is None

    def test_nested_atomic_joins_outer(self, storage):
        """Test nested atomic blocks roll back with the outer one"""
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("balances", "acc_001", test_data)
                raise RuntimeError("outer fails")

        assert storage.load("balances", "acc_001") is None

    def test_closed_storage_raises(self, storage):
        """Test closed storage raises StorageError"""
        storage.close()
        with pytest.raises(StorageError):
            storage.save("balances", "acc_001", test_data)
        with pytest.raises(StorageError):
            storage.load("balances", "acc_001")


class TestInMemoryStorage:

    def test_atomic_blocks_other_writers(self):
        """Another thread's write waits until the open transaction finishes"""
        storage = InMemoryStorage()
        started = threading.Event()
        writer_done = threading.Event()

        def writer():
            started.wait()
            storage.save("balances", "acc_002", test_data)
            writer_done.set()

        thread = threading.Thread(target=writer)
        thread.start()
        with storage.atomic():
            storage.save("balances", "acc_001", test_data)
            started.set()
            assert not writer_done.wait(0.1)
        thread.join(timeout=5)

        assert writer_done.is_set()
        assert storage.load("balances", "acc_002") is not None


class TestSQLiteStorage:

    def test_persists_across_connections(self):
        """Test SQLite data survives reopening"""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "ledger.db"
            storage = SQLiteStorage(db_path)
            storage.save("balances", "acc_001", test_data)
            storage.close()

            reopened = SQLiteStorage(db_path)
            assert reopened.load("balances", "acc_001") == test_data
            reopened.close()

    def test_corrupt_json_raises_corrupt_record_error(self):
        """Test undecodable rows raise CorruptRecordError"""
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = SQLiteStorage(Path(temp_dir) / "ledger.db")
            storage.save("balances", "acc_001", test_data)
            storage._connection.execute(
                "UPDATE balances SET data = ? WHERE id = ?", ("{not json", "acc_001")
            )
            storage._connection.commit()

            with pytest.raises(CorruptRecordError) as exc_info:
                storage.load("balances", "acc_001")
            assert exc_info.value.table == "balances"
            assert exc_info.value.record_id == "acc_001"

            # Other rows stay readable
            storage.save("balances", "acc_002", test_data)
            assert storage.load("balances", "acc_002") == test_data
            storage.close()
