"""
Tests for the storage backends
"""

import pytest

from bankcore.storage import InMemoryStorage, SQLiteStorage


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Run every test against both backends"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "bankcore.db")
    yield backend
    backend.close()


def record(record_id, created_at, **fields):
    data = {"id": record_id, "created_at": created_at}
    data.update(fields)
    return data


class TestBasicOperations:
    """Test CRUD operations"""
    
    def test_save_load_delete(self, storage):
        storage.save("items", "a", record("a", "2024-01-01T00:00:00+00:00", name="first"))
        
        assert storage.exists("items", "a")
        assert storage.load("items", "a")["name"] == "first"
        assert storage.count("items") == 1
        
        assert storage.delete("items", "a") is True
        assert storage.delete("items", "a") is False
        assert storage.load("items", "a") is None
        assert not storage.exists("items", "a")
    
    def test_save_replaces(self, storage):
        storage.save("items", "a", record("a", "t1", name="first"))
        storage.save("items", "b", record("b", "t2", name="second"))
        storage.save("items", "a", record("a", "t1", name="renamed"))
        
        assert storage.count("items") == 2
        # Replacing keeps insertion order
        assert [r["name"] for r in storage.load_all("items")] == ["renamed", "second"]
    
    def test_loaded_records_are_copies(self, storage):
        data = record("a", "t1", tags=["x"])
        storage.save("items", "a", data)
        data["tags"].append("y")
        
        loaded = storage.load("items", "a")
        loaded["tags"].append("z")
        assert storage.load("items", "a")["tags"] == ["x"]
    
    def test_clear_table(self, storage):
        storage.save("items", "a", record("a", "t1"))
        storage.clear_table("items")
        assert storage.count("items") == 0
    
    def test_invalid_table_name_rejected(self):
        storage = SQLiteStorage()
        with pytest.raises(ValueError):
            storage.save("items; DROP TABLE users", "a", {"id": "a"})
        storage.close()


class TestQueries:
    """Test filtered and ordered reads"""
    
    def setup_records(self, storage):
        storage.save("accounts", "1", record("1", "2024-01-01T00:00:00+00:00", user_id="u1", kind="checking"))
        storage.save("accounts", "2", record("2", "2024-01-02T00:00:00+00:00", user_id="u2", kind="checking"))
        storage.save("accounts", "3", record("3", "2024-01-03T00:00:00+00:00", user_id="u1", kind="savings"))
    
    def test_find(self, storage):
        self.setup_records(storage)
        assert [r["id"] for r in storage.find("accounts", {"user_id": "u1"})] == ["1", "3"]
        assert [r["id"] for r in storage.find("accounts", {"user_id": "u1", "kind": "savings"})] == ["3"]
        assert storage.find("accounts", {"user_id": "nobody"}) == []
    
    def test_find_one(self, storage):
        self.setup_records(storage)
        assert storage.find_one("accounts", {"kind": "checking"})["id"] == "1"
        assert storage.find_one("accounts", {"kind": "loan"}) is None
    
    def test_find_page_ordering_and_slicing(self, storage):
        self.setup_records(storage)
        
        ascending = storage.find_page("accounts", {}, order_by="created_at")
        assert [r["id"] for r in ascending] == ["1", "2", "3"]
        
        descending = storage.find_page("accounts", {}, order_by="created_at", descending=True)
        assert [r["id"] for r in descending] == ["3", "2", "1"]
        
        page = storage.find_page("accounts", {}, order_by="created_at", descending=True, limit=1, offset=1)
        assert [r["id"] for r in page] == ["2"]
        
        assert storage.find_page("accounts", {}, order_by="created_at", limit=5, offset=3) == []
    
    def test_find_page_ties_newest_insert_first(self, storage):
        for record_id in ("a", "b", "c"):
            storage.save("events", record_id, record(record_id, "2024-01-01T00:00:00+00:00"))
        page = storage.find_page("events", {}, order_by="created_at", descending=True)
        assert [r["id"] for r in page] == ["c", "b", "a"]
    
    def test_filter_on_none_and_bool(self, storage):
        storage.save("flags", "a", record("a", "t1", active=True, note=None))
        storage.save("flags", "b", record("b", "t2", active=False, note="x"))
        assert [r["id"] for r in storage.find("flags", {"active": True})] == ["a"]
        assert [r["id"] for r in storage.find("flags", {"note": None})] == ["a"]
    
    def test_update_where(self, storage):
        self.setup_records(storage)
        updated = storage.update_where("accounts", {"user_id": "u1"}, {"status": "frozen"})
        assert {r["id"] for r in updated} == {"1", "3"}
        assert storage.load("accounts", "1")["status"] == "frozen"
        assert "status" not in storage.load("accounts", "2")
    
    def test_delete_where(self, storage):
        self.setup_records(storage)
        assert storage.delete_where("accounts", {"user_id": "u1"}) == 2
        assert storage.count("accounts") == 1
        assert storage.delete_where("accounts", {"user_id": "u1"}) == 0


class TestTransactions:
    """Test atomic units of work"""
    
    def test_atomic_commits(self, storage):
        with storage.atomic():
            storage.save("items", "a", record("a", "t1"))
            storage.save("items", "b", record("b", "t2"))
        assert storage.count("items") == 2
    
    def test_atomic_rolls_back_on_error(self, storage):
        storage.save("items", "a", record("a", "t1", value=1))
        
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("items", "a", record("a", "t1", value=2))
                storage.save("items", "b", record("b", "t2"))
                storage.delete("items", "a")
                raise RuntimeError("boom")
        
        assert storage.load("items", "a")["value"] == 1
        assert storage.load("items", "b") is None
    
    def test_atomic_rolls_back_new_table(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("fresh", "a", record("a", "t1"))
                raise RuntimeError("boom")
        # Table usable again after the rollback
        storage.save("fresh", "b", record("b", "t2"))
        assert [r["id"] for r in storage.load_all("fresh")] == ["b"]
    
    def test_save_many_is_all_or_nothing(self, storage):
        class Unserializable:
            def __str__(self):
                raise TypeError("cannot serialize")
        
        with pytest.raises(TypeError):
            storage.save_many([
                ("items", "a", record("a", "t1")),
                ("items", "b", record("b", "t2", bad=Unserializable())),
            ])
        assert storage.count("items") == 0
    
    def test_save_many_across_tables(self, storage):
        storage.save_many([
            ("transactions", "t", record("t", "t1", amount="10.00")),
            ("accounts", "a", record("a", "t1", balance="10.00")),
        ])
        assert storage.load("transactions", "t")["amount"] == "10.00"
        assert storage.load("accounts", "a")["balance"] == "10.00"


class TestSQLitePersistence:
    """Test data survives reopening the database file"""
    
    def test_reopen(self, tmp_path):
        path = tmp_path / "persist.db"
        storage = SQLiteStorage(path)
        storage.save("items", "a", record("a", "t1", name="kept"))
        storage.close()
        
        reopened = SQLiteStorage(path)
        assert reopened.load("items", "a")["name"] == "kept"
        reopened.close()
