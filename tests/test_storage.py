"""
Unit tests for ledger persistence.

Tests cover:
- Backend document operations (memory and SQLite)
- Atomic SQLite batches and creation-order listing
- LedgerStore write planning and account scoping
- Reloading a manager from SQLite
"""

import sqlite3

import pytest

from smart_wallet.exceptions import PersistenceError, ValidationError
from smart_wallet.ledger import LedgerState, LedgerStore, MemoryStorage, SQLiteStorage, WriteOp
from smart_wallet.ledger.storage import StorageBackend


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    if request.param == "memory":
        return MemoryStorage()
    return SQLiteStorage(":memory:")


class TestBackends:
    """Test the document operations both backends share."""

    def test_set_get_delete(self, storage):
        storage.set("acct:portfolios", "p1", {"name": "Growth", "currentCapital": 1000.0})

        assert storage.get("acct:portfolios", "p1") == {"name": "Growth", "currentCapital": 1000.0}
        assert storage.get("acct:portfolios", "missing") is None
        assert storage.delete("acct:portfolios", "p1") is True
        assert storage.delete("acct:portfolios", "p1") is False

    def test_list_is_scoped_to_collection(self, storage):
        storage.set("a:expenses", "e1", {"amount": 1})
        storage.set("b:expenses", "e2", {"amount": 2})

        assert storage.list("a:expenses") == {"e1": {"amount": 1}}
        assert storage.list("c:expenses") == {}

    def test_update_keeps_creation_order(self, storage):
        storage.set("acct:portfolios", "a", {"name": "A"})
        storage.set("acct:portfolios", "b", {"name": "B"})
        storage.set("acct:portfolios", "a", {"name": "A2"})

        assert list(storage.list("acct:portfolios")) == ["a", "b"]

    def test_stored_documents_are_detached(self, storage):
        document = {"name": "Growth"}
        storage.set("acct:portfolios", "p1", document)
        document["name"] = "Changed"

        assert storage.get("acct:portfolios", "p1") == {"name": "Growth"}

    def test_unicode_round_trip(self, storage):
        storage.set("acct:meta", "profile", {"name": "مستخدم جديد"})
        assert storage.get("acct:meta", "profile")["name"] == "مستخدم جديد"


class TestSQLiteStorage:
    """Test SQLite-specific behavior."""

    def test_batch_is_atomic(self):
        storage = SQLiteStorage(":memory:")
        storage.set("acct:meta", "savings_balance", {"value": 100.0})

        # A non-JSON-serializable document fails mid-batch
        with pytest.raises(TypeError):
            storage.batch([
                WriteOp("acct:meta", "savings_balance", {"value": 0.0}),
                WriteOp("acct:expenses", "e1", {"amount": object()}),
            ])

        assert storage.get("acct:meta", "savings_balance") == {"value": 100.0}
        assert storage.list("acct:expenses") == {}

    def test_batch_with_delete(self):
        storage = SQLiteStorage(":memory:")
        storage.set("acct:expenses", "e1", {"amount": 10})

        storage.batch([WriteOp("acct:expenses", "e1"), WriteOp("acct:expenses", "e2", {"amount": 20})])

        assert storage.list("acct:expenses") == {"e2": {"amount": 20}}

    def test_file_database_persists(self, tmp_path):
        path = str(tmp_path / "ledger.db")
        SQLiteStorage(path).set("acct:meta", "savings_balance", {"value": 42.0})

        assert SQLiteStorage(path).get("acct:meta", "savings_balance") == {"value": 42.0}

    def test_sqlite_errors_are_wrapped(self, tmp_path):
        storage = SQLiteStorage(str(tmp_path / "ledger.db"))
        storage.db_path = str(tmp_path / "missing" / "ledger.db")

        with pytest.raises(PersistenceError) as exc_info:
            storage.get("acct:meta", "profile")
        assert exc_info.value.details["operation"] == "get"

    def test_legacy_schema_is_migrated(self, tmp_path):
        """A database without created_at gains the column and keeps its rows."""
        path = str(tmp_path / "ledger.db")
        conn = sqlite3.connect(path)
        with conn:
            conn.execute("""
                CREATE TABLE documents (
                    collection TEXT NOT NULL, key TEXT NOT NULL, body TEXT NOT NULL,
                    updated_at TEXT NOT NULL, PRIMARY KEY (collection, key)
                )
            """)
            conn.execute("INSERT INTO documents VALUES ('acct:portfolios', 'old', '{}', '2024-01-01')")
        conn.close()

        storage = SQLiteStorage(path)
        storage.set("acct:portfolios", "new", {"name": "New"})

        assert list(storage.list("acct:portfolios")) == ["old", "new"]

    def test_memory_storage_has_no_batches(self):
        assert MemoryStorage.supports_batch is False
        assert SQLiteStorage.supports_batch is True
        with pytest.raises(NotImplementedError):
            MemoryStorage().batch([])

    def test_backend_is_abstract(self):
        with pytest.raises(TypeError):
            StorageBackend()


class TestLedgerStore:
    """Test mapping ledger state onto documents."""

    def test_empty_account_loads_defaults(self, storage):
        state = LedgerStore(storage, account_id="uid-1").load()

        assert state.portfolios == []
        assert state.expenses == []
        assert state.savings_balance == 0.0

    def test_plan_writes_only_changed_documents(self, manager):
        """A withdrawal touches one portfolio document and the savings scalar."""
        a = manager.create_portfolio("A", 1000.0, 1500.0)
        manager.create_portfolio("B", 500.0, 800.0)
        old = manager._state
        new = old.copy()
        portfolio = new.get_portfolio(a.id)
        portfolio.current_capital -= 100.0
        new.savings_balance += 100.0

        ops = manager.store.plan_writes(old, new)

        assert [(op.collection, op.key) for op in ops] == [
            ("uid-test:portfolios", a.id),
            ("uid-test:meta", "savings_balance"),
        ]
        assert ops[1].document == {"value": 100.0}

    def test_plan_writes_deletes_removed_documents(self, manager, portfolio):
        old = manager._state
        new = LedgerState(profile=old.profile)

        ops = manager.store.plan_writes(old, new)

        assert len(ops) == 1
        assert ops[0].is_delete
        assert ops[0].key == portfolio.id

    def test_accounts_are_isolated(self, make_manager, backend):
        manager = make_manager(backend)
        manager.create_portfolio("Mine", 1000.0, 1500.0)

        other = LedgerStore(backend, account_id="uid-other").load()

        assert other.portfolios == []

    def test_empty_account_id_rejected(self, backend):
        with pytest.raises(ValidationError):
            LedgerStore(backend, account_id="")

    def test_manager_reloads_from_sqlite(self, make_manager, tmp_path):
        """Everything a manager writes is visible to a fresh manager."""
        db_path = str(tmp_path / "ledger.db")
        manager = make_manager(SQLiteStorage(db_path))
        p = manager.create_portfolio("Growth", 1000.0, 1500.0)
        trade = manager.open_trade(p.id, "COMI", 10.0, 500.0, 9.0, 13.0)
        manager.close_trade(p.id, trade.id, 12.0)
        manager.withdraw_to_savings(p.id, 100.0)
        manager.add_expense("Coffee", 30.0, "restaurants")

        reloaded = make_manager(SQLiteStorage(db_path))

        assert reloaded.export_snapshot() == manager.export_snapshot()

    def test_reload_keeps_portfolio_order_after_edit(self, make_manager, tmp_path):
        """Editing the older portfolio does not move it behind the newer one."""
        db_path = str(tmp_path / "ledger.db")
        manager = make_manager(SQLiteStorage(db_path))
        first = manager.create_portfolio("First", 1000.0, 1500.0)
        second = manager.create_portfolio("Second", 1000.0, 1500.0)
        manager.rename_portfolio(first.id, "First renamed")

        reloaded = make_manager(SQLiteStorage(db_path))

        assert [p.id for p in reloaded.portfolios] == [first.id, second.id]
