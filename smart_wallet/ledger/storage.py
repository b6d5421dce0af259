"""
Persistence layer for ledger state.

The engine talks to one capability interface, ``StorageBackend``, with
get/list/set/delete and an optional atomic ``batch``. Two adapters ship:

- ``SQLiteStorage``: documents in one SQLite table; batches run in a single
  transaction.
- ``MemoryStorage``: plain dictionaries without batch support.

``LedgerStore`` maps a ``LedgerState`` onto account-scoped documents (one per
portfolio, one per expense, a savings scalar and a profile) and writes only
the documents a mutation changed. Without batch support it writes
sequentially and undoes already-applied writes if a later one fails.
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional
import structlog

from .portfolio import Portfolio
from .savings import Expense
from .state import LedgerState, UserProfile
from ..exceptions import PersistenceError, ValidationError

logger = structlog.get_logger(__name__)

Document = Dict[str, Any]


@dataclass
class WriteOp:
    """One document write; ``document=None`` deletes the key."""

    collection: str
    key: str
    document: Optional[Document] = None

    @property
    def is_delete(self) -> bool:
        return self.document is None


class StorageBackend(ABC):
    """Document store capability required by the ledger."""

    supports_batch: bool = False

    @abstractmethod
    def get(self, collection: str, key: str) -> Optional[Document]:
        """Read one document, or None if absent."""

    @abstractmethod
    def list(self, collection: str) -> Dict[str, Document]:
        """Read every document of a collection, keyed by document key."""

    @abstractmethod
    def set(self, collection: str, key: str, document: Document) -> None:
        """Create or replace one document."""

    @abstractmethod
    def delete(self, collection: str, key: str) -> bool:
        """Delete one document. Returns False if it did not exist."""

    def batch(self, operations: List[WriteOp]) -> None:
        """Apply writes atomically. Only available when ``supports_batch``."""
        raise NotImplementedError(f"{type(self).__name__} does not support atomic batches")

    def apply(self, op: WriteOp) -> None:
        if op.is_delete:
            self.delete(op.collection, op.key)
        else:
            self.set(op.collection, op.key, op.document)


class MemoryStorage(StorageBackend):
    """
    In-process document store.

    Example:
        >>> storage = MemoryStorage()
        >>> storage.set("acct:portfolios", "p1", {"name": "Growth"})
        >>> storage.get("acct:portfolios", "p1")
        {'name': 'Growth'}
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, str]] = {}

    def get(self, collection: str, key: str) -> Optional[Document]:
        raw = self._collections.get(collection, {}).get(key)
        return json.loads(raw) if raw is not None else None

    def list(self, collection: str) -> Dict[str, Document]:
        return {k: json.loads(v) for k, v in self._collections.get(collection, {}).items()}

    def set(self, collection: str, key: str, document: Document) -> None:
        # Stored serialized so callers cannot mutate persisted documents
        self._collections.setdefault(collection, {})[key] = json.dumps(document, ensure_ascii=False)

    def delete(self, collection: str, key: str) -> bool:
        return self._collections.get(collection, {}).pop(key, None) is not None


class SQLiteStorage(StorageBackend):
    """
    Document store on SQLite.

    Example:
        >>> storage = SQLiteStorage("smart_wallet.db")
        >>> storage.batch([WriteOp("acct:meta", "savings_balance", {"value": 300.0})])
    """

    supports_batch = True

    def __init__(self, db_path: str = "smart_wallet.db"):
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._connection = None

        # For in-memory databases, keep persistent connection
        if db_path == ":memory:":
            self._connection = sqlite3.connect(db_path)

        self._init_database()

        logger.info("sqlite_storage_initialized", db_path=self.db_path)

    @contextmanager
    def _transaction(self, operation: str, collection: Optional[str] = None) -> Iterator[sqlite3.Cursor]:
        """Run statements in one transaction, wrapping sqlite errors."""
        conn = None
        try:
            conn = self._connection or sqlite3.connect(self.db_path)
            with conn:
                yield conn.cursor()
        except sqlite3.Error as e:
            raise PersistenceError(
                "SQLite operation failed",
                operation=operation,
                collection=collection,
                cause=e
            )
        finally:
            if conn is not None and conn is not self._connection:
                conn.close()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._transaction("init") as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    key TEXT NOT NULL,
                    body TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, key)
                )
            """)
            cursor.execute("PRAGMA table_info(documents)")
            if "created_at" not in {row[1] for row in cursor.fetchall()}:
                # Databases created before documents kept their creation time
                cursor.execute("ALTER TABLE documents ADD COLUMN created_at TEXT NOT NULL DEFAULT ''")
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_collection
                ON documents(collection)
            """)

        logger.debug("database_schema_initialized")

    def get(self, collection: str, key: str) -> Optional[Document]:
        with self._transaction("get", collection) as cursor:
            cursor.execute(
                "SELECT body FROM documents WHERE collection = ? AND key = ?",
                (collection, key)
            )
            row = cursor.fetchone()
        return json.loads(row[0]) if row else None

    def list(self, collection: str) -> Dict[str, Document]:
        """Documents in creation order; updates do not move a document."""
        with self._transaction("list", collection) as cursor:
            cursor.execute(
                "SELECT key, body FROM documents WHERE collection = ? ORDER BY created_at, rowid",
                (collection,)
            )
            rows = cursor.fetchall()
        return {key: json.loads(body) for key, body in rows}

    def set(self, collection: str, key: str, document: Document) -> None:
        with self._transaction("set", collection) as cursor:
            self._write(cursor, WriteOp(collection, key, document))

    def delete(self, collection: str, key: str) -> bool:
        with self._transaction("delete", collection) as cursor:
            cursor.execute(
                "DELETE FROM documents WHERE collection = ? AND key = ?",
                (collection, key)
            )
            return cursor.rowcount > 0

    def batch(self, operations: List[WriteOp]) -> None:
        with self._transaction("batch") as cursor:
            for op in operations:
                self._write(cursor, op)

        logger.debug("sqlite_batch_committed", operations=len(operations))

    def _write(self, cursor: sqlite3.Cursor, op: WriteOp) -> None:
        if op.is_delete:
            cursor.execute(
                "DELETE FROM documents WHERE collection = ? AND key = ?",
                (op.collection, op.key)
            )
        else:
            now = datetime.now().isoformat()
            cursor.execute("""
                INSERT INTO documents (collection, key, body, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (collection, key)
                DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at
            """, (
                op.collection,
                op.key,
                json.dumps(op.document, ensure_ascii=False),
                now,
                now
            ))


class LedgerStore:
    """
    Maps an account's ``LedgerState`` onto backend documents.

    Example:
        >>> store = LedgerStore(SQLiteStorage(":memory:"), account_id="uid-1")
        >>> state = store.load()
        >>> store.commit(state, next_state)
    """

    SAVINGS_KEY = "savings_balance"
    PROFILE_KEY = "profile"

    def __init__(self, backend: StorageBackend, account_id: str):
        if not account_id:
            raise ValidationError("Account id cannot be empty", field="account_id")
        self.backend = backend
        self.account_id = account_id

    @property
    def portfolios_collection(self) -> str:
        return f"{self.account_id}:portfolios"

    @property
    def expenses_collection(self) -> str:
        return f"{self.account_id}:expenses"

    @property
    def meta_collection(self) -> str:
        return f"{self.account_id}:meta"

    def load(self) -> LedgerState:
        """
        Read the account's full state.

        Raises:
            PersistenceError: If the backend cannot be read
            ValidationError: If a stored document is malformed
        """
        portfolios = [Portfolio.from_dict(d) for d in self.backend.list(self.portfolios_collection).values()]
        expenses = [Expense.from_dict(d) for d in self.backend.list(self.expenses_collection).values()]
        expenses.sort(key=lambda e: e.date, reverse=True)

        savings = self.backend.get(self.meta_collection, self.SAVINGS_KEY) or {}
        profile = self.backend.get(self.meta_collection, self.PROFILE_KEY)

        state = LedgerState(
            portfolios=portfolios,
            expenses=expenses,
            savings_balance=float(savings.get("value", 0.0)),
            profile=UserProfile.from_dict(profile),
        )

        logger.info(
            "ledger_loaded",
            account_id=self.account_id,
            portfolios=len(portfolios),
            expenses=len(expenses)
        )
        return state

    def plan_writes(self, old: LedgerState, new: LedgerState) -> List[WriteOp]:
        """Writes that turn the persisted ``old`` state into ``new``."""
        ops = self._diff_collection(
            self.portfolios_collection,
            {p.id: p.to_dict() for p in old.portfolios},
            {p.id: p.to_dict() for p in new.portfolios},
        )
        ops += self._diff_collection(
            self.expenses_collection,
            {e.id: e.to_dict() for e in old.expenses},
            {e.id: e.to_dict() for e in new.expenses},
        )
        if old.savings_balance != new.savings_balance:
            ops.append(WriteOp(self.meta_collection, self.SAVINGS_KEY, {"value": new.savings_balance}))
        if old.profile != new.profile:
            ops.append(WriteOp(self.meta_collection, self.PROFILE_KEY, new.profile.to_dict()))
        return ops

    @staticmethod
    def _diff_collection(collection: str, old: Dict[str, Document], new: Dict[str, Document]) -> List[WriteOp]:
        ops = [WriteOp(collection, key, doc) for key, doc in new.items() if old.get(key) != doc]
        ops += [WriteOp(collection, key) for key in old if key not in new]
        return ops

    def commit(self, old: LedgerState, new: LedgerState) -> int:
        """
        Persist the transition from ``old`` to ``new``.

        Returns:
            Number of documents written

        Raises:
            PersistenceError: If any write fails; nothing is left half-applied
                when the backend supports batches or compensation succeeds
        """
        ops = self.plan_writes(old, new)
        if not ops:
            return 0

        if self.backend.supports_batch:
            try:
                self.backend.batch(ops)
            except PersistenceError:
                raise
            except Exception as e:
                logger.warning("ledger_batch_failed", account_id=self.account_id,
                               error_type=type(e).__name__, error=str(e))
                raise PersistenceError("Ledger batch write failed", operation="batch", cause=e)
        else:
            self._write_sequentially(ops)

        logger.debug("ledger_committed", account_id=self.account_id, documents=len(ops))
        return len(ops)

    def _write_sequentially(self, ops: List[WriteOp]) -> None:
        """Write one by one, undoing applied writes if a later one fails."""
        applied: List[WriteOp] = []
        try:
            for op in ops:
                previous = self.backend.get(op.collection, op.key)
                self.backend.apply(op)
                applied.append(WriteOp(op.collection, op.key, previous))
        except Exception as e:
            logger.warning(
                "ledger_write_failed_compensating",
                account_id=self.account_id,
                applied=len(applied),
                error_type=type(e).__name__,
                error=str(e)
            )
            self._compensate(applied)
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError("Ledger write failed", operation="commit", cause=e)

    def _compensate(self, undo: List[WriteOp]) -> None:
        for op in reversed(undo):
            try:
                self.backend.apply(op)
            except Exception as e:
                logger.error(
                    "ledger_compensation_failed",
                    account_id=self.account_id,
                    collection=op.collection,
                    key=op.key,
                    error=str(e)
                )
                raise PersistenceError(
                    "Rollback after a failed write did not complete; stored state may be inconsistent",
                    operation="compensate",
                    collection=op.collection,
                    cause=e
                )
