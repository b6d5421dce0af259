"""Shared fixtures for ledger tests."""

from datetime import datetime, timedelta

import pytest

from smart_wallet.exceptions import PersistenceError
from smart_wallet.ledger import LedgerContext, LedgerManager, LedgerStore, MemoryStorage
from smart_wallet.notifications import RecordingNotifier

ACCOUNT_ID = "uid-test"
ACCOUNT_EMAIL = "investor@example.com"


class SteppingClock:
    """Deterministic clock that advances one minute per reading."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 10, 0)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(minutes=1)
        return value


class FlakyStorage(MemoryStorage):
    """Memory storage that rejects exactly one write once armed.

    ``error`` replaces the default PersistenceError, for backends that leak
    OS or driver exceptions.
    """

    def __init__(self):
        super().__init__()
        self.writes = 0
        self.fail_at = None
        self.error = None

    def set(self, collection, key, document):
        if self.fail_at is not None and self.writes == self.fail_at:
            self.fail_at = None
            raise self.error or PersistenceError("write rejected", operation="set", collection=collection)
        self.writes += 1
        super().set(collection, key, document)


class BatchFailingStorage(MemoryStorage):
    """Batch-capable storage whose batches can be made to fail."""

    supports_batch = True

    def __init__(self):
        super().__init__()
        self.fail_batches = False

    def batch(self, operations):
        if self.fail_batches:
            raise PersistenceError("batch rejected", operation="batch")
        for op in operations:
            self.apply(op)


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def backend():
    return MemoryStorage()


@pytest.fixture
def context():
    return LedgerContext(account_id=ACCOUNT_ID, email=ACCOUNT_EMAIL)


@pytest.fixture
def make_manager(context, notifier, clock):
    """Build a manager over a given backend (memory by default)."""

    def _make(backend=None, **kwargs):
        store = LedgerStore(backend if backend is not None else MemoryStorage(), account_id=ACCOUNT_ID)
        kwargs.setdefault("notifier", notifier)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("enforce_goal_above_capital", True)
        ctx = kwargs.pop("context", context)
        return LedgerManager(store, ctx, **kwargs)

    return _make


@pytest.fixture
def manager(make_manager, backend):
    return make_manager(backend)


@pytest.fixture
def portfolio(manager):
    """Portfolio with 1000 capital and a 1500 first goal."""
    return manager.create_portfolio("Growth", 1000.0, 1500.0, "EGP")


@pytest.fixture
def flaky_storage():
    return FlakyStorage()


@pytest.fixture
def batch_storage():
    return BatchFailingStorage()
