"""
Portfolio Ledger Module for Smart Wallet.

This module maintains an account's investment ledger:
- Portfolios with capital balances and financial goals
- Capital-sized trades with an open -> closed lifecycle
- Goal achievement tracking with one alert per crossing
- Savings balance fed by withdrawals and drained by expenses
- Cross-currency summaries and performance analytics
- Persistent storage (SQLite or in-memory) and JSON backups

Example usage:
    >>> from smart_wallet.ledger import (
    ...     LedgerManager, LedgerContext, LedgerStore, SQLiteStorage
    ... )
    >>>
    >>> store = LedgerStore(SQLiteStorage("smart_wallet.db"), account_id="uid-1")
    >>> manager = LedgerManager(store, LedgerContext(account_id="uid-1"))
    >>>
    >>> # Create a portfolio and open a trade
    >>> portfolio = manager.create_portfolio("Growth", 1000.0, 1500.0, "EGP")
    >>> trade = manager.open_trade(portfolio.id, "COMI", 10.0, 500.0, 9.0, 13.0)
    >>>
    >>> # Close it and check the roll-up
    >>> manager.close_trade(portfolio.id, trade.id, 12.0)
    >>> summary = manager.summary_by_currency()
"""

from .trade import Trade, TradeStatus, TradeOutcome, open_trade
from .goals import FinancialGoal, GoalAchievedEvent, GoalTracker, evaluate_goal
from .portfolio import Portfolio, Withdrawal
from .savings import Expense, ExpenseCategory
from .state import LedgerState, UserProfile
from .storage import (
    StorageBackend,
    MemoryStorage,
    SQLiteStorage,
    LedgerStore,
    WriteOp
)
from .summary import CurrencySummary, summarize_by_currency, flatten_summary
from .manager import LedgerManager, LedgerContext

__all__ = [
    # Trades
    "Trade",
    "TradeStatus",
    "TradeOutcome",
    "open_trade",

    # Goals
    "FinancialGoal",
    "GoalAchievedEvent",
    "GoalTracker",
    "evaluate_goal",

    # Portfolios, savings, state
    "Portfolio",
    "Withdrawal",
    "Expense",
    "ExpenseCategory",
    "LedgerState",
    "UserProfile",

    # Storage
    "StorageBackend",
    "MemoryStorage",
    "SQLiteStorage",
    "LedgerStore",
    "WriteOp",

    # Summaries
    "CurrencySummary",
    "summarize_by_currency",
    "flatten_summary",

    # Manager
    "LedgerManager",
    "LedgerContext",
]
