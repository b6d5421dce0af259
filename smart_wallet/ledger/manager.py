"""
Ledger manager: the single entry point for mutating an account's ledger.

Every mutation follows the same cycle:

1. copy the live ``LedgerState``
2. apply the operation to the copy (caller errors raise here)
3. re-evaluate every portfolio's goals
4. persist the difference through the ``LedgerStore``
5. swap the copy in as the live state and deliver goal alerts

A failure at any step leaves the live state exactly as it was.
"""

import copy
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar, Union
import structlog

from . import savings, snapshot
from .goals import FinancialGoal, GoalTracker, seed_goal
from .portfolio import Portfolio
from .savings import Expense
from .state import LedgerState, UserProfile
from .storage import LedgerStore
from .summary import CurrencySummary, summarize_by_currency
from .trade import Trade, new_id, open_trade
from .valuation import close_price_for_pnl, require_non_negative, require_positive
from ..config import config
from ..exceptions import InsufficientCapitalError, PersistenceError, ValidationError
from ..notifications import Notifier

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SORT_KEYS: Dict[str, Callable[[Portfolio], Any]] = {
    "name_asc": lambda p: p.name,
    "name_desc": lambda p: p.name,
    "initial_capital_asc": lambda p: p.initial_capital,
    "initial_capital_desc": lambda p: p.initial_capital,
    "current_capital_asc": lambda p: p.current_capital,
    "current_capital_desc": lambda p: p.current_capital,
    "profit_desc": lambda p: p.profit_loss,
    "loss_desc": lambda p: p.profit_loss,
}

FILTERS: Dict[str, Callable[[Portfolio], bool]] = {
    "profit": lambda p: p.current_capital >= p.initial_capital,
    "loss": lambda p: p.current_capital < p.initial_capital,
}


@dataclass
class LedgerContext:
    """
    Account-scoped context passed explicitly to the engine.

    Attributes:
        account_id: Storage namespace of the signed-in account
        email: Account email; imports must carry a matching profile email
        notifications_enabled: User preference for goal alerts
        notification_permitted: Whether the notification channel accepted us
    """

    account_id: str
    email: Optional[str] = None
    notifications_enabled: bool = True
    notification_permitted: bool = True

    @property
    def can_notify(self) -> bool:
        return self.notifications_enabled and self.notification_permitted


class LedgerManager:
    """
    Applies validated mutations to one account's portfolios, expenses and savings.

    Example:
        >>> store = LedgerStore(SQLiteStorage("smart_wallet.db"), account_id="uid-1")
        >>> manager = LedgerManager(store, LedgerContext(account_id="uid-1"))
        >>> portfolio = manager.create_portfolio("Growth", 1000.0, 1500.0, "EGP")
        >>> trade = manager.open_trade(portfolio.id, "COMI", 10.0, 500.0, 9.0, 13.0)
        >>> manager.close_trade(portfolio.id, trade.id, 12.0)
    """

    def __init__(
        self,
        store: LedgerStore,
        context: LedgerContext,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = datetime.now,
        enforce_goal_above_capital: Optional[bool] = None
    ):
        """
        Initialize the manager and load the account's state.

        Args:
            store: Persistence mapping for the account
            context: Account context (id, email, notification permission)
            notifier: Sink for goal alerts (optional)
            clock: Source of timestamps for trades, withdrawals and expenses
            enforce_goal_above_capital: Require a new portfolio's first goal
                to exceed its initial capital (defaults to config)

        Raises:
            PersistenceError: If the stored state cannot be read
        """
        self.store = store
        self.context = context
        self.clock = clock
        self.enforce_goal_above_capital = (
            config.enforce_goal_above_capital
            if enforce_goal_above_capital is None else enforce_goal_above_capital
        )
        self._tracker = GoalTracker(
            notifier=notifier,
            can_notify=context.can_notify and config.notifications_enabled
        )
        self._state = store.load()

        if not self._state.profile.email and context.email:
            self._state.profile.email = context.email

        logger.info(
            "ledger_manager_initialized",
            account_id=context.account_id,
            portfolios=len(self._state.portfolios),
            savings_balance=self._state.savings_balance
        )

    # ------------------------------------------------------------------
    # Read access (copies, so callers cannot bypass validation)
    # ------------------------------------------------------------------

    @property
    def portfolios(self) -> List[Portfolio]:
        return copy.deepcopy(self._state.portfolios)

    @property
    def expenses(self) -> List[Expense]:
        return copy.deepcopy(self._state.expenses)

    @property
    def savings_balance(self) -> float:
        return self._state.savings_balance

    @property
    def profile(self) -> UserProfile:
        return copy.deepcopy(self._state.profile)

    def get_portfolio(self, portfolio_id: str) -> Portfolio:
        """
        Raises:
            RecordNotFoundError: If no portfolio has this id
        """
        return copy.deepcopy(self._state.get_portfolio(portfolio_id))

    def list_portfolios(self, sort_by: Optional[str] = None, filter_by: Optional[str] = None) -> List[Portfolio]:
        """
        Portfolios for the dashboard, optionally filtered and sorted.

        Args:
            sort_by: One of SORT_KEYS (e.g. "profit_desc"); None keeps stored order
            filter_by: "profit", "loss" or None for all

        Raises:
            ValidationError: If sort_by or filter_by is unknown
        """
        result = self.portfolios

        if filter_by is not None:
            if filter_by not in FILTERS:
                raise ValidationError("Unknown portfolio filter", field="filter_by", value=filter_by,
                                      expected=", ".join(FILTERS))
            result = [p for p in result if FILTERS[filter_by](p)]

        if sort_by is not None:
            if sort_by not in SORT_KEYS:
                raise ValidationError("Unknown portfolio sort key", field="sort_by", value=sort_by,
                                      expected=", ".join(SORT_KEYS))
            reverse = sort_by.endswith("_desc") and sort_by != "loss_desc"
            result.sort(key=SORT_KEYS[sort_by], reverse=reverse)

        return result

    def summary_by_currency(self) -> Dict[str, CurrencySummary]:
        return summarize_by_currency(self._state.portfolios)

    def mark_to_market(self, portfolio_id: str, quotes) -> Dict[str, Optional[float]]:
        """
        Unrealized P&L of each open trade from live quotes.

        Display-only: a trade whose quote cannot be fetched maps to None and
        ledger state is never touched.

        Args:
            portfolio_id: Portfolio to value
            quotes: Object with ``try_fetch_quote(symbol)``, e.g. QuoteProvider
        """
        portfolio = self._state.get_portfolio(portfolio_id)
        result: Dict[str, Optional[float]] = {}
        for trade in portfolio.open_trades:
            quote = quotes.try_fetch_quote(trade.stock_name)
            result[trade.id] = trade.unrealized_pnl(quote.current_price if quote else None)
        return result

    # ------------------------------------------------------------------
    # Mutation cycle
    # ------------------------------------------------------------------

    def _mutate(self, operation: str, apply: Callable[[LedgerState], T]) -> T:
        draft = self._state.copy()
        result = apply(draft)

        events = []
        for portfolio in draft.portfolios:
            events.extend(self._tracker.evaluate(portfolio))

        try:
            written = self.store.commit(self._state, draft)
        except PersistenceError as e:
            logger.error(
                "ledger_persist_failed",
                operation=operation,
                account_id=self.context.account_id,
                error=str(e)
            )
            raise

        self._state = draft
        self._tracker.deliver(events)

        logger.debug("ledger_mutation_committed", operation=operation, documents=written, alerts=len(events))
        return copy.deepcopy(result)

    # ------------------------------------------------------------------
    # Portfolios
    # ------------------------------------------------------------------

    def create_portfolio(
        self,
        name: str,
        initial_capital: float,
        first_goal_amount: float,
        currency: Optional[str] = None
    ) -> Portfolio:
        """
        Create a portfolio seeded with one financial goal.

        Raises:
            ValidationError: If the name is empty, an amount is not positive,
                or (when enforced) the goal does not exceed the initial capital
        """
        require_positive(initial_capital, "initial_capital")
        require_positive(first_goal_amount, "first_goal_amount")
        if self.enforce_goal_above_capital and first_goal_amount <= initial_capital:
            raise ValidationError(
                "Financial goal must be greater than the initial capital",
                field="first_goal_amount",
                value=first_goal_amount,
                expected=f"> {initial_capital}"
            )

        portfolio = Portfolio(
            id=new_id(),
            name=name,
            currency=currency or config.default_currency,
            initial_capital=initial_capital,
            current_capital=initial_capital,
            financial_goals=[seed_goal(initial_capital, first_goal_amount)],
        )

        def apply(state: LedgerState) -> Portfolio:
            state.portfolios.append(portfolio)
            return portfolio

        created = self._mutate("create_portfolio", apply)
        logger.info(
            "portfolio_created",
            portfolio_id=created.id,
            name=created.name,
            currency=created.currency,
            initial_capital=initial_capital
        )
        return created

    def rename_portfolio(self, portfolio_id: str, name: str) -> Portfolio:
        """
        Rename a portfolio.

        Expenses recorded earlier keep the label they were recorded with.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Portfolio name cannot be empty", field="name")

        def apply(state: LedgerState) -> Portfolio:
            portfolio = state.get_portfolio(portfolio_id)
            portfolio.name = name
            return portfolio

        return self._mutate("rename_portfolio", apply)

    def delete_portfolio(self, portfolio_id: str) -> Portfolio:
        """
        Delete a portfolio with its trades and goals.

        Expenses attributed to it are kept, detached and relabeled.
        Confirmation is the caller's responsibility.
        """
        def apply(state: LedgerState) -> Portfolio:
            portfolio = state.get_portfolio(portfolio_id)
            orphaned = savings.orphan_expenses(state.expenses, portfolio)
            state.portfolios = [p for p in state.portfolios if p.id != portfolio_id]
            logger.info(
                "portfolio_deleted",
                portfolio_id=portfolio_id,
                trades=len(portfolio.trades),
                orphaned_expenses=orphaned
            )
            return portfolio

        return self._mutate("delete_portfolio", apply)

    def adjust_capital(self, portfolio_id: str, delta: float) -> Portfolio:
        """
        Deposit (positive) or withdraw (negative) capital without touching P&L.

        Both initial and current capital move by ``delta``.

        Raises:
            ValidationError: If delta is zero
            InsufficientCapitalError: If either field would go below zero
        """
        if not delta:
            raise ValidationError("Capital adjustment must be non-zero", field="delta", value=delta)

        def apply(state: LedgerState) -> Portfolio:
            portfolio = state.get_portfolio(portfolio_id)
            portfolio.apply_capital_delta(delta, shift_initial=True)
            logger.info("capital_adjusted", portfolio_id=portfolio_id, delta=delta,
                        current_capital=portfolio.current_capital)
            return portfolio

        return self._mutate("adjust_capital", apply)

    def reset_capital(self, portfolio_id: str, new_initial: float) -> Portfolio:
        """
        Start a new baseline: both capital fields become ``new_initial``.

        Trade records are kept; only the P&L baseline is discarded.
        A zero baseline is allowed for a portfolio that was fully withdrawn.
        """
        require_non_negative(new_initial, "new_initial")

        def apply(state: LedgerState) -> Portfolio:
            portfolio = state.get_portfolio(portfolio_id)
            portfolio.initial_capital = new_initial
            portfolio.current_capital = new_initial
            logger.info("capital_reset", portfolio_id=portfolio_id, new_initial=new_initial)
            return portfolio

        return self._mutate("reset_capital", apply)

    def replace_goals(
        self,
        portfolio_id: str,
        goals: Iterable[Union[FinancialGoal, Dict[str, Any]]]
    ) -> Portfolio:
        """
        Replace a portfolio's goal set; goals are stored ascending by amount.

        Achieved/notified flags of submitted goals are re-derived from the
        current capital before the result is returned.
        """
        parsed = [g if isinstance(g, FinancialGoal) else FinancialGoal.from_dict(g) for g in goals]

        def apply(state: LedgerState) -> Portfolio:
            portfolio = state.get_portfolio(portfolio_id)
            portfolio.set_goals(copy.deepcopy(parsed))
            return portfolio

        return self._mutate("replace_goals", apply)

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    def open_trade(
        self,
        portfolio_id: str,
        stock_name: str,
        purchase_price: float,
        trade_value: float,
        stop_loss: float,
        take_profit: float,
        notes: Optional[str] = None
    ) -> Trade:
        """
        Open a trade, debiting its value from current capital.

        Raises:
            ValidationError: If a field is empty or not positive
            InsufficientCapitalError: If current capital < trade_value
        """
        def apply(state: LedgerState) -> Trade:
            portfolio = state.get_portfolio(portfolio_id)
            trade = open_trade(
                portfolio_id, stock_name, purchase_price, trade_value,
                stop_loss, take_profit, notes, when=self.clock()
            )
            if portfolio.current_capital < trade.trade_value:
                raise InsufficientCapitalError(
                    "Portfolio balance is insufficient to open this trade",
                    portfolio_id=portfolio_id,
                    available=portfolio.current_capital,
                    requested=trade.trade_value
                )
            portfolio.apply_capital_delta(-trade.trade_value)
            portfolio.trades.insert(0, trade)
            logger.info(
                "trade_opened",
                portfolio_id=portfolio_id,
                trade_id=trade.id,
                stock_name=trade.stock_name,
                trade_value=trade.trade_value,
                quantity=trade.quantity
            )
            return trade

        return self._mutate("open_trade", apply)

    def update_trade(self, portfolio_id: str, trade_id: str, **changes) -> Trade:
        """
        Edit an open trade.

        A trade_value change moves capital by (old - new).

        Raises:
            InvalidStateError: If the trade is closed
            ValidationError: If a field is unknown or invalid
            InsufficientCapitalError: If capital cannot cover a larger value
        """
        def apply(state: LedgerState) -> Trade:
            portfolio = state.get_portfolio(portfolio_id)
            trade = portfolio.get_trade(trade_id)
            normalized = trade.validate_edit(changes)
            adjustment = trade.edit_adjustment(normalized)
            portfolio.apply_capital_delta(adjustment)
            trade.apply_edit(normalized)
            return trade

        return self._mutate("update_trade", apply)

    def close_trade(self, portfolio_id: str, trade_id: str, close_price: float) -> Trade:
        """
        Close an open trade, crediting the returned capital.

        Raises:
            InvalidStateError: If the trade is already closed
            ValidationError: If close_price is not positive
        """
        def apply(state: LedgerState) -> Trade:
            portfolio = state.get_portfolio(portfolio_id)
            trade = portfolio.get_trade(trade_id)
            returned = trade.close(close_price, when=self.clock())
            portfolio.apply_capital_delta(returned)
            return trade

        return self._mutate("close_trade", apply)

    def close_trade_at_pnl(self, portfolio_id: str, trade_id: str, pnl: float) -> Trade:
        """Close a trade at the price that realizes a given P&L amount."""
        trade = self._state.get_portfolio(portfolio_id).get_trade(trade_id)
        price = close_price_for_pnl(trade.trade_value, trade.purchase_price, pnl)
        return self.close_trade(portfolio_id, trade_id, price)

    def delete_trade(self, portfolio_id: str, trade_id: str) -> Trade:
        """
        Delete a trade and reverse its capital effect.

        Open trades refund their value; closed trades undo their net P&L.
        Confirmation is the caller's responsibility.

        Raises:
            InsufficientCapitalError: If undoing a profit would drop capital below zero
        """
        def apply(state: LedgerState) -> Trade:
            portfolio = state.get_portfolio(portfolio_id)
            trade = portfolio.get_trade(trade_id)
            adjustment = trade.deletion_adjustment
            portfolio.apply_capital_delta(adjustment)
            portfolio.remove_trade(trade_id)
            logger.info(
                "trade_deleted",
                portfolio_id=portfolio_id,
                trade_id=trade_id,
                status=trade.status.value,
                capital_adjustment=adjustment
            )
            return trade

        return self._mutate("delete_trade", apply)

    # ------------------------------------------------------------------
    # Savings and expenses
    # ------------------------------------------------------------------

    def withdraw_to_savings(self, portfolio_id: str, amount: float) -> Portfolio:
        """Move capital from a portfolio into the savings balance."""
        def apply(state: LedgerState) -> Portfolio:
            portfolio = state.get_portfolio(portfolio_id)
            savings.withdraw_to_savings(state, portfolio, amount, when=self.clock())
            return portfolio

        return self._mutate("withdraw_to_savings", apply)

    def add_expense(self, description: str, amount: float, category) -> Expense:
        """Record an expense paid from savings."""
        return self._mutate(
            "add_expense",
            lambda state: savings.add_expense(state, description, amount, category, when=self.clock())
        )

    def delete_expense(self, expense_id: str) -> Expense:
        """Delete an expense, restoring its amount."""
        return self._mutate("delete_expense", lambda state: savings.delete_expense(state, expense_id))

    # ------------------------------------------------------------------
    # Profile and whole-account operations
    # ------------------------------------------------------------------

    def update_profile(self, profile: UserProfile) -> UserProfile:
        def apply(state: LedgerState) -> UserProfile:
            state.profile = copy.deepcopy(profile)
            return state.profile

        return self._mutate("update_profile", apply)

    def reset_all(self) -> None:
        """Delete every portfolio and expense and zero the savings balance."""
        def apply(state: LedgerState) -> None:
            state.portfolios = []
            state.expenses = []
            state.savings_balance = 0.0
            state.profile = UserProfile(email=self.context.email or "")

        self._mutate("reset_all", apply)
        logger.info("ledger_reset", account_id=self.context.account_id)

    def export_snapshot(self) -> Dict[str, Any]:
        return snapshot.export_snapshot(self._state)

    def write_backup(self, directory: Optional[Union[str, Path]] = None) -> Path:
        directory = directory or config.ensure_backup_dir()
        return snapshot.write_backup(self._state, directory, on=self.clock().date())

    def import_snapshot(self, data: Any) -> None:
        """
        Replace the account's state with a snapshot.

        The payload is fully validated before anything changes; on any error
        the existing state is untouched.

        Raises:
            ValidationError: If the snapshot is malformed or belongs to
                another account
            PersistenceError: If the new state cannot be stored
        """
        imported = snapshot.parse_snapshot(data, active_email=self.context.email)

        def apply(state: LedgerState) -> None:
            state.portfolios = imported.portfolios
            state.expenses = imported.expenses
            state.savings_balance = imported.savings_balance
            state.profile = imported.profile

        self._mutate("import_snapshot", apply)
        logger.info(
            "snapshot_imported",
            account_id=self.context.account_id,
            portfolios=len(imported.portfolios),
            expenses=len(imported.expenses)
        )

    def __repr__(self) -> str:
        return (
            f"LedgerManager(account={self.context.account_id}, portfolios={len(self._state.portfolios)}, "
            f"savings={self._state.savings_balance:.2f})"
        )
