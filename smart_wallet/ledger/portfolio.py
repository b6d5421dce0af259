"""
Portfolio data model.

A portfolio owns its trades and financial goals. Its withdrawals are an
append-only record of capital moved to the shared savings balance.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import structlog

from .goals import FinancialGoal, sort_goals
from .trade import Trade, TradeStatus, format_timestamp, parse_timestamp, require_record
from ..exceptions import InsufficientCapitalError, RecordNotFoundError, ValidationError

logger = structlog.get_logger(__name__)


@dataclass
class Withdrawal:
    """Capital moved from a portfolio to savings."""

    amount: float
    date: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": self.amount, "date": format_timestamp(self.date)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Withdrawal":
        require_record(data, "withdrawal")
        try:
            return cls(amount=float(data["amount"]), date=parse_timestamp(data["date"]))
        except KeyError as e:
            raise ValidationError("Withdrawal record is missing a field", field=str(e.args[0]), cause=e)
        except (TypeError, ValueError) as e:
            raise ValidationError("Withdrawal record is malformed", cause=e)


@dataclass
class Portfolio:
    """
    A capital account tracking one investment pool.

    Attributes:
        id: Opaque unique identifier
        name: Display name (non-empty)
        currency: Upper-cased currency code
        initial_capital: Baseline capital used for P&L (>= 0)
        current_capital: Uninvested capital available (>= 0)
        financial_goals: Goals, ascending by amount
        trades: Trades, newest first
        withdrawals: Transfers to savings, oldest first
    """

    id: str
    name: str
    currency: str
    initial_capital: float
    current_capital: float
    financial_goals: List[FinancialGoal] = field(default_factory=list)
    trades: List[Trade] = field(default_factory=list)
    withdrawals: List[Withdrawal] = field(default_factory=list)

    def __post_init__(self):
        self.name = (self.name or "").strip()
        if not self.name:
            raise ValidationError("Portfolio name cannot be empty", field="name")
        self.currency = (self.currency or "").strip().upper()
        if not self.currency:
            raise ValidationError("Portfolio currency cannot be empty", field="currency")
        if self.initial_capital < 0:
            raise ValidationError("Initial capital cannot be negative", field="initial_capital",
                                  value=self.initial_capital, expected=">= 0")
        if self.current_capital < 0:
            raise ValidationError("Current capital cannot be negative", field="current_capital",
                                  value=self.current_capital, expected=">= 0")

    @property
    def open_trades(self) -> List[Trade]:
        return [t for t in self.trades if t.status == TradeStatus.OPEN]

    @property
    def closed_trades(self) -> List[Trade]:
        return [t for t in self.trades if t.status == TradeStatus.CLOSED]

    @property
    def profit_loss(self) -> float:
        return self.current_capital - self.initial_capital

    @property
    def profit_loss_pct(self) -> float:
        if self.initial_capital <= 0:
            return 0.0
        return self.profit_loss / self.initial_capital * 100.0

    @property
    def total_withdrawn(self) -> float:
        return sum(w.amount for w in self.withdrawals)

    def get_trade(self, trade_id: str) -> Trade:
        """
        Look up a trade by id.

        Raises:
            RecordNotFoundError: If the portfolio holds no such trade
        """
        for trade in self.trades:
            if trade.id == trade_id:
                return trade
        raise RecordNotFoundError(
            "Trade not found",
            kind="trade",
            record_id=trade_id,
            details={"portfolio_id": self.id}
        )

    def remove_trade(self, trade_id: str) -> Trade:
        trade = self.get_trade(trade_id)
        self.trades = [t for t in self.trades if t.id != trade_id]
        return trade

    def apply_capital_delta(self, delta: float, shift_initial: bool = False) -> None:
        """
        Move capital by ``delta``, keeping both capital fields non-negative.

        Args:
            delta: Signed amount to add to current capital
            shift_initial: Also move initial capital (deposits and withdrawals
                that should not show up as P&L)

        Raises:
            InsufficientCapitalError: If a field would go below zero
        """
        new_current = self.current_capital + delta
        new_initial = self.initial_capital + delta if shift_initial else self.initial_capital

        if new_current < 0:
            raise InsufficientCapitalError(
                "Current capital cannot go below zero",
                portfolio_id=self.id,
                available=self.current_capital,
                requested=-delta
            )
        if new_initial < 0:
            raise InsufficientCapitalError(
                "Initial capital cannot go below zero",
                portfolio_id=self.id,
                available=self.initial_capital,
                requested=-delta
            )

        self.current_capital = new_current
        self.initial_capital = new_initial

    def set_goals(self, goals: List[FinancialGoal]) -> None:
        self.financial_goals = sort_goals(goals)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the snapshot's camelCase keys."""
        return {
            "id": self.id,
            "name": self.name,
            "currency": self.currency,
            "initialCapital": self.initial_capital,
            "currentCapital": self.current_capital,
            "financialGoals": [g.to_dict() for g in self.financial_goals],
            "trades": [t.to_dict() for t in self.trades],
            "withdrawals": [w.to_dict() for w in self.withdrawals],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Portfolio":
        """Create a portfolio from its snapshot representation."""
        require_record(data, "portfolio")
        try:
            return cls(
                id=data["id"],
                name=data["name"],
                currency=data["currency"],
                initial_capital=data["initialCapital"],
                current_capital=data["currentCapital"],
                financial_goals=sort_goals(
                    FinancialGoal.from_dict(g) for g in data.get("financialGoals") or []
                ),
                trades=[Trade.from_dict(t) for t in data.get("trades") or []],
                withdrawals=[Withdrawal.from_dict(w) for w in data.get("withdrawals") or []],
            )
        except KeyError as e:
            raise ValidationError("Portfolio record is missing a field", field=str(e.args[0]), cause=e)
        except (TypeError, ValueError) as e:
            raise ValidationError("Portfolio record is malformed", details={"id": data.get("id")}, cause=e)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Portfolio(name={self.name}, currency={self.currency}, "
            f"capital={self.current_capital:.2f}/{self.initial_capital:.2f}, "
            f"trades={len(self.trades)}, goals={len(self.financial_goals)})"
        )


def find_portfolio(portfolios: List[Portfolio], portfolio_id: str) -> Optional[Portfolio]:
    for portfolio in portfolios:
        if portfolio.id == portfolio_id:
            return portfolio
    return None
