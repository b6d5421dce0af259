"""
Savings balance and expense tracking.

The savings balance is account-wide: portfolio withdrawals feed it and
expenses drain it. Deleting an expense reverses its effect.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional
import structlog

from .portfolio import Portfolio, Withdrawal, find_portfolio
from .trade import new_id, format_timestamp, parse_timestamp, require_record
from .valuation import require_positive
from ..exceptions import InsufficientCapitalError, InsufficientSavingsError, RecordNotFoundError, ValidationError

if TYPE_CHECKING:
    from .state import LedgerState

logger = structlog.get_logger(__name__)

DELETED_PORTFOLIO_SUFFIX = " (محذوفة)"


class ExpenseCategory(Enum):
    """
    Closed set of expense categories.

    Values are the stored (Arabic) labels; ``label`` gives the English name.
    """
    GROCERIES = "بقالة"
    SHOPPING = "تسوق"
    RESTAURANTS = "مطاعم"
    TRANSPORTATION = "مواصلات"
    TRAVEL = "سفر"
    ENTERTAINMENT = "ترفيه"
    UTILITIES = "مرافق"
    HEALTH_SERVICES = "خدمات صحية"
    SERVICES = "خدمات"
    TRANSFERS = "تحويلات"
    CASH_WITHDRAWAL = "سحب نقدي"
    GIFTS = "هدايا"
    DONATIONS = "تبرعات"
    OTHER = "أخرى"

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value) -> "ExpenseCategory":
        """Accept an enum member, a stored label or an English member name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        key = str(value).strip().upper().replace(" ", "_")
        if key in cls.__members__:
            return cls[key]
        raise ValidationError(
            "Unknown expense category",
            field="category",
            value=value,
            expected=", ".join(c.value for c in cls)
        )


@dataclass
class Expense:
    """
    A spend drawn from savings.

    Attributes:
        id: Opaque unique identifier
        description: What the money was spent on
        amount: Amount spent (> 0)
        category: ExpenseCategory
        date: When the expense was recorded
        portfolio_id: Originating portfolio, if any
        portfolio_name: Label of the originating portfolio at recording time
    """

    id: str
    description: str
    amount: float
    category: ExpenseCategory
    date: datetime
    portfolio_id: Optional[str] = None
    portfolio_name: Optional[str] = None

    def __post_init__(self):
        self.description = (self.description or "").strip()
        if not self.description:
            raise ValidationError("Expense description cannot be empty", field="description")
        require_positive(self.amount, "amount")
        self.category = ExpenseCategory.parse(self.category)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "description": self.description,
            "amount": self.amount,
            "category": self.category.value,
            "date": format_timestamp(self.date),
        }
        if self.portfolio_id is not None:
            data["portfolioId"] = self.portfolio_id
        if self.portfolio_name is not None:
            data["portfolioName"] = self.portfolio_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Expense":
        require_record(data, "expense")
        try:
            return cls(
                id=data["id"],
                description=data["description"],
                amount=data["amount"],
                category=data["category"],
                date=parse_timestamp(data["date"]),
                portfolio_id=data.get("portfolioId"),
                portfolio_name=data.get("portfolioName"),
            )
        except KeyError as e:
            raise ValidationError("Expense record is missing a field", field=str(e.args[0]), cause=e)
        except (TypeError, ValueError) as e:
            raise ValidationError("Expense record is malformed", details={"id": data.get("id")}, cause=e)


def withdraw_to_savings(state: "LedgerState", portfolio: Portfolio, amount: float,
                        when: Optional[datetime] = None) -> Withdrawal:
    """
    Move capital from a portfolio into the savings balance.

    Raises:
        ValidationError: If amount is not positive
        InsufficientCapitalError: If the portfolio cannot cover the amount
    """
    require_positive(amount, "amount")
    if portfolio.current_capital < amount:
        raise InsufficientCapitalError(
            "Portfolio balance is insufficient for this withdrawal",
            portfolio_id=portfolio.id,
            available=portfolio.current_capital,
            requested=amount
        )

    portfolio.apply_capital_delta(-amount)
    withdrawal = Withdrawal(amount=amount, date=when or datetime.now())
    portfolio.withdrawals.append(withdrawal)
    state.savings_balance += amount

    logger.info(
        "withdrawn_to_savings",
        portfolio_id=portfolio.id,
        amount=amount,
        savings_balance=state.savings_balance
    )
    return withdrawal


def add_expense(state: "LedgerState", description: str, amount: float, category,
                when: Optional[datetime] = None) -> Expense:
    """
    Record an expense paid from savings.

    Raises:
        ValidationError: If description, amount or category are invalid
        InsufficientSavingsError: If savings cannot cover the amount
    """
    expense = Expense(
        id=new_id(),
        description=description,
        amount=amount,
        category=category,
        date=when or datetime.now(),
    )
    if state.savings_balance < expense.amount:
        raise InsufficientSavingsError(
            "Savings balance is insufficient",
            available=state.savings_balance,
            requested=expense.amount
        )

    state.expenses.insert(0, expense)
    state.savings_balance -= expense.amount

    logger.info(
        "expense_added",
        expense_id=expense.id,
        amount=expense.amount,
        category=expense.category.label,
        savings_balance=state.savings_balance
    )
    return expense


def delete_expense(state: "LedgerState", expense_id: str) -> Expense:
    """
    Remove an expense and restore its amount.

    The amount goes back to the originating portfolio when the expense still
    references a live one, otherwise to the savings balance.
    """
    expense = get_expense(state.expenses, expense_id)

    source = find_portfolio(state.portfolios, expense.portfolio_id) if expense.portfolio_id else None
    if source is not None:
        source.apply_capital_delta(expense.amount)
    else:
        state.savings_balance += expense.amount

    state.expenses = [e for e in state.expenses if e.id != expense_id]

    logger.info(
        "expense_deleted",
        expense_id=expense_id,
        amount=expense.amount,
        restored_to=source.id if source else "savings"
    )
    return expense


def orphan_expenses(expenses: List[Expense], portfolio: Portfolio) -> int:
    """
    Detach expenses from a portfolio that is being deleted.

    The expense stays in history; its back-reference is cleared and its
    label marks the source as deleted.
    """
    count = 0
    for expense in expenses:
        if expense.portfolio_id != portfolio.id:
            continue
        expense.portfolio_id = None
        expense.portfolio_name = f"{expense.portfolio_name or portfolio.name}{DELETED_PORTFOLIO_SUFFIX}"
        count += 1
    return count


def get_expense(expenses: List[Expense], expense_id: str) -> Expense:
    for expense in expenses:
        if expense.id == expense_id:
            return expense
    raise RecordNotFoundError("Expense not found", kind="expense", record_id=expense_id)


def total_expenses(expenses: List[Expense]) -> float:
    return sum(e.amount for e in expenses)


def expenses_by_category(expenses: List[Expense]) -> Dict[ExpenseCategory, float]:
    """Total spent per category, for the expense chart."""
    totals: Dict[ExpenseCategory, float] = defaultdict(float)
    for expense in expenses:
        totals[expense.category] += expense.amount
    return dict(totals)


def filter_by_category(expenses: List[Expense], category=None) -> List[Expense]:
    """Expenses in one category; ``None`` returns all of them."""
    if category is None:
        return list(expenses)
    category = ExpenseCategory.parse(category)
    return [e for e in expenses if e.category == category]
