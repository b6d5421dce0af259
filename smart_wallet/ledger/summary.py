"""
Cross-currency roll-up of portfolios.

Capital in different currencies is never added together; portfolios are
grouped by currency code and each group is summarized on its own.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Iterable, Optional

from .portfolio import Portfolio


@dataclass
class CurrencySummary:
    """Totals for every portfolio held in one currency."""

    currency: str
    total_initial_capital: float = 0.0
    total_current_capital: float = 0.0
    total_profit_loss: float = 0.0
    total_profit_loss_percent: float = 0.0
    total_closed_trades: int = 0
    portfolio_count: int = 0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def summarize_by_currency(portfolios: Iterable[Portfolio]) -> Dict[str, CurrencySummary]:
    """
    Summarize portfolios grouped by currency.

    Returns:
        Mapping of currency code to its CurrencySummary

    Example:
        >>> summary = summarize_by_currency(portfolios)
        >>> summary["EGP"].total_profit_loss
        100.0
    """
    summary: Dict[str, CurrencySummary] = {}

    for portfolio in portfolios:
        data = summary.setdefault(portfolio.currency, CurrencySummary(currency=portfolio.currency))
        data.total_initial_capital += portfolio.initial_capital
        data.total_current_capital += portfolio.current_capital
        data.total_closed_trades += len(portfolio.closed_trades)
        data.portfolio_count += 1

    for data in summary.values():
        data.total_profit_loss = data.total_current_capital - data.total_initial_capital
        data.total_profit_loss_percent = (
            data.total_profit_loss / data.total_initial_capital * 100.0
            if data.total_initial_capital > 0 else 0.0
        )

    return summary


def flatten_summary(summary: Dict[str, CurrencySummary]) -> Optional[CurrencySummary]:
    """
    Collapse a single-currency summary into one record.

    Returns None for an empty summary and raises ValueError when several
    currencies are present, since their totals cannot be added.
    """
    if not summary:
        return None
    if len(summary) > 1:
        raise ValueError(f"Cannot flatten summary across currencies: {sorted(summary)}")
    return next(iter(summary.values()))
