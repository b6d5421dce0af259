"""
Quantity and valuation formulas for capital-sized trades.

Trades are sized by the capital committed at open (``trade_value``) rather
than by share count, so the quantity is always derived from the value and
the purchase price. Every function here is pure.

Example:
    >>> capital_to_return(1000.0, 10.0, 12.0)
    1200.0
    >>> realized_pnl(1000.0, 10.0, 12.0)
    200.0
"""

import math
import numbers
from typing import Optional

from ..exceptions import ValidationError


def _require_number(value, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
        raise ValidationError(
            f"{field} must be a number",
            field=field,
            value=value,
            expected="finite number"
        )


def require_positive(value: float, field: str) -> float:
    """Reject missing, non-numeric, zero or negative input."""
    _require_number(value, field)
    if value <= 0:
        raise ValidationError(
            f"{field} must be positive",
            field=field,
            value=value,
            expected="> 0"
        )
    return value


def require_non_negative(value: float, field: str) -> float:
    _require_number(value, field)
    if value < 0:
        raise ValidationError(
            f"{field} cannot be negative",
            field=field,
            value=value,
            expected=">= 0"
        )
    return value


def quantity(trade_value: float, purchase_price: float) -> float:
    """Number of shares implied by the committed capital."""
    require_positive(purchase_price, "purchase_price")
    return trade_value / purchase_price


def capital_to_return(trade_value: float, purchase_price: float, close_price: float) -> float:
    """Amount credited back to the portfolio when the trade closes."""
    require_positive(purchase_price, "purchase_price")
    return trade_value * (close_price / purchase_price)


def realized_pnl(trade_value: float, purchase_price: float, close_price: float) -> float:
    """Profit or loss locked in at close."""
    return capital_to_return(trade_value, purchase_price, close_price) - trade_value


def pnl_percent(pnl: float, trade_value: float) -> float:
    """P&L as a percentage of the committed capital."""
    if trade_value == 0:
        return 0.0
    return pnl / trade_value * 100.0


def profit_at_take_profit(trade_value: float, purchase_price: float, take_profit: float) -> float:
    """P&L if the position exits at its take-profit level."""
    return take_profit * quantity(trade_value, purchase_price) - trade_value


def loss_at_stop_loss(trade_value: float, purchase_price: float, stop_loss: float) -> float:
    """P&L (normally negative) if the position exits at its stop-loss level."""
    return stop_loss * quantity(trade_value, purchase_price) - trade_value


def close_price_for_pnl(trade_value: float, purchase_price: float, pnl: float) -> float:
    """
    Close price that realizes a given P&L amount.

    Raises:
        ValidationError: If the derived price would be zero or negative
    """
    price = (pnl + trade_value) / quantity(trade_value, purchase_price)
    if price <= 0:
        raise ValidationError(
            "Target profit/loss implies a non-positive close price",
            field="pnl",
            value=pnl,
            expected=f"> {-trade_value}"
        )
    return price


def unrealized_pnl(trade_value: float, purchase_price: float, market_price: Optional[float]) -> Optional[float]:
    """Mark-to-market P&L for an open trade. Display-only, never booked."""
    if market_price is None or market_price <= 0:
        return None
    return market_price * quantity(trade_value, purchase_price) - trade_value
