"""
Unit tests for the valuation formulas.

Tests cover:
- Quantity derivation and its precondition
- Close-time capital return and realized P&L
- Risk preview at stop-loss / take-profit
- Deriving a close price from a target P&L
- Numeric input checks
"""

import pytest

from smart_wallet.exceptions import ValidationError
from smart_wallet.ledger import valuation


class TestQuantityAndPnL:
    """Test the close-time formulas."""

    def test_quantity(self):
        """Quantity is trade value over purchase price."""
        assert valuation.quantity(1000.0, 10.0) == pytest.approx(100.0)

    def test_quantity_rejects_non_positive_price(self):
        """A zero purchase price is rejected instead of dividing by zero."""
        with pytest.raises(ValidationError):
            valuation.quantity(1000.0, 0.0)

    def test_profitable_close(self):
        """Close at 12 after buying 1000 worth at 10."""
        assert valuation.capital_to_return(1000.0, 10.0, 12.0) == pytest.approx(1200.0)
        assert valuation.realized_pnl(1000.0, 10.0, 12.0) == pytest.approx(200.0)

    def test_losing_close(self):
        """Close below the purchase price gives a negative P&L."""
        assert valuation.realized_pnl(1000.0, 10.0, 8.0) == pytest.approx(-200.0)

    def test_pnl_percent(self):
        """P&L percent is relative to committed capital."""
        assert valuation.pnl_percent(200.0, 1000.0) == pytest.approx(20.0)
        assert valuation.pnl_percent(50.0, 0.0) == 0.0


class TestRiskPreview:
    """Test stop-loss / take-profit previews and target-P&L closes."""

    def test_take_profit_and_stop_loss(self):
        """Preview P&L at the planned exits."""
        assert valuation.profit_at_take_profit(1000.0, 10.0, 13.0) == pytest.approx(300.0)
        assert valuation.loss_at_stop_loss(1000.0, 10.0, 9.0) == pytest.approx(-100.0)

    def test_close_price_for_pnl(self):
        """A +200 target on 100 shares bought at 10 closes at 12."""
        assert valuation.close_price_for_pnl(1000.0, 10.0, 200.0) == pytest.approx(12.0)

    def test_close_price_for_pnl_rejects_total_loss(self):
        """Losing the full value or more would need a non-positive price."""
        with pytest.raises(ValidationError):
            valuation.close_price_for_pnl(1000.0, 10.0, -1000.0)

    def test_unrealized_pnl_without_quote(self):
        """Missing quotes give no unrealized P&L."""
        assert valuation.unrealized_pnl(1000.0, 10.0, None) is None
        assert valuation.unrealized_pnl(1000.0, 10.0, 11.0) == pytest.approx(100.0)


class TestNumericChecks:
    """Test the shared positive / non-negative guards."""

    @pytest.mark.parametrize("value", ["500", None, True, float("nan"), float("inf")])
    def test_non_numbers_rejected(self, value):
        with pytest.raises(ValidationError) as exc_info:
            valuation.require_positive(value, "amount")
        assert exc_info.value.details["field"] == "amount"

    def test_positive_and_non_negative(self):
        assert valuation.require_positive(1, "amount") == 1
        assert valuation.require_non_negative(0, "amount") == 0
        with pytest.raises(ValidationError):
            valuation.require_positive(0, "amount")
        with pytest.raises(ValidationError):
            valuation.require_non_negative(-0.01, "amount")
