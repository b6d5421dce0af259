"""
Unit tests for the trade lifecycle.

Tests cover:
- Creation and normalization
- Editing rules for open and closed trades
- Closing exactly once
- Deletion adjustments
- Snapshot (camelCase) serialization
"""

from datetime import datetime

import pytest

from smart_wallet.exceptions import InvalidStateError, ValidationError
from smart_wallet.ledger import Trade, TradeOutcome, TradeStatus, open_trade


@pytest.fixture
def trade():
    """100 shares bought at 10 for 1000."""
    return open_trade("p1", " comi ", 10.0, 1000.0, 9.0, 13.0, notes="breakout",
                      when=datetime(2024, 5, 1, 10, 0))


class TestTradeCreation:
    """Test building new trades."""

    def test_open_trade_defaults(self, trade):
        """New trades are open, upper-cased and carry an id."""
        assert trade.status == TradeStatus.OPEN
        assert trade.stock_name == "COMI"
        assert trade.id
        assert trade.quantity == pytest.approx(100.0)
        assert trade.realized_pnl is None

    @pytest.mark.parametrize("field", ["purchase_price", "trade_value", "stop_loss", "take_profit"])
    def test_non_positive_fields_rejected(self, field):
        """Every price field must be positive."""
        values = dict(purchase_price=10.0, trade_value=1000.0, stop_loss=9.0, take_profit=13.0)
        values[field] = 0
        with pytest.raises(ValidationError):
            open_trade("p1", "COMI", **values)

    def test_empty_stock_name_rejected(self):
        """Stock name is required."""
        with pytest.raises(ValidationError):
            open_trade("p1", "   ", 10.0, 1000.0, 9.0, 13.0)


class TestTradeEditing:
    """Test edits while open."""

    def test_edit_adjustment_is_old_minus_new(self, trade):
        """Raising the value draws more capital (negative adjustment)."""
        changes = trade.validate_edit({"trade_value": 1500.0})
        assert trade.edit_adjustment(changes) == pytest.approx(-500.0)

    def test_non_value_edit_has_no_adjustment(self, trade):
        """Editing notes or levels leaves capital alone."""
        changes = trade.validate_edit({"notes": "trail stop", "stop_loss": 9.5, "stock_name": "etel"})
        assert trade.edit_adjustment(changes) == 0
        trade.apply_edit(changes)
        assert trade.stock_name == "ETEL"
        assert trade.stop_loss == 9.5

    def test_immutable_fields_rejected(self, trade):
        """Status and dates cannot be edited."""
        with pytest.raises(ValidationError):
            trade.validate_edit({"status": "closed"})
        with pytest.raises(ValidationError):
            trade.validate_edit({"open_date": datetime(2020, 1, 1)})

    def test_closed_trade_cannot_be_edited(self, trade):
        """Edits on closed trades are an invalid state."""
        trade.close(12.0)
        with pytest.raises(InvalidStateError):
            trade.validate_edit({"notes": "late note"})


class TestTradeClosing:
    """Test the close transition."""

    def test_close_returns_capital(self, trade):
        """Buy 1000 worth at 10, close at 12."""
        returned = trade.close(12.0, when=datetime(2024, 5, 2))

        assert returned == pytest.approx(1200.0)
        assert trade.status == TradeStatus.CLOSED
        assert trade.outcome == TradeOutcome.PROFIT
        assert trade.realized_pnl == pytest.approx(200.0)
        assert trade.realized_pnl_pct == pytest.approx(20.0)
        assert trade.close_date == datetime(2024, 5, 2)

    def test_break_even_is_profit(self, trade):
        """Zero P&L counts as profit."""
        trade.close(10.0)
        assert trade.outcome == TradeOutcome.PROFIT

    def test_loss_outcome(self, trade):
        trade.close(8.0)
        assert trade.outcome == TradeOutcome.LOSS

    def test_close_twice_rejected(self, trade):
        """A trade transitions to closed exactly once."""
        trade.close(12.0)
        with pytest.raises(InvalidStateError):
            trade.close(13.0)
        assert trade.close_price == 12.0

    def test_close_price_must_be_positive(self, trade):
        with pytest.raises(ValidationError):
            trade.close(0)
        assert trade.is_open


class TestDeletionAdjustment:
    """Test the capital delta of deleting a trade."""

    def test_open_trade_refunds_value(self, trade):
        assert trade.deletion_adjustment == pytest.approx(1000.0)

    def test_closed_trade_undoes_pnl(self, trade):
        """Principal was returned at close; only the P&L is undone."""
        trade.close(12.0)
        assert trade.deletion_adjustment == pytest.approx(-200.0)

    def test_close_then_delete_nets_to_principal(self, trade):
        """+capital_to_return then deletion adjustment equals +trade_value."""
        returned = trade.close(8.0)
        assert returned + trade.deletion_adjustment == pytest.approx(trade.trade_value)


class TestTradeSerialization:
    """Test camelCase snapshot records."""

    def test_from_original_record(self):
        """Records written by the web app (with 'Z' timestamps) load."""
        trade = Trade.from_dict({
            "id": "t1",
            "portfolioId": "p1",
            "stockName": "COMI",
            "purchasePrice": 10,
            "tradeValue": 1000,
            "stopLoss": 9,
            "takeProfit": 13,
            "status": "closed",
            "closePrice": 12,
            "outcome": "profit",
            "openDate": "2024-05-01T10:00:00.000Z",
            "closeDate": "2024-05-02T10:00:00.000Z",
        })

        assert trade.status == TradeStatus.CLOSED
        assert trade.outcome == TradeOutcome.PROFIT
        assert trade.close_date.year == 2024
        assert trade.to_dict()["closePrice"] == 12

    def test_missing_field_rejected(self):
        with pytest.raises(ValidationError):
            Trade.from_dict({"id": "t1", "portfolioId": "p1"})

    def test_open_trade_omits_close_fields(self, trade):
        data = trade.to_dict()
        assert data["status"] == "open"
        assert "closePrice" not in data
        assert data["stockName"] == "COMI"
