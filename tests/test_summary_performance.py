"""
Unit tests for summaries and performance analytics.

Tests cover:
- Cross-currency aggregation and flattening
- Per-stock breakdown of closed trades
- Portfolio comparison metrics (win rate, ROI, Sharpe ratio)
- Capital history for charts
- CSV export of closed trades
"""

from datetime import datetime

import numpy as np
import pandas as pd
import pytest

from smart_wallet.exceptions import ValidationError
from smart_wallet.ledger import Portfolio, flatten_summary, open_trade, summarize_by_currency
from smart_wallet.ledger.performance import (
    CLOSED_TRADE_COLUMNS,
    capital_history,
    closed_trades_frame,
    compare_portfolios,
    export_closed_trades_csv,
    stock_breakdown,
)


def _closed(stock, value, price, close_price, day):
    trade = open_trade("p1", stock, price, value, price * 0.5, price * 2, when=datetime(2024, 5, 1))
    trade.close(close_price, when=datetime(2024, 5, day))
    return trade


@pytest.fixture
def active_portfolio():
    """Three closed trades (+200, -50, 0) and one open trade."""
    trades = [
        _closed("ETEL", 200.0, 20.0, 20.0, 4),
        _closed("COMI", 1000.0, 10.0, 12.0, 2),
        _closed("COMI", 500.0, 10.0, 9.0, 3),
        open_trade("p1", "HRHO", 5.0, 100.0, 4.0, 6.0),
    ]
    return Portfolio(id="p1", name="Active", currency="EGP", initial_capital=1000.0,
                     current_capital=1150.0, trades=trades)


@pytest.fixture
def idle_portfolio():
    return Portfolio(id="p2", name="Idle", currency="EGP", initial_capital=500.0, current_capital=400.0)


class TestCurrencySummary:
    """Test the per-currency roll-up."""

    def test_single_currency_totals(self):
        portfolios = [
            Portfolio(id="a", name="A", currency="EGP", initial_capital=1000.0, current_capital=1200.0),
            Portfolio(id="b", name="B", currency="egp", initial_capital=500.0, current_capital=400.0),
        ]

        summary = summarize_by_currency(portfolios)

        egp = summary["EGP"]
        assert egp.total_initial_capital == pytest.approx(1500.0)
        assert egp.total_current_capital == pytest.approx(1600.0)
        assert egp.total_profit_loss == pytest.approx(100.0)
        assert egp.total_profit_loss_percent == pytest.approx(6.6667, rel=1e-4)
        assert egp.portfolio_count == 2

    def test_currencies_never_mix(self, active_portfolio):
        usd = Portfolio(id="u", name="Dollar", currency="USD", initial_capital=100.0, current_capital=90.0)

        summary = summarize_by_currency([active_portfolio, usd])

        assert set(summary) == {"EGP", "USD"}
        assert summary["EGP"].total_closed_trades == 3
        assert summary["USD"].total_profit_loss == pytest.approx(-10.0)
        with pytest.raises(ValueError):
            flatten_summary(summary)

    def test_flatten(self, active_portfolio):
        assert flatten_summary({}) is None
        flat = flatten_summary(summarize_by_currency([active_portfolio]))
        assert flat.currency == "EGP"
        assert flat.to_dict()["total_profit_loss"] == pytest.approx(150.0)

    def test_zero_initial_capital_has_zero_percent(self):
        empty = Portfolio(id="z", name="Zero", currency="EGP", initial_capital=0.0, current_capital=0.0)
        assert summarize_by_currency([empty])["EGP"].total_profit_loss_percent == 0.0


class TestStockBreakdown:
    """Test per-stock statistics."""

    def test_breakdown(self, active_portfolio):
        breakdown = stock_breakdown(active_portfolio)

        assert list(breakdown.index) == ["COMI", "ETEL"]
        comi = breakdown.loc["COMI"]
        assert comi["total_trades"] == 2
        assert comi["net_profit_loss"] == pytest.approx(150.0)
        assert comi["avg_trade_value"] == pytest.approx(750.0)
        assert comi["win_rate"] == pytest.approx(50.0)
        assert comi["avg_profit"] == pytest.approx(200.0)
        assert comi["avg_loss"] == pytest.approx(-50.0)

    def test_break_even_is_not_a_win(self, active_portfolio):
        etel = stock_breakdown(active_portfolio).loc["ETEL"]
        assert etel["win_rate"] == 0.0
        assert etel["avg_profit"] == 0.0

    def test_open_trades_excluded(self, active_portfolio):
        assert "HRHO" not in stock_breakdown(active_portfolio).index

    def test_no_closed_trades(self, idle_portfolio):
        assert stock_breakdown(idle_portfolio).empty


class TestComparePortfolios:
    """Test comparison metrics."""

    def test_metrics(self, active_portfolio, idle_portfolio):
        frame = compare_portfolios([active_portfolio, idle_portfolio]).set_index("id")

        active = frame.loc["p1"]
        assert active["total_closed_trades"] == 3
        # Break-even closes carry the profit outcome
        assert active["win_rate"] == pytest.approx(200.0 / 3)
        assert active["roi"] == pytest.approx(15.0)
        assert active["avg_trade_value"] == pytest.approx(450.0)
        assert active["sharpe_ratio"] == pytest.approx(0.15 / np.std([0.2, -0.1, 0.0]))

        idle = frame.loc["p2"]
        assert idle["roi"] == pytest.approx(-20.0)
        assert idle["sharpe_ratio"] == 0.0
        assert idle["win_rate"] == 0.0

    def test_sharpe_needs_two_trades(self):
        single = Portfolio(id="s", name="Single", currency="EGP", initial_capital=1000.0,
                           current_capital=1200.0, trades=[_closed("COMI", 1000.0, 10.0, 12.0, 2)])
        assert compare_portfolios([single]).loc[0, "sharpe_ratio"] == 0.0

    def test_sorting(self, active_portfolio, idle_portfolio):
        frame = compare_portfolios([idle_portfolio, active_portfolio], sort_by="roi", ascending=False)
        assert list(frame["name"]) == ["Active", "Idle"]

        with pytest.raises(ValidationError):
            compare_portfolios([active_portfolio], sort_by="luck")


class TestCapitalHistory:
    """Test the capital curve."""

    def test_history_follows_close_order(self, active_portfolio):
        history = capital_history(active_portfolio)

        assert list(history.index) == [0, 1, 2, 3]
        assert list(history) == pytest.approx([1000.0, 1200.0, 1150.0, 1150.0])

    def test_history_without_closes(self, idle_portfolio):
        assert list(capital_history(idle_portfolio)) == [500.0]

    def test_closed_frame_sorted_by_close_date(self, active_portfolio):
        frame = closed_trades_frame(active_portfolio)
        assert list(frame.columns) == CLOSED_TRADE_COLUMNS
        assert list(frame["stock_name"]) == ["COMI", "COMI", "ETEL"]


class TestCsvExport:
    """Test closed-trade CSV export."""

    def test_export(self, active_portfolio, tmp_path):
        path = export_closed_trades_csv(active_portfolio, tmp_path / "trades.csv")

        frame = pd.read_csv(path, encoding="utf-8-sig")
        assert len(frame) == 3
        assert list(frame.columns) == CLOSED_TRADE_COLUMNS
        assert frame["realized_pnl"].sum() == pytest.approx(150.0)

    def test_export_without_closed_trades(self, idle_portfolio, tmp_path):
        with pytest.raises(ValidationError):
            export_closed_trades_csv(idle_portfolio, tmp_path / "trades.csv")
