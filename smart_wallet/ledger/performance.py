"""
Performance analytics over closed trades.

Read-only views built with pandas for the portfolio detail and comparison
screens: per-stock breakdown, side-by-side portfolio comparison, capital
history for charts, and CSV export of closed trades.
"""

from pathlib import Path
from typing import Iterable, List, Optional, Union

import numpy as np
import pandas as pd
import structlog

from .portfolio import Portfolio
from ..exceptions import PersistenceError, ValidationError

logger = structlog.get_logger(__name__)

CLOSED_TRADE_COLUMNS = [
    "trade_id", "stock_name", "open_date", "close_date", "purchase_price",
    "close_price", "trade_value", "quantity", "realized_pnl", "pnl_pct", "outcome",
]

COMPARISON_COLUMNS = [
    "id", "name", "currency", "initial_capital", "current_capital", "total_profit_loss",
    "win_rate", "total_closed_trades", "avg_trade_value", "roi", "sharpe_ratio",
]


def closed_trades_frame(portfolio: Portfolio) -> pd.DataFrame:
    """One row per closed trade, oldest close first."""
    rows = [
        {
            "trade_id": t.id,
            "stock_name": t.stock_name,
            "open_date": t.open_date,
            "close_date": t.close_date,
            "purchase_price": t.purchase_price,
            "close_price": t.close_price,
            "trade_value": t.trade_value,
            "quantity": t.quantity,
            "realized_pnl": t.realized_pnl,
            "pnl_pct": t.realized_pnl_pct,
            "outcome": t.outcome.value,
        }
        for t in portfolio.closed_trades
    ]
    frame = pd.DataFrame(rows, columns=CLOSED_TRADE_COLUMNS)
    if not frame.empty:
        frame = frame.sort_values("close_date", kind="stable").reset_index(drop=True)
    return frame


def stock_breakdown(portfolio: Portfolio) -> pd.DataFrame:
    """
    Per-stock statistics over closed trades.

    Columns: total_trades, net_profit_loss, avg_trade_value, win_rate,
    avg_profit, avg_loss. A trade wins when its P&L is strictly positive;
    break-even trades count toward the loss average.
    """
    frame = closed_trades_frame(portfolio)
    columns = ["total_trades", "net_profit_loss", "avg_trade_value", "win_rate", "avg_profit", "avg_loss"]
    if frame.empty:
        return pd.DataFrame(columns=columns)

    def _stats(group: pd.DataFrame) -> pd.Series:
        pnl = group["realized_pnl"]
        wins = pnl[pnl > 0]
        losses = pnl[pnl <= 0]
        return pd.Series({
            "total_trades": len(group),
            "net_profit_loss": pnl.sum(),
            "avg_trade_value": group["trade_value"].mean(),
            "win_rate": len(wins) / len(group) * 100.0,
            "avg_profit": wins.mean() if len(wins) else 0.0,
            "avg_loss": losses.mean() if len(losses) else 0.0,
        })

    rows = {name: _stats(group) for name, group in frame.groupby("stock_name", sort=True)}
    breakdown = pd.DataFrame.from_dict(rows, orient="index")[columns]
    breakdown["total_trades"] = breakdown["total_trades"].astype(int)
    breakdown.index.name = "stock_name"
    return breakdown


def _sharpe_ratio(trade_returns: pd.Series, roi: float) -> float:
    """
    Simplified Sharpe ratio: portfolio ROI over the dispersion of trade returns.

    Trades carry no holding-period data to annualize with, so the risk-free
    rate is taken as zero and the population standard deviation is used.
    """
    if len(trade_returns) < 2:
        return 0.0
    std = float(np.std(trade_returns.to_numpy(), ddof=0))
    if std == 0:
        return 0.0
    return (roi / 100.0) / std


def compare_portfolios(
    portfolios: Iterable[Portfolio],
    sort_by: Optional[str] = None,
    ascending: bool = True
) -> pd.DataFrame:
    """
    Side-by-side comparison metrics for several portfolios.

    Args:
        portfolios: Portfolios to compare
        sort_by: Optional column from COMPARISON_COLUMNS
        ascending: Sort direction

    Raises:
        ValidationError: If sort_by is not a comparison column
    """
    rows: List[dict] = []
    for p in portfolios:
        closed = closed_trades_frame(p)
        total_closed = len(closed)
        wins = int((closed["outcome"] == "profit").sum()) if total_closed else 0
        total_pl = p.current_capital - p.initial_capital
        roi = total_pl / p.initial_capital * 100.0 if p.initial_capital > 0 else 0.0
        trade_returns = closed["realized_pnl"] / closed["trade_value"] if total_closed else pd.Series(dtype=float)

        rows.append({
            "id": p.id,
            "name": p.name,
            "currency": p.currency,
            "initial_capital": p.initial_capital,
            "current_capital": p.current_capital,
            "total_profit_loss": total_pl,
            "win_rate": wins / total_closed * 100.0 if total_closed else 0.0,
            "total_closed_trades": total_closed,
            "avg_trade_value": float(np.mean([t.trade_value for t in p.trades])) if p.trades else 0.0,
            "roi": roi,
            "sharpe_ratio": _sharpe_ratio(trade_returns, roi),
        })

    frame = pd.DataFrame(rows, columns=COMPARISON_COLUMNS)
    if sort_by is not None:
        if sort_by not in COMPARISON_COLUMNS:
            raise ValidationError("Unknown comparison column", field="sort_by", value=sort_by,
                                  expected=", ".join(COMPARISON_COLUMNS))
        frame = frame.sort_values(sort_by, ascending=ascending, kind="stable").reset_index(drop=True)
    return frame


def capital_history(portfolio: Portfolio) -> pd.Series:
    """
    Capital after each close, starting from the initial capital.

    Built from realized P&L in close order; used for the performance chart.
    """
    frame = closed_trades_frame(portfolio)
    start = pd.Series([portfolio.initial_capital], index=[0], dtype=float)
    if frame.empty:
        return start
    steps = portfolio.initial_capital + frame["realized_pnl"].cumsum()
    steps.index = range(1, len(steps) + 1)
    history = pd.concat([start, steps.astype(float)])
    history.index.name = "trade_number"
    return history


def export_closed_trades_csv(portfolio: Portfolio, path: Union[str, Path]) -> Path:
    """
    Write the portfolio's closed trades to CSV.

    Raises:
        ValidationError: If there are no closed trades to export
        PersistenceError: If the file cannot be written
    """
    frame = closed_trades_frame(portfolio)
    if frame.empty:
        raise ValidationError("No closed trades to export", details={"portfolio_id": portfolio.id})

    path = Path(path)
    try:
        frame.to_csv(path, index=False, encoding="utf-8-sig")
    except OSError as e:
        raise PersistenceError("Failed to export closed trades", operation="export_csv", cause=e)

    logger.info("closed_trades_exported", portfolio_id=portfolio.id, path=str(path), rows=len(frame))
    return path
