#!/usr/bin/env python3
"""
Smart Wallet Ledger Demo

This example walks through the portfolio ledger engine:
- Creating portfolios with financial goals
- Opening, editing and closing trades
- Goal achievement alerts
- Withdrawals to savings and expenses
- Cross-currency summary and performance analytics
- Persistent storage with SQLite and JSON backups

Run this script to see the ledger in action.
"""

from pathlib import Path
import sys

# Run from a source checkout without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from smart_wallet.exceptions import InsufficientCapitalError
from smart_wallet.ledger import (
    LedgerContext,
    LedgerManager,
    LedgerStore,
    SQLiteStorage,
)
from smart_wallet.ledger.performance import compare_portfolios, stock_breakdown
from smart_wallet.notifications import CallbackNotifier

DB_PATH = "demo_ledger.db"


def print_alert(title: str, body: str) -> None:
    print(f"\n  🔔 {title} {body}")


def demo_portfolios(manager: LedgerManager):
    """Create portfolios and trade until a goal is reached."""
    print("=" * 80)
    print("DEMO 1: Portfolios, Trades and Goals")
    print("=" * 80)

    growth = manager.create_portfolio("Growth", 1000.0, 1500.0, "EGP")
    print(f"\n✓ Created portfolio: {growth.name} ({growth.current_capital:.2f} {growth.currency})")

    trade = manager.open_trade(growth.id, "COMI", 10.0, 500.0, 9.0, 25.0, notes="breakout")
    print(f"  Opened {trade.stock_name}: {trade.quantity:.0f} shares @ {trade.purchase_price:.2f}")

    trade = manager.update_trade(growth.id, trade.id, trade_value=600.0)
    print(f"  Resized {trade.stock_name} to {trade.trade_value:.2f}")

    try:
        manager.open_trade(growth.id, "ETEL", 20.0, 5000.0, 18.0, 25.0)
    except InsufficientCapitalError as e:
        print(f"  ✗ Rejected: {e.message}")

    trade = manager.close_trade(growth.id, trade.id, 22.0)
    print(f"  Closed {trade.stock_name} @ {trade.close_price:.2f}: P&L {trade.realized_pnl:+.2f} ({trade.outcome})")

    growth = manager.get_portfolio(growth.id)
    for goal in growth.financial_goals:
        status = "✓" if goal.achieved else "…"
        print(f"  {status} Goal {goal.name}: {goal.amount:.2f}")

    income = manager.create_portfolio("Dollar income", 500.0, 800.0, "USD")
    trade = manager.open_trade(income.id, "AAPL.US", 150.0, 300.0, 140.0, 180.0)
    manager.close_trade_at_pnl(income.id, trade.id, -20.0)
    print(f"\n✓ Created portfolio: {income.name} and closed one losing trade")

    return growth


def demo_savings(manager: LedgerManager, growth):
    """Move profits to savings and spend them."""
    print("\n" + "=" * 80)
    print("DEMO 2: Savings and Expenses")
    print("=" * 80)

    manager.withdraw_to_savings(growth.id, 300.0)
    print(f"\n✓ Withdrew 300.00 to savings (balance {manager.savings_balance:.2f})")

    expense = manager.add_expense("Weekly groceries", 120.0, "groceries")
    print(f"  Spent {expense.amount:.2f} on {expense.category.label} (balance {manager.savings_balance:.2f})")


def demo_analytics(manager: LedgerManager):
    """Summaries across currencies and per-portfolio analytics."""
    print("\n" + "=" * 80)
    print("DEMO 3: Summary and Performance")
    print("=" * 80)

    print("\n✓ Summary by currency:")
    for currency, summary in manager.summary_by_currency().items():
        print(f"  {currency}: {summary.total_current_capital:.2f} "
              f"(P&L {summary.total_profit_loss:+.2f}, {summary.total_profit_loss_percent:+.2f}%)")

    portfolios = manager.portfolios
    print("\n✓ Portfolio comparison:")
    print(compare_portfolios(portfolios, sort_by="roi", ascending=False)
          [["name", "roi", "win_rate", "sharpe_ratio"]].to_string(index=False))

    print("\n✓ Per-stock breakdown (Growth):")
    print(stock_breakdown(portfolios[0]).to_string())


def demo_backup(manager: LedgerManager):
    """Write a JSON backup and reload from SQLite."""
    print("\n" + "=" * 80)
    print("DEMO 4: Storage and Backup")
    print("=" * 80)

    path = manager.write_backup(".")
    print(f"\n✓ Backup written: {path}")

    reloaded = LedgerManager(LedgerStore(SQLiteStorage(DB_PATH), "demo-user"), manager.context)
    print(f"  Reloaded {len(reloaded.portfolios)} portfolios, savings {reloaded.savings_balance:.2f}")


def main():
    """Run all demos."""
    print("\n" + "=" * 80)
    print("Smart Wallet Ledger Demo")
    print("=" * 80)

    Path(DB_PATH).unlink(missing_ok=True)
    context = LedgerContext(account_id="demo-user", email="demo@example.com")
    manager = LedgerManager(
        LedgerStore(SQLiteStorage(DB_PATH), "demo-user"),
        context,
        notifier=CallbackNotifier(print_alert),
    )

    growth = demo_portfolios(manager)
    demo_savings(manager, growth)
    demo_analytics(manager)
    demo_backup(manager)

    print("\n" + "=" * 80)
    print("Demo Complete!")
    print("=" * 80)
    print(f"\nDatabase file: {DB_PATH}")


if __name__ == "__main__":
    main()
