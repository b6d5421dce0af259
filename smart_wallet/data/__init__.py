"""
Market Data Module

Best-effort quotes for open trades. Quotes are display-only and never
change ledger state.

Usage:
    from smart_wallet.data import QuoteProvider

    provider = QuoteProvider()
    quote = provider.try_fetch_quote("COMI")
"""

from .quotes import Quote, QuoteProvider

__all__ = ["Quote", "QuoteProvider"]
