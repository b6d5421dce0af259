"""Smart Wallet: portfolio ledger engine for personal investment tracking."""

__version__ = "1.0.0"
