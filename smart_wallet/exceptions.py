"""
Custom exception hierarchy for the Smart Wallet ledger engine.

Every error raised by the engine carries a human-readable message, a
``details`` dictionary with the values that triggered it, and the original
exception when it wraps a lower-level failure.

Exception Hierarchy:
    SmartWalletError (base)
    ├── LedgerError
    │   ├── InsufficientCapitalError
    │   ├── InsufficientSavingsError
    │   ├── InvalidStateError
    │   └── ValidationError
    │       └── RecordNotFoundError
    ├── PersistenceError
    ├── DataFetchError
    └── ConfigurationError

Caller errors (everything under LedgerError) are raised before any state is
mutated. PersistenceError is raised after the next state was computed but
could not be stored; the live state is left untouched.
"""

from typing import Any, Optional, Dict


class SmartWalletError(Exception):
    """
    Base exception for all Smart Wallet errors.

    Attributes:
        message: Human-readable error description
        details: Additional context (portfolio id, amounts, etc.)
        cause: Original exception if this wraps another error
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with details."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} [{detail_str}]"
        if self.cause:
            msg = f"{msg} (caused by: {type(self.cause).__name__}: {self.cause})"
        return msg


# =============================================================================
# Ledger Exceptions
# =============================================================================

class LedgerError(SmartWalletError):
    """Base exception for rejected ledger operations."""
    pass


class InsufficientCapitalError(LedgerError):
    """
    Raised when a spend, withdrawal or adjustment exceeds available capital.

    Examples:
        - Opening a trade larger than the portfolio's current capital
        - Withdrawing more than the current capital to savings
        - A negative capital adjustment that would drop below zero
    """

    def __init__(
        self,
        message: str,
        portfolio_id: Optional[str] = None,
        available: Optional[float] = None,
        requested: Optional[float] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if portfolio_id:
            details["portfolio_id"] = portfolio_id
        if available is not None:
            details["available"] = available
        if requested is not None:
            details["requested"] = requested
        super().__init__(message, details=details, **kwargs)


class InsufficientSavingsError(LedgerError):
    """Raised when an expense exceeds the savings balance."""

    def __init__(
        self,
        message: str,
        available: Optional[float] = None,
        requested: Optional[float] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if available is not None:
            details["available"] = available
        if requested is not None:
            details["requested"] = requested
        super().__init__(message, details=details, **kwargs)


class InvalidStateError(LedgerError):
    """
    Raised when an operation targets a record in the wrong lifecycle state.

    Examples:
        - Closing a trade that is already closed
        - Editing a closed trade
    """

    def __init__(
        self,
        message: str,
        trade_id: Optional[str] = None,
        state: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if trade_id:
            details["trade_id"] = trade_id
        if state:
            details["state"] = state
        super().__init__(message, details=details, **kwargs)


class ValidationError(LedgerError):
    """
    Raised when caller input fails validation.

    Examples:
        - Non-positive price, amount or trade value
        - Empty portfolio, goal or expense name
        - Malformed import payload
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        expected: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        if expected:
            details["expected"] = expected
        super().__init__(message, details=details, **kwargs)


class RecordNotFoundError(ValidationError):
    """Raised when a portfolio, trade or expense id does not exist."""

    def __init__(self, message: str, kind: str, record_id: str, **kwargs):
        details = kwargs.pop("details", {})
        details["kind"] = kind
        details["id"] = record_id
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Collaborator Exceptions
# =============================================================================

class PersistenceError(SmartWalletError):
    """
    Raised when the storage collaborator rejects or cannot confirm a write.

    The engine does not retry; the caller decides whether to retry or to
    discard its optimistic update.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        collection: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if collection:
            details["collection"] = collection
        super().__init__(message, details=details, **kwargs)


class DataFetchError(SmartWalletError):
    """
    Raised when a market quote cannot be fetched.

    Examples:
        - Network failure talking to the quote source
        - Symbol unknown or without a recent trade
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        ticker: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if source:
            details["source"] = source
        if ticker:
            details["ticker"] = ticker
        super().__init__(message, details=details, **kwargs)


class ConfigurationError(SmartWalletError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected:
            details["expected"] = expected
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Utility Functions
# =============================================================================

def is_caller_error(error: Exception) -> bool:
    """
    Determine if an error was caused by caller input rather than I/O.

    Caller errors never leave partial state behind and should be shown to
    the user as-is; everything else is an infrastructure problem.
    """
    return isinstance(error, LedgerError)


def is_retryable(error: Exception) -> bool:
    """Determine if an error is likely transient and worth retrying."""
    return isinstance(error, (PersistenceError, DataFetchError))
