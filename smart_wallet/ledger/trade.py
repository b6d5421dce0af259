"""
Trade lifecycle for capital-sized positions.

A trade is opened with a committed amount of capital (``trade_value``),
may be edited while open, is closed exactly once, and may be deleted from
either state. This module owns the state machine and the capital delta each
step produces; the portfolio ledger applies those deltas.

    open ──close()──> closed
      │                 │
      └──── delete ─────┘   (removal, not a state)
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Union
import uuid
import structlog

from . import valuation
from ..exceptions import InvalidStateError, ValidationError

logger = structlog.get_logger(__name__)

EDITABLE_FIELDS = frozenset({
    "stock_name", "purchase_price", "trade_value", "stop_loss", "take_profit", "notes",
})

_PRICE_FIELDS = ("purchase_price", "trade_value", "stop_loss", "take_profit")


def new_id() -> str:
    """Generate an opaque record id."""
    return str(uuid.uuid4())


def require_record(data: Any, record: str) -> Dict[str, Any]:
    """Reject imported records that are not JSON objects."""
    if not isinstance(data, dict):
        raise ValidationError(f"{record} record must be an object", field=record, value=type(data).__name__)
    return data


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse ISO timestamps, including the trailing 'Z' form JavaScript emits."""
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError("Timestamp must be an ISO string", field="date", value=value)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def normalize_stock_name(name: str) -> str:
    name = (name or "").strip().upper()
    if not name:
        raise ValidationError("Stock name cannot be empty", field="stock_name")
    return name


class TradeStatus(Enum):
    """Lifecycle state of a trade."""
    OPEN = "open"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


class TradeOutcome(Enum):
    """Result of a closed trade. Break-even counts as profit."""
    PROFIT = "profit"
    LOSS = "loss"

    def __str__(self) -> str:
        return self.value


@dataclass
class Trade:
    """
    A single buy position sized by committed capital.

    Attributes:
        id: Opaque unique identifier
        portfolio_id: Back-reference to the owning portfolio
        stock_name: Upper-cased symbol
        purchase_price: Price per share at open
        trade_value: Capital committed at open (not a share count)
        stop_loss: Planned exit on the downside
        take_profit: Planned exit on the upside
        open_date: When the trade was opened (immutable)
        notes: Optional free text
        status: OPEN or CLOSED
        close_price: Price per share at close
        close_date: When the trade was closed
        outcome: PROFIT or LOSS once closed

    Example:
        >>> trade = open_trade("p1", "comi", 10.0, 1000.0, 9.0, 13.0)
        >>> trade.quantity
        100.0
        >>> trade.close(12.0)
        1200.0
        >>> trade.outcome
        <TradeOutcome.PROFIT: 'profit'>
    """

    id: str
    portfolio_id: str
    stock_name: str
    purchase_price: float
    trade_value: float
    stop_loss: float
    take_profit: float
    open_date: datetime
    notes: Optional[str] = None
    status: TradeStatus = TradeStatus.OPEN
    close_price: Optional[float] = None
    close_date: Optional[datetime] = None
    outcome: Optional[TradeOutcome] = None

    def __post_init__(self):
        """Validate and normalize trade data."""
        self.stock_name = normalize_stock_name(self.stock_name)

        if isinstance(self.status, str):
            self.status = TradeStatus(self.status)
        if isinstance(self.outcome, str):
            self.outcome = TradeOutcome(self.outcome)

        for field_name in _PRICE_FIELDS:
            valuation.require_positive(getattr(self, field_name), field_name)

        if self.status == TradeStatus.CLOSED:
            valuation.require_positive(self.close_price, "close_price")

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    @property
    def quantity(self) -> float:
        """Shares implied by trade_value / purchase_price; never stored."""
        return valuation.quantity(self.trade_value, self.purchase_price)

    @property
    def realized_pnl(self) -> Optional[float]:
        """Locked-in P&L for a closed trade, None while open."""
        if self.status != TradeStatus.CLOSED:
            return None
        return valuation.realized_pnl(self.trade_value, self.purchase_price, self.close_price)

    @property
    def realized_pnl_pct(self) -> Optional[float]:
        pnl = self.realized_pnl
        if pnl is None:
            return None
        return valuation.pnl_percent(pnl, self.trade_value)

    @property
    def deletion_adjustment(self) -> float:
        """
        Capital delta produced by deleting this trade.

        Open trades refund their principal. Closed trades already returned
        principal at close, so only the net P&L is undone.
        """
        if self.status == TradeStatus.OPEN:
            return self.trade_value
        return -self.realized_pnl

    def unrealized_pnl(self, market_price: Optional[float]) -> Optional[float]:
        """Mark-to-market P&L against a live quote (open trades only)."""
        if self.status != TradeStatus.OPEN:
            return None
        return valuation.unrealized_pnl(self.trade_value, self.purchase_price, market_price)

    def validate_edit(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate an edit of an open trade.

        Args:
            changes: Field name to new value

        Returns:
            Normalized changes

        Raises:
            InvalidStateError: If the trade is closed
            ValidationError: If a field is unknown, immutable or invalid
        """
        if self.status != TradeStatus.OPEN:
            raise InvalidStateError(
                "Only open trades can be edited",
                trade_id=self.id,
                state=self.status.value
            )

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Trade fields cannot be edited",
                field=", ".join(sorted(unknown)),
                expected=", ".join(sorted(EDITABLE_FIELDS))
            )

        normalized = dict(changes)
        if "stock_name" in normalized:
            normalized["stock_name"] = normalize_stock_name(normalized["stock_name"])
        for field_name in _PRICE_FIELDS:
            if field_name in normalized:
                valuation.require_positive(normalized[field_name], field_name)
        return normalized

    def edit_adjustment(self, changes: Dict[str, Any]) -> float:
        """Capital delta of an edit: old trade_value minus new trade_value."""
        new_value = changes.get("trade_value", self.trade_value)
        return self.trade_value - new_value

    def apply_edit(self, changes: Dict[str, Any]) -> None:
        """Apply already-validated changes."""
        for field_name, value in changes.items():
            setattr(self, field_name, value)

        logger.debug("trade_edited", trade_id=self.id, fields=sorted(changes))

    def close(self, close_price: float, when: Optional[datetime] = None) -> float:
        """
        Close the trade.

        Args:
            close_price: Exit price per share
            when: Close timestamp (defaults to now)

        Returns:
            Capital to credit back to the portfolio

        Raises:
            InvalidStateError: If the trade is not open
            ValidationError: If close_price is not positive
        """
        if self.status != TradeStatus.OPEN:
            raise InvalidStateError(
                "Trade is already closed",
                trade_id=self.id,
                state=self.status.value
            )
        valuation.require_positive(close_price, "close_price")

        returned = valuation.capital_to_return(self.trade_value, self.purchase_price, close_price)
        pnl = returned - self.trade_value

        self.status = TradeStatus.CLOSED
        self.close_price = close_price
        self.close_date = when or datetime.now()
        self.outcome = TradeOutcome.PROFIT if pnl >= 0 else TradeOutcome.LOSS

        logger.info(
            "trade_closed",
            trade_id=self.id,
            stock_name=self.stock_name,
            close_price=close_price,
            capital_returned=returned,
            realized_pnl=pnl,
            outcome=self.outcome.value
        )

        return returned

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the snapshot's camelCase keys."""
        data = {
            "id": self.id,
            "portfolioId": self.portfolio_id,
            "stockName": self.stock_name,
            "purchasePrice": self.purchase_price,
            "tradeValue": self.trade_value,
            "stopLoss": self.stop_loss,
            "takeProfit": self.take_profit,
            "notes": self.notes,
            "status": self.status.value,
            "openDate": format_timestamp(self.open_date),
        }
        if self.status == TradeStatus.CLOSED:
            data["closePrice"] = self.close_price
            data["closeDate"] = format_timestamp(self.close_date)
            data["outcome"] = self.outcome.value if self.outcome else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trade":
        """Create a trade from its snapshot representation."""
        require_record(data, "trade")
        try:
            return cls(
                id=data["id"],
                portfolio_id=data["portfolioId"],
                stock_name=data["stockName"],
                purchase_price=data["purchasePrice"],
                trade_value=data["tradeValue"],
                stop_loss=data["stopLoss"],
                take_profit=data["takeProfit"],
                open_date=parse_timestamp(data["openDate"]),
                notes=data.get("notes"),
                status=data.get("status", "open"),
                close_price=data.get("closePrice"),
                close_date=parse_timestamp(data.get("closeDate")),
                outcome=data.get("outcome"),
            )
        except KeyError as e:
            raise ValidationError("Trade record is missing a field", field=str(e.args[0]), cause=e)
        except (TypeError, ValueError) as e:
            raise ValidationError("Trade record is malformed", details={"id": data.get("id")}, cause=e)

    def __repr__(self) -> str:
        """String representation for debugging."""
        pnl = self.realized_pnl
        pnl_str = f" | P&L: {pnl:+.2f}" if pnl is not None else ""
        return (
            f"Trade(id={self.id}, stock={self.stock_name}, status={self.status.value}, "
            f"value={self.trade_value:.2f} @ {self.purchase_price:.2f}{pnl_str})"
        )


def open_trade(
    portfolio_id: str,
    stock_name: str,
    purchase_price: float,
    trade_value: float,
    stop_loss: float,
    take_profit: float,
    notes: Optional[str] = None,
    when: Optional[datetime] = None
) -> Trade:
    """
    Convenience function to build a new open trade.

    Capital sufficiency is checked by the ledger, not here.

    Example:
        >>> trade = open_trade("p1", "COMI", 10.0, 1000.0, 9.0, 13.0)
    """
    return Trade(
        id=new_id(),
        portfolio_id=portfolio_id,
        stock_name=stock_name,
        purchase_price=purchase_price,
        trade_value=trade_value,
        stop_loss=stop_loss,
        take_profit=take_profit,
        notes=notes or None,
        open_date=when or datetime.now(),
    )
