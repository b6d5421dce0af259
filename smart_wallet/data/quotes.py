"""
Best-effort market quotes via yfinance.

Quotes only feed the unrealized P&L display of open trades; nothing here
touches ledger state, and a failed fetch never blocks a ledger operation.
"""

from dataclasses import dataclass
from typing import Optional

import yfinance as yf
import structlog

from ..config import config
from ..exceptions import DataFetchError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Quote:
    """
    Last-traded price and day statistics for one symbol.

    Attributes:
        symbol: Symbol as sent to the quote source
        current_price: Last traded price
        previous_close: Prior session close, if known
        open: Session open, if known
        high: Session high, if known
        low: Session low, if known
    """

    symbol: str
    current_price: float
    previous_close: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None

    @property
    def change(self) -> Optional[float]:
        if self.previous_close is None:
            return None
        return self.current_price - self.previous_close

    @property
    def percent_change(self) -> Optional[float]:
        if not self.previous_close:
            return None
        return self.change / self.previous_close * 100.0


class QuoteProvider:
    """
    Fetches quotes from Yahoo Finance.

    Symbols without an exchange suffix get ``suffix`` appended, so local
    tickers such as "COMI" resolve to "COMI.CA".

    Example:
        >>> provider = QuoteProvider()
        >>> quote = provider.try_fetch_quote("COMI")
        >>> trade.unrealized_pnl(quote.current_price if quote else None)
    """

    SOURCE = "yfinance"

    def __init__(self, suffix: Optional[str] = None):
        self.suffix = config.quote_symbol_suffix if suffix is None else suffix

    def format_symbol(self, symbol: str) -> str:
        symbol = symbol.strip().upper()
        if not self.suffix or "." in symbol:
            return symbol
        return f"{symbol}{self.suffix.upper()}"

    def fetch_quote(self, symbol: str) -> Quote:
        """
        Fetch the latest quote.

        Raises:
            DataFetchError: If the source is unreachable or has no price
        """
        formatted = self.format_symbol(symbol)
        try:
            ticker = yf.Ticker(formatted)
            info = ticker.fast_info
            price = info.get("lastPrice")
            if not price:
                hist = ticker.history(period="1d", timeout=config.quote_timeout)
                if not hist.empty:
                    price = float(hist["Close"].iloc[-1])
            extras = {
                "previous_close": _optional_float(info.get("previousClose")),
                "open": _optional_float(info.get("open")),
                "high": _optional_float(info.get("dayHigh")),
                "low": _optional_float(info.get("dayLow")),
            }
        except (ConnectionError, TimeoutError) as e:
            logger.warning("quote_network_error", symbol=formatted, error_type=type(e).__name__, error=str(e))
            raise DataFetchError("Quote source unreachable", source=self.SOURCE, ticker=formatted, cause=e)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("quote_data_error", symbol=formatted, error_type=type(e).__name__, error=str(e))
            raise DataFetchError("Quote data malformed", source=self.SOURCE, ticker=formatted, cause=e)
        except Exception as e:
            logger.error("quote_fetch_failed", symbol=formatted, error_type=type(e).__name__, error=str(e))
            raise DataFetchError("Quote fetch failed", source=self.SOURCE, ticker=formatted, cause=e)

        # A zero price means unknown symbol or no recent trade
        if not price:
            logger.warning("quote_no_price", symbol=formatted)
            raise DataFetchError("No price available for symbol", source=self.SOURCE, ticker=formatted)

        quote = Quote(symbol=formatted, current_price=float(price), **extras)
        logger.debug("quote_fetched", symbol=formatted, price=quote.current_price)
        return quote

    def try_fetch_quote(self, symbol: str) -> Optional[Quote]:
        """Like fetch_quote, but returns None on failure."""
        try:
            return self.fetch_quote(symbol)
        except DataFetchError:
            return None


def _optional_float(value) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
