"""Market data models: snapshots, exchange filters and candles."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time market data for one symbol.

    ``volume`` is the 24h quote-asset volume.
    """

    symbol: str
    price: float
    price_change_percent: float
    volume: float
    bid_price: float | None = None
    ask_price: float | None = None

    def __post_init__(self) -> None:
        """Validate snapshot data."""
        if self.price <= 0:
            raise ValueError("Snapshot price must be positive")
        if self.volume < 0:
            raise ValueError("Volume must be non-negative")

    @property
    def spread(self) -> float | None:
        """Bid-ask spread as a percentage of the ask."""
        if not self.bid_price or not self.ask_price:
            return None
        return (self.ask_price - self.bid_price) / self.ask_price * 100


@dataclass(frozen=True)
class ExchangeFilters:
    """Lot and price filters for a futures instrument."""

    min_qty: Decimal
    step_size: Decimal
    tick_size: Decimal | None = None


@dataclass(frozen=True)
class Candle:
    """OHLCV candle data."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def __post_init__(self) -> None:
        """Validate candle data integrity."""
        if self.high < max(self.open, self.close, self.low):
            raise ValueError("High must be >= open, close, and low")
        if self.low > min(self.open, self.close, self.high):
            raise ValueError("Low must be <= open, close, and high")
        if self.volume < 0:
            raise ValueError("Volume must be non-negative")
