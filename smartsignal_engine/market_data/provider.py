"""Abstract market data provider interface."""

from abc import ABC, abstractmethod

from smartsignal_engine.models.market import Candle, ExchangeFilters, MarketSnapshot


class MarketDataProvider(ABC):
    """Abstract interface for futures market data providers.

    Symbols are exchange ids without separators (e.g. ``"BTCUSDT"``).
    Implementations raise ``DataUnavailableError`` on transport failures.
    """

    @abstractmethod
    async def get_snapshot(self, symbol: str) -> MarketSnapshot | None:
        """
        Fetch last price, 24h change, 24h quote volume and top of book.

        Args:
            symbol: Exchange symbol id (e.g., "BTCUSDT")

        Returns:
            Snapshot, or None when the exchange has no usable price
        """
        ...

    @abstractmethod
    async def get_exchange_filters(self, symbol: str) -> ExchangeFilters | None:
        """
        Fetch lot-size and price filters for a symbol.

        Returns:
            Filters, or None when the exchange does not publish them
        """
        ...

    @abstractmethod
    async def get_klines(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        """
        Fetch OHLCV candles.

        Args:
            symbol: Exchange symbol id
            interval: Candle interval (e.g., "5m", "1h", "4h")
            limit: Number of candles to fetch

        Returns:
            List of candles, most recent last
        """
        ...

    @abstractmethod
    async def get_max_leverage(self, symbol: str) -> int | None:
        """Highest leverage the exchange allows for the smallest notional tier."""
        ...
