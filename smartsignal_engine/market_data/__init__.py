"""Market data providers."""

from .binance_provider import BinanceFuturesMarketDataProvider, market_for_id
from .provider import MarketDataProvider
from .symbol_validator import ExchangeSymbolValidator

__all__ = [
    "BinanceFuturesMarketDataProvider",
    "ExchangeSymbolValidator",
    "MarketDataProvider",
    "market_for_id",
]
