"""Exchange-backed symbol existence check."""

import logging
import re
from typing import Any

import ccxt.async_support as ccxt

from smartsignal_engine.errors import DataUnavailableError
from smartsignal_engine.market_data.binance_provider import market_for_id

logger = logging.getLogger(__name__)


class ExchangeSymbolValidator:
    """Answers whether a futures symbol is listed and trading.

    Markets are loaded once by CCXT and cached on the exchange instance.
    """

    def __init__(self, exchange: Any, quote_asset: str = "USDT") -> None:
        self.exchange = exchange
        self.quote_asset = quote_asset
        self._format = re.compile(rf"^[A-Z0-9]{{2,15}}{re.escape(quote_asset)}$")

    async def exists(self, symbol: str) -> bool:
        """Return True if ``symbol`` is an active futures market.

        Raises:
            DataUnavailableError: If the market list cannot be loaded.
        """
        if not self._format.match(symbol):
            return False

        try:
            await self.exchange.load_markets()
        except ccxt.BaseError as e:
            logger.error(f"Failed to load futures markets: {e}")
            raise DataUnavailableError(f"Cannot load exchange markets: {e}") from e

        market = market_for_id(self.exchange, symbol)
        if market is None:
            logger.debug(f"Symbol {symbol} not listed")
            return False
        return market.get("active") is not False
