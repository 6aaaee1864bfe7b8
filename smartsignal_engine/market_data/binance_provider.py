"""Binance USDT-M futures market data provider using CCXT.

Provides ticker, order book, exchange filters, klines and leverage tiers
via the Binance futures REST API. Uses CCXT's built-in rate limiting with
exponential backoff on transient network errors.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable

import ccxt.async_support as ccxt

from smartsignal_engine.errors import DataUnavailableError
from smartsignal_engine.market_data.provider import MarketDataProvider
from smartsignal_engine.models.market import Candle, ExchangeFilters, MarketSnapshot

logger = logging.getLogger(__name__)


def market_for_id(exchange: Any, symbol_id: str) -> dict[str, Any] | None:
    """Resolve an exchange id (``BTCUSDT``) to its CCXT market.

    ``markets_by_id`` maps to a list in current CCXT releases; the
    perpetual swap is preferred over dated delivery contracts.
    """
    entries = (getattr(exchange, "markets_by_id", None) or {}).get(symbol_id)
    if not entries:
        return None
    if isinstance(entries, dict):
        return entries
    for market in entries:
        if market.get("swap"):
            return market
    return entries[0]


class BinanceFuturesMarketDataProvider(MarketDataProvider):
    """Binance futures market data provider via CCXT.

    Attributes:
        exchange: CCXT async exchange instance (``binanceusdm``).
        max_retries: Maximum attempts on transient network failures.
        base_backoff_seconds: Initial backoff interval for retries.
        order_book_depth: Levels requested for the top-of-book fetch.
    """

    def __init__(
        self,
        exchange: Any,
        *,
        max_retries: int = 3,
        base_backoff_seconds: float = 1.0,
        order_book_depth: int = 5,
    ) -> None:
        self.exchange = exchange
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self.order_book_depth = order_book_depth

    # -- Public interface (MarketDataProvider) ---------------------------------

    async def get_snapshot(self, symbol: str) -> MarketSnapshot | None:
        """Fetch ticker and order book concurrently and merge them."""
        unified = await self._unified_symbol(symbol)
        ticker, book = await asyncio.gather(
            self._retry(
                lambda: self.exchange.fetch_ticker(unified),
                context=f"fetch_ticker({symbol})",
            ),
            self._retry(
                lambda: self.exchange.fetch_order_book(unified, limit=self.order_book_depth),
                context=f"fetch_order_book({symbol})",
            ),
        )

        price = ticker.get("last") or ticker.get("close")
        if not price or float(price) <= 0:
            logger.warning("No usable price for %s", symbol)
            return None

        bids = (book or {}).get("bids") or []
        asks = (book or {}).get("asks") or []
        bid = float(bids[0][0]) if bids else _optional_float(ticker.get("bid"))
        ask = float(asks[0][0]) if asks else _optional_float(ticker.get("ask"))

        return MarketSnapshot(
            symbol=symbol,
            price=float(price),
            price_change_percent=float(ticker.get("percentage") or 0.0),
            volume=float(ticker.get("quoteVolume") or 0.0),
            bid_price=bid,
            ask_price=ask,
        )

    async def get_exchange_filters(self, symbol: str) -> ExchangeFilters | None:
        """Read LOT_SIZE and PRICE_FILTER from the raw exchange info."""
        await self._load_markets()
        market = market_for_id(self.exchange, symbol)
        if market is None:
            raise DataUnavailableError(f"Unknown futures symbol {symbol}")

        filters = {
            item.get("filterType"): item
            for item in (market.get("info") or {}).get("filters", [])
        }
        lot = filters.get("LOT_SIZE")
        if not lot or not lot.get("stepSize") or not lot.get("minQty"):
            logger.warning("No LOT_SIZE filter published for %s", symbol)
            return None

        price_filter = filters.get("PRICE_FILTER") or {}
        tick = price_filter.get("tickSize")
        return ExchangeFilters(
            min_qty=Decimal(str(lot["minQty"])),
            step_size=Decimal(str(lot["stepSize"])),
            tick_size=Decimal(str(tick)) if tick else None,
        )

    async def get_klines(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        """Fetch OHLCV candles, oldest first."""
        unified = await self._unified_symbol(symbol)
        raw = await self._retry(
            lambda: self.exchange.fetch_ohlcv(unified, interval, limit=limit),
            context=f"fetch_ohlcv({symbol}, {interval})",
        )
        if not raw:
            raise DataUnavailableError(
                f"Binance returned empty candle data for {symbol}/{interval}"
            )
        return self._convert_candles(raw)

    async def get_max_leverage(self, symbol: str) -> int | None:
        """Max leverage of the first notional bracket.

        The bracket endpoint is signed; without credentials the exchange
        refuses and None is returned so the sizer uses its configured cap.
        """
        unified = await self._unified_symbol(symbol)
        try:
            tiers = await self._retry(
                lambda: self.exchange.fetch_leverage_tiers([unified]),
                context=f"fetch_leverage_tiers({symbol})",
            )
        except DataUnavailableError as e:
            logger.warning(f"Leverage brackets unavailable for {symbol}: {e}")
            return None

        brackets = (tiers or {}).get(unified) or []
        if not brackets:
            return None
        max_leverage = brackets[0].get("maxLeverage")
        return int(max_leverage) if max_leverage else None

    # -- Internal helpers ------------------------------------------------------

    async def _load_markets(self) -> None:
        await self._retry(self.exchange.load_markets, context="load_markets")

    async def _unified_symbol(self, symbol: str) -> str:
        await self._load_markets()
        market = market_for_id(self.exchange, symbol)
        if market is None:
            raise DataUnavailableError(f"Unknown futures symbol {symbol}")
        return market["symbol"]

    async def _retry(self, fn: Callable[[], Awaitable[Any]], *, context: str) -> Any:
        """Await ``fn()`` with exponential backoff on network errors.

        Exchange-side rejections are not retried.

        Raises:
            DataUnavailableError: After exhausting all retries or on rejection.
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return await fn()
            except ccxt.NetworkError as exc:
                last_error = exc
                wait = self.base_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "Binance API error on %s (attempt %d/%d): %s, retrying in %.1fs",
                    context,
                    attempt,
                    self.max_retries,
                    exc,
                    wait,
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(wait)
            except ccxt.ExchangeError as exc:
                raise DataUnavailableError(f"Binance rejected {context}: {exc}") from exc

        raise DataUnavailableError(
            f"Binance API failed after {self.max_retries} retries "
            f"({context}): {last_error}"
        )

    @staticmethod
    def _convert_candles(raw: list[list[Any]]) -> list[Candle]:
        """Convert raw CCXT OHLCV arrays to ``Candle`` objects.

        Args:
            raw: List of ``[timestamp_ms, open, high, low, close, volume]``.
        """
        candles: list[Candle] = []
        for row in raw:
            ts_ms, o, h, l, c, v = row[0], row[1], row[2], row[3], row[4], row[5]
            candles.append(
                Candle(
                    timestamp=datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc),
                    open=float(o),
                    high=float(h),
                    low=float(l),
                    close=float(c),
                    volume=float(v),
                )
            )
        return candles


def _optional_float(value: Any) -> float | None:
    return float(value) if value else None
