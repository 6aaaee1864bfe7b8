"""Binance USDT-M futures gateway using CCXT."""

import logging
from decimal import Decimal
from typing import Any, Awaitable

import ccxt.async_support as ccxt

from smartsignal_engine.errors import DataUnavailableError, OrderPlacementError
from smartsignal_engine.execution.adapter import ExchangePosition, OrderResult
from smartsignal_engine.market_data.binance_provider import market_for_id

logger = logging.getLogger(__name__)

STOP_MARKET = "STOP_MARKET"
TAKE_PROFIT_MARKET = "TAKE_PROFIT_MARKET"


def create_futures_exchange(
    api_key: str | None = None,
    secret: str | None = None,
    testnet: bool = False,
) -> Any:
    """Build a rate-limited CCXT ``binanceusdm`` client.

    Credentials are optional; public market data works without them.
    """
    config: dict[str, Any] = {
        "enableRateLimit": True,
        "options": {"defaultType": "future"},
    }
    if api_key and secret:
        config["apiKey"] = api_key
        config["secret"] = secret

    client = ccxt.binanceusdm(config)
    if testnet:
        client.set_sandbox_mode(True)
    return client


class BinanceFuturesGateway:
    """Signed futures order placement on Binance."""

    def __init__(self, client: Any):
        """
        Initialize gateway.

        Args:
            client: CCXT async ``binanceusdm`` instance with credentials
        """
        self.client = client

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        """Set leverage for a symbol."""
        unified = await self._unified_symbol(symbol)
        await self._guard(
            self.client.set_leverage(leverage, unified),
            step="SET_LEVERAGE",
        )
        logger.info(f"Leverage set to {leverage}x for {symbol}")

    async def place_market_order(
        self,
        symbol: str,
        side: str,
        quantity: Decimal,
        client_order_id: str | None = None,
    ) -> OrderResult:
        """Open a position with a market order and wait for the fill report."""
        unified = await self._unified_symbol(symbol)
        params: dict[str, Any] = {"newOrderRespType": "RESULT"}
        if client_order_id:
            params["newClientOrderId"] = client_order_id

        order = await self._guard(
            self.client.create_order(
                unified,
                "market",
                side.lower(),
                float(self.client.amount_to_precision(unified, float(quantity))),
                None,
                params,
            ),
            step="PLACE_MARKET_ORDER",
        )
        return self._to_result(order)

    async def place_reduce_only_stop(
        self,
        symbol: str,
        side: str,
        quantity: Decimal,
        stop_price: Decimal,
        client_order_id: str | None = None,
    ) -> OrderResult:
        """Place a reduce-only GTC stop-market order."""
        return await self._place_conditional(
            symbol, STOP_MARKET, side, quantity, stop_price, client_order_id,
            step="PLACE_REDUCE_ONLY_STOP",
        )

    async def place_reduce_only_take_profit(
        self,
        symbol: str,
        side: str,
        quantity: Decimal,
        trigger_price: Decimal,
        client_order_id: str | None = None,
    ) -> OrderResult:
        """Place a reduce-only GTC take-profit-market order."""
        return await self._place_conditional(
            symbol, TAKE_PROFIT_MARKET, side, quantity, trigger_price, client_order_id,
            step="PLACE_REDUCE_ONLY_TAKE_PROFIT",
        )

    async def fetch_open_orders(self, symbol: str) -> list[OrderResult]:
        """Fetch open orders for a symbol."""
        unified = await self._unified_symbol(symbol)
        orders = await self._guard(
            self.client.fetch_open_orders(unified),
            step="FETCH_OPEN_ORDERS",
        )
        return [self._to_result(order) for order in orders or []]

    async def fetch_position_quantity(self, symbol: str) -> Decimal:
        """Absolute open position size (0 when flat)."""
        unified = await self._unified_symbol(symbol)
        positions = await self._guard(
            self.client.fetch_positions([unified]),
            step="FETCH_POSITIONS",
        )
        total = Decimal("0")
        for position in positions or []:
            if position.get("symbol") != unified:
                continue
            contracts = position.get("contracts") or 0
            total += abs(Decimal(str(contracts)))
        return total

    async def fetch_open_positions(self) -> list[ExchangePosition]:
        """All non-flat positions on the account, keyed by exchange symbol id."""
        await self._guard(self.client.load_markets(), step="LOAD_MARKETS")
        positions = await self._guard(self.client.fetch_positions(), step="FETCH_POSITIONS")

        result = []
        for position in positions or []:
            contracts = Decimal(str(position.get("contracts") or 0))
            if contracts == 0:
                continue
            info = position.get("info") or {}
            market = self.client.markets.get(position.get("symbol")) or {}
            symbol_id = info.get("symbol") or market.get("id") or position.get("symbol")
            entry = position.get("entryPrice") or info.get("entryPrice")
            leverage = position.get("leverage") or info.get("leverage")
            result.append(
                ExchangePosition(
                    symbol=str(symbol_id),
                    side="sell" if position.get("side") == "short" else "buy",
                    quantity=abs(contracts),
                    entry_price=Decimal(str(entry)) if entry else None,
                    leverage=int(float(leverage)) if leverage else None,
                )
            )
        return result

    async def close(self) -> None:
        """Release the underlying HTTP session."""
        await self.client.close()

    async def _place_conditional(
        self,
        symbol: str,
        order_type: str,
        side: str,
        quantity: Decimal,
        trigger_price: Decimal,
        client_order_id: str | None,
        *,
        step: str,
    ) -> OrderResult:
        unified = await self._unified_symbol(symbol)
        params: dict[str, Any] = {
            "stopPrice": float(self.client.price_to_precision(unified, float(trigger_price))),
            "reduceOnly": True,
            "timeInForce": "GTC",
            "workingType": "MARK_PRICE",
        }
        if client_order_id:
            params["newClientOrderId"] = client_order_id

        order = await self._guard(
            self.client.create_order(
                unified,
                order_type,
                side.lower(),
                float(self.client.amount_to_precision(unified, float(quantity))),
                None,
                params,
            ),
            step=step,
        )
        logger.info(
            f"{order_type} {side} {quantity} {symbol} @ {trigger_price} placed "
            f"(client id {client_order_id})"
        )
        return self._to_result(order)

    async def _unified_symbol(self, symbol: str) -> str:
        await self._guard(self.client.load_markets(), step="LOAD_MARKETS")
        market = market_for_id(self.client, symbol)
        if market is None:
            raise OrderPlacementError(f"Unknown futures symbol {symbol}", step="LOAD_MARKETS")
        return market["symbol"]

    @staticmethod
    async def _guard(call: Awaitable[Any], *, step: str) -> Any:
        """Await an exchange call, mapping CCXT errors to engine errors."""
        try:
            return await call
        except ccxt.NetworkError as e:
            raise DataUnavailableError(f"{step} failed on network error: {e}") from e
        except ccxt.BaseError as e:
            raise OrderPlacementError(f"{step} rejected by exchange: {e}", step=step) from e

    @staticmethod
    def _to_result(order: dict[str, Any]) -> OrderResult:
        info = order.get("info") or {}
        average = order.get("average") or order.get("price")
        return OrderResult(
            order_id=str(order.get("id") or info.get("orderId") or ""),
            client_order_id=order.get("clientOrderId") or info.get("clientOrderId"),
            status=str(order.get("status") or info.get("status") or ""),
            filled_quantity=Decimal(str(order.get("filled") or 0)),
            average_price=Decimal(str(average)) if average else None,
            order_type=order.get("type") or info.get("type"),
            reduce_only=bool(order.get("reduceOnly") or info.get("reduceOnly")),
            raw=order,
        )
