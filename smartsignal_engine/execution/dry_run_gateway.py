"""Dry-run gateway with deterministic simulated fills."""

import logging
import uuid
from decimal import Decimal

from smartsignal_engine.errors import DataUnavailableError
from smartsignal_engine.execution.adapter import ExchangePosition, OrderResult
from smartsignal_engine.market_data.provider import MarketDataProvider

logger = logging.getLogger(__name__)


class DryRunGateway:
    """Simulates futures order placement.

    Market orders fill immediately at the last traded price. Protective
    orders rest until the position is flattened with ``close_position``.
    """

    def __init__(self, market_data: MarketDataProvider) -> None:
        self.market_data = market_data
        self.leverage: dict[str, int] = {}
        self._positions: dict[str, Decimal] = {}
        self._entry_prices: dict[str, Decimal] = {}
        self._open_orders: dict[str, list[OrderResult]] = {}

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        self.leverage[symbol] = leverage

    async def place_market_order(
        self,
        symbol: str,
        side: str,
        quantity: Decimal,
        client_order_id: str | None = None,
    ) -> OrderResult:
        snapshot = await self.market_data.get_snapshot(symbol)
        if snapshot is None:
            raise DataUnavailableError(f"No price to simulate fill for {symbol}")

        signed = quantity if side.lower() == "buy" else -quantity
        self._positions[symbol] = self._positions.get(symbol, Decimal("0")) + signed
        self._entry_prices.setdefault(symbol, Decimal(str(snapshot.price)))
        logger.info(f"[DRY-RUN] {side} {quantity} {symbol} filled @ {snapshot.price}")
        return OrderResult(
            order_id=f"dry-{uuid.uuid4().hex[:12]}",
            client_order_id=client_order_id,
            status="closed",
            filled_quantity=quantity,
            average_price=Decimal(str(snapshot.price)),
            order_type="market",
        )

    async def place_reduce_only_stop(
        self,
        symbol: str,
        side: str,
        quantity: Decimal,
        stop_price: Decimal,
        client_order_id: str | None = None,
    ) -> OrderResult:
        return self._rest(symbol, "stop_market", quantity, client_order_id)

    async def place_reduce_only_take_profit(
        self,
        symbol: str,
        side: str,
        quantity: Decimal,
        trigger_price: Decimal,
        client_order_id: str | None = None,
    ) -> OrderResult:
        return self._rest(symbol, "take_profit_market", quantity, client_order_id)

    async def fetch_open_orders(self, symbol: str) -> list[OrderResult]:
        return list(self._open_orders.get(symbol, []))

    async def fetch_position_quantity(self, symbol: str) -> Decimal:
        return abs(self._positions.get(symbol, Decimal("0")))

    async def fetch_open_positions(self) -> list[ExchangePosition]:
        return [
            ExchangePosition(
                symbol=symbol,
                side="buy" if amount > 0 else "sell",
                quantity=abs(amount),
                entry_price=self._entry_prices.get(symbol),
                leverage=self.leverage.get(symbol),
            )
            for symbol, amount in self._positions.items()
            if amount != 0
        ]

    def close_position(self, symbol: str) -> None:
        """Flatten a simulated position and drop its resting orders."""
        self._positions.pop(symbol, None)
        self._entry_prices.pop(symbol, None)
        self._open_orders.pop(symbol, None)

    def _rest(
        self,
        symbol: str,
        order_type: str,
        quantity: Decimal,
        client_order_id: str | None,
    ) -> OrderResult:
        order = OrderResult(
            order_id=f"dry-{uuid.uuid4().hex[:12]}",
            client_order_id=client_order_id,
            status="open",
            filled_quantity=Decimal("0"),
            order_type=order_type,
            reduce_only=True,
        )
        self._open_orders.setdefault(symbol, []).append(order)
        return order
