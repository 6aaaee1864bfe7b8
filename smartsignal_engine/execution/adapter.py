"""Abstract interface for the futures trading gateway."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

FILLED_STATUSES = frozenset({"closed", "filled"})


@dataclass(frozen=True)
class OrderResult:
    """Normalized exchange order response."""

    order_id: str
    client_order_id: str | None
    status: str
    filled_quantity: Decimal
    average_price: Decimal | None = None
    order_type: str | None = None
    reduce_only: bool = False
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_filled(self) -> bool:
        """True when the order executed (fully or partially)."""
        return self.status.lower() in FILLED_STATUSES or self.filled_quantity > 0


@dataclass(frozen=True)
class ExchangePosition:
    """Open position as reported by the exchange."""

    symbol: str
    side: str  # entry side: "buy" for long, "sell" for short
    quantity: Decimal
    entry_price: Decimal | None = None
    leverage: int | None = None


class ExchangeTradingGateway(Protocol):
    """Protocol for signed futures order placement.

    Request signing and transport belong to the implementation. Every
    method raises ``OrderPlacementError`` when the exchange rejects the
    request and ``DataUnavailableError`` on transport failures.
    """

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        """Set leverage for a symbol."""
        ...

    async def place_market_order(
        self,
        symbol: str,
        side: str,
        quantity: Decimal,
        client_order_id: str | None = None,
    ) -> OrderResult:
        """Open a position with a market order."""
        ...

    async def place_reduce_only_stop(
        self,
        symbol: str,
        side: str,
        quantity: Decimal,
        stop_price: Decimal,
        client_order_id: str | None = None,
    ) -> OrderResult:
        """Place a reduce-only GTC stop-market order."""
        ...

    async def place_reduce_only_take_profit(
        self,
        symbol: str,
        side: str,
        quantity: Decimal,
        trigger_price: Decimal,
        client_order_id: str | None = None,
    ) -> OrderResult:
        """Place a reduce-only GTC take-profit-market order."""
        ...

    async def fetch_open_orders(self, symbol: str) -> list[OrderResult]:
        """Fetch open orders for a symbol."""
        ...

    async def fetch_position_quantity(self, symbol: str) -> Decimal:
        """Absolute open position size for a symbol (0 when flat)."""
        ...

    async def fetch_open_positions(self) -> list[ExchangePosition]:
        """All non-flat positions on the account."""
        ...
