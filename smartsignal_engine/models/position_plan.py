"""Position plan model."""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from smartsignal_engine.models.signal import Direction


@dataclass(frozen=True)
class PositionPlan:
    """Sized and protected order plan for one trade attempt.

    ``attempt_id`` is the idempotency key for every order placed for this plan.
    """

    symbol: str
    direction: Direction
    entry_price: Decimal
    quantity: Decimal
    leverage: int
    stop_loss_price: Decimal
    take_profit_price: Decimal
    target_notional_usd: Decimal
    is_fallback: bool = False
    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])

    def __post_init__(self) -> None:
        """Validate plan data."""
        if self.direction == Direction.UNKNOWN:
            raise ValueError("Plan direction must be LONG or SHORT")
        if self.entry_price <= 0:
            raise ValueError("Entry price must be positive")
        if self.quantity <= 0:
            raise ValueError("Quantity must be positive")
        if self.leverage < 1:
            raise ValueError("Leverage must be >= 1")

        if self.direction == Direction.LONG:
            if not self.stop_loss_price < self.entry_price < self.take_profit_price:
                raise ValueError("LONG plan requires stop < entry < take profit")
        else:
            if not self.take_profit_price < self.entry_price < self.stop_loss_price:
                raise ValueError("SHORT plan requires take profit < entry < stop")

    @property
    def notional_usd(self) -> Decimal:
        """Quantity x entry price."""
        return self.quantity * self.entry_price

    @property
    def entry_side(self) -> str:
        """Order side for the entry."""
        return "buy" if self.direction == Direction.LONG else "sell"

    @property
    def exit_side(self) -> str:
        """Order side for protective orders."""
        return "sell" if self.direction == Direction.LONG else "buy"
