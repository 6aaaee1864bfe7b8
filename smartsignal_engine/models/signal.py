"""Parsed trading signal models."""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum


class Direction(str, Enum):
    """Trade direction announced by a signal."""

    LONG = "LONG"
    SHORT = "SHORT"
    UNKNOWN = "UNKNOWN"


class SignalSubtype(str, Enum):
    """Special signal families with extra analysis."""

    NONE = "NONE"
    RETRACEMENT = "RETRACEMENT"  # Fibonacci retracement level signals
    MA_CROSS = "MA_CROSS"  # Moving-average cross announcements


@dataclass(frozen=True)
class TakeProfit:
    """Numbered take-profit target."""

    level: int
    price: Decimal
    percentage: Decimal | None = None

    def __post_init__(self) -> None:
        """Validate take-profit data."""
        if self.level < 1:
            raise ValueError("Take-profit level must be >= 1")
        if self.price <= 0:
            raise ValueError("Take-profit price must be positive")


@dataclass(frozen=True)
class Signal:
    """One parsed inbound signal message.

    Immutable once parsed. Any field that could not be extracted keeps its
    default (``None`` or empty tuple).
    """

    symbol: str
    direction: Direction = Direction.UNKNOWN
    entry_prices: tuple[Decimal, ...] = ()
    take_profits: tuple[TakeProfit, ...] = ()
    stop_loss: Decimal | None = None
    leverage: int | None = None
    subtype: SignalSubtype = SignalSubtype.NONE
    timeframe: str | None = None
    fast_period: int | None = None
    slow_period: int | None = None
    swing_high: float | None = None
    swing_low: float | None = None
    raw_text: str = field(default="", repr=False, compare=False)

    def __post_init__(self) -> None:
        """Validate signal data."""
        if self.leverage is not None and self.leverage <= 0:
            raise ValueError("Leverage must be a positive integer")

    @property
    def entry_mean(self) -> float | None:
        """Mean of the announced entry prices, if any."""
        if not self.entry_prices:
            return None
        return float(sum(self.entry_prices) / len(self.entry_prices))

    @property
    def first_take_profit(self) -> Decimal | None:
        """Price of take-profit level 1, if any."""
        return self.take_profits[0].price if self.take_profits else None

    def with_direction(self, direction: Direction) -> "Signal":
        """Return a copy of this signal with a resolved direction."""
        return replace(self, direction=direction)

    def with_swing(self, swing_high: float, swing_low: float) -> "Signal":
        """Return a copy carrying retracement swing levels."""
        return replace(self, swing_high=swing_high, swing_low=swing_low)
