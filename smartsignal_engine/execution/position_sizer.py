"""Fixed-notional position sizing against exchange lot filters.

This module turns a price and the exchange's LOT_SIZE / PRICE_FILTER
constraints into a quantity, a leverage and protective prices placed at a
fixed USD loss / gain from the entry.

Example:
    >>> sizer = PositionSizer(TradingConfig(target_usd=0.8, default_leverage=15,
    ...                                     leverage_mode="fixed"))
    >>> plan = sizer.size(
    ...     "BTCUSDT",
    ...     price=100.0,
    ...     filters=ExchangeFilters(min_qty=Decimal("0.001"), step_size=Decimal("0.001")),
    ...     direction=Direction.LONG,
    ... )
    >>> plan.quantity
    Decimal('0.120')
"""

import logging
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal, InvalidOperation

from smartsignal_engine.config.models import TradingConfig
from smartsignal_engine.models.market import ExchangeFilters
from smartsignal_engine.models.position_plan import PositionPlan
from smartsignal_engine.models.signal import Direction

logger = logging.getLogger(__name__)


def quantize_down(value: Decimal, step: Decimal) -> Decimal:
    """Largest multiple of ``step`` not above ``value``."""
    return (value / step).to_integral_value(rounding=ROUND_FLOOR) * step


def quantize_up(value: Decimal, step: Decimal) -> Decimal:
    """Smallest multiple of ``step`` not below ``value``."""
    return (value / step).to_integral_value(rounding=ROUND_CEILING) * step


class PositionSizer:
    """Sizes futures positions to a fixed notional-at-leverage.

    Sizing never raises for exchange-side problems: missing or unusable
    filters produce a conservative fallback plan instead.
    """

    def __init__(self, config: TradingConfig | None = None):
        """
        Initialize position sizer.

        Args:
            config: Trading policy (target margin, leverage, fixed USD distances)
        """
        self.config = config or TradingConfig()

    def resolve_leverage(self, max_leverage: int | None = None) -> int:
        """
        Pick the leverage for a trade.

        Args:
            max_leverage: Exchange bracket maximum for the symbol, if known

        Returns:
            Leverage clamped to the policy ceiling
        """
        cfg = self.config
        if cfg.leverage_mode == "bracket" and max_leverage is not None and max_leverage >= 1:
            return min(max_leverage, cfg.max_leverage)
        return min(cfg.default_leverage, cfg.max_leverage)

    def size(
        self,
        symbol: str,
        price: float | Decimal,
        filters: ExchangeFilters | None,
        direction: Direction,
        max_leverage: int | None = None,
    ) -> PositionPlan:
        """
        Compute a position plan.

        Args:
            symbol: Exchange symbol id
            price: Current (entry) price
            filters: Exchange lot filters, or None when the lookup failed
            direction: LONG or SHORT
            max_leverage: Exchange leverage bracket maximum, if known

        Returns:
            PositionPlan (``is_fallback`` set when filters were unusable)

        Raises:
            ValueError: If direction is UNKNOWN or price is not positive
        """
        if direction == Direction.UNKNOWN:
            raise ValueError("Cannot size a position without a direction")

        entry = Decimal(str(price))
        if entry <= 0:
            raise ValueError(f"Price must be positive, got {price}")

        if filters is None or filters.step_size <= 0 or filters.min_qty < 0:
            logger.warning(f"{symbol}: exchange filters unavailable, using fallback plan")
            return self._fallback_plan(symbol, entry, direction)

        cfg = self.config
        leverage = self.resolve_leverage(max_leverage)
        target_notional = Decimal(str(cfg.target_usd)) * leverage

        try:
            quantity = quantize_down(target_notional / entry, filters.step_size)
            if quantity < filters.min_qty:
                # Exchange minimum takes precedence over the exact target notional
                quantity = quantize_up(filters.min_qty, filters.step_size)
        except InvalidOperation as e:
            logger.warning(f"{symbol}: quantity computation failed ({e}), using fallback plan")
            return self._fallback_plan(symbol, entry, direction)

        if quantity <= 0:
            logger.warning(f"{symbol}: computed zero quantity, using fallback plan")
            return self._fallback_plan(symbol, entry, direction)

        stop_loss, take_profit = self.protective_prices(entry, quantity, direction, filters.tick_size)

        logger.debug(
            f"{symbol}: qty={quantity} lev={leverage}x notional=${quantity * entry:.2f} "
            f"(target ${target_notional:.2f}) SL={stop_loss} TP={take_profit}"
        )
        try:
            return PositionPlan(
                symbol=symbol,
                direction=direction,
                entry_price=entry,
                quantity=quantity,
                leverage=leverage,
                stop_loss_price=stop_loss,
                take_profit_price=take_profit,
                target_notional_usd=target_notional,
            )
        except ValueError as e:
            # tick sizes coarser than the SL/TP distance collapse the bracket
            logger.warning(f"{symbol}: unusable plan ({e}), using fallback plan")
            return self._fallback_plan(symbol, entry, direction)

    def protective_prices(
        self,
        entry: Decimal,
        quantity: Decimal,
        direction: Direction,
        tick_size: Decimal | None = None,
    ) -> tuple[Decimal, Decimal]:
        """
        Stop-loss and take-profit prices at fixed USD distances.

        Prices are rounded to the tick away from the entry and never drop
        below one tick.

        Args:
            entry: Entry price
            quantity: Position quantity
            direction: LONG or SHORT
            tick_size: Exchange price tick, if known

        Returns:
            (stop_loss_price, take_profit_price)
        """
        loss_distance = Decimal(str(self.config.stop_loss_usd)) / quantity
        gain_distance = Decimal(str(self.config.take_profit_usd)) / quantity

        if direction == Direction.LONG:
            stop_loss = entry - loss_distance
            take_profit = entry + gain_distance
            below, above = stop_loss, take_profit
        else:
            stop_loss = entry + loss_distance
            take_profit = entry - gain_distance
            below, above = take_profit, stop_loss

        tick = tick_size if tick_size is not None and tick_size > 0 else None
        if tick is not None:
            below = quantize_down(below, tick)
            above = quantize_up(above, tick)
        floor = tick if tick is not None else entry / Decimal(1000)
        if below <= 0:
            logger.warning(f"Protective price below zero for entry {entry}, flooring at {floor}")
            below = floor

        if direction == Direction.LONG:
            return below, above
        return above, below

    def _fallback_plan(self, symbol: str, entry: Decimal, direction: Direction) -> PositionPlan:
        cfg = self.config
        quantity = Decimal(str(cfg.fallback_quantity))
        leverage = min(cfg.default_leverage, cfg.max_leverage)
        stop_loss, take_profit = self.protective_prices(entry, quantity, direction)
        return PositionPlan(
            symbol=symbol,
            direction=direction,
            entry_price=entry,
            quantity=quantity,
            leverage=leverage,
            stop_loss_price=stop_loss,
            take_profit_price=take_profit,
            target_notional_usd=Decimal(str(cfg.target_usd)) * leverage,
            is_fallback=True,
        )
