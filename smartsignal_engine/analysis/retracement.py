"""Fibonacci retracement analysis for FIBO-style signals.

Swing high and low come from the most recent bars of the higher
timeframe. Each standard level is scored by how often the close bounced
off it; the most-bounced level is the optimal entry, with the 0.618
"golden" level as the default when nothing bounced.
"""

import logging
from dataclasses import dataclass

from smartsignal_engine.config.models import RetracementConfig
from smartsignal_engine.market_data.provider import MarketDataProvider
from smartsignal_engine.models.market import Candle
from smartsignal_engine.models.signal import Direction

logger = logging.getLogger(__name__)

FIB_RATIOS = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)
GOLDEN_RATIO = 0.618


@dataclass(frozen=True)
class FibonacciLevel:
    """One retracement level and its historical bounce count."""

    ratio: float
    price: float
    bounces: int = 0


@dataclass(frozen=True)
class RetracementAnalysis:
    """Where the current price sits relative to the retracement levels."""

    timeframe: str
    swing_high: float
    swing_low: float
    current_price: float
    levels: tuple[FibonacciLevel, ...]
    optimal: FibonacciLevel
    nearest: FibonacciLevel
    tolerance_pct: float
    at_optimal_level: bool

    @property
    def at_level(self) -> bool:
        """True when the price is within tolerance of the nearest level."""
        return self.distance_to(self.nearest) < self.tolerance_pct

    def distance_to(self, level: FibonacciLevel) -> float:
        """Percent distance from the current price to ``level``."""
        return abs(self.current_price - level.price) / self.current_price * 100

    @property
    def wait_recommendation(self) -> str | None:
        """Limit-order hint when the price is away from the optimal level."""
        if self.at_optimal_level:
            return None
        side = "above" if self.current_price > self.optimal.price else "below"
        return (
            f"Price {self.current_price:.6f} is {side} level {self.optimal.ratio} "
            f"({self.optimal.price:.6f}), place a limit order at the level"
        )


def fibonacci_prices(high: float, low: float, direction: Direction) -> list[float]:
    """Level prices for FIB_RATIOS.

    LONG levels are measured up from the swing low, SHORT levels down
    from the swing high.
    """
    if high <= 0 or low <= 0 or high <= low:
        raise ValueError(f"Invalid swing range: high={high}, low={low}")
    span = high - low
    if direction == Direction.SHORT:
        return [high - span * ratio for ratio in FIB_RATIOS]
    return [low + span * ratio for ratio in FIB_RATIOS]


def count_bounces(closes: list[float], level_price: float, tolerance_pct: float) -> int:
    """Count closes touching ``level_price`` with both neighbours on the same side."""
    tolerance = level_price * tolerance_pct / 100
    bounces = 0
    for i in range(1, len(closes) - 1):
        if abs(closes[i] - level_price) > tolerance:
            continue
        prev_close, next_close = closes[i - 1], closes[i + 1]
        if (prev_close > level_price and next_close > level_price) or (
            prev_close < level_price and next_close < level_price
        ):
            bounces += 1
    return bounces


class RetracementAnalyzer:
    """Computes retracement levels from exchange klines."""

    def __init__(self, market_data: MarketDataProvider, config: RetracementConfig | None = None):
        self.market_data = market_data
        self.config = config or RetracementConfig()

    async def analyze(self, symbol: str, direction: Direction) -> RetracementAnalysis | None:
        """Fetch klines (with a lower-timeframe fallback) and analyse them.

        Returns:
            Analysis, or None when neither timeframe has enough bars
        """
        timeframe = self.config.timeframe
        candles = await self.market_data.get_klines(symbol, timeframe, self.config.kline_limit)
        if len(candles) < self.config.min_bars:
            logger.warning(
                f"Only {len(candles)} {timeframe} bars for {symbol}, "
                f"trying {self.config.fallback_timeframe}"
            )
            timeframe = self.config.fallback_timeframe
            candles = await self.market_data.get_klines(
                symbol, timeframe, self.config.kline_limit
            )
            if len(candles) < self.config.min_bars:
                logger.warning(f"Not enough bars for retracement analysis of {symbol}")
                return None

        result = self.analyze_candles(candles, direction, timeframe)
        logger.info(
            f"🔢 {symbol} retracement {timeframe}: swing {result.swing_low:.6f}-{result.swing_high:.6f}, "
            f"optimal {result.optimal.ratio} @ {result.optimal.price:.6f}, "
            f"{'at level' if result.at_optimal_level else 'waiting'}"
        )
        return result

    def analyze_candles(
        self, candles: list[Candle], direction: Direction, timeframe: str
    ) -> RetracementAnalysis:
        """Pure analysis over already-fetched candles (oldest first)."""
        recent = candles[-self.config.swing_lookback:]
        swing_high = max(c.high for c in recent)
        swing_low = min(c.low for c in recent)
        closes = [c.close for c in candles]
        current_price = closes[-1]
        tolerance_pct = self.config.level_tolerance_pct

        levels = tuple(
            FibonacciLevel(ratio, price, count_bounces(closes, price, tolerance_pct))
            for ratio, price in zip(FIB_RATIOS, fibonacci_prices(swing_high, swing_low, direction))
        )

        golden = next(level for level in levels if level.ratio == GOLDEN_RATIO)
        optimal = golden
        for level in levels:
            if level.bounces > optimal.bounces:
                optimal = level

        nearest = min(levels, key=lambda level: abs(current_price - level.price))
        optimal_distance = abs(current_price - optimal.price) / current_price * 100

        return RetracementAnalysis(
            timeframe=timeframe,
            swing_high=swing_high,
            swing_low=swing_low,
            current_price=current_price,
            levels=levels,
            optimal=optimal,
            nearest=nearest,
            tolerance_pct=tolerance_pct,
            at_optimal_level=optimal_distance < tolerance_pct,
        )
