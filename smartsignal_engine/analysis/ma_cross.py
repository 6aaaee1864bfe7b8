"""Moving-average cross analysis for EMA-cross announcements."""

import logging
from dataclasses import dataclass
from enum import Enum

from smartsignal_engine.indicators.ema import calculate_ema
from smartsignal_engine.market_data.provider import MarketDataProvider
from smartsignal_engine.models.signal import Direction

logger = logging.getLogger(__name__)

DEFAULT_FAST_PERIOD = 50
DEFAULT_SLOW_PERIOD = 200
DEFAULT_TIMEFRAME = "5m"
TREND_BARS = 5
SEPARATION_THRESHOLD_PCT = 0.5


class CrossType(str, Enum):
    """Relative position of the fast EMA to the slow EMA."""

    GOLDEN_CROSS = "GOLDEN_CROSS"  # Fast crossed above slow on the last bar
    DEATH_CROSS = "DEATH_CROSS"  # Fast crossed below slow on the last bar
    ABOVE = "ABOVE"
    BELOW = "BELOW"


@dataclass(frozen=True)
class MACrossAnalysis:
    """Outcome of one EMA cross evaluation."""

    cross_type: CrossType
    direction: Direction
    fast_ema: float
    slow_ema: float
    separation_pct: float
    confidence: int
    timeframe: str

    @property
    def is_fresh_cross(self) -> bool:
        return self.cross_type in (CrossType.GOLDEN_CROSS, CrossType.DEATH_CROSS)


def evaluate_cross(closes: list[float], fast_period: int, slow_period: int, timeframe: str) -> MACrossAnalysis:
    """Classify the cross on closing prices (oldest first).

    Confidence starts at 50: +25 for a cross on the last bar, +15 when the
    EMAs are more than 0.5% apart, +10 when the last five bars agree.

    Raises:
        ValueError: If there are too few closes for the slow EMA.
    """
    if len(closes) < slow_period + 1:
        raise ValueError(f"Need at least {slow_period + 1} closes, got {len(closes)}")

    fast = calculate_ema(closes, fast_period)
    slow = calculate_ema(closes, slow_period)
    fast_now, slow_now = fast[-1], slow[-1]
    fast_prev, slow_prev = fast[-2], slow[-2]
    assert fast_now is not None and slow_now is not None
    assert fast_prev is not None and slow_prev is not None

    if fast_prev <= slow_prev and fast_now > slow_now:
        cross_type, direction = CrossType.GOLDEN_CROSS, Direction.LONG
    elif fast_prev >= slow_prev and fast_now < slow_now:
        cross_type, direction = CrossType.DEATH_CROSS, Direction.SHORT
    elif fast_now > slow_now:
        cross_type, direction = CrossType.ABOVE, Direction.LONG
    else:
        cross_type, direction = CrossType.BELOW, Direction.SHORT

    price = closes[-1]
    separation_pct = abs(fast_now - slow_now) / price * 100

    confidence = 50
    if cross_type in (CrossType.GOLDEN_CROSS, CrossType.DEATH_CROSS):
        confidence += 25
    if separation_pct > SEPARATION_THRESHOLD_PCT:
        confidence += 15

    consistent = True
    for f, s in zip(fast[-TREND_BARS + 1:], slow[-TREND_BARS + 1:]):
        if f is None or s is None:
            consistent = False
            break
        if direction == Direction.LONG and f <= s:
            consistent = False
            break
        if direction == Direction.SHORT and f >= s:
            consistent = False
            break
    if consistent:
        confidence += 10

    return MACrossAnalysis(
        cross_type=cross_type,
        direction=direction,
        fast_ema=fast_now,
        slow_ema=slow_now,
        separation_pct=separation_pct,
        confidence=confidence,
        timeframe=timeframe,
    )


class MACrossAnalyzer:
    """Fetches klines and evaluates the announced EMA pair."""

    def __init__(
        self,
        market_data: MarketDataProvider,
        kline_limit: int = 250,
        fallback_timeframe: str = "15m",
        fallback_limit: int = 300,
    ):
        self.market_data = market_data
        self.kline_limit = kline_limit
        self.fallback_timeframe = fallback_timeframe
        self.fallback_limit = fallback_limit

    async def analyze(
        self,
        symbol: str,
        timeframe: str | None = None,
        fast_period: int | None = None,
        slow_period: int | None = None,
    ) -> MACrossAnalysis | None:
        """Evaluate the cross, falling back to a higher timeframe on short history.

        Returns:
            Analysis, or None when neither timeframe has enough bars
        """
        timeframe = timeframe or DEFAULT_TIMEFRAME
        fast_period = fast_period or DEFAULT_FAST_PERIOD
        slow_period = slow_period or DEFAULT_SLOW_PERIOD
        if fast_period > slow_period:
            fast_period, slow_period = slow_period, fast_period
        required = slow_period + TREND_BARS

        candles = await self.market_data.get_klines(symbol, timeframe, max(self.kline_limit, required))
        if len(candles) < required:
            logger.warning(
                f"Only {len(candles)} {timeframe} bars for {symbol}, trying {self.fallback_timeframe}"
            )
            timeframe = self.fallback_timeframe
            candles = await self.market_data.get_klines(
                symbol, timeframe, max(self.fallback_limit, required)
            )
            if len(candles) < required:
                logger.warning(f"Not enough bars for EMA {fast_period}/{slow_period} on {symbol}")
                return None

        result = evaluate_cross([c.close for c in candles], fast_period, slow_period, timeframe)
        logger.info(
            f"📊 {symbol} EMA {fast_period}/{slow_period} ({timeframe}): {result.cross_type.value}, "
            f"separation {result.separation_pct:.2f}%, confidence {result.confidence}%"
        )
        return result
