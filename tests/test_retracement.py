"""Tests for Fibonacci retracement analysis."""

from datetime import datetime, timedelta, timezone

import pytest

from smartsignal_engine.analysis.retracement import (
    RetracementAnalyzer,
    count_bounces,
    fibonacci_prices,
)
from smartsignal_engine.models.market import Candle
from smartsignal_engine.models.signal import Direction

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _candle(i: int, close: float, high: float | None = None, low: float | None = None) -> Candle:
    return Candle(
        timestamp=START + timedelta(hours=4 * i),
        open=close,
        high=high if high is not None else close + 0.3,
        low=low if low is not None else close - 0.3,
        close=close,
        volume=1000.0,
    )


def _range_candles(count: int = 60, bounce_at: tuple[int, ...] = (), last_close: float = 100.0) -> list[Candle]:
    """Flat closes at 100 with a 90-110 swing inside the last 20 bars."""
    candles = []
    for i in range(count):
        close = 97.7 if i in bounce_at else 100.0
        if i == count - 1:
            close = last_close
        high = 110.0 if i == count - 15 else None
        low = 90.0 if i == count - 10 else None
        candles.append(_candle(i, close, high, low))
    return candles


def test_fibonacci_prices_long() -> None:
    assert fibonacci_prices(110.0, 90.0, Direction.LONG) == pytest.approx(
        [90.0, 94.72, 97.64, 100.0, 102.36, 105.72, 110.0]
    )


def test_fibonacci_prices_short() -> None:
    assert fibonacci_prices(110.0, 90.0, Direction.SHORT) == pytest.approx(
        [110.0, 105.28, 102.36, 100.0, 97.64, 94.28, 90.0]
    )


def test_fibonacci_prices_invalid_range() -> None:
    with pytest.raises(ValueError, match="Invalid swing range"):
        fibonacci_prices(90.0, 110.0, Direction.LONG)


def test_count_bounces() -> None:
    closes = [101.0, 100.0, 101.0, 99.0, 100.1, 98.0]
    # 100.0 bounced up, 100.1 rejected down
    assert count_bounces(closes, 100.0, 0.5) == 2


def test_count_bounces_ignores_pass_through() -> None:
    assert count_bounces([99.0, 100.0, 101.0], 100.0, 0.5) == 0


class TestAnalyzeCandles:
    @pytest.fixture
    def analyzer(self, market_data) -> RetracementAnalyzer:
        return RetracementAnalyzer(market_data)

    def test_golden_level_default(self, analyzer) -> None:
        result = analyzer.analyze_candles(_range_candles(), Direction.LONG, "4h")

        assert result.swing_high == 110.0
        assert result.swing_low == 90.0
        assert result.optimal.ratio == 0.618
        assert result.optimal.price == pytest.approx(102.36)
        assert result.nearest.ratio == 0.5
        assert result.at_level is True
        assert result.at_optimal_level is False
        assert "below level 0.618" in result.wait_recommendation  # type: ignore[operator]

    def test_most_bounced_level_wins(self, analyzer) -> None:
        candles = _range_candles(bounce_at=(10, 20), last_close=97.7)

        result = analyzer.analyze_candles(candles, Direction.LONG, "4h")

        assert result.optimal.ratio == 0.382
        assert result.optimal.bounces == 2
        assert result.at_optimal_level is True
        assert result.wait_recommendation is None


class TestAnalyzer:
    @pytest.mark.asyncio
    async def test_uses_primary_timeframe(self, market_data) -> None:
        market_data.klines[("BTCUSDT", "4h")] = _range_candles()

        result = await RetracementAnalyzer(market_data).analyze("BTCUSDT", Direction.LONG)

        assert result is not None
        assert result.timeframe == "4h"

    @pytest.mark.asyncio
    async def test_falls_back_on_short_history(self, market_data) -> None:
        market_data.klines[("BTCUSDT", "4h")] = _range_candles(30)
        market_data.klines[("BTCUSDT", "1h")] = _range_candles(60)

        result = await RetracementAnalyzer(market_data).analyze("BTCUSDT", Direction.SHORT)

        assert result is not None
        assert result.timeframe == "1h"

    @pytest.mark.asyncio
    async def test_not_enough_history(self, market_data) -> None:
        market_data.klines[("BTCUSDT", "4h")] = _range_candles(30)
        assert await RetracementAnalyzer(market_data).analyze("BTCUSDT", Direction.LONG) is None
