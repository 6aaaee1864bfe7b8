"""Smart-money heuristic analysis of a signal against live market data."""

import logging

from smartsignal_engine.config.models import AnalysisConfig
from smartsignal_engine.models.analysis import (
    AnalysisResult,
    Momentum,
    MomentumDirection,
    RiskLevel,
    Significance,
    SupportResistance,
    VolumeAnalysis,
)
from smartsignal_engine.models.market import MarketSnapshot
from smartsignal_engine.models.signal import Direction, Signal

logger = logging.getLogger(__name__)

ROUND_NUMBER_ANCHORS = (0.001, 0.01, 0.1, 1.0, 10.0, 100.0, 1000.0)
MAX_SCORE = 5


class MarketAnalysisEngine:
    """
    Scores market conditions around a signal.

    Produces four independent readings:
    - smart-money score (0-5) from volume/price-stability patterns
    - support/resistance proximity of the price to the announced entries
    - momentum from the 24h price change
    - volume band classification
    """

    def __init__(self, config: AnalysisConfig | None = None):
        """
        Initialize analysis engine.

        Args:
            config: Analysis thresholds (uses defaults if not provided)
        """
        self.config = config or AnalysisConfig()

    def analyze(self, symbol: str, snapshot: MarketSnapshot, signal: Signal) -> AnalysisResult:
        """
        Analyze one signal against a fresh market snapshot.

        Args:
            symbol: Exchange symbol id
            snapshot: Point-in-time market data
            signal: Parsed signal

        Returns:
            AnalysisResult for the decision engine
        """
        result = AnalysisResult(
            symbol=symbol,
            price=snapshot.price,
            smart_money_score=self.smart_money_score(snapshot),
            support_resistance=self.support_resistance(snapshot.price, signal),
            momentum=self.momentum(snapshot),
            volume_analysis=self.volume_analysis(snapshot),
        )
        logger.info(
            f"{symbol} analysis: score={result.smart_money_score}/5 "
            f"risk={result.support_resistance.risk_level.value} "
            f"momentum={result.momentum.direction.value}({result.momentum.strength:.2f}) "
            f"volume={result.volume_analysis.level}"
        )
        return result

    def smart_money_score(self, snapshot: MarketSnapshot) -> int:
        """Additive 0-5 score; both volume patterns can fire together."""
        cfg = self.config
        change = abs(snapshot.price_change_percent)
        score = 0

        # Accumulation: heavy volume while price stays flat
        if snapshot.volume > cfg.high_volume and change < cfg.stable_change_pct:
            score += 2

        # Markup/distribution: very heavy volume with a large move
        if snapshot.volume > cfg.very_high_volume and change > cfg.large_move_pct:
            score += 3

        for anchor in ROUND_NUMBER_ANCHORS:
            if abs(snapshot.price - anchor) / anchor < cfg.round_number_proximity:
                score += 1
                break

        return min(score, MAX_SCORE)

    def support_resistance(self, price: float, signal: Signal) -> SupportResistance:
        """Classify entry risk from the distance to the mean entry price."""
        cfg = self.config
        entry_mean = signal.entry_mean

        if entry_mean is None:
            return SupportResistance(
                near_support=False,
                near_resistance=False,
                risk_level=RiskLevel.MEDIUM,
                support_level=price * 0.95,
                resistance_level=price * 1.05,
            )

        distance_pct = abs(price - entry_mean) / entry_mean * 100
        near_support = False
        near_resistance = False
        if distance_pct < cfg.near_entry_pct:
            risk = RiskLevel.LOW
            near_support = signal.direction == Direction.LONG
            near_resistance = signal.direction == Direction.SHORT
        elif distance_pct > cfg.far_entry_pct:
            risk = RiskLevel.HIGH
        else:
            risk = RiskLevel.MEDIUM

        stop = float(signal.stop_loss) if signal.stop_loss is not None else None
        first_tp = float(signal.first_take_profit) if signal.first_take_profit is not None else None

        if signal.direction == Direction.SHORT:
            resistance = stop if stop is not None and stop > entry_mean else entry_mean * 1.05
            support = first_tp if first_tp is not None and first_tp < entry_mean else entry_mean * 0.90
        else:
            support = stop if stop is not None and stop < entry_mean else entry_mean * 0.95
            resistance = first_tp if first_tp is not None and first_tp > entry_mean else entry_mean * 1.10

        return SupportResistance(
            near_support=near_support,
            near_resistance=near_resistance,
            risk_level=risk,
            support_level=support,
            resistance_level=resistance,
        )

    def momentum(self, snapshot: MarketSnapshot) -> Momentum:
        """Momentum from the 24h change; strength is clamped to [0, 1]."""
        cfg = self.config
        change = snapshot.price_change_percent
        reliable = snapshot.volume > cfg.liquidity_volume

        if abs(change) <= cfg.momentum_trigger_pct:
            return Momentum(direction=MomentumDirection.NEUTRAL, strength=0.0, reliable=reliable)

        direction = MomentumDirection.BULLISH if change > 0 else MomentumDirection.BEARISH
        strength = min(abs(change) / 10, 1.0)
        if snapshot.volume > cfg.high_volume:
            strength = min(strength * 1.5, 1.0)

        return Momentum(direction=direction, strength=strength, reliable=reliable)

    def volume_analysis(self, snapshot: MarketSnapshot) -> VolumeAnalysis:
        """Four ordered volume bands plus an accumulation qualifier."""
        cfg = self.config
        volume = snapshot.volume

        if volume > cfg.extreme_volume:
            level, significance = "VERY_HIGH", Significance.HIGH
        elif volume > cfg.very_high_volume:
            level, significance = "HIGH", Significance.MEDIUM
        elif volume > cfg.high_volume:
            level, significance = "MEDIUM", Significance.MEDIUM
        else:
            level, significance = "NORMAL", Significance.LOW

        if volume > cfg.very_high_volume and abs(snapshot.price_change_percent) < cfg.stable_change_pct:
            level += "_ACCUMULATION"

        return VolumeAnalysis(level=level, significance=significance)
