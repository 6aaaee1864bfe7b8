"""Instant decision engine: analysis + signal -> scored action."""

import logging

from smartsignal_engine.config.models import AnalysisConfig, DecisionConfig
from smartsignal_engine.models.analysis import (
    AnalysisResult,
    MomentumDirection,
    RiskLevel,
    Significance,
)
from smartsignal_engine.models.decision import Action, Decision
from smartsignal_engine.models.signal import Direction, Signal

logger = logging.getLogger(__name__)

STRONG_MOMENTUM = 0.7
TARGET_MOMENTUM_PCT = 75
WEAK_MOMENTUM = 0.5
ENTRY_DRIFT_PCT = 3.0
GENERIC_WAIT = "Wait for better market conditions before entering"

_AGREEING_MOMENTUM = {
    Direction.LONG: MomentumDirection.BULLISH,
    Direction.SHORT: MomentumDirection.BEARISH,
}


def format_price(value: float) -> str:
    """Human-readable price with precision suited to its magnitude."""
    if value >= 1:
        return f"${value:,.2f}"
    return f"${value:.6g}"


def _format_volume(value: float) -> str:
    if value >= 1_000_000:
        return f"{value / 1_000_000:g}M"
    if value >= 1_000:
        return f"{value / 1_000:g}K"
    return f"{value:g}"


class DecisionEngine:
    """
    Turns an AnalysisResult and a Signal into a bounded-confidence action.

    Adjustments are applied to a base confidence in a fixed order:
    1. smart-money score >= 4: +20, >= 2: +10
    2. entry risk LOW: +15, HIGH: -15
    3. reliable momentum stronger than 0.7: +15, then +10 if it agrees
       with the signal direction, -20 if it does not
    4. volume significance HIGH: +10

    The result is clamped to [0, max_confidence]. Entry requires the entry
    threshold and a known direction.
    """

    def __init__(
        self,
        config: DecisionConfig | None = None,
        analysis_config: AnalysisConfig | None = None,
    ):
        """
        Initialize decision engine.

        Args:
            config: Confidence policy (uses defaults if not provided)
            analysis_config: Analysis thresholds quoted in wait recommendations
        """
        self.config = config or DecisionConfig()
        self.analysis_config = analysis_config or AnalysisConfig()

    def decide(self, analysis: AnalysisResult, signal: Signal) -> Decision:
        """
        Score the signal and choose an action.

        Args:
            analysis: Market analysis for the signal's symbol
            signal: Parsed signal (direction may be UNKNOWN)

        Returns:
            Decision with confidence in [0, max_confidence]
        """
        cfg = self.config
        confidence = cfg.base_confidence
        reasons: list[str] = []

        score = analysis.smart_money_score
        if score >= 4:
            confidence += 20
            reasons.append(f"Strong smart money activity (score {score}/5)")
        elif score >= 2:
            confidence += 10
            reasons.append(f"Moderate smart money activity (score {score}/5)")

        risk = analysis.support_resistance.risk_level
        if risk == RiskLevel.LOW:
            confidence += 15
            reasons.append("Price is at the signal entry zone (low risk)")
        elif risk == RiskLevel.HIGH:
            confidence -= 15
            reasons.append("Price is far from the signal entry zone (high risk)")

        momentum = analysis.momentum
        if momentum.reliable and momentum.strength > STRONG_MOMENTUM:
            confidence += 15
            reasons.append(
                f"Strong {momentum.direction.value.lower()} momentum ({momentum.strength:.0%})"
            )
            if _AGREEING_MOMENTUM.get(signal.direction) == momentum.direction:
                confidence += 10
                reasons.append("Momentum confirms the signal direction")
            else:
                confidence -= 20
                reasons.append("Momentum contradicts the signal direction")

        if analysis.volume_analysis.significance == Significance.HIGH:
            confidence += 10
            reasons.append(f"High volume ({analysis.volume_analysis.level})")

        confidence = max(0, min(confidence, cfg.max_confidence))

        if signal.direction == Direction.UNKNOWN and confidence >= cfg.entry_threshold:
            confidence = cfg.entry_threshold - 1
            reasons.append("Signal direction unknown, entry withheld")

        if confidence >= cfg.entry_threshold:
            action = Action.ENTER_LONG if signal.direction == Direction.LONG else Action.ENTER_SHORT
            decision = Decision(action=action, confidence=confidence, reasons=tuple(reasons))
        else:
            decision = Decision(
                action=Action.WAIT,
                confidence=confidence,
                reasons=tuple(reasons),
                wait_recommendation=self.wait_recommendation(confidence, analysis, signal),
            )

        logger.info(
            f"{analysis.symbol} decision: {decision.action.value} "
            f"({decision.confidence}%) - {len(reasons)} reasons"
        )
        return decision

    def wait_recommendation(self, confidence: int, analysis: AnalysisResult, signal: Signal) -> str:
        """
        Describe what would lift a near-miss decision to the entry threshold.

        Below the near-miss band only a generic message is returned.
        """
        cfg = self.config
        if confidence < cfg.near_miss_threshold:
            return GENERIC_WAIT

        projected = min(confidence + cfg.projected_boost, cfg.max_confidence)
        price = analysis.price
        sr = analysis.support_resistance
        candidates: list[str] = []

        if signal.direction == Direction.UNKNOWN:
            candidates.append("the signal state a clear LONG or SHORT direction")
        elif signal.direction == Direction.LONG:
            if sr.support_level is not None and price > sr.support_level * 1.02:
                candidates.append(f"price reach support {format_price(sr.support_level)} and rebound")
            elif sr.resistance_level is not None:
                candidates.append(
                    f"price break resistance {format_price(sr.resistance_level)} with volume"
                )
        else:
            if sr.resistance_level is not None and price < sr.resistance_level * 0.98:
                candidates.append(
                    f"price reach resistance {format_price(sr.resistance_level)} and reject"
                )
            elif sr.support_level is not None:
                candidates.append(f"price break support {format_price(sr.support_level)} with volume")

        momentum = analysis.momentum
        if momentum.direction == MomentumDirection.NEUTRAL or momentum.strength < WEAK_MOMENTUM:
            candidates.append(
                f"momentum strengthen to {TARGET_MOMENTUM_PCT}% (currently {momentum.strength:.0%})"
            )

        if analysis.volume_analysis.significance == Significance.LOW:
            threshold = _format_volume(self.analysis_config.very_high_volume)
            candidates.append(f"volume exceed {threshold} with a directional move")

        if analysis.smart_money_score < 2:
            candidates.append(
                f"smart money accumulation appear (score {analysis.smart_money_score}/5, need 2+)"
            )

        entry_mean = signal.entry_mean
        if entry_mean is not None and abs(price - entry_mean) / entry_mean * 100 > ENTRY_DRIFT_PCT:
            candidates.append(f"price return to the entry zone {format_price(entry_mean)}")

        if not candidates:
            anchor = entry_mean if entry_mean is not None else price
            target = anchor * 0.98 if signal.direction == Direction.LONG else anchor * 1.02
            candidates.append(f"a better entry near {format_price(target)}")

        return "Wait for: " + " OR ".join(f"{c} (confidence -> {projected}%)" for c in candidates)
