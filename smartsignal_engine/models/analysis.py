"""Heuristic market analysis result models."""

from dataclasses import dataclass
from enum import Enum


class RiskLevel(str, Enum):
    """Entry risk relative to the announced entry zone."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class MomentumDirection(str, Enum):
    """24h momentum direction."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class Significance(str, Enum):
    """Volume significance band."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class SupportResistance:
    """Proximity of the current price to the signal's entry zone."""

    near_support: bool
    near_resistance: bool
    risk_level: RiskLevel
    support_level: float | None = None
    resistance_level: float | None = None


@dataclass(frozen=True)
class Momentum:
    """Momentum classification from 24h price change."""

    direction: MomentumDirection
    strength: float
    reliable: bool

    def __post_init__(self) -> None:
        """Validate momentum strength."""
        if not 0.0 <= self.strength <= 1.0:
            raise ValueError("Momentum strength must be between 0.0 and 1.0")


@dataclass(frozen=True)
class VolumeAnalysis:
    """Volume band classification (level may carry an _ACCUMULATION suffix)."""

    level: str
    significance: Significance


@dataclass(frozen=True)
class AnalysisResult:
    """Output of the smart-money analysis for one signal."""

    symbol: str
    price: float
    smart_money_score: int
    support_resistance: SupportResistance
    momentum: Momentum
    volume_analysis: VolumeAnalysis

    def __post_init__(self) -> None:
        """Validate score bounds."""
        if not 0 <= self.smart_money_score <= 5:
            raise ValueError("Smart money score must be between 0 and 5")
