"""Data models for messages, signals, market data, analysis and plans."""

from .analysis import (
    AnalysisResult,
    Momentum,
    MomentumDirection,
    RiskLevel,
    Significance,
    SupportResistance,
    VolumeAnalysis,
)
from .decision import Action, Decision
from .market import Candle, ExchangeFilters, MarketSnapshot
from .message import InboundMessage
from .position_plan import PositionPlan
from .signal import Direction, Signal, SignalSubtype, TakeProfit

__all__ = [
    "Action",
    "AnalysisResult",
    "Candle",
    "Decision",
    "Direction",
    "ExchangeFilters",
    "InboundMessage",
    "MarketSnapshot",
    "Momentum",
    "MomentumDirection",
    "PositionPlan",
    "RiskLevel",
    "Signal",
    "SignalSubtype",
    "Significance",
    "SupportResistance",
    "TakeProfit",
    "VolumeAnalysis",
]
