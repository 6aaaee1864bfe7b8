"""Market analysis: smart-money heuristics and subtype analysers."""

from .ma_cross import CrossType, MACrossAnalysis, MACrossAnalyzer, evaluate_cross
from .retracement import FibonacciLevel, RetracementAnalysis, RetracementAnalyzer
from .smart_money import MarketAnalysisEngine

__all__ = [
    "CrossType",
    "FibonacciLevel",
    "MACrossAnalysis",
    "MACrossAnalyzer",
    "MarketAnalysisEngine",
    "RetracementAnalysis",
    "RetracementAnalyzer",
    "evaluate_cross",
]
