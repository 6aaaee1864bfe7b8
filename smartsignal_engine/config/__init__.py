"""Configuration package for the signal engine."""

from .loader import load_config
from .models import (
    AIValidatorConfig,
    AnalysisConfig,
    BotConfig,
    DecisionConfig,
    ExecutionConfig,
    PipelineConfig,
    RetracementConfig,
    SymbolsConfig,
    TradingConfig,
)

__all__ = [
    "AIValidatorConfig",
    "AnalysisConfig",
    "BotConfig",
    "DecisionConfig",
    "ExecutionConfig",
    "PipelineConfig",
    "RetracementConfig",
    "SymbolsConfig",
    "TradingConfig",
    "load_config",
]
