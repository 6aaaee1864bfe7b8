"""Core pipeline, session state, decision engine and trade-attempt state machine.

Note: SignalPipeline is not exported here to avoid import chain issues.
Import directly: `from smartsignal_engine.core.pipeline import SignalPipeline`
"""

from .decision_engine import DecisionEngine, format_price
from .session import PositionRecord, TradingSession
from .state_machine import TradeAttemptStateMachine, TradeStep

__all__ = [
    "DecisionEngine",
    "PositionRecord",
    "TradeAttemptStateMachine",
    "TradeStep",
    "TradingSession",
    "format_price",
]
