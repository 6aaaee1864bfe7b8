"""Persistent operator flags."""

from .control import InMemoryTradingFlagStore, RedisTradingFlagStore, TradingFlagStore, get_flag_store

__all__ = ["InMemoryTradingFlagStore", "RedisTradingFlagStore", "TradingFlagStore", "get_flag_store"]
