"""Execution module for position sizing and protected order placement."""

from smartsignal_engine.execution.adapter import ExchangeTradingGateway, OrderResult
from smartsignal_engine.execution.position_sizer import PositionSizer
from .binance_futures_adapter import BinanceFuturesGateway, create_futures_exchange
from .dry_run_gateway import DryRunGateway
from .trade_executor import ExecutionReport, ReconcileReport, TradeExecutor, client_order_id

__all__ = [
    "BinanceFuturesGateway",
    "DryRunGateway",
    "ExchangeTradingGateway",
    "ExecutionReport",
    "OrderResult",
    "PositionSizer",
    "ReconcileReport",
    "TradeExecutor",
    "client_order_id",
    "create_futures_exchange",
]
