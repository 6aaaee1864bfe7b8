"""Signal pipeline: message -> symbol -> signal -> analysis -> decision -> execution.

Each inbound message is processed to completion before the next one. Every
stage reports an explicit ``OutcomeStatus`` so callers can tell "no signal"
apart from "data unavailable" or "execution failed".
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, TypeVar

from smartsignal_engine.ai.validator import AISignalValidator, AIVerdict
from smartsignal_engine.alerts.telegram import (
    NotificationSink,
    format_decision_message,
    format_execution_message,
    format_failure_message,
)
from smartsignal_engine.analysis.ma_cross import MACrossAnalyzer
from smartsignal_engine.analysis.retracement import RetracementAnalyzer
from smartsignal_engine.analysis.smart_money import MarketAnalysisEngine
from smartsignal_engine.config.models import BotConfig
from smartsignal_engine.core.decision_engine import DecisionEngine
from smartsignal_engine.core.session import TradingSession
from smartsignal_engine.core.state_machine import TradeStep
from smartsignal_engine.errors import DataUnavailableError, RateLimitedError
from smartsignal_engine.execution.position_sizer import PositionSizer
from smartsignal_engine.execution.trade_executor import (
    ExecutionReport,
    ReconcileReport,
    TradeExecutor,
)
from smartsignal_engine.market_data.provider import MarketDataProvider
from smartsignal_engine.models.analysis import AnalysisResult
from smartsignal_engine.models.decision import Action, Decision
from smartsignal_engine.models.market import ExchangeFilters, MarketSnapshot
from smartsignal_engine.models.message import InboundMessage
from smartsignal_engine.models.position_plan import PositionPlan
from smartsignal_engine.models.signal import Direction, Signal, SignalSubtype
from smartsignal_engine.monitoring.metrics import get_metrics
from smartsignal_engine.monitoring.sentry_service import get_sentry
from smartsignal_engine.persistence.repository import EngineRepository
from smartsignal_engine.signals.field_parser import SignalFieldParser
from smartsignal_engine.signals.symbol_extractor import SymbolExtractor

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s")


class OutcomeStatus(str, Enum):
    """Terminal status of one processed message."""

    IGNORED = "IGNORED"  # Empty text or our own notification echoed back
    NO_SYMBOL = "NO_SYMBOL"
    DUPLICATE = "DUPLICATE"
    RATE_LIMITED = "RATE_LIMITED"  # Minimum spacing between runs not yet elapsed
    DATA_UNAVAILABLE = "DATA_UNAVAILABLE"
    FAILED = "FAILED"  # Unexpected error, message abandoned
    DECIDED = "DECIDED"  # Decision made, no execution attempted
    EXECUTED = "EXECUTED"
    SKIPPED_EXECUTION = "SKIPPED_EXECUTION"  # Qualified, but caps/toggle/AI blocked it
    EXECUTION_FAILED = "EXECUTION_FAILED"


@dataclass(frozen=True)
class PipelineOutcome:
    """Result of processing one message."""

    status: OutcomeStatus
    message_id: str | None = None
    symbol: str | None = None
    signal: Signal | None = None
    analysis: AnalysisResult | None = None
    decision: Decision | None = None
    plan: PositionPlan | None = None
    execution: ExecutionReport | None = None
    ai_verdict: AIVerdict | None = None
    notified: bool = False
    detail: str | None = None


def dedup_key(symbol: str, text: str, prefix_chars: int = 50) -> str:
    """``SYMBOL_<first N chars of text, whitespace replaced by _>``."""
    return f"{symbol}_{_WHITESPACE.sub('_', text[:prefix_chars])}"


class SignalPipeline:
    """Orchestrates one message through every stage.

    Owns no state of its own: the daily counters, open positions and dedup
    set live on the ``TradingSession`` it is given.
    """

    def __init__(
        self,
        config: BotConfig,
        session: TradingSession,
        extractor: SymbolExtractor,
        market_data: MarketDataProvider,
        executor: TradeExecutor,
        repo: EngineRepository,
        notifier: NotificationSink | None = None,
        ai_validator: AISignalValidator | None = None,
        notify_channel: str | None = None,
    ):
        """
        Initialize pipeline.

        Args:
            config: Bot configuration
            session: Trading session state
            extractor: Symbol extractor (exchange-validated)
            market_data: Market data provider
            executor: Trade executor
            repo: Event/trade journal
            notifier: Where decision and execution messages go
            ai_validator: Optional AI second opinion
            notify_channel: Target channel for notifications
        """
        self.config = config
        self.session = session
        self.extractor = extractor
        self.market_data = market_data
        self.executor = executor
        self.repo = repo
        self.notifier = notifier
        self.ai_validator = ai_validator
        self.notify_channel = notify_channel

        self.parser = SignalFieldParser()
        self.analysis_engine = MarketAnalysisEngine(config.analysis)
        self.decision_engine = DecisionEngine(config.decision, config.analysis)
        self.sizer = PositionSizer(config.trading)
        self.retracement = RetracementAnalyzer(market_data, config.retracement)
        self.ma_cross = MACrossAnalyzer(market_data)

    async def _timed(self, awaitable: Awaitable[T], timeout: float | None = None) -> T:
        return await asyncio.wait_for(
            awaitable, timeout=timeout or self.config.pipeline.request_timeout_seconds
        )

    # ------------------------------------------------------------------
    # Message processing
    # ------------------------------------------------------------------

    async def process(self, message: InboundMessage) -> PipelineOutcome:
        """Process one inbound message to completion.

        Never raises: unexpected errors are logged, captured and reported
        as ``FAILED``.
        """
        try:
            outcome = await self._process(message)
        except Exception as e:
            logger.error(f"❌ Pipeline error on message {message.message_id}: {e}", exc_info=True)
            sentry = get_sentry()
            if sentry:
                sentry.capture_error(
                    e,
                    context={"phase": "pipeline", "message_id": message.message_id},
                )
            outcome = PipelineOutcome(
                status=OutcomeStatus.FAILED,
                message_id=message.message_id,
                detail=str(e),
            )

        metrics = get_metrics()
        if metrics:
            metrics.record_signal(outcome.symbol, outcome.status.value)
        return outcome

    async def _process(self, message: InboundMessage) -> PipelineOutcome:
        text = message.full_text
        pipeline_cfg = self.config.pipeline

        if not text.strip():
            return self._outcome(OutcomeStatus.IGNORED, message, detail="empty message")
        if pipeline_cfg.own_message_marker and pipeline_cfg.own_message_marker in text:
            return self._outcome(OutcomeStatus.IGNORED, message, detail="own notification")

        self.session.rollover_if_needed()

        try:
            symbol = await self._timed(self.extractor.extract(text))
        except (DataUnavailableError, asyncio.TimeoutError) as e:
            logger.warning(f"Symbol validation unavailable: {e!r}")
            return self._outcome(OutcomeStatus.DATA_UNAVAILABLE, message, detail=f"symbol validation: {e!r}")

        if symbol is None:
            logger.debug(f"No symbol in message {message.message_id}")
            return self._outcome(OutcomeStatus.NO_SYMBOL, message)

        key = dedup_key(symbol, text, pipeline_cfg.dedup_prefix_chars)
        if self.session.is_duplicate(key):
            logger.info(f"🔁 Duplicate message for {symbol} ignored")
            return self._outcome(OutcomeStatus.DUPLICATE, message, symbol=symbol)

        if not self.session.try_acquire_run_slot(pipeline_cfg.min_interval_seconds):
            logger.info(
                f"⏱️ {symbol} skipped, less than {pipeline_cfg.min_interval_seconds:.0f}s since last run"
            )
            return self._outcome(OutcomeStatus.RATE_LIMITED, message, symbol=symbol)
        self.session.mark_seen(key)

        logger.info(f"📨 Processing signal for {symbol} (message {message.message_id})")
        signal = self.parser.parse(text, symbol)
        signal = await self._enrich(signal)

        try:
            snapshot = await self._timed(self.market_data.get_snapshot(symbol))
        except (DataUnavailableError, asyncio.TimeoutError) as e:
            logger.warning(f"Market data unavailable for {symbol}: {e!r}")
            return self._outcome(
                OutcomeStatus.DATA_UNAVAILABLE, message, symbol=symbol, signal=signal, detail=repr(e)
            )
        if snapshot is None:
            return self._outcome(
                OutcomeStatus.DATA_UNAVAILABLE, message, symbol=symbol, signal=signal, detail="no snapshot"
            )

        return await self._decide_and_act(message, signal, snapshot)

    async def _decide_and_act(
        self, message: InboundMessage | None, signal: Signal, snapshot: MarketSnapshot
    ) -> PipelineOutcome:
        symbol = signal.symbol
        analysis = self.analysis_engine.analyze(symbol, snapshot, signal)
        decision = self.decision_engine.decide(analysis, signal)
        self._record_decision(signal, analysis, decision)

        decision_cfg = self.config.decision
        qualifies = decision.is_entry and decision.confidence >= decision_cfg.execute_threshold

        verdict: AIVerdict | None = None
        if qualifies and self.ai_validator is not None and self.config.ai_validator.enabled:
            verdict = await self._second_opinion(self.ai_validator, signal, snapshot, analysis, decision)

        notified = False
        if decision.confidence >= decision_cfg.notify_threshold:
            notified = await self._notify(format_decision_message(signal, analysis, decision))

        base = dict(
            message=message,
            symbol=symbol,
            signal=signal,
            analysis=analysis,
            decision=decision,
            ai_verdict=verdict,
            notified=notified,
        )
        if not qualifies:
            return self._outcome(OutcomeStatus.DECIDED, **base)

        if verdict is not None and verdict.vetoes(decision.action, self.config.ai_validator.min_confidence):
            logger.info(
                f"🤖 AI vetoed {decision.action.value} on {symbol}: "
                f"{verdict.decision.value} ({verdict.confidence}%)"
            )
            return self._outcome(OutcomeStatus.SKIPPED_EXECUTION, detail="ai veto", **base)

        reason = self.session.check_limits(symbol)
        if reason is not None:
            logger.info(f"🚫 {symbol} qualifies but execution skipped: {reason}")
            return self._outcome(OutcomeStatus.SKIPPED_EXECUTION, detail=reason, **base)

        plan = await self._plan(signal, snapshot, decision)
        report = await self.executor.execute(plan)

        if report.step == TradeStep.REJECTED:
            return self._outcome(OutcomeStatus.SKIPPED_EXECUTION, plan=plan, execution=report,
                                 detail=report.error, **base)

        if report.step == TradeStep.DONE and report.position is not None:
            await self._notify(format_execution_message(report.position.to_dict(), plan.leverage))
            return self._outcome(OutcomeStatus.EXECUTED, plan=plan, execution=report, **base)

        error = report.error or report.step.value
        await self._notify(format_failure_message(symbol, decision, error))
        sentry = get_sentry()
        if sentry:
            sentry.capture_warning(
                f"Execution {report.step.value} for {symbol}: {error}",
                context={"attempt_id": report.attempt_id, "history": [s.value for s in report.history]},
            )
        return self._outcome(OutcomeStatus.EXECUTION_FAILED, plan=plan, execution=report,
                             detail=error, **base)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _enrich(self, signal: Signal) -> Signal:
        """Subtype analysis; failures leave the signal unchanged."""
        try:
            if signal.subtype == SignalSubtype.RETRACEMENT:
                result = await self._timed(self.retracement.analyze(signal.symbol, signal.direction))
                if result is not None:
                    return signal.with_swing(result.swing_high, result.swing_low)
            elif signal.subtype == SignalSubtype.MA_CROSS:
                cross = await self._timed(
                    self.ma_cross.analyze(
                        signal.symbol, signal.timeframe, signal.fast_period, signal.slow_period
                    )
                )
                if cross is not None:
                    return signal.with_direction(cross.direction)
        except (DataUnavailableError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"{signal.subtype.value} analysis failed for {signal.symbol}: {e!r}")
        return signal

    async def _second_opinion(
        self,
        validator: AISignalValidator,
        signal: Signal,
        snapshot: MarketSnapshot,
        analysis: AnalysisResult,
        decision: Decision,
    ) -> AIVerdict | None:
        try:
            return await self._timed(
                validator.validate(signal, snapshot, analysis, decision),
                timeout=self.config.ai_validator.deadline_seconds,
            )
        except RateLimitedError as e:
            logger.warning(f"AI validator rate limited, keeping heuristic decision: {e}")
        except (DataUnavailableError, asyncio.TimeoutError) as e:
            logger.warning(f"AI validator unavailable, keeping heuristic decision: {e!r}")
        return None

    async def _plan(self, signal: Signal, snapshot: MarketSnapshot, decision: Decision) -> PositionPlan:
        """Fetch filters and leverage bracket concurrently, then size."""
        symbol = signal.symbol
        filters_result, leverage_result = await asyncio.gather(
            self._timed(self.market_data.get_exchange_filters(symbol)),
            self._timed(self.market_data.get_max_leverage(symbol)),
            return_exceptions=True,
        )

        filters: ExchangeFilters | None = None
        if isinstance(filters_result, BaseException):
            logger.warning(f"Exchange filters unavailable for {symbol}: {filters_result!r}")
        else:
            filters = filters_result

        max_leverage: int | None = None
        if isinstance(leverage_result, BaseException):
            logger.warning(f"Leverage bracket unavailable for {symbol}: {leverage_result!r}")
        else:
            max_leverage = leverage_result

        direction = Direction.LONG if decision.action == Action.ENTER_LONG else Direction.SHORT
        return self.sizer.size(symbol, snapshot.price, filters, direction, max_leverage)

    async def _notify(self, text: str) -> bool:
        if self.notifier is None:
            return False
        try:
            return await self._timed(self.notifier.send(self.notify_channel, text))
        except asyncio.TimeoutError:
            logger.warning("Notification timed out")
            return False

    def _record_decision(self, signal: Signal, analysis: AnalysisResult, decision: Decision) -> None:
        logger.info(
            f"🧠 {signal.symbol} {decision.action.value} ({decision.confidence}%) "
            f"score={analysis.smart_money_score} risk={analysis.support_resistance.risk_level.value}"
        )
        self.repo.append_event(
            event_type="signal.decision",
            level="INFO",
            payload={
                "symbol": signal.symbol,
                "direction": signal.direction.value,
                "subtype": signal.subtype.value,
                "action": decision.action.value,
                "confidence": decision.confidence,
                "reasons": list(decision.reasons),
                "wait_recommendation": decision.wait_recommendation,
                "price": analysis.price,
            },
            public_safe=True,
        )
        metrics = get_metrics()
        if metrics:
            metrics.record_decision(decision.action.value, decision.confidence)
        sentry = get_sentry()
        if sentry:
            sentry.add_breadcrumb(
                "decision",
                f"{signal.symbol} {decision.action.value}",
                {"confidence": decision.confidence},
            )

    @staticmethod
    def _outcome(
        status: OutcomeStatus,
        message: InboundMessage | None,
        **fields: Any,
    ) -> PipelineOutcome:
        return PipelineOutcome(
            status=status,
            message_id=message.message_id if message is not None else None,
            **fields,
        )

    # ------------------------------------------------------------------
    # Operator surface
    # ------------------------------------------------------------------

    def set_trading_enabled(self, enabled: bool) -> None:
        """Enable or disable automatic execution (persisted by the flag store)."""
        self.session.set_trading_enabled(enabled)
        self.repo.append_event(
            event_type="operator.trading_toggled",
            level="INFO",
            payload={"enabled": enabled},
            public_safe=True,
        )

    def get_stats(self) -> dict[str, Any]:
        """Session stats plus AI quota usage."""
        stats = self.session.get_stats()
        if self.ai_validator is not None:
            stats["ai_validator"] = self.ai_validator.get_stats()
        return stats

    async def analyze_symbol(self, symbol: str) -> PipelineOutcome:
        """Manual analysis trigger: decision and notification, never execution."""
        symbol = symbol.upper()
        if not await self._timed(self.extractor.validator.exists(symbol)):
            return PipelineOutcome(status=OutcomeStatus.NO_SYMBOL, detail=f"{symbol} not listed")

        try:
            snapshot = await self._timed(self.market_data.get_snapshot(symbol))
        except (DataUnavailableError, asyncio.TimeoutError) as e:
            return PipelineOutcome(status=OutcomeStatus.DATA_UNAVAILABLE, symbol=symbol, detail=repr(e))
        if snapshot is None:
            return PipelineOutcome(status=OutcomeStatus.DATA_UNAVAILABLE, symbol=symbol, detail="no snapshot")

        signal = Signal(symbol=symbol)
        analysis = self.analysis_engine.analyze(symbol, snapshot, signal)
        decision = self.decision_engine.decide(analysis, signal)
        self._record_decision(signal, analysis, decision)
        notified = await self._notify(format_decision_message(signal, analysis, decision))
        return PipelineOutcome(
            status=OutcomeStatus.DECIDED,
            symbol=symbol,
            signal=signal,
            analysis=analysis,
            decision=decision,
            notified=notified,
        )

    async def reconcile(self) -> ReconcileReport:
        """Re-apply missing protective orders for open positions."""
        report = await self.executor.reconcile_protection()
        if report.adopted or report.stops_placed or report.take_profits_placed or report.errors:
            lines = ["🛡️ <b>Protection reconcile</b>"]
            if report.adopted:
                lines.append(f"Positions picked up: {', '.join(report.adopted)}")
            if report.stops_placed:
                lines.append(f"Stops re-applied: {', '.join(report.stops_placed)}")
            if report.take_profits_placed:
                lines.append(f"Take profits re-applied: {', '.join(report.take_profits_placed)}")
            for symbol, error in report.errors.items():
                lines.append(f"❌ {symbol}: {error}")
            await self._notify("\n".join(lines))
        return report
