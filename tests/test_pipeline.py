"""End-to-end tests for SignalPipeline with in-memory collaborators."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import httpx
import pytest
from prometheus_client import CollectorRegistry

from smartsignal_engine.ai.validator import AISignalValidator, AIVerdict, Verdict
from smartsignal_engine.cache.control import InMemoryTradingFlagStore
from smartsignal_engine.config.models import AIValidatorConfig, BotConfig, PipelineConfig
from smartsignal_engine.core.pipeline import OutcomeStatus, SignalPipeline, dedup_key
from smartsignal_engine.core.session import TradingSession
from smartsignal_engine.core.state_machine import TradeStep
from smartsignal_engine.errors import DataUnavailableError, OrderPlacementError, RateLimitedError
from smartsignal_engine.execution.trade_executor import TradeExecutor
from smartsignal_engine.models.decision import Action
from smartsignal_engine.models.market import Candle, MarketSnapshot
from smartsignal_engine.models.message import InboundMessage
from smartsignal_engine.models.signal import Direction
from smartsignal_engine.monitoring.metrics import MetricsConfig, init_metrics
from smartsignal_engine.persistence.repository import EngineRepository
from smartsignal_engine.signals.symbol_extractor import SymbolExtractor

LONG_SIGNAL = "#BTCUSDT 🟢 LONG\nENTRY $100.00\nLeverage 10X"


class FakeNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str | None, str]] = []

    async def send(self, channel_id: str | None, message: str) -> bool:
        self.messages.append((channel_id, message))
        return True


class FakeAIValidator:
    def __init__(self, verdict: AIVerdict | None = None, error: Exception | None = None) -> None:
        self.verdict = verdict
        self.error = error
        self.calls = 0

    async def validate(self, signal, snapshot, analysis, decision) -> AIVerdict:
        self.calls += 1
        if self.error is not None:
            raise self.error
        assert self.verdict is not None
        return self.verdict

    def get_stats(self) -> dict:
        return {"calls_this_hour": self.calls}


class UnreachableValidator:
    async def exists(self, symbol: str) -> bool:
        raise DataUnavailableError("exchange unreachable")


def _message(text: str, message_id: str = "m1") -> InboundMessage:
    return InboundMessage(text=text, message_id=message_id)


@pytest.fixture
def repo(in_memory_db):
    return EngineRepository(in_memory_db)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def build(market_data, gateway, repo, notifier, listed_validator):
    """Factory for pipelines sharing the fake market, gateway and journal."""

    def _build(config=None, ai_validator=None, validator=None, clock=None):
        config = config or BotConfig(pipeline=PipelineConfig(min_interval_seconds=0))
        session_kwargs = {"clock": clock} if clock is not None else {}
        session = TradingSession(config.trading, InMemoryTradingFlagStore(enabled=True), **session_kwargs)
        executor = TradeExecutor(session, gateway, repo)
        return SignalPipeline(
            config,
            session,
            SymbolExtractor(validator or listed_validator),
            market_data,
            executor,
            repo,
            notifier=notifier,
            ai_validator=ai_validator,
            notify_channel="ops",
        )

    return _build


@pytest.fixture
def pipeline(build):
    return build()


def test_dedup_key() -> None:
    assert dedup_key("BTCUSDT", "#BTCUSDT LONG\nENTRY", 12) == "BTCUSDT_#BTCUSDT_LON"


class TestExecution:
    @pytest.mark.asyncio
    async def test_strong_long_signal_executes(self, pipeline, notifier, repo):
        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.EXECUTED
        assert outcome.symbol == "BTCUSDT"
        assert outcome.message_id == "m1"
        assert outcome.decision.action == Action.ENTER_LONG
        assert outcome.decision.confidence == 85
        assert outcome.execution.step == TradeStep.DONE
        assert outcome.plan.leverage == 15
        assert outcome.notified is True

        assert [channel for channel, _ in notifier.messages] == ["ops", "ops"]
        assert notifier.messages[0][1].startswith("🧠 <b>SMART MONEY ANALYSIS</b>")
        assert "POSITION OPENED: BTCUSDT" in notifier.messages[1][1]
        assert pipeline.session.daily_trade_count == 1
        assert len(repo.list_events(event_type="signal.decision")) == 1

    @pytest.mark.asyncio
    async def test_trading_disabled_skips_execution(self, pipeline, gateway, notifier):
        pipeline.set_trading_enabled(False)

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.SKIPPED_EXECUTION
        assert outcome.detail == "trading disabled"
        assert outcome.notified is True
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_exchange_failure_reported(self, pipeline, gateway, notifier):
        gateway.failures["place_market_order"] = OrderPlacementError("insufficient margin")

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.EXECUTION_FAILED
        assert outcome.execution.step == TradeStep.FAILED
        assert "insufficient margin" in outcome.detail
        assert "[EXECUTION FAILED] BTCUSDT" in notifier.messages[-1][1]

    @pytest.mark.asyncio
    async def test_unprotected_position_reported_as_failure(self, pipeline, gateway):
        gateway.failures["place_reduce_only_stop"] = OrderPlacementError("stop rejected")

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.EXECUTION_FAILED
        assert outcome.execution.step == TradeStep.UNPROTECTED
        assert "BTCUSDT" in pipeline.session.open_positions

    @pytest.mark.asyncio
    async def test_missing_filters_use_fallback_plan(self, pipeline, market_data):
        market_data.fail.add("get_exchange_filters")

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.EXECUTED
        assert outcome.plan.is_fallback is True


class TestAIValidation:
    @pytest.mark.asyncio
    async def test_confident_veto_blocks_execution(self, build, gateway):
        ai = FakeAIValidator(AIVerdict(Verdict.NO_TRADE, 90, "choppy"))
        pipeline = build(
            config=BotConfig(
                pipeline=PipelineConfig(min_interval_seconds=0),
                ai_validator=AIValidatorConfig(enabled=True),
            ),
            ai_validator=ai,
        )

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.SKIPPED_EXECUTION
        assert outcome.detail == "ai veto"
        assert outcome.ai_verdict.decision == Verdict.NO_TRADE
        # heuristic decision is kept as-is
        assert outcome.decision.action == Action.ENTER_LONG
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_rate_limited_validator_keeps_heuristic(self, build):
        ai = FakeAIValidator(error=RateLimitedError("quota"))
        pipeline = build(
            config=BotConfig(
                pipeline=PipelineConfig(min_interval_seconds=0),
                ai_validator=AIValidatorConfig(enabled=True),
            ),
            ai_validator=ai,
        )

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.EXECUTED
        assert outcome.ai_verdict is None
        assert ai.calls == 1

    @pytest.mark.asyncio
    async def test_malformed_ai_body_keeps_heuristic(self, build, notifier):
        config = BotConfig(
            pipeline=PipelineConfig(min_interval_seconds=0),
            ai_validator=AIValidatorConfig(enabled=True),
        )
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>bad gateway</html>")
            )
        )
        ai = AISignalValidator(config.ai_validator, api_key="sk-test", client=client)
        pipeline = build(config=config, ai_validator=ai)

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.EXECUTED
        assert outcome.ai_verdict is None
        assert outcome.notified is True
        assert notifier.messages[0][1].startswith("🧠 <b>SMART MONEY ANALYSIS</b>")

    @pytest.mark.asyncio
    async def test_slow_validator_is_cut_off(self, build):
        class HangingAIValidator(FakeAIValidator):
            async def validate(self, signal, snapshot, analysis, decision) -> AIVerdict:
                self.calls += 1
                await asyncio.Event().wait()
                raise AssertionError("unreachable")

        ai = HangingAIValidator()
        pipeline = build(
            config=BotConfig(
                pipeline=PipelineConfig(min_interval_seconds=0),
                ai_validator=AIValidatorConfig(enabled=True, deadline_seconds=0.05),
            ),
            ai_validator=ai,
        )

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.EXECUTED
        assert outcome.ai_verdict is None
        assert ai.calls == 1

    @pytest.mark.asyncio
    async def test_disabled_validator_not_called(self, build):
        ai = FakeAIValidator(AIVerdict(Verdict.NO_TRADE, 99))
        pipeline = build(ai_validator=ai)

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.EXECUTED
        assert ai.calls == 0
        assert pipeline.get_stats()["ai_validator"] == {"calls_this_hour": 0}


class TestEarlyExits:
    @pytest.mark.asyncio
    async def test_empty_message_ignored(self, pipeline):
        assert (await pipeline.process(_message("   "))).status == OutcomeStatus.IGNORED

    @pytest.mark.asyncio
    async def test_own_notification_ignored(self, pipeline, market_data):
        outcome = await pipeline.process(_message("🧠 <b>SMART MONEY ANALYSIS</b>\n#BTCUSDT"))

        assert outcome.status == OutcomeStatus.IGNORED
        assert market_data.calls == []

    @pytest.mark.asyncio
    async def test_no_symbol(self, pipeline):
        outcome = await pipeline.process(_message("market looks choppy today"))
        assert outcome.status == OutcomeStatus.NO_SYMBOL

    @pytest.mark.asyncio
    async def test_symbol_validation_unavailable(self, build):
        pipeline = build(validator=UnreachableValidator())

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.DATA_UNAVAILABLE
        assert "symbol validation" in outcome.detail

    @pytest.mark.asyncio
    async def test_duplicate_message(self, pipeline):
        await pipeline.process(_message(LONG_SIGNAL, "m1"))

        outcome = await pipeline.process(_message(LONG_SIGNAL, "m2"))

        assert outcome.status == OutcomeStatus.DUPLICATE
        assert outcome.symbol == "BTCUSDT"

    @pytest.mark.asyncio
    async def test_runs_are_spaced(self, build):
        pipeline = build(config=BotConfig(pipeline=PipelineConfig(min_interval_seconds=60)), clock=lambda: 5.0)

        first = await pipeline.process(_message("#ETHUSDT update", "m1"))
        second = await pipeline.process(_message("#SOLUSDT update", "m2"))

        assert first.status == OutcomeStatus.DECIDED
        assert second.status == OutcomeStatus.RATE_LIMITED
        # a rate-limited message is not marked as seen
        assert pipeline.session.is_duplicate(dedup_key("SOLUSDT", "#SOLUSDT update")) is False

    @pytest.mark.asyncio
    async def test_snapshot_unavailable(self, pipeline, market_data):
        market_data.fail.add("get_snapshot")

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.DATA_UNAVAILABLE
        assert outcome.signal is not None
        assert outcome.signal.direction == Direction.LONG

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, pipeline):
        pipeline.analysis_engine.analyze = MagicMock(side_effect=RuntimeError("boom"))

        outcome = await pipeline.process(_message(LONG_SIGNAL))

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.detail == "boom"


class TestDecisions:
    @pytest.mark.asyncio
    async def test_low_confidence_wait_is_silent(self, pipeline, market_data, notifier):
        market_data.snapshots["SOLUSDT"] = MarketSnapshot(
            symbol="SOLUSDT", price=3.7, price_change_percent=0.5, volume=200_000
        )

        outcome = await pipeline.process(_message("#SOLUSDT 🟢 LONG"))

        assert outcome.status == OutcomeStatus.DECIDED
        assert outcome.decision.action == Action.WAIT
        assert outcome.decision.confidence == 50
        assert outcome.decision.wait_recommendation is not None
        assert outcome.notified is False
        assert notifier.messages == []

    @pytest.mark.asyncio
    async def test_notify_threshold_reached_without_entry(self, pipeline, notifier):
        outcome = await pipeline.process(_message("#ETHUSDT update"))

        assert outcome.status == OutcomeStatus.DECIDED
        assert outcome.decision.confidence == 70
        assert outcome.notified is True
        assert len(notifier.messages) == 1

    @pytest.mark.asyncio
    async def test_ma_cross_resolves_direction(self, pipeline, market_data):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        market_data.klines[("ETHUSDT", "5m")] = [
            Candle(start + timedelta(minutes=5 * i), 100.0 + i, 100.5 + i, 99.5 + i, 100.0 + i, 10.0)
            for i in range(250)
        ]

        outcome = await pipeline.process(_message("MA cross spotted on #ETHUSDT"))

        assert outcome.signal.direction == Direction.LONG

    @pytest.mark.asyncio
    async def test_retracement_attaches_swing(self, pipeline, market_data):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        candles = []
        for i in range(60):
            high = 110.0 if i == 45 else 100.3
            low = 90.0 if i == 50 else 99.7
            candles.append(Candle(start + timedelta(hours=4 * i), 100.0, high, low, 100.0, 10.0))
        market_data.klines[("BTCUSDT", "4h")] = candles

        outcome = await pipeline.process(_message("#BTCUSDT FIBONACCI retracement, looking SHORT"))

        assert outcome.signal.swing_high == 110.0
        assert outcome.signal.swing_low == 90.0

    @pytest.mark.asyncio
    async def test_subtype_analysis_failure_keeps_signal(self, pipeline, market_data):
        market_data.fail.add("get_klines")

        outcome = await pipeline.process(_message("MA cross spotted on #ETHUSDT"))

        assert outcome.status == OutcomeStatus.DECIDED
        assert outcome.signal.direction == Direction.UNKNOWN

    @pytest.mark.asyncio
    async def test_outcomes_are_counted(self, pipeline):
        registry = CollectorRegistry()
        init_metrics(MetricsConfig(prefix="pipe"), registry)

        await pipeline.process(_message("market looks choppy today"))
        await pipeline.process(_message(LONG_SIGNAL, "m2"))

        assert registry.get_sample_value("pipe_messages_total", {"outcome": "NO_SYMBOL"}) == 1
        assert registry.get_sample_value("pipe_messages_total", {"outcome": "EXECUTED"}) == 1
        assert registry.get_sample_value("pipe_decisions_total", {"action": "ENTER_LONG"}) == 1


class TestOperatorSurface:
    def test_toggle_is_journaled(self, pipeline, repo):
        pipeline.set_trading_enabled(False)

        assert pipeline.get_stats()["trading_enabled"] is False
        events = repo.list_events(event_type="operator.trading_toggled")
        assert events[0]["payload"] == {"enabled": False}

    @pytest.mark.asyncio
    async def test_analyze_symbol_never_executes(self, pipeline, gateway, notifier):
        outcome = await pipeline.analyze_symbol("btcusdt")

        assert outcome.status == OutcomeStatus.DECIDED
        assert outcome.symbol == "BTCUSDT"
        assert outcome.notified is True
        assert gateway.calls == []
        assert len(notifier.messages) == 1

    @pytest.mark.asyncio
    async def test_analyze_unlisted_symbol(self, pipeline):
        outcome = await pipeline.analyze_symbol("XRPUSDT")
        assert outcome.status == OutcomeStatus.NO_SYMBOL

    @pytest.mark.asyncio
    async def test_reconcile_notifies_repairs(self, pipeline, gateway, notifier):
        gateway.failures["place_reduce_only_stop"] = OrderPlacementError("stop rejected")
        await pipeline.process(_message(LONG_SIGNAL))

        report = await pipeline.reconcile()

        assert report.stops_placed == ["BTCUSDT"]
        assert "Stops re-applied: BTCUSDT" in notifier.messages[-1][1]
        assert pipeline.session.open_positions["BTCUSDT"].is_protected

    @pytest.mark.asyncio
    async def test_reconcile_quiet_when_nothing_changed(self, pipeline, notifier):
        await pipeline.reconcile()
        assert notifier.messages == []
