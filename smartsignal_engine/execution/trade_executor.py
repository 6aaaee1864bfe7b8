"""Protected futures entry execution.

Runs one trade attempt through CHECK_LIMITS -> SET_LEVERAGE ->
PLACE_MARKET_ORDER -> PLACE_REDUCE_ONLY_STOP -> PLACE_REDUCE_ONLY_TAKE_PROFIT.
A failure aborts the remaining steps. A filled market order is never rolled
back: a missing protective leg leaves the position UNPROTECTED until the
reconciliation sweep re-applies it.

A market order that times out may still have filled. The executor asks the
exchange for the position before releasing the slot; when that check fails
too, the slot stays reserved until reconcile settles it.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, TypeVar

from smartsignal_engine.core.session import PositionRecord, TradingSession
from smartsignal_engine.core.state_machine import TradeAttemptStateMachine, TradeStep
from smartsignal_engine.errors import DataUnavailableError
from smartsignal_engine.execution.adapter import (
    ExchangePosition,
    ExchangeTradingGateway,
    OrderResult,
)
from smartsignal_engine.execution.position_sizer import PositionSizer
from smartsignal_engine.models.position_plan import PositionPlan
from smartsignal_engine.models.signal import Direction
from smartsignal_engine.monitoring.metrics import get_metrics
from smartsignal_engine.persistence.repository import EngineRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLIENT_ID_PREFIX = "SS"
RECOVERED_ID_PREFIX = "rec"
_STOP_TYPES = {"stop_market", "stop"}
_TAKE_PROFIT_TYPES = {"take_profit_market", "take_profit"}
# Errors after which an order may have reached the exchange anyway
_UNCERTAIN_ERRORS = (asyncio.TimeoutError, DataUnavailableError)


def client_order_id(attempt_id: str, leg: str) -> str:
    """Deterministic client order id for one leg of an attempt."""
    return f"{CLIENT_ID_PREFIX}-{attempt_id}-{leg}"


@dataclass(frozen=True)
class ExecutionReport:
    """Outcome of one trade attempt."""

    attempt_id: str
    symbol: str
    step: TradeStep
    position: PositionRecord | None = None
    error: str | None = None
    history: tuple[TradeStep, ...] = ()

    @property
    def opened(self) -> bool:
        """True if a position was opened (protected or not)."""
        return self.step in (TradeStep.DONE, TradeStep.UNPROTECTED)

    @property
    def failed(self) -> bool:
        """True for exchange-side failures (not safety rejections)."""
        return self.step in (TradeStep.FAILED, TradeStep.UNPROTECTED)


@dataclass
class ReconcileReport:
    """Outcome of a protective-order reconciliation sweep."""

    checked: list[str] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)
    adopted: list[str] = field(default_factory=list)
    released: list[str] = field(default_factory=list)
    stops_placed: list[str] = field(default_factory=list)
    take_profits_placed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class TradeExecutor:
    """Executes position plans against the futures gateway."""

    def __init__(
        self,
        session: TradingSession,
        gateway: ExchangeTradingGateway,
        repo: EngineRepository,
        mode: str = "dry-run",
        timeout_seconds: float = 10.0,
        sizer: PositionSizer | None = None,
    ) -> None:
        """
        Initialize executor.

        Args:
            session: Trading session owning caps and open positions
            gateway: Exchange order gateway
            repo: Trade and event journal
            mode: "dry-run" or "live", stored on journaled trades
            timeout_seconds: Per-call exchange timeout
            sizer: Prices emergency protection for positions found on the exchange
        """
        self.session = session
        self.gateway = gateway
        self.repo = repo
        self.mode = mode
        self.timeout_seconds = timeout_seconds
        self.sizer = sizer or PositionSizer(session.config)

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    async def execute(self, plan: PositionPlan) -> ExecutionReport:
        """Run one trade attempt.

        1. Idempotency check (a finished attempt is never re-sent).
        2. Safety caps, then reserve the symbol slot.
        3. Leverage, market entry, reduce-only stop, reduce-only take profit.
        """
        previous = self.session.completed_attempt(plan.attempt_id)
        if previous is not None:
            self.repo.append_event(
                event_type="execution.idempotency_hit",
                level="WARN",
                payload={"attempt_id": plan.attempt_id, "symbol": plan.symbol},
                public_safe=False,
            )
            return previous

        machine = TradeAttemptStateMachine(plan.attempt_id, plan.symbol)

        # CHECK_LIMITS and reservation run without an await in between
        reason = self.session.check_limits(plan.symbol)
        if reason is not None:
            machine.transition_to(TradeStep.REJECTED)
            logger.info(f"🚫 {plan.symbol} execution rejected: {reason}")
            self.repo.append_event(
                event_type="execution.rejected",
                level="INFO",
                payload={"symbol": plan.symbol, "reason": reason},
                public_safe=True,
            )
            return self._finish(machine, error=reason)

        self.session.reserve_slot(plan.symbol, plan.attempt_id)

        machine.transition_to(TradeStep.SET_LEVERAGE)
        try:
            await self._call(self.gateway.set_leverage(plan.symbol, plan.leverage))
        except Exception as e:
            return self._entry_failed(machine, plan, e)

        machine.transition_to(TradeStep.PLACE_MARKET_ORDER)
        try:
            entry = await self._call(
                self.gateway.place_market_order(
                    plan.symbol,
                    plan.entry_side,
                    plan.quantity,
                    client_order_id=client_order_id(plan.attempt_id, "ENTRY"),
                )
            )
        except _UNCERTAIN_ERRORS as e:
            logger.warning(f"⚠️ {plan.symbol} market order outcome unknown ({_describe(e)}), checking position")
            try:
                recovered = await self._confirm_entry_fill(plan)
            except Exception as check_error:
                return self._entry_failed(
                    machine,
                    plan,
                    RuntimeError(f"fill unknown after {_describe(e)}, position check failed: {_describe(check_error)}"),
                    release=False,
                )
            if recovered is None:
                return self._entry_failed(machine, plan, e)
            entry = recovered
        except Exception as e:
            return self._entry_failed(machine, plan, e)

        if not entry.is_filled:
            return self._entry_failed(
                machine, plan, RuntimeError(f"market order {entry.order_id} not filled ({entry.status})")
            )

        quantity = entry.filled_quantity if entry.filled_quantity > 0 else plan.quantity
        record = PositionRecord(
            symbol=plan.symbol,
            order_id=entry.order_id,
            side=plan.entry_side,
            quantity=quantity,
            entry_price=entry.average_price or plan.entry_price,
            stop_loss_price=plan.stop_loss_price,
            take_profit_price=plan.take_profit_price,
            attempt_id=plan.attempt_id,
        )
        self.session.confirm_position(record)
        self.repo.save_trade(
            {
                "id": plan.attempt_id,
                "symbol": plan.symbol,
                "mode": self.mode.upper(),
                "status": "OPEN",
                "side": plan.entry_side.upper(),
                "entry_price": record.entry_price,
                "quantity": record.quantity,
                "leverage": plan.leverage,
                "opened_at": record.timestamp,
                "stop_price": plan.stop_loss_price,
                "take_profit_price": plan.take_profit_price,
                "exchange_order_id": entry.order_id,
            }
        )
        metrics = get_metrics()
        if metrics:
            metrics.record_trade_opened(plan.symbol, plan.entry_side)
            metrics.set_open_positions(len(self.session.open_positions))
        logger.info(
            f"✅ {plan.symbol} {plan.entry_side.upper()} {quantity} filled @ {record.entry_price} "
            f"({plan.leverage}x)"
        )

        machine.transition_to(TradeStep.PLACE_REDUCE_ONLY_STOP)
        try:
            stop = await self._place_stop(record)
        except Exception as e:
            return self._unprotected(machine, record, "stop_loss", e)
        record.stop_order_id = stop.order_id

        machine.transition_to(TradeStep.PLACE_REDUCE_ONLY_TAKE_PROFIT)
        try:
            take_profit = await self._place_take_profit(record)
        except Exception as e:
            self.repo.update_trade_protection(plan.attempt_id, stop_order_id=stop.order_id)
            return self._unprotected(machine, record, "take_profit", e)
        record.take_profit_order_id = take_profit.order_id

        self.repo.update_trade_protection(
            plan.attempt_id,
            stop_order_id=stop.order_id,
            take_profit_order_id=take_profit.order_id,
        )
        machine.transition_to(TradeStep.DONE)
        logger.info(
            f"🛡️ {plan.symbol} protected: SL {plan.stop_loss_price} / TP {plan.take_profit_price}"
        )
        return self._finish(machine, position=record)

    async def _confirm_entry_fill(self, plan: PositionPlan) -> OrderResult | None:
        """
        Read the exchange position after a market order with no response.

        Returns:
            A fill built from the live position, or None when the symbol is flat
        """
        quantity = await self._call(self.gateway.fetch_position_quantity(plan.symbol))
        if quantity <= 0:
            return None
        logger.warning(f"⚠️ {plan.symbol} market order filled despite the error ({quantity} open)")
        return OrderResult(
            order_id=client_order_id(plan.attempt_id, "ENTRY"),
            client_order_id=client_order_id(plan.attempt_id, "ENTRY"),
            status="closed",
            filled_quantity=quantity,
        )

    async def _place_stop(self, record: PositionRecord) -> OrderResult:
        return await self._call(
            self.gateway.place_reduce_only_stop(
                record.symbol,
                _exit_side(record.side),
                record.quantity,
                record.stop_loss_price,
                client_order_id=client_order_id(record.attempt_id, "SL"),
            )
        )

    async def _place_take_profit(self, record: PositionRecord) -> OrderResult:
        return await self._call(
            self.gateway.place_reduce_only_take_profit(
                record.symbol,
                _exit_side(record.side),
                record.quantity,
                record.take_profit_price,
                client_order_id=client_order_id(record.attempt_id, "TP"),
            )
        )

    def _entry_failed(
        self,
        machine: TradeAttemptStateMachine,
        plan: PositionPlan,
        error: Exception,
        release: bool = True,
    ) -> ExecutionReport:
        failed_step = machine.current_step
        if release:
            self.session.release_slot(plan.symbol)
        else:
            self.session.mark_unresolved(plan.symbol)
        machine.transition_to(TradeStep.FAILED)
        message = f"{failed_step.value} failed: {_describe(error)}"
        logger.error(f"❌ {plan.symbol} {message}")
        self.repo.append_event(
            event_type="error.execution",
            level="ERROR",
            payload={
                "attempt_id": plan.attempt_id,
                "symbol": plan.symbol,
                "error": message,
                "slot_released": release,
            },
            public_safe=False,
        )
        metrics = get_metrics()
        if metrics:
            metrics.record_order_failure(failed_step.value)
        return self._finish(machine, error=message)

    def _unprotected(
        self,
        machine: TradeAttemptStateMachine,
        record: PositionRecord,
        leg: str,
        error: Exception,
    ) -> ExecutionReport:
        failed_step = machine.current_step
        machine.transition_to(TradeStep.UNPROTECTED)
        message = f"{failed_step.value} failed: {_describe(error)}"
        self.repo.mark_unprotected(record.attempt_id)
        logger.critical(
            f"🚨 {record.symbol} {leg} order failed, position is unprotected! {_describe(error)}"
        )
        self.repo.append_event(
            event_type="error.protective_orders",
            level="ERROR",
            payload={
                "attempt_id": record.attempt_id,
                "symbol": record.symbol,
                "missing_leg": leg,
                "error": _describe(error),
            },
            public_safe=False,
        )
        metrics = get_metrics()
        if metrics:
            metrics.record_order_failure(failed_step.value)
        return self._finish(machine, position=record, error=message)

    def _finish(
        self,
        machine: TradeAttemptStateMachine,
        position: PositionRecord | None = None,
        error: str | None = None,
    ) -> ExecutionReport:
        report = ExecutionReport(
            attempt_id=machine.attempt_id,
            symbol=machine.symbol,
            step=machine.current_step,
            position=position,
            error=error,
            history=tuple(machine.history),
        )
        if machine.current_step != TradeStep.REJECTED:
            self.session.record_attempt(machine.attempt_id, report)
        return report

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile_protection(self) -> ReconcileReport:
        """Re-apply missing protective orders for every live position.

        The worklist is the union of the session's positions, the journal's
        OPEN/UNPROTECTED trades and the positions the exchange reports, so
        positions dropped by a day rollover or a restart are protected again.
        Positions the exchange reports as flat are closed.
        """
        report = ReconcileReport()
        self.repo.append_event(
            event_type="reconcile.started",
            level="INFO",
            payload={"open_positions": len(self.session.open_positions)},
            public_safe=True,
        )

        tracked_before = dict(self.session.open_positions)
        try:
            live = {p.symbol: p for p in await self._call(self.gateway.fetch_open_positions())}
        except Exception as e:
            self._reconcile_error(report, "exchange", e)
            return self._reconcile_done(report)

        worklist = set(tracked_before)
        worklist.update(self._adopt_journal_trades(report))
        worklist.update(self._settle_unresolved(report, live))
        for symbol, position in live.items():
            if symbol in self.session.open_positions or self.session.reserved_attempt(symbol):
                continue
            try:
                self._adopt_exchange_position(position)
            except Exception as e:
                self._reconcile_error(report, symbol, e)
                continue
            report.adopted.append(symbol)
            worklist.add(symbol)

        for symbol, record in list(self.session.open_positions.items()):
            if symbol not in worklist:
                continue
            report.checked.append(symbol)
            try:
                if symbol not in live:
                    self.session.close_position(symbol)
                    self.repo.close_trade(record.attempt_id)
                    report.closed.append(symbol)
                    logger.info(f"{symbol} position closed on exchange, no longer tracked")
                    continue

                open_orders = await self._call(self.gateway.fetch_open_orders(symbol))
                stop_order = next((o for o in open_orders if _is_stop(o)), None)
                take_profit_order = next((o for o in open_orders if _is_take_profit(o)), None)

                if stop_order is None:
                    stop_order = await self._place_stop(record)
                    report.stops_placed.append(symbol)
                    logger.warning(f"🛡️ {symbol} missing stop-loss re-applied @ {record.stop_loss_price}")
                record.stop_order_id = stop_order.order_id

                if take_profit_order is None:
                    take_profit_order = await self._place_take_profit(record)
                    report.take_profits_placed.append(symbol)
                    logger.warning(
                        f"🛡️ {symbol} missing take-profit re-applied @ {record.take_profit_price}"
                    )
                record.take_profit_order_id = take_profit_order.order_id

                self.repo.update_trade_protection(
                    record.attempt_id,
                    stop_order_id=record.stop_order_id,
                    take_profit_order_id=record.take_profit_order_id,
                )
            except Exception as e:
                self._reconcile_error(report, symbol, e)

        return self._reconcile_done(report)

    def _adopt_journal_trades(self, report: ReconcileReport) -> list[str]:
        """Track journaled live trades the session no longer holds."""
        latest: dict[str, dict[str, Any]] = {}
        for trade in self.repo.list_open_trades():
            symbol = trade["symbol"]
            if trade["mode"] != self.mode.upper():
                continue
            if symbol in self.session.open_positions or self.session.reserved_attempt(symbol):
                continue
            superseded = latest.get(symbol)
            if superseded is not None:
                # oldest first, so the newer trade replaces a stale one
                self.repo.close_trade(superseded["id"])
                logger.warning(f"{symbol} journal trade {superseded['id']} superseded by {trade['id']}")
            latest[symbol] = trade

        for symbol, trade in latest.items():
            self.session.adopt_position(_record_from_trade(trade))
            report.adopted.append(symbol)
        return list(latest)

    def _settle_unresolved(
        self, report: ReconcileReport, live: dict[str, ExchangePosition]
    ) -> list[str]:
        """Resolve reservations whose market order outcome was never confirmed."""
        settled = []
        for symbol in self.session.unresolved_symbols:
            attempt_id = self.session.reserved_attempt(symbol)
            position = live.get(symbol)
            if attempt_id is None:
                continue
            if position is None:
                self.session.release_slot(symbol)
                report.released.append(symbol)
                logger.info(f"{symbol} entry never filled, reservation released")
                continue
            try:
                self._adopt_exchange_position(position, attempt_id=attempt_id, count_trade=True)
            except Exception as e:
                self._reconcile_error(report, symbol, e)
                continue
            report.adopted.append(symbol)
            settled.append(symbol)
        return settled

    def _adopt_exchange_position(
        self,
        position: ExchangePosition,
        attempt_id: str | None = None,
        count_trade: bool = False,
    ) -> PositionRecord:
        """Journal and track a live position with emergency stop and take-profit prices."""
        if position.entry_price is None or position.entry_price <= 0:
            raise ValueError(f"no entry price reported for {position.symbol}")

        direction = Direction.LONG if position.side == "buy" else Direction.SHORT
        stop_loss, take_profit = self.sizer.protective_prices(
            position.entry_price, position.quantity, direction
        )
        record = PositionRecord(
            symbol=position.symbol,
            order_id=client_order_id(attempt_id, "ENTRY") if attempt_id else "",
            side=position.side,
            quantity=position.quantity,
            entry_price=position.entry_price,
            stop_loss_price=stop_loss,
            take_profit_price=take_profit,
            attempt_id=attempt_id or f"{RECOVERED_ID_PREFIX}{uuid.uuid4().hex[:12]}",
        )
        if count_trade:
            self.session.confirm_position(record)
        else:
            self.session.adopt_position(record)
        self.repo.save_trade(
            {
                "id": record.attempt_id,
                "symbol": record.symbol,
                "mode": self.mode.upper(),
                "status": "UNPROTECTED",
                "side": record.side.upper(),
                "entry_price": record.entry_price,
                "quantity": record.quantity,
                "leverage": position.leverage or 1,
                "opened_at": record.timestamp,
                "stop_price": stop_loss,
                "take_profit_price": take_profit,
                "exchange_order_id": record.order_id or None,
            }
        )
        logger.warning(
            f"🚨 {record.symbol} {record.side.upper()} {record.quantity} found on exchange, "
            f"tracking with SL {stop_loss} / TP {take_profit}"
        )
        return record

    def _reconcile_error(self, report: ReconcileReport, key: str, error: Exception) -> None:
        report.errors[key] = _describe(error)
        logger.error(f"❌ Reconcile failed for {key}: {_describe(error)}")
        self.repo.append_event(
            event_type="error.reconcile",
            level="ERROR",
            payload={"symbol": key, "error": _describe(error)},
            public_safe=False,
        )

    def _reconcile_done(self, report: ReconcileReport) -> ReconcileReport:
        metrics = get_metrics()
        if metrics:
            metrics.set_open_positions(len(self.session.open_positions))
        self.repo.append_event(
            event_type="reconcile.completed",
            level="INFO",
            payload={
                "checked": len(report.checked),
                "closed": report.closed,
                "adopted": report.adopted,
                "released": report.released,
                "stops_placed": report.stops_placed,
                "take_profits_placed": report.take_profits_placed,
                "errors": len(report.errors),
            },
            public_safe=True,
        )
        return report


def _describe(error: BaseException) -> str:
    """Error text for reports; falls back to the type for empty messages like TimeoutError()."""
    return str(error) or repr(error)


def _record_from_trade(trade: dict[str, Any]) -> PositionRecord:
    return PositionRecord(
        symbol=trade["symbol"],
        order_id=trade.get("exchange_order_id") or "",
        side=str(trade["side"]).lower(),
        quantity=Decimal(str(trade["quantity"])),
        entry_price=Decimal(str(trade["entry_price"])),
        stop_loss_price=Decimal(str(trade["stop_price"])),
        take_profit_price=Decimal(str(trade["take_profit_price"])),
        attempt_id=trade["id"],
        timestamp=trade["opened_at"],
        stop_order_id=trade.get("stop_order_id"),
        take_profit_order_id=trade.get("take_profit_order_id"),
    )


def _exit_side(entry_side: str) -> str:
    return "sell" if entry_side == "buy" else "buy"


def _is_stop(order: OrderResult) -> bool:
    client_id = order.client_order_id or ""
    return client_id.endswith("-SL") or (order.order_type or "").lower() in _STOP_TYPES


def _is_take_profit(order: OrderResult) -> bool:
    client_id = order.client_order_id or ""
    return client_id.endswith("-TP") or (order.order_type or "").lower() in _TAKE_PROFIT_TYPES
