"""Process-wide trading session state with explicit reset points."""

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable

from smartsignal_engine.cache.control import TradingFlagStore
from smartsignal_engine.config.models import TradingConfig

logger = logging.getLogger(__name__)


@dataclass
class PositionRecord:
    """Open position opened by the executor."""

    symbol: str
    order_id: str
    side: str
    quantity: Decimal
    entry_price: Decimal
    stop_loss_price: Decimal
    take_profit_price: Decimal
    attempt_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stop_order_id: str | None = None
    take_profit_order_id: str | None = None

    @property
    def is_protected(self) -> bool:
        """True when both protective orders are known to be placed."""
        return self.stop_order_id is not None and self.take_profit_order_id is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for stats and notifications."""
        return {
            "symbol": self.symbol,
            "order_id": self.order_id,
            "side": self.side,
            "quantity": str(self.quantity),
            "entry_price": str(self.entry_price),
            "stop_loss_price": str(self.stop_loss_price),
            "take_profit_price": str(self.take_profit_price),
            "timestamp": self.timestamp.isoformat(),
            "protected": self.is_protected,
        }


class TradingSession:
    """
    Single owner of the mutable trading state.

    Holds the daily trade counter, the open-position map, symbol slot
    reservations, the dedup set and the last pipeline-run timestamp. All
    check-then-act sequences (``check_limits`` + ``reserve_slot``) are plain
    synchronous calls so no other coroutine can interleave between them.
    """

    def __init__(
        self,
        config: TradingConfig,
        flag_store: TradingFlagStore,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize session.

        Args:
            config: Trading caps
            flag_store: Persistent trading-enabled flag
            clock: Monotonic clock used for run spacing
            today: Local-date provider used for day rollover
        """
        self.config = config
        self.flag_store = flag_store
        self._clock = clock
        self._today = today

        self.daily_trade_count = 0
        self.open_positions: dict[str, PositionRecord] = {}
        self._reservations: dict[str, str] = {}
        self._unresolved: set[str] = set()
        self._seen_keys: set[str] = set()
        self._last_run_at: float | None = None
        self._current_day = today()
        self._completed_attempts: dict[str, Any] = {}

    # --- Trading flag ---

    @property
    def trading_enabled(self) -> bool:
        """Current operator toggle, read from the flag store."""
        return self.flag_store.is_trading_enabled()

    def set_trading_enabled(self, enabled: bool) -> None:
        """Persist the operator toggle."""
        self.flag_store.set_trading_enabled(enabled)
        logger.info(f"Auto-trading {'ENABLED' if enabled else 'DISABLED'}")

    # --- Safety caps ---

    @property
    def occupied_slots(self) -> int:
        """Open positions plus in-flight reservations."""
        return len(self.open_positions) + len(self._reservations)

    def check_limits(self, symbol: str) -> str | None:
        """
        Check whether a new position may be opened for ``symbol``.

        Args:
            symbol: Exchange symbol id

        Returns:
            Rejection reason, or None if allowed
        """
        self.rollover_if_needed()
        if not self.trading_enabled:
            return "trading disabled"
        if self.daily_trade_count >= self.config.max_daily_trades:
            return f"daily trade limit reached ({self.daily_trade_count}/{self.config.max_daily_trades})"
        if symbol in self.open_positions or symbol in self._reservations:
            return f"position already open for {symbol}"
        if self.occupied_slots >= self.config.max_open_positions:
            return f"open position limit reached ({self.occupied_slots}/{self.config.max_open_positions})"
        return None

    def reserve_slot(self, symbol: str, attempt_id: str) -> None:
        """Mark intent to open ``symbol`` before any order is sent."""
        if symbol in self._reservations or symbol in self.open_positions:
            raise ValueError(f"Slot for {symbol} already taken")
        self._reservations[symbol] = attempt_id

    def release_slot(self, symbol: str) -> None:
        """Drop a reservation after a failed attempt."""
        self._reservations.pop(symbol, None)
        self._unresolved.discard(symbol)

    def mark_unresolved(self, symbol: str) -> None:
        """Keep a reservation whose entry fill could not be confirmed either way."""
        if symbol in self._reservations:
            self._unresolved.add(symbol)

    def reserved_attempt(self, symbol: str) -> str | None:
        """Attempt id holding the reservation for ``symbol``, if any."""
        return self._reservations.get(symbol)

    @property
    def unresolved_symbols(self) -> list[str]:
        """Reserved symbols waiting for reconcile to check the exchange."""
        return sorted(self._unresolved)

    def confirm_position(self, record: PositionRecord) -> None:
        """Convert a reservation into an open position and count the trade."""
        self._reservations.pop(record.symbol, None)
        self._unresolved.discard(record.symbol)
        self.open_positions[record.symbol] = record
        self.daily_trade_count += 1
        logger.info(
            f"Position recorded: {record.symbol} {record.side} {record.quantity} @ {record.entry_price} "
            f"(daily {self.daily_trade_count}/{self.config.max_daily_trades})"
        )

    def adopt_position(self, record: PositionRecord) -> None:
        """Track a position found during reconcile without counting a new trade."""
        self._reservations.pop(record.symbol, None)
        self._unresolved.discard(record.symbol)
        self.open_positions[record.symbol] = record
        logger.info(f"Position adopted: {record.symbol} {record.side} {record.quantity} @ {record.entry_price}")

    def close_position(self, symbol: str) -> PositionRecord | None:
        """Forget an open position (closed on the exchange)."""
        return self.open_positions.pop(symbol, None)

    # --- Idempotency ---

    def completed_attempt(self, attempt_id: str) -> Any | None:
        """Result recorded for a finished attempt, if any."""
        return self._completed_attempts.get(attempt_id)

    def record_attempt(self, attempt_id: str, result: Any) -> None:
        """Remember the outcome of a finished attempt."""
        self._completed_attempts[attempt_id] = result

    # --- Dedup and pacing ---

    def is_duplicate(self, key: str) -> bool:
        """True if the dedup key was already processed."""
        return key in self._seen_keys

    def mark_seen(self, key: str) -> None:
        """Add a dedup key."""
        self._seen_keys.add(key)

    def clear_dedup_cache(self) -> int:
        """Drop all dedup keys; returns how many were cleared."""
        cleared = len(self._seen_keys)
        self._seen_keys.clear()
        logger.info(f"Dedup cache cleared ({cleared} keys)")
        return cleared

    def try_acquire_run_slot(self, min_interval_seconds: float) -> bool:
        """
        Enforce minimum spacing between full pipeline runs.

        Returns:
            True (and records the run) if enough time has passed
        """
        now = self._clock()
        if self._last_run_at is not None and now - self._last_run_at < min_interval_seconds:
            return False
        self._last_run_at = now
        return True

    # --- Day rollover ---

    def rollover_if_needed(self) -> bool:
        """Roll over when the local date changed since the last check."""
        if self._today() != self._current_day:
            self.rollover_day()
            return True
        return False

    def rollover_day(self) -> None:
        """
        Reset daily counters and the open-position map for a new day.

        Positions still live on the exchange are tracked again by the next
        reconcile, which rebuilds them from the journal and the exchange.
        """
        logger.info(
            f"Day rollover: resetting {self.daily_trade_count} daily trades "
            f"and {len(self.open_positions)} tracked positions"
        )
        self.daily_trade_count = 0
        self.open_positions.clear()
        self._completed_attempts.clear()
        self._current_day = self._today()

    def get_stats(self) -> dict[str, Any]:
        """Operator-facing snapshot of the session."""
        return {
            "trading_enabled": self.trading_enabled,
            "daily_trades": self.daily_trade_count,
            "max_daily_trades": self.config.max_daily_trades,
            "open_positions": len(self.open_positions),
            "max_open_positions": self.config.max_open_positions,
            "pending_reservations": len(self._reservations),
            "unresolved_entries": self.unresolved_symbols,
            "positions": [record.to_dict() for record in self.open_positions.values()],
            "unprotected": [s for s, r in self.open_positions.items() if not r.is_protected],
            "dedup_keys": len(self._seen_keys),
            "day": self._current_day.isoformat(),
        }
