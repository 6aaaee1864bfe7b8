"""Engine repository for the trade and event journal."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from smartsignal_engine.persistence.models import Event, Trade


def _json_serial(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class EngineRepository:
    """Repository wrapping database operations for the engine."""

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def save_trade(self, trade_data: dict[str, Any]) -> str:
        """
        Save a newly opened trade.

        Args:
            trade_data: Trade data dictionary (id is the attempt id)

        Returns:
            Trade ID
        """
        entry_price = Decimal(str(trade_data["entry_price"]))
        quantity = Decimal(str(trade_data["quantity"]))
        trade = Trade(
            id=str(trade_data["id"]),
            symbol=trade_data["symbol"],
            mode=trade_data["mode"],
            status=trade_data["status"],
            side=trade_data["side"],
            leverage=int(trade_data.get("leverage", 1)),
            entry_price=entry_price,
            entry_qty=quantity,
            entry_notional_usd=entry_price * quantity,
            opened_at=trade_data["opened_at"],
            exchange_order_id=trade_data.get("exchange_order_id"),
            stop_price=Decimal(str(trade_data["stop_price"])),
            take_profit_price=Decimal(str(trade_data["take_profit_price"])),
        )
        self.session.add(trade)
        self.session.commit()
        return trade.id

    def update_trade_protection(
        self,
        trade_id: str,
        stop_order_id: str | None = None,
        take_profit_order_id: str | None = None,
    ) -> None:
        """
        Record protective order ids for a trade.

        Args:
            trade_id: Trade (attempt) ID
            stop_order_id: Exchange id of the reduce-only stop
            take_profit_order_id: Exchange id of the reduce-only take profit
        """
        trade = self.session.get(Trade, str(trade_id))
        if trade is None:
            return
        if stop_order_id is not None:
            trade.stop_order_id = stop_order_id
        if take_profit_order_id is not None:
            trade.take_profit_order_id = take_profit_order_id
        if trade.status == "UNPROTECTED" and trade.stop_order_id and trade.take_profit_order_id:
            trade.status = "OPEN"
        self.session.commit()

    def mark_unprotected(self, trade_id: str) -> None:
        """Flag an open trade whose protective orders are incomplete."""
        trade = self.session.get(Trade, str(trade_id))
        if trade is None:
            return
        trade.status = "UNPROTECTED"
        self.session.commit()

    def close_trade(self, trade_id: str, closed_at: datetime | None = None) -> None:
        """Mark a trade closed."""
        trade = self.session.get(Trade, str(trade_id))
        if trade is None:
            return
        trade.status = "CLOSED"
        trade.closed_at = closed_at or datetime.now(timezone.utc)
        self.session.commit()

    def get_trade(self, trade_id: str) -> dict[str, Any] | None:
        """
        Get trade by ID.

        Args:
            trade_id: Trade ID

        Returns:
            Trade data dictionary or None
        """
        trade = self.session.get(Trade, str(trade_id))
        if trade is None:
            return None
        return self._trade_to_dict(trade)

    def list_open_trades(self) -> list[dict[str, Any]]:
        """All trades with a live position (OPEN or UNPROTECTED), oldest first."""
        stmt = select(Trade).where(Trade.status.in_(("OPEN", "UNPROTECTED"))).order_by(Trade.opened_at)
        return [self._trade_to_dict(t) for t in self.session.scalars(stmt)]

    def _trade_to_dict(self, trade: Trade) -> dict[str, Any]:
        return {
            "id": trade.id,
            "symbol": trade.symbol,
            "mode": trade.mode,
            "status": trade.status,
            "side": trade.side,
            "leverage": trade.leverage,
            "entry_price": trade.entry_price,
            "quantity": trade.entry_qty,
            "opened_at": trade.opened_at,
            "closed_at": trade.closed_at,
            "stop_price": trade.stop_price,
            "take_profit_price": trade.take_profit_price,
            "stop_order_id": trade.stop_order_id,
            "take_profit_order_id": trade.take_profit_order_id,
            "exchange_order_id": trade.exchange_order_id,
        }

    def append_event(
        self,
        event_type: str,
        level: str,
        payload: dict[str, Any],
        public_safe: bool = False,
    ) -> int:
        """
        Append an event to the events table.

        Args:
            event_type: Event type (e.g., "signal.decision", "execution.rejected")
            level: Log level (INFO, WARN, ERROR)
            payload: Event payload as dictionary
            public_safe: Whether event is safe to show to channel members

        Returns:
            Event sequence number
        """
        # Ensure payload is JSON serializable
        safe_payload = json.loads(json.dumps(payload, default=_json_serial))

        event = Event(
            type=event_type,
            level=level,
            symbol=safe_payload.get("symbol"),
            payload=safe_payload,
            public_safe=public_safe,
            ts=datetime.now(timezone.utc),
        )
        self.session.add(event)
        self.session.commit()
        self.session.refresh(event)
        seq: int = event.seq
        return seq

    def list_events(self, event_type: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """Most recent events, newest first."""
        stmt = select(Event).order_by(Event.seq.desc()).limit(limit)
        if event_type is not None:
            stmt = stmt.where(Event.type == event_type)
        return [
            {
                "seq": e.seq,
                "ts": e.ts,
                "type": e.type,
                "level": e.level,
                "symbol": e.symbol,
                "payload": e.payload,
                "public_safe": e.public_safe,
            }
            for e in self.session.scalars(stmt)
        ]
