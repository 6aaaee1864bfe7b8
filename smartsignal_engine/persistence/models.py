"""Database models for the trade journal."""

import datetime as dt
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Generic JSON for SQLite compatibility (SQLAlchemy handles mapping)
JSON_TYPE = sa.JSON().with_variant(JSONB, "postgresql")
NUMERIC_24_10 = sa.Numeric(24, 10)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


class Trade(Base):
    """One executed trade attempt; the id is the attempt's idempotency key."""
    __tablename__ = "trades"

    id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    symbol: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    side: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    status: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    mode: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    leverage: Mapped[int] = mapped_column(sa.Integer(), nullable=False)
    opened_at: Mapped[dt.datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    closed_at: Mapped[dt.datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    entry_price: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    entry_qty: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    entry_notional_usd: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    exchange_order_id: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)

    stop_price: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    take_profit_price: Mapped[Decimal] = mapped_column(NUMERIC_24_10, nullable=False)
    stop_order_id: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    take_profit_order_id: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)


class Event(Base):
    """Append-only event journal."""
    __tablename__ = "events"

    seq: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    ts: Mapped[dt.datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    level: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    type: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    symbol: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON_TYPE, nullable=False)
    public_safe: Mapped[bool] = mapped_column(
        sa.Boolean(), server_default=sa.text("false"), nullable=False
    )
