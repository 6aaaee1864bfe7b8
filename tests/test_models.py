"""Unit tests for domain models."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from smartsignal_engine.models.analysis import Momentum, MomentumDirection
from smartsignal_engine.models.decision import Action, Decision
from smartsignal_engine.models.market import Candle, MarketSnapshot
from smartsignal_engine.models.message import InboundMessage
from smartsignal_engine.models.position_plan import PositionPlan
from smartsignal_engine.models.signal import Direction, Signal, TakeProfit


def _plan(**overrides: object) -> PositionPlan:
    data: dict[str, object] = {
        "symbol": "BTCUSDT",
        "direction": Direction.LONG,
        "entry_price": Decimal("100"),
        "quantity": Decimal("0.12"),
        "leverage": 15,
        "stop_loss_price": Decimal("98.75"),
        "take_profit_price": Decimal("103.09"),
        "target_notional_usd": Decimal("12"),
    }
    data.update(overrides)
    return PositionPlan(**data)  # type: ignore[arg-type]


def test_inbound_message_full_text_with_attachment() -> None:
    """Test attachment text is appended to the message text."""
    msg = InboundMessage(text="#BTCUSDT LONG", message_id="1", attachment_text="ENTRY $100")
    assert msg.full_text == "#BTCUSDT LONG\nENTRY $100"


def test_inbound_message_attachment_only() -> None:
    """Test attachment-only messages use the attachment text."""
    msg = InboundMessage(text="", message_id="1", attachment_text="#ETHUSDT")
    assert msg.full_text == "#ETHUSDT"


def test_signal_entry_mean_and_first_take_profit() -> None:
    """Test derived signal properties."""
    signal = Signal(
        symbol="BTCUSDT",
        direction=Direction.LONG,
        entry_prices=(Decimal("100"), Decimal("110")),
        take_profits=(TakeProfit(1, Decimal("120")), TakeProfit(2, Decimal("130"))),
    )
    assert signal.entry_mean == 105.0
    assert signal.first_take_profit == Decimal("120")


def test_signal_without_fields() -> None:
    """Test a bare signal tolerates missing fields."""
    signal = Signal(symbol="BTCUSDT")
    assert signal.direction == Direction.UNKNOWN
    assert signal.entry_mean is None
    assert signal.first_take_profit is None


def test_signal_rejects_non_positive_leverage() -> None:
    """Test leverage must be positive."""
    with pytest.raises(ValueError, match="Leverage"):
        Signal(symbol="BTCUSDT", leverage=0)


def test_signal_copies_are_immutable() -> None:
    """Test with_direction/with_swing return new signals."""
    signal = Signal(symbol="BTCUSDT")
    resolved = signal.with_direction(Direction.SHORT).with_swing(120.0, 80.0)
    assert signal.direction == Direction.UNKNOWN
    assert resolved.direction == Direction.SHORT
    assert (resolved.swing_high, resolved.swing_low) == (120.0, 80.0)


def test_take_profit_validation() -> None:
    """Test take-profit level and price validation."""
    with pytest.raises(ValueError, match="level"):
        TakeProfit(0, Decimal("1"))
    with pytest.raises(ValueError, match="price"):
        TakeProfit(1, Decimal("0"))


def test_decision_confidence_bounds() -> None:
    """Test confidence is bounded to [0, 95]."""
    with pytest.raises(ValueError, match="between 0 and 95"):
        Decision(action=Action.WAIT, confidence=96)
    with pytest.raises(ValueError, match="between 0 and 95"):
        Decision(action=Action.WAIT, confidence=-1)


def test_decision_wait_recommendation_only_for_wait() -> None:
    """Test entry decisions cannot carry a wait recommendation."""
    with pytest.raises(ValueError, match="Wait recommendation"):
        Decision(action=Action.ENTER_LONG, confidence=85, wait_recommendation="later")
    assert Decision(action=Action.ENTER_SHORT, confidence=85).is_entry is True
    assert Decision(action=Action.WAIT, confidence=10).is_entry is False


def test_momentum_strength_bounds() -> None:
    """Test momentum strength must be within [0, 1]."""
    with pytest.raises(ValueError, match="strength"):
        Momentum(direction=MomentumDirection.BULLISH, strength=1.5, reliable=True)


def test_snapshot_validation_and_spread() -> None:
    """Test snapshot price validation and spread."""
    with pytest.raises(ValueError, match="price must be positive"):
        MarketSnapshot(symbol="BTCUSDT", price=0, price_change_percent=0, volume=0)

    snapshot = MarketSnapshot(
        symbol="BTCUSDT", price=100, price_change_percent=0, volume=1, bid_price=99, ask_price=100
    )
    assert snapshot.spread == pytest.approx(1.0)
    assert MarketSnapshot(symbol="X", price=1, price_change_percent=0, volume=0).spread is None


def test_candle_validation() -> None:
    """Test candle high/low integrity."""
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(ValueError, match="High"):
        Candle(timestamp=ts, open=10, high=9, low=8, close=9, volume=1)


def test_position_plan_sides() -> None:
    """Test entry/exit sides follow direction."""
    plan = _plan()
    assert plan.entry_side == "buy"
    assert plan.exit_side == "sell"
    assert plan.notional_usd == Decimal("12.00")
    assert len(plan.attempt_id) == 16

    short = _plan(
        direction=Direction.SHORT,
        stop_loss_price=Decimal("101.25"),
        take_profit_price=Decimal("96.91"),
    )
    assert short.entry_side == "sell"
    assert short.exit_side == "buy"


def test_position_plan_directional_ordering() -> None:
    """Test protective prices must sit on the correct sides of the entry."""
    with pytest.raises(ValueError, match="LONG plan"):
        _plan(stop_loss_price=Decimal("101"))
    with pytest.raises(ValueError, match="SHORT plan"):
        _plan(direction=Direction.SHORT)


def test_position_plan_rejects_unknown_direction() -> None:
    """Test plans need a concrete direction."""
    with pytest.raises(ValueError, match="LONG or SHORT"):
        _plan(direction=Direction.UNKNOWN)


def test_position_plan_rejects_zero_quantity() -> None:
    """Test plans need a positive quantity."""
    with pytest.raises(ValueError, match="Quantity"):
        _plan(quantity=Decimal("0"))
