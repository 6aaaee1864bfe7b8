"""Unit tests for SignalFieldParser."""

from decimal import Decimal

import pytest

from smartsignal_engine.models.signal import Direction, SignalSubtype
from smartsignal_engine.signals.field_parser import SignalFieldParser

EXAMPLE = (
    "#BTCUSDT 🟢 LONG\n"
    "ENTRY $67250.00\n"
    "TP'S 5% ($70612.50)\n"
    "STOP LOSS: 2.5% ($65568.75)\n"
    "Leverage 10X"
)


@pytest.fixture
def parser() -> SignalFieldParser:
    return SignalFieldParser()


def test_parse_full_signal(parser: SignalFieldParser) -> None:
    signal = parser.parse(EXAMPLE, "BTCUSDT")

    assert signal.symbol == "BTCUSDT"
    assert signal.direction == Direction.LONG
    assert signal.entry_prices == (Decimal("67250.00"),)
    assert len(signal.take_profits) == 1
    assert signal.take_profits[0].level == 1
    assert signal.take_profits[0].price == Decimal("70612.50")
    assert signal.take_profits[0].percentage == Decimal("5")
    assert signal.stop_loss == Decimal("65568.75")
    assert signal.leverage == 10
    assert signal.subtype == SignalSubtype.NONE


def test_parse_is_deterministic(parser: SignalFieldParser) -> None:
    assert parser.parse(EXAMPLE, "BTCUSDT") == parser.parse(EXAMPLE, "BTCUSDT")


def test_parse_multiple_entries_and_targets(parser: SignalFieldParser) -> None:
    text = (
        "#ETHUSDT SHORT\n"
        "ENTRY $3500 - $3550\n"
        "TP1 2% ($3430)\nTP2 4% ($3360)\nTP3 6% ($3290)\n"
        "STOP LOSS: 3% ($3605)\n"
        "LEVERAGE: 20X"
    )
    signal = parser.parse(text, "ETHUSDT")

    assert signal.direction == Direction.SHORT
    assert signal.entry_prices == (Decimal("3500"), Decimal("3550"))
    assert [tp.level for tp in signal.take_profits] == [1, 2, 3]
    assert [tp.price for tp in signal.take_profits] == [Decimal("3430"), Decimal("3360"), Decimal("3290")]
    assert signal.stop_loss == Decimal("3605")
    assert signal.leverage == 20
    assert signal.entry_mean == 3525.0


def test_parse_last_direction_marker_wins(parser: SignalFieldParser) -> None:
    signal = parser.parse("Was LONG earlier, now flipping SHORT", "BTCUSDT")
    assert signal.direction == Direction.SHORT

    signal = parser.parse("🔴 closed, re-entering 🟢", "BTCUSDT")
    assert signal.direction == Direction.LONG


def test_parse_missing_fields_never_fatal(parser: SignalFieldParser) -> None:
    signal = parser.parse("just some chatter about #BTC", "BTCUSDT")

    assert signal.direction == Direction.UNKNOWN
    assert signal.entry_prices == ()
    assert signal.take_profits == ()
    assert signal.stop_loss is None
    assert signal.leverage is None


def test_parse_take_profits_without_header(parser: SignalFieldParser) -> None:
    text = "#SOLUSDT LONG\nTargets: 3% ($103) and 6% ($106)\nSTOP LOSS: 2% ($98)"
    signal = parser.parse(text, "SOLUSDT")

    assert [tp.price for tp in signal.take_profits] == [Decimal("103"), Decimal("106")]
    assert signal.stop_loss == Decimal("98")


def test_parse_spanish_leverage(parser: SignalFieldParser) -> None:
    signal = parser.parse("#BTCUSDT LONG\nENTRADA $100\nApalancamiento: 5X", "BTCUSDT")
    assert signal.leverage == 5
    assert signal.entry_prices == (Decimal("100"),)


def test_parse_retracement_forces_direction(parser: SignalFieldParser) -> None:
    signal = parser.parse("#BTCUSDT FIBONACCI retracement, looking SHORT", "BTCUSDT")

    assert signal.subtype == SignalSubtype.RETRACEMENT
    assert signal.timeframe == "4h"
    assert signal.direction == Direction.SHORT


def test_parse_ma_cross_timeframe_and_periods(parser: SignalFieldParser) -> None:
    signal = parser.parse("EMA CROSS 200/50 (m15)\n#ETH", "ETHUSDT")

    assert signal.subtype == SignalSubtype.MA_CROSS
    assert signal.timeframe == "15m"
    assert (signal.fast_period, signal.slow_period) == (50, 200)


def test_parse_ma_cross_defaults(parser: SignalFieldParser) -> None:
    signal = parser.parse("MA cross spotted on #ETH", "ETHUSDT")

    assert signal.subtype == SignalSubtype.MA_CROSS
    assert signal.timeframe == "5m"
    assert signal.fast_period is None
    assert signal.slow_period is None


def test_parse_keeps_raw_text(parser: SignalFieldParser) -> None:
    assert parser.parse(EXAMPLE, "BTCUSDT").raw_text == EXAMPLE
