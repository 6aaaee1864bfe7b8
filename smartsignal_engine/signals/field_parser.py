"""Structured field extraction from signal messages.

The parser is total: a field that cannot be read keeps its default and the
remaining fields are still parsed.
"""

import logging
import re
from decimal import Decimal, InvalidOperation

from smartsignal_engine.models.signal import Direction, Signal, SignalSubtype, TakeProfit

logger = logging.getLogger(__name__)

_PRICE = r"(\d+(?:\.\d+)?)"

_LONG_MARKER = re.compile(r"\bLONG\b|🟢", re.IGNORECASE)
_SHORT_MARKER = re.compile(r"\bSHORT\b|🔴", re.IGNORECASE)

_ENTRY_SECTION = re.compile(
    r"\b(?:ENTRY|ENTRADA)[\s\S]*?(?=🚀|\bTP|LEVERAGE|APALANCAMIENTO|STOP|$)",
    re.IGNORECASE,
)
_TP_SECTION = re.compile(
    r"\bTP(?:'?S\b|\d|\b)[\s\S]*?(?=LEVERAGE|APALANCAMIENTO|STOP|$)",
    re.IGNORECASE,
)
_DOLLAR_PRICE = re.compile(r"\$\s*" + _PRICE)
_PCT_WITH_PRICE = re.compile(r"(\d+(?:\.\d+)?)\s*%\s*\(\s*\$\s*" + _PRICE + r"\s*\)")
_STOP_LOSS = re.compile(
    r"STOP\s*LOSS[:\s]*\d+(?:\.\d+)?\s*%\s*\(\s*\$\s*" + _PRICE + r"\s*\)",
    re.IGNORECASE,
)
_LEVERAGE = re.compile(r"(?:LEVERAGE|APALANCAMIENTO)[^\n\d]*?(\d+)\s*X\b", re.IGNORECASE)

_RETRACEMENT = re.compile(r"FIBO(?:NACCI)?|RETRACEMENT", re.IGNORECASE)
_MA_CROSS = re.compile(r"\b(?:E|S)?MA\b.*?\bCROSS|\bALERTAS?\b.*?\bEMA\b", re.IGNORECASE)
_TIMEFRAME_CODE = re.compile(r"\(\s*([mhd])\s*(\d+)\s*\)|\(\s*(\d+)\s*([mhd])\s*\)", re.IGNORECASE)
_MA_PERIODS = re.compile(r"\b(?:E|S)?MA\b.*?(\d+)\s*/\s*(\d+)", re.IGNORECASE)

RETRACEMENT_TIMEFRAME = "4h"
MA_CROSS_TIMEFRAME = "5m"


def _to_decimal(raw: str) -> Decimal | None:
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None
    return value if value > 0 else None


class SignalFieldParser:
    """Extracts direction, prices, leverage and subtype from message text."""

    def parse(self, text: str, symbol: str = "") -> Signal:
        """
        Parse a message into a Signal.

        Args:
            text: Raw message text
            symbol: Symbol already resolved by the SymbolExtractor

        Returns:
            Signal with every readable field populated
        """
        direction = self._parse_direction(text)
        subtype, timeframe, fast, slow = self._parse_subtype(text)

        if subtype == SignalSubtype.RETRACEMENT:
            direction = self._forced_retracement_direction(text, direction)

        signal = Signal(
            symbol=symbol,
            direction=direction,
            entry_prices=self._parse_entries(text),
            take_profits=self._parse_take_profits(text),
            stop_loss=self._parse_stop_loss(text),
            leverage=self._parse_leverage(text),
            subtype=subtype,
            timeframe=timeframe,
            fast_period=fast,
            slow_period=slow,
            raw_text=text,
        )
        logger.debug(f"Parsed signal: {signal}")
        return signal

    def _parse_direction(self, text: str) -> Direction:
        # The marker appearing last wins when both are present.
        last_long = max((m.start() for m in _LONG_MARKER.finditer(text)), default=-1)
        last_short = max((m.start() for m in _SHORT_MARKER.finditer(text)), default=-1)
        if last_long < 0 and last_short < 0:
            return Direction.UNKNOWN
        return Direction.SHORT if last_short > last_long else Direction.LONG

    def _forced_retracement_direction(self, text: str, direction: Direction) -> Direction:
        has_long = bool(re.search(r"LONG[\s\S]*FIBO|FIBO[\s\S]*LONG", text, re.IGNORECASE))
        has_short = bool(re.search(r"SHORT[\s\S]*FIBO|FIBO[\s\S]*SHORT", text, re.IGNORECASE))
        if has_long and not has_short:
            return Direction.LONG
        if has_short and not has_long:
            return Direction.SHORT
        return direction

    def _parse_entries(self, text: str) -> tuple[Decimal, ...]:
        section = _ENTRY_SECTION.search(text)
        if section is None:
            return ()
        prices = (_to_decimal(m.group(1)) for m in _DOLLAR_PRICE.finditer(section.group(0)))
        return tuple(p for p in prices if p is not None)

    def _parse_take_profits(self, text: str) -> tuple[TakeProfit, ...]:
        section = _TP_SECTION.search(text)
        if section is not None:
            prices = [_to_decimal(m.group(1)) for m in _DOLLAR_PRICE.finditer(section.group(0))]
            valid = [p for p in prices if p is not None]
            if valid:
                percentages = [
                    _to_decimal(m.group(1)) for m in _PCT_WITH_PRICE.finditer(section.group(0))
                ]
                return tuple(
                    TakeProfit(
                        level=i + 1,
                        price=price,
                        percentage=percentages[i] if i < len(percentages) else None,
                    )
                    for i, price in enumerate(valid)
                )

        # Fallback: "<pct>% ($<price>)" pairs outside the stop-loss clause
        stop = _STOP_LOSS.search(text)
        stop_span = stop.span() if stop else (-1, -1)
        targets: list[TakeProfit] = []
        for match in _PCT_WITH_PRICE.finditer(text):
            if stop_span[0] <= match.start() < stop_span[1]:
                continue
            price = _to_decimal(match.group(2))
            if price is None:
                continue
            targets.append(
                TakeProfit(level=len(targets) + 1, price=price, percentage=_to_decimal(match.group(1)))
            )
        return tuple(targets)

    def _parse_stop_loss(self, text: str) -> Decimal | None:
        match = _STOP_LOSS.search(text)
        return _to_decimal(match.group(1)) if match else None

    def _parse_leverage(self, text: str) -> int | None:
        match = _LEVERAGE.search(text)
        if match is None:
            return None
        leverage = int(match.group(1))
        return leverage if leverage > 0 else None

    def _parse_subtype(
        self, text: str
    ) -> tuple[SignalSubtype, str | None, int | None, int | None]:
        if _RETRACEMENT.search(text):
            return SignalSubtype.RETRACEMENT, RETRACEMENT_TIMEFRAME, None, None

        if _MA_CROSS.search(text):
            timeframe = MA_CROSS_TIMEFRAME
            code = _TIMEFRAME_CODE.search(text)
            if code:
                if code.group(1):
                    timeframe = f"{code.group(2)}{code.group(1).lower()}"
                else:
                    timeframe = f"{code.group(3)}{code.group(4).lower()}"

            fast: int | None = None
            slow: int | None = None
            periods = _MA_PERIODS.search(text)
            if periods:
                first, second = int(periods.group(1)), int(periods.group(2))
                if first > 0 and second > 0 and first != second:
                    fast, slow = min(first, second), max(first, second)
            return SignalSubtype.MA_CROSS, timeframe, fast, slow

        return SignalSubtype.NONE, None, None, None
