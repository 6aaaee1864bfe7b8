"""Symbol extraction from free-form signal text."""

import logging
import re
from typing import Protocol, runtime_checkable

from smartsignal_engine.config.models import SymbolsConfig

logger = logging.getLogger(__name__)

_DIRECTION_EMOJI = "📈📉🟢🔴"

# Upper-case words that look like tickers but never are.
_RESERVED_WORDS = frozenset(
    {
        "LONG",
        "SHORT",
        "ENTRY",
        "ENTRADA",
        "TP",
        "TPS",
        "STOP",
        "LOSS",
        "SL",
        "LEVERAGE",
        "SIGNAL",
        "EMA",
        "MA",
        "SMA",
        "CROSS",
        "FIBO",
        "FIBONACCI",
        "BUY",
        "SELL",
        "ALERTAS",
        "ALERT",
        "NEW",
        "VIP",
    }
)


@runtime_checkable
class SymbolValidator(Protocol):
    """Existence check against the exchange instrument list.

    Returns False only for a genuine "not listed" answer; transport failures
    must raise (DataUnavailableError).
    """

    async def exists(self, symbol: str) -> bool:
        """Return True if the symbol is a tradable instrument."""
        ...


class SymbolExtractor:
    """Finds the first exchange-valid symbol mentioned in a message.

    Patterns are tried in priority order, most specific first:

    1. ``#BTCUSDT`` hash-tagged ticker with quote suffix
    2. ``BTCUSDT`` plain ticker with quote suffix
    3. ticker hash-tagged inside a moving-average-cross announcement
    4. ``#BTC LONG`` hash-tagged ticker followed by a direction keyword
    5. ``#BTC`` any hash-tagged ticker
    6. ``BTC 🟢`` ticker followed by a directional emoji
    7. ``BTC LONG`` ticker followed by LONG/SHORT/signal
    """

    def __init__(self, validator: SymbolValidator, config: SymbolsConfig | None = None):
        """
        Initialize extractor.

        Args:
            validator: Exchange symbol validator
            config: Quote asset and ticker length bounds
        """
        self.validator = validator
        self.config = config or SymbolsConfig()
        self._patterns = self._build_patterns()

    def _build_patterns(self) -> list[re.Pattern[str]]:
        quote = re.escape(self.config.quote_asset)
        base = f"[0-9A-Z]{{{self.config.min_base_length},{self.config.max_base_length}}}"
        return [
            re.compile(rf"#({base}){quote}(?![0-9A-Z])"),
            re.compile(rf"(?<![0-9A-Z#])({base}){quote}(?![0-9A-Z])"),
            re.compile(rf"(?i:(?:E|S)?MA\s*CROSS|ALERTAS?\b.*?\bEMA)[\s\S]*?#({base})(?![0-9A-Z])"),
            re.compile(rf"#({base})\s+(?i:LONG|SHORT)\b"),
            re.compile(rf"#({base})(?![0-9A-Z])"),
            re.compile(rf"(?<![0-9A-Z])({base})\s*[{_DIRECTION_EMOJI}]"),
            re.compile(rf"(?<![0-9A-Z])({base})\s+(?i:LONG|SHORT|signal)\b"),
        ]

    def candidates(self, text: str) -> list[str]:
        """
        List normalized symbol candidates in priority order, without duplicates.

        Args:
            text: Raw message text

        Returns:
            Candidates such as ``["BTCUSDT", "ETHUSDT"]``
        """
        seen: set[str] = set()
        ordered: list[str] = []
        for pattern in self._patterns:
            for match in pattern.finditer(text):
                candidate = self._normalize(match.group(1))
                if candidate is None or candidate in seen:
                    continue
                seen.add(candidate)
                ordered.append(candidate)
        return ordered

    def _normalize(self, raw: str) -> str | None:
        quote = self.config.quote_asset
        ticker = re.sub(r"[^0-9A-Z]", "", raw.upper())
        if ticker.endswith(quote) and len(ticker) > len(quote):
            ticker = ticker[: -len(quote)]
        if ticker in _RESERVED_WORDS:
            return None
        if not self.config.min_base_length <= len(ticker) <= self.config.max_base_length:
            return None
        return f"{ticker}{quote}"

    async def extract(self, text: str) -> str | None:
        """
        Return the first candidate the exchange confirms, or None.

        Args:
            text: Raw message text (including any attachment text)

        Returns:
            Exchange symbol id (e.g. "BTCUSDT") or None when nothing validates

        Raises:
            DataUnavailableError: If the validator cannot reach the exchange
        """
        candidates = self.candidates(text)
        if not candidates:
            logger.debug("No symbol pattern matched")
            return None

        for candidate in candidates:
            if await self.validator.exists(candidate):
                logger.info(f"Symbol extracted: {candidate}")
                return candidate
            logger.debug(f"Candidate {candidate} is not listed, trying next")

        logger.info(f"No valid symbol among candidates: {', '.join(candidates)}")
        return None
