"""AI second opinion on entry decisions.

Asks an OpenAI-compatible chat-completions endpoint for a JSON verdict.
The verdict can veto execution but never changes the heuristic decision.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import httpx

from smartsignal_engine.config.models import AIValidatorConfig
from smartsignal_engine.errors import DataUnavailableError, RateLimitedError
from smartsignal_engine.models.analysis import AnalysisResult
from smartsignal_engine.models.decision import Action, Decision
from smartsignal_engine.models.market import MarketSnapshot
from smartsignal_engine.models.signal import Signal

logger = logging.getLogger(__name__)

_HOUR_SECONDS = 3600.0
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = (
    "You are an expert validator of crypto futures trading signals. "
    "Answer ONLY with a valid JSON object."
)

VALIDATION_PROMPT = """Decide whether this smart-money signal is a real trading opportunity.

Criteria: trend direction across timeframes, support/resistance, momentum and
volume confirmation, risk/reward of at least 1:2, and coherent SL/TP levels.
Be extremely selective; prefer capital preservation. When in doubt answer NO_TRADE.

Respond with JSON:
{{"decision": "BUY" | "SELL" | "NO_TRADE", "confidence": 0-100, "reasoning": "..."}}

SIGNAL:
Symbol: {symbol}
Heuristic action: {action}
Heuristic confidence: {confidence}%
Current price: {price}
24h quote volume: {volume}
24h change: {change}%
Analysis: {analysis}
"""


class Verdict(str, Enum):
    """Verdict returned by the model."""

    BUY = "BUY"
    SELL = "SELL"
    NO_TRADE = "NO_TRADE"


@dataclass(frozen=True)
class AIVerdict:
    """Parsed model answer."""

    decision: Verdict
    confidence: int
    reasoning: str = ""

    def vetoes(self, action: Action, min_confidence: int) -> bool:
        """True if this verdict blocks executing ``action``.

        Only confident verdicts count: NO_TRADE, or the opposite side.
        """
        if self.confidence < min_confidence:
            return False
        if self.decision == Verdict.NO_TRADE:
            return True
        if action == Action.ENTER_LONG:
            return self.decision == Verdict.SELL
        if action == Action.ENTER_SHORT:
            return self.decision == Verdict.BUY
        return False


def parse_verdict(content: str) -> AIVerdict:
    """Parse the model's reply; unparseable replies become a zero-confidence NO_TRADE."""
    match = _JSON_OBJECT.search(content or "")
    if match is None:
        return AIVerdict(Verdict.NO_TRADE, 0, "Unparseable AI response")
    try:
        data = json.loads(match.group(0))
        decision = Verdict(str(data.get("decision", "NO_TRADE")).upper())
        confidence = max(0, min(100, int(float(data.get("confidence", 0)))))
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Invalid AI verdict payload: {e}")
        return AIVerdict(Verdict.NO_TRADE, 0, "Unparseable AI response")
    return AIVerdict(decision, confidence, str(data.get("reasoning", "")))


class AISignalValidator:
    """Chat-completions client with bounded 429 retries and an hourly quota."""

    def __init__(
        self,
        config: AIValidatorConfig,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._api_key = api_key
        self._client = client
        self._timeout = timeout_seconds
        self._clock = clock
        self._window_started = clock()
        self._calls_in_window = 0

    @property
    def calls_this_hour(self) -> int:
        self._roll_window()
        return self._calls_in_window

    def get_stats(self) -> dict[str, Any]:
        """Quota usage for operator status."""
        return {
            "enabled": self.config.enabled,
            "calls_this_hour": self.calls_this_hour,
            "max_calls_per_hour": self.config.max_calls_per_hour,
            "min_confidence": self.config.min_confidence,
        }

    async def validate(
        self,
        signal: Signal,
        snapshot: MarketSnapshot,
        analysis: AnalysisResult,
        decision: Decision,
    ) -> AIVerdict:
        """Ask the model for a verdict on ``decision``.

        Raises:
            RateLimitedError: Hourly quota exhausted, or 429s outlasted the retries.
            DataUnavailableError: Transport failure, non-2xx or non-JSON response.
        """
        self._roll_window()
        if self._calls_in_window >= self.config.max_calls_per_hour:
            raise RateLimitedError(
                f"AI validation quota reached ({self.config.max_calls_per_hour}/hour)"
            )
        self._calls_in_window += 1

        prompt = VALIDATION_PROMPT.format(
            symbol=signal.symbol,
            action=decision.action.value,
            confidence=decision.confidence,
            price=snapshot.price,
            volume=snapshot.volume,
            change=snapshot.price_change_percent,
            analysis=json.dumps(
                {
                    "smart_money_score": analysis.smart_money_score,
                    "risk": analysis.support_resistance.risk_level.value,
                    "momentum": analysis.momentum.direction.value,
                    "momentum_strength": round(analysis.momentum.strength, 2),
                    "volume": analysis.volume_analysis.level,
                    "reasons": list(decision.reasons),
                }
            ),
        )
        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.2,
            "max_tokens": 400,
        }

        if self._client is None:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                data = await self._post(client, payload)
        else:
            data = await self._post(self._client, payload)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.warning("AI response without choices, treating as no verdict")
            return AIVerdict(Verdict.NO_TRADE, 0, "Empty AI response")

        verdict = parse_verdict(content)
        logger.info(
            f"🤖 AI verdict for {signal.symbol}: {verdict.decision.value} ({verdict.confidence}%)"
        )
        return verdict

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.config.base_url.rstrip('/')}/chat/completions"
        headers = {"Authorization": f"Bearer {self._api_key}"}
        retry_after: float | None = None

        for attempt in range(self.config.max_retries + 1):
            try:
                response = await client.post(url, json=payload, headers=headers)
            except httpx.HTTPError as e:
                raise DataUnavailableError(f"AI validator transport error: {e}") from e

            if response.status_code == 429:
                retry_after = min(
                    _retry_after(response, self.config.backoff_seconds * (2 ** attempt)),
                    self.config.max_retry_after_seconds,
                )
                if attempt >= self.config.max_retries:
                    break
                logger.warning(
                    f"AI validator rate limited (attempt {attempt + 1}/{self.config.max_retries + 1}), "
                    f"retrying in {retry_after:.1f}s"
                )
                await asyncio.sleep(retry_after)
                continue

            if response.status_code >= 400:
                raise DataUnavailableError(f"AI validator returned HTTP {response.status_code}")
            try:
                return response.json()
            except ValueError as e:
                raise DataUnavailableError(
                    f"AI validator returned a non-JSON body (HTTP {response.status_code})"
                ) from e

        raise RateLimitedError("AI validator kept rate limiting", retry_after=retry_after)

    def _roll_window(self) -> None:
        now = self._clock()
        if now - self._window_started >= _HOUR_SECONDS:
            self._window_started = now
            self._calls_in_window = 0


def _retry_after(response: httpx.Response, default: float) -> float:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default
