"""Telegram alert service for operator notifications.

Provides real-time notifications for:
- Signal decisions (entry or wait, with the reasons list)
- Position openings with their protective orders
- Execution failures and unprotected positions
- Operator status messages

Every decision message starts with the analysis header, which the
pipeline uses to recognise (and ignore) its own echoes.
"""

import asyncio
import html
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Callable, Protocol, runtime_checkable

import httpx

from smartsignal_engine.core.decision_engine import format_price
from smartsignal_engine.models.analysis import AnalysisResult
from smartsignal_engine.models.decision import Action, Decision
from smartsignal_engine.models.signal import Signal

logger = logging.getLogger(__name__)

ANALYSIS_HEADER = "SMART MONEY ANALYSIS"
EXECUTION_FAILED_TAG = "[EXECUTION FAILED]"


@runtime_checkable
class NotificationSink(Protocol):
    """Anything that can deliver a text message to a channel."""

    async def send(self, channel_id: str | None, message: str) -> bool:
        """Deliver ``message``; return True on success."""
        ...


class AlertPriority(Enum):
    """Alert priority levels."""
    LOW = auto()      # Status messages
    MEDIUM = auto()   # Decisions, trade executions
    HIGH = auto()     # Execution failures
    CRITICAL = auto()  # Unprotected positions


class AlertType(Enum):
    """Types of alerts."""
    DECISION = "decision"
    TRADE_OPENED = "trade_opened"
    EXECUTION_FAILED = "execution_failed"
    UNPROTECTED = "unprotected"
    ERROR = "error"
    SYSTEM_STATUS = "system_status"


@dataclass
class Alert:
    """Alert message container."""
    alert_type: AlertType
    priority: AlertPriority
    title: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_telegram_message(self) -> str:
        """Format alert as a Telegram HTML message."""
        emoji = self._get_emoji()
        priority_tag = self._get_priority_tag()

        lines = [
            f"{emoji} <b>{priority_tag}{html.escape(self.title)}</b>",
            "",
            self.message,
        ]

        if self.metadata:
            lines.append("")
            lines.append("<i>Details:</i>")
            for key, value in self.metadata.items():
                formatted_key = key.replace("_", " ").title()
                lines.append(f"• {formatted_key}: <code>{html.escape(str(value))}</code>")

        lines.append("")
        lines.append(f"🕐 {self.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}")

        return "\n".join(lines)

    def _get_emoji(self) -> str:
        """Get emoji based on alert type."""
        emojis = {
            AlertType.DECISION: "🧠",
            AlertType.TRADE_OPENED: "📈",
            AlertType.EXECUTION_FAILED: "❌",
            AlertType.UNPROTECTED: "🚨",
            AlertType.ERROR: "❌",
            AlertType.SYSTEM_STATUS: "ℹ️",
        }
        return emojis.get(self.alert_type, "📌")

    def _get_priority_tag(self) -> str:
        """Get priority tag for message title."""
        if self.priority == AlertPriority.CRITICAL:
            return "🔴 CRITICAL: "
        elif self.priority == AlertPriority.HIGH:
            return "🟠 "
        return ""


def format_decision_message(
    signal: Signal,
    analysis: AnalysisResult,
    decision: Decision,
    header: str = ANALYSIS_HEADER,
) -> str:
    """Render a decision with its analysis and reasons."""
    action_emoji = {
        Action.ENTER_LONG: "🟢",
        Action.ENTER_SHORT: "🔴",
        Action.WAIT: "⏳",
    }[decision.action]
    sr = analysis.support_resistance

    lines = [
        f"🧠 <b>{html.escape(header)}</b>",
        f"{action_emoji} <b>{html.escape(signal.symbol)}</b>: {decision.action.value} "
        f"({decision.confidence}%)",
        "",
        f"💰 Price: {format_price(analysis.price)}",
        f"🎯 Signal: {signal.direction.value}"
        + (f" / {signal.subtype.value}" if signal.subtype.value != "NONE" else ""),
        f"⭐ Smart money score: {analysis.smart_money_score}/5",
        f"⚖️ Risk: {sr.risk_level.value}",
        f"📊 Momentum: {analysis.momentum.direction.value} "
        f"({analysis.momentum.strength * 100:.0f}%)",
        f"📦 Volume: {html.escape(analysis.volume_analysis.level)}",
    ]
    if sr.support_level is not None and sr.resistance_level is not None:
        lines.append(
            f"🧱 Support {format_price(sr.support_level)} / "
            f"Resistance {format_price(sr.resistance_level)}"
        )

    if decision.reasons:
        lines.append("")
        lines.append("<i>Reasons:</i>")
        lines.extend(f"• {html.escape(reason)}" for reason in decision.reasons)

    if decision.wait_recommendation:
        lines.append("")
        lines.append(f"💡 {html.escape(decision.wait_recommendation)}")

    return "\n".join(lines)


def format_execution_message(summary: dict[str, Any], leverage: int) -> str:
    """Render an opened position (``PositionRecord.to_dict()``) with its protective orders."""
    lines = [
        f"✅ <b>POSITION OPENED: {html.escape(str(summary['symbol']))}</b>",
        f"📊 {str(summary['side']).upper()} {summary['quantity']} @ ${summary['entry_price']} "
        f"({leverage}x)",
        f"🛑 Stop loss: ${summary['stop_loss_price']}",
        f"🎯 Take profit: ${summary['take_profit_price']}",
    ]
    if not summary.get("protected"):
        lines.append("🚨 <b>Protective orders incomplete, position is UNPROTECTED</b>")
    return "\n".join(lines)


def format_failure_message(symbol: str, decision: Decision, error: str) -> str:
    """Render an execution failure, tagged explicitly."""
    lines = [
        f"❌ <b>{EXECUTION_FAILED_TAG} {html.escape(symbol)}</b>",
        f"Decision: {decision.action.value} ({decision.confidence}%)",
        f"Error: <code>{html.escape(error)}</code>",
    ]
    if decision.reasons:
        lines.append("")
        lines.append("<i>Reasons:</i>")
        lines.extend(f"• {html.escape(reason)}" for reason in decision.reasons)
    return "\n".join(lines)


@dataclass
class TelegramConfig:
    """Telegram bot configuration."""
    bot_token: str
    chat_id: str
    enabled: bool = True
    min_priority: AlertPriority = AlertPriority.LOW
    # Rolling windows: 60s for all messages, 3600s for failures/errors
    max_alerts_per_minute: int = 10
    max_errors_per_hour: int = 5
    request_timeout_seconds: float = 10.0


class TelegramAlerter:
    """Delivers operator notifications through the Telegram Bot API.

    Messages are throttled per rolling minute; failure and error
    notifications additionally share an hourly budget. Timeouts are
    retried with a linear backoff, a 429 honours ``retry_after``.
    """

    TELEGRAM_API_BASE = "https://api.telegram.org"

    def __init__(self, config: TelegramConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._client: httpx.AsyncClient | None = None

        self._sent_at: deque[float] = deque()
        self._errors_at: deque[float] = deque()

        self._max_retries = 3
        self._retry_delay = 1.0

    async def __aenter__(self) -> "TelegramAlerter":
        self._client = httpx.AsyncClient(timeout=self.config.request_timeout_seconds)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, channel_id: str | None, message: str) -> bool:
        """Send a preformatted HTML message to ``channel_id`` (or the configured chat)."""
        if not self.config.enabled:
            return False
        if not _within_budget(self._sent_at, self._clock(), 60.0, self.config.max_alerts_per_minute):
            logger.warning("Telegram rate limit reached, message dropped")
            return False

        success = await self._send_message(message, chat_id=channel_id or self.config.chat_id)
        if success:
            self._sent_at.append(self._clock())
        return success

    async def send_alert(self, alert: Alert) -> bool:
        if alert.priority.value < self.config.min_priority.value:
            return False
        return await self.send(None, alert.to_telegram_message())

    async def send_decision(
        self,
        signal: Signal,
        analysis: AnalysisResult,
        decision: Decision,
        channel_id: str | None = None,
    ) -> bool:
        return await self.send(channel_id, format_decision_message(signal, analysis, decision))

    async def send_execution(
        self,
        summary: dict[str, Any],
        leverage: int,
        channel_id: str | None = None,
    ) -> bool:
        return await self.send(channel_id, format_execution_message(summary, leverage))

    async def send_execution_failed(
        self,
        symbol: str,
        decision: Decision,
        error: str,
        channel_id: str | None = None,
    ) -> bool:
        """Send an execution failure; counts against the hourly error budget."""
        if not self._take_error_slot():
            return False
        return await self.send(channel_id, format_failure_message(symbol, decision, error))

    async def send_error(self, error_type: str, message: str, **kwargs: Any) -> bool:
        """Send an operator error alert with ``kwargs`` rendered as details."""
        if not self._take_error_slot():
            return False
        alert = Alert(
            alert_type=AlertType.ERROR,
            priority=AlertPriority.HIGH,
            title=f"Error: {error_type}",
            message=html.escape(message),
            metadata=kwargs,
        )
        return await self.send_alert(alert)

    def _take_error_slot(self) -> bool:
        now = self._clock()
        if not _within_budget(self._errors_at, now, 3600.0, self.config.max_errors_per_hour):
            logger.warning("Telegram error budget exhausted, failure notice dropped")
            return False
        self._errors_at.append(now)
        return True

    async def _send_message(self, text: str, chat_id: str) -> bool:
        if self._client is None:
            async with httpx.AsyncClient(timeout=self.config.request_timeout_seconds) as client:
                return await self._post(client, text, chat_id)
        return await self._post(self._client, text, chat_id)

    async def _post(self, client: httpx.AsyncClient, text: str, chat_id: str) -> bool:
        url = f"{self.TELEGRAM_API_BASE}/bot{self.config.bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        for attempt in range(1, self._max_retries + 1):
            try:
                response = await client.post(url, json=payload)
            except httpx.TimeoutException:
                logger.warning(f"Telegram timeout (attempt {attempt}/{self._max_retries})")
                if attempt < self._max_retries:
                    await asyncio.sleep(self._retry_delay * attempt)
                continue
            except httpx.HTTPError as e:
                logger.error(f"Telegram transport error: {e}")
                return False

            if response.status_code == 200:
                return True
            if response.status_code == 429:
                retry_after = response.json().get("parameters", {}).get("retry_after", 10)
                logger.warning(f"Telegram rate limited, retrying in {retry_after}s")
                await asyncio.sleep(retry_after)
                continue
            logger.error(f"Telegram rejected message: HTTP {response.status_code}")
            return False

        return False


def _within_budget(stamps: deque[float], now: float, window: float, limit: int) -> bool:
    """Drop stamps older than ``window`` seconds and report whether another fits."""
    while stamps and now - stamps[0] >= window:
        stamps.popleft()
    return len(stamps) < limit
