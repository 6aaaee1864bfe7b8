"""Alert services for the signal engine.

Provides notification capabilities for operators:
- TelegramAlerter: Real-time notifications via Telegram bot
"""

from smartsignal_engine.alerts.telegram import (
    ANALYSIS_HEADER,
    EXECUTION_FAILED_TAG,
    Alert,
    AlertPriority,
    AlertType,
    NotificationSink,
    TelegramAlerter,
    TelegramConfig,
    format_decision_message,
    format_execution_message,
    format_failure_message,
)

__all__ = [
    "ANALYSIS_HEADER",
    "EXECUTION_FAILED_TAG",
    "Alert",
    "AlertPriority",
    "AlertType",
    "NotificationSink",
    "TelegramAlerter",
    "TelegramConfig",
    "format_decision_message",
    "format_execution_message",
    "format_failure_message",
]
