"""Sentry error tracking for the signal pipeline.

Errors carry the pipeline context (symbol, message id, step) they happened
in; decisions and trade steps are left as breadcrumbs so an exception shows
the path that led to it. Secret-looking keys are scrubbed before an event
leaves the process.
"""

import os
from dataclasses import dataclass, field
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

PIPELINE_CONTEXT = "pipeline_context"


@dataclass
class SentryConfig:
    """Sentry configuration."""
    dsn: str
    environment: str = "development"
    release: str = ""
    traces_sample_rate: float = 0.0
    enabled: bool = True
    debug: bool = False
    # Exception class names that never reach Sentry
    ignore_errors: list[str] = field(default_factory=lambda: [
        "ConnectionResetError",
        "CancelledError",
    ])


_SENSITIVE_KEYS = (
    "api_key", "apikey", "api-key", "secret", "password",
    "token", "authorization", "auth", "private_key", "privatekey",
)


def scrub_sensitive_data(data: dict[str, Any]) -> dict[str, Any]:
    """Replace values of secret-looking keys with a redaction marker, recursively."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if any(s in key.lower() for s in _SENSITIVE_KEYS):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = scrub_sensitive_data(value)
        elif isinstance(value, list):
            result[key] = [scrub_sensitive_data(v) if isinstance(v, dict) else v for v in value]
        else:
            result[key] = value
    return result


class SentryService:
    """Thin wrapper over ``sentry_sdk``; every call is a no-op until initialized."""

    def __init__(self, config: SentryConfig):
        self.config = config
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> bool:
        """Initialize the SDK; returns False when disabled or no DSN is set."""
        if not self.config.enabled or not self.config.dsn:
            return False

        sentry_sdk.init(
            dsn=self.config.dsn,
            environment=self.config.environment,
            release=self.config.release or os.environ.get("SENTRY_RELEASE") or None,
            traces_sample_rate=self.config.traces_sample_rate,
            debug=self.config.debug,
            integrations=[
                AsyncioIntegration(),
                HttpxIntegration(),
                # Log records stay local; only explicit captures become events
                LoggingIntegration(level=None, event_level=None),
            ],
            before_send=self._before_send,
        )
        self._initialized = True
        return True

    def _before_send(self, event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
        if "exc_info" in hint:
            exc_type = hint["exc_info"][0]
            if exc_type.__name__ in self.config.ignore_errors:
                return None
        return scrub_sensitive_data(event)

    def _apply_scope(self, context: dict[str, Any] | None, tags: dict[str, str] | None = None) -> None:
        if context:
            sentry_sdk.set_context(PIPELINE_CONTEXT, context)
        for key, value in (tags or {}).items():
            sentry_sdk.set_tag(key, value)

    def capture_error(
        self,
        error: Exception,
        context: dict[str, Any] | None = None,
        tags: dict[str, str] | None = None,
    ) -> str | None:
        """Capture an exception with pipeline context; returns the event id."""
        if not self._initialized:
            return None
        self._apply_scope(context, tags)
        return sentry_sdk.capture_exception(error)

    def capture_warning(self, message: str, context: dict[str, Any] | None = None) -> str | None:
        """Capture a warning message, e.g. a position left without protective orders."""
        if not self._initialized:
            return None
        self._apply_scope(context)
        return sentry_sdk.capture_message(message, level="warning")

    def add_breadcrumb(
        self,
        category: str,
        message: str,
        data: dict[str, Any] | None = None,
        level: str = "info",
    ) -> None:
        if not self._initialized:
            return
        sentry_sdk.add_breadcrumb(category=category, message=message, data=data or {}, level=level)

    def flush(self, timeout: float = 2.0) -> None:
        if self._initialized:
            sentry_sdk.flush(timeout=timeout)


_service: SentryService | None = None


def init_sentry(config: SentryConfig) -> SentryService:
    """Create and initialize the process-wide service."""
    global _service
    _service = SentryService(config)
    _service.initialize()
    return _service


def get_sentry() -> SentryService | None:
    return _service
