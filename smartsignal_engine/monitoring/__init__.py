"""Monitoring: Sentry error tracking and Prometheus pipeline metrics."""

from smartsignal_engine.monitoring.metrics import (
    MetricsConfig,
    MetricsService,
    get_metrics,
    init_metrics,
)
from smartsignal_engine.monitoring.sentry_service import (
    SentryConfig,
    SentryService,
    get_sentry,
    init_sentry,
)

__all__ = [
    "MetricsConfig",
    "MetricsService",
    "get_metrics",
    "init_metrics",
    "SentryConfig",
    "SentryService",
    "get_sentry",
    "init_sentry",
]
