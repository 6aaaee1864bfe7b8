"""Prometheus metrics for the signal engine.

This module provides metrics collection and exposure for monitoring
signal throughput, decisions and trade execution.

Example:
    >>> from smartsignal_engine.monitoring.metrics import init_metrics, MetricsConfig
    >>>
    >>> metrics = init_metrics(MetricsConfig(port=9090))
    >>> metrics.start_server()
    >>>
    >>> metrics.record_signal("BTCUSDT", "processed")
    >>> metrics.record_decision("ENTER_LONG", confidence=85)
    >>> metrics.record_trade_opened("BTCUSDT", "buy")
"""

import logging
import threading
from dataclasses import dataclass

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Module-level singleton
_metrics: "MetricsService | None" = None


@dataclass(frozen=True)
class MetricsConfig:
    """Configuration for metrics service.

    Attributes:
        enabled: Whether metrics collection is enabled
        port: HTTP server port for Prometheus scraping
        prefix: Metric name prefix
    """

    enabled: bool = True
    port: int = 9090
    prefix: str = "smartsignal"


class MetricsService:
    """Prometheus metrics service for signal pipeline monitoring.

    Exposes:
    - Messages by pipeline outcome
    - Decisions by action, with a confidence histogram
    - Trades opened and order failures by step
    - Open positions gauge
    """

    def __init__(
        self,
        config: MetricsConfig | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """Initialize metrics service.

        Args:
            config: Metrics configuration (uses defaults if not provided)
            registry: Prometheus registry (process default if not provided)
        """
        self.config = config or MetricsConfig()
        self.registry = registry or REGISTRY
        self._server_started = False
        self._lock = threading.Lock()

        self._signals: Counter | None = None
        self._decisions: Counter | None = None
        self._confidence: Histogram | None = None
        self._trades_opened: Counter | None = None
        self._order_failures: Counter | None = None
        self._open_positions: Gauge | None = None

        if self.config.enabled:
            self._initialize_metrics()

    def _initialize_metrics(self) -> None:
        """Initialize Prometheus metrics objects."""
        prefix = self.config.prefix

        self._signals = Counter(
            f"{prefix}_messages_total",
            "Inbound messages by pipeline outcome",
            ["outcome"],
            registry=self.registry,
        )
        self._decisions = Counter(
            f"{prefix}_decisions_total",
            "Decisions by action",
            ["action"],
            registry=self.registry,
        )
        self._confidence = Histogram(
            f"{prefix}_decision_confidence",
            "Decision confidence distribution",
            buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 95],
            registry=self.registry,
        )
        self._trades_opened = Counter(
            f"{prefix}_trades_opened_total",
            "Total number of positions opened",
            ["symbol", "side"],
            registry=self.registry,
        )
        self._order_failures = Counter(
            f"{prefix}_order_failures_total",
            "Order placement failures by trade step",
            ["step"],
            registry=self.registry,
        )
        self._open_positions = Gauge(
            f"{prefix}_open_positions",
            "Number of currently open positions",
            registry=self.registry,
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self) -> bool:
        """Start the Prometheus HTTP server.

        Returns:
            True if server started successfully, False otherwise
        """
        if not self.config.enabled:
            logger.info("Metrics disabled, server not started")
            return False

        with self._lock:
            if self._server_started:
                logger.warning("Metrics server already started")
                return True

            try:
                start_http_server(self.config.port, registry=self.registry)
                self._server_started = True
                logger.info(f"Prometheus metrics server started on port {self.config.port}")
                return True
            except OSError as e:
                logger.error(f"Failed to start metrics server: {e}")
                return False

    @property
    def is_enabled(self) -> bool:
        """Check if metrics collection is enabled."""
        return self.config.enabled

    def record_signal(self, symbol: str | None, outcome: str) -> None:
        """Record one processed message by its outcome."""
        if not self.config.enabled or self._signals is None:
            return
        self._signals.labels(outcome=outcome).inc()

    def record_decision(self, action: str, confidence: int) -> None:
        """Record a decision and its confidence."""
        if not self.config.enabled or self._decisions is None or self._confidence is None:
            return
        self._decisions.labels(action=action).inc()
        self._confidence.observe(confidence)

    def record_trade_opened(self, symbol: str, side: str) -> None:
        """Record a position being opened.

        Args:
            symbol: Exchange symbol id (e.g., "BTCUSDT")
            side: Entry side ("buy" or "sell")
        """
        if not self.config.enabled or self._trades_opened is None:
            return
        self._trades_opened.labels(symbol=symbol, side=side).inc()

    def record_order_failure(self, step: str) -> None:
        """Record an order failure at a trade step."""
        if not self.config.enabled or self._order_failures is None:
            return
        self._order_failures.labels(step=step).inc()

    def set_open_positions(self, count: int) -> None:
        """Update open positions count."""
        if not self.config.enabled or self._open_positions is None:
            return
        self._open_positions.set(count)


def init_metrics(
    config: MetricsConfig | None = None,
    registry: CollectorRegistry | None = None,
) -> MetricsService:
    """Initialize the global metrics service.

    Args:
        config: Metrics configuration
        registry: Prometheus registry

    Returns:
        Initialized MetricsService
    """
    global _metrics
    _metrics = MetricsService(config, registry)
    return _metrics


def get_metrics() -> MetricsService | None:
    """Get the global metrics service instance.

    Returns:
        MetricsService if initialized, None otherwise
    """
    return _metrics


def reset_metrics() -> None:
    """Drop the global metrics service."""
    global _metrics
    _metrics = None
