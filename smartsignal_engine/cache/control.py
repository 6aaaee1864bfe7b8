"""Persistent auto-trading toggle.

The operator's enable/disable choice is stored in Redis so it survives
restarts. If Redis is unavailable, reads default to disabled (no new
entries) to protect capital.
"""

import logging
import time
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Redis key namespace
_KEY_PREFIX = "smartsignal:control"
_TRADING_ENABLED_KEY = f"{_KEY_PREFIX}:trading_enabled"
_UPDATED_AT_KEY = f"{_KEY_PREFIX}:updated_at"


@runtime_checkable
class TradingFlagStore(Protocol):
    """Protocol for trading-enabled flag storage."""

    def is_trading_enabled(self) -> bool:
        """Return True if auto-trading is enabled."""
        ...

    def set_trading_enabled(self, enabled: bool) -> None:
        """Persist the auto-trading flag."""
        ...


class RedisTradingFlagStore:
    """Flag store backed by Redis."""

    def __init__(self, redis_client: object, default: bool = False) -> None:
        """Initialize with a Redis client.

        Args:
            redis_client: A connected redis.Redis (or compatible) instance.
            default: Value used when the key has never been written.
        """
        self._redis = redis_client
        self._default = default

    def is_trading_enabled(self) -> bool:
        """Read flag from Redis. Defaults to disabled on read errors."""
        try:
            raw = self._redis.get(_TRADING_ENABLED_KEY)  # type: ignore[union-attr]
            if raw is None:
                return self._default
            value = raw.decode() if isinstance(raw, bytes) else str(raw)
            return value == "1"
        except Exception as e:
            logger.error("Redis read failed, treating trading as disabled: %s", e)
            return False

    def set_trading_enabled(self, enabled: bool) -> None:
        """Write flag to Redis."""
        try:
            self._redis.set(_TRADING_ENABLED_KEY, "1" if enabled else "0")  # type: ignore[union-attr]
            self._redis.set(_UPDATED_AT_KEY, str(int(time.time())))  # type: ignore[union-attr]
            logger.info("Trading flag set to %s", enabled)
        except Exception as e:
            logger.error("Failed to persist trading flag: %s", e)
            raise


class InMemoryTradingFlagStore:
    """In-memory flag store for tests and single-process dry runs.

    The flag resets to its initial value on restart.
    """

    def __init__(self, enabled: bool = False) -> None:
        self._enabled = enabled

    def is_trading_enabled(self) -> bool:
        return self._enabled

    def set_trading_enabled(self, enabled: bool) -> None:
        self._enabled = enabled


def get_flag_store(redis_url: str | None = None, default: bool = False) -> TradingFlagStore:
    """Factory: return Redis-backed flag store if URL provided, else in-memory.

    Args:
        redis_url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
        default: Initial flag value when nothing is persisted yet.

    Returns:
        A TradingFlagStore implementation.
    """
    if redis_url:
        try:
            import redis

            client = redis.Redis.from_url(redis_url, decode_responses=False)
            client.ping()
            logger.info("Trading flag store connected to Redis at %s", redis_url)
            return RedisTradingFlagStore(client, default=default)
        except Exception as e:
            logger.error(
                "Failed to connect to Redis (%s): %s, falling back to InMemory",
                redis_url, e,
            )

    logger.info("Trading flag store: InMemory (not persisted across restarts)")
    return InMemoryTradingFlagStore(enabled=default)
