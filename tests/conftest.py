import os
import sys
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:  # pragma: no cover
    sys.path.append(str(PROJECT_ROOT))


@pytest.fixture
def in_memory_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for testing."""
    from smartsignal_engine.persistence.models import Base

    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clean_config_env() -> Generator[None, None, None]:
    """Ensure SMARTSIGNAL_* env vars do not interfere with tests unless explicitly set."""
    original_env = {}
    keys_to_clear = [key for key in os.environ if key.startswith("SMARTSIGNAL_")] + [
        "ENGINE_CONFIG_PATH",
        "BINANCE_API_KEY",
        "BINANCE_SECRET",
        "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_CHAT_ID",
        "SENTRY_DSN",
        "METRICS_PORT",
        "REDIS_URL",
    ]

    for key in keys_to_clear:
        if key in os.environ:
            original_env[key] = os.environ[key]
            os.environ.pop(key, None)

    yield

    for key, value in original_env.items():
        os.environ[key] = value


@pytest.fixture(autouse=True)
def reset_global_services() -> Generator[None, None, None]:
    """Drop module-level metrics/sentry singletons between tests."""
    import smartsignal_engine.monitoring.sentry_service as sentry_module
    from smartsignal_engine.monitoring.metrics import reset_metrics

    reset_metrics()
    sentry_module._service = None
    yield
    reset_metrics()
    sentry_module._service = None


# ---------------------------------------------------------------------------
# Shared fakes
# ---------------------------------------------------------------------------


from decimal import Decimal  # noqa: E402

from smartsignal_engine.errors import DataUnavailableError  # noqa: E402
from smartsignal_engine.execution.dry_run_gateway import DryRunGateway  # noqa: E402
from smartsignal_engine.market_data.provider import MarketDataProvider  # noqa: E402
from smartsignal_engine.models.market import Candle, ExchangeFilters, MarketSnapshot  # noqa: E402


class FakeMarketData(MarketDataProvider):
    """In-memory market data; ``fail`` holds method names that raise."""

    def __init__(self) -> None:
        self.snapshots: dict[str, MarketSnapshot] = {}
        self.filters: dict[str, ExchangeFilters] = {}
        self.klines: dict[tuple[str, str], list[Candle]] = {}
        self.max_leverage: int | None = 20
        self.fail: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def _check(self, name: str, symbol: str) -> None:
        self.calls.append((name, symbol))
        if name in self.fail:
            raise DataUnavailableError(f"{name} unavailable for {symbol}")

    async def get_snapshot(self, symbol: str) -> MarketSnapshot | None:
        self._check("get_snapshot", symbol)
        return self.snapshots.get(symbol)

    async def get_exchange_filters(self, symbol: str) -> ExchangeFilters | None:
        self._check("get_exchange_filters", symbol)
        return self.filters.get(symbol)

    async def get_klines(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        self._check("get_klines", symbol)
        return self.klines.get((symbol, interval), [])[-limit:]

    async def get_max_leverage(self, symbol: str) -> int | None:
        self._check("get_max_leverage", symbol)
        return self.max_leverage


class FakeValidator:
    """Symbol validator answering from a fixed listing."""

    def __init__(self, listed: set[str]) -> None:
        self.listed = listed

    async def exists(self, symbol: str) -> bool:
        return symbol in self.listed


class FlakyGateway(DryRunGateway):
    """Dry-run gateway that raises once for each method named in ``failures``."""

    def __init__(self, market_data: MarketDataProvider) -> None:
        super().__init__(market_data)
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures.pop(name)

    async def set_leverage(self, symbol, leverage):  # type: ignore[no-untyped-def]
        self._maybe_fail("set_leverage")
        await super().set_leverage(symbol, leverage)

    async def place_market_order(self, symbol, side, quantity, client_order_id=None):  # type: ignore[no-untyped-def]
        self._maybe_fail("place_market_order")
        return await super().place_market_order(symbol, side, quantity, client_order_id)

    async def place_reduce_only_stop(self, symbol, side, quantity, stop_price, client_order_id=None):  # type: ignore[no-untyped-def]
        self._maybe_fail("place_reduce_only_stop")
        return await super().place_reduce_only_stop(symbol, side, quantity, stop_price, client_order_id)

    async def place_reduce_only_take_profit(self, symbol, side, quantity, trigger_price, client_order_id=None):  # type: ignore[no-untyped-def]
        self._maybe_fail("place_reduce_only_take_profit")
        return await super().place_reduce_only_take_profit(
            symbol, side, quantity, trigger_price, client_order_id
        )

    async def fetch_position_quantity(self, symbol):  # type: ignore[no-untyped-def]
        self._maybe_fail("fetch_position_quantity")
        return await super().fetch_position_quantity(symbol)

    async def fetch_open_positions(self):  # type: ignore[no-untyped-def]
        self._maybe_fail("fetch_open_positions")
        return await super().fetch_open_positions()


def make_snapshot(
    symbol: str = "BTCUSDT", price: float = 100.0, change: float = 0.5, volume: float = 20_000_000
) -> MarketSnapshot:
    return MarketSnapshot(symbol=symbol, price=price, price_change_percent=change, volume=volume)


@pytest.fixture
def market_data() -> FakeMarketData:
    """Fake market with BTCUSDT/ETHUSDT/SOLUSDT priced at 100 on heavy flat volume."""
    fake = FakeMarketData()
    for symbol in ("BTCUSDT", "ETHUSDT", "SOLUSDT"):
        fake.snapshots[symbol] = make_snapshot(symbol)
        fake.filters[symbol] = ExchangeFilters(
            min_qty=Decimal("0.001"), step_size=Decimal("0.001"), tick_size=Decimal("0.01")
        )
    return fake


@pytest.fixture
def gateway(market_data: FakeMarketData) -> FlakyGateway:
    return FlakyGateway(market_data)


@pytest.fixture
def listed_validator() -> FakeValidator:
    return FakeValidator({"BTCUSDT", "ETHUSDT", "SOLUSDT"})
