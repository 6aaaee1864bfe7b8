"""Tests for ExchangeSymbolValidator."""

from unittest.mock import AsyncMock, MagicMock

import ccxt
import pytest

from smartsignal_engine.errors import DataUnavailableError
from smartsignal_engine.market_data.symbol_validator import ExchangeSymbolValidator
from smartsignal_engine.signals.symbol_extractor import SymbolValidator


@pytest.fixture
def exchange() -> MagicMock:
    exchange = MagicMock()
    exchange.load_markets = AsyncMock(return_value={})
    exchange.markets_by_id = {
        "BTCUSDT": [{"symbol": "BTC/USDT:USDT", "swap": True, "active": True}],
        "LUNAUSDT": [{"symbol": "LUNA/USDT:USDT", "swap": True, "active": False}],
        "1000PEPEUSDT": [{"symbol": "1000PEPE/USDT:USDT", "swap": True}],
    }
    return exchange


def test_satisfies_protocol(exchange) -> None:
    assert isinstance(ExchangeSymbolValidator(exchange), SymbolValidator)


@pytest.mark.asyncio
async def test_listed_symbol(exchange) -> None:
    assert await ExchangeSymbolValidator(exchange).exists("BTCUSDT") is True
    exchange.load_markets.assert_awaited_once()


@pytest.mark.asyncio
async def test_numeric_prefix_without_active_flag(exchange) -> None:
    assert await ExchangeSymbolValidator(exchange).exists("1000PEPEUSDT") is True


@pytest.mark.asyncio
async def test_inactive_symbol(exchange) -> None:
    assert await ExchangeSymbolValidator(exchange).exists("LUNAUSDT") is False


@pytest.mark.asyncio
async def test_unlisted_symbol(exchange) -> None:
    assert await ExchangeSymbolValidator(exchange).exists("FAKEUSDT") is False


@pytest.mark.asyncio
async def test_malformed_symbol_skips_exchange(exchange) -> None:
    validator = ExchangeSymbolValidator(exchange)
    assert await validator.exists("btcusdt") is False
    assert await validator.exists("BTCBUSD") is False
    exchange.load_markets.assert_not_awaited()


@pytest.mark.asyncio
async def test_load_failure_raises(exchange) -> None:
    exchange.load_markets.side_effect = ccxt.NetworkError("unreachable")
    with pytest.raises(DataUnavailableError, match="Cannot load exchange markets"):
        await ExchangeSymbolValidator(exchange).exists("BTCUSDT")
