"""Main entry point for the signal engine.

Reads inbound messages as JSON lines (``{"text": ..., "message_id": ...}``)
from the file given as the first argument, or from stdin, and runs each one
through the pipeline in order. Plain-text lines are accepted too.
"""

import asyncio
import json
import logging
import os
import sys
import uuid
from typing import IO, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from smartsignal_engine.ai.validator import AISignalValidator
from smartsignal_engine.alerts.telegram import TelegramAlerter, TelegramConfig
from smartsignal_engine.cache.control import get_flag_store
from smartsignal_engine.config.loader import load_config
from smartsignal_engine.config.models import BotConfig
from smartsignal_engine.core.pipeline import SignalPipeline
from smartsignal_engine.core.scheduler import HousekeepingScheduler
from smartsignal_engine.core.session import TradingSession
from smartsignal_engine.execution.binance_futures_adapter import (
    BinanceFuturesGateway,
    create_futures_exchange,
)
from smartsignal_engine.execution.dry_run_gateway import DryRunGateway
from smartsignal_engine.execution.trade_executor import TradeExecutor
from smartsignal_engine.market_data.binance_provider import BinanceFuturesMarketDataProvider
from smartsignal_engine.market_data.symbol_validator import ExchangeSymbolValidator
from smartsignal_engine.models.message import InboundMessage
from smartsignal_engine.monitoring.metrics import MetricsConfig, init_metrics
from smartsignal_engine.monitoring.sentry_service import SentryConfig, get_sentry, init_sentry
from smartsignal_engine.persistence.models import Base
from smartsignal_engine.persistence.repository import EngineRepository
from smartsignal_engine.signals.symbol_extractor import SymbolExtractor

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def read_messages(stream: IO[str]) -> Iterator[InboundMessage]:
    """Yield inbound messages from a JSON-lines stream, skipping blank lines."""
    for line in stream:
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            data = line
        if isinstance(data, dict):
            yield InboundMessage(
                text=str(data.get("text", "")),
                message_id=str(data.get("message_id") or uuid.uuid4().hex[:12]),
                attachment_text=data.get("attachment_text"),
                channel_id=data.get("channel_id"),
            )
        else:
            yield InboundMessage(text=line, message_id=uuid.uuid4().hex[:12])


async def run_engine(
    config: BotConfig,
    repo: EngineRepository,
    messages: Iterator[InboundMessage],
) -> int:
    """Wire the components and process ``messages``; returns an exit code."""
    api_key = os.environ.get("BINANCE_API_KEY")
    secret = os.environ.get("BINANCE_SECRET")

    if config.execution.mode == "live" and (not api_key or not secret):
        logger.error("❌ Live mode requires BINANCE_API_KEY/BINANCE_SECRET")
        return 1

    exchange = create_futures_exchange(api_key, secret, testnet=config.execution.testnet)
    timeout = config.pipeline.request_timeout_seconds
    market_data = BinanceFuturesMarketDataProvider(exchange)

    if config.execution.mode == "live":
        gateway = BinanceFuturesGateway(exchange)
        logger.info(f"✅ Live futures execution enabled (Testnet: {config.execution.testnet})")
    else:
        gateway = DryRunGateway(market_data)
        logger.info("✅ Dry-run execution enabled (simulated fills at live prices)")

    redis_url = os.environ.get("REDIS_URL")
    flag_store = get_flag_store(redis_url, default=config.trading.enabled)
    session = TradingSession(config.trading, flag_store)
    logger.info(f"✅ Trading flag store initialized (auto-trading={session.trading_enabled})")

    executor = TradeExecutor(
        session, gateway, repo, mode=config.execution.mode, timeout_seconds=timeout
    )
    extractor = SymbolExtractor(
        ExchangeSymbolValidator(exchange, config.symbols.quote_asset), config.symbols
    )

    ai_validator = None
    ai_key = os.environ.get("AI_API_KEY") or os.environ.get("GROQ_API_KEY")
    if config.ai_validator.enabled:
        if ai_key:
            ai_validator = AISignalValidator(config.ai_validator, ai_key, timeout_seconds=timeout)
            logger.info(f"✅ AI validator enabled (model={config.ai_validator.model})")
        else:
            logger.info("⚠️ AI validator enabled in config but no AI_API_KEY set")

    notifier = None
    bot_token = os.environ.get("TELEGRAM_BOT_TOKEN")
    chat_id = os.environ.get("TELEGRAM_CHAT_ID")
    if bot_token and chat_id:
        notifier = TelegramAlerter(TelegramConfig(bot_token=bot_token, chat_id=chat_id))
        logger.info("✅ Telegram notifications enabled")
    else:
        logger.info("⚠️ Telegram not configured (set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID)")

    pipeline = SignalPipeline(
        config=config,
        session=session,
        extractor=extractor,
        market_data=market_data,
        executor=executor,
        repo=repo,
        notifier=notifier,
        ai_validator=ai_validator,
    )
    scheduler = HousekeepingScheduler(pipeline, config.pipeline)
    scheduler.start()

    processed = 0
    try:
        for message in messages:
            outcome = await pipeline.process(message)
            processed += 1
            logger.info(
                f"📬 {outcome.message_id}: {outcome.status.value}"
                + (f" ({outcome.symbol})" if outcome.symbol else "")
            )
    finally:
        scheduler.shutdown()
        await exchange.close()
        logger.info(f"Processed {processed} messages; stats: {pipeline.get_stats()}")

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the signal engine."""
    argv = sys.argv[1:] if argv is None else argv
    logger.info("🚀 SmartSignal Engine starting...")

    # Initialize Sentry (if SENTRY_DSN is configured)
    sentry_dsn = os.environ.get("SENTRY_DSN", "")
    if sentry_dsn:
        sentry_env = os.environ.get("SENTRY_ENVIRONMENT", "development")
        init_sentry(SentryConfig(dsn=sentry_dsn, environment=sentry_env, traces_sample_rate=0.1))
        logger.info(f"✅ Sentry initialized (env={sentry_env})")
    else:
        logger.info("⚠️ Sentry not configured (set SENTRY_DSN to enable)")

    metrics_port = os.environ.get("METRICS_PORT")
    if metrics_port:
        metrics = init_metrics(MetricsConfig(port=int(metrics_port)))
        metrics.start_server()

    # Load configuration
    try:
        config = load_config()
        logger.info(f"✅ Configuration loaded: mode={config.execution.mode}")
    except Exception as e:
        logger.error(f"❌ Failed to load configuration: {e}")
        sentry = get_sentry()
        if sentry:
            sentry.capture_error(e, context={"phase": "config_load"})
            sentry.flush()
        return 1

    database_url = os.environ.get("DATABASE_URL", "sqlite:///smartsignal.db")
    logger.info(f"📊 Connecting to database: {database_url.split('@')[0]}...")

    try:
        engine = create_engine(database_url, echo=False)
        Base.metadata.create_all(engine)
        SessionLocal = sessionmaker(bind=engine)
        db_session = SessionLocal()
        logger.info("✅ Database connected")
    except Exception as e:
        logger.error(f"❌ Database connection failed: {e}")
        sentry = get_sentry()
        if sentry:
            sentry.capture_error(e, context={"phase": "db_connect"})
            sentry.flush()
        return 1

    stream = open(argv[0]) if argv else sys.stdin
    try:
        return asyncio.run(run_engine(config, EngineRepository(db_session), read_messages(stream)))
    except KeyboardInterrupt:
        logger.info("⏸️  Shutdown requested by user")
    except Exception as e:
        logger.error(f"❌ Engine error: {e}", exc_info=True)
        sentry = get_sentry()
        if sentry:
            sentry.capture_error(e, context={"phase": "engine"})
            sentry.flush()
        return 1
    finally:
        if stream is not sys.stdin:
            stream.close()
        sentry = get_sentry()
        if sentry:
            sentry.flush()
        db_session.close()
        logger.info("🛑 Engine stopped")

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
