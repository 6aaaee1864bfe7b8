"""Configuration loader with JSON file and environment variable support."""

import json
import os
from pathlib import Path
from typing import Any

from .models import BotConfig

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _as_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def load_config(config_path: str | None = None) -> BotConfig:
    """
    Load configuration from JSON file with environment variable overrides.

    Priority: env vars > config file > defaults

    Args:
        config_path: Path to JSON config file. If None, uses ENGINE_CONFIG_PATH env var
                     or defaults to 'config.json' in the project root.

    Returns:
        Validated BotConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        json.JSONDecodeError: If config file has invalid JSON
        pydantic.ValidationError: If config values are invalid
    """
    if config_path is None:
        config_path = os.environ.get("ENGINE_CONFIG_PATH", "config.json")

    config_file = Path(config_path)
    if not config_file.is_absolute():
        project_root = Path(__file__).parent.parent.parent
        config_file = project_root / config_file

    config_data: dict[str, Any] = {}
    if config_file.exists():
        with open(config_file) as f:
            config_data = json.load(f)
    else:
        raise FileNotFoundError(f"Config file not found: {config_file}")

    # Format: SMARTSIGNAL_<SECTION>_<FIELD>
    if mode := os.environ.get("SMARTSIGNAL_EXECUTION_MODE"):
        config_data.setdefault("execution", {})["mode"] = mode

    if testnet := os.environ.get("SMARTSIGNAL_EXECUTION_TESTNET"):
        config_data.setdefault("execution", {})["testnet"] = _as_bool(testnet)

    if enabled := os.environ.get("SMARTSIGNAL_TRADING_ENABLED"):
        config_data.setdefault("trading", {})["enabled"] = _as_bool(enabled)

    if max_daily := os.environ.get("SMARTSIGNAL_TRADING_MAX_DAILY_TRADES"):
        config_data.setdefault("trading", {})["max_daily_trades"] = int(max_daily)

    if max_open := os.environ.get("SMARTSIGNAL_TRADING_MAX_OPEN_POSITIONS"):
        config_data.setdefault("trading", {})["max_open_positions"] = int(max_open)

    if target_usd := os.environ.get("SMARTSIGNAL_TRADING_TARGET_USD"):
        config_data.setdefault("trading", {})["target_usd"] = float(target_usd)

    if entry := os.environ.get("SMARTSIGNAL_DECISION_ENTRY_THRESHOLD"):
        config_data.setdefault("decision", {})["entry_threshold"] = int(entry)

    if notify := os.environ.get("SMARTSIGNAL_DECISION_NOTIFY_THRESHOLD"):
        config_data.setdefault("decision", {})["notify_threshold"] = int(notify)

    if ai_enabled := os.environ.get("SMARTSIGNAL_AI_VALIDATOR_ENABLED"):
        config_data.setdefault("ai_validator", {})["enabled"] = _as_bool(ai_enabled)

    return BotConfig(**config_data)
