"""Unit tests for configuration loader."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from smartsignal_engine.config.loader import load_config


def test_load_config_from_explicit_path(tmp_path: Path) -> None:
    """Test loading config from explicit file path."""
    config_file = tmp_path / "custom.json"
    config_data = {
        "execution": {"mode": "live", "testnet": True},
        "trading": {"max_daily_trades": 4, "target_usd": 0.8},
    }
    config_file.write_text(json.dumps(config_data))

    config = load_config(str(config_file))
    assert config.execution.mode == "live"
    assert config.execution.testnet is True
    assert config.trading.max_daily_trades == 4
    assert config.trading.target_usd == 0.8


def test_load_config_from_env_var(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test loading config from ENGINE_CONFIG_PATH environment variable."""
    config_file = tmp_path / "env_config.json"
    config_file.write_text(json.dumps({"trading": {"max_open_positions": 5}}))

    monkeypatch.setenv("ENGINE_CONFIG_PATH", str(config_file))

    config = load_config()
    assert config.trading.max_open_positions == 5


def test_load_config_repository_default() -> None:
    """Test the shipped config.json loads and validates."""
    config = load_config()
    assert config.execution.mode == "dry-run"
    assert config.decision.entry_threshold == 80


def test_load_config_file_not_found(tmp_path: Path) -> None:
    """Test error when config file doesn't exist."""
    nonexistent = tmp_path / "nonexistent.json"

    with pytest.raises(FileNotFoundError, match="Config file not found"):
        load_config(str(nonexistent))


def test_load_config_invalid_json(tmp_path: Path) -> None:
    """Test error when config file has invalid JSON."""
    config_file = tmp_path / "invalid.json"
    config_file.write_text("{invalid json")

    with pytest.raises(json.JSONDecodeError):
        load_config(str(config_file))


def test_load_config_invalid_values(tmp_path: Path) -> None:
    """Test validation errors propagate."""
    config_file = tmp_path / "bad.json"
    config_file.write_text(json.dumps({"decision": {"entry_threshold": 120}}))

    with pytest.raises(ValidationError):
        load_config(str(config_file))


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test SMARTSIGNAL_* environment variables override file values."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"execution": {"mode": "dry-run"}}))

    monkeypatch.setenv("SMARTSIGNAL_EXECUTION_MODE", "live")
    monkeypatch.setenv("SMARTSIGNAL_EXECUTION_TESTNET", "yes")
    monkeypatch.setenv("SMARTSIGNAL_TRADING_ENABLED", "true")
    monkeypatch.setenv("SMARTSIGNAL_TRADING_MAX_DAILY_TRADES", "2")
    monkeypatch.setenv("SMARTSIGNAL_TRADING_MAX_OPEN_POSITIONS", "1")
    monkeypatch.setenv("SMARTSIGNAL_TRADING_TARGET_USD", "1.5")
    monkeypatch.setenv("SMARTSIGNAL_DECISION_NOTIFY_THRESHOLD", "60")
    monkeypatch.setenv("SMARTSIGNAL_AI_VALIDATOR_ENABLED", "1")

    config = load_config(str(config_file))
    assert config.execution.mode == "live"
    assert config.execution.testnet is True
    assert config.trading.enabled is True
    assert config.trading.max_daily_trades == 2
    assert config.trading.max_open_positions == 1
    assert config.trading.target_usd == 1.5
    assert config.decision.notify_threshold == 60
    assert config.ai_validator.enabled is True


def test_env_override_violating_invariant(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test an entry threshold above the execute threshold is rejected."""
    config_file = tmp_path / "config.json"
    config_file.write_text("{}")
    monkeypatch.setenv("SMARTSIGNAL_DECISION_ENTRY_THRESHOLD", "85")

    with pytest.raises(ValidationError, match="execute_threshold"):
        load_config(str(config_file))
