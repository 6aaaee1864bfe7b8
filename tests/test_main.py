"""Tests for the engine entry point."""

import io
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from smartsignal_engine.config.models import BotConfig, ExecutionConfig
from smartsignal_engine.main import main, read_messages, run_engine


def test_read_messages_json_and_plain_lines() -> None:
    stream = io.StringIO(
        '{"text": "#BTCUSDT LONG", "message_id": "m1", "channel_id": "signals"}\n'
        "\n"
        "#ETHUSDT looking good\n"
    )

    messages = list(read_messages(stream))

    assert len(messages) == 2
    assert messages[0].text == "#BTCUSDT LONG"
    assert messages[0].message_id == "m1"
    assert messages[0].channel_id == "signals"
    assert messages[1].text == "#ETHUSDT looking good"
    assert messages[1].message_id


def test_read_messages_generates_missing_ids() -> None:
    messages = list(read_messages(io.StringIO('{"text": "hello"}\n{"text": "again"}\n')))
    assert messages[0].message_id != messages[1].message_id


def test_main_fails_without_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENGINE_CONFIG_PATH", str(tmp_path / "missing.json"))
    assert main([]) == 1


def test_main_runs_engine(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "config.json"
    config_file.write_text("{}")
    messages_file = tmp_path / "messages.jsonl"
    messages_file.write_text('{"text": "#BTCUSDT", "message_id": "m1"}\n')
    monkeypatch.setenv("ENGINE_CONFIG_PATH", str(config_file))
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")

    seen: list[str] = []

    async def fake_run(config, repo, messages):  # type: ignore[no-untyped-def]
        seen.extend(m.message_id for m in messages)
        return 0

    with patch("smartsignal_engine.main.run_engine", new=AsyncMock(side_effect=fake_run)) as run:
        assert main([str(messages_file)]) == 0

    run.assert_awaited_once()
    assert seen == ["m1"]


@pytest.mark.asyncio
async def test_live_mode_requires_credentials(in_memory_db) -> None:  # type: ignore[no-untyped-def]
    from smartsignal_engine.persistence.repository import EngineRepository

    config = BotConfig(execution=ExecutionConfig(mode="live"))
    assert await run_engine(config, EngineRepository(in_memory_db), iter([])) == 1
