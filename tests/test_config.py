"""Tests for the relay configuration snapshot."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from knobase_relay.config import DEFAULT_PORT, RelayConfig, load_config, resolve_user_timezone
from knobase_relay.errors import ConfigError

_ENV_CONTENT = """\
AGENT_ID=knobase_agent_1234
AGENT_NAME=Claw
KNOBASE_API_KEY=kb_live_test
KNOBASE_WEBHOOK_SECRET=s3cret=with=equals
TELEGRAM_BOT_TOKEN=123456:ABC-DEF
TELEGRAM_CHAT_ID=-100987
"""


def _write_env(tmp_path: Path, content: str = _ENV_CONTENT) -> Path:
    env_file = tmp_path / ".env"
    env_file.write_text(content, encoding="utf-8")
    return env_file


class TestLoadConfig:
    def test_reads_env_file(self, tmp_path: Path) -> None:
        config = load_config(_write_env(tmp_path))
        assert config.agent_id == "knobase_agent_1234"
        assert config.agent_name == "Claw"
        assert config.knobase_webhook_secret == "s3cret=with=equals"
        assert config.telegram_bot_token == "123456:ABC-DEF"
        assert config.telegram_chat_id == "-100987"
        assert config.knobase_api_key == "kb_live_test"

    def test_defaults(self, tmp_path: Path) -> None:
        config = load_config(_write_env(tmp_path, "AGENT_ID=a1\n"))
        assert config.webhook_port == DEFAULT_PORT == 3456
        assert config.webhook_host == "127.0.0.1"
        assert config.webhook_source == "knobase"
        assert config.knobase_webhook_secret == ""
        assert config.telegram_configured is False

    def test_default_env_file_in_cwd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_env(tmp_path)
        monkeypatch.chdir(tmp_path)
        assert load_config().agent_id == "knobase_agent_1234"

    def test_environment_overrides_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("WEBHOOK_PORT", "4000")
        config = load_config(_write_env(tmp_path))
        assert config.webhook_port == 4000

    def test_explicit_override_wins(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("WEBHOOK_PORT", "4000")
        config = load_config(_write_env(tmp_path), webhook_port=5000)
        assert config.webhook_port == 5000

    def test_none_override_ignored(self, tmp_path: Path) -> None:
        config = load_config(_write_env(tmp_path), webhook_port=None, webhook_host=None)
        assert config.webhook_port == DEFAULT_PORT
        assert config.webhook_host == "127.0.0.1"

    def test_missing_agent_id_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Not authenticated"):
            load_config(_write_env(tmp_path, "TELEGRAM_CHAT_ID=1\n"))

    def test_blank_agent_id_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(_write_env(tmp_path, "AGENT_ID=   \n"))

    def test_missing_explicit_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.env")

    def test_invalid_port_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(_write_env(tmp_path), webhook_port=70000)


class TestRelayConfig:
    def test_frozen(self) -> None:
        config = RelayConfig(_env_file=None, agent_id="a1")  # type: ignore[call-arg]
        with pytest.raises(ValidationError):
            config.agent_id = "other"  # type: ignore[misc]

    def test_telegram_configured_needs_both(self) -> None:
        only_token = RelayConfig(
            _env_file=None,  # type: ignore[call-arg]
            agent_id="a1",
            telegram_bot_token="1:x",
        )
        both = RelayConfig(
            _env_file=None,  # type: ignore[call-arg]
            agent_id="a1",
            telegram_bot_token="1:x",
            telegram_chat_id="42",
        )
        assert only_token.telegram_configured is False
        assert both.telegram_configured is True

    def test_signature_header_and_path(self) -> None:
        config = RelayConfig(_env_file=None, agent_id="a1")  # type: ignore[call-arg]
        assert config.signature_header == "X-Knobase-Signature"
        assert config.webhook_path == "/webhook/knobase"

    def test_source_normalized(self) -> None:
        config = RelayConfig(_env_file=None, agent_id="a1", webhook_source=" GitHub ")  # type: ignore[call-arg]
        assert config.webhook_source == "github"
        assert config.signature_header == "X-Github-Signature"

    def test_api_endpoint_defaults_and_normalizes(self) -> None:
        default = RelayConfig(_env_file=None, agent_id="a1")  # type: ignore[call-arg]
        custom = RelayConfig(
            _env_file=None,  # type: ignore[call-arg]
            agent_id="a1",
            knobase_api_endpoint=" https://staging.knobase.ai/ ",
        )
        assert default.knobase_api_endpoint == "https://api.knobase.ai"
        assert custom.knobase_api_endpoint == "https://staging.knobase.ai"

    def test_source_with_slash_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RelayConfig(_env_file=None, agent_id="a1", webhook_source="a/b")  # type: ignore[call-arg]


class TestResolveUserTimezone:
    def test_configured_value(self) -> None:
        assert str(resolve_user_timezone("UTC")) == "UTC"

    def test_invalid_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TZ", "UTC")
        assert str(resolve_user_timezone("Not/AZone")) == "UTC"

    def test_empty_uses_tz_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TZ", "UTC")
        assert str(resolve_user_timezone("")) == "UTC"
