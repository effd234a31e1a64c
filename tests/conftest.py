"""Shared test fixtures."""

from __future__ import annotations

import pytest

_RELAY_ENV_KEYS = (
    "AGENT_ID",
    "AGENT_NAME",
    "KNOBASE_WEBHOOK_SECRET",
    "KNOBASE_API_KEY",
    "KNOBASE_API_ENDPOINT",
    "KNOBASE_WORKSPACE_ID",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "WEBHOOK_HOST",
    "WEBHOOK_PORT",
    "WEBHOOK_SOURCE",
    "MAX_BODY_BYTES",
    "DELIVERY_TIMEOUT_SECONDS",
    "MAX_CONCURRENT_DELIVERIES",
    "USER_TIMEZONE",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's shell environment out of RelayConfig."""
    for key in _RELAY_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
