"""Relay configuration: an immutable snapshot loaded once at startup."""

from __future__ import annotations

import logging
import os
from datetime import UTC, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from knobase_relay.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = Path(".env")
DEFAULT_PORT = 3456
DEFAULT_API_ENDPOINT = "https://api.knobase.ai"


class RelayConfig(BaseSettings):
    """Settings read from ``.env`` and the process environment.

    Field names map case-insensitively onto the environment keys written by
    the Knobase auth/connect tooling (``AGENT_ID``, ``TELEGRAM_BOT_TOKEN``, ...).
    Instances are frozen; components receive the same object by reference.
    """

    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    agent_id: str
    agent_name: str = ""
    knobase_webhook_secret: str = ""
    knobase_api_key: str = ""
    knobase_api_endpoint: str = DEFAULT_API_ENDPOINT
    knobase_workspace_id: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    webhook_host: str = "127.0.0.1"
    webhook_port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    webhook_source: str = "knobase"
    max_body_bytes: int = Field(default=262144, gt=0)

    delivery_timeout_seconds: float = Field(default=10.0, gt=0)
    max_concurrent_deliveries: int = Field(default=8, ge=1)

    user_timezone: str = ""
    log_level: str = "INFO"

    @field_validator("agent_id")
    @classmethod
    def _agent_id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "AGENT_ID must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("knobase_api_endpoint")
    @classmethod
    def _normalize_endpoint(cls, value: str) -> str:
        return value.strip().rstrip("/") or DEFAULT_API_ENDPOINT

    @field_validator("webhook_source")
    @classmethod
    def _normalize_source(cls, value: str) -> str:
        value = value.strip().lower()
        if not value or "/" in value:
            msg = f"Invalid webhook source: {value!r}"
            raise ValueError(msg)
        return value

    @property
    def telegram_configured(self) -> bool:
        """True when both bot token and chat id are set."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def signature_header(self) -> str:
        """Header carrying the HMAC signature, e.g. ``X-Knobase-Signature``."""
        return f"X-{self.webhook_source.title()}-Signature"

    @property
    def webhook_path(self) -> str:
        return f"/webhook/{self.webhook_source}"


def load_config(env_file: Path | None = None, **overrides: Any) -> RelayConfig:
    """Build the configuration snapshot.

    Resolution order (highest first): explicit *overrides* (``None`` values
    are ignored), process environment, *env_file* (default ``./.env``).

    Raises:
        ConfigError: When *env_file* was given but does not exist, or when
            the merged settings fail validation (e.g. no ``AGENT_ID``).
    """
    if env_file is not None and not env_file.is_file():
        msg = f"Config file not found: {env_file}"
        raise ConfigError(msg)

    explicit = {key: value for key, value in overrides.items() if value is not None}
    try:
        config = RelayConfig(_env_file=env_file or DEFAULT_ENV_FILE, **explicit)  # type: ignore[call-arg]
    except ValidationError as exc:
        missing = any(err["type"] == "missing" for err in exc.errors())
        if missing:
            msg = "Not authenticated: AGENT_ID is missing. Run: openclaw knobase auth"
        else:
            msg = f"Invalid configuration: {exc.error_count()} error(s)\n{exc}"
        raise ConfigError(msg) from exc

    logger.info(
        "Config loaded agent=%s source=%s telegram=%s secret=%s",
        config.agent_id,
        config.webhook_source,
        "on" if config.telegram_configured else "off",
        "set" if config.knobase_webhook_secret else "unset",
    )
    return config


def resolve_user_timezone(configured: str = "") -> tzinfo:
    """Resolve display timezone: config value -> ``TZ`` env -> host system -> UTC.

    Invalid or empty values fall through to the next source.
    """
    candidates = [configured.strip(), os.environ.get("TZ", "").strip()]

    localtime = Path("/etc/localtime")
    if localtime.is_symlink():
        # /usr/share/zoneinfo/Europe/Berlin -> Europe/Berlin
        target = str(localtime.resolve())
        marker = "/zoneinfo/"
        idx = target.find(marker)
        if idx != -1:
            candidates.append(target[idx + len(marker) :])

    for index, name in enumerate(candidates):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, KeyError, ValueError):
            if index == 0:
                logger.warning("Invalid user_timezone '%s', falling back to host/UTC", name)

    return UTC
