"""Best-effort Telegram delivery via aiogram."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.utils.token import TokenValidationError

from knobase_relay.errors import ConfigError

if TYPE_CHECKING:
    from knobase_relay.config import RelayConfig

logger = logging.getLogger(__name__)


class TelegramTransport:
    """Send formatted messages to a single Telegram chat.

    Every failure (API error, network error, timeout) is logged and
    swallowed: one attempt per message, no retry. Concurrent sends are
    capped by a semaphore and each send is bounded by a timeout.
    """

    def __init__(self, config: RelayConfig, *, bot: Bot | None = None) -> None:
        self._chat_id = config.telegram_chat_id
        self._timeout = config.delivery_timeout_seconds
        self._semaphore = asyncio.Semaphore(config.max_concurrent_deliveries)
        self._bot = bot

    @property
    def enabled(self) -> bool:
        return self._bot is not None and bool(self._chat_id)

    async def deliver(self, text: str) -> None:
        """Send *text* (Telegram HTML). Never raises on transport failure."""
        if self._bot is None or not self._chat_id:
            logger.info("Telegram not configured, skipping notification")
            return

        async with self._semaphore:
            try:
                await asyncio.wait_for(
                    self._bot.send_message(
                        chat_id=self._chat_id,
                        text=text,
                        parse_mode=ParseMode.HTML,
                    ),
                    timeout=self._timeout,
                )
            except TimeoutError:
                logger.warning("Telegram send timed out after %.1fs", self._timeout)
            except TelegramAPIError as exc:
                logger.warning("Failed to send Telegram message: %s", exc)
            else:
                logger.info("Telegram notification sent chars=%d", len(text))

    async def close(self) -> None:
        """Release the bot's HTTP session."""
        if self._bot is not None:
            await self._bot.session.close()


def create_transport(config: RelayConfig) -> TelegramTransport:
    """Build the transport for *config*; disabled when credentials are absent.

    Raises:
        ConfigError: The bot token is set but malformed.
    """
    if not config.telegram_configured:
        logger.info("Telegram credentials absent, notifications disabled")
        return TelegramTransport(config)
    try:
        bot = Bot(token=config.telegram_bot_token)
    except TokenValidationError as exc:
        msg = "TELEGRAM_BOT_TOKEN is malformed (expected '<id>:<secret>')"
        raise ConfigError(msg) from exc
    return TelegramTransport(config, bot=bot)
