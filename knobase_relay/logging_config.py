"""Relay logging: stderr console, optional rotating file, per-request tags.

While a webhook is handled every record carries a ``[source#request]`` tag.
Delivery tasks are spawned from the handler, so they inherit the tag and a
Telegram failure can be matched to the request that caused it.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "relay.log"
LOG_FILE_MAX_BYTES = 2 * 1024 * 1024
LOG_FILE_BACKUPS = 2

LOG_FMT = "%(asctime)s %(levelname)-7s %(name)s: %(request_tag)s%(message)s"
LOG_DATE_FMT = "%Y-%m-%d %H:%M:%S"

# Both log one line per HTTP request or Telegram update at INFO.
_CHATTY_LOGGERS = ("aiohttp.access", "aiogram.event")

_LEVEL_COLORS = {
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;31m",
}

_request_tag: ContextVar[str] = ContextVar("request_tag", default="")
_installed: list[logging.Handler] = []

logger = logging.getLogger(__name__)


def bind_request(source: str, request_id: str) -> None:
    """Tag records from the current task, and tasks it spawns, with *source*."""
    _request_tag.set(f"{source}#{request_id[:8]}")


def current_request_tag() -> str:
    return _request_tag.get()


class RequestTagFilter(logging.Filter):
    """Expose the bound request tag as ``record.request_tag``."""

    def filter(self, record: logging.LogRecord) -> bool:
        tag = _request_tag.get()
        record.request_tag = f"[{tag}] " if tag else ""
        return True


class _TerminalFormatter(logging.Formatter):
    """Color whole lines at WARNING and above."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}\x1b[0m" if color else line


def resolve_log_level(name: str, default: int = logging.INFO) -> int:
    """Map a level name like ``"debug"`` to its numeric value."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def setup_logging(
    level: int = logging.INFO,
    verbose: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Install the relay's handlers on the root logger.

    Safe to call again (e.g. once the configured level is known): handlers
    from the previous call are removed first, foreign handlers are left alone.
    """
    if verbose:
        level = logging.DEBUG

    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    tag_filter = RequestTagFilter()
    console = logging.StreamHandler(sys.stderr)
    console.addFilter(tag_filter)
    formatter_cls = _TerminalFormatter if sys.stderr.isatty() else logging.Formatter
    console.setFormatter(formatter_cls(LOG_FMT, datefmt=LOG_DATE_FMT))
    _installed.append(console)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        file_handler.addFilter(tag_filter)
        file_handler.setFormatter(logging.Formatter(LOG_FMT, datefmt=LOG_DATE_FMT))
        _installed.append(file_handler)

    for handler in _installed:
        root.addHandler(handler)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.debug("Logging ready level=%s file=%s", logging.getLevelName(level), log_dir)
