"""Entry point: python -m knobase_relay."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

from knobase_relay.config import RelayConfig, load_config
from knobase_relay.errors import ConfigError
from knobase_relay.logging_config import resolve_log_level, setup_logging
from knobase_relay.notify import create_transport
from knobase_relay.webhook.server import WebhookServer

logger = logging.getLogger(__name__)

_console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="knobase-relay",
        description="Receive Knobase webhooks and relay them to Telegram",
    )
    parser.add_argument("--port", type=int, default=None, help="Listen port (default: 3456)")
    parser.add_argument("--host", default=None, help="Listen address (default: 127.0.0.1)")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to the .env file written by 'openclaw knobase auth'",
    )
    parser.add_argument("--log-dir", type=Path, default=None, help="Write rotating logs here")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def _build_banner_lines(config: RelayConfig, *, telegram_enabled: bool) -> list[str]:
    base = f"http://{config.webhook_host}:{config.webhook_port}"
    lines = [
        f"Agent ID:      [cyan]{config.agent_id}[/cyan]",
        f"Webhook URL:   [cyan]{base}{config.webhook_path}[/cyan]",
        f"Health Check:  [cyan]{base}/health[/cyan]",
    ]
    if telegram_enabled:
        lines.append(f"Telegram:      [green]enabled[/green] (chat {config.telegram_chat_id})")
    else:
        lines.append("Telegram:      [yellow]not configured[/yellow]")
    if config.knobase_webhook_secret:
        lines.append(f"Signatures:    [green]verified[/green] ({config.signature_header})")
    else:
        lines.append("Signatures:    [yellow]not verified (no secret)[/yellow]")
    lines.append("")
    lines.append("[dim]Press Ctrl+C to stop[/dim]")
    return lines


async def run_relay(config: RelayConfig) -> None:
    """Serve webhooks until SIGINT/SIGTERM, then shut down gracefully."""
    transport = create_transport(config)
    server = WebhookServer(config, transport)
    try:
        await server.start()
    except OSError:
        await transport.close()
        raise

    _console.print(
        Panel(
            "\n".join(_build_banner_lines(config, telegram_enabled=transport.enabled)),
            title="[bold green]Knobase webhook server running[/bold green]",
            border_style="green",
            padding=(1, 2),
        ),
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        await server.stop()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_dir=args.log_dir)

    try:
        config = load_config(args.env_file, webhook_port=args.port, webhook_host=args.host)
    except ConfigError as exc:
        _console.print(f"[bold red]{exc}[/bold red]")
        sys.exit(1)

    if not args.verbose:
        config_level = resolve_log_level(config.log_level)
        if config_level != logging.INFO:
            setup_logging(level=config_level, log_dir=args.log_dir)

    try:
        asyncio.run(run_relay(config))
    except ConfigError as exc:
        _console.print(f"[bold red]{exc}[/bold red]")
        sys.exit(1)
    except OSError as exc:
        logger.exception("Failed to start webhook server")
        _console.print(f"[bold red]Cannot listen on port {config.webhook_port}: {exc}[/bold red]")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
