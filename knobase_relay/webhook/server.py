"""Webhook HTTP server: aiohttp-based ingress for Knobase events."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime, tzinfo
from typing import TYPE_CHECKING, Protocol

from aiohttp import web

from knobase_relay.config import resolve_user_timezone
from knobase_relay.logging_config import bind_request
from knobase_relay.webhook.auth import verify_signature
from knobase_relay.webhook.formatting import format_message
from knobase_relay.webhook.models import Envelope, EventKind, parse_envelope

if TYPE_CHECKING:
    from knobase_relay.config import RelayConfig

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Outbound side of the relay (see `knobase_relay.notify.TelegramTransport`)."""

    async def deliver(self, text: str) -> None: ...

    async def close(self) -> None: ...


class WebhookServer:
    """HTTP server verifying Knobase webhooks and relaying them.

    Routes:
    - ``GET  /health``           -- Liveness plus the configured agent id.
    - ``POST /webhook/{source}`` -- Signed event delivery from Knobase.

    The response never waits on the notifier: formatted messages are handed
    to tracked background tasks.
    """

    def __init__(
        self,
        config: RelayConfig,
        notifier: Notifier,
        *,
        tz: tzinfo | None = None,
    ) -> None:
        self._config = config
        self._notifier = notifier
        self._tz = tz if tz is not None else resolve_user_timezone(config.user_timezone)
        self._runner: web.AppRunner | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_deliveries(self) -> int:
        return len(self._background_tasks)

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes registered."""
        app = web.Application(client_max_size=self._config.max_body_bytes)
        app.router.add_get("/health", self._handle_health)
        app.router.add_post("/webhook/{source}", self._handle_webhook)
        return app

    async def start(self) -> None:
        """Create the aiohttp app and start listening."""
        self._runner = web.AppRunner(self.build_app(), access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.webhook_host, self._config.webhook_port)
        await site.start()
        logger.info(
            "Webhook server listening on %s:%d",
            self._config.webhook_host,
            self._config.webhook_port,
        )

    async def stop(self) -> None:
        """Stop accepting requests, finish in-flight deliveries, close the notifier.

        Deliveries still running after ``delivery_timeout_seconds`` are cancelled.
        """
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        await self.drain(timeout=self._config.delivery_timeout_seconds)
        leftover = list(self._background_tasks)
        for task in leftover:
            task.cancel()
        if leftover:
            await asyncio.gather(*leftover, return_exceptions=True)
        await self._notifier.close()
        logger.info("Webhook server stopped")

    async def drain(self, timeout: float | None = None) -> None:
        """Wait until background deliveries finish (or *timeout* elapses)."""
        if not self._background_tasks:
            return
        _, pending = await asyncio.wait(set(self._background_tasks), timeout=timeout)
        if pending:
            logger.warning("%d deliveries still pending after drain", len(pending))

    # -- Handlers --

    async def _handle_health(self, _request: web.Request) -> web.Response:
        now = datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return web.json_response(
            {"status": "ok", "agent": self._config.agent_id, "timestamp": now}
        )

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        source = request.match_info["source"]
        bind_request(self._config.webhook_source, uuid.uuid4().hex)

        if source.lower() != self._config.webhook_source:
            logger.warning("Webhook rejected: unknown source=%s", source)
            return web.json_response({"error": "Not found"}, status=404)

        # Raw bytes: the signature covers exactly what was sent.
        raw_body = await request.read()
        signature = request.headers.get(self._config.signature_header)
        if not verify_signature(raw_body, signature, self._config.knobase_webhook_secret):
            logger.warning("Webhook rejected: invalid signature")
            return web.json_response({"error": "Invalid signature"}, status=401)

        try:
            envelope = parse_envelope(raw_body)
            logger.info("Received %s event bytes=%d", envelope.event, len(raw_body))
            message = format_message(envelope.kind, envelope.data, tz=self._tz)
        except Exception:
            logger.exception("Webhook error")
            return web.json_response({"error": "Internal error"}, status=500)

        if message is None:
            self._log_unrouted(envelope)
        else:
            self._schedule_delivery(message)
        return web.json_response({"success": True})

    # -- Delivery --

    def _log_unrouted(self, envelope: Envelope) -> None:
        if envelope.kind is EventKind.SYSTEM:
            detail = envelope.data.get("event") if isinstance(envelope.data, dict) else None
            logger.info("System event: %s", detail)
        else:
            logger.warning("Unknown event type: %s", envelope.event)

    def _schedule_delivery(self, message: str) -> None:
        task = asyncio.create_task(self._safe_deliver(message))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _safe_deliver(self, message: str) -> None:
        """Run delivery in a task with exception protection."""
        try:
            await self._notifier.deliver(message)
        except Exception:
            logger.exception("Notification delivery error")
