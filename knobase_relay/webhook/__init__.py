"""Webhook system: signed HTTP ingress for Knobase events."""

from knobase_relay.webhook.auth import verify_signature
from knobase_relay.webhook.formatting import format_message
from knobase_relay.webhook.models import Envelope, EventKind, classify, parse_envelope
from knobase_relay.webhook.server import WebhookServer

__all__ = [
    "Envelope",
    "EventKind",
    "WebhookServer",
    "classify",
    "format_message",
    "parse_envelope",
    "verify_signature",
]
