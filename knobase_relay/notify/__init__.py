"""Outbound notification delivery."""

from knobase_relay.notify.telegram import TelegramTransport, create_transport

__all__ = ["TelegramTransport", "create_transport"]
