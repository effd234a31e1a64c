"""knobase-relay: Knobase webhook receiver with Telegram notifications."""

__version__ = "0.1.0"
