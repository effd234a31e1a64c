"""Render webhook events as Telegram HTML messages.

Only ``&``, ``<`` and ``>`` are escaped in untrusted text. That is all
Telegram's HTML parse mode requires outside of attribute values.
"""

from __future__ import annotations

import html
from datetime import UTC, datetime, tzinfo

from knobase_relay.errors import PayloadError
from knobase_relay.webhook.models import (
    EventData,
    EventKind,
    MentionData,
    NotificationData,
    Priority,
)

TIME_FMT = "%Y-%m-%d %H:%M:%S %Z"

_PRIORITY_MARKERS: dict[str, str] = {
    Priority.HIGH: "\U0001f534",  # red circle
    Priority.LOW: "\u26aa",  # white circle
}
_DEFAULT_MARKER = "\U0001f535"  # blue circle


def escape_html(text: str | None) -> str:
    """Escape ``&``, ``<``, ``>``; quotes pass through. ``None`` renders as ``""``."""
    if not text:
        return ""
    return html.escape(text, quote=False)


def format_timestamp(value: str, tz: tzinfo = UTC) -> str:
    """Render an ISO-8601 timestamp in *tz*.

    Naive values are taken as UTC. Anything unparsable, or out of range once
    shifted into *tz*, is returned as the escaped raw string.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return escape_html(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(tz).strftime(TIME_FMT)
    except (OverflowError, ValueError):
        # shifting into *tz* pushed the value past datetime.min/max
        return escape_html(value)


def priority_marker(priority: str | None) -> str:
    return _PRIORITY_MARKERS.get(priority or "", _DEFAULT_MARKER)


def format_mention(data: MentionData, tz: tzinfo = UTC) -> str:
    lines = [
        "\U0001f3af <b>@claw Mention in Knobase</b>",
        "",
        f"<b>From:</b> {escape_html(data.user)}",
        f"<b>Channel:</b> {escape_html(data.channel) or 'Unknown'}",
        f"<b>Time:</b> {format_timestamp(data.timestamp, tz)}",
        "",
        "<b>Message:</b>",
        escape_html(data.message),
    ]

    extras: list[str] = []
    if data.context:
        extras.append(f"<b>Context:</b> {escape_html(data.context)}")
    if data.url:
        extras.append(f'<a href="{html.escape(data.url)}">\U0001f517 Open in Knobase</a>')
    if extras:
        lines.append("")
        lines.extend(extras)

    return "\n".join(lines).strip()


def format_notification(data: NotificationData, tz: tzinfo = UTC) -> str:
    title = escape_html(data.title) or "Notification"
    lines = [
        f"{priority_marker(data.priority)} <b>{title}</b>",
        "",
        escape_html(data.message),
        "",
        f"<i>{format_timestamp(data.timestamp, tz)}</i>",
    ]
    return "\n".join(lines).strip()


def format_message(kind: EventKind, data: EventData, *, tz: tzinfo = UTC) -> str | None:
    """Return the Telegram text for an event, or ``None`` when nothing is sent.

    Pure: the same input always yields the same string.

    Raises:
        PayloadError: *data* is not the model belonging to *kind*.
    """
    if kind is EventKind.MENTION:
        if not isinstance(data, MentionData):
            msg = f"Expected MentionData, got {type(data).__name__}"
            raise PayloadError(msg)
        return format_mention(data, tz)
    if kind is EventKind.NOTIFICATION:
        if not isinstance(data, NotificationData):
            msg = f"Expected NotificationData, got {type(data).__name__}"
            raise PayloadError(msg)
        return format_notification(data, tz)
    return None
