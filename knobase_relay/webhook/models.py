"""Webhook envelope models and event classification."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum, unique
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from knobase_relay.errors import PayloadError


@unique
class EventKind(StrEnum):
    """Closed set of event kinds the relay distinguishes."""

    MENTION = "mention"
    NOTIFICATION = "notification"
    SYSTEM = "system"
    UNKNOWN = "unknown"


@unique
class Priority(StrEnum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class MentionData(BaseModel):
    """Someone referenced the agent in a Knobase conversation."""

    user: str
    message: str
    timestamp: str
    channel: str | None = None
    context: str | None = None
    url: str | None = None


class NotificationData(BaseModel):
    """A workspace notification addressed to the agent.

    ``priority`` is kept as a plain string: values outside `Priority` are
    accepted and rendered like ``normal``. Non-string values are dropped.
    """

    message: str
    timestamp: str
    title: str | None = None
    priority: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _tolerate_priority(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


EventData = MentionData | NotificationData | dict[str, Any]

_DATA_MODELS: dict[EventKind, type[BaseModel]] = {
    EventKind.MENTION: MentionData,
    EventKind.NOTIFICATION: NotificationData,
}


@dataclass(frozen=True)
class Envelope:
    """Decoded ``{event, data}`` body of a webhook request."""

    event: str
    kind: EventKind
    data: EventData


def classify(event: object) -> EventKind:
    """Map a raw ``event`` value to an `EventKind`.

    Total: anything that is not exactly ``mention``, ``notification`` or
    ``system`` (including non-strings and the literal ``"unknown"``) is
    `EventKind.UNKNOWN`.
    """
    if not isinstance(event, str):
        return EventKind.UNKNOWN
    try:
        kind = EventKind(event)
    except ValueError:
        return EventKind.UNKNOWN
    return kind


def parse_envelope(body: bytes) -> Envelope:
    """Decode and validate a webhook body.

    ``data`` of a mention or notification is validated against its model.
    For system and unknown events it is passed through untouched.

    Raises:
        PayloadError: Invalid JSON, a non-object body, or a ``data`` payload
            whose shape does not match its event kind.
    """
    try:
        payload: Any = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = f"Body is not valid JSON: {exc}"
        raise PayloadError(msg) from exc

    if not isinstance(payload, dict):
        msg = f"Body must be a JSON object, got {type(payload).__name__}"
        raise PayloadError(msg)

    raw_event = payload.get("event")
    kind = classify(raw_event)
    event = raw_event if isinstance(raw_event, str) else str(raw_event)
    raw_data = payload.get("data")

    model = _DATA_MODELS.get(kind)
    if model is None:
        data = raw_data if isinstance(raw_data, dict) else {}
        return Envelope(event=event, kind=kind, data=data)

    try:
        validated = model.model_validate(raw_data)
    except ValidationError as exc:
        msg = f"Invalid {kind} payload: {exc.error_count()} error(s)"
        raise PayloadError(msg) from exc
    return Envelope(event=event, kind=kind, data=validated)  # type: ignore[arg-type]
