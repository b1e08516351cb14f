"""Webhook envelope construction and serialization."""
from __future__ import annotations

import json
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Mapping

from automation_service.core.exceptions import ConfigurationError
from automation_service.domain.enums import EventType
from automation_service.engine.templates import PAYLOAD_PLACEHOLDER, render_payload_template


def generate_event_id() -> str:
    """``evt_<epoch ms>_<16 hex>``; unique per envelope, reused across retries."""
    return f"evt_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def utc_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def serialize_envelope(envelope: Mapping[str, Any]) -> str:
    """Compact JSON; this exact text is what gets signed and sent."""
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False, default=str)


def validate_payload_template(template: str | None) -> None:
    """Reject a template that cannot render to JSON.

    Every placeholder is replaced with ``0`` for the check, so templates
    must quote placeholders that are meant to be strings.
    """
    if template is None or not template.strip():
        return
    sample = PAYLOAD_PLACEHOLDER.sub("0", template)
    try:
        json.loads(sample)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in payload_template: {exc.msg}") from exc


def build_data(
    event_type: EventType,
    event_data: Mapping[str, Any],
    template: str | None,
) -> Any:
    if template is None or not template.strip():
        # normalise to plain JSON types (UUIDs, datetimes -> strings)
        return json.loads(serialize_envelope(dict(event_data)))
    source = {**event_data, "event_type": event_type.value}
    rendered = render_payload_template(template, source)
    try:
        return json.loads(rendered)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"payload_template rendered invalid JSON: {exc.msg}") from exc


def build_payload(
    event_type: EventType,
    event_data: Mapping[str, Any],
    template: str | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Wrap event data in the delivery envelope.

    Raises :class:`ConfigurationError` when *template* does not render to JSON.
    """
    return {
        "event_type": event_type.value,
        "event_id": generate_event_id(),
        "timestamp": utc_timestamp(now),
        "data": build_data(event_type, event_data, template),
    }
