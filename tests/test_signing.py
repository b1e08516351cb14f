"""Unit tests for webhook request signing."""
from __future__ import annotations

import hmac
import json
from hashlib import sha256

from automation_service.webhooks.payload import build_payload, serialize_envelope
from automation_service.domain.enums import EventType
from automation_service.webhooks.signing import (
    generate_secret_key,
    sign,
    signature_header,
    verify_signature,
)


def test_secret_key_format():
    key = generate_secret_key()
    assert key.startswith("whk_")
    assert len(key) == 4 + 64
    int(key[4:], 16)
    assert generate_secret_key() != key


def test_receiver_recomputes_signature_over_raw_body():
    secret = generate_secret_key()
    envelope = build_payload(EventType.INVOICE_PAID, {"invoice_id": "INV-1", "amount": 250, "name": "Café"})
    body = serialize_envelope(envelope)

    header = signature_header(sign(body, secret))
    expected = "sha256=" + hmac.new(secret.encode(), body.encode("utf-8"), sha256).hexdigest()
    assert header == expected
    assert json.loads(body) == envelope


def test_verify_signature():
    body = b'{"event_type":"task.created"}'
    header = signature_header(sign(body, "s3cret"))
    assert verify_signature(body, "s3cret", header) is True
    assert verify_signature(body.decode(), "s3cret", header) is True
    assert verify_signature(body, "other", header) is False
    assert verify_signature(body + b" ", "s3cret", header) is False
    assert verify_signature(body, "s3cret", header[len("sha256="):]) is False
    assert verify_signature(body, "s3cret", None) is False
