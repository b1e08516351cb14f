"""HMAC-SHA256 request signing for webhook deliveries.

Receivers verify a delivery by recomputing the HMAC over the raw request
body with the subscription secret and comparing it with ``X-Signature``::

    X-Signature: sha256=<hex digest>
"""
from __future__ import annotations

import hmac
import secrets
from hashlib import sha256

SIGNATURE_PREFIX = "sha256="
SECRET_PREFIX = "whk_"


def generate_secret_key() -> str:
    """New subscription secret: ``whk_`` followed by 64 hex characters."""
    return f"{SECRET_PREFIX}{secrets.token_hex(32)}"


def sign(body: str | bytes, secret: str) -> str:
    """Lower-case hex HMAC-SHA256 of *body* keyed by *secret*."""
    body_bytes = body.encode("utf-8") if isinstance(body, str) else body
    return hmac.new(secret.encode("utf-8"), body_bytes, sha256).hexdigest()


def signature_header(signature: str) -> str:
    return f"{SIGNATURE_PREFIX}{signature}"


def verify_signature(body: str | bytes, secret: str, header_value: str | None) -> bool:
    """Constant-time check of an ``X-Signature`` header against *body*."""
    if not header_value or not header_value.startswith(SIGNATURE_PREFIX):
        return False
    expected = sign(body, secret)
    return hmac.compare_digest(expected, header_value[len(SIGNATURE_PREFIX):])
