"""App plumbing: health check, trace ids, CORS, JSON bodies and log redaction."""
from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

from automation_service.api.app import build_http_app
from backend_common.logging_config import redact_secrets_processor, replace_newlines_processor


def _pool_answering(value=1) -> MagicMock:
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=value)
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return pool


async def test_health_reports_database_and_trace_headers(aiohttp_client, test_settings):
    client = await aiohttp_client(build_http_app(test_settings))

    trace_id = str(uuid.uuid4())
    with patch("automation_service.api.app.get_pool", AsyncMock(return_value=_pool_answering())):
        resp = await client.get("/health", headers={"X-Trace-Id": trace_id, "X-Request-Id": "not-a-uuid"})

    assert resp.status == 200
    assert await resp.json() == {
        "status": "ok",
        "service": test_settings.app_name,
        "env": test_settings.env,
        "database": "up",
    }
    assert resp.headers["X-Trace-Id"] == trace_id
    assert uuid.UUID(resp.headers["X-Request-Id"])


async def test_health_is_degraded_without_database(aiohttp_client, test_settings):
    client = await aiohttp_client(build_http_app(test_settings))

    # no pool has been initialised in tests
    resp = await client.get("/health")

    assert resp.status == 503
    body = await resp.json()
    assert body["status"] == "degraded"
    assert body["database"] == "down"


async def test_cors_preflight_allows_configured_origin(aiohttp_client, test_settings):
    client = await aiohttp_client(build_http_app(test_settings))
    origin = test_settings.cors_allowed_origins[0]

    resp = await client.options(
        "/api/v1/webhooks",
        headers={
            "Origin": origin,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "X-User-Id",
        },
    )

    assert resp.status == 200
    assert resp.headers["Access-Control-Allow-Origin"] == origin
    assert "X-USER-ID" in resp.headers["Access-Control-Allow-Headers"].upper()


async def test_malformed_json_body_is_bad_request(service_client):
    resp = await service_client.post(
        "/api/v1/webhooks", data="{not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status == 400
    assert "Invalid JSON payload" in await resp.text()

    resp = await service_client.post("/api/v1/webhooks", json=["a", "list"])
    assert resp.status == 400
    assert "JSON body must be an object" in await resp.text()


def test_secret_fields_are_redacted():
    event = {"event": "webhook_created", "secret_key": "whk_abc", "headers": {"Authorization": "Bearer t"}}

    event = replace_newlines_processor(None, "info", redact_secrets_processor(None, "info", event))

    assert event["secret_key"] == "***"
    assert event["headers"] == {"Authorization": "***"}


def test_newlines_are_escaped():
    event = replace_newlines_processor(None, "info", {"event": "x", "error": "line1\nline2"})
    assert event["error"] == "line1\\nline2"
