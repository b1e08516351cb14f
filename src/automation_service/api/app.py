"""HTTP application assembly: middleware stack, CORS, health check and routes."""
from __future__ import annotations

import asyncpg  # type: ignore[import-untyped]
import structlog
from aiohttp import web
from aiohttp_cors import ResourceOptions, setup as cors_setup

from backend_common.db.pool import get_pool
from backend_common.middleware.trace import create_trace_middleware

from automation_service.api.middleware import error_middleware
from automation_service.api.router import setup_routes
from automation_service.settings import Settings

logger = structlog.get_logger(__name__)

# aiohttp_cors wants sequences here, not comma-separated strings
CORS_ALLOW_HEADERS = ("Accept", "Content-Type", "Authorization", "X-Trace-Id", "X-Request-Id", "X-User-Id")
CORS_EXPOSE_HEADERS = ("X-Trace-Id", "X-Request-Id")
CORS_ALLOW_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")


async def _database_status() -> str:
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
    except (RuntimeError, OSError, asyncpg.PostgresError) as exc:
        logger.warning("healthcheck_database_down", error=str(exc))
        return "down"
    return "up"


def build_http_app(settings: Settings) -> web.Application:
    """Application with trace ids, error mapping, ``/health`` and every API route.

    Every route, ``/health`` included, is registered for the configured CORS
    origins. Startup and cleanup hooks are left to the caller.
    """
    app = web.Application(middlewares=[create_trace_middleware(settings.app_name), error_middleware])

    async def health(_request: web.Request) -> web.Response:
        database = await _database_status()
        payload = {
            "status": "ok" if database == "up" else "degraded",
            "service": settings.app_name,
            "env": settings.env,
            "database": database,
        }
        return web.json_response(payload, status=200 if database == "up" else 503)

    app.router.add_get("/health", health)
    setup_routes(app)

    cors = cors_setup(
        app,
        defaults={
            origin: ResourceOptions(
                allow_credentials=True,
                expose_headers=CORS_EXPOSE_HEADERS,
                allow_headers=CORS_ALLOW_HEADERS,
                allow_methods=CORS_ALLOW_METHODS,
            )
            for origin in settings.cors_allowed_origins
        },
    )
    for route in list(app.router.routes()):
        cors.add(route)
    return app
