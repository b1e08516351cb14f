"""aiohttp application entrypoint."""
from __future__ import annotations

from pathlib import Path

from aiohttp import web

from backend_common.db.migrations import create_migration_runner
from backend_common.db.pool import create_pool_hooks
from backend_common.logging_config import configure_logging

from automation_service.api.app import build_http_app
from automation_service.services.dependencies import create_container_hooks
from automation_service.settings import settings
from automation_service.workers import start_background_worker, stop_background_worker

# Configure structured logging
configure_logging()

_MIGRATION_PATHS = [
    Path(__file__).resolve().parent.parent.parent / "migrations",  # repo checkout / /app in container
    Path("/app/migrations"),
]


def create_app() -> web.Application:
    app = build_http_app(settings)

    init_pool, close_pool = create_pool_hooks(settings)
    init_container, close_container = create_container_hooks(settings)
    app.on_startup.append(init_pool)
    app.on_startup.append(create_migration_runner(settings, _MIGRATION_PATHS))
    app.on_startup.append(init_container)
    app.on_startup.append(start_background_worker)
    app.on_cleanup.append(stop_background_worker)
    app.on_cleanup.append(close_container)
    app.on_cleanup.append(close_pool)

    return app


def main() -> None:
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
