"""API router composition for aiohttp."""
from __future__ import annotations

from aiohttp import web

from automation_service.api.routes import events, triggers, webhooks

ROUTE_MODULES = [
    triggers,
    events,
    webhooks,
]


def setup_routes(app: web.Application) -> None:
    """Attach domain routes to the aiohttp application."""
    for module in ROUTE_MODULES:
        app.add_routes(module.routes)
