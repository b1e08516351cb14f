"""Maps service-layer errors onto HTTP responses."""
from __future__ import annotations

import structlog
from aiohttp import web

from automation_service.core.exceptions import (
    ConfigurationError,
    InvalidStatusTransitionError,
    NotFoundError,
)

logger = structlog.get_logger(__name__)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except ConfigurationError as exc:
        raise web.HTTPBadRequest(text=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise web.HTTPConflict(text=str(exc)) from exc
    except ValueError as exc:
        # repositories raise ValueError for empty or unknown update fields
        logger.warning("request_rejected", path=request.path, error=str(exc))
        raise web.HTTPBadRequest(text=str(exc)) from exc
