"""System event log and manual emit endpoints."""
from __future__ import annotations

from aiohttp import web

from automation_service.api.utils import (
    paginated_response,
    pagination_params,
    parse_enum,
    read_json,
    validate_body,
)
from automation_service.domain.dto import EmitEventDTO
from automation_service.domain.enums import EventType
from automation_service.services.dependencies import (
    get_event_bus,
    get_trigger_service,
    get_triggered_by,
)

routes = web.RouteTableDef()


@routes.get("/api/v1/events")
async def list_events(request: web.Request):
    service = await get_trigger_service(request)
    limit, offset = pagination_params(request)
    items, total = await service.get_system_events(
        event_type=parse_enum(request, "event_type", EventType),
        limit=limit,
        offset=offset,
    )
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="events",
        total=total,
    )
    return web.json_response(payload)


@routes.post("/api/v1/events")
async def emit_event(request: web.Request):
    body = await read_json(request)
    dto = validate_body(EmitEventDTO, body)
    context = {**dto.context, "is_test": True}
    context.setdefault("triggered_by", get_triggered_by(request))
    bus = await get_event_bus(request)
    event = await bus.emit(dto.event_type, context)
    return web.json_response(event.model_dump(mode="json"), status=202)
