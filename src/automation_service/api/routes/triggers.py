"""Workflow trigger endpoints."""
from __future__ import annotations

from typing import Any

from aiohttp import web

from automation_service.api.utils import (
    paginated_response,
    pagination_params,
    parse_bool,
    parse_enum,
    parse_uuid,
    read_json,
    validate_body,
)
from automation_service.domain.dto import TriggerCreateDTO, TriggerUpdateDTO
from automation_service.domain.enums import EventType
from automation_service.domain.models import Trigger
from automation_service.services.dependencies import get_trigger_service
from automation_service.settings import settings

routes = web.RouteTableDef()


def trigger_to_json(trigger: Trigger) -> dict[str, Any]:
    data = trigger.model_dump(mode="json", exclude={"action"})
    data["action_type"] = trigger.action.action_type
    data["action_config"] = trigger.action.to_config()
    return data


@routes.get("/api/v1/triggers")
async def list_triggers(request: web.Request):
    service = await get_trigger_service(request)
    limit, offset = pagination_params(request)
    items, total = await service.list_triggers(
        event_type=parse_enum(request, "event_type", EventType),
        is_active=parse_bool(request, "is_active"),
        limit=limit,
        offset=offset,
    )
    payload = paginated_response(
        [trigger_to_json(item) for item in items],
        limit=limit,
        offset=offset,
        key="triggers",
        total=total,
    )
    return web.json_response(payload)


@routes.post("/api/v1/triggers")
async def create_trigger(request: web.Request):
    body = await read_json(request)
    dto = validate_body(TriggerCreateDTO, body)
    service = await get_trigger_service(request)
    trigger = await service.create_trigger(dto)
    return web.json_response(trigger_to_json(trigger), status=201)


@routes.get("/api/v1/triggers/options")
async def trigger_options(request: web.Request):
    service = await get_trigger_service(request)
    return web.json_response(
        {
            "event_types": service.get_event_types(),
            "action_types": service.get_action_types(),
        }
    )


@routes.get("/api/v1/triggers/logs")
async def trigger_logs(request: web.Request):
    service = await get_trigger_service(request)
    raw_trigger_id = request.rel_url.query.get("trigger_id")
    trigger_id = parse_uuid(raw_trigger_id, "trigger_id") if raw_trigger_id else None
    limit, offset = pagination_params(
        request, default_limit=settings.execution_log_default_limit, max_limit=500
    )
    items, total = await service.get_trigger_logs(trigger_id=trigger_id, limit=limit, offset=offset)
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        limit=limit,
        offset=offset,
        key="logs",
        total=total,
    )
    return web.json_response(payload)


@routes.get("/api/v1/triggers/{trigger_id}")
async def get_trigger(request: web.Request):
    trigger_id = parse_uuid(request.match_info["trigger_id"], "trigger_id")
    service = await get_trigger_service(request)
    trigger = await service.get_trigger(trigger_id)
    return web.json_response(trigger_to_json(trigger))


@routes.put("/api/v1/triggers/{trigger_id}")
async def update_trigger(request: web.Request):
    trigger_id = parse_uuid(request.match_info["trigger_id"], "trigger_id")
    body = await read_json(request)
    dto = validate_body(TriggerUpdateDTO, body)
    service = await get_trigger_service(request)
    trigger = await service.update_trigger(trigger_id, dto)
    return web.json_response(trigger_to_json(trigger))


@routes.delete("/api/v1/triggers/{trigger_id}")
async def delete_trigger(request: web.Request):
    trigger_id = parse_uuid(request.match_info["trigger_id"], "trigger_id")
    service = await get_trigger_service(request)
    await service.delete_trigger(trigger_id)
    return web.Response(status=204)


@routes.post("/api/v1/triggers/{trigger_id}/toggle")
async def toggle_trigger(request: web.Request):
    trigger_id = parse_uuid(request.match_info["trigger_id"], "trigger_id")
    service = await get_trigger_service(request)
    trigger = await service.toggle_trigger(trigger_id)
    return web.json_response(trigger_to_json(trigger))
