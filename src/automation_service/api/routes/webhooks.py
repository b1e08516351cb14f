"""Webhook subscription and delivery endpoints."""
from __future__ import annotations

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
from automation_service.domain.dto import (
    DeliveryFilters,
    WebhookCreateDTO,
    WebhookTestDTO,
    WebhookUpdateDTO,
)
from automation_service.domain.enums import DeliveryStatus, EventType
from automation_service.domain.models import WebhookDelivery
from automation_service.services.dependencies import get_webhook_service

routes = web.RouteTableDef()


def delivery_to_json(delivery: WebhookDelivery) -> dict:
    return delivery.model_dump(mode="json", exclude={"body"})


@routes.get("/api/v1/webhooks")
async def list_webhooks(request: web.Request):
    service = await get_webhook_service(request)
    limit, offset = pagination_params(request)
    items, total = await service.list_webhooks(
        active_only=bool(parse_bool(request, "active_only")),
        limit=limit,
        offset=offset,
    )
    payload = paginated_response(
        [item.public_dump() for item in items],
        limit=limit,
        offset=offset,
        key="webhooks",
        total=total,
    )
    return web.json_response(payload)


@routes.post("/api/v1/webhooks")
async def create_webhook(request: web.Request):
    body = await read_json(request)
    dto = validate_body(WebhookCreateDTO, body)
    service = await get_webhook_service(request)
    sub = await service.create_webhook(dto)
    # the secret is only ever returned here and on regeneration
    return web.json_response(sub.model_dump(mode="json"), status=201)


@routes.get("/api/v1/webhooks/{webhook_id}")
async def get_webhook(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    sub = await service.get_webhook(webhook_id)
    return web.json_response(sub.public_dump())


@routes.put("/api/v1/webhooks/{webhook_id}")
async def update_webhook(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    body = await read_json(request)
    dto = validate_body(WebhookUpdateDTO, body)
    service = await get_webhook_service(request)
    sub = await service.update_webhook(webhook_id, dto)
    return web.json_response(sub.public_dump())


@routes.delete("/api/v1/webhooks/{webhook_id}")
async def delete_webhook(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    await service.delete_webhook(webhook_id)
    return web.Response(status=204)


@routes.patch("/api/v1/webhooks/{webhook_id}/toggle")
async def toggle_webhook(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    active: bool | None = None
    if request.can_read_body:
        body = await read_json(request)
        if "active" in body:
            if not isinstance(body["active"], bool):
                raise web.HTTPBadRequest(text="active must be a boolean")
            active = body["active"]
    service = await get_webhook_service(request)
    sub = await service.toggle_webhook(webhook_id, active)
    return web.json_response(sub.public_dump())


@routes.post("/api/v1/webhooks/{webhook_id}/test")
async def test_webhook(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    body = await read_json(request)
    dto = validate_body(WebhookTestDTO, body)
    service = await get_webhook_service(request)
    delivery = await service.send_test(webhook_id, dto.event_type, dto.sample_data)
    return web.json_response(delivery_to_json(delivery))


@routes.get("/api/v1/webhooks/{webhook_id}/deliveries")
async def list_deliveries(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    filters = DeliveryFilters(
        status=parse_enum(request, "status", DeliveryStatus),
        event_type=parse_enum(request, "event_type", EventType),
    )
    service = await get_webhook_service(request)
    limit, offset = pagination_params(request)
    items, total = await service.get_deliveries(webhook_id, filters, limit=limit, offset=offset)
    payload = paginated_response(
        [delivery_to_json(item) for item in items],
        limit=limit,
        offset=offset,
        key="deliveries",
        total=total,
    )
    return web.json_response(payload)


@routes.get("/api/v1/webhooks/{webhook_id}/deliveries/{delivery_id}")
async def get_delivery(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    service = await get_webhook_service(request)
    delivery = await service.get_delivery(webhook_id, delivery_id)
    return web.json_response(delivery_to_json(delivery))


@routes.get("/api/v1/webhooks/{webhook_id}/stats")
async def delivery_stats(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    stats = await service.get_delivery_stats(webhook_id)
    return web.json_response(stats.model_dump(mode="json"))


@routes.post("/api/v1/webhooks/{webhook_id}/retry")
async def retry_delivery(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    body = await read_json(request)
    if "delivery_id" not in body:
        raise web.HTTPBadRequest(text="delivery_id is required")
    delivery_id = parse_uuid(body["delivery_id"], "delivery_id")
    service = await get_webhook_service(request)
    processed = await service.retry_now(webhook_id, delivery_id)
    return web.json_response({"delivery_id": str(delivery_id), "processed": processed}, status=202)


@routes.post("/api/v1/webhooks/{webhook_id}/secret/regenerate")
async def regenerate_secret(request: web.Request):
    webhook_id = parse_uuid(request.match_info["webhook_id"], "webhook_id")
    service = await get_webhook_service(request)
    sub = await service.regenerate_secret(webhook_id)
    return web.json_response({"id": str(sub.id), "secret_key": sub.secret_key})
