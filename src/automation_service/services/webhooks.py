"""Webhook registry service (subscriptions, fan-out and delivery history)."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Tuple
from uuid import UUID

import structlog

from automation_service.core.exceptions import NotFoundError
from automation_service.domain.dto import DeliveryFilters, WebhookCreateDTO, WebhookUpdateDTO
from automation_service.domain.enums import EventType
from automation_service.domain.models import DeliveryStats, WebhookDelivery, WebhookSubscription
from automation_service.repositories.webhooks import (
    WebhookDeliveryRepository,
    WebhookSubscriptionRepository,
)
from automation_service.webhooks.dispatcher import WebhookDispatcher
from automation_service.webhooks.payload import validate_payload_template
from automation_service.webhooks.signing import generate_secret_key

logger = structlog.get_logger(__name__)


class WebhookService:
    def __init__(
        self,
        subscription_repository: WebhookSubscriptionRepository,
        delivery_repository: WebhookDeliveryRepository,
        dispatcher: WebhookDispatcher,
    ):
        self._subscriptions = subscription_repository
        self._deliveries = delivery_repository
        self._dispatcher = dispatcher

    async def create_webhook(self, data: WebhookCreateDTO) -> WebhookSubscription:
        validate_payload_template(data.payload_template)
        return await self._subscriptions.create(
            name=data.name,
            url=data.url,
            events=data.events,
            payload_template=data.payload_template,
            method=data.method,
            headers=data.headers,
            secret_key=generate_secret_key(),
            is_active=data.is_active,
            retry_enabled=data.retry_enabled,
            retry_max_attempts=data.retry_max_attempts,
            retry_backoff_seconds=data.retry_backoff_seconds,
        )

    async def get_webhook(self, webhook_id: UUID) -> WebhookSubscription:
        return await self._subscriptions.get(webhook_id)

    async def list_webhooks(
        self, *, active_only: bool = False, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookSubscription], int]:
        return await self._subscriptions.list_webhooks(active_only=active_only, limit=limit, offset=offset)

    async def update_webhook(self, webhook_id: UUID, data: WebhookUpdateDTO) -> WebhookSubscription:
        payload = data.model_dump(exclude_unset=True)
        updates: dict[str, Any] = {k: v for k, v in payload.items() if v is not None}
        if "payload_template" in payload:
            # explicit null falls back to the raw event data
            validate_payload_template(data.payload_template)
            updates["payload_template"] = data.payload_template
        if data.events is not None:
            updates["events"] = [e.value for e in data.events]
        if data.method is not None:
            updates["method"] = data.method.value
        if not updates:
            return await self._subscriptions.get(webhook_id)
        return await self._subscriptions.update(webhook_id, updates)

    async def toggle_webhook(self, webhook_id: UUID, active: bool | None = None) -> WebhookSubscription:
        if active is None:
            existing = await self._subscriptions.get(webhook_id)
            active = not existing.is_active
        return await self._subscriptions.update(webhook_id, {"is_active": active})

    async def delete_webhook(self, webhook_id: UUID) -> None:
        await self._subscriptions.delete(webhook_id)

    async def regenerate_secret(self, webhook_id: UUID) -> WebhookSubscription:
        """Rotate the signing secret. Already stored deliveries keep their old signature."""
        subscription = await self._subscriptions.set_secret(webhook_id, generate_secret_key())
        logger.info("webhook_secret_regenerated", webhook_id=str(webhook_id))
        return subscription

    async def trigger_event(
        self, event_type: EventType, data: Mapping[str, Any]
    ) -> List[WebhookDelivery]:
        """Deliver *event_type* to every active subscriber; one bad subscriber never stops the rest."""
        subscriptions = await self._subscriptions.list_active_for_event(event_type)
        deliveries: List[WebhookDelivery] = []
        for subscription in subscriptions:
            try:
                deliveries.append(await self._dispatcher.deliver(subscription, event_type, data))
            except Exception:
                logger.exception(
                    "webhook_dispatch_failed",
                    webhook_id=str(subscription.id),
                    event_type=event_type.value,
                )
        return deliveries

    async def send_test(
        self,
        webhook_id: UUID,
        event_type: EventType,
        sample_data: Mapping[str, Any] | None = None,
    ) -> WebhookDelivery:
        """One signed delivery to this subscription only, active or not."""
        subscription = await self._subscriptions.get(webhook_id)
        data = dict(sample_data) if sample_data is not None else {"test": True}
        return await self._dispatcher.deliver(subscription, event_type, data)

    async def get_deliveries(
        self,
        webhook_id: UUID,
        filters: DeliveryFilters | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookDelivery], int]:
        await self._subscriptions.get(webhook_id)
        filters = filters or DeliveryFilters()
        return await self._deliveries.list_by_webhook(
            webhook_id,
            status=filters.status,
            event_type=filters.event_type,
            limit=limit,
            offset=offset,
        )

    async def get_delivery(self, webhook_id: UUID, delivery_id: UUID) -> WebhookDelivery:
        delivery = await self._deliveries.get(delivery_id)
        if delivery.webhook_id != webhook_id:
            raise NotFoundError("Webhook delivery not found")
        return delivery

    async def get_delivery_stats(self, webhook_id: UUID) -> DeliveryStats:
        await self._subscriptions.get(webhook_id)
        return await self._deliveries.stats(webhook_id)

    async def retry_now(self, webhook_id: UUID, delivery_id: UUID) -> int:
        """Run the retry sweep immediately; *delivery_id* must belong to *webhook_id*."""
        await self.get_delivery(webhook_id, delivery_id)
        return await self._dispatcher.process_pending_retries()

    async def process_pending_retries(self, now: datetime | None = None) -> int:
        return await self._dispatcher.process_pending_retries(now)
