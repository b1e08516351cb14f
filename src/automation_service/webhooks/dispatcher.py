"""Webhook dispatcher: fan-out entry point and the retry sweep."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

import structlog

from automation_service.core.exceptions import ConfigurationError, NotFoundError
from automation_service.domain.enums import DeliveryStatus, EventType
from automation_service.domain.models import WebhookDelivery, WebhookSubscription
from automation_service.repositories.webhooks import (
    WebhookDeliveryRepository,
    WebhookSubscriptionRepository,
)
from automation_service.webhooks.delivery import DeliveryExecutor
from automation_service.webhooks.payload import build_payload, serialize_envelope
from automation_service.webhooks.retry import RetryScheduler
from automation_service.webhooks.signing import sign
from automation_service.webhooks.state_machine import validate_delivery_transition

logger = structlog.get_logger(__name__)


class WebhookDispatcher:
    def __init__(
        self,
        subscriptions: WebhookSubscriptionRepository,
        deliveries: WebhookDeliveryRepository,
        executor: DeliveryExecutor,
        retries: RetryScheduler,
    ):
        self._subscriptions = subscriptions
        self._deliveries = deliveries
        self._executor = executor
        self._retries = retries

    async def deliver(
        self,
        subscription: WebhookSubscription,
        event_type: EventType,
        event_data: Mapping[str, Any],
    ) -> WebhookDelivery:
        """Create a signed delivery record and make the first attempt.

        If the subscription's template does not render, the raw event data is
        stored instead and the delivery is marked ``failed`` without a request.
        """
        render_error: ConfigurationError | None = None
        try:
            envelope = build_payload(event_type, event_data, subscription.payload_template)
        except ConfigurationError as exc:
            render_error = exc
            envelope = build_payload(event_type, event_data)
        body = serialize_envelope(envelope)
        delivery = await self._deliveries.create(
            webhook_id=subscription.id,
            event_type=event_type,
            payload=envelope,
            body=body,
            signature=sign(body, subscription.secret_key),
        )
        if render_error is None:
            return await self._executor.send(subscription, delivery)

        logger.warning(
            "webhook_payload_invalid",
            webhook_id=str(subscription.id),
            delivery_id=str(delivery.id),
            event_type=event_type.value,
            error=str(render_error),
        )
        validate_delivery_transition(delivery.status, DeliveryStatus.FAILED)
        return await self._deliveries.record_failure(
            delivery.id,
            status=DeliveryStatus.FAILED,
            error_message=str(render_error),
        )

    async def process_pending_retries(self, now: datetime | None = None) -> int:
        """Re-send every due ``retrying`` delivery once. Returns how many were attempted."""
        now = now or datetime.now(timezone.utc)
        due = await self._retries.claim_due(now)
        for delivery in due:
            try:
                await self._retry_one(delivery)
            except Exception:
                logger.exception("webhook_retry_failed", delivery_id=str(delivery.id))
        return len(due)

    async def _retry_one(self, delivery: WebhookDelivery) -> None:
        subscription: WebhookSubscription | None = None
        # webhook_id is cleared once the subscription is deleted
        if delivery.webhook_id is not None:
            try:
                subscription = await self._subscriptions.get(delivery.webhook_id)
            except NotFoundError:
                pass
        if subscription is None or not subscription.is_active:
            validate_delivery_transition(delivery.status, DeliveryStatus.FAILED)
            await self._deliveries.record_failure(
                delivery.id,
                status=DeliveryStatus.FAILED,
                error_message="Webhook disabled before retry",
                response_status=delivery.response_status,
                response_body=delivery.response_body,
            )
            logger.info("webhook_retry_dropped", delivery_id=str(delivery.id))
            return
        await self._executor.send(subscription, delivery)
