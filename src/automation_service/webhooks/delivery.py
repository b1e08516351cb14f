"""Single outbound attempt for a webhook delivery."""
from __future__ import annotations

import asyncio

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout

from automation_service.core.exceptions import (
    DeliveryError,
    DeliveryHTTPError,
    DeliveryNetworkError,
    RetryExhaustedError,
)
from automation_service.domain.enums import DeliveryStatus
from automation_service.domain.models import WebhookDelivery, WebhookSubscription
from automation_service.repositories.webhooks import WebhookDeliveryRepository
from automation_service.webhooks.payload import utc_timestamp
from automation_service.webhooks.retry import RetryScheduler
from automation_service.webhooks.signing import signature_header
from automation_service.webhooks.state_machine import validate_delivery_transition

logger = structlog.get_logger(__name__)

RESPONSE_BODY_LIMIT = 2000


def build_headers(subscription: WebhookSubscription, delivery: WebhookDelivery) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "X-Signature": signature_header(delivery.signature),
        "X-Timestamp": utc_timestamp(),
        "X-Event-ID": str(delivery.payload.get("event_id", "")),
    }
    headers.update(subscription.headers)
    return headers


class DeliveryExecutor:
    """Sends the stored, signed body and records the outcome.

    A failed attempt is handed to the :class:`RetryScheduler` when the
    subscription has retries enabled, otherwise it is terminal.
    """

    def __init__(
        self,
        session: ClientSession,
        deliveries: WebhookDeliveryRepository,
        retries: RetryScheduler,
        *,
        timeout_seconds: float = 10.0,
    ):
        self._session = session
        self._deliveries = deliveries
        self._retries = retries
        self._timeout = ClientTimeout(total=timeout_seconds)

    async def _attempt(self, subscription: WebhookSubscription, delivery: WebhookDelivery) -> tuple[int, str]:
        headers = build_headers(subscription, delivery)
        try:
            async with self._session.request(
                subscription.method.value,
                subscription.url,
                data=delivery.body.encode("utf-8"),
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text(errors="replace")
        except asyncio.TimeoutError as exc:
            raise DeliveryNetworkError(f"Timeout after {self._timeout.total:g}s") from exc
        except ClientError as exc:
            raise DeliveryNetworkError(str(exc) or exc.__class__.__name__) from exc
        if 200 <= status < 300:
            return status, text
        raise DeliveryHTTPError(status, text)

    async def send(self, subscription: WebhookSubscription, delivery: WebhookDelivery) -> WebhookDelivery:
        """Run one attempt for *delivery*; returns the stored result."""
        try:
            status, text = await self._attempt(subscription, delivery)
        except DeliveryError as exc:
            return await self._handle_failure(subscription, delivery, exc)

        validate_delivery_transition(delivery.status, DeliveryStatus.SUCCESS)
        updated = await self._deliveries.mark_success(
            delivery.id,
            response_status=status,
            response_body=text[:RESPONSE_BODY_LIMIT],
        )
        logger.info(
            "webhook_delivered",
            delivery_id=str(delivery.id),
            webhook_id=str(subscription.id),
            event_type=delivery.event_type.value,
            status=status,
            attempt_number=delivery.attempt_number,
        )
        return updated

    async def _handle_failure(
        self,
        subscription: WebhookSubscription,
        delivery: WebhookDelivery,
        exc: DeliveryError,
    ) -> WebhookDelivery:
        response_status: int | None = None
        response_body: str | None = None
        if isinstance(exc, DeliveryHTTPError):
            response_status = exc.status
            response_body = exc.body[:RESPONSE_BODY_LIMIT]
        logger.warning(
            "webhook_delivery_failed",
            delivery_id=str(delivery.id),
            webhook_id=str(subscription.id),
            event_type=delivery.event_type.value,
            attempt_number=delivery.attempt_number,
            error=str(exc),
        )

        if not subscription.retry_enabled:
            validate_delivery_transition(delivery.status, DeliveryStatus.FAILED)
            return await self._deliveries.record_failure(
                delivery.id,
                status=DeliveryStatus.FAILED,
                error_message=str(exc),
                response_status=response_status,
                response_body=response_body,
            )
        try:
            return await self._retries.schedule_retry(
                delivery,
                subscription,
                error_message=str(exc),
                response_status=response_status,
                response_body=response_body,
            )
        except RetryExhaustedError as exhausted:
            logger.warning(
                "webhook_retries_exhausted",
                delivery_id=str(delivery.id),
                webhook_id=str(subscription.id),
                attempt_number=delivery.attempt_number,
            )
            return exhausted.delivery
