"""Exponential-backoff retry scheduling over the durable delivery table."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import structlog

from automation_service.core.exceptions import RetryExhaustedError
from automation_service.domain.enums import DeliveryStatus
from automation_service.domain.models import WebhookDelivery, WebhookSubscription
from automation_service.repositories.webhooks import WebhookDeliveryRepository
from automation_service.webhooks.state_machine import validate_delivery_transition

logger = structlog.get_logger(__name__)


def compute_backoff(attempt_number: int, backoff_seconds: int) -> timedelta:
    """Delay after a failed attempt: ``backoff * 2^(attempt - 1)``.

    With a 60 s base, attempts 1, 2, 3 wait 60, 120 and 240 seconds.
    """
    return timedelta(seconds=backoff_seconds * 2 ** max(attempt_number - 1, 0))


class RetryScheduler:
    """Decides between ``retrying`` and terminal ``failed`` after a failed attempt.

    ``attempt_number`` counts attempts made; the first send is attempt 1 and
    each retry adds one. ``retry_max_attempts`` caps the *retries*, not this
    counter: with ``retry_max_attempts=3`` and a 60s base the delivery is sent
    once, retried after 60s, 120s and 240s, and the fourth failure is terminal
    with ``attempt_number == 4``. The stored counter therefore peaks at
    ``retry_max_attempts + 1``.
    """

    def __init__(self, deliveries: WebhookDeliveryRepository, *, batch_size: int = 100):
        self._deliveries = deliveries
        self._batch_size = batch_size

    async def schedule_retry(
        self,
        delivery: WebhookDelivery,
        subscription: WebhookSubscription,
        *,
        error_message: str,
        response_status: int | None = None,
        response_body: str | None = None,
        now: datetime | None = None,
    ) -> WebhookDelivery:
        """Persist the failed attempt and its ``next_retry_at``.

        Raises :class:`RetryExhaustedError` (carrying the stored delivery)
        once the retry budget is spent; the delivery is then terminal.
        """
        now = now or datetime.now(timezone.utc)
        retries_used = delivery.attempt_number - 1
        if retries_used >= subscription.retry_max_attempts:
            validate_delivery_transition(delivery.status, DeliveryStatus.FAILED)
            updated = await self._deliveries.record_failure(
                delivery.id,
                status=DeliveryStatus.FAILED,
                error_message=error_message,
                response_status=response_status,
                response_body=response_body,
            )
            raise RetryExhaustedError(
                f"Delivery {delivery.id} failed after {delivery.attempt_number} attempts",
                delivery=updated,
            )

        validate_delivery_transition(delivery.status, DeliveryStatus.RETRYING)
        next_retry_at = now + compute_backoff(delivery.attempt_number, subscription.retry_backoff_seconds)
        updated = await self._deliveries.record_failure(
            delivery.id,
            status=DeliveryStatus.RETRYING,
            error_message=error_message,
            response_status=response_status,
            response_body=response_body,
            next_retry_at=next_retry_at,
        )
        logger.info(
            "webhook_retry_scheduled",
            delivery_id=str(delivery.id),
            webhook_id=str(subscription.id),
            attempt_number=delivery.attempt_number,
            next_retry_at=next_retry_at.isoformat(),
        )
        return updated

    async def claim_due(self, now: datetime | None = None) -> List[WebhookDelivery]:
        """Lock due ``retrying`` deliveries, oldest ``next_retry_at`` first."""
        now = now or datetime.now(timezone.utc)
        return await self._deliveries.claim_due_retries(now, limit=self._batch_size)
