"""Webhook repositories (subscriptions + delivery records)."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from automation_service.core.exceptions import NotFoundError
from automation_service.domain.enums import DeliveryStatus, EventType, HttpMethod
from automation_service.domain.models import DeliveryStats, WebhookDelivery, WebhookSubscription
from automation_service.repositories.base import BaseRepository, dump_json, load_json


class WebhookSubscriptionRepository(BaseRepository):
    JSONB_COLUMNS = {"headers"}
    UPDATABLE_COLUMNS = {
        "name",
        "url",
        "method",
        "headers",
        "payload_template",
        "events",
        "is_active",
        "retry_enabled",
        "retry_max_attempts",
        "retry_backoff_seconds",
    }

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> WebhookSubscription:
        payload = dict(record)
        payload.pop("total_count", None)
        payload["headers"] = load_json(payload.get("headers")) or {}
        payload["events"] = list(payload.get("events") or [])
        return WebhookSubscription.model_validate(payload)

    async def create(
        self,
        *,
        name: str,
        url: str,
        events: list[EventType],
        payload_template: str | None,
        method: HttpMethod,
        headers: dict[str, str],
        secret_key: str,
        is_active: bool,
        retry_enabled: bool,
        retry_max_attempts: int,
        retry_backoff_seconds: int,
    ) -> WebhookSubscription:
        record = await self._fetchrow(
            """
            INSERT INTO webhooks (
                name, url, method, headers, payload_template, events, secret_key,
                is_active, retry_enabled, retry_max_attempts, retry_backoff_seconds
            )
            VALUES ($1, $2, $3, $4::jsonb, $5, $6::text[], $7, $8, $9, $10, $11)
            RETURNING *
            """,
            name,
            url,
            method.value,
            dump_json(headers),
            payload_template,
            [e.value for e in events],
            secret_key,
            is_active,
            retry_enabled,
            retry_max_attempts,
            retry_backoff_seconds,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, webhook_id: UUID) -> WebhookSubscription:
        record = await self._fetchrow("SELECT * FROM webhooks WHERE id = $1", webhook_id)
        if record is None:
            raise NotFoundError("Webhook not found")
        return self._to_model(record)

    async def list_webhooks(
        self, *, active_only: bool = False, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WebhookSubscription], int]:
        where_sql = "WHERE is_active = true" if active_only else ""
        records = await self._fetch(
            f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhooks
            {where_sql}
            ORDER BY created_at DESC
            LIMIT $1 OFFSET $2
            """,
            limit,
            offset,
        )
        items: List[WebhookSubscription] = []
        total = 0
        for rec in records:
            total = int(rec["total_count"])
            items.append(self._to_model(rec))
        return items, total

    async def list_active_for_event(self, event_type: EventType) -> List[WebhookSubscription]:
        records = await self._fetch(
            """
            SELECT *
            FROM webhooks
            WHERE is_active = true
              AND $1 = ANY(events)
            ORDER BY created_at ASC
            """,
            event_type.value,
        )
        return [self._to_model(r) for r in records]

    async def update(self, webhook_id: UUID, updates: dict[str, Any]) -> WebhookSubscription:
        if not updates:
            raise ValueError("No fields provided for update")

        assignments = []
        values: list[Any] = []
        idx = 1
        for column, value in updates.items():
            if column not in self.UPDATABLE_COLUMNS:
                raise ValueError(f"Unknown webhook column: {column}")
            column_expr = f"{column} = ${idx}"
            if column in self.JSONB_COLUMNS:
                column_expr += "::jsonb"
                value = dump_json(value)
            elif column == "events":
                column_expr += "::text[]"
            assignments.append(column_expr)
            values.append(value)
            idx += 1
        assignments.append("updated_at = now()")
        values.append(webhook_id)

        record = await self._fetchrow(
            f"""
            UPDATE webhooks
            SET {', '.join(assignments)}
            WHERE id = ${idx}
            RETURNING *
            """,
            *values,
        )
        if record is None:
            raise NotFoundError("Webhook not found")
        return self._to_model(record)

    async def set_secret(self, webhook_id: UUID, secret_key: str) -> WebhookSubscription:
        record = await self._fetchrow(
            """
            UPDATE webhooks
            SET secret_key = $2,
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            webhook_id,
            secret_key,
        )
        if record is None:
            raise NotFoundError("Webhook not found")
        return self._to_model(record)

    async def delete(self, webhook_id: UUID) -> None:
        record = await self._fetchrow(
            "DELETE FROM webhooks WHERE id = $1 RETURNING id",
            webhook_id,
        )
        if record is None:
            raise NotFoundError("Webhook not found")


class WebhookDeliveryRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> WebhookDelivery:
        payload = dict(record)
        payload.pop("total_count", None)
        payload.pop("locked_at", None)
        payload["payload"] = load_json(payload.get("payload")) or {}
        return WebhookDelivery.model_validate(payload)

    async def create(
        self,
        *,
        webhook_id: UUID,
        event_type: EventType,
        payload: dict[str, Any],
        body: str,
        signature: str,
    ) -> WebhookDelivery:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_deliveries (
                webhook_id, event_type, payload, body, signature, status, attempt_number
            )
            VALUES ($1, $2, $3::jsonb, $4, $5, 'pending', 1)
            RETURNING *
            """,
            webhook_id,
            event_type.value,
            dump_json(payload),
            body,
            signature,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, delivery_id: UUID) -> WebhookDelivery:
        record = await self._fetchrow("SELECT * FROM webhook_deliveries WHERE id = $1", delivery_id)
        if record is None:
            raise NotFoundError("Webhook delivery not found")
        return self._to_model(record)

    async def mark_success(
        self,
        delivery_id: UUID,
        *,
        response_status: int,
        response_body: str | None,
    ) -> WebhookDelivery:
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = 'success',
                response_status = $2,
                response_body = $3,
                error_message = NULL,
                next_retry_at = NULL,
                locked_at = NULL,
                delivered_at = now(),
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            delivery_id,
            response_status,
            response_body,
        )
        if record is None:
            raise NotFoundError("Webhook delivery not found")
        return self._to_model(record)

    async def record_failure(
        self,
        delivery_id: UUID,
        *,
        status: DeliveryStatus,
        error_message: str,
        response_status: int | None = None,
        response_body: str | None = None,
        next_retry_at: datetime | None = None,
    ) -> WebhookDelivery:
        """Store a failed attempt as ``retrying`` (with *next_retry_at*) or terminal ``failed``."""
        record = await self._fetchrow(
            """
            UPDATE webhook_deliveries
            SET status = $2,
                error_message = $3,
                response_status = $4,
                response_body = $5,
                next_retry_at = $6,
                locked_at = NULL,
                updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            delivery_id,
            status.value,
            error_message,
            response_status,
            response_body,
            next_retry_at,
        )
        if record is None:
            raise NotFoundError("Webhook delivery not found")
        return self._to_model(record)

    async def claim_due_retries(self, now: datetime, *, limit: int = 100) -> List[WebhookDelivery]:
        """
        Atomically claim ``retrying`` deliveries whose ``next_retry_at`` has passed.

        Uses row-level locking (FOR UPDATE SKIP LOCKED) so concurrent sweeps
        never send the same delivery twice.

        Side-effects:
          - locked_at -> now
          - attempt_number += 1
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                records = await conn.fetch(
                    """
                    WITH cte AS (
                        SELECT id
                        FROM webhook_deliveries
                        WHERE status = 'retrying'
                          AND locked_at IS NULL
                          AND next_retry_at <= $1
                        ORDER BY next_retry_at ASC
                        FOR UPDATE SKIP LOCKED
                        LIMIT $2
                    )
                    UPDATE webhook_deliveries d
                    SET locked_at = $1,
                        attempt_number = d.attempt_number + 1,
                        updated_at = now()
                    FROM cte
                    WHERE d.id = cte.id
                    RETURNING d.*
                    """,
                    now,
                    limit,
                )
        return sorted((self._to_model(r) for r in records), key=_due_order)

    async def reclaim_stuck(self, locked_before: datetime) -> int:
        """Release claims left behind by a sweep that died mid-delivery.

        The claimed attempt never recorded an outcome, so its attempt number
        is handed back. Returns the number of reclaimed rows.
        """
        result = await self._execute(
            """
            UPDATE webhook_deliveries
            SET locked_at = NULL,
                attempt_number = attempt_number - 1,
                updated_at = now()
            WHERE status = 'retrying'
              AND locked_at < $1
            """,
            locked_before,
        )
        return self._affected(result)

    async def list_by_webhook(
        self,
        webhook_id: UUID,
        *,
        status: DeliveryStatus | None = None,
        event_type: EventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[WebhookDelivery], int]:
        where = ["webhook_id = $1"]
        values: list[Any] = [webhook_id]
        idx = 2
        if status is not None:
            where.append(f"status = ${idx}")
            values.append(status.value)
            idx += 1
        if event_type is not None:
            where.append(f"event_type = ${idx}")
            values.append(event_type.value)
            idx += 1
        where_sql = " AND ".join(where)
        query = f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_deliveries
            WHERE {where_sql}
            ORDER BY created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        values.extend([limit, offset])
        records = await self._fetch(query, *values)
        items: List[WebhookDelivery] = []
        total: int | None = None
        for rec in records:
            total = int(rec["total_count"])
            items.append(self._to_model(rec))
        if total is None:
            total = await self._count(where_sql, *values[:-2])
        return items, total

    async def _count(self, where_sql: str, *values: Any) -> int:
        record = await self._fetchrow(
            f"SELECT COUNT(*) AS total FROM webhook_deliveries WHERE {where_sql}",
            *values,
        )
        return int(record["total"]) if record else 0

    async def stats(self, webhook_id: UUID) -> DeliveryStats:
        record = await self._fetchrow(
            """
            SELECT COUNT(*) AS total,
                   COUNT(*) FILTER (WHERE status = 'success') AS success,
                   COUNT(*) FILTER (WHERE status = 'failed') AS failed,
                   COUNT(*) FILTER (WHERE status = 'retrying') AS retrying
            FROM webhook_deliveries
            WHERE webhook_id = $1
            """,
            webhook_id,
        )
        if record is None:
            return DeliveryStats()
        return DeliveryStats.from_counts(
            total=int(record["total"] or 0),
            success=int(record["success"] or 0),
            failed=int(record["failed"] or 0),
            retrying=int(record["retrying"] or 0),
        )


def _due_order(delivery: WebhookDelivery) -> datetime:
    assert delivery.next_retry_at is not None
    return delivery.next_retry_at
