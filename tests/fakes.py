"""In-memory stand-ins for the asyncpg repositories and outer collaborators.

Rows are kept as plain dicts shaped like database records and converted
with the real repositories' ``_to_model`` so serialization stays shared.
"""
from __future__ import annotations

import itertools
import json
from datetime import date, datetime, timezone
from typing import Any, Mapping
from uuid import UUID, uuid4

from automation_service.core.exceptions import NotFoundError
from automation_service.domain.actions import Action
from automation_service.domain.enums import DeliveryStatus, EventType, ExecutionResult, HttpMethod
from automation_service.domain.models import DeliveryStats
from automation_service.engine.conditions import Condition
from automation_service.repositories.events import EventRepository
from automation_service.repositories.execution_logs import ExecutionLogRepository
from automation_service.repositories.triggers import TriggerRepository
from automation_service.repositories.webhooks import (
    WebhookDeliveryRepository,
    WebhookSubscriptionRepository,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _json_roundtrip(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


def _page(rows: list[Any], limit: int, offset: int) -> tuple[list[Any], int]:
    return rows[offset : offset + limit], len(rows)


class FakeEventRepository:
    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []
        self.fail_with: Exception | None = None

    async def create(
        self,
        *,
        event_type: EventType,
        entity_type: str | None,
        entity_id: str | None,
        payload: dict[str, Any],
        triggered_by: str,
    ):
        if self.fail_with is not None:
            raise self.fail_with
        row = {
            "id": uuid4(),
            "event_type": event_type.value,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "payload": _json_roundtrip(payload),
            "triggered_by": triggered_by,
            "created_at": _now(),
        }
        self.rows.append(row)
        return EventRepository._to_model(row)

    async def list_recent(self, *, event_type: EventType | None = None, limit: int = 50, offset: int = 0):
        rows = [r for r in reversed(self.rows) if event_type is None or r["event_type"] == event_type.value]
        page, total = _page(rows, limit, offset)
        return [EventRepository._to_model(r) for r in page], total


class FakeTriggerRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, dict[str, Any]] = {}
        # execution log rows, detached on delete like ON DELETE SET NULL
        self.log_rows: list[dict[str, Any]] = []
        self._seq = itertools.count(1)

    async def create(
        self,
        *,
        name: str,
        description: str | None,
        event_type: EventType,
        conditions: list[Condition],
        action: Action,
        is_active: bool,
        priority: int,
    ):
        row = {
            "id": uuid4(),
            "seq": next(self._seq),
            "name": name,
            "description": description,
            "event_type": event_type.value,
            "conditions": [c.model_dump(mode="json") for c in conditions],
            "action_type": action.action_type,
            "action_config": action.to_config(),
            "is_active": is_active,
            "priority": priority,
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.rows[row["id"]] = row
        return TriggerRepository._to_model(row)

    def _get_row(self, trigger_id: UUID) -> dict[str, Any]:
        row = self.rows.get(trigger_id)
        if row is None:
            raise NotFoundError("Trigger not found")
        return row

    def _ordered(self) -> list[dict[str, Any]]:
        return sorted(self.rows.values(), key=lambda r: (-r["priority"], r["seq"]))

    async def get(self, trigger_id: UUID):
        return TriggerRepository._to_model(self._get_row(trigger_id))

    async def list_triggers(
        self,
        *,
        event_type: EventType | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ):
        rows = [
            r
            for r in self._ordered()
            if (event_type is None or r["event_type"] == event_type.value)
            and (is_active is None or r["is_active"] is is_active)
        ]
        page, total = _page(rows, limit, offset)
        return [TriggerRepository._to_model(r) for r in page], total

    async def list_active_for_event(self, event_type: EventType):
        return [
            TriggerRepository._to_model(r)
            for r in self._ordered()
            if r["event_type"] == event_type.value and r["is_active"]
        ]

    async def update(self, trigger_id: UUID, updates: dict[str, Any]):
        if not updates:
            raise ValueError("No fields provided for update")
        row = self._get_row(trigger_id)
        row.update(_json_roundtrip(updates))
        row["updated_at"] = _now()
        return TriggerRepository._to_model(row)

    async def delete(self, trigger_id: UUID) -> None:
        self._get_row(trigger_id)
        del self.rows[trigger_id]
        for row in self.log_rows:
            if row["trigger_id"] == trigger_id:
                row["trigger_id"] = None


class FakeExecutionLogRepository:
    def __init__(self, triggers: FakeTriggerRepository | None = None) -> None:
        self.rows: list[dict[str, Any]] = []
        self._triggers = triggers
        if triggers is not None:
            triggers.log_rows = self.rows

    async def create(
        self,
        *,
        trigger_id: UUID,
        event_type: EventType,
        event_snapshot: dict[str, Any],
        result: ExecutionResult,
        error_message: str | None,
        execution_time_ms: int,
    ):
        row = {
            "id": uuid4(),
            "trigger_id": trigger_id,
            "event_type": event_type.value,
            "event_snapshot": _json_roundtrip(event_snapshot),
            "result": result.value,
            "error_message": error_message,
            "execution_time_ms": execution_time_ms,
            "created_at": _now(),
        }
        self.rows.append(row)
        return ExecutionLogRepository._to_model(row)

    async def list_logs(self, *, trigger_id: UUID | None = None, limit: int = 100, offset: int = 0):
        rows = [r for r in reversed(self.rows) if trigger_id is None or r["trigger_id"] == trigger_id]
        page, total = _page(rows, limit, offset)
        items = []
        for row in page:
            trigger_row = self._triggers.rows.get(row["trigger_id"]) if self._triggers else None
            items.append(
                ExecutionLogRepository._to_model(
                    {**row, "trigger_name": trigger_row["name"] if trigger_row else None}
                )
            )
        return items, total

    @property
    def results(self) -> list[str]:
        return [r["result"] for r in self.rows]


class FakeSubscriptionRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, dict[str, Any]] = {}
        self.delivery_rows: dict[UUID, dict[str, Any]] = {}

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
    ):
        row = {
            "id": uuid4(),
            "name": name,
            "url": url,
            "method": method.value,
            "headers": dict(headers),
            "payload_template": payload_template,
            "events": [e.value for e in events],
            "secret_key": secret_key,
            "is_active": is_active,
            "retry_enabled": retry_enabled,
            "retry_max_attempts": retry_max_attempts,
            "retry_backoff_seconds": retry_backoff_seconds,
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.rows[row["id"]] = row
        return WebhookSubscriptionRepository._to_model(row)

    def _get_row(self, webhook_id: UUID) -> dict[str, Any]:
        row = self.rows.get(webhook_id)
        if row is None:
            raise NotFoundError("Webhook not found")
        return row

    async def get(self, webhook_id: UUID):
        return WebhookSubscriptionRepository._to_model(self._get_row(webhook_id))

    async def list_webhooks(self, *, active_only: bool = False, limit: int = 50, offset: int = 0):
        rows = [r for r in reversed(list(self.rows.values())) if r["is_active"] or not active_only]
        page, total = _page(rows, limit, offset)
        return [WebhookSubscriptionRepository._to_model(r) for r in page], total

    async def list_active_for_event(self, event_type: EventType):
        return [
            WebhookSubscriptionRepository._to_model(r)
            for r in self.rows.values()
            if r["is_active"] and event_type.value in r["events"]
        ]

    async def update(self, webhook_id: UUID, updates: dict[str, Any]):
        if not updates:
            raise ValueError("No fields provided for update")
        row = self._get_row(webhook_id)
        row.update(_json_roundtrip(updates))
        row["updated_at"] = _now()
        return WebhookSubscriptionRepository._to_model(row)

    async def set_secret(self, webhook_id: UUID, secret_key: str):
        row = self._get_row(webhook_id)
        row["secret_key"] = secret_key
        return WebhookSubscriptionRepository._to_model(row)

    async def delete(self, webhook_id: UUID) -> None:
        self._get_row(webhook_id)
        del self.rows[webhook_id]
        for row in self.delivery_rows.values():
            if row["webhook_id"] == webhook_id:
                row["webhook_id"] = None


class FakeDeliveryRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, dict[str, Any]] = {}

    def _get_row(self, delivery_id: UUID) -> dict[str, Any]:
        row = self.rows.get(delivery_id)
        if row is None:
            raise NotFoundError("Webhook delivery not found")
        return row

    def _model(self, row: dict[str, Any]):
        return WebhookDeliveryRepository._to_model(row)

    async def create(
        self,
        *,
        webhook_id: UUID,
        event_type: EventType,
        payload: dict[str, Any],
        body: str,
        signature: str,
    ):
        now = _now()
        row = {
            "id": uuid4(),
            "webhook_id": webhook_id,
            "event_type": event_type.value,
            "payload": _json_roundtrip(payload),
            "body": body,
            "signature": signature,
            "status": DeliveryStatus.PENDING.value,
            "attempt_number": 1,
            "response_status": None,
            "response_body": None,
            "error_message": None,
            "next_retry_at": None,
            "locked_at": None,
            "delivered_at": None,
            "created_at": now,
            "updated_at": now,
        }
        self.rows[row["id"]] = row
        return self._model(row)

    async def get(self, delivery_id: UUID):
        return self._model(self._get_row(delivery_id))

    async def mark_success(self, delivery_id: UUID, *, response_status: int, response_body: str | None):
        row = self._get_row(delivery_id)
        row.update(
            status=DeliveryStatus.SUCCESS.value,
            response_status=response_status,
            response_body=response_body,
            error_message=None,
            next_retry_at=None,
            locked_at=None,
            delivered_at=_now(),
            updated_at=_now(),
        )
        return self._model(row)

    async def record_failure(
        self,
        delivery_id: UUID,
        *,
        status: DeliveryStatus,
        error_message: str,
        response_status: int | None = None,
        response_body: str | None = None,
        next_retry_at: datetime | None = None,
    ):
        row = self._get_row(delivery_id)
        row.update(
            status=status.value,
            error_message=error_message,
            response_status=response_status,
            response_body=response_body,
            next_retry_at=next_retry_at,
            locked_at=None,
            updated_at=_now(),
        )
        return self._model(row)

    async def claim_due_retries(self, now: datetime, *, limit: int = 100):
        due = sorted(
            (
                r
                for r in self.rows.values()
                if r["status"] == DeliveryStatus.RETRYING.value
                and r["locked_at"] is None
                and r["next_retry_at"] is not None
                and r["next_retry_at"] <= now
            ),
            key=lambda r: r["next_retry_at"],
        )[:limit]
        for row in due:
            row["locked_at"] = now
            row["attempt_number"] += 1
        return [self._model(r) for r in due]

    async def reclaim_stuck(self, locked_before: datetime) -> int:
        count = 0
        for row in self.rows.values():
            if row["status"] == DeliveryStatus.RETRYING.value and row["locked_at"] and row["locked_at"] < locked_before:
                row["locked_at"] = None
                row["attempt_number"] -= 1
                count += 1
        return count

    async def list_by_webhook(
        self,
        webhook_id: UUID,
        *,
        status: DeliveryStatus | None = None,
        event_type: EventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ):
        rows = [
            r
            for r in reversed(list(self.rows.values()))
            if r["webhook_id"] == webhook_id
            and (status is None or r["status"] == status.value)
            and (event_type is None or r["event_type"] == event_type.value)
        ]
        page, total = _page(rows, limit, offset)
        return [self._model(r) for r in page], total

    async def stats(self, webhook_id: UUID) -> DeliveryStats:
        rows = [r for r in self.rows.values() if r["webhook_id"] == webhook_id]
        return DeliveryStats.from_counts(
            total=len(rows),
            success=sum(r["status"] == "success" for r in rows),
            failed=sum(r["status"] == "failed" for r in rows),
            retrying=sum(r["status"] == "retrying" for r in rows),
        )

    def only(self) -> dict[str, Any]:
        assert len(self.rows) == 1, f"expected one delivery, got {len(self.rows)}"
        return next(iter(self.rows.values()))


class RecordingMailer:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send(self, *, to: str, subject: str, body: str, template: str | None, data: Mapping[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append({"to": to, "subject": subject, "body": body, "template": template})


class RecordingTaskStore:
    def __init__(self) -> None:
        self.tasks: list[dict[str, Any]] = []

    async def create_task(
        self,
        *,
        project_id: Any,
        title: str,
        description: str | None,
        assignee: str | None,
        due_date: date | None,
    ) -> None:
        self.tasks.append(
            {
                "project_id": project_id,
                "title": title,
                "description": description,
                "assignee": assignee,
                "due_date": due_date,
            }
        )


class RecordingStatusStore:
    def __init__(self) -> None:
        self.updates: list[tuple[Any, str, str]] = []

    async def set_status(self, entity_id: Any, *, field: str, value: str) -> None:
        self.updates.append((entity_id, field, value))


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    async def notify(self, *, channel: str, message: str, context: Mapping[str, Any]) -> None:
        self.messages.append((channel, message))
