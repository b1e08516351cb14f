"""Domain models backed by the automation tables."""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from automation_service.domain.actions import Action
from automation_service.domain.enums import (
    ActionType,
    DeliveryStatus,
    EventType,
    ExecutionResult,
    HttpMethod,
)
from automation_service.engine.conditions import Condition


class Event(BaseModel):
    """Append-only record of something that happened in the domain."""

    id: UUID
    event_type: EventType
    entity_type: str | None = None
    entity_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    triggered_by: str = "system"
    created_at: datetime


class Trigger(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    event_type: EventType
    conditions: list[Condition] = Field(default_factory=list)
    action: Action
    is_active: bool = True
    priority: int = 0
    created_at: datetime
    updated_at: datetime

    @property
    def action_type(self) -> ActionType:
        return ActionType(self.action.action_type)


class TriggerExecutionLog(BaseModel):
    id: UUID
    # None once the trigger has been deleted; the log itself is kept
    trigger_id: UUID | None = None
    trigger_name: str | None = None
    event_type: EventType
    event_snapshot: dict[str, Any] = Field(default_factory=dict)
    result: ExecutionResult
    error_message: str | None = None
    execution_time_ms: int
    created_at: datetime


class WebhookSubscription(BaseModel):
    id: UUID
    name: str
    url: str
    method: HttpMethod = HttpMethod.POST
    headers: dict[str, str] = Field(default_factory=dict)
    payload_template: str | None = None
    events: list[EventType] = Field(default_factory=list)
    secret_key: str
    is_active: bool = True
    retry_enabled: bool = True
    retry_max_attempts: int = 3
    retry_backoff_seconds: int = 60
    created_at: datetime
    updated_at: datetime

    def public_dump(self) -> dict[str, Any]:
        """JSON view without the signing secret."""
        return self.model_dump(mode="json", exclude={"secret_key"})


class WebhookDelivery(BaseModel):
    """One attempt-chain for one subscription; updated in place across retries."""

    id: UUID
    webhook_id: UUID | None = None
    event_type: EventType
    payload: dict[str, Any]
    # exact request body the signature was computed over
    body: str
    signature: str
    status: DeliveryStatus
    attempt_number: int
    response_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    next_retry_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status is DeliveryStatus.SUCCESS or (
            self.status is DeliveryStatus.FAILED and self.next_retry_at is None
        )


class DeliveryStats(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    retrying: int = 0
    success_rate: int = 0

    @classmethod
    def from_counts(cls, *, total: int, success: int, failed: int, retrying: int) -> "DeliveryStats":
        # half-up, so 12.5% reports as 13
        rate = math.floor(success / total * 100 + 0.5) if total > 0 else 0
        return cls(total=total, success=success, failed=failed, retrying=retrying, success_rate=rate)
