"""Pydantic DTOs for the API and service layers."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from automation_service.domain.enums import ActionType, DeliveryStatus, EventType, HttpMethod


class TriggerCreateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    event_type: EventType
    # suffix-keyed map ({"amount_gt": 100}) or structured list; parsed by the service
    conditions: dict[str, Any] | list[dict[str, Any]] | None = None
    action_type: ActionType
    action_config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    priority: int = 0


class TriggerUpdateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    event_type: EventType | None = None
    conditions: dict[str, Any] | list[dict[str, Any]] | None = None
    action_type: ActionType | None = None
    action_config: dict[str, Any] | None = None
    is_active: bool | None = None
    priority: int | None = None


def _normalize_events(value: list[EventType] | None) -> list[EventType] | None:
    if value is None:
        return None
    return list(dict.fromkeys(value))


class WebhookCreateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    url: str = Field(pattern=r"^https?://")
    events: list[EventType] = Field(min_length=1)
    payload_template: str | None = None
    method: HttpMethod = HttpMethod.POST
    headers: dict[str, str] = Field(default_factory=dict)
    is_active: bool = True
    retry_enabled: bool = True
    retry_max_attempts: int = Field(default=3, ge=0, le=20)
    retry_backoff_seconds: int = Field(default=60, ge=1)

    @field_validator("events")
    @classmethod
    def dedupe_events(cls, value: list[EventType] | None) -> list[EventType] | None:
        return _normalize_events(value)


class WebhookUpdateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    url: str | None = Field(default=None, pattern=r"^https?://")
    events: list[EventType] | None = Field(default=None, min_length=1)
    payload_template: str | None = None
    method: HttpMethod | None = None
    headers: dict[str, str] | None = None
    is_active: bool | None = None
    retry_enabled: bool | None = None
    retry_max_attempts: int | None = Field(default=None, ge=0, le=20)
    retry_backoff_seconds: int | None = Field(default=None, ge=1)

    @field_validator("events")
    @classmethod
    def dedupe_events(cls, value: list[EventType] | None) -> list[EventType] | None:
        return _normalize_events(value)


class DeliveryFilters(BaseModel):
    status: DeliveryStatus | None = None
    event_type: EventType | None = None


class EmitEventDTO(BaseModel):
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)


class WebhookTestDTO(BaseModel):
    event_type: EventType
    sample_data: dict[str, Any] | None = None
