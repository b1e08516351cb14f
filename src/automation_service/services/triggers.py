"""Trigger registry service (CRUD + execution history)."""
from __future__ import annotations

from typing import Any, List, Tuple
from uuid import UUID

from automation_service.domain.actions import parse_action
from automation_service.domain.dto import TriggerCreateDTO, TriggerUpdateDTO
from automation_service.domain.enums import ACTION_DESCRIPTIONS, ActionType, EventType
from automation_service.domain.models import Event, Trigger, TriggerExecutionLog
from automation_service.engine.conditions import parse_conditions
from automation_service.repositories.events import EventRepository
from automation_service.repositories.execution_logs import ExecutionLogRepository
from automation_service.repositories.triggers import TriggerRepository


class TriggerService:
    def __init__(
        self,
        trigger_repository: TriggerRepository,
        execution_log_repository: ExecutionLogRepository,
        event_repository: EventRepository,
    ):
        self._triggers = trigger_repository
        self._logs = execution_log_repository
        self._events = event_repository

    async def create_trigger(self, data: TriggerCreateDTO) -> Trigger:
        # both raise ConfigurationError before anything is stored
        conditions = parse_conditions(data.conditions)
        action = parse_action(data.action_type, data.action_config)
        return await self._triggers.create(
            name=data.name,
            description=data.description,
            event_type=data.event_type,
            conditions=conditions,
            action=action,
            is_active=data.is_active,
            priority=data.priority,
        )

    async def get_trigger(self, trigger_id: UUID) -> Trigger:
        return await self._triggers.get(trigger_id)

    async def list_triggers(
        self,
        *,
        event_type: EventType | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Trigger], int]:
        return await self._triggers.list_triggers(
            event_type=event_type, is_active=is_active, limit=limit, offset=offset
        )

    async def update_trigger(self, trigger_id: UUID, data: TriggerUpdateDTO) -> Trigger:
        existing = await self._triggers.get(trigger_id)
        payload = data.model_dump(exclude_unset=True)
        updates: dict[str, Any] = {}
        for column in ("name", "description", "is_active", "priority"):
            if column in payload and (payload[column] is not None or column == "description"):
                updates[column] = payload[column]
        if data.event_type is not None:
            updates["event_type"] = data.event_type.value
        if "conditions" in payload:
            updates["conditions"] = [
                c.model_dump(mode="json") for c in parse_conditions(data.conditions)
            ]
        if data.action_type is not None or data.action_config is not None:
            action = parse_action(
                data.action_type or existing.action_type,
                data.action_config if data.action_config is not None else existing.action.to_config(),
            )
            updates["action_type"] = action.action_type
            updates["action_config"] = action.to_config()
        if not updates:
            return existing
        return await self._triggers.update(trigger_id, updates)

    async def toggle_trigger(self, trigger_id: UUID) -> Trigger:
        existing = await self._triggers.get(trigger_id)
        return await self._triggers.update(trigger_id, {"is_active": not existing.is_active})

    async def delete_trigger(self, trigger_id: UUID) -> None:
        await self._triggers.delete(trigger_id)

    async def get_trigger_logs(
        self, *, trigger_id: UUID | None = None, limit: int = 100, offset: int = 0
    ) -> Tuple[List[TriggerExecutionLog], int]:
        return await self._logs.list_logs(trigger_id=trigger_id, limit=limit, offset=offset)

    async def get_system_events(
        self, *, event_type: EventType | None = None, limit: int = 50, offset: int = 0
    ) -> Tuple[List[Event], int]:
        return await self._events.list_recent(event_type=event_type, limit=limit, offset=offset)

    @staticmethod
    def get_event_types() -> list[str]:
        return [e.value for e in EventType]

    @staticmethod
    def get_action_types() -> list[dict[str, str]]:
        return [{"type": a.value, "description": ACTION_DESCRIPTIONS[a]} for a in ActionType]
