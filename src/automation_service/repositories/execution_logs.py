"""Trigger execution log repository."""
from __future__ import annotations

from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from automation_service.domain.enums import EventType, ExecutionResult
from automation_service.domain.models import TriggerExecutionLog
from automation_service.repositories.base import BaseRepository, dump_json, load_json


class ExecutionLogRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> TriggerExecutionLog:
        payload = dict(record)
        payload.pop("total_count", None)
        payload["event_snapshot"] = load_json(payload.get("event_snapshot")) or {}
        return TriggerExecutionLog.model_validate(payload)

    async def create(
        self,
        *,
        trigger_id: UUID,
        event_type: EventType,
        event_snapshot: dict[str, Any],
        result: ExecutionResult,
        error_message: str | None,
        execution_time_ms: int,
    ) -> TriggerExecutionLog:
        record = await self._fetchrow(
            """
            INSERT INTO workflow_trigger_logs (
                trigger_id, event_type, event_snapshot, result, error_message, execution_time_ms
            )
            VALUES ($1, $2, $3::jsonb, $4, $5, $6)
            RETURNING *
            """,
            trigger_id,
            event_type.value,
            dump_json(event_snapshot),
            result.value,
            error_message,
            execution_time_ms,
        )
        assert record is not None
        return self._to_model(record)

    async def list_logs(
        self,
        *,
        trigger_id: UUID | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[TriggerExecutionLog], int]:
        """Most recent first, with the trigger name joined in."""
        where_sql = ""
        values: list[Any] = []
        idx = 1
        if trigger_id is not None:
            where_sql = "WHERE l.trigger_id = $1"
            values.append(trigger_id)
            idx = 2
        records = await self._fetch(
            f"""
            SELECT l.*,
                   t.name AS trigger_name,
                   COUNT(*) OVER() AS total_count
            FROM workflow_trigger_logs l
            LEFT JOIN workflow_triggers t ON t.id = l.trigger_id
            {where_sql}
            ORDER BY l.created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *values,
            limit,
            offset,
        )
        items: List[TriggerExecutionLog] = []
        total = 0
        for rec in records:
            total = int(rec["total_count"])
            items.append(self._to_model(rec))
        return items, total
