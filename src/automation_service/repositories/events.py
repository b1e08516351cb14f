"""System event log repository."""
from __future__ import annotations

from typing import Any, List, Tuple

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from automation_service.domain.enums import EventType
from automation_service.domain.models import Event
from automation_service.repositories.base import BaseRepository, dump_json, load_json


class EventRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> Event:
        payload = dict(record)
        payload.pop("total_count", None)
        payload["payload"] = load_json(payload.get("payload")) or {}
        return Event.model_validate(payload)

    async def create(
        self,
        *,
        event_type: EventType,
        entity_type: str | None,
        entity_id: str | None,
        payload: dict[str, Any],
        triggered_by: str,
    ) -> Event:
        record = await self._fetchrow(
            """
            INSERT INTO system_events (event_type, entity_type, entity_id, payload, triggered_by)
            VALUES ($1, $2, $3, $4::jsonb, $5)
            RETURNING *
            """,
            event_type.value,
            entity_type,
            entity_id,
            dump_json(payload),
            triggered_by,
        )
        assert record is not None
        return self._to_model(record)

    async def list_recent(
        self,
        *,
        event_type: EventType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Event], int]:
        where_sql = ""
        values: list[Any] = []
        idx = 1
        if event_type is not None:
            where_sql = "WHERE event_type = $1"
            values.append(event_type.value)
            idx = 2
        records = await self._fetch(
            f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM system_events
            {where_sql}
            ORDER BY created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *values,
            limit,
            offset,
        )
        items: List[Event] = []
        total = 0
        for rec in records:
            total = int(rec["total_count"])
            items.append(self._to_model(rec))
        return items, total
