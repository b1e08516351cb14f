"""Workflow trigger repository."""
from __future__ import annotations

from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from automation_service.core.exceptions import NotFoundError
from automation_service.domain.actions import Action, parse_action
from automation_service.domain.enums import EventType
from automation_service.domain.models import Trigger
from automation_service.engine.conditions import Condition, parse_conditions
from automation_service.repositories.base import BaseRepository, dump_json, load_json


class TriggerRepository(BaseRepository):
    JSONB_COLUMNS = {"conditions", "action_config"}
    UPDATABLE_COLUMNS = {
        "name",
        "description",
        "event_type",
        "conditions",
        "action_type",
        "action_config",
        "is_active",
        "priority",
    }

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> Trigger:
        payload = dict(record)
        payload.pop("total_count", None)
        payload.pop("seq", None)
        payload["conditions"] = parse_conditions(load_json(payload.get("conditions")))
        payload["action"] = parse_action(
            payload.pop("action_type"), load_json(payload.pop("action_config", None))
        )
        return Trigger.model_validate(payload)

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
    ) -> Trigger:
        record = await self._fetchrow(
            """
            INSERT INTO workflow_triggers (
                name, description, event_type, conditions,
                action_type, action_config, is_active, priority
            )
            VALUES ($1, $2, $3, $4::jsonb, $5, $6::jsonb, $7, $8)
            RETURNING *
            """,
            name,
            description,
            event_type.value,
            dump_json([c.model_dump(mode="json") for c in conditions]),
            action.action_type,
            dump_json(action.to_config()),
            is_active,
            priority,
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, trigger_id: UUID) -> Trigger:
        record = await self._fetchrow("SELECT * FROM workflow_triggers WHERE id = $1", trigger_id)
        if record is None:
            raise NotFoundError("Trigger not found")
        return self._to_model(record)

    async def list_triggers(
        self,
        *,
        event_type: EventType | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Trigger], int]:
        where: list[str] = []
        values: list[Any] = []
        idx = 1
        if event_type is not None:
            where.append(f"event_type = ${idx}")
            values.append(event_type.value)
            idx += 1
        if is_active is not None:
            where.append(f"is_active = ${idx}")
            values.append(is_active)
            idx += 1
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        query = f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM workflow_triggers
            {where_sql}
            ORDER BY priority DESC, seq ASC
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        values.extend([limit, offset])
        records = await self._fetch(query, *values)
        items: List[Trigger] = []
        total = 0
        for rec in records:
            total = int(rec["total_count"])
            items.append(self._to_model(rec))
        return items, total

    async def list_active_for_event(self, event_type: EventType) -> List[Trigger]:
        """Active triggers for *event_type*: priority descending, then creation order."""
        records = await self._fetch(
            """
            SELECT *
            FROM workflow_triggers
            WHERE event_type = $1
              AND is_active = true
            ORDER BY priority DESC, seq ASC
            """,
            event_type.value,
        )
        return [self._to_model(r) for r in records]

    async def update(self, trigger_id: UUID, updates: dict[str, Any]) -> Trigger:
        if not updates:
            raise ValueError("No fields provided for update")

        assignments = []
        values: list[Any] = []
        idx = 1
        for column, value in updates.items():
            if column not in self.UPDATABLE_COLUMNS:
                raise ValueError(f"Unknown trigger column: {column}")
            column_expr = f"{column} = ${idx}"
            if column in self.JSONB_COLUMNS:
                column_expr += "::jsonb"
                value = dump_json(value)
            assignments.append(column_expr)
            values.append(value)
            idx += 1
        assignments.append("updated_at = now()")
        values.append(trigger_id)

        query = f"""
            UPDATE workflow_triggers
            SET {', '.join(assignments)}
            WHERE id = ${idx}
            RETURNING *
        """
        record = await self._fetchrow(query, *values)
        if record is None:
            raise NotFoundError("Trigger not found")
        return self._to_model(record)

    async def delete(self, trigger_id: UUID) -> None:
        record = await self._fetchrow(
            "DELETE FROM workflow_triggers WHERE id = $1 RETURNING id",
            trigger_id,
        )
        if record is None:
            raise NotFoundError("Trigger not found")
