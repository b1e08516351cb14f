"""Outer-system adapters the action dispatcher writes to.

The stores here own tables that belong to other parts of the application
(tasks, projects, invoices, clients); only the narrow write each action
needs is exposed.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Protocol

import structlog
from asyncpg import Pool  # type: ignore[import-untyped]

logger = structlog.get_logger(__name__)


class Mailer(Protocol):
    async def send(
        self, *, to: str, subject: str, body: str, template: str | None, data: Mapping[str, Any]
    ) -> None: ...


class TaskStore(Protocol):
    async def create_task(
        self,
        *,
        project_id: Any,
        title: str,
        description: str | None,
        assignee: str | None,
        due_date: date | None,
    ) -> None: ...


class StatusStore(Protocol):
    async def set_status(self, entity_id: Any, *, field: str, value: str) -> None: ...


class NotificationSink(Protocol):
    async def notify(self, *, channel: str, message: str, context: Mapping[str, Any]) -> None: ...


class LoggingMailer:
    """Records outgoing mail in the log; rendering and SMTP live elsewhere."""

    async def send(
        self, *, to: str, subject: str, body: str, template: str | None, data: Mapping[str, Any]
    ) -> None:
        logger.info("email_queued", to=to, subject=subject, template=template)


class LoggingNotifier:
    async def notify(self, *, channel: str, message: str, context: Mapping[str, Any]) -> None:
        logger.info("notification_sent", channel=channel, message=message)


class PgTaskStore:
    def __init__(self, pool: Pool):
        self._pool = pool

    async def create_task(
        self,
        *,
        project_id: Any,
        title: str,
        description: str | None,
        assignee: str | None,
        due_date: date | None,
    ) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO project_tasks (project_id, title, description, assigned_to, due_date, status)
                VALUES ($1, $2, $3, $4, $5, 'pending')
                """,
                project_id,
                title,
                description,
                assignee,
                due_date,
            )


class PgStatusStore:
    """Sets a status-like column on one row of an entity table."""

    def __init__(self, pool: Pool, table: str):
        self._pool = pool
        self._table = table

    async def set_status(self, entity_id: Any, *, field: str, value: str) -> None:
        # field is constrained to a lower-case identifier by UpdateStatusAction
        async with self._pool.acquire() as conn:
            await conn.execute(
                f"UPDATE {self._table} SET {field} = $1, updated_at = now() WHERE id::text = $2",
                value,
                str(entity_id),
            )
