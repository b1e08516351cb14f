"""Executes trigger actions against the outer system."""
from __future__ import annotations

import asyncio
import json
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Mapping

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout

from automation_service.core.exceptions import ActionExecutionError
from automation_service.domain.actions import (
    Action,
    CreateTaskAction,
    NotifyAction,
    SendEmailAction,
    UpdateStatusAction,
    WebhookAction,
)
from automation_service.engine.templates import interpolate
from automation_service.services.collaborators import Mailer, NotificationSink, StatusStore, TaskStore

logger = structlog.get_logger(__name__)

# update_status entity kind -> context key holding the row id
ENTITY_ID_FIELDS: dict[str, str] = {
    "project": "project_id",
    "invoice": "invoice_id",
    "client": "client_id",
}


class ActionDispatcher:
    """Runs one typed action with the event context.

    Errors from ``create_task``, ``update_status`` and ``webhook`` propagate
    so the caller can record the trigger as failed; ``send_email`` failures
    are logged and dropped. Missing ids are a warning, never an error.
    """

    def __init__(
        self,
        *,
        session: ClientSession,
        mailer: Mailer,
        tasks: TaskStore,
        status_stores: Mapping[str, StatusStore],
        notifier: NotificationSink,
        admin_email: str,
        webhook_timeout_seconds: float = 10.0,
    ):
        self._session = session
        self._mailer = mailer
        self._tasks = tasks
        self._status_stores = dict(status_stores)
        self._notifier = notifier
        self._admin_email = admin_email
        self._webhook_timeout = ClientTimeout(total=webhook_timeout_seconds)
        self._handlers: dict[type, Callable[[Any, Mapping[str, Any]], Awaitable[None]]] = {
            SendEmailAction: self._send_email,
            CreateTaskAction: self._create_task,
            UpdateStatusAction: self._update_status,
            WebhookAction: self._webhook,
            NotifyAction: self._notify,
        }

    async def execute(self, action: Action, context: Mapping[str, Any]) -> None:
        handler = self._handlers.get(type(action))
        if handler is None:
            raise ActionExecutionError(f"Unsupported action: {action.action_type}")
        await handler(action, context)

    def resolve_recipient(self, to: str, context: Mapping[str, Any]) -> str | None:
        if to == "client":
            email = context.get("client_email")
            return str(email) if email else None
        if to == "admin":
            return self._admin_email
        return to or None

    async def _send_email(self, action: SendEmailAction, context: Mapping[str, Any]) -> None:
        recipient = self.resolve_recipient(action.to, context)
        if recipient is None:
            logger.warning("send_email_no_recipient", to=action.to)
            return
        try:
            await self._mailer.send(
                to=recipient,
                subject=interpolate(action.subject, context),
                body=interpolate(action.body, context),
                template=action.template,
                data=context,
            )
        except Exception:
            logger.exception("send_email_failed", to=recipient, template=action.template)

    async def _create_task(self, action: CreateTaskAction, context: Mapping[str, Any]) -> None:
        project_id = context.get("project_id")
        if not project_id:
            logger.warning("create_task_no_project", title=action.title)
            return
        due_date: date | None = None
        if action.due_days:
            due_date = (datetime.now(timezone.utc) + timedelta(days=action.due_days)).date()
        title = interpolate(action.title, context)
        await self._tasks.create_task(
            project_id=project_id,
            title=title,
            description=interpolate(action.description, context) if action.description else None,
            assignee=action.assignee,
            due_date=due_date,
        )
        logger.info("task_created", project_id=str(project_id), title=title)

    async def _update_status(self, action: UpdateStatusAction, context: Mapping[str, Any]) -> None:
        id_field = ENTITY_ID_FIELDS.get(action.entity)
        store = self._status_stores.get(action.entity)
        if id_field is None or store is None:
            logger.warning("update_status_unknown_entity", entity=action.entity)
            return
        entity_id = context.get(id_field)
        if not entity_id:
            logger.warning("update_status_no_entity_id", entity=action.entity, id_field=id_field)
            return
        await store.set_status(entity_id, field=action.field, value=action.status)
        logger.info(
            "status_updated",
            entity=action.entity,
            entity_id=str(entity_id),
            field=action.field,
            status=action.status,
        )

    async def _webhook(self, action: WebhookAction, context: Mapping[str, Any]) -> None:
        headers = {"Content-Type": "application/json", **action.headers}
        body = json.dumps(dict(context), ensure_ascii=False, default=str)
        try:
            async with self._session.request(
                action.method,
                action.url,
                data=body.encode("utf-8"),
                headers=headers,
                timeout=self._webhook_timeout,
            ) as resp:
                status = resp.status
        except asyncio.TimeoutError as exc:
            raise ActionExecutionError(f"Webhook {action.url} timed out") from exc
        except ClientError as exc:
            raise ActionExecutionError(f"Webhook {action.url} failed: {exc}") from exc
        # fire-and-forget: a non-2xx answer is not a failure of the trigger
        logger.info("action_webhook_called", url=action.url, status=status)

    async def _notify(self, action: NotifyAction, context: Mapping[str, Any]) -> None:
        await self._notifier.notify(
            channel=action.channel,
            message=interpolate(action.message, context),
            context=context,
        )
