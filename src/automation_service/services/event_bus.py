"""Event bus: the single integration point for event producers."""
from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Mapping, Protocol

import structlog

from automation_service.core.exceptions import ConfigurationError
from automation_service.domain.enums import EventType, ExecutionResult
from automation_service.domain.models import Event, Trigger
from automation_service.engine.conditions import evaluate
from automation_service.repositories.events import EventRepository
from automation_service.repositories.execution_logs import ExecutionLogRepository
from automation_service.repositories.triggers import TriggerRepository
from automation_service.services.actions import ActionDispatcher

logger = structlog.get_logger(__name__)

Listener = Callable[[dict[str, Any]], Awaitable[None]]


class WebhookFanout(Protocol):
    async def trigger_event(self, event_type: EventType, data: Mapping[str, Any]) -> Any: ...


def coerce_event_type(event_type: EventType | str) -> EventType:
    try:
        return EventType(event_type)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown event type: {event_type}") from exc


class EventBus:
    """Owns the in-process listener registry; create one per application.

    ``emit`` writes the event row, runs matching triggers one by one in
    priority order, fans the event out to webhook subscribers and finally
    calls listeners. Only a failure to store the event reaches the caller.
    """

    def __init__(
        self,
        *,
        events: EventRepository,
        triggers: TriggerRepository,
        execution_logs: ExecutionLogRepository,
        actions: ActionDispatcher,
        webhooks: WebhookFanout | None = None,
    ):
        self._events = events
        self._triggers = triggers
        self._execution_logs = execution_logs
        self._actions = actions
        self._webhooks = webhooks
        self._listeners: dict[EventType, list[Listener]] = {}

    def on(self, event_type: EventType | str, handler: Listener) -> None:
        self._listeners.setdefault(coerce_event_type(event_type), []).append(handler)

    def off(self, event_type: EventType | str, handler: Listener) -> None:
        handlers = self._listeners.get(coerce_event_type(event_type))
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event_type: EventType | str) -> int:
        return len(self._listeners.get(coerce_event_type(event_type), []))

    def close(self) -> None:
        self._listeners.clear()

    async def emit(self, event_type: EventType | str, context: Mapping[str, Any] | None = None) -> Event:
        event_type = coerce_event_type(event_type)
        ctx = dict(context or {})
        entity_id = ctx.get("entity_id")
        event = await self._events.create(
            event_type=event_type,
            entity_type=event_type.entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            payload=ctx,
            triggered_by=str(ctx.get("triggered_by") or "system"),
        )

        try:
            triggers = await self._triggers.list_active_for_event(event_type)
        except Exception:
            logger.exception("trigger_lookup_failed", event_type=event_type.value)
            triggers = []
        logger.info("event_emitted", event_type=event_type.value, event_id=str(event.id), triggers=len(triggers))

        for trigger in triggers:
            try:
                await self._run_trigger(trigger, event_type, ctx)
            except Exception:
                logger.exception("trigger_run_failed", trigger_id=str(trigger.id), event_type=event_type.value)

        if self._webhooks is not None:
            try:
                await self._webhooks.trigger_event(event_type, ctx)
            except Exception:
                logger.exception("webhook_fanout_failed", event_type=event_type.value)

        for handler in list(self._listeners.get(event_type, [])):
            try:
                await handler(ctx)
            except Exception:
                logger.exception("event_listener_failed", event_type=event_type.value)
        return event

    async def _run_trigger(self, trigger: Trigger, event_type: EventType, context: dict[str, Any]) -> None:
        started = time.perf_counter()
        result = ExecutionResult.SUCCESS
        error_message: str | None = None
        if not evaluate(trigger.conditions, context):
            result = ExecutionResult.SKIPPED
        else:
            try:
                await self._actions.execute(trigger.action, context)
            except Exception as exc:
                result = ExecutionResult.FAILED
                error_message = str(exc) or exc.__class__.__name__
                logger.warning(
                    "trigger_action_failed",
                    trigger_id=str(trigger.id),
                    action_type=trigger.action.action_type,
                    error=error_message,
                )
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        await self._execution_logs.create(
            trigger_id=trigger.id,
            event_type=event_type,
            event_snapshot=context,
            result=result,
            error_message=error_message,
            execution_time_ms=elapsed_ms,
        )
        logger.info(
            "trigger_executed",
            trigger_id=str(trigger.id),
            result=result.value,
            elapsed_ms=elapsed_ms,
        )
