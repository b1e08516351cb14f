"""Service wiring and dependency providers for aiohttp handlers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from aiohttp import ClientSession, web

from backend_common.db.pool import get_pool
from automation_service.repositories.events import EventRepository
from automation_service.repositories.execution_logs import ExecutionLogRepository
from automation_service.repositories.triggers import TriggerRepository
from automation_service.repositories.webhooks import (
    WebhookDeliveryRepository,
    WebhookSubscriptionRepository,
)
from automation_service.services.actions import ActionDispatcher
from automation_service.services.collaborators import (
    LoggingMailer,
    LoggingNotifier,
    Mailer,
    NotificationSink,
    PgStatusStore,
    PgTaskStore,
    StatusStore,
    TaskStore,
)
from automation_service.services.event_bus import EventBus
from automation_service.services.triggers import TriggerService
from automation_service.services.webhooks import WebhookService
from automation_service.settings import Settings, settings as default_settings
from automation_service.webhooks.delivery import DeliveryExecutor
from automation_service.webhooks.dispatcher import WebhookDispatcher
from automation_service.webhooks.retry import RetryScheduler

CONTAINER_KEY = "automation_container"
_HTTP_SESSION_KEY = "automation_http_session"

USER_ID_HEADER = "X-User-Id"

# update_status entity kind -> owning table
STATUS_TABLES = {"project": "projects", "invoice": "invoices", "client": "clients"}


@dataclass
class ServiceContainer:
    event_bus: EventBus
    triggers: TriggerService
    webhooks: WebhookService
    dispatcher: WebhookDispatcher


def build_services(
    *,
    events: EventRepository,
    triggers: TriggerRepository,
    execution_logs: ExecutionLogRepository,
    subscriptions: WebhookSubscriptionRepository,
    deliveries: WebhookDeliveryRepository,
    session: ClientSession,
    tasks: TaskStore,
    status_stores: Mapping[str, StatusStore],
    mailer: Mailer | None = None,
    notifier: NotificationSink | None = None,
    settings: Settings = default_settings,
) -> ServiceContainer:
    """Assemble the service graph from repositories and outer collaborators."""
    retries = RetryScheduler(deliveries, batch_size=settings.retry_sweep_batch_size)
    executor = DeliveryExecutor(
        session,
        deliveries,
        retries,
        timeout_seconds=settings.webhook_request_timeout_seconds,
    )
    dispatcher = WebhookDispatcher(subscriptions, deliveries, executor, retries)
    webhook_service = WebhookService(subscriptions, deliveries, dispatcher)
    actions = ActionDispatcher(
        session=session,
        mailer=mailer or LoggingMailer(),
        tasks=tasks,
        status_stores=status_stores,
        notifier=notifier or LoggingNotifier(),
        admin_email=settings.admin_email,
        webhook_timeout_seconds=settings.action_webhook_timeout_seconds,
    )
    event_bus = EventBus(
        events=events,
        triggers=triggers,
        execution_logs=execution_logs,
        actions=actions,
        webhooks=webhook_service,
    )
    return ServiceContainer(
        event_bus=event_bus,
        triggers=TriggerService(triggers, execution_logs, events),
        webhooks=webhook_service,
        dispatcher=dispatcher,
    )


def build_container(pool: Any, session: ClientSession, settings: Settings = default_settings) -> ServiceContainer:
    return build_services(
        events=EventRepository(pool),
        triggers=TriggerRepository(pool),
        execution_logs=ExecutionLogRepository(pool),
        subscriptions=WebhookSubscriptionRepository(pool),
        deliveries=WebhookDeliveryRepository(pool),
        session=session,
        tasks=PgTaskStore(pool),
        status_stores={kind: PgStatusStore(pool, table) for kind, table in STATUS_TABLES.items()},
        settings=settings,
    )


def create_container_hooks(settings: Settings = default_settings):
    """``on_startup`` / ``on_cleanup`` hooks owning the HTTP session and the container."""

    async def init_container(app: web.Application) -> None:
        if CONTAINER_KEY in app:
            return
        pool = await get_pool()
        session = ClientSession()
        app[_HTTP_SESSION_KEY] = session
        app[CONTAINER_KEY] = build_container(pool, session, settings)

    async def close_container(app: web.Application) -> None:
        container: ServiceContainer | None = app.get(CONTAINER_KEY)
        if container is not None:
            container.event_bus.close()
        session: ClientSession | None = app.get(_HTTP_SESSION_KEY)
        if session is not None:
            await session.close()

    return init_container, close_container


def get_container(request: web.Request) -> ServiceContainer:
    return request.app[CONTAINER_KEY]


async def get_event_bus(request: web.Request) -> EventBus:
    return get_container(request).event_bus


async def get_trigger_service(request: web.Request) -> TriggerService:
    return get_container(request).triggers


async def get_webhook_service(request: web.Request) -> WebhookService:
    return get_container(request).webhooks


def get_triggered_by(request: web.Request) -> str:
    """Actor recorded on manually emitted events; authentication happens upstream."""
    return request.headers.get(USER_ID_HEADER) or "system"
