from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import asyncpg  # type: ignore[import-untyped]
import pytest
from aiohttp import ClientSession, web
from testsuite.databases.pgsql import discover

from automation_service.api.middleware import error_middleware
from automation_service.api.router import setup_routes
from automation_service.services.dependencies import CONTAINER_KEY, ServiceContainer, build_services
from automation_service.settings import Settings
from tests.fakes import (
    FakeDeliveryRepository,
    FakeEventRepository,
    FakeExecutionLogRepository,
    FakeSubscriptionRepository,
    FakeTriggerRepository,
    RecordingMailer,
    RecordingNotifier,
    RecordingStatusStore,
    RecordingTaskStore,
)

pytest_plugins = (
    "testsuite.pytest_plugin",
    "testsuite.databases.pgsql.pytest_plugin",
)

PG_SCHEMAS_PATH = Path(__file__).parent / "schemas" / "postgresql"


@pytest.fixture(scope="session")
def pgsql_local(pgsql_local_create):
    databases = discover.find_schemas(
        service_name=None,
        schema_dirs=[PG_SCHEMAS_PATH],
    )
    return pgsql_local_create(list(databases.values()))


@pytest.fixture
async def pg_pool(pgsql):
    """asyncpg pool on the testsuite database; tables are emptied between tests."""
    pool = await asyncpg.create_pool(dsn=pgsql["automation_service"].conninfo.get_uri(), max_size=4)
    yield pool
    await pool.close()


@dataclass
class Fakes:
    events: FakeEventRepository = field(default_factory=FakeEventRepository)
    triggers: FakeTriggerRepository = field(default_factory=FakeTriggerRepository)
    execution_logs: FakeExecutionLogRepository = field(init=False)
    subscriptions: FakeSubscriptionRepository = field(default_factory=FakeSubscriptionRepository)
    deliveries: FakeDeliveryRepository = field(default_factory=FakeDeliveryRepository)
    mailer: RecordingMailer = field(default_factory=RecordingMailer)
    tasks: RecordingTaskStore = field(default_factory=RecordingTaskStore)
    notifier: RecordingNotifier = field(default_factory=RecordingNotifier)
    status_stores: dict[str, RecordingStatusStore] = field(
        default_factory=lambda: {k: RecordingStatusStore() for k in ("project", "invoice", "client")}
    )

    def __post_init__(self) -> None:
        self.execution_logs = FakeExecutionLogRepository(self.triggers)
        self.subscriptions.delivery_rows = self.deliveries.rows


@pytest.fixture
def fakes() -> Fakes:
    return Fakes()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        admin_email="ops@example.com",
        webhook_request_timeout_seconds=2.0,
        action_webhook_timeout_seconds=2.0,
    )


@pytest.fixture
async def http_session():
    session = ClientSession()
    yield session
    await session.close()


@pytest.fixture
def container(fakes: Fakes, http_session: ClientSession, test_settings: Settings) -> ServiceContainer:
    return build_services(
        events=fakes.events,  # type: ignore[arg-type]
        triggers=fakes.triggers,  # type: ignore[arg-type]
        execution_logs=fakes.execution_logs,  # type: ignore[arg-type]
        subscriptions=fakes.subscriptions,  # type: ignore[arg-type]
        deliveries=fakes.deliveries,  # type: ignore[arg-type]
        session=http_session,
        tasks=fakes.tasks,
        status_stores=fakes.status_stores,
        mailer=fakes.mailer,
        notifier=fakes.notifier,
        settings=test_settings,
    )


@pytest.fixture
async def service_client(aiohttp_client, container: ServiceContainer):
    """API client over an app wired to in-memory repositories."""
    app = web.Application(middlewares=[error_middleware])
    app[CONTAINER_KEY] = container
    setup_routes(app)
    return await aiohttp_client(app)


@dataclass
class Receiver:
    """Throwaway HTTP endpoint recording every request it gets."""

    url: str
    requests: list[dict[str, Any]]
    statuses: list[int]

    def respond_with(self, *statuses: int) -> None:
        self.statuses[:] = list(statuses)


@pytest.fixture
async def receiver():
    requests: list[dict[str, Any]] = []
    statuses: list[int] = []

    async def handler(request: web.Request) -> web.Response:
        raw = await request.read()
        requests.append(
            {
                "method": request.method,
                "headers": dict(request.headers),
                "raw": raw,
                "json": json.loads(raw.decode("utf-8")) if raw else None,
            }
        )
        status = statuses.pop(0) if len(statuses) > 1 else (statuses[0] if statuses else 200)
        return web.Response(status=status, text="ok" if status < 300 else "boom")

    async def slow(_request: web.Request) -> web.Response:
        await asyncio.sleep(1.0)
        return web.Response(status=200)

    app = web.Application()
    app.router.add_route("*", "/hook", handler)
    app.router.add_route("*", "/slow", slow)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = site._server.sockets[0].getsockname()[1]  # type: ignore[union-attr]
    try:
        yield Receiver(url=f"http://127.0.0.1:{port}/hook", requests=requests, statuses=statuses)
    finally:
        await runner.cleanup()
