"""Background workers for automation-service.

Each worker module exports an async task compatible with
:class:`backend_common.worker.WorkerTask`. The retry sweep needs the
application's dispatcher, so the worker is assembled once the service
container exists and is driven by ``start_background_worker`` /
``stop_background_worker``.
"""
from __future__ import annotations

from aiohttp import web

from backend_common.worker import BackgroundWorker, WorkerTask

from automation_service.services.dependencies import CONTAINER_KEY, ServiceContainer
from automation_service.settings import settings
from automation_service.workers.webhook_reclaim import webhook_reclaim_stuck
from automation_service.workers.webhook_retries import webhook_retry_sweep

_WORKER_KEY = "automation_background_worker"


def create_worker(container: ServiceContainer) -> BackgroundWorker:
    return BackgroundWorker(
        name="webhooks",
        interval_seconds=settings.retry_sweep_interval_seconds,
        tasks=[
            WorkerTask(name="webhook_reclaim_stuck", fn=webhook_reclaim_stuck),
            WorkerTask(name="webhook_retry_sweep", fn=webhook_retry_sweep(container.dispatcher)),
        ],
    )


async def start_background_worker(app: web.Application) -> None:
    worker = create_worker(app[CONTAINER_KEY])
    app[_WORKER_KEY] = worker
    await worker.start(app)


async def stop_background_worker(app: web.Application) -> None:
    worker: BackgroundWorker | None = app.get(_WORKER_KEY)
    if worker is not None:
        await worker.stop(app)


__all__ = [
    "create_worker",
    "start_background_worker",
    "stop_background_worker",
]
