"""Reusable periodic background worker for aiohttp services.

Usage::

    from backend_common.worker import BackgroundWorker, WorkerTask

    async def retry_sweep(now: datetime) -> str | None:
        processed = await dispatcher.process_pending_retries(now)
        return f"processed={processed}" if processed else None

    worker = BackgroundWorker(
        name="webhooks",
        interval_seconds=60.0,
        tasks=[WorkerTask(name="webhook_retry_sweep", fn=retry_sweep)],
    )

    # In create_app():
    app.on_startup.append(worker.start)
    app.on_cleanup.append(worker.stop)
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

# A task receives the current UTC time and returns an optional summary
# (logged when non-empty).
TaskFn = Callable[[datetime], Awaitable[str | None]]


@dataclass
class WorkerTask:
    """A named periodic task executed by :class:`BackgroundWorker`."""

    name: str
    fn: TaskFn


@dataclass
class BackgroundWorker:
    """In-process async worker that runs a list of tasks in a loop.

    Each task is executed independently: if one fails the others still run.
    No state is carried from one sweep to the next, so anything that must
    survive a restart has to live in the database.

    Lifecycle is managed through :meth:`start` / :meth:`stop` which are
    compatible with ``app.on_startup`` / ``app.on_cleanup``.
    """

    name: str = "background"
    interval_seconds: float = 60.0
    tasks: Sequence[WorkerTask] = field(default_factory=list)

    @property
    def _app_key(self) -> str:
        return f"__background_worker_{self.name}__"

    async def start(self, app: web.Application) -> None:
        """Create the worker asyncio task. Register with ``app.on_startup``."""
        app[self._app_key] = asyncio.create_task(self._loop())

    async def stop(self, app: web.Application) -> None:
        """Cancel the worker task. Register with ``app.on_cleanup``."""
        task = app.get(self._app_key)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def run_once(self, now: datetime | None = None) -> None:
        """Run every task a single time."""
        now = now or datetime.now(timezone.utc)
        for task in self.tasks:
            try:
                summary = await task.fn(now)
                if summary:
                    logger.info("background_task completed", worker=self.name, task=task.name, summary=summary)
            except Exception:
                logger.exception("background_task failed", worker=self.name, task=task.name)

    async def _loop(self) -> None:
        logger.info(
            "background_worker started",
            worker=self.name,
            interval_seconds=self.interval_seconds,
            tasks=[t.name for t in self.tasks],
        )
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("background_worker stopped", worker=self.name)
                raise
            except Exception:
                logger.exception("background_worker sweep failed", worker=self.name)
