"""Worker: re-send webhook deliveries whose ``next_retry_at`` has passed."""
from __future__ import annotations

from datetime import datetime

from backend_common.worker import TaskFn

from automation_service.webhooks.dispatcher import WebhookDispatcher


def webhook_retry_sweep(dispatcher: WebhookDispatcher) -> TaskFn:
    """Bind the sweep to the application's dispatcher (it owns the HTTP session)."""

    async def run(now: datetime) -> str | None:
        processed = await dispatcher.process_pending_retries(now)
        return f"processed={processed}" if processed else None

    return run
