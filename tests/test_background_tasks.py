"""Unit tests for the automation_service.workers task functions."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from automation_service.domain.dto import WebhookCreateDTO
from automation_service.domain.enums import EventType
from automation_service.settings import settings
from automation_service.workers import create_worker
from automation_service.workers.webhook_retries import webhook_retry_sweep


@pytest.fixture
def mock_pool():
    with patch(
        "automation_service.workers.webhook_reclaim.get_pool",
        new_callable=AsyncMock,
        return_value=AsyncMock(),
    ):
        yield


async def test_reclaim_returns_summary(mock_pool):
    now = datetime.now(timezone.utc)
    with patch("automation_service.workers.webhook_reclaim.WebhookDeliveryRepository") as MockRepo:
        instance = MockRepo.return_value
        instance.reclaim_stuck = AsyncMock(return_value=3)

        from automation_service.workers.webhook_reclaim import webhook_reclaim_stuck

        result = await webhook_reclaim_stuck(now)

    assert result == "reclaimed=3"
    cutoff = instance.reclaim_stuck.call_args[0][0]
    assert cutoff == now - timedelta(minutes=settings.webhook_stuck_minutes)
    # outlasts a sweep of retry_sweep_batch_size requests that all time out
    assert now - cutoff > timedelta(
        seconds=settings.retry_sweep_batch_size * settings.webhook_request_timeout_seconds
    )


async def test_reclaim_is_silent_when_nothing_stuck(mock_pool):
    with patch("automation_service.workers.webhook_reclaim.WebhookDeliveryRepository") as MockRepo:
        MockRepo.return_value.reclaim_stuck = AsyncMock(return_value=0)

        from automation_service.workers.webhook_reclaim import webhook_reclaim_stuck

        assert await webhook_reclaim_stuck(datetime.now(timezone.utc)) is None


async def test_retry_sweep_reports_processed():
    dispatcher = AsyncMock()
    dispatcher.process_pending_retries = AsyncMock(side_effect=[2, 0])
    run = webhook_retry_sweep(dispatcher)
    now = datetime.now(timezone.utc)

    assert await run(now) == "processed=2"
    assert await run(now) is None
    dispatcher.process_pending_retries.assert_awaited_with(now)


async def test_sweep_runs_pending_retries_from_container(container, fakes, receiver):
    receiver.respond_with(500, 200)
    await container.webhooks.create_webhook(
        WebhookCreateDTO(name="w", url=receiver.url, events=[EventType.TASK_CREATED])
    )
    await container.event_bus.emit(EventType.TASK_CREATED, {"task_id": "t-1"})
    due_at = fakes.deliveries.only()["next_retry_at"]
    worker = create_worker(container)

    with patch(
        "automation_service.workers.webhook_reclaim.get_pool",
        new_callable=AsyncMock,
        return_value=AsyncMock(),
    ), patch("automation_service.workers.webhook_reclaim.WebhookDeliveryRepository") as MockRepo:
        MockRepo.return_value.reclaim_stuck = AsyncMock(return_value=0)
        await worker.run_once(due_at)

    assert [t.name for t in worker.tasks] == ["webhook_reclaim_stuck", "webhook_retry_sweep"]
    assert fakes.deliveries.only()["status"] == "success"
