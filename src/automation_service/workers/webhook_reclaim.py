"""Worker: release retry claims left by a crashed sweep."""
from __future__ import annotations

from datetime import datetime, timedelta

from backend_common.db.pool import get_pool

from automation_service.repositories.webhooks import WebhookDeliveryRepository
from automation_service.settings import settings


async def webhook_reclaim_stuck(now: datetime) -> str | None:
    """Unlock ``retrying`` deliveries claimed longer than ``webhook_stuck_minutes`` ago."""
    pool = await get_pool()
    cutoff = now - timedelta(minutes=settings.webhook_stuck_minutes)
    reclaimed = await WebhookDeliveryRepository(pool).reclaim_stuck(cutoff)
    return f"reclaimed={reclaimed}" if reclaimed else None
