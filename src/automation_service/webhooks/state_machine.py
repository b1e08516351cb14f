"""Delivery status transition validator."""
from __future__ import annotations

from automation_service.core.exceptions import InvalidStatusTransitionError
from automation_service.domain.enums import DeliveryStatus

DELIVERY_TRANSITIONS: dict[DeliveryStatus, set[DeliveryStatus]] = {
    DeliveryStatus.PENDING: {
        DeliveryStatus.SUCCESS,
        DeliveryStatus.FAILED,
        DeliveryStatus.RETRYING,
    },
    DeliveryStatus.RETRYING: {
        DeliveryStatus.SUCCESS,
        DeliveryStatus.RETRYING,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.SUCCESS: set(),
    DeliveryStatus.FAILED: set(),
}


def validate_delivery_transition(current: DeliveryStatus, new: DeliveryStatus) -> None:
    allowed = DELIVERY_TRANSITIONS.get(current, set())
    if new not in allowed:
        raise InvalidStatusTransitionError(
            f"Invalid delivery status transition: {current.value} → {new.value}"
        )
