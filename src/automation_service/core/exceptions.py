"""Common exceptions for domain, repository and delivery layers."""
from __future__ import annotations

from typing import Any


class AutomationServiceError(Exception):
    """Base error for service layer."""


class RepositoryError(AutomationServiceError):
    """Raised when repository operations fail."""


class NotFoundError(RepositoryError):
    """Raised when requested entity is missing."""


class ConfigurationError(AutomationServiceError):
    """Invalid trigger, webhook or template input, rejected at save time."""


class ActionExecutionError(AutomationServiceError):
    """A trigger action failed; recorded as ``failed`` in the execution log."""


class DeliveryError(AutomationServiceError):
    """Base error for an outbound webhook attempt."""


class DeliveryNetworkError(DeliveryError):
    """Timeout or connection failure while calling a subscriber."""


class DeliveryHTTPError(DeliveryError):
    """Subscriber answered with a non-2xx status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}: {body[:2000]}")
        self.status = status
        self.body = body


class RetryExhaustedError(DeliveryError):
    """A delivery used up its retry budget and is permanently failed."""

    def __init__(self, message: str, delivery: Any = None):
        super().__init__(message)
        self.delivery = delivery


class InvalidStatusTransitionError(AutomationServiceError):
    """Raised when a delivery attempts an unsupported status change."""
