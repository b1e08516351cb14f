"""Structured key=value logging shared by the backend services."""
from __future__ import annotations

import logging
import sys

import structlog

# Keys whose values must never reach a log sink verbatim.
REDACTED_KEYS = frozenset({
    "secret",
    "secret_key",
    "authorization",
    "x-api-key",
})

_REDACTED = "***"


def _sanitize_string(value: str) -> str:
    """Escape control characters so the log entry stays on a single line."""
    return (
        value.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def _sanitize(value):
    if isinstance(value, str):
        return _sanitize_string(value)
    if isinstance(value, (list, tuple)):
        return [_sanitize_string(item) if isinstance(item, str) else item for item in value]
    if isinstance(value, dict):
        return {
            k: _REDACTED if str(k).lower() in REDACTED_KEYS else _sanitize(v)
            for k, v in value.items()
        }
    return value


def redact_secrets_processor(logger, method_name, event_dict):
    """Mask secret material passed as a top-level field or nested in a dict field."""
    for key in list(event_dict):
        if key.lower() in REDACTED_KEYS:
            event_dict[key] = _REDACTED
    return event_dict


def replace_newlines_processor(logger, method_name, event_dict):
    """
    Replace newlines in string values (including formatted tracebacks) with \\n
    so every entry is a single line.
    """
    for key, value in event_dict.items():
        event_dict[key] = _sanitize(value)
    return event_dict


class SingleLineFormatter(logging.Formatter):
    """Formatter that ensures output is always on a single line."""

    def format(self, record):
        message = super().format(record)
        return message.replace("\n", "\\n").replace("\r", "\\r")


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structlog for key=value output suitable for Loki/Alloy."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SingleLineFormatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    # aiohttp access and client loggers go through the root handler
    for name in ("aiohttp.access", "aiohttp.client"):
        aiohttp_logger = logging.getLogger(name)
        aiohttp_logger.setLevel(level)
        aiohttp_logger.propagate = True
        aiohttp_logger.handlers = []

    # Format: timestamp=... level=info logger=automation_service.services.event_bus event=trigger_executed ...
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets_processor,
            # Must run after format_exc_info so tracebacks are flattened too
            replace_newlines_processor,
            structlog.processors.KeyValueRenderer(
                key_order=["timestamp", "level", "logger", "event", "message"],
                drop_missing=True,
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
