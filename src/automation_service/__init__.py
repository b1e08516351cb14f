"""Event-driven automation and signed webhook delivery service."""

__version__ = "0.1.0"
