"""Observability: structured logging."""

from sharepad.observability.logging import configure_logging

__all__ = ["configure_logging"]
