"""Dependency injection for route handlers."""

from __future__ import annotations

from fastapi import HTTPException

from sharepad.server.events import WebSocketHub
from sharepad.service import Sharepad

_service: Sharepad | None = None
_hub: WebSocketHub | None = None


def get_service() -> Sharepad:
    """Get the service instance."""
    if _service is None:
        raise HTTPException(status_code=503, detail="Storage not initialized")
    return _service


def set_service(service: Sharepad | None) -> None:
    """Set the service instance (called on startup)."""
    global _service
    _service = service


def get_hub() -> WebSocketHub:
    """Get the WebSocket hub, creating it on first use."""
    global _hub
    if _hub is None:
        _hub = WebSocketHub()
    return _hub


def set_hub(hub: WebSocketHub | None) -> None:
    global _hub
    _hub = hub
