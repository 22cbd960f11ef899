"""Notification sink contract for file and text change events."""

from __future__ import annotations

from typing import Any, Protocol


class NotificationSink(Protocol):
    """
    Receives change events scoped to an environment.

    Calls are fire-and-forget: implementations must not block and callers
    never wait for delivery.
    """

    def emit_file_list_changed(self, env: str) -> None: ...

    def emit_text_changed(self, env: str, text: str, exclude: Any = None) -> None: ...


class NullNotificationSink:
    """Sink that drops every event."""

    def emit_file_list_changed(self, env: str) -> None:
        pass

    def emit_text_changed(self, env: str, text: str, exclude: Any = None) -> None:
        pass
