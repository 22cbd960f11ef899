"""WebSocket fan-out of file and text change events."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from fastapi import WebSocket

log = structlog.get_logger()


class WebSocketHub:
    """
    Notification sink that broadcasts to the sockets of one environment.

    Frames are JSON objects with a `type` of `fileUpdate` or `textUpdate`.
    Emits may come from any thread; delivery always happens on the event
    loop that accepted the sockets.
    """

    def __init__(self) -> None:
        self._clients: dict[str, set[WebSocket]] = defaultdict(set)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

    async def connect(self, env: str, websocket: WebSocket) -> None:
        """Accept a socket and subscribe it to env."""
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        self._clients[env].add(websocket)
        log.debug("websocket_connected", environment=env, clients=len(self._clients[env]))

    def disconnect(self, env: str, websocket: WebSocket) -> None:
        """Unsubscribe a socket."""
        clients = self._clients.get(env)
        if clients is None:
            return
        clients.discard(websocket)
        if not clients:
            del self._clients[env]
        log.debug("websocket_disconnected", environment=env)

    def client_count(self, env: str) -> int:
        return len(self._clients.get(env, ()))

    # =========================================================================
    # NotificationSink
    # =========================================================================

    def emit_file_list_changed(self, env: str) -> None:
        self._dispatch(env, {"type": "fileUpdate"})

    def emit_text_changed(self, env: str, text: str, exclude: Any = None) -> None:
        self._dispatch(env, {"type": "textUpdate", "text": text}, exclude=exclude)

    # =========================================================================
    # Delivery
    # =========================================================================

    def _dispatch(self, env: str, payload: dict[str, Any], exclude: Any = None) -> None:
        if self._loop is None or self._loop.is_closed() or not self._clients.get(env):
            return

        loop = self._loop
        coro = self._broadcast(env, payload, exclude)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._create_tracked_task(loop, coro)
        else:
            # Different thread or loop: hand over to the sockets' loop
            loop.call_soon_threadsafe(self._create_tracked_task, loop, coro)

    def _create_tracked_task(
        self,
        loop: asyncio.AbstractEventLoop,
        coro: Coroutine[Any, Any, None],
    ) -> None:
        """Create a task and track it for cleanup."""
        task = loop.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _broadcast(self, env: str, payload: dict[str, Any], exclude: Any) -> None:
        for websocket in list(self._clients.get(env, ())):
            if websocket is exclude:
                continue
            try:
                await websocket.send_json(payload)
            except Exception as e:
                log.debug("websocket_send_failed", environment=env, error=str(e))
                self.disconnect(env, websocket)
