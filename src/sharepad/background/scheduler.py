"""Periodic maintenance: upload session reaping and empty-environment sweeps."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

    from sharepad.service import Sharepad

log = structlog.get_logger()


class MaintenanceScheduler:
    """
    Async scheduler for storage maintenance.

    Runs the session reaper and the environment sweep on fixed intervals.
    Designed to run within FastAPI lifespan context.
    """

    def __init__(
        self,
        service: Sharepad,
        reaper_interval_seconds: float = 10,
        sweep_interval_seconds: float = 300,
    ) -> None:
        self._service = service
        self._reaper_interval = reaper_interval_seconds
        self._sweep_interval = sweep_interval_seconds
        self._running = False
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the maintenance loops."""
        if self._running:
            log.warning("scheduler_already_running")
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(
                self._run_loop("session_reaper", self._service.reap_sessions, self._reaper_interval)
            ),
            asyncio.create_task(
                self._run_loop(
                    "environment_sweep", self._service.sweep_environments, self._sweep_interval
                )
            ),
        ]
        log.info(
            "scheduler_started",
            reaper_interval=self._reaper_interval,
            sweep_interval=self._sweep_interval,
        )

    async def stop(self) -> None:
        """Stop the maintenance loops."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        log.info("scheduler_stopped")

    async def _run_loop(self, name: str, job: Callable[[], int], interval: float) -> None:
        """Run job every interval seconds until stopped."""
        while self._running:
            await asyncio.sleep(interval)
            try:
                job()
            except Exception:
                log.exception("maintenance_job_failed", job=name)
