"""Background maintenance tasks."""

from sharepad.background.scheduler import MaintenanceScheduler

__all__ = ["MaintenanceScheduler"]
