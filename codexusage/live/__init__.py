"""Live snapshot scheduling."""

from .scheduler import ChangeDrivenScheduler, PollingScheduler, SnapshotScheduler, create_scheduler
