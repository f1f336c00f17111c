"""workflow_batch.services -- Scheduler runs and the polling loop."""

from workflow_batch.services.scheduler import Scheduler

__all__ = ["Scheduler"]
