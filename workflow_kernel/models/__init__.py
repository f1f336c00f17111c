"""ORM models for the workflow kernel."""

from workflow_kernel.models.transition import (
    ScheduledTransitionModel,
    TransitionHistoryModel,
)

__all__ = [
    "ScheduledTransitionModel",
    "TransitionHistoryModel",
]
