"""
workflow_batch.domain -- Pure types for scheduler runs.

ZERO I/O.
"""

from workflow_batch.domain.window import DueWindow, SchedulerRunResult, window_for_tick

__all__ = [
    "DueWindow",
    "SchedulerRunResult",
    "window_for_tick",
]
