"""
Pure due-window arithmetic and scheduler run results.

Contract:
    A due window is open on both ends: a scheduled transition with due
    time ``t`` belongs to ``DueWindow(start, end)`` iff ``start < t < end``.
    ``window_for_tick`` turns "last run" and "now" into a window that
    includes transitions due exactly at ``now``; ``next_watermark`` keeps
    rows that were left pending inside the following window.

Architecture: workflow_batch/domain.  ZERO I/O.  All timestamps come from
    the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from workflow_kernel.domain.execution import ExecutionResult


@dataclass(frozen=True)
class DueWindow:
    """Open interval (start, end) of unix seconds."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} precedes start {self.start}")

    def contains(self, timestamp: int) -> bool:
        return self.start < timestamp < self.end


def window_for_tick(last_run: int | None, now: int) -> DueWindow:
    """Window covering everything due after ``last_run`` up to and including ``now``.

    The first run (``last_run`` None) starts at 0.
    """
    return DueWindow(start=last_run or 0, end=now + 1)


def next_watermark(now: int, earliest_pending_due: int | None) -> int:
    """Where the next tick window starts.

    Normally ``now``.  When rows due in this run were left pending, just
    before the earliest of them, so the next tick picks them up again.
    """
    if earliest_pending_due is None:
        return now
    return min(now, earliest_pending_due - 1)


@dataclass(frozen=True)
class SchedulerRunResult:
    """Immutable result of one scheduler run."""

    window: DueWindow
    due: int = 0
    executed: int = 0
    discarded: int = 0
    skipped: int = 0
    failed: int = 0
    cache_invalidated: bool = False
    earliest_pending_due: int | None = None
    results: tuple[ExecutionResult, ...] = field(default=(), repr=False)
    duration_ms: int = 0
    run_id: str | None = None
