"""
Scheduler -- Fires due scheduled transitions.

Contract:
    ``run_due(window_start, window_end)`` loads every scheduled transition
    due strictly inside the window, oldest first, and for each one either
    executes it forced or, when the entity has left the expected from-state,
    deletes it and logs the discrepancy.  ``tick()`` runs the window since
    the previous tick in a fresh session; ``start()`` / ``stop()`` run ticks
    on a background thread.

Architecture: workflow_batch/services.  Uses workflow_batch.domain.window
    for pure window arithmetic and the kernel's ExecutionEngine for
    execution.

Invariants enforced:
    - All timestamps from the injected Clock.
    - One ExecutionContext per run: the duplicate guard never outlives it.
    - Stale transitions are discarded, never re-targeted.
    - Graceful shutdown: the stop signal is checked between transitions.
"""

from __future__ import annotations

import threading
import time
from typing import Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.execution import (
    ExecutionContext,
    ExecutionOutcome,
    ExecutionResult,
)
from workflow_kernel.domain.transition import Transition
from workflow_kernel.exceptions import OptimisticLockError, WorkflowKernelError
from workflow_kernel.logging_config import LogContext, get_logger
from workflow_kernel.services.execution_engine import ExecutionEngine, emit_workflow_trace

from workflow_batch.domain.window import (
    DueWindow,
    SchedulerRunResult,
    next_watermark,
    window_for_tick,
)

logger = get_logger("batch.scheduler")


class Scheduler:
    """Runs due scheduled transitions.

    Contract:
        - ``run_due()`` processes one window in the given (or a new) session.
        - ``tick()`` processes ``(last_run, now]`` and commits.  Rows left
          pending (vetoed, failed, entity missing) hold the watermark
          back so the next tick retries them.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler: overlapping runs rely on the
          engine's optimistic state check, not on locking.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        engine_factory: Callable[[Session], ExecutionEngine],
        clock: Clock | None = None,
        invalidate_rendered: Callable[[], None] | None = None,
        tick_interval_seconds: int = 60,
    ):
        self._session_factory = session_factory
        self._engine_factory = engine_factory
        self._clock = clock or SystemClock()
        self._invalidate_rendered = invalidate_rendered
        self._tick_interval = tick_interval_seconds
        self._last_run: int | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def last_run(self) -> int | None:
        return self._last_run

    def run_due(
        self,
        window_start: int,
        window_end: int,
        session: Session | None = None,
    ) -> SchedulerRunResult:
        """Process every transition due in ``(window_start, window_end)``.

        With a session the caller owns the transaction; without one a
        session is opened, committed and closed here.
        """
        window = DueWindow(window_start, window_end)
        if session is not None:
            return self._run_window(self._engine_factory(session), window)

        own = self._session_factory()
        try:
            result = self._run_window(self._engine_factory(own), window)
            own.commit()
            return result
        except Exception:
            own.rollback()
            raise
        finally:
            own.close()

    def tick(self) -> SchedulerRunResult | None:
        """Run the window since the previous tick (public for testing).

        Returns None when the run failed; the next tick retries the
        same window.
        """
        now = self._clock.timestamp()
        window = window_for_tick(self._last_run, now)
        try:
            result = self.run_due(window.start, window.end)
        except Exception:
            logger.exception(
                "scheduler_tick_failed",
                extra={"window_start": window.start, "window_end": window.end},
            )
            return None
        self._last_run = next_watermark(now, result.earliest_pending_due)
        return result

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="workflow-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _run_window(self, engine: ExecutionEngine, window: DueWindow) -> SchedulerRunResult:
        t0 = time.monotonic()
        run_id = str(uuid4())
        context = ExecutionContext.for_scheduler()
        counts = {"executed": 0, "discarded": 0, "skipped": 0, "failed": 0}
        results: list[ExecutionResult] = []
        clear_cache = False
        pending: list[int] = []

        with LogContext.bind(run_id=run_id):
            due = engine.history.due_scheduled(window.start, window.end)
            logger.info(
                "scheduler_run_started",
                extra={"window_start": window.start, "window_end": window.end, "due": len(due)},
            )

            for index, transition in enumerate(due):
                if self._stop_event.is_set():
                    pending.extend(t.timestamp for t in due[index:])
                    break
                due_at = transition.timestamp
                try:
                    status, result = self._process(engine, context, transition)
                except WorkflowKernelError:
                    logger.exception(
                        "scheduled_transition_failed",
                        extra={
                            "entity_type": transition.entity_ref.entity_type,
                            "entity_id": str(transition.entity_ref.entity_id),
                            "field_name": transition.field_name,
                        },
                    )
                    counts["failed"] += 1
                    pending.append(due_at)
                    continue
                counts[status] += 1
                if status in ("skipped", "failed"):
                    pending.append(due_at)
                if result is not None:
                    results.append(result)
                if status == "executed" and not transition.field_name:
                    clear_cache = True

            if clear_cache and self._invalidate_rendered is not None:
                self._invalidate_rendered()
                logger.info("rendered_cache_invalidated")

            run = SchedulerRunResult(
                window=window,
                due=len(due),
                executed=counts["executed"],
                discarded=counts["discarded"],
                skipped=counts["skipped"],
                failed=counts["failed"],
                cache_invalidated=clear_cache and self._invalidate_rendered is not None,
                earliest_pending_due=min(pending, default=None),
                results=tuple(results),
                duration_ms=int((time.monotonic() - t0) * 1000),
                run_id=run_id,
            )
            logger.info(
                "scheduler_run_completed",
                extra={
                    "due": run.due,
                    "executed": run.executed,
                    "discarded": run.discarded,
                    "skipped": run.skipped,
                    "failed": run.failed,
                    "earliest_pending_due": run.earliest_pending_due,
                    "duration_ms": run.duration_ms,
                },
            )
        return run

    def _process(
        self,
        engine: ExecutionEngine,
        context: ExecutionContext,
        transition: Transition,
    ) -> tuple[str, ExecutionResult | None]:
        """Fire or discard one due transition; returns (status, result)."""
        ref = transition.entity_ref
        workflow = engine.registry.get(transition.workflow_id)
        entity = engine.entities.load(ref)
        if entity is None or workflow is None:
            logger.warning(
                "scheduled_transition_skipped",
                extra={
                    "entity_type": ref.entity_type,
                    "entity_id": str(ref.entity_id),
                    "workflow_id": transition.workflow_id,
                    "reason": "entity missing" if entity is None else "unknown workflow",
                },
            )
            return "skipped", None

        current = engine.history.current_state(
            ref, transition.field_name, workflow, is_new=engine.entities.is_new(entity),
        )
        if current != transition.from_state:
            return "discarded", self._discard(engine, transition, workflow, current)

        transition.entity = entity
        if not transition.comment:
            transition.add_default_comment()
        transition.schedule(False)
        # History records the firing time, not the due time
        transition.timestamp = engine.clock.timestamp()
        try:
            result = engine.execute_and_update_entity(
                transition, context, force=True, expected_state=transition.from_state,
            )
        except OptimisticLockError as exc:
            return "discarded", self._discard(engine, transition, workflow, exc.actual_state)

        if result.outcome is ExecutionOutcome.EXECUTED:
            return "executed", result
        logger.warning(
            "scheduled_transition_not_executed",
            extra={"outcome": result.outcome.value, "reason": result.reason},
        )
        return "failed", result

    def _discard(
        self,
        engine: ExecutionEngine,
        transition: Transition,
        workflow,
        actual_state: str | None,
    ) -> ExecutionResult:
        """Delete a stale scheduled transition and log the discrepancy."""
        engine.history.delete_scheduled(transition.entity_ref, transition.field_name)
        logger.warning(
            "scheduled_transition_discarded",
            extra={
                "entity_type": transition.entity_ref.entity_type,
                "entity_id": str(transition.entity_ref.entity_id),
                "field_name": transition.field_name,
                "expected_state": transition.from_state,
                "actual_state": actual_state,
            },
        )
        reason = (
            f"Entity is in state {actual_state!r}, "
            f"expected {transition.from_state!r}"
        )
        emit_workflow_trace(
            transition, workflow, ExecutionOutcome.STALE_SCHEDULED_TRANSITION, reason,
            0.0, engine.clock, result_state=actual_state, outcome_sink=engine.outcome_sink,
        )
        return ExecutionResult(
            ExecutionOutcome.STALE_SCHEDULED_TRANSITION, actual_state, transition, reason,
        )
