"""
workflow_kernel.services.execution_engine -- Transition execution.

Responsibility:
    Runs one transition through entity resolution, the duplicate guard,
    validation, authorization, pre-transition observers, persistence and
    the entity-field update, then notifies post-transition observers.
    Thin coordinator: decisions are delegated to ``AuthorizationEngine``,
    persistence to ``HistoryStore``, entity access to the ``EntityAdapter``.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - Soft failures (entity missing, invalid, denied, vetoed, duplicate)
      never raise.  They return the unchanged from-state and are logged.
    - Only persistence failures (``PersistenceError``) and missing
      required data propagate.  The entity field is restored to its prior
      value before they do.
    - Persisting the history record and writing the entity field happen
      inside one SAVEPOINT.  When ``expected_state`` is given, the current
      state is re-read inside that savepoint and a mismatch raises
      ``OptimisticLockError``.
    - Exactly one ``workflow_transition`` trace record per execute call.
"""

from __future__ import annotations

import time
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.entity import EntityAdapter
from workflow_kernel.domain.execution import (
    ExecutionContext,
    ExecutionOutcome,
    ExecutionResult,
)
from workflow_kernel.domain.observers import ObserverRegistry
from workflow_kernel.domain.transition import Transition
from workflow_kernel.domain.workflow import WorkflowRegistry, WorkflowType
from workflow_kernel.exceptions import (
    OptimisticLockError,
    PersistenceError,
    WorkflowKernelError,
)
from workflow_kernel.logging_config import LogContext, get_logger
from workflow_kernel.services.authorization import AuthorizationEngine
from workflow_kernel.services.history_store import HistoryStore

logger = get_logger("services.execution_engine")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"

# Outcomes logged at WARNING; everything else is INFO
_WARNING_OUTCOMES = frozenset({
    ExecutionOutcome.AUTHORIZATION_DENIED,
    ExecutionOutcome.STALE_SCHEDULED_TRANSITION,
    ExecutionOutcome.INVALID,
    ExecutionOutcome.ENTITY_MISSING,
})


def _state_label(workflow: WorkflowType | None, state_id: str | None) -> str | None:
    if workflow is None:
        return state_id
    state = workflow.state(state_id)
    return state.label if state is not None else state_id


def emit_workflow_trace(
    transition: Transition,
    workflow: WorkflowType | None,
    outcome: ExecutionOutcome,
    reason: str,
    duration_ms: float,
    clock: Clock,
    result_state: str | None = None,
    outcome_sink: Callable[[dict], None] | None = None,
) -> None:
    """Emit a structured workflow transition record for traceability."""
    ref = transition.entity_ref
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "ts": clock.now().isoformat(),
        "workflow_id": transition.workflow_id,
        "entity_type": ref.entity_type,
        "entity_id": str(ref.entity_id),
        "field_name": transition.field_name,
        "from_state": transition.from_state,
        "to_state": transition.to_state,
        "from_label": _state_label(workflow, transition.from_state),
        "to_label": _state_label(workflow, transition.to_state),
        "result_state": result_state,
        "actor_id": transition.actor_id,
        "outcome": outcome.value,
        "reason": reason,
        "forced": transition.is_forced,
        "scheduled": transition.is_scheduled,
        "duration_ms": round(duration_ms, 3),
    }
    if transition.hid is not None:
        record["hid"] = transition.hid
    for key, val in LogContext.get_all().items():
        record.setdefault(key, val)
    if outcome in _WARNING_OUTCOMES:
        logger.warning("workflow_transition", extra=record)
    else:
        logger.info("workflow_transition", extra=record)
    record["message"] = "workflow_transition"
    if outcome_sink is not None:
        outcome_sink(record)


class ExecutionEngine:
    """Executes transitions against entities.

    The engine writes the workflow field in memory only.  Persisting the
    entity is the caller's job, or ``execute_and_update_entity``'s.
    """

    def __init__(
        self,
        session: Session,
        registry: WorkflowRegistry,
        authorization: AuthorizationEngine,
        entity_adapter: EntityAdapter,
        history_store: HistoryStore | None = None,
        observers: ObserverRegistry | None = None,
        clock: Clock | None = None,
        outcome_sink: Callable[[dict], None] | None = None,
    ) -> None:
        self._session = session
        self._registry = registry
        self._authorization = authorization
        self._entities = entity_adapter
        self._history = history_store or HistoryStore(session)
        self._observers = observers or ObserverRegistry()
        self._clock = clock or SystemClock()
        self._outcome_sink = outcome_sink

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def registry(self) -> WorkflowRegistry:
        return self._registry

    @property
    def entities(self) -> EntityAdapter:
        return self._entities

    @property
    def outcome_sink(self) -> Callable[[dict], None] | None:
        return self._outcome_sink

    def execute(
        self,
        transition: Transition,
        context: ExecutionContext,
        force: bool = False,
        expected_state: str | None = None,
    ) -> ExecutionResult:
        """Execute or schedule ``transition``.

        Returns an ExecutionResult whose ``state_id`` is the to-state on
        success and the unchanged from-state otherwise.

        Raises:
            PersistenceError: the history or schedule write failed.
            OptimisticLockError: ``expected_state`` no longer holds.
        """
        t0 = time.monotonic()
        if force and not transition.is_executed:
            transition.force(True)
        force = transition.is_forced
        if not transition.timestamp and not transition.is_executed:
            transition.timestamp = self._clock.timestamp()
        workflow = self._registry.get(transition.workflow_id)

        with LogContext.bind(
            workflow_id=transition.workflow_id,
            entity_id=transition.entity_ref.entity_id,
            actor_id=transition.actor_id,
        ):
            def finish(outcome: ExecutionOutcome, state_id: str | None, reason: str) -> ExecutionResult:
                context.record(transition, state_id)
                emit_workflow_trace(
                    transition, workflow, outcome, reason,
                    (time.monotonic() - t0) * 1000, self._clock,
                    result_state=state_id, outcome_sink=self._outcome_sink,
                )
                return ExecutionResult(outcome, state_id, transition, reason)

            # 1. Resolve the target entity
            entity = self._resolve_entity(transition)
            if entity is None:
                reason = f"Entity {transition.entity_ref} could not be resolved"
                emit_workflow_trace(
                    transition, workflow, ExecutionOutcome.ENTITY_MISSING, reason,
                    (time.monotonic() - t0) * 1000, self._clock,
                    result_state=transition.from_state, outcome_sink=self._outcome_sink,
                )
                return ExecutionResult(
                    ExecutionOutcome.ENTITY_MISSING, transition.from_state, transition, reason,
                )

            # 2. Duplicate-execution guard
            if context.seen(transition) and not transition.is_empty():
                cached = context.lookup(transition)
                logger.info(
                    "duplicate_execution_suppressed",
                    extra={
                        "entity_type": transition.entity_ref.entity_type,
                        "field_name": transition.field_name,
                        "label": transition.label,
                        "cached_state": cached,
                        "context": context.name,
                    },
                )
                emit_workflow_trace(
                    transition, workflow, ExecutionOutcome.DUPLICATE_EXECUTION_SUPPRESSED,
                    "Transition already executed in this context",
                    (time.monotonic() - t0) * 1000, self._clock,
                    result_state=cached, outcome_sink=self._outcome_sink,
                )
                return ExecutionResult(
                    ExecutionOutcome.DUPLICATE_EXECUTION_SUPPRESSED, cached, transition,
                    "Transition already executed in this context",
                )
            context.record(transition, transition.from_state)

            # 3. Validate
            problem = self._validate(transition, workflow)
            if problem:
                return finish(ExecutionOutcome.INVALID, transition.from_state, problem)

            # 4. Authorize
            if transition.has_state_change() and not force:
                if not self._authorization.is_allowed(transition, force=force):
                    return finish(
                        ExecutionOutcome.AUTHORIZATION_DENIED,
                        transition.from_state,
                        f"Actor {transition.actor_id} not allowed to go from "
                        f"{_state_label(workflow, transition.from_state)} to "
                        f"{_state_label(workflow, transition.to_state)}",
                    )

            # 5. Pre-transition observers
            vetoing = self._observers.first_veto(transition, transition.actor_id)
            if vetoing is not None:
                logger.info(
                    "transition_vetoed",
                    extra={"observer": type(vetoing).__name__, "label": transition.label},
                )
                return finish(
                    ExecutionOutcome.VETOED_BY_OBSERVER,
                    transition.from_state,
                    f"Transition vetoed by {type(vetoing).__name__}",
                )

            # 6. Persist
            if transition.is_scheduled:
                self._history.save_scheduled(transition)
                logger.info(
                    "transition_scheduled",
                    extra={
                        "entity_type": transition.entity_ref.entity_type,
                        "field_name": transition.field_name,
                        "to_label": _state_label(workflow, transition.to_state),
                        "due": transition.timestamp,
                    },
                )
                outcome = ExecutionOutcome.SCHEDULED
                state_id = transition.from_state
                reason = "Transition scheduled"
            else:
                self._execute_immediate(transition, workflow, entity, expected_state)
                if transition.hid is None:
                    outcome = ExecutionOutcome.NO_OP
                    reason = "Empty transition, nothing recorded"
                else:
                    outcome = ExecutionOutcome.EXECUTED
                    reason = "Transition executed"
                state_id = transition.to_state
                if transition.has_state_change() and workflow.settings.watchdog_log:
                    logger.info(
                        "workflow_scheduled_state_changed"
                        if context.scheduler_run else "workflow_state_changed",
                        extra={
                            "entity_type": transition.entity_ref.entity_type,
                            "field_name": transition.field_name,
                            "from_label": _state_label(workflow, transition.from_state),
                            "to_label": _state_label(workflow, transition.to_state),
                            "hid": transition.hid,
                        },
                    )

            # 7. Post-transition observers
            self._notify_post(transition)

            # 8-9. Record final outcome and return
            return finish(outcome, state_id, reason)

    def execute_and_update_entity(
        self,
        transition: Transition,
        context: ExecutionContext,
        force: bool = False,
        expected_state: str | None = None,
    ) -> ExecutionResult:
        """Execute, then save the entity when its state actually moved."""
        result = self.execute(transition, context, force=force, expected_state=expected_state)
        if (
            result.outcome is ExecutionOutcome.EXECUTED
            and transition.has_state_change()
            and transition.entity is not None
        ):
            self._entities.save(transition.entity)
            logger.debug(
                "entity_saved_after_transition",
                extra={"entity_type": transition.entity_ref.entity_type, "hid": transition.hid},
            )
        return result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _resolve_entity(self, transition: Transition) -> Any | None:
        entity = transition.entity
        if entity is None and transition.entity_ref.is_saved:
            entity = self._entities.load(transition.entity_ref)
        if entity is None:
            logger.warning(
                "transition_entity_missing",
                extra={
                    "entity_type": transition.entity_ref.entity_type,
                    "field_name": transition.field_name,
                },
            )
            return None
        transition.entity = entity
        if not transition.entity_ref.is_saved and not transition.is_executed:
            ref = self._entities.ref_of(entity)
            if ref.is_saved:
                transition.entity_ref = ref
        return entity

    @staticmethod
    def _validate(transition: Transition, workflow: WorkflowType | None) -> str:
        """Return a reason string when the transition cannot run."""
        if workflow is None:
            return f"Unknown workflow {transition.workflow_id!r}"
        if transition.is_executed:
            return "Transition was already executed"
        if not workflow.has_state(transition.from_state):
            return f"From-state {transition.from_state!r} not in workflow {workflow.workflow_id!r}"
        if not workflow.has_state(transition.to_state):
            return f"To-state {transition.to_state!r} not in workflow {workflow.workflow_id!r}"
        return ""

    def _execute_immediate(
        self,
        transition: Transition,
        workflow: WorkflowType,
        entity: Any,
        expected_state: str | None,
    ) -> None:
        """Record history and write the entity field inside one savepoint."""
        field_name = transition.field_name
        previous_value = self._entities.get_current_state_value(entity, field_name)
        field_written = False
        try:
            with self._session.begin_nested():
                if expected_state is not None:
                    actual = self._history.current_state(
                        transition.entity_ref, field_name, workflow,
                    )
                    if actual != expected_state:
                        raise OptimisticLockError(
                            entity_type=transition.entity_ref.entity_type,
                            entity_id=str(transition.entity_ref.entity_id),
                            field_name=field_name,
                            expected_state=expected_state,
                            actual_state=actual,
                        )
                transition.is_executed = True
                transition.comment = self._observers.apply_comment_mutators(transition)
                if not transition.is_empty():
                    self._history.save_executed(transition)
                self._entities.set_state_value(entity, field_name, transition.to_state)
                field_written = True
                if workflow.settings.always_update_entity:
                    self._entities.set_changed_time(entity, transition.timestamp)
        except SQLAlchemyError as exc:
            self._undo(transition, entity, previous_value, field_written)
            raise PersistenceError(
                operation="record executed transition",
                entity_type=transition.entity_ref.entity_type,
                entity_id=str(transition.entity_ref.entity_id),
                reason=str(exc),
            ) from exc
        except WorkflowKernelError:
            self._undo(transition, entity, previous_value, field_written)
            raise

    def _undo(
        self, transition: Transition, entity: Any, previous_value: str | None, field_written: bool,
    ) -> None:
        if field_written:
            self._entities.set_state_value(entity, transition.field_name, previous_value)
        transition.is_executed = False
        transition.hid = None

    def _notify_post(self, transition: Transition) -> None:
        for observer in self._observers.post:
            try:
                observer.post_transition(transition, transition.actor_id)
            except Exception as e:  # noqa: BLE001
                logger.warning(
                    "post_transition_observer_failed",
                    extra={"observer": type(observer).__name__, "error": str(e)},
                )
