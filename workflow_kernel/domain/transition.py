"""
Transition value object (``workflow_kernel.domain.transition``).

Responsibility
--------------
One concrete state change of one workflow field on one entity.  A single
type covers immediate, scheduled and executed transitions; the
``is_scheduled`` / ``is_executed`` / ``is_forced`` flags are independent
and the execution engine branches on them.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  The live entity object may ride
along in ``entity`` but is never touched here.

Invariants enforced
-------------------
* Once ``is_executed`` is set, every recorded column (workflow, from/to
  state, entity reference, field name, actor, timestamp and the forced and
  scheduled flags) is frozen; only ``comment`` and the attached-field
  data may change, matching the history table listener.  Violations raise
  ``ImmutabilityViolationError``.
* ``create`` rejects a transition with neither a source state nor an
  entity (``MissingTransitionDataError``), states outside the workflow
  (``UnknownStateError``) and states of another workflow
  (``CrossWorkflowTransitionError``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from workflow_kernel.domain.entity import EntityRef
from workflow_kernel.exceptions import (
    CrossWorkflowTransitionError,
    ImmutabilityViolationError,
    MissingTransitionDataError,
    UnknownStateError,
)

if TYPE_CHECKING:
    from workflow_kernel.domain.workflow import WorkflowRegistry, WorkflowType

# Fields that may not change after execution
STATE_FIELDS = frozenset({
    "workflow_id",
    "from_state",
    "to_state",
    "entity_ref",
    "field_name",
    "actor_id",
    "timestamp",
    "is_forced",
    "is_scheduled",
})

DEFAULT_SCHEDULED_COMMENT = "Scheduled by user {actor_id}."
REVERT_COMMENT = "State reverted."


class TransitionLifecycle(str, Enum):
    """Lifecycle of the Transition object itself."""

    PENDING_IMMEDIATE = "pending_immediate"
    PENDING_SCHEDULED = "pending_scheduled"
    EXECUTED = "executed"


@dataclass(eq=False)
class Transition:
    """A requested, scheduled or executed state change.

    ``timestamp`` is unix seconds: request time for immediate transitions,
    due time while scheduled, and the firing time once the scheduler
    executes it.  ``hid`` is the history id once the
    transition has been recorded as executed.
    """

    workflow_id: str
    from_state: str
    to_state: str
    entity_ref: EntityRef
    field_name: str = ""
    actor_id: str = "0"
    timestamp: int = 0
    comment: str = ""
    is_scheduled: bool = False
    is_executed: bool = False
    is_forced: bool = False
    hid: int | None = None
    attached_fields: dict[str, Any] = field(default_factory=dict)
    entity: Any = field(default=None, repr=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if (
            name in STATE_FIELDS
            and self.__dict__.get("is_executed", False)
            and name in self.__dict__
            and self.__dict__[name] != value
        ):
            raise ImmutabilityViolationError(
                entity_type=self.entity_ref.entity_type,
                entity_id=str(self.entity_ref.entity_id),
                reason=f"Cannot modify {name!r} of an executed transition",
            )
        super().__setattr__(name, value)

    @classmethod
    def create(
        cls,
        workflow: WorkflowType,
        from_state: str | None,
        to_state: str,
        entity_ref: EntityRef | None,
        field_name: str = "",
        actor_id: str = "0",
        timestamp: int = 0,
        comment: str = "",
        scheduled: bool = False,
        forced: bool = False,
        entity: Any = None,
        registry: WorkflowRegistry | None = None,
    ) -> Transition:
        """Build a transition, validating it against its workflow.

        Raises:
            MissingTransitionDataError: no source state or no entity.
            CrossWorkflowTransitionError: a state belongs to another
                registered workflow.
            UnknownStateError: a state is not known at all.
        """
        if not from_state and entity_ref is None:
            raise MissingTransitionDataError("no source state and no entity")
        if not from_state:
            raise MissingTransitionDataError(
                f"no source state for {entity_ref}; resolve the current state first"
            )
        if entity_ref is None:
            raise MissingTransitionDataError("no target entity")
        for state_id in (from_state, to_state):
            if workflow.has_state(state_id):
                continue
            if registry is not None and registry.workflow_of_state(state_id) is not None:
                raise CrossWorkflowTransitionError(
                    workflow.workflow_id, from_state, to_state,
                )
            raise UnknownStateError(workflow.workflow_id, state_id)
        return cls(
            workflow_id=workflow.workflow_id,
            from_state=from_state,
            to_state=to_state,
            entity_ref=entity_ref,
            field_name=field_name,
            actor_id=actor_id,
            timestamp=timestamp,
            comment=comment,
            is_scheduled=scheduled,
            is_forced=forced,
            entity=entity,
        )

    @property
    def label(self) -> str:
        """Identifies the move even before an id exists."""
        return f"{self.from_state}-{self.to_state}"

    @property
    def lifecycle(self) -> TransitionLifecycle:
        if self.is_executed:
            return TransitionLifecycle.EXECUTED
        if self.is_scheduled:
            return TransitionLifecycle.PENDING_SCHEDULED
        return TransitionLifecycle.PENDING_IMMEDIATE

    def has_state_change(self) -> bool:
        return self.from_state != self.to_state

    def is_empty(self) -> bool:
        """No state change, no comment and no attached-field data."""
        if self.has_state_change():
            return False
        if self.comment:
            return False
        return not any(v not in (None, "", [], {}) for v in self.attached_fields.values())

    def is_revertable(self, workflow: WorkflowType) -> bool:
        """True when the from-state is a valid, active, non-creation target."""
        if not self.has_state_change():
            return False
        state = workflow.state(self.from_state)
        if state is None or not state.is_active:
            return False
        return not state.is_creation_state

    def schedule(self, scheduled: bool = True) -> None:
        if self.is_executed:
            raise ImmutabilityViolationError(
                entity_type=self.entity_ref.entity_type,
                entity_id=str(self.entity_ref.entity_id),
                reason="Cannot reschedule an executed transition",
            )
        self.is_scheduled = scheduled

    def force(self, forced: bool = True) -> None:
        self.is_forced = forced

    def add_default_comment(self) -> None:
        self.comment = DEFAULT_SCHEDULED_COMMENT.format(actor_id=self.actor_id)

    def inverse(self, actor_id: str, timestamp: int, comment: str = REVERT_COMMENT) -> Transition:
        """A new pending transition that undoes this one."""
        return Transition(
            workflow_id=self.workflow_id,
            from_state=self.to_state,
            to_state=self.from_state,
            entity_ref=self.entity_ref,
            field_name=self.field_name,
            actor_id=actor_id,
            timestamp=timestamp,
            comment=comment,
            entity=self.entity,
        )
