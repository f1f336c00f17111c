"""
Execution outcomes and the per-run duplicate-execution guard.

Responsibility:
    ``ExecutionOutcome`` names every way an execute call can end.  Only
    hard failures are exceptions; everything here is a returned value.
    ``ExecutionContext`` remembers, for one request or one scheduler run,
    which (entity, field, move) combinations were already executed.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - The guard lives exactly as long as its ``ExecutionContext``; there
      is no process-global state.  A fresh context starts empty.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID, uuid4

from workflow_kernel.domain.transition import Transition


class ExecutionOutcome(str, Enum):
    """How an execute call ended."""

    EXECUTED = "executed"
    SCHEDULED = "scheduled"
    NO_OP = "no_op"
    # Soft failures: the state stays where it was
    AUTHORIZATION_DENIED = "authorization_denied"
    VETOED_BY_OBSERVER = "vetoed_by_observer"
    DUPLICATE_EXECUTION_SUPPRESSED = "duplicate_execution_suppressed"
    STALE_SCHEDULED_TRANSITION = "stale_scheduled_transition"
    INVALID = "invalid"
    ENTITY_MISSING = "entity_missing"

    @property
    def is_failure(self) -> bool:
        return self in _FAILURES


_FAILURES = frozenset({
    ExecutionOutcome.AUTHORIZATION_DENIED,
    ExecutionOutcome.VETOED_BY_OBSERVER,
    ExecutionOutcome.STALE_SCHEDULED_TRANSITION,
    ExecutionOutcome.INVALID,
    ExecutionOutcome.ENTITY_MISSING,
})


@dataclass(frozen=True)
class ExecutionResult:
    """Result of one execute call.

    ``state_id`` is the resulting state: the to-state on success, the
    unchanged from-state on every failure path and for scheduled
    transitions, the cached value for suppressed duplicates.
    """

    outcome: ExecutionOutcome
    state_id: str | None
    transition: Transition
    reason: str = ""

    @property
    def hid(self) -> int | None:
        return self.transition.hid

    @property
    def changed(self) -> bool:
        return self.state_id != self.transition.from_state


GuardKey = tuple[str, str, str, str]


class ExecutionContext:
    """Duplicate-execution guard for one request or scheduler run.

    Keyed by (entity type, entity id, field name, "from-to" label).  The
    value is the provisional from-state while an execution is in flight
    and the final resulting state afterwards.
    """

    def __init__(self, name: str = "request", scheduler_run: bool = False):
        self.name = name
        self.scheduler_run = scheduler_run
        self.context_id: UUID = uuid4()
        self._outcomes: dict[GuardKey, str | None] = {}

    @classmethod
    def for_scheduler(cls) -> ExecutionContext:
        return cls(name="scheduler", scheduler_run=True)

    @staticmethod
    def key_for(transition: Transition) -> GuardKey:
        ref = transition.entity_ref
        return (
            ref.entity_type,
            str(ref.entity_id),
            transition.field_name,
            transition.label,
        )

    def seen(self, transition: Transition) -> bool:
        return self.key_for(transition) in self._outcomes

    def lookup(self, transition: Transition) -> str | None:
        return self._outcomes.get(self.key_for(transition))

    def record(self, transition: Transition, state_id: str | None) -> None:
        self._outcomes[self.key_for(transition)] = state_id

    def reset(self) -> None:
        self._outcomes.clear()

    def __len__(self) -> int:
        return len(self._outcomes)
