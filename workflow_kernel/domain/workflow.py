"""
Canonical workflow definition types (``workflow_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines: the workflow type, its
states, the configured state-to-state moves ("config transitions") with
their authorization policy, and per-workflow settings.  Loaded as
configuration at startup and immutable at runtime.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Config transitions reference only states of their own workflow type.
* Exactly one state is the creation state.
* State ids are unique within a workflow type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from workflow_kernel.domain.authorization import AUTHOR_CAPABILITY
from workflow_kernel.exceptions import (
    InvalidWorkflowDefinitionError,
    UnknownWorkflowError,
)


class CommentSetting(str, Enum):
    """Whether a transition comment is hidden, optional or required."""

    HIDDEN = "hidden"
    OPTIONAL = "optional"
    REQUIRED = "required"


@dataclass(frozen=True)
class WorkflowSettings:
    """Per-workflow behaviour switches."""

    comment: CommentSetting = CommentSetting.OPTIONAL
    schedule_enabled: bool = True
    # Log every executed state change at notice level
    watchdog_log: bool = True
    always_update_entity: bool = False


@dataclass(frozen=True)
class State:
    """One node of a workflow type's state machine.

    Inactive states stay valid for history but are not revertable-to.
    """

    state_id: str
    label: str
    weight: int = 0
    is_creation_state: bool = False
    is_active: bool = True


@dataclass(frozen=True)
class ConfigTransition:
    """An allowed (from_state, to_state) edge plus its authorization policy.

    Contract: the move is granted when the actor's effective capabilities
    intersect ``capabilities``, or when ``author_may`` is set and the
    actor is the entity's author.  An empty ``capabilities`` tuple with
    ``author_may=False`` grants nobody (bypass still applies).
    """

    workflow_id: str
    from_state: str
    to_state: str
    capabilities: tuple[str, ...] = ()
    author_may: bool = False

    def has_state_change(self) -> bool:
        return self.from_state != self.to_state

    def is_allowed_for(self, effective_capabilities: frozenset[str]) -> bool:
        """Evaluate this edge's own predicate against a capability set."""
        if self.author_may and AUTHOR_CAPABILITY in effective_capabilities:
            return True
        return any(c in effective_capabilities for c in self.capabilities)


@dataclass(frozen=True)
class WorkflowType:
    """A state machine definition for a content workflow.

    Contract: frozen; ``config_transitions`` reference only states in
    ``states``.  Guarantees: exactly one creation state.
    """

    workflow_id: str
    label: str
    states: tuple[State, ...]
    config_transitions: tuple[ConfigTransition, ...] = ()
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)

    def __post_init__(self) -> None:
        errors = validate_workflow(self)
        if errors:
            raise InvalidWorkflowDefinitionError(self.workflow_id, errors)

    def state(self, state_id: str | None) -> State | None:
        """Return the state with this id, or None when unknown."""
        if not state_id:
            return None
        for s in self.states:
            if s.state_id == state_id:
                return s
        return None

    def has_state(self, state_id: str | None) -> bool:
        return self.state(state_id) is not None

    def creation_state(self) -> State:
        return next(s for s in self.states if s.is_creation_state)

    def ordered_states(self) -> tuple[State, ...]:
        """States by weight; declaration order breaks ties."""
        indexed = sorted(enumerate(self.states), key=lambda p: (p[1].weight, p[0]))
        return tuple(s for _, s in indexed)

    def transitions_between(
        self, from_state: str, to_state: str,
    ) -> tuple[ConfigTransition, ...]:
        return tuple(
            t for t in self.config_transitions
            if t.from_state == from_state and t.to_state == to_state
        )

    def transitions_from(self, from_state: str) -> tuple[ConfigTransition, ...]:
        return tuple(t for t in self.config_transitions if t.from_state == from_state)


def validate_workflow(workflow: WorkflowType) -> list[str]:
    """Return structural errors for a workflow definition (empty when valid)."""
    errors: list[str] = []
    ids = [s.state_id for s in workflow.states]
    if not ids:
        errors.append("workflow has no states")
    if len(ids) != len(set(ids)):
        errors.append("duplicate state ids")
    creation = [s for s in workflow.states if s.is_creation_state]
    if len(creation) != 1:
        errors.append(f"expected exactly one creation state, found {len(creation)}")
    known = set(ids)
    for t in workflow.config_transitions:
        if t.workflow_id != workflow.workflow_id:
            errors.append(
                f"transition {t.from_state}->{t.to_state} belongs to "
                f"workflow {t.workflow_id!r}"
            )
        if t.from_state not in known or t.to_state not in known:
            errors.append(
                f"transition {t.from_state}->{t.to_state} references an unknown state"
            )
    return errors


class WorkflowRegistry:
    """Lookup of loaded workflow types by id.

    Built once at startup (see ``workflow_config``) and treated as
    read-only afterwards.
    """

    def __init__(self, workflows: tuple[WorkflowType, ...] | list[WorkflowType] = ()):
        self._workflows: dict[str, WorkflowType] = {}
        for wf in workflows:
            self.register(wf)

    def register(self, workflow: WorkflowType) -> None:
        self._workflows[workflow.workflow_id] = workflow

    def get(self, workflow_id: str | None) -> WorkflowType | None:
        if not workflow_id:
            return None
        return self._workflows.get(workflow_id)

    def require(self, workflow_id: str) -> WorkflowType:
        wf = self.get(workflow_id)
        if wf is None:
            raise UnknownWorkflowError(workflow_id)
        return wf

    def workflow_of_state(self, state_id: str) -> WorkflowType | None:
        """Find the workflow type that owns a state id."""
        for wf in self._workflows.values():
            if wf.has_state(state_id):
                return wf
        return None

    def __iter__(self):
        return iter(self._workflows.values())

    def __len__(self) -> int:
        return len(self._workflows)
