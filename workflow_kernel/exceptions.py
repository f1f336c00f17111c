"""
Typed Exception Hierarchy for the Workflow Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine must be able to tell a broken configuration from a
failed write without parsing message strings.  Every exception therefore:
  1. Has its own class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Only two families ever reach an interactive caller as hard failures:
ConfigurationError (missing required data) and PersistenceError.  Denials,
vetoes, stale scheduled transitions and duplicate executions are NOT
exceptions -- they are ``ExecutionOutcome`` values returned by the engine
and logged (see ``workflow_kernel.domain.execution``).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorkflowKernelError (base)
    |
    +-- ConfigurationError
    |   +-- UnknownWorkflowError
    |   +-- UnknownStateError
    |   +-- CrossWorkflowTransitionError
    |   +-- MissingTransitionDataError
    |   +-- InvalidWorkflowDefinitionError
    |
    +-- PersistenceError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- CommandError
        +-- SchedulingDisabledError
        +-- CommentRequiredError
        +-- TransitionNotFoundError
        +-- NotRevertableError
        +-- CommentEditDeniedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-----------------------------------
Configuration   | UNKNOWN_WORKFLOW              | Workflow type id not registered
                | UNKNOWN_STATE                 | State id not part of the workflow
                | CROSS_WORKFLOW_TRANSITION     | From/to states in different types
                | MISSING_TRANSITION_DATA       | No source state and no entity
                | INVALID_WORKFLOW_DEFINITION   | Definition fails structural checks
----------------|-------------------------------|-----------------------------------
Persistence     | PERSISTENCE_ERROR             | History/schedule write failed
----------------|-------------------------------|-----------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT      | Current state moved under us
----------------|-------------------------------|-----------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Changing an executed transition
----------------|-------------------------------|-----------------------------------
Command         | SCHEDULING_DISABLED           | Workflow does not allow scheduling
                | COMMENT_REQUIRED              | Workflow requires a comment
                | TRANSITION_NOT_FOUND          | No history record with that id
                | NOT_REVERTABLE                | Latest transition can't be reverted
                | COMMENT_EDIT_DENIED           | Actor may not edit the comment
"""


class WorkflowKernelError(Exception):
    """
    Base exception for all workflow kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "WORKFLOW_KERNEL_ERROR"


# Configuration-related exceptions


class ConfigurationError(WorkflowKernelError):
    """Base exception for unknown or malformed workflow configuration."""

    code: str = "CONFIGURATION_ERROR"


class UnknownWorkflowError(ConfigurationError):
    """Workflow type id is not registered."""

    code: str = "UNKNOWN_WORKFLOW"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Unknown workflow type: {workflow_id}")


class UnknownStateError(ConfigurationError):
    """State id is not part of the given workflow type."""

    code: str = "UNKNOWN_STATE"

    def __init__(self, workflow_id: str, state_id: str):
        self.workflow_id = workflow_id
        self.state_id = state_id
        super().__init__(
            f"State {state_id!r} does not belong to workflow {workflow_id!r}"
        )


class CrossWorkflowTransitionError(ConfigurationError):
    """From and to states of a transition belong to different workflow types."""

    code: str = "CROSS_WORKFLOW_TRANSITION"

    def __init__(self, workflow_id: str, from_state: str, to_state: str):
        self.workflow_id = workflow_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Transition {from_state!r} -> {to_state!r} crosses workflow "
            f"boundary of {workflow_id!r}"
        )


class MissingTransitionDataError(ConfigurationError):
    """A transition was requested with neither a source state nor an entity."""

    code: str = "MISSING_TRANSITION_DATA"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Cannot build transition: {reason}")


class InvalidWorkflowDefinitionError(ConfigurationError):
    """A workflow definition fails its structural checks."""

    code: str = "INVALID_WORKFLOW_DEFINITION"

    def __init__(self, workflow_id: str, errors: list[str]):
        self.workflow_id = workflow_id
        self.errors = errors
        super().__init__(
            f"Invalid workflow definition {workflow_id!r}: " + "; ".join(errors)
        )


# Persistence-related exceptions


class PersistenceError(WorkflowKernelError):
    """
    Writing a history or scheduled record failed.

    This is the one failure that always propagates: a state change that
    is silently lost cannot be recovered from the log alone.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, entity_type: str, entity_id: str, reason: str):
        self.operation = operation
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Failed to {operation} for {entity_type} {entity_id}: {reason}"
        )


# Concurrency-related exceptions


class ConcurrencyError(WorkflowKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """The entity's current state is no longer the state the caller expected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        field_name: str,
        expected_state: str,
        actual_state: str | None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.field_name = field_name
        self.expected_state = expected_state
        self.actual_state = actual_state
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id} "
            f"[{field_name}]: expected state {expected_state!r}, "
            f"found {actual_state!r}"
        )


# Immutability-related exceptions


class ImmutabilityError(WorkflowKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to change the state fields of an executed transition."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Immutability violation on {entity_type} {entity_id}: {reason}")


# Command-surface exceptions


class CommandError(WorkflowKernelError):
    """Base exception for caller-facing command validation."""

    code: str = "COMMAND_ERROR"


class SchedulingDisabledError(CommandError):
    """The workflow does not allow scheduled transitions."""

    code: str = "SCHEDULING_DISABLED"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Scheduling is disabled for workflow {workflow_id!r}")


class CommentRequiredError(CommandError):
    """The workflow requires a comment on every transition."""

    code: str = "COMMENT_REQUIRED"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id!r} requires a comment")


class TransitionNotFoundError(CommandError):
    """No executed transition exists with the given id, or for the entity."""

    code: str = "TRANSITION_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Transition not found: {reference}")


class NotRevertableError(CommandError):
    """The latest executed transition cannot be reverted."""

    code: str = "NOT_REVERTABLE"

    def __init__(self, hid: int, reason: str):
        self.hid = hid
        self.reason = reason
        super().__init__(f"Transition {hid} is not revertable: {reason}")


class CommentEditDeniedError(CommandError):
    """The actor may not edit the comment of this transition."""

    code: str = "COMMENT_EDIT_DENIED"

    def __init__(self, hid: int, actor_id: str):
        self.hid = hid
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} may not edit comment of transition {hid}")
