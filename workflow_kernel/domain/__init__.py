"""
Pure domain layer.

This module contains value objects and domain logic with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time enters only through an injected ``Clock``.
"""

from workflow_kernel.domain.authorization import (
    AUTHOR_CAPABILITY,
    CapabilityProvider,
    bypass_capability,
    create_capability,
    edit_any_capability,
    edit_own_capability,
    effective_capabilities,
    revert_any_capability,
    revert_own_capability,
    schedule_capability,
    workflow_capabilities,
)
from workflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workflow_kernel.domain.entity import EntityAdapter, EntityRef
from workflow_kernel.domain.execution import (
    ExecutionContext,
    ExecutionOutcome,
    ExecutionResult,
)
from workflow_kernel.domain.observers import (
    CommentMutator,
    ObserverRegistry,
    PostTransitionObserver,
    PreTransitionObserver,
)
from workflow_kernel.domain.transition import Transition, TransitionLifecycle
from workflow_kernel.domain.workflow import (
    CommentSetting,
    ConfigTransition,
    State,
    WorkflowRegistry,
    WorkflowSettings,
    WorkflowType,
)

__all__ = [
    "AUTHOR_CAPABILITY",
    "CapabilityProvider",
    "Clock",
    "CommentMutator",
    "CommentSetting",
    "ConfigTransition",
    "DeterministicClock",
    "EntityAdapter",
    "EntityRef",
    "ExecutionContext",
    "ExecutionOutcome",
    "ExecutionResult",
    "ObserverRegistry",
    "PostTransitionObserver",
    "PreTransitionObserver",
    "State",
    "SystemClock",
    "Transition",
    "TransitionLifecycle",
    "WorkflowRegistry",
    "WorkflowSettings",
    "WorkflowType",
    "bypass_capability",
    "create_capability",
    "edit_any_capability",
    "edit_own_capability",
    "effective_capabilities",
    "revert_any_capability",
    "revert_own_capability",
    "schedule_capability",
    "workflow_capabilities",
]
