"""
WorkflowDefinition -- queries over loaded workflow types.

Responsibility:
    Answers "which states may this actor move to from here", "what is the
    creation state", and "which config transitions connect A and B".
    Unknown workflow or state ids yield empty results, never exceptions:
    "nothing reachable" is a valid terminal condition for the caller.

Architecture position:
    Kernel > Services.  Read-only over the ``WorkflowRegistry``;
    authorization is delegated to ``AuthorizationEngine``.
"""

from __future__ import annotations

from typing import Any

from workflow_kernel.domain.authorization import bypass_capability
from workflow_kernel.domain.workflow import (
    ConfigTransition,
    State,
    WorkflowRegistry,
    WorkflowType,
)
from workflow_kernel.services.authorization import AuthorizationEngine


class WorkflowDefinition:
    """Read model over the workflow registry."""

    def __init__(self, registry: WorkflowRegistry, authorization: AuthorizationEngine):
        self._registry = registry
        self._authorization = authorization

    @property
    def registry(self) -> WorkflowRegistry:
        return self._registry

    def workflow(self, workflow_id: str) -> WorkflowType | None:
        return self._registry.get(workflow_id)

    def creation_state(self, workflow_id: str) -> State | None:
        workflow = self._registry.get(workflow_id)
        return workflow.creation_state() if workflow is not None else None

    def config_transitions(
        self, workflow_id: str, from_state: str, to_state: str,
    ) -> list[ConfigTransition]:
        workflow = self._registry.get(workflow_id)
        if workflow is None:
            return []
        return list(workflow.transitions_between(from_state, to_state))

    def states_reachable_from(
        self,
        workflow_id: str,
        state_id: str,
        actor_id: str,
        force: bool = False,
        entity: Any = None,
    ) -> list[State]:
        """States the actor may move to, in weight order.

        Without force, candidates are the targets of config transitions
        leaving ``state_id``; with force (or the bypass capability) every
        active state is a candidate.  The current state itself appears only
        when a config transition back to it exists.
        """
        workflow = self._registry.get(workflow_id)
        if workflow is None or not workflow.has_state(state_id):
            return []

        unrestricted = force or self._authorization.has_capability(
            actor_id, bypass_capability(workflow_id),
        )
        configured = {t.to_state for t in workflow.transitions_from(state_id)}
        is_owner = self._authorization.is_owner(actor_id, entity)

        reachable = []
        for state in workflow.ordered_states():
            if not state.is_active:
                continue
            if unrestricted:
                if state.state_id != state_id or state.state_id in configured:
                    reachable.append(state)
                continue
            if state.state_id not in configured:
                continue
            if self._authorization.is_move_allowed(
                workflow, state_id, state.state_id, actor_id,
                is_owner=is_owner, log_denial=False,
            ):
                reachable.append(state)
        return reachable

    def next_state(
        self,
        workflow_id: str,
        state_id: str,
        actor_id: str,
        force: bool = False,
        entity: Any = None,
    ) -> State | None:
        """First reachable state after ``state_id`` in weight order."""
        workflow = self._registry.get(workflow_id)
        if workflow is None or not workflow.has_state(state_id):
            return None
        order = [s.state_id for s in workflow.ordered_states()]
        position = order.index(state_id)
        for state in self.states_reachable_from(workflow_id, state_id, actor_id, force, entity):
            if order.index(state.state_id) > position:
                return state
        return None
