"""
AuthorizationEngine -- may this actor move this entity from A to B?

Responsibility:
    Evaluates, in order: force, the workflow's bypass capability, the
    implicit author role of the entity owner, and the OR of every config
    transition between the two states.  Denials are logged with actor
    and state labels; the engine never raises on a denial.

Architecture position:
    Kernel > Services.  Pure decision logic over an injected
    ``CapabilityProvider`` and ``EntityAdapter``; no database access.

Invariants enforced:
    - The implicit author role is computed per check
      (``effective_capabilities``) and never stored on the actor.
    - A move with no config transition is "not configured" and denied
      unless forced.
"""

from __future__ import annotations

from typing import Any

from workflow_kernel.domain.authorization import (
    AUTHOR_CAPABILITY,
    CapabilityProvider,
    bypass_capability,
    effective_capabilities,
)
from workflow_kernel.domain.entity import EntityAdapter
from workflow_kernel.domain.transition import Transition
from workflow_kernel.domain.workflow import WorkflowRegistry, WorkflowType
from workflow_kernel.logging_config import get_logger

logger = get_logger("services.authorization")


class StaticCapabilityProvider:
    """CapabilityProvider backed by a dict of actor id -> capabilities.

    Satisfies the CapabilityProvider protocol.  Used by tests and by the
    cron script; hosts replace it with their own role lookup.
    """

    def __init__(self, grants: dict[str, set[str] | frozenset[str] | tuple[str, ...]] | None = None):
        self._grants: dict[str, frozenset[str]] = {
            actor: frozenset(caps) for actor, caps in (grants or {}).items()
        }

    def grant(self, actor_id: str, *capabilities: str) -> None:
        self._grants[actor_id] = self._grants.get(actor_id, frozenset()) | set(capabilities)

    def actor_has_capability(self, actor_id: str, capability: str) -> bool:
        return capability in self._grants.get(actor_id, frozenset())


class AuthorizationEngine:
    """Decides whether an actor may execute a transition."""

    def __init__(
        self,
        registry: WorkflowRegistry,
        capabilities: CapabilityProvider,
        entity_adapter: EntityAdapter,
    ):
        self._registry = registry
        self._capabilities = capabilities
        self._entities = entity_adapter

    def has_capability(self, actor_id: str, capability: str) -> bool:
        return self._capabilities.actor_has_capability(actor_id, capability)

    def is_owner(self, actor_id: str, entity: Any) -> bool:
        """New or unknown entities count as owned by whoever acts on them."""
        if entity is None or self._entities.is_new(entity):
            return True
        owner = self._entities.get_owner_id(entity)
        return owner is not None and str(owner) == str(actor_id)

    def effective_capabilities_for(
        self, workflow: WorkflowType, actor_id: str, is_owner: bool,
    ) -> frozenset[str]:
        """Capabilities relevant to the workflow that the actor holds."""
        names = {c for t in workflow.config_transitions for c in t.capabilities}
        names.discard(AUTHOR_CAPABILITY)
        granted = {c for c in names if self.has_capability(actor_id, c)}
        return effective_capabilities(granted, is_owner)

    def is_move_allowed(
        self,
        workflow: WorkflowType,
        from_state: str,
        to_state: str,
        actor_id: str,
        is_owner: bool,
        force: bool = False,
        log_denial: bool = True,
    ) -> bool:
        if force:
            return True
        if self.has_capability(actor_id, bypass_capability(workflow.workflow_id)):
            return True

        config_transitions = workflow.transitions_between(from_state, to_state)
        if not config_transitions:
            if log_denial:
                logger.warning(
                    "transition_not_configured",
                    extra=self._denial_extra(workflow, from_state, to_state, actor_id),
                )
            return False

        caps = self.effective_capabilities_for(workflow, actor_id, is_owner)
        if any(t.is_allowed_for(caps) for t in config_transitions):
            return True

        if log_denial:
            logger.warning(
                "transition_denied",
                extra=self._denial_extra(workflow, from_state, to_state, actor_id),
            )
        return False

    def is_allowed(
        self,
        transition: Transition,
        actor_id: str | None = None,
        force: bool = False,
    ) -> bool:
        """Authorize a concrete transition for ``actor_id`` (default: its actor)."""
        actor = transition.actor_id if actor_id is None else actor_id
        if force or transition.is_forced:
            return True
        workflow = self._registry.get(transition.workflow_id)
        if workflow is None:
            logger.warning(
                "transition_denied_unknown_workflow",
                extra={"workflow_id": transition.workflow_id, "actor_id": actor},
            )
            return False
        return self.is_move_allowed(
            workflow,
            transition.from_state,
            transition.to_state,
            actor,
            is_owner=self.is_owner(actor, transition.entity),
        )

    @staticmethod
    def _denial_extra(
        workflow: WorkflowType, from_state: str, to_state: str, actor_id: str,
    ) -> dict:
        from_obj = workflow.state(from_state)
        to_obj = workflow.state(to_state)
        return {
            "workflow_id": workflow.workflow_id,
            "actor_id": actor_id,
            "from_state": from_state,
            "to_state": to_state,
            "from_label": from_obj.label if from_obj else from_state,
            "to_label": to_obj.label if to_obj else to_state,
        }
