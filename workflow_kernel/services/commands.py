"""
WorkflowCommands -- the caller-facing command surface.

Responsibility:
    Thin commands for hosts (controllers, CLIs, bulk actions): create an
    immediate or scheduled transition, move to a given or the next state,
    revert the latest transition, edit a comment, and clean up records when
    entities, fields or actors go away.  Each command builds a Transition
    and delegates to ``ExecutionEngine`` or ``HistoryStore``.

Architecture position:
    Kernel > Services.  The scheduler run lives in ``workflow_batch``.

Invariants enforced:
    - Caller-facing validation (comment required, scheduling disabled,
      revert eligibility, comment edit rights) raises ``CommandError``
      subclasses before anything is executed.
    - Engine outcomes (denied, vetoed, duplicate) stay soft and come back
      as ``ExecutionResult`` values.
"""

from __future__ import annotations

from typing import Any

from workflow_kernel.domain.authorization import (
    edit_any_capability,
    edit_own_capability,
    revert_any_capability,
    revert_own_capability,
)
from workflow_kernel.domain.entity import EntityAdapter
from workflow_kernel.domain.execution import ExecutionContext, ExecutionResult
from workflow_kernel.domain.transition import REVERT_COMMENT, Transition
from workflow_kernel.domain.workflow import CommentSetting, WorkflowType
from workflow_kernel.exceptions import (
    CommentEditDeniedError,
    CommentRequiredError,
    NotRevertableError,
    SchedulingDisabledError,
    TransitionNotFoundError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.services.authorization import AuthorizationEngine
from workflow_kernel.services.definition import WorkflowDefinition
from workflow_kernel.services.execution_engine import ExecutionEngine
from workflow_kernel.services.history_store import DeletionScope

logger = get_logger("services.commands")


class WorkflowCommands:
    """Commands over one execution engine."""

    def __init__(
        self,
        engine: ExecutionEngine,
        definition: WorkflowDefinition,
        authorization: AuthorizationEngine,
        entity_adapter: EntityAdapter,
        anonymous_actor_id: str = "0",
    ):
        self._engine = engine
        self._definition = definition
        self._authorization = authorization
        self._entities = entity_adapter
        self._history = engine.history
        self._anonymous_actor_id = anonymous_actor_id

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def current_state(self, workflow_id: str, entity: Any, field_name: str = "") -> str:
        workflow = self._definition.registry.require(workflow_id)
        return self._history.current_state(
            self._entities.ref_of(entity),
            field_name,
            workflow,
            is_new=self._entities.is_new(entity),
        )

    def create_transition(
        self,
        workflow_id: str,
        entity: Any,
        to_state: str,
        actor_id: str,
        field_name: str = "",
        comment: str = "",
        force: bool = False,
        context: ExecutionContext | None = None,
    ) -> ExecutionResult:
        """Execute an immediate transition and save the entity."""
        workflow = self._definition.registry.require(workflow_id)
        transition = self._build(workflow, entity, to_state, actor_id, field_name, comment)
        return self._engine.execute_and_update_entity(
            transition, context or ExecutionContext(), force=force,
        )

    def schedule_transition(
        self,
        workflow_id: str,
        entity: Any,
        to_state: str,
        actor_id: str,
        due_timestamp: int,
        field_name: str = "",
        comment: str = "",
        context: ExecutionContext | None = None,
    ) -> ExecutionResult:
        """Store a transition to fire at ``due_timestamp``.

        Replaces any transition already scheduled for the field.
        """
        workflow = self._definition.registry.require(workflow_id)
        if not workflow.settings.schedule_enabled:
            raise SchedulingDisabledError(workflow_id)
        transition = self._build(workflow, entity, to_state, actor_id, field_name, comment)
        transition.schedule(True)
        transition.timestamp = due_timestamp
        return self._engine.execute(transition, context or ExecutionContext())

    def move_to_state(
        self,
        workflow_id: str,
        entity: Any,
        to_state: str,
        actor_id: str,
        field_name: str = "",
        comment: str = "",
        force: bool = False,
        context: ExecutionContext | None = None,
    ) -> ExecutionResult:
        """Bulk-action form of ``create_transition``."""
        return self.create_transition(
            workflow_id, entity, to_state, actor_id,
            field_name=field_name, comment=comment, force=force, context=context,
        )

    def move_to_next_state(
        self,
        workflow_id: str,
        entity: Any,
        actor_id: str,
        field_name: str = "",
        comment: str = "",
        force: bool = False,
        context: ExecutionContext | None = None,
    ) -> ExecutionResult | None:
        """Move to the first reachable state after the current one.

        Returns None when no later state is reachable for the actor.
        """
        current = self.current_state(workflow_id, entity, field_name)
        nxt = self._definition.next_state(
            workflow_id, current, actor_id, force=force, entity=entity,
        )
        if nxt is None:
            logger.info(
                "no_next_state",
                extra={"workflow_id": workflow_id, "from_state": current, "actor_id": actor_id},
            )
            return None
        return self.create_transition(
            workflow_id, entity, nxt.state_id, actor_id,
            field_name=field_name, comment=comment, force=force, context=context,
        )

    def revert_last(
        self,
        workflow_id: str,
        entity: Any,
        actor_id: str,
        field_name: str = "",
        context: ExecutionContext | None = None,
    ) -> ExecutionResult:
        """Execute the inverse of the latest executed transition.

        Actors holding ``revert any`` (or ``revert own`` on their own
        transition) revert forced; others go through normal authorization.

        Raises:
            TransitionNotFoundError: the field has no history.
            NotRevertableError: the latest transition cannot be reverted.
        """
        workflow = self._definition.registry.require(workflow_id)
        ref = self._entities.ref_of(entity)
        latest = self._history.selector.latest_executed(ref, field_name)
        if latest is None:
            raise TransitionNotFoundError(f"{ref} [{field_name}]")
        if not latest.is_revertable(workflow):
            raise NotRevertableError(latest.hid, "from-state is the creation state, inactive or unchanged")

        may_revert = self._authorization.has_capability(
            actor_id, revert_any_capability(workflow_id),
        ) or (
            str(latest.actor_id) == str(actor_id)
            and self._authorization.has_capability(actor_id, revert_own_capability(workflow_id))
        )
        inverse = latest.inverse(
            actor_id=actor_id,
            timestamp=self._engine.clock.timestamp(),
            comment=REVERT_COMMENT,
        )
        inverse.entity = entity
        return self._engine.execute_and_update_entity(
            inverse, context or ExecutionContext(), force=may_revert,
        )

    # -------------------------------------------------------------------------
    # History maintenance
    # -------------------------------------------------------------------------

    def update_comment(self, hid: int, comment: str, actor_id: str) -> Transition:
        """Edit the comment of an executed transition."""
        transition = self._history.selector.executed_by_id(hid)
        if transition is None:
            raise TransitionNotFoundError(f"history id {hid}")
        wid = transition.workflow_id
        allowed = self._authorization.has_capability(actor_id, edit_any_capability(wid)) or (
            str(transition.actor_id) == str(actor_id)
            and self._authorization.has_capability(actor_id, edit_own_capability(wid))
        )
        if not allowed:
            raise CommentEditDeniedError(hid, actor_id)
        updated = self._history.update_comment(hid, comment)
        logger.info("transition_comment_updated", extra={"hid": hid, "actor_id": actor_id})
        return updated

    def cancel_scheduled(self, entity: Any, field_name: str = "") -> int:
        return self._history.delete_scheduled(self._entities.ref_of(entity), field_name)

    def entity_deleted(self, entity: Any) -> int:
        """Drop all history and schedule of a deleted entity."""
        return self._history.delete_for_entity(
            self._entities.ref_of(entity), None, DeletionScope.ALL,
        )

    def field_removed(self, entity_type: str, field_name: str) -> int:
        return self._history.delete_for_field(entity_type, field_name)

    def actor_removed(self, actor_id: str) -> int:
        """Hand the records of a removed account to the anonymous actor."""
        return self._history.reassign_actor(actor_id, self._anonymous_actor_id)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _build(
        self,
        workflow: WorkflowType,
        entity: Any,
        to_state: str,
        actor_id: str,
        field_name: str,
        comment: str,
    ) -> Transition:
        setting = workflow.settings.comment
        if setting is CommentSetting.REQUIRED and not comment:
            raise CommentRequiredError(workflow.workflow_id)
        if setting is CommentSetting.HIDDEN:
            comment = ""
        ref = self._entities.ref_of(entity)
        from_state = self._history.current_state(
            ref, field_name, workflow, is_new=self._entities.is_new(entity),
        )
        return Transition.create(
            workflow,
            from_state=from_state,
            to_state=to_state,
            entity_ref=ref,
            field_name=field_name,
            actor_id=actor_id,
            timestamp=self._engine.clock.timestamp(),
            comment=comment,
            entity=entity,
            registry=self._definition.registry,
        )
