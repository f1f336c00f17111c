"""
HistoryStore -- persistence of executed and scheduled transitions.

Responsibility:
    The only shared mutable resource of the engine.  Writes executed
    transitions to the history table and pending ones to the schedule
    table, and answers "what state is this entity's field in".

Architecture position:
    Kernel > Services.  Reads go through ``HistorySelector``.

Invariants enforced:
    - Saving an executed transition deletes the pending scheduled
      transition of the same (entity, field): executing supersedes.
    - Saving a scheduled transition replaces, never appends: at most one
      pending transition per (entity, field).
    - Every ``SQLAlchemyError`` raised while writing becomes a
      ``PersistenceError``.  The store flushes; it never commits.

Failure modes:
    - PersistenceError on any failed write.
    - MissingTransitionDataError when asked to record a transition for
      an entity that has no id yet.
"""

from __future__ import annotations

from enum import Enum

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workflow_kernel.domain.entity import EntityRef
from workflow_kernel.domain.transition import Transition
from workflow_kernel.domain.workflow import WorkflowType
from workflow_kernel.exceptions import (
    MissingTransitionDataError,
    PersistenceError,
    TransitionNotFoundError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.transition import (
    ScheduledTransitionModel,
    TransitionHistoryModel,
)
from workflow_kernel.selectors.history_selector import HistorySelector
from workflow_kernel.services.base import BaseService

logger = get_logger("services.history_store")


class DeletionScope(str, Enum):
    """What to delete for an (entity, field) pair."""

    SCHEDULED = "scheduled"
    ALL = "all"


class HistoryStore(BaseService):
    """Executed history and pending schedule for workflow fields."""

    def __init__(self, session: Session):
        super().__init__(session)
        self.selector = HistorySelector(session)

    # -------------------------------------------------------------------------
    # State queries
    # -------------------------------------------------------------------------

    def current_state(
        self,
        ref: EntityRef,
        field_name: str,
        workflow: WorkflowType,
        is_new: bool = False,
        original_state: str | None = None,
    ) -> str:
        """To-state of the latest executed transition, else the previous state."""
        if ref.is_saved:
            latest = self.selector.latest_executed(ref, field_name)
            if latest is not None:
                return latest.to_state
        return self.previous_state(
            ref, field_name, workflow, is_new=is_new, original_state=original_state,
        )

    def previous_state(
        self,
        ref: EntityRef,
        field_name: str,
        workflow: WorkflowType,
        is_new: bool = False,
        original_state: str | None = None,
    ) -> str:
        """State before the update now in flight.

        ``original_state`` is the field value of the unmodified copy of the
        entity, when the caller has one.  New entities start in the
        creation state.
        """
        if original_state:
            return original_state
        if is_new or not ref.is_saved:
            return workflow.creation_state().state_id
        latest = self.selector.latest_executed(ref, field_name)
        if latest is not None:
            return latest.to_state
        return workflow.creation_state().state_id

    def due_scheduled(self, window_start: int, window_end: int) -> list[Transition]:
        return self.selector.due_between(window_start, window_end)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def save_executed(self, transition: Transition) -> int:
        """Append a history record and drop the pending schedule of the field.

        Sets ``transition.hid`` and returns it.
        """
        self._require_saved_entity(transition, "record executed transition")
        model = TransitionHistoryModel.from_dto(transition)
        try:
            self.session.add(model)
            self._delete_scheduled(transition.entity_ref, transition.field_name)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise self._persistence_error("record executed transition", transition, exc) from exc
        transition.hid = model.hid
        logger.debug(
            "history_recorded",
            extra={
                "hid": model.hid,
                "entity_type": model.entity_type,
                "entity_id": model.entity_id,
                "field_name": model.field_name,
            },
        )
        return model.hid

    def save_scheduled(self, transition: Transition) -> int:
        """Store a pending transition, replacing the field's previous one."""
        self._require_saved_entity(transition, "schedule transition")
        model = ScheduledTransitionModel.from_dto(transition)
        try:
            self._delete_scheduled(transition.entity_ref, transition.field_name)
            self.session.add(model)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise self._persistence_error("schedule transition", transition, exc) from exc
        return model.tid

    def update_comment(self, hid: int, comment: str) -> Transition:
        """Change the comment of an executed transition (the one mutable column)."""
        model = self.session.get(TransitionHistoryModel, hid)
        if model is None:
            raise TransitionNotFoundError(f"history id {hid}")
        model.comment = comment
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                operation="update comment",
                entity_type=model.entity_type,
                entity_id=model.entity_id,
                reason=str(exc),
            ) from exc
        return model.to_dto()

    def delete_scheduled(self, ref: EntityRef, field_name: str) -> int:
        try:
            count = self._delete_scheduled(ref, field_name)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                operation="delete scheduled transition",
                entity_type=ref.entity_type,
                entity_id=str(ref.entity_id),
                reason=str(exc),
            ) from exc
        return count

    def delete_for_entity(
        self,
        ref: EntityRef,
        field_name: str | None = None,
        scope: DeletionScope = DeletionScope.SCHEDULED,
    ) -> int:
        """Delete records of an entity (all fields when ``field_name`` is None).

        ``DeletionScope.SCHEDULED`` only drops pending transitions;
        ``DeletionScope.ALL`` also drops executed history (entity deleted or
        field removed).  Returns the number of rows deleted.
        """
        try:
            count = self._delete_where(
                ScheduledTransitionModel, ref.entity_type, ref.entity_id, field_name,
            )
            if scope is DeletionScope.ALL:
                count += self._delete_where(
                    TransitionHistoryModel, ref.entity_type, ref.entity_id, field_name,
                )
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                operation=f"delete {scope.value} records",
                entity_type=ref.entity_type,
                entity_id=str(ref.entity_id),
                reason=str(exc),
            ) from exc
        logger.info(
            "workflow_records_deleted",
            extra={
                "entity_type": ref.entity_type,
                "entity_id": str(ref.entity_id),
                "field_name": field_name,
                "scope": scope.value,
                "rows": count,
            },
        )
        return count

    def delete_for_field(self, entity_type: str, field_name: str) -> int:
        """Delete history and schedule of a field removed from an entity type."""
        try:
            count = self._delete_where(ScheduledTransitionModel, entity_type, None, field_name)
            count += self._delete_where(TransitionHistoryModel, entity_type, None, field_name)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                operation="delete field records",
                entity_type=entity_type,
                entity_id="*",
                reason=str(exc),
            ) from exc
        logger.info(
            "workflow_field_deleted",
            extra={"entity_type": entity_type, "field_name": field_name, "rows": count},
        )
        return count

    def reassign_actor(self, old_actor_id: str, new_actor_id: str) -> int:
        """Rewrite the actor of every history and scheduled record."""
        try:
            count = 0
            for model in (TransitionHistoryModel, ScheduledTransitionModel):
                result = self.session.execute(
                    update(model)
                    .where(model.actor_id == old_actor_id)
                    .values(actor_id=new_actor_id)
                    .execution_options(synchronize_session=False)
                )
                count += result.rowcount or 0
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                operation="reassign actor",
                entity_type="actor",
                entity_id=old_actor_id,
                reason=str(exc),
            ) from exc
        # Loaded rows still carry the old actor
        self.session.expire_all()
        logger.info(
            "workflow_actor_reassigned",
            extra={"old_actor_id": old_actor_id, "new_actor_id": new_actor_id, "rows": count},
        )
        return count

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _delete_scheduled(self, ref: EntityRef, field_name: str) -> int:
        return self._delete_where(
            ScheduledTransitionModel, ref.entity_type, ref.entity_id, field_name,
        )

    def _delete_where(
        self,
        model,
        entity_type: str,
        entity_id: str | None,
        field_name: str | None,
    ) -> int:
        stmt = delete(model).where(model.entity_type == entity_type)
        if entity_id is not None:
            stmt = stmt.where(model.entity_id == str(entity_id))
        if field_name is not None:
            stmt = stmt.where(model.field_name == field_name)
        result = self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    @staticmethod
    def _require_saved_entity(transition: Transition, operation: str) -> None:
        if not transition.entity_ref.is_saved:
            raise MissingTransitionDataError(
                f"cannot {operation}: {transition.entity_ref.entity_type} has no id yet"
            )

    @staticmethod
    def _persistence_error(
        operation: str, transition: Transition, exc: SQLAlchemyError,
    ) -> PersistenceError:
        logger.error(
            "workflow_persistence_failed",
            extra={
                "operation": operation,
                "entity_type": transition.entity_ref.entity_type,
                "entity_id": str(transition.entity_ref.entity_id),
                "field_name": transition.field_name,
                "error": str(exc),
            },
        )
        return PersistenceError(
            operation=operation,
            entity_type=transition.entity_ref.entity_type,
            entity_id=str(transition.entity_ref.entity_id),
            reason=str(exc),
        )
