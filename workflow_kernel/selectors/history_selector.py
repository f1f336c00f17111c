"""
Module: workflow_kernel.selectors.history_selector
Responsibility: Read-only queries over executed and scheduled transitions.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - "Latest" means highest timestamp, then highest hid.  Two transitions
      recorded in the same second therefore keep insertion order.
    - Due windows are open on both ends: start < timestamp < end.
"""

from __future__ import annotations

from sqlalchemy import func, select

from workflow_kernel.domain.entity import EntityRef
from workflow_kernel.domain.transition import Transition
from workflow_kernel.models.transition import (
    ScheduledTransitionModel,
    TransitionHistoryModel,
)
from workflow_kernel.selectors.base import BaseSelector


def _entity_filter(model, ref: EntityRef, field_name: str | None):
    clauses = [
        model.entity_type == ref.entity_type,
        model.entity_id == str(ref.entity_id),
    ]
    if field_name is not None:
        clauses.append(model.field_name == field_name)
    return clauses


class HistorySelector(BaseSelector):
    """Queries over the transition history and schedule tables."""

    def latest_executed(self, ref: EntityRef, field_name: str) -> Transition | None:
        row = self.session.execute(
            select(TransitionHistoryModel)
            .where(*_entity_filter(TransitionHistoryModel, ref, field_name))
            .order_by(
                TransitionHistoryModel.timestamp.desc(),
                TransitionHistoryModel.hid.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def executed_by_id(self, hid: int) -> Transition | None:
        row = self.session.get(TransitionHistoryModel, hid)
        return row.to_dto() if row is not None else None

    def history(
        self,
        ref: EntityRef,
        field_name: str | None = None,
        limit: int | None = None,
    ) -> list[Transition]:
        """Executed transitions of an entity, most recent first."""
        stmt = (
            select(TransitionHistoryModel)
            .where(*_entity_filter(TransitionHistoryModel, ref, field_name))
            .order_by(
                TransitionHistoryModel.timestamp.desc(),
                TransitionHistoryModel.hid.desc(),
            )
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def count_executed(self, ref: EntityRef, field_name: str | None = None) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(TransitionHistoryModel)
            .where(*_entity_filter(TransitionHistoryModel, ref, field_name))
        ).scalar_one()

    def scheduled_for(self, ref: EntityRef, field_name: str) -> Transition | None:
        row = self.session.execute(
            select(ScheduledTransitionModel)
            .where(*_entity_filter(ScheduledTransitionModel, ref, field_name))
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def scheduled_for_entity(self, ref: EntityRef) -> list[Transition]:
        rows = self.session.execute(
            select(ScheduledTransitionModel)
            .where(*_entity_filter(ScheduledTransitionModel, ref, None))
            .order_by(ScheduledTransitionModel.timestamp.asc())
        ).scalars()
        return [row.to_dto() for row in rows]

    def due_between(self, window_start: int, window_end: int) -> list[Transition]:
        """Scheduled transitions due strictly inside the window, oldest first."""
        rows = self.session.execute(
            select(ScheduledTransitionModel)
            .where(
                ScheduledTransitionModel.timestamp > window_start,
                ScheduledTransitionModel.timestamp < window_end,
            )
            .order_by(
                ScheduledTransitionModel.timestamp.asc(),
                ScheduledTransitionModel.tid.asc(),
            )
        ).scalars()
        return [row.to_dto() for row in rows]
