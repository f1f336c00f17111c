"""
Module: workflow_kernel.models.transition
Responsibility: ORM persistence for executed transitions (history) and
    pending scheduled transitions.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - History rows are append-only except for ``comment`` (see
      db/immutability.py).
    - At most one pending scheduled transition per (entity, field):
      UNIQUE(entity_type, entity_id, field_name) on the schedule table.
    - "Latest" history is ordered by (timestamp DESC, hid DESC).

Failure modes:
    - IntegrityError on a second scheduled row for the same (entity,
      field); HistoryStore deletes the old row first.
    - ImmutabilityViolationError on UPDATE of a history state column.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import Base, IntKey
from workflow_kernel.domain.entity import EntityRef
from workflow_kernel.domain.transition import Transition


class _TransitionColumns:
    """Columns shared by the history and schedule tables."""

    workflow_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    revision_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    field_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    from_state: Mapped[str] = mapped_column(String(100), nullable=False)
    to_state: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    timestamp: Mapped[int] = mapped_column(nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def _ref(self) -> EntityRef:
        return EntityRef(
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            revision_id=self.revision_id,
        )

    @staticmethod
    def _columns_from(dto: Transition) -> dict:
        return {
            "workflow_id": dto.workflow_id,
            "entity_type": dto.entity_ref.entity_type,
            "entity_id": str(dto.entity_ref.entity_id),
            "revision_id": dto.entity_ref.revision_id,
            "field_name": dto.field_name,
            "from_state": dto.from_state,
            "to_state": dto.to_state,
            "actor_id": dto.actor_id,
            "timestamp": dto.timestamp,
            "comment": dto.comment or "",
        }


class TransitionHistoryModel(_TransitionColumns, Base):
    """One executed transition.

    Contract:
        Append-only.  Only ``comment`` may change after insert.
    """

    __tablename__ = "workflow_transition_history"

    __table_args__ = (
        Index(
            "ix_workflow_history_entity_latest",
            "entity_type", "entity_id", "field_name", "timestamp", "hid",
        ),
        Index("ix_workflow_history_actor", "actor_id"),
    )

    hid: Mapped[int] = mapped_column(IntKey, primary_key=True, autoincrement=True)
    is_forced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return (
            f"<TransitionHistory {self.hid} {self.entity_type}:{self.entity_id} "
            f"[{self.field_name}] {self.from_state}->{self.to_state}>"
        )

    def to_dto(self) -> Transition:
        """Convert ORM model to an executed Transition."""
        return Transition(
            workflow_id=self.workflow_id,
            from_state=self.from_state,
            to_state=self.to_state,
            entity_ref=self._ref(),
            field_name=self.field_name,
            actor_id=self.actor_id,
            timestamp=self.timestamp,
            comment=self.comment,
            is_scheduled=False,
            is_executed=True,
            is_forced=self.is_forced,
            hid=self.hid,
        )

    @classmethod
    def from_dto(cls, dto: Transition) -> TransitionHistoryModel:
        return cls(is_forced=dto.is_forced, **cls._columns_from(dto))


class ScheduledTransitionModel(_TransitionColumns, Base):
    """One pending scheduled transition; ``timestamp`` is the due time."""

    __tablename__ = "workflow_transition_schedule"

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "entity_id", "field_name",
            name="uq_workflow_schedule_entity_field",
        ),
        Index("ix_workflow_schedule_due", "timestamp"),
    )

    tid: Mapped[int] = mapped_column(IntKey, primary_key=True, autoincrement=True)

    def __repr__(self) -> str:
        return (
            f"<ScheduledTransition {self.tid} {self.entity_type}:{self.entity_id} "
            f"[{self.field_name}] {self.from_state}->{self.to_state} "
            f"due={self.timestamp}>"
        )

    def to_dto(self) -> Transition:
        """Convert ORM model to a pending scheduled Transition."""
        return Transition(
            workflow_id=self.workflow_id,
            from_state=self.from_state,
            to_state=self.to_state,
            entity_ref=self._ref(),
            field_name=self.field_name,
            actor_id=self.actor_id,
            timestamp=self.timestamp,
            comment=self.comment,
            is_scheduled=True,
        )

    @classmethod
    def from_dto(cls, dto: Transition) -> ScheduledTransitionModel:
        return cls(**cls._columns_from(dto))
