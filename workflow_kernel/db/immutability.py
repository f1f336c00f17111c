"""
ORM-Level Immutability Enforcement for transition history.

===============================================================================
WHY THIS EXISTS
===============================================================================

Executed transitions are the audit trail of every workflow field.  Once a
history row is written, its state columns (workflow, entity, field,
from/to state, timestamp, forced flag) describe something that happened
and must not be rewritten.  Only the comment may be edited afterward.

SQLAlchemy fires events before UPDATE operations reach the database:

    session.flush()
         |
         v
    [before_update event] --> _check_history_immutability() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if the check passes)

Deleting history rows is allowed: it happens when an entity is deleted or
its workflow field is removed.

Bulk statements (``session.execute(update(...))``) do not fire mapper
events.  The only bulk update in the kernel is actor reassignment on
account removal (``HistoryStore.reassign_actor``).

===============================================================================
USAGE
===============================================================================

Called once at startup, after models are imported:

    from workflow_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

Tests that need to write forbidden changes may call
``unregister_immutability_listeners()`` and register again afterwards.
"""

from sqlalchemy import event, inspect

from workflow_kernel.exceptions import ImmutabilityViolationError
from workflow_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Columns of a history row that may change after insert
HISTORY_MUTABLE_FIELDS = frozenset({"comment"})


def _check_history_immutability(mapper, connection, target):
    """
    Prevent updates to state columns of TransitionHistoryModel rows.
    """
    from workflow_kernel.models.transition import TransitionHistoryModel

    if not isinstance(target, TransitionHistoryModel):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in HISTORY_MUTABLE_FIELDS:
            continue
        if attr.history.has_changes():
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": target.entity_type,
                    "entity_id": target.entity_id,
                    "hid": target.hid,
                    "operation": "UPDATE",
                    "field": attr.key,
                },
            )
            raise ImmutabilityViolationError(
                entity_type=target.entity_type,
                entity_id=target.entity_id,
                reason=f"Cannot modify field '{attr.key}' of executed transition {target.hid}",
            )


def register_immutability_listeners():
    """
    Register the history immutability listener.  Safe to call twice.
    """
    from workflow_kernel.models.transition import TransitionHistoryModel

    if not event.contains(TransitionHistoryModel, "before_update", _check_history_immutability):
        event.listen(TransitionHistoryModel, "before_update", _check_history_immutability)


def unregister_immutability_listeners():
    """
    Remove the history immutability listener.

    WARNING: Only use this in tests.
    """
    from workflow_kernel.models.transition import TransitionHistoryModel

    if event.contains(TransitionHistoryModel, "before_update", _check_history_immutability):
        event.remove(TransitionHistoryModel, "before_update", _check_history_immutability)
