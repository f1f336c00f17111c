"""
workflow_batch -- Scheduled transition processing.

Finds scheduled transitions whose due time has arrived, re-checks that
each entity is still in the state the transition expects, and fires or
discards them.  Provides ``Scheduler.run_due`` for cron-style callers and
an in-process polling loop (``tick`` / ``start`` / ``stop``).

Architecture:
    workflow_batch/ is a top-level package.  Nothing in workflow_kernel/
    imports from workflow_batch.

Invariants:
    - Due transitions fire strictly in ascending due-time order.
    - Scheduled transitions always execute forced.
    - A transition whose entity moved on is discarded, never re-targeted.
    - All timestamps come from the injected Clock.
"""
