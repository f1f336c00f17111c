"""
Workflow Kernel

A finite-state transition engine for content entities with:
- Per-workflow state machines and authorized state-to-state moves
- Forced and authorized execution with a per-run duplicate guard
- Deferred (scheduled) transitions with stale-state detection
- Append-only, queryable transition history
"""

__version__ = "0.1.0"
