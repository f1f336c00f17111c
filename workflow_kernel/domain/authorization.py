"""
Capability names and effective-capability computation.

Responsibility:
    Names the per-workflow capabilities the engine asks the surrounding
    system about, and computes the effective capability set used for one
    authorization check.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  MUST NOT import from
    ``workflow_kernel.domain.workflow`` (which imports this module).

Invariants enforced:
    - The implicit author role is never persisted and never mutates the
      actor: ``effective_capabilities`` returns a new frozenset.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

# Pseudo-capability granted to the owner of an entity for one check only.
AUTHOR_CAPABILITY = "workflow author"


def bypass_capability(workflow_id: str) -> str:
    """Capability that allows every transition of the workflow."""
    return f"bypass {workflow_id} workflow_transition access"


def create_capability(workflow_id: str) -> str:
    return f"create {workflow_id} workflow_transition"


def schedule_capability(workflow_id: str) -> str:
    return f"schedule {workflow_id} workflow_transition"


def edit_own_capability(workflow_id: str) -> str:
    return f"edit own {workflow_id} workflow_transition"


def edit_any_capability(workflow_id: str) -> str:
    return f"edit any {workflow_id} workflow_transition"


def revert_own_capability(workflow_id: str) -> str:
    return f"revert own {workflow_id} workflow_transition"


def revert_any_capability(workflow_id: str) -> str:
    return f"revert any {workflow_id} workflow_transition"


def workflow_capabilities(workflow_id: str) -> tuple[str, ...]:
    """All named capabilities of one workflow, for registration by the host."""
    return (
        create_capability(workflow_id),
        schedule_capability(workflow_id),
        edit_own_capability(workflow_id),
        edit_any_capability(workflow_id),
        revert_own_capability(workflow_id),
        revert_any_capability(workflow_id),
        bypass_capability(workflow_id),
    )


def effective_capabilities(granted: Iterable[str], is_owner: bool) -> frozenset[str]:
    """Granted capabilities plus the implicit author role when owner."""
    caps = frozenset(granted)
    if is_owner:
        caps = caps | {AUTHOR_CAPABILITY}
    return caps


@runtime_checkable
class CapabilityProvider(Protocol):
    """Answers capability questions about an actor.

    Implemented by the host system (role tables, LDAP, a static map in
    tests).  ``AUTHOR_CAPABILITY`` is computed by the engine and never
    asked of the provider.
    """

    def actor_has_capability(self, actor_id: str, capability: str) -> bool:
        ...
