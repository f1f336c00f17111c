"""
Entity adapter protocol and entity references.

Responsibility:
    The narrow interface between the engine and whatever objects carry a
    workflow field (articles, tickets, documents).  The engine reads and
    writes the workflow field only through an ``EntityAdapter`` and never
    decides on its own when an entity is persisted.

Architecture position:
    Kernel > Domain -- protocol definitions, zero I/O.  Implementations
    live with the host system.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class EntityRef:
    """Identifies a target entity (type + id, optional revision).

    ``entity_id`` is None for an entity that has not been saved yet.
    """

    entity_type: str
    entity_id: str | None
    revision_id: str | None = None

    @property
    def is_saved(self) -> bool:
        return self.entity_id is not None

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.entity_id}"


@runtime_checkable
class EntityAdapter(Protocol):
    """Access to target entities and their workflow fields.

    Contract:
        - ``load`` returns None when the entity no longer exists.
        - ``set_state_value`` changes the in-memory field only.
        - ``save`` persists the entity; the engine calls it only from
          ``execute_and_update_entity``.
    """

    def load(self, ref: EntityRef) -> Any | None:
        ...

    def ref_of(self, entity: Any) -> EntityRef:
        ...

    def get_current_state_value(self, entity: Any, field_name: str) -> str | None:
        ...

    def set_state_value(self, entity: Any, field_name: str, state_id: str | None) -> None:
        ...

    def get_owner_id(self, entity: Any) -> str | None:
        ...

    def get_id(self, entity: Any) -> str | None:
        ...

    def is_new(self, entity: Any) -> bool:
        ...

    def save(self, entity: Any) -> None:
        ...

    def set_changed_time(self, entity: Any, timestamp: int) -> None:
        ...
