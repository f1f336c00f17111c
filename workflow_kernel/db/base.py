"""
Module: workflow_kernel.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models and the
    type annotation map that keeps column types consistent across tables.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Integer surrogate keys: history and schedule rows use an autoincrement
      integer key (``hid`` / ``tid``) so "most recent" ordering can fall back
      to insertion order when two rows share a timestamp.  BigInteger is
      mapped to INTEGER on SQLite, where only INTEGER PRIMARY KEY
      autoincrements.
    - Unix timestamps: transition times are stored as integer seconds, the
      same unit callers and the scheduler window use.
"""

from typing import ClassVar

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import DeclarativeBase

# BigInteger everywhere except SQLite (rowid aliasing needs INTEGER)
IntKey = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model in the system inherits from Base.  Models declare
        their own primary key.

    Guarantees:
        - int maps to BigInteger (INTEGER on SQLite).
        - str maps to String(255) unless a model says otherwise.
    """

    type_annotation_map: ClassVar[dict] = {
        int: IntKey,
        str: String(255),
    }
