"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Common constructor and session contract.  Services use
    ``session.flush()`` and never ``session.commit()``; the caller (a
    request handler, the scheduler tick or a test) owns the transaction,
    normally through ``workflow_kernel.db.session_scope()``.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` on the outer transaction.  Savepoints
          (``session.begin_nested()``) are allowed.
    """

    def __init__(self, session: Session):
        self.session = session
