"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every write
    service.  Services persist with ``session.flush()`` and never call
    ``session.commit()``; the caller owns the transaction, so multi-step
    operations (allocate a number, then insert the voucher) are atomic.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from jobwork_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only query methods; those belong in
          ``jobwork_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
