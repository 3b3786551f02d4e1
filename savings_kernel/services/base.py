"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  All concrete services receive a
    SQLAlchemy ``Session`` that they use via ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback the outer transaction themselves.  Atomic
    sub-steps use SAVEPOINTs (``atomic()``), which roll back only their own
    writes.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session, SessionTransaction


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` -- the caller controls
          transaction boundaries, enabling atomic multi-step operations.

    Non-goals:
        - Does NOT manage the outer transaction lifecycle.
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

    @contextmanager
    def atomic(self) -> Iterator[SessionTransaction]:
        """
        Run a block inside a SAVEPOINT.

        All writes in the block land together or not at all; the exception
        that caused a rollback propagates.
        """
        with self.session.begin_nested() as savepoint:
            yield savepoint
            self.session.flush()
