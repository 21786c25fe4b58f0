"""
BaseService -- abstract base for services that write inside a caller's
transaction.

Responsibility:
    Provides the common constructor and session-handling contract.  Services
    that extend it persist with ``session.flush()`` and never commit; the
    orchestrator (via UnitOfWork) owns commit and rollback.

Failure modes:
    - A subclass that commits on its own breaks the all-or-nothing guarantee
      of purchase, sale, and write-off operations.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for flush-only services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT manage transaction lifecycle.
    """

    def __init__(self, session: Session):
        self.session = session
