"""
Module: retail_kernel.db.unit_of_work
Responsibility: The transactional unit-of-work abstraction orchestrators run
    their operations through.  ``with_transaction(fn)`` commits when ``fn``
    returns and rolls back when it raises.
Architecture position: Kernel > DB.

Invariants enforced:
    - All-or-nothing: nothing written inside ``fn`` survives an exception.
    - Nested calls join the outermost transaction; only the outermost call
      commits or rolls back.
    - Rollback hooks run after every rollback, so caches filled from rows
      read inside the failed transaction can be dropped.

Failure modes:
    - Any exception raised by ``fn`` or by commit propagates after rollback.
"""

from typing import Callable, Iterable, TypeVar

from sqlalchemy.orm import Session

from retail_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")

T = TypeVar("T")


class UnitOfWork:
    """
    Session-bound transaction boundary.

    Contract:
        Orchestrators (InventoryService, PaymentAllocationService) call
        ``with_transaction`` once per public operation.  Services below them
        only flush.
    """

    def __init__(self, session: Session, on_rollback: Iterable[Callable[[], None]] = ()):
        self.session = session
        self._depth = 0
        self._on_rollback = list(on_rollback)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def with_transaction(self, fn: Callable[[Session], T]) -> T:
        if self._depth > 0:
            return self._run(fn)

        try:
            result = self._run(fn)
            self.session.commit()
            logger.debug("unit_of_work_committed")
            return result
        except Exception:
            self.session.rollback()
            for hook in self._on_rollback:
                hook()
            logger.warning(
                "unit_of_work_rolled_back",
                extra={"rollback_hooks": len(self._on_rollback)},
            )
            raise

    def _run(self, fn: Callable[[Session], T]) -> T:
        self._depth += 1
        try:
            return fn(self.session)
        finally:
            self._depth -= 1
