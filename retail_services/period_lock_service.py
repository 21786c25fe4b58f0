"""
retail_services.period_lock_service -- Channel period locks.

Once a channel's books are closed up to a date, LedgerPostingService
rejects any entry dated on or before it.  Locks only move forward.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from retail_kernel.domain.clock import Clock, SystemClock, ensure_utc
from retail_kernel.exceptions import ValidationError
from retail_kernel.logging_config import get_logger
from retail_kernel.models.ledger import PeriodLockModel
from retail_kernel.services.base import BaseService

logger = get_logger("services.period_lock")


class PeriodLockService(BaseService):
    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def get_lock_end_date(self, channel_id: str) -> datetime | None:
        lock = self._get(channel_id)
        return ensure_utc(lock.lock_end_date) if lock is not None else None

    def lock_through(self, channel_id: str, lock_end_date: datetime) -> datetime:
        """
        Close the channel's books through ``lock_end_date``.

        Raises:
            ValidationError: if the new date is earlier than the current lock.
        """
        lock = self._get(channel_id)
        now = self._clock.now()
        if lock is None:
            lock = PeriodLockModel(
                channel_id=str(channel_id),
                lock_end_date=lock_end_date,
                created_at=now,
                updated_at=now,
            )
            self.session.add(lock)
        else:
            current = ensure_utc(lock.lock_end_date)
            if ensure_utc(lock_end_date) < current:
                raise ValidationError(
                    "lock_end_date",
                    f"Period lock cannot move backwards from {current.isoformat()}",
                )
            lock.lock_end_date = lock_end_date
            lock.updated_at = now
        self.session.flush()

        logger.info(
            "period_locked",
            extra={"channel_id": channel_id, "lock_end_date": lock_end_date},
        )
        return lock_end_date

    def _get(self, channel_id: str) -> PeriodLockModel | None:
        return self.session.execute(
            select(PeriodLockModel).where(PeriodLockModel.channel_id == str(channel_id))
        ).scalar_one_or_none()
