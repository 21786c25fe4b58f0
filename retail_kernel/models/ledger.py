"""
Module: retail_kernel.models.ledger
Responsibility: ORM persistence for the per-channel chart of accounts,
    journal entries, journal lines, and period locks.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (channel_id, idempotency_key) is unique: one entry per economic event.
    - (channel_id, code) is unique per account.
    - Line debit/credit are non-negative minor-unit integers (CHECK).

Non-goals:
    - Balance is NOT enforced at the ORM level; LedgerPostingService rejects
      unbalanced templates before anything is flushed.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from retail_kernel.db.base import Base, TimestampedBase, UUIDString


class AccountModel(TimestampedBase):
    """One ledger account in a channel's chart of accounts."""

    __tablename__ = "ledger_accounts"

    __table_args__ = (
        UniqueConstraint("channel_id", "code", name="uq_ledger_account_channel_code"),
    )

    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class JournalEntryModel(TimestampedBase):
    """
    Journal entry header for one economic event.

    Guarantees:
        - idempotency_key is ``"{event}:{natural_id}"`` and unique per channel.
        - Lines are inserted in the same flush as the header.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("channel_id", "idempotency_key", name="uq_journal_channel_idempotency"),
        Index("idx_journal_source", "channel_id", "source_type", "source_id"),
        Index("idx_journal_entry_date", "channel_id", "entry_date"),
    )

    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(300), nullable=False)
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    posted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["JournalLineModel"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLineModel.line_seq",
    )

    @property
    def total_debit(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credit(self) -> int:
        return sum(line.credit for line in self.lines)

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


class JournalLineModel(Base):
    """One debit or credit against an account, in minor currency units."""

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint("debit >= 0", name="ck_journal_line_debit_non_negative"),
        CheckConstraint("credit >= 0", name="ck_journal_line_credit_non_negative"),
        Index("idx_journal_line_entry", "journal_entry_id"),
        Index("idx_journal_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_accounts.id"),
        nullable=False,
    )
    line_seq: Mapped[int] = mapped_column(nullable=False, default=0)
    debit: Mapped[int] = mapped_column(nullable=False, default=0)
    credit: Mapped[int] = mapped_column(nullable=False, default=0)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    entry: Mapped[JournalEntryModel] = relationship(back_populates="lines")
    account: Mapped[AccountModel] = relationship()


class PeriodLockModel(TimestampedBase):
    """Entries dated on or before ``lock_end_date`` are rejected for the channel."""

    __tablename__ = "period_locks"

    __table_args__ = (
        UniqueConstraint("channel_id", name="uq_period_lock_channel"),
    )

    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    lock_end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
