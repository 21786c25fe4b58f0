"""
Module: retail_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: per-account debit/credit totals with
    date and counterparty filters, trial balance, and entry lookup.  The
    ledger is a derived view over JournalLines; no balances are stored.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Failure modes:
    - Returns zero totals when the account has no lines or does not exist.

Audit relevance:
    Every balance the read side reports is recomputable from journal lines,
    so a cached figure can always be checked against this selector.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from retail_kernel.models.ledger import AccountModel, JournalEntryModel, JournalLineModel
from retail_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AccountTotals:
    """Debit and credit sums for one account, in minor units."""

    account_code: str
    debit_total: int
    credit_total: int

    @property
    def balance(self) -> int:
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class TrialBalanceRow:
    account_code: str
    account_name: str
    account_type: str
    debit_total: int
    credit_total: int

    @property
    def balance(self) -> int:
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class JournalLineView:
    account_code: str
    debit: int
    credit: int
    meta: dict


@dataclass(frozen=True)
class JournalEntryView:
    entry_id: UUID
    channel_id: str
    idempotency_key: str
    source_type: str
    source_id: str
    entry_date: datetime
    memo: str | None
    lines: tuple[JournalLineView, ...]

    @property
    def total_debit(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credit(self) -> int:
        return sum(line.credit for line in self.lines)


class LedgerSelector(BaseSelector):
    """Read-only queries over journal lines."""

    def account_totals(
        self,
        channel_id: str,
        account_code: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        customer_id: str | None = None,
        supplier_id: str | None = None,
    ) -> AccountTotals:
        """
        Sum debits and credits for one account.

        Date bounds are inclusive on ``entry_date``.  Customer and supplier
        filters match the ``customerId`` / ``supplierId`` keys of line meta;
        JSON shapes differ across backends, so those filters apply in Python.
        """
        query = (
            select(JournalLineModel.debit, JournalLineModel.credit, JournalLineModel.meta)
            .join(JournalEntryModel, JournalLineModel.journal_entry_id == JournalEntryModel.id)
            .join(AccountModel, JournalLineModel.account_id == AccountModel.id)
            .where(
                AccountModel.channel_id == channel_id,
                AccountModel.code == account_code,
            )
        )
        if start_date is not None:
            query = query.where(JournalEntryModel.entry_date >= start_date)
        if end_date is not None:
            query = query.where(JournalEntryModel.entry_date <= end_date)

        debit_total = 0
        credit_total = 0
        for debit, credit, meta in self.session.execute(query).all():
            meta = meta or {}
            if customer_id is not None and str(meta.get("customerId")) != str(customer_id):
                continue
            if supplier_id is not None and str(meta.get("supplierId")) != str(supplier_id):
                continue
            debit_total += debit
            credit_total += credit

        return AccountTotals(
            account_code=account_code,
            debit_total=debit_total,
            credit_total=credit_total,
        )

    def trial_balance(self, channel_id: str) -> list[TrialBalanceRow]:
        """One row per account with lines, ordered by account code."""
        query = (
            select(
                AccountModel.code,
                AccountModel.name,
                AccountModel.account_type,
                func.coalesce(func.sum(JournalLineModel.debit), 0).label("debit_total"),
                func.coalesce(func.sum(JournalLineModel.credit), 0).label("credit_total"),
            )
            .join(JournalLineModel, JournalLineModel.account_id == AccountModel.id)
            .where(AccountModel.channel_id == channel_id)
            .group_by(AccountModel.code, AccountModel.name, AccountModel.account_type)
            .order_by(AccountModel.code)
        )
        return [
            TrialBalanceRow(
                account_code=row.code,
                account_name=row.name,
                account_type=row.account_type,
                debit_total=int(row.debit_total),
                credit_total=int(row.credit_total),
            )
            for row in self.session.execute(query).all()
        ]

    def get_entry(self, channel_id: str, idempotency_key: str) -> JournalEntryView | None:
        entry = self.session.execute(
            select(JournalEntryModel).where(
                JournalEntryModel.channel_id == channel_id,
                JournalEntryModel.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()
        return _to_view(entry) if entry is not None else None

    def count_entries(self, channel_id: str, idempotency_key: str | None = None) -> int:
        query = select(func.count(JournalEntryModel.id)).where(
            JournalEntryModel.channel_id == channel_id
        )
        if idempotency_key is not None:
            query = query.where(JournalEntryModel.idempotency_key == idempotency_key)
        return int(self.session.execute(query).scalar_one())


def _to_view(entry: JournalEntryModel) -> JournalEntryView:
    return JournalEntryView(
        entry_id=entry.id,
        channel_id=entry.channel_id,
        idempotency_key=entry.idempotency_key,
        source_type=entry.source_type,
        source_id=entry.source_id,
        entry_date=entry.entry_date,
        memo=entry.memo,
        lines=tuple(
            JournalLineView(
                account_code=line.account.code,
                debit=line.debit,
                credit=line.credit,
                meta=dict(line.meta or {}),
            )
            for line in entry.lines
        ),
    )
