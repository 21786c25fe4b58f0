"""
retail_services.ledger_posting_service -- Balanced, idempotent journal postings.

Responsibility:
    One posting method per economic event.  Each builds a template through
    ``retail_engines.posting_policy``, then persists it as a JournalEntry and
    its JournalLines keyed by ``"{event}:{natural_id}"``.

Architecture position:
    Services -- imperative shell.  Flush-only; the orchestrator that called
    it owns commit and rollback.

Invariants enforced:
    - sum(debits) == sum(credits) for every entry (UnbalancedEntryError).
    - At most one entry per (channel, idempotency key).  A repeated key is
      detected by an explicit pre-check and returned as ALREADY_EXISTS; a
      concurrent insert that slips past the pre-check hits the unique
      constraint inside a savepoint, is undone on its own, and is also
      returned as ALREADY_EXISTS.  The caller's transaction survives.
    - Every referenced account exists in the channel (AccountNotFoundError).
    - Entry date must be after the channel's period lock (PeriodLockedError).
    - Cached balances of every touched account are invalidated before the
      posting call returns.

Failure modes:
    - UnbalancedEntryError, AccountNotFoundError, PeriodLockedError,
      ValueError from template construction.
    - PostingAlreadyExistsError only when the key collides but the winning
      entry is not visible to this transaction.

Audit relevance:
    Entries carry source type, source id, memo, and per-line meta so every
    ledger figure traces back to the business document that produced it.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from retail_engines import posting_policy
from retail_engines.posting_policy import (
    InventoryPurchaseContext,
    InventorySaleCogsContext,
    InventoryWriteOffContext,
    PaymentContext,
    PurchaseContext,
    RefundContext,
    SaleContext,
    SupplierPaymentContext,
)
from retail_kernel.domain.clock import Clock, SystemClock, ensure_utc
from retail_kernel.domain.ledger import PostingResult, PostingStatus, PostingTemplate
from retail_kernel.exceptions import (
    AccountNotFoundError,
    PeriodLockedError,
    PostingAlreadyExistsError,
    UnbalancedEntryError,
)
from retail_kernel.logging_config import LogContext, get_logger
from retail_kernel.models.ledger import (
    AccountModel,
    JournalEntryModel,
    JournalLineModel,
    PeriodLockModel,
)
from retail_kernel.services.base import BaseService
from retail_kernel.utils.idempotency import generate_idempotency_key
from retail_services.ledger_query_service import BalanceCache

logger = get_logger("services.ledger_posting")


class LedgerPostingService(BaseService):
    """
    Writes one journal entry per economic event.

    Contract:
        Posting the same event twice (same channel and key) creates exactly
        one entry; the second call returns ``PostingStatus.ALREADY_EXISTS``.

    Non-goals:
        - Does not commit.  Does not reverse or edit entries.
    """

    def __init__(
        self,
        session: Session,
        cache: BalanceCache | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._cache = cache if cache is not None else BalanceCache()
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Event-specific entry points
    # ------------------------------------------------------------------

    def post_payment(self, channel_id: str, payment_id: str, ctx: PaymentContext) -> PostingResult:
        return self.post(
            channel_id,
            generate_idempotency_key("payment", payment_id),
            posting_policy.create_payment_entry(str(payment_id), ctx),
        )

    def post_credit_sale(self, channel_id: str, order_id: str, ctx: SaleContext) -> PostingResult:
        return self.post(
            channel_id,
            generate_idempotency_key("credit-sale", order_id),
            posting_policy.create_credit_sale_entry(str(order_id), ctx),
        )

    def post_payment_allocation(
        self, channel_id: str, payment_id: str, ctx: PaymentContext
    ) -> PostingResult:
        return self.post(
            channel_id,
            generate_idempotency_key("payment-allocation", payment_id),
            posting_policy.create_payment_allocation_entry(str(payment_id), ctx),
        )

    def post_supplier_purchase(
        self, channel_id: str, purchase_id: str, ctx: PurchaseContext
    ) -> PostingResult:
        return self.post(
            channel_id,
            generate_idempotency_key("purchase", purchase_id),
            posting_policy.create_supplier_purchase_entry(str(purchase_id), ctx),
        )

    def post_supplier_payment(
        self, channel_id: str, payment_id: str, ctx: SupplierPaymentContext
    ) -> PostingResult:
        return self.post(
            channel_id,
            generate_idempotency_key("supplier-payment", payment_id),
            posting_policy.create_supplier_payment_entry(str(payment_id), ctx),
        )

    def post_refund(self, channel_id: str, refund_id: str, ctx: RefundContext) -> PostingResult:
        return self.post(
            channel_id,
            generate_idempotency_key("refund", refund_id),
            posting_policy.create_refund_entry(str(refund_id), ctx),
        )

    def post_inventory_purchase(
        self, channel_id: str, purchase_id: str, ctx: InventoryPurchaseContext
    ) -> PostingResult:
        return self.post(
            channel_id,
            generate_idempotency_key("inventory-purchase", purchase_id),
            posting_policy.create_inventory_purchase_entry(str(purchase_id), ctx),
        )

    def post_inventory_sale_cogs(
        self, channel_id: str, order_id: str, ctx: InventorySaleCogsContext
    ) -> PostingResult:
        return self.post(
            channel_id,
            generate_idempotency_key("cogs", order_id),
            posting_policy.create_inventory_sale_cogs_entry(str(order_id), ctx),
        )

    def post_inventory_write_off(
        self, channel_id: str, adjustment_id: str, ctx: InventoryWriteOffContext
    ) -> PostingResult:
        return self.post(
            channel_id,
            generate_idempotency_key("write-off", adjustment_id),
            posting_policy.create_inventory_write_off_entry(str(adjustment_id), ctx),
        )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def posting_exists(self, channel_id: str, idempotency_key: str) -> bool:
        return self._find_entry(channel_id, idempotency_key) is not None

    def ensure_accounts_exist(self, channel_id: str, account_codes) -> dict[str, AccountModel]:
        """
        Load accounts by code for the channel.

        Raises:
            AccountNotFoundError: listing every missing code.
        """
        codes = list(dict.fromkeys(account_codes))
        accounts = self.session.execute(
            select(AccountModel).where(
                AccountModel.channel_id == str(channel_id),
                AccountModel.code.in_(codes),
                AccountModel.is_active.is_(True),
            )
        ).scalars().all()
        by_code = {a.code: a for a in accounts}
        missing = [c for c in codes if c not in by_code]
        if missing:
            logger.error(
                "posting_accounts_missing",
                extra={"channel_id": channel_id, "missing_accounts": missing},
            )
            raise AccountNotFoundError(str(channel_id), missing)
        return by_code

    def post(
        self,
        channel_id: str,
        idempotency_key: str,
        template: PostingTemplate,
    ) -> PostingResult:
        """
        Persist ``template`` under ``idempotency_key`` unless already posted.

        Postconditions:
            Exactly one JournalEntry exists for (channel_id, idempotency_key).
        """
        channel_id = str(channel_id)
        with LogContext.bind(
            channel_id=channel_id,
            source_type=template.source_type.value,
            source_id=template.source_id,
        ):
            existing = self._find_entry(channel_id, idempotency_key)
            if existing is not None:
                logger.info(
                    "posting_already_exists",
                    extra={"idempotency_key": idempotency_key, "entry_id": str(existing.id)},
                )
                return PostingResult(
                    status=PostingStatus.ALREADY_EXISTS,
                    entry_id=existing.id,
                    idempotency_key=idempotency_key,
                    total_amount=existing.total_debit,
                )

            if not template.is_balanced:
                logger.error(
                    "posting_unbalanced",
                    extra={
                        "idempotency_key": idempotency_key,
                        "total_debit": template.total_debit,
                        "total_credit": template.total_credit,
                    },
                )
                raise UnbalancedEntryError(
                    template.total_debit, template.total_credit, template.source_type.value
                )

            accounts = self.ensure_accounts_exist(channel_id, template.account_codes)

            entry_date = template.entry_date or self._clock.now()
            self._check_period_lock(channel_id, entry_date)

            entry = JournalEntryModel(
                channel_id=channel_id,
                idempotency_key=idempotency_key,
                source_type=template.source_type.value,
                source_id=template.source_id,
                entry_date=entry_date,
                posted_at=self._clock.now(),
                memo=template.memo,
                created_at=self._clock.now(),
                updated_at=self._clock.now(),
            )
            for seq, line in enumerate(template.lines):
                entry.lines.append(
                    JournalLineModel(
                        account_id=accounts[line.account_code].id,
                        line_seq=seq,
                        debit=line.debit,
                        credit=line.credit,
                        meta=dict(line.meta),
                    )
                )

            savepoint = self.session.begin_nested()
            try:
                self.session.add(entry)
                self.session.flush()
                savepoint.commit()
            except IntegrityError as exc:
                # Lost a race on (channel_id, idempotency_key); only this insert is undone.
                savepoint.rollback()
                logger.warning(
                    "posting_concurrent_duplicate",
                    extra={"idempotency_key": idempotency_key},
                )
                existing = self._find_entry(channel_id, idempotency_key)
                if existing is None:
                    raise PostingAlreadyExistsError(channel_id, idempotency_key) from exc
                return PostingResult(
                    status=PostingStatus.ALREADY_EXISTS,
                    entry_id=existing.id,
                    idempotency_key=idempotency_key,
                    total_amount=existing.total_debit,
                )

            for code in template.account_codes:
                self._cache.invalidate(channel_id, code)

            logger.info(
                "posting_completed",
                extra={
                    "idempotency_key": idempotency_key,
                    "entry_id": str(entry.id),
                    "total_amount": template.total_debit,
                    "line_count": len(template.lines),
                    "memo": template.memo,
                },
            )
            return PostingResult(
                status=PostingStatus.PERSISTED,
                entry_id=entry.id,
                idempotency_key=idempotency_key,
                total_amount=template.total_debit,
            )

    def _find_entry(self, channel_id: str, idempotency_key: str) -> JournalEntryModel | None:
        return self.session.execute(
            select(JournalEntryModel).where(
                JournalEntryModel.channel_id == str(channel_id),
                JournalEntryModel.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

    def _check_period_lock(self, channel_id: str, entry_date) -> None:
        lock = self.session.execute(
            select(PeriodLockModel).where(PeriodLockModel.channel_id == channel_id)
        ).scalar_one_or_none()
        if lock is None:
            return
        lock_end = ensure_utc(lock.lock_end_date)
        if ensure_utc(entry_date) <= lock_end:
            logger.warning(
                "posting_period_locked",
                extra={"entry_date": entry_date, "lock_end_date": lock_end},
            )
            raise PeriodLockedError(channel_id, entry_date.isoformat(), lock_end.isoformat())
