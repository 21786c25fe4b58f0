"""
retail_services.ledger_query_service -- Read-side balances with a TTL cache.

Responsibility:
    Account balance and aggregate queries (customer balance, supplier
    balance, sales, purchases, expenses) over journal lines, cached per
    (channel, account, filters) for a short TTL.

Architecture position:
    Services -- read side.  Uses LedgerSelector for all SQL.  The cache is
    a ``BalanceCache`` object shared with LedgerPostingService so writers
    invalidate it synchronously after every posting.

Invariants enforced:
    - balance = sum(debit) - sum(credit), in minor units.
    - A posting that touches an account invalidates every cached entry for
      that (channel, account) before the posting call returns.

Failure modes:
    - None beyond database errors; unknown accounts read as zero.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from retail_kernel.domain.clock import Clock, SystemClock
from retail_kernel.domain.ledger import AccountCode
from retail_kernel.logging_config import get_logger
from retail_kernel.selectors.ledger_selector import LedgerSelector, TrialBalanceRow

logger = get_logger("services.ledger_query")

DEFAULT_CACHE_TTL_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class BalanceQuery:
    channel_id: str
    account_code: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    customer_id: str | None = None
    supplier_id: str | None = None

    @property
    def cache_key(self) -> tuple:
        return (
            str(self.channel_id),
            self.account_code,
            self.start_date.isoformat() if self.start_date else "",
            self.end_date.isoformat() if self.end_date else "",
            str(self.customer_id or ""),
            str(self.supplier_id or ""),
        )


@dataclass(frozen=True, slots=True)
class AccountBalance:
    account_code: str
    debit_total: int
    credit_total: int
    balance: int


class BalanceCache:
    """
    Thread-safe TTL cache of account balances.

    Keys start with (channel_id, account_code) so invalidation can drop every
    filter variant of one account at once.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Clock | None = None,
    ):
        self._ttl = ttl_seconds
        self._clock = clock or SystemClock()
        self._entries: dict[tuple, tuple[AccountBalance, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: tuple) -> AccountBalance | None:
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return None
            value, expires_at = hit
            if self._clock.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return value

    def put(self, key: tuple, value: AccountBalance) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock.monotonic() + self._ttl)

    def invalidate(self, channel_id: str, account_code: str) -> int:
        prefix = (str(channel_id), account_code)
        with self._lock:
            stale = [k for k in self._entries if k[:2] == prefix]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class LedgerQueryService:
    """Balance and total queries for reporting and credit checks."""

    def __init__(self, session: Session, cache: BalanceCache | None = None):
        self._selector = LedgerSelector(session)
        self._cache = cache if cache is not None else BalanceCache()

    @property
    def cache(self) -> BalanceCache:
        return self._cache

    def get_account_balance(self, query: BalanceQuery) -> AccountBalance:
        cached = self._cache.get(query.cache_key)
        if cached is not None:
            return cached

        totals = self._selector.account_totals(
            channel_id=query.channel_id,
            account_code=query.account_code,
            start_date=query.start_date,
            end_date=query.end_date,
            customer_id=query.customer_id,
            supplier_id=query.supplier_id,
        )
        balance = AccountBalance(
            account_code=query.account_code,
            debit_total=totals.debit_total,
            credit_total=totals.credit_total,
            balance=totals.balance,
        )
        self._cache.put(query.cache_key, balance)
        return balance

    def get_customer_balance(self, channel_id: str, customer_id: str) -> int:
        """Receivable owed by a customer; never negative."""
        balance = self.get_account_balance(
            BalanceQuery(
                channel_id=channel_id,
                account_code=AccountCode.ACCOUNTS_RECEIVABLE,
                customer_id=customer_id,
            )
        )
        return max(0, balance.balance)

    def get_supplier_balance(self, channel_id: str, supplier_id: str) -> int:
        """Payable owed to a supplier (liability, so credit-normal)."""
        balance = self.get_account_balance(
            BalanceQuery(
                channel_id=channel_id,
                account_code=AccountCode.ACCOUNTS_PAYABLE,
                supplier_id=supplier_id,
            )
        )
        return abs(balance.balance)

    def get_sales_total(
        self,
        channel_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> int:
        balance = self.get_account_balance(
            BalanceQuery(channel_id, AccountCode.SALES, start_date, end_date)
        )
        return abs(balance.balance)

    def get_purchase_total(
        self,
        channel_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> int:
        return self.get_account_balance(
            BalanceQuery(channel_id, AccountCode.PURCHASES, start_date, end_date)
        ).balance

    def get_expense_total(
        self,
        channel_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> int:
        return self.get_account_balance(
            BalanceQuery(channel_id, AccountCode.EXPENSES, start_date, end_date)
        ).balance

    def get_trial_balance(self, channel_id: str) -> list[TrialBalanceRow]:
        return self._selector.trial_balance(channel_id)

    def invalidate_cache(self, channel_id: str, account_code: str) -> None:
        dropped = self._cache.invalidate(channel_id, account_code)
        logger.debug(
            "balance_cache_invalidated",
            extra={"channel_id": channel_id, "account_code": account_code, "dropped": dropped},
        )

    def clear_cache(self) -> None:
        self._cache.clear()
