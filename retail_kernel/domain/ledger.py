"""
retail_kernel.domain.ledger -- Ledger value objects.

Responsibility:
    Account codes, journal templates produced by the posting policy, and the
    typed result returned by the posting service.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - JournalLineSpec carries exactly one non-zero side (debit XOR credit),
      both non-negative.
    - PostingTemplate.is_balanced: sum(debits) == sum(credits).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class AccountCode:
    """Static chart-of-accounts codes shared by every channel."""

    CASH_ON_HAND = "CASH_ON_HAND"
    BANK_MAIN = "BANK_MAIN"
    CLEARING_MPESA = "CLEARING_MPESA"
    CLEARING_CREDIT = "CLEARING_CREDIT"
    CLEARING_GENERIC = "CLEARING_GENERIC"
    SALES = "SALES"
    SALES_RETURNS = "SALES_RETURNS"
    ACCOUNTS_RECEIVABLE = "ACCOUNTS_RECEIVABLE"
    ACCOUNTS_PAYABLE = "ACCOUNTS_PAYABLE"
    TAX_PAYABLE = "TAX_PAYABLE"
    PURCHASES = "PURCHASES"
    EXPENSES = "EXPENSES"
    PROCESSOR_FEES = "PROCESSOR_FEES"
    CASH_SHORT_OVER = "CASH_SHORT_OVER"
    INVENTORY = "INVENTORY"
    COGS = "COGS"
    INVENTORY_WRITE_OFF = "INVENTORY_WRITE_OFF"
    EXPIRY_LOSS = "EXPIRY_LOSS"


class AccountType(str, Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


class PostingSourceType(str, Enum):
    """Economic event types that produce journal entries."""

    PAYMENT = "Payment"
    CREDIT_SALE = "CreditSale"
    PAYMENT_ALLOCATION = "PaymentAllocation"
    SUPPLIER_PURCHASE = "SupplierPurchase"
    SUPPLIER_PAYMENT = "SupplierPayment"
    REFUND = "Refund"
    INVENTORY_PURCHASE = "InventoryPurchase"
    INVENTORY_SALE_COGS = "InventorySaleCogs"
    INVENTORY_WRITE_OFF = "InventoryWriteOff"


@dataclass(frozen=True, slots=True)
class JournalLineSpec:
    """One side of a posting, amounts in minor currency units."""

    account_code: str
    debit: int = 0
    credit: int = 0
    meta: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.debit < 0 or self.credit < 0:
            raise ValueError(
                f"Line amounts cannot be negative for {self.account_code}"
            )
        if (self.debit > 0) == (self.credit > 0):
            raise ValueError(
                f"Line for {self.account_code} must carry exactly one of debit or credit"
            )


@dataclass(frozen=True, slots=True)
class PostingTemplate:
    """A fully described, not yet persisted journal entry."""

    source_type: PostingSourceType
    source_id: str
    memo: str
    lines: tuple[JournalLineSpec, ...]
    entry_date: datetime | None = None

    @property
    def total_debit(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credit(self) -> int:
        return sum(line.credit for line in self.lines)

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit

    @property
    def account_codes(self) -> tuple[str, ...]:
        """Distinct account codes in line order."""
        return tuple(dict.fromkeys(line.account_code for line in self.lines))


class PostingStatus(str, Enum):
    """Outcome of a posting attempt."""

    PERSISTED = "persisted"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True, slots=True)
class PostingResult:
    status: PostingStatus
    entry_id: UUID
    idempotency_key: str
    total_amount: int = 0

    @property
    def is_success(self) -> bool:
        return self.status in (PostingStatus.PERSISTED, PostingStatus.ALREADY_EXISTS)

    @property
    def is_new(self) -> bool:
        return self.status == PostingStatus.PERSISTED
