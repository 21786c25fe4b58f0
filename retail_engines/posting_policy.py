"""
retail_engines.posting_policy -- Journal templates for each economic event.

Responsibility:
    Turn a structured event context into a balanced PostingTemplate: which
    accounts are debited and credited, line metadata, and memo.  Amounts are
    minor currency units throughout.

Architecture position:
    Engines -- pure.  LedgerPostingService persists what this module builds.

Invariants enforced:
    - Every template is balanced (two lines of equal amount).
    - Amounts must be positive; a zero or negative amount is rejected
      before any template exists.
    - Credit-only templates (credit sale, supplier purchase) refuse
      non-credit contexts.

Failure modes:
    - ValueError on the checks above.

Account selection:
    payment method      clearing account
    cash-payment        CASH_ON_HAND
    mpesa-payment       CLEARING_MPESA
    credit-payment      CLEARING_CREDIT
    anything else       CLEARING_GENERIC
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from retail_kernel.domain.inventory import BatchAllocation
from retail_kernel.domain.ledger import (
    AccountCode,
    JournalLineSpec,
    PostingSourceType,
    PostingTemplate,
)

PAYMENT_METHOD_ACCOUNTS: Mapping[str, str] = {
    "cash-payment": AccountCode.CASH_ON_HAND,
    "mpesa-payment": AccountCode.CLEARING_MPESA,
    "credit-payment": AccountCode.CLEARING_CREDIT,
}

EXPIRED_WRITE_OFF_REASON = "expired"


def map_payment_method_to_account(method_code: str) -> str:
    return PAYMENT_METHOD_ACCOUNTS.get(method_code, AccountCode.CLEARING_GENERIC)


# ---------------------------------------------------------------------------
# Event contexts
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PaymentContext:
    amount: int
    method: str
    order_id: str
    order_code: str
    customer_id: str | None = None


@dataclass(frozen=True, slots=True)
class SaleContext:
    amount: int
    order_id: str
    order_code: str
    customer_id: str
    is_credit_sale: bool


@dataclass(frozen=True, slots=True)
class PurchaseContext:
    amount: int
    purchase_id: str
    purchase_reference: str
    supplier_id: str
    is_credit_purchase: bool


@dataclass(frozen=True, slots=True)
class SupplierPaymentContext:
    amount: int
    purchase_id: str
    purchase_reference: str
    supplier_id: str
    method: str


@dataclass(frozen=True, slots=True)
class RefundContext:
    amount: int
    order_id: str
    order_code: str
    original_payment_id: str
    method: str


@dataclass(frozen=True, slots=True)
class InventoryPurchaseContext:
    purchase_id: str
    purchase_reference: str
    supplier_id: str
    total_cost: int
    is_credit_purchase: bool
    batch_allocations: Sequence[BatchAllocation] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class InventorySaleCogsContext:
    order_id: str
    order_code: str
    total_cogs: int
    customer_id: str | None = None
    cogs_allocations: Sequence[BatchAllocation] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class InventoryWriteOffContext:
    adjustment_id: str
    reason: str
    total_loss: int
    batch_allocations: Sequence[BatchAllocation] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_positive(amount: int, what: str) -> None:
    if amount <= 0:
        raise ValueError(f"{what} amount must be positive, got {amount}")


def _pair(
    source_type: PostingSourceType,
    source_id: str,
    memo: str,
    amount: int,
    debit_account: str,
    credit_account: str,
    debit_meta: Mapping[str, Any],
    credit_meta: Mapping[str, Any],
) -> PostingTemplate:
    return PostingTemplate(
        source_type=source_type,
        source_id=source_id,
        memo=memo,
        lines=(
            JournalLineSpec(account_code=debit_account, debit=amount, meta=_clean(debit_meta)),
            JournalLineSpec(account_code=credit_account, credit=amount, meta=_clean(credit_meta)),
        ),
    )


def _clean(meta: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in meta.items() if v is not None}


def serialize_allocations(allocations: Sequence[BatchAllocation]) -> list[dict[str, Any]]:
    """JSON-safe view of batch allocations for line metadata."""
    return [
        {
            "batchId": str(a.batch_id),
            "quantity": a.quantity,
            "unitCost": a.unit_cost,
            "totalCost": a.total_cost,
        }
        for a in allocations
    ]


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def create_payment_entry(source_id: str, ctx: PaymentContext) -> PostingTemplate:
    """Settled customer payment.  Dr clearing / Cr SALES."""
    _require_positive(ctx.amount, "Payment")
    return _pair(
        PostingSourceType.PAYMENT,
        source_id,
        f"Payment received for order {ctx.order_code}",
        ctx.amount,
        map_payment_method_to_account(ctx.method),
        AccountCode.SALES,
        {
            "orderId": ctx.order_id,
            "orderCode": ctx.order_code,
            "method": ctx.method,
            "customerId": ctx.customer_id,
        },
        {"orderId": ctx.order_id, "orderCode": ctx.order_code, "method": ctx.method},
    )


def create_credit_sale_entry(source_id: str, ctx: SaleContext) -> PostingTemplate:
    """Order fulfilled on credit.  Dr ACCOUNTS_RECEIVABLE / Cr SALES."""
    if not ctx.is_credit_sale:
        raise ValueError("create_credit_sale_entry called for non-credit sale")
    _require_positive(ctx.amount, "Credit sale")
    return _pair(
        PostingSourceType.CREDIT_SALE,
        source_id,
        f"Credit sale for order {ctx.order_code}",
        ctx.amount,
        AccountCode.ACCOUNTS_RECEIVABLE,
        AccountCode.SALES,
        {"orderId": ctx.order_id, "orderCode": ctx.order_code, "customerId": ctx.customer_id},
        {"orderId": ctx.order_id, "orderCode": ctx.order_code},
    )


def create_payment_allocation_entry(source_id: str, ctx: PaymentContext) -> PostingTemplate:
    """Customer paying down credit.  Dr clearing / Cr ACCOUNTS_RECEIVABLE."""
    _require_positive(ctx.amount, "Payment allocation")
    return _pair(
        PostingSourceType.PAYMENT_ALLOCATION,
        source_id,
        f"Payment allocation for order {ctx.order_code}",
        ctx.amount,
        map_payment_method_to_account(ctx.method),
        AccountCode.ACCOUNTS_RECEIVABLE,
        {
            "orderId": ctx.order_id,
            "orderCode": ctx.order_code,
            "method": ctx.method,
            "customerId": ctx.customer_id,
        },
        {"orderId": ctx.order_id, "orderCode": ctx.order_code, "customerId": ctx.customer_id},
    )


def create_supplier_purchase_entry(source_id: str, ctx: PurchaseContext) -> PostingTemplate:
    """Credit purchase from a supplier.  Dr PURCHASES / Cr ACCOUNTS_PAYABLE."""
    if not ctx.is_credit_purchase:
        raise ValueError("create_supplier_purchase_entry called for non-credit purchase")
    _require_positive(ctx.amount, "Supplier purchase")
    return _pair(
        PostingSourceType.SUPPLIER_PURCHASE,
        source_id,
        f"Credit purchase {ctx.purchase_reference}",
        ctx.amount,
        AccountCode.PURCHASES,
        AccountCode.ACCOUNTS_PAYABLE,
        {"purchaseId": ctx.purchase_id, "purchaseReference": ctx.purchase_reference},
        {
            "purchaseId": ctx.purchase_id,
            "purchaseReference": ctx.purchase_reference,
            "supplierId": ctx.supplier_id,
        },
    )


def create_supplier_payment_entry(source_id: str, ctx: SupplierPaymentContext) -> PostingTemplate:
    """Paying a supplier.  Dr ACCOUNTS_PAYABLE / Cr clearing."""
    _require_positive(ctx.amount, "Supplier payment")
    return _pair(
        PostingSourceType.SUPPLIER_PAYMENT,
        source_id,
        f"Payment to supplier for purchase {ctx.purchase_reference}",
        ctx.amount,
        AccountCode.ACCOUNTS_PAYABLE,
        map_payment_method_to_account(ctx.method),
        {
            "purchaseId": ctx.purchase_id,
            "purchaseReference": ctx.purchase_reference,
            "supplierId": ctx.supplier_id,
        },
        {"purchaseId": ctx.purchase_id, "method": ctx.method},
    )


def create_refund_entry(source_id: str, ctx: RefundContext) -> PostingTemplate:
    """Refund to a customer.  Dr SALES_RETURNS / Cr clearing."""
    _require_positive(ctx.amount, "Refund")
    return _pair(
        PostingSourceType.REFUND,
        source_id,
        f"Refund for order {ctx.order_code}",
        ctx.amount,
        AccountCode.SALES_RETURNS,
        map_payment_method_to_account(ctx.method),
        {
            "orderId": ctx.order_id,
            "orderCode": ctx.order_code,
            "originalPaymentId": ctx.original_payment_id,
        },
        {"orderId": ctx.order_id, "method": ctx.method},
    )


def create_inventory_purchase_entry(
    source_id: str, ctx: InventoryPurchaseContext
) -> PostingTemplate:
    """Stock received.  Dr INVENTORY / Cr ACCOUNTS_PAYABLE (credit) or CASH_ON_HAND."""
    _require_positive(ctx.total_cost, "Inventory purchase")
    credit_account = (
        AccountCode.ACCOUNTS_PAYABLE if ctx.is_credit_purchase else AccountCode.CASH_ON_HAND
    )
    return _pair(
        PostingSourceType.INVENTORY_PURCHASE,
        source_id,
        f"Inventory purchase {ctx.purchase_reference}",
        ctx.total_cost,
        AccountCode.INVENTORY,
        credit_account,
        {
            "purchaseId": ctx.purchase_id,
            "purchaseReference": ctx.purchase_reference,
            "batchCount": len(ctx.batch_allocations),
            "batchAllocations": serialize_allocations(ctx.batch_allocations),
        },
        {
            "purchaseId": ctx.purchase_id,
            "supplierId": ctx.supplier_id,
            "isCreditPurchase": ctx.is_credit_purchase,
        },
    )


def create_inventory_sale_cogs_entry(
    source_id: str, ctx: InventorySaleCogsContext
) -> PostingTemplate:
    """Cost of goods sold.  Dr COGS / Cr INVENTORY."""
    _require_positive(ctx.total_cogs, "COGS")
    return _pair(
        PostingSourceType.INVENTORY_SALE_COGS,
        source_id,
        f"COGS for order {ctx.order_code}",
        ctx.total_cogs,
        AccountCode.COGS,
        AccountCode.INVENTORY,
        {
            "orderId": ctx.order_id,
            "orderCode": ctx.order_code,
            "customerId": ctx.customer_id,
            "batchCount": len(ctx.cogs_allocations),
            "cogsAllocations": serialize_allocations(ctx.cogs_allocations),
        },
        {"orderId": ctx.order_id, "orderCode": ctx.order_code},
    )


def create_inventory_write_off_entry(
    source_id: str, ctx: InventoryWriteOffContext
) -> PostingTemplate:
    """Stock loss.  Dr EXPIRY_LOSS (reason "expired") or INVENTORY_WRITE_OFF / Cr INVENTORY."""
    _require_positive(ctx.total_loss, "Write-off")
    loss_account = (
        AccountCode.EXPIRY_LOSS
        if ctx.reason == EXPIRED_WRITE_OFF_REASON
        else AccountCode.INVENTORY_WRITE_OFF
    )
    return _pair(
        PostingSourceType.INVENTORY_WRITE_OFF,
        source_id,
        f"Inventory write-off: {ctx.reason}",
        ctx.total_loss,
        loss_account,
        AccountCode.INVENTORY,
        {
            "adjustmentId": ctx.adjustment_id,
            "reason": ctx.reason,
            "batchCount": len(ctx.batch_allocations),
            "batchAllocations": serialize_allocations(ctx.batch_allocations),
        },
        {"adjustmentId": ctx.adjustment_id, "reason": ctx.reason},
    )
