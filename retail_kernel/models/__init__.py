"""ORM models for the retail kernel."""

from retail_kernel.models.commerce import (
    CustomerModel,
    OrderModel,
    OrderPaymentModel,
    OrderState,
    PaymentState,
)
from retail_kernel.models.inventory import InventoryBatchModel, InventoryMovementModel
from retail_kernel.models.ledger import (
    AccountModel,
    JournalEntryModel,
    JournalLineModel,
    PeriodLockModel,
)

__all__ = [
    "AccountModel",
    "CustomerModel",
    "InventoryBatchModel",
    "InventoryMovementModel",
    "JournalEntryModel",
    "JournalLineModel",
    "OrderModel",
    "OrderPaymentModel",
    "OrderState",
    "PaymentState",
    "PeriodLockModel",
]
