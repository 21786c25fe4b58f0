"""
retail_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure engines in retail_engines with
    database sessions and the injected Clock.  This is the only layer that
    holds sessions or opens transactions.

Architecture position:
    Services -- imperative shell over engines + kernel.

        retail_services/ -> retail_engines/  (allowed)
        retail_services/ -> retail_kernel/   (allowed)
        retail_engines/  -> retail_services/ (forbidden)
        retail_kernel/   -> retail_services/ (forbidden)

Invariants enforced:
    - Orchestrators (InventoryService, PaymentAllocationService) own commit
      and rollback; every other service only flushes.
    - Service wiring is centralised in RetailServices.
"""

from retail_services.chart_of_accounts_service import ChartOfAccountsService
from retail_services.credit_service import CreditService, CreditSummary
from retail_services.financial_service import FinancialService
from retail_services.inventory_configuration_service import InventoryConfigurationService
from retail_services.inventory_reconciliation_service import InventoryReconciliationService
from retail_services.inventory_service import InventoryService
from retail_services.inventory_store import InventoryStore
from retail_services.ledger_posting_service import LedgerPostingService
from retail_services.ledger_query_service import (
    AccountBalance,
    BalanceCache,
    BalanceQuery,
    LedgerQueryService,
)
from retail_services.payment_allocation_service import (
    PaymentAllocationInput,
    PaymentAllocationResult,
    PaymentAllocationService,
)
from retail_services.period_lock_service import PeriodLockService
from retail_services.service_container import RetailServices

__all__ = [
    "AccountBalance",
    "BalanceCache",
    "BalanceQuery",
    "ChartOfAccountsService",
    "CreditService",
    "CreditSummary",
    "FinancialService",
    "InventoryConfigurationService",
    "InventoryReconciliationService",
    "InventoryService",
    "InventoryStore",
    "LedgerPostingService",
    "LedgerQueryService",
    "PaymentAllocationInput",
    "PaymentAllocationResult",
    "PaymentAllocationService",
    "PeriodLockService",
    "RetailServices",
]
