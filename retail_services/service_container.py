"""
retail_services.service_container -- Central wiring for the retail services.

Responsibility:
    Construct every service exactly once for a Session and wire them
    together.  No service builds its own collaborators when used through
    this container.

Architecture position:
    Services -- top of the layer.  Callers (API handlers, event listeners,
    tests) build one container per unit of work.

Invariants enforced:
    - LedgerPostingService and LedgerQueryService share one BalanceCache,
      so every posting invalidates the balances readers see.
    - InventoryService and PaymentAllocationService share one UnitOfWork,
      so a call made from inside another operation joins its transaction.
    - A rolled-back unit of work clears the shared BalanceCache, so no
      balance read inside the failed transaction outlives it.
    - All services share the same Clock.

Usage:
    services = RetailServices(session, clock=clock)
    services.chart_of_accounts.initialize_for_channel("1")
    services.inventory.record_purchase(...)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from retail_config import get_inventory_configuration_set
from retail_config.schema import InventoryConfigurationSet
from retail_kernel.db.unit_of_work import UnitOfWork
from retail_kernel.domain.clock import Clock, SystemClock
from retail_services.chart_of_accounts_service import ChartOfAccountsService
from retail_services.credit_service import CreditService
from retail_services.financial_service import FinancialService
from retail_services.inventory_configuration_service import InventoryConfigurationService
from retail_services.inventory_reconciliation_service import InventoryReconciliationService
from retail_services.inventory_service import InventoryService
from retail_services.inventory_store import InventoryStore
from retail_services.ledger_posting_service import LedgerPostingService
from retail_services.ledger_query_service import (
    DEFAULT_CACHE_TTL_SECONDS,
    BalanceCache,
    LedgerQueryService,
)
from retail_services.payment_allocation_service import PaymentAllocationService
from retail_services.period_lock_service import PeriodLockService


class RetailServices:
    """
    Session-scoped service graph.

    Non-goals:
        - Does not commit.  Orchestrators commit through ``unit_of_work``.
    """

    def __init__(
        self,
        session: Session,
        configuration_set: InventoryConfigurationSet | None = None,
        clock: Clock | None = None,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
    ) -> None:
        self.session = session
        self.clock = clock or SystemClock()
        if configuration_set is None:
            configuration_set = get_inventory_configuration_set()

        self.balance_cache = BalanceCache(cache_ttl_seconds, self.clock)
        self.unit_of_work = UnitOfWork(session, on_rollback=(self.balance_cache.clear,))

        # Ledger
        self.chart_of_accounts = ChartOfAccountsService(session, self.clock)
        self.period_locks = PeriodLockService(session, self.clock)
        self.posting = LedgerPostingService(session, self.balance_cache, self.clock)
        self.query = LedgerQueryService(session, self.balance_cache)
        self.financial = FinancialService(self.posting, self.query)

        # Inventory
        self.configuration = InventoryConfigurationService(
            configuration_set=configuration_set, clock=self.clock
        )
        self.store = InventoryStore(session, self.clock)
        self.inventory = InventoryService(
            session,
            self.configuration,
            self.posting,
            clock=self.clock,
            store=self.store,
            unit_of_work=self.unit_of_work,
        )
        self.reconciliation = InventoryReconciliationService(self.store, self.query, self.clock)

        # Credit
        self.credit = CreditService(session, self.clock)
        self.payment_allocation = PaymentAllocationService(
            session,
            self.posting,
            self.credit,
            clock=self.clock,
            unit_of_work=self.unit_of_work,
        )
