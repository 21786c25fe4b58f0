"""
retail_services.chart_of_accounts_service -- Per-channel chart of accounts.

Responsibility:
    Create the standard account set for a channel and look accounts up.
    Postings fail with AccountNotFoundError until this has run for the
    channel.

Invariants enforced:
    - initialize_for_channel is idempotent: existing codes are left alone,
      missing codes are added.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from retail_kernel.domain.clock import Clock, SystemClock
from retail_kernel.domain.ledger import AccountCode, AccountType
from retail_kernel.logging_config import get_logger
from retail_kernel.models.ledger import AccountModel
from retail_kernel.services.base import BaseService

logger = get_logger("services.chart_of_accounts")


STANDARD_ACCOUNTS: tuple[tuple[str, str, AccountType], ...] = (
    (AccountCode.CASH_ON_HAND, "Cash on Hand", AccountType.ASSET),
    (AccountCode.BANK_MAIN, "Main Bank Account", AccountType.ASSET),
    (AccountCode.CLEARING_MPESA, "M-Pesa Clearing", AccountType.ASSET),
    (AccountCode.CLEARING_CREDIT, "Credit Clearing", AccountType.ASSET),
    (AccountCode.CLEARING_GENERIC, "Generic Clearing", AccountType.ASSET),
    (AccountCode.ACCOUNTS_RECEIVABLE, "Accounts Receivable", AccountType.ASSET),
    (AccountCode.INVENTORY, "Inventory", AccountType.ASSET),
    (AccountCode.ACCOUNTS_PAYABLE, "Accounts Payable", AccountType.LIABILITY),
    (AccountCode.TAX_PAYABLE, "Tax Payable", AccountType.LIABILITY),
    (AccountCode.SALES, "Sales Revenue", AccountType.INCOME),
    (AccountCode.SALES_RETURNS, "Sales Returns", AccountType.INCOME),
    (AccountCode.PURCHASES, "Purchases", AccountType.EXPENSE),
    (AccountCode.EXPENSES, "General Expenses", AccountType.EXPENSE),
    (AccountCode.PROCESSOR_FEES, "Payment Processor Fees", AccountType.EXPENSE),
    (AccountCode.CASH_SHORT_OVER, "Cash Short/Over", AccountType.EXPENSE),
    (AccountCode.COGS, "Cost of Goods Sold", AccountType.EXPENSE),
    (AccountCode.INVENTORY_WRITE_OFF, "Inventory Write-Off", AccountType.EXPENSE),
    (AccountCode.EXPIRY_LOSS, "Expiry Loss", AccountType.EXPENSE),
)


@dataclass(frozen=True)
class AccountInfo:
    id: UUID
    channel_id: str
    code: str
    name: str
    account_type: AccountType
    is_active: bool


def _to_info(model: AccountModel) -> AccountInfo:
    return AccountInfo(
        id=model.id,
        channel_id=model.channel_id,
        code=model.code,
        name=model.name,
        account_type=AccountType(model.account_type),
        is_active=model.is_active,
    )


class ChartOfAccountsService(BaseService):
    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def initialize_for_channel(self, channel_id: str) -> list[AccountInfo]:
        """Create any standard accounts the channel is missing."""
        channel_id = str(channel_id)
        existing = {
            a.code
            for a in self.session.execute(
                select(AccountModel).where(AccountModel.channel_id == channel_id)
            ).scalars()
        }
        now = self._clock.now()
        created = []
        for code, account_name, account_type in STANDARD_ACCOUNTS:
            if code in existing:
                continue
            model = AccountModel(
                channel_id=channel_id,
                code=code,
                name=account_name,
                account_type=account_type.value,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            self.session.add(model)
            created.append(model)
        self.session.flush()

        logger.info(
            "chart_of_accounts_initialized",
            extra={"channel_id": channel_id, "created_count": len(created)},
        )
        return [_to_info(m) for m in created]

    def get_account(self, channel_id: str, code: str) -> AccountInfo | None:
        model = self.session.execute(
            select(AccountModel).where(
                AccountModel.channel_id == str(channel_id),
                AccountModel.code == code,
            )
        ).scalar_one_or_none()
        return _to_info(model) if model is not None else None

    def list_accounts(self, channel_id: str) -> list[AccountInfo]:
        models = self.session.execute(
            select(AccountModel)
            .where(AccountModel.channel_id == str(channel_id))
            .order_by(AccountModel.code)
        ).scalars().all()
        return [_to_info(m) for m in models]
