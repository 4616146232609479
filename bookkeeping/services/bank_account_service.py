"""Bank account master data."""
import logging
import uuid
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeping.core.exceptions import BankAccountNotFoundError
from bookkeeping.models.banking import BankAccount, BankAccountType
from bookkeeping.services.account_service import AccountService
from bookkeeping.services.document_totals import to_decimal

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "account_name", "bank_name", "branch_name", "ifsc_code", "account_type",
    "ledger_account_id", "is_primary", "is_active",
}


class BankAccountService:
    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = tenant_id

    async def create_bank_account(
        self,
        account_name: str,
        account_number: str,
        bank_name: str,
        branch_name: Optional[str] = None,
        ifsc_code: Optional[str] = None,
        account_type: str = BankAccountType.CURRENT.value,
        opening_balance: Decimal = Decimal("0"),
        ledger_account_id: Optional[uuid.UUID] = None,
        is_primary: bool = False,
    ) -> BankAccount:
        if ledger_account_id is not None:
            await AccountService(self.db, self.tenant_id).get_account(ledger_account_id)

        opening = to_decimal(opening_balance)
        bank_account = BankAccount(
            tenant_id=self.tenant_id,
            account_name=account_name,
            account_number=account_number,
            bank_name=bank_name,
            branch_name=branch_name,
            ifsc_code=ifsc_code.upper() if ifsc_code else None,
            account_type=str(getattr(account_type, "value", account_type)).upper(),
            opening_balance=opening,
            current_balance=opening,
            ledger_account_id=ledger_account_id,
            is_primary=is_primary,
            is_active=True,
        )
        self.db.add(bank_account)
        await self.db.flush()
        logger.info(f"Created bank account {bank_name} {account_number} for tenant {self.tenant_id}")
        return bank_account

    async def get_bank_account(self, bank_account_id: uuid.UUID) -> BankAccount:
        result = await self.db.execute(
            select(BankAccount).where(
                BankAccount.id == bank_account_id,
                BankAccount.tenant_id == self.tenant_id,
            )
        )
        bank_account = result.scalar_one_or_none()
        if not bank_account:
            raise BankAccountNotFoundError(
                f"Bank account {bank_account_id} not found",
                {"bank_account_id": str(bank_account_id)},
            )
        return bank_account

    async def list_bank_accounts(self, active_only: bool = False) -> List[BankAccount]:
        query = select(BankAccount).where(BankAccount.tenant_id == self.tenant_id)
        if active_only:
            query = query.where(BankAccount.is_active == True)
        result = await self.db.execute(query.order_by(BankAccount.bank_name, BankAccount.account_number))
        return list(result.scalars().all())

    async def update_bank_account(self, bank_account_id: uuid.UUID, **changes: Any) -> BankAccount:
        bank_account = await self.get_bank_account(bank_account_id)

        values = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
        if "ledger_account_id" in values:
            await AccountService(self.db, self.tenant_id).get_account(values["ledger_account_id"])
        if "account_type" in values:
            values["account_type"] = str(getattr(values["account_type"], "value", values["account_type"])).upper()
        if "ifsc_code" in values:
            values["ifsc_code"] = values["ifsc_code"].upper()

        for field, value in values.items():
            setattr(bank_account, field, value)
        await self.db.flush()
        return bank_account
