"""
Account Service - chart of accounts and running balances.

Balance rule (uniform for every account type):
    posting a line     -> current_balance += debit - credit
    reversing a line   -> current_balance -= debit - credit

apply_line_deltas() is the only code path that moves current_balance; it is
called by the ledger inside the same unit of work as the transaction write.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeping.core.exceptions import (
    AccountExistsError,
    AccountHasBalanceError,
    AccountNotFoundError,
    SystemAccountError,
    ValidationError,
)
from bookkeeping.models.accounting import (
    Account,
    AccountSubType,
    AccountType,
    QuickEntryAccount,
    QuickEntryRole,
    Transaction,
    TransactionLine,
    TransactionStatus,
)
from bookkeeping.services.document_totals import round_money

logger = logging.getLogger(__name__)


# (code, name, type, sub_type, parent_code)
DEFAULT_CHART_OF_ACCOUNTS = [
    # Assets
    ("1000", "Assets", AccountType.ASSET, None, None),
    ("1100", "Cash", AccountType.ASSET, AccountSubType.CASH, "1000"),
    ("1200", "Bank Accounts", AccountType.ASSET, AccountSubType.BANK, "1000"),
    ("1300", "Accounts Receivable", AccountType.ASSET, AccountSubType.RECEIVABLE, "1000"),
    ("1400", "Inventory", AccountType.ASSET, AccountSubType.INVENTORY, "1000"),
    ("1500", "Fixed Assets", AccountType.ASSET, AccountSubType.FIXED_ASSET, "1000"),
    # Liabilities
    ("2000", "Liabilities", AccountType.LIABILITY, None, None),
    ("2100", "Accounts Payable", AccountType.LIABILITY, AccountSubType.PAYABLE, "2000"),
    ("2200", "GST Payable", AccountType.LIABILITY, AccountSubType.TAX, "2000"),
    ("2300", "TDS Payable", AccountType.LIABILITY, AccountSubType.TAX, "2000"),
    # Equity
    ("3000", "Equity", AccountType.EQUITY, None, None),
    ("3100", "Owner's Capital", AccountType.EQUITY, AccountSubType.CAPITAL, "3000"),
    ("3200", "Retained Earnings", AccountType.EQUITY, None, "3000"),
    # Income
    ("4000", "Income", AccountType.INCOME, None, None),
    ("4100", "Sales Revenue", AccountType.INCOME, AccountSubType.SALES, "4000"),
    ("4200", "Service Revenue", AccountType.INCOME, AccountSubType.SALES, "4000"),
    ("4900", "Other Income", AccountType.INCOME, None, "4000"),
    # Expenses
    ("5000", "Expenses", AccountType.EXPENSE, None, None),
    ("5100", "Cost of Goods Sold", AccountType.EXPENSE, AccountSubType.PURCHASE, "5000"),
    ("5200", "Purchase", AccountType.EXPENSE, AccountSubType.PURCHASE, "5000"),
    ("5300", "Rent", AccountType.EXPENSE, AccountSubType.INDIRECT_EXPENSE, "5000"),
    ("5400", "Salary", AccountType.EXPENSE, AccountSubType.INDIRECT_EXPENSE, "5000"),
    ("5500", "Utilities", AccountType.EXPENSE, AccountSubType.INDIRECT_EXPENSE, "5000"),
    ("5600", "Marketing", AccountType.EXPENSE, AccountSubType.INDIRECT_EXPENSE, "5000"),
    ("5900", "Other Expenses", AccountType.EXPENSE, AccountSubType.INDIRECT_EXPENSE, "5000"),
]

# Quick-entry roles seeded alongside the default chart
DEFAULT_QUICK_ENTRY_CODES = {
    QuickEntryRole.CASH: "1100",
    QuickEntryRole.BANK: "1200",
    QuickEntryRole.RECEIVABLE: "1300",
    QuickEntryRole.PAYABLE: "2100",
    QuickEntryRole.SALES: "4100",
    QuickEntryRole.OUTPUT_TAX: "2200",
}

UPDATABLE_FIELDS = {"name", "description", "sub_type", "parent_id", "opening_balance", "is_active"}


def _value(v: Any) -> Any:
    return v.value if hasattr(v, "value") else v


class AccountService:
    """Chart of accounts for one tenant."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID):
        self.db = db
        self.tenant_id = tenant_id

    def _base_query(self):
        return select(Account).where(
            Account.tenant_id == self.tenant_id,
            Account.deleted_at.is_(None),
        )

    # ==================== CRUD ====================

    async def create_account(
        self,
        code: str,
        name: str,
        account_type: str,
        sub_type: Optional[str] = None,
        parent_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        opening_balance: Decimal = Decimal("0"),
        is_system: bool = False,
    ) -> Account:
        existing = await self.get_account_by_code(code)
        if existing:
            raise AccountExistsError(f"Account code {code} already exists", {"code": code})

        if parent_id:
            await self.get_account(parent_id)

        opening = Decimal(str(opening_balance or 0))
        account = Account(
            tenant_id=self.tenant_id,
            code=code,
            name=name,
            account_type=str(_value(account_type)).upper(),
            sub_type=str(_value(sub_type)).upper() if sub_type else None,
            parent_id=parent_id,
            description=description,
            opening_balance=opening,
            current_balance=opening,
            is_system=is_system,
            is_active=True,
        )
        self.db.add(account)
        await self.db.flush()
        logger.info(f"Created account {code} '{name}' for tenant {self.tenant_id}")
        return account

    async def get_account(self, account_id: uuid.UUID) -> Account:
        result = await self.db.execute(self._base_query().where(Account.id == account_id))
        account = result.scalar_one_or_none()
        if not account:
            raise AccountNotFoundError(f"Account {account_id} not found", {"account_id": str(account_id)})
        return account

    async def get_account_by_code(self, code: str) -> Optional[Account]:
        result = await self.db.execute(self._base_query().where(Account.code == code))
        return result.scalar_one_or_none()

    async def list_accounts(
        self,
        account_type: Optional[str] = None,
        active_only: bool = False,
    ) -> List[Account]:
        query = self._base_query()
        if account_type:
            query = query.where(Account.account_type == str(_value(account_type)).upper())
        if active_only:
            query = query.where(Account.is_active == True)
        result = await self.db.execute(query.order_by(Account.code))
        return list(result.scalars().all())

    async def update_account(self, account_id: uuid.UUID, **changes: Any) -> Account:
        account = await self.get_account(account_id)
        if account.is_system:
            raise SystemAccountError(f"Account {account.code} is a system account and cannot be modified")

        for field, value in changes.items():
            if field not in UPDATABLE_FIELDS or value is None:
                continue
            if field == "opening_balance":
                # Keep current_balance consistent with the new opening figure
                new_opening = Decimal(str(value))
                account.current_balance += new_opening - account.opening_balance
                account.opening_balance = new_opening
            elif field == "parent_id":
                await self.get_account(value)
                account.parent_id = value
            else:
                setattr(account, field, _value(value))

        await self.db.flush()
        return account

    async def delete_account(self, account_id: uuid.UUID) -> None:
        """Soft delete. Historical lines keep pointing at the row."""
        account = await self.get_account(account_id)
        if account.is_system:
            raise SystemAccountError(f"Account {account.code} is a system account and cannot be deleted")
        if account.current_balance != 0:
            raise AccountHasBalanceError(
                f"Account {account.code} has a non-zero balance",
                {"current_balance": str(account.current_balance)},
            )
        account.deleted_at = datetime.now(timezone.utc)
        account.is_active = False
        await self.db.flush()
        logger.info(f"Deleted account {account.code} for tenant {self.tenant_id}")

    # ==================== Posting support ====================

    async def get_accounts_for_posting(
        self,
        account_ids: Iterable[uuid.UUID],
        include_deleted: bool = False,
    ) -> Dict[uuid.UUID, Account]:
        """
        Lock and load every referenced account.

        include_deleted admits soft-deleted accounts; reversals need them
        because lines posted before the delete still point at the row.

        Raises:
            AccountNotFoundError: If any id is not an account of this tenant
        """
        wanted = sorted(set(account_ids), key=str)
        if not wanted:
            return {}
        query = self._base_query()
        if include_deleted:
            query = select(Account).where(Account.tenant_id == self.tenant_id)
        result = await self.db.execute(
            query
            .where(Account.id.in_(wanted))
            .order_by(Account.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        accounts = {a.id: a for a in result.scalars().all()}
        missing = [str(a) for a in wanted if a not in accounts]
        if missing:
            raise AccountNotFoundError(
                f"Account(s) not found: {', '.join(missing)}",
                {"account_ids": missing},
            )
        return accounts

    async def apply_line_deltas(self, lines: Sequence[TransactionLine], sign: int = 1) -> None:
        """
        Move balances for a set of lines.

        sign=1 posts the lines and requires live accounts; sign=-1 reverses
        them, deleted accounts included.
        """
        accounts = await self.get_accounts_for_posting(
            (line.account_id for line in lines),
            include_deleted=sign < 0,
        )
        for line in lines:
            delta = (line.debit or Decimal("0")) - (line.credit or Decimal("0"))
            accounts[line.account_id].current_balance += sign * delta
        await self.db.flush()

    async def recompute_balances(self, persist: bool = True) -> Dict[uuid.UUID, Decimal]:
        """
        Rebuild every balance from scratch: opening + Σ(debit - credit) over
        lines of non-void transactions.
        """
        net = func.coalesce(
            func.sum(
                case(
                    (Transaction.status != TransactionStatus.VOID.value,
                     TransactionLine.debit - TransactionLine.credit),
                    else_=0,
                )
            ),
            0,
        )
        result = await self.db.execute(
            select(TransactionLine.account_id, net)
            .join(Transaction, Transaction.id == TransactionLine.transaction_id)
            .where(Transaction.tenant_id == self.tenant_id)
            .group_by(TransactionLine.account_id)
        )
        movements = {row[0]: round_money(row[1]) for row in result.all()}

        balances: Dict[uuid.UUID, Decimal] = {}
        accounts = await self.db.execute(
            select(Account).where(Account.tenant_id == self.tenant_id)
        )
        for account in accounts.scalars().all():
            balance = (account.opening_balance or Decimal("0")) + movements.get(account.id, Decimal("0"))
            balances[account.id] = balance
            if persist and account.current_balance != balance:
                logger.warning(
                    f"Balance drift on account {account.code}: stored {account.current_balance}, "
                    f"recomputed {balance}"
                )
                account.current_balance = balance

        if persist:
            await self.db.flush()
        return balances

    # ==================== Bootstrap & quick-entry mapping ====================

    async def initialize_default_accounts(self) -> Dict[str, int]:
        """
        Seed the default chart of accounts and the quick-entry mapping.

        Idempotent: existing codes and mapped roles are left untouched.
        """
        stats = {"accounts_created": 0, "accounts_existing": 0, "roles_mapped": 0}

        result = await self.db.execute(self._base_query())
        by_code = {a.code: a for a in result.scalars().all()}

        for code, name, account_type, sub_type, parent_code in DEFAULT_CHART_OF_ACCOUNTS:
            if code in by_code:
                stats["accounts_existing"] += 1
                continue
            parent = by_code.get(parent_code) if parent_code else None
            account = Account(
                tenant_id=self.tenant_id,
                code=code,
                name=name,
                account_type=account_type.value,
                sub_type=sub_type.value if sub_type else None,
                parent_id=parent.id if parent else None,
                opening_balance=Decimal("0"),
                current_balance=Decimal("0"),
                is_system=True,
                is_active=True,
            )
            self.db.add(account)
            # Flush per account so children can reference the parent's id
            await self.db.flush()
            by_code[code] = account
            stats["accounts_created"] += 1

        mapping = await self.get_quick_entry_mapping()
        for role, code in DEFAULT_QUICK_ENTRY_CODES.items():
            if role.value in mapping:
                continue
            self.db.add(QuickEntryAccount(
                tenant_id=self.tenant_id,
                role=role.value,
                account_id=by_code[code].id,
            ))
            stats["roles_mapped"] += 1
        await self.db.flush()

        logger.info(f"Default chart for tenant {self.tenant_id}: {stats}")
        return stats

    async def get_quick_entry_mapping(self) -> Dict[str, uuid.UUID]:
        result = await self.db.execute(
            select(QuickEntryAccount.role, QuickEntryAccount.account_id)
            .where(QuickEntryAccount.tenant_id == self.tenant_id)
        )
        return {role: account_id for role, account_id in result.all()}

    async def set_quick_entry_account(self, role: str, account_id: uuid.UUID) -> QuickEntryAccount:
        role = str(_value(role)).upper()
        if role not in {r.value for r in QuickEntryRole}:
            raise ValidationError(f"Unknown quick-entry role: {role}", {"role": role})
        await self.get_account(account_id)

        result = await self.db.execute(
            select(QuickEntryAccount).where(
                QuickEntryAccount.tenant_id == self.tenant_id,
                QuickEntryAccount.role == role,
            )
        )
        entry = result.scalar_one_or_none()
        if entry:
            entry.account_id = account_id
        else:
            entry = QuickEntryAccount(tenant_id=self.tenant_id, role=role, account_id=account_id)
            self.db.add(entry)
        await self.db.flush()
        logger.info(f"Quick-entry role {role} -> {account_id} for tenant {self.tenant_id}")
        return entry

    async def resolve_quick_entry_account(self, role: str) -> Account:
        """
        Resolve a role to its account.

        Raises:
            AccountNotFoundError: If the tenant has no mapping for the role
                (default chart not initialized) or the mapped account is gone
        """
        role = str(_value(role)).upper()
        result = await self.db.execute(
            select(QuickEntryAccount.account_id).where(
                QuickEntryAccount.tenant_id == self.tenant_id,
                QuickEntryAccount.role == role,
            )
        )
        account_id = result.scalar_one_or_none()
        if not account_id:
            raise AccountNotFoundError(
                f"No account mapped for role {role}; initialize the default chart of accounts first",
                {"role": role},
            )
        return await self.get_account(account_id)
