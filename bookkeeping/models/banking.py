"""Banking models for bank accounts, imported statement rows, and reconciliation links."""
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, Text, Boolean, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column

from bookkeeping.database import Base
from bookkeeping.db_types import UUIDType, Money


class BankAccountType(str, Enum):
    """Bank account types."""
    CURRENT = "CURRENT"
    SAVINGS = "SAVINGS"
    CASH_CREDIT = "CASH_CREDIT"
    OVERDRAFT = "OVERDRAFT"


class BankAccount(Base):
    """
    Bank account master.

    Links to a ledger account so statement rows can be matched against
    postings on that account.
    """
    __tablename__ = "bank_accounts"

    id: Mapped[UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)

    # Account Details
    account_name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(200), nullable=False)
    branch_name: Mapped[Optional[str]] = mapped_column(String(200))
    ifsc_code: Mapped[Optional[str]] = mapped_column(String(20))
    account_type: Mapped[str] = mapped_column(String(50), default=BankAccountType.CURRENT.value)

    # Balances
    opening_balance: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    current_balance: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))

    # Linked Ledger Account (required for auto-reconcile)
    ledger_account_id: Mapped[Optional[UUID]] = mapped_column(UUIDType(as_uuid=True), ForeignKey("accounts.id"))

    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Audit
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<BankAccount {self.bank_name} - {self.account_number}>"


class BankTransaction(Base):
    """
    Individual bank transaction imported from a statement.

    Created only by import, changed only by reconcile/unreconcile.
    """
    __tablename__ = "bank_transactions"
    __table_args__ = (
        Index("ix_bank_transactions_account_reconciled", "bank_account_id", "is_reconciled"),
    )

    id: Mapped[UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)

    # Parent Account
    bank_account_id: Mapped[UUID] = mapped_column(UUIDType(as_uuid=True), ForeignKey("bank_accounts.id"), nullable=False)

    # Transaction Details
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(100))

    # Amounts
    debit_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    credit_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    balance: Mapped[Optional[Decimal]] = mapped_column(Money())

    # Reconciliation
    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False)
    reconciled_transaction_id: Mapped[Optional[UUID]] = mapped_column(UUIDType(as_uuid=True), ForeignKey("transactions.id"))
    reconciled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reconciled_by: Mapped[Optional[UUID]] = mapped_column(UUIDType(as_uuid=True))

    # Import Tracking
    import_batch_id: Mapped[Optional[UUID]] = mapped_column(UUIDType(as_uuid=True), index=True)
    import_reference: Mapped[Optional[str]] = mapped_column(String(255))  # Original filename

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Relationships
    bank_account = relationship("BankAccount")

    @property
    def signed_amount(self) -> Decimal:
        """credit - debit: deposits positive, withdrawals negative."""
        return (self.credit_amount or Decimal("0")) - (self.debit_amount or Decimal("0"))

    def __repr__(self):
        return f"<BankTransaction {self.transaction_date} {self.signed_amount}>"
