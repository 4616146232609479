"""Ledger models for double-entry bookkeeping.

Implements: Chart of Accounts, quick-entry account mapping, transaction
number sequences, and posted transactions with their debit/credit lines.
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Date
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookkeeping.database import Base
from bookkeeping.db_types import UUIDType, Money


class AccountType(str, Enum):
    """Account type classification."""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class AccountSubType(str, Enum):
    """Account sub-type for detailed classification."""
    CASH = "CASH"
    BANK = "BANK"
    RECEIVABLE = "RECEIVABLE"
    PAYABLE = "PAYABLE"
    INVENTORY = "INVENTORY"
    FIXED_ASSET = "FIXED_ASSET"
    SALES = "SALES"
    PURCHASE = "PURCHASE"
    DIRECT_EXPENSE = "DIRECT_EXPENSE"
    INDIRECT_EXPENSE = "INDIRECT_EXPENSE"
    TAX = "TAX"
    CAPITAL = "CAPITAL"


class TransactionType(str, Enum):
    SALE = "SALE"
    PURCHASE = "PURCHASE"
    RECEIPT = "RECEIPT"
    PAYMENT = "PAYMENT"
    EXPENSE = "EXPENSE"
    JOURNAL = "JOURNAL"
    TRANSFER = "TRANSFER"


class TransactionStatus(str, Enum):
    """Ledger transactions are posted on creation; VOID is terminal."""
    POSTED = "POSTED"
    VOID = "VOID"


class PaymentMode(str, Enum):
    CASH = "CASH"
    BANK = "BANK"
    UPI = "UPI"
    CARD = "CARD"
    CHEQUE = "CHEQUE"
    CREDIT = "CREDIT"


class QuickEntryRole(str, Enum):
    """Well-known account roles used by quick sales/expenses and invoice posting."""
    CASH = "CASH"
    BANK = "BANK"
    RECEIVABLE = "RECEIVABLE"
    PAYABLE = "PAYABLE"
    SALES = "SALES"
    OUTPUT_TAX = "OUTPUT_TAX"


class Account(Base):
    """
    Chart of Accounts entry.

    current_balance is derived state: it only moves through line postings and
    reversals (debit increases it, credit decreases it).
    """
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_accounts_tenant_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)

    # Account Identification
    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Account code e.g., 1100, 2100, 4100"
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Classification
    account_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="ASSET, LIABILITY, EQUITY, INCOME, EXPENSE"
    )
    sub_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Hierarchy
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )

    # Balance
    opening_balance: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    current_balance: Mapped[Decimal] = mapped_column(
        Money(),
        default=Decimal("0"),
        comment="Maintained by line posting/reversal only"
    )

    # Settings
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_system: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="System account - cannot be modified or deleted"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_debit_account(self) -> bool:
        """Assets and Expenses have debit normal balance."""
        return self.account_type in [AccountType.ASSET, AccountType.EXPENSE]

    def __repr__(self) -> str:
        return f"<Account(code='{self.code}', name='{self.name}')>"


class QuickEntryAccount(Base):
    """
    Tenant-scoped mapping from a well-known role (cash, bank, sales, ...) to an
    account. Seeded with the default chart and overridable afterwards.
    """
    __tablename__ = "quick_entry_accounts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "role", name="uq_quick_entry_tenant_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    account: Mapped["Account"] = relationship("Account", lazy="joined")


class TransactionSequence(Base):
    """Per tenant/prefix/year counter backing human-readable document numbers."""
    __tablename__ = "transaction_sequences"
    __table_args__ = (
        UniqueConstraint("tenant_id", "prefix", "year", name="uq_sequence_tenant_prefix_year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False)
    prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    current_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<TransactionSequence({self.prefix}-{self.year}: {self.current_number})>"


class Transaction(Base):
    """
    Posted double-entry transaction.
    Σ line debits always equals Σ line credits.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("tenant_id", "transaction_number", name="uq_transactions_tenant_number"),
        Index("ix_transactions_tenant_date", "tenant_id", "transaction_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)

    transaction_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="SAL-2025-0001 style number"
    )
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="SALE, PURCHASE, RECEIPT, PAYMENT, EXPENSE, JOURNAL, TRANSFER"
    )

    # Source document / counterparty
    reference_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    party_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    party_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    party_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))

    # Payment
    payment_mode: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=TransactionStatus.POSTED.value,
        index=True,
        comment="POSTED, VOID"
    )

    # Void audit
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    void_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    lines: Mapped[List["TransactionLine"]] = relationship(
        "TransactionLine",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionLine.line_order",
        lazy="selectin"
    )

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        """Check if entry is balanced."""
        return self.total_debit == self.total_credit

    @property
    def is_void(self) -> bool:
        return self.status == TransactionStatus.VOID.value

    def __repr__(self) -> str:
        return f"<Transaction(number='{self.transaction_number}', status='{self.status}')>"


class TransactionLine(Base):
    """
    Transaction line item.
    Exactly one of debit/credit is non-zero.
    """
    __tablename__ = "transaction_lines"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    debit: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"), nullable=False)
    credit: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    line_order: Mapped[int] = mapped_column(Integer, default=0)

    transaction: Mapped["Transaction"] = relationship("Transaction", back_populates="lines")

    @property
    def signed_amount(self) -> Decimal:
        """credit - debit, the bank-statement sign convention."""
        return self.credit - self.debit

    def __repr__(self) -> str:
        return f"<TransactionLine(account={self.account_id}, dr={self.debit}, cr={self.credit})>"
