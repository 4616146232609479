"""Recurring schedule models: journal and invoice templates plus the
generated-occurrence join tables."""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Date, Boolean
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookkeeping.database import Base
from bookkeeping.db_types import UUIDType, Money, Quantity, Rate


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUALLY = "ANNUALLY"


class ScheduleStatus(str, Enum):
    """ACTIVE <-> PAUSED; COMPLETED and CANCELLED are terminal."""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = {ScheduleStatus.COMPLETED.value, ScheduleStatus.CANCELLED.value}


class ScheduleMixin:
    """Cadence and lifecycle columns shared by every recurring template."""

    id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Cadence
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    interval_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    max_occurrences: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Progress
    occurrence_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    next_run_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    last_run_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default=ScheduleStatus.ACTIVE.value,
        nullable=False,
        index=True,
        comment="ACTIVE, PAUSED, COMPLETED, CANCELLED"
    )

    # Bumped by every claim; a worker only generates if its bump hit the row
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

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

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ==================== Recurring journals ====================

class RecurringJournal(ScheduleMixin, Base):
    """Balanced journal template replayed on a cadence."""
    __tablename__ = "recurring_journals"
    __table_args__ = (
        Index("ix_recurring_journals_due", "status", "next_run_date"),
    )

    transaction_type: Mapped[str] = mapped_column(String(50), default="JOURNAL", nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))

    lines: Mapped[List["RecurringJournalLine"]] = relationship(
        "RecurringJournalLine",
        back_populates="recurring_journal",
        cascade="all, delete-orphan",
        order_by="RecurringJournalLine.line_order",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<RecurringJournal(name='{self.name}', status='{self.status}', next={self.next_run_date})>"


class RecurringJournalLine(Base):
    __tablename__ = "recurring_journal_lines"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recurring_journal_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("recurring_journals.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Not a foreign key: the account may be deleted later and generation must report it
    account_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    debit: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"), nullable=False)
    credit: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"), nullable=False)
    line_order: Mapped[int] = mapped_column(Integer, default=0)

    recurring_journal: Mapped["RecurringJournal"] = relationship("RecurringJournal", back_populates="lines")


class GeneratedJournal(Base):
    """Traceability row: one per transaction produced by a recurring journal."""
    __tablename__ = "generated_journals"
    __table_args__ = (
        UniqueConstraint("recurring_journal_id", "occurrence_number", name="uq_generated_journal_occurrence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recurring_journal_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("recurring_journals.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False
    )
    occurrence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )


# ==================== Recurring invoices ====================

class RecurringInvoice(ScheduleMixin, Base):
    """Invoice template replayed on a cadence."""
    __tablename__ = "recurring_invoices"
    __table_args__ = (
        Index("ix_recurring_invoices_due", "status", "next_run_date"),
    )

    # Customer snapshot
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_gstin: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    customer_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    days_until_due: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    auto_send: Mapped[bool] = mapped_column(Boolean, default=False)

    discount_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))

    # Preview of one occurrence, recomputed whenever the template changes
    subtotal: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    total_tax: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    items: Mapped[List["RecurringInvoiceItem"]] = relationship(
        "RecurringInvoiceItem",
        back_populates="recurring_invoice",
        cascade="all, delete-orphan",
        order_by="RecurringInvoiceItem.line_order",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<RecurringInvoice(name='{self.name}', status='{self.status}', next={self.next_run_date})>"


class RecurringInvoiceItem(Base):
    __tablename__ = "recurring_invoice_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recurring_invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("recurring_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Quantity(), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), default="pcs")
    rate: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    cgst_rate: Mapped[Decimal] = mapped_column(Rate(), default=Decimal("0"))
    sgst_rate: Mapped[Decimal] = mapped_column(Rate(), default=Decimal("0"))
    igst_rate: Mapped[Decimal] = mapped_column(Rate(), default=Decimal("0"))
    cess_rate: Mapped[Decimal] = mapped_column(Rate(), default=Decimal("0"))
    line_order: Mapped[int] = mapped_column(Integer, default=0)

    recurring_invoice: Mapped["RecurringInvoice"] = relationship("RecurringInvoice", back_populates="items")


class GeneratedInvoice(Base):
    """Traceability row: one per invoice produced by a recurring invoice."""
    __tablename__ = "generated_invoices"
    __table_args__ = (
        UniqueConstraint("recurring_invoice_id", "occurrence_number", name="uq_generated_invoice_occurrence"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recurring_invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("recurring_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False
    )
    occurrence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
