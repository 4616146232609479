"""Sales invoice models. Totals are filled from DocumentTotals."""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Date
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookkeeping.database import Base
from bookkeeping.db_types import UUIDType, Money, Quantity, Rate


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class Invoice(Base):
    """Sales invoice posted to the ledger as a SALE transaction."""
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)
    invoice_number: Mapped[str] = mapped_column(String(30), nullable=False)

    # Customer snapshot
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True, index=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_gstin: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    customer_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_state: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default=InvoiceStatus.DRAFT.value, nullable=False)

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    discount_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    taxable_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))

    # GST components
    cgst_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    sgst_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    igst_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    cess_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    total_tax: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))

    total_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    amount_paid: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    balance_due: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))

    # Ledger posting
    transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("transactions.id", ondelete="SET NULL"),
        nullable=True
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
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

    items: Mapped[List["InvoiceItem"]] = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.line_order",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Invoice(number='{self.invoice_number}', total={self.total_amount})>"


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Quantity(), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), default="pcs")
    rate: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money(), nullable=False)

    # Tax rates
    cgst_rate: Mapped[Decimal] = mapped_column(Rate(), default=Decimal("0"))
    sgst_rate: Mapped[Decimal] = mapped_column(Rate(), default=Decimal("0"))
    igst_rate: Mapped[Decimal] = mapped_column(Rate(), default=Decimal("0"))
    cess_rate: Mapped[Decimal] = mapped_column(Rate(), default=Decimal("0"))

    # Tax amounts
    cgst_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    sgst_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    igst_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))
    cess_amount: Mapped[Decimal] = mapped_column(Money(), default=Decimal("0"))

    total_amount: Mapped[Decimal] = mapped_column(Money(), nullable=False)
    line_order: Mapped[int] = mapped_column(Integer, default=0)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")
