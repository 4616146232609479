"""Recurring journal and recurring invoice schemas."""
from datetime import datetime, date
from typing import Optional, List
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field, model_validator

from bookkeeping.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
from bookkeeping.schemas.accounting import TransactionLineCreate
from bookkeeping.models.accounting import TransactionType
from bookkeeping.models.billing import DiscountType
from bookkeeping.models.recurring import Frequency, ScheduleStatus


class ScheduleCadence(BaseModel):
    frequency: Frequency
    interval_count: int = Field(1, description="Periods between runs; values <= 0 become 1")
    start_date: date
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = Field(None, ge=1)


class ScheduleCadenceUpdate(BaseUpdateSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    frequency: Optional[Frequency] = None
    interval_count: Optional[int] = None
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = Field(None, ge=1)


class ScheduleResponse(BaseResponseSchema):
    id: UUID
    name: str
    description: Optional[str] = None
    frequency: str
    interval_count: int
    start_date: date
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = None
    occurrence_count: int
    next_run_date: date
    last_run_date: Optional[date] = None
    status: ScheduleStatus
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


# ==================== Recurring Journal Schemas ====================

class RecurringJournalCreate(ScheduleCadence, BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    transaction_type: TransactionType = TransactionType.JOURNAL
    lines: List[TransactionLineCreate] = Field(..., min_length=2)


class RecurringJournalUpdate(ScheduleCadenceUpdate):
    """Line templates are fixed once created."""
    pass


class RecurringJournalLineResponse(BaseResponseSchema):
    id: UUID
    account_id: UUID
    description: Optional[str] = None
    debit: Decimal
    credit: Decimal
    line_order: int


class RecurringJournalResponse(ScheduleResponse):
    transaction_type: str
    total_amount: Decimal
    lines: List[RecurringJournalLineResponse] = []


class GeneratedJournalResponse(BaseResponseSchema):
    id: UUID
    recurring_journal_id: UUID
    transaction_id: UUID
    occurrence_number: int
    generated_at: datetime


# ==================== Recurring Invoice Schemas ====================

class InvoiceItemCreate(BaseModel):
    """
    Invoice line as entered.

    IGST applies to inter-state supplies, CGST + SGST to intra-state ones,
    so an item cannot carry both.
    """
    product_id: Optional[UUID] = None
    description: str = Field(..., min_length=1)
    hsn_code: Optional[str] = Field(None, max_length=20)
    quantity: Decimal = Field(..., gt=0)
    unit: str = Field("pcs", max_length=20)
    rate: Decimal = Field(..., ge=0)
    cgst_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    sgst_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    igst_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    cess_rate: Decimal = Field(Decimal("0"), ge=0, le=100)

    @model_validator(mode="after")
    def check_gst_exclusive(self) -> "InvoiceItemCreate":
        if self.igst_rate > 0 and (self.cgst_rate > 0 or self.sgst_rate > 0):
            raise ValueError("IGST cannot be combined with CGST/SGST on the same item")
        return self


class CustomerFields(BaseModel):
    customer_id: Optional[UUID] = None
    customer_gstin: Optional[str] = Field(None, max_length=20)
    customer_address: Optional[str] = None
    customer_state: Optional[str] = Field(None, max_length=50)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=20)


class RecurringInvoiceCreate(ScheduleCadence, CustomerFields, BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    customer_name: str = Field(..., min_length=1, max_length=200)
    items: List[InvoiceItemCreate] = Field(..., min_length=1)
    days_until_due: Optional[int] = Field(None, ge=0)
    auto_send: bool = False
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None
    terms: Optional[str] = None


class RecurringInvoiceUpdate(ScheduleCadenceUpdate, CustomerFields):
    """Item templates are fixed once created."""
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    days_until_due: Optional[int] = Field(None, ge=0)
    auto_send: Optional[bool] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    terms: Optional[str] = None


class RecurringInvoiceItemResponse(BaseResponseSchema):
    id: UUID
    product_id: Optional[UUID] = None
    description: str
    hsn_code: Optional[str] = None
    quantity: Decimal
    unit: str
    rate: Decimal
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    cess_rate: Decimal
    line_order: int


class RecurringInvoiceResponse(ScheduleResponse):
    customer_id: Optional[UUID] = None
    customer_name: str
    customer_gstin: Optional[str] = None
    customer_state: Optional[str] = None
    customer_email: Optional[str] = None
    days_until_due: int
    auto_send: bool
    discount_type: Optional[str] = None
    discount_value: Decimal
    subtotal: Decimal
    total_tax: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[RecurringInvoiceItemResponse] = []


class GeneratedInvoiceResponse(BaseResponseSchema):
    id: UUID
    recurring_invoice_id: UUID
    invoice_id: UUID
    occurrence_number: int
    generated_at: datetime


# ==================== Generation Schemas ====================

class GenerateDueRequest(BaseModel):
    as_of: Optional[date] = Field(None, description="Generate schedules due on or before this date (default today)")


class GeneratedOccurrenceResponse(BaseResponseSchema):
    schedule_id: UUID
    tenant_id: UUID
    document_id: UUID
    occurrence_number: int


class GenerationFailureResponse(BaseResponseSchema):
    schedule_id: UUID
    tenant_id: UUID
    reason: str
    error_type: str


class GenerationReportResponse(BaseResponseSchema):
    started_at: datetime
    finished_at: Optional[datetime] = None
    processed: int
    skipped: int
    generated_count: int
    failed_count: int
    generated: List[GeneratedOccurrenceResponse] = []
    failures: List[GenerationFailureResponse] = []
