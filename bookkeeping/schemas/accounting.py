"""Pydantic schemas for the ledger: accounts, transactions and quick entries."""
from datetime import datetime, date
from typing import Optional, List, Dict
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field, field_validator

from bookkeeping.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
from bookkeeping.models.accounting import (
    AccountType,
    AccountSubType,
    PaymentMode,
    QuickEntryRole,
    TransactionType,
    TransactionStatus,
)


# ==================== Account Schemas ====================

class AccountCreate(BaseCreateSchema):
    """Schema for creating an account."""
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=200)
    account_type: AccountType
    sub_type: Optional[AccountSubType] = None
    parent_id: Optional[UUID] = None
    description: Optional[str] = None
    opening_balance: Decimal = Field(Decimal("0"), decimal_places=2)


class AccountUpdate(BaseUpdateSchema):
    """Schema for updating an account. System accounts reject updates."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    sub_type: Optional[AccountSubType] = None
    parent_id: Optional[UUID] = None
    opening_balance: Optional[Decimal] = None
    is_active: Optional[bool] = None


class AccountResponse(BaseResponseSchema):
    """Response schema for an account."""
    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    account_type: str
    sub_type: Optional[str] = None
    parent_id: Optional[UUID] = None
    opening_balance: Decimal = Decimal("0")
    current_balance: Decimal = Decimal("0")
    is_active: bool = True
    is_system: bool = False
    created_at: datetime
    updated_at: datetime


class BootstrapResponse(BaseModel):
    """Result of seeding the default chart of accounts."""
    accounts_created: int
    accounts_existing: int
    roles_mapped: int


class QuickEntryMappingUpdate(BaseModel):
    role: QuickEntryRole
    account_id: UUID


class QuickEntryMappingResponse(BaseModel):
    mapping: Dict[str, UUID]


class BalanceRecomputeResponse(BaseModel):
    accounts: int
    balances: Dict[str, Decimal]


# ==================== Transaction Schemas ====================

class TransactionLineCreate(BaseModel):
    """One side of a double-entry posting."""
    account_id: UUID
    debit: Decimal = Field(Decimal("0"), ge=0)
    credit: Decimal = Field(Decimal("0"), ge=0)
    description: Optional[str] = None
    tax_amount: Decimal = Field(Decimal("0"), ge=0)


class TransactionCreate(BaseCreateSchema):
    """Schema for posting a transaction."""
    transaction_type: TransactionType = TransactionType.JOURNAL
    transaction_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    reference_type: Optional[str] = Field(None, max_length=50)
    reference_id: Optional[UUID] = None
    party_id: Optional[UUID] = None
    party_type: Optional[str] = Field(None, max_length=20)
    party_name: Optional[str] = Field(None, max_length=200)
    payment_mode: Optional[PaymentMode] = None
    payment_reference: Optional[str] = Field(None, max_length=100)
    lines: List[TransactionLineCreate] = Field(..., min_length=2)


class TransactionLineResponse(BaseResponseSchema):
    id: UUID
    account_id: UUID
    description: Optional[str] = None
    debit: Decimal
    credit: Decimal
    tax_amount: Decimal = Decimal("0")
    line_order: int = 0


class TransactionResponse(BaseResponseSchema):
    """Response schema for a posted or void transaction."""
    id: UUID
    transaction_number: str
    transaction_date: date
    transaction_type: str
    reference_type: Optional[str] = None
    reference_id: Optional[UUID] = None
    party_id: Optional[UUID] = None
    party_type: Optional[str] = None
    party_name: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    total_amount: Decimal
    payment_mode: Optional[str] = None
    payment_reference: Optional[str] = None
    status: TransactionStatus
    voided_at: Optional[datetime] = None
    voided_by: Optional[UUID] = None
    void_reason: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    lines: List[TransactionLineResponse] = []


class TransactionListResponse(BaseModel):
    """Paginated transaction list response."""
    items: List[TransactionResponse]
    total: int
    limit: int = 50
    offset: int = 0


class VoidRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


# ==================== Quick Entry Schemas ====================

class QuickSaleItemCreate(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    rate: Decimal = Field(..., ge=0)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)


class QuickSaleCreate(BaseCreateSchema):
    items: List[QuickSaleItemCreate] = Field(..., min_length=1)
    payment_mode: PaymentMode = PaymentMode.CASH
    transaction_date: Optional[date] = None
    party_id: Optional[UUID] = None
    party_name: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None


class QuickExpenseCreate(BaseCreateSchema):
    expense_account_id: UUID
    amount: Decimal = Field(..., gt=0)
    payment_mode: PaymentMode = PaymentMode.CASH
    description: Optional[str] = None
    transaction_date: Optional[date] = None
    party_id: Optional[UUID] = None
    party_name: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class DailySummaryResponse(BaseResponseSchema):
    date: date
    total_sales: Decimal
    total_purchases: Decimal
    total_expenses: Decimal
    total_receipts: Decimal
    total_payments: Decimal
    transaction_count: int
