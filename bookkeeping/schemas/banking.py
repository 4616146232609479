"""Banking module schemas for API requests/responses."""
from pydantic import BaseModel, Field

from bookkeeping.schemas.base import BaseResponseSchema, BaseUpdateSchema
from bookkeeping.models.banking import BankAccountType
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal


class BankAccountCreate(BaseModel):
    """Create bank account request."""
    account_name: str = Field(..., description="Account display name")
    account_number: str = Field(..., description="Bank account number")
    bank_name: str = Field(..., description="Bank name")
    branch_name: Optional[str] = Field(None, description="Branch name")
    ifsc_code: Optional[str] = Field(None, description="IFSC code")
    account_type: BankAccountType = Field(BankAccountType.CURRENT, description="Account type: CURRENT, SAVINGS, CASH_CREDIT, OVERDRAFT")
    opening_balance: Decimal = Field(Decimal("0"), description="Opening balance")
    ledger_account_id: Optional[UUID] = Field(None, description="Linked ledger account ID")
    is_primary: bool = False


class BankAccountUpdate(BaseUpdateSchema):
    account_name: Optional[str] = None
    bank_name: Optional[str] = None
    branch_name: Optional[str] = None
    ifsc_code: Optional[str] = None
    account_type: Optional[BankAccountType] = None
    ledger_account_id: Optional[UUID] = None
    is_primary: Optional[bool] = None
    is_active: Optional[bool] = None


class BankAccountResponse(BaseResponseSchema):
    """Bank account response."""
    id: UUID
    account_name: str
    account_number: str
    bank_name: str
    branch_name: Optional[str] = None
    ifsc_code: Optional[str] = None
    account_type: str
    opening_balance: Decimal = Decimal("0")
    current_balance: Decimal
    ledger_account_id: Optional[UUID] = None
    is_primary: bool = False
    is_active: bool
    created_at: datetime
    updated_at: datetime


class BankTransactionResponse(BaseResponseSchema):
    """Bank transaction response."""
    id: UUID
    bank_account_id: UUID
    transaction_date: date
    description: str
    reference: Optional[str] = None
    debit_amount: Decimal
    credit_amount: Decimal
    balance: Optional[Decimal] = None
    is_reconciled: bool
    reconciled_transaction_id: Optional[UUID] = None
    reconciled_at: Optional[datetime] = None
    reconciled_by: Optional[UUID] = None
    import_batch_id: Optional[UUID] = None


class ImportResult(BaseResponseSchema):
    """Import result response."""
    bank_account_id: UUID
    import_batch_id: UUID
    bank_format: str = Field(..., description="Detected bank format")
    total_rows: int = Field(..., description="Data rows read after the header")
    imported_rows: int
    skipped_rows: int = Field(..., description="Rows with a bad date, amount or too few fields")
    duplicate_rows: int
    error_rows: int = Field(..., description="Rows the CSV reader could not read")
    total_debit: Decimal
    total_credit: Decimal
    errors: List[str] = Field(default_factory=list, description="Sample of 'line N: reason' messages")


class ReconciliationMatch(BaseModel):
    """Match bank transaction with ledger transaction."""
    transaction_id: UUID = Field(..., description="Ledger transaction ID to match with")


class ReconcileMatchResponse(BaseResponseSchema):
    bank_transaction_id: UUID
    transaction_id: UUID
    transaction_number: str


class AutoReconcileResult(BaseResponseSchema):
    bank_account_id: UUID
    matched_count: int
    unmatched_count: int
    total_processed: int
    matches: List[ReconcileMatchResponse] = []


class MatchSuggestion(BaseResponseSchema):
    transaction_id: UUID
    transaction_number: str
    transaction_date: date
    description: Optional[str] = None
    amount: Decimal
    match_score: int
    match_reason: str


class BankTransactionListResponse(BaseModel):
    items: List[BankTransactionResponse]
    total: int
    limit: int = 50
    offset: int = 0


class ReconciliationSummaryResponse(BaseResponseSchema):
    """Statement balance against the linked ledger account as of a date."""
    bank_account_id: UUID
    bank_account_name: str
    bank_name: str
    as_of_date: date
    bank_balance: Decimal
    ledger_balance: Decimal = Field(..., description="Linked ledger account balance in statement sign (credit - debit)")
    unreconciled_count: int
    unreconciled_debits: Decimal
    unreconciled_credits: Decimal
    difference: Decimal
    is_reconciled: bool
