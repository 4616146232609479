"""API endpoints for Banking - statement import and reconciliation."""
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status

from bookkeeping.api.deps import DB, TenantId, UserId
from bookkeeping.schemas.banking import (
    AutoReconcileResult,
    BankAccountCreate,
    BankAccountResponse,
    BankAccountUpdate,
    BankTransactionListResponse,
    BankTransactionResponse,
    ImportResult,
    MatchSuggestion,
    ReconciliationMatch,
    ReconciliationSummaryResponse,
)
from bookkeeping.services.bank_account_service import BankAccountService
from bookkeeping.services.bank_import_service import BankImportService
from bookkeeping.services.bank_reconciliation_service import BankReconciliationService


router = APIRouter()


# ==================== Bank Accounts ====================

@router.post("/accounts", response_model=BankAccountResponse, status_code=status.HTTP_201_CREATED)
async def create_bank_account(account_in: BankAccountCreate, db: DB, tenant_id: TenantId):
    """Create a new bank account, optionally linked to a ledger account."""
    service = BankAccountService(db, tenant_id)
    return await service.create_bank_account(**account_in.model_dump())


@router.get("/accounts", response_model=List[BankAccountResponse])
async def list_bank_accounts(db: DB, tenant_id: TenantId, active_only: bool = Query(False)):
    service = BankAccountService(db, tenant_id)
    return await service.list_bank_accounts(active_only=active_only)


@router.get("/accounts/{account_id}", response_model=BankAccountResponse)
async def get_bank_account(account_id: UUID, db: DB, tenant_id: TenantId):
    service = BankAccountService(db, tenant_id)
    return await service.get_bank_account(account_id)


@router.put("/accounts/{account_id}", response_model=BankAccountResponse)
async def update_bank_account(account_id: UUID, account_in: BankAccountUpdate, db: DB, tenant_id: TenantId):
    service = BankAccountService(db, tenant_id)
    return await service.update_bank_account(account_id, **account_in.model_dump(exclude_unset=True))


# ==================== Statement Import ====================

@router.post("/accounts/{account_id}/import-statement", response_model=ImportResult)
async def import_bank_statement(
    account_id: UUID,
    db: DB,
    tenant_id: TenantId,
    user_id: UserId,
    file: UploadFile = File(...),
    bank_format: str = Form(default="AUTO"),
    skip_duplicates: bool = Form(default=True),
):
    """
    Import bank statement from CSV or Excel file.

    Supported formats:
    - AUTO: Auto-detect bank format
    - HDFC: HDFC Bank statement format
    - ICICI: ICICI Bank statement format
    - SBI: State Bank of India format
    - GENERIC: Generic CSV with standard columns

    Expected columns:
    - Date: Transaction date
    - Description/Narration: Transaction description
    - Debit/Withdrawal: Debit amount
    - Credit/Deposit: Credit amount
    - Balance: Running balance (optional)
    - Reference: Transaction reference (optional)
    """
    filename = file.filename or ""
    lowered = filename.lower()
    if not (lowered.endswith('.csv') or lowered.endswith('.txt') or lowered.endswith('.xlsx')):
        raise HTTPException(
            status_code=400,
            detail="Unsupported file format. Please upload CSV or Excel (.xlsx) file."
        )

    import_service = BankImportService(db, tenant_id, user_id)
    file_content = await file.read()

    if lowered.endswith('.xlsx'):
        return await import_service.import_excel_statement(
            bank_account_id=account_id,
            file_bytes=file_content,
            filename=filename,
            bank_format=bank_format,
            skip_duplicates=skip_duplicates,
        )

    try:
        content_str = file_content.decode('utf-8')
    except UnicodeDecodeError:
        content_str = file_content.decode('latin-1')

    return await import_service.import_csv_statement(
        bank_account_id=account_id,
        file_content=content_str,
        filename=filename,
        bank_format=bank_format,
        skip_duplicates=skip_duplicates,
    )


# ==================== Reconciliation ====================

@router.get("/accounts/{account_id}/unreconciled", response_model=List[BankTransactionResponse])
async def get_unreconciled_transactions(
    account_id: UUID,
    db: DB,
    tenant_id: TenantId,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
):
    service = BankReconciliationService(db, tenant_id)
    return await service.get_unreconciled_transactions(account_id, start_date, end_date, limit)


@router.get("/accounts/{account_id}/transactions", response_model=BankTransactionListResponse)
async def list_bank_transactions(
    account_id: UUID,
    db: DB,
    tenant_id: TenantId,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    is_reconciled: Optional[bool] = Query(None),
    min_amount: Optional[Decimal] = Query(None, ge=0),
    max_amount: Optional[Decimal] = Query(None, ge=0),
    search: Optional[str] = Query(None, description="Matches description or reference"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    service = BankReconciliationService(db, tenant_id)
    items, total = await service.list_bank_transactions(
        account_id,
        start_date=start_date,
        end_date=end_date,
        is_reconciled=is_reconciled,
        min_amount=min_amount,
        max_amount=max_amount,
        search=search,
        limit=limit,
        offset=offset,
    )
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.get("/accounts/{account_id}/reconciliation-summary", response_model=ReconciliationSummaryResponse)
async def get_reconciliation_summary(
    account_id: UUID,
    db: DB,
    tenant_id: TenantId,
    as_of: Optional[date] = Query(None, description="Defaults to today"),
):
    """Statement vs ledger balance and the unreconciled rows up to a date."""
    service = BankReconciliationService(db, tenant_id)
    return await service.get_reconciliation_summary(account_id, as_of)


@router.post("/accounts/{account_id}/auto-reconcile", response_model=AutoReconcileResult)
async def auto_reconcile(account_id: UUID, db: DB, tenant_id: TenantId, user_id: UserId):
    """Link unreconciled rows to same-day ledger transactions with the exact same amount."""
    service = BankReconciliationService(db, tenant_id, user_id)
    return await service.auto_reconcile(account_id)


@router.post("/transactions/{bank_transaction_id}/reconcile", response_model=BankTransactionResponse)
async def reconcile_transaction(
    bank_transaction_id: UUID,
    match_in: ReconciliationMatch,
    db: DB,
    tenant_id: TenantId,
    user_id: UserId,
):
    service = BankReconciliationService(db, tenant_id, user_id)
    return await service.reconcile_transaction(bank_transaction_id, match_in.transaction_id)


@router.post("/transactions/{bank_transaction_id}/unreconcile", response_model=BankTransactionResponse)
async def unreconcile_transaction(bank_transaction_id: UUID, db: DB, tenant_id: TenantId, user_id: UserId):
    service = BankReconciliationService(db, tenant_id, user_id)
    return await service.unreconcile_transaction(bank_transaction_id)


@router.get("/transactions/{bank_transaction_id}/suggest-matches", response_model=List[MatchSuggestion])
async def suggest_matches(
    bank_transaction_id: UUID,
    db: DB,
    tenant_id: TenantId,
    limit: int = Query(10, ge=1, le=50),
):
    """Ledger transactions that probably caused this bank row, best first."""
    service = BankReconciliationService(db, tenant_id)
    return await service.suggest_matches(bank_transaction_id, limit=limit)
