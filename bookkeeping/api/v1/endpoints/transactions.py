"""API endpoints for posting, voiding and querying ledger transactions."""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from bookkeeping.api.deps import DB, TenantId, UserId
from bookkeeping.models.accounting import TransactionStatus, TransactionType
from bookkeeping.schemas.accounting import (
    DailySummaryResponse,
    QuickExpenseCreate,
    QuickSaleCreate,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
    VoidRequest,
)
from bookkeeping.services.ledger_service import LedgerService


router = APIRouter()


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(txn_in: TransactionCreate, db: DB, tenant_id: TenantId, user_id: UserId):
    """Post a balanced double-entry transaction."""
    service = LedgerService(db, tenant_id, user_id)
    return await service.create_transaction(**txn_in.model_dump())


@router.post("/quick-sale", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_quick_sale(sale_in: QuickSaleCreate, db: DB, tenant_id: TenantId, user_id: UserId):
    """
    Record a sale in one step.

    CASH posts to cash, BANK/UPI/CARD/CHEQUE to bank, anything else to
    receivables. Requires the default chart (POST /accounts/initialize).
    """
    service = LedgerService(db, tenant_id, user_id)
    return await service.create_quick_sale(
        items=sale_in.items,
        payment_mode=sale_in.payment_mode,
        transaction_date=sale_in.transaction_date,
        party_id=sale_in.party_id,
        party_name=sale_in.party_name,
        payment_reference=sale_in.payment_reference,
        notes=sale_in.notes,
    )


@router.post("/quick-expense", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_quick_expense(expense_in: QuickExpenseCreate, db: DB, tenant_id: TenantId, user_id: UserId):
    service = LedgerService(db, tenant_id, user_id)
    return await service.create_quick_expense(**expense_in.model_dump())


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    db: DB,
    tenant_id: TenantId,
    transaction_type: Optional[TransactionType] = Query(None),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    party_id: Optional[UUID] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    service = LedgerService(db, tenant_id)
    items, total = await service.list_transactions(
        transaction_type=transaction_type,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        party_id=party_id,
        limit=limit,
        offset=offset,
    )
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.get("/daily-summary", response_model=DailySummaryResponse)
async def get_daily_summary(db: DB, tenant_id: TenantId, day: Optional[date] = Query(None, alias="date")):
    service = LedgerService(db, tenant_id)
    return await service.get_daily_summary(day)


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(transaction_id: UUID, db: DB, tenant_id: TenantId):
    service = LedgerService(db, tenant_id)
    return await service.get_transaction(transaction_id)


@router.post("/{transaction_id}/void", response_model=TransactionResponse)
async def void_transaction(
    transaction_id: UUID,
    db: DB,
    tenant_id: TenantId,
    user_id: UserId,
    void_in: Optional[VoidRequest] = None,
):
    """Void a posted transaction and reverse its balance effect."""
    service = LedgerService(db, tenant_id, user_id)
    return await service.void_transaction(transaction_id, reason=void_in.reason if void_in else None)
