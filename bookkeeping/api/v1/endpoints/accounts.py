"""API endpoints for the chart of accounts and quick-entry mapping."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from bookkeeping.api.deps import DB, TenantId
from bookkeeping.models.accounting import AccountType
from bookkeeping.schemas.accounting import (
    AccountCreate,
    AccountResponse,
    AccountUpdate,
    BalanceRecomputeResponse,
    BootstrapResponse,
    QuickEntryMappingResponse,
    QuickEntryMappingUpdate,
)
from bookkeeping.services.account_service import AccountService


router = APIRouter()


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(account_in: AccountCreate, db: DB, tenant_id: TenantId):
    """Create a new ledger account."""
    service = AccountService(db, tenant_id)
    return await service.create_account(**account_in.model_dump())


@router.get("", response_model=List[AccountResponse])
async def list_accounts(
    db: DB,
    tenant_id: TenantId,
    account_type: Optional[AccountType] = Query(None),
    active_only: bool = Query(False),
):
    service = AccountService(db, tenant_id)
    return await service.list_accounts(account_type=account_type, active_only=active_only)


@router.post("/initialize", response_model=BootstrapResponse)
async def initialize_default_accounts(db: DB, tenant_id: TenantId):
    """
    Seed the default chart of accounts and quick-entry mapping.

    Safe to call repeatedly; quick sales and expenses need it once per tenant.
    """
    service = AccountService(db, tenant_id)
    return await service.initialize_default_accounts()


@router.get("/quick-entry", response_model=QuickEntryMappingResponse)
async def get_quick_entry_mapping(db: DB, tenant_id: TenantId):
    service = AccountService(db, tenant_id)
    return {"mapping": await service.get_quick_entry_mapping()}


@router.put("/quick-entry", response_model=QuickEntryMappingResponse)
async def set_quick_entry_account(mapping_in: QuickEntryMappingUpdate, db: DB, tenant_id: TenantId):
    service = AccountService(db, tenant_id)
    await service.set_quick_entry_account(mapping_in.role, mapping_in.account_id)
    return {"mapping": await service.get_quick_entry_mapping()}


@router.post("/recompute-balances", response_model=BalanceRecomputeResponse)
async def recompute_balances(db: DB, tenant_id: TenantId):
    """Rebuild every current balance from opening balances and posted lines."""
    service = AccountService(db, tenant_id)
    balances = await service.recompute_balances(persist=True)
    return {
        "accounts": len(balances),
        "balances": {str(account_id): balance for account_id, balance in balances.items()},
    }


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(account_id: UUID, db: DB, tenant_id: TenantId):
    service = AccountService(db, tenant_id)
    return await service.get_account(account_id)


@router.put("/{account_id}", response_model=AccountResponse)
async def update_account(account_id: UUID, account_in: AccountUpdate, db: DB, tenant_id: TenantId):
    service = AccountService(db, tenant_id)
    return await service.update_account(account_id, **account_in.model_dump(exclude_unset=True))


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(account_id: UUID, db: DB, tenant_id: TenantId):
    service = AccountService(db, tenant_id)
    await service.delete_account(account_id)
