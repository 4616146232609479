"""API endpoints for recurring invoice schedules."""
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from bookkeeping.api.deps import DB, SessionFactory, TenantId, UserId
from bookkeeping.models.recurring import ScheduleStatus
from bookkeeping.schemas.recurring import (
    GenerateDueRequest,
    GeneratedInvoiceResponse,
    GeneratedOccurrenceResponse,
    GenerationReportResponse,
    RecurringInvoiceCreate,
    RecurringInvoiceResponse,
    RecurringInvoiceUpdate,
)
from bookkeeping.services.recurring_invoice_service import RecurringInvoiceService


router = APIRouter()


@router.post("", response_model=RecurringInvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_recurring_invoice(invoice_in: RecurringInvoiceCreate, db: DB, tenant_id: TenantId, user_id: UserId):
    """Create an ACTIVE schedule; the first run is on start_date."""
    service = RecurringInvoiceService(db, tenant_id, user_id)
    return await service.create(items=invoice_in.items, **invoice_in.model_dump(exclude={"items"}))


@router.get("", response_model=List[RecurringInvoiceResponse])
async def list_recurring_invoices(
    db: DB,
    tenant_id: TenantId,
    status_filter: Optional[ScheduleStatus] = Query(None, alias="status"),
):
    service = RecurringInvoiceService(db, tenant_id)
    return await service.list_schedules(status=status_filter)


@router.post("/generate-due", response_model=GenerationReportResponse)
async def generate_due_invoices(
    tenant_id: TenantId,
    session_factory: SessionFactory,
    request: Optional[GenerateDueRequest] = None,
):
    """Generate every due schedule of this tenant, each in its own transaction."""
    as_of: Optional[date] = request.as_of if request else None
    return await RecurringInvoiceService.generate_due(session_factory, as_of, tenant_id=tenant_id)


@router.get("/{schedule_id}", response_model=RecurringInvoiceResponse)
async def get_recurring_invoice(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringInvoiceService(db, tenant_id)
    return await service.get(schedule_id)


@router.put("/{schedule_id}", response_model=RecurringInvoiceResponse)
async def update_recurring_invoice(
    schedule_id: UUID,
    invoice_in: RecurringInvoiceUpdate,
    db: DB,
    tenant_id: TenantId,
):
    service = RecurringInvoiceService(db, tenant_id)
    return await service.update(schedule_id, **invoice_in.model_dump(exclude_unset=True))


@router.post("/{schedule_id}/pause", response_model=RecurringInvoiceResponse)
async def pause_recurring_invoice(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringInvoiceService(db, tenant_id)
    return await service.pause(schedule_id)


@router.post("/{schedule_id}/resume", response_model=RecurringInvoiceResponse)
async def resume_recurring_invoice(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringInvoiceService(db, tenant_id)
    return await service.resume(schedule_id)


@router.post("/{schedule_id}/cancel", response_model=RecurringInvoiceResponse)
async def cancel_recurring_invoice(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringInvoiceService(db, tenant_id)
    return await service.cancel(schedule_id)


@router.post("/{schedule_id}/generate", response_model=Optional[GeneratedOccurrenceResponse])
async def generate_invoice_now(schedule_id: UUID, db: DB, tenant_id: TenantId, user_id: UserId):
    """Raise and post an invoice dated today, regardless of next_run_date."""
    service = RecurringInvoiceService(db, tenant_id, user_id)
    return await service.generate_now(schedule_id)


@router.get("/{schedule_id}/generated", response_model=List[GeneratedInvoiceResponse])
async def list_generated_invoices(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringInvoiceService(db, tenant_id)
    return await service.list_generated(schedule_id)
