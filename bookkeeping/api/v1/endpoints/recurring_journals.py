"""API endpoints for recurring journal schedules."""
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from bookkeeping.api.deps import DB, SessionFactory, TenantId, UserId
from bookkeeping.models.recurring import ScheduleStatus
from bookkeeping.schemas.recurring import (
    GenerateDueRequest,
    GeneratedJournalResponse,
    GeneratedOccurrenceResponse,
    GenerationReportResponse,
    RecurringJournalCreate,
    RecurringJournalResponse,
    RecurringJournalUpdate,
)
from bookkeeping.services.recurring_journal_service import RecurringJournalService


router = APIRouter()


@router.post("", response_model=RecurringJournalResponse, status_code=status.HTTP_201_CREATED)
async def create_recurring_journal(journal_in: RecurringJournalCreate, db: DB, tenant_id: TenantId, user_id: UserId):
    """Create an ACTIVE schedule; the first run is on start_date."""
    service = RecurringJournalService(db, tenant_id, user_id)
    return await service.create(**journal_in.model_dump())


@router.get("", response_model=List[RecurringJournalResponse])
async def list_recurring_journals(
    db: DB,
    tenant_id: TenantId,
    status_filter: Optional[ScheduleStatus] = Query(None, alias="status"),
):
    service = RecurringJournalService(db, tenant_id)
    return await service.list_schedules(status=status_filter)


@router.post("/generate-due", response_model=GenerationReportResponse)
async def generate_due_journals(
    tenant_id: TenantId,
    session_factory: SessionFactory,
    request: Optional[GenerateDueRequest] = None,
):
    """Generate every due schedule of this tenant, each in its own transaction."""
    as_of: Optional[date] = request.as_of if request else None
    return await RecurringJournalService.generate_due(session_factory, as_of, tenant_id=tenant_id)


@router.get("/{schedule_id}", response_model=RecurringJournalResponse)
async def get_recurring_journal(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringJournalService(db, tenant_id)
    return await service.get(schedule_id)


@router.put("/{schedule_id}", response_model=RecurringJournalResponse)
async def update_recurring_journal(
    schedule_id: UUID,
    journal_in: RecurringJournalUpdate,
    db: DB,
    tenant_id: TenantId,
):
    service = RecurringJournalService(db, tenant_id)
    return await service.update(schedule_id, **journal_in.model_dump(exclude_unset=True))


@router.post("/{schedule_id}/pause", response_model=RecurringJournalResponse)
async def pause_recurring_journal(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringJournalService(db, tenant_id)
    return await service.pause(schedule_id)


@router.post("/{schedule_id}/resume", response_model=RecurringJournalResponse)
async def resume_recurring_journal(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringJournalService(db, tenant_id)
    return await service.resume(schedule_id)


@router.post("/{schedule_id}/cancel", response_model=RecurringJournalResponse)
async def cancel_recurring_journal(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringJournalService(db, tenant_id)
    return await service.cancel(schedule_id)


@router.post("/{schedule_id}/generate", response_model=Optional[GeneratedOccurrenceResponse])
async def generate_journal_now(schedule_id: UUID, db: DB, tenant_id: TenantId, user_id: UserId):
    """Post an occurrence dated today, regardless of next_run_date."""
    service = RecurringJournalService(db, tenant_id, user_id)
    return await service.generate_now(schedule_id)


@router.get("/{schedule_id}/generated", response_model=List[GeneratedJournalResponse])
async def list_generated_journals(schedule_id: UUID, db: DB, tenant_id: TenantId):
    service = RecurringJournalService(db, tenant_id)
    return await service.list_generated(schedule_id)
