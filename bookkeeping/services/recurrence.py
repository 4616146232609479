"""
Recurrence engine shared by recurring journals and recurring invoices.

Lifecycle:
    ACTIVE <-> PAUSED
    ACTIVE -> COMPLETED   (automatic, decided only when generating)
    ACTIVE/PAUSED -> CANCELLED

Generation for one schedule is a single unit of work: claim, materialize
the template, record the join row, advance the cadence. The claim is a
conditional version bump; under concurrent workers exactly one UPDATE hits
the row and the others skip it.
"""
import logging
import uuid
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Type

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from bookkeeping.core.exceptions import (
    InvalidRecurrenceError,
    ScheduleNotFoundError,
    ScheduleStateError,
)
from bookkeeping.models.recurring import Frequency, ScheduleStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


# ==================== Date math ====================

def calculate_next_run_date(frequency: str, interval_count: int, base: date) -> date:
    """
    Calendar-aware advance of `base` by `interval_count` periods.

    Month based steps clamp to the last valid day (Jan 31 + 1 month = Feb 28/29).
    """
    interval = interval_count if interval_count and interval_count > 0 else 1
    freq = str(getattr(frequency, "value", frequency)).upper()

    if freq == Frequency.DAILY.value:
        step = relativedelta(days=interval)
    elif freq == Frequency.WEEKLY.value:
        step = relativedelta(weeks=interval)
    elif freq == Frequency.BIWEEKLY.value:
        step = relativedelta(weeks=2 * interval)
    elif freq == Frequency.MONTHLY.value:
        step = relativedelta(months=interval)
    elif freq == Frequency.QUARTERLY.value:
        step = relativedelta(months=3 * interval)
    elif freq == Frequency.ANNUALLY.value:
        step = relativedelta(years=interval)
    else:
        raise InvalidRecurrenceError(f"Invalid frequency: {frequency}", {"frequency": str(frequency)})
    return base + step


def normalize_frequency(frequency: Any) -> str:
    freq = str(getattr(frequency, "value", frequency) or "").upper()
    if freq not in {f.value for f in Frequency}:
        raise InvalidRecurrenceError(f"Invalid frequency: {frequency}", {"frequency": str(frequency)})
    return freq


def validate_cadence(
    frequency: Any,
    interval_count: Optional[int],
    start_date: date,
    end_date: Optional[date],
    max_occurrences: Optional[int],
) -> Dict[str, Any]:
    """Validate and normalize cadence fields. interval_count <= 0 becomes 1."""
    freq = normalize_frequency(frequency)
    interval = interval_count if interval_count and interval_count > 0 else 1
    if end_date is not None and end_date < start_date:
        raise InvalidRecurrenceError("end_date cannot be before start_date")
    if max_occurrences is not None and max_occurrences < 1:
        raise InvalidRecurrenceError("max_occurrences must be at least 1")
    return {
        "frequency": freq,
        "interval_count": interval,
        "start_date": start_date,
        "end_date": end_date,
        "max_occurrences": max_occurrences,
    }


# ==================== Batch results ====================

@dataclass
class GenerationFailure:
    schedule_id: uuid.UUID
    tenant_id: uuid.UUID
    reason: str
    error_type: str


@dataclass
class GeneratedOccurrence:
    schedule_id: uuid.UUID
    tenant_id: uuid.UUID
    document_id: uuid.UUID
    occurrence_number: int


@dataclass
class GenerationReport:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    processed: int = 0
    skipped: int = 0
    generated: List[GeneratedOccurrence] = field(default_factory=list)
    failures: List[GenerationFailure] = field(default_factory=list)

    @property
    def generated_count(self) -> int:
        return len(self.generated)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["generated_count"] = self.generated_count
        data["failed_count"] = self.failed_count
        return data


# ==================== Service base ====================

class RecurringScheduleService:
    """
    Lifecycle and generation shared by every schedule type.

    Subclasses set `model`, `label` and implement _materialize/_record.
    """

    model: Type = None
    label: str = "schedule"

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID, user_id: Optional[uuid.UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id

    async def get(self, schedule_id: uuid.UUID):
        result = await self.db.execute(
            select(self.model).where(
                self.model.id == schedule_id,
                self.model.tenant_id == self.tenant_id,
            )
        )
        schedule = result.scalar_one_or_none()
        if not schedule:
            raise ScheduleNotFoundError(
                f"Recurring {self.label} {schedule_id} not found",
                {"schedule_id": str(schedule_id)},
            )
        return schedule

    async def list_schedules(self, status: Optional[str] = None) -> List[Any]:
        query = select(self.model).where(self.model.tenant_id == self.tenant_id)
        if status:
            query = query.where(self.model.status == str(getattr(status, "value", status)).upper())
        result = await self.db.execute(query.order_by(self.model.next_run_date, self.model.name))
        return list(result.scalars().all())

    def _ensure_not_terminal(self, schedule, action: str) -> None:
        if schedule.status in TERMINAL_STATUSES:
            raise ScheduleStateError(
                f"Cannot {action} a {schedule.status.lower()} recurring {self.label}",
                {"schedule_id": str(schedule.id), "status": schedule.status},
            )

    async def pause(self, schedule_id: uuid.UUID):
        schedule = await self.get(schedule_id)
        self._ensure_not_terminal(schedule, "pause")
        schedule.status = ScheduleStatus.PAUSED.value
        await self.db.flush()
        logger.info(f"Paused recurring {self.label} {schedule.id}")
        return schedule

    async def resume(self, schedule_id: uuid.UUID, today: Optional[date] = None):
        """PAUSED -> ACTIVE; a next run date already in the past moves to today."""
        today = today or date.today()
        schedule = await self.get(schedule_id)
        self._ensure_not_terminal(schedule, "resume")
        if schedule.status == ScheduleStatus.ACTIVE.value:
            return schedule
        schedule.status = ScheduleStatus.ACTIVE.value
        if schedule.next_run_date < today:
            schedule.next_run_date = today
        await self.db.flush()
        logger.info(f"Resumed recurring {self.label} {schedule.id}, next run {schedule.next_run_date}")
        return schedule

    async def cancel(self, schedule_id: uuid.UUID):
        schedule = await self.get(schedule_id)
        self._ensure_not_terminal(schedule, "cancel")
        schedule.status = ScheduleStatus.CANCELLED.value
        await self.db.flush()
        logger.info(f"Cancelled recurring {self.label} {schedule.id}")
        return schedule

    # ==================== Generation ====================

    async def _claim(self, schedule, due_by: Optional[date] = None) -> bool:
        """
        Bump the version if nobody else has since we read the row.

        due_by restricts the claim to ACTIVE schedules due on or before that
        date (batch generation); without it any non-terminal schedule qualifies.
        """
        conditions = [
            self.model.id == schedule.id,
            self.model.version == schedule.version,
        ]
        if due_by is not None:
            conditions.append(self.model.status == ScheduleStatus.ACTIVE.value)
            conditions.append(self.model.next_run_date <= due_by)
        else:
            conditions.append(self.model.status.notin_(TERMINAL_STATUSES))

        result = await self.db.execute(
            update(self.model)
            .where(*conditions)
            .values(version=self.model.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        set_committed_value(schedule, "version", schedule.version + 1)
        return True

    def _limit_reached(self, schedule, run_date: date) -> bool:
        if schedule.max_occurrences is not None and schedule.occurrence_count >= schedule.max_occurrences:
            return True
        return schedule.end_date is not None and run_date > schedule.end_date

    def _advance(self, schedule, run_date: date) -> None:
        schedule.occurrence_count += 1
        schedule.last_run_date = run_date
        schedule.next_run_date = calculate_next_run_date(
            schedule.frequency, schedule.interval_count, run_date
        )
        if schedule.max_occurrences is not None and schedule.occurrence_count >= schedule.max_occurrences:
            schedule.status = ScheduleStatus.COMPLETED.value
        elif schedule.end_date is not None and schedule.next_run_date > schedule.end_date:
            schedule.status = ScheduleStatus.COMPLETED.value

    async def _generate(self, schedule, run_date: date) -> GeneratedOccurrence:
        occurrence = schedule.occurrence_count + 1
        document_id = await self._materialize(schedule, run_date)
        await self._record(schedule, document_id, occurrence)
        self._advance(schedule, run_date)
        await self.db.flush()
        logger.info(
            f"Generated occurrence {occurrence} of recurring {self.label} '{schedule.name}' "
            f"({schedule.id}) -> {document_id}; status {schedule.status}, next {schedule.next_run_date}"
        )
        return GeneratedOccurrence(schedule.id, schedule.tenant_id, document_id, occurrence)

    async def generate_due_schedule(self, schedule_id: uuid.UUID, today: date) -> Optional[GeneratedOccurrence]:
        """
        Generate the pending occurrence of one due schedule.

        Returns None when the schedule is no longer due, another worker
        claimed it, or it completed without generating.
        """
        schedule = await self.get(schedule_id)
        if schedule.status != ScheduleStatus.ACTIVE.value or schedule.next_run_date > today:
            return None
        if not await self._claim(schedule, due_by=today):
            logger.info(f"Recurring {self.label} {schedule.id} claimed by another worker, skipping")
            return None

        run_date = schedule.next_run_date
        if self._limit_reached(schedule, run_date):
            schedule.status = ScheduleStatus.COMPLETED.value
            await self.db.flush()
            logger.info(f"Recurring {self.label} {schedule.id} completed without generating")
            return None

        return await self._generate(schedule, run_date)

    async def generate_now(self, schedule_id: uuid.UUID, today: Optional[date] = None) -> Optional[GeneratedOccurrence]:
        """
        Generate an occurrence dated today regardless of next_run_date.

        A schedule past its end date or occurrence limit is completed instead
        and None is returned.
        """
        today = today or date.today()
        schedule = await self.get(schedule_id)
        self._ensure_not_terminal(schedule, "generate")
        if not await self._claim(schedule):
            raise ScheduleStateError(
                f"Recurring {self.label} {schedule.id} is being generated concurrently",
                {"schedule_id": str(schedule.id)},
            )
        if self._limit_reached(schedule, today):
            schedule.status = ScheduleStatus.COMPLETED.value
            await self.db.flush()
            logger.info(f"Recurring {self.label} {schedule.id} completed without generating")
            return None
        return await self._generate(schedule, today)

    @classmethod
    async def generate_due(
        cls,
        session_factory: async_sessionmaker,
        today: Optional[date] = None,
        tenant_id: Optional[uuid.UUID] = None,
    ) -> GenerationReport:
        """
        Batch generation across all tenants, or only `tenant_id` when given.

        Each schedule runs in its own session and transaction; a failure rolls
        back only that schedule and is reported in the result.
        """
        today = today or date.today()
        report = GenerationReport()

        query = select(cls.model.id, cls.model.tenant_id).where(
            cls.model.status == ScheduleStatus.ACTIVE.value,
            cls.model.next_run_date <= today,
        )
        if tenant_id is not None:
            query = query.where(cls.model.tenant_id == tenant_id)

        async with session_factory() as session:
            result = await session.execute(
                query
                .order_by(cls.model.next_run_date, cls.model.id)
            )
            due = result.all()

        logger.info(f"Recurring {cls.label} batch: {len(due)} due on or before {today}")

        for schedule_id, schedule_tenant_id in due:
            report.processed += 1
            try:
                async with session_factory() as session:
                    async with session.begin():
                        service = cls(session, schedule_tenant_id)
                        occurrence = await service.generate_due_schedule(schedule_id, today)
            except Exception as e:
                logger.error(f"Recurring {cls.label} {schedule_id} (tenant {schedule_tenant_id}) failed: {e}")
                report.failures.append(GenerationFailure(
                    schedule_id=schedule_id,
                    tenant_id=schedule_tenant_id,
                    reason=str(e),
                    error_type=type(e).__name__,
                ))
                continue

            if occurrence:
                report.generated.append(occurrence)
            else:
                report.skipped += 1

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Recurring {cls.label} batch done: {report.generated_count} generated, "
            f"{report.skipped} skipped, {report.failed_count} failed"
        )
        return report

    async def _materialize(self, schedule, run_date: date) -> uuid.UUID:
        raise NotImplementedError

    async def _record(self, schedule, document_id: uuid.UUID, occurrence_number: int) -> None:
        raise NotImplementedError
