"""Recurring journals: balanced line templates posted to the ledger on a cadence."""
import logging
import uuid
from datetime import date
from typing import Any, List, Optional, Sequence

from sqlalchemy import select

from bookkeeping.models.recurring import GeneratedJournal, RecurringJournal, RecurringJournalLine
from bookkeeping.services.account_service import AccountService
from bookkeeping.services.document_totals import to_decimal
from bookkeeping.services.ledger_service import LedgerService, LineInput, validate_lines
from bookkeeping.services.recurrence import RecurringScheduleService, normalize_frequency, validate_cadence

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"name", "description", "frequency", "interval_count", "end_date", "max_occurrences"}


class RecurringJournalService(RecurringScheduleService):
    model = RecurringJournal
    label = "journal"

    async def create(
        self,
        name: str,
        frequency: str,
        start_date: date,
        lines: Sequence[Any],
        transaction_type: str = "JOURNAL",
        description: Optional[str] = None,
        interval_count: int = 1,
        end_date: Optional[date] = None,
        max_occurrences: Optional[int] = None,
    ) -> RecurringJournal:
        """
        Create an ACTIVE schedule starting at start_date.

        The template is validated here, once: balanced, valid amounts and
        accounts that exist in the tenant.
        """
        cadence = validate_cadence(frequency, interval_count, start_date, end_date, max_occurrences)
        line_inputs = [LineInput.coerce(line) for line in lines]
        total_debit, _ = validate_lines(line_inputs)
        await AccountService(self.db, self.tenant_id).get_accounts_for_posting(
            line.account_id for line in line_inputs
        )

        schedule = RecurringJournal(
            tenant_id=self.tenant_id,
            name=name,
            description=description,
            transaction_type=str(getattr(transaction_type, "value", transaction_type)).upper(),
            total_amount=total_debit,
            next_run_date=cadence["start_date"],
            occurrence_count=0,
            version=0,
            created_by=self.user_id,
            **cadence,
        )
        schedule.lines = [
            RecurringJournalLine(
                account_id=line.account_id,
                description=line.description,
                debit=to_decimal(line.debit),
                credit=to_decimal(line.credit),
                line_order=idx,
            )
            for idx, line in enumerate(line_inputs)
        ]
        self.db.add(schedule)
        await self.db.flush()
        logger.info(f"Created recurring journal '{name}' ({cadence['frequency']}) for tenant {self.tenant_id}")
        return schedule

    async def update(self, schedule_id: uuid.UUID, **changes: Any) -> RecurringJournal:
        """Change cadence or labels. The line template cannot be edited."""
        schedule = await self.get(schedule_id)
        self._ensure_not_terminal(schedule, "update")

        values = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
        if "frequency" in values:
            values["frequency"] = normalize_frequency(values["frequency"])
        cadence = validate_cadence(
            values.get("frequency", schedule.frequency),
            values.get("interval_count", schedule.interval_count),
            schedule.start_date,
            values.get("end_date", schedule.end_date),
            values.get("max_occurrences", schedule.max_occurrences),
        )
        values["interval_count"] = cadence["interval_count"]

        for field, value in values.items():
            setattr(schedule, field, value)
        await self.db.flush()
        return schedule

    async def list_generated(self, schedule_id: uuid.UUID) -> List[GeneratedJournal]:
        await self.get(schedule_id)
        result = await self.db.execute(
            select(GeneratedJournal)
            .where(GeneratedJournal.recurring_journal_id == schedule_id)
            .order_by(GeneratedJournal.occurrence_number)
        )
        return list(result.scalars().all())

    async def _materialize(self, schedule: RecurringJournal, run_date: date) -> uuid.UUID:
        # Copy template lines by value; never hand template rows to the ledger
        lines = [
            LineInput(
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
            )
            for line in schedule.lines
        ]
        transaction = await LedgerService(self.db, self.tenant_id, self.user_id).create_transaction(
            transaction_type=schedule.transaction_type,
            transaction_date=run_date,
            description=schedule.description or schedule.name,
            notes=f"Generated from recurring journal: {schedule.name}",
            reference_type="recurring_journal",
            reference_id=schedule.id,
            lines=lines,
        )
        return transaction.id

    async def _record(self, schedule: RecurringJournal, document_id: uuid.UUID, occurrence_number: int) -> None:
        self.db.add(GeneratedJournal(
            recurring_journal_id=schedule.id,
            transaction_id=document_id,
            occurrence_number=occurrence_number,
        ))
