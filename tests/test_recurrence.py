import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from bookkeeping.core.exceptions import (
    InvalidAmountError,
    InvalidRecurrenceError,
    ScheduleStateError,
    UnbalancedEntryError,
)
from bookkeeping.jobs.recurrence_jobs import generate_recurring_invoices, generate_recurring_journals
from bookkeeping.models.accounting import Transaction
from bookkeeping.models.billing import Invoice
from bookkeeping.models.recurring import GeneratedJournal, ScheduleStatus
from bookkeeping.services.account_service import AccountService
from bookkeeping.services.recurrence import calculate_next_run_date, validate_cadence
from bookkeeping.services.recurring_invoice_service import RecurringInvoiceService
from bookkeeping.services.recurring_journal_service import RecurringJournalService


# ==================== Date math ====================

@pytest.mark.parametrize("frequency, interval, base, expected", [
    ("DAILY", 1, date(2025, 2, 28), date(2025, 3, 1)),
    ("WEEKLY", 2, date(2025, 1, 1), date(2025, 1, 15)),
    ("BIWEEKLY", 1, date(2025, 1, 1), date(2025, 1, 15)),
    ("MONTHLY", 1, date(2025, 1, 31), date(2025, 2, 28)),
    ("MONTHLY", 1, date(2024, 1, 31), date(2024, 2, 29)),
    ("MONTHLY", 0, date(2025, 3, 15), date(2025, 4, 15)),
    ("QUARTERLY", 1, date(2025, 11, 30), date(2026, 2, 28)),
    ("ANNUALLY", 1, date(2024, 2, 29), date(2025, 2, 28)),
    ("monthly", 3, date(2025, 1, 10), date(2025, 4, 10)),
])
def test_calculate_next_run_date(frequency, interval, base, expected):
    assert calculate_next_run_date(frequency, interval, base) == expected


def test_unknown_frequency_is_rejected():
    with pytest.raises(InvalidRecurrenceError):
        calculate_next_run_date("FORTNIGHTLY", 1, date(2025, 1, 1))


def test_cadence_validation():
    cadence = validate_cadence("weekly", -2, date(2025, 1, 1), None, None)
    assert cadence["frequency"] == "WEEKLY"
    assert cadence["interval_count"] == 1

    with pytest.raises(InvalidRecurrenceError):
        validate_cadence("MONTHLY", 1, date(2025, 2, 1), date(2025, 1, 1), None)
    with pytest.raises(InvalidRecurrenceError):
        validate_cadence("MONTHLY", 1, date(2025, 2, 1), None, 0)


# ==================== Recurring journals ====================

def _rent_lines(chart, amount="25000"):
    return [
        {"account_id": chart["5300"].id, "debit": Decimal(amount), "description": "Office rent"},
        {"account_id": chart["1200"].id, "credit": Decimal(amount)},
    ]


async def test_create_validates_template(session, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)

    with pytest.raises(UnbalancedEntryError):
        await service.create(
            name="Broken",
            frequency="MONTHLY",
            start_date=date(2025, 1, 1),
            lines=[
                {"account_id": chart["5300"].id, "debit": Decimal("100")},
                {"account_id": chart["1200"].id, "credit": Decimal("90")},
            ],
        )

    journal = await service.create(
        name="Rent",
        frequency="monthly",
        start_date=date(2025, 1, 31),
        lines=_rent_lines(chart),
    )
    assert journal.status == ScheduleStatus.ACTIVE.value
    assert journal.next_run_date == date(2025, 1, 31)
    assert journal.occurrence_count == 0
    assert journal.total_amount == Decimal("25000")
    assert len(journal.lines) == 2


async def test_max_occurrences_completes_schedule(session, session_factory, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)
    journal = await service.create(
        name="Rent",
        frequency="MONTHLY",
        start_date=date(2025, 1, 31),
        max_occurrences=3,
        lines=_rent_lines(chart),
    )
    await session.commit()

    reports = [
        await RecurringJournalService.generate_due(session_factory, today=day)
        for day in (date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 28))
    ]
    extra = await RecurringJournalService.generate_due(session_factory, today=date(2025, 12, 31))

    assert [r.generated_count for r in reports] == [1, 1, 1]
    assert extra.processed == 0
    assert extra.generated_count == 0

    await session.refresh(journal)
    assert journal.status == ScheduleStatus.COMPLETED.value
    assert journal.occurrence_count == 3
    assert journal.last_run_date == date(2025, 3, 28)

    generated = await service.list_generated(journal.id)
    assert [g.occurrence_number for g in generated] == [1, 2, 3]
    result = await session.execute(
        select(Transaction.transaction_date)
        .where(Transaction.reference_id == journal.id)
        .order_by(Transaction.transaction_date)
    )
    assert [row[0] for row in result.all()] == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 28)]

    session.expire_all()
    rent, = [a.current_balance for a in await AccountService(session, tenant_id).list_accounts() if a.code == "5300"]
    assert rent == Decimal("75000")


async def test_generation_catches_up_one_occurrence_per_run(session, session_factory, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)
    journal = await service.create(
        name="Rent",
        frequency="MONTHLY",
        start_date=date(2025, 1, 15),
        lines=_rent_lines(chart),
    )
    await session.commit()

    report = await RecurringJournalService.generate_due(session_factory, today=date(2025, 4, 1))

    assert report.generated_count == 1
    await session.refresh(journal)
    assert journal.next_run_date == date(2025, 2, 15)
    assert journal.status == ScheduleStatus.ACTIVE.value


async def test_end_date_completes_schedule(session, session_factory, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)
    journal = await service.create(
        name="Rent",
        frequency="MONTHLY",
        start_date=date(2025, 1, 1),
        end_date=date(2025, 1, 20),
        lines=_rent_lines(chart),
    )
    await session.commit()

    report = await RecurringJournalService.generate_due(session_factory, today=date(2025, 1, 1))

    assert report.generated_count == 1
    await session.refresh(journal)
    assert journal.status == ScheduleStatus.COMPLETED.value


async def test_failure_is_reported_and_batch_continues(session, session_factory, tenant_id, chart):
    accounts = AccountService(session, tenant_id)
    temp = await accounts.create_account(code="5950", name="Temporary", account_type="EXPENSE")
    service = RecurringJournalService(session, tenant_id)
    broken = await service.create(
        name="Broken",
        frequency="MONTHLY",
        start_date=date(2025, 1, 1),
        lines=[
            {"account_id": temp.id, "debit": Decimal("100")},
            {"account_id": chart["1100"].id, "credit": Decimal("100")},
        ],
    )
    healthy = await service.create(
        name="Rent",
        frequency="MONTHLY",
        start_date=date(2025, 1, 1),
        lines=_rent_lines(chart),
    )
    await accounts.delete_account(temp.id)
    await session.commit()

    report = await RecurringJournalService.generate_due(session_factory, today=date(2025, 1, 1))

    assert report.processed == 2
    assert report.generated_count == 1
    assert report.generated[0].schedule_id == healthy.id
    assert report.failed_count == 1
    failure = report.failures[0]
    assert failure.schedule_id == broken.id
    assert failure.tenant_id == tenant_id
    assert failure.error_type == "AccountNotFoundError"

    await session.refresh(broken)
    assert broken.occurrence_count == 0
    assert broken.next_run_date == date(2025, 1, 1)
    assert broken.status == ScheduleStatus.ACTIVE.value


async def test_batch_can_be_limited_to_one_tenant(session, session_factory, tenant_id, chart):
    other_tenant = uuid.uuid4()
    await AccountService(session, other_tenant).initialize_default_accounts()
    other_chart = {a.code: a for a in await AccountService(session, other_tenant).list_accounts()}
    await RecurringJournalService(session, tenant_id).create(
        name="Rent", frequency="MONTHLY", start_date=date(2025, 1, 1), lines=_rent_lines(chart),
    )
    await RecurringJournalService(session, other_tenant).create(
        name="Rent", frequency="MONTHLY", start_date=date(2025, 1, 1), lines=_rent_lines(other_chart),
    )
    await session.commit()

    report = await RecurringJournalService.generate_due(
        session_factory, today=date(2025, 1, 1), tenant_id=tenant_id,
    )

    assert report.processed == 1
    assert report.generated[0].tenant_id == tenant_id


async def test_lifecycle_transitions(session, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)
    journal = await service.create(
        name="Rent", frequency="MONTHLY", start_date=date(2025, 1, 1), lines=_rent_lines(chart),
    )

    await service.pause(journal.id)
    assert journal.status == ScheduleStatus.PAUSED.value
    assert await service.generate_due_schedule(journal.id, date(2025, 1, 1)) is None

    await service.resume(journal.id, today=date(2025, 3, 10))
    assert journal.status == ScheduleStatus.ACTIVE.value
    assert journal.next_run_date == date(2025, 3, 10)

    await service.cancel(journal.id)
    assert journal.status == ScheduleStatus.CANCELLED.value
    for action in (service.pause, service.resume, service.cancel):
        with pytest.raises(ScheduleStateError):
            await action(journal.id)
    with pytest.raises(ScheduleStateError):
        await service.update(journal.id, name="Renamed")


async def test_generate_now_uses_today(session, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)
    journal = await service.create(
        name="Rent", frequency="MONTHLY", start_date=date(2025, 6, 1), lines=_rent_lines(chart),
    )

    occurrence = await service.generate_now(journal.id, today=date(2025, 5, 20))

    assert occurrence.occurrence_number == 1
    assert journal.last_run_date == date(2025, 5, 20)
    assert journal.next_run_date == date(2025, 6, 20)
    assert journal.version == 1


async def test_generate_now_completes_past_end_date(session, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)
    journal = await service.create(
        name="Rent", frequency="MONTHLY", start_date=date(2025, 1, 1), end_date=date(2025, 1, 31),
        lines=_rent_lines(chart),
    )

    occurrence = await service.generate_now(journal.id, today=date(2025, 2, 10))

    assert occurrence is None
    assert journal.status == ScheduleStatus.COMPLETED.value
    assert journal.occurrence_count == 0
    transactions = await session.scalars(select(Transaction).where(Transaction.tenant_id == tenant_id))
    assert transactions.all() == []


async def test_stale_claim_is_refused(session, session_factory, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)
    journal = await service.create(
        name="Rent", frequency="MONTHLY", start_date=date(2025, 1, 1), lines=_rent_lines(chart),
    )
    await session.commit()
    seen_version = journal.version

    report = await RecurringJournalService.generate_due(session_factory, today=date(2025, 1, 1))
    assert report.generated_count == 1

    # still holding the row as read before the batch committed
    assert journal.version == seen_version
    assert await service._claim(journal, due_by=date(2025, 2, 1)) is False

    await session.refresh(journal)
    assert journal.occurrence_count == 1
    assert await service._claim(journal, due_by=date(2025, 2, 1)) is True


async def test_same_due_date_generates_once(session, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)
    journal = await service.create(
        name="Rent", frequency="MONTHLY", start_date=date(2025, 1, 1), lines=_rent_lines(chart),
    )

    first = await service.generate_due_schedule(journal.id, date(2025, 1, 1))
    second = await service.generate_due_schedule(journal.id, date(2025, 1, 1))

    assert first.occurrence_number == 1
    assert second is None
    generated = await session.scalars(
        select(GeneratedJournal).where(GeneratedJournal.recurring_journal_id == journal.id)
    )
    assert len(generated.all()) == 1


async def test_update_normalizes_cadence(session, tenant_id, chart):
    service = RecurringJournalService(session, tenant_id)
    journal = await service.create(
        name="Rent", frequency="MONTHLY", start_date=date(2025, 1, 1), lines=_rent_lines(chart),
    )

    await service.update(journal.id, frequency="quarterly", interval_count=0, name="Quarterly rent")

    assert journal.frequency == "QUARTERLY"
    assert journal.interval_count == 1
    assert journal.name == "Quarterly rent"
    with pytest.raises(InvalidRecurrenceError):
        await service.update(journal.id, end_date=date(2024, 12, 31))


# ==================== Recurring invoices ====================

def _item(**overrides):
    values = {
        "product_id": None,
        "description": "Monthly maintenance",
        "hsn_code": "9987",
        "quantity": Decimal("1"),
        "unit": "nos",
        "rate": Decimal("1000"),
        "cgst_rate": Decimal("9"),
        "sgst_rate": Decimal("9"),
        "igst_rate": Decimal("0"),
        "cess_rate": Decimal("0"),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


async def test_recurring_invoice_preview_and_generation(session, session_factory, tenant_id, chart):
    service = RecurringInvoiceService(session, tenant_id)
    schedule = await service.create(
        name="AMC",
        frequency="MONTHLY",
        start_date=date(2025, 1, 1),
        customer_name="Acme Traders",
        items=[_item()],
        days_until_due=15,
        discount_type="PERCENTAGE",
        discount_value=Decimal("10"),
    )
    assert schedule.subtotal == Decimal("1000.00")
    assert schedule.total_tax == Decimal("180.00")
    assert schedule.total_amount == Decimal("1080.00")
    await session.commit()

    result = await generate_recurring_invoices(today=date(2025, 1, 1), session_factory=session_factory)

    assert result["generated"] == 1
    assert result["failed"] == 0
    invoices = (await session.execute(select(Invoice).where(Invoice.tenant_id == tenant_id))).scalars().all()
    assert len(invoices) == 1
    invoice = invoices[0]
    assert invoice.invoice_number == "INV-2025-0001"
    assert invoice.due_date == date(2025, 1, 16)
    assert invoice.total_amount == Decimal("1080.00")
    assert invoice.items[0].unit == "nos"
    assert invoice.transaction_id is not None

    accounts = {a.code: a for a in await AccountService(session, tenant_id).list_accounts()}
    await session.refresh(accounts["1300"])
    await session.refresh(accounts["4100"])
    await session.refresh(accounts["2200"])
    assert accounts["1300"].current_balance == Decimal("1080.00")
    assert accounts["4100"].current_balance == Decimal("-900.00")
    assert accounts["2200"].current_balance == Decimal("-180.00")


async def test_recurring_invoice_rejects_excess_discount(session, tenant_id, chart):
    service = RecurringInvoiceService(session, tenant_id)

    with pytest.raises(InvalidAmountError):
        await service.create(
            name="AMC",
            frequency="MONTHLY",
            start_date=date(2025, 1, 1),
            customer_name="Acme Traders",
            items=[_item()],
            discount_type="FIXED",
            discount_value=Decimal("5000"),
        )


async def test_journal_job_summarizes_report(session, session_factory, tenant_id, chart):
    await RecurringJournalService(session, tenant_id).create(
        name="Rent", frequency="MONTHLY", start_date=date(2025, 1, 1), lines=_rent_lines(chart),
    )
    await session.commit()

    result = await generate_recurring_journals(today=date(2025, 1, 1), session_factory=session_factory)

    assert result["processed"] == 1
    assert result["generated"] == 1
    assert result["errors"] == []
