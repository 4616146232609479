"""Recurring invoices: item templates turned into posted invoices on a cadence."""
import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from sqlalchemy import select

from bookkeeping.config import settings
from bookkeeping.core.exceptions import InvalidAmountError, ValidationError
from bookkeeping.models.recurring import GeneratedInvoice, RecurringInvoice, RecurringInvoiceItem
from bookkeeping.services import document_totals
from bookkeeping.services.document_totals import DocumentItem, ZERO, to_decimal
from bookkeeping.services.invoice_service import InvoiceService
from bookkeeping.services.recurrence import RecurringScheduleService, normalize_frequency, validate_cadence

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "name", "description", "frequency", "interval_count", "end_date", "max_occurrences",
    "customer_id", "customer_name", "customer_gstin", "customer_address", "customer_state",
    "customer_email", "customer_phone", "days_until_due", "auto_send",
    "discount_type", "discount_value", "notes", "terms",
}


class RecurringInvoiceService(RecurringScheduleService):
    model = RecurringInvoice
    label = "invoice"

    async def create(
        self,
        name: str,
        frequency: str,
        start_date: date,
        customer_name: str,
        items: Sequence[Any],
        description: Optional[str] = None,
        interval_count: int = 1,
        end_date: Optional[date] = None,
        max_occurrences: Optional[int] = None,
        customer_id: Optional[uuid.UUID] = None,
        customer_gstin: Optional[str] = None,
        customer_address: Optional[str] = None,
        customer_state: Optional[str] = None,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        days_until_due: Optional[int] = None,
        auto_send: bool = False,
        discount_type: Optional[str] = None,
        discount_value: Decimal = ZERO,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
    ) -> RecurringInvoice:
        cadence = validate_cadence(frequency, interval_count, start_date, end_date, max_occurrences)
        if not items:
            raise ValidationError("A recurring invoice needs at least one item")

        schedule = RecurringInvoice(
            tenant_id=self.tenant_id,
            name=name,
            description=description,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_gstin=customer_gstin,
            customer_address=customer_address,
            customer_state=customer_state,
            customer_email=customer_email,
            customer_phone=customer_phone,
            days_until_due=days_until_due if days_until_due is not None else settings.DEFAULT_DAYS_UNTIL_DUE,
            auto_send=auto_send,
            discount_type=str(getattr(discount_type, "value", discount_type)).upper() if discount_type else None,
            discount_value=to_decimal(discount_value),
            notes=notes,
            terms=terms,
            next_run_date=cadence["start_date"],
            occurrence_count=0,
            version=0,
            created_by=self.user_id,
            **cadence,
        )
        schedule.items = [
            RecurringInvoiceItem(
                product_id=getattr(item, "product_id", None),
                description=item.description,
                hsn_code=getattr(item, "hsn_code", None),
                quantity=to_decimal(item.quantity),
                unit=getattr(item, "unit", None) or "pcs",
                rate=to_decimal(item.rate),
                cgst_rate=to_decimal(getattr(item, "cgst_rate", None)),
                sgst_rate=to_decimal(getattr(item, "sgst_rate", None)),
                igst_rate=to_decimal(getattr(item, "igst_rate", None)),
                cess_rate=to_decimal(getattr(item, "cess_rate", None)),
                line_order=idx,
            )
            for idx, item in enumerate(items)
        ]
        self._refresh_preview(schedule)

        self.db.add(schedule)
        await self.db.flush()
        logger.info(f"Created recurring invoice '{name}' for {customer_name} ({cadence['frequency']})")
        return schedule

    async def update(self, schedule_id: uuid.UUID, **changes: Any) -> RecurringInvoice:
        """Change cadence, customer or pricing terms. The item template cannot be edited."""
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
        if "discount_type" in values:
            values["discount_type"] = str(getattr(values["discount_type"], "value", values["discount_type"])).upper()
        if "discount_value" in values:
            values["discount_value"] = to_decimal(values["discount_value"])

        for field, value in values.items():
            setattr(schedule, field, value)
        self._refresh_preview(schedule)
        await self.db.flush()
        return schedule

    def _refresh_preview(self, schedule: RecurringInvoice) -> None:
        totals = document_totals.compute(
            [DocumentItem.from_object(item) for item in schedule.items],
            discount_type=schedule.discount_type,
            discount_value=schedule.discount_value,
        )
        if totals.taxable_amount < 0:
            raise InvalidAmountError("Discount cannot exceed the invoice subtotal")
        if totals.total_amount <= 0:
            raise InvalidAmountError("Invoice total must be greater than zero")
        schedule.subtotal = totals.subtotal
        schedule.total_tax = totals.total_tax
        schedule.total_amount = totals.total_amount

    async def list_generated(self, schedule_id: uuid.UUID) -> List[GeneratedInvoice]:
        await self.get(schedule_id)
        result = await self.db.execute(
            select(GeneratedInvoice)
            .where(GeneratedInvoice.recurring_invoice_id == schedule_id)
            .order_by(GeneratedInvoice.occurrence_number)
        )
        return list(result.scalars().all())

    async def _materialize(self, schedule: RecurringInvoice, run_date: date) -> uuid.UUID:
        invoice = await InvoiceService(self.db, self.tenant_id, self.user_id).create_invoice(
            customer_name=schedule.customer_name,
            customer_id=schedule.customer_id,
            customer_gstin=schedule.customer_gstin,
            customer_address=schedule.customer_address,
            customer_state=schedule.customer_state,
            customer_email=schedule.customer_email,
            customer_phone=schedule.customer_phone,
            items=schedule.items,
            invoice_date=run_date,
            days_until_due=schedule.days_until_due,
            discount_type=schedule.discount_type,
            discount_value=schedule.discount_value,
            notes=schedule.notes,
            terms=schedule.terms,
        )
        return invoice.id

    async def _record(self, schedule: RecurringInvoice, document_id: uuid.UUID, occurrence_number: int) -> None:
        self.db.add(GeneratedInvoice(
            recurring_invoice_id=schedule.id,
            invoice_id=document_id,
            occurrence_number=occurrence_number,
        ))
