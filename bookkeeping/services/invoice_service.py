"""
Invoice Service - creates sales invoices and posts them to the ledger.

Posting for an invoice:
    Debit  Accounts Receivable   grand total
    Credit Sales Revenue         taxable amount
    Credit Output Tax (GST)      total tax (when non-zero)
"""
import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeping.config import settings
from bookkeeping.core.exceptions import InvalidAmountError, NotFoundError, ValidationError
from bookkeeping.models.accounting import QuickEntryRole, TransactionType
from bookkeeping.models.billing import Invoice, InvoiceItem, InvoiceStatus
from bookkeeping.services import document_totals
from bookkeeping.services.document_totals import DocumentItem, ZERO, to_decimal
from bookkeeping.services.ledger_service import LedgerService, LineInput
from bookkeeping.services.sequence_service import INVOICE_PREFIX

logger = logging.getLogger(__name__)


class InvoiceService:
    """Sales invoices for one tenant."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID, user_id: Optional[uuid.UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.ledger = LedgerService(db, tenant_id, user_id)

    async def create_invoice(
        self,
        customer_name: str,
        items: Sequence[Any],
        invoice_date: Optional[date] = None,
        days_until_due: Optional[int] = None,
        customer_id: Optional[uuid.UUID] = None,
        customer_gstin: Optional[str] = None,
        customer_address: Optional[str] = None,
        customer_state: Optional[str] = None,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        discount_type: Optional[str] = None,
        discount_value: Decimal = ZERO,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
    ) -> Invoice:
        """
        Create and post an invoice.

        Items are copied by value; the caller's objects are never attached
        to the new invoice.
        """
        if not items:
            raise ValidationError("An invoice needs at least one item")

        doc_items = [DocumentItem.from_object(item) for item in items]
        totals = document_totals.compute(doc_items, discount_type=discount_type, discount_value=discount_value)
        if totals.taxable_amount < 0:
            raise InvalidAmountError("Discount cannot exceed the invoice subtotal")
        if totals.total_amount <= 0:
            raise InvalidAmountError("Invoice total must be greater than zero")

        invoice_date = invoice_date or date.today()
        if days_until_due is None:
            days_until_due = settings.DEFAULT_DAYS_UNTIL_DUE
        number = await self.ledger.sequences.next_number(INVOICE_PREFIX, invoice_date.year)

        invoice = Invoice(
            id=uuid.uuid4(),
            tenant_id=self.tenant_id,
            invoice_number=number,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_gstin=customer_gstin,
            customer_address=customer_address,
            customer_state=customer_state,
            customer_email=customer_email,
            customer_phone=customer_phone,
            invoice_date=invoice_date,
            due_date=invoice_date + timedelta(days=days_until_due),
            status=InvoiceStatus.DRAFT.value,
            subtotal=totals.subtotal,
            discount_type=str(getattr(discount_type, "value", discount_type)).upper() if discount_type else None,
            discount_value=to_decimal(discount_value),
            discount_amount=totals.discount_amount,
            taxable_amount=totals.taxable_amount,
            cgst_amount=totals.cgst_amount,
            sgst_amount=totals.sgst_amount,
            igst_amount=totals.igst_amount,
            cess_amount=totals.cess_amount,
            total_tax=totals.total_tax,
            total_amount=totals.total_amount,
            amount_paid=totals.amount_paid,
            balance_due=totals.balance_due,
            notes=notes,
            terms=terms,
            created_by=self.user_id,
        )
        invoice.items = [
            InvoiceItem(
                product_id=getattr(source, "product_id", None),
                description=item.description,
                hsn_code=getattr(source, "hsn_code", None),
                quantity=item.quantity,
                unit=getattr(source, "unit", None) or "pcs",
                rate=item.rate,
                amount=item_totals.amount,
                cgst_rate=item.cgst_rate,
                sgst_rate=item.sgst_rate,
                igst_rate=item.igst_rate,
                cess_rate=item.cess_rate,
                cgst_amount=item_totals.cgst_amount,
                sgst_amount=item_totals.sgst_amount,
                igst_amount=item_totals.igst_amount,
                cess_amount=item_totals.cess_amount,
                total_amount=item_totals.total_amount,
                line_order=idx,
            )
            for idx, (source, item, item_totals) in enumerate(zip(items, doc_items, totals.items))
        ]
        self.db.add(invoice)
        await self.db.flush()

        transaction = await self._post_invoice(invoice)
        invoice.transaction_id = transaction.id
        invoice.status = InvoiceStatus.SENT.value
        await self.db.flush()

        logger.info(f"Created invoice {number} for {customer_name}: total {invoice.total_amount}")
        return invoice

    async def _post_invoice(self, invoice: Invoice):
        receivable = await self.ledger.accounts.resolve_quick_entry_account(QuickEntryRole.RECEIVABLE)
        sales = await self.ledger.accounts.resolve_quick_entry_account(QuickEntryRole.SALES)

        lines = [
            LineInput(
                account_id=receivable.id,
                debit=invoice.total_amount,
                description=f"Invoice {invoice.invoice_number} to {invoice.customer_name}",
            ),
        ]
        if invoice.taxable_amount > 0:
            lines.append(LineInput(account_id=sales.id, credit=invoice.taxable_amount, description="Sales revenue"))
        if invoice.total_tax > 0:
            output_tax = await self.ledger.accounts.resolve_quick_entry_account(QuickEntryRole.OUTPUT_TAX)
            lines.append(LineInput(
                account_id=output_tax.id,
                credit=invoice.total_tax,
                description="GST on sales",
            ))

        return await self.ledger.create_transaction(
            transaction_type=TransactionType.SALE,
            transaction_date=invoice.invoice_date,
            description=f"Invoice {invoice.invoice_number}",
            reference_type="invoice",
            reference_id=invoice.id,
            party_id=invoice.customer_id,
            party_type="customer",
            party_name=invoice.customer_name,
            subtotal=invoice.subtotal,
            tax_amount=invoice.total_tax,
            discount_amount=invoice.discount_amount,
            lines=lines,
        )

    async def get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        result = await self.db.execute(
            select(Invoice).where(Invoice.id == invoice_id, Invoice.tenant_id == self.tenant_id)
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found", {"invoice_id": str(invoice_id)})
        return invoice
