"""
Ledger Service - posting and voiding double-entry transactions.

Every operation runs inside the caller's session and never commits; the
request dependency (or job session) commits the document, its lines and the
balance deltas together, or rolls all of them back.

Quick entries:
- Quick sale    -> Debit Cash/Bank/Receivable (total), Credit Sales (total)
- Quick expense -> Debit chosen expense account, Credit Cash/Bank/Payable
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeping.core.exceptions import (
    AlreadyVoidError,
    InvalidAmountError,
    TransactionNotFoundError,
    UnbalancedEntryError,
    ValidationError,
)
from bookkeeping.models.accounting import (
    PaymentMode,
    QuickEntryRole,
    Transaction,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from bookkeeping.services.account_service import AccountService
from bookkeeping.services.document_totals import ZERO, round_money, to_decimal
from bookkeeping.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)


@dataclass
class LineInput:
    account_id: uuid.UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None
    tax_amount: Decimal = ZERO

    @classmethod
    def coerce(cls, line: Any) -> "LineInput":
        """Accept a LineInput, a dict or any object with the same attributes."""
        if isinstance(line, cls):
            return line
        get = line.get if isinstance(line, dict) else lambda k, d=None: getattr(line, k, d)
        return cls(
            account_id=get("account_id"),
            debit=to_decimal(get("debit")),
            credit=to_decimal(get("credit")),
            description=get("description"),
            tax_amount=to_decimal(get("tax_amount")),
        )


@dataclass
class QuickSaleItem:
    description: str
    quantity: Decimal
    rate: Decimal
    tax_rate: Decimal = ZERO


@dataclass
class DailySummary:
    date: date
    total_sales: Decimal = ZERO
    total_purchases: Decimal = ZERO
    total_expenses: Decimal = ZERO
    total_receipts: Decimal = ZERO
    total_payments: Decimal = ZERO
    transaction_count: int = 0


SUMMARY_FIELDS = {
    TransactionType.SALE.value: "total_sales",
    TransactionType.PURCHASE.value: "total_purchases",
    TransactionType.EXPENSE.value: "total_expenses",
    TransactionType.RECEIPT.value: "total_receipts",
    TransactionType.PAYMENT.value: "total_payments",
}

BANK_MODES = {PaymentMode.BANK.value, PaymentMode.UPI.value, PaymentMode.CARD.value, PaymentMode.CHEQUE.value}


def payment_side_role(payment_mode: Optional[str], credit_role: QuickEntryRole) -> QuickEntryRole:
    """Map a payment mode to the account role on the money side of a quick entry."""
    mode = str(getattr(payment_mode, "value", payment_mode) or "").upper()
    if mode == PaymentMode.CASH.value:
        return QuickEntryRole.CASH
    if mode in BANK_MODES:
        return QuickEntryRole.BANK
    return credit_role


def validate_lines(lines: Sequence[LineInput]) -> Tuple[Decimal, Decimal]:
    """
    Check line amounts and balance without touching the database.

    Returns:
        (total_debit, total_credit)

    Raises:
        ValidationError: Fewer than two lines
        InvalidAmountError: Negative amount, both or neither side set, or sub-paise precision
        UnbalancedEntryError: Σdebit != Σcredit
    """
    if len(lines) < 2:
        raise ValidationError("A transaction needs at least two lines")

    total_debit = ZERO
    total_credit = ZERO
    for idx, line in enumerate(lines, 1):
        if not line.account_id:
            raise ValidationError(f"Line {idx}: account_id is required")
        debit, credit = to_decimal(line.debit), to_decimal(line.credit)
        if debit < 0 or credit < 0:
            raise InvalidAmountError(f"Line {idx}: amounts cannot be negative")
        if (debit > 0) == (credit > 0):
            raise InvalidAmountError(f"Line {idx}: exactly one of debit or credit must be non-zero")
        if debit != round_money(debit) or credit != round_money(credit):
            raise InvalidAmountError(f"Line {idx}: amounts cannot have more than 2 decimal places")
        total_debit += debit
        total_credit += credit

    # Exact comparison - amounts are fixed-point
    if total_debit != total_credit:
        raise UnbalancedEntryError(
            f"Journal entry unbalanced: Debit={total_debit}, Credit={total_credit}",
            {"total_debit": str(total_debit), "total_credit": str(total_credit)},
        )
    return total_debit, total_credit


class LedgerService:
    """Double-entry posting for one tenant."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID, user_id: Optional[uuid.UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.accounts = AccountService(db, tenant_id)
        self.sequences = SequenceService(db, tenant_id)

    async def create_transaction(
        self,
        transaction_type: str,
        lines: Sequence[Any],
        transaction_date: Optional[date] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[uuid.UUID] = None,
        party_id: Optional[uuid.UUID] = None,
        party_type: Optional[str] = None,
        party_name: Optional[str] = None,
        subtotal: Optional[Decimal] = None,
        tax_amount: Decimal = ZERO,
        discount_amount: Decimal = ZERO,
        payment_mode: Optional[str] = None,
        payment_reference: Optional[str] = None,
    ) -> Transaction:
        """
        Validate and post a balanced transaction.

        Nothing is written unless every line is valid, the entry balances and
        every referenced account exists in the tenant.
        """
        txn_type = str(getattr(transaction_type, "value", transaction_type)).upper()
        if txn_type not in {t.value for t in TransactionType}:
            raise ValidationError(f"Unknown transaction type: {transaction_type}")

        line_inputs = [LineInput.coerce(line) for line in lines]
        total_debit, _ = validate_lines(line_inputs)

        # Locks the accounts for the balance update below
        await self.accounts.get_accounts_for_posting(line.account_id for line in line_inputs)

        txn_date = transaction_date or date.today()
        number = await self.sequences.next_transaction_number(txn_type, txn_date.year)

        transaction = Transaction(
            id=uuid.uuid4(),
            tenant_id=self.tenant_id,
            transaction_number=number,
            transaction_date=txn_date,
            transaction_type=txn_type,
            reference_type=reference_type,
            reference_id=reference_id,
            party_id=party_id,
            party_type=party_type,
            party_name=party_name,
            description=description,
            notes=notes,
            subtotal=to_decimal(subtotal) if subtotal is not None else total_debit,
            tax_amount=to_decimal(tax_amount),
            discount_amount=to_decimal(discount_amount),
            total_amount=total_debit,
            payment_mode=str(getattr(payment_mode, "value", payment_mode)).upper() if payment_mode else None,
            payment_reference=payment_reference,
            status=TransactionStatus.POSTED.value,
            created_by=self.user_id,
        )
        transaction.lines = [
            TransactionLine(
                account_id=line.account_id,
                description=line.description,
                debit=to_decimal(line.debit),
                credit=to_decimal(line.credit),
                tax_amount=to_decimal(line.tax_amount),
                line_order=idx,
            )
            for idx, line in enumerate(line_inputs)
        ]
        self.db.add(transaction)
        await self.db.flush()

        await self.accounts.apply_line_deltas(transaction.lines, sign=1)

        logger.info(
            f"Posted {number} ({txn_type}) for tenant {self.tenant_id}: "
            f"{len(transaction.lines)} lines, total {total_debit}"
        )
        return transaction

    async def create_quick_sale(
        self,
        items: Sequence[Any],
        payment_mode: Optional[str] = PaymentMode.CASH.value,
        transaction_date: Optional[date] = None,
        party_id: Optional[uuid.UUID] = None,
        party_name: Optional[str] = None,
        payment_reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Transaction:
        """
        Record a sale in one step.

        subtotal = Σ quantity x rate; tax = Σ item amount x tax_rate / 100.

        Raises:
            AccountNotFoundError: If the tenant has no quick-entry mapping
        """
        if not items:
            raise ValidationError("A quick sale needs at least one item")

        subtotal = ZERO
        tax = ZERO
        descriptions: List[str] = []
        for item in items:
            amount = round_money(to_decimal(item.quantity) * to_decimal(item.rate))
            subtotal += amount
            tax += round_money(amount * to_decimal(getattr(item, "tax_rate", None)) / Decimal("100"))
            if item.description:
                descriptions.append(item.description)
        total = subtotal + tax
        if total <= 0:
            raise InvalidAmountError("Sale total must be greater than zero")

        payment_account = await self.accounts.resolve_quick_entry_account(
            payment_side_role(payment_mode, QuickEntryRole.RECEIVABLE)
        )
        sales_account = await self.accounts.resolve_quick_entry_account(QuickEntryRole.SALES)

        return await self.create_transaction(
            transaction_type=TransactionType.SALE,
            transaction_date=transaction_date,
            description=", ".join(descriptions),
            notes=notes,
            party_id=party_id,
            party_type="customer" if party_id or party_name else None,
            party_name=party_name,
            subtotal=subtotal,
            tax_amount=tax,
            payment_mode=payment_mode,
            payment_reference=payment_reference,
            lines=[
                LineInput(account_id=payment_account.id, debit=total, description="Payment received"),
                LineInput(account_id=sales_account.id, credit=total, description="Sales revenue", tax_amount=tax),
            ],
        )

    async def create_quick_expense(
        self,
        expense_account_id: uuid.UUID,
        amount: Decimal,
        payment_mode: Optional[str] = PaymentMode.CASH.value,
        description: Optional[str] = None,
        transaction_date: Optional[date] = None,
        party_id: Optional[uuid.UUID] = None,
        party_name: Optional[str] = None,
        payment_reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Transaction:
        amount = to_decimal(amount)
        if amount <= 0:
            raise InvalidAmountError("Expense amount must be greater than zero")

        payment_account = await self.accounts.resolve_quick_entry_account(
            payment_side_role(payment_mode, QuickEntryRole.PAYABLE)
        )

        return await self.create_transaction(
            transaction_type=TransactionType.EXPENSE,
            transaction_date=transaction_date,
            description=description,
            notes=notes,
            party_id=party_id,
            party_type="vendor" if party_id or party_name else None,
            party_name=party_name,
            payment_mode=payment_mode,
            payment_reference=payment_reference,
            lines=[
                LineInput(account_id=expense_account_id, debit=amount, description=description),
                LineInput(account_id=payment_account.id, credit=amount, description="Payment made"),
            ],
        )

    async def void_transaction(self, transaction_id: uuid.UUID, reason: Optional[str] = None) -> Transaction:
        """
        POSTED -> VOID, reversing every line's balance delta.

        Lines are kept for audit; recompute_balances() skips void transactions,
        so stored and recomputed balances agree after a void.

        Raises:
            TransactionNotFoundError: Unknown id in this tenant
            AlreadyVoidError: Transaction was voided before
        """
        transaction = await self.get_transaction(transaction_id)
        if transaction.is_void:
            raise AlreadyVoidError(
                f"Transaction {transaction.transaction_number} is already void",
                {"transaction_id": str(transaction.id)},
            )

        await self.accounts.apply_line_deltas(transaction.lines, sign=-1)

        transaction.status = TransactionStatus.VOID.value
        transaction.voided_at = datetime.now(timezone.utc)
        transaction.voided_by = self.user_id
        transaction.void_reason = reason
        await self.db.flush()

        logger.info(f"Voided {transaction.transaction_number} for tenant {self.tenant_id}")
        return transaction

    async def get_transaction(self, transaction_id: uuid.UUID) -> Transaction:
        result = await self.db.execute(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.tenant_id == self.tenant_id,
            )
        )
        transaction = result.scalar_one_or_none()
        if not transaction:
            raise TransactionNotFoundError(
                f"Transaction {transaction_id} not found",
                {"transaction_id": str(transaction_id)},
            )
        return transaction

    async def list_transactions(
        self,
        transaction_type: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        party_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Transaction], int]:
        filters = [Transaction.tenant_id == self.tenant_id]
        if transaction_type:
            filters.append(Transaction.transaction_type == str(getattr(transaction_type, "value", transaction_type)).upper())
        if status:
            filters.append(Transaction.status == str(getattr(status, "value", status)).upper())
        if start_date:
            filters.append(Transaction.transaction_date >= start_date)
        if end_date:
            filters.append(Transaction.transaction_date <= end_date)
        if party_id:
            filters.append(Transaction.party_id == party_id)

        total = await self.db.scalar(select(func.count(Transaction.id)).where(*filters))
        result = await self.db.execute(
            select(Transaction)
            .where(*filters)
            .order_by(Transaction.transaction_date.desc(), Transaction.transaction_number.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total or 0

    async def get_daily_summary(self, day: Optional[date] = None) -> DailySummary:
        """Totals of posted transactions on one date, grouped by type."""
        day = day or date.today()
        result = await self.db.execute(
            select(
                Transaction.transaction_type,
                func.coalesce(func.sum(Transaction.total_amount), 0),
                func.count(Transaction.id),
            )
            .where(
                Transaction.tenant_id == self.tenant_id,
                Transaction.transaction_date == day,
                Transaction.status == TransactionStatus.POSTED.value,
            )
            .group_by(Transaction.transaction_type)
        )

        summary = DailySummary(date=day)
        for txn_type, total, count in result.all():
            summary.transaction_count += count
            field = SUMMARY_FIELDS.get(txn_type)
            if field:
                setattr(summary, field, round_money(total))
        return summary
