"""
Sequence Service for human-readable document numbers.

Format: {PREFIX}-{YEAR}-{SEQUENCE}, e.g. SAL-2025-0001. One counter per
(tenant, prefix, year), incremented under a row lock inside the caller's
transaction so concurrent creators never receive the same number.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeping.models.accounting import TransactionSequence, TransactionType

logger = logging.getLogger(__name__)


TRANSACTION_PREFIXES = {
    TransactionType.SALE.value: "SAL",
    TransactionType.PURCHASE.value: "PUR",
    TransactionType.RECEIPT.value: "REC",
    TransactionType.PAYMENT.value: "PAY",
    TransactionType.EXPENSE.value: "EXP",
    TransactionType.JOURNAL.value: "JRN",
    TransactionType.TRANSFER.value: "TRF",
}
DEFAULT_PREFIX = "TXN"
INVOICE_PREFIX = "INV"
PADDING = 4


def prefix_for_type(transaction_type: str) -> str:
    return TRANSACTION_PREFIXES.get(str(transaction_type).upper(), DEFAULT_PREFIX)


def format_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{str(sequence).zfill(PADDING)}"


class SequenceService:
    """
    Atomic per-tenant number generation.

    Uses INSERT .. ON CONFLICT DO NOTHING to create the counter row, then
    SELECT FOR UPDATE to lock it for the rest of the caller's transaction.
    """

    def __init__(self, db: AsyncSession, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    async def next_number(self, prefix: str, year: int) -> str:
        """
        Reserve and return the next number for a prefix/year.

        The increment only becomes durable when the caller commits; a rollback
        releases the number again.
        """
        sequence = await self._get_or_create_sequence(prefix, year)
        sequence.current_number += 1
        await self.db.flush()
        number = format_number(prefix, year, sequence.current_number)
        logger.debug(f"Reserved {number} for tenant {self.tenant_id}")
        return number

    async def next_transaction_number(self, transaction_type: str, year: int) -> str:
        return await self.next_number(prefix_for_type(transaction_type), year)

    async def preview_next_number(self, prefix: str, year: int) -> str:
        """Preview what the next number would be without incrementing."""
        result = await self.db.execute(
            select(TransactionSequence.current_number).where(
                TransactionSequence.tenant_id == self.tenant_id,
                TransactionSequence.prefix == prefix,
                TransactionSequence.year == year,
            )
        )
        current: Optional[int] = result.scalar_one_or_none()
        return format_number(prefix, year, (current or 0) + 1)

    async def _get_or_create_sequence(self, prefix: str, year: int) -> TransactionSequence:
        dialect = self.db.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        await self.db.execute(
            insert(TransactionSequence)
            .values(tenant_id=self.tenant_id, prefix=prefix, year=year, current_number=0)
            .on_conflict_do_nothing(index_elements=["tenant_id", "prefix", "year"])
        )

        result = await self.db.execute(
            select(TransactionSequence)
            .where(
                TransactionSequence.tenant_id == self.tenant_id,
                TransactionSequence.prefix == prefix,
                TransactionSequence.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
