"""
Bank Reconciliation Service

Links imported bank rows to the ledger transactions that caused them.

Matching works on the ledger account linked to the bank account: a bank
row's signed amount (credit - debit) is compared with a line's signed
amount on that account.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeping.config import settings
from bookkeeping.core.exceptions import (
    AlreadyReconciledError,
    BankTransactionNotFoundError,
    TransactionVoidedError,
)
from bookkeeping.models.accounting import Account, Transaction, TransactionLine, TransactionStatus
from bookkeeping.models.banking import BankAccount, BankTransaction
from bookkeeping.services.bank_account_service import BankAccountService
from bookkeeping.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

ROUNDING_TOLERANCE = Decimal("0.01")


@dataclass
class ReconcileMatch:
    bank_transaction_id: uuid.UUID
    transaction_id: uuid.UUID
    transaction_number: str


@dataclass
class AutoReconcileResult:
    bank_account_id: uuid.UUID
    matched_count: int = 0
    unmatched_count: int = 0
    total_processed: int = 0
    matches: List[ReconcileMatch] = field(default_factory=list)


@dataclass
class MatchSuggestion:
    transaction_id: uuid.UUID
    transaction_number: str
    transaction_date: date
    description: Optional[str]
    amount: Decimal
    match_score: int
    match_reason: str


@dataclass
class ReconciliationSummary:
    bank_account_id: uuid.UUID
    bank_account_name: str
    bank_name: str
    as_of_date: date
    bank_balance: Decimal
    ledger_balance: Decimal
    unreconciled_count: int
    unreconciled_debits: Decimal
    unreconciled_credits: Decimal
    difference: Decimal
    is_reconciled: bool


def score_match(bank_row: BankTransaction, txn_date: date, txn_description: Optional[str],
                line_amount: Decimal):
    """
    Score a ledger line against a bank row.

    Returns (score, reason). Amount: +50 exact, +40 within 0.01.
    Date: +30 same day, +20 one day apart. Description: +20 when one
    contains the other.
    """
    score = 0
    reasons = []

    diff = abs(line_amount - bank_row.signed_amount)
    if diff == 0:
        score += 50
        reasons.append("Exact amount match")
    elif diff <= ROUNDING_TOLERANCE:
        score += 40
        reasons.append("Amount match within rounding")

    days_apart = abs((txn_date - bank_row.transaction_date).days)
    if days_apart == 0:
        score += 30
        reasons.append("same date")
    elif days_apart <= 1:
        score += 20
        reasons.append("within 1 day")

    bank_text = (bank_row.description or "").strip().lower()
    txn_text = (txn_description or "").strip().lower()
    if bank_text and txn_text and (bank_text in txn_text or txn_text in bank_text):
        score += 20
        reasons.append("similar description")

    reason = ", ".join(reasons)
    return score, reason[:1].upper() + reason[1:]


class BankReconciliationService:
    """Reconciliation for one tenant."""

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID, user_id: Optional[uuid.UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.bank_accounts = BankAccountService(db, tenant_id)

    async def get_bank_transaction(self, bank_transaction_id: uuid.UUID, for_update: bool = False) -> BankTransaction:
        query = select(BankTransaction).where(
            BankTransaction.id == bank_transaction_id,
            BankTransaction.tenant_id == self.tenant_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        bank_txn = result.scalar_one_or_none()
        if not bank_txn:
            raise BankTransactionNotFoundError(
                f"Bank transaction {bank_transaction_id} not found",
                {"bank_transaction_id": str(bank_transaction_id)},
            )
        return bank_txn

    async def get_unreconciled_transactions(
        self,
        bank_account_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 100,
    ) -> List[BankTransaction]:
        """Get unreconciled bank transactions for matching."""
        await self.bank_accounts.get_bank_account(bank_account_id)
        query = select(BankTransaction).where(
            BankTransaction.tenant_id == self.tenant_id,
            BankTransaction.bank_account_id == bank_account_id,
            BankTransaction.is_reconciled == False,
        )
        if start_date:
            query = query.where(BankTransaction.transaction_date >= start_date)
        if end_date:
            query = query.where(BankTransaction.transaction_date <= end_date)

        query = query.order_by(BankTransaction.transaction_date.desc(), BankTransaction.created_at).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_bank_transactions(
        self,
        bank_account_id: uuid.UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        is_reconciled: Optional[bool] = None,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[BankTransaction], int]:
        """
        Page through a bank account's statement rows, newest first.

        The amount range applies to the row's movement (debit or credit,
        whichever is set); search matches description or reference.
        """
        await self.bank_accounts.get_bank_account(bank_account_id)
        query = select(BankTransaction).where(
            BankTransaction.tenant_id == self.tenant_id,
            BankTransaction.bank_account_id == bank_account_id,
        )
        if start_date:
            query = query.where(BankTransaction.transaction_date >= start_date)
        if end_date:
            query = query.where(BankTransaction.transaction_date <= end_date)
        if is_reconciled is not None:
            query = query.where(BankTransaction.is_reconciled == is_reconciled)

        movement = BankTransaction.debit_amount + BankTransaction.credit_amount
        if min_amount is not None:
            query = query.where(movement >= min_amount)
        if max_amount is not None:
            query = query.where(movement <= max_amount)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                BankTransaction.description.ilike(pattern),
                BankTransaction.reference.ilike(pattern),
            ))

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(
                BankTransaction.transaction_date.desc(),
                BankTransaction.created_at.desc(),
                BankTransaction.id,
            ).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_reconciliation_summary(
        self,
        bank_account_id: uuid.UUID,
        as_of: Optional[date] = None,
    ) -> ReconciliationSummary:
        """
        Compare the statement balance with the linked ledger account.

        ledger_balance is expressed in statement sign (credit - debit on the
        linked account), the same sign the matcher compares. Unreconciled
        totals cover rows dated on or before as_of.
        """
        as_of = as_of or date.today()
        bank_account = await self.bank_accounts.get_bank_account(bank_account_id)

        row = (await self.db.execute(
            select(
                func.count(BankTransaction.id),
                func.coalesce(func.sum(BankTransaction.debit_amount), 0),
                func.coalesce(func.sum(BankTransaction.credit_amount), 0),
            ).where(
                BankTransaction.tenant_id == self.tenant_id,
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.is_reconciled == False,
                BankTransaction.transaction_date <= as_of,
            )
        )).one()
        count, debits, credits = row

        ledger_balance = Decimal("0")
        if bank_account.ledger_account_id:
            balance = await self.db.scalar(
                select(Account.current_balance).where(
                    Account.id == bank_account.ledger_account_id,
                    Account.tenant_id == self.tenant_id,
                )
            )
            if balance is not None:
                ledger_balance = -balance

        bank_balance = bank_account.current_balance or Decimal("0")
        difference = bank_balance - ledger_balance
        return ReconciliationSummary(
            bank_account_id=bank_account.id,
            bank_account_name=bank_account.account_name,
            bank_name=bank_account.bank_name,
            as_of_date=as_of,
            bank_balance=bank_balance,
            ledger_balance=ledger_balance,
            unreconciled_count=count,
            unreconciled_debits=Decimal(str(debits)),
            unreconciled_credits=Decimal(str(credits)),
            difference=difference,
            is_reconciled=count == 0 and difference == 0,
        )

    # ==================== Manual Reconciliation ====================

    async def reconcile_transaction(self, bank_transaction_id: uuid.UUID, transaction_id: uuid.UUID) -> BankTransaction:
        bank_txn = await self.get_bank_transaction(bank_transaction_id, for_update=True)
        if bank_txn.is_reconciled:
            raise AlreadyReconciledError(
                "Bank transaction is already reconciled",
                {
                    "bank_transaction_id": str(bank_txn.id),
                    "transaction_id": str(bank_txn.reconciled_transaction_id),
                },
            )

        transaction = await LedgerService(self.db, self.tenant_id).get_transaction(transaction_id)
        if transaction.is_void:
            raise TransactionVoidedError(
                f"Transaction {transaction.transaction_number} is void and cannot be reconciled",
                {"transaction_id": str(transaction.id)},
            )

        self._mark_reconciled(bank_txn, transaction.id)
        await self.db.flush()
        logger.info(f"Reconciled bank transaction {bank_txn.id} with {transaction.transaction_number}")
        return bank_txn

    async def unreconcile_transaction(self, bank_transaction_id: uuid.UUID) -> BankTransaction:
        """Clear the link. No-op when the row is not reconciled."""
        bank_txn = await self.get_bank_transaction(bank_transaction_id, for_update=True)
        if not bank_txn.is_reconciled:
            return bank_txn

        previous = bank_txn.reconciled_transaction_id
        bank_txn.is_reconciled = False
        bank_txn.reconciled_transaction_id = None
        bank_txn.reconciled_at = None
        bank_txn.reconciled_by = None
        await self.db.flush()
        logger.info(f"Unreconciled bank transaction {bank_txn.id} (was {previous})")
        return bank_txn

    def _mark_reconciled(self, bank_txn: BankTransaction, transaction_id: uuid.UUID) -> None:
        bank_txn.is_reconciled = True
        bank_txn.reconciled_transaction_id = transaction_id
        bank_txn.reconciled_at = datetime.now(timezone.utc)
        bank_txn.reconciled_by = self.user_id

    # ==================== Auto Reconciliation ====================

    def _linked_transaction_ids(self):
        return select(BankTransaction.reconciled_transaction_id).where(
            BankTransaction.tenant_id == self.tenant_id,
            BankTransaction.reconciled_transaction_id.isnot(None),
        )

    async def _candidate_lines(self, ledger_account_id: uuid.UUID, start: date, end: date):
        result = await self.db.execute(
            select(
                Transaction.id,
                Transaction.transaction_number,
                Transaction.transaction_date,
                Transaction.description,
                Transaction.created_at,
                TransactionLine.debit,
                TransactionLine.credit,
            )
            .join(TransactionLine, TransactionLine.transaction_id == Transaction.id)
            .where(
                Transaction.tenant_id == self.tenant_id,
                Transaction.status == TransactionStatus.POSTED.value,
                Transaction.transaction_date >= start,
                Transaction.transaction_date <= end,
                TransactionLine.account_id == ledger_account_id,
                Transaction.id.not_in(self._linked_transaction_ids()),
            )
            .order_by(Transaction.created_at, Transaction.transaction_number, Transaction.id)
        )
        return result.all()

    async def auto_reconcile(self, bank_account_id: uuid.UUID) -> AutoReconcileResult:
        """
        Match every unreconciled row on the account to a ledger transaction
        on the same date whose line on the linked ledger account has exactly
        the same signed amount.

        Ties go to the earliest created transaction (then number, then id).
        A ledger transaction is used for at most one bank row. Accounts
        without a linked ledger account match nothing.
        """
        bank_account = await self.bank_accounts.get_bank_account(bank_account_id)
        result = AutoReconcileResult(bank_account_id=bank_account.id)

        rows = await self.db.execute(
            select(BankTransaction)
            .where(
                BankTransaction.tenant_id == self.tenant_id,
                BankTransaction.bank_account_id == bank_account.id,
                BankTransaction.is_reconciled == False,
            )
            .order_by(BankTransaction.transaction_date, BankTransaction.created_at, BankTransaction.id)
            .with_for_update()
        )
        bank_rows = list(rows.scalars().all())
        result.total_processed = len(bank_rows)

        if bank_account.ledger_account_id is None:
            result.unmatched_count = len(bank_rows)
            logger.info(f"Bank account {bank_account.id} has no linked ledger account; auto-reconcile skipped")
            return result

        used: Set[uuid.UUID] = set()
        candidates_by_date: Dict[date, list] = {}

        for bank_txn in bank_rows:
            day = bank_txn.transaction_date
            if day not in candidates_by_date:
                candidates_by_date[day] = await self._candidate_lines(bank_account.ledger_account_id, day, day)

            match = None
            for candidate in candidates_by_date[day]:
                if candidate.id in used:
                    continue
                if (candidate.credit or 0) - (candidate.debit or 0) == bank_txn.signed_amount:
                    match = candidate
                    break

            if match is None:
                result.unmatched_count += 1
                continue

            used.add(match.id)
            self._mark_reconciled(bank_txn, match.id)
            result.matched_count += 1
            result.matches.append(ReconcileMatch(
                bank_transaction_id=bank_txn.id,
                transaction_id=match.id,
                transaction_number=match.transaction_number,
            ))

        await self.db.flush()
        logger.info(
            f"Auto-reconciled bank account {bank_account.id}: {result.matched_count} matched, "
            f"{result.unmatched_count} unmatched of {result.total_processed}"
        )
        return result

    # ==================== Suggestions ====================

    async def suggest_matches(self, bank_transaction_id: uuid.UUID, limit: int = 10) -> List[MatchSuggestion]:
        """
        Rank posted ledger transactions within the suggestion window around
        the bank row's date.

        Only transactions scoring above MATCH_SUGGESTION_MIN_SCORE are kept,
        one suggestion per transaction (its best line). Ordered by score,
        then date proximity, then id.
        """
        bank_txn = await self.get_bank_transaction(bank_transaction_id)
        bank_account: BankAccount = await self.bank_accounts.get_bank_account(bank_txn.bank_account_id)
        if bank_account.ledger_account_id is None:
            return []

        window = timedelta(days=settings.MATCH_SUGGESTION_WINDOW_DAYS)
        candidates = await self._candidate_lines(
            bank_account.ledger_account_id,
            bank_txn.transaction_date - window,
            bank_txn.transaction_date + window,
        )

        best: Dict[uuid.UUID, MatchSuggestion] = {}
        for candidate in candidates:
            line_amount = (candidate.credit or 0) - (candidate.debit or 0)
            score, reason = score_match(bank_txn, candidate.transaction_date, candidate.description, line_amount)
            if score <= settings.MATCH_SUGGESTION_MIN_SCORE:
                continue
            current = best.get(candidate.id)
            if current is None or score > current.match_score:
                best[candidate.id] = MatchSuggestion(
                    transaction_id=candidate.id,
                    transaction_number=candidate.transaction_number,
                    transaction_date=candidate.transaction_date,
                    description=candidate.description,
                    amount=line_amount,
                    match_score=score,
                    match_reason=reason,
                )

        suggestions = sorted(
            best.values(),
            key=lambda s: (
                -s.match_score,
                abs((s.transaction_date - bank_txn.transaction_date).days),
                str(s.transaction_id),
            ),
        )
        return suggestions[:limit]
