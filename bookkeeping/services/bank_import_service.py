"""
Bank Statement Import Service

Imports bank statements from CSV and Excel files into bank_transactions
for reconciliation against the ledger.

Supports multiple bank statement layouts:
- HDFC Bank
- ICICI Bank
- SBI
- Generic delimited format (any bank using common column names)

Row-level problems never abort an import: unparsable rows are counted and
a sample of `line N: reason` strings is returned with the summary.
"""

import csv
import io
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Iterator, List, Optional, Set, Tuple

from openpyxl import load_workbook
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookkeeping.config import settings
from bookkeeping.core.exceptions import InvalidFormatError
from bookkeeping.models.banking import BankTransaction
from bookkeeping.services.bank_account_service import BankAccountService
from bookkeeping.services.document_totals import ZERO, round_money

logger = logging.getLogger(__name__)

DELIMITERS = [",", ";", "\t", "|"]
CURRENCY_SYMBOLS = re.compile(r"[₹$€£¥]|\bINR\b|\bRs\.?", re.IGNORECASE)

# (date, description, debit, credit, reference)
DuplicateKey = Tuple[date, str, Decimal, Decimal, str]


@dataclass
class StatementRow:
    line_number: int
    transaction_date: date
    description: str
    debit: Decimal
    credit: Decimal
    balance: Optional[Decimal]
    reference: Optional[str]

    @property
    def duplicate_key(self) -> DuplicateKey:
        return (self.transaction_date, self.description, self.debit, self.credit, self.reference or "")


@dataclass
class ParsedStatement:
    """Rows accepted by the parser plus the per-row bookkeeping."""
    rows: List[StatementRow] = field(default_factory=list)
    total_rows: int = 0
    skipped_rows: int = 0
    error_rows: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class ImportResult:
    bank_account_id: uuid.UUID
    import_batch_id: uuid.UUID
    bank_format: str
    total_rows: int = 0
    imported_rows: int = 0
    skipped_rows: int = 0
    duplicate_rows: int = 0
    error_rows: int = 0
    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO
    errors: List[str] = field(default_factory=list)


def detect_delimiter(content: str) -> str:
    """Pick the candidate delimiter that occurs most often in the first lines."""
    sample = [line for line in content.splitlines() if line.strip()][:5]
    counts = {d: sum(line.count(d) for line in sample) for d in DELIMITERS}
    best = max(DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] > 0 else ","


def _normalize_header(cell: Any) -> str:
    return " ".join(str(cell or "").replace("\ufeff", "").lower().split())


class BankStatementParser:
    """Base parser: column synonyms, date and amount formats."""

    # Override in subclass for specific bank formats
    DATE_COLUMNS = ["date", "transaction date", "txn date", "value date", "posting date"]
    DESCRIPTION_COLUMNS = ["description", "narration", "particulars", "remarks", "details"]
    DEBIT_COLUMNS = ["debit", "withdrawal", "dr", "debit amount", "withdrawal amt"]
    CREDIT_COLUMNS = ["credit", "deposit", "cr", "credit amount", "deposit amt"]
    BALANCE_COLUMNS = ["balance", "closing balance", "available balance"]
    REFERENCE_COLUMNS = ["reference", "ref no", "cheque no", "utr", "chq/ref no"]
    # Single signed column, used only when no debit/credit columns exist
    AMOUNT_COLUMNS = ["amount", "transaction amount"]

    DATE_FORMATS = [
        "%Y-%m-%d",
        "%d-%m-%Y",
        "%d/%m/%Y",
        "%m/%d/%Y",
        "%Y/%m/%d",
        "%d-%b-%Y",
        "%d %b %Y",
        "%d-%m-%y",
        "%d/%m/%y",
        "%d.%m.%Y",
    ]

    def __init__(self, error_limit: Optional[int] = None):
        self.error_limit = settings.IMPORT_ERROR_SAMPLE_LIMIT if error_limit is None else error_limit

    def parse_date(self, value: str) -> Optional[date]:
        """Parse date from the supported formats; first match wins."""
        if not value or not value.strip():
            return None
        value = value.strip()
        for fmt in self.DATE_FORMATS:
            try:
                return datetime.strptime(value, fmt).date()
            except ValueError:
                continue
        return None

    def parse_amount(self, value: str, dr_is_negative: bool = True) -> Optional[Decimal]:
        """
        Parse an amount cell.

        Blank cells are zero. Returns None when the cell is not a number.
        Brackets and a leading minus mean negative. A trailing Cr/Dr is
        accepted; on balance and signed-amount columns Dr means negative.
        """
        if value is None or not str(value).strip():
            return ZERO

        text = CURRENCY_SYMBOLS.sub("", str(value).strip())
        text = text.replace(",", "").replace(" ", "")

        is_negative = False
        suffix = text[-2:].upper()
        if suffix in ("CR", "DR"):
            is_negative = dr_is_negative and suffix == "DR"
            text = text[:-2].rstrip(".")

        if text.startswith("(") and text.endswith(")"):
            is_negative = not is_negative
            text = text[1:-1]
        if text.startswith("-"):
            is_negative = not is_negative
            text = text[1:]

        if not text or text == "-":
            return ZERO

        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
        if not amount.is_finite():
            return None
        amount = round_money(amount)
        return -amount if is_negative else amount

    def find_column_index(self, headers: List[str], column_names: List[str]) -> int:
        """Find column index by exact, case-insensitive header match."""
        for name in column_names:
            if name in headers:
                return headers.index(name)
        return -1

    def parse_csv(self, content: str) -> ParsedStatement:
        """Parse delimited text content."""
        content = content.lstrip("\ufeff")
        reader = csv.reader(io.StringIO(content), delimiter=detect_delimiter(content))
        return self.parse_records(self._iter_csv(reader))

    def _iter_csv(self, reader) -> Iterator[Tuple[int, Optional[List[str]], Optional[str]]]:
        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                yield reader.line_num, None, str(e)
                continue
            yield reader.line_num, row, None

    def parse_records(self, records: Iterable[Tuple[int, Optional[List[str]], Optional[str]]]) -> ParsedStatement:
        """
        Parse (line_number, cells, read_error) records.

        The header is the first row naming a date column; anything above it
        is bank preamble and ignored. Blank rows are ignored everywhere.
        """
        parsed = ParsedStatement()
        headers: Optional[List[str]] = None
        columns = {}

        for line_number, row, read_error in records:
            if headers is None:
                if row is None:
                    continue
                candidate = [_normalize_header(cell) for cell in row]
                if self.find_column_index(candidate, self.DATE_COLUMNS) == -1:
                    continue
                headers = candidate
                columns = self._resolve_columns(headers)
                continue

            if read_error is not None:
                parsed.total_rows += 1
                parsed.error_rows += 1
                self._note(parsed, line_number, read_error)
                continue

            if not any(str(cell).strip() for cell in row):
                continue  # Skip empty rows

            parsed.total_rows += 1
            reason = self._parse_row(parsed, line_number, row, columns)
            if reason:
                parsed.skipped_rows += 1
                self._note(parsed, line_number, reason)

        if headers is None:
            raise InvalidFormatError("Could not find date column in file")
        return parsed

    def _resolve_columns(self, headers: List[str]) -> dict:
        columns = {
            "date": self.find_column_index(headers, self.DATE_COLUMNS),
            "description": self.find_column_index(headers, self.DESCRIPTION_COLUMNS),
            "debit": self.find_column_index(headers, self.DEBIT_COLUMNS),
            "credit": self.find_column_index(headers, self.CREDIT_COLUMNS),
            "balance": self.find_column_index(headers, self.BALANCE_COLUMNS),
            "reference": self.find_column_index(headers, self.REFERENCE_COLUMNS),
            "amount": -1,
        }
        if columns["description"] == -1:
            raise InvalidFormatError(
                "Could not find description/narration column in file",
                {"headers": headers},
            )
        if columns["debit"] == -1 and columns["credit"] == -1:
            columns["amount"] = self.find_column_index(headers, self.AMOUNT_COLUMNS)
        return columns

    def _parse_row(self, parsed: ParsedStatement, line_number: int, row: List[str], columns: dict) -> Optional[str]:
        """Append the row to parsed.rows, or return why it was skipped."""
        if len(row) < 2:
            return "too few fields"

        def cell(name: str) -> str:
            idx = columns[name]
            if idx < 0 or idx >= len(row):
                return ""
            return str(row[idx]).strip()

        transaction_date = self.parse_date(cell("date"))
        if transaction_date is None:
            return f"invalid date '{cell('date')}'"

        debit, credit = ZERO, ZERO
        if columns["amount"] >= 0:
            amount = self.parse_amount(cell("amount"))
            if amount is None:
                return f"invalid amount '{cell('amount')}'"
            if amount < 0:
                debit = -amount
            else:
                credit = amount
        else:
            debit = self.parse_amount(cell("debit"), dr_is_negative=False)
            if debit is None:
                return f"invalid debit amount '{cell('debit')}'"
            credit = self.parse_amount(cell("credit"), dr_is_negative=False)
            if credit is None:
                return f"invalid credit amount '{cell('credit')}'"
            # A negative on one side is a movement on the other
            if debit < 0:
                credit, debit = credit - debit, ZERO
            if credit < 0:
                debit, credit = debit - credit, ZERO

        if debit == 0 and credit == 0:
            return "no debit or credit amount"

        balance = None
        if cell("balance"):
            balance = self.parse_amount(cell("balance"))

        parsed.rows.append(StatementRow(
            line_number=line_number,
            transaction_date=transaction_date,
            description=cell("description"),
            debit=debit,
            credit=credit,
            balance=balance,
            reference=cell("reference") or None,
        ))
        return None

    def _note(self, parsed: ParsedStatement, line_number: int, reason: str) -> None:
        if len(parsed.errors) < self.error_limit:
            parsed.errors.append(f"line {line_number}: {reason}")


class HDFCParser(BankStatementParser):
    """Parser for HDFC Bank statement format."""

    DESCRIPTION_COLUMNS = ["narration"] + BankStatementParser.DESCRIPTION_COLUMNS
    DEBIT_COLUMNS = ["withdrawal amt."] + BankStatementParser.DEBIT_COLUMNS
    CREDIT_COLUMNS = ["deposit amt."] + BankStatementParser.CREDIT_COLUMNS
    BALANCE_COLUMNS = ["closing balance"] + BankStatementParser.BALANCE_COLUMNS
    REFERENCE_COLUMNS = ["chq./ref.no."] + BankStatementParser.REFERENCE_COLUMNS


class ICICIParser(BankStatementParser):
    """Parser for ICICI Bank statement format."""

    DESCRIPTION_COLUMNS = ["transaction remarks"] + BankStatementParser.DESCRIPTION_COLUMNS
    DEBIT_COLUMNS = ["withdrawal amount (inr)"] + BankStatementParser.DEBIT_COLUMNS
    CREDIT_COLUMNS = ["deposit amount (inr)"] + BankStatementParser.CREDIT_COLUMNS
    BALANCE_COLUMNS = ["balance (inr)"] + BankStatementParser.BALANCE_COLUMNS
    REFERENCE_COLUMNS = ["reference no"] + BankStatementParser.REFERENCE_COLUMNS


class SBIParser(BankStatementParser):
    """Parser for SBI Bank statement format."""

    REFERENCE_COLUMNS = ["ref no./cheque no."] + BankStatementParser.REFERENCE_COLUMNS


class BankImportService:
    """
    Imports statements for one tenant into its bank accounts.
    """

    BANK_PARSERS = {
        "HDFC": HDFCParser,
        "ICICI": ICICIParser,
        "SBI": SBIParser,
        "GENERIC": BankStatementParser,
    }

    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID, user_id: Optional[uuid.UUID] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id

    def detect_bank_format(self, content: str, filename: str = "") -> str:
        """Auto-detect bank format from content or filename."""
        content_lower = content[:2000].lower()
        filename_lower = (filename or "").lower()

        if "hdfc" in content_lower or "hdfc" in filename_lower:
            return "HDFC"
        elif "icici" in content_lower or "icici" in filename_lower:
            return "ICICI"
        elif "state bank" in content_lower or "sbi" in filename_lower:
            return "SBI"
        return "GENERIC"

    def get_parser(self, bank_format: str) -> BankStatementParser:
        parser_class = self.BANK_PARSERS.get((bank_format or "").upper(), BankStatementParser)
        return parser_class()

    async def import_csv_statement(
        self,
        bank_account_id: uuid.UUID,
        file_content: str,
        filename: str = "",
        bank_format: str = "AUTO",
        skip_duplicates: bool = True,
    ) -> ImportResult:
        """
        Import a delimited statement.

        Fails with InvalidFormatError only when the header lacks a date or
        description column; every other problem is counted per row.
        """
        bank_account = await BankAccountService(self.db, self.tenant_id).get_bank_account(bank_account_id)

        if (bank_format or "AUTO").upper() == "AUTO":
            bank_format = self.detect_bank_format(file_content, filename)
        parsed = self.get_parser(bank_format).parse_csv(file_content)
        return await self._store(bank_account, parsed, bank_format.upper(), filename, skip_duplicates)

    async def import_excel_statement(
        self,
        bank_account_id: uuid.UUID,
        file_bytes: bytes,
        filename: str = "",
        sheet_name: Optional[str] = None,
        bank_format: str = "AUTO",
        skip_duplicates: bool = True,
    ) -> ImportResult:
        """Import the first (or named) sheet of an .xlsx statement."""
        bank_account = await BankAccountService(self.db, self.tenant_id).get_bank_account(bank_account_id)

        try:
            workbook = load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
        except Exception as e:
            raise InvalidFormatError(f"Failed to read Excel file: {str(e)}")

        if sheet_name:
            if sheet_name not in workbook.sheetnames:
                raise InvalidFormatError(f"Sheet '{sheet_name}' not found in workbook")
            sheet = workbook[sheet_name]
        else:
            sheet = workbook.active

        records = [
            (idx, [_excel_cell(cell) for cell in row], None)
            for idx, row in enumerate(sheet.iter_rows(values_only=True), start=1)
        ]
        workbook.close()

        if (bank_format or "AUTO").upper() == "AUTO":
            preamble = " ".join(" ".join(cells) for _, cells, _ in records[:10])
            bank_format = self.detect_bank_format(preamble, filename)
        parsed = self.get_parser(bank_format).parse_records(records)
        return await self._store(bank_account, parsed, bank_format.upper(), filename, skip_duplicates)

    async def _existing_keys(self, bank_account_id: uuid.UUID, rows: List[StatementRow]) -> Set[DuplicateKey]:
        if not rows:
            return set()
        dates = [row.transaction_date for row in rows]
        result = await self.db.execute(
            select(
                BankTransaction.transaction_date,
                BankTransaction.description,
                BankTransaction.debit_amount,
                BankTransaction.credit_amount,
                BankTransaction.reference,
            ).where(
                BankTransaction.tenant_id == self.tenant_id,
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.transaction_date >= min(dates),
                BankTransaction.transaction_date <= max(dates),
            )
        )
        return {
            (txn_date, description, debit or ZERO, credit or ZERO, reference or "")
            for txn_date, description, debit, credit, reference in result.all()
        }

    async def _store(self, bank_account, parsed: ParsedStatement, bank_format: str,
                     filename: str, skip_duplicates: bool) -> ImportResult:
        result = ImportResult(
            bank_account_id=bank_account.id,
            import_batch_id=uuid.uuid4(),
            bank_format=bank_format,
            total_rows=parsed.total_rows,
            skipped_rows=parsed.skipped_rows,
            error_rows=parsed.error_rows,
            errors=list(parsed.errors),
        )

        existing = await self._existing_keys(bank_account.id, parsed.rows) if skip_duplicates else set()
        last_balance = None

        for row in parsed.rows:
            if row.duplicate_key in existing:
                result.duplicate_rows += 1
                continue

            self.db.add(BankTransaction(
                tenant_id=self.tenant_id,
                bank_account_id=bank_account.id,
                transaction_date=row.transaction_date,
                description=row.description,
                reference=row.reference,
                debit_amount=row.debit,
                credit_amount=row.credit,
                balance=row.balance,
                is_reconciled=False,
                import_batch_id=result.import_batch_id,
                import_reference=filename or None,
            ))
            result.imported_rows += 1
            result.total_debit += row.debit
            result.total_credit += row.credit
            if row.balance is not None:
                last_balance = row.balance

        if last_balance is not None:
            bank_account.current_balance = last_balance
        await self.db.flush()

        logger.info(
            f"Imported statement into bank account {bank_account.id} ({bank_format}): "
            f"{result.imported_rows}/{result.total_rows} rows, {result.skipped_rows} skipped, "
            f"{result.duplicate_rows} duplicates, {result.error_rows} errors, batch {result.import_batch_id}"
        )
        return result

    async def list_batch(self, import_batch_id: uuid.UUID) -> List[BankTransaction]:
        result = await self.db.execute(
            select(BankTransaction)
            .where(
                BankTransaction.tenant_id == self.tenant_id,
                BankTransaction.import_batch_id == import_batch_id,
            )
            .order_by(BankTransaction.transaction_date, BankTransaction.created_at)
        )
        return list(result.scalars().all())


def _excel_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
