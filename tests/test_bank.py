import io
import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest
from openpyxl import Workbook

from bookkeeping.core.exceptions import (
    AccountNotFoundError,
    AlreadyReconciledError,
    BankAccountNotFoundError,
    InvalidFormatError,
    TransactionVoidedError,
)
from bookkeeping.jobs.reconciliation_jobs import auto_reconcile_bank_accounts
from bookkeeping.services.bank_account_service import BankAccountService
from bookkeeping.services.bank_import_service import BankImportService, BankStatementParser, detect_delimiter
from bookkeeping.services.bank_reconciliation_service import BankReconciliationService
from bookkeeping.services.ledger_service import LedgerService


@pytest.fixture
async def bank_account(session, tenant_id, chart):
    service = BankAccountService(session, tenant_id)
    return await service.create_bank_account(
        account_name="Operating",
        account_number="50100012345678",
        bank_name="HDFC Bank",
        ifsc_code="hdfc0000123",
        ledger_account_id=chart["1200"].id,
    )


async def _post(session, tenant_id, chart, day, amount, description=None):
    """
    Post a journal whose line on the bank ledger account (1200) has a
    signed amount (credit - debit) of `amount`.
    """
    ledger = LedgerService(session, tenant_id)
    value = Decimal(amount)
    if value >= 0:
        lines = [
            {"account_id": chart["4900"].id, "debit": value},
            {"account_id": chart["1200"].id, "credit": value},
        ]
    else:
        lines = [
            {"account_id": chart["1200"].id, "debit": -value},
            {"account_id": chart["4900"].id, "credit": -value},
        ]
    return await ledger.create_transaction(
        transaction_type="JOURNAL", transaction_date=day, description=description, lines=lines,
    )


async def _import(session, tenant_id, bank_account, content, **kwargs):
    service = BankImportService(session, tenant_id)
    return await service.import_csv_statement(bank_account.id, content, filename="statement.csv", **kwargs)


# ==================== Parsing ====================

def test_detect_delimiter():
    assert detect_delimiter("Date;Description;Debit\n2025-01-01;Fee;10") == ";"
    assert detect_delimiter("Date\tDescription\tDebit\n") == "\t"
    assert detect_delimiter("just one column") == ","


@pytest.mark.parametrize("value, expected", [
    ("1,234.50", Decimal("1234.50")),
    ("₹ 500", Decimal("500.00")),
    ("(250.00)", Decimal("-250.00")),
    ("-75", Decimal("-75.00")),
    ("1,000.00 Dr", Decimal("-1000.00")),
    ("1,000.00 Cr", Decimal("1000.00")),
    ("", Decimal("0")),
    ("abc", None),
])
def test_parse_amount(value, expected):
    assert BankStatementParser().parse_amount(value) == expected


@pytest.mark.parametrize("value, expected", [
    ("2025-03-01", date(2025, 3, 1)),
    ("01/03/2025", date(2025, 3, 1)),
    ("01-Mar-2025", date(2025, 3, 1)),
    ("01.03.2025", date(2025, 3, 1)),
    ("31/02/2025", None),
    ("", None),
])
def test_parse_date(value, expected):
    assert BankStatementParser().parse_date(value) == expected


def test_preamble_rows_before_header_are_ignored():
    content = (
        "Statement of account\n"
        "Account No,50100012345678\n"
        "Date,Narration,Withdrawal,Deposit,Balance\n"
        "02/03/2025,NEFT ACME,,5000.00,15000.00\n"
    )

    parsed = BankStatementParser().parse_csv(content)

    assert parsed.total_rows == 1
    assert parsed.rows[0].credit == Decimal("5000.00")
    assert parsed.rows[0].balance == Decimal("15000.00")


def test_single_signed_amount_column():
    content = "Txn Date,Details,Amount\n2025-03-01,Fee,-25.00\n2025-03-02,Interest,12.00\n"

    parsed = BankStatementParser().parse_csv(content)

    assert [(r.debit, r.credit) for r in parsed.rows] == [
        (Decimal("25.00"), Decimal("0")),
        (Decimal("0"), Decimal("12.00")),
    ]


# ==================== Import ====================

async def test_import_counts_rows_and_skips_bad_ones(session, tenant_id, bank_account):
    content = (
        "Date,Description,Debit,Credit,Balance,Reference\n"
        "2025-03-01,NEFT ACME TRADERS,,5000.00,15000.00,UTR001\n"
        "not-a-date,Broken row,10.00,,,\n"
    )

    result = await _import(session, tenant_id, bank_account, content)

    assert result.bank_format == "GENERIC"
    assert result.total_rows == 2
    assert result.imported_rows == 1
    assert result.skipped_rows == 1
    assert result.duplicate_rows == 0
    assert result.total_credit == Decimal("5000.00")
    assert result.errors == ["line 3: invalid date 'not-a-date'"]
    assert bank_account.current_balance == Decimal("15000.00")

    rows = await BankImportService(session, tenant_id).list_batch(result.import_batch_id)
    assert len(rows) == 1
    assert rows[0].reference == "UTR001"
    assert rows[0].import_reference == "statement.csv"
    assert not rows[0].is_reconciled


async def test_reimport_skips_duplicates(session, tenant_id, bank_account):
    content = (
        "Date,Description,Debit,Credit\n"
        "2025-03-01,NEFT ACME TRADERS,,5000.00\n"
        "2025-03-02,ATM WITHDRAWAL,2000.00,\n"
    )
    await _import(session, tenant_id, bank_account, content)

    again = await _import(session, tenant_id, bank_account, content)
    forced = await _import(session, tenant_id, bank_account, content, skip_duplicates=False)

    assert again.imported_rows == 0
    assert again.duplicate_rows == 2
    assert forced.imported_rows == 2


async def test_import_without_date_column_fails(session, tenant_id, bank_account):
    with pytest.raises(InvalidFormatError):
        await _import(session, tenant_id, bank_account, "Description,Debit,Credit\nFee,10,\n")


async def test_import_without_description_column_fails(session, tenant_id, bank_account):
    with pytest.raises(InvalidFormatError):
        await _import(session, tenant_id, bank_account, "Date,Debit,Credit\n2025-03-01,10,\n")


async def test_bank_format_is_detected_from_content(session, tenant_id, bank_account):
    content = (
        "HDFC BANK LTD\n"
        "Date,Narration,Chq./Ref.No.,Withdrawal Amt.,Deposit Amt.,Closing Balance\n"
        "01/03/25,UPI PAYMENT,REF9,150.00,,850.00\n"
    )

    result = await _import(session, tenant_id, bank_account, content)

    assert result.bank_format == "HDFC"
    assert result.imported_rows == 1
    assert result.total_debit == Decimal("150.00")


async def test_excel_import(session, tenant_id, bank_account):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["Date", "Description", "Debit", "Credit"])
    sheet.append([datetime(2025, 3, 1), "NEFT ACME TRADERS", None, 5000])
    sheet.append([datetime(2025, 3, 2), "BANK CHARGES", 59, None])
    buffer = io.BytesIO()
    workbook.save(buffer)

    result = await BankImportService(session, tenant_id).import_excel_statement(
        bank_account.id, buffer.getvalue(), filename="march.xlsx",
    )

    assert result.imported_rows == 2
    assert result.total_credit == Decimal("5000.00")
    assert result.total_debit == Decimal("59.00")


async def test_import_into_unknown_account_fails(session, tenant_id, chart):
    with pytest.raises(BankAccountNotFoundError):
        await BankImportService(session, tenant_id).import_csv_statement(uuid.uuid4(), "Date,Description\n")


async def test_bank_account_requires_existing_ledger_account(session, tenant_id, chart):
    with pytest.raises(AccountNotFoundError):
        await BankAccountService(session, tenant_id).create_bank_account(
            account_name="Payroll",
            account_number="123",
            bank_name="SBI",
            ledger_account_id=uuid.uuid4(),
        )


# ==================== Reconciliation ====================

async def test_auto_reconcile_matches_same_day_exact_amount(session, tenant_id, chart, bank_account):
    deposit = await _post(session, tenant_id, chart, date(2025, 3, 1), "5000")
    await _post(session, tenant_id, chart, date(2025, 3, 2), "5000")
    await _import(session, tenant_id, bank_account, (
        "Date,Description,Debit,Credit\n"
        "2025-03-01,NEFT ACME TRADERS,,5000.00\n"
        "2025-03-01,UNKNOWN CHARGE,99.00,\n"
    ))
    service = BankReconciliationService(session, tenant_id)

    result = await service.auto_reconcile(bank_account.id)

    assert result.total_processed == 2
    assert result.matched_count == 1
    assert result.unmatched_count == 1
    assert result.matches[0].transaction_id == deposit.id

    again = await service.auto_reconcile(bank_account.id)
    assert again.total_processed == 1
    assert again.matched_count == 0


async def test_auto_reconcile_sign_must_agree(session, tenant_id, chart, bank_account):
    await _post(session, tenant_id, chart, date(2025, 3, 1), "-5000")
    await _import(session, tenant_id, bank_account, "Date,Description,Debit,Credit\n2025-03-01,NEFT IN,,5000.00\n")

    result = await BankReconciliationService(session, tenant_id).auto_reconcile(bank_account.id)

    assert result.matched_count == 0


async def test_auto_reconcile_uses_each_transaction_once(session, tenant_id, chart, bank_account):
    first = await _post(session, tenant_id, chart, date(2025, 3, 1), "-1000")
    second = await _post(session, tenant_id, chart, date(2025, 3, 1), "-1000")
    await _import(session, tenant_id, bank_account, (
        "Date,Description,Debit,Credit,Reference\n"
        "2025-03-01,RENT A,1000.00,,R1\n"
        "2025-03-01,RENT B,1000.00,,R2\n"
        "2025-03-01,RENT C,1000.00,,R3\n"
    ))

    result = await BankReconciliationService(session, tenant_id).auto_reconcile(bank_account.id)

    assert result.matched_count == 2
    assert result.unmatched_count == 1
    assert {m.transaction_id for m in result.matches} == {first.id, second.id}


async def test_auto_reconcile_ignores_void_transactions(session, tenant_id, chart, bank_account):
    txn = await _post(session, tenant_id, chart, date(2025, 3, 1), "5000")
    await LedgerService(session, tenant_id).void_transaction(txn.id)
    await _import(session, tenant_id, bank_account, "Date,Description,Debit,Credit\n2025-03-01,NEFT IN,,5000.00\n")

    result = await BankReconciliationService(session, tenant_id).auto_reconcile(bank_account.id)

    assert result.matched_count == 0


async def test_auto_reconcile_without_ledger_link_matches_nothing(session, tenant_id, chart):
    unlinked = await BankAccountService(session, tenant_id).create_bank_account(
        account_name="Petty", account_number="999", bank_name="SBI",
    )
    await _post(session, tenant_id, chart, date(2025, 3, 1), "5000")
    await _import(session, tenant_id, unlinked, "Date,Description,Debit,Credit\n2025-03-01,NEFT IN,,5000.00\n")

    result = await BankReconciliationService(session, tenant_id).auto_reconcile(unlinked.id)

    assert result.total_processed == 1
    assert result.unmatched_count == 1
    assert result.matched_count == 0


async def test_manual_reconcile_and_unreconcile(session, tenant_id, chart, bank_account):
    user_id = uuid.uuid4()
    txn = await _post(session, tenant_id, chart, date(2025, 3, 5), "700")
    result = await _import(session, tenant_id, bank_account, "Date,Description,Debit,Credit\n2025-03-01,CASH DEP,,700.00\n")
    bank_row, = await BankImportService(session, tenant_id).list_batch(result.import_batch_id)
    service = BankReconciliationService(session, tenant_id, user_id)

    await service.reconcile_transaction(bank_row.id, txn.id)

    assert bank_row.is_reconciled
    assert bank_row.reconciled_transaction_id == txn.id
    assert bank_row.reconciled_by == user_id
    with pytest.raises(AlreadyReconciledError):
        await service.reconcile_transaction(bank_row.id, txn.id)
    assert await service.get_unreconciled_transactions(bank_account.id) == []

    await service.unreconcile_transaction(bank_row.id)
    await service.unreconcile_transaction(bank_row.id)

    assert not bank_row.is_reconciled
    assert bank_row.reconciled_transaction_id is None
    assert bank_row.reconciled_at is None


async def test_void_transaction_cannot_be_reconciled(session, tenant_id, chart, bank_account):
    txn = await _post(session, tenant_id, chart, date(2025, 3, 1), "700")
    await LedgerService(session, tenant_id).void_transaction(txn.id)
    result = await _import(session, tenant_id, bank_account, "Date,Description,Debit,Credit\n2025-03-01,CASH DEP,,700.00\n")
    bank_row, = await BankImportService(session, tenant_id).list_batch(result.import_batch_id)

    with pytest.raises(TransactionVoidedError):
        await BankReconciliationService(session, tenant_id).reconcile_transaction(bank_row.id, txn.id)
    assert not bank_row.is_reconciled


async def test_suggest_matches_ranks_by_score_then_proximity(session, tenant_id, chart, bank_account):
    exact_same_day = await _post(session, tenant_id, chart, date(2025, 3, 10), "5000")
    exact_two_days = await _post(session, tenant_id, chart, date(2025, 3, 12), "5000")
    near_next_day = await _post(session, tenant_id, chart, date(2025, 3, 11), "5000.01",
                                description="neft acme")
    await _post(session, tenant_id, chart, date(2025, 3, 10), "1234")
    await _post(session, tenant_id, chart, date(2025, 3, 20), "5000")
    result = await _import(session, tenant_id, bank_account, "Date,Description,Debit,Credit\n2025-03-10,NEFT ACME,,5000.00\n")
    bank_row, = await BankImportService(session, tenant_id).list_batch(result.import_batch_id)

    suggestions = await BankReconciliationService(session, tenant_id).suggest_matches(bank_row.id)

    assert [s.transaction_id for s in suggestions] == [exact_same_day.id, near_next_day.id, exact_two_days.id]
    assert [s.match_score for s in suggestions] == [80, 80, 50]
    assert suggestions[0].match_reason == "Exact amount match, same date"
    assert suggestions[1].match_reason == "Amount match within rounding, within 1 day, similar description"
    assert suggestions[2].amount == Decimal("5000.00")


async def test_suggestions_exclude_already_linked_transactions(session, tenant_id, chart, bank_account):
    txn = await _post(session, tenant_id, chart, date(2025, 3, 10), "5000")
    result = await _import(session, tenant_id, bank_account, (
        "Date,Description,Debit,Credit,Reference\n"
        "2025-03-10,NEFT IN,,5000.00,A\n"
        "2025-03-10,NEFT IN,,5000.00,B\n"
    ))
    first, second = await BankImportService(session, tenant_id).list_batch(result.import_batch_id)
    service = BankReconciliationService(session, tenant_id)
    await service.reconcile_transaction(first.id, txn.id)

    assert await service.suggest_matches(second.id) == []


async def test_auto_reconcile_job_runs_per_account(session, session_factory, tenant_id, chart, bank_account):
    await _post(session, tenant_id, chart, date(2025, 3, 1), "5000")
    await _import(session, tenant_id, bank_account, "Date,Description,Debit,Credit\n2025-03-01,NEFT IN,,5000.00\n")
    await session.commit()

    results = await auto_reconcile_bank_accounts(session_factory=session_factory)

    assert results["accounts_processed"] == 1
    assert results["matched"] == 1
    assert results["errors"] == []


# ==================== Listing and summary ====================

async def test_list_bank_transactions_filters(session, tenant_id, bank_account):
    await _import(session, tenant_id, bank_account, (
        "Date,Description,Debit,Credit,Reference\n"
        "2025-03-01,NEFT ACME TRADERS,,5000.00,UTR001\n"
        "2025-03-02,ATM WITHDRAWAL,2000.00,,\n"
        "2025-03-03,BANK CHARGES,25.00,,\n"
        "2025-03-04,IMPS FROM ACME,,750.00,UTR002\n"
    ))
    service = BankReconciliationService(session, tenant_id)

    everything, total = await service.list_bank_transactions(bank_account.id)
    assert total == 4
    assert [row.transaction_date for row in everything] == [
        date(2025, 3, 4), date(2025, 3, 3), date(2025, 3, 2), date(2025, 3, 1),
    ]

    acme, total = await service.list_bank_transactions(bank_account.id, search="acme")
    assert total == 2
    assert {row.reference for row in acme} == {"UTR001", "UTR002"}
    by_reference, _ = await service.list_bank_transactions(bank_account.id, search="utr002")
    assert [row.description for row in by_reference] == ["IMPS FROM ACME"]

    mid_sized, _ = await service.list_bank_transactions(
        bank_account.id, min_amount=Decimal("500"), max_amount=Decimal("2500"),
    )
    assert sorted(row.description for row in mid_sized) == ["ATM WITHDRAWAL", "IMPS FROM ACME"]

    window, total = await service.list_bank_transactions(
        bank_account.id, start_date=date(2025, 3, 2), end_date=date(2025, 3, 3),
    )
    assert total == 2

    page, total = await service.list_bank_transactions(bank_account.id, limit=1, offset=1)
    assert total == 4
    assert [row.transaction_date for row in page] == [date(2025, 3, 3)]

    reconciled, total = await service.list_bank_transactions(bank_account.id, is_reconciled=True)
    assert reconciled == []
    assert total == 0


async def test_reconciliation_summary_tracks_open_rows(session, tenant_id, chart, bank_account):
    await _post(session, tenant_id, chart, date(2025, 3, 1), "5000")
    await _import(session, tenant_id, bank_account, (
        "Date,Description,Debit,Credit,Balance\n"
        "2025-03-01,NEFT ACME TRADERS,,5000.00,5000.00\n"
        "2025-03-05,BANK CHARGES,25.00,,4975.00\n"
    ))
    service = BankReconciliationService(session, tenant_id)

    summary = await service.get_reconciliation_summary(bank_account.id, as_of=date(2025, 3, 31))

    assert summary.bank_name == "HDFC Bank"
    assert summary.bank_balance == Decimal("4975.00")
    assert summary.ledger_balance == Decimal("5000")
    assert summary.unreconciled_count == 2
    assert summary.unreconciled_debits == Decimal("25")
    assert summary.unreconciled_credits == Decimal("5000")
    assert summary.difference == Decimal("-25")
    assert not summary.is_reconciled

    early = await service.get_reconciliation_summary(bank_account.id, as_of=date(2025, 3, 2))
    assert early.unreconciled_count == 1

    await _post(session, tenant_id, chart, date(2025, 3, 5), "-25", description="Bank charges")
    await service.auto_reconcile(bank_account.id)

    settled = await service.get_reconciliation_summary(bank_account.id, as_of=date(2025, 3, 31))
    assert settled.unreconciled_count == 0
    assert settled.difference == Decimal("0")
    assert settled.is_reconciled


async def test_reconciliation_summary_unknown_account(session, tenant_id, chart):
    with pytest.raises(BankAccountNotFoundError):
        await BankReconciliationService(session, tenant_id).get_reconciliation_summary(uuid.uuid4())
