import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from bookkeeping.core.exceptions import (
    AccountNotFoundError,
    AlreadyVoidError,
    InvalidAmountError,
    SystemAccountError,
    UnbalancedEntryError,
    ValidationError,
)
from bookkeeping.models.accounting import Transaction, TransactionStatus
from bookkeeping.services.account_service import AccountService
from bookkeeping.services.ledger_service import LedgerService, QuickSaleItem


async def _balances(session, tenant_id, *codes):
    service = AccountService(session, tenant_id)
    return [(await service.get_account_by_code(code)).current_balance for code in codes]


async def _transaction_count(session, tenant_id):
    return await session.scalar(
        select(func.count(Transaction.id)).where(Transaction.tenant_id == tenant_id)
    )


# ==================== Chart of accounts ====================

async def test_initialize_default_accounts_is_idempotent(session, tenant_id):
    service = AccountService(session, tenant_id)

    first = await service.initialize_default_accounts()
    second = await service.initialize_default_accounts()

    assert first["accounts_created"] == 25
    assert first["roles_mapped"] == 6
    assert second["accounts_created"] == 0
    assert second["accounts_existing"] == 25
    assert second["roles_mapped"] == 0

    cash = await service.get_account_by_code("1100")
    assets = await service.get_account_by_code("1000")
    assert cash.parent_id == assets.id
    assert cash.is_system


async def test_system_accounts_cannot_be_changed(session, tenant_id, chart):
    service = AccountService(session, tenant_id)

    with pytest.raises(SystemAccountError):
        await service.update_account(chart["1100"].id, name="Petty Cash")
    with pytest.raises(SystemAccountError):
        await service.delete_account(chart["1100"].id)


async def test_opening_balance_update_moves_current_balance(session, tenant_id):
    service = AccountService(session, tenant_id)
    account = await service.create_account(code="1150", name="Petty Cash", account_type="asset",
                                           opening_balance=Decimal("100"))

    await service.update_account(account.id, opening_balance=Decimal("250"))

    assert account.account_type == "ASSET"
    assert account.opening_balance == Decimal("250")
    assert account.current_balance == Decimal("250")


# ==================== Posting ====================

async def test_balanced_transaction_moves_balances(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)

    txn = await ledger.create_transaction(
        transaction_type="journal",
        transaction_date=date(2025, 4, 1),
        description="Owner investment",
        lines=[
            {"account_id": chart["1200"].id, "debit": Decimal("10000")},
            {"account_id": chart["3100"].id, "credit": Decimal("10000")},
        ],
    )

    assert txn.transaction_number == "JRN-2025-0001"
    assert txn.status == TransactionStatus.POSTED.value
    assert txn.total_amount == Decimal("10000")
    assert txn.is_balanced
    bank, capital = await _balances(session, tenant_id, "1200", "3100")
    assert bank == Decimal("10000")
    assert capital == Decimal("-10000")


async def test_unbalanced_transaction_writes_nothing(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)

    with pytest.raises(UnbalancedEntryError) as exc_info:
        await ledger.create_transaction(
            transaction_type="JOURNAL",
            lines=[
                {"account_id": chart["1100"].id, "debit": Decimal("100")},
                {"account_id": chart["4100"].id, "credit": Decimal("90")},
            ],
        )

    assert exc_info.value.details == {"total_debit": "100", "total_credit": "90"}
    assert await _transaction_count(session, tenant_id) == 0
    cash, sales = await _balances(session, tenant_id, "1100", "4100")
    assert cash == Decimal("0")
    assert sales == Decimal("0")


@pytest.mark.parametrize("line_amounts", [
    [("1100", "100", "100"), ("4100", "0", "200")],
    [("1100", "-100", "0"), ("4100", "0", "-100")],
    [("1100", "0", "0"), ("4100", "0", "0")],
    [("1100", "10.005", "0"), ("4100", "0", "10.005")],
])
async def test_invalid_line_amounts_are_rejected(session, tenant_id, chart, line_amounts):
    ledger = LedgerService(session, tenant_id)
    lines = [
        {"account_id": chart[code].id, "debit": Decimal(debit), "credit": Decimal(credit)}
        for code, debit, credit in line_amounts
    ]

    with pytest.raises(InvalidAmountError):
        await ledger.create_transaction(transaction_type="JOURNAL", lines=lines)
    assert await _transaction_count(session, tenant_id) == 0


async def test_single_line_transaction_is_rejected(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)

    with pytest.raises(ValidationError):
        await ledger.create_transaction(
            transaction_type="JOURNAL",
            lines=[{"account_id": chart["1100"].id, "debit": Decimal("1")}],
        )


async def test_unknown_account_is_rejected(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)

    with pytest.raises(AccountNotFoundError):
        await ledger.create_transaction(
            transaction_type="JOURNAL",
            lines=[
                {"account_id": chart["1100"].id, "debit": Decimal("50")},
                {"account_id": uuid.uuid4(), "credit": Decimal("50")},
            ],
        )
    assert await _transaction_count(session, tenant_id) == 0


async def test_accounts_of_another_tenant_are_not_visible(session, tenant_id, chart):
    other = LedgerService(session, uuid.uuid4())

    with pytest.raises(AccountNotFoundError):
        await other.create_transaction(
            transaction_type="JOURNAL",
            lines=[
                {"account_id": chart["1100"].id, "debit": Decimal("50")},
                {"account_id": chart["4100"].id, "credit": Decimal("50")},
            ],
        )


async def test_numbers_are_sequential_per_type_and_year(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)
    lines = [
        {"account_id": chart["1100"].id, "debit": Decimal("10")},
        {"account_id": chart["4100"].id, "credit": Decimal("10")},
    ]

    first = await ledger.create_transaction(transaction_type="SALE", transaction_date=date(2025, 1, 5), lines=lines)
    second = await ledger.create_transaction(transaction_type="SALE", transaction_date=date(2025, 2, 5), lines=lines)
    journal = await ledger.create_transaction(transaction_type="JOURNAL", transaction_date=date(2025, 2, 5), lines=lines)
    next_year = await ledger.create_transaction(transaction_type="SALE", transaction_date=date(2026, 1, 1), lines=lines)

    assert first.transaction_number == "SAL-2025-0001"
    assert second.transaction_number == "SAL-2025-0002"
    assert journal.transaction_number == "JRN-2025-0001"
    assert next_year.transaction_number == "SAL-2026-0001"


# ==================== Void ====================

async def test_void_restores_balances_and_matches_recompute(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id, user_id=uuid.uuid4())
    keep = await ledger.create_transaction(
        transaction_type="JOURNAL",
        lines=[
            {"account_id": chart["1100"].id, "debit": Decimal("500")},
            {"account_id": chart["3100"].id, "credit": Decimal("500")},
        ],
    )
    doomed = await ledger.create_transaction(
        transaction_type="EXPENSE",
        lines=[
            {"account_id": chart["5300"].id, "debit": Decimal("200")},
            {"account_id": chart["1100"].id, "credit": Decimal("200")},
        ],
    )

    voided = await ledger.void_transaction(doomed.id, reason="Entered twice")

    assert voided.status == TransactionStatus.VOID.value
    assert voided.void_reason == "Entered twice"
    assert voided.voided_by == ledger.user_id
    assert voided.voided_at is not None
    assert len(voided.lines) == 2
    cash, rent = await _balances(session, tenant_id, "1100", "5300")
    assert cash == Decimal("500")
    assert rent == Decimal("0")

    recomputed = await AccountService(session, tenant_id).recompute_balances(persist=False)
    assert recomputed[chart["1100"].id] == Decimal("500")
    assert recomputed[chart["5300"].id] == Decimal("0")
    assert recomputed[chart["3100"].id] == Decimal("-500")
    assert keep.status == TransactionStatus.POSTED.value


async def test_void_twice_fails(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)
    txn = await ledger.create_transaction(
        transaction_type="JOURNAL",
        lines=[
            {"account_id": chart["1100"].id, "debit": Decimal("10")},
            {"account_id": chart["3100"].id, "credit": Decimal("10")},
        ],
    )
    await ledger.void_transaction(txn.id)

    with pytest.raises(AlreadyVoidError):
        await ledger.void_transaction(txn.id)
    cash, = await _balances(session, tenant_id, "1100")
    assert cash == Decimal("0")


async def test_void_reaches_lines_on_a_deleted_account(session, tenant_id, chart):
    accounts = AccountService(session, tenant_id)
    ledger = LedgerService(session, tenant_id)
    temp = await accounts.create_account("1900", "Suspense", "ASSET")
    first = await ledger.create_transaction(transaction_type="JOURNAL", lines=[
        {"account_id": temp.id, "debit": Decimal("100")},
        {"account_id": chart["1100"].id, "credit": Decimal("100")},
    ])
    await ledger.create_transaction(transaction_type="JOURNAL", lines=[
        {"account_id": chart["1100"].id, "debit": Decimal("100")},
        {"account_id": temp.id, "credit": Decimal("100")},
    ])
    await accounts.delete_account(temp.id)

    voided = await ledger.void_transaction(first.id)

    assert voided.status == TransactionStatus.VOID.value
    assert temp.current_balance == Decimal("-100")
    cash, = await _balances(session, tenant_id, "1100")
    assert cash == Decimal("100")

    recomputed = await accounts.recompute_balances(persist=False)
    assert recomputed[temp.id] == temp.current_balance
    assert recomputed[chart["1100"].id] == cash

    with pytest.raises(AccountNotFoundError):
        await ledger.create_transaction(transaction_type="JOURNAL", lines=[
            {"account_id": temp.id, "debit": Decimal("5")},
            {"account_id": chart["1100"].id, "credit": Decimal("5")},
        ])


# ==================== Quick entries ====================

async def test_quick_sale_posts_total_including_tax(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)

    txn = await ledger.create_quick_sale(
        items=[
            QuickSaleItem(description="Chair", quantity=Decimal("2"), rate=Decimal("500"), tax_rate=Decimal("18")),
            QuickSaleItem(description="Delivery", quantity=Decimal("1"), rate=Decimal("100")),
        ],
        payment_mode="UPI",
        party_name="Walk-in",
    )

    assert txn.transaction_type == "SALE"
    assert txn.subtotal == Decimal("1100")
    assert txn.tax_amount == Decimal("180.00")
    assert txn.total_amount == Decimal("1280.00")
    assert txn.description == "Chair, Delivery"
    assert txn.party_type == "customer"
    bank, sales, cash = await _balances(session, tenant_id, "1200", "4100", "1100")
    assert bank == Decimal("1280.00")
    assert sales == Decimal("-1280.00")
    assert cash == Decimal("0")


async def test_quick_sale_on_credit_goes_to_receivables(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)

    await ledger.create_quick_sale(
        items=[QuickSaleItem(description="Service", quantity=Decimal("1"), rate=Decimal("750"))],
        payment_mode="CREDIT",
    )

    receivable, = await _balances(session, tenant_id, "1300")
    assert receivable == Decimal("750")


async def test_quick_expense_paid_in_cash(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)

    txn = await ledger.create_quick_expense(
        expense_account_id=chart["5500"].id,
        amount=Decimal("1200"),
        payment_mode="CASH",
        description="Electricity bill",
    )

    assert txn.transaction_number.startswith("EXP-")
    utilities, cash = await _balances(session, tenant_id, "5500", "1100")
    assert utilities == Decimal("1200")
    assert cash == Decimal("-1200")


async def test_quick_entries_need_the_default_chart(session, tenant_id):
    ledger = LedgerService(session, tenant_id)

    with pytest.raises(AccountNotFoundError):
        await ledger.create_quick_sale(
            items=[QuickSaleItem(description="Chair", quantity=Decimal("1"), rate=Decimal("500"))],
        )


async def test_quick_expense_must_be_positive(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)

    with pytest.raises(InvalidAmountError):
        await ledger.create_quick_expense(expense_account_id=chart["5500"].id, amount=Decimal("0"))


async def test_quick_entry_mapping_can_be_overridden(session, tenant_id, chart):
    accounts = AccountService(session, tenant_id)
    await accounts.set_quick_entry_account("sales", chart["4200"].id)
    ledger = LedgerService(session, tenant_id)

    await ledger.create_quick_sale(
        items=[QuickSaleItem(description="Consulting", quantity=Decimal("1"), rate=Decimal("300"))],
    )

    service_revenue, sales = await _balances(session, tenant_id, "4200", "4100")
    assert service_revenue == Decimal("-300")
    assert sales == Decimal("0")


async def test_unknown_quick_entry_role_is_rejected(session, tenant_id, chart):
    with pytest.raises(ValidationError):
        await AccountService(session, tenant_id).set_quick_entry_account("petty", chart["1100"].id)


# ==================== Queries ====================

async def test_daily_summary_ignores_void_transactions(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)
    day = date(2025, 6, 10)
    item = QuickSaleItem(description="Chair", quantity=Decimal("1"), rate=Decimal("400"))

    await ledger.create_quick_sale(items=[item], transaction_date=day)
    voided = await ledger.create_quick_sale(items=[item], transaction_date=day)
    await ledger.create_quick_expense(expense_account_id=chart["5300"].id, amount=Decimal("150"), transaction_date=day)
    await ledger.create_quick_sale(items=[item], transaction_date=date(2025, 6, 11))
    await ledger.void_transaction(voided.id)

    summary = await ledger.get_daily_summary(day)

    assert summary.transaction_count == 2
    assert summary.total_sales == Decimal("400.00")
    assert summary.total_expenses == Decimal("150.00")
    assert summary.total_receipts == Decimal("0")


async def test_list_transactions_filters_by_type(session, tenant_id, chart):
    ledger = LedgerService(session, tenant_id)
    item = QuickSaleItem(description="Chair", quantity=Decimal("1"), rate=Decimal("400"))
    await ledger.create_quick_sale(items=[item])
    await ledger.create_quick_expense(expense_account_id=chart["5300"].id, amount=Decimal("150"))

    sales, total = await ledger.list_transactions(transaction_type="sale")

    assert total == 1
    assert sales[0].transaction_type == "SALE"
