import uuid
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from bookkeeping.api.deps import get_session_factory
from bookkeeping.database import get_db
from bookkeeping.main import app


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def headers(tenant_id):
    return {"X-Tenant-ID": str(tenant_id)}


@pytest.fixture
async def codes(client, headers):
    """Bootstrap the default chart over the API and return ids by code."""
    response = await client.post("/api/v1/accounts/initialize", headers=headers)
    assert response.status_code == 200
    accounts = (await client.get("/api/v1/accounts", headers=headers)).json()
    return {account["code"]: account["id"] for account in accounts}


async def test_tenant_header_is_required(client):
    missing = await client.get("/api/v1/accounts")
    invalid = await client.get("/api/v1/accounts", headers={"X-Tenant-ID": "not-a-uuid"})

    assert missing.status_code == 400
    assert invalid.status_code == 400


async def test_post_and_void_transaction(client, headers, codes):
    response = await client.post("/api/v1/transactions", headers=headers, json={
        "transaction_type": "JOURNAL",
        "transaction_date": "2025-04-01",
        "description": "Owner investment",
        "lines": [
            {"account_id": codes["1200"], "debit": "10000"},
            {"account_id": codes["3100"], "credit": "10000"},
        ],
    })
    assert response.status_code == 201
    txn = response.json()
    assert txn["transaction_number"] == "JRN-2025-0001"
    assert txn["status"] == "POSTED"
    assert Decimal(txn["total_amount"]) == Decimal("10000")
    assert len(txn["lines"]) == 2

    bank = (await client.get(f"/api/v1/accounts/{codes['1200']}", headers=headers)).json()
    assert Decimal(bank["current_balance"]) == Decimal("10000")

    voided = await client.post(f"/api/v1/transactions/{txn['id']}/void", headers=headers,
                               json={"reason": "Wrong bank"})
    assert voided.status_code == 200
    assert voided.json()["status"] == "VOID"

    again = await client.post(f"/api/v1/transactions/{txn['id']}/void", headers=headers)
    assert again.status_code == 409
    assert again.json()["type"] == "AlreadyVoidError"

    bank = (await client.get(f"/api/v1/accounts/{codes['1200']}", headers=headers)).json()
    assert Decimal(bank["current_balance"]) == Decimal("0")


async def test_unbalanced_transaction_is_unprocessable(client, headers, codes):
    response = await client.post("/api/v1/transactions", headers=headers, json={
        "lines": [
            {"account_id": codes["1100"], "debit": "100"},
            {"account_id": codes["4100"], "credit": "90"},
        ],
    })

    assert response.status_code == 422
    body = response.json()
    assert body["type"] == "UnbalancedEntryError"
    assert body["details"] == {"total_debit": "100", "total_credit": "90"}

    listing = (await client.get("/api/v1/transactions", headers=headers)).json()
    assert listing["total"] == 0


async def test_unknown_ids_are_not_found(client, headers, codes):
    missing = uuid.uuid4()

    account = await client.get(f"/api/v1/accounts/{missing}", headers=headers)
    txn = await client.get(f"/api/v1/transactions/{missing}", headers=headers)
    schedule = await client.post(f"/api/v1/recurring-journals/{missing}/pause", headers=headers)

    assert account.status_code == 404
    assert account.json()["type"] == "AccountNotFoundError"
    assert txn.status_code == 404
    assert schedule.status_code == 404


async def test_tenants_are_isolated(client, headers, codes):
    other = {"X-Tenant-ID": str(uuid.uuid4())}

    response = await client.get(f"/api/v1/accounts/{codes['1100']}", headers=other)

    assert response.status_code == 404


async def test_quick_sale_and_daily_summary(client, headers, codes):
    response = await client.post("/api/v1/transactions/quick-sale", headers=headers, json={
        "items": [{"description": "Chair", "quantity": "2", "rate": "500", "tax_rate": "18"}],
        "payment_mode": "CASH",
        "transaction_date": "2025-05-02",
    })
    assert response.status_code == 201
    assert Decimal(response.json()["total_amount"]) == Decimal("1180")

    summary = (await client.get("/api/v1/transactions/daily-summary", headers=headers,
                                params={"date": "2025-05-02"})).json()
    assert summary["transaction_count"] == 1
    assert Decimal(summary["total_sales"]) == Decimal("1180")


async def test_recurring_journal_generate_due(client, headers, codes):
    created = await client.post("/api/v1/recurring-journals", headers=headers, json={
        "name": "Rent",
        "frequency": "MONTHLY",
        "start_date": "2025-01-31",
        "max_occurrences": 2,
        "lines": [
            {"account_id": codes["5300"], "debit": "25000"},
            {"account_id": codes["1200"], "credit": "25000"},
        ],
    })
    assert created.status_code == 201
    schedule = created.json()
    assert schedule["status"] == "ACTIVE"

    report = await client.post("/api/v1/recurring-journals/generate-due", headers=headers,
                               json={"as_of": "2025-01-31"})
    assert report.status_code == 200
    assert report.json()["generated_count"] == 1

    refreshed = (await client.get(f"/api/v1/recurring-journals/{schedule['id']}", headers=headers)).json()
    assert refreshed["occurrence_count"] == 1
    assert refreshed["next_run_date"] == "2025-02-28"

    generated = (await client.get(f"/api/v1/recurring-journals/{schedule['id']}/generated", headers=headers)).json()
    assert [g["occurrence_number"] for g in generated] == [1]


async def test_invalid_schedule_state_is_conflict(client, headers, codes):
    created = (await client.post("/api/v1/recurring-journals", headers=headers, json={
        "name": "Rent",
        "frequency": "MONTHLY",
        "start_date": "2025-01-01",
        "lines": [
            {"account_id": codes["5300"], "debit": "100"},
            {"account_id": codes["1200"], "credit": "100"},
        ],
    })).json()

    cancelled = await client.post(f"/api/v1/recurring-journals/{created['id']}/cancel", headers=headers)
    resumed = await client.post(f"/api/v1/recurring-journals/{created['id']}/resume", headers=headers)

    assert cancelled.json()["status"] == "CANCELLED"
    assert resumed.status_code == 409
    assert resumed.json()["type"] == "ScheduleStateError"


async def test_statement_import_and_auto_reconcile(client, headers, codes):
    account = (await client.post("/api/v1/banking/accounts", headers=headers, json={
        "account_name": "Operating",
        "account_number": "50100012345678",
        "bank_name": "Example Bank",
        "ledger_account_id": codes["1200"],
    })).json()
    await client.post("/api/v1/transactions", headers=headers, json={
        "transaction_date": "2025-03-01",
        "lines": [
            {"account_id": codes["4900"], "debit": "5000"},
            {"account_id": codes["1200"], "credit": "5000"},
        ],
    })
    content = b"Date,Description,Debit,Credit\n2025-03-01,NEFT ACME,,5000.00\nbad,row,1,\n"

    imported = await client.post(
        f"/api/v1/banking/accounts/{account['id']}/import-statement",
        headers=headers,
        files={"file": ("statement.csv", content, "text/csv")},
    )
    assert imported.status_code == 200
    assert imported.json()["imported_rows"] == 1
    assert imported.json()["skipped_rows"] == 1

    reconciled = await client.post(f"/api/v1/banking/accounts/{account['id']}/auto-reconcile", headers=headers)
    assert reconciled.status_code == 200
    assert reconciled.json()["matched_count"] == 1

    unreconciled = (await client.get(f"/api/v1/banking/accounts/{account['id']}/unreconciled", headers=headers)).json()
    assert unreconciled == []

    summary = await client.get(f"/api/v1/banking/accounts/{account['id']}/reconciliation-summary",
                               headers=headers, params={"as_of": "2025-03-31"})
    assert summary.status_code == 200
    assert summary.json()["unreconciled_count"] == 0
    assert Decimal(summary.json()["ledger_balance"]) == Decimal("5000")

    listing = (await client.get(f"/api/v1/banking/accounts/{account['id']}/transactions", headers=headers,
                                params={"is_reconciled": "true"})).json()
    assert listing["total"] == 1


async def test_unsupported_statement_file_is_rejected(client, headers, codes):
    account = (await client.post("/api/v1/banking/accounts", headers=headers, json={
        "account_name": "Operating",
        "account_number": "1",
        "bank_name": "Example Bank",
    })).json()

    response = await client.post(
        f"/api/v1/banking/accounts/{account['id']}/import-statement",
        headers=headers,
        files={"file": ("statement.pdf", b"%PDF", "application/pdf")},
    )

    assert response.status_code == 400
