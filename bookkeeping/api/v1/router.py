from fastapi import APIRouter

from bookkeeping.api.v1.endpoints import (
    # Ledger
    accounts,
    transactions,
    # Recurrence
    recurring_journals,
    recurring_invoices,
    # Banking
    banking,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Ledger ====================
api_router.include_router(
    accounts.router,
    prefix="/accounts",
    tags=["Accounts"]
)

api_router.include_router(
    transactions.router,
    prefix="/transactions",
    tags=["Transactions"]
)

# ==================== Recurrence ====================
api_router.include_router(
    recurring_journals.router,
    prefix="/recurring-journals",
    tags=["Recurring Journals"]
)

api_router.include_router(
    recurring_invoices.router,
    prefix="/recurring-invoices",
    tags=["Recurring Invoices"]
)

# ==================== Banking ====================
api_router.include_router(
    banking.router,
    prefix="/banking",
    tags=["Banking"]
)
