"""
Background Jobs Module

Handles scheduled tasks for:
- Generating due recurring journals
- Generating due recurring invoices
- Auto-reconciling bank accounts against the ledger
"""

from bookkeeping.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from bookkeeping.jobs.recurrence_jobs import generate_recurring_journals, generate_recurring_invoices
from bookkeeping.jobs.reconciliation_jobs import auto_reconcile_bank_accounts

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "generate_recurring_journals",
    "generate_recurring_invoices",
    "auto_reconcile_bank_accounts",
]
