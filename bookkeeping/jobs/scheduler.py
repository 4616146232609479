"""
APScheduler configuration for the ledger's background jobs.

Every job walks all tenants itself and isolates each unit of work
(one schedule, one bank account) in its own session, so a failure in one
tenant never affects another.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from bookkeeping.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': settings.SCHEDULER_MISFIRE_GRACE_SECONDS,
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE,
)


def start_scheduler():
    """Start the background job scheduler."""
    if scheduler.running:
        return

    from bookkeeping.jobs.recurrence_jobs import generate_recurring_journals, generate_recurring_invoices
    from bookkeeping.jobs.reconciliation_jobs import auto_reconcile_bank_accounts

    scheduler.add_job(
        generate_recurring_journals,
        'interval',
        minutes=settings.RECURRING_JOURNAL_INTERVAL_MINUTES,
        id='generate_recurring_journals',
        name='Generate Due Recurring Journals',
        replace_existing=True,
    )

    scheduler.add_job(
        generate_recurring_invoices,
        'interval',
        minutes=settings.RECURRING_INVOICE_INTERVAL_MINUTES,
        id='generate_recurring_invoices',
        name='Generate Due Recurring Invoices',
        replace_existing=True,
    )

    scheduler.add_job(
        auto_reconcile_bank_accounts,
        'interval',
        minutes=settings.AUTO_RECONCILE_INTERVAL_MINUTES,
        id='auto_reconcile_bank_accounts',
        name='Auto-Reconcile Bank Accounts',
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Background job scheduler started")

    # Log all scheduled jobs
    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
