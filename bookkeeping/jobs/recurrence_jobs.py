"""
Recurring document generation jobs.

Triggers:
- Interval job (via APScheduler)
- POST /recurring-journals/generate-due and /recurring-invoices/generate-due
"""
import logging
from datetime import date
from typing import Any, Dict, Optional

from bookkeeping.database import async_session_factory
from bookkeeping.services.recurrence import GenerationReport
from bookkeeping.services.recurring_invoice_service import RecurringInvoiceService
from bookkeeping.services.recurring_journal_service import RecurringJournalService

logger = logging.getLogger(__name__)


def _summarize(job_name: str, report: GenerationReport) -> Dict[str, Any]:
    results = {
        "started_at": report.started_at.isoformat(),
        "finished_at": report.finished_at.isoformat() if report.finished_at else None,
        "processed": report.processed,
        "generated": report.generated_count,
        "skipped": report.skipped,
        "failed": report.failed_count,
        "errors": [
            {"schedule_id": str(f.schedule_id), "tenant_id": str(f.tenant_id), "reason": f.reason}
            for f in report.failures
        ],
    }
    logger.info(
        f"Job '{job_name}' completed: {results['generated']}/{results['processed']} generated, "
        f"{results['failed']} failed"
    )
    for error in results["errors"]:
        logger.error(f"Job '{job_name}': schedule {error['schedule_id']} failed: {error['reason']}")
    return results


async def generate_recurring_journals(today: Optional[date] = None, session_factory=None) -> Dict[str, Any]:
    report = await RecurringJournalService.generate_due(session_factory or async_session_factory, today)
    return _summarize("generate_recurring_journals", report)


async def generate_recurring_invoices(today: Optional[date] = None, session_factory=None) -> Dict[str, Any]:
    report = await RecurringInvoiceService.generate_due(session_factory or async_session_factory, today)
    return _summarize("generate_recurring_invoices", report)
