"""
Auto-reconciliation job.

Runs AutoReconcile for every active bank account that has a linked ledger
account, across all tenants. Each bank account is reconciled in its own
session; one failing account does not stop the run.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import select

from bookkeeping.database import async_session_factory
from bookkeeping.models.banking import BankAccount
from bookkeeping.services.bank_reconciliation_service import BankReconciliationService

logger = logging.getLogger(__name__)


async def auto_reconcile_bank_accounts(session_factory=None) -> Dict[str, Any]:
    session_factory = session_factory or async_session_factory
    logger.info("Starting auto-reconcile job...")

    results = {
        "started_at": datetime.now(timezone.utc).isoformat(),
        "accounts_processed": 0,
        "matched": 0,
        "unmatched": 0,
        "errors": [],
    }

    async with session_factory() as session:
        result = await session.execute(
            select(BankAccount.id, BankAccount.tenant_id)
            .where(
                BankAccount.is_active == True,
                BankAccount.ledger_account_id.isnot(None),
            )
            .order_by(BankAccount.tenant_id, BankAccount.id)
        )
        accounts = result.all()

    for bank_account_id, tenant_id in accounts:
        results["accounts_processed"] += 1
        try:
            async with session_factory() as session:
                async with session.begin():
                    service = BankReconciliationService(session, tenant_id)
                    outcome = await service.auto_reconcile(bank_account_id)
        except Exception as e:
            logger.error(f"Auto-reconcile failed for bank account {bank_account_id} (tenant {tenant_id}): {e}")
            results["errors"].append({
                "bank_account_id": str(bank_account_id),
                "tenant_id": str(tenant_id),
                "reason": str(e),
            })
            continue

        results["matched"] += outcome.matched_count
        results["unmatched"] += outcome.unmatched_count

    results["finished_at"] = datetime.now(timezone.utc).isoformat()
    logger.info(
        f"Auto-reconcile job completed: {results['accounts_processed']} accounts, "
        f"{results['matched']} matched, {len(results['errors'])} failed"
    )
    return results
