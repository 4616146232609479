# Services module
from bookkeeping.services.account_service import AccountService
from bookkeeping.services.sequence_service import SequenceService
from bookkeeping.services.ledger_service import LedgerService
from bookkeeping.services.invoice_service import InvoiceService

# Recurrence
from bookkeeping.services.recurring_journal_service import RecurringJournalService
from bookkeeping.services.recurring_invoice_service import RecurringInvoiceService

# Banking
from bookkeeping.services.bank_account_service import BankAccountService
from bookkeeping.services.bank_import_service import BankImportService
from bookkeeping.services.bank_reconciliation_service import BankReconciliationService

__all__ = [
    "AccountService",
    "SequenceService",
    "LedgerService",
    "InvoiceService",
    # Recurrence
    "RecurringJournalService",
    "RecurringInvoiceService",
    # Banking
    "BankAccountService",
    "BankImportService",
    "BankReconciliationService",
]
