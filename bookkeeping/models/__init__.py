# Import every model so Base.metadata knows all tables
from bookkeeping.models.accounting import (
    Account,
    QuickEntryAccount,
    TransactionSequence,
    Transaction,
    TransactionLine,
)
from bookkeeping.models.billing import Invoice, InvoiceItem
from bookkeeping.models.recurring import (
    RecurringJournal,
    RecurringJournalLine,
    GeneratedJournal,
    RecurringInvoice,
    RecurringInvoiceItem,
    GeneratedInvoice,
)
from bookkeeping.models.banking import BankAccount, BankTransaction

__all__ = [
    "Account",
    "QuickEntryAccount",
    "TransactionSequence",
    "Transaction",
    "TransactionLine",
    "Invoice",
    "InvoiceItem",
    "RecurringJournal",
    "RecurringJournalLine",
    "GeneratedJournal",
    "RecurringInvoice",
    "RecurringInvoiceItem",
    "GeneratedInvoice",
    "BankAccount",
    "BankTransaction",
]
