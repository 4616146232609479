"""
Ledger error hierarchy.

Services raise these; the HTTP layer maps each family to a status code:

    NotFoundError   -> 404
    ConflictError   -> 409
    ValidationError -> 422
"""
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for every error raised by the ledger services."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ==================== Not found ====================

class NotFoundError(LedgerError):
    status_code = 404


class AccountNotFoundError(NotFoundError):
    pass


class TransactionNotFoundError(NotFoundError):
    pass


class ScheduleNotFoundError(NotFoundError):
    pass


class BankAccountNotFoundError(NotFoundError):
    pass


class BankTransactionNotFoundError(NotFoundError):
    pass


# ==================== State conflicts ====================

class ConflictError(LedgerError):
    status_code = 409


class AlreadyVoidError(ConflictError):
    pass


class TransactionVoidedError(ConflictError):
    """A void transaction was used where a posted one is required."""
    pass


class AlreadyReconciledError(ConflictError):
    pass


class SystemAccountError(ConflictError):
    """System accounts cannot be modified or deleted."""
    pass


class AccountExistsError(ConflictError):
    pass


class AccountHasBalanceError(ConflictError):
    pass


class ScheduleStateError(ConflictError):
    """Invalid lifecycle transition on a recurring schedule."""
    pass


# ==================== Validation ====================

class ValidationError(LedgerError):
    status_code = 422


class UnbalancedEntryError(ValidationError):
    pass


class InvalidAmountError(ValidationError):
    pass


class InvalidRecurrenceError(ValidationError):
    pass


class InvalidFormatError(ValidationError):
    pass
