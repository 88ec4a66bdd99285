# Overview: Error taxonomy shared by the reconciliation services and the API layer.

"""
Reconciliation errors.

All service failures are raised unmodified to the caller. Nothing here
retries or compensates; a raised error after the first committed step of a
multi-step operation means "possibly partially applied".
"""


class ReconciliationError(Exception):
    """Base class for credit-ledger service errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(ReconciliationError):
    """Bad input shape (400-level)."""


class NotFoundError(ReconciliationError):
    """Referenced product, client or sale does not exist."""


class PersistenceError(ReconciliationError):
    """A storage round-trip failed."""


class PartialSuccessError(ReconciliationError):
    """
    Primary change committed but a best-effort follow-up write failed.

    details carries what was already applied so the operator can verify it.
    """
