# Overview: Error taxonomy shared by the reconciliation services and routes.

"""
ShopLedger errors.

- ValidationError: malformed or out-of-range input (caller's fault, 400).
- NotFoundError: a referenced item or record is absent (404).
- PersistenceError: the database failed underneath an operation (500).

Every failure is scoped to the one business operation that raised it.
"""


class LedgerError(Exception):
    """Base class for engine errors."""


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""


class NotFoundError(LedgerError, LookupError):
    """Raised when a referenced record does not exist."""


class PersistenceError(LedgerError):
    """Raised when the database rejects or fails an operation."""
