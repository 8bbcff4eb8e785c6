"""
Ledger error taxonomy.

Validation errors are raised before any network call and are recoverable by
correcting input. Remote errors are translated once, in the ledger service.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the ledger core raises."""

    code = "ledger_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def __str__(self) -> str:
        return self.message


class InvalidQuantity(LedgerError):
    code = "invalid_quantity"


class MissingJustification(LedgerError):
    code = "missing_justification"


class UnknownProduct(LedgerError):
    code = "unknown_product"


class PermissionDenied(LedgerError):
    code = "permission_denied"


class DuplicateRecord(LedgerError):
    code = "duplicate_record"


class EmptyBatch(LedgerError):
    code = "empty_batch"


class InvalidProduct(LedgerError):
    code = "invalid_product"


class RemoteError(LedgerError):
    """Anything the backend reported that has no better mapping."""

    code = "remote_error"


class InsufficientBalance(LedgerError):
    """
    Soft block: the requested outflow exceeds the current balance.

    This is a confirmation gate, not a rejection. It is passed to the
    caller's confirm callback, and raised only when none was given.
    """

    code = "insufficient_balance"

    def __init__(self, product_id: str, balance: float, requested: float) -> None:
        super().__init__(
            f"Balance {balance} is lower than requested {requested}",
            field="quantity",
        )
        self.product_id = product_id
        self.balance = balance
        self.requested = requested
