"""Exceptions raised by the billing ledger."""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for billing ledger failures."""

    code = "ledger_error"


class LedgerValidationError(LedgerError, ValueError):
    """A caller supplied values the ledger cannot accept. Nothing was changed."""

    code = "validation_error"


class UnknownEntityError(LedgerError, KeyError):
    """An account, claim, line, payment method or fee entry does not exist."""

    code = "not_found"

    def __str__(self) -> str:
        # KeyError.__str__ would wrap the message in quotes.
        return str(self.args[0]) if self.args else ""


class LedgerConsistencyError(LedgerError, RuntimeError):
    """A recorded balance disagrees with the ledger history."""

    code = "consistency_error"


__all__ = [
    "LedgerError",
    "LedgerValidationError",
    "UnknownEntityError",
    "LedgerConsistencyError",
]
