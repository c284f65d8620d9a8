"""Decimal helpers shared by the ledger components."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from dental_ledger.billing.errors import LedgerValidationError

CENT = Decimal("0.01")


def quantize(value: Decimal | float | int | str) -> Decimal:
    """Convert ``value`` to a cent-precision Decimal."""
    if isinstance(value, bool):
        raise LedgerValidationError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise LedgerValidationError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise LedgerValidationError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def optional_quantize(value: Decimal | float | int | str | None) -> Decimal | None:
    return None if value is None else quantize(value)


__all__ = ["CENT", "quantize", "optional_quantize"]
