"""Insurance claim lifecycle rules.

Draft and Denied are set by explicit caller actions. Sent is set when a claim
is submitted. Partially paid and Paid are only ever derived from the EOB
payments recorded against the claim.
"""
from __future__ import annotations

from typing import Dict, FrozenSet

from dental_ledger.billing.errors import LedgerValidationError
from dental_ledger.models import ZERO, Claim, ClaimStatus

ACCEPTS_PAYMENTS: FrozenSet[str] = frozenset({"Sent", "Partially paid", "Paid"})

_MANUAL_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "Sent": frozenset({"Draft"}),
    "Denied": frozenset({"Sent"}),
}

_PROGRESS = {"Draft": 0, "Sent": 1, "Partially paid": 2, "Paid": 3, "Denied": 3}


def derive_status(claim: Claim) -> ClaimStatus:
    """Return the status implied by the claim's recorded payments."""
    total_paid = claim.total_paid
    if total_paid >= claim.amount and claim.claim_payments:
        return "Paid"
    if total_paid > ZERO:
        return "Partially paid"
    return claim.status


def ensure_transition(claim: Claim, target: ClaimStatus) -> None:
    """Raise if ``target`` cannot be set directly from the claim's status."""
    allowed = _MANUAL_TRANSITIONS.get(target)
    if allowed is None:
        raise LedgerValidationError(f"Claim status '{target}' cannot be set directly")
    if claim.status not in allowed:
        raise LedgerValidationError(
            f"Claim '{claim.id}' is {claim.status}; cannot move to {target}"
        )


def ensure_accepts_payment(claim: Claim) -> None:
    if claim.status not in ACCEPTS_PAYMENTS:
        raise LedgerValidationError(
            f"Claim '{claim.id}' is {claim.status} and cannot accept EOB payments"
        )


def progress_rank(status: ClaimStatus) -> int:
    """Ordinal used to check that adjudication never moves a claim backwards."""
    return _PROGRESS[status]


__all__ = [
    "ACCEPTS_PAYMENTS",
    "derive_status",
    "ensure_accepts_payment",
    "ensure_transition",
    "progress_rank",
]
