"""Core billing ledger domain logic."""

from .cards import identify_brand, last_four
from .engine import (
    BillingEngine,
    ChargeLine,
    check_consistency,
    group_lines_by_service_date,
    recompute_balance,
)
from .errors import (
    LedgerConsistencyError,
    LedgerError,
    LedgerValidationError,
    UnknownEntityError,
)
from .fees import FeeSchedule, resolve_fee

__all__ = [
    "BillingEngine",
    "ChargeLine",
    "FeeSchedule",
    "LedgerConsistencyError",
    "LedgerError",
    "LedgerValidationError",
    "UnknownEntityError",
    "check_consistency",
    "group_lines_by_service_date",
    "identify_brand",
    "last_four",
    "recompute_balance",
    "resolve_fee",
]
