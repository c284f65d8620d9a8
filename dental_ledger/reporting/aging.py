"""Accounts receivable aging over unpaid invoice lines."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from dental_ledger.models import ZERO, Account, InvoiceLine

AGING_BUCKETS: Tuple[str, ...] = ("0-30", "31-60", "61-90", "90+")


@dataclass
class AgingRow:
    """Per-account breakdown of unpaid charges."""

    account_id: str
    buckets: Dict[str, Decimal] = field(default_factory=lambda: _empty_buckets())
    line_count: int = 0
    balance_due: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return sum(self.buckets.values(), ZERO)


def _empty_buckets() -> Dict[str, Decimal]:
    return {name: ZERO for name in AGING_BUCKETS}


def _normalize(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def age_in_days(service_date: date | datetime, as_of: date | datetime) -> int:
    """Whole days between the service date and ``as_of``, ignoring time of day."""
    return (_normalize(as_of) - _normalize(service_date)).days


def bucket_for(age_days: int) -> str:
    if age_days <= 30:
        return "0-30"
    if age_days <= 60:
        return "31-60"
    if age_days <= 90:
        return "61-90"
    return "90+"


def _unpaid(lines: Iterable[InvoiceLine]) -> Iterable[InvoiceLine]:
    return (line for line in lines if line.status != "Paid")


def build_aging_report(accounts: Iterable[Account], as_of: date | datetime) -> Dict[str, Decimal]:
    """Sum unpaid invoice line amounts into age buckets.

    Every line not marked Paid contributes its full amount. Lines with a
    future service date have a negative age and land in ``0-30``. Nothing on
    the accounts is modified.
    """
    buckets = _empty_buckets()
    for account in accounts:
        for line in _unpaid(account.invoice_lines):
            buckets[bucket_for(age_in_days(line.service_date, as_of))] += line.amount
    return buckets


def build_aging_detail(accounts: Iterable[Account], as_of: date | datetime) -> List[AgingRow]:
    """Per-account aging rows, largest total first. Accounts with nothing unpaid are skipped."""
    rows: List[AgingRow] = []
    for account in accounts:
        row = AgingRow(account_id=account.account_id, balance_due=account.balance_due)
        for line in _unpaid(account.invoice_lines):
            row.buckets[bucket_for(age_in_days(line.service_date, as_of))] += line.amount
            row.line_count += 1
        if row.line_count:
            rows.append(row)
    rows.sort(key=lambda item: (-item.total, item.account_id))
    return rows


__all__ = [
    "AGING_BUCKETS",
    "AgingRow",
    "age_in_days",
    "bucket_for",
    "build_aging_detail",
    "build_aging_report",
]
