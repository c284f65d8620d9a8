"""Fee schedule storage and procedure fee resolution."""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import uuid4

from dental_ledger.billing.errors import LedgerValidationError, UnknownEntityError
from dental_ledger.billing.money import quantize
from dental_ledger.catalog import ProcedureCatalog
from dental_ledger.models import ZERO, FeeScheduleEntry

LOGGER = logging.getLogger(__name__)


class FeeSchedule:
    """Per-plan fee overrides, maintained by clinic administrators."""

    def __init__(self, entries: Optional[Iterable[FeeScheduleEntry]] = None) -> None:
        self._lock = threading.Lock()
        self._entries: List[FeeScheduleEntry] = []
        if entries:
            self.replace_all(entries)

    def list_entries(self) -> List[FeeScheduleEntry]:
        with self._lock:
            return list(self._entries)

    def fee_for(self, plan_identifier: Optional[str], procedure_code: str) -> Optional[Decimal]:
        """Return the first matching fee for the plan/code pair."""
        if not plan_identifier:
            return None
        with self._lock:
            for entry in self._entries:
                if entry.plan_identifier == plan_identifier and entry.procedure_code == procedure_code:
                    return entry.fee
        return None

    def add_entry(self, *, plan_identifier: str, procedure_code: str, fee: Decimal | float | str) -> FeeScheduleEntry:
        entry = self._build_entry(plan_identifier, procedure_code, fee)
        with self._lock:
            self._entries.append(entry)
        LOGGER.info(
            "Fee schedule entry added plan=%s code=%s fee=%s",
            entry.plan_identifier,
            entry.procedure_code,
            entry.fee,
        )
        return entry

    def update_entry(
        self,
        entry_id: str,
        *,
        plan_identifier: Optional[str] = None,
        procedure_code: Optional[str] = None,
        fee: Decimal | float | str | None = None,
    ) -> FeeScheduleEntry:
        with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.id != entry_id:
                    continue
                updated = self._build_entry(
                    plan_identifier if plan_identifier is not None else entry.plan_identifier,
                    procedure_code if procedure_code is not None else entry.procedure_code,
                    fee if fee is not None else entry.fee,
                )
                updated.id = entry.id
                updated.added_at = entry.added_at
                self._entries[index] = updated
                return updated
        raise UnknownEntityError(f"Unknown fee schedule entry '{entry_id}'")

    def delete_entry(self, entry_id: str) -> None:
        with self._lock:
            remaining = [entry for entry in self._entries if entry.id != entry_id]
            if len(remaining) == len(self._entries):
                raise UnknownEntityError(f"Unknown fee schedule entry '{entry_id}'")
            self._entries = remaining

    def replace_all(self, entries: Iterable[FeeScheduleEntry]) -> None:
        """Replace every entry, e.g. when restoring from an export."""
        normalized = []
        for entry in entries:
            built = self._build_entry(entry.plan_identifier, entry.procedure_code, entry.fee)
            built.id = entry.id or built.id
            built.added_at = entry.added_at or built.added_at
            normalized.append(built)
        with self._lock:
            self._entries = normalized

    @staticmethod
    def _build_entry(plan_identifier: str, procedure_code: str, fee: Decimal | float | str) -> FeeScheduleEntry:
        plan = (plan_identifier or "").strip()
        code = (procedure_code or "").strip().upper()
        if not plan:
            raise LedgerValidationError("Fee schedule entry requires a plan identifier")
        if not code:
            raise LedgerValidationError("Fee schedule entry requires a procedure code")
        amount = quantize(fee)
        if amount < ZERO:
            raise LedgerValidationError("Fee schedule fee cannot be negative")
        return FeeScheduleEntry(
            plan_identifier=plan,
            procedure_code=code,
            fee=amount,
            id=str(uuid4()),
            added_at=datetime.utcnow(),
        )


def resolve_fee(
    procedure_code: Optional[str],
    plan_identifier: Optional[str],
    manual_override: Decimal | float | str | None = None,
    *,
    schedule: FeeSchedule,
    catalog: ProcedureCatalog,
) -> Decimal:
    """Return the charge amount for a procedure.

    Resolution order: the caller's manual override, the plan's fee schedule
    entry, the catalog default fee, and finally zero. Unknown codes are not
    an error; zero-fee lines are valid.
    """
    if manual_override is not None:
        return quantize(manual_override)
    if not procedure_code:
        return ZERO
    code = procedure_code.strip().upper()
    scheduled = schedule.fee_for(plan_identifier, code)
    if scheduled is not None:
        return scheduled
    default = catalog.lookup_default_fee(code)
    if default is not None:
        return quantize(default)
    LOGGER.debug("No fee found for procedure %s; using zero", code)
    return ZERO


__all__ = ["FeeSchedule", "resolve_fee"]
