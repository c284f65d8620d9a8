"""JSON export and import of billing accounts and the fee schedule."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from dental_ledger.billing.engine import BillingEngine, check_consistency
from dental_ledger.billing.errors import LedgerConsistencyError, LedgerValidationError
from dental_ledger.billing.fees import FeeSchedule
from dental_ledger.models import Account, FeeScheduleEntry

LOGGER = logging.getLogger(__name__)

EXPORT_VERSION = 1

_ACCOUNT_ADAPTER = TypeAdapter(Account)
_ACCOUNTS_ADAPTER = TypeAdapter(List[Account])
_FEES_ADAPTER = TypeAdapter(List[FeeScheduleEntry])


def account_to_dict(account: Account) -> Dict[str, Any]:
    """Serialize one account, including its balance as of export time."""
    payload = _ACCOUNT_ADAPTER.dump_python(account, mode="json")
    payload["balance_due"] = str(account.balance_due)
    return payload


def export_accounts(engine: BillingEngine) -> Dict[str, Any]:
    """Return a JSON-ready snapshot of every account and fee schedule entry."""
    return {
        "version": EXPORT_VERSION,
        "exported_at": datetime.utcnow().isoformat(),
        "accounts": [account_to_dict(account) for account in engine.snapshot()],
        "fee_schedule": _FEES_ADAPTER.dump_python(engine.fee_schedule.list_entries(), mode="json"),
    }


def parse_accounts(payload: Dict[str, Any], *, strict: bool = False) -> List[Account]:
    """Validate exported account data.

    Recorded balances are checked against the ledger history. A mismatch is
    logged and the ledger wins, unless ``strict`` is set.
    """
    raw_accounts = payload.get("accounts", [])
    try:
        accounts = _ACCOUNTS_ADAPTER.validate_python(raw_accounts)
    except ValidationError as exc:
        raise LedgerValidationError(f"Invalid account export: {exc}") from exc
    for raw, account in zip(raw_accounts, accounts):
        recorded = raw.get("balance_due") if isinstance(raw, dict) else None
        if recorded is None:
            continue
        try:
            check_consistency(account, recorded)
        except LedgerConsistencyError as exc:
            if strict:
                raise
            LOGGER.warning("%s; using the ledger figure", exc)
    return accounts


def import_accounts(engine: BillingEngine, payload: Dict[str, Any], *, strict: bool = False) -> List[Account]:
    """Load accounts and fee schedule entries from an export into ``engine``.

    Everything is validated before the engine is touched; a rejected import
    leaves both the accounts and the fee schedule as they were.
    """
    accounts = parse_accounts(payload, strict=strict)
    staged: Optional[FeeSchedule] = None
    if "fee_schedule" in payload:
        try:
            entries = _FEES_ADAPTER.validate_python(payload["fee_schedule"])
        except ValidationError as exc:
            raise LedgerValidationError(f"Invalid fee schedule export: {exc}") from exc
        staged = FeeSchedule(entries)
    engine.adopt_accounts(accounts)
    if staged is not None:
        engine.fee_schedule.replace_all(staged.list_entries())
    LOGGER.info("Imported %d account(s)", len(accounts))
    return accounts


def load_export(path: Path) -> Dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def write_export(engine: BillingEngine, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(export_accounts(engine), indent=2), encoding="utf-8")
    return path


__all__ = [
    "account_to_dict",
    "export_accounts",
    "import_accounts",
    "load_export",
    "parse_accounts",
    "write_export",
]
