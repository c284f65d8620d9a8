"""Billing engine maintaining patient ledgers, claims and adjustments."""
from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
    get_args,
)
from uuid import uuid4

from dental_ledger.audit import AuditSink, InMemoryAuditLog
from dental_ledger.billing import cards, claims as claim_rules
from dental_ledger.billing.errors import (
    LedgerConsistencyError,
    LedgerValidationError,
    UnknownEntityError,
)
from dental_ledger.billing.fees import FeeSchedule, resolve_fee
from dental_ledger.billing.money import optional_quantize, quantize
from dental_ledger.catalog import ProcedureCatalog, get_catalog
from dental_ledger.models import (
    ZERO,
    Account,
    Adjustment,
    AdjustmentType,
    Claim,
    ClaimPayment,
    InvoiceLine,
    LineStatus,
    Payment,
    PaymentMethod,
    PaymentMethodType,
    PaymentMode,
)
from dental_ledger.redaction import contains_card_number, redact_text

LOGGER = logging.getLogger(__name__)

AmountLike = Union[Decimal, float, int, str]

_LINE_STATUSES = set(get_args(LineStatus))
_METHOD_TYPES = set(get_args(PaymentMethodType))
_ADJUSTMENT_TYPES = set(get_args(AdjustmentType))
_PAYMENT_MODES = set(get_args(PaymentMode))


@dataclass
class ChargeLine:
    """A charge to be added to an account.

    ``amount`` may be omitted, in which case the fee is resolved from the
    account's plan fee schedule or the procedure catalog.
    """

    description: Optional[str] = None
    procedure_code: Optional[str] = None
    amount: Optional[AmountLike] = None
    amount_with_insurance: Optional[AmountLike] = None
    amount_out_of_pocket: Optional[AmountLike] = None


def recompute_balance(account: Account) -> Decimal:
    """Recompute the amount owed from the account's full ledger history."""

    charges = ZERO
    for line in account.invoice_lines:
        charges += line.amount
    credits = ZERO
    for payment in account.payments:
        credits += payment.amount
    for adjustment in account.adjustments:
        credits += adjustment.amount
    return max(ZERO, charges - credits)


def check_consistency(account: Account, recorded_balance: AmountLike) -> Decimal:
    """Raise ``LedgerConsistencyError`` if ``recorded_balance`` disagrees with history."""

    expected = recompute_balance(account)
    recorded = quantize(recorded_balance)
    if recorded != expected:
        raise LedgerConsistencyError(
            f"Account '{account.account_id}' records balance {recorded} "
            f"but its ledger implies {expected}"
        )
    return expected


def group_lines_by_service_date(lines: Iterable[InvoiceLine]) -> Dict[date, List[InvoiceLine]]:
    """Group invoice lines by service date, oldest date first."""

    grouped: Dict[date, List[InvoiceLine]] = {}
    for line in sorted(lines, key=lambda item: (item.service_date, item.added_at)):
        grouped.setdefault(line.service_date, []).append(line)
    return grouped


class BillingEngine:
    """In-memory billing ledger used by the application API.

    Every mutating operation validates its input completely, then appends to
    the account's ledger under that account's lock and emits exactly one
    audit record. A rejected call leaves the account untouched.
    """

    def __init__(
        self,
        *,
        catalog: Optional[ProcedureCatalog] = None,
        fee_schedule: Optional[FeeSchedule] = None,
        audit_log: Optional[AuditSink] = None,
        seed_demo_data: bool = False,
    ) -> None:
        self.catalog = catalog if catalog is not None else get_catalog()
        self.fee_schedule = fee_schedule if fee_schedule is not None else FeeSchedule()
        self.audit_log: AuditSink = audit_log if audit_log is not None else InMemoryAuditLog()
        self._accounts: Dict[str, Account] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        if seed_demo_data:
            self._seed_demo_ledger()

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------
    def list_accounts(self) -> List[Account]:
        with self._registry_lock:
            return list(self._accounts.values())

    def get_account(self, account_id: str) -> Account:
        try:
            return self._accounts[account_id]
        except KeyError as exc:
            raise UnknownEntityError(f"Unknown account '{account_id}'") from exc

    def open_account(
        self,
        account_id: str,
        *,
        plan_identifier: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Account:
        account_id = (account_id or "").strip()
        if not account_id:
            raise LedgerValidationError("Account id is required")
        with self._registry_lock:
            if account_id in self._accounts:
                raise LedgerValidationError(f"Account '{account_id}' already exists")
            account = Account(
                account_id=account_id,
                plan_identifier=(plan_identifier or "").strip() or None,
                created_at=datetime.utcnow(),
            )
            self._accounts[account_id] = account
            self._locks[account_id] = threading.RLock()
        self._audit("account.open", account_id, actor_id, account.plan_identifier)
        return account

    def close_account(self, account_id: str, *, actor_id: Optional[str] = None) -> None:
        with self._registry_lock:
            if account_id not in self._accounts:
                raise UnknownEntityError(f"Unknown account '{account_id}'")
            del self._accounts[account_id]
            del self._locks[account_id]
        self._audit("account.close", account_id, actor_id)

    def adopt_account(self, account: Account, *, actor_id: Optional[str] = None) -> Account:
        """Register an account restored from an export."""
        return self.adopt_accounts([account], actor_id=actor_id)[0]

    def adopt_accounts(
        self, accounts: Sequence[Account], *, actor_id: Optional[str] = None
    ) -> List[Account]:
        """Register a batch of restored accounts. Any id clash rejects the whole batch."""
        seen = set()
        for account in accounts:
            if account.account_id in seen:
                raise LedgerValidationError(f"Account '{account.account_id}' appears twice in the import")
            seen.add(account.account_id)
        with self._registry_lock:
            clashes = sorted(seen.intersection(self._accounts))
            if clashes:
                raise LedgerValidationError(f"Account '{clashes[0]}' already exists")
            for account in accounts:
                self._accounts[account.account_id] = account
                self._locks[account.account_id] = threading.RLock()
        for account in accounts:
            self._audit("account.import", account.account_id, actor_id, f"balance={account.balance_due}")
        return list(accounts)

    def set_plan(
        self,
        account_id: str,
        plan_identifier: Optional[str],
        *,
        actor_id: Optional[str] = None,
    ) -> Account:
        with self._locked(account_id) as account:
            account.plan_identifier = (plan_identifier or "").strip() or None
        self._audit("account.plan", account_id, actor_id, account.plan_identifier)
        return account

    def set_deductible(
        self,
        account_id: str,
        *,
        annual: AmountLike,
        remaining: AmountLike,
        actor_id: Optional[str] = None,
    ) -> Account:
        annual_amount = quantize(annual)
        remaining_amount = quantize(remaining)
        if annual_amount < ZERO or remaining_amount < ZERO:
            raise LedgerValidationError("Deductible amounts cannot be negative")
        with self._locked(account_id) as account:
            account.deductible_annual = annual_amount
            account.deductible_remaining = remaining_amount
        self._audit(
            "account.deductible",
            account_id,
            actor_id,
            f"annual={annual_amount} remaining={remaining_amount}",
        )
        return account

    def snapshot(self) -> List[Account]:
        """Return deep copies of every account, each taken under its own lock."""
        with self._registry_lock:
            pairs = [(account, self._locks[account_id]) for account_id, account in self._accounts.items()]
        copies: List[Account] = []
        for account, lock in pairs:
            with lock:
                copies.append(copy.deepcopy(account))
        return copies

    # ------------------------------------------------------------------
    # Invoice lines
    # ------------------------------------------------------------------
    def add_lines(
        self,
        account_id: str,
        *,
        service_date: date,
        lines: Sequence[Union[ChargeLine, Mapping[str, Any]]],
        actor_id: Optional[str] = None,
    ) -> List[InvoiceLine]:
        if not lines:
            raise LedgerValidationError("At least one invoice line is required")
        service_day = _as_date(service_date)
        charges = [_coerce_charge(item) for item in lines]
        with self._locked(account_id) as account:
            now = datetime.utcnow()
            created = [self._build_line(account, charge, service_day, now) for charge in charges]
            account.invoice_lines.extend(created)
        total = sum((line.amount for line in created), ZERO)
        self._audit(
            "invoice.add_lines",
            account_id,
            actor_id,
            f"{len(created)} line(s) dated {service_day.isoformat()} totalling {total}",
        )
        return created

    def set_line_status(
        self,
        account_id: str,
        line_id: str,
        status: LineStatus,
        *,
        actor_id: Optional[str] = None,
    ) -> InvoiceLine:
        if status not in _LINE_STATUSES:
            raise LedgerValidationError(f"Unknown invoice line status '{status}'")
        with self._locked(account_id) as account:
            line = _find(account.invoice_lines, line_id, "invoice line")
            line.status = status
        self._audit("invoice.status", account_id, actor_id, f"{line_id} -> {status}")
        return line

    def lines_by_service_date(self, account_id: str) -> Dict[date, List[InvoiceLine]]:
        with self._locked(account_id) as account:
            return group_lines_by_service_date(list(account.invoice_lines))

    def _build_line(
        self, account: Account, charge: ChargeLine, service_day: date, now: datetime
    ) -> InvoiceLine:
        code = (charge.procedure_code or "").strip().upper() or None
        amount = resolve_fee(
            code,
            account.plan_identifier,
            charge.amount,
            schedule=self.fee_schedule,
            catalog=self.catalog,
        )
        if amount < ZERO:
            raise LedgerValidationError("Invoice line amount cannot be negative")
        with_insurance = optional_quantize(charge.amount_with_insurance)
        out_of_pocket = optional_quantize(charge.amount_out_of_pocket)
        for portion in (with_insurance, out_of_pocket):
            if portion is not None and portion < ZERO:
                raise LedgerValidationError("Invoice line portions cannot be negative")
        description = (charge.description or "").strip()
        if not description and code:
            description = self.catalog.lookup_description(code) or ""
        return InvoiceLine(
            id=str(uuid4()),
            service_date=service_day,
            description=description or "Procedure",
            amount=amount,
            added_at=now,
            procedure_code=code,
            amount_with_insurance=with_insurance,
            amount_out_of_pocket=out_of_pocket,
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    def record_payment(
        self,
        account_id: str,
        *,
        mode: PaymentMode,
        amount: Optional[AmountLike] = None,
        out_of_pocket: Optional[AmountLike] = None,
        with_insurance: Optional[AmountLike] = None,
        method_id: Optional[str] = None,
        note: Optional[str] = None,
        payment_date: Optional[date] = None,
        actor_id: Optional[str] = None,
    ) -> Payment:
        patient_part, insurance_part = _split_amounts(mode, amount, out_of_pocket, with_insurance)
        total = patient_part + insurance_part
        with self._locked(account_id) as account:
            if method_id is not None:
                _find(account.payment_methods, method_id, "payment method")
            payment = Payment(
                id=str(uuid4()),
                date=_as_date(payment_date) if payment_date else date.today(),
                amount=total,
                amount_out_of_pocket=patient_part if mode != "Insurance" else None,
                amount_with_insurance=insurance_part if mode != "OutOfPocket" else None,
                payment_method_id=method_id,
                note=_clean_note(note),
            )
            account.payments.append(payment)
        self._audit("payment.record", account_id, actor_id, f"{mode} {total}")
        return payment

    def add_payment_method(
        self,
        account_id: str,
        *,
        type: PaymentMethodType,
        card_number: Optional[str] = None,
        last_four: Optional[str] = None,
        name_on_card: Optional[str] = None,
        expiry_month: Optional[int] = None,
        expiry_year: Optional[int] = None,
        nickname: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> PaymentMethod:
        if type not in _METHOD_TYPES:
            raise LedgerValidationError(f"Unknown payment method type '{type}'")
        if expiry_month is not None and not 1 <= int(expiry_month) <= 12:
            raise LedgerValidationError("Expiry month must be between 1 and 12")
        if expiry_year is not None and int(expiry_year) < 1000:
            raise LedgerValidationError("Expiry year must have four digits")
        if contains_card_number(nickname or "") or contains_card_number(name_on_card or ""):
            raise LedgerValidationError("Card numbers may not be stored in payment method labels")
        brand = None
        if card_number:
            brand = cards.identify_brand(card_number)
            last_four = cards.last_four(card_number)
        elif last_four:
            last_four = cards.digits_only(last_four)
            if len(last_four) > 4:
                raise LedgerValidationError("Only the last four digits may be stored")
        method = PaymentMethod(
            id=str(uuid4()),
            type=type,
            added_at=datetime.utcnow(),
            last_four=last_four or None,
            card_brand=brand,
            name_on_card=(name_on_card or "").strip() or None,
            expiry_month=int(expiry_month) if expiry_month is not None else None,
            expiry_year=int(expiry_year) if expiry_year is not None else None,
            nickname=(nickname or "").strip() or None,
        )
        with self._locked(account_id) as account:
            account.payment_methods.append(method)
        self._audit(
            "payment_method.add",
            account_id,
            actor_id,
            f"{type} {brand or ''} {method.last_four or ''}".strip(),
        )
        return method

    def remove_payment_method(
        self, account_id: str, method_id: str, *, actor_id: Optional[str] = None
    ) -> None:
        with self._locked(account_id) as account:
            _find(account.payment_methods, method_id, "payment method")
            account.payment_methods = [m for m in account.payment_methods if m.id != method_id]
        self._audit("payment_method.remove", account_id, actor_id, method_id)

    # ------------------------------------------------------------------
    # Insurance claims
    # ------------------------------------------------------------------
    def create_draft_claim(
        self,
        account_id: str,
        *,
        amount: AmountLike,
        procedure_codes: Iterable[str] = (),
        description: Optional[str] = None,
        claim_date: Optional[date] = None,
        note: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Claim:
        claim = self._build_claim(amount, procedure_codes, description, claim_date, note)
        with self._locked(account_id) as account:
            account.claims.append(claim)
        self._audit("claim.draft", account_id, actor_id, f"{claim.id} {claim.amount}")
        return claim

    def submit_claim(
        self,
        account_id: str,
        *,
        amount: AmountLike,
        procedure_codes: Iterable[str] = (),
        description: Optional[str] = None,
        claim_date: Optional[date] = None,
        note: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Claim:
        """Create a claim that is sent to the payer immediately."""
        claim = self._build_claim(amount, procedure_codes, description, claim_date, note)
        claim.status = "Sent"
        claim.sent_at = datetime.utcnow()
        with self._locked(account_id) as account:
            account.claims.append(claim)
        self._audit("claim.submit", account_id, actor_id, f"{claim.id} {claim.amount}")
        return claim

    def send_claim(self, account_id: str, claim_id: str, *, actor_id: Optional[str] = None) -> Claim:
        with self._locked(account_id) as account:
            claim = _find(account.claims, claim_id, "claim")
            claim_rules.ensure_transition(claim, "Sent")
            claim.status = "Sent"
            claim.sent_at = datetime.utcnow()
        self._audit("claim.send", account_id, actor_id, claim_id)
        return claim

    def mark_claim_denied(
        self,
        account_id: str,
        claim_id: str,
        *,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Claim:
        """Deny a sent claim. The account balance is not touched."""
        with self._locked(account_id) as account:
            claim = _find(account.claims, claim_id, "claim")
            claim_rules.ensure_transition(claim, "Denied")
            claim.status = "Denied"
            claim.denied_reason = (reason or "").strip() or None
        self._audit("claim.deny", account_id, actor_id, f"{claim_id} {claim.denied_reason or ''}".strip())
        return claim

    def record_claim_payment(
        self,
        account_id: str,
        claim_id: str,
        *,
        paid_amount: AmountLike,
        payment_date: Optional[date] = None,
        allowed_amount: Optional[AmountLike] = None,
        adjustment_amount: Optional[AmountLike] = None,
        patient_responsibility: Optional[AmountLike] = None,
        actor_id: Optional[str] = None,
    ) -> ClaimPayment:
        """Record an EOB payment and apply it to the account as an insurance payment."""
        paid = quantize(paid_amount)
        if paid < ZERO:
            raise LedgerValidationError("Claim payment amount cannot be negative")
        allowed = optional_quantize(allowed_amount)
        adjustment = optional_quantize(adjustment_amount)
        responsibility = optional_quantize(patient_responsibility)
        for value in (allowed, adjustment, responsibility):
            if value is not None and value < ZERO:
                raise LedgerValidationError("EOB amounts cannot be negative")
        paid_on = _as_date(payment_date) if payment_date else date.today()
        with self._locked(account_id) as account:
            claim = _find(account.claims, claim_id, "claim")
            claim_rules.ensure_accepts_payment(claim)
            eob = ClaimPayment(
                id=str(uuid4()),
                claim_id=claim.id,
                payment_date=paid_on,
                paid_amount=paid,
                allowed_amount=allowed,
                adjustment_amount=adjustment,
                patient_responsibility=responsibility,
            )
            claim.claim_payments.append(eob)
            derived = claim_rules.derive_status(claim)
            if claim_rules.progress_rank(derived) >= claim_rules.progress_rank(claim.status):
                claim.status = derived
            account.payments.append(
                Payment(
                    id=str(uuid4()),
                    date=paid_on,
                    amount=paid,
                    amount_out_of_pocket=ZERO,
                    amount_with_insurance=paid,
                    note=f"Insurance payment for claim {claim.id}",
                    claim_id=claim.id,
                )
            )
        self._audit("claim.payment", account_id, actor_id, f"{claim_id} paid {paid} -> {claim.status}")
        return eob

    def _build_claim(
        self,
        amount: AmountLike,
        procedure_codes: Iterable[str],
        description: Optional[str],
        claim_date: Optional[date],
        note: Optional[str],
    ) -> Claim:
        claim_amount = quantize(amount)
        if claim_amount < ZERO:
            raise LedgerValidationError("Claim amount cannot be negative")
        codes = [code.strip().upper() for code in procedure_codes if code and code.strip()]
        return Claim(
            id=str(uuid4()),
            date=_as_date(claim_date) if claim_date else date.today(),
            procedure_codes=codes,
            description=(description or "").strip() or "Insurance claim",
            amount=claim_amount,
            note=_clean_note(note),
        )

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------
    def apply_adjustment(
        self,
        account_id: str,
        *,
        type: AdjustmentType,
        amount: AmountLike,
        reason: str,
        adjustment_date: Optional[date] = None,
        actor_id: Optional[str] = None,
    ) -> Adjustment:
        if type not in _ADJUSTMENT_TYPES:
            raise LedgerValidationError(f"Unknown adjustment type '{type}'")
        value = quantize(amount)
        if value <= ZERO:
            raise LedgerValidationError("Adjustment amount must be positive")
        reason = (reason or "").strip()
        if not reason:
            raise LedgerValidationError("Adjustment reason is required")
        adjustment = Adjustment(
            id=str(uuid4()),
            date=_as_date(adjustment_date) if adjustment_date else date.today(),
            amount=value,
            reason=redact_text(reason),
            type=type,
        )
        with self._locked(account_id) as account:
            account.adjustments.append(adjustment)
        self._audit("adjustment.apply", account_id, actor_id, f"{type} {value}: {adjustment.reason}")
        return adjustment

    # ------------------------------------------------------------------
    # Fee resolution
    # ------------------------------------------------------------------
    def resolve_fee(
        self,
        procedure_code: Optional[str],
        plan_identifier: Optional[str] = None,
        manual_override: Optional[AmountLike] = None,
    ) -> Decimal:
        return resolve_fee(
            procedure_code,
            plan_identifier,
            manual_override,
            schedule=self.fee_schedule,
            catalog=self.catalog,
        )

    # ------------------------------------------------------------------
    # Reporting helpers
    # ------------------------------------------------------------------
    def dashboard_metrics(self) -> Dict[str, Decimal]:
        accounts = self.snapshot()
        outstanding = sum((account.balance_due for account in accounts), ZERO)
        expected_insurance = ZERO
        open_claims = 0
        for account in accounts:
            for claim in account.claims:
                if claim.status in ("Sent", "Partially paid"):
                    open_claims += 1
                    expected_insurance += claim.outstanding
        return {
            "total_outstanding": outstanding,
            "accounts_with_balance": Decimal(sum(1 for a in accounts if a.balance_due > ZERO)),
            "open_claims": Decimal(open_claims),
            "expected_insurance": expected_insurance,
            "total_collected": sum((a.total_payments for a in accounts), ZERO),
            "total_written_off": sum((a.total_adjustments for a in accounts), ZERO),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _locked(self, account_id: str) -> Iterator[Account]:
        with self._registry_lock:
            account = self._accounts.get(account_id)
            lock = self._locks.get(account_id)
        if account is None or lock is None:
            raise UnknownEntityError(f"Unknown account '{account_id}'")
        with lock:
            yield account

    def _audit(
        self,
        action: str,
        account_id: str,
        actor_id: Optional[str],
        detail: Optional[str] = None,
    ) -> None:
        self.audit_log.emit(action=action, account_id=account_id, actor_id=actor_id, detail=detail)

    def _seed_demo_ledger(self) -> None:
        """Populate the ledger with sample patient accounts for the demo UI."""

        today = date.today()
        self.fee_schedule.add_entry(plan_identifier="DELTA-PPO", procedure_code="D1110", fee="98.00")

        self.open_account("demo-ava-chen", plan_identifier="DELTA-PPO")
        line = self.add_lines(
            "demo-ava-chen",
            service_date=today - timedelta(days=30),
            lines=[ChargeLine(procedure_code="D1110", amount_with_insurance="73.00", amount_out_of_pocket="25.00")],
        )[0]
        self.record_payment("demo-ava-chen", mode="Split", out_of_pocket="25.00", with_insurance="73.00", note="Prophylaxis")
        self.set_line_status("demo-ava-chen", line.id, "Paid")

        self.open_account("demo-marcus-reed", plan_identifier="CIGNA-DPPO")
        self.add_lines(
            "demo-marcus-reed",
            service_date=today - timedelta(days=7),
            lines=[ChargeLine(procedure_code="D0150")],
        )
        self.record_payment("demo-marcus-reed", mode="Split", out_of_pocket="50.00", with_insurance="100.00")
        self.add_lines(
            "demo-marcus-reed",
            service_date=today,
            lines=[ChargeLine(procedure_code="D2392", amount_with_insurance="140.00", amount_out_of_pocket="85.00")],
        )
        self.add_payment_method("demo-marcus-reed", type="Card", card_number="4111 1111 1111 1111", nickname="Visa on file")

        self.open_account("demo-priya-shah", plan_identifier="METLIFE-PDP")
        self.add_lines(
            "demo-priya-shah",
            service_date=today - timedelta(days=45),
            lines=[ChargeLine(procedure_code="D3330", description="Endodontic therapy - molar (#3)")],
        )
        claim = self.submit_claim("demo-priya-shah", amount="1295.00", procedure_codes=["D3330"], description="Root canal #3")
        self.record_claim_payment("demo-priya-shah", claim.id, paid_amount="845.00", allowed_amount="1295.00")

        self.open_account("demo-leo-martin")
        self.add_lines(
            "demo-leo-martin",
            service_date=today - timedelta(days=120),
            lines=[ChargeLine(procedure_code="D7240", description="Extraction - erupted tooth (#19)")],
        )
        self.apply_adjustment("demo-leo-martin", type="Write-off", amount="20.00", reason="Courtesy discount")


def _find(items: Iterable[Any], item_id: str, label: str) -> Any:
    for item in items:
        if item.id == item_id:
            return item
    raise UnknownEntityError(f"Unknown {label} '{item_id}'")


def _coerce_charge(item: Union[ChargeLine, Mapping[str, Any]]) -> ChargeLine:
    if isinstance(item, ChargeLine):
        return item
    if isinstance(item, Mapping):
        try:
            return ChargeLine(**item)
        except TypeError as exc:
            raise LedgerValidationError(f"Invalid invoice line: {exc}") from exc
    raise LedgerValidationError(f"Invalid invoice line: {item!r}")


def _as_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise LedgerValidationError(f"Invalid date: {value!r}") from exc


def _clean_note(note: Optional[str]) -> Optional[str]:
    note = (note or "").strip()
    return redact_text(note) if note else None


def _split_amounts(
    mode: str,
    amount: Optional[AmountLike],
    out_of_pocket: Optional[AmountLike],
    with_insurance: Optional[AmountLike],
) -> tuple[Decimal, Decimal]:
    """Validate payment amounts for ``mode`` and return (patient, insurance)."""
    if mode not in _PAYMENT_MODES:
        raise LedgerValidationError(f"Unknown payment mode '{mode}'")
    if mode == "OutOfPocket":
        value = amount if amount is not None else out_of_pocket
        if value is None:
            raise LedgerValidationError("Payment amount is required")
        patient = quantize(value)
        if patient <= ZERO:
            raise LedgerValidationError("Out-of-pocket payment must be positive")
        return patient, ZERO
    if mode == "Insurance":
        value = amount if amount is not None else with_insurance
        if value is None:
            raise LedgerValidationError("Payment amount is required")
        insurance = quantize(value)
        if insurance < ZERO:
            raise LedgerValidationError("Insurance payment cannot be negative")
        return ZERO, insurance
    patient = quantize(out_of_pocket if out_of_pocket is not None else 0)
    insurance = quantize(with_insurance if with_insurance is not None else 0)
    if patient < ZERO or insurance < ZERO:
        raise LedgerValidationError("Split payment portions cannot be negative")
    if patient == ZERO and insurance == ZERO:
        raise LedgerValidationError("Split payment requires a positive portion")
    return patient, insurance


__all__ = [
    "BillingEngine",
    "ChargeLine",
    "check_consistency",
    "group_lines_by_service_date",
    "recompute_balance",
]
