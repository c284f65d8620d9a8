"""Data models for patient billing accounts."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

LineStatus = Literal["Pending", "Paid", "Partially paid"]
PaymentMethodType = Literal["Card", "Check", "Cash", "Other"]
CardBrand = Literal["Visa", "Mastercard", "Discover", "American Express"]
ClaimStatus = Literal["Draft", "Sent", "Paid", "Partially paid", "Denied"]
AdjustmentType = Literal["Write-off", "Adjustment"]
PaymentMode = Literal["OutOfPocket", "Insurance", "Split"]

ZERO = Decimal("0.00")


@dataclass
class InvoiceLine:
    """One billable charge attributed to a service date."""

    id: str
    service_date: date
    description: str
    amount: Decimal
    added_at: datetime
    procedure_code: Optional[str] = None
    amount_with_insurance: Optional[Decimal] = None
    amount_out_of_pocket: Optional[Decimal] = None
    status: LineStatus = "Pending"


@dataclass
class Payment:
    """Money received against the account, from the patient or an insurer."""

    id: str
    date: date
    amount: Decimal
    amount_out_of_pocket: Optional[Decimal] = None
    amount_with_insurance: Optional[Decimal] = None
    payment_method_id: Optional[str] = None
    note: Optional[str] = None
    claim_id: Optional[str] = None


@dataclass
class PaymentMethod:
    """A stored payment method. Only the brand and last four digits are kept."""

    id: str
    type: PaymentMethodType
    added_at: datetime
    last_four: Optional[str] = None
    card_brand: Optional[CardBrand] = None
    name_on_card: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    nickname: Optional[str] = None


@dataclass
class ClaimPayment:
    """An insurer's adjudication (EOB) payment against a claim."""

    id: str
    claim_id: str
    payment_date: date
    paid_amount: Decimal
    allowed_amount: Optional[Decimal] = None
    adjustment_amount: Optional[Decimal] = None
    patient_responsibility: Optional[Decimal] = None


@dataclass
class Claim:
    """An insurance claim and the EOB payments recorded against it."""

    id: str
    date: date
    procedure_codes: List[str]
    description: str
    amount: Decimal
    status: ClaimStatus = "Draft"
    claim_payments: List[ClaimPayment] = field(default_factory=list)
    note: Optional[str] = None
    sent_at: Optional[datetime] = None
    denied_reason: Optional[str] = None

    @property
    def total_paid(self) -> Decimal:
        return sum((payment.paid_amount for payment in self.claim_payments), ZERO)

    @property
    def outstanding(self) -> Decimal:
        return max(ZERO, self.amount - self.total_paid)


@dataclass
class Adjustment:
    """A write-off or manual correction that reduces the amount owed."""

    id: str
    date: date
    amount: Decimal
    reason: str
    type: AdjustmentType = "Adjustment"


@dataclass
class FeeScheduleEntry:
    """Per-plan override of a procedure's standard fee."""

    plan_identifier: str
    procedure_code: str
    fee: Decimal
    id: str = ""
    added_at: Optional[datetime] = None


@dataclass
class AuditEntry:
    """One record in the billing audit trail."""

    id: str
    timestamp: datetime
    action: str
    account_id: str
    actor_id: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class Account:
    """A patient's billing account.

    ``balance_due`` is derived from the ledger lists on every read, so it can
    never drift from the recorded history.
    """

    account_id: str
    invoice_lines: List[InvoiceLine] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    claims: List[Claim] = field(default_factory=list)
    adjustments: List[Adjustment] = field(default_factory=list)
    payment_methods: List[PaymentMethod] = field(default_factory=list)
    plan_identifier: Optional[str] = None
    deductible_annual: Optional[Decimal] = None
    deductible_remaining: Optional[Decimal] = None
    created_at: Optional[datetime] = None

    @property
    def total_charges(self) -> Decimal:
        return sum((line.amount for line in self.invoice_lines), ZERO)

    @property
    def total_payments(self) -> Decimal:
        return sum((payment.amount for payment in self.payments), ZERO)

    @property
    def total_adjustments(self) -> Decimal:
        return sum((adjustment.amount for adjustment in self.adjustments), ZERO)

    @property
    def balance_due(self) -> Decimal:
        net = self.total_charges - self.total_payments - self.total_adjustments
        return max(ZERO, net)


__all__ = [
    "Account",
    "Adjustment",
    "AdjustmentType",
    "AuditEntry",
    "CardBrand",
    "Claim",
    "ClaimPayment",
    "ClaimStatus",
    "FeeScheduleEntry",
    "InvoiceLine",
    "LineStatus",
    "Payment",
    "PaymentMethod",
    "PaymentMethodType",
    "PaymentMode",
    "ZERO",
]
