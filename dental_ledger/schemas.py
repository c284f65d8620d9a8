"""Pydantic schemas for the billing ledger API."""
from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dental_ledger.models import (
    AdjustmentType,
    ClaimStatus,
    LineStatus,
    PaymentMethodType,
    PaymentMode,
)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ErrorResponse(BaseModel):
    detail: str
    code: str


class AccountCreate(BaseModel):
    account_id: str = Field(..., min_length=1, description="Patient identifier")
    plan_identifier: Optional[str] = None


class PlanUpdate(BaseModel):
    plan_identifier: Optional[str] = None


class DeductibleUpdate(BaseModel):
    annual: Decimal = Field(..., ge=0)
    remaining: Decimal = Field(..., ge=0)


class InvoiceLineModel(ORMModel):
    id: str
    service_date: dt.date
    procedure_code: Optional[str] = None
    description: str
    amount: Decimal
    amount_with_insurance: Optional[Decimal] = None
    amount_out_of_pocket: Optional[Decimal] = None
    status: LineStatus
    added_at: dt.datetime


class ChargeLineModel(BaseModel):
    procedure_code: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    amount_with_insurance: Optional[Decimal] = Field(default=None, ge=0)
    amount_out_of_pocket: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("amount", "amount_with_insurance", "amount_out_of_pocket", mode="before")
    @classmethod
    def _normalize_amount(cls, value: Decimal | float | int | str | None) -> Decimal | None:
        return None if value is None else Decimal(str(value))


class InvoiceLinesCreate(BaseModel):
    service_date: dt.date
    lines: List[ChargeLineModel] = Field(..., min_length=1)


class LineStatusUpdate(BaseModel):
    status: LineStatus


class ServiceDateGroup(BaseModel):
    service_date: dt.date
    lines: List[InvoiceLineModel]
    total: Decimal


class PaymentModel(ORMModel):
    id: str
    date: dt.date
    amount: Decimal
    amount_out_of_pocket: Optional[Decimal] = None
    amount_with_insurance: Optional[Decimal] = None
    payment_method_id: Optional[str] = None
    note: Optional[str] = None
    claim_id: Optional[str] = None


class PaymentCreate(BaseModel):
    mode: PaymentMode
    amount: Optional[Decimal] = None
    out_of_pocket: Optional[Decimal] = None
    with_insurance: Optional[Decimal] = None
    method_id: Optional[str] = None
    note: Optional[str] = None
    payment_date: Optional[dt.date] = None


class PaymentMethodModel(ORMModel):
    id: str
    type: PaymentMethodType
    last_four: Optional[str] = None
    card_brand: Optional[str] = None
    name_on_card: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    nickname: Optional[str] = None
    added_at: dt.datetime


class PaymentMethodCreate(BaseModel):
    type: PaymentMethodType
    card_number: Optional[str] = Field(default=None, description="Used to derive brand and last four; never stored")
    last_four: Optional[str] = Field(default=None, max_length=4)
    name_on_card: Optional[str] = None
    expiry_month: Optional[int] = Field(default=None, ge=1, le=12)
    expiry_year: Optional[int] = None
    nickname: Optional[str] = None


class ClaimPaymentModel(ORMModel):
    id: str
    claim_id: str
    payment_date: dt.date
    paid_amount: Decimal
    allowed_amount: Optional[Decimal] = None
    adjustment_amount: Optional[Decimal] = None
    patient_responsibility: Optional[Decimal] = None


class ClaimModel(ORMModel):
    id: str
    date: dt.date
    procedure_codes: List[str]
    description: str
    amount: Decimal
    status: ClaimStatus
    claim_payments: List[ClaimPaymentModel]
    note: Optional[str] = None
    sent_at: Optional[dt.datetime] = None
    denied_reason: Optional[str] = None


class ClaimCreate(BaseModel):
    amount: Decimal = Field(..., ge=0)
    procedure_codes: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    claim_date: Optional[dt.date] = None
    note: Optional[str] = None
    submit: bool = Field(default=True, description="Send immediately instead of saving a draft")


class ClaimDenial(BaseModel):
    reason: Optional[str] = None


class ClaimPaymentCreate(BaseModel):
    paid_amount: Decimal = Field(..., ge=0)
    payment_date: Optional[dt.date] = None
    allowed_amount: Optional[Decimal] = Field(default=None, ge=0)
    adjustment_amount: Optional[Decimal] = Field(default=None, ge=0)
    patient_responsibility: Optional[Decimal] = Field(default=None, ge=0)


class AdjustmentModel(ORMModel):
    id: str
    date: dt.date
    amount: Decimal
    reason: str
    type: AdjustmentType


class AdjustmentCreate(BaseModel):
    type: AdjustmentType
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    adjustment_date: Optional[dt.date] = None


class AccountSummary(BaseModel):
    account_id: str
    plan_identifier: Optional[str] = None
    balance_due: Decimal
    open_claims: int


class AccountResponse(ORMModel):
    account_id: str
    plan_identifier: Optional[str] = None
    balance_due: Decimal
    deductible_annual: Optional[Decimal] = None
    deductible_remaining: Optional[Decimal] = None
    invoice_lines: List[InvoiceLineModel]
    payments: List[PaymentModel]
    claims: List[ClaimModel]
    adjustments: List[AdjustmentModel]
    payment_methods: List[PaymentMethodModel]


class FeeScheduleEntryModel(ORMModel):
    id: str
    plan_identifier: str
    procedure_code: str
    fee: Decimal
    added_at: Optional[dt.datetime] = None


class FeeScheduleEntryCreate(BaseModel):
    plan_identifier: str = Field(..., min_length=1)
    procedure_code: str = Field(..., min_length=1)
    fee: Decimal = Field(..., ge=0)


class FeeScheduleEntryUpdate(BaseModel):
    plan_identifier: Optional[str] = None
    procedure_code: Optional[str] = None
    fee: Optional[Decimal] = Field(default=None, ge=0)


class FeeResolution(BaseModel):
    procedure_code: str
    plan_identifier: Optional[str] = None
    fee: Decimal


class ProcedureModel(ORMModel):
    code: str
    description: str
    default_fee: Optional[Decimal] = None


class CardBrandResponse(BaseModel):
    brand: Optional[str] = None
    last_four: str


class CardBrandRequest(BaseModel):
    card_number: str


class AgingAccountRow(BaseModel):
    account_id: str
    buckets: Dict[str, Decimal]
    total: Decimal
    line_count: int
    balance_due: Decimal


class AgingReportResponse(BaseModel):
    as_of: dt.date
    buckets: Dict[str, Decimal]
    total: Decimal
    accounts: List[AgingAccountRow]


class DashboardMetrics(BaseModel):
    total_outstanding: Decimal
    accounts_with_balance: int
    open_claims: int
    expected_insurance: Decimal
    total_collected: Decimal
    total_written_off: Decimal


class AuditEntryModel(ORMModel):
    id: str
    timestamp: dt.datetime
    actor_id: Optional[str] = None
    action: str
    account_id: str
    detail: Optional[str] = None


class ImportResult(BaseModel):
    imported: int
