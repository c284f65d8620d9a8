"""FastAPI application exposing the dental billing ledger."""
from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse

from dental_ledger.audit import InMemoryAuditLog
from dental_ledger.billing import (
    BillingEngine,
    ChargeLine,
    LedgerError,
    LedgerValidationError,
    UnknownEntityError,
    identify_brand,
    last_four,
)
from dental_ledger.billing.errors import LedgerConsistencyError
from dental_ledger.catalog import get_catalog
from dental_ledger.config import AppSettings, get_settings
from dental_ledger.reporting import build_aging_detail, build_aging_report
from dental_ledger.rendering.report import aging_to_dict, render_aging_html, render_statement_html
from dental_ledger.schemas import (
    AccountCreate,
    AccountResponse,
    AccountSummary,
    AdjustmentCreate,
    AdjustmentModel,
    AgingReportResponse,
    AuditEntryModel,
    CardBrandRequest,
    CardBrandResponse,
    ClaimCreate,
    ClaimDenial,
    ClaimModel,
    ClaimPaymentCreate,
    DashboardMetrics,
    DeductibleUpdate,
    ErrorResponse,
    FeeResolution,
    FeeScheduleEntryCreate,
    FeeScheduleEntryModel,
    FeeScheduleEntryUpdate,
    ImportResult,
    InvoiceLineModel,
    InvoiceLinesCreate,
    LineStatusUpdate,
    PaymentCreate,
    PaymentMethodCreate,
    PaymentMethodModel,
    PaymentModel,
    PlanUpdate,
    ProcedureModel,
    ServiceDateGroup,
)
from dental_ledger.storage import export_accounts, import_accounts

LOGGER = logging.getLogger(__name__)

_settings = get_settings()

app = FastAPI(
    title=_settings.app_name,
    version="0.1.0",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if isinstance(exc, UnknownEntityError):
        status_code = 404
    elif isinstance(exc, LedgerConsistencyError):
        status_code = 409
    else:
        status_code = 400
    LOGGER.debug("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": exc.code})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    detail = "; ".join(messages) or "Invalid request"
    LOGGER.debug("%s %s rejected: %s", request.method, request.url.path, detail)
    return JSONResponse(
        status_code=400,
        content={"detail": detail, "code": LedgerValidationError.code},
    )


def get_engine(settings: AppSettings = Depends(get_settings)) -> BillingEngine:
    engine = getattr(app.state, "engine", None)
    if engine is None:
        engine = BillingEngine(
            catalog=get_catalog(settings),
            audit_log=InMemoryAuditLog(settings.audit_max_entries),
            seed_demo_data=settings.seed_demo_data,
        )
        app.state.engine = engine
    return engine


def get_actor(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_actor_id


# ----------------------------------------------------------------------
# Accounts
# ----------------------------------------------------------------------
@app.get("/api/accounts", response_model=List[AccountSummary])
def list_accounts(engine: BillingEngine = Depends(get_engine)) -> List[AccountSummary]:
    return [
        AccountSummary(
            account_id=account.account_id,
            plan_identifier=account.plan_identifier,
            balance_due=account.balance_due,
            open_claims=sum(1 for claim in account.claims if claim.status in ("Sent", "Partially paid")),
        )
        for account in engine.snapshot()
    ]


@app.post("/api/accounts", response_model=AccountResponse, status_code=201)
def open_account(
    payload: AccountCreate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> AccountResponse:
    account = engine.open_account(payload.account_id, plan_identifier=payload.plan_identifier, actor_id=actor)
    return AccountResponse.model_validate(account)


@app.get("/api/accounts/{account_id}", response_model=AccountResponse)
def get_account(account_id: str, engine: BillingEngine = Depends(get_engine)) -> AccountResponse:
    return AccountResponse.model_validate(engine.get_account(account_id))


@app.delete("/api/accounts/{account_id}", status_code=204, response_class=Response)
def close_account(
    account_id: str,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> Response:
    engine.close_account(account_id, actor_id=actor)
    return Response(status_code=204)


@app.put("/api/accounts/{account_id}/plan", response_model=AccountResponse)
def set_plan(
    account_id: str,
    payload: PlanUpdate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> AccountResponse:
    account = engine.set_plan(account_id, payload.plan_identifier, actor_id=actor)
    return AccountResponse.model_validate(account)


@app.put("/api/accounts/{account_id}/deductible", response_model=AccountResponse)
def set_deductible(
    account_id: str,
    payload: DeductibleUpdate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> AccountResponse:
    account = engine.set_deductible(
        account_id, annual=payload.annual, remaining=payload.remaining, actor_id=actor
    )
    return AccountResponse.model_validate(account)


@app.get("/api/accounts/{account_id}/statement", response_class=HTMLResponse)
def account_statement(
    account_id: str,
    engine: BillingEngine = Depends(get_engine),
    settings: AppSettings = Depends(get_settings),
) -> str:
    return render_statement_html(engine.get_account(account_id), settings=settings)


# ----------------------------------------------------------------------
# Invoice lines
# ----------------------------------------------------------------------
@app.post("/api/accounts/{account_id}/invoice-lines", response_model=List[InvoiceLineModel], status_code=201)
def add_invoice_lines(
    account_id: str,
    payload: InvoiceLinesCreate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> List[InvoiceLineModel]:
    lines = engine.add_lines(
        account_id,
        service_date=payload.service_date,
        lines=[ChargeLine(**line.model_dump()) for line in payload.lines],
        actor_id=actor,
    )
    return [InvoiceLineModel.model_validate(line) for line in lines]


@app.get("/api/accounts/{account_id}/invoice-lines", response_model=List[ServiceDateGroup])
def list_invoice_lines(account_id: str, engine: BillingEngine = Depends(get_engine)) -> List[ServiceDateGroup]:
    grouped = engine.lines_by_service_date(account_id)
    return [
        ServiceDateGroup(
            service_date=service_date,
            lines=[InvoiceLineModel.model_validate(line) for line in lines],
            total=sum((line.amount for line in lines), Decimal("0.00")),
        )
        for service_date, lines in grouped.items()
    ]


@app.patch("/api/accounts/{account_id}/invoice-lines/{line_id}", response_model=InvoiceLineModel)
def update_line_status(
    account_id: str,
    line_id: str,
    payload: LineStatusUpdate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> InvoiceLineModel:
    line = engine.set_line_status(account_id, line_id, payload.status, actor_id=actor)
    return InvoiceLineModel.model_validate(line)


# ----------------------------------------------------------------------
# Payments and payment methods
# ----------------------------------------------------------------------
@app.post("/api/accounts/{account_id}/payments", response_model=PaymentModel, status_code=201)
def record_payment(
    account_id: str,
    payload: PaymentCreate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> PaymentModel:
    payment = engine.record_payment(
        account_id,
        mode=payload.mode,
        amount=payload.amount,
        out_of_pocket=payload.out_of_pocket,
        with_insurance=payload.with_insurance,
        method_id=payload.method_id,
        note=payload.note,
        payment_date=payload.payment_date,
        actor_id=actor,
    )
    return PaymentModel.model_validate(payment)


@app.post("/api/accounts/{account_id}/payment-methods", response_model=PaymentMethodModel, status_code=201)
def add_payment_method(
    account_id: str,
    payload: PaymentMethodCreate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> PaymentMethodModel:
    method = engine.add_payment_method(account_id, **payload.model_dump(), actor_id=actor)
    return PaymentMethodModel.model_validate(method)


@app.delete(
    "/api/accounts/{account_id}/payment-methods/{method_id}",
    status_code=204,
    response_class=Response,
)
def remove_payment_method(
    account_id: str,
    method_id: str,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> Response:
    engine.remove_payment_method(account_id, method_id, actor_id=actor)
    return Response(status_code=204)


# ----------------------------------------------------------------------
# Claims
# ----------------------------------------------------------------------
@app.post("/api/accounts/{account_id}/claims", response_model=ClaimModel, status_code=201)
def create_claim(
    account_id: str,
    payload: ClaimCreate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> ClaimModel:
    create = engine.submit_claim if payload.submit else engine.create_draft_claim
    claim = create(
        account_id,
        amount=payload.amount,
        procedure_codes=payload.procedure_codes,
        description=payload.description,
        claim_date=payload.claim_date,
        note=payload.note,
        actor_id=actor,
    )
    return ClaimModel.model_validate(claim)


@app.post("/api/accounts/{account_id}/claims/{claim_id}/send", response_model=ClaimModel)
def send_claim(
    account_id: str,
    claim_id: str,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> ClaimModel:
    return ClaimModel.model_validate(engine.send_claim(account_id, claim_id, actor_id=actor))


@app.post("/api/accounts/{account_id}/claims/{claim_id}/deny", response_model=ClaimModel)
def deny_claim(
    account_id: str,
    claim_id: str,
    payload: ClaimDenial,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> ClaimModel:
    claim = engine.mark_claim_denied(account_id, claim_id, reason=payload.reason, actor_id=actor)
    return ClaimModel.model_validate(claim)


@app.post("/api/accounts/{account_id}/claims/{claim_id}/payments", response_model=ClaimModel, status_code=201)
def record_claim_payment(
    account_id: str,
    claim_id: str,
    payload: ClaimPaymentCreate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> ClaimModel:
    engine.record_claim_payment(account_id, claim_id, **payload.model_dump(), actor_id=actor)
    account = engine.get_account(account_id)
    claim = next(claim for claim in account.claims if claim.id == claim_id)
    return ClaimModel.model_validate(claim)


# ----------------------------------------------------------------------
# Adjustments
# ----------------------------------------------------------------------
@app.post("/api/accounts/{account_id}/adjustments", response_model=AdjustmentModel, status_code=201)
def apply_adjustment(
    account_id: str,
    payload: AdjustmentCreate,
    engine: BillingEngine = Depends(get_engine),
    actor: Optional[str] = Depends(get_actor),
) -> AdjustmentModel:
    adjustment = engine.apply_adjustment(
        account_id,
        type=payload.type,
        amount=payload.amount,
        reason=payload.reason,
        adjustment_date=payload.adjustment_date,
        actor_id=actor,
    )
    return AdjustmentModel.model_validate(adjustment)


# ----------------------------------------------------------------------
# Reference data
# ----------------------------------------------------------------------
@app.get("/api/fee-schedule", response_model=List[FeeScheduleEntryModel])
def list_fee_schedule(engine: BillingEngine = Depends(get_engine)) -> List[FeeScheduleEntryModel]:
    return [FeeScheduleEntryModel.model_validate(entry) for entry in engine.fee_schedule.list_entries()]


@app.post("/api/fee-schedule", response_model=FeeScheduleEntryModel, status_code=201)
def add_fee_schedule_entry(
    payload: FeeScheduleEntryCreate,
    engine: BillingEngine = Depends(get_engine),
) -> FeeScheduleEntryModel:
    entry = engine.fee_schedule.add_entry(**payload.model_dump())
    return FeeScheduleEntryModel.model_validate(entry)


@app.patch("/api/fee-schedule/{entry_id}", response_model=FeeScheduleEntryModel)
def update_fee_schedule_entry(
    entry_id: str,
    payload: FeeScheduleEntryUpdate,
    engine: BillingEngine = Depends(get_engine),
) -> FeeScheduleEntryModel:
    entry = engine.fee_schedule.update_entry(entry_id, **payload.model_dump())
    return FeeScheduleEntryModel.model_validate(entry)


@app.delete("/api/fee-schedule/{entry_id}", status_code=204, response_class=Response)
def delete_fee_schedule_entry(entry_id: str, engine: BillingEngine = Depends(get_engine)) -> Response:
    engine.fee_schedule.delete_entry(entry_id)
    return Response(status_code=204)


@app.get("/api/fees/resolve", response_model=FeeResolution)
def resolve_fee(
    procedure_code: str,
    plan_identifier: Optional[str] = None,
    override: Optional[Decimal] = None,
    engine: BillingEngine = Depends(get_engine),
) -> FeeResolution:
    fee = engine.resolve_fee(procedure_code, plan_identifier, override)
    return FeeResolution(procedure_code=procedure_code.upper(), plan_identifier=plan_identifier, fee=fee)


@app.get("/api/procedures", response_model=List[ProcedureModel])
def search_procedures(
    q: Optional[str] = None,
    limit: int = Query(default=10, ge=1, le=100),
    engine: BillingEngine = Depends(get_engine),
    settings: AppSettings = Depends(get_settings),
) -> List[ProcedureModel]:
    if not q:
        procedures = engine.catalog.list_procedures()
    else:
        procedures = engine.catalog.search(q, limit=limit, score_cutoff=settings.search_score_cutoff)
    return [ProcedureModel.model_validate(procedure) for procedure in procedures]


@app.post("/api/cards/brand", response_model=CardBrandResponse)
def card_brand(payload: CardBrandRequest) -> CardBrandResponse:
    return CardBrandResponse(brand=identify_brand(payload.card_number), last_four=last_four(payload.card_number))


# ----------------------------------------------------------------------
# Reports
# ----------------------------------------------------------------------
@app.get("/api/reports/aging", response_model=AgingReportResponse)
def aging_report(
    as_of: Optional[dt.date] = None,
    engine: BillingEngine = Depends(get_engine),
) -> Dict[str, Any]:
    as_of = as_of or dt.date.today()
    accounts = engine.snapshot()
    return aging_to_dict(build_aging_report(accounts, as_of), build_aging_detail(accounts, as_of), as_of)


@app.get("/api/reports/aging.html", response_class=HTMLResponse)
def aging_report_html(
    as_of: Optional[dt.date] = None,
    engine: BillingEngine = Depends(get_engine),
    settings: AppSettings = Depends(get_settings),
) -> str:
    as_of = as_of or dt.date.today()
    accounts = engine.snapshot()
    return render_aging_html(
        build_aging_report(accounts, as_of),
        build_aging_detail(accounts, as_of),
        as_of,
        settings=settings,
    )


@app.get("/api/dashboard", response_model=DashboardMetrics)
def dashboard(engine: BillingEngine = Depends(get_engine)) -> DashboardMetrics:
    metrics = engine.dashboard_metrics()
    return DashboardMetrics(
        total_outstanding=metrics["total_outstanding"],
        accounts_with_balance=int(metrics["accounts_with_balance"]),
        open_claims=int(metrics["open_claims"]),
        expected_insurance=metrics["expected_insurance"],
        total_collected=metrics["total_collected"],
        total_written_off=metrics["total_written_off"],
    )


@app.get("/api/audit", response_model=List[AuditEntryModel])
def audit_log(
    account_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    engine: BillingEngine = Depends(get_engine),
    settings: AppSettings = Depends(get_settings),
) -> List[AuditEntryModel]:
    entries = engine.audit_log.entries(
        account_id=account_id,
        action=action,
        limit=min(limit or settings.max_entries_returned, settings.max_entries_returned),
    )
    return [AuditEntryModel.model_validate(entry) for entry in entries]


@app.get("/api/export")
def export_ledger(engine: BillingEngine = Depends(get_engine)) -> Dict[str, Any]:
    return export_accounts(engine)


@app.post("/api/import", response_model=ImportResult, status_code=201)
def import_ledger(
    payload: Dict[str, Any],
    strict: bool = False,
    engine: BillingEngine = Depends(get_engine),
) -> ImportResult:
    accounts = import_accounts(engine, payload, strict=strict)
    return ImportResult(imported=len(accounts))


__all__ = ["app"]
